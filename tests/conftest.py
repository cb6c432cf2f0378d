"""Shared test fixtures for Molstore."""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable
from pathlib import Path

import pytest

from molstore.core.errors import TransformationFailedError
from molstore.core.molecule_store import MoleculeStore
from molstore.models.molecule import UploadedFile

PDB_TEXT = (
    "ATOM      1  BB  ALA A   1       1.000   1.000   1.000  1.00  0.00\n"
    "ATOM      2  SC1 ALA A   1       2.000   1.000   1.000  1.00  0.00\n"
    "END\n"
)
TOP_TEXT = (
    '#include "martini_v3.0.0.itp"\n'
    '#include "A.itp"\n'
    '#include "B.itp"\n'
    "\n[ system ]\nmolecule\n\n[ molecules ]\nA 1\nB 1\n"
)


# ---------------------------------------------------------------------------
# Transformation engine test double
# ---------------------------------------------------------------------------


class FakeTransformer:
    """Deterministic stand-in for the GROMACS-backed transformer.

    Writes captured output files the way the real engine does, and fails on
    request with a ``TransformationFailedError``.
    """

    def __init__(self, *, fail_topology: bool = False, fail_conect: bool = False) -> None:
        self.fail_topology = fail_topology
        self.fail_conect = fail_conect
        self.calls: list[str] = []

    def build_topology(
        self,
        workdir: Path,
        top_path: Path,
        itp_paths: list[Path],
        force_field: str,
    ) -> Path:
        self.calls.append("topology")
        (workdir / "topology.stdout").write_text("reading topology\n")
        if self.fail_topology:
            (workdir / "topology.stderr").write_text("ERROR: bad topology\n")
            raise TransformationFailedError("Topology rejected", workdir)

        canonical = workdir / f"{top_path.stem}_full.top"
        canonical.write_text(
            f"; force field {force_field}\n" + top_path.read_text()
        )
        return canonical

    def build_conect_pdb(
        self,
        pdb_path: Path,
        top_path: Path,
        workdir: Path,
        cancel: threading.Event | None = None,
    ) -> Path:
        self.calls.append("conect")
        if self.fail_conect:
            (workdir / "conect.stderr").write_text("Fatal error: atom name mismatch\n")
            raise TransformationFailedError("CONECT program exited with status 1", workdir)

        out_dir = workdir / "conect"
        out_dir.mkdir(exist_ok=True)
        output = out_dir / pdb_path.name
        output.write_text(pdb_path.read_text() + "CONECT    1    2\n")
        return output


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def transformer() -> FakeTransformer:
    return FakeTransformer()


@pytest.fixture
def make_transformer() -> Callable[..., FakeTransformer]:
    """Factory fixture: a FakeTransformer configured to fail on request."""
    return FakeTransformer


@pytest.fixture
def scratch_dir(tmp_dir: Path) -> Path:
    """Parent directory of scratch workspaces, so leaks are observable."""
    return tmp_dir / "scratch"


@pytest.fixture
def store(tmp_dir: Path, transformer: FakeTransformer, scratch_dir: Path) -> MoleculeStore:
    """Provide a fresh MoleculeStore in a temp directory."""
    return MoleculeStore(
        tmp_dir / "molecules",
        transformer,
        tmp_base_dir=scratch_dir,
    )


@pytest.fixture
def make_upload(tmp_dir: Path) -> Callable[..., UploadedFile]:
    """Factory fixture: write a file as the upload receiver would."""
    upload_dir = tmp_dir / "uploads"
    upload_dir.mkdir()
    counter = itertools.count()

    def _factory(original_name: str, content: str = "") -> UploadedFile:
        path = upload_dir / f"upload-{next(counter)}"
        path.write_text(content)
        return UploadedFile(
            original_name=original_name,
            path=path,
            size=path.stat().st_size,
        )

    return _factory


@pytest.fixture
def molecule_files(make_upload: Callable[..., UploadedFile]) -> dict:
    """Uploads for a two-fragment molecule: A.itp, B.itp, mol.pdb, mol.top."""
    return {
        "itp_files": [
            make_upload("A.itp", "[ moleculetype ]\nA 1\n"),
            make_upload("B.itp", "[ moleculetype ]\nB 1\n"),
        ],
        "pdb_file": make_upload("mol.pdb", PDB_TEXT),
        "top_file": make_upload("mol.top", TOP_TEXT),
    }


@pytest.fixture
def saved(store: MoleculeStore, molecule_files: dict):
    """A molecule already saved with the martini3 force field."""
    return store.save(force_field="martini3", **molecule_files)
