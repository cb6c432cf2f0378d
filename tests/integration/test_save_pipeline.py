"""End-to-end: uploads -> GROMACS-style transformer -> stored archive.

Uses the real ``GromacsTransformer`` with a small Python program standing
in for the GROMACS CONECT step.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from molstore.config import StoreSettings
from molstore.core.errors import TransformationFailedError
from molstore.core.hasher import md5_file
from molstore.core.molecule_store import MoleculeStore

CONECT_PROGRAM = """\
import sys
pdb, top, out, mdp = sys.argv[1:5]
molecules = open(top).read().split("[ molecules ]")[1].split()
if "B" not in molecules:
    sys.stderr.write("Fatal error: molecule B missing from topology\\n")
    sys.exit(1)
with open(pdb) as fh:
    atoms = [line for line in fh if line.startswith("ATOM")]
with open(out, "w") as fh:
    fh.writelines(atoms)
    fh.write("CONECT    1    2\\nEND\\n")
print("grompp ok")
"""


@pytest.fixture
def settings(tmp_path: Path) -> StoreSettings:
    ff = tmp_path / "force_fields" / "martini3"
    ff.mkdir(parents=True)
    (ff / "martini_v3.0.0.itp").write_text("[ defaults ]\n1 2\n")

    program = tmp_path / "conect.py"
    program.write_text(CONECT_PROGRAM)

    return StoreSettings(
        molecule_root_dir=tmp_path / "molecules",
        tmp_base_dir=tmp_path / "scratch",
        force_field_dir=tmp_path / "force_fields",
        conect_command=[sys.executable, str(program)],
        transform_timeout_seconds=30,
        worker_id=7,
    )


@pytest.fixture
def real_store(settings: StoreSettings) -> MoleculeStore:
    return MoleculeStore.from_settings(settings)


class TestSavePipeline:
    def test_full_save(self, real_store: MoleculeStore, molecule_files, settings):
        save = real_store.save(force_field="martini3", **molecule_files)

        assert real_store.exists(save.id)
        archive, info = real_store.get(save.id)
        assert archive.namelist() == ["A.itp", "B.itp", "mol.top", "mol.pdb"]

        top = archive.read("mol.top").decode()
        ff_file = (settings.force_field_dir / "martini3" / "martini_v3.0.0.itp").resolve()
        assert f'#include "{ff_file}"' in top
        assert '#include "A.itp"' in top

        pdb = archive.read("mol.pdb").decode()
        assert "CONECT    1    2" in pdb

        assert info.force_field == "martini3"
        assert info.hash == md5_file(real_store.archive_path(save.id))
        assert list(settings.tmp_base_dir.iterdir()) == []

    def test_rejected_by_external_program(self, real_store, make_upload, settings):
        top = make_upload("mol.top", '#include "A.itp"\n[ molecules ]\nA 1\n')
        with pytest.raises(TransformationFailedError) as info:
            real_store.save(
                [make_upload("A.itp", "[ moleculetype ]\n")],
                make_upload("mol.pdb", "ATOM\n"),
                top,
                "martini3",
            )
        assert "molecule B missing" in info.value.diagnostics().stderr
        assert real_store.list() == []
        assert list(settings.tmp_base_dir.iterdir()) == []

    def test_unknown_force_field(self, real_store, molecule_files):
        with pytest.raises(TransformationFailedError, match="Unknown force field"):
            real_store.save(force_field="charmm36", **molecule_files)
        assert list(real_store.root.iterdir()) == []

    def test_save_remove_cycle(self, real_store, molecule_files):
        save = real_store.save(force_field="martini3", **molecule_files)
        assert real_store.verify(save.id)
        real_store.remove(save.id)
        real_store.remove(save.id)
        assert not real_store.exists(save.id)
        assert real_store.get(save.id) is None
