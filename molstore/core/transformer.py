"""Transformation engine capability and its GROMACS-backed default.

Before a molecule is archived, its raw uploads go through two steps:

1. **Canonical topology** — the uploaded ``.top`` is rewritten so that its
   ``#include`` directives resolve: fragment includes point at the staged
   ``.itp`` files, force-field includes point inside the selected force field
   directory.
2. **CONECT coordinates** — an external program (GROMACS ``grompp`` +
   ``trjconv -conect`` by default) produces a copy of the ``.pdb`` with
   explicit bond records.

Both steps are expressed by the ``MoleculeTransformer`` Protocol so the store
can run against a test double.  Any step that rejects its input raises
``TransformationFailedError`` carrying the workspace directory, where
program output was captured as ``<step>.stdout`` / ``<step>.stderr``.
A save cancelled through its ``threading.Event`` raises ``SaveCancelledError``.
"""

from __future__ import annotations

import logging
import os
import re
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Protocol, runtime_checkable

from molstore.core.errors import SaveCancelledError, TransformationFailedError
from molstore.models.molecule import StagedMolecule, TransformOutputs

logger = logging.getLogger(__name__)

_SCRIPTS_DIR = Path(__file__).resolve().parent.parent / "scripts"
DEFAULT_CONECT_COMMAND: list[str] = ["bash", str(_SCRIPTS_DIR / "create_conect_pdb.sh")]
DEFAULT_CONECT_MDP = _SCRIPTS_DIR / "run.mdp"

_INCLUDE_RE = re.compile(r'^(\s*#include\s+)"([^"]+)"(.*)$')
_DIRECTIVE_RE = re.compile(r"^\s*\[\s*(\w+)\s*\]")
_POLL_SECONDS = 0.1


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class MoleculeTransformer(Protocol):
    """Protocol for transformation engine backends."""

    def build_topology(
        self,
        workdir: Path,
        top_path: Path,
        itp_paths: list[Path],
        force_field: str,
    ) -> Path:
        """Write a canonical topology inside *workdir* and return its path."""
        ...

    def build_conect_pdb(
        self,
        pdb_path: Path,
        top_path: Path,
        workdir: Path,
        cancel: threading.Event | None = None,
    ) -> Path:
        """Write a CONECT-augmented copy of *pdb_path* and return its path.

        Implementations that run external programs stop them and raise
        ``SaveCancelledError`` once *cancel* is set.
        """
        ...


# ---------------------------------------------------------------------------
# Default implementation
# ---------------------------------------------------------------------------


def _write_step_log(workdir: Path, step: str, stderr: str) -> None:
    (workdir / f"{step}.stderr").write_text(stderr + "\n", encoding="utf-8")


class GromacsTransformer:
    """Transformation engine backed by force field files and GROMACS.

    Parameters
    ----------
    force_field_dir:
        Directory holding one sub-directory of ``.itp`` files per force field
        (e.g. ``force_fields/martini3/``).
    conect_command:
        argv prefix of the CONECT program.  It is called as
        ``<command...> <pdb> <top> <output> <mdp>`` with the workspace as
        working directory and must write ``<output>``.
    conect_mdp:
        MDP parameter file handed to ``grompp``.
    timeout:
        Seconds the CONECT program may run before the save is aborted.
    """

    def __init__(
        self,
        force_field_dir: Path,
        *,
        conect_command: list[str] | None = None,
        conect_mdp: Path | None = None,
        timeout: float = 300.0,
    ) -> None:
        self._force_field_dir = Path(force_field_dir)
        self._conect_command = list(conect_command or DEFAULT_CONECT_COMMAND)
        self._conect_mdp = Path(conect_mdp) if conect_mdp else DEFAULT_CONECT_MDP
        self._timeout = timeout

    def available_force_fields(self) -> list[str]:
        """Names of the force field directories that can be selected."""
        if not self._force_field_dir.is_dir():
            return []
        return sorted(p.name for p in self._force_field_dir.iterdir() if p.is_dir())

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------

    def build_topology(
        self,
        workdir: Path,
        top_path: Path,
        itp_paths: list[Path],
        force_field: str,
    ) -> Path:
        """Rewrite ``#include`` directives of *top_path* into a canonical topology.

        Fragment includes are reduced to the staged basename; includes of
        force field files are made absolute.  If the topology includes no
        force field file at all, every ``.itp`` of the force field is
        included at the top, in name order.
        """
        ff_dir = self._force_field_dir / force_field
        if not ff_dir.is_dir():
            reason = f"Unknown force field {force_field!r}"
            _write_step_log(workdir, "topology", reason)
            raise TransformationFailedError(reason, workdir)

        fragments = {p.name for p in itp_paths}
        ff_files = sorted(p.name for p in ff_dir.glob("*.itp"))

        lines = top_path.read_text(encoding="utf-8", errors="replace").splitlines()
        out: list[str] = []
        unresolved: list[str] = []
        directives: set[str] = set()
        includes_ff = False

        for line in lines:
            directive = _DIRECTIVE_RE.match(line)
            if directive:
                directives.add(directive.group(1).lower())

            match = _INCLUDE_RE.match(line)
            if not match:
                out.append(line)
                continue

            prefix, target, rest = match.groups()
            name = Path(target).name
            if name in fragments:
                out.append(f'{prefix}"{name}"{rest}')
            elif name in ff_files:
                out.append(f'{prefix}"{(ff_dir / name).resolve()}"{rest}')
                includes_ff = True
            else:
                unresolved.append(target)

        if unresolved:
            reason = "Unresolved topology includes: " + ", ".join(unresolved)
            _write_step_log(workdir, "topology", reason)
            raise TransformationFailedError(reason, workdir)

        if "molecules" not in directives:
            reason = f"Topology {top_path.name} has no [ molecules ] section"
            _write_step_log(workdir, "topology", reason)
            raise TransformationFailedError(reason, workdir)

        if not includes_ff:
            header = [f'#include "{(ff_dir / n).resolve()}"' for n in ff_files]
            out = header + out

        canonical = workdir / f"{top_path.stem}_full.top"
        canonical.write_text("\n".join(out) + "\n", encoding="utf-8")
        logger.debug(
            "Canonical topology %s written (force_field=%s, %d fragments)",
            canonical,
            force_field,
            len(fragments),
        )
        return canonical

    # ------------------------------------------------------------------
    # Coordinates
    # ------------------------------------------------------------------

    def build_conect_pdb(
        self,
        pdb_path: Path,
        top_path: Path,
        workdir: Path,
        cancel: threading.Event | None = None,
    ) -> Path:
        """Run the CONECT program and return the augmented PDB path.

        The output keeps the input's file name, inside ``<workdir>/conect/``.
        The program runs in its own process group.  On timeout or when
        *cancel* is set, the whole group is killed, so helper processes
        started by a wrapper script do not outlive the save.
        """
        out_dir = workdir / "conect"
        out_dir.mkdir(exist_ok=True)
        output = out_dir / pdb_path.name
        argv = [
            *self._conect_command,
            str(pdb_path),
            str(top_path),
            str(output),
            str(self._conect_mdp),
        ]

        logger.debug("Running CONECT program: %s", " ".join(argv))
        with open(workdir / "conect.stdout", "wb") as out_fh, open(
            workdir / "conect.stderr", "wb"
        ) as err_fh:
            try:
                proc = subprocess.Popen(
                    argv,
                    cwd=workdir,
                    stdout=out_fh,
                    stderr=err_fh,
                    start_new_session=True,
                )
            except OSError as exc:
                raise TransformationFailedError(
                    f"CONECT program could not be started: {exc}", workdir
                ) from exc

            try:
                returncode = self._wait(proc, workdir, cancel)
            finally:
                _kill_group(proc)

        if returncode != 0:
            raise TransformationFailedError(
                f"CONECT program exited with status {returncode}", workdir
            )
        if not output.is_file():
            raise TransformationFailedError(
                f"CONECT program did not produce {output.name}", workdir
            )
        return output

    def _wait(
        self,
        proc: subprocess.Popen,
        workdir: Path,
        cancel: threading.Event | None,
    ) -> int:
        deadline = time.monotonic() + self._timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TransformationFailedError(
                    f"CONECT program timed out after {self._timeout:g}s", workdir
                )
            try:
                return proc.wait(timeout=min(_POLL_SECONDS, remaining))
            except subprocess.TimeoutExpired:
                pass
            if cancel is not None and cancel.is_set():
                logger.info("CONECT program cancelled (pid %d)", proc.pid)
                raise SaveCancelledError("Save cancelled while running the CONECT program")


def _kill_group(proc: subprocess.Popen) -> None:
    """Kill every process left in *proc*'s process group and reap *proc*."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass
    proc.wait()


# ---------------------------------------------------------------------------
# Invoker
# ---------------------------------------------------------------------------


def _check_cancel(cancel: threading.Event | None, step: str) -> None:
    if cancel is not None and cancel.is_set():
        raise SaveCancelledError(f"Save cancelled before {step}")


def transform(
    staged: StagedMolecule,
    transformer: MoleculeTransformer,
    force_field: str,
    cancel: threading.Event | None = None,
) -> TransformOutputs:
    """Run both transformation steps over a staged molecule.

    The steps run strictly in order; the first failure aborts the save.
    *cancel* is checked before each step and handed to the CONECT step.
    """
    _check_cancel(cancel, "building the topology")
    top = transformer.build_topology(
        staged.workdir,
        staged.top.path,
        [i.path for i in staged.itp],
        force_field,
    )
    if not Path(top).is_file():
        raise TransformationFailedError(
            "Transformation engine produced no topology file", staged.workdir
        )

    _check_cancel(cancel, "building CONECT coordinates")
    pdb = transformer.build_conect_pdb(
        staged.pdb.path, Path(top), staged.workdir, cancel=cancel
    )
    if not Path(pdb).is_file():
        raise TransformationFailedError(
            "Transformation engine produced no coordinate file", staged.workdir
        )

    logger.info(
        "Transformed %s + %s with force field %s",
        staged.top.staged_name,
        staged.pdb.staged_name,
        force_field,
    )
    return TransformOutputs(top=Path(top), pdb=Path(pdb))
