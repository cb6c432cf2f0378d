"""Read captured program output from a transformation workspace.

External programs run by the transformation engine redirect their output to
``<step>.stdout`` and ``<step>.stderr`` files inside the workspace.  When a
step fails, these files are what the end user needs to see.
"""

from __future__ import annotations

import logging
from pathlib import Path

from molstore.models.molecule import ProcessDiagnostics

logger = logging.getLogger(__name__)


def _concat(paths: list[Path]) -> str:
    parts: list[str] = []
    for path in paths:
        try:
            parts.append(path.read_text(encoding="utf-8", errors="replace"))
        except OSError as exc:
            logger.warning("Could not read diagnostic file %s: %s", path, exc)
    return "\n".join(p for p in parts if p)


def dump_std_from_dir(directory: Path) -> ProcessDiagnostics:
    """Collect every ``*.stdout`` and ``*.stderr`` file in *directory*.

    Files are concatenated in name order.  A missing directory yields empty
    diagnostics rather than an error.
    """
    directory = Path(directory)
    if not directory.is_dir():
        return ProcessDiagnostics()

    return ProcessDiagnostics(
        stdout=_concat(sorted(directory.glob("*.stdout"))),
        stderr=_concat(sorted(directory.glob("*.stderr"))),
    )
