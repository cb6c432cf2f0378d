"""Molecule save models — uploads, staged inputs, and persisted metadata.

A stored molecule is an *artifact*: one ZIP archive plus one JSON metadata
record, both keyed by the same snowflake identifier.  Every model here is
frozen; nothing about a save changes after it has been written.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class UploadedFile(BaseModel):
    """A file delivered by the upload receiver, already on disk.

    The upload receiver owns ``path``; the store only reads from it.
    """

    model_config = ConfigDict(frozen=True)

    original_name: str
    path: Path
    mimetype: str = "application/octet-stream"
    size: int = 0


class StagedInput(BaseModel):
    """An upload copied into a scratch workspace under its canonical name."""

    model_config = ConfigDict(frozen=True)

    original_name: str
    staged_name: str  # "<stem>.pdb" | "<stem>.top" | "<stem>.itp"
    path: Path
    size: int


class StagedMolecule(BaseModel):
    """All inputs of one save, staged into the same workspace."""

    model_config = ConfigDict(frozen=True)

    workdir: Path
    pdb: StagedInput
    top: StagedInput
    itp: list[StagedInput] = Field(default_factory=list)


class FileDescriptor(BaseModel):
    """Name and byte size of one archived file."""

    model_config = ConfigDict(frozen=True)

    name: str
    size: int


class MoleculeSaveInfo(BaseModel):
    """The JSON sidecar written next to each archive.

    ``hash`` is the MD5 hex digest of the archive bytes as stored on disk.
    ``force_field`` is exactly the string given to ``save()``.
    """

    model_config = ConfigDict(frozen=True)

    pdb: FileDescriptor
    top: FileDescriptor
    itp: list[FileDescriptor] = Field(default_factory=list)
    hash: str
    force_field: str


class MoleculeSave(BaseModel):
    """Result of a successful save: identifier, archive path, metadata."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: Path  # full path of the archive
    infos: MoleculeSaveInfo


class TransformOutputs(BaseModel):
    """Canonical files produced by the transformation engine."""

    model_config = ConfigDict(frozen=True)

    top: Path
    pdb: Path


class ProcessDiagnostics(BaseModel):
    """Captured output of the external transformation programs."""

    model_config = ConfigDict(frozen=True)

    stdout: str = ""
    stderr: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.stdout or self.stderr)


class SweepReport(BaseModel):
    """Inconsistencies found in the storage root by a consistency sweep."""

    model_config = ConfigDict(frozen=True)

    orphan_archives: list[str] = Field(default_factory=list)
    orphan_metadata: list[str] = Field(default_factory=list)
    stale_temp_files: list[str] = Field(default_factory=list)
    deleted: bool = False

    @property
    def is_clean(self) -> bool:
        return not (
            self.orphan_archives or self.orphan_metadata or self.stale_temp_files
        )
