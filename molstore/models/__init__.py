"""Molstore data models, all frozen Pydantic v2 models."""

from molstore.models.molecule import (
    FileDescriptor,
    MoleculeSave,
    MoleculeSaveInfo,
    ProcessDiagnostics,
    StagedInput,
    StagedMolecule,
    SweepReport,
    TransformOutputs,
    UploadedFile,
)

__all__ = [
    # inputs
    "UploadedFile",
    "StagedInput",
    "StagedMolecule",
    # persisted metadata
    "FileDescriptor",
    "MoleculeSaveInfo",
    "MoleculeSave",
    # transformation
    "TransformOutputs",
    "ProcessDiagnostics",
    # maintenance
    "SweepReport",
]
