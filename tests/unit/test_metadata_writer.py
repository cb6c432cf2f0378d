"""Tests for the archive hash + metadata sidecar writer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from molstore.core.errors import StorageIOError
from molstore.core.hasher import md5_file
from molstore.core.metadata_writer import finalize, tmp_path_for
from molstore.models.molecule import FileDescriptor, MoleculeSaveInfo


@pytest.fixture
def archive(tmp_path: Path) -> Path:
    path = tmp_path / "42.zip"
    path.write_bytes(b"PK\x05\x06" + b"\x00" * 18)
    return path


def _finalize(archive: Path, info_path: Path) -> MoleculeSaveInfo:
    return finalize(
        archive,
        info_path,
        pdb=FileDescriptor(name="mol.pdb", size=10),
        top=FileDescriptor(name="mol.top", size=20),
        itp=[FileDescriptor(name="A.itp", size=30)],
        force_field="martini3",
    )


class TestFinalize:
    def test_writes_json_record(self, archive: Path):
        info_path = archive.with_suffix(".json")
        info = _finalize(archive, info_path)

        raw = json.loads(info_path.read_text(encoding="utf-8"))
        assert set(raw) == {"pdb", "top", "itp", "hash", "force_field"}
        assert raw["pdb"] == {"name": "mol.pdb", "size": 10}
        assert raw["itp"] == [{"name": "A.itp", "size": 30}]
        assert raw["force_field"] == "martini3"
        assert MoleculeSaveInfo.model_validate(raw) == info
        assert not tmp_path_for(info_path).exists()

    def test_hash_is_read_from_disk(self, archive: Path):
        info = _finalize(archive, archive.with_suffix(".json"))
        assert info.hash == md5_file(archive)

    def test_missing_archive(self, tmp_path: Path):
        with pytest.raises(StorageIOError, match="hash"):
            _finalize(tmp_path / "gone.zip", tmp_path / "gone.json")
        assert not (tmp_path / "gone.json").exists()

    def test_unwritable_metadata(self, archive: Path, tmp_path: Path):
        info_path = tmp_path / "missing-dir" / "42.json"
        with pytest.raises(StorageIOError, match="metadata"):
            _finalize(archive, info_path)
