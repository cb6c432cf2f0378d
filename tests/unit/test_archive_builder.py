"""Tests for ArchiveBuilder — deterministic output, atomic publication."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from molstore.core.archive_builder import ArchiveBuilder, describe, part_path_for
from molstore.core.errors import StorageIOError


@pytest.fixture
def files(tmp_path: Path) -> list[tuple[str, Path]]:
    src = tmp_path / "src"
    src.mkdir()
    (src / "A.itp").write_text("[ moleculetype ]\nA 1\n" * 50)
    (src / "mol_full.top").write_text("[ molecules ]\nA 1\n")
    (src / "mol.pdb").write_text("ATOM\nCONECT    1    2\n")
    return [
        ("A.itp", src / "A.itp"),
        ("mol.top", src / "mol_full.top"),
        ("mol.pdb", src / "mol.pdb"),
    ]


class TestArchiveBuilder:
    def test_build(self, tmp_path: Path, files):
        target = tmp_path / "out" / "1.zip"
        target.parent.mkdir()
        assert ArchiveBuilder().build(target, files) == target

        with zipfile.ZipFile(target) as zf:
            assert zf.namelist() == ["A.itp", "mol.top", "mol.pdb"]
            assert zf.read("mol.top") == (files[1][1]).read_bytes()
            for info in zf.infolist():
                assert info.compress_type == zipfile.ZIP_DEFLATED
                assert info.date_time == (1980, 1, 1, 0, 0, 0)
        assert not part_path_for(target).exists()

    def test_entry_names_are_flat(self, tmp_path: Path, files):
        target = tmp_path / "flat.zip"
        ArchiveBuilder().build(target, [("nested/dir/A.itp", files[0][1])])
        with zipfile.ZipFile(target) as zf:
            assert zf.namelist() == ["A.itp"]

    def test_deterministic(self, tmp_path: Path, files):
        a, b = tmp_path / "a.zip", tmp_path / "b.zip"
        builder = ArchiveBuilder()
        builder.build(a, files)
        builder.build(b, files)
        assert a.read_bytes() == b.read_bytes()

    def test_entries_streamed_from_disk(self, tmp_path: Path, files, monkeypatch):
        def no_whole_file_reads(self):
            raise AssertionError(f"{self} read into memory")

        monkeypatch.setattr(Path, "read_bytes", no_whole_file_reads)
        target = tmp_path / "streamed.zip"
        ArchiveBuilder().build(target, files)
        with zipfile.ZipFile(target) as zf:
            assert zf.read("A.itp") == b"[ moleculetype ]\nA 1\n" * 50

    def test_compression_level_applied(self, tmp_path: Path, files):
        stored, packed = tmp_path / "l0.zip", tmp_path / "l9.zip"
        ArchiveBuilder(0).build(stored, files[:1])
        ArchiveBuilder(9).build(packed, files[:1])
        with zipfile.ZipFile(stored) as a, zipfile.ZipFile(packed) as b:
            assert a.getinfo("A.itp").compress_size > b.getinfo("A.itp").compress_size

    def test_compression_level_range(self):
        assert ArchiveBuilder().compression_level == 6
        with pytest.raises(ValueError):
            ArchiveBuilder(11)

    def test_missing_source_leaves_nothing(self, tmp_path: Path, files):
        target = tmp_path / "broken.zip"
        bad = files + [("ghost.itp", tmp_path / "ghost.itp")]
        with pytest.raises(StorageIOError):
            ArchiveBuilder().build(target, bad)
        assert not target.exists()
        assert not part_path_for(target).exists()

    def test_unwritable_target_dir(self, tmp_path: Path, files):
        target = tmp_path / "no-such-dir" / "x.zip"
        with pytest.raises(StorageIOError):
            ArchiveBuilder().build(target, files)
        assert not target.exists()


class TestDescribe:
    def test_describe(self, files):
        name, path = files[1]
        d = describe(path, name)
        assert d.name == "mol.top"
        assert d.size == path.stat().st_size

    def test_describe_defaults_to_basename(self, files):
        assert describe(files[0][1]).name == "A.itp"
