"""Tests for LocalDiskDriver — volumes mapped onto host directories."""

from __future__ import annotations

import os
import stat

import pytest

from handlefs.filesystem import FileSystem
from handlefs.fs.exceptions import (
    AlreadyExistsError,
    DirectoryNotFoundError,
    PathNotFoundError,
    StorageError,
    UnauthorizedAccessError,
)
from handlefs.fs.local_disk import LocalDiskDriver
from handlefs.fs.types import CanonicalPath, FileAttributes, OpenMode, SeekOrigin


def P(path: str) -> CanonicalPath:
    return CanonicalPath(path)


@pytest.fixture
def host(tmp_path):
    (tmp_path / "SD").mkdir()
    (tmp_path / "FLASH").mkdir()
    return tmp_path


@pytest.fixture
def disk(host) -> LocalDiskDriver:
    """LocalDiskDriver with volumes SD and FLASH."""
    return LocalDiskDriver(host_dir=host)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_nonexistent_dir(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LocalDiskDriver(host_dir=tmp_path / "nope")

    def test_file_not_dir(self, tmp_path):
        f = tmp_path / "file.txt"
        f.write_text("hi")
        with pytest.raises(NotADirectoryError):
            LocalDiskDriver(host_dir=f)


# ---------------------------------------------------------------------------
# Streams
# ---------------------------------------------------------------------------


class TestOpen:
    def test_creates_and_writes(self, disk, host):
        stream = disk.open(P(r"\SD\a.bin"))
        assert stream.write(b"hello") == 5
        stream.close()
        assert (host / "SD" / "a.bin").read_bytes() == b"hello"

    def test_stream_operations(self, disk):
        stream = disk.open(P(r"\SD\a.bin"))
        try:
            stream.write(b"0123456789")
            assert stream.get_length() == 10
            assert stream.seek(-4, SeekOrigin.END) == 6
            assert stream.read(10) == b"6789"
            stream.set_length(3)
            assert stream.get_length() == 3
            assert stream.seek(0, SeekOrigin.CURRENT) == 10
        finally:
            stream.close()

    def test_capability_of_writable_file(self, disk):
        stream = disk.open(P(r"\SD\a.bin"))
        capability = stream.get_stream_properties()
        stream.close()
        assert (capability.can_read, capability.can_write, capability.can_seek) == (True, True, True)

    def test_read_only_file_opens_without_write(self, disk, host):
        target = host / "SD" / "ro.bin"
        target.write_bytes(b"x")
        target.chmod(stat.S_IRUSR)
        if os.access(target, os.W_OK):
            pytest.skip("running with privileges that ignore file modes")
        stream = disk.open(P(r"\SD\ro.bin"))
        try:
            assert stream.get_stream_properties().can_write is False
            assert stream.read(-1) == b"x"
        finally:
            stream.close()
            target.chmod(stat.S_IRUSR | stat.S_IWUSR)

    def test_missing_parent(self, disk):
        with pytest.raises(DirectoryNotFoundError):
            disk.open(P(r"\SD\nodir\a.bin"))

    def test_directory(self, disk, host):
        (host / "SD" / "logs").mkdir()
        with pytest.raises(UnauthorizedAccessError):
            disk.open(P(r"\SD\logs"))

    def test_volume_root(self, disk):
        with pytest.raises(UnauthorizedAccessError):
            disk.open(P(r"\SD"))


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


class TestMetadata:
    def test_attributes(self, disk, host):
        (host / "SD" / "a.bin").write_bytes(b"abc")
        assert disk.get_attributes(P(r"\SD")) == FileAttributes.DIRECTORY
        assert FileAttributes.ARCHIVE in disk.get_attributes(P(r"\SD\a.bin"))
        assert disk.get_attributes(P(r"\SD\nope")) is None

    def test_read_only_round_trip(self, disk, host):
        (host / "SD" / "a.bin").write_bytes(b"abc")
        disk.set_attributes(P(r"\SD\a.bin"), FileAttributes.READ_ONLY)
        assert FileAttributes.READ_ONLY in disk.get_attributes(P(r"\SD\a.bin"))
        disk.set_attributes(P(r"\SD\a.bin"), FileAttributes.NORMAL)
        assert FileAttributes.READ_ONLY not in disk.get_attributes(P(r"\SD\a.bin"))

    def test_set_attributes_missing(self, disk):
        with pytest.raises(PathNotFoundError):
            disk.set_attributes(P(r"\SD\nope"), FileAttributes.NORMAL)

    def test_get_entry(self, disk, host):
        (host / "SD" / "a.bin").write_bytes(b"abc")
        entry = disk.get_entry(P(r"\SD\a.bin"))
        assert entry.name == "a.bin"
        assert entry.path == r"\SD\a.bin"
        assert entry.size == 3
        assert entry.modified_at is not None
        assert disk.get_entry(P(r"\SD\nope")) is None


# ---------------------------------------------------------------------------
# Delete / move / directories
# ---------------------------------------------------------------------------


class TestTreeOperations:
    def test_delete_file(self, disk, host):
        (host / "SD" / "a.bin").write_bytes(b"x")
        disk.delete(P(r"\SD\a.bin"))
        assert not (host / "SD" / "a.bin").exists()

    def test_delete_directory_tree(self, disk, host):
        (host / "SD" / "logs" / "old").mkdir(parents=True)
        (host / "SD" / "logs" / "old" / "c.txt").write_text("c")
        disk.delete(P(r"\SD\logs"))
        assert not (host / "SD" / "logs").exists()

    def test_delete_missing(self, disk):
        with pytest.raises(PathNotFoundError):
            disk.delete(P(r"\SD\nope"))

    def test_delete_volume_root(self, disk):
        with pytest.raises(UnauthorizedAccessError):
            disk.delete(P(r"\SD"))

    def test_move_within_volume(self, disk, host):
        (host / "SD" / "a.bin").write_bytes(b"x")
        assert disk.move(P(r"\SD\a.bin"), P(r"\SD\b.bin")) is True
        assert (host / "SD" / "b.bin").read_bytes() == b"x"

    def test_move_across_volumes_declined(self, disk, host):
        (host / "SD" / "a.bin").write_bytes(b"x")
        assert disk.move(P(r"\SD\a.bin"), P(r"\FLASH\a.bin")) is False
        assert (host / "SD" / "a.bin").exists()

    def test_move_onto_existing(self, disk, host):
        (host / "SD" / "a.bin").write_bytes(b"a")
        (host / "SD" / "b.bin").write_bytes(b"b")
        with pytest.raises(AlreadyExistsError):
            disk.move(P(r"\SD\a.bin"), P(r"\SD\b.bin"))

    def test_create_directory(self, disk, host):
        disk.create_directory(P(r"\SD\a\b"))
        disk.create_directory(P(r"\SD\a\b"))
        assert (host / "SD" / "a" / "b").is_dir()

    def test_create_directory_unknown_volume(self, disk):
        with pytest.raises(DirectoryNotFoundError):
            disk.create_directory(P(r"\USB\a"))

    def test_create_directory_over_file(self, disk, host):
        (host / "SD" / "a").write_text("x")
        with pytest.raises(AlreadyExistsError):
            disk.create_directory(P(r"\SD\a"))

    def test_list_entries(self, disk, host):
        (host / "SD" / "b.txt").write_text("b")
        (host / "SD" / "a.log").write_text("a")
        (host / "SD" / "sub").mkdir()
        assert [e.path for e in disk.list_entries(P(r"\SD"))] == [
            r"\SD\a.log",
            r"\SD\b.txt",
            r"\SD\sub",
        ]
        assert [e.name for e in disk.list_entries(P(r"\SD"), "*.TXT")] == ["b.txt"]

    def test_list_missing(self, disk):
        with pytest.raises(DirectoryNotFoundError):
            disk.list_entries(P(r"\SD\nope"))


# ---------------------------------------------------------------------------
# Volumes
# ---------------------------------------------------------------------------


class TestVolumes:
    def test_get_volumes(self, disk, host):
        (host / "stray.txt").write_text("not a volume")
        volumes = disk.get_volumes()
        assert [v.name for v in volumes] == ["FLASH", "SD"]
        assert all(v.total_size > 0 for v in volumes)
        assert all(v.file_system == "LOCAL" for v in volumes)

    def test_format_empties_volume(self, disk, host):
        (host / "SD" / "logs").mkdir()
        (host / "SD" / "logs" / "a.txt").write_text("a")
        (host / "SD" / "b.txt").write_text("b")
        (host / "FLASH" / "keep.txt").write_text("k")
        disk.format("SD", None, "SD", 0)
        assert list((host / "SD").iterdir()) == []
        assert (host / "FLASH" / "keep.txt").exists()

    def test_format_unknown_volume(self, disk):
        with pytest.raises(StorageError):
            disk.format("USB", None, "", 0)


# ---------------------------------------------------------------------------
# Path security
# ---------------------------------------------------------------------------


class TestPathSecurity:
    def test_symlink_rejected(self, disk, host, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        (outside / "secret.txt").write_text("secret")
        (host / "SD" / "link").symlink_to(outside)
        with pytest.raises(UnauthorizedAccessError):
            disk.get_attributes(P(r"\SD\link\secret.txt"))

    def test_symlinks_skipped_in_listings(self, disk, host, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        (host / "SD" / "link").symlink_to(outside)
        (host / "SD" / "real.txt").write_text("r")
        assert [e.name for e in disk.list_entries(P(r"\SD"))] == ["real.txt"]


# ---------------------------------------------------------------------------
# Through the file system
# ---------------------------------------------------------------------------


class TestWithFileSystem:
    def test_cross_volume_move_falls_back_to_copy(self, disk, host):
        with FileSystem(disk) as fs:
            fs.directories.create_directory(r"\SD\logs\old")
            fs.files.write_all_bytes(r"\SD\logs\old\c.txt", b"ccc")
            fs.directories.move(r"\SD\logs", r"\FLASH\logs")
        assert (host / "FLASH" / "logs" / "old" / "c.txt").read_bytes() == b"ccc"
        assert not (host / "SD" / "logs").exists()

    def test_append(self, disk, host):
        with FileSystem(disk) as fs:
            fs.files.write_all_bytes(r"\SD\log.txt", b"one\n")
            with fs.files.open(r"\SD\log.txt", OpenMode.APPEND) as handle:
                assert handle.seek_floor == 4
                handle.write(b"two\n")
        assert (host / "SD" / "log.txt").read_bytes() == b"one\ntwo\n"
