"""Tests for fs/info.py — FileInfo and DirectoryInfo."""

from __future__ import annotations

from datetime import datetime

import pytest

from handlefs.filesystem import FileSystem
from handlefs.fs.exceptions import DirectoryNotFoundError, FileNotFoundInStorageError
from handlefs.fs.info import DirectoryInfo, FileInfo, FileSystemInfo
from handlefs.fs.types import FileAttributes


@pytest.fixture
def populated(fs: FileSystem) -> FileSystem:
    fs.directories.create_directory(r"\SD\logs\old")
    fs.files.write_all_bytes(r"\SD\logs\boot.txt", b"booted")
    return fs


class TestFileInfo:
    def test_names(self, populated: FileSystem):
        info = populated.file_info(r"\SD\logs\.\boot.txt")
        assert info.full_name == r"\SD\logs\boot.txt"
        assert info.name == "boot.txt"
        assert info.extension == ".txt"
        assert info.directory_name == r"\SD\logs"
        assert str(info) == r"\SD\logs\boot.txt"
        assert repr(info) == r"FileInfo('\\SD\\logs\\boot.txt')"

    def test_metadata(self, populated: FileSystem):
        info = populated.file_info(r"\SD\logs\boot.txt")
        assert info.exists is True
        assert info.length == 6
        assert FileAttributes.DIRECTORY not in info.attributes
        assert isinstance(info.creation_time, datetime)
        assert isinstance(info.last_write_time, datetime)
        assert isinstance(info.last_access_time, datetime)

    def test_metadata_is_cached_until_refresh(self, populated: FileSystem):
        info = populated.file_info(r"\SD\logs\boot.txt")
        assert info.length == 6
        populated.files.write_all_bytes(r"\SD\logs\boot.txt", b"rebooted twice")
        assert info.length == 6
        info.refresh()
        assert info.length == 14

    def test_missing(self, fs: FileSystem):
        info = fs.file_info(r"\SD\nope.txt")
        assert info.exists is False
        with pytest.raises(FileNotFoundInStorageError):
            _ = info.length
        assert fs.registry.reservation_count() == 0

    def test_relative_path(self, populated: FileSystem):
        populated.directories.set_current_directory(r"\SD\logs")
        assert populated.file_info("boot.txt").full_name == r"\SD\logs\boot.txt"

    def test_create_and_delete(self, fs: FileSystem):
        info = fs.file_info(r"\SD\new.bin")
        with info.create() as handle:
            handle.write(b"123")
        assert info.exists is True
        info.delete()
        assert info.exists is False

    def test_directory(self, populated: FileSystem):
        parent = populated.file_info(r"\SD\logs\boot.txt").directory
        assert isinstance(parent, DirectoryInfo)
        assert parent.full_name == r"\SD\logs"


class TestDirectoryInfo:
    def test_navigation(self, populated: FileSystem):
        info = populated.directory_info(r"\SD\logs\old")
        assert info.name == "old"
        assert info.parent.full_name == r"\SD\logs"
        assert info.root.full_name == "\\"
        assert populated.directory_info("\\").parent is None

    def test_children(self, populated: FileSystem):
        info = populated.directory_info(r"\SD\logs")
        files = info.get_files()
        assert [f.full_name for f in files] == [r"\SD\logs\boot.txt"]
        assert all(isinstance(f, FileInfo) for f in files)
        assert [d.name for d in info.get_directories()] == ["old"]

    def test_attributes(self, populated: FileSystem):
        assert FileAttributes.DIRECTORY in populated.directory_info(r"\SD\logs").attributes

    def test_create_subdirectory(self, fs: FileSystem):
        info = fs.directory_info(r"\SD\data")
        info.create()
        sub = info.create_subdirectory(r"2024\jan")
        assert sub.full_name == r"\SD\data\2024\jan"
        assert sub.exists is True

    def test_missing(self, fs: FileSystem):
        info = fs.directory_info(r"\SD\nope")
        assert info.exists is False
        with pytest.raises(DirectoryNotFoundError):
            info.refresh()

    def test_move_to(self, populated: FileSystem):
        info = populated.directory_info(r"\SD\logs")
        info.move_to(r"\FLASH\logs")
        assert info.exists is False
        assert populated.directory_info(r"\FLASH\logs\old").exists is True

    def test_delete(self, populated: FileSystem):
        info = populated.directory_info(r"\SD\logs")
        info.delete(recursive=True)
        assert info.exists is False


class TestFileSystemInfo:
    def test_base_is_abstract(self, fs: FileSystem):
        with pytest.raises(TypeError):
            FileSystemInfo(r"\SD\a.txt", fs.directories)
