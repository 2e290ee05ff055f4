"""Tests for fs/volumes.py — volume listing and formatting."""

from __future__ import annotations

import logging

import pytest

from handlefs.filesystem import FileSystem
from handlefs.fs.exceptions import HandleClosedError, SharingViolationError, StorageError
from handlefs.fs.memory_driver import DEFAULT_VOLUME_SIZE
from handlefs.fs.volumes import VolumeInfo


@pytest.fixture
def populated(fs: FileSystem) -> FileSystem:
    fs.directories.create_directory(r"\SD\logs")
    fs.files.write_all_bytes(r"\SD\logs\boot.txt", b"x" * 100)
    fs.files.write_all_bytes(r"\FLASH\keep.bin", b"keep")
    return fs


class TestVolumeInfo:
    def test_get_volumes(self, fs: FileSystem):
        volumes = fs.get_volumes()
        assert [v.name for v in volumes] == ["SD", "FLASH"]
        assert all(isinstance(v, VolumeInfo) for v in volumes)

    def test_properties(self, populated: FileSystem):
        sd = populated.volume("sd")
        assert sd.name == "SD"
        assert sd.root_directory == r"\SD"
        assert sd.file_system == "MEMFS"
        assert sd.total_size == DEFAULT_VOLUME_SIZE
        assert sd.total_free_space == DEFAULT_VOLUME_SIZE - 100
        assert sd.is_formatted is True

    def test_refresh(self, fs: FileSystem):
        sd = fs.volume("SD")
        fs.files.write_all_bytes(r"\SD\a.bin", b"1234")
        assert sd.total_free_space == DEFAULT_VOLUME_SIZE
        sd.refresh()
        assert sd.total_free_space == DEFAULT_VOLUME_SIZE - 4

    def test_unknown_volume(self, fs: FileSystem):
        with pytest.raises(StorageError):
            fs.volume("USB")


class TestFormat:
    def test_erases_only_that_volume(self, populated: FileSystem):
        sd = populated.volume("SD")
        sd.format(volume_label="FRESH")
        assert populated.directories.get_directories(r"\SD") == []
        assert sd.volume_label == "FRESH"
        assert sd.total_free_space == sd.total_size
        assert populated.files.exists(r"\FLASH\keep.bin")

    def test_new_file_system_name(self, fs: FileSystem):
        sd = fs.volume("SD")
        sd.format(file_system="FAT")
        assert sd.file_system == "FAT"

    def test_open_handle_blocks_format(self, populated: FileSystem):
        with populated.files.open_read(r"\SD\logs\boot.txt"):
            with pytest.raises(SharingViolationError):
                populated.volume("SD").format()
        assert populated.files.exists(r"\SD\logs\boot.txt")

    def test_forced_format_closes_handles(self, populated: FileSystem, caplog):
        handle = populated.files.open_read(r"\SD\logs\boot.txt")
        other = populated.files.open_read(r"\FLASH\keep.bin")
        with caplog.at_level(logging.INFO, logger="handlefs.fs"):
            populated.volume("SD").format(force=True)

        assert handle.closed is True
        with pytest.raises(HandleClosedError):
            handle.read()
        handle.close()
        assert other.read() == b"keep"
        other.close()
        assert populated.registry.reservation_count() == 0
        assert "Formatted volume SD" in caplog.text

    def test_current_directory_at_volume_root_is_restored(self, populated: FileSystem):
        populated.directories.set_current_directory(r"\SD")
        populated.volume("SD").format()
        assert populated.current_directory == r"\SD"

    def test_current_directory_inside_volume_moves_to_root(self, populated: FileSystem):
        populated.directories.set_current_directory(r"\SD\logs")
        populated.volume("SD").format()
        assert populated.current_directory == "\\"

    def test_current_directory_elsewhere_untouched(self, populated: FileSystem):
        populated.directories.set_current_directory(r"\FLASH")
        populated.volume("SD").format()
        assert populated.current_directory == r"\FLASH"

    def test_failed_format_keeps_current_directory(self, populated: FileSystem):
        populated.directories.set_current_directory(r"\SD\logs")
        with populated.files.open_read(r"\SD\logs\boot.txt"):
            with pytest.raises(SharingViolationError):
                populated.volume("SD").format()
        assert populated.current_directory == r"\SD\logs"
