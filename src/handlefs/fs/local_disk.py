"""LocalDiskDriver — volumes are directories on the host file system."""

from __future__ import annotations

import logging
import os
import shutil
import stat
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from .driver import DEFAULT_BUFFER_SIZE, match_pattern
from .exceptions import (
    AlreadyExistsError,
    DirectoryNotFoundError,
    PathNotFoundError,
    StorageError,
    UnauthorizedAccessError,
)
from .paths import SEPARATOR, split_segments
from .types import DriverCapability, EntryInfo, FileAttributes, SeekOrigin, VolumeDescriptor

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .types import CanonicalPath

logger = logging.getLogger(__name__)


class _DiskStream:
    """``DriverStream`` over a binary file object; OS errors become ``StorageError``."""

    def __init__(self, fh: BinaryIO, capability: DriverCapability) -> None:
        self._fh = fh
        self._capability = capability

    def read(self, size: int) -> bytes:
        try:
            return self._fh.read(size)
        except OSError as e:
            raise StorageError(f"Read failed: {e}") from e

    def write(self, data: bytes | bytearray | memoryview) -> int:
        try:
            return self._fh.write(data) or 0
        except OSError as e:
            raise StorageError(f"Write failed: {e}") from e

    def seek(self, offset: int, origin: SeekOrigin = SeekOrigin.BEGIN) -> int:
        try:
            return self._fh.seek(offset, int(origin))
        except (OSError, ValueError) as e:
            raise StorageError(f"Seek failed: {e}") from e

    def set_length(self, length: int) -> None:
        try:
            position = self._fh.tell()
            self._fh.truncate(length)
            self._fh.seek(position)
        except OSError as e:
            raise StorageError(f"Resize failed: {e}") from e

    def get_length(self) -> int:
        try:
            self._fh.flush()
            return os.fstat(self._fh.fileno()).st_size
        except OSError as e:
            raise StorageError(f"Cannot stat stream: {e}") from e

    def flush(self) -> None:
        try:
            self._fh.flush()
        except OSError as e:
            raise StorageError(f"Flush failed: {e}") from e

    def close(self) -> None:
        try:
            self._fh.close()
        except OSError as e:
            raise StorageError(f"Close failed: {e}") from e

    def get_stream_properties(self) -> DriverCapability:
        return self._capability


class LocalDiskDriver:
    """Pure local disk access driver.

    Each immediate subdirectory of ``host_dir`` is a volume: the
    canonical path ``\\sd\\logs\\a.txt`` maps to ``host_dir/sd/logs/a.txt``.

    Security: _resolve_path() ensures all paths stay within host_dir,
    preventing path traversal attacks.
    """

    def __init__(self, host_dir: Path | str) -> None:
        self.host_dir = Path(host_dir).resolve()

        if not self.host_dir.exists():
            raise FileNotFoundError(f"Host directory does not exist: {self.host_dir}")
        if not self.host_dir.is_dir():
            raise NotADirectoryError(f"Host path is not a directory: {self.host_dir}")

    # =========================================================================
    # Path Resolution & Security
    # =========================================================================

    def _resolve_path(self, virtual_path: str, follow_symlinks: bool = False) -> Path:
        """Resolve a canonical path to a physical path on disk.

        Validates that the resolved path stays within host_dir.
        By default, rejects symlinks to prevent TOCTOU attacks.
        """
        parts = split_segments(virtual_path)
        if not parts:
            return self.host_dir

        candidate = self.host_dir.joinpath(*parts)

        if not follow_symlinks:
            current = self.host_dir
            for part in parts:
                current = current / part
                if current.is_symlink():
                    raise UnauthorizedAccessError(
                        f"Symlinks not allowed: {virtual_path} contains symlink at "
                        f"{current.relative_to(self.host_dir)}"
                    )

        resolved = candidate.resolve()

        try:
            resolved.relative_to(self.host_dir)
        except ValueError:
            raise UnauthorizedAccessError(
                f"Path traversal detected: {virtual_path} resolves outside host directory"
            ) from None

        return resolved

    def _volume_dir(self, virtual_path: str) -> Path | None:
        parts = split_segments(virtual_path)
        if not parts:
            return None
        return self.host_dir / parts[0]

    def _to_virtual_path(self, physical_path: Path) -> str:
        """Convert a physical path back to a canonical path."""
        rel = physical_path.relative_to(self.host_dir)
        return SEPARATOR + SEPARATOR.join(rel.parts) if rel.parts else SEPARATOR

    @staticmethod
    def _attributes_of(st: os.stat_result) -> FileAttributes:
        if stat.S_ISDIR(st.st_mode):
            attributes = FileAttributes.DIRECTORY
        else:
            attributes = FileAttributes.ARCHIVE
        if not st.st_mode & stat.S_IWUSR:
            attributes |= FileAttributes.READ_ONLY
        return attributes

    def _entry_of(self, resolved: Path) -> EntryInfo:
        st = resolved.stat()
        attributes = self._attributes_of(st)
        return EntryInfo(
            name=resolved.name,
            path=self._to_virtual_path(resolved),
            attributes=attributes,
            size=0 if FileAttributes.DIRECTORY in attributes else st.st_size,
            created_at=datetime.fromtimestamp(st.st_ctime, tz=UTC),
            accessed_at=datetime.fromtimestamp(st.st_atime, tz=UTC),
            modified_at=datetime.fromtimestamp(st.st_mtime, tz=UTC),
        )

    # =========================================================================
    # Files
    # =========================================================================

    def open(self, path: CanonicalPath, buffer_size: int = DEFAULT_BUFFER_SIZE) -> _DiskStream:
        resolved = self._resolve_path(path)
        if resolved == self.host_dir or resolved.parent == self.host_dir:
            raise UnauthorizedAccessError(f"Cannot open a volume root as a file: {path}")
        if resolved.is_dir():
            raise UnauthorizedAccessError(f"Path is a directory: {path}")
        if not resolved.parent.is_dir():
            raise DirectoryNotFoundError(f"Parent directory not found: {path}")

        writable = not resolved.exists() or os.access(resolved, os.W_OK)
        try:
            if writable:
                fd = os.open(resolved, os.O_RDWR | os.O_CREAT, 0o666)
                fh = os.fdopen(fd, "r+b", buffering=buffer_size)
            else:
                fh = open(resolved, "rb", buffering=buffer_size)  # noqa: SIM115
        except PermissionError as e:
            raise UnauthorizedAccessError(f"Access denied: {path}") from e
        except OSError as e:
            raise StorageError(f"Cannot open {path}: {e}") from e

        return _DiskStream(fh, DriverCapability(can_read=True, can_write=writable, can_seek=True))

    def get_attributes(self, path: CanonicalPath) -> FileAttributes | None:
        resolved = self._resolve_path(path)
        try:
            return self._attributes_of(resolved.stat())
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Cannot stat {path}: {e}") from e

    def set_attributes(self, path: CanonicalPath, attributes: FileAttributes) -> None:
        """Only READ_ONLY maps onto the host; it toggles the owner write bit."""
        resolved = self._resolve_path(path)
        try:
            mode = resolved.stat().st_mode
            if FileAttributes.READ_ONLY in attributes:
                mode &= ~(stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH)
            else:
                mode |= stat.S_IWUSR
            resolved.chmod(stat.S_IMODE(mode))
        except FileNotFoundError:
            raise PathNotFoundError(f"Path not found: {path}") from None
        except OSError as e:
            raise StorageError(f"Cannot set attributes on {path}: {e}") from e

    def get_entry(self, path: CanonicalPath) -> EntryInfo | None:
        resolved = self._resolve_path(path)
        try:
            return self._entry_of(resolved)
        except FileNotFoundError:
            return None

    def delete(self, path: CanonicalPath) -> None:
        resolved = self._resolve_path(path)
        if not resolved.exists():
            raise PathNotFoundError(f"Path not found: {path}")
        if resolved.parent == self.host_dir or resolved == self.host_dir:
            raise UnauthorizedAccessError(f"Cannot delete a volume root: {path}")
        try:
            if resolved.is_dir():
                shutil.rmtree(resolved)
            else:
                resolved.unlink()
        except PermissionError as e:
            raise UnauthorizedAccessError(f"Failed to delete {path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e

    def move(self, src: CanonicalPath, dst: CanonicalPath) -> bool:
        if self._volume_dir(src) != self._volume_dir(dst):
            return False
        src_resolved = self._resolve_path(src)
        dst_resolved = self._resolve_path(dst)
        if not src_resolved.exists():
            raise PathNotFoundError(f"Source not found: {src}")
        if dst_resolved.exists():
            raise AlreadyExistsError(f"Destination already exists: {dst}")
        if not dst_resolved.parent.is_dir():
            raise DirectoryNotFoundError(f"Destination directory not found: {dst}")
        try:
            src_resolved.rename(dst_resolved)
        except OSError as e:
            raise StorageError(f"Failed to move {src} to {dst}: {e}") from e
        return True

    # =========================================================================
    # Directories
    # =========================================================================

    def create_directory(self, path: CanonicalPath) -> None:
        resolved = self._resolve_path(path)
        volume = self._volume_dir(path)
        if volume is None or not volume.is_dir():
            raise DirectoryNotFoundError(f"Volume not found: {path}")
        if resolved.exists() and not resolved.is_dir():
            raise AlreadyExistsError(f"Path exists as file: {path}")
        try:
            resolved.mkdir(parents=True, exist_ok=True)
        except FileExistsError:
            raise AlreadyExistsError(f"A file is in the way: {path}") from None
        except OSError as e:
            raise StorageError(f"Failed to create directory {path}: {e}") from e

    def list_entries(self, path: CanonicalPath, pattern: str = "*") -> Iterator[EntryInfo]:
        resolved = self._resolve_path(path)
        if not resolved.is_dir():
            raise DirectoryNotFoundError(f"Directory not found: {path}")
        try:
            children = sorted(resolved.iterdir())
        except OSError as e:
            raise StorageError(f"Cannot list {path}: {e}") from e
        entries = []
        for child in children:
            if child.is_symlink() or not match_pattern(child.name, pattern):
                continue
            try:
                entries.append(self._entry_of(child))
            except FileNotFoundError:
                continue
        return iter(entries)

    # =========================================================================
    # Volumes
    # =========================================================================

    def get_volumes(self) -> list[VolumeDescriptor]:
        volumes = []
        for child in sorted(self.host_dir.iterdir()):
            if not child.is_dir() or child.is_symlink():
                continue
            usage = shutil.disk_usage(child)
            volumes.append(
                VolumeDescriptor(
                    name=child.name,
                    label=child.name,
                    file_system="LOCAL",
                    total_size=usage.total,
                    total_free_space=usage.free,
                )
            )
        return volumes

    def format(self, volume: str, file_system: str | None, label: str, parameter: int) -> None:
        """Empty the volume directory; the label and file system name are not stored."""
        root = self._resolve_path(SEPARATOR + volume)
        if not root.is_dir() or root.parent != self.host_dir:
            raise StorageError(f"Volume not found: {volume}")
        try:
            for child in root.iterdir():
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()
        except OSError as e:
            raise StorageError(f"Failed to format {volume}: {e}") from e
        logger.info("Formatted local volume %s", root)

    def close(self) -> None:
        """No-op for local disk."""
