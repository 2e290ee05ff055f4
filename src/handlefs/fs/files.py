"""FileService — whole-file operations built on the negotiator and registry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import (
    ArgumentError,
    DirectoryNotFoundError,
    FileNotFoundInStorageError,
    HandleFSError,
    UnauthorizedAccessError,
)
from .paths import DEFAULT_LIMITS, ROOT, canonicalize, get_directory_name, get_path_root
from .types import FileAccess, FileAttributes, FileShare, OpenMode

if TYPE_CHECKING:
    from .driver import StorageDriver
    from .handles import FileHandle
    from .negotiator import AccessNegotiator
    from .paths import FileSystemLimits
    from .registry import OpenHandleRegistry
    from .types import CanonicalPath

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 2048


class FileService:
    """Copy, create, delete, move and open single files.

    Every operation resolves its paths against the registry's current
    directory and holds the appropriate claim while it touches the
    driver.
    """

    def __init__(
        self,
        negotiator: AccessNegotiator,
        *,
        limits: FileSystemLimits = DEFAULT_LIMITS,
    ) -> None:
        self._negotiator = negotiator
        self._driver = negotiator.driver
        self._registry = negotiator.registry
        self._limits = limits

    @property
    def driver(self) -> StorageDriver:
        return self._driver

    @property
    def registry(self) -> OpenHandleRegistry:
        return self._registry

    @property
    def limits(self) -> FileSystemLimits:
        return self._limits

    def _full_path(self, path: str) -> CanonicalPath:
        return canonicalize(path, self._registry.current_directory, limits=self._limits)

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    def open(
        self,
        path: str,
        mode: OpenMode,
        access: FileAccess | None = None,
        share: FileShare = FileShare.NONE,
        buffer_size: int | None = None,
    ) -> FileHandle:
        """Open with no sharing unless *share* says otherwise.

        *access* defaults to WRITE for APPEND and READ_WRITE otherwise.
        """
        return self._negotiator.open(path, mode, access, share, buffer_size)

    def open_read(self, path: str) -> FileHandle:
        return self._negotiator.open(path, OpenMode.OPEN, FileAccess.READ, FileShare.READ)

    def open_write(self, path: str) -> FileHandle:
        return self._negotiator.open(path, OpenMode.OPEN_OR_CREATE, FileAccess.WRITE, FileShare.NONE)

    def create(self, path: str, buffer_size: int | None = None) -> FileHandle:
        """Create or truncate *path* and open it read/write, unshared."""
        return self._negotiator.open(
            path, OpenMode.CREATE, FileAccess.READ_WRITE, FileShare.NONE, buffer_size
        )

    # ------------------------------------------------------------------
    # Whole-file I/O
    # ------------------------------------------------------------------

    def read_all_bytes(self, path: str) -> bytes:
        with self._negotiator.open(path, OpenMode.OPEN, FileAccess.READ, FileShare.READ) as handle:
            chunks = []
            while True:
                chunk = handle.read(COPY_BUFFER_SIZE)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)

    def write_all_bytes(self, path: str, data: bytes | bytearray | memoryview) -> None:
        """Create or overwrite *path* with *data*."""
        if data is None:
            raise ArgumentError("data cannot be None")
        with self._negotiator.open(path, OpenMode.CREATE, FileAccess.WRITE, FileShare.READ) as handle:
            handle.write(data)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def exists(self, path: str) -> bool:
        """True if *path* names an existing file. Never raises."""
        try:
            full_path = self._full_path(path)
            if full_path == get_path_root(full_path):
                return False
            attributes = self._driver.get_attributes(full_path)
        except (HandleFSError, OSError):
            return False
        return attributes is not None and FileAttributes.DIRECTORY not in attributes

    def get_attributes(self, path: str) -> FileAttributes:
        full_path = self._full_path(path)
        attributes = self._driver.get_attributes(full_path)
        if attributes is None:
            raise FileNotFoundInStorageError(f"File not found: {full_path}")
        if not attributes:
            return FileAttributes.NORMAL
        return FileAttributes(attributes)

    def set_attributes(self, path: str, attributes: FileAttributes) -> None:
        self._driver.set_attributes(self._full_path(path), FileAttributes(attributes))

    # ------------------------------------------------------------------
    # Copy / delete / move
    # ------------------------------------------------------------------

    def copy(
        self,
        source: str,
        dest: str,
        overwrite: bool = False,
        *,
        delete_original: bool = False,
    ) -> None:
        """Copy *source* to *dest*, including attributes.

        *dest* must not exist unless *overwrite* is set.  With
        *delete_original* the source is deleted once the copy completes,
        while its reservation is still held.
        """
        source = self._full_path(source)
        dest = self._full_path(dest)
        writer_mode = OpenMode.CREATE if overwrite else OpenMode.CREATE_NEW

        reader = self._negotiator.open(source, OpenMode.OPEN, FileAccess.READ, FileShare.READ)
        copied = False
        try:
            with self._negotiator.open(dest, writer_mode, FileAccess.WRITE, FileShare.NONE) as writer:
                if reader.can_seek and writer.can_seek:
                    writer.set_length(reader.length)
                while True:
                    chunk = reader.read(COPY_BUFFER_SIZE)
                    if not chunk:
                        break
                    writer.write(chunk)
                attributes = self._driver.get_attributes(source)
                if attributes is not None:
                    self._driver.set_attributes(dest, attributes)
            copied = True
        finally:
            if delete_original and copied:
                reader.close_and_delete(self._driver)
            else:
                reader.close()
        logger.debug("Copied %s to %s (delete_original=%s)", source, dest, delete_original)

    def delete(self, path: str) -> None:
        """Delete a file. A missing file is not an error; a missing folder is."""
        full_path = self._full_path(path)
        folder = get_directory_name(full_path)
        if folder is None:
            raise UnauthorizedAccessError(f"Cannot delete the root: {full_path}")

        reservation = self._registry.reserve_exclusive(full_path)
        try:
            if folder != ROOT and self._driver.get_attributes(folder) is None:
                raise DirectoryNotFoundError(f"Directory not found: {folder}")

            attributes = self._driver.get_attributes(full_path)
            if attributes is None:
                return
            if attributes & (FileAttributes.DIRECTORY | FileAttributes.READ_ONLY):
                raise UnauthorizedAccessError(f"Cannot delete a directory or read-only file: {full_path}")

            self._driver.delete(full_path)
        finally:
            self._registry.release(reservation)

    def move(self, source: str, dest: str) -> None:
        """Rename *source* to *dest*, copying and deleting when the driver can't."""
        source = self._full_path(source)
        dest = self._full_path(dest)

        reservation = self._registry.reserve_exclusive(source)
        try:
            if not self.exists(source):
                raise FileNotFoundInStorageError(f"File not found: {source}")
            copy_and_delete = not self._driver.move(source, dest)
        finally:
            self._registry.release(reservation)

        if copy_and_delete:
            logger.debug("Driver cannot move %s to %s; copying instead", source, dest)
            self.copy(source, dest, delete_original=True)
