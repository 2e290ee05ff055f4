"""DirectoryService — directory creation, enumeration, move and delete."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import (
    AlreadyExistsError,
    ArgumentError,
    DirectoryNotEmptyError,
    DirectoryNotFoundError,
    HandleFSError,
    UnauthorizedAccessError,
)
from .info import DirectoryInfo
from .paths import (
    DEFAULT_LIMITS,
    ROOT,
    SEPARATOR,
    canonicalize,
    combine,
    get_directory_name,
    get_path_root,
    is_in_directory,
    normalize,
)
from .types import EntryKind, FileAttributes

if TYPE_CHECKING:
    from collections.abc import Iterator
    from types import TracebackType

    from .driver import StorageDriver
    from .files import FileService
    from .paths import FileSystemLimits
    from .registry import OpenHandleRegistry, Reservation
    from .types import CanonicalPath, EntryInfo

logger = logging.getLogger(__name__)


def _wanted(entry: EntryInfo, kind: EntryKind) -> bool:
    if kind == EntryKind.FILES_AND_DIRECTORIES:
        return True
    if entry.is_directory:
        return EntryKind.DIRECTORIES in kind
    return EntryKind.FILES in kind


class FileEnum:
    """One pass over a directory listing.

    Holds a read claim on the directory from construction until the
    listing is exhausted or ``close`` is called, so the directory cannot
    be deleted or renamed mid-iteration.
    """

    def __init__(
        self,
        path: CanonicalPath,
        kind: EntryKind,
        driver: StorageDriver,
        registry: OpenHandleRegistry,
        pattern: str = "*",
    ) -> None:
        self._path = path
        self._kind = kind
        self._registry = registry
        self._entries: Iterator[EntryInfo] | None = None
        self._reservation: Reservation | None = registry.reserve_for_read(path)
        try:
            self._entries = driver.list_entries(path, pattern)
        except Exception:
            self.close()
            raise

    def __iter__(self) -> FileEnum:
        return self

    def __next__(self) -> str:
        if self._entries is None:
            raise StopIteration
        for entry in self._entries:
            if _wanted(entry, self._kind):
                return entry.path
        self.close()
        raise StopIteration

    def close(self) -> None:
        self._entries = None
        reservation, self._reservation = self._reservation, None
        if reservation is not None:
            self._registry.release(reservation)

    def __enter__(self) -> FileEnum:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


class FileEnumerator:
    """Lazy, re-iterable view of a directory; every ``iter()`` starts a new ``FileEnum``."""

    def __init__(
        self,
        path: CanonicalPath,
        kind: EntryKind,
        driver: StorageDriver,
        registry: OpenHandleRegistry,
        pattern: str = "*",
    ) -> None:
        self.path = path
        self.kind = kind
        self._driver = driver
        self._registry = registry
        self._pattern = pattern

    def __iter__(self) -> FileEnum:
        return FileEnum(self.path, self.kind, self._driver, self._registry, self._pattern)


class DirectoryService:
    """Directory operations under registry arbitration.

    Deletes and copy-and-delete moves take a subtree lock on the
    directory first; listings hold a read claim while they run.
    """

    def __init__(
        self,
        files: FileService,
        *,
        limits: FileSystemLimits = DEFAULT_LIMITS,
    ) -> None:
        self._files = files
        self._driver = files.driver
        self._registry = files.registry
        self._limits = limits

    @property
    def files(self) -> FileService:
        return self._files

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
    # Existence / creation
    # ------------------------------------------------------------------

    def create_directory(self, path: str) -> DirectoryInfo:
        """Create *path* and any missing parents. Existing directories are a no-op."""
        full_path = self._full_path(path)
        if full_path != ROOT:
            self._driver.create_directory(full_path)
        return DirectoryInfo(full_path, self)

    def exists(self, path: str) -> bool:
        """True if *path* names a directory. The root always exists. Never raises."""
        try:
            full_path = self._full_path(path)
            if full_path == ROOT:
                return True
            attributes = self._driver.get_attributes(full_path)
        except (HandleFSError, OSError):
            return False
        return attributes is not None and FileAttributes.DIRECTORY in attributes

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    def _enumerator(self, path: str, kind: EntryKind) -> FileEnumerator:
        full_path = self._full_path(path)
        if not self.exists(full_path):
            raise DirectoryNotFoundError(f"Directory not found: {full_path}")
        return FileEnumerator(full_path, kind, self._driver, self._registry)

    def enumerate_files(self, path: str) -> FileEnumerator:
        return self._enumerator(path, EntryKind.FILES)

    def enumerate_directories(self, path: str) -> FileEnumerator:
        return self._enumerator(path, EntryKind.DIRECTORIES)

    def enumerate_entries(self, path: str) -> FileEnumerator:
        return self._enumerator(path, EntryKind.FILES_AND_DIRECTORIES)

    def get_files(self, path: str, pattern: str = "*") -> list[str]:
        return self._get_children(path, pattern, directories=False)

    def get_directories(self, path: str, pattern: str = "*") -> list[str]:
        return self._get_children(path, pattern, directories=True)

    def _get_children(self, path: str, pattern: str, *, directories: bool) -> list[str]:
        full_path = self._full_path(path)
        if not self.exists(full_path):
            raise DirectoryNotFoundError(f"Directory not found: {full_path}")
        normalize(pattern, pattern=True, limits=self._limits)

        if full_path == get_path_root(full_path):
            # The root only holds volumes
            if not directories:
                return []
            return [
                SEPARATOR + volume.name
                for volume in self._driver.get_volumes()
                if volume.name
            ]

        reservation = self._registry.reserve_for_read(full_path)
        try:
            return [
                entry.path
                for entry in self._driver.list_entries(full_path, pattern)
                if entry.is_directory == directories
            ]
        finally:
            self._registry.release(reservation)

    # ------------------------------------------------------------------
    # Current directory
    # ------------------------------------------------------------------

    def get_current_directory(self) -> CanonicalPath:
        return self._registry.current_directory

    def set_current_directory(self, path: str) -> None:
        full_path = self._full_path(path)
        reservation = self._registry.reserve_for_read(full_path)
        try:
            if not self.exists(full_path):
                raise DirectoryNotFoundError(f"Directory not found: {full_path}")
            self._registry.set_current_directory(full_path)
        finally:
            self._registry.release(reservation)

    # ------------------------------------------------------------------
    # Move / delete
    # ------------------------------------------------------------------

    def move(self, source: str, dest: str) -> None:
        """Rename a directory, copying its tree when the driver can't move it."""
        source = self._full_path(source)
        dest = self._full_path(dest)
        if is_in_directory(dest, source, case_sensitive=False):
            raise ArgumentError(f"Cannot move {source} into itself ({dest})")

        reservation = self._registry.reserve_exclusive(source)
        try:
            if not self.exists(source):
                raise DirectoryNotFoundError(f"Directory not found: {source}")
            copy_and_delete = not self._driver.move(source, dest)
        finally:
            self._registry.release(reservation)

        if copy_and_delete:
            logger.debug("Driver cannot move %s to %s; copying tree instead", source, dest)
            self._copy_and_delete(source, dest)

    def _copy_and_delete(self, source: CanonicalPath, dest: CanonicalPath) -> None:
        """Copy the tree under *source* to *dest*, then delete *source*.

        Walks with an explicit stack while holding a subtree lock on
        *source*, so no other thread can open anything inside it.
        """
        lock = self._registry.lock_directory(source)
        try:
            if not self.exists(source):
                raise DirectoryNotFoundError(f"Directory not found: {source}")
            if self._driver.get_attributes(dest) is not None:
                raise AlreadyExistsError(f"Destination already exists: {dest}")

            pending = [(source, dest)]
            while pending:
                src_dir, dst_dir = pending.pop()
                self._driver.create_directory(dst_dir)
                subdirectories = []
                for entry in list(self._driver.list_entries(src_dir)):
                    target = combine(dst_dir, entry.name)
                    if entry.is_directory:
                        subdirectories.append((entry.path, target))
                    else:
                        self._files.copy(entry.path, target, delete_original=True)
                pending.extend(reversed(subdirectories))

            self._driver.delete(source)
        finally:
            self._registry.unlock_directory(lock)

    def delete(self, path: str, recursive: bool = False) -> None:
        """Delete a directory; non-empty ones only when *recursive* is set."""
        full_path = self._full_path(path)
        if get_directory_name(full_path) is None:
            raise UnauthorizedAccessError(f"Cannot delete the root: {full_path}")

        lock = self._registry.lock_directory(full_path)
        try:
            attributes = self._driver.get_attributes(full_path)
            if attributes is None:
                raise DirectoryNotFoundError(f"Directory not found: {full_path}")
            if (
                FileAttributes.DIRECTORY not in attributes
                or FileAttributes.READ_ONLY in attributes
            ):
                raise UnauthorizedAccessError(
                    f"Not a directory, or read-only: {full_path}"
                )

            if not recursive and next(iter(self._driver.list_entries(full_path)), None) is not None:
                raise DirectoryNotEmptyError(f"Directory not empty: {full_path}")

            self._driver.delete(full_path)
        finally:
            self._registry.unlock_directory(lock)
