"""FileInfo and DirectoryInfo — path objects with lazily loaded metadata."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from .exceptions import DirectoryNotFoundError, FileNotFoundInStorageError, PathNotFoundError
from .paths import (
    canonicalize,
    combine,
    get_directory_name,
    get_extension,
    get_file_name,
    get_path_root,
)
from .types import FileAttributes

if TYPE_CHECKING:
    from datetime import datetime

    from .directories import DirectoryService
    from .handles import FileHandle
    from .types import CanonicalPath, EntryInfo


class FileSystemInfo(ABC):
    """Common base of ``FileInfo`` and ``DirectoryInfo``.

    The path is canonicalized once at construction.  Metadata is read
    from the driver on first access and cached until ``refresh``.
    """

    _not_found: type[PathNotFoundError] = PathNotFoundError

    def __init__(self, path: str, directories: DirectoryService) -> None:
        self._directories = directories
        self._full_path: CanonicalPath = canonicalize(
            path,
            directories.registry.current_directory,
            limits=directories.limits,
        )
        self._entry: EntryInfo | None = None

    @property
    def full_name(self) -> CanonicalPath:
        return self._full_path

    @property
    def extension(self) -> str:
        return get_extension(self._full_path) or ""

    @property
    def name(self) -> str:
        return get_file_name(self._full_path) or ""

    @property
    @abstractmethod
    def exists(self) -> bool:
        """True if the path names an entry of this object's kind."""
        ...

    @abstractmethod
    def delete(self) -> None:
        """Remove the entry from the driver."""
        ...

    # ------------------------------------------------------------------
    # Cached metadata
    # ------------------------------------------------------------------

    def refresh(self) -> None:
        """Reload metadata, holding a read claim so the entry can't vanish mid-read."""
        registry = self._directories.registry
        reservation = registry.reserve_for_read(self._full_path)
        try:
            entry = self._directories.driver.get_entry(self._full_path)
            if entry is None:
                raise self._not_found(f"Not found: {self._full_path}")
            self._entry = entry
        finally:
            registry.release(reservation)

    def _loaded(self) -> EntryInfo:
        if self._entry is None:
            self.refresh()
        assert self._entry is not None
        return self._entry

    @property
    def attributes(self) -> FileAttributes:
        return FileAttributes(self._loaded().attributes)

    @property
    def creation_time(self) -> datetime | None:
        return self._loaded().created_at

    @property
    def last_access_time(self) -> datetime | None:
        return self._loaded().accessed_at

    @property
    def last_write_time(self) -> datetime | None:
        return self._loaded().modified_at

    def __str__(self) -> str:
        return self._full_path

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._full_path!r})"


class FileInfo(FileSystemInfo):
    _not_found = FileNotFoundInStorageError

    @property
    def length(self) -> int:
        return self._loaded().size

    @property
    def directory_name(self) -> str | None:
        return get_directory_name(self._full_path)

    @property
    def directory(self) -> DirectoryInfo | None:
        parent = self.directory_name
        if parent is None:
            return None
        return DirectoryInfo(parent, self._directories)

    @property
    def exists(self) -> bool:
        return self._directories.files.exists(self._full_path)

    def create(self) -> FileHandle:
        return self._directories.files.create(self._full_path)

    def delete(self) -> None:
        self._directories.files.delete(self._full_path)


class DirectoryInfo(FileSystemInfo):
    _not_found = DirectoryNotFoundError

    @property
    def parent(self) -> DirectoryInfo | None:
        parent = get_directory_name(self._full_path)
        if parent is None:
            return None
        return DirectoryInfo(parent, self._directories)

    @property
    def root(self) -> DirectoryInfo:
        return DirectoryInfo(get_path_root(self._full_path) or self._full_path, self._directories)

    @property
    def exists(self) -> bool:
        return self._directories.exists(self._full_path)

    def create(self) -> None:
        self._directories.create_directory(self._full_path)

    def create_subdirectory(self, path: str) -> DirectoryInfo:
        return self._directories.create_directory(combine(self._full_path, path))

    def get_files(self) -> list[FileInfo]:
        return [FileInfo(p, self._directories) for p in self._directories.get_files(self._full_path)]

    def get_directories(self) -> list[DirectoryInfo]:
        return [
            DirectoryInfo(p, self._directories)
            for p in self._directories.get_directories(self._full_path)
        ]

    def move_to(self, dest: str) -> None:
        self._directories.move(self._full_path, dest)

    def delete(self, recursive: bool = False) -> None:
        self._directories.delete(self._full_path, recursive)
