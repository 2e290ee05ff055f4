"""Main FileSystem class — wiring of registry, negotiator, services and driver."""

from __future__ import annotations

import logging
from types import SimpleNamespace
from typing import TYPE_CHECKING

from handlefs.fs import paths
from handlefs.fs.directories import DirectoryService
from handlefs.fs.driver import DEFAULT_BUFFER_SIZE
from handlefs.fs.files import FileService
from handlefs.fs.info import DirectoryInfo, FileInfo
from handlefs.fs.negotiator import AccessNegotiator
from handlefs.fs.registry import OpenHandleRegistry
from handlefs.fs.types import FileShare, OpenMode
from handlefs.fs.volumes import VolumeInfo, get_volumes

if TYPE_CHECKING:
    from types import TracebackType

    from handlefs.fs.driver import StorageDriver
    from handlefs.fs.handles import FileHandle
    from handlefs.fs.types import CanonicalPath, FileAccess

logger = logging.getLogger(__name__)


class FileSystem:
    """Facade constructed once per process around a single storage driver.

    Owns the ``OpenHandleRegistry`` every open, delete, move and listing
    goes through, so two ``FileSystem`` objects never arbitrate with
    each other.

    Usage::

        with FileSystem(MemoryDriver(volumes=["SD"])) as fs:
            fs.directories.create_directory("\\\\SD\\\\logs")
            with fs.open("\\\\SD\\\\logs\\\\boot.txt", OpenMode.CREATE_NEW) as handle:
                handle.write(b"booted")
    """

    def __init__(
        self,
        driver: StorageDriver,
        *,
        limits: paths.FileSystemLimits = paths.DEFAULT_LIMITS,
        case_sensitive: bool = False,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        current_directory: str = paths.SEPARATOR,
    ) -> None:
        self._closed = False
        self._driver = driver
        self._limits = limits
        self._registry = OpenHandleRegistry(
            case_sensitive=case_sensitive,
            current_directory=paths.normalize(current_directory, limits=limits),
        )
        self._negotiator = AccessNegotiator(
            driver,
            self._registry,
            limits=limits,
            buffer_size=buffer_size,
        )
        self.files = FileService(self._negotiator, limits=limits)
        self.directories = DirectoryService(self.files, limits=limits)
        self.paths = self._path_helpers()

    def _path_helpers(self) -> SimpleNamespace:
        """Path accessors bound to this file system's limits and current directory."""
        limits = self._limits
        registry = self._registry
        return SimpleNamespace(
            get_full_path=lambda p: paths.canonicalize(p, registry.current_directory, limits=limits),
            check_path=lambda p: paths.check_path(p, registry.current_directory, limits=limits),
            normalize=lambda p, pattern=False: paths.normalize(p, pattern=pattern, limits=limits),
            combine=paths.combine,
            get_directory_name=paths.get_directory_name,
            get_file_name=paths.get_file_name,
            get_file_name_without_extension=paths.get_file_name_without_extension,
            get_extension=paths.get_extension,
            has_extension=paths.has_extension,
            change_extension=paths.change_extension,
            get_path_root=paths.get_path_root,
            get_root_length=paths.get_root_length,
            is_path_rooted=paths.is_path_rooted,
        )

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def driver(self) -> StorageDriver:
        return self._driver

    @property
    def registry(self) -> OpenHandleRegistry:
        return self._registry

    @property
    def negotiator(self) -> AccessNegotiator:
        return self._negotiator

    @property
    def limits(self) -> paths.FileSystemLimits:
        return self._limits

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    def open(
        self,
        path: str,
        mode: OpenMode = OpenMode.OPEN,
        access: FileAccess | None = None,
        share: FileShare = FileShare.READ,
        buffer_size: int | None = None,
    ) -> FileHandle:
        """Open a file; see ``AccessNegotiator.open``."""
        return self._negotiator.open(path, mode, access, share, buffer_size)

    def file_info(self, path: str) -> FileInfo:
        return FileInfo(path, self.directories)

    def directory_info(self, path: str) -> DirectoryInfo:
        return DirectoryInfo(path, self.directories)

    def get_volumes(self) -> list[VolumeInfo]:
        return get_volumes(self._driver, self._registry)

    def volume(self, name: str) -> VolumeInfo:
        return VolumeInfo.from_name(name, self._driver, self._registry)

    @property
    def current_directory(self) -> CanonicalPath:
        return self._registry.current_directory

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the driver. Handles still open are left to their owners."""
        if self._closed:
            return
        self._closed = True
        open_paths = self._registry.open_paths()
        if open_paths:
            logger.warning("Closing file system with %d open path(s)", len(open_paths))
        self._driver.close()

    def __enter__(self) -> FileSystem:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
