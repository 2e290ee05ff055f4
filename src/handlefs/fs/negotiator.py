"""AccessNegotiator — resolves an open request into a FileHandle.

The negotiator is stateless: it holds references to the driver and the
registry and nothing else.  Each ``open`` goes through the same steps:

1. canonicalize the path against the registry's current directory
2. reject impossible mode/access combinations
3. reserve the path in the registry (fails fast on sharing conflicts)
4. check what exists at the path
5. run the mode-specific driver calls
6. reconcile requested access with what the driver stream supports

Any failure after step 3 closes the driver stream and releases the
reservation before the error propagates.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .driver import DEFAULT_BUFFER_SIZE
from .exceptions import (
    AlreadyExistsError,
    ArgumentError,
    FileNotFoundInStorageError,
    UnauthorizedAccessError,
)
from .handles import FileHandle
from .paths import DEFAULT_LIMITS, canonicalize
from .types import (
    AccessRequest,
    FileAccess,
    FileAttributes,
    FileShare,
    OpenMode,
    SeekOrigin,
)

if TYPE_CHECKING:
    from .driver import DriverStream, StorageDriver
    from .paths import FileSystemLimits
    from .registry import OpenHandleRegistry
    from .types import CanonicalPath


logger = logging.getLogger(__name__)

# Modes that make sense for a read-only request
_READ_ONLY_MODES = (OpenMode.OPEN, OpenMode.OPEN_OR_CREATE)


def default_access(mode: OpenMode | int) -> FileAccess:
    """Access used when the caller does not name one."""
    return FileAccess.WRITE if mode == OpenMode.APPEND else FileAccess.READ_WRITE


def validate_request(
    mode: OpenMode | int,
    access: FileAccess | int,
    share: FileShare | int,
) -> tuple[OpenMode, FileAccess, FileShare, AccessRequest]:
    """Range-check the enums and reject mode/access combinations that cannot work."""
    try:
        mode = OpenMode(mode)
    except ValueError:
        raise ArgumentError(f"Open mode out of range: {mode!r}") from None
    if share not in (FileShare.NONE, FileShare.READ, FileShare.WRITE, FileShare.READ_WRITE):
        raise ArgumentError(f"Share mode out of range: {share!r}")
    share = FileShare(share)
    request = AccessRequest.from_access(access)
    access = FileAccess(access)

    if mode == OpenMode.APPEND and access != FileAccess.WRITE:
        raise ArgumentError("Append mode requires write-only access")
    if mode not in _READ_ONLY_MODES and not request.wants_write:
        raise ArgumentError(f"{mode.name} requires write access")
    return mode, access, share, request


class AccessNegotiator:
    """Opens files through a driver under registry arbitration."""

    def __init__(
        self,
        driver: StorageDriver,
        registry: OpenHandleRegistry,
        *,
        limits: FileSystemLimits = DEFAULT_LIMITS,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        self._driver = driver
        self._registry = registry
        self._limits = limits
        self._buffer_size = buffer_size

    @property
    def driver(self) -> StorageDriver:
        return self._driver

    @property
    def registry(self) -> OpenHandleRegistry:
        return self._registry

    def open(
        self,
        path: str,
        mode: OpenMode = OpenMode.OPEN,
        access: FileAccess | None = None,
        share: FileShare = FileShare.READ,
        buffer_size: int | None = None,
    ) -> FileHandle:
        """Open *path* and return a handle with the negotiated capabilities.

        Raises:
            PathError: the path string is invalid.
            ArgumentError: the mode/access/share combination is invalid.
            SharingViolationError: another claim on the path conflicts.
            UnauthorizedAccessError: a directory is in the way, or the
                file/driver cannot grant the requested access.
            AlreadyExistsError: CREATE_NEW on an existing file.
            FileNotFoundInStorageError: OPEN or TRUNCATE on a missing file.
        """
        full_path = canonicalize(path, self._registry.current_directory, limits=self._limits)
        if access is None:
            access = default_access(mode)
        mode, access, share, request = validate_request(mode, access, share)
        buffer_size = self._buffer_size if buffer_size is None else buffer_size

        reservation = self._registry.reserve(full_path, access, share)
        stream: DriverStream | None = None
        try:
            attributes = self._driver.get_attributes(full_path)
            exists = attributes is not None
            is_read_only = exists and FileAttributes.READ_ONLY in attributes

            if exists and FileAttributes.DIRECTORY in attributes:
                raise UnauthorizedAccessError(f"Path is a directory, not a file: {full_path}")

            stream, seek_floor = self._dispatch(full_path, mode, exists, buffer_size)
            reservation.stream = stream

            capability = stream.get_stream_properties()
            can_read = capability.can_read
            can_write = capability.can_write and not is_read_only
            can_seek = capability.can_seek

            if (request.wants_read and not can_read) or (request.wants_write and not can_write):
                raise UnauthorizedAccessError(
                    f"Requested access {access.name} exceeds what {full_path} allows "
                    f"(read={can_read}, write={can_write})"
                )

            if not request.wants_write:
                can_write = False
            elif not request.wants_read:
                can_read = False

        except Exception:
            logger.debug("Open of %s (%s) failed; rolling back", full_path, mode.name)
            try:
                if stream is not None:
                    stream.close()
            except Exception:
                logger.warning(
                    "Failed to close driver stream for %s during rollback",
                    full_path,
                    exc_info=True,
                )
            finally:
                self._registry.release(reservation)
            raise

        logger.debug(
            "Opened %s mode=%s access=%s share=%s floor=%d",
            full_path,
            mode.name,
            access.name,
            share.name,
            seek_floor,
        )
        return FileHandle(
            full_path,
            stream,
            reservation,
            self._registry,
            can_read=can_read,
            can_write=can_write,
            can_seek=can_seek,
            seek_floor=seek_floor,
        )

    def _dispatch(
        self,
        path: CanonicalPath,
        mode: OpenMode,
        exists: bool,
        buffer_size: int,
    ) -> tuple[DriverStream, int]:
        """Run the driver calls for *mode*; return the stream and its seek floor."""
        if mode == OpenMode.CREATE_NEW and exists:
            raise AlreadyExistsError(f"File already exists: {path}")
        if mode in (OpenMode.OPEN, OpenMode.TRUNCATE) and not exists:
            raise FileNotFoundInStorageError(f"File not found: {path}")

        stream = self._driver.open(path, buffer_size)
        try:
            if (mode == OpenMode.CREATE and exists) or mode == OpenMode.TRUNCATE:
                stream.set_length(0)
            if mode == OpenMode.APPEND:
                return stream, stream.seek(0, SeekOrigin.END)
        except Exception:
            stream.close()
            raise
        return stream, 0
