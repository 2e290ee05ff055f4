"""Custom exception hierarchy for the handlefs filesystem layer."""

from __future__ import annotations

from enum import Enum


class HandleFSError(Exception):
    """Base exception for all handlefs filesystem errors."""


class PathErrorKind(str, Enum):
    """Why a path string failed validation."""

    EMPTY = "empty"
    RESERVED_CHARACTER = "reserved_character"
    INVALID_SEGMENT = "invalid_segment"
    MALFORMED_ROOT = "malformed_root"
    TOO_LONG = "too_long"
    VOLUME_NAME_TOO_LONG = "volume_name_too_long"
    ASCEND_PAST_ROOT = "ascend_past_root"


class PathError(HandleFSError):
    """Raised when a path string cannot be canonicalized."""

    def __init__(self, kind: PathErrorKind, message: str = "") -> None:
        self.kind = kind
        super().__init__(message or kind.value.replace("_", " "))


class ArgumentError(HandleFSError, ValueError):
    """Raised on an invalid mode/access/share combination or out-of-range enum."""


class PathNotFoundError(HandleFSError):
    """Raised when a file or directory path does not exist."""


class FileNotFoundInStorageError(PathNotFoundError):
    """Raised when a file does not exist."""


class DirectoryNotFoundError(PathNotFoundError):
    """Raised when a directory (or a file's parent directory) does not exist."""


class AlreadyExistsError(HandleFSError):
    """Raised when creating something that is already there."""


class UnauthorizedAccessError(HandleFSError):
    """Raised on read-only violations or a directory where a file was expected."""


class SharingViolationError(HandleFSError):
    """Raised when a path is already held with an incompatible share mode."""


class DirectoryNotEmptyError(HandleFSError):
    """Raised when a non-recursive delete targets a directory with children."""


class StorageError(HandleFSError):
    """Raised on storage driver failures (disk I/O, stalled writes, bad seeks)."""


class CapabilityNotSupportedError(HandleFSError):
    """Raised when a handle lacks the capability an operation needs."""


class HandleClosedError(HandleFSError):
    """Raised when a closed handle or enumerator is used."""
