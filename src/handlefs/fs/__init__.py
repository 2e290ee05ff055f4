"""Filesystem layer — paths, registry, negotiator, handles and storage drivers."""

from handlefs.fs.database_driver import DatabaseDriver
from handlefs.fs.directories import DirectoryService, FileEnumerator
from handlefs.fs.driver import DEFAULT_BUFFER_SIZE, BufferStream, DriverStream, StorageDriver
from handlefs.fs.exceptions import (
    AlreadyExistsError,
    ArgumentError,
    CapabilityNotSupportedError,
    DirectoryNotEmptyError,
    DirectoryNotFoundError,
    FileNotFoundInStorageError,
    HandleClosedError,
    HandleFSError,
    PathError,
    PathErrorKind,
    PathNotFoundError,
    SharingViolationError,
    StorageError,
    UnauthorizedAccessError,
)
from handlefs.fs.files import FileService
from handlefs.fs.handles import FileHandle
from handlefs.fs.info import DirectoryInfo, FileInfo
from handlefs.fs.local_disk import LocalDiskDriver
from handlefs.fs.memory_driver import MemoryDriver
from handlefs.fs.negotiator import AccessNegotiator
from handlefs.fs.paths import DEFAULT_LIMITS, FileSystemLimits
from handlefs.fs.registry import OpenHandleRegistry, Reservation, ReservationKind
from handlefs.fs.types import (
    AccessRequest,
    CanonicalPath,
    DriverCapability,
    EntryInfo,
    EntryKind,
    FileAccess,
    FileAttributes,
    FileShare,
    OpenMode,
    PathCheckResult,
    SeekOrigin,
    VolumeDescriptor,
)
from handlefs.fs.volumes import VolumeInfo

__all__ = [
    "DEFAULT_BUFFER_SIZE",
    "DEFAULT_LIMITS",
    "AccessNegotiator",
    "AccessRequest",
    "AlreadyExistsError",
    "ArgumentError",
    "BufferStream",
    "CanonicalPath",
    "CapabilityNotSupportedError",
    "DatabaseDriver",
    "DirectoryInfo",
    "DirectoryNotEmptyError",
    "DirectoryNotFoundError",
    "DirectoryService",
    "DriverCapability",
    "DriverStream",
    "EntryInfo",
    "EntryKind",
    "FileAccess",
    "FileAttributes",
    "FileEnumerator",
    "FileHandle",
    "FileInfo",
    "FileNotFoundInStorageError",
    "FileService",
    "FileShare",
    "FileSystemLimits",
    "HandleClosedError",
    "HandleFSError",
    "LocalDiskDriver",
    "MemoryDriver",
    "OpenHandleRegistry",
    "OpenMode",
    "PathCheckResult",
    "PathError",
    "PathErrorKind",
    "PathNotFoundError",
    "Reservation",
    "ReservationKind",
    "SeekOrigin",
    "SharingViolationError",
    "StorageDriver",
    "StorageError",
    "UnauthorizedAccessError",
    "VolumeDescriptor",
    "VolumeInfo",
]
