"""handlefs: path canonicalization and open-handle arbitration over pluggable storage drivers."""

__version__ = "0.1.0"

from handlefs.filesystem import FileSystem
from handlefs.fs import (
    DatabaseDriver,
    FileAccess,
    FileAttributes,
    FileHandle,
    FileShare,
    FileSystemLimits,
    HandleFSError,
    LocalDiskDriver,
    MemoryDriver,
    OpenMode,
    SeekOrigin,
    StorageDriver,
)

__all__ = [
    "DatabaseDriver",
    "FileAccess",
    "FileAttributes",
    "FileHandle",
    "FileShare",
    "FileSystem",
    "FileSystemLimits",
    "HandleFSError",
    "LocalDiskDriver",
    "MemoryDriver",
    "OpenMode",
    "SeekOrigin",
    "StorageDriver",
    "__version__",
]
