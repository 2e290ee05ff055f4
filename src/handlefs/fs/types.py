"""Mode enums and value types: OpenMode, FileAccess, FileShare, EntryInfo, etc."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import TYPE_CHECKING, NewType

from .exceptions import ArgumentError

if TYPE_CHECKING:
    from datetime import datetime

CanonicalPath = NewType("CanonicalPath", str)
"""A fully resolved, validated absolute path. Only the canonicalizer makes these."""


class OpenMode(IntEnum):
    """Existence preconditions and truncation behavior of an open request."""

    CREATE_NEW = 1
    CREATE = 2
    OPEN = 3
    OPEN_OR_CREATE = 4
    TRUNCATE = 5
    APPEND = 6


class FileAccess(IntFlag):
    """Requested access of a handle."""

    READ = 1
    WRITE = 2
    READ_WRITE = 3


class FileShare(IntFlag):
    """Concurrent access other handles may have while this one is open."""

    NONE = 0
    READ = 1
    WRITE = 2
    READ_WRITE = 3


class FileAttributes(IntFlag):
    """Attribute bits reported by the storage driver."""

    READ_ONLY = 0x1
    HIDDEN = 0x2
    SYSTEM = 0x4
    DIRECTORY = 0x10
    ARCHIVE = 0x20
    NORMAL = 0x80


class SeekOrigin(IntEnum):
    BEGIN = 0
    CURRENT = 1
    END = 2


class EntryKind(IntFlag):
    """Which entries an enumeration yields."""

    FILES = 0x1
    DIRECTORIES = 0x2
    FILES_AND_DIRECTORIES = 0x3


@dataclass(frozen=True)
class AccessRequest:
    """What the caller asked for, derived from a FileAccess value."""

    wants_read: bool
    wants_write: bool

    @classmethod
    def from_access(cls, access: FileAccess) -> AccessRequest:
        if access not in (FileAccess.READ, FileAccess.WRITE, FileAccess.READ_WRITE):
            raise ArgumentError(f"Access out of range: {access!r}")
        access = FileAccess(access)
        return cls(
            wants_read=FileAccess.READ in access,
            wants_write=FileAccess.WRITE in access,
        )


@dataclass(frozen=True)
class DriverCapability:
    """What a driver stream physically supports, independent of the request."""

    can_read: bool
    can_write: bool
    can_seek: bool


@dataclass
class EntryInfo:
    """Driver metadata for a single file or directory."""

    name: str
    path: str
    attributes: FileAttributes
    size: int = 0
    created_at: datetime | None = None
    accessed_at: datetime | None = None
    modified_at: datetime | None = None

    @property
    def is_directory(self) -> bool:
        return FileAttributes.DIRECTORY in self.attributes


@dataclass
class VolumeDescriptor:
    """Driver-level description of a mounted volume."""

    name: str
    label: str = ""
    file_system: str | None = None
    total_size: int = 0
    total_free_space: int = 0
    serial_number: int = 0


@dataclass
class PathCheckResult:
    """Result of a non-raising path validation."""

    success: bool
    message: str
    path: CanonicalPath | None = None
    kind: str | None = None
