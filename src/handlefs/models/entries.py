"""Entry and Volume models for the database driver.

Provides ``EntryBase`` and ``VolumeBase`` non-table base classes.
Subclass with ``table=True`` and a custom ``__tablename__`` to use a
different table name per deployment.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, LargeBinary
from sqlmodel import Field, SQLModel


class EntryBase(SQLModel):
    """Base fields for a file or directory. Subclass with ``table=True`` for a concrete table.

    ``path`` keeps the caller's casing; ``path_key`` and ``parent_key``
    hold the upper-cased forms used for lookups.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    path: str = Field(default="")
    path_key: str = Field(index=True, unique=True)
    parent_key: str = Field(default="", index=True)
    name: str = Field(default="")
    is_directory: bool = Field(default=False)
    attributes: int = Field(default=0)
    content: bytes | None = Field(default=None, sa_type=LargeBinary)
    size_bytes: int = Field(default=0)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    accessed_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )


class Entry(EntryBase, table=True):
    """Default entry table — ``handlefs_entries``."""

    __tablename__ = "handlefs_entries"


class VolumeBase(SQLModel):
    """Base fields for a volume record. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(default="")
    name_key: str = Field(index=True, unique=True)
    label: str = Field(default="")
    file_system: str | None = Field(default="SQLFS")
    total_size: int = Field(default=0)
    serial_number: int = Field(default=0)
    formatted_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )


class Volume(VolumeBase, table=True):
    """Default volume table — ``handlefs_volumes``."""

    __tablename__ = "handlefs_volumes"
