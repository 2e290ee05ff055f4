"""Shared fixtures for handlefs tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import handlefs.models  # noqa: F401  registers tables on SQLModel.metadata
from handlefs.filesystem import FileSystem
from handlefs.fs.memory_driver import MemoryDriver
from handlefs.fs.negotiator import AccessNegotiator
from handlefs.fs.registry import OpenHandleRegistry

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy import Engine


@pytest.fixture
def engine() -> Engine:
    """In-memory SQLite engine with all tables created, shared across threads."""
    eng = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    return eng


@pytest.fixture
def session(engine: Engine) -> Iterator[Session]:
    """SQLModel session bound to the in-memory engine."""
    with Session(engine) as s:
        yield s


@pytest.fixture
def registry() -> OpenHandleRegistry:
    return OpenHandleRegistry()


@pytest.fixture
def driver() -> MemoryDriver:
    """Two writable volumes, ``SD`` and ``FLASH``."""
    return MemoryDriver(volumes=["SD", "FLASH"])


@pytest.fixture
def negotiator(driver: MemoryDriver, registry: OpenHandleRegistry) -> AccessNegotiator:
    return AccessNegotiator(driver, registry)


@pytest.fixture
def fs(driver: MemoryDriver) -> Iterator[FileSystem]:
    with FileSystem(driver) as f:
        yield f
