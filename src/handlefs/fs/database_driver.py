"""DatabaseDriver — entries stored in SQL tables through SQLModel."""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlmodel import Session, SQLModel, col, select

from .driver import DEFAULT_BUFFER_SIZE, BufferStream, match_pattern
from .exceptions import (
    AlreadyExistsError,
    DirectoryNotFoundError,
    PathNotFoundError,
    StorageError,
    UnauthorizedAccessError,
)
from .paths import SEPARATOR, get_directory_name, split_segments
from .types import DriverCapability, EntryInfo, FileAttributes, VolumeDescriptor

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from sqlalchemy.engine import Engine

    from handlefs.models.entries import EntryBase, VolumeBase

    from .types import CanonicalPath

logger = logging.getLogger(__name__)

DEFAULT_VOLUME_SIZE = 64 * 1024 * 1024  # 64MB


def _key(path: str) -> str:
    return path.upper()


class DatabaseDriver:
    """Database-backed storage driver.

    Every file and directory is one row of ``entry_model``; file bytes
    live in the row.  Volumes are rows of ``volume_model`` plus a
    directory entry for their root.  Works with any engine SQLModel
    supports; tests use in-memory SQLite.

    Open streams of the same entry share one buffer; each flush writes
    the whole buffer back to the row.
    """

    def __init__(
        self,
        engine: Engine,
        entry_model: type[EntryBase] | None = None,
        volume_model: type[VolumeBase] | None = None,
        *,
        volumes: Iterable[str] = (),
        create_tables: bool = True,
    ) -> None:
        from handlefs.models.entries import Entry, Volume

        self._engine = engine
        self._entry_model: type[EntryBase] = entry_model or Entry  # type: ignore[assignment]
        self._volume_model: type[VolumeBase] = volume_model or Volume  # type: ignore[assignment]
        self._lock = threading.RLock()
        self._buffers: dict[str, tuple[bytearray, int]] = {}

        if create_tables:
            SQLModel.metadata.create_all(
                engine,
                tables=[
                    self._entry_model.__table__,  # type: ignore[attr-defined]
                    self._volume_model.__table__,  # type: ignore[attr-defined]
                ],
            )
        for name in volumes:
            self.add_volume(name)

    @property
    def entry_model(self) -> type[EntryBase]:
        return self._entry_model

    @property
    def volume_model(self) -> type[VolumeBase]:
        return self._volume_model

    @property
    def open_stream_count(self) -> int:
        with self._lock:
            return sum(count for _, count in self._buffers.values())

    # ------------------------------------------------------------------
    # Row helpers
    # ------------------------------------------------------------------

    def _get(self, session: Session, path: str) -> EntryBase | None:
        model = self._entry_model
        return session.exec(select(model).where(model.path_key == _key(path))).first()

    def _require_parent(self, session: Session, path: str) -> None:
        parent = get_directory_name(path)
        if parent is None or parent == SEPARATOR:
            raise UnauthorizedAccessError(f"Cannot modify a volume root: {path}")
        row = self._get(session, parent)
        if row is None or not row.is_directory:
            raise DirectoryNotFoundError(f"Parent directory not found: {path}")

    def _descendants(self, session: Session, path: str) -> list[EntryBase]:
        model = self._entry_model
        prefix = _key(path) + SEPARATOR
        return list(
            session.exec(
                select(model).where(col(model.path_key).startswith(prefix, autoescape=True))
            ).all()
        )

    @staticmethod
    def _to_info(row: EntryBase) -> EntryInfo:
        return EntryInfo(
            name=row.name,
            path=row.path,
            attributes=FileAttributes(row.attributes),
            size=row.size_bytes,
            created_at=row.created_at,
            accessed_at=row.accessed_at,
            modified_at=row.updated_at,
        )

    def _new_entry(self, path: str, *, is_directory: bool) -> EntryBase:
        parent = get_directory_name(path) or SEPARATOR
        segments = split_segments(path)
        return self._entry_model(
            path=path,
            path_key=_key(path),
            parent_key=_key(parent),
            name=segments[-1] if segments else "",
            is_directory=is_directory,
            attributes=int(FileAttributes.DIRECTORY if is_directory else FileAttributes.ARCHIVE),
            content=None if is_directory else b"",
        )

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def open(self, path: CanonicalPath, buffer_size: int = DEFAULT_BUFFER_SIZE) -> BufferStream:
        key = _key(path)
        with self._lock:
            with Session(self._engine) as session:
                row = self._get(session, path)
                if row is None:
                    self._require_parent(session, path)
                    row = self._new_entry(path, is_directory=False)
                    session.add(row)
                elif row.is_directory:
                    raise UnauthorizedAccessError(f"Path is a directory: {path}")
                row.accessed_at = datetime.now(UTC)
                session.commit()
                content = row.content or b""

            if key in self._buffers:
                buffer, count = self._buffers[key]
            else:
                buffer, count = bytearray(content), 0
            self._buffers[key] = (buffer, count + 1)

        def persist(data: bytearray) -> None:
            self._store(path, bytes(data))

        def release() -> None:
            with self._lock:
                held, remaining = self._buffers[key]
                if remaining <= 1:
                    del self._buffers[key]
                else:
                    self._buffers[key] = (held, remaining - 1)

        capability = DriverCapability(can_read=True, can_write=True, can_seek=True)
        return BufferStream(buffer, capability, on_flush=persist, on_close=release)

    def _store(self, path: str, content: bytes) -> None:
        with Session(self._engine) as session:
            row = self._get(session, path)
            if row is None:
                raise StorageError(f"Entry vanished while open: {path}")
            row.content = content
            row.size_bytes = len(content)
            row.updated_at = datetime.now(UTC)
            session.add(row)
            session.commit()

    def get_attributes(self, path: CanonicalPath) -> FileAttributes | None:
        if path == SEPARATOR:
            return FileAttributes.DIRECTORY
        with Session(self._engine) as session:
            row = self._get(session, path)
            return FileAttributes(row.attributes) if row is not None else None

    def set_attributes(self, path: CanonicalPath, attributes: FileAttributes) -> None:
        with Session(self._engine) as session:
            row = self._get(session, path)
            if row is None:
                raise PathNotFoundError(f"Path not found: {path}")
            keep = FileAttributes.DIRECTORY if row.is_directory else 0
            row.attributes = int((attributes & ~FileAttributes.DIRECTORY) | keep)
            session.add(row)
            session.commit()

    def get_entry(self, path: CanonicalPath) -> EntryInfo | None:
        with Session(self._engine) as session:
            row = self._get(session, path)
            return self._to_info(row) if row is not None else None

    def delete(self, path: CanonicalPath) -> None:
        with Session(self._engine) as session:
            row = self._get(session, path)
            if row is None:
                raise PathNotFoundError(f"Path not found: {path}")
            if row.parent_key == SEPARATOR:
                raise UnauthorizedAccessError(f"Cannot delete a volume root: {path}")
            for child in self._descendants(session, path):
                session.delete(child)
            session.delete(row)
            session.commit()

    def move(self, src: CanonicalPath, dst: CanonicalPath) -> bool:
        src_segments = split_segments(src)
        dst_segments = split_segments(dst)
        if not src_segments or not dst_segments or _key(src_segments[0]) != _key(dst_segments[0]):
            return False

        with Session(self._engine) as session:
            row = self._get(session, src)
            if row is None:
                raise PathNotFoundError(f"Source not found: {src}")
            if self._get(session, dst) is not None:
                raise AlreadyExistsError(f"Destination already exists: {dst}")
            self._require_parent(session, dst)

            for child in self._descendants(session, src):
                child.path = dst + child.path[len(src) :]
                child.path_key = _key(child.path)
                child.parent_key = _key(get_directory_name(child.path) or SEPARATOR)
                session.add(child)
            row.path = dst
            row.path_key = _key(dst)
            row.parent_key = _key(get_directory_name(dst) or SEPARATOR)
            row.name = dst_segments[-1]
            session.add(row)
            session.commit()
        return True

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    def create_directory(self, path: CanonicalPath) -> None:
        segments = split_segments(path)
        if not segments:
            return
        with Session(self._engine) as session:
            current = SEPARATOR + segments[0]
            volume_root = self._get(session, current)
            if volume_root is None:
                raise DirectoryNotFoundError(f"Volume not found: {path}")
            for segment in segments[1:]:
                current = current + SEPARATOR + segment
                row = self._get(session, current)
                if row is None:
                    session.add(self._new_entry(current, is_directory=True))
                    session.flush()
                elif not row.is_directory:
                    raise AlreadyExistsError(f"A file is in the way: {path}")
            session.commit()

    def list_entries(self, path: CanonicalPath, pattern: str = "*") -> Iterator[EntryInfo]:
        model = self._entry_model
        with Session(self._engine) as session:
            if path != SEPARATOR:
                row = self._get(session, path)
                if row is None or not row.is_directory:
                    raise DirectoryNotFoundError(f"Directory not found: {path}")
            rows = session.exec(
                select(model).where(model.parent_key == _key(path)).order_by(model.path_key)
            ).all()
            entries = [self._to_info(r) for r in rows if match_pattern(r.name, pattern)]
        return iter(entries)

    # ------------------------------------------------------------------
    # Volumes
    # ------------------------------------------------------------------

    def add_volume(self, name: str, *, label: str = "", total_size: int = DEFAULT_VOLUME_SIZE) -> None:
        """Register a volume and its root directory. Existing volumes are left alone."""
        vmodel = self._volume_model
        with Session(self._engine) as session:
            existing = session.exec(select(vmodel).where(vmodel.name_key == _key(name))).first()
            if existing is not None:
                return
            session.add(
                vmodel(
                    name=name,
                    name_key=_key(name),
                    label=label or name,
                    total_size=total_size,
                )
            )
            session.add(self._new_entry(SEPARATOR + name, is_directory=True))
            session.commit()
        logger.debug("Added volume %s", name)

    def get_volumes(self) -> list[VolumeDescriptor]:
        vmodel = self._volume_model
        emodel = self._entry_model
        result = []
        with Session(self._engine) as session:
            for volume in session.exec(select(vmodel).order_by(vmodel.name_key)).all():
                prefix = SEPARATOR + volume.name_key + SEPARATOR
                used = session.exec(
                    select(func.coalesce(func.sum(emodel.size_bytes), 0)).where(
                        col(emodel.path_key).startswith(prefix, autoescape=True)
                    )
                ).one()
                result.append(
                    VolumeDescriptor(
                        name=volume.name,
                        label=volume.label,
                        file_system=volume.file_system,
                        total_size=volume.total_size,
                        total_free_space=max(0, volume.total_size - int(used)),
                        serial_number=volume.serial_number,
                    )
                )
        return result

    def format(self, volume: str, file_system: str | None, label: str, parameter: int) -> None:
        vmodel = self._volume_model
        with Session(self._engine) as session:
            record = session.exec(select(vmodel).where(vmodel.name_key == _key(volume))).first()
            if record is None:
                raise StorageError(f"Volume not found: {volume}")
            removed = self._descendants(session, SEPARATOR + volume)
            for row in removed:
                session.delete(row)
            record.label = label
            record.file_system = file_system or record.file_system
            record.serial_number = record.serial_number + 1
            record.formatted_at = datetime.now(UTC)
            session.add(record)
            session.commit()
        logger.info("Formatted volume %s (%d entries removed)", volume, len(removed))

    def close(self) -> None:
        """No-op — the engine belongs to the caller."""
