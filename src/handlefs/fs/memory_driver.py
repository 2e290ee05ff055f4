"""MemoryDriver — volumes held in process memory, no persistence."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .driver import DEFAULT_BUFFER_SIZE, BufferStream, match_pattern
from .exceptions import (
    AlreadyExistsError,
    DirectoryNotFoundError,
    PathNotFoundError,
    StorageError,
    UnauthorizedAccessError,
)
from .paths import SEPARATOR, split_segments
from .types import DriverCapability, EntryInfo, FileAttributes, VolumeDescriptor

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .types import CanonicalPath

DEFAULT_VOLUME_SIZE = 4 * 1024 * 1024  # 4MB


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class _Node:
    name: str
    attributes: FileAttributes
    content: bytearray | None = None
    children: dict[str, _Node] | None = None
    created_at: datetime = field(default_factory=_now)
    accessed_at: datetime = field(default_factory=_now)
    modified_at: datetime = field(default_factory=_now)

    @property
    def is_directory(self) -> bool:
        return self.children is not None

    def size(self) -> int:
        return len(self.content) if self.content is not None else 0


@dataclass
class _Volume:
    root: _Node
    label: str = ""
    file_system: str | None = "MEMFS"
    total_size: int = DEFAULT_VOLUME_SIZE
    read_only: bool = False


class MemoryDriver:
    """In-memory storage driver.

    Volume roots live directly under ``\\``.  Names are matched
    case-insensitively.  The knobs below emulate constrained devices:

    - ``read_only_volumes``: streams report ``can_write=False`` and
      nothing can be created there.
    - ``seekable`` / ``readable``: stream capabilities on every volume.
    - ``max_write_chunk``: cap on bytes accepted per driver write call
      (0 makes every write stall).
    - ``native_move_across_volumes``: when False, moves between volumes
      return False and callers fall back to copy + delete.
    """

    def __init__(
        self,
        volumes: Iterable[str] = ("SD",),
        *,
        read_only_volumes: Iterable[str] = (),
        readable: bool = True,
        seekable: bool = True,
        max_write_chunk: int | None = None,
        native_move_across_volumes: bool = False,
    ) -> None:
        self._lock = threading.RLock()
        self._volumes: dict[str, _Volume] = {}
        read_only = {name.upper() for name in read_only_volumes}
        for name in volumes:
            self._volumes[name.upper()] = _Volume(
                root=_Node(name=name, attributes=FileAttributes.DIRECTORY, children={}),
                label=name,
                read_only=name.upper() in read_only,
            )
        self.readable = readable
        self.seekable = seekable
        self.max_write_chunk = max_write_chunk
        self.native_move_across_volumes = native_move_across_volumes
        self.open_stream_count = 0

    # =========================================================================
    # Tree helpers
    # =========================================================================

    def _volume_of(self, path: str) -> _Volume | None:
        segments = split_segments(path)
        if not segments:
            return None
        return self._volumes.get(segments[0].upper())

    def _lookup(self, path: str) -> _Node | None:
        segments = split_segments(path)
        if not segments:
            return None
        volume = self._volumes.get(segments[0].upper())
        if volume is None:
            return None
        node = volume.root
        for segment in segments[1:]:
            if node.children is None:
                return None
            node = node.children.get(segment.upper())
            if node is None:
                return None
        return node

    def _parent_of(self, path: str) -> tuple[_Node, str]:
        segments = split_segments(path)
        if len(segments) < 2:
            raise UnauthorizedAccessError(f"Cannot modify a volume root: {path}")
        parent = self._lookup(SEPARATOR + SEPARATOR.join(segments[:-1]))
        if parent is None or not parent.is_directory:
            raise DirectoryNotFoundError(f"Parent directory not found: {path}")
        return parent, segments[-1]

    def _require_writable(self, path: str) -> None:
        volume = self._volume_of(path)
        if volume is None:
            raise DirectoryNotFoundError(f"Volume not found: {path}")
        if volume.read_only:
            raise UnauthorizedAccessError(f"Volume is read-only: {path}")

    @staticmethod
    def _entry(node: _Node, path: str) -> EntryInfo:
        return EntryInfo(
            name=node.name,
            path=path,
            attributes=node.attributes,
            size=node.size(),
            created_at=node.created_at,
            accessed_at=node.accessed_at,
            modified_at=node.modified_at,
        )

    # =========================================================================
    # Files
    # =========================================================================

    def open(self, path: CanonicalPath, buffer_size: int = DEFAULT_BUFFER_SIZE) -> BufferStream:
        with self._lock:
            volume = self._volume_of(path)
            node = self._lookup(path)
            if node is None:
                self._require_writable(path)
                parent, name = self._parent_of(path)
                node = _Node(name=name, attributes=FileAttributes.ARCHIVE, content=bytearray())
                assert parent.children is not None
                parent.children[name.upper()] = node
            elif node.is_directory:
                raise UnauthorizedAccessError(f"Path is a directory: {path}")

            node.accessed_at = _now()
            capability = DriverCapability(
                can_read=self.readable,
                can_write=volume is not None and not volume.read_only,
                can_seek=self.seekable,
            )
            self.open_stream_count += 1

        def touch(_data: bytearray) -> None:
            node.modified_at = _now()

        def closed() -> None:
            with self._lock:
                self.open_stream_count -= 1

        assert node.content is not None
        return BufferStream(
            node.content,
            capability,
            on_flush=touch,
            on_close=closed,
            max_write_chunk=self.max_write_chunk,
        )

    def get_attributes(self, path: CanonicalPath) -> FileAttributes | None:
        with self._lock:
            if path == SEPARATOR:
                return FileAttributes.DIRECTORY
            node = self._lookup(path)
            return node.attributes if node is not None else None

    def set_attributes(self, path: CanonicalPath, attributes: FileAttributes) -> None:
        with self._lock:
            node = self._lookup(path)
            if node is None:
                raise PathNotFoundError(f"Path not found: {path}")
            # The directory bit belongs to the entry, not the caller
            keep = node.attributes & FileAttributes.DIRECTORY
            node.attributes = (attributes & ~FileAttributes.DIRECTORY) | keep

    def get_entry(self, path: CanonicalPath) -> EntryInfo | None:
        with self._lock:
            node = self._lookup(path)
            return self._entry(node, path) if node is not None else None

    def delete(self, path: CanonicalPath) -> None:
        with self._lock:
            self._require_writable(path)
            if self._lookup(path) is None:
                raise PathNotFoundError(f"Path not found: {path}")
            parent, name = self._parent_of(path)
            assert parent.children is not None
            del parent.children[name.upper()]

    def move(self, src: CanonicalPath, dst: CanonicalPath) -> bool:
        with self._lock:
            if self._volume_of(src) is not self._volume_of(dst) and not self.native_move_across_volumes:
                return False
            self._require_writable(src)
            self._require_writable(dst)
            node = self._lookup(src)
            if node is None:
                raise PathNotFoundError(f"Path not found: {src}")
            if self._lookup(dst) is not None:
                raise AlreadyExistsError(f"Destination already exists: {dst}")
            src_parent, src_name = self._parent_of(src)
            dst_parent, dst_name = self._parent_of(dst)
            assert src_parent.children is not None and dst_parent.children is not None
            del src_parent.children[src_name.upper()]
            node.name = dst_name
            dst_parent.children[dst_name.upper()] = node
            return True

    # =========================================================================
    # Directories
    # =========================================================================

    def create_directory(self, path: CanonicalPath) -> None:
        with self._lock:
            segments = split_segments(path)
            volume = self._volume_of(path)
            if volume is None:
                raise DirectoryNotFoundError(f"Volume not found: {path}")
            node = volume.root
            for segment in segments[1:]:
                assert node.children is not None
                child = node.children.get(segment.upper())
                if child is None:
                    if volume.read_only:
                        raise UnauthorizedAccessError(f"Volume is read-only: {path}")
                    child = _Node(name=segment, attributes=FileAttributes.DIRECTORY, children={})
                    node.children[segment.upper()] = child
                elif not child.is_directory:
                    raise AlreadyExistsError(f"A file is in the way: {path}")
                node = child

    def list_entries(self, path: CanonicalPath, pattern: str = "*") -> Iterator[EntryInfo]:
        with self._lock:
            if path == SEPARATOR:
                nodes = [(v.root, SEPARATOR + v.root.name) for v in self._volumes.values()]
            else:
                node = self._lookup(path)
                if node is None or node.children is None:
                    raise DirectoryNotFoundError(f"Directory not found: {path}")
                nodes = [(child, path + SEPARATOR + child.name) for child in node.children.values()]
            # Snapshot so callers can mutate the tree while iterating
            entries = [
                self._entry(child, child_path)
                for child, child_path in nodes
                if match_pattern(child.name, pattern)
            ]
        return iter(entries)

    # =========================================================================
    # Volumes
    # =========================================================================

    def get_volumes(self) -> list[VolumeDescriptor]:
        with self._lock:
            return [
                VolumeDescriptor(
                    name=volume.root.name,
                    label=volume.label,
                    file_system=volume.file_system,
                    total_size=volume.total_size,
                    total_free_space=max(0, volume.total_size - self._used(volume.root)),
                )
                for volume in self._volumes.values()
            ]

    def _used(self, root: _Node) -> int:
        total = 0
        stack = [root]
        while stack:
            node = stack.pop()
            total += node.size()
            if node.children:
                stack.extend(node.children.values())
        return total

    def format(self, volume: str, file_system: str | None, label: str, parameter: int) -> None:
        with self._lock:
            target = self._volumes.get(volume.upper())
            if target is None:
                raise StorageError(f"Volume not found: {volume}")
            if target.read_only:
                raise UnauthorizedAccessError(f"Volume is read-only: {volume}")
            target.root.children = {}
            target.file_system = file_system or target.file_system
            target.label = label

    def close(self) -> None:
        """No-op — nothing to release."""
