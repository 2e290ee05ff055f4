"""StorageDriver protocol — the synchronous storage layer below the handles.

Drivers receive canonical paths only and never consult the registry.
Every call may block.  Failures are raised as ``HandleFSError``
subclasses (``StorageError`` for plain I/O trouble).

Also provides ``BufferStream``, a byte-buffer backed ``DriverStream``
shared by the in-process drivers.
"""

from __future__ import annotations

import fnmatch
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from .exceptions import ArgumentError, HandleClosedError, StorageError
from .types import DriverCapability, SeekOrigin

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from .types import CanonicalPath, EntryInfo, FileAttributes, VolumeDescriptor

DEFAULT_BUFFER_SIZE = 2048


@runtime_checkable
class DriverStream(Protocol):
    """An open file at the driver level. Position is tracked by the driver."""

    def read(self, size: int) -> bytes:
        """Read up to *size* bytes; ``b""`` at end of file."""
        ...

    def write(self, data: bytes | bytearray | memoryview) -> int:
        """Write some prefix of *data*; return how many bytes were taken."""
        ...

    def seek(self, offset: int, origin: SeekOrigin = SeekOrigin.BEGIN) -> int:
        """Move the position; return the new absolute offset."""
        ...

    def set_length(self, length: int) -> None: ...

    def get_length(self) -> int: ...

    def flush(self) -> None: ...

    def close(self) -> None: ...

    def get_stream_properties(self) -> DriverCapability: ...


@runtime_checkable
class StorageDriver(Protocol):
    """Core interface every storage driver must implement.

    ``open`` opens the file if present and creates it otherwise; the
    caller decides existence semantics before calling it.
    """

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def open(self, path: CanonicalPath, buffer_size: int = DEFAULT_BUFFER_SIZE) -> DriverStream: ...

    def get_attributes(self, path: CanonicalPath) -> FileAttributes | None:
        """Attribute bits, or ``None`` when nothing exists at *path*."""
        ...

    def set_attributes(self, path: CanonicalPath, attributes: FileAttributes) -> None: ...

    def get_entry(self, path: CanonicalPath) -> EntryInfo | None: ...

    def delete(self, path: CanonicalPath) -> None:
        """Delete a file, or a directory together with everything below it."""
        ...

    def move(self, src: CanonicalPath, dst: CanonicalPath) -> bool:
        """Rename *src* to *dst*.

        Returns ``False`` when the driver cannot do it natively (e.g.
        across volumes) and the caller must copy and delete instead.
        """
        ...

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    def create_directory(self, path: CanonicalPath) -> None:
        """Create *path* and any missing parents. Existing directories are a no-op."""
        ...

    def list_entries(self, path: CanonicalPath, pattern: str = "*") -> Iterator[EntryInfo]: ...

    # ------------------------------------------------------------------
    # Volumes
    # ------------------------------------------------------------------

    def get_volumes(self) -> list[VolumeDescriptor]: ...

    def format(self, volume: str, file_system: str | None, label: str, parameter: int) -> None: ...

    def close(self) -> None:
        """Called on file system shutdown."""
        ...


def match_pattern(name: str, pattern: str) -> bool:
    """Case-insensitive ``?``/``*`` match of a single entry name."""
    return fnmatch.fnmatchcase(name.upper(), pattern.upper())


class BufferStream:
    """``DriverStream`` over a shared ``bytearray``.

    Handles opened on the same entry share the buffer, so writes through
    one are visible through the others.  ``on_flush`` runs on every flush
    and once more on close; ``on_close`` runs after that.
    """

    def __init__(
        self,
        data: bytearray,
        capability: DriverCapability,
        *,
        on_flush: Callable[[bytearray], None] | None = None,
        on_close: Callable[[], None] | None = None,
        max_write_chunk: int | None = None,
    ) -> None:
        self._data = data
        self._capability = capability
        self._on_flush = on_flush
        self._on_close = on_close
        self._max_write_chunk = max_write_chunk
        self._position = 0
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise HandleClosedError("Driver stream is closed")

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int) -> bytes:
        self._check_open()
        if size < 0:
            size = len(self._data) - self._position
        chunk = bytes(self._data[self._position : self._position + size])
        self._position += len(chunk)
        return chunk

    def write(self, data: bytes | bytearray | memoryview) -> int:
        self._check_open()
        if not self._capability.can_write:
            raise StorageError("Stream is not writable")
        view = memoryview(data)
        if self._max_write_chunk is not None:
            view = view[: self._max_write_chunk]
        end = self._position + len(view)
        if self._position > len(self._data):
            self._data.extend(b"\x00" * (self._position - len(self._data)))
        self._data[self._position : end] = view
        self._position = end
        return len(view)

    def seek(self, offset: int, origin: SeekOrigin = SeekOrigin.BEGIN) -> int:
        self._check_open()
        if origin == SeekOrigin.BEGIN:
            target = offset
        elif origin == SeekOrigin.CURRENT:
            target = self._position + offset
        elif origin == SeekOrigin.END:
            target = len(self._data) + offset
        else:
            raise ArgumentError(f"Invalid seek origin: {origin!r}")
        if target < 0:
            raise StorageError(f"Seek before beginning of stream: {target}")
        self._position = target
        return target

    def set_length(self, length: int) -> None:
        self._check_open()
        if length < 0:
            raise ArgumentError(f"Negative length: {length}")
        if length < len(self._data):
            del self._data[length:]
        else:
            self._data.extend(b"\x00" * (length - len(self._data)))

    def get_length(self) -> int:
        self._check_open()
        return len(self._data)

    def flush(self) -> None:
        self._check_open()
        if self._on_flush is not None:
            self._on_flush(self._data)

    def close(self) -> None:
        if self._closed:
            return
        try:
            if self._on_flush is not None and self._capability.can_write:
                self._on_flush(self._data)
        finally:
            self._closed = True
            if self._on_close is not None:
                self._on_close()

    def get_stream_properties(self) -> DriverCapability:
        return self._capability
