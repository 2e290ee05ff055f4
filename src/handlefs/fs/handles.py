"""FileHandle — an open file bounded by its negotiated capability."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from .exceptions import CapabilityNotSupportedError, HandleClosedError, StorageError
from .types import SeekOrigin

if TYPE_CHECKING:
    from types import TracebackType

    from .driver import DriverStream, StorageDriver
    from .registry import OpenHandleRegistry, Reservation
    from .types import CanonicalPath

logger = logging.getLogger(__name__)


class FileHandle:
    """Owns a driver stream and the registry reservation for its path.

    Capabilities are fixed at open time by ``AccessNegotiator``.  Reads
    and writes are serialized per handle; seeks below ``seek_floor``
    (non-zero only for append mode) are refused.
    """

    def __init__(
        self,
        path: CanonicalPath,
        stream: DriverStream,
        reservation: Reservation,
        registry: OpenHandleRegistry,
        *,
        can_read: bool,
        can_write: bool,
        can_seek: bool,
        seek_floor: int = 0,
    ) -> None:
        self._path = path
        self._stream: DriverStream | None = stream
        self._reservation: Reservation | None = reservation
        self._registry = registry
        self._can_read = can_read
        self._can_write = can_write
        self._can_seek = can_seek
        self._seek_floor = seek_floor
        self._io_lock = threading.Lock()
        self._closed = False

    # ------------------------------------------------------------------
    # Negotiated state
    # ------------------------------------------------------------------

    @property
    def path(self) -> CanonicalPath:
        return self._path

    name = path

    @property
    def can_read(self) -> bool:
        return self._can_read and not self.closed

    @property
    def can_write(self) -> bool:
        return self._can_write and not self.closed

    @property
    def can_seek(self) -> bool:
        return self._can_seek and not self.closed

    @property
    def seek_floor(self) -> int:
        return self._seek_floor

    @property
    def closed(self) -> bool:
        if self._closed:
            return True
        # A forced format may have dropped our reservation underneath us
        return self._reservation is not None and self._reservation.released

    def _live_stream(self) -> DriverStream:
        if self.closed or self._stream is None:
            raise HandleClosedError(f"Handle is closed: {self._path}")
        return self._stream

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    def read(self, size: int = -1) -> bytes:
        """Read up to *size* bytes (everything left when negative)."""
        stream = self._live_stream()
        if not self._can_read:
            raise CapabilityNotSupportedError(f"Handle is not readable: {self._path}")
        with self._io_lock:
            return stream.read(size)

    def readinto(self, buffer: bytearray | memoryview) -> int:
        view = memoryview(buffer).cast("B")
        chunk = self.read(len(view))
        view[: len(chunk)] = chunk
        return len(chunk)

    def write(self, data: bytes | bytearray | memoryview) -> int:
        """Write all of *data*, looping over short driver writes."""
        stream = self._live_stream()
        if not self._can_write:
            raise CapabilityNotSupportedError(f"Handle is not writable: {self._path}")

        view = memoryview(data).cast("B")
        total = len(view)
        with self._io_lock:
            while len(view):
                written = stream.write(view)
                if written == 0:
                    raise StorageError(f"Write made no progress on {self._path}")
                view = view[written:]
        return total

    def seek(self, offset: int, origin: SeekOrigin = SeekOrigin.BEGIN) -> int:
        stream = self._live_stream()
        if not self._can_seek:
            raise CapabilityNotSupportedError(f"Handle is not seekable: {self._path}")

        with self._io_lock:
            old_position = stream.seek(0, SeekOrigin.CURRENT)
            new_position = stream.seek(offset, origin)
            if new_position < self._seek_floor:
                stream.seek(old_position, SeekOrigin.BEGIN)
                raise StorageError(
                    f"Cannot seek to {new_position}, before offset {self._seek_floor} "
                    f"of {self._path}"
                )
        return new_position

    def tell(self) -> int:
        stream = self._live_stream()
        if not self._can_seek:
            raise CapabilityNotSupportedError(f"Handle is not seekable: {self._path}")
        return stream.seek(0, SeekOrigin.CURRENT)

    @property
    def position(self) -> int:
        return self.tell()

    @position.setter
    def position(self, value: int) -> None:
        stream = self._live_stream()
        if not self._can_seek:
            raise CapabilityNotSupportedError(f"Handle is not seekable: {self._path}")
        if value < self._seek_floor:
            raise StorageError(
                f"Cannot move to {value}, before offset {self._seek_floor} of {self._path}"
            )
        with self._io_lock:
            stream.seek(value, SeekOrigin.BEGIN)

    @property
    def length(self) -> int:
        stream = self._live_stream()
        if not self._can_seek:
            raise CapabilityNotSupportedError(f"Handle is not seekable: {self._path}")
        return stream.get_length()

    def set_length(self, length: int) -> None:
        stream = self._live_stream()
        if not (self._can_write and self._can_seek):
            raise CapabilityNotSupportedError(
                f"Handle must be writable and seekable to resize: {self._path}"
            )
        with self._io_lock:
            stream.set_length(length)

    def flush(self) -> None:
        self._live_stream().flush()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the driver stream, then release the reservation, whatever happens."""
        if self._closed:
            return
        self._closed = True
        stream, self._stream = self._stream, None
        reservation, self._reservation = self._reservation, None
        try:
            if stream is not None and (reservation is None or not reservation.released):
                stream.close()
        finally:
            if reservation is not None:
                reservation.stream = None
                self._registry.release(reservation)

    def close_and_delete(self, driver: StorageDriver) -> None:
        """Close the stream and delete the file while the reservation is still held."""
        stream = self._live_stream()
        self._stream = None
        try:
            stream.close()
            driver.delete(self._path)
        finally:
            self.close()

    def __enter__(self) -> FileHandle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        flags = "".join(
            flag
            for flag, enabled in (
                ("r", self._can_read),
                ("w", self._can_write),
                ("s", self._can_seek),
            )
            if enabled
        )
        state = "closed" if self.closed else "open"
        return f"FileHandle({self._path!r}, {flags or '-'}, {state})"
