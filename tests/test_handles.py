"""Tests for fs/handles.py — I/O bounds, write draining, close semantics."""

from __future__ import annotations

import pytest

from handlefs.fs.driver import BufferStream
from handlefs.fs.exceptions import (
    CapabilityNotSupportedError,
    HandleClosedError,
    StorageError,
)
from handlefs.fs.handles import FileHandle
from handlefs.fs.memory_driver import MemoryDriver
from handlefs.fs.negotiator import AccessNegotiator
from handlefs.fs.registry import OpenHandleRegistry
from handlefs.fs.types import (
    CanonicalPath,
    DriverCapability,
    FileAccess,
    FileShare,
    OpenMode,
    SeekOrigin,
)

PATH = r"\SD\data.bin"


def _negotiator(**driver_kwargs) -> AccessNegotiator:
    return AccessNegotiator(MemoryDriver(volumes=["SD"], **driver_kwargs), OpenHandleRegistry())


class _FailingCloseStream(BufferStream):
    def close(self) -> None:
        super().close()
        raise OSError("card removed")


# ---------------------------------------------------------------------------
# Reading and writing
# ---------------------------------------------------------------------------


class TestReadWrite:
    def test_write_then_read_back(self, negotiator: AccessNegotiator):
        with negotiator.open(PATH, OpenMode.CREATE) as h:
            assert h.write(b"hello world") == 11
            h.seek(0)
            assert h.read(5) == b"hello"
            assert h.read() == b" world"
            assert h.read() == b""

    def test_short_driver_writes_are_drained(self):
        negotiator = _negotiator(max_write_chunk=3)
        with negotiator.open(PATH, OpenMode.CREATE) as h:
            assert h.write(b"0123456789") == 10
            h.seek(0)
            assert h.read() == b"0123456789"

    def test_stalled_driver_write_raises(self):
        negotiator = _negotiator(max_write_chunk=0)
        with negotiator.open(PATH, OpenMode.CREATE) as h:
            with pytest.raises(StorageError):
                h.write(b"x")

    def test_empty_write(self, negotiator: AccessNegotiator):
        with negotiator.open(PATH, OpenMode.CREATE) as h:
            assert h.write(b"") == 0

    def test_write_accepts_memoryview(self, negotiator: AccessNegotiator):
        with negotiator.open(PATH, OpenMode.CREATE) as h:
            h.write(memoryview(b"abcdef")[2:])
            h.seek(0)
            assert h.read() == b"cdef"

    def test_readinto(self, negotiator: AccessNegotiator):
        with negotiator.open(PATH, OpenMode.CREATE) as h:
            h.write(b"abc")
            h.seek(0)
            buffer = bytearray(8)
            assert h.readinto(buffer) == 3
            assert bytes(buffer[:3]) == b"abc"

    def test_read_on_write_only_handle(self, negotiator: AccessNegotiator):
        with negotiator.open(PATH, OpenMode.CREATE, FileAccess.WRITE) as h:
            with pytest.raises(CapabilityNotSupportedError):
                h.read()

    def test_write_on_read_only_handle(self, negotiator: AccessNegotiator):
        with negotiator.open(PATH, OpenMode.OPEN_OR_CREATE, FileAccess.READ) as h:
            with pytest.raises(CapabilityNotSupportedError):
                h.write(b"x")


# ---------------------------------------------------------------------------
# Positioning
# ---------------------------------------------------------------------------


class TestPositioning:
    def test_seek_origins(self, negotiator: AccessNegotiator):
        with negotiator.open(PATH, OpenMode.CREATE) as h:
            h.write(b"0123456789")
            assert h.seek(2) == 2
            assert h.seek(3, SeekOrigin.CURRENT) == 5
            assert h.seek(-1, SeekOrigin.END) == 9
            assert h.position == 9

    def test_position_setter(self, negotiator: AccessNegotiator):
        with negotiator.open(PATH, OpenMode.CREATE) as h:
            h.write(b"abc")
            h.position = 1
            assert h.read() == b"bc"

    def test_position_below_floor(self, negotiator: AccessNegotiator):
        with negotiator.open(PATH, OpenMode.CREATE) as h:
            h.write(b"abc")
        with negotiator.open(PATH, OpenMode.APPEND) as h:
            with pytest.raises(StorageError):
                h.position = 2
            assert h.tell() == 3

    def test_set_length(self, negotiator: AccessNegotiator):
        with negotiator.open(PATH, OpenMode.CREATE) as h:
            h.write(b"abcdef")
            h.set_length(2)
            assert h.length == 2
            h.set_length(4)
            h.seek(0)
            assert h.read() == b"ab\x00\x00"

    def test_set_length_requires_write(self, negotiator: AccessNegotiator):
        with negotiator.open(PATH, OpenMode.OPEN_OR_CREATE, FileAccess.READ) as h:
            with pytest.raises(CapabilityNotSupportedError):
                h.set_length(0)

    def test_non_seekable_handle(self):
        negotiator = _negotiator(seekable=False)
        with negotiator.open(PATH, OpenMode.CREATE) as h:
            h.write(b"abc")
            for call in (lambda: h.seek(0), h.tell, lambda: h.length, lambda: h.set_length(0)):
                with pytest.raises(CapabilityNotSupportedError):
                    call()


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestClose:
    def test_close_releases_reservation_and_stream(self, negotiator: AccessNegotiator):
        h = negotiator.open(PATH, OpenMode.CREATE, FileAccess.WRITE, FileShare.NONE)
        assert negotiator.registry.reservation_count() == 1
        h.close()
        assert h.closed is True
        assert negotiator.registry.reservation_count() == 0
        assert negotiator.driver.open_stream_count == 0

    def test_close_twice(self, negotiator: AccessNegotiator):
        h = negotiator.open(PATH, OpenMode.CREATE)
        h.close()
        h.close()
        assert negotiator.registry.reservation_count() == 0

    @pytest.mark.parametrize(
        "call",
        [
            pytest.param(lambda h: h.read(), id="read"),
            pytest.param(lambda h: h.write(b"x"), id="write"),
            pytest.param(lambda h: h.seek(0), id="seek"),
            pytest.param(lambda h: h.flush(), id="flush"),
            pytest.param(lambda h: h.length, id="length"),
        ],
    )
    def test_closed_handle_refuses_io(self, negotiator: AccessNegotiator, call):
        h = negotiator.open(PATH, OpenMode.CREATE)
        h.close()
        with pytest.raises(HandleClosedError):
            call(h)

    def test_capabilities_report_false_when_closed(self, negotiator: AccessNegotiator):
        h = negotiator.open(PATH, OpenMode.CREATE)
        h.close()
        assert (h.can_read, h.can_write, h.can_seek) == (False, False, False)

    def test_reservation_released_when_stream_close_fails(self):
        registry = OpenHandleRegistry()
        path = CanonicalPath(PATH)
        reservation = registry.reserve(path, FileAccess.READ_WRITE, FileShare.NONE)
        stream = _FailingCloseStream(
            bytearray(), DriverCapability(can_read=True, can_write=True, can_seek=True)
        )
        reservation.stream = stream
        h = FileHandle(
            path, stream, reservation, registry, can_read=True, can_write=True, can_seek=True
        )
        with pytest.raises(OSError, match="card removed"):
            h.close()
        assert h.closed is True
        assert registry.reservation_count() == 0

    def test_close_and_delete_releases_when_stream_close_fails(self):
        registry = OpenHandleRegistry()
        driver = MemoryDriver(volumes=["SD"])
        path = CanonicalPath(PATH)
        reservation = registry.reserve(path, FileAccess.READ, FileShare.NONE)
        stream = _FailingCloseStream(
            bytearray(b"x"), DriverCapability(can_read=True, can_write=False, can_seek=True)
        )
        reservation.stream = stream
        h = FileHandle(
            path, stream, reservation, registry, can_read=True, can_write=False, can_seek=True
        )
        with pytest.raises(OSError, match="card removed"):
            h.close_and_delete(driver)
        assert h.closed is True
        assert registry.reservation_count() == 0

    def test_force_released_handle_reports_closed(self, negotiator: AccessNegotiator):
        h = negotiator.open(PATH, OpenMode.CREATE)
        negotiator.registry.force_release(CanonicalPath(r"\SD"))
        assert h.closed is True
        assert negotiator.driver.open_stream_count == 0
        with pytest.raises(HandleClosedError):
            h.read()
        h.close()

    def test_close_and_delete(self, negotiator: AccessNegotiator):
        h = negotiator.open(PATH, OpenMode.CREATE)
        h.write(b"x")
        h.close_and_delete(negotiator.driver)
        assert h.closed is True
        assert negotiator.driver.get_attributes(CanonicalPath(PATH)) is None
        assert negotiator.registry.reservation_count() == 0

    def test_repr(self, negotiator: AccessNegotiator):
        h = negotiator.open(PATH, OpenMode.CREATE, FileAccess.WRITE)
        assert repr(h) == r"FileHandle('\\SD\\data.bin', ws, open)"
        h.close()
        assert repr(h).endswith("closed)")
