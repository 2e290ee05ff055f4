"""OpenHandleRegistry — path-level arbitration between concurrent handles.

One registry is constructed per file system and passed to every service
that opens, deletes, moves or enumerates paths.  It tracks every path
currently claimed, together with the access and share mode of the
claim, and the process-wide current directory.

Claims never block: an incompatible request raises
``SharingViolationError`` immediately.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .exceptions import SharingViolationError
from .paths import ROOT, is_in_directory
from .types import CanonicalPath, FileAccess, FileShare

if TYPE_CHECKING:
    from .driver import DriverStream

logger = logging.getLogger(__name__)


class ReservationKind(str, Enum):
    """What a reservation protects against."""

    OPEN = "open"
    """An open handle; compatibility decided by access/share."""

    PROBE = "probe"
    """Metadata or enumeration; only keeps the path from being deleted or renamed."""

    EXCLUSIVE = "exclusive"
    """Delete/rename of a single path; nothing else may hold it."""

    DIRECTORY_LOCK = "directory_lock"
    """Whole subtree; other threads are shut out until unlocked."""


@dataclass(eq=False)
class Reservation:
    """A claim on a path held in an ``OpenHandleRegistry``."""

    path: CanonicalPath
    kind: ReservationKind
    key: str
    access: FileAccess | int = 0
    share: FileShare = FileShare.READ_WRITE
    owner: int = field(default_factory=threading.get_ident)
    stream: DriverStream | None = None
    """Driver stream of the handle holding this claim, closed on forced release."""

    released: bool = False

    def __repr__(self) -> str:
        return (
            f"Reservation({self.path!r}, {self.kind.value}, "
            f"access={int(self.access)}, share={int(self.share)})"
        )


def _open_compatible(existing: Reservation, new: Reservation) -> bool:
    """Each side's share mode must admit the other side's access."""
    new_access = int(new.access)
    old_access = int(existing.access)
    return (int(existing.share) & new_access) == new_access and (
        int(new.share) & old_access
    ) == old_access


class OpenHandleRegistry:
    """Reference-counted table of claimed paths plus the current directory.

    Paths are compared case-insensitively unless ``case_sensitive`` is
    set, matching FAT-style volumes.
    """

    def __init__(
        self,
        *,
        case_sensitive: bool = False,
        current_directory: CanonicalPath = ROOT,
    ) -> None:
        self._case_sensitive = case_sensitive
        self._lock = threading.Lock()
        self._records: dict[str, list[Reservation]] = {}
        self._locked_dirs: list[Reservation] = []
        self._current_directory = current_directory
        self._cwd_reservation: Reservation | None = None
        if current_directory != ROOT:
            self._cwd_reservation = self._acquire(current_directory, ReservationKind.PROBE)

    @property
    def case_sensitive(self) -> bool:
        return self._case_sensitive

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def reserve(
        self,
        path: CanonicalPath,
        access: FileAccess,
        share: FileShare,
    ) -> Reservation:
        """Claim *path* for a handle with the given access and share mode."""
        return self._acquire(path, ReservationKind.OPEN, access=access, share=share)

    def reserve_exclusive(self, path: CanonicalPath) -> Reservation:
        """Claim *path* for delete or rename. Fails if anything holds it or lies below it."""
        return self._acquire(
            path,
            ReservationKind.EXCLUSIVE,
            access=FileAccess.READ_WRITE,
            share=FileShare.NONE,
        )

    def reserve_for_read(self, path: CanonicalPath) -> Reservation:
        """Keep *path* from being deleted or renamed while metadata is read."""
        return self._acquire(path, ReservationKind.PROBE)

    def lock_directory(self, path: CanonicalPath) -> Reservation:
        """Lock a whole subtree against every other thread."""
        return self._acquire(
            path,
            ReservationKind.DIRECTORY_LOCK,
            access=FileAccess.READ_WRITE,
            share=FileShare.NONE,
        )

    def unlock_directory(self, reservation: Reservation) -> None:
        self.release(reservation)

    def release(self, reservation: Reservation) -> None:
        """Drop a claim. Releasing twice is a no-op."""
        with self._lock:
            self._discard(reservation)

    def _acquire(
        self,
        path: CanonicalPath,
        kind: ReservationKind,
        *,
        access: FileAccess | int = 0,
        share: FileShare = FileShare.READ_WRITE,
    ) -> Reservation:
        reservation = Reservation(
            path=path,
            kind=kind,
            key=self._key(path),
            access=access,
            share=share,
        )
        with self._lock:
            conflict = self._find_conflict(reservation)
            if conflict is not None:
                logger.debug("Reservation refused for %r: %s", reservation, conflict)
                raise SharingViolationError(f"Sharing violation on {path}: {conflict}")
            if kind is ReservationKind.DIRECTORY_LOCK:
                self._locked_dirs.append(reservation)
            else:
                self._records.setdefault(reservation.key, []).append(reservation)
        logger.debug("Reserved %r", reservation)
        return reservation

    def _discard(self, reservation: Reservation) -> None:
        if reservation.released:
            return
        reservation.released = True
        if reservation.kind is ReservationKind.DIRECTORY_LOCK:
            self._locked_dirs.remove(reservation)
            return
        held = self._records.get(reservation.key, [])
        if reservation in held:
            held.remove(reservation)
        if not held:
            self._records.pop(reservation.key, None)

    def _key(self, path: str) -> str:
        return path if self._case_sensitive else path.upper()

    def _find_conflict(self, new: Reservation) -> str | None:
        claims_subtree = new.kind in (ReservationKind.EXCLUSIVE, ReservationKind.DIRECTORY_LOCK)

        for lock in self._locked_dirs:
            if lock.owner == new.owner:
                continue
            if is_in_directory(new.key, lock.key):
                return f"directory {lock.path} is locked"
            if claims_subtree and is_in_directory(lock.key, new.key):
                return f"subdirectory {lock.path} is locked"

        for key, held in self._records.items():
            if key == new.key:
                for existing in held:
                    if claims_subtree or existing.kind is ReservationKind.EXCLUSIVE:
                        return f"already in use ({existing.kind.value})"
                    if (
                        existing.kind is ReservationKind.OPEN
                        and new.kind is ReservationKind.OPEN
                        and not _open_compatible(existing, new)
                    ):
                        return (
                            f"open with access={int(existing.access)} "
                            f"share={int(existing.share)}"
                        )
            elif claims_subtree and is_in_directory(key, new.key):
                return f"{held[0].path} is in use"
            elif is_in_directory(new.key, key):
                for existing in held:
                    if existing.kind is ReservationKind.EXCLUSIVE and existing.owner != new.owner:
                        return f"{existing.path} is being moved or deleted"
        return None

    # ------------------------------------------------------------------
    # Streams attached to claims
    # ------------------------------------------------------------------

    def force_release(self, path: CanonicalPath) -> int:
        """Close every stream claimed at or below *path* and drop those claims.

        Returns the number of claims removed.  Used by forced formats.
        """
        key = self._key(path)
        with self._lock:
            victims = [
                reservation
                for held_key, held in self._records.items()
                if is_in_directory(held_key, key)
                for reservation in held
                if reservation.kind is ReservationKind.OPEN
            ]
            for reservation in victims:
                self._discard(reservation)

        for reservation in victims:
            stream = reservation.stream
            reservation.stream = None
            if stream is None:
                continue
            try:
                stream.close()
            except Exception:
                logger.warning("Failed to close stream for %s", reservation.path, exc_info=True)

        if victims:
            logger.info("Force-released %d handle(s) under %s", len(victims), path)
        return len(victims)

    # ------------------------------------------------------------------
    # Current directory
    # ------------------------------------------------------------------

    @property
    def current_directory(self) -> CanonicalPath:
        return self._current_directory

    def set_current_directory(self, path: CanonicalPath) -> None:
        """Move the current directory, holding a read claim on the new one.

        Callers verify that *path* is a directory while holding their own
        ``reserve_for_read`` claim on it.
        """
        new_reservation = None
        if path != ROOT:
            new_reservation = self._acquire(path, ReservationKind.PROBE)
        with self._lock:
            old = self._cwd_reservation
            self._cwd_reservation = new_reservation
            self._current_directory = path
            if old is not None:
                self._discard(old)
        logger.debug("Current directory is now %s", path)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def reservation_count(self, path: CanonicalPath | None = None) -> int:
        """Number of live claims on *path*, or on every path when omitted.

        The current directory's own claim is not counted.
        """
        with self._lock:
            if path is None:
                held = [r for records in self._records.values() for r in records]
                held.extend(self._locked_dirs)
            else:
                key = self._key(path)
                held = list(self._records.get(key, []))
                held.extend(lock for lock in self._locked_dirs if lock.key == key)
            return sum(1 for r in held if r is not self._cwd_reservation)

    def open_paths(self) -> list[CanonicalPath]:
        """Paths with at least one open handle, sorted."""
        with self._lock:
            return sorted(
                {
                    r.path
                    for records in self._records.values()
                    for r in records
                    if r.kind is ReservationKind.OPEN
                }
            )

    def is_reserved(self, path: CanonicalPath) -> bool:
        return self.reservation_count(path) > 0

    def is_locked(self, path: CanonicalPath) -> bool:
        """True if *path* lies inside a locked directory."""
        key = self._key(path)
        with self._lock:
            return any(is_in_directory(key, lock.key) for lock in self._locked_dirs)
