"""VolumeInfo — mounted volumes and formatting."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import StorageError
from .paths import ROOT, SEPARATOR, is_in_directory

if TYPE_CHECKING:
    from .driver import StorageDriver
    from .registry import OpenHandleRegistry
    from .types import VolumeDescriptor

logger = logging.getLogger(__name__)


class VolumeInfo:
    """A volume as reported by the driver, plus ``format``.

    Attributes mirror the last ``VolumeDescriptor`` read; call
    ``refresh`` to re-read them.
    """

    def __init__(
        self,
        descriptor: VolumeDescriptor,
        driver: StorageDriver,
        registry: OpenHandleRegistry,
    ) -> None:
        self._driver = driver
        self._registry = registry
        self._descriptor = descriptor

    @classmethod
    def from_name(
        cls,
        name: str,
        driver: StorageDriver,
        registry: OpenHandleRegistry,
    ) -> VolumeInfo:
        return cls(_find_volume(driver, name), driver, registry)

    @property
    def name(self) -> str:
        return self._descriptor.name

    @property
    def volume_label(self) -> str:
        return self._descriptor.label

    @property
    def file_system(self) -> str | None:
        return self._descriptor.file_system

    @property
    def total_size(self) -> int:
        return self._descriptor.total_size

    @property
    def total_free_space(self) -> int:
        return self._descriptor.total_free_space

    @property
    def serial_number(self) -> int:
        return self._descriptor.serial_number

    @property
    def root_directory(self) -> str:
        return SEPARATOR + self.name

    @property
    def is_formatted(self) -> bool:
        return self.file_system is not None and self.total_size > 0

    def refresh(self) -> None:
        self._descriptor = _find_volume(self._driver, self.name)

    def format(
        self,
        file_system: str | None = None,
        parameter: int = 0,
        volume_label: str | None = None,
        force: bool = False,
    ) -> None:
        """Erase the volume.

        A current directory inside the volume is moved to the root
        first and restored afterwards if it was the volume root itself.
        With *force*, every handle open under the volume is closed;
        otherwise any open handle makes the format fail with
        ``SharingViolationError``.
        """
        root = self.root_directory
        current = self._registry.current_directory
        restore = current.upper() == root.upper()
        if is_in_directory(current, root, case_sensitive=False):
            self._registry.set_current_directory(ROOT)

        if force:
            self._registry.force_release(root)

        try:
            lock = self._registry.lock_directory(root)
        except Exception:
            # Nothing was erased, so the old current directory is still valid
            self._registry.set_current_directory(current)
            raise
        try:
            self._driver.format(
                self.name,
                file_system if file_system is not None else self.file_system,
                volume_label if volume_label is not None else self.volume_label,
                parameter,
            )
            self.refresh()
        finally:
            self._registry.unlock_directory(lock)
        logger.info("Formatted volume %s (force=%s)", self.name, force)

        if restore:
            self._registry.set_current_directory(root)

    def __repr__(self) -> str:
        return f"VolumeInfo({self.name!r}, label={self.volume_label!r})"


def _find_volume(driver: StorageDriver, name: str) -> VolumeDescriptor:
    for descriptor in driver.get_volumes():
        if descriptor.name.upper() == name.upper():
            return descriptor
    raise StorageError(f"Volume not found: {name}")


def get_volumes(driver: StorageDriver, registry: OpenHandleRegistry) -> list[VolumeInfo]:
    return [VolumeInfo(descriptor, driver, registry) for descriptor in driver.get_volumes()]
