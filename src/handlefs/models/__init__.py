"""SQLModel database models for handlefs."""

from handlefs.models.entries import Entry, EntryBase, Volume, VolumeBase

__all__ = [
    "Entry",
    "EntryBase",
    "Volume",
    "VolumeBase",
]
