"""
Exception types raised by the track store.

Storage failures are not wrapped: sqlite3.Error propagates from reads and
writes unchanged.
"""

from __future__ import annotations


class TrackStoreError(Exception):
    """Base class for track store errors."""


class SchemaMismatch(TrackStoreError):
    """An archive file does not have the expected positions table layout."""

    def __init__(self, path, found):
        self.path = path
        self.found = found
        super().__init__(f"{path}: unexpected positions schema {found!r}")


class MissingQueryBounds(TrackStoreError, ValueError):
    """A track query could not be resolved to a single rectangle."""


class InvalidRadius(TrackStoreError, ValueError):
    """Query radius is not a positive number of meters."""


class InvalidCellId(TrackStoreError, ValueError):
    """Value is not representable as an unsigned 64-bit cell id."""


class InvalidPosition(TrackStoreError, ValueError):
    """Latitude or longitude out of range."""
