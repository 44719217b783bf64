"""
vessel_tracks - position history store with S2-indexed area queries.

Positions are appended to a SQLite shard with the S2 leaf cell id of each
fix. Area queries translate a bounding box into a covering of S2 cells, run
the resulting id ranges against the live shard and any archive shards, and
return simplified track segments.

Usage:
    from vessel_tracks import TrackStore, GeoBounds

    with TrackStore("test", "/tmp/tracks") as store:
        store.insert_position("vessels.test", (60.2578, 21.9531), 1700000000000)
        store.query_tracks(bbox=GeoBounds.from_string("59.97,21.22,60.32,23.05"))
"""

from __future__ import annotations

from .bbox import GeoBounds, bounds_from_center, resolve, world_bounds
from .cells import CellIdCache, SpatialIndex, cover, encode, range_of
from .errors import (
    InvalidCellId,
    InvalidPosition,
    InvalidRadius,
    MissingQueryBounds,
    SchemaMismatch,
    TrackStoreError,
)
from .shards import EXPECTED_SCHEMA, PositionSample, ShardSet
from .simplify import simplify
from .store import TrackStore
from .tracks import TrackReconstructor, segment


__version__ = "0.1.0"
__all__ = [
    "TrackStore",
    "TrackReconstructor",
    "ShardSet",
    "PositionSample",
    "EXPECTED_SCHEMA",
    "GeoBounds",
    "SpatialIndex",
    "CellIdCache",
    "bounds_from_center",
    "resolve",
    "world_bounds",
    "encode",
    "cover",
    "range_of",
    "segment",
    "simplify",
    "TrackStoreError",
    "SchemaMismatch",
    "MissingQueryBounds",
    "InvalidRadius",
    "InvalidCellId",
    "InvalidPosition",
]
