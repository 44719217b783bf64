"""
Track reconstruction from stored positions.

A bbox query is run against every shard, the time-ordered rows are split
into segments wherever the vessel went silent for more than five minutes,
and each segment is simplified for display.

Shards are queried independently and their results concatenated in shard
order. Nothing guarantees that shards cover disjoint time ranges; pass
merge_shards=True to merge all rows by timestamp before segmenting.
"""

from __future__ import annotations

import heapq
import logging
from operator import itemgetter
from typing import Dict, List, Optional, Sequence

from .bbox import GeoBounds, LatLon, resolve
from .cells import SpatialIndex
from .shards import ShardSet
from .simplify import simplify, sq_dist

logger = logging.getLogger(__name__)

GAP_THRESHOLD_MS = 5 * 60 * 1000
TOLERANCE_DIVISOR = 100000
DEFAULT_TOLERANCE = 0.001

QUERY_COLUMNS = "timestamp, lat, lon, cell_id"

# [lat, lon, None, timestamp]
Track = List[list]
TrackCollection = Dict[str, List[Track]]


def segment(rows: Sequence, gap_ms: int = GAP_THRESHOLD_MS) -> List[list]:
    """
    Split time-ordered rows into runs with no gap over `gap_ms`.

    Rows are (timestamp, lat, lon, ...) sequences.
    """
    segments: List[list] = []
    current: list = []
    previous_ts = None

    for row in rows:
        ts = row[0]
        if previous_ts is not None and ts - previous_ts > gap_ms:
            segments.append(current)
            current = []
        current.append(row)
        previous_ts = ts

    if current:
        segments.append(current)
    return segments


def tolerance_for(bounds: Optional[GeoBounds]) -> float:
    """Simplification tolerance scaled to the query area.

    The result is already a squared distance and is passed to `simplify`
    as is, not squared again.
    """
    if bounds is None or bounds.is_degenerate:
        return DEFAULT_TOLERANCE
    return sq_dist(bounds.sw, bounds.ne) / TOLERANCE_DIVISOR


def to_track(rows: Sequence) -> Track:
    return [[row[1], row[2], None, row[0]] for row in rows]


class TrackReconstructor:
    """Runs bbox queries over a ShardSet and turns rows into tracks."""

    def __init__(
        self,
        shards: ShardSet,
        index: Optional[SpatialIndex] = None,
        gap_ms: int = GAP_THRESHOLD_MS,
        merge_shards: bool = False,
    ):
        self.shards = shards
        self.index = index or SpatialIndex()
        self.gap_ms = gap_ms
        self.merge_shards = merge_shards

    def build_query(self, bounds: GeoBounds):
        predicate, params = self.index.range_predicate(bounds)
        sql = f"SELECT {QUERY_COLUMNS} FROM positions WHERE {predicate} ORDER BY timestamp"
        return sql, params

    def segments_for(self, bounds: GeoBounds) -> List[list]:
        """Row segments from every shard for `bounds`."""
        sql, params = self.build_query(bounds)
        logger.debug("Query: %s", sql)

        per_shard = [rows for _, rows in self.shards.query(sql, params)]

        if self.merge_shards:
            merged = heapq.merge(*per_shard, key=itemgetter(0))
            return segment(list(merged), self.gap_ms)

        segments: List[list] = []
        for rows in per_shard:
            segments.extend(segment(rows, self.gap_ms))
        return segments

    def get_tracks(
        self,
        self_context: str,
        bbox: Optional[GeoBounds] = None,
        center: Optional[LatLon] = None,
        radius: Optional[float] = None,
    ) -> TrackCollection:
        bounds = resolve(bbox=bbox, center=center, radius=radius)
        logger.debug("Track query bounds: %s", bounds)

        if not self.shards.shards:
            return {self_context: []}

        tolerance = tolerance_for(bounds)
        tracks = [
            simplify(to_track(rows), tolerance)
            for rows in self.segments_for(bounds)
        ]
        return {self_context: tracks}
