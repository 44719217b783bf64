"""
In-process track store API.

    store = TrackStore("urn:mrn:imo:mmsi:230099999", "/var/lib/tracks")
    store.insert_position("vessels.self", (60.2578, 21.9531))
    store.query_tracks(bbox=GeoBounds((59.97, 21.22), (60.32, 23.05)))
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Optional, Tuple

from .bbox import GeoBounds, LatLon
from .cells import DEFAULT_CACHE_SIZE, SpatialIndex
from .errors import MissingQueryBounds
from .shards import DEFAULT_DB_NAME, PositionSample, ShardSet
from .tracks import GAP_THRESHOLD_MS, TrackCollection, TrackReconstructor

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_M = 1000
RECENT_WINDOW_MS = 60 * 60 * 1000

SELF_ALIASES = ("vessels.self", "self")


def now_ms() -> int:
    return int(time.time() * 1000)


class TrackStore:
    """Position history for the own vessel, queryable by area."""

    def __init__(
        self,
        self_id: str,
        data_dir,
        db_name: str = DEFAULT_DB_NAME,
        merge_shards: bool = False,
        cache_size: int = DEFAULT_CACHE_SIZE,
        gap_ms: int = GAP_THRESHOLD_MS,
    ):
        self.self_context = f"vessels.{self_id}"
        self.data_dir = Path(data_dir)
        self.index = SpatialIndex(cache_size=cache_size)
        self.shards = ShardSet.open(self.data_dir, db_name)
        self.reconstructor = TrackReconstructor(
            self.shards, self.index, gap_ms=gap_ms, merge_shards=merge_shards
        )

    def is_self(self, context: str) -> bool:
        return context == self.self_context or context in SELF_ALIASES

    def insert_position(
        self, context: str, position: LatLon, timestamp: Optional[int] = None
    ) -> bool:
        """
        Append a position for the own vessel.

        Returns False (and stores nothing) for any other context.
        """
        if not self.is_self(context):
            logger.debug("Ignoring position for %s", context)
            return False

        lat, lon = position[0], position[1]
        sample = PositionSample(
            timestamp=now_ms() if timestamp is None else int(timestamp),
            lat=lat,
            lon=lon,
            cell_id=self.index.encode(lat, lon),
        )
        self.shards.append(sample)
        return True

    def query_tracks(
        self,
        bbox: Optional[GeoBounds] = None,
        radius: Optional[float] = None,
        self_position: Optional[LatLon] = None,
    ) -> TrackCollection:
        """
        Tracks passing through `bbox`, or within `radius` meters of
        `self_position` when no bbox is given.
        """
        if bbox is not None:
            return self.reconstructor.get_tracks(self.self_context, bbox=bbox)
        if self_position is None:
            raise MissingQueryBounds("Track query needs a bbox or the vessel position")
        return self.reconstructor.get_tracks(
            self.self_context,
            center=(self_position[0], self_position[1]),
            radius=DEFAULT_RADIUS_M if radius is None else radius,
        )

    def recent_positions(
        self, context: str, window_ms: int = RECENT_WINDOW_MS, now: Optional[int] = None
    ) -> List[Tuple[float, float]]:
        """Live-shard positions of the last `window_ms`, oldest first."""
        if not self.is_self(context) or self.shards.live is None:
            return []
        since = (now_ms() if now is None else now) - window_ms
        rows = self.shards.live.conn.execute(
            "SELECT lat, lon FROM positions WHERE timestamp > ? ORDER BY timestamp",
            (since,),
        ).fetchall()
        return [(row[0], row[1]) for row in rows]

    def close(self):
        self.shards.close_all()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
