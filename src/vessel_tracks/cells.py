"""
S2 cell ids for position rows and range predicates for bbox queries.

Every stored position carries the id of the leaf S2 cell it falls in. S2 ids
follow a Hilbert curve, so all descendants of a cell occupy one contiguous
numeric range, and a region covering becomes a handful of BETWEEN clauses
over the indexed cell_id column.

Cell ids are unsigned 64-bit integers. SQLite integers are signed, so the
stored value is biased by 2**63, which keeps the ordering intact:

    >>> to_storage(0)
    -9223372036854775808
    >>> from_storage(to_storage(0xB000000000000000)) == 0xB000000000000000
    True
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import List, Optional, Tuple

import s2sphere

from .bbox import GeoBounds
from .errors import InvalidCellId, InvalidPosition

logger = logging.getLogger(__name__)

UINT64_MAX = (1 << 64) - 1
STORAGE_OFFSET = 1 << 63

LEAF_LEVEL = 30
DEFAULT_MAX_LEVEL = 30
DEFAULT_MAX_CELLS = 8
DEFAULT_CACHE_SIZE = 4096


def encode(lat: float, lon: float) -> int:
    """Leaf cell id for a position in degrees."""
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        raise InvalidPosition(f"Position ({lat}, {lon}) out of range")
    return s2sphere.CellId.from_lat_lng(s2sphere.LatLng.from_degrees(lat, lon)).id()


def cover(
    bounds: GeoBounds,
    max_level: int = DEFAULT_MAX_LEVEL,
    max_cells: int = DEFAULT_MAX_CELLS,
) -> List[int]:
    """
    Up to `max_cells` cell ids, none finer than `max_level`, whose union
    covers `bounds`.
    """
    rect = s2sphere.LatLngRect(
        s2sphere.LatLng.from_degrees(*bounds.sw),
        s2sphere.LatLng.from_degrees(*bounds.ne),
    )
    coverer = s2sphere.RegionCoverer()
    coverer.min_level = 0
    coverer.max_level = max_level
    coverer.max_cells = max_cells
    return [cell.id() for cell in coverer.get_covering(rect)]


def _check_cell_id(cell_id) -> None:
    if isinstance(cell_id, bool) or not isinstance(cell_id, int):
        raise InvalidCellId(f"Cell id must be an integer, got {type(cell_id).__name__}")
    if cell_id < 0 or cell_id > UINT64_MAX:
        raise InvalidCellId(f"Cell id {cell_id} is not an unsigned 64-bit value")


def lowest_set_bit(cell_id: int) -> int:
    """Position of the least significant 1 bit; encodes the cell level."""
    return (cell_id & -cell_id).bit_length() - 1


def range_of(cell_id: int) -> Tuple[int, int]:
    """
    Inclusive (low, high) id range for a cell and its descendants.

    low clears the lowest set bit. high sets the bit to its left and fills
    every bit below it.
    """
    _check_cell_id(cell_id)

    if cell_id == 0:
        return 0, 2

    p = lowest_set_bit(cell_id)
    low = cell_id & (cell_id - 1)
    high = cell_id | (1 << (p + 1)) | ((1 << p) - 1)
    # Only 1 << 63 reaches past 64 bits
    return low, min(high, UINT64_MAX)


def to_storage(cell_id: int) -> int:
    """Signed SQLite value for an unsigned cell id, order preserved."""
    _check_cell_id(cell_id)
    return cell_id - STORAGE_OFFSET


def from_storage(value: int) -> int:
    return value + STORAGE_OFFSET


class CellIdCache:
    """
    Bounded LRU of leaf cell ids keyed by "lat,lon".

    Keys use repr() of the floats so equal coordinates always map to the
    same entry. The least recently used entry is evicted once `maxsize`
    entries are held; clear() empties the cache and resets the counters.
    """

    def __init__(self, maxsize: int = DEFAULT_CACHE_SIZE):
        if maxsize < 0:
            raise ValueError("maxsize must be >= 0")
        self.maxsize = maxsize
        self._entries: OrderedDict[str, int] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(lat: float, lon: float) -> str:
        return f"{float(lat)!r},{float(lon)!r}"

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get_or_compute(self, lat: float, lon: float) -> int:
        key = self.key(lat, lon)
        cell_id = self._entries.get(key)
        if cell_id is not None:
            self._entries.move_to_end(key)
            self.hits += 1
            return cell_id

        self.misses += 1
        cell_id = encode(lat, lon)
        if self.maxsize:
            self._entries[key] = cell_id
            if len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)
        return cell_id

    def clear(self):
        self._entries.clear()
        self.hits = 0
        self.misses = 0


class SpatialIndex:
    """Cell encoding with a cache, and covering-based range predicates."""

    def __init__(
        self,
        cache_size: int = DEFAULT_CACHE_SIZE,
        max_level: int = DEFAULT_MAX_LEVEL,
        max_cells: int = DEFAULT_MAX_CELLS,
    ):
        self.cache = CellIdCache(cache_size)
        self.max_level = max_level
        self.max_cells = max_cells

    def encode(self, lat: float, lon: float) -> int:
        return self.cache.get_or_compute(lat, lon)

    def ranges(self, bounds: GeoBounds) -> List[Tuple[int, int]]:
        return [range_of(cell_id) for cell_id in cover(bounds, self.max_level, self.max_cells)]

    def range_predicate(
        self, bounds: GeoBounds, column: str = "cell_id"
    ) -> Tuple[str, List[int]]:
        """
        SQL fragment and parameters selecting rows whose cell lies in the
        covering of `bounds`. Parameters are in storage form.
        """
        ranges = self.ranges(bounds)
        if not ranges:
            return "0", []

        clauses = []
        params: List[int] = []
        for low, high in ranges:
            clauses.append(f"({column} BETWEEN ? AND ?)")
            params.extend((to_storage(low), to_storage(high)))

        logger.debug("Covering of %s: %d ranges", bounds, len(ranges))
        return " OR ".join(clauses), params

    def clear_cache(self):
        self.cache.clear()


def level_of(cell_id: int) -> Optional[int]:
    """S2 level of a valid cell id, None for ids without a level bit."""
    _check_cell_id(cell_id)
    if cell_id == 0:
        return None
    p = lowest_set_bit(cell_id)
    if p % 2:
        return None
    return LEAF_LEVEL - p // 2
