"""
SQLite shards holding position rows.

One live shard is written to; every other .db file found next to it is an
archive opened read-only. Archives are accepted only when their positions
table matches EXPECTED_SCHEMA column for column.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from .cells import to_storage
from .errors import SchemaMismatch

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "tracks.db"
SHARD_SUFFIX = ".db"

EXPECTED_SCHEMA: Tuple[Tuple[str, str], ...] = (
    ("timestamp", "INTEGER"),
    ("lat", "REAL"),
    ("lon", "REAL"),
    ("cell_id", "INTEGER"),
)

CREATE_SCHEMA = """
    CREATE TABLE IF NOT EXISTS positions (
        timestamp INTEGER,
        lat REAL,
        lon REAL,
        cell_id INTEGER
    );
    CREATE INDEX IF NOT EXISTS idx_cell_id ON positions(cell_id);
"""


@dataclass(frozen=True)
class PositionSample:
    """One stored position. cell_id is the unsigned S2 leaf id."""
    timestamp: int
    lat: float
    lon: float
    cell_id: int


@dataclass
class Shard:
    path: Path
    conn: sqlite3.Connection

    @property
    def name(self) -> str:
        return self.path.name


def read_schema(conn: sqlite3.Connection) -> Tuple[Tuple[str, str], ...]:
    cursor = conn.execute("PRAGMA table_info(positions)")
    return tuple((row[1], (row[2] or "").upper()) for row in cursor.fetchall())


def validate_schema(path: Path, conn: sqlite3.Connection):
    """Raise SchemaMismatch unless the positions table is exactly EXPECTED_SCHEMA."""
    found = read_schema(conn)
    if found != EXPECTED_SCHEMA:
        raise SchemaMismatch(path, found)


def open_live(path: Path) -> Shard:
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.executescript(CREATE_SCHEMA)
    conn.commit()
    return Shard(path=path, conn=conn)


def open_archive(path: Path) -> Shard:
    """Open an archive read-only and validate it. Raises on any problem."""
    uri = f"{path.resolve().as_uri()}?mode=ro"
    conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
    try:
        validate_schema(path, conn)
    except (SchemaMismatch, sqlite3.Error):
        conn.close()
        raise
    return Shard(path=path, conn=conn)


def discover_archives(directory: Path, live_path: Path) -> List[Path]:
    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and p.suffix == SHARD_SUFFIX and p.resolve() != live_path.resolve()
    )


class ShardSet:
    """The live shard plus every valid archive in one directory."""

    def __init__(self, live: Shard, archives: Optional[List[Shard]] = None):
        self.live = live
        self.archives = archives or []

    @classmethod
    def open(cls, directory, live_name: str = DEFAULT_DB_NAME) -> "ShardSet":
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        live_path = directory / live_name
        live = open_live(live_path)

        archives = []
        for path in discover_archives(directory, live_path):
            try:
                archives.append(open_archive(path))
            except SchemaMismatch as e:
                logger.warning("Skipping archive %s: %s", path.name, e)
            except sqlite3.Error as e:
                logger.error("Failed to open or verify archive %s: %s", path.name, e)

        logger.info(
            "Opened live shard %s and %d archive(s)", live_path, len(archives)
        )
        return cls(live, archives)

    @property
    def shards(self) -> List[Shard]:
        """Live shard first, then archives in name order."""
        if self.live is None:
            return list(self.archives)
        return [self.live, *self.archives]

    def append(self, sample: PositionSample):
        if self.live is None:
            raise sqlite3.ProgrammingError("Live shard is closed")
        self.live.conn.execute(
            "INSERT INTO positions (timestamp, lat, lon, cell_id) VALUES (?, ?, ?, ?)",
            (sample.timestamp, sample.lat, sample.lon, to_storage(sample.cell_id)),
        )
        self.live.conn.commit()

    def query(self, sql: str, params: Sequence = ()) -> Iterator[Tuple[Shard, list]]:
        """Run the same query on every shard, yielding (shard, rows)."""
        for shard in self.shards:
            rows = shard.conn.execute(sql, params).fetchall()
            logger.debug("Found %d rows in %s", len(rows), shard.name)
            yield shard, rows

    def close_all(self):
        for shard in self.shards:
            try:
                shard.conn.close()
            except sqlite3.Error as e:
                logger.error("Error closing shard %s: %s", shard.name, e)
        self.live = None
        self.archives = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close_all()
