import sqlite3

import pytest

from vessel_tracks import TrackStore
from vessel_tracks.cells import encode, to_storage

VALID_SCHEMA = "timestamp INTEGER, lat REAL, lon REAL, cell_id INTEGER"


@pytest.fixture
def store(tmp_path):
    db = TrackStore("test", tmp_path)
    yield db
    db.close()


@pytest.fixture
def make_archive(tmp_path):
    """Create an archive shard file with the given column layout and positions."""

    def _make(name, positions=(), columns=VALID_SCHEMA):
        path = tmp_path / name
        conn = sqlite3.connect(str(path))
        conn.execute(f"CREATE TABLE positions ({columns})")
        for ts, lat, lon in positions:
            conn.execute(
                "INSERT INTO positions (timestamp, lat, lon, cell_id) VALUES (?, ?, ?, ?)",
                (ts, lat, lon, to_storage(encode(lat, lon))),
            )
        conn.commit()
        conn.close()
        return path

    return _make
