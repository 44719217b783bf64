"""
Tests for backfilling positions from captured AIS messages.
"""

import sqlite3

import pytest
from pyais import decode
from pyais.encode import encode_dict

from vessel_tracks import GeoBounds, TrackStore
from vessel_tracks.ais_import import AISImporter, SentenceAssembler, parse_timestamp_ms

POSITION_SENTENCE = "!AIVDM,1,1,,B,15NG6V0P01G?cFhE`R2IU?wn28R>,0*05"
STATIC_PARTS = [
    "!AIVDM,2,1,1,A,55?MbV02;H;s<HtKR20EHE:0@T4@Dn2222222216L961O5Gf0NSQEp6ClRp8,0*1C",
    "!AIVDM,2,2,1,A,88888888880,2*25",
]


@pytest.fixture
def reference():
    return decode(POSITION_SENTENCE).asdict()


@pytest.fixture
def capture_db(tmp_path):
    path = tmp_path / "ais-data.db"
    conn = sqlite3.connect(str(path))
    conn.execute(
        "CREATE TABLE raw_messages (id INTEGER PRIMARY KEY AUTOINCREMENT, timestamp TEXT NOT NULL, nmea TEXT NOT NULL)"
    )
    rows = [
        ("2024-06-01T00:00:00+00:00", POSITION_SENTENCE),
        ("2024-06-01T00:00:05+00:00", STATIC_PARTS[0]),
        ("2024-06-01T00:00:05+00:00", STATIC_PARTS[1]),
        ("2024-06-01T00:00:09+00:00", "garbage"),
        ("2024-06-01T00:01:00+00:00", POSITION_SENTENCE),
    ]
    conn.executemany("INSERT INTO raw_messages (timestamp, nmea) VALUES (?, ?)", rows)
    conn.commit()
    conn.close()
    return path


class TestParseTimestamp:

    def test_aware(self):
        assert parse_timestamp_ms("2024-06-01T00:00:00+00:00") == 1_717_200_000_000

    def test_naive_is_utc(self):
        assert parse_timestamp_ms("2024-06-01T00:00:01.500000") == 1_717_200_001_500


class TestSentenceAssembler:

    def test_single_part(self):
        assert SentenceAssembler().add(POSITION_SENTENCE) == [POSITION_SENTENCE]

    def test_multi_part(self):
        assembler = SentenceAssembler()
        assert assembler.add(STATIC_PARTS[0]) is None
        assert assembler.incomplete() == 1
        assert assembler.add(STATIC_PARTS[1]) == STATIC_PARTS
        assert assembler.incomplete() == 0

    def test_out_of_order(self):
        assembler = SentenceAssembler()
        assert assembler.add(STATIC_PARTS[1]) is None
        assert assembler.add(STATIC_PARTS[0]) == STATIC_PARTS

    def test_not_nmea(self):
        assert SentenceAssembler().add("hello") is None


class TestAISImporter:

    def test_imports_own_positions(self, tmp_path, capture_db, reference):
        with TrackStore("test", tmp_path / "tracks") as store:
            importer = AISImporter(store, reference["mmsi"], batch_size=2)
            stored = importer.run(capture_db)

            lat, lon = reference["lat"], reference["lon"]
            bounds = GeoBounds(sw=(lat - 0.1, lon - 0.1), ne=(lat + 0.1, lon + 0.1))
            tracks = store.query_tracks(bbox=bounds)[store.self_context]

        assert stored == 2
        assert importer.stats["positions"] == 2
        assert importer.stats["other"] == 1
        assert len(tracks) == 1
        assert [p[3] for p in tracks[0]] == [1_717_200_000_000, 1_717_200_060_000]

    def test_other_mmsi_skipped(self, tmp_path, capture_db, reference):
        with TrackStore("test", tmp_path / "tracks") as store:
            importer = AISImporter(store, reference["mmsi"] + 1)
            assert importer.run(capture_db) == 0
        assert importer.stats["other_vessels"] == 2

    def test_since(self, tmp_path, capture_db, reference):
        with TrackStore("test", tmp_path / "tracks") as store:
            importer = AISImporter(store, reference["mmsi"])
            assert importer.run(capture_db, since="2024-06-01T00:00:30") == 1

    def test_out_of_range_position_skipped(self, tmp_path, reference):
        # Latitude field holds up to +-111.8 degrees
        corrupt = encode_dict({"msg_type": 1, "mmsi": reference["mmsi"], "lat": 100.0, "lon": 20.0}, talker_id="AIVDM")
        rows = [
            ("2024-06-01T00:00:00+00:00", corrupt[0]),
            ("2024-06-01T00:00:10+00:00", POSITION_SENTENCE),
        ]
        with TrackStore("test", tmp_path / "tracks") as store:
            importer = AISImporter(store, reference["mmsi"])
            assert importer.import_rows(rows) == 1
            (count,) = store.shards.live.conn.execute("SELECT COUNT(*) FROM positions").fetchone()

        assert count == 1
        assert importer.stats["out_of_range"] == 1
