#!/usr/bin/env python3
"""
AIS Position Backfill

Reads raw NMEA sentences captured into a raw_messages table
(id, timestamp TEXT ISO-8601, nmea TEXT), decodes them with pyais and
appends the position reports of one MMSI, the own vessel, to the live
track shard.

Usage:
    vessel-tracks-import-ais --source ais-data.db --mmsi 230099999 --data-dir /var/lib/tracks
    vessel-tracks-import-ais --source ais-data.db --mmsi 230099999 --data-dir ./data --since 2024-06-01
"""

import argparse
import sqlite3
import time
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pyais import decode
from pyais.exceptions import InvalidNMEAMessageException

from .store import TrackStore

DEFAULT_BATCH_SIZE = 1000

# Message types that contain position data
POSITION_TYPES = {1, 2, 3, 18, 19, 27}

# AIS "not available" markers
LAT_NOT_AVAILABLE = 91.0
LON_NOT_AVAILABLE = 181.0

MAX_LAT = 90.0
MAX_LON = 180.0


def parse_timestamp_ms(value: str) -> int:
    """ISO-8601 capture timestamp to epoch milliseconds (naive means UTC)."""
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


class SentenceAssembler:
    """Collects the fragments of multi-sentence AIS messages."""

    def __init__(self):
        self.pending: Dict[Tuple[str, str, int], Dict[int, str]] = {}

    def add(self, nmea: str) -> Optional[List[str]]:
        """Returns all sentences of a message once its last fragment arrives."""
        fields = nmea.split(",")
        if len(fields) < 7:
            return None
        try:
            total = int(fields[1])
            number = int(fields[2])
        except ValueError:
            return None

        if total == 1:
            return [nmea]

        key = (fields[3], fields[4], total)
        parts = self.pending.setdefault(key, {})
        parts[number] = nmea
        if len(parts) < total:
            return None

        del self.pending[key]
        return [parts[i] for i in sorted(parts)]

    def incomplete(self) -> int:
        return len(self.pending)


class AISImporter:
    """Decodes captured AIS messages and stores own-vessel positions."""

    def __init__(self, store: TrackStore, mmsi: int, batch_size: int = DEFAULT_BATCH_SIZE):
        self.store = store
        self.mmsi = mmsi
        self.batch_size = batch_size
        self.assembler = SentenceAssembler()
        self.stats = defaultdict(int)

    def position_from(self, sentences: List[str]) -> Optional[Tuple[float, float]]:
        """Decode one message; (lat, lon) if it is a usable position report of our MMSI."""
        try:
            data = decode(*sentences).asdict()
        except InvalidNMEAMessageException:
            self.stats["invalid_nmea"] += 1
            return None
        except Exception:
            self.stats["decode_error"] += 1
            return None

        if data.get("msg_type") not in POSITION_TYPES:
            self.stats["other"] += 1
            return None
        if data.get("mmsi") != self.mmsi:
            self.stats["other_vessels"] += 1
            return None

        lat = data.get("lat")
        lon = data.get("lon")
        if lat is None or lon is None or lat == LAT_NOT_AVAILABLE or lon == LON_NOT_AVAILABLE:
            self.stats["no_position"] += 1
            return None
        # Corrupt payloads can decode to anything the bit field holds
        if abs(lat) > MAX_LAT or abs(lon) > MAX_LON:
            self.stats["out_of_range"] += 1
            return None
        return lat, lon

    def import_rows(self, rows) -> int:
        """Import (timestamp, nmea) rows in capture order. Returns positions stored."""
        stored = 0
        for timestamp, nmea in rows:
            sentences = self.assembler.add(nmea.strip())
            if sentences is None:
                continue
            position = self.position_from(sentences)
            if position is None:
                continue
            self.store.insert_position(self.store.self_context, position, parse_timestamp_ms(timestamp))
            stored += 1
        self.stats["positions"] += stored
        return stored

    def run(self, source: Path, since: Optional[str] = None) -> int:
        """Import every raw message in `source`, batch by batch."""
        conn = sqlite3.connect(str(source))
        try:
            last_id = 0
            total = 0
            while True:
                query = "SELECT id, timestamp, nmea FROM raw_messages WHERE id > ?"
                params: list = [last_id]
                if since:
                    query += " AND timestamp >= ?"
                    params.append(since)
                query += " ORDER BY id LIMIT ?"
                params.append(self.batch_size)

                rows = conn.execute(query, params).fetchall()
                if not rows:
                    break
                last_id = rows[-1][0]
                total += self.import_rows((ts, nmea) for _, ts, nmea in rows)
        finally:
            conn.close()

        self.stats["incomplete"] = self.assembler.incomplete()
        return total

    def print_stats(self):
        print("\nImport statistics:")
        for key, value in sorted(self.stats.items()):
            print(f"  {key}: {value}")


def main():
    parser = argparse.ArgumentParser(description="Backfill own-vessel positions from captured AIS")
    parser.add_argument("--source", type=Path, required=True, help="Capture database with raw_messages")
    parser.add_argument("--mmsi", type=int, required=True, help="Own vessel MMSI")
    parser.add_argument("--data-dir", type=Path, required=True, help="Track shard directory")
    parser.add_argument("--self-id", type=str, default=None, help="Own vessel id (default urn:mrn:imo:mmsi:<mmsi>)")
    parser.add_argument("--since", type=str, default=None, help="Only messages at or after this ISO timestamp")
    parser.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE, help="Messages per batch")
    args = parser.parse_args()

    if not args.source.exists():
        print(f"Error: Database not found: {args.source}")
        return 1

    self_id = args.self_id or f"urn:mrn:imo:mmsi:{args.mmsi}"
    start = time.time()
    with TrackStore(self_id, args.data_dir) as store:
        importer = AISImporter(store, args.mmsi, args.batch_size)
        total = importer.run(args.source, args.since)

    elapsed = time.time() - start
    importer.print_stats()
    print(f"\nStored {total} positions in {elapsed:.1f}s")
    return 0


if __name__ == "__main__":
    exit(main())
