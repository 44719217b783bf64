#!/usr/bin/env python3
"""
Track Shard Setup

Creates the live shard (positions table and cell index) in a data directory
and reports which archive shards next to it would be accepted.
Safe to run multiple times (idempotent).

Usage:
    vessel-tracks-migrate --data-dir /var/lib/tracks
"""

import argparse
import sqlite3
from pathlib import Path

from .errors import SchemaMismatch
from .shards import DEFAULT_DB_NAME, discover_archives, open_archive, open_live


def check_archives(data_dir: Path, live_path: Path) -> dict:
    """Validate every archive in `data_dir`. Returns {file name: problem or None}."""
    report = {}
    for path in discover_archives(data_dir, live_path):
        try:
            shard = open_archive(path)
        except SchemaMismatch as e:
            report[path.name] = f"schema mismatch {list(e.found)}"
            continue
        except sqlite3.Error as e:
            report[path.name] = f"unreadable: {e}"
            continue
        shard.conn.close()
        report[path.name] = None
    return report


def migrate(data_dir: Path, db_name: str = DEFAULT_DB_NAME) -> dict:
    """Create the live shard and check archives."""
    print(f"Preparing track shards in: {data_dir}")
    data_dir.mkdir(parents=True, exist_ok=True)

    live_path = data_dir / db_name
    print(f"  Creating positions table in {live_path.name}...")
    live = open_live(live_path)
    count = live.conn.execute("SELECT COUNT(*) FROM positions").fetchone()[0]
    live.conn.close()
    print(f"  {live_path.name}: {count} positions")

    report = check_archives(data_dir, live_path)
    if report:
        print("\nArchives:")
    for name, problem in report.items():
        if problem is None:
            print(f"  {name}: ok")
        else:
            print(f"  {name}: SKIPPED ({problem})")

    accepted = sum(1 for p in report.values() if p is None)
    print(f"\n{accepted} of {len(report)} archive(s) usable")
    return report


def main():
    parser = argparse.ArgumentParser(description="Track shard setup")
    parser.add_argument("--data-dir", type=Path, required=True, help="Shard directory")
    parser.add_argument("--db-name", type=str, default=DEFAULT_DB_NAME, help="Live shard file name")
    args = parser.parse_args()

    migrate(args.data_dir, args.db_name)
    return 0


if __name__ == "__main__":
    exit(main())
