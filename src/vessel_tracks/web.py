#!/usr/bin/env python3
"""
Vessel Track History - FastAPI Backend

Serves area queries over the track store: which parts of the own vessel's
history pass through a bounding box, or within a radius of its position.

Usage:
    vessel-tracks-web --data-dir /var/lib/tracks --self-id urn:mrn:imo:mmsi:230099999
"""

import argparse
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from .bbox import GeoBounds
from .errors import TrackStoreError
from .store import TrackStore

# Configuration (defaults, can be overridden via CLI)
DEFAULT_DATA_DIR = Path.cwd() / "data"
DATA_DIR = DEFAULT_DATA_DIR  # Will be set by main()
SELF_ID = "self"
MERGE_SHARDS = False

store: Optional[TrackStore] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open shards on startup, release them on shutdown"""
    global store
    store = TrackStore(SELF_ID, DATA_DIR, merge_shards=MERGE_SHARDS)
    yield
    store.close()
    store = None


app = FastAPI(title="Vessel Track History", lifespan=lifespan)

# Track responses can be large
app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store() -> TrackStore:
    if store is None:
        raise HTTPException(status_code=503, detail="Track store not open")
    return store


@app.get("/tracks")
def get_tracks(
    bbox: Optional[str] = Query(default=None, description="south,west,north,east in degrees"),
    radius: Optional[float] = Query(default=None, description="Radius in meters around lat/lon"),
    lat: Optional[float] = Query(default=None, description="Vessel latitude"),
    lon: Optional[float] = Query(default=None, description="Vessel longitude"),
):
    """Return simplified track segments inside the requested area.

    An explicit bbox wins; otherwise lat/lon and radius (default 1000 m)
    describe the area.
    """
    db = get_store()
    self_position = (lat, lon) if lat is not None and lon is not None else None
    try:
        bounds = GeoBounds.from_string(bbox) if bbox else None
        return db.query_tracks(bbox=bounds, radius=radius, self_position=self_position)
    except TrackStoreError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/positions/recent")
def get_recent_positions(
    context: str = Query(default="vessels.self"),
    minutes: int = Query(default=60, ge=1, description="Minutes of history"),
):
    """Return recent positions from the live shard"""
    db = get_store()
    positions = db.recent_positions(context, window_ms=minutes * 60 * 1000)
    return {"context": context, "positions": [list(p) for p in positions], "count": len(positions)}


@app.get("/shards")
def get_shards():
    """Return the open live shard and archives"""
    db = get_store()
    live = db.shards.live
    return {
        "live": str(live.path) if live else None,
        "archives": [shard.name for shard in db.shards.archives],
    }


def main():
    import sys
    import uvicorn

    parser = argparse.ArgumentParser(description="Vessel Track History")
    parser.add_argument("--data-dir", type=Path, default=DEFAULT_DATA_DIR, help="Shard directory")
    parser.add_argument("--self-id", type=str, default=SELF_ID, help="Own vessel id (context is vessels.<id>)")
    parser.add_argument("--merge-shards", action="store_true", help="Merge shard results by timestamp")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host to bind")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    module = sys.modules[__name__]
    module.DATA_DIR = args.data_dir
    module.SELF_ID = args.self_id
    module.MERGE_SHARDS = args.merge_shards
    print(f"Data directory: {args.data_dir}")
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
