"""
Bounding box resolution for track queries.

A query names its area either with an explicit rectangle or with a center
point and a radius in meters. Both are turned into a GeoBounds here.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import InvalidPosition, InvalidRadius, MissingQueryBounds

EARTH_RADIUS_M = 6371 * 1000

LatLon = Tuple[float, float]


@dataclass(frozen=True)
class GeoBounds:
    """
    Axis-aligned lat/lon rectangle.

    sw.lon > ne.lon means the rectangle crosses the antimeridian.
    """
    sw: LatLon
    ne: LatLon

    @classmethod
    def from_string(cls, value: str) -> "GeoBounds":
        """Parse "south,west,north,east" in degrees."""
        parts = value.split(",")
        if len(parts) != 4:
            raise MissingQueryBounds(f"Expected 'south,west,north,east', got {value!r}")
        try:
            south, west, north, east = (float(p) for p in parts)
        except ValueError:
            raise MissingQueryBounds(f"Non-numeric bbox {value!r}") from None
        for lat in (south, north):
            if not -90.0 <= lat <= 90.0:
                raise InvalidPosition(f"Latitude {lat} out of range")
        for lon in (west, east):
            if not -180.0 <= lon <= 180.0:
                raise InvalidPosition(f"Longitude {lon} out of range")
        return cls(sw=(south, west), ne=(north, east))

    @property
    def crosses_antimeridian(self) -> bool:
        return self.sw[1] > self.ne[1]

    @property
    def is_degenerate(self) -> bool:
        return self.sw[0] == self.ne[0] and self.sw[1] == self.ne[1]


def world_bounds() -> GeoBounds:
    return GeoBounds(sw=(-90.0, -180.0), ne=(90.0, 180.0))


def bounds_from_center(center: LatLon, radius: float) -> GeoBounds:
    """
    Rectangle enclosing a circle of `radius` meters around `center`.

    Returns the whole world when the latitude band would pass a pole.
    """
    if radius is None or not math.isfinite(radius) or radius <= 0:
        raise InvalidRadius(f"Radius must be a positive number of meters, got {radius!r}")

    lat, lon = center
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        raise InvalidPosition(f"Center ({lat}, {lon}) out of range")

    lat_rad = math.radians(lat)
    lon_rad = math.radians(lon)
    angular_radius = radius / EARTH_RADIUS_M

    min_lat = lat_rad - angular_radius
    max_lat = lat_rad + angular_radius

    if max_lat > math.pi / 2 or min_lat < -math.pi / 2:
        return world_bounds()

    delta_lon = math.asin(min(1.0, math.sin(angular_radius) / math.cos(lat_rad)))

    min_lon = lon_rad - delta_lon
    max_lon = lon_rad + delta_lon

    # Wrap around the antimeridian
    if min_lon < -math.pi:
        min_lon += 2 * math.pi
    if max_lon > math.pi:
        max_lon -= 2 * math.pi

    return GeoBounds(
        sw=(math.degrees(min_lat), math.degrees(min_lon)),
        ne=(math.degrees(max_lat), math.degrees(max_lon)),
    )


def resolve(
    bbox: Optional[GeoBounds] = None,
    center: Optional[LatLon] = None,
    radius: Optional[float] = None,
) -> GeoBounds:
    """
    Resolve a query area to a rectangle.

    Exactly one of `bbox` or `center` must be given. An explicit bbox is
    returned unchanged; a center is widened by `radius` meters.
    """
    if bbox is not None and center is not None:
        raise MissingQueryBounds("Give either bbox or center, not both")
    if bbox is not None:
        return bbox
    if center is None:
        raise MissingQueryBounds("Track query needs a bbox or a center and radius")
    if radius is None:
        raise MissingQueryBounds("Center given without a radius")
    return bounds_from_center(center, radius)
