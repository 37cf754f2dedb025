"""Geospatial utilities: distances, centroids and spatial cell keys."""

from __future__ import annotations

import math
from typing import Iterable, Sequence

import pygeohash as pgh

from activity_timeline.models import LocationSample


EARTH_RADIUS_M = 6_371_000.0  # mean Earth radius in meters
DEFAULT_CELL_PRECISION = 7  # ~150m cells


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute Haversine distance in meters between two lat/lon points.

    Args:
        lat1: Latitude 1 in degrees.
        lon1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lon2: Longitude 2 in degrees.

    Returns:
        Distance in meters.
    """

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def is_inside_circle(
    lat: float,
    lon: float,
    center_lat: float,
    center_lon: float,
    radius_m: float,
) -> bool:
    """Check whether a point is inside or on the boundary of a circle."""

    return haversine_m(lat, lon, center_lat, center_lon) <= radius_m


def valid_samples(samples: Iterable[LocationSample]) -> list[LocationSample]:
    """Drop samples without finite coordinates and sort the rest by time."""

    return sorted((s for s in samples if s.has_coordinates), key=lambda s: s.recorded_at_ms)


def centroid(samples: Sequence[LocationSample]) -> tuple[float, float]:
    """Arithmetic mean of the valid coordinates; (0.0, 0.0) if there are none."""

    lat_sum = 0.0
    lon_sum = 0.0
    n = 0
    for s in samples:
        if not s.has_coordinates:
            continue
        lat_sum += s.latitude  # type: ignore[operator]
        lon_sum += s.longitude  # type: ignore[operator]
        n += 1
    if n == 0:
        return 0.0, 0.0
    return lat_sum / n, lon_sum / n


def path_length_m(samples: Sequence[LocationSample]) -> float:
    """Sum of consecutive Haversine hops over time-ordered valid samples."""

    pts = [s for s in samples if s.has_coordinates]
    total = 0.0
    for prev, cur in zip(pts, pts[1:]):
        total += haversine_m(prev.latitude, prev.longitude, cur.latitude, cur.longitude)  # type: ignore[arg-type]
    return total


def cell_key(lat: float, lon: float, precision: int = DEFAULT_CELL_PRECISION) -> str:
    """Fixed-precision spatial cell identifier (geohash)."""

    return pgh.encode(lat, lon, precision=precision)


def cell_center(key: str) -> tuple[float, float]:
    """Center (lat, lon) of a spatial cell."""

    lat, lon = pgh.decode(key)
    return float(lat), float(lon)
