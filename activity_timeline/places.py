"""Matching coordinates against the user's labeled places."""

from __future__ import annotations

from typing import Sequence

from activity_timeline.geo import haversine_m
from activity_timeline.models import DEFAULT_PLACE_RADIUS_M, InferredPlaceType, UserPlace


def effective_radius_m(place: UserPlace) -> float:
    """Configured radius, falling back to the default for missing/invalid values."""

    r = place.radius_m
    if r is None or r <= 0:
        return DEFAULT_PLACE_RADIUS_M
    return float(r)


def find_matching_place(
    lat: float,
    lon: float,
    places: Sequence[UserPlace],
    radius_factor: float = 1.0,
) -> UserPlace | None:
    """Nearest place whose radius contains the point.

    Args:
        lat: Latitude.
        lon: Longitude.
        places: Candidate places; those without coordinates are ignored.
        radius_factor: Multiplier applied to every radius (1.0 = strict match).

    Returns:
        The closest containing place (ties broken by minimum distance, then by
        input order), or None.
    """

    best: UserPlace | None = None
    best_distance = float("inf")
    for place in places:
        if place.latitude is None or place.longitude is None:
            continue
        distance = haversine_m(lat, lon, place.latitude, place.longitude)
        if distance <= effective_radius_m(place) * radius_factor and distance < best_distance:
            best = place
            best_distance = distance
    return best


def match_place_id(lat: float, lon: float, places: Sequence[UserPlace]) -> str | None:
    match = find_matching_place(lat, lon, places)
    return match.id if match is not None else None


def place_category_for_inferred_type(inferred_type: InferredPlaceType) -> str:
    """Map an inferred place type onto a user place category."""

    if inferred_type in ("home", "work"):
        return inferred_type
    return "other"
