"""Location segmentation: group time-ordered GPS samples into place blocks.

Segmentation runs in two passes:

1. Grouping. Samples are walked in time order and matched against the user's
   places. Consecutive samples with the same matched place (or consecutive
   unmatched samples) form one group.
2. Consensus. Each finished group is re-matched and keeps a place only if at
   least ``match_threshold`` of its samples match it; otherwise it becomes
   "unknown".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from activity_timeline.geo import centroid, valid_samples
from activity_timeline.models import LocationSample, LocationSegment, UserPlace
from activity_timeline.places import find_matching_place
from activity_timeline.timeutils import require_window

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SegmentationParams:
    """Parameters controlling segmentation."""

    # Minimum share of a group's samples that must match a place for the group to keep it.
    match_threshold: float = 0.7


@dataclass(slots=True)
class _SampleGroup:
    place: UserPlace | None
    samples: list[LocationSample] = field(default_factory=list)

    @property
    def place_id(self) -> str | None:
        return self.place.id if self.place is not None else None


def make_source_id(window_start_ms: int, place_id: str | None, segment_start_ms: int) -> str:
    """Deterministic id: location:{windowStartMs}:{placeId|unknown}:{segmentStartMs}."""

    return f"location:{window_start_ms}:{place_id or 'unknown'}:{segment_start_ms}"


def segment_confidence(sample_count: int, match_ratio: float, threshold: float = 0.7) -> float:
    """Confidence from sample density plus a bonus for strong place agreement.

    The count part grows from 0.3 to 0.6 over the first ten samples. The match
    bonus starts at 0.1 at the threshold and reaches its 0.4 cap at full
    agreement; below the threshold there is no bonus.
    """

    count_part = min(0.6, 0.3 + (sample_count / 10.0) * 0.3)
    bonus = 0.0
    if match_ratio >= threshold:
        span = 1.0 - threshold
        bonus = min(0.4, 0.1 + ((match_ratio - threshold) / span) * 0.4) if span > 0 else 0.4
    return max(0.0, min(1.0, count_part + bonus))


def resolve_group_place(
    samples: Sequence[LocationSample],
    places: Sequence[UserPlace],
    threshold: float = 0.7,
) -> tuple[UserPlace | None, float]:
    """Strictly re-match every sample and apply the consensus rule.

    Returns:
        (place, match_ratio). ``place`` is None when no place (including
        "unknown") reaches the threshold share, or when "unknown" itself
        dominates. ``match_ratio`` is the dominant share either way.
    """

    if not samples:
        return None, 0.0

    counts: dict[str | None, int] = {None: 0}
    by_id: dict[str, UserPlace] = {}
    for s in samples:
        if not s.has_coordinates:
            counts[None] += 1
            continue
        match = find_matching_place(s.latitude, s.longitude, places)  # type: ignore[arg-type]
        key = match.id if match is not None else None
        if match is not None:
            by_id[match.id] = match
        counts[key] = counts.get(key, 0) + 1

    dominant: str | None = None
    best = 0
    for key, n in counts.items():
        if n > best:
            best = n
            dominant = key

    ratio = best / len(samples)
    if ratio >= threshold and dominant is not None:
        return by_id[dominant], ratio
    return None, ratio


def _group_samples(samples: Sequence[LocationSample], places: Sequence[UserPlace]) -> list[_SampleGroup]:
    groups: list[_SampleGroup] = []
    current: _SampleGroup | None = None

    for s in samples:
        match = find_matching_place(s.latitude, s.longitude, places)  # type: ignore[arg-type]
        match_id = match.id if match is not None else None

        if current is None:
            current = _SampleGroup(place=match, samples=[s])
            continue
        if match_id == current.place_id:
            current.samples.append(s)
            continue

        groups.append(current)
        current = _SampleGroup(place=match, samples=[s])

    if current is not None and current.samples:
        groups.append(current)
    return groups


def generate_location_segments(
    samples: Iterable[LocationSample],
    places: Sequence[UserPlace],
    window_start_ms: int,
    window_end_ms: int,
    params: SegmentationParams | None = None,
) -> list[LocationSegment]:
    """Build location segments for one processing window.

    Args:
        samples: Raw samples (any order; samples without coordinates are skipped).
        places: The user's labeled places.
        window_start_ms: Window start, used for clamping and deterministic ids.
        window_end_ms: Window end (exclusive), used for clamping.
        params: Segmentation parameters.

    Returns:
        Segments in time order. Segments whose clamped interval is empty are dropped.

    Raises:
        ValueError: If the window is empty or inverted.
    """

    require_window(window_start_ms, window_end_ms)
    params = params or SegmentationParams()

    pts = valid_samples(samples)
    if not pts:
        return []

    segments: list[LocationSegment] = []
    for group in _group_samples(pts, places):
        place, ratio = resolve_group_place(group.samples, places, params.match_threshold)
        place_id = place.id if place is not None else None
        if place_id != group.place_id:
            logger.debug(
                "Group of %s samples formed around %s finalized as %s (match ratio %.2f)",
                len(group.samples),
                group.place_id or "unknown",
                place_id or "unknown",
                ratio,
            )

        start_ms = max(group.samples[0].recorded_at_ms, window_start_ms)
        end_ms = min(group.samples[-1].recorded_at_ms, window_end_ms)
        if start_ms >= end_ms:
            continue

        lat, lng = centroid(group.samples)
        n = len(group.samples)
        confidence = segment_confidence(n, ratio, params.match_threshold)
        label = place.label if place is not None else None
        segments.append(
            LocationSegment(
                source_id=make_source_id(window_start_ms, place_id, start_ms),
                start_ms=start_ms,
                end_ms=end_ms,
                place_id=place_id,
                place_label=label,
                centroid_lat=lat,
                centroid_lng=lng,
                sample_count=n,
                confidence=confidence,
                match_ratio=ratio,
                meta={
                    "kind": "location_block",
                    "place_id": place_id,
                    "place_label": label,
                    "sample_count": n,
                    "confidence": confidence,
                },
            )
        )

    return segments


def segment_title(segment: LocationSegment) -> str:
    if segment.is_commute:
        return "Commute"
    if segment.place_label:
        return f"At {segment.place_label}"
    return "Unknown Location"
