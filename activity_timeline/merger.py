"""Merging adjacent segments at the same place (GPS dropout tolerance)."""

from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from activity_timeline.models import LocationSegment
from activity_timeline.segmentation import segment_confidence

DEFAULT_MERGE_GAP_MS = 5 * 60 * 1000


def _merge_pair(a: LocationSegment, b: LocationSegment) -> LocationSegment:
    n = a.sample_count + b.sample_count
    if n > 0:
        lat = (a.centroid_lat * a.sample_count + b.centroid_lat * b.sample_count) / n
        lng = (a.centroid_lng * a.sample_count + b.centroid_lng * b.sample_count) / n
    else:
        lat, lng = a.centroid_lat, a.centroid_lng
    confidence = segment_confidence(n, 1.0)
    return replace(
        a,
        end_ms=max(a.end_ms, b.end_ms),
        centroid_lat=lat,
        centroid_lng=lng,
        sample_count=n,
        confidence=confidence,
        match_ratio=1.0,
        meta={**a.meta, "sample_count": n, "confidence": confidence},
    )


def merge_adjacent_segments(
    segments: Sequence[LocationSegment],
    max_gap_ms: int = DEFAULT_MERGE_GAP_MS,
) -> list[LocationSegment]:
    """Merge consecutive same-place segments separated by at most ``max_gap_ms``.

    The merged segment keeps the first segment's ``source_id`` and start, so
    merging an already-merged sequence is a no-op. Commute segments are never
    merged.

    Args:
        segments: Segments in any order.
        max_gap_ms: Largest tolerated gap between one segment's end and the next start.

    Returns:
        Segments sorted by start.
    """

    if max_gap_ms < 0:
        raise ValueError(f"max_gap_ms must be >= 0, got {max_gap_ms}")

    ordered = sorted(segments, key=lambda s: s.start_ms)
    if not ordered:
        return []

    merged: list[LocationSegment] = [ordered[0]]
    for seg in ordered[1:]:
        cur = merged[-1]
        if (
            not cur.is_commute
            and not seg.is_commute
            and seg.place_id == cur.place_id
            and seg.start_ms - cur.end_ms <= max_gap_ms
        ):
            merged[-1] = _merge_pair(cur, seg)
        else:
            merged.append(seg)
    return merged
