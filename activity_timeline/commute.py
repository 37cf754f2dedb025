"""Commute detection in the gaps between place segments."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from activity_timeline.geo import centroid, path_length_m, valid_samples
from activity_timeline.models import (
    CommuteDetectionResult,
    LocationSample,
    LocationSegment,
    MovementType,
    UserPlace,
)
from activity_timeline.places import find_matching_place
from activity_timeline.segmentation import segment_confidence
from activity_timeline.timeutils import format_minutes, require_window

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommuteParams:
    """Parameters controlling commute detection."""

    # Total path length that counts as movement even without a place change.
    min_path_m: float = 200.0
    # Movement lasting at least this long becomes its own segment.
    long_commute_ms: int = 10 * 60 * 1000
    # A short commute annotates the segment starting within this distance of the gap end.
    annotation_window_ms: int = 5 * 60 * 1000


def movement_type_for_speed(distance_m: float, duration_ms: int) -> MovementType:
    """Classify movement by average speed (m/s)."""

    speed = distance_m / (duration_ms / 1000.0) if duration_ms > 0 else 0.0
    if speed < 2.0:
        return "walking"
    if speed < 7.0:
        return "cycling"
    return "driving"


def detect_commute(
    samples: Iterable[LocationSample],
    gap_start_ms: int,
    gap_end_ms: int,
    places: Sequence[UserPlace],
    params: CommuteParams | None = None,
) -> CommuteDetectionResult:
    """Examine the samples of one gap for movement.

    The gap includes its boundary samples, so the last fix of the segment
    before and the first fix of the segment after take part in matching.

    Args:
        samples: The full raw sample stream (filtered to the gap here).
        gap_start_ms: Gap start.
        gap_end_ms: Gap end.
        places: The user's labeled places.
        params: Commute parameters.

    Returns:
        A zero-value result when the gap shows no movement.
    """

    params = params or CommuteParams()
    pts = [s for s in valid_samples(samples) if gap_start_ms <= s.recorded_at_ms <= gap_end_ms]
    if len(pts) < 2:
        return CommuteDetectionResult(is_commute=False)

    matched_ids: set[str | None] = set()
    from_place: UserPlace | None = None
    to_place: UserPlace | None = None
    for s in pts:
        match = find_matching_place(s.latitude, s.longitude, places)  # type: ignore[arg-type]
        matched_ids.add(match.id if match is not None else None)
        if match is not None:
            if from_place is None:
                from_place = match
            to_place = match

    distance = path_length_m(pts)
    if len(matched_ids) < 2 and distance < params.min_path_m:
        return CommuteDetectionResult(is_commute=False)

    duration = pts[-1].recorded_at_ms - pts[0].recorded_at_ms
    is_long = duration >= params.long_commute_ms
    annotation = None
    if not is_long:
        destination = to_place.label if to_place is not None else "destination"
        annotation = f"Traveled {format_minutes(duration)} min to {destination}"

    return CommuteDetectionResult(
        is_commute=True,
        duration_ms=duration,
        is_long_commute=is_long,
        travel_annotation=annotation,
        from_place=from_place,
        to_place=to_place,
        distance_meters=distance,
        samples=tuple(pts),
    )


def commute_segment(
    result: CommuteDetectionResult,
    window_start_ms: int,
    window_end_ms: int,
) -> LocationSegment | None:
    """Promote a detected commute to a standalone segment (None if it clamps to nothing)."""

    if not result.is_commute or not result.samples:
        return None

    start_ms = max(result.samples[0].recorded_at_ms, window_start_ms)
    end_ms = min(result.samples[-1].recorded_at_ms, window_end_ms)
    if start_ms >= end_ms:
        return None

    lat, lng = centroid(result.samples)
    n = len(result.samples)
    origin = result.from_place
    destination = result.to_place
    return LocationSegment(
        source_id=f"location:{window_start_ms}:commute:{start_ms}",
        start_ms=start_ms,
        end_ms=end_ms,
        place_id=None,
        place_label=None,
        centroid_lat=lat,
        centroid_lng=lng,
        sample_count=n,
        confidence=segment_confidence(n, 0.0),
        match_ratio=0.0,
        meta={
            "kind": "commute",
            "intent": "commute",
            "origin_place_id": origin.id if origin is not None else None,
            "origin_place_label": origin.label if origin is not None else None,
            "destination_place_id": destination.id if destination is not None else None,
            "destination_place_label": destination.label if destination is not None else None,
            "distance_m": round(result.distance_meters, 1),
            "duration_ms": result.duration_ms,
            "movement_type": movement_type_for_speed(result.distance_meters, result.duration_ms),
            "sample_count": n,
        },
    )


def attach_travel_annotation(
    segments: Sequence[LocationSegment],
    annotation: str,
    gap_start_ms: int,
    gap_end_ms: int,
    window_ms: int = 5 * 60 * 1000,
) -> list[LocationSegment]:
    """Attach a short-commute annotation to the nearest following segment.

    A candidate starts at or after the gap start and within ``window_ms`` of
    the gap end; the closest one wins. Without a candidate the annotation is
    dropped and the segments come back unchanged.
    """

    best_idx: int | None = None
    best_diff: int | None = None
    for i, seg in enumerate(segments):
        if seg.is_commute or seg.start_ms < gap_start_ms:
            continue
        diff = abs(seg.start_ms - gap_end_ms)
        if diff > window_ms:
            continue
        if best_diff is None or diff < best_diff:
            best_idx = i
            best_diff = diff

    out = list(segments)
    if best_idx is None:
        logger.debug("No segment near %s to carry %r; dropped", gap_end_ms, annotation)
        return out

    target = out[best_idx]
    out[best_idx] = replace(target, meta={**target.meta, "travel_annotation": annotation})
    return out


def _gaps(anchors: Sequence[LocationSegment], window_start_ms: int, window_end_ms: int) -> list[tuple[int, int]]:
    gaps: list[tuple[int, int]] = []
    if anchors[0].start_ms > window_start_ms:
        gaps.append((window_start_ms, anchors[0].start_ms))
    for prev, nxt in zip(anchors, anchors[1:]):
        if nxt.start_ms > prev.end_ms:
            gaps.append((prev.end_ms, nxt.start_ms))
    if window_end_ms > anchors[-1].end_ms:
        gaps.append((anchors[-1].end_ms, window_end_ms))
    return gaps


def insert_commutes(
    segments: Sequence[LocationSegment],
    samples: Iterable[LocationSample],
    places: Sequence[UserPlace],
    window_start_ms: int,
    window_end_ms: int,
    params: CommuteParams | None = None,
) -> list[LocationSegment]:
    """Detect commutes around place-anchored segments and fold them in.

    Gaps are taken between consecutive segments that have a place, and
    between the window edges and the first/last such segment. A long commute
    replaces any unknown segments lying inside its gap; a short one becomes a
    ``travel_annotation`` on the segment it arrives at. Run after merging.
    """

    require_window(window_start_ms, window_end_ms)
    params = params or CommuteParams()

    out = sorted(segments, key=lambda s: s.start_ms)
    anchors = [s for s in out if s.place_id is not None and not s.is_commute]
    if not anchors:
        return out

    pts = valid_samples(samples)
    for gap_start, gap_end in _gaps(anchors, window_start_ms, window_end_ms):
        result = detect_commute(pts, gap_start, gap_end, places, params)
        if not result.is_commute:
            continue

        if result.is_long_commute:
            seg = commute_segment(result, window_start_ms, window_end_ms)
            if seg is None:
                continue
            out = [
                s
                for s in out
                if s.place_id is not None or s.is_commute or not (s.start_ms >= gap_start and s.end_ms <= gap_end)
            ]
            out.append(seg)
            logger.debug(
                "Commute %s -> %s: %.0f m in %s min",
                seg.meta.get("origin_place_label") or "unknown",
                seg.meta.get("destination_place_label") or "unknown",
                result.distance_meters,
                format_minutes(result.duration_ms),
            )
        elif result.travel_annotation:
            out = attach_travel_annotation(
                out, result.travel_annotation, gap_start, gap_end, params.annotation_window_ms
            )

    return sorted(out, key=lambda s: s.start_ms)
