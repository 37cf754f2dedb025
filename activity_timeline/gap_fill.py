"""Location blocks for the timeline and carry-forward filling of silent gaps.

``build_location_blocks`` collapses consecutive activity segments at the same
place into one stationary block; each commute becomes its own travel block.

``fill_location_gaps`` then looks at the silent intervals between blocks. A
gap is filled with a carried-forward copy of the location only when

- both flanking blocks are stationary (movement always ends carry-forward),
- both have a meaningful label and resolve to the same location,
- the gap lasts between ``min_gap_ms`` and ``max_gap_ms``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence

from activity_timeline.geo import haversine_m
from activity_timeline.geocode import UNKNOWN_LOCATION, PlaceNameResolver
from activity_timeline.models import (
    HOUR_MS,
    ActivitySegment,
    ActivityType,
    HourlySummary,
    LocationBlock,
    LocationSegment,
    MovementType,
)
from activity_timeline.timeutils import format_minutes

logger = logging.getLogger(__name__)

SAME_PLACE_DISTANCE_M = 200.0
MEANINGLESS_LABELS = frozenset({"unknown location", "unknown", "location", "in transit"})


@dataclass(frozen=True, slots=True)
class GapFillParams:
    """Parameters controlling carry-forward."""

    min_gap_ms: int = 30 * 60 * 1000
    # Covers an overnight stay; longer silences are not trusted.
    max_gap_ms: int = 16 * HOUR_MS
    carried_confidence_factor: float = 0.6
    min_carried_confidence: float = 0.3


def _is_commute(seg: ActivitySegment) -> bool:
    return seg.inferred_activity == "commute" or seg.place_category == "commute"


def _same_place(a: ActivitySegment, b: ActivitySegment) -> bool:
    if _is_commute(a) or _is_commute(b):
        return False
    if a.place_id and b.place_id and a.place_id == b.place_id:
        return True
    if None not in (a.location_lat, a.location_lng, b.location_lat, b.location_lng):
        d = haversine_m(a.location_lat, a.location_lng, b.location_lat, b.location_lng)  # type: ignore[arg-type]
        return d < SAME_PLACE_DISTANCE_M
    return False


def _dominant_activity(segments: Sequence[ActivitySegment]) -> ActivityType | None:
    minutes: dict[ActivityType, int] = {}
    for seg in segments:
        minutes[seg.inferred_activity] = minutes.get(seg.inferred_activity, 0) + format_minutes(seg.duration_ms)
    dominant: ActivityType | None = None
    best = 0
    for activity, m in minutes.items():
        if m > best:
            best = m
            dominant = activity
    if dominant is None and segments:
        dominant = segments[0].inferred_activity
    return dominant


def _travel_label(movement: MovementType | None, destination: str | None) -> str:
    verb = {"walking": "Walking", "cycling": "Cycling", "driving": "Driving"}.get(movement or "", "Travel")
    if destination and destination != UNKNOWN_LOCATION:
        return f"{verb} to {destination}"
    return verb if movement else "In Transit"


def _build_block(
    group: Sequence[ActivitySegment],
    commute_meta: Mapping[str, Mapping],
    names: Mapping[tuple[float, float], str],
) -> LocationBlock:
    first = group[0]
    start_ms = min(s.started_at_ms for s in group)
    end_ms = max(s.ended_at_ms for s in group)
    total_ms = sum(s.duration_ms for s in group)
    confidence = (
        sum(s.activity_confidence * s.duration_ms for s in group) / total_ms if total_ms > 0 else 0.0
    )

    movement: MovementType | None = None
    distance: float | None = None
    if _is_commute(first):
        kind = "travel"
        metas = [commute_meta[sid] for s in group for sid in s.source_ids[:1] if sid in commute_meta]
        movement = next((m.get("movement_type") for m in metas if m.get("movement_type")), None)
        total_distance = sum(float(m.get("distance_m") or 0.0) for m in metas)
        distance = total_distance if total_distance > 0 else None
        destination = next((m.get("destination_place_label") for m in reversed(metas)), None)
        label = _travel_label(movement, destination)
    else:
        kind = "stationary"
        label = first.place_label or ""
        if not label and first.location_lat is not None and first.location_lng is not None:
            label = names.get((first.location_lat, first.location_lng), "")
        label = label or UNKNOWN_LOCATION

    return LocationBlock(
        id=first.id,
        kind=kind,
        location_label=label,
        location_category=first.place_category,
        place_id=first.place_id,
        latitude=first.location_lat,
        longitude=first.location_lng,
        start_ms=start_ms,
        end_ms=end_ms,
        confidence=confidence,
        total_location_samples=sum(s.evidence.location_samples for s in group),
        total_screen_seconds=sum(s.total_screen_seconds for s in group),
        dominant_activity=_dominant_activity(group),
        segment_ids=tuple(s.id for s in group),
        distance_m=distance,
        movement_type=movement,
    )


def build_location_blocks(
    segments: Sequence[ActivitySegment],
    location_segments: Sequence[LocationSegment] = (),
    resolver: PlaceNameResolver | None = None,
) -> list[LocationBlock]:
    """Group activity segments into timeline blocks.

    Args:
        segments: Activity segments (any order).
        location_segments: The location segments they were built from; commute
            distance and movement type are read from their ``meta``.
        resolver: Optional external-name resolver for stationary blocks
            without a place label.

    Returns:
        Blocks sorted by start.
    """

    if not segments:
        return []

    ordered = sorted(segments, key=lambda s: s.started_at_ms)
    commute_meta = {s.source_id: s.meta for s in location_segments if s.is_commute}

    groups: list[list[ActivitySegment]] = [[ordered[0]]]
    for prev, cur in zip(ordered, ordered[1:]):
        if _same_place(prev, cur):
            groups[-1].append(cur)
        else:
            groups.append([cur])

    names: dict[tuple[float, float], str] = {}
    if resolver is not None:
        unnamed = [
            (g[0].location_lat, g[0].location_lng)
            for g in groups
            if not _is_commute(g[0])
            and not g[0].place_label
            and g[0].location_lat is not None
            and g[0].location_lng is not None
        ]
        if unnamed:
            resolved = resolver.resolve(unnamed)  # type: ignore[arg-type]
            for lat, lng in unnamed:
                name = resolved.get(resolver.key_for(lat, lng))  # type: ignore[arg-type]
                if name:
                    names[(lat, lng)] = name  # type: ignore[index]

    return [_build_block(g, commute_meta, names) for g in groups]


def has_meaningful_location(block: LocationBlock) -> bool:
    label = (block.location_label or "").strip().lower()
    return bool(label) and label not in MEANINGLESS_LABELS


def _same_location(a: LocationBlock, b: LocationBlock) -> bool:
    if a.place_id and b.place_id:
        return a.place_id == b.place_id
    return a.location_label.strip().lower() == b.location_label.strip().lower()


def _screen_seconds_in(summaries: Sequence[HourlySummary], start_ms: int, end_ms: int) -> int:
    total = 0.0
    for s in summaries:
        overlap = min(end_ms, s.hour_start_ms + HOUR_MS) - max(start_ms, s.hour_start_ms)
        if overlap > 0:
            total += s.total_screen_seconds * overlap / HOUR_MS
    return int(total + 0.5)


def carried_forward_block(
    source: LocationBlock,
    gap_start_ms: int,
    gap_end_ms: int,
    summaries: Sequence[HourlySummary] = (),
    params: GapFillParams | None = None,
) -> LocationBlock:
    params = params or GapFillParams()
    return LocationBlock(
        id=f"{source.id}-carried-{gap_start_ms}",
        kind="stationary",
        location_label=source.location_label,
        location_category=source.location_category,
        place_id=source.place_id,
        latitude=source.latitude,
        longitude=source.longitude,
        start_ms=gap_start_ms,
        end_ms=gap_end_ms,
        confidence=max(params.min_carried_confidence, source.confidence * params.carried_confidence_factor),
        total_location_samples=0,
        total_screen_seconds=_screen_seconds_in(summaries, gap_start_ms, gap_end_ms),
        dominant_activity=source.dominant_activity,
        is_carried_forward=True,
    )


def fill_location_gaps(
    blocks: Sequence[LocationBlock],
    summaries: Sequence[HourlySummary] = (),
    params: GapFillParams | None = None,
) -> list[LocationBlock]:
    """Insert carried-forward blocks into silent gaps between same-location stationary blocks.

    Args:
        blocks: Finalized blocks (any order).
        summaries: Hourly screen-time totals used to fill ``total_screen_seconds``.
        params: Gap-fill parameters.

    Returns:
        The original blocks plus carried-forward blocks, sorted by start.
    """

    params = params or GapFillParams()
    ordered = sorted(blocks, key=lambda b: b.start_ms)
    out: list[LocationBlock] = []
    for i, block in enumerate(ordered):
        out.append(block)
        if i + 1 >= len(ordered):
            break
        nxt = ordered[i + 1]
        gap = nxt.start_ms - block.end_ms
        if gap < params.min_gap_ms or gap > params.max_gap_ms:
            continue
        if block.kind != "stationary" or nxt.kind != "stationary":
            logger.debug("Gap at %s borders travel; not carried forward", block.end_ms)
            continue
        if not (has_meaningful_location(block) and has_meaningful_location(nxt)):
            continue
        if not _same_location(block, nxt):
            logger.debug("Gap at %s: %r -> %r, location changed", block.end_ms, block.location_label, nxt.location_label)
            continue

        logger.debug("Carrying %r across %s min gap", block.location_label, format_minutes(gap))
        out.append(carried_forward_block(block, block.end_ms, nxt.start_ms, summaries, params))

    return sorted(out, key=lambda b: b.start_ms)
