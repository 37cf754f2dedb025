"""Window orchestration: fetch evidence, segment, enrich, persist.

``generate_activity_segments`` is the end-to-end entry point for one window:

1. fetch samples, sessions, workouts, places and category overrides
   concurrently (each source isolated, bounded wait),
2. segment -> merge -> insert commutes,
3. enrich every location segment with app usage, health signals, an activity
   label and a confidence score,
4. fall back to one screen-only segment covering the window when there are
   sessions but no location segments.

Everything after the fetch is a pure function of the fetched evidence.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Mapping, Protocol, Sequence

from activity_timeline.activity import (
    ActivityContext,
    ConfidenceEvidence,
    build_health_context,
    calculate_confidence_score,
    infer_activity_type,
)
from activity_timeline.app_categories import CategoryOverrides
from activity_timeline.app_usage import (
    calculate_app_breakdown,
    category_consensus,
    session_overlaps,
    total_seconds,
)
from activity_timeline.commute import CommuteParams, insert_commutes
from activity_timeline.merger import DEFAULT_MERGE_GAP_MS, merge_adjacent_segments
from activity_timeline.models import (
    DEFAULT_TZ,
    ActivitySegment,
    AppSession,
    CategoryOverride,
    LocationSample,
    LocationSegment,
    SegmentEvidence,
    UserPlace,
    WorkoutInterval,
)
from activity_timeline.segmentation import SegmentationParams, generate_location_segments
from activity_timeline.timeutils import floor_to_hour_ms, local_hour, local_weekday, require_window

logger = logging.getLogger(__name__)

TOP_APPS_LIMIT = 5


@dataclass(frozen=True, slots=True)
class PipelineParams:
    """Parameters for one processing run."""

    tz_name: str = DEFAULT_TZ
    # Upper bound on the concurrent fetch; slower sources count as empty.
    fetch_timeout_s: float = 10.0
    segmentation: SegmentationParams = field(default_factory=SegmentationParams)
    commute: CommuteParams = field(default_factory=CommuteParams)
    merge_gap_ms: int = DEFAULT_MERGE_GAP_MS


class TimelineSources(Protocol):
    """Read-only upstream stores for one user."""

    def location_samples(self, user_id: str, start_ms: int, end_ms: int) -> Sequence[LocationSample]: ...

    def app_sessions(self, user_id: str, start_ms: int, end_ms: int) -> Sequence[AppSession]: ...

    def workouts(self, user_id: str, start_ms: int, end_ms: int) -> Sequence[WorkoutInterval]: ...

    def user_places(self, user_id: str) -> Sequence[UserPlace]: ...

    def category_overrides(self, user_id: str) -> Mapping[str, CategoryOverride]: ...


class SegmentSink(Protocol):
    """Downstream store keyed by segment id."""

    def delete_window(self, user_id: str, start_ms: int, end_ms: int) -> int: ...

    def upsert(self, rows: Sequence[Mapping[str, Any]]) -> int: ...


@dataclass(frozen=True, slots=True)
class WindowEvidence:
    """Everything fetched for one window. ``failed_sources`` lists sources that errored or timed out."""

    samples: tuple[LocationSample, ...] = ()
    sessions: tuple[AppSession, ...] = ()
    workouts: tuple[WorkoutInterval, ...] = ()
    places: tuple[UserPlace, ...] = ()
    overrides: Mapping[str, CategoryOverride] = field(default_factory=dict)
    failed_sources: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class WindowResult:
    location_segments: tuple[LocationSegment, ...]
    activity_segments: tuple[ActivitySegment, ...]


def fetch_window_evidence(
    sources: TimelineSources,
    user_id: str,
    start_ms: int,
    end_ms: int,
    timeout_s: float = 10.0,
) -> WindowEvidence:
    """Fetch all sources concurrently and wait at most ``timeout_s``.

    A source that raises or does not finish in time contributes nothing; the
    others are still used.
    """

    require_window(start_ms, end_ms)
    calls: dict[str, Callable[[], Any]] = {
        "samples": lambda: sources.location_samples(user_id, start_ms, end_ms),
        "sessions": lambda: sources.app_sessions(user_id, start_ms, end_ms),
        "workouts": lambda: sources.workouts(user_id, start_ms, end_ms),
        "places": lambda: sources.user_places(user_id),
        "overrides": lambda: sources.category_overrides(user_id),
    }

    executor = ThreadPoolExecutor(max_workers=len(calls), thread_name_prefix="fetch")
    try:
        futures: dict[str, Future[Any]] = {name: executor.submit(fn) for name, fn in calls.items()}
        done, _ = wait(futures.values(), timeout=timeout_s)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    results: dict[str, Any] = {}
    failed: list[str] = []
    for name, fut in futures.items():
        if fut not in done:
            logger.warning("Fetching %s for %s timed out after %.1fs; treating as empty", name, user_id, timeout_s)
            failed.append(name)
            continue
        try:
            results[name] = fut.result()
        except Exception as exc:
            logger.warning("Fetching %s for %s failed: %s; treating as empty", name, user_id, exc)
            failed.append(name)

    return WindowEvidence(
        samples=tuple(results.get("samples") or ()),
        sessions=tuple(results.get("sessions") or ()),
        workouts=tuple(results.get("workouts") or ()),
        places=tuple(results.get("places") or ()),
        overrides=dict(results.get("overrides") or {}),
        failed_sources=tuple(failed),
    )


def build_location_timeline(
    evidence: WindowEvidence,
    window_start_ms: int,
    window_end_ms: int,
    params: PipelineParams | None = None,
) -> list[LocationSegment]:
    """Segment -> merge -> commutes. Merging must run before commute insertion."""

    params = params or PipelineParams()
    segments = generate_location_segments(
        evidence.samples, evidence.places, window_start_ms, window_end_ms, params.segmentation
    )
    merged = merge_adjacent_segments(segments, params.merge_gap_ms)
    return insert_commutes(
        merged, evidence.samples, evidence.places, window_start_ms, window_end_ms, params.commute
    )


def segment_id(user_id: str, key: str) -> str:
    """Deterministic segment id so reprocessing upserts instead of duplicating."""

    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"activity-segment:{user_id}:{key}"))


def _enrich(
    user_id: str,
    seg: LocationSegment,
    sessions: Sequence[AppSession],
    workouts: Sequence[WorkoutInterval],
    places_by_id: Mapping[str, UserPlace],
    overrides: CategoryOverrides,
    tz_name: str,
) -> ActivitySegment:
    overlapping = [s for s in sessions if session_overlaps(s, seg.start_ms, seg.end_ms)]
    breakdown = calculate_app_breakdown(overlapping, seg.start_ms, seg.end_ms, overrides)
    health = build_health_context(workouts, seg.start_ms, seg.end_ms)

    place = places_by_id.get(seg.place_id) if seg.place_id else None
    place_category = "commute" if seg.is_commute else (place.category if place is not None else None)

    activity = infer_activity_type(
        ActivityContext(
            place_category=place_category,
            app_breakdown=breakdown,
            time_of_day=local_hour(seg.start_ms, tz_name),
            day_of_week=local_weekday(seg.start_ms, tz_name),
            health=health,
        )
    )
    confidence = calculate_confidence_score(
        ConfidenceEvidence(
            location_sample_count=seg.sample_count,
            screen_session_count=len(overlapping),
            place_match_ratio=seg.match_ratio,
            app_category_consensus=category_consensus(breakdown),
        )
    )
    return ActivitySegment(
        id=segment_id(user_id, seg.source_id),
        user_id=user_id,
        started_at_ms=seg.start_ms,
        ended_at_ms=seg.end_ms,
        hour_bucket_ms=floor_to_hour_ms(seg.start_ms),
        place_id=seg.place_id,
        place_label=seg.place_label,
        place_category=place_category,
        location_lat=seg.centroid_lat,
        location_lng=seg.centroid_lng,
        inferred_activity=activity,
        activity_confidence=confidence,
        top_apps=tuple(breakdown[:TOP_APPS_LIMIT]),
        total_screen_seconds=total_seconds(breakdown),
        evidence=SegmentEvidence(
            location_samples=seg.sample_count,
            screen_sessions=len(overlapping),
            has_health_data=health is not None,
        ),
        source_ids=(seg.source_id, *(s.id for s in overlapping)),
    )


def _screen_only_segment(
    user_id: str,
    evidence: WindowEvidence,
    window_start_ms: int,
    window_end_ms: int,
    tz_name: str,
) -> ActivitySegment | None:
    sessions = [s for s in evidence.sessions if session_overlaps(s, window_start_ms, window_end_ms)]
    breakdown = calculate_app_breakdown(sessions, window_start_ms, window_end_ms, evidence.overrides)
    if not breakdown:
        return None

    health = build_health_context(evidence.workouts, window_start_ms, window_end_ms)
    activity = infer_activity_type(
        ActivityContext(
            place_category=None,
            app_breakdown=breakdown,
            time_of_day=local_hour(window_start_ms, tz_name),
            day_of_week=local_weekday(window_start_ms, tz_name),
            health=health,
        )
    )
    confidence = calculate_confidence_score(
        ConfidenceEvidence(
            location_sample_count=0,
            screen_session_count=len(sessions),
            place_match_ratio=0.0,
            app_category_consensus=category_consensus(breakdown),
        )
    )
    return ActivitySegment(
        id=segment_id(user_id, f"screen:{window_start_ms}"),
        user_id=user_id,
        started_at_ms=window_start_ms,
        ended_at_ms=window_end_ms,
        hour_bucket_ms=floor_to_hour_ms(window_start_ms),
        place_id=None,
        place_label=None,
        place_category=None,
        location_lat=None,
        location_lng=None,
        inferred_activity=activity,
        activity_confidence=confidence,
        top_apps=tuple(breakdown[:TOP_APPS_LIMIT]),
        total_screen_seconds=total_seconds(breakdown),
        evidence=SegmentEvidence(
            location_samples=0,
            screen_sessions=len(sessions),
            has_health_data=health is not None,
        ),
        source_ids=tuple(s.id for s in sessions),
    )


def build_activity_segments(
    user_id: str,
    evidence: WindowEvidence,
    window_start_ms: int,
    window_end_ms: int,
    params: PipelineParams | None = None,
) -> WindowResult:
    """Pure part of the pipeline: evidence in, location and activity segments out."""

    require_window(window_start_ms, window_end_ms)
    params = params or PipelineParams()

    location_segments = build_location_timeline(evidence, window_start_ms, window_end_ms, params)
    if not location_segments:
        screen_only = _screen_only_segment(user_id, evidence, window_start_ms, window_end_ms, params.tz_name)
        return WindowResult(location_segments=(), activity_segments=(screen_only,) if screen_only else ())

    places_by_id = {p.id: p for p in evidence.places}
    activity_segments = tuple(
        _enrich(
            user_id,
            seg,
            evidence.sessions,
            evidence.workouts,
            places_by_id,
            evidence.overrides,
            params.tz_name,
        )
        for seg in location_segments
    )
    return WindowResult(location_segments=tuple(location_segments), activity_segments=activity_segments)


def generate_activity_segments(
    sources: TimelineSources,
    user_id: str,
    window_start_ms: int,
    window_end_ms: int,
    params: PipelineParams | None = None,
) -> list[ActivitySegment]:
    """Fetch and process one window. Empty sources give ``[]``, never an error."""

    params = params or PipelineParams()
    evidence = fetch_window_evidence(sources, user_id, window_start_ms, window_end_ms, params.fetch_timeout_s)
    result = build_activity_segments(user_id, evidence, window_start_ms, window_end_ms, params)
    logger.info(
        "Window %s-%s for %s: %s samples, %s sessions -> %s segments",
        window_start_ms,
        window_end_ms,
        user_id,
        len(evidence.samples),
        len(evidence.sessions),
        len(result.activity_segments),
    )
    return list(result.activity_segments)


def _iso(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000.0, tz=UTC).isoformat()


def activity_segment_to_row(segment: ActivitySegment) -> dict[str, Any]:
    """Persistence row (snake_case, UTC ISO timestamps, JSON-ready nested fields)."""

    return {
        "id": segment.id,
        "user_id": segment.user_id,
        "started_at": _iso(segment.started_at_ms),
        "ended_at": _iso(segment.ended_at_ms),
        "hour_bucket": _iso(segment.hour_bucket_ms),
        "place_id": segment.place_id,
        "place_label": segment.place_label,
        "place_category": segment.place_category,
        "location_lat": segment.location_lat,
        "location_lng": segment.location_lng,
        "inferred_activity": segment.inferred_activity,
        "activity_confidence": segment.activity_confidence,
        "top_apps": [asdict(app) for app in segment.top_apps],
        "total_screen_seconds": segment.total_screen_seconds,
        "evidence": asdict(segment.evidence),
        "source_ids": list(segment.source_ids),
    }


def reprocess_window(
    sink: SegmentSink,
    user_id: str,
    window_start_ms: int,
    window_end_ms: int,
    segments: Sequence[ActivitySegment],
) -> int:
    """Replace a window's stored segments: delete by window, then upsert by id."""

    require_window(window_start_ms, window_end_ms)
    deleted = sink.delete_window(user_id, window_start_ms, window_end_ms)
    written = sink.upsert([activity_segment_to_row(s) for s in segments])
    logger.info("Reprocessed window for %s: %s deleted, %s upserted", user_id, deleted, written)
    return written
