from __future__ import annotations

from datetime import date, datetime, time, timedelta
from pathlib import Path

import streamlit as st

from activity_timeline.activity import describe_activity
from activity_timeline.app_usage import calculate_app_breakdown
from activity_timeline.csv_io import (
    load_app_sessions,
    load_category_overrides,
    load_location_samples,
    load_user_places,
    load_workouts,
)
from activity_timeline.gap_fill import build_location_blocks, fill_location_gaps
from activity_timeline.intent import classify_intent
from activity_timeline.models import DEFAULT_TZ, AppUsageSummary, LocationSample
from activity_timeline.pipeline import PipelineParams, WindowEvidence, build_activity_segments
from activity_timeline.place_inference import hourly_rows_from_samples, infer_places_from_history
from activity_timeline.segmentation import segment_title
from activity_timeline.timeutils import dt_from_epoch_ms, tzinfo_from_name


def _hhmm(epoch_ms: int, tz_name: str) -> str:
    return dt_from_epoch_ms(epoch_ms, tz_name).strftime("%H:%M")


def _day_to_epoch_ms(day: date, tz_name: str) -> tuple[int, int]:
    """Local day -> epoch-ms [start, end) in tz."""

    tz = tzinfo_from_name(tz_name)
    start_dt = datetime.combine(day, time.min).replace(tzinfo=tz)
    end_dt = datetime.combine(day + timedelta(days=1), time.min).replace(tzinfo=tz)
    return int(start_dt.timestamp() * 1000), int(end_dt.timestamp() * 1000)


def _mtime(path: str) -> float:
    p = Path(path)
    return p.stat().st_mtime if path and p.exists() else 0.0


@st.cache_data(show_spinner=False)
def _load_samples(path: str, tz_name: str, mtime: float) -> list[LocationSample]:
    _ = mtime  # part of cache key so updated files reload automatically
    return load_location_samples(path, tz_name)[0]


def _load_evidence(paths: dict[str, str], tz_name: str, start_ms: int, end_ms: int) -> WindowEvidence:
    samples = _load_samples(paths["samples"], tz_name, _mtime(paths["samples"])) if _mtime(paths["samples"]) else []
    sessions = load_app_sessions(paths["sessions"], tz_name)[0] if _mtime(paths["sessions"]) else []
    workouts = load_workouts(paths["workouts"], tz_name)[0] if _mtime(paths["workouts"]) else []
    places = load_user_places(paths["places"])[0] if _mtime(paths["places"]) else []
    overrides = load_category_overrides(paths["overrides"]) if _mtime(paths["overrides"]) else {}
    return WindowEvidence(
        samples=tuple(s for s in samples if start_ms <= s.recorded_at_ms < end_ms),
        sessions=tuple(s for s in sessions if s.start_ms < end_ms and s.end_ms > start_ms),
        workouts=tuple(w for w in workouts if w.start_ms < end_ms and w.end_ms > start_ms),
        places=tuple(places),
        overrides=overrides,
    )


def main() -> None:
    st.set_page_config(page_title="Activity timeline diagnostics", layout="wide")
    st.title("Activity timeline diagnostics")

    with st.sidebar:
        st.subheader("Data and time zone")
        tz_name = st.text_input("Time zone (IANA)", value=DEFAULT_TZ)
        paths = {
            "samples": st.text_input("Location samples CSV", value="sample_data/samples.csv"),
            "sessions": st.text_input("App sessions CSV", value="sample_data/sessions.csv"),
            "workouts": st.text_input("Workouts CSV", value="sample_data/workouts.csv"),
            "places": st.text_input("User places CSV", value="sample_data/places.csv"),
            "overrides": st.text_input("Category overrides CSV", value=""),
        }

        st.subheader("Window")
        today = datetime.now(tzinfo_from_name(tz_name)).date()
        day = st.date_input("Day", value=today)
        hours = st.slider("Hours (local)", min_value=0, max_value=24, value=(0, 24))

        with st.expander("Advanced parameters", expanded=False):
            merge_gap_minutes = st.number_input("Merge gap (minutes)", value=5.0, step=1.0)
            fill_gaps = st.checkbox("Carry locations across silent gaps", value=True)

    if not _mtime(paths["samples"]) and not _mtime(paths["sessions"]):
        st.error("Neither samples nor sessions CSV found. Generate demo data with scripts/generate_sample_day.py.")
        return
    if hours[0] >= hours[1]:
        st.error("The window must be at least one hour long.")
        return

    day_start, _ = _day_to_epoch_ms(day, tz_name)
    start_ms = day_start + hours[0] * 3_600_000
    end_ms = day_start + hours[1] * 3_600_000

    try:
        evidence = _load_evidence(paths, tz_name, start_ms, end_ms)
        params = PipelineParams(tz_name=tz_name, merge_gap_ms=int(merge_gap_minutes * 60_000))
        result = build_activity_segments("viewer", evidence, start_ms, end_ms, params)
    except Exception as exc:
        st.exception(exc)
        return

    st.subheader("Summary")
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Location samples", str(len(evidence.samples)))
    c2.metric("App sessions", str(len(evidence.sessions)))
    c3.metric("Location segments", str(len(result.location_segments)))
    c4.metric("Activity segments", str(len(result.activity_segments)))

    st.subheader("Activity segments")
    st.dataframe(
        [
            {
                "start": _hhmm(s.started_at_ms, tz_name),
                "end": _hhmm(s.ended_at_ms, tz_name),
                "description": describe_activity(s),
                "activity": s.inferred_activity,
                "confidence": round(s.activity_confidence, 2),
                "place_category": s.place_category,
                "screen_min": round(s.total_screen_seconds / 60.0, 1),
                "top_apps": ", ".join(f"{a.display_name} ({a.seconds}s)" for a in s.top_apps),
            }
            for s in result.activity_segments
        ],
        use_container_width=True,
    )

    with st.expander("Location segments", expanded=False):
        st.dataframe(
            [
                {
                    "start": _hhmm(s.start_ms, tz_name),
                    "end": _hhmm(s.end_ms, tz_name),
                    "title": segment_title(s),
                    "samples": s.sample_count,
                    "confidence": round(s.confidence, 2),
                    "match_ratio": round(s.match_ratio, 2),
                    "annotation": s.meta.get("travel_annotation", ""),
                    "movement": s.meta.get("movement_type", ""),
                    "source_id": s.source_id,
                }
                for s in result.location_segments
            ],
            use_container_width=True,
        )

    st.subheader("Location blocks")
    blocks = build_location_blocks(result.activity_segments, result.location_segments)
    if fill_gaps:
        blocks = fill_location_gaps(blocks)
    st.dataframe(
        [
            {
                "start": _hhmm(b.start_ms, tz_name),
                "end": _hhmm(b.end_ms, tz_name),
                "kind": b.kind,
                "location": b.location_label,
                "minutes": b.duration_minutes,
                "activity": b.dominant_activity,
                "confidence": round(b.confidence, 2),
                "carried_forward": b.is_carried_forward,
            }
            for b in blocks
        ],
        use_container_width=True,
    )

    st.subheader("Screen-time intent for the window")
    breakdown = calculate_app_breakdown(evidence.sessions, start_ms, end_ms, evidence.overrides)
    intent = classify_intent([AppUsageSummary(a.app_id, a.seconds, a.category) for a in breakdown])
    st.metric("Intent", intent.intent)
    st.caption(intent.reasoning)

    with st.expander("Place suggestions from all loaded samples", expanded=False):
        all_samples = _load_samples(paths["samples"], tz_name, _mtime(paths["samples"])) if _mtime(paths["samples"]) else []
        inference = infer_places_from_history(hourly_rows_from_samples(all_samples, evidence.places), tz_name)
        st.dataframe(
            [
                {
                    "type": p.inferred_type,
                    "label": p.suggested_label,
                    "confidence": round(p.confidence, 2),
                    "reasoning": p.reasoning,
                    "cell": p.cell_key,
                }
                for p in inference.inferred_places
            ],
            use_container_width=True,
        )

    st.caption(
        "The window is [start hour, end hour) of the selected local day. "
        "Segments are recomputed from the CSV files on every change; nothing is written back."
    )


if __name__ == "__main__":
    main()
