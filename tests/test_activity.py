import pytest

from activity_timeline.activity import (
    ActivityContext,
    ConfidenceEvidence,
    build_health_context,
    calculate_confidence_score,
    describe_activity,
    infer_activity_type,
    is_work_hours,
)
from activity_timeline.models import (
    ActivitySegment,
    AppBreakdownItem,
    HealthContext,
    SegmentEvidence,
    WorkoutInterval,
)

MONDAY = 0
SATURDAY = 5


def _apps(**minutes_by_category: float) -> list[AppBreakdownItem]:
    return [
        AppBreakdownItem(app_id=cat, display_name=cat, category=cat, seconds=int(m * 60))  # type: ignore[arg-type]
        for cat, m in minutes_by_category.items()
    ]


def _ctx(apps=(), place_category=None, hour=11, day=MONDAY, health=None) -> ActivityContext:
    return ActivityContext(
        place_category=place_category,
        app_breakdown=list(apps),
        time_of_day=hour,
        day_of_week=day,
        health=health,
    )


def test_health_signals_come_first() -> None:
    workout = HealthContext(has_workout=True, workout_type="running", is_sleeping=True)
    sleeping = HealthContext(has_workout=False, workout_type=None, is_sleeping=True)
    assert infer_activity_type(_ctx(_apps(work=60), "commute", health=workout)) == "workout"
    assert infer_activity_type(_ctx(_apps(work=60), "commute", health=sleeping)) == "sleep"


def test_commute_place_category() -> None:
    assert infer_activity_type(_ctx(_apps(work=60), "commute")) == "commute"


def test_work_rules() -> None:
    assert infer_activity_type(_ctx(_apps(work=45))) == "deep_work"
    assert infer_activity_type(_ctx(_apps(work=30))) != "deep_work"
    assert infer_activity_type(_ctx(_apps(work=50, comms=45))) == "collaborative_work"


def test_comms_rules() -> None:
    assert infer_activity_type(_ctx(_apps(comms=25))) == "meeting"
    assert infer_activity_type(_ctx(_apps(comms=15))) == "mixed_activity"


def test_entertainment_depends_on_work_hours() -> None:
    assert infer_activity_type(_ctx(_apps(entertainment=20), hour=11, day=MONDAY)) == "distracted_time"
    assert infer_activity_type(_ctx(_apps(entertainment=20), hour=20, day=MONDAY)) == "leisure"
    assert infer_activity_type(_ctx(_apps(entertainment=20), hour=11, day=SATURDAY)) == "leisure"


def test_social_rules() -> None:
    assert infer_activity_type(_ctx(_apps(social=40))) == "extended_social"
    assert infer_activity_type(_ctx(_apps(social=10))) == "social_break"


def test_low_screen_time_depends_on_place() -> None:
    assert infer_activity_type(_ctx(_apps(utility=2), "home")) == "personal_time"
    assert infer_activity_type(_ctx(_apps(utility=2), "work")) == "away_from_desk"
    assert infer_activity_type(_ctx((), "gym")) == "offline_activity"
    assert infer_activity_type(_ctx(_apps(utility=10), "home")) == "mixed_activity"


def test_is_work_hours() -> None:
    assert is_work_hours(9, 0)
    assert is_work_hours(17, 4)
    assert not is_work_hours(18, 0)
    assert not is_work_hours(8, 0)
    assert not is_work_hours(12, 6)


def test_health_context_from_workouts() -> None:
    intervals = [
        WorkoutInterval(id="w1", activity_type="Running", start_ms=0, end_ms=1000),
        WorkoutInterval(id="s1", activity_type="Sleep", start_ms=500, end_ms=5000),
    ]
    assert build_health_context(intervals, 6000, 7000) is None
    ctx = build_health_context(intervals, 0, 2000)
    assert ctx == HealthContext(has_workout=True, workout_type="Running", is_sleeping=True)
    sleep_only = build_health_context(intervals, 2000, 3000)
    assert sleep_only == HealthContext(has_workout=False, workout_type=None, is_sleeping=True)


def test_confidence_score_components() -> None:
    full = ConfidenceEvidence(location_sample_count=10, screen_session_count=5, place_match_ratio=1.0, app_category_consensus=1.0)
    assert calculate_confidence_score(full) == pytest.approx(1.0)

    mid = ConfidenceEvidence(location_sample_count=5, screen_session_count=2, place_match_ratio=0.5, app_category_consensus=0.5)
    assert calculate_confidence_score(mid) == pytest.approx(0.1 + 0.15 + 0.15)

    none = ConfidenceEvidence(location_sample_count=4, screen_session_count=1, place_match_ratio=1.0, app_category_consensus=0.0)
    assert calculate_confidence_score(none) == 0.0


def test_confidence_score_is_bounded() -> None:
    for n in (0, 5, 10, 100):
        for sessions in (0, 2, 5, 50):
            for ratio in (-1.0, 0.0, 0.5, 1.0, 3.0):
                for consensus in (0.0, 0.5, 1.0):
                    ev = ConfidenceEvidence(n, sessions, ratio, consensus)
                    assert 0.0 <= calculate_confidence_score(ev) <= 1.0


def _segment(activity: str, label: str | None, confidence: float, minutes: int) -> ActivitySegment:
    return ActivitySegment(
        id="s",
        user_id="u",
        started_at_ms=0,
        ended_at_ms=minutes * 60_000,
        hour_bucket_ms=0,
        place_id=None,
        place_label=label,
        place_category=None,
        location_lat=None,
        location_lng=None,
        inferred_activity=activity,  # type: ignore[arg-type]
        activity_confidence=confidence,
        top_apps=(),
        total_screen_seconds=0,
        evidence=SegmentEvidence(location_samples=0, screen_sessions=0, has_health_data=False),
        source_ids=(),
    )


def test_describe_activity() -> None:
    assert describe_activity(_segment("deep_work", "Work", 0.92, 60)) == "At Work - Deep Work (92% confidence)"
    assert describe_activity(_segment("commute", None, 0.5, 14)) == "Commute, 14 min"
    assert describe_activity(_segment("leisure", None, 0.4, 30)) == "Leisure (40% confidence)"
