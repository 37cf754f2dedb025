import pytest

from activity_timeline.app_usage import (
    calculate_app_breakdown,
    category_consensus,
    category_seconds,
    category_share,
    dominant_category,
    overlap_seconds,
    total_minutes,
    total_seconds,
)
from activity_timeline.models import AppSession, CategoryOverride

SEC = 1000


def _session(app_id: str, start_s: int, end_s: int, name: str | None = None, sid: str | None = None) -> AppSession:
    return AppSession(id=sid or f"{app_id}-{start_s}", app_id=app_id, display_name=name, start_ms=start_s * SEC, end_ms=end_s * SEC)


def test_overlap_seconds_clips_to_window() -> None:
    assert overlap_seconds(0, 100 * SEC, 50 * SEC, 200 * SEC) == 50
    assert overlap_seconds(0, 10 * SEC, 10 * SEC, 20 * SEC) == 0
    assert overlap_seconds(0, 1_500, 0, 10 * SEC) == 2
    assert overlap_seconds(0, 1_499, 0, 10 * SEC) == 1


def test_breakdown_sums_per_app_and_sorts_desc() -> None:
    sessions = [
        _session("Slack", 0, 600, name="Slack"),
        _session("Instagram", 600, 1500),
        _session("Slack", 1500, 2100),
        _session("Springboard", 2100, 3000),
    ]
    breakdown = calculate_app_breakdown(sessions, 0, 3600 * SEC)

    assert [(b.app_id, b.seconds, b.category) for b in breakdown] == [
        ("Slack", 1200, "work"),
        ("Instagram", 900, "social"),
    ]
    assert breakdown[0].display_name == "Slack"
    assert breakdown[1].display_name == "Instagram"
    assert total_seconds(breakdown) == 2100
    assert total_minutes(breakdown) == 35


def test_breakdown_respects_window_and_overrides() -> None:
    sessions = [_session("Slack", 0, 600), _session("Slack", 4000, 5000)]
    overrides = {"slack": CategoryOverride(category="social")}
    breakdown = calculate_app_breakdown(sessions, 300 * SEC, 3600 * SEC, overrides)
    assert len(breakdown) == 1
    assert breakdown[0].seconds == 300
    assert breakdown[0].category == "social"


def test_shares_and_consensus() -> None:
    sessions = [
        _session("Slack", 0, 1800),
        _session("Figma", 1800, 3000),
        _session("Instagram", 3000, 3600),
    ]
    breakdown = calculate_app_breakdown(sessions, 0, 3600 * SEC)
    assert category_seconds(breakdown) == {"work": 3000, "social": 600}
    assert dominant_category(breakdown) == "work"
    assert category_share(breakdown, "social") == pytest.approx(1 / 6)
    assert category_consensus(breakdown) == pytest.approx(5 / 6)


def test_empty_breakdown() -> None:
    assert dominant_category([]) is None
    assert category_share([], "work") == 0.0
    assert category_consensus([]) == 0.0
    assert total_minutes([]) == 0
