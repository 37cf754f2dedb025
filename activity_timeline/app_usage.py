"""Per-window app usage: overlap durations, category breakdowns and shares."""

from __future__ import annotations

from typing import Iterable, Sequence

from activity_timeline.app_categories import CategoryOverrides, get_app_category
from activity_timeline.models import AppBreakdownItem, AppCategory, AppSession


def overlap_seconds(start_ms: int, end_ms: int, window_start_ms: int, window_end_ms: int) -> int:
    """Seconds of [start, end) that fall inside [window_start, window_end), rounded."""

    overlap_ms = min(end_ms, window_end_ms) - max(start_ms, window_start_ms)
    if overlap_ms <= 0:
        return 0
    return int(overlap_ms / 1000 + 0.5)


def session_overlaps(session: AppSession, window_start_ms: int, window_end_ms: int) -> bool:
    return session.start_ms < window_end_ms and session.end_ms > window_start_ms


def calculate_app_breakdown(
    sessions: Iterable[AppSession],
    window_start_ms: int,
    window_end_ms: int,
    overrides: CategoryOverrides | None = None,
) -> list[AppBreakdownItem]:
    """Per-app seconds inside the window, without ``ignore`` apps, sorted by seconds desc.

    Sessions of the same app id are summed; the first non-empty display name wins.
    """

    usage: dict[str, list] = {}
    for session in sessions:
        seconds = overlap_seconds(session.start_ms, session.end_ms, window_start_ms, window_end_ms)
        if seconds <= 0:
            continue
        category = get_app_category(session.app_id, overrides)
        if category == "ignore":
            continue
        entry = usage.get(session.app_id)
        if entry is None:
            usage[session.app_id] = [session.display_name or session.app_id, category, seconds]
        else:
            entry[2] += seconds

    breakdown = [
        AppBreakdownItem(app_id=app_id, display_name=name, category=category, seconds=seconds)
        for app_id, (name, category, seconds) in usage.items()
    ]
    breakdown.sort(key=lambda item: item.seconds, reverse=True)
    return breakdown


def category_seconds(breakdown: Sequence[AppBreakdownItem]) -> dict[AppCategory, int]:
    totals: dict[AppCategory, int] = {}
    for item in breakdown:
        totals[item.category] = totals.get(item.category, 0) + item.seconds
    return totals


def total_seconds(breakdown: Sequence[AppBreakdownItem]) -> int:
    return sum(item.seconds for item in breakdown)


def total_minutes(breakdown: Sequence[AppBreakdownItem]) -> int:
    """Total screen minutes, rounded half up."""

    return int(total_seconds(breakdown) / 60 + 0.5)


def dominant_category(breakdown: Sequence[AppBreakdownItem]) -> AppCategory | None:
    """Category with the most seconds (first seen wins a tie); None when empty."""

    dominant: AppCategory | None = None
    best = 0
    for category, seconds in category_seconds(breakdown).items():
        if seconds > best:
            best = seconds
            dominant = category
    return dominant


def category_share(breakdown: Sequence[AppBreakdownItem], category: AppCategory) -> float:
    total = total_seconds(breakdown)
    if total == 0:
        return 0.0
    return sum(item.seconds for item in breakdown if item.category == category) / total


def category_consensus(breakdown: Sequence[AppBreakdownItem]) -> float:
    """Share of the dominant category, 0.0 for an empty breakdown."""

    total = total_seconds(breakdown)
    if total == 0:
        return 0.0
    return max(category_seconds(breakdown).values()) / total
