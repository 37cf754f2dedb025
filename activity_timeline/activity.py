"""Activity classification and confidence scoring for one segment.

Classification is a fixed priority list; the first rule that applies wins:

1. health: an overlapping workout -> ``workout``; a sleep interval -> ``sleep``
2. place category ``commute`` -> ``commute``
3. dominant app category ``work`` with > 30 screen minutes -> ``deep_work``,
   or ``collaborative_work`` when comms take > 40% of the time
4. dominant ``comms`` with > 20 screen minutes -> ``meeting``
5. dominant ``entertainment`` -> ``distracted_time`` in weekday 9-18h, else ``leisure``
6. dominant ``social`` -> ``extended_social`` above 30 minutes, else ``social_break``
7. under 5 screen minutes -> ``personal_time`` at home, ``away_from_desk`` at
   work, ``offline_activity`` elsewhere
8. ``mixed_activity``
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from activity_timeline.app_usage import category_share, dominant_category, total_minutes
from activity_timeline.models import (
    ActivitySegment,
    ActivityType,
    AppBreakdownItem,
    HealthContext,
    WorkoutInterval,
)
from activity_timeline.timeutils import format_minutes

SLEEP_ACTIVITY_TYPES = frozenset({"sleep", "sleeping", "in_bed", "inbed", "asleep"})

WORK_DAY_START_HOUR = 9
WORK_DAY_END_HOUR = 18


@dataclass(frozen=True, slots=True)
class ActivityContext:
    """Everything the classifier looks at for one segment.

    Attributes:
        place_category: Category of the matched place, "commute" for commute segments, or None.
        app_breakdown: Per-app usage inside the segment.
        time_of_day: Local hour of the segment start (0-23).
        day_of_week: Local weekday of the segment start, Monday=0.
        health: Health signals overlapping the segment, if any.
    """

    place_category: str | None
    app_breakdown: Sequence[AppBreakdownItem]
    time_of_day: int
    day_of_week: int
    health: HealthContext | None = None


@dataclass(frozen=True, slots=True)
class ConfidenceEvidence:
    location_sample_count: int
    screen_session_count: int
    place_match_ratio: float
    app_category_consensus: float


def is_sleep_type(activity_type: str | None) -> bool:
    if not activity_type:
        return False
    return activity_type.strip().lower().replace(" ", "_") in SLEEP_ACTIVITY_TYPES


def build_health_context(
    workouts: Iterable[WorkoutInterval],
    start_ms: int,
    end_ms: int,
) -> HealthContext | None:
    """Health signals for [start, end); None when no interval overlaps."""

    overlapping = [w for w in workouts if w.start_ms < end_ms and w.end_ms > start_ms]
    if not overlapping:
        return None

    workout = next((w for w in overlapping if not is_sleep_type(w.activity_type)), None)
    return HealthContext(
        has_workout=workout is not None,
        workout_type=workout.activity_type if workout is not None else None,
        is_sleeping=any(is_sleep_type(w.activity_type) for w in overlapping),
    )


def is_work_hours(time_of_day: int, day_of_week: int) -> bool:
    """Weekday (Monday=0) between 9:00 and 18:00."""

    if day_of_week >= 5:
        return False
    return WORK_DAY_START_HOUR <= time_of_day < WORK_DAY_END_HOUR


def infer_activity_type(context: ActivityContext) -> ActivityType:
    health = context.health
    if health is not None and health.has_workout:
        return "workout"
    if health is not None and health.is_sleeping:
        return "sleep"

    if context.place_category == "commute":
        return "commute"

    breakdown = context.app_breakdown
    dominant = dominant_category(breakdown)
    minutes = total_minutes(breakdown)

    if dominant == "work" and minutes > 30:
        if category_share(breakdown, "comms") > 0.4:
            return "collaborative_work"
        return "deep_work"

    if dominant == "comms" and minutes > 20:
        return "meeting"

    if dominant == "entertainment":
        if is_work_hours(context.time_of_day, context.day_of_week):
            return "distracted_time"
        return "leisure"

    if dominant == "social":
        if minutes > 30:
            return "extended_social"
        return "social_break"

    if minutes < 5:
        if context.place_category == "home":
            return "personal_time"
        if context.place_category == "work":
            return "away_from_desk"
        return "offline_activity"

    return "mixed_activity"


def calculate_confidence_score(evidence: ConfidenceEvidence) -> float:
    """Fuse location, screen-time and category evidence into [0, 1].

    - location: 0.4 * ratio with >= 10 samples, 0.2 * ratio with 5-9, else 0
    - screen time: 0.3 with >= 5 sessions, 0.15 with 2-4, else 0
    - consensus: 0.3 * dominant category share
    """

    ratio = min(1.0, max(0.0, evidence.place_match_ratio))
    score = 0.0
    if evidence.location_sample_count >= 10:
        score += 0.4 * ratio
    elif evidence.location_sample_count >= 5:
        score += 0.2 * ratio

    if evidence.screen_session_count >= 5:
        score += 0.3
    elif evidence.screen_session_count >= 2:
        score += 0.15

    score += 0.3 * evidence.app_category_consensus
    return min(1.0, max(0.0, score))


def activity_title(activity: ActivityType) -> str:
    return activity.replace("_", " ").title()


def describe_activity(segment: ActivitySegment) -> str:
    """Human-readable line, e.g. "At Work - Deep Work (92% confidence)" or "Commute, 14 min"."""

    if segment.inferred_activity == "commute":
        return f"Commute, {format_minutes(segment.duration_ms)} min"
    pct = round(segment.activity_confidence * 100)
    text = f"{activity_title(segment.inferred_activity)} ({pct}% confidence)"
    if segment.place_label:
        return f"At {segment.place_label} - {text}"
    return text
