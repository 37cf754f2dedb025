"""Standalone intent classification from an app-usage summary (no location)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Sequence

from activity_timeline.app_categories import APP_CATEGORIES, CategoryOverrides, get_app_category
from activity_timeline.models import AppCategory, AppUsageSummary, Intent

WORK_HIGH: Final[float] = 0.6
WORK_MEDIUM_MIN: Final[float] = 0.4
# exclusive
WORK_MEDIUM_MAX: Final[float] = 0.6
LEISURE_HIGH: Final[float] = 0.6
SOCIAL_DISTRACTION: Final[float] = 0.25


@dataclass(frozen=True, slots=True)
class IntentClassification:
    """Intent with the per-category seconds and the deciding percentages.

    ``breakdown`` always holds all six categories; ``total_seconds`` excludes ``ignore``.
    """

    intent: Intent
    breakdown: dict[AppCategory, float]
    total_seconds: float
    reasoning: str


def _pct(x: float) -> int:
    return int(x * 100 + 0.5)


def classify_intent(
    summary: Sequence[AppUsageSummary],
    overrides: CategoryOverrides | None = None,
) -> IntentClassification:
    """Classify a window of screen time.

    Rules, in order:
        1. no screen time (ignoring ``ignore`` apps) -> offline
        2. work share >= 60% -> work
        3. social + entertainment share >= 60% -> leisure
        4. work share in [40%, 60%) and social share >= 25% -> distracted_work
        5. otherwise -> mixed
    """

    breakdown: dict[AppCategory, float] = {c: 0 for c in APP_CATEGORIES}  # type: ignore[misc]
    for app in summary:
        category = app.category or get_app_category(app.app_id, overrides)
        breakdown[category] += max(0, app.seconds)

    total = sum(v for c, v in breakdown.items() if c != "ignore")
    if total <= 0:
        return IntentClassification(
            intent="offline",
            breakdown=breakdown,
            total_seconds=0,
            reasoning="No screen-time recorded",
        )

    work = breakdown["work"] / total
    social = breakdown["social"] / total
    entertainment = breakdown["entertainment"] / total
    leisure = social + entertainment

    if work >= WORK_HIGH:
        return IntentClassification(
            intent="work",
            breakdown=breakdown,
            total_seconds=total,
            reasoning=f"Classified as Work: {_pct(work)}% work apps",
        )

    if leisure >= LEISURE_HIGH:
        return IntentClassification(
            intent="leisure",
            breakdown=breakdown,
            total_seconds=total,
            reasoning=(
                f"Classified as Leisure: {_pct(leisure)}% leisure "
                f"({_pct(social)}% social, {_pct(entertainment)}% entertainment)"
            ),
        )

    if WORK_MEDIUM_MIN <= work < WORK_MEDIUM_MAX and social >= SOCIAL_DISTRACTION:
        return IntentClassification(
            intent="distracted_work",
            breakdown=breakdown,
            total_seconds=total,
            reasoning=f"Classified as Distracted Work: {_pct(work)}% work with {_pct(social)}% social media",
        )

    return IntentClassification(
        intent="mixed",
        breakdown=breakdown,
        total_seconds=total,
        reasoning=(
            f"Classified as Mixed: {_pct(work)}% work, {_pct(leisure)}% leisure, "
            f"{_pct(breakdown['comms'] / total)}% comms, {_pct(breakdown['utility'] / total)}% utility"
        ),
    )


def classify_intent_simple(
    summary: Sequence[AppUsageSummary],
    overrides: CategoryOverrides | None = None,
) -> Intent:
    return classify_intent(summary, overrides).intent
