"""Data models for telemetry inputs, location segments and activity segments."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Final, Literal, Mapping


AppCategory = Literal["work", "social", "entertainment", "comms", "utility", "ignore"]
InferredPlaceType = Literal["home", "work", "frequent", "unknown"]
SegmentKind = Literal["location_block", "commute"]
BlockKind = Literal["stationary", "travel"]
MovementType = Literal["walking", "cycling", "driving"]
Intent = Literal["work", "leisure", "distracted_work", "offline", "mixed"]
ActivityType = Literal[
    "workout",
    "sleep",
    "commute",
    "deep_work",
    "collaborative_work",
    "meeting",
    "distracted_time",
    "leisure",
    "extended_social",
    "social_break",
    "personal_time",
    "away_from_desk",
    "offline_activity",
    "mixed_activity",
]

DEFAULT_TZ: Final[str] = "UTC"
DEFAULT_PLACE_RADIUS_M: Final[float] = 150.0
HOUR_MS: Final[int] = 60 * 60 * 1000
MINUTE_MS: Final[int] = 60 * 1000


def is_valid_coordinate(lat: float | None, lon: float | None) -> bool:
    """True for finite WGS84 coordinates (lat in [-90, 90], lon in [-180, 180])."""

    if lat is None or lon is None:
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


@dataclass(frozen=True, slots=True)
class LocationSample:
    """A single GPS fix.

    Attributes:
        recorded_at_ms: Unix epoch milliseconds.
        latitude: Latitude in decimal degrees, or None when the device reported no fix.
        longitude: Longitude in decimal degrees, or None.
    """

    recorded_at_ms: int
    latitude: float | None
    longitude: float | None

    @property
    def has_coordinates(self) -> bool:
        """True when both coordinates are present, finite and in range."""

        return is_valid_coordinate(self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class UserPlace:
    """A place labeled by the user (center + radius)."""

    id: str
    label: str
    category: str | None
    latitude: float | None
    longitude: float | None
    radius_m: float = DEFAULT_PLACE_RADIUS_M


@dataclass(frozen=True, slots=True)
class LocationSegment:
    """A contiguous time interval assigned to one place, "unknown", or a commute.

    Note:
        ``meta`` mirrors what downstream reconciliation stores alongside the
        segment: ``kind`` plus place/confidence fields, and for commutes the
        destination, distance and movement type. A short commute arriving at
        this segment leaves ``travel_annotation`` here.
    """

    source_id: str
    start_ms: int
    end_ms: int
    place_id: str | None
    place_label: str | None
    centroid_lat: float
    centroid_lng: float
    sample_count: int
    confidence: float
    match_ratio: float
    meta: Mapping[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> SegmentKind:
        return "commute" if self.meta.get("kind") == "commute" else "location_block"

    @property
    def is_commute(self) -> bool:
        return self.kind == "commute"

    @property
    def duration_ms(self) -> int:
        return max(0, self.end_ms - self.start_ms)


@dataclass(frozen=True, slots=True)
class CommuteDetectionResult:
    """Transient result of examining one gap for movement."""

    is_commute: bool
    duration_ms: int = 0
    is_long_commute: bool = False
    travel_annotation: str | None = None
    from_place: UserPlace | None = None
    to_place: UserPlace | None = None
    distance_meters: float = 0.0
    samples: tuple[LocationSample, ...] = ()


@dataclass(frozen=True, slots=True)
class HourlyLocationRow:
    """One hour of history aggregated into a spatial cell."""

    hour_start_ms: int
    cell_key: str
    sample_count: int
    place_label: str | None = None
    external_place_name: str | None = None
    latitude: float | None = None
    longitude: float | None = None


@dataclass(frozen=True, slots=True)
class InferredPlaceStats:
    total_hours: int
    overnight_hours: int
    work_hours: int
    weekend_hours: int
    distinct_days: int


@dataclass(frozen=True, slots=True)
class InferredPlace:
    """A place suggestion produced by place inference (never persisted directly)."""

    cell_key: str
    inferred_type: InferredPlaceType
    confidence: float
    suggested_label: str
    reasoning: str
    latitude: float | None
    longitude: float | None
    stats: InferredPlaceStats
    existing_label: str | None = None
    external_place_name: str | None = None


@dataclass(frozen=True, slots=True)
class AppUsageSummary:
    """Seconds spent in one app, optionally pre-categorized."""

    app_id: str
    seconds: float
    category: AppCategory | None = None


@dataclass(frozen=True, slots=True)
class AppSession:
    """A single foreground interval of one app."""

    id: str
    app_id: str
    display_name: str | None
    start_ms: int
    end_ms: int


@dataclass(frozen=True, slots=True)
class WorkoutInterval:
    """An activity interval reported by the health store (workouts and sleep)."""

    id: str
    activity_type: str | None
    start_ms: int
    end_ms: int


@dataclass(frozen=True, slots=True)
class CategoryOverride:
    """A user's correction of an app's category."""

    category: AppCategory
    confidence: float = 0.6


@dataclass(frozen=True, slots=True)
class AppBreakdownItem:
    """Per-app usage inside one segment window."""

    app_id: str
    display_name: str
    category: AppCategory
    seconds: int


@dataclass(frozen=True, slots=True)
class HealthContext:
    has_workout: bool
    workout_type: str | None
    is_sleeping: bool


@dataclass(frozen=True, slots=True)
class SegmentEvidence:
    location_samples: int
    screen_sessions: int
    has_health_data: bool


@dataclass(frozen=True, slots=True)
class ActivitySegment:
    """The final enriched unit, idempotently upsertable by ``id``."""

    id: str
    user_id: str
    started_at_ms: int
    ended_at_ms: int
    hour_bucket_ms: int
    place_id: str | None
    place_label: str | None
    place_category: str | None
    location_lat: float | None
    location_lng: float | None
    inferred_activity: ActivityType
    activity_confidence: float
    top_apps: tuple[AppBreakdownItem, ...]
    total_screen_seconds: int
    evidence: SegmentEvidence
    source_ids: tuple[str, ...]

    @property
    def duration_ms(self) -> int:
        return max(0, self.ended_at_ms - self.started_at_ms)


@dataclass(frozen=True, slots=True)
class HourlySummary:
    """Screen-time totals for one hour, used to enrich carried-forward blocks."""

    hour_start_ms: int
    total_screen_seconds: int
    apps: tuple[AppBreakdownItem, ...] = ()


@dataclass(frozen=True, slots=True)
class LocationBlock:
    """A run of time at one location, or one journey between locations."""

    id: str
    kind: BlockKind
    location_label: str
    location_category: str | None
    place_id: str | None
    latitude: float | None
    longitude: float | None
    start_ms: int
    end_ms: int
    confidence: float
    total_location_samples: int
    total_screen_seconds: int
    dominant_activity: ActivityType | None
    segment_ids: tuple[str, ...] = ()
    distance_m: float | None = None
    movement_type: MovementType | None = None
    is_carried_forward: bool = False

    @property
    def duration_minutes(self) -> int:
        return int(round(max(0, self.end_ms - self.start_ms) / MINUTE_MS))
