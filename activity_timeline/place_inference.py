"""Place inference: label frequently visited spatial cells as home/work/frequent.

Historical hourly rows are folded into one cluster per spatial cell
(geohash, 7 characters by default, ~150m). Each cluster counts

- total hours,
- overnight hours (local hour >= 22 or < 6),
- weekday work hours (local hour in [9, 17) on Mon-Fri),
- weekend hours,
- distinct local days,

plus a running centroid. Clusters are then classified with time-of-day
heuristics. At most one Home and one Work are emitted per run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from activity_timeline.cache import Clock, MemoryCache, wall_clock_ms
from activity_timeline.geo import DEFAULT_CELL_PRECISION, cell_key, centroid, valid_samples
from activity_timeline.geocode import PlaceNameResolver, fill_missing_place_names
from activity_timeline.models import (
    DEFAULT_PLACE_RADIUS_M,
    DEFAULT_TZ,
    HOUR_MS,
    HourlyLocationRow,
    InferredPlace,
    InferredPlaceStats,
    LocationSample,
    UserPlace,
    is_valid_coordinate,
)
from activity_timeline.places import find_matching_place, place_category_for_inferred_type
from activity_timeline.timeutils import floor_to_hour_ms, local_date_key, local_hour, local_weekday

logger = logging.getLogger(__name__)

OVERNIGHT_START_HOUR = 22
OVERNIGHT_END_HOUR = 6
WORK_START_HOUR = 9
WORK_END_HOUR = 17


@dataclass(frozen=True, slots=True)
class PlaceInferenceParams:
    """Thresholds for place inference."""

    days_back: int = 14
    # Clusters with fewer hours are dropped entirely.
    min_hours: int = 1
    min_overnight_hours: int = 2
    min_home_ratio: float = 0.3
    min_work_hours: int = 3
    min_work_ratio: float = 0.3
    min_frequent_days: int = 3
    cell_precision: int = DEFAULT_CELL_PRECISION


@dataclass(slots=True)
class CellCluster:
    """Aggregate of all hourly rows that fall in one spatial cell."""

    cell_key: str
    total_hours: int = 0
    overnight_hours: int = 0
    work_hours: int = 0
    weekend_hours: int = 0
    mean_lat: float | None = None
    mean_lon: float | None = None
    coord_count: int = 0
    existing_label: str | None = None
    external_place_name: str | None = None
    days: set[str] = field(default_factory=set)

    @property
    def distinct_days(self) -> int:
        return len(self.days)

    def add_coordinates(self, lat: float, lon: float) -> None:
        """Update running mean of coordinates using incremental formula."""

        if self.mean_lat is None or self.mean_lon is None:
            self.mean_lat = lat
            self.mean_lon = lon
            self.coord_count = 1
        else:
            n = self.coord_count
            self.mean_lat = (self.mean_lat * n + lat) / (n + 1)
            self.mean_lon = (self.mean_lon * n + lon) / (n + 1)
            self.coord_count += 1

    def stats(self) -> InferredPlaceStats:
        return InferredPlaceStats(
            total_hours=self.total_hours,
            overnight_hours=self.overnight_hours,
            work_hours=self.work_hours,
            weekend_hours=self.weekend_hours,
            distinct_days=self.distinct_days,
        )


@dataclass(frozen=True, slots=True)
class InferenceStats:
    total_cells: int
    days_analyzed: int
    hours_analyzed: int


@dataclass(frozen=True, slots=True)
class PlaceInferenceResult:
    inferred_places: tuple[InferredPlace, ...]
    stats: InferenceStats


def _row_cell_key(row: HourlyLocationRow, precision: int) -> str | None:
    if row.cell_key:
        return row.cell_key
    if is_valid_coordinate(row.latitude, row.longitude):
        return cell_key(row.latitude, row.longitude, precision)  # type: ignore[arg-type]
    return None


def build_cell_clusters(
    rows: Iterable[HourlyLocationRow],
    tz_name: str = DEFAULT_TZ,
    precision: int = DEFAULT_CELL_PRECISION,
) -> dict[str, CellCluster]:
    """Fold hourly rows into one cluster per spatial cell.

    Rows with neither a cell key nor coordinates are skipped. The latest
    non-empty user label and external name seen for a cell win.
    """

    clusters: dict[str, CellCluster] = {}
    for row in rows:
        key = _row_cell_key(row, precision)
        if key is None:
            continue

        c = clusters.get(key)
        if c is None:
            c = CellCluster(cell_key=key)
            clusters[key] = c

        hour = local_hour(row.hour_start_ms, tz_name)
        weekday = local_weekday(row.hour_start_ms, tz_name)
        is_weekend = weekday >= 5

        c.total_hours += 1
        if hour >= OVERNIGHT_START_HOUR or hour < OVERNIGHT_END_HOUR:
            c.overnight_hours += 1
        if not is_weekend and WORK_START_HOUR <= hour < WORK_END_HOUR:
            c.work_hours += 1
        if is_weekend:
            c.weekend_hours += 1
        c.days.add(local_date_key(row.hour_start_ms, tz_name))

        if row.latitude is not None and row.longitude is not None:
            c.add_coordinates(row.latitude, row.longitude)
        if row.place_label:
            c.existing_label = row.place_label
        if row.external_place_name:
            c.external_place_name = row.external_place_name

    return clusters


def hourly_rows_from_samples(
    samples: Iterable[LocationSample],
    places: Sequence[UserPlace] = (),
    precision: int = DEFAULT_CELL_PRECISION,
) -> list[HourlyLocationRow]:
    """Aggregate raw samples into (hour, cell) rows, the shape place inference consumes.

    A row carries the label of the user place most of its samples match, if any.
    """

    buckets: dict[tuple[int, str], list[LocationSample]] = {}
    for s in valid_samples(samples):
        key = (floor_to_hour_ms(s.recorded_at_ms), cell_key(s.latitude, s.longitude, precision))  # type: ignore[arg-type]
        buckets.setdefault(key, []).append(s)

    rows: list[HourlyLocationRow] = []
    for (hour_ms, key), group in sorted(buckets.items()):
        lat, lon = centroid(group)
        votes: dict[str, int] = {}
        for s in group:
            match = find_matching_place(s.latitude, s.longitude, places)  # type: ignore[arg-type]
            if match is not None:
                votes[match.label] = votes.get(match.label, 0) + 1
        label = max(votes, key=lambda k: votes[k]) if votes else None
        rows.append(
            HourlyLocationRow(
                hour_start_ms=hour_ms,
                cell_key=key,
                sample_count=len(group),
                place_label=label,
                latitude=lat,
                longitude=lon,
            )
        )
    return rows


def _ratio(part: int, total: int) -> float:
    return part / max(1, total)


def _pick_home(candidates: Sequence[CellCluster], params: PlaceInferenceParams) -> str | None:
    qualifying = [
        c
        for c in candidates
        if c.overnight_hours >= params.min_overnight_hours
        and _ratio(c.overnight_hours, c.total_hours) >= params.min_home_ratio
    ]
    if not qualifying:
        return None
    best = min(qualifying, key=lambda c: (-c.overnight_hours, -c.total_hours, c.cell_key))
    return best.cell_key


def _pick_work(candidates: Sequence[CellCluster], params: PlaceInferenceParams, home_key: str | None) -> str | None:
    qualifying = [
        c
        for c in candidates
        if c.cell_key != home_key
        and c.work_hours >= params.min_work_hours
        and _ratio(c.work_hours, c.total_hours) >= params.min_work_ratio
    ]
    if not qualifying:
        return None
    best = min(qualifying, key=lambda c: (-c.work_hours, -c.total_hours, c.cell_key))
    return best.cell_key


def infer_place_types(
    clusters: Iterable[CellCluster],
    params: PlaceInferenceParams | None = None,
) -> list[InferredPlace]:
    """Classify clusters into home/work/frequent/unknown suggestions.

    Args:
        clusters: Cell clusters (see ``build_cell_clusters``).
        params: Thresholds.

    Returns:
        Inferred places sorted by confidence desc, then total hours desc.
    """

    params = params or PlaceInferenceParams()
    ordered = sorted(
        (c for c in clusters if c.total_hours >= params.min_hours),
        key=lambda c: (-c.total_hours, c.cell_key),
    )
    unlabeled = [c for c in ordered if not c.existing_label]
    home_key = _pick_home(unlabeled, params)
    work_key = _pick_work(unlabeled, params, home_key)

    inferred: list[InferredPlace] = []
    for c in ordered:
        external = c.external_place_name
        if c.existing_label:
            inferred_type = "unknown"
            confidence = 1.0
            label = c.existing_label
            reasoning = "User-defined place"
        elif c.cell_key == home_key:
            ratio = _ratio(c.overnight_hours, c.total_hours)
            inferred_type = "home"
            confidence = min(0.95, 0.6 + ratio * 0.35)
            label = "Home"
            reasoning = (
                f"Dominant overnight location: {c.overnight_hours}h overnight "
                f"({round(ratio * 100)}% of time here)"
            )
        elif c.cell_key == work_key:
            ratio = _ratio(c.work_hours, c.total_hours)
            inferred_type = "work"
            confidence = min(0.90, 0.5 + ratio * 0.4)
            label = external or "Work"
            reasoning = f"Dominant work-hours location: {c.work_hours}h during 9am-5pm weekdays"
        elif c.distinct_days >= params.min_frequent_days:
            inferred_type = "frequent"
            confidence = min(0.75, 0.35 + c.distinct_days * 0.1)
            label = external or "Frequent Location"
            reasoning = f"Visited {c.distinct_days} different days, {c.total_hours}h total"
        else:
            inferred_type = "unknown"
            confidence = min(0.5, 0.2 + c.total_hours * 0.05)
            label = external or "Location"
            reasoning = f"{c.total_hours}h total, {c.distinct_days} day(s)"
            if c.overnight_hours > 0:
                reasoning += f" · {c.overnight_hours}h overnight"
            if c.work_hours > 0:
                reasoning += f" · {c.work_hours}h work hours"

        inferred.append(
            InferredPlace(
                cell_key=c.cell_key,
                inferred_type=inferred_type,
                confidence=max(0.0, min(1.0, confidence)),
                suggested_label=label,
                reasoning=reasoning,
                latitude=c.mean_lat,
                longitude=c.mean_lon,
                stats=c.stats(),
                existing_label=c.existing_label,
                external_place_name=external,
            )
        )

    inferred.sort(key=lambda p: (-p.confidence, -p.stats.total_hours))
    return inferred


def infer_places_from_history(
    rows: Sequence[HourlyLocationRow],
    tz_name: str = DEFAULT_TZ,
    params: PlaceInferenceParams | None = None,
    now_ms: int | None = None,
) -> PlaceInferenceResult:
    """Run place inference over already-fetched hourly rows (no I/O).

    When ``now_ms`` is given, only rows within the trailing ``days_back`` days are used.
    """

    params = params or PlaceInferenceParams()
    if now_ms is not None:
        since = now_ms - params.days_back * 24 * HOUR_MS
        rows = [r for r in rows if since <= r.hour_start_ms <= now_ms]

    clusters = build_cell_clusters(rows, tz_name, params.cell_precision)
    places = infer_place_types(clusters.values(), params)
    days = {local_date_key(r.hour_start_ms, tz_name) for r in rows if _row_cell_key(r, params.cell_precision)}
    hours = sum(c.total_hours for c in clusters.values())
    return PlaceInferenceResult(
        inferred_places=tuple(places),
        stats=InferenceStats(total_cells=len(clusters), days_analyzed=len(days), hours_analyzed=hours),
    )


HourlyRowsFetcher = Callable[[str, int, int], Sequence[HourlyLocationRow]]


class PlaceInferenceService:
    """Per-user memoized place inference.

    Results are cached without a TTL; call ``invalidate`` (or pass
    ``force_refresh=True``) after the user's history or places change.
    """

    def __init__(
        self,
        fetch_rows: HourlyRowsFetcher,
        *,
        tz_name: str = DEFAULT_TZ,
        params: PlaceInferenceParams | None = None,
        cache: MemoryCache[PlaceInferenceResult] | None = None,
        resolver: PlaceNameResolver | None = None,
        clock: Clock = wall_clock_ms,
    ) -> None:
        self._fetch_rows = fetch_rows
        self._tz_name = tz_name
        self._params = params or PlaceInferenceParams()
        self._cache: MemoryCache[PlaceInferenceResult] = cache if cache is not None else MemoryCache()
        self._resolver = resolver
        self._clock = clock

    def _key(self, user_id: str) -> str:
        return f"{user_id}:{self._params.days_back}"

    def infer(self, user_id: str, force_refresh: bool = False) -> PlaceInferenceResult:
        key = self._key(user_id)
        if force_refresh:
            self._cache.invalidate(key)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        now = self._clock()
        start = now - self._params.days_back * 24 * HOUR_MS
        rows = list(self._fetch_rows(user_id, start, now))
        if self._resolver is not None:
            rows = fill_missing_place_names(rows, self._resolver)

        result = infer_places_from_history(rows, self._tz_name, self._params, now_ms=now)
        logger.info(
            "Inferred %s places for %s from %s hours",
            len(result.inferred_places),
            user_id,
            result.stats.hours_analyzed,
        )
        self._cache.set(key, result)
        return result

    def invalidate(self, user_id: str) -> bool:
        return self._cache.invalidate(self._key(user_id))


def place_from_inference(
    inference: InferredPlace,
    place_id: str | None = None,
    label: str | None = None,
    category: str | None = None,
    radius_m: float = DEFAULT_PLACE_RADIUS_M,
) -> UserPlace:
    """Turn a confirmed suggestion into a ``UserPlace`` (the caller persists it).

    Raises:
        ValueError: If the suggestion has no coordinates or the radius is not positive.
    """

    if inference.latitude is None or inference.longitude is None:
        raise ValueError("Cannot create place without coordinates")
    if radius_m <= 0:
        raise ValueError(f"radius_m must be > 0, got {radius_m}")
    return UserPlace(
        id=place_id or f"inferred:{inference.cell_key}",
        label=label or inference.suggested_label,
        category=category or place_category_for_inferred_type(inference.inferred_type),
        latitude=inference.latitude,
        longitude=inference.longitude,
        radius_m=radius_m,
    )


def format_inference_summary(result: PlaceInferenceResult) -> str:
    lines = [
        "Place inference results",
        f"   Analyzed: {result.stats.hours_analyzed}h across {result.stats.days_analyzed} days",
        f"   Found: {len(result.inferred_places)} locations",
        "",
    ]
    for place in result.inferred_places:
        lines.append(f"[{place.inferred_type}] {place.suggested_label} ({round(place.confidence * 100)}% confidence)")
        lines.append(f"   Cell: {place.cell_key}")
        lines.append(f"   Reason: {place.reasoning}")
        if place.external_place_name and place.external_place_name != place.suggested_label:
            lines.append(f"   Name: {place.external_place_name}")
        lines.append("")
    return "\n".join(lines)
