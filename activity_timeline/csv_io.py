"""CSV input/output for telemetry exports and pipeline results.

Input files (header row required; extra columns are ignored):

- samples:   recorded_at, latitude, longitude
- places:    id, label, category, latitude, longitude[, radius_m]
- sessions:  id, app_id, start, end[, display_name]
- workouts:  id, start, end[, activity_type]
- overrides: app_key, category[, confidence]
- hourly:    hour_start, sample_count[, cell_key, place_label, external_place_name, latitude, longitude]
- usage:     app_id, seconds[, category]

Timestamps are epoch milliseconds or ISO-8601 text (local to ``tz_name`` if
no offset is given). Rows that fail to parse are skipped and counted; a file
missing a required column raises ``KeyError``.
"""

from __future__ import annotations

import csv
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence, TypeVar

from activity_timeline.app_categories import build_overrides, is_app_category, normalize_app_key
from activity_timeline.models import (
    DEFAULT_PLACE_RADIUS_M,
    DEFAULT_TZ,
    AppSession,
    AppUsageSummary,
    CategoryOverride,
    HourlyLocationRow,
    InferredPlace,
    LocationBlock,
    LocationSample,
    LocationSegment,
    UserPlace,
    WorkoutInterval,
)
from activity_timeline.segmentation import segment_title
from activity_timeline.timeutils import dt_from_epoch_ms, parse_timestamp_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CsvSummary:
    """Quick summary of CSV parsing."""

    rows_total: int
    rows_parsed: int
    rows_skipped: int
    fieldnames: Sequence[str]


def _opt_float(value: str | None) -> float | None:
    s = (value or "").strip()
    if not s:
        return None
    return float(s)


def _opt_str(value: str | None) -> str | None:
    s = (value or "").strip()
    return s or None


def _load_rows(
    csv_path: str | Path,
    required: Sequence[str],
    parse: Callable[[Mapping[str, str]], T],
) -> tuple[list[T], CsvSummary]:
    p = Path(csv_path)
    rows_total = 0
    parsed: list[T] = []
    with p.open("r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames = tuple(reader.fieldnames or ())
        missing = [c for c in required if c not in fieldnames]
        if missing:
            raise KeyError(f"{p.name} is missing required column(s) {missing}; found {list(fieldnames)}")
        for row in reader:
            rows_total += 1
            try:
                parsed.append(parse(row))
            except (KeyError, ValueError, TypeError):
                continue

    summary = CsvSummary(
        rows_total=rows_total,
        rows_parsed=len(parsed),
        rows_skipped=rows_total - len(parsed),
        fieldnames=fieldnames,
    )
    if summary.rows_skipped > 0:
        logger.warning("%s: skipped %s of %s rows that failed to parse", p.name, summary.rows_skipped, rows_total)
    return parsed, summary


def load_location_samples(csv_path: str | Path, tz_name: str = DEFAULT_TZ) -> tuple[list[LocationSample], CsvSummary]:
    """Load GPS samples. Empty coordinates are kept as None (filtered later by segmentation)."""

    def parse(row: Mapping[str, str]) -> LocationSample:
        return LocationSample(
            recorded_at_ms=parse_timestamp_ms(row["recorded_at"], tz_name),
            latitude=_opt_float(row["latitude"]),
            longitude=_opt_float(row["longitude"]),
        )

    return _load_rows(csv_path, ("recorded_at", "latitude", "longitude"), parse)


def load_user_places(csv_path: str | Path) -> tuple[list[UserPlace], CsvSummary]:
    def parse(row: Mapping[str, str]) -> UserPlace:
        place_id = row["id"].strip()
        if not place_id:
            raise ValueError("empty place id")
        radius = _opt_float(row.get("radius_m"))
        return UserPlace(
            id=place_id,
            label=row["label"].strip(),
            category=_opt_str(row["category"]),
            latitude=_opt_float(row["latitude"]),
            longitude=_opt_float(row["longitude"]),
            radius_m=radius if radius is not None else DEFAULT_PLACE_RADIUS_M,
        )

    return _load_rows(csv_path, ("id", "label", "category", "latitude", "longitude"), parse)


def load_app_sessions(csv_path: str | Path, tz_name: str = DEFAULT_TZ) -> tuple[list[AppSession], CsvSummary]:
    def parse(row: Mapping[str, str]) -> AppSession:
        start = parse_timestamp_ms(row["start"], tz_name)
        end = parse_timestamp_ms(row["end"], tz_name)
        if end < start:
            raise ValueError("session ends before it starts")
        return AppSession(
            id=row["id"].strip(),
            app_id=row["app_id"].strip(),
            display_name=_opt_str(row.get("display_name")),
            start_ms=start,
            end_ms=end,
        )

    return _load_rows(csv_path, ("id", "app_id", "start", "end"), parse)


def load_workouts(csv_path: str | Path, tz_name: str = DEFAULT_TZ) -> tuple[list[WorkoutInterval], CsvSummary]:
    def parse(row: Mapping[str, str]) -> WorkoutInterval:
        return WorkoutInterval(
            id=row["id"].strip(),
            activity_type=_opt_str(row.get("activity_type")),
            start_ms=parse_timestamp_ms(row["start"], tz_name),
            end_ms=parse_timestamp_ms(row["end"], tz_name),
        )

    return _load_rows(csv_path, ("id", "start", "end"), parse)


def load_category_overrides(csv_path: str | Path) -> dict[str, CategoryOverride]:
    def parse(row: Mapping[str, str]) -> tuple[str, str] | tuple[str, str, float]:
        confidence = _opt_float(row.get("confidence"))
        if confidence is None:
            return row["app_key"], row["category"]
        return row["app_key"], row["category"], confidence

    rows, _ = _load_rows(csv_path, ("app_key", "category"), parse)
    return build_overrides(rows)


def load_hourly_rows(csv_path: str | Path, tz_name: str = DEFAULT_TZ) -> tuple[list[HourlyLocationRow], CsvSummary]:
    def parse(row: Mapping[str, str]) -> HourlyLocationRow:
        return HourlyLocationRow(
            hour_start_ms=parse_timestamp_ms(row["hour_start"], tz_name),
            cell_key=(row.get("cell_key") or "").strip(),
            sample_count=int(row["sample_count"]),
            place_label=_opt_str(row.get("place_label")),
            external_place_name=_opt_str(row.get("external_place_name")),
            latitude=_opt_float(row.get("latitude")),
            longitude=_opt_float(row.get("longitude")),
        )

    return _load_rows(csv_path, ("hour_start", "sample_count"), parse)


def load_app_usage(csv_path: str | Path) -> tuple[list[AppUsageSummary], CsvSummary]:
    def parse(row: Mapping[str, str]) -> AppUsageSummary:
        category = normalize_app_key(row.get("category") or "")
        return AppUsageSummary(
            app_id=row["app_id"].strip(),
            seconds=float(row["seconds"]),
            category=category if is_app_category(category) else None,  # type: ignore[arg-type]
        )

    return _load_rows(csv_path, ("app_id", "seconds"), parse)


class CsvTimelineSources:
    """``TimelineSources`` over single-user CSV exports (files are read once, lazily)."""

    def __init__(
        self,
        samples_path: str | Path | None = None,
        sessions_path: str | Path | None = None,
        workouts_path: str | Path | None = None,
        places_path: str | Path | None = None,
        overrides_path: str | Path | None = None,
        tz_name: str = DEFAULT_TZ,
    ) -> None:
        self._paths = {
            "samples": samples_path,
            "sessions": sessions_path,
            "workouts": workouts_path,
            "places": places_path,
            "overrides": overrides_path,
        }
        self._tz_name = tz_name
        self._loaded: dict[str, Any] = {}

    def _get(self, name: str, loader: Callable[[Path], Any]) -> Any:
        if name not in self._loaded:
            path = self._paths[name]
            self._loaded[name] = loader(Path(path)) if path else None
        return self._loaded[name]

    def location_samples(self, user_id: str, start_ms: int, end_ms: int) -> list[LocationSample]:
        rows = self._get("samples", lambda p: load_location_samples(p, self._tz_name)[0]) or []
        return [s for s in rows if start_ms <= s.recorded_at_ms < end_ms]

    def app_sessions(self, user_id: str, start_ms: int, end_ms: int) -> list[AppSession]:
        rows = self._get("sessions", lambda p: load_app_sessions(p, self._tz_name)[0]) or []
        return [s for s in rows if s.start_ms < end_ms and s.end_ms > start_ms]

    def workouts(self, user_id: str, start_ms: int, end_ms: int) -> list[WorkoutInterval]:
        rows = self._get("workouts", lambda p: load_workouts(p, self._tz_name)[0]) or []
        return [w for w in rows if w.start_ms < end_ms and w.end_ms > start_ms]

    def user_places(self, user_id: str) -> list[UserPlace]:
        return list(self._get("places", lambda p: load_user_places(p)[0]) or [])

    def category_overrides(self, user_id: str) -> dict[str, CategoryOverride]:
        return dict(self._get("overrides", load_category_overrides) or {})


def _fmt_time(epoch_ms: int, tz_name: str) -> str:
    return dt_from_epoch_ms(epoch_ms, tz_name).isoformat(sep=" ")


def _write_dicts(out_path: str | Path, header: Sequence[str], rows: Iterable[Mapping[str, Any]]) -> int:
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with out.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=list(header), extrasaction="ignore")
        w.writeheader()
        for row in rows:
            w.writerow(row)
            n += 1
    return n


def write_location_segments_csv(segments: Sequence[LocationSegment], out_path: str | Path, tz_name: str = DEFAULT_TZ) -> int:
    header = [
        "source_id",
        "title",
        "start_time",
        "end_time",
        "start_ms",
        "end_ms",
        "place_id",
        "place_label",
        "centroid_lat",
        "centroid_lng",
        "sample_count",
        "confidence",
        "meta",
    ]
    rows = (
        {
            "source_id": s.source_id,
            "title": segment_title(s),
            "start_time": _fmt_time(s.start_ms, tz_name),
            "end_time": _fmt_time(s.end_ms, tz_name),
            "start_ms": s.start_ms,
            "end_ms": s.end_ms,
            "place_id": s.place_id or "",
            "place_label": s.place_label or "",
            "centroid_lat": f"{s.centroid_lat:.7f}",
            "centroid_lng": f"{s.centroid_lng:.7f}",
            "sample_count": s.sample_count,
            "confidence": f"{s.confidence:.3f}",
            "meta": json.dumps(dict(s.meta), ensure_ascii=False, sort_keys=True),
        }
        for s in segments
    )
    return _write_dicts(out_path, header, rows)


ACTIVITY_ROW_FIELDS = (
    "id",
    "user_id",
    "started_at",
    "ended_at",
    "hour_bucket",
    "place_id",
    "place_label",
    "place_category",
    "location_lat",
    "location_lng",
    "inferred_activity",
    "activity_confidence",
    "top_apps",
    "total_screen_seconds",
    "evidence",
    "source_ids",
)
_JSON_FIELDS = ("top_apps", "evidence", "source_ids")


def _flatten_row(row: Mapping[str, Any]) -> dict[str, Any]:
    out = {k: ("" if v is None else v) for k, v in row.items()}
    for k in _JSON_FIELDS:
        if k in row:
            out[k] = json.dumps(row[k], ensure_ascii=False)
    return out


def write_activity_rows_csv(rows: Iterable[Mapping[str, Any]], out_path: str | Path) -> int:
    return _write_dicts(out_path, ACTIVITY_ROW_FIELDS, (_flatten_row(r) for r in rows))


def read_activity_rows_csv(csv_path: str | Path) -> list[dict[str, Any]]:
    p = Path(csv_path)
    if not p.exists():
        return []
    out: list[dict[str, Any]] = []
    with p.open("r", encoding="utf-8", newline="") as f:
        for row in csv.DictReader(f):
            rec: dict[str, Any] = dict(row)
            for k in _JSON_FIELDS:
                rec[k] = json.loads(row[k]) if row.get(k) else None
            out.append(rec)
    return out


class CsvSegmentSink:
    """``SegmentSink`` that keeps persisted activity rows in one CSV file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def delete_window(self, user_id: str, start_ms: int, end_ms: int) -> int:
        rows = read_activity_rows_csv(self._path)
        kept = [
            r
            for r in rows
            if not (
                r.get("user_id") == user_id
                and start_ms <= parse_timestamp_ms(r["started_at"], DEFAULT_TZ) < end_ms
            )
        ]
        if len(kept) != len(rows):
            write_activity_rows_csv(kept, self._path)
        return len(rows) - len(kept)

    def upsert(self, rows: Sequence[Mapping[str, Any]]) -> int:
        by_id: dict[str, Mapping[str, Any]] = {r["id"]: r for r in read_activity_rows_csv(self._path)}
        for r in rows:
            by_id[r["id"]] = r
        ordered = sorted(by_id.values(), key=lambda r: (str(r.get("user_id")), str(r.get("started_at"))))
        write_activity_rows_csv(ordered, self._path)
        return len(rows)


def write_location_blocks_csv(blocks: Sequence[LocationBlock], out_path: str | Path, tz_name: str = DEFAULT_TZ) -> int:
    header = [
        "id",
        "kind",
        "location_label",
        "start_time",
        "end_time",
        "duration_minutes",
        "dominant_activity",
        "confidence",
        "total_screen_seconds",
        "total_location_samples",
        "movement_type",
        "distance_m",
        "is_carried_forward",
    ]
    rows = (
        {
            "id": b.id,
            "kind": b.kind,
            "location_label": b.location_label,
            "start_time": _fmt_time(b.start_ms, tz_name),
            "end_time": _fmt_time(b.end_ms, tz_name),
            "duration_minutes": b.duration_minutes,
            "dominant_activity": b.dominant_activity or "",
            "confidence": f"{b.confidence:.3f}",
            "total_screen_seconds": b.total_screen_seconds,
            "total_location_samples": b.total_location_samples,
            "movement_type": b.movement_type or "",
            "distance_m": "" if b.distance_m is None else f"{b.distance_m:.1f}",
            "is_carried_forward": int(b.is_carried_forward),
        }
        for b in blocks
    )
    return _write_dicts(out_path, header, rows)


def write_inferred_places_csv(places: Sequence[InferredPlace], out_path: str | Path) -> int:
    header = [
        "cell_key",
        "inferred_type",
        "confidence",
        "suggested_label",
        "reasoning",
        "latitude",
        "longitude",
        "total_hours",
        "overnight_hours",
        "work_hours",
        "weekend_hours",
        "distinct_days",
    ]
    rows = (
        {
            "cell_key": p.cell_key,
            "inferred_type": p.inferred_type,
            "confidence": f"{p.confidence:.3f}",
            "suggested_label": p.suggested_label,
            "reasoning": p.reasoning,
            "latitude": "" if p.latitude is None else f"{p.latitude:.7f}",
            "longitude": "" if p.longitude is None else f"{p.longitude:.7f}",
            "total_hours": p.stats.total_hours,
            "overnight_hours": p.stats.overnight_hours,
            "work_hours": p.stats.work_hours,
            "weekend_hours": p.stats.weekend_hours,
            "distinct_days": p.stats.distinct_days,
        }
        for p in places
    )
    return _write_dicts(out_path, header, rows)
