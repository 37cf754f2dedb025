from pathlib import Path

import pytest

from activity_timeline.csv_io import (
    CsvSegmentSink,
    CsvTimelineSources,
    load_app_sessions,
    load_app_usage,
    load_category_overrides,
    load_hourly_rows,
    load_location_samples,
    load_user_places,
    load_workouts,
    read_activity_rows_csv,
    write_location_blocks_csv,
)
from activity_timeline.models import LocationBlock


def _write(path: Path, text: str) -> Path:
    path.write_text(text.strip() + "\n", encoding="utf-8")
    return path


def test_load_location_samples_skips_bad_rows(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    p = _write(
        tmp_path / "samples.csv",
        """
recorded_at,latitude,longitude,accuracy
2026-01-26 22:00:00,51.5,-0.1,5
1769465100000,,,
not-a-time,51.5,-0.1,5
2026-01-26T22:10:00+01:00,51.6,abc,5
""",
    )

    samples, summary = load_location_samples(p, "UTC")

    assert summary.rows_total == 4
    assert summary.rows_parsed == 2
    assert summary.rows_skipped == 2
    assert "accuracy" in summary.fieldnames
    assert samples[0].latitude == 51.5
    assert samples[1].recorded_at_ms == 1769465100000
    assert samples[1].latitude is None
    assert "skipped 2 of 4" in caplog.text


def test_missing_column_raises_key_error(tmp_path: Path) -> None:
    p = _write(tmp_path / "samples.csv", "time,lat,lng\n1,2,3")
    with pytest.raises(KeyError):
        load_location_samples(p)


def test_load_places_defaults_radius(tmp_path: Path) -> None:
    p = _write(
        tmp_path / "places.csv",
        """
id,label,category,latitude,longitude,radius_m
home,Home,home,51.5,-0.1,
office,Office,work,51.52,-0.08,80
,Nameless,,51.0,0.0,
""",
    )
    places, summary = load_user_places(p)
    assert [pl.id for pl in places] == ["home", "office"]
    assert places[0].radius_m == 150.0
    assert places[1].radius_m == 80.0
    assert summary.rows_skipped == 1


def test_load_sessions_rejects_inverted_intervals(tmp_path: Path) -> None:
    p = _write(
        tmp_path / "sessions.csv",
        """
id,app_id,start,end,display_name
s1,slack,2026-01-26 09:00:00,2026-01-26 09:30:00,Slack
s2,slack,2026-01-26 10:00:00,2026-01-26 09:30:00,
""",
    )
    sessions, summary = load_app_sessions(p, "UTC")
    assert [s.id for s in sessions] == ["s1"]
    assert sessions[0].display_name == "Slack"
    assert sessions[0].end_ms - sessions[0].start_ms == 30 * 60_000
    assert summary.rows_skipped == 1


def test_load_workouts_and_overrides(tmp_path: Path) -> None:
    workouts, _ = load_workouts(
        _write(tmp_path / "w.csv", "id,start,end,activity_type\nw1,0,1000,running\nw2,5,6,"), "UTC"
    )
    assert workouts[0].activity_type == "running"
    assert workouts[1].activity_type is None

    overrides = load_category_overrides(
        _write(tmp_path / "o.csv", "app_key,category,confidence\nMyApp,work,0.9\nOther,social,\nBad,nonsense,")
    )
    assert set(overrides) == {"myapp", "other"}
    assert overrides["myapp"].confidence == 0.9
    assert overrides["other"].category == "social"


def test_load_hourly_rows_and_usage(tmp_path: Path) -> None:
    rows, _ = load_hourly_rows(
        _write(
            tmp_path / "hourly.csv",
            "hour_start,sample_count,cell_key,place_label,latitude,longitude\n"
            "2026-01-26 22:00:00,12,gcpvj0,,51.5,-0.1",
        ),
        "UTC",
    )
    assert rows[0].sample_count == 12
    assert rows[0].place_label is None
    assert rows[0].external_place_name is None
    assert rows[0].cell_key == "gcpvj0"

    usage, _ = load_app_usage(_write(tmp_path / "usage.csv", "app_id,seconds,category\nslack,600,Work\nfoo,30,bogus"))
    assert usage[0].category == "work"
    assert usage[1].category is None
    assert usage[1].seconds == 30.0


def test_csv_sources_filter_by_window(tmp_path: Path) -> None:
    samples = _write(tmp_path / "s.csv", "recorded_at,latitude,longitude\n1000,51.5,-0.1\n2000,51.5,-0.1\n3000,51.5,-0.1")
    sessions = _write(tmp_path / "a.csv", "id,app_id,start,end\na,slack,500,1500\nb,slack,2500,2600")
    sources = CsvTimelineSources(samples_path=samples, sessions_path=sessions)

    assert [s.recorded_at_ms for s in sources.location_samples("u", 1000, 3000)] == [1000, 2000]
    assert [s.id for s in sources.app_sessions("u", 1000, 2000)] == ["a"]
    assert sources.workouts("u", 0, 10_000) == []
    assert sources.user_places("u") == []
    assert sources.category_overrides("u") == {}


def _row(sid: str, started_at: str, user: str = "u") -> dict:
    return {
        "id": sid,
        "user_id": user,
        "started_at": started_at,
        "ended_at": started_at,
        "hour_bucket": started_at,
        "place_id": None,
        "place_label": "Home",
        "place_category": "home",
        "location_lat": 51.5,
        "location_lng": -0.1,
        "inferred_activity": "personal_time",
        "activity_confidence": 0.5,
        "top_apps": [{"app_id": "slack", "display_name": "Slack", "category": "work", "seconds": 60}],
        "total_screen_seconds": 60,
        "evidence": {"location_samples": 5, "screen_sessions": 1, "has_health_data": False},
        "source_ids": ["loc", "s1"],
    }


def test_segment_sink_upserts_by_id(tmp_path: Path) -> None:
    path = tmp_path / "out" / "segments.csv"
    sink = CsvSegmentSink(path)

    assert sink.upsert([_row("a", "2026-01-26T10:00:00+00:00"), _row("b", "2026-01-26T09:00:00+00:00")]) == 2
    assert sink.upsert([_row("a", "2026-01-26T10:00:00+00:00")]) == 1

    rows = read_activity_rows_csv(path)
    assert [r["id"] for r in rows] == ["b", "a"]
    assert rows[0]["top_apps"][0]["app_id"] == "slack"
    assert rows[0]["evidence"]["location_samples"] == 5
    assert rows[0]["source_ids"] == ["loc", "s1"]
    assert rows[0]["place_id"] == ""


def test_segment_sink_delete_window(tmp_path: Path) -> None:
    sink = CsvSegmentSink(tmp_path / "segments.csv")
    assert sink.delete_window("u", 0, 1) == 0

    sink.upsert(
        [
            _row("a", "2026-01-26T09:00:00+00:00"),
            _row("b", "2026-01-26T11:00:00+00:00"),
            _row("c", "2026-01-26T09:30:00+00:00", user="other"),
        ]
    )
    start = 1769418000000  # 2026-01-26 09:00 UTC
    assert sink.delete_window("u", start, start + 3_600_000) == 1
    assert sorted(r["id"] for r in read_activity_rows_csv(tmp_path / "segments.csv")) == ["b", "c"]


def test_write_location_blocks(tmp_path: Path) -> None:
    block = LocationBlock(
        id="x",
        kind="travel",
        location_label="Cycling to Office",
        location_category="commute",
        place_id=None,
        latitude=None,
        longitude=None,
        start_ms=0,
        end_ms=12 * 60_000,
        confidence=0.45,
        total_location_samples=5,
        total_screen_seconds=0,
        dominant_activity="commute",
        distance_m=3002.34,
        movement_type="cycling",
    )
    out = tmp_path / "blocks.csv"
    assert write_location_blocks_csv([block], out, "UTC") == 1
    lines = out.read_text(encoding="utf-8").splitlines()
    assert lines[0].startswith("id,kind,location_label")
    assert "1970-01-01 00:00:00+00:00" in lines[1]
    assert ",12,commute,0.450," in lines[1]
    assert ",cycling,3002.3,0" in lines[1]
