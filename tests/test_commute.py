from datetime import UTC, datetime

import pytest

from activity_timeline.commute import (
    CommuteParams,
    attach_travel_annotation,
    commute_segment,
    detect_commute,
    insert_commutes,
    movement_type_for_speed,
)
from activity_timeline.merger import merge_adjacent_segments
from activity_timeline.models import LocationSample, LocationSegment, UserPlace
from activity_timeline.segmentation import generate_location_segments
from activity_timeline.timeutils import epoch_ms_from_dt

MIN = 60_000
T0 = epoch_ms_from_dt(datetime(2026, 1, 27, 8, 0, tzinfo=UTC))

HOME = UserPlace(id="home", label="Home", category="home", latitude=51.5, longitude=-0.1, radius_m=100.0)
# ~3km north of home
OFFICE = UserPlace(id="office", label="Office", category="work", latitude=51.527, longitude=-0.1, radius_m=100.0)
PLACES = [HOME, OFFICE]


def _at(t_ms: int, lat: float, lon: float = -0.1) -> LocationSample:
    return LocationSample(recorded_at_ms=t_ms, latitude=lat, longitude=lon)


def _stay(place: UserPlace, first_min: int, last_min: int) -> list[LocationSample]:
    return [_at(T0 + m * MIN, place.latitude) for m in range(first_min, last_min + 1)]  # type: ignore[arg-type]


def _timeline(samples: list[LocationSample], window_min: int = 60) -> list[LocationSegment]:
    we = T0 + window_min * MIN
    segments = generate_location_segments(samples, PLACES, T0, we)
    merged = merge_adjacent_segments(segments)
    return insert_commutes(merged, samples, PLACES, T0, we)


def test_commute_boundary_is_ten_minutes() -> None:
    # 1km apart, no places involved: movement comes from path length
    short = [_at(T0, 51.5), _at(T0 + 599_999, 51.509)]
    long = [_at(T0, 51.5), _at(T0 + 600_000, 51.509)]

    r_short = detect_commute(short, T0, T0 + 600_000, [])
    r_long = detect_commute(long, T0, T0 + 600_000, [])

    assert r_short.is_commute and not r_short.is_long_commute
    assert r_short.travel_annotation == "Traveled 10 min to destination"
    assert r_long.is_commute and r_long.is_long_commute
    assert r_long.travel_annotation is None
    assert r_long.duration_ms == 600_000


def test_stationary_gap_is_not_a_commute() -> None:
    pts = [_at(T0, 51.5), _at(T0 + 5 * MIN, 51.5001), _at(T0 + 20 * MIN, 51.5)]
    assert not detect_commute(pts, T0, T0 + 20 * MIN, PLACES).is_commute
    assert not detect_commute(pts[:1], T0, T0 + 20 * MIN, PLACES).is_commute


def test_place_change_counts_as_movement_even_when_short() -> None:
    near_a = UserPlace(id="a", label="A", category=None, latitude=51.5, longitude=-0.1, radius_m=50.0)
    near_b = UserPlace(id="b", label="B", category=None, latitude=51.5009, longitude=-0.1, radius_m=50.0)
    pts = [_at(T0, 51.5), _at(T0 + 2 * MIN, 51.5009)]
    result = detect_commute(pts, T0, T0 + 2 * MIN, [near_a, near_b], CommuteParams(min_path_m=500.0))
    assert result.is_commute
    assert result.from_place is near_a
    assert result.to_place is near_b
    assert result.travel_annotation == "Traveled 2 min to B"


def test_movement_type_for_speed() -> None:
    assert movement_type_for_speed(1000.0, 1_000_000) == "walking"
    assert movement_type_for_speed(5000.0, 1_000_000) == "cycling"
    assert movement_type_for_speed(10_000.0, 1_000_000) == "driving"
    assert movement_type_for_speed(500.0, 0) == "walking"


def test_long_gap_between_home_and_office_becomes_commute_segment() -> None:
    samples = _stay(HOME, 0, 10)
    samples += [_at(T0 + m * MIN, 51.5 + k * 0.00675) for k, m in ((1, 13), (2, 16), (3, 19))]
    samples += _stay(OFFICE, 22, 35)

    segments = _timeline(samples)

    assert [s.kind for s in segments] == ["location_block", "commute", "location_block"]
    home, commute, office = segments
    assert home.place_id == "home" and office.place_id == "office"
    assert commute.place_id is None
    assert commute.start_ms == T0 + 10 * MIN
    assert commute.end_ms == T0 + 22 * MIN
    assert commute.meta["intent"] == "commute"
    assert commute.meta["origin_place_id"] == "home"
    assert commute.meta["destination_place_id"] == "office"
    assert commute.meta["distance_m"] == pytest.approx(3002, rel=0.01)
    assert commute.meta["movement_type"] == "cycling"
    assert commute.match_ratio == 0.0
    assert commute.source_id == f"location:{T0}:commute:{T0 + 10 * MIN}"


def test_short_gap_annotates_arrival_segment() -> None:
    samples = _stay(HOME, 0, 10)
    samples += [_at(T0 + 11 * MIN, 51.5045), _at(T0 + 13 * MIN, 51.5225)]
    samples += _stay(OFFICE, 15, 30)

    segments = _timeline(samples)

    assert not any(s.is_commute for s in segments)
    office = next(s for s in segments if s.place_id == "office")
    assert office.meta["travel_annotation"] == "Traveled 5 min to Office"
    unknown = [s for s in segments if s.place_id is None]
    assert len(unknown) == 1
    assert "travel_annotation" not in unknown[0].meta


def test_no_place_anchors_leaves_segments_unchanged() -> None:
    samples = [_at(T0 + m * MIN, 51.6 + m * 0.001) for m in range(0, 20)]
    segments = generate_location_segments(samples, PLACES, T0, T0 + 60 * MIN)
    assert insert_commutes(segments, samples, PLACES, T0, T0 + 60 * MIN) == segments


def test_annotation_without_nearby_segment_is_dropped() -> None:
    seg = LocationSegment(
        source_id="x",
        start_ms=T0 + 30 * MIN,
        end_ms=T0 + 40 * MIN,
        place_id="office",
        place_label="Office",
        centroid_lat=51.527,
        centroid_lng=-0.1,
        sample_count=5,
        confidence=0.8,
        match_ratio=1.0,
        meta={"kind": "location_block"},
    )
    out = attach_travel_annotation([seg], "Traveled 3 min to Office", T0, T0 + 10 * MIN)
    assert out == [seg]


def test_commute_segment_requires_positive_span() -> None:
    result = detect_commute([_at(T0, 51.5), _at(T0 + 20 * MIN, 51.527)], T0, T0 + 20 * MIN, PLACES)
    assert commute_segment(result, T0 + 20 * MIN, T0 + 30 * MIN) is None
    seg = commute_segment(result, T0, T0 + 60 * MIN)
    assert seg is not None
    assert seg.is_commute
    assert 0.0 <= seg.confidence <= 1.0
