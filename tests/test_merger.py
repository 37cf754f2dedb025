import pytest

from activity_timeline.merger import DEFAULT_MERGE_GAP_MS, merge_adjacent_segments
from activity_timeline.models import LocationSegment

MIN = 60_000


def _seg(
    start_min: int,
    end_min: int,
    place_id: str | None = "home",
    n: int = 5,
    lat: float = 51.5,
    kind: str = "location_block",
) -> LocationSegment:
    return LocationSegment(
        source_id=f"location:0:{place_id or 'unknown'}:{start_min * MIN}",
        start_ms=start_min * MIN,
        end_ms=end_min * MIN,
        place_id=place_id,
        place_label=place_id.title() if place_id else None,
        centroid_lat=lat,
        centroid_lng=-0.1,
        sample_count=n,
        confidence=0.5,
        match_ratio=0.8,
        meta={"kind": kind},
    )


def test_same_place_within_gap_merges_into_first() -> None:
    a = _seg(0, 10, n=3, lat=51.0)
    b = _seg(14, 30, n=1, lat=52.0)

    merged = merge_adjacent_segments([b, a])

    assert len(merged) == 1
    m = merged[0]
    assert m.source_id == a.source_id
    assert (m.start_ms, m.end_ms) == (0, 30 * MIN)
    assert m.sample_count == 4
    assert m.centroid_lat == pytest.approx(51.25)
    assert m.match_ratio == 1.0
    assert m.meta["sample_count"] == 4


def test_gap_equal_to_limit_merges_and_larger_does_not() -> None:
    assert len(merge_adjacent_segments([_seg(0, 10), _seg(15, 20)], DEFAULT_MERGE_GAP_MS)) == 1
    assert len(merge_adjacent_segments([_seg(0, 10), _seg(16, 20)], DEFAULT_MERGE_GAP_MS)) == 2


def test_different_places_and_commutes_never_merge() -> None:
    segments = [
        _seg(0, 10, "home"),
        _seg(11, 20, "office"),
        _seg(21, 25, None, kind="commute"),
        _seg(26, 30, None, kind="commute"),
    ]
    assert merge_adjacent_segments(segments) == segments


def test_unknown_segments_merge_with_each_other() -> None:
    merged = merge_adjacent_segments([_seg(0, 10, None), _seg(12, 20, None)])
    assert len(merged) == 1
    assert merged[0].place_id is None


def test_merge_is_idempotent() -> None:
    segments = [_seg(0, 10), _seg(12, 20), _seg(40, 50), _seg(52, 55, "office"), _seg(56, 58, "office")]
    once = merge_adjacent_segments(segments)
    assert merge_adjacent_segments(once) == once
    assert len(once) == 3


def test_negative_gap_is_rejected() -> None:
    with pytest.raises(ValueError):
        merge_adjacent_segments([], -1)
    assert merge_adjacent_segments([]) == []
