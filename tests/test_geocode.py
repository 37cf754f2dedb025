from typing import Sequence

import pytest

from activity_timeline.cache import MemoryCache
from activity_timeline.geocode import (
    UNKNOWN_LOCATION,
    PlaceLookupResult,
    PlaceNameResolver,
    coord_key,
    fill_missing_place_names,
    result_from_nominatim,
    zoom_for_radius,
)
from activity_timeline.models import HourlyLocationRow


class _FakeLookup:
    def __init__(self, names: dict[str, str | None] | None = None, fail: bool = False) -> None:
        self.names = names or {}
        self.fail = fail
        self.calls: list[list[tuple[float, float]]] = []

    def __call__(self, points: Sequence[tuple[float, float]], radius_m: float) -> list[PlaceLookupResult | None]:
        self.calls.append(list(points))
        if self.fail:
            raise TimeoutError("lookup timed out")
        out: list[PlaceLookupResult | None] = []
        for lat, lon in points:
            name = self.names.get(coord_key(lat, lon))
            out.append(PlaceLookupResult(name=name, alternatives=("alt",)) if name else None)
        return out


def test_coord_key_rounds() -> None:
    assert coord_key(51.500049, -0.10001) == "51.5000,-0.1000"
    assert coord_key(51.5, -0.1, precision=2) == "51.50,-0.10"


def test_resolve_dedupes_and_caches_successes_only() -> None:
    lookup = _FakeLookup({"51.5000,-0.1000": "Baker Street"})
    cache: MemoryCache[dict] = MemoryCache()
    resolver = PlaceNameResolver(lookup, cache)

    names = resolver.resolve([(51.50001, -0.10001), (51.50002, -0.10002), (52.0, 1.0)])

    assert names == {"51.5000,-0.1000": "Baker Street", "52.0000,1.0000": None}
    assert len(lookup.calls) == 1
    assert len(lookup.calls[0]) == 2
    assert cache.get("51.5000,-0.1000") == {"name": "Baker Street", "alternatives": ["alt"]}
    assert cache.get("52.0000,1.0000") is None

    # second pass: the hit comes from the cache, the miss is retried
    resolver.resolve([(51.5, -0.1), (52.0, 1.0)])
    assert lookup.calls[-1] == [(52.0, 1.0)]


def test_resolve_batches() -> None:
    lookup = _FakeLookup()
    resolver = PlaceNameResolver(lookup, batch_size=2)
    resolver.resolve([(50.0 + i, 0.0) for i in range(5)])
    assert [len(c) for c in lookup.calls] == [2, 2, 1]


def test_lookup_failure_degrades_to_unknown() -> None:
    resolver = PlaceNameResolver(_FakeLookup(fail=True), MemoryCache())
    assert resolver.resolve([(51.5, -0.1)]) == {"51.5000,-0.1000": None}
    assert resolver.name_for(51.5, -0.1) == UNKNOWN_LOCATION


def test_resolver_validates_arguments() -> None:
    with pytest.raises(ValueError):
        PlaceNameResolver(_FakeLookup(), batch_size=0)
    with pytest.raises(ValueError):
        PlaceNameResolver(_FakeLookup(), radius_m=0)


def test_fill_missing_place_names_only_for_unlabeled_rows() -> None:
    lookup = _FakeLookup({"51.5000,-0.1000": "Baker Street"})
    resolver = PlaceNameResolver(lookup)
    rows = [
        HourlyLocationRow(hour_start_ms=0, cell_key="a", sample_count=1, latitude=51.5, longitude=-0.1),
        HourlyLocationRow(hour_start_ms=1, cell_key="a", sample_count=1, latitude=51.5, longitude=-0.1),
        HourlyLocationRow(hour_start_ms=2, cell_key="b", sample_count=1, place_label="Gym", latitude=52.0, longitude=1.0),
        HourlyLocationRow(hour_start_ms=3, cell_key="c", sample_count=1, external_place_name="Known", latitude=53.0, longitude=1.0),
    ]

    out = fill_missing_place_names(rows, resolver)

    assert [r.external_place_name for r in out] == ["Baker Street", "Baker Street", None, "Known"]
    assert lookup.calls == [[(51.5, -0.1)]]


def test_fill_missing_place_names_caps_lookups() -> None:
    lookup = _FakeLookup()
    resolver = PlaceNameResolver(lookup)
    rows = [
        HourlyLocationRow(hour_start_ms=i, cell_key=str(i), sample_count=1, latitude=40.0 + i, longitude=0.0)
        for i in range(5)
    ]
    fill_missing_place_names(rows, resolver, max_lookups=3)
    assert sum(len(c) for c in lookup.calls) == 3


def test_result_from_nominatim_prefers_short_names() -> None:
    raw = {"name": "", "address": {"amenity": "Cafe Nero", "road": "High St"}, "display_name": "Cafe Nero, High St, London"}
    res = result_from_nominatim(raw)
    assert res is not None
    assert res.name == "Cafe Nero"
    assert res.alternatives == ("High St", "Cafe Nero, High St, London")
    assert result_from_nominatim({}) is None


def test_zoom_for_radius() -> None:
    assert zoom_for_radius(75) == 18
    assert zoom_for_radius(300) == 17
    assert zoom_for_radius(1500) == 16
    assert zoom_for_radius(5000) == 14
