"""External place-name lookups (lat/lon -> best-guess place name).

The lookup service is an external collaborator: slow, rate-limited, sometimes
down. ``PlaceNameResolver`` sits in front of it and

- deduplicates coordinates by a rounded key, so each distinct key is looked up
  at most once per pass,
- sends the misses in batches (20 points by default),
- caches successful answers (failures are never cached and never retried inline).

Important:
    For Nominatim (OpenStreetMap), respect their usage policy: keep a
    reasonable request interval and set a descriptive User-Agent.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.parse
import urllib.request
from dataclasses import dataclass, replace
from typing import Any, Iterable, Protocol, Sequence

from activity_timeline.geo import cell_center
from activity_timeline.models import HourlyLocationRow, is_valid_coordinate

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown Location"
DEFAULT_NAME_TTL_MS = 30 * 24 * 60 * 60 * 1000


@dataclass(frozen=True, slots=True)
class PlaceLookupResult:
    """A best-guess name plus alternatives for one coordinate."""

    name: str
    alternatives: tuple[str, ...] = ()


class PlaceNameLookup(Protocol):
    """Batch lookup: one result (or None) per input point, in input order."""

    def __call__(
        self, points: Sequence[tuple[float, float]], radius_m: float
    ) -> Sequence[PlaceLookupResult | None]: ...


class NameCache(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...


def coord_key(lat: float, lon: float, precision: int = 4) -> str:
    """Build a stable key by rounding coordinates: "lat,lon" with fixed decimals.

    Precision=4 is ~11m of latitude.
    """

    return f"{round(lat, precision):.{precision}f},{round(lon, precision):.{precision}f}"


@dataclass(frozen=True, slots=True)
class NominatimConfig:
    """Configuration for the Nominatim reverse API."""

    base_url: str = "https://nominatim.openstreetmap.org/reverse"
    accept_language: str = "en"
    zoom: int = 18
    addressdetails: int = 1
    timeout_seconds: float = 10.0
    min_interval_seconds: float = 1.0
    user_agent: str = "activity-timeline/0.1.0 (place-names; please set your own UA)"


def zoom_for_radius(radius_m: float) -> int:
    """Nominatim has no search radius; approximate one with the detail level."""

    if radius_m <= 100:
        return 18
    if radius_m <= 500:
        return 17
    if radius_m <= 2000:
        return 16
    return 14


def nominatim_reverse_raw(lat: float, lon: float, cfg: NominatimConfig, zoom: int | None = None) -> dict[str, Any] | None:
    """Call Nominatim reverse API and return the raw JSON dict, or None on any failure."""

    params = {
        "format": "jsonv2",
        "lat": f"{lat:.8f}",
        "lon": f"{lon:.8f}",
        "zoom": str(zoom if zoom is not None else cfg.zoom),
        "addressdetails": str(cfg.addressdetails),
        "accept-language": cfg.accept_language,
    }
    url = f"{cfg.base_url}?{urllib.parse.urlencode(params)}"
    req = urllib.request.Request(
        url,
        headers={
            "User-Agent": cfg.user_agent,
            "Accept": "application/json",
        },
        method="GET",
    )
    try:
        with urllib.request.urlopen(req, timeout=cfg.timeout_seconds) as resp:  # noqa: S310
            body = resp.read().decode("utf-8", errors="replace")
        raw = json.loads(body)
    except Exception as exc:
        logger.warning("Reverse lookup failed for %.5f,%.5f: %s", lat, lon, exc)
        return None
    if not isinstance(raw, dict) or "error" in raw:
        return None
    return raw


def result_from_nominatim(raw: dict[str, Any]) -> PlaceLookupResult | None:
    """Pick a short name (POI name, then road) and keep the rest as alternatives."""

    address = raw.get("address") or {}
    candidates = [
        str(raw.get("name") or ""),
        str(address.get("amenity") or ""),
        str(address.get("building") or ""),
        str(address.get("road") or ""),
        str(raw.get("display_name") or ""),
    ]
    seen: list[str] = []
    for c in candidates:
        c = c.strip()
        if c and c not in seen:
            seen.append(c)
    if not seen:
        return None
    return PlaceLookupResult(name=seen[0], alternatives=tuple(seen[1:]))


class NominatimBatchLookup:
    """``PlaceNameLookup`` backed by Nominatim, one throttled request per point."""

    def __init__(self, config: NominatimConfig | None = None) -> None:
        self._cfg = config or NominatimConfig()
        self._last_request_at = 0.0

    def __call__(
        self, points: Sequence[tuple[float, float]], radius_m: float
    ) -> list[PlaceLookupResult | None]:
        zoom = zoom_for_radius(radius_m)
        out: list[PlaceLookupResult | None] = []
        for lat, lon in points:
            self._sleep_if_needed()
            raw = nominatim_reverse_raw(lat, lon, self._cfg, zoom=zoom)
            out.append(result_from_nominatim(raw) if raw is not None else None)
        return out

    def _sleep_if_needed(self) -> None:
        now = time.time()
        wait = self._cfg.min_interval_seconds - (now - self._last_request_at)
        if wait > 0:
            time.sleep(wait)
        self._last_request_at = time.time()


class PlaceNameResolver:
    """Deduplicating, batching, caching front for a ``PlaceNameLookup``."""

    def __init__(
        self,
        lookup: PlaceNameLookup,
        cache: NameCache | None = None,
        *,
        precision: int = 4,
        batch_size: int = 20,
        radius_m: float = 75.0,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if radius_m <= 0:
            raise ValueError(f"radius_m must be > 0, got {radius_m}")
        self._lookup = lookup
        self._cache = cache
        self._precision = precision
        self._batch_size = batch_size
        self._radius_m = radius_m

    @property
    def precision(self) -> int:
        return self._precision

    def key_for(self, lat: float, lon: float) -> str:
        return coord_key(lat, lon, self._precision)

    def resolve(self, points: Iterable[tuple[float, float]]) -> dict[str, str | None]:
        """Resolve names for many points.

        Returns:
            rounded key -> name, or None where the lookup failed or found nothing.
        """

        names: dict[str, str | None] = {}
        pending: dict[str, tuple[float, float]] = {}
        for lat, lon in points:
            key = self.key_for(lat, lon)
            if key in names or key in pending:
                continue
            cached = self._cache.get(key) if self._cache is not None else None
            if isinstance(cached, dict) and cached.get("name"):
                names[key] = str(cached["name"])
            else:
                pending[key] = (lat, lon)

        items = list(pending.items())
        for i in range(0, len(items), self._batch_size):
            batch = items[i : i + self._batch_size]
            try:
                results = list(self._lookup([pt for _, pt in batch], self._radius_m))
            except Exception as exc:
                logger.warning("Place-name lookup failed for a batch of %s points: %s", len(batch), exc)
                results = []
            for j, (key, _) in enumerate(batch):
                res = results[j] if j < len(results) else None
                if res is None or not res.name:
                    names[key] = None
                    continue
                names[key] = res.name
                if self._cache is not None:
                    self._cache.set(key, {"name": res.name, "alternatives": list(res.alternatives)})

        ok = sum(1 for k in pending if names.get(k))
        if pending:
            logger.info(
                "Place names: %s cached, %s looked up, %s unresolved",
                len(names) - len(pending),
                ok,
                len(pending) - ok,
            )
        return names

    def name_for(self, lat: float, lon: float) -> str:
        """Resolve a single point, degrading to "Unknown Location"."""

        return self.resolve([(lat, lon)]).get(self.key_for(lat, lon)) or UNKNOWN_LOCATION


def _row_coordinates(row: HourlyLocationRow) -> tuple[float, float] | None:
    if is_valid_coordinate(row.latitude, row.longitude):
        return row.latitude, row.longitude  # type: ignore[return-value]
    if row.cell_key:
        return cell_center(row.cell_key)
    return None


def fill_missing_place_names(
    rows: Sequence[HourlyLocationRow],
    resolver: PlaceNameResolver,
    max_lookups: int = 20,
) -> list[HourlyLocationRow]:
    """Fill ``external_place_name`` on rows that have neither a user label nor a name.

    At most ``max_lookups`` distinct rounded coordinates are resolved per pass;
    the remaining rows stay unnamed until the next pass.
    """

    wanted: dict[str, tuple[float, float]] = {}
    for row in rows:
        if row.place_label or row.external_place_name:
            continue
        coords = _row_coordinates(row)
        if coords is None:
            continue
        key = resolver.key_for(*coords)
        if key not in wanted and len(wanted) < max_lookups:
            wanted[key] = coords

    if not wanted:
        return list(rows)

    names = resolver.resolve(wanted.values())
    out: list[HourlyLocationRow] = []
    for row in rows:
        if row.place_label or row.external_place_name:
            out.append(row)
            continue
        coords = _row_coordinates(row)
        name = names.get(resolver.key_for(*coords)) if coords is not None else None
        out.append(replace(row, external_place_name=name) if name else row)
    return out
