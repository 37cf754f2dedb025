from __future__ import annotations

import argparse
import csv
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Final

from zoneinfo import ZoneInfo


TZ: Final[str] = "Europe/London"


@dataclass(frozen=True, slots=True)
class Spot:
    place_id: str
    label: str
    category: str
    lat: float
    lon: float


HOME = Spot("place-home", "Home", "home", 51.5412000, -0.1426000)
OFFICE = Spot("place-office", "Office", "work", 51.5226000, -0.0850000)
GYM = Spot("place-gym", "Gym", "gym", 51.5248000, -0.0960000)

WORK_APPS: Final = ["Slack", "Notion", "VS Code", "Figma"]
SOCIAL_APPS: Final = ["Instagram", "Reddit", "Twitter"]
LEISURE_APPS: Final = ["Netflix", "Spotify", "YouTube"]


def _epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def _jitter(rng: random.Random, spot: Spot, spread: float = 0.0003) -> tuple[float, float]:
    return spot.lat + rng.uniform(-spread, spread), spot.lon + rng.uniform(-spread, spread)


def _stay(rng: random.Random, spot: Spot, start: datetime, end: datetime, step_min: float) -> list[dict[str, str]]:
    out = []
    cur = start
    while cur < end:
        lat, lon = _jitter(rng, spot)
        out.append({"recorded_at": str(_epoch_ms(cur)), "latitude": f"{lat:.7f}", "longitude": f"{lon:.7f}"})
        cur += timedelta(minutes=step_min * rng.uniform(0.7, 1.3))
    return out


def _travel(rng: random.Random, a: Spot, b: Spot, start: datetime, minutes: int) -> list[dict[str, str]]:
    """One sample per minute along the straight line a -> b."""

    out = []
    for i in range(minutes + 1):
        f = i / minutes
        lat = a.lat + (b.lat - a.lat) * f + rng.uniform(-0.0001, 0.0001)
        lon = a.lon + (b.lon - a.lon) * f + rng.uniform(-0.0001, 0.0001)
        t = start + timedelta(minutes=i)
        out.append({"recorded_at": str(_epoch_ms(t)), "latitude": f"{lat:.7f}", "longitude": f"{lon:.7f}"})
    return out


def _sessions(
    rng: random.Random, apps: list[str], start: datetime, end: datetime, prefix: str
) -> list[dict[str, str]]:
    out = []
    cur = start + timedelta(minutes=rng.uniform(0, 10))
    n = 0
    while cur < end:
        length = timedelta(minutes=rng.uniform(3, 25))
        stop = min(end, cur + length)
        out.append(
            {
                "id": f"{prefix}-{n}",
                "app_id": rng.choice(apps),
                "display_name": "",
                "start": cur.isoformat(sep=" "),
                "end": stop.isoformat(sep=" "),
            }
        )
        n += 1
        cur = stop + timedelta(minutes=rng.uniform(1, 15))
    return out


def generate_day(*, seed: int, day: datetime) -> dict[str, list[dict[str, str]]]:
    """A weekday: home, commute, office, gym after work, commute, evening at home.

    There is a deliberate GPS silence in the afternoon at the office so gap
    filling has something to carry forward.
    """

    rng = random.Random(seed)
    tz = ZoneInfo(TZ)
    d0 = day.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=tz)

    def at(h: int, m: int = 0) -> datetime:
        return d0 + timedelta(hours=h, minutes=m)

    samples: list[dict[str, str]] = []
    samples += _stay(rng, HOME, at(0), at(8, 10), step_min=15)
    samples += _travel(rng, HOME, OFFICE, at(8, 15), minutes=25)
    samples += _stay(rng, OFFICE, at(8, 45), at(13, 0), step_min=5)
    # silence 13:00 - 14:30
    samples += _stay(rng, OFFICE, at(14, 30), at(17, 30), step_min=5)
    samples += _travel(rng, OFFICE, GYM, at(17, 35), minutes=8)
    samples += _stay(rng, GYM, at(17, 45), at(18, 45), step_min=5)
    samples += _travel(rng, GYM, HOME, at(18, 50), minutes=22)
    samples += _stay(rng, HOME, at(19, 15), at(23, 59), step_min=10)
    # a few fixes without coordinates, as phones report them
    for _ in range(3):
        t = at(rng.randint(0, 23), rng.randint(0, 59))
        samples.append({"recorded_at": str(_epoch_ms(t)), "latitude": "", "longitude": ""})
    samples.sort(key=lambda r: int(r["recorded_at"]))

    sessions: list[dict[str, str]] = []
    sessions += _sessions(rng, SOCIAL_APPS, at(7, 15), at(8, 10), "morning")
    sessions += _sessions(rng, WORK_APPS, at(9, 0), at(12, 30), "am")
    sessions += _sessions(rng, WORK_APPS + SOCIAL_APPS, at(13, 30), at(17, 15), "pm")
    sessions += _sessions(rng, LEISURE_APPS + SOCIAL_APPS, at(19, 30), at(22, 45), "evening")

    workouts = [
        {"id": "workout-1", "activity_type": "strength_training", "start": at(17, 50).isoformat(sep=" "), "end": at(18, 40).isoformat(sep=" ")},
        {"id": "sleep-1", "activity_type": "sleep", "start": at(0).isoformat(sep=" "), "end": at(6, 45).isoformat(sep=" ")},
    ]

    places = [
        {
            "id": s.place_id,
            "label": s.label,
            "category": s.category,
            "latitude": f"{s.lat:.7f}",
            "longitude": f"{s.lon:.7f}",
            "radius_m": "150",
        }
        for s in (HOME, OFFICE, GYM)
    ]
    return {"samples": samples, "sessions": sessions, "workouts": workouts, "places": places}


def _write(path: Path, rows: list[dict[str, str]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
        w.writeheader()
        w.writerows(rows)


def main() -> int:
    p = argparse.ArgumentParser(description="Generate one synthetic day of telemetry CSVs (privacy-safe).")
    p.add_argument("--out-dir", type=str, default="sample_data", help="Output directory")
    p.add_argument("--seed", type=int, default=42, help="Random seed (reproducible)")
    p.add_argument("--day", type=str, default="2026-01-29", help=f"Local day in {TZ}, e.g. '2026-01-29'")
    args = p.parse_args()

    data = generate_day(seed=args.seed, day=datetime.fromisoformat(args.day))
    out_dir = Path(args.out_dir)
    for name, rows in data.items():
        _write(out_dir / f"{name}.csv", rows)

    print(
        f"Generated: {out_dir} (samples={len(data['samples'])}, sessions={len(data['sessions'])}, "
        f"seed={args.seed}, tz={TZ})"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
