from datetime import UTC, datetime

import pytest

from activity_timeline.timeutils import (
    dt_from_epoch_ms,
    epoch_ms_from_dt,
    floor_to_hour_ms,
    format_minutes,
    local_date_key,
    local_hour,
    local_weekday,
    parse_dt,
    parse_timestamp_ms,
    require_window,
    tzinfo_from_name,
)

# 2026-01-26 23:30 UTC is Tuesday 07:30 in Shanghai
TS = epoch_ms_from_dt(datetime(2026, 1, 26, 23, 30, tzinfo=UTC))


def test_parse_dt_assumes_given_zone_when_naive() -> None:
    dt = parse_dt("2026-01-27 07:30:00", "Asia/Shanghai")
    assert epoch_ms_from_dt(dt) == TS
    assert parse_dt("2026-01-27T07:30:00", "Asia/Shanghai") == dt


def test_parse_dt_respects_offsets() -> None:
    assert epoch_ms_from_dt(parse_dt("2026-01-26T23:30:00Z", "Asia/Shanghai")) == TS
    assert epoch_ms_from_dt(parse_dt("2026-01-27 07:30:00+08:00", "UTC")) == TS


def test_parse_dt_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        parse_dt("yesterday", "UTC")
    with pytest.raises(ValueError):
        tzinfo_from_name("Mars/Olympus_Mons")


def test_parse_timestamp_accepts_epoch_ms() -> None:
    assert parse_timestamp_ms(f" {TS} ", "UTC") == TS
    assert parse_timestamp_ms("2026-01-26 23:30:00", "UTC") == TS


def test_local_helpers() -> None:
    assert local_hour(TS, "Asia/Shanghai") == 7
    assert local_weekday(TS, "Asia/Shanghai") == 1
    assert local_weekday(TS, "UTC") == 0
    assert local_date_key(TS, "Asia/Shanghai") == "2026-01-27"
    assert dt_from_epoch_ms(TS, "UTC").minute == 30


def test_floor_to_hour() -> None:
    assert floor_to_hour_ms(TS) == TS - 30 * 60_000


def test_require_window() -> None:
    require_window(0, 1)
    with pytest.raises(ValueError):
        require_window(5, 5)
    with pytest.raises(ValueError):
        require_window(6, 5)


def test_format_minutes_rounds_half_up() -> None:
    assert format_minutes(89_999) == 1
    assert format_minutes(90_000) == 2
    assert format_minutes(-5) == 0
