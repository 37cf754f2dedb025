"""Time parsing, local-time helpers and window validation."""

from __future__ import annotations

from datetime import UTC, datetime, tzinfo

from zoneinfo import ZoneInfo

from activity_timeline.models import HOUR_MS


def tzinfo_from_name(tz_name: str) -> tzinfo:
    """Create tzinfo from an IANA timezone name.

    Raises:
        ValueError: If timezone name is invalid on this system.
    """

    try:
        return ZoneInfo(tz_name)
    except Exception as exc:  # ZoneInfo raises KeyError / ZoneInfoNotFoundError (platform dependent)
        raise ValueError(f"Invalid time zone: {tz_name!r}. Example: Europe/London") from exc


def dt_from_epoch_ms(epoch_ms: int, tz_name: str) -> datetime:
    """Convert epoch milliseconds to a timezone-aware datetime."""

    return datetime.fromtimestamp(epoch_ms / 1000.0, tz=tzinfo_from_name(tz_name))


def epoch_ms_from_dt(dt: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive values are treated as UTC)."""

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(round(dt.timestamp() * 1000))


def parse_dt(text: str, tz_name: str) -> datetime:
    """Parse user-provided datetime text to a timezone-aware datetime.

    Supported formats:
      - "YYYY-MM-DD HH:MM:SS"
      - "YYYY-MM-DDTHH:MM:SS"
      - with optional timezone offset, e.g. "+08:00" or "Z"

    If timezone is missing, it will be assumed to be tz_name.

    Raises:
        ValueError: If cannot parse.
    """

    s = text.strip().replace("T", " ")
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    tz = tzinfo_from_name(tz_name)
    try:
        dt = datetime.fromisoformat(s)
    except ValueError as exc:
        raise ValueError(f"Cannot parse datetime: {text!r}. Expected e.g. 2026-01-29 09:30:00") from exc

    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def parse_timestamp_ms(text: str, tz_name: str) -> int:
    """Parse either raw epoch milliseconds or datetime text into epoch milliseconds."""

    s = text.strip()
    if s.lstrip("-").isdigit():
        return int(s)
    return epoch_ms_from_dt(parse_dt(s, tz_name))


def floor_to_hour_ms(epoch_ms: int) -> int:
    return epoch_ms - (epoch_ms % HOUR_MS)


def local_hour(epoch_ms: int, tz_name: str) -> int:
    return dt_from_epoch_ms(epoch_ms, tz_name).hour


def local_weekday(epoch_ms: int, tz_name: str) -> int:
    """Local day of week, Monday=0 ... Sunday=6."""

    return dt_from_epoch_ms(epoch_ms, tz_name).weekday()


def local_date_key(epoch_ms: int, tz_name: str) -> str:
    return dt_from_epoch_ms(epoch_ms, tz_name).date().isoformat()


def require_window(start_ms: int, end_ms: int) -> None:
    """Fail fast on an empty or inverted processing window (a caller bug)."""

    if end_ms <= start_ms:
        raise ValueError(f"Invalid window: end ({end_ms}) must be after start ({start_ms})")


def format_minutes(ms: int) -> int:
    """Whole minutes, rounded half up."""

    return int(max(0, ms) / 60_000 + 0.5)
