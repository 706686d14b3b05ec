"""Time helpers: UTC instants in the domain, local wall-clock at the edges.

Instants are timezone-aware datetimes normalized to UTC. A ``tz`` argument
of ``None`` means the local machine timezone; otherwise it is a ``ZoneInfo``.
Storage keeps instants as integer unix seconds.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from knotter.core.errors import ValidationError

_DATETIME_FORMATS_SECONDS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S")
_DATETIME_FORMATS_MINUTES = ("%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M")


class TimePrecision(Enum):
    DATE = "date"
    MINUTE = "minute"
    SECOND = "second"


def now_utc() -> datetime:
    """Return the current instant in UTC."""
    return datetime.now(timezone.utc)


def resolve_timezone(name: str | None) -> tzinfo | None:
    """Return a ZoneInfo for ``name``, or None (local machine time) if blank."""
    if name is None or not name.strip():
        return None
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"invalid timezone: {name}") from exc


def as_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to UTC. Naive datetimes are rejected."""
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(f"timestamp must be timezone-aware: {value.isoformat()}")
    return value.astimezone(timezone.utc)


def localize(naive: datetime, tz: tzinfo | None) -> datetime:
    """Attach ``tz`` to a naive local wall-clock datetime and return UTC."""
    if tz is None:
        return naive.astimezone().astimezone(timezone.utc)
    return naive.replace(tzinfo=tz).astimezone(timezone.utc)


def local_today(now: datetime, tz: tzinfo | None) -> date:
    return now.astimezone(tz).date()


def local_day_bounds(now: datetime, tz: tzinfo | None) -> tuple[datetime, datetime]:
    """Return (start of today, start of tomorrow) in local time, as UTC."""
    today = local_today(now, tz)
    start_of_today = localize(datetime.combine(today, time()), tz)
    start_of_tomorrow = localize(datetime.combine(today + timedelta(days=1), time()), tz)
    return start_of_today, start_of_tomorrow


def end_of_local_day(day: date, tz: tzinfo | None) -> datetime:
    """Return 23:59:59 local time on ``day``, as UTC."""
    return localize(datetime.combine(day, time(23, 59, 59)), tz)


def parse_local_timestamp(raw: str, tz: tzinfo | None) -> tuple[datetime, TimePrecision]:
    """Parse a local date or datetime string.

    Accepts YYYY-MM-DD, YYYY-MM-DD HH:MM and YYYY-MM-DD HH:MM:SS (a ``T``
    separator is allowed). Date-only input resolves to local midnight; the
    returned precision tells the caller how to interpret it.
    """
    trimmed = raw.strip()
    if not trimmed:
        raise ValidationError("timestamp cannot be empty")

    try:
        day = datetime.strptime(trimmed, "%Y-%m-%d").date()
    except ValueError:
        pass
    else:
        return localize(datetime.combine(day, time()), tz), TimePrecision.DATE

    for fmt in _DATETIME_FORMATS_SECONDS:
        try:
            parsed = datetime.strptime(trimmed, fmt)
        except ValueError:
            continue
        return localize(parsed, tz), TimePrecision.SECOND

    for fmt in _DATETIME_FORMATS_MINUTES:
        try:
            parsed = datetime.strptime(trimmed, fmt)
        except ValueError:
            continue
        return localize(parsed, tz), TimePrecision.MINUTE

    raise ValidationError(
        f"invalid datetime {raw!r}: expected YYYY-MM-DD, YYYY-MM-DD HH:MM, "
        "or YYYY-MM-DD HH:MM:SS (T separator allowed)"
    )


def parse_date_parts(raw: str) -> tuple[int, int, int | None]:
    """Parse an annual date into (month, day, year or None).

    Accepts YYYY-MM-DD, YYYYMMDD, MM-DD, --MMDD and --MM-DD.
    """
    trimmed = raw.strip()
    if not trimmed:
        raise ValidationError("date cannot be empty")

    try:
        full = datetime.strptime(trimmed, "%Y-%m-%d").date()
    except ValueError:
        pass
    else:
        return full.month, full.day, full.year

    if len(trimmed) == 8 and trimmed.isdigit():
        try:
            full = date(int(trimmed[0:4]), int(trimmed[4:6]), int(trimmed[6:8]))
        except ValueError as exc:
            raise ValidationError(f"invalid date: {raw}") from exc
        return full.month, full.day, full.year

    rest = trimmed[2:] if trimmed.startswith("--") else trimmed
    if len(rest) == 4 and rest.isdigit() and trimmed.startswith("--"):
        month_raw, day_raw = rest[0:2], rest[2:4]
    elif "-" in rest:
        month_raw, _, day_raw = rest.partition("-")
    else:
        raise ValidationError(
            f"invalid date {raw!r}: expected YYYY-MM-DD, YYYYMMDD, MM-DD, --MMDD, or --MM-DD"
        )

    if not (month_raw.isdigit() and day_raw.isdigit()):
        raise ValidationError(f"invalid date: {raw}")
    month, day = int(month_raw), int(day_raw)
    try:
        # 2000 is a leap year, so Feb 29 is accepted without a year
        date(2000, month, day)
    except ValueError as exc:
        raise ValidationError(f"invalid date: {raw}") from exc
    return month, day, None


def format_date_parts(month: int, day: int, year: int | None) -> str:
    if year is not None:
        return f"{year:04d}-{month:02d}-{day:02d}"
    return f"{month:02d}-{day:02d}"


def to_timestamp(value: datetime | None) -> int | None:
    """Aware datetime → unix seconds (storage form)."""
    if value is None:
        return None
    return int(as_utc(value).timestamp())


def from_timestamp(value: int | None) -> datetime | None:
    """Unix seconds → aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, timezone.utc)
