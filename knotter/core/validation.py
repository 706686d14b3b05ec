"""Reschedule guard for caller-supplied touchpoints.

A next touchpoint set by hand must be "now or later". How strictly that is
checked depends on how precise the input was: a bare date means "some time
that day", so today is always accepted and lands on local end of day.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo

from knotter.core.errors import SchedulingGuardError, ValidationError
from knotter.core.time_utils import (
    TimePrecision,
    as_utc,
    end_of_local_day,
    local_today,
    parse_local_timestamp,
)


def ensure_future_timestamp(
    now: datetime,
    value: datetime,
    precision: TimePrecision = TimePrecision.SECOND,
    tz: tzinfo | None = None,
) -> datetime:
    """Validate ``value`` against ``now`` and return the instant to store.

    - SECOND: rejected if strictly before now.
    - MINUTE: the current minute is accepted and clamped up to now.
    - DATE: any local date from today on is accepted and resolved to
      23:59:59 local time on that date.
    """
    now = as_utc(now)
    value = as_utc(value)

    if precision is TimePrecision.SECOND:
        if value < now:
            raise SchedulingGuardError("timestamp must be now or later")
        return value

    if precision is TimePrecision.MINUTE:
        start_of_minute = now.replace(second=0, microsecond=0)
        if value < start_of_minute:
            raise SchedulingGuardError("timestamp must be now or later")
        return max(value, now)

    value_day = local_today(value, tz)
    if value_day < local_today(now, tz):
        raise SchedulingGuardError("date must be today or later")
    return end_of_local_day(value_day, tz)


def resolve_next_touchpoint(
    value: str | date | datetime,
    now: datetime,
    tz: tzinfo | None = None,
) -> datetime:
    """Resolve user input into a guarded next-touchpoint instant.

    Strings are parsed as local time, ``date`` objects are date precision,
    aware ``datetime`` objects are second precision.
    """
    if isinstance(value, str):
        parsed, precision = parse_local_timestamp(value, tz)
        return ensure_future_timestamp(now, parsed, precision, tz)
    if isinstance(value, datetime):
        return ensure_future_timestamp(now, value, TimePrecision.SECOND, tz)
    # date-only: check the date itself, not an instant derived from it
    if value < local_today(now, tz):
        raise SchedulingGuardError("date must be today or later")
    return end_of_local_day(value, tz)


def ensure_not_far_future(
    now: datetime, occurred_at: datetime, max_skew: timedelta = timedelta(days=1),
) -> datetime:
    """Soft check that an interaction time is not wildly in the future."""
    occurred_at = as_utc(occurred_at)
    if occurred_at > as_utc(now) + max_skew:
        raise ValidationError("interaction time is too far in the future")
    return occurred_at
