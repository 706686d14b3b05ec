"""Cadence rescheduling: pure business logic."""

from __future__ import annotations

from datetime import datetime, timedelta

from knotter.core.errors import ValidationError
from knotter.core.time_utils import as_utc, now_utc

MAX_CADENCE_DAYS = 3650


def validate_cadence_days(cadence_days: int) -> int:
    if isinstance(cadence_days, bool) or not 1 <= cadence_days <= MAX_CADENCE_DAYS:
        raise ValidationError(f"invalid cadence days: {cadence_days}")
    return cadence_days


def schedule_next(
    anchor: datetime, cadence_days: int, now: datetime | None = None,
) -> datetime:
    """Return ``anchor + cadence_days`` days, never earlier than ``now``.

    An anchor in the past is clamped to ``now`` first, so the result is
    always ``now + cadence`` or later.
    """
    cadence_days = validate_cadence_days(cadence_days)
    now = as_utc(now) if now is not None else now_utc()
    anchor = max(as_utc(anchor), now)
    return anchor + timedelta(days=cadence_days)


def next_touchpoint_after_touch(
    now: datetime,
    cadence_days: int | None,
    reschedule_requested: bool,
    existing_next: datetime | None,
    occurred_at: datetime | None = None,
) -> datetime | None:
    """Next touchpoint after logging an interaction.

    Reschedules from ``max(now, occurred_at)`` only when a reschedule was
    requested and the contact has a cadence; otherwise the existing value
    is returned untouched.
    """
    if not reschedule_requested or cadence_days is None:
        return existing_next
    anchor = now if occurred_at is None else max(as_utc(now), as_utc(occurred_at))
    return schedule_next(anchor, cadence_days, now=now)
