"""Annual contact dates: "does this birthday fall today?"."""

from __future__ import annotations

import calendar
from datetime import datetime, tzinfo

from knotter.core.time_utils import local_today


def is_leap_year(year: int) -> bool:
    return calendar.isleap(year)


def date_occurs_today(
    now: datetime, month: int, day: int, tz: tzinfo | None,
) -> bool:
    """True if month/day is today in local time.

    Feb 29 dates surface on Feb 28 in non-leap years.
    """
    today = local_today(now, tz)
    if today.month == month and today.day == day:
        return True
    if month == 2 and day == 29:
        return today.month == 2 and today.day == 28 and not is_leap_year(today.year)
    return False
