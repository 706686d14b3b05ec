"""Due-state classification: pure business logic.

Buckets a contact's next touchpoint relative to "now" and the local day.
No I/O: callers pass the instant, the soon window and the timezone.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from enum import Enum

from knotter.core.errors import ValidationError
from knotter.core.time_utils import as_utc, local_day_bounds

MAX_SOON_DAYS = 3650


class DueState(Enum):
    """How urgently a contact needs outreach. Values are a stable contract."""

    UNSCHEDULED = "unscheduled"
    OVERDUE = "overdue"
    TODAY = "today"
    SOON = "soon"
    SCHEDULED = "scheduled"


class DueSelector(Enum):
    OVERDUE = "overdue"
    TODAY = "today"
    SOON = "soon"
    ANY = "any"
    NONE = "none"


# List order: most urgent first, unscheduled last.
DUE_STATE_ORDER: tuple[DueState, ...] = (
    DueState.OVERDUE,
    DueState.TODAY,
    DueState.SOON,
    DueState.SCHEDULED,
    DueState.UNSCHEDULED,
)


def validate_soon_days(soon_days: int) -> int:
    if not 0 <= soon_days <= MAX_SOON_DAYS:
        raise ValidationError(f"invalid soon days: {soon_days}")
    return soon_days


@dataclass(frozen=True)
class DueBounds:
    """Instants separating the due buckets for one evaluation."""

    now: datetime
    start_of_today: datetime
    start_of_tomorrow: datetime
    soon_end: datetime

    def due_state(self, next_touchpoint_at: datetime | None) -> DueState:
        """Classify a touchpoint into exactly one DueState.

        An instant earlier than ``now`` is overdue even when it falls on
        today's local date; "today" only covers what is still ahead.
        """
        if next_touchpoint_at is None:
            return DueState.UNSCHEDULED
        if next_touchpoint_at < self.now:
            return DueState.OVERDUE
        if next_touchpoint_at < self.start_of_tomorrow:
            return DueState.TODAY
        if next_touchpoint_at < self.soon_end:
            return DueState.SOON
        return DueState.SCHEDULED

    def selector_matches(self, selector: DueSelector, next_at: datetime | None) -> bool:
        if selector is DueSelector.ANY:
            return next_at is not None
        if selector is DueSelector.NONE:
            return next_at is None
        if next_at is None:
            return False
        if selector is DueSelector.OVERDUE:
            return next_at < self.now
        if selector is DueSelector.TODAY:
            return self.now <= next_at < self.start_of_tomorrow
        return self.start_of_tomorrow <= next_at < self.soon_end


def compute_due_bounds(now: datetime, tz: tzinfo | None, soon_days: int) -> DueBounds:
    soon_days = validate_soon_days(soon_days)
    # whole seconds, matching the unix-second storage form
    now = as_utc(now).replace(microsecond=0)
    start_of_today, start_of_tomorrow = local_day_bounds(now, tz)
    return DueBounds(
        now=now,
        start_of_today=start_of_today,
        start_of_tomorrow=start_of_tomorrow,
        soon_end=start_of_tomorrow + timedelta(days=soon_days),
    )


def classify(
    now: datetime,
    next_touchpoint_at: datetime | None,
    soon_days: int,
    local_tz: tzinfo | None,
) -> DueState:
    """Classify one touchpoint against ``now``; see ``DueBounds.due_state``."""
    bounds = compute_due_bounds(now, local_tz, soon_days)
    if next_touchpoint_at is None:
        return DueState.UNSCHEDULED
    return bounds.due_state(as_utc(next_touchpoint_at))
