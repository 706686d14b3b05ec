"""
Knotter: Output DTOs.

What front ends render or print as JSON. ``model_dump(mode="json")`` gives
the stable machine-readable form: due states as their enum strings,
instants as ISO-8601 UTC.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from knotter.core.due import DueState
from knotter.data.models import ContactDateKind


class ContactListItem(BaseModel):
    """One row of a contact list."""

    id: str
    display_name: str
    due_state: DueState
    next_touchpoint_at: datetime | None = None
    archived_at: datetime | None = None
    tags: list[str] = Field(default_factory=list)


class DateReminderItem(BaseModel):
    """An annual date falling today."""

    contact_id: str
    display_name: str
    kind: ContactDateKind
    label: str | None = None
    month: int
    day: int
    year: int | None = None


class ReminderOutput(BaseModel):
    """Due contacts grouped by bucket, plus today's dates."""

    overdue: list[ContactListItem] = Field(default_factory=list)
    today: list[ContactListItem] = Field(default_factory=list)
    soon: list[ContactListItem] = Field(default_factory=list)
    dates_today: list[DateReminderItem] = Field(default_factory=list)

    @classmethod
    def from_items(cls, items: list[ContactListItem]) -> ReminderOutput:
        """Group items by due state; scheduled and unscheduled are dropped."""
        output = cls()
        buckets = {
            DueState.OVERDUE: output.overdue,
            DueState.TODAY: output.today,
            DueState.SOON: output.soon,
        }
        for item in items:
            bucket = buckets.get(item.due_state)
            if bucket is not None:
                bucket.append(item)
        return output

    def is_empty(self) -> bool:
        return not (self.overdue or self.today or self.soon or self.dates_today)
