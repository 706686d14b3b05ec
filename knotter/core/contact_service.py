"""
Knotter: UI-Agnostic Contact Service.

Service layer shared by the CLI and the TUI: parse input -> check
invariants -> write through the storage classes -> return domain objects
or DTOs. Front ends render the results and present the errors; nothing
here prints.

Errors from the core (ValidationError, FilterParseError, ...) propagate
unchanged so callers can show the failing token or field.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime, tzinfo

from knotter.core.cadence import schedule_next
from knotter.core.due import validate_soon_days
from knotter.core.dto import ContactListItem, DateReminderItem, ReminderOutput
from knotter.core.errors import ValidationError
from knotter.core.filter import parse_filter
from knotter.core.loops import LoopPolicy
from knotter.core.normalize import normalize_tag
from knotter.core.query import ContactQuery, compile_filter
from knotter.core.time_utils import now_utc, parse_date_parts, resolve_timezone
from knotter.core.validation import ensure_not_far_future, resolve_next_touchpoint
from knotter.data.db import ContactDateDB, ContactDB, InteractionDB, TagDB
from knotter.data.models import (
    Contact,
    ContactDate,
    ContactDateKind,
    Interaction,
    OtherKind,
    kind_from_label,
)

logger = logging.getLogger(__name__)

_UNSET = object()


@dataclass
class LoopChange:
    """One contact touched by ``apply_loops``."""

    contact_id: str
    display_name: str
    cadence_before: int | None
    cadence_after: int | None
    next_touchpoint_before: datetime | None
    next_touchpoint_after: datetime | None


class ContactService:
    """Orchestrates contacts, tags, interactions and dates.

    Configuration (soon window, timezone, default cadence, loop policy) is
    read from ``settings`` once, at construction, unless passed explicitly,
    and then handed to the pure rule functions as plain arguments.
    """

    def __init__(
        self,
        db_path: str | None = None,
        *,
        soon_days: int | None = None,
        timezone: str | None = None,
        default_cadence_days: int | None = None,
        loop_policy: LoopPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        from knotter.config import settings

        if db_path is None:
            db_path = settings.DATABASE_PATH
        self.contacts = ContactDB(db_path)
        self.tags = TagDB(db_path)
        self.interactions = InteractionDB(db_path)
        self.dates = ContactDateDB(db_path)

        self._soon_days = validate_soon_days(
            settings.DUE_SOON_DAYS if soon_days is None else soon_days
        )
        self._tz: tzinfo | None = resolve_timezone(
            settings.TIMEZONE if timezone is None else timezone
        )
        self._default_cadence = default_cadence_days or settings.DEFAULT_CADENCE_DAYS
        self._loops = loop_policy if loop_policy is not None else LoopPolicy.from_settings(settings)
        self._clock = clock or now_utc

    def _now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    def create_contact(
        self,
        display_name: str,
        *,
        email: str | None = None,
        emails: Iterable[str] = (),
        phone: str | None = None,
        handle: str | None = None,
        timezone: str | None = None,
        cadence_days: int | None = None,
        next_touchpoint: str | date | datetime | None = None,
        tags: Iterable[str] = (),
    ) -> Contact:
        """Create a contact.

        Without an explicit cadence, the loop policy picks one from the
        tags, falling back to the configured default cadence.
        """
        now = self._now()
        tag_names = [normalize_tag(tag) for tag in tags]
        if cadence_days is None:
            cadence_days = self._loops.resolve_cadence(tag_names) or self._default_cadence

        next_at = None
        if next_touchpoint is not None:
            next_at = resolve_next_touchpoint(next_touchpoint, now, self._tz)

        contact = Contact(
            display_name=display_name,
            email=email,
            emails=list(emails),
            phone=phone,
            handle=handle,
            timezone=timezone,
            cadence_days=cadence_days,
            next_touchpoint_at=next_at,
            created_at=now,
            tags=tag_names,
        )
        return self.contacts.add_contact(contact)

    def get_contact(self, contact_id: str) -> Contact:
        return self.contacts.require_contact(contact_id)

    def edit_contact(
        self,
        contact_id: str,
        *,
        display_name: str | None = None,
        email=_UNSET,
        phone=_UNSET,
        handle=_UNSET,
        timezone=_UNSET,
        cadence_days=_UNSET,
        next_touchpoint=_UNSET,
    ) -> Contact:
        """Apply a partial update. Pass ``None`` to clear an optional field.

        All checks run on a copy before anything is written, so a bad value
        leaves the stored contact untouched.
        """
        changes: dict = {}
        if display_name is not None:
            changes["display_name"] = display_name
        if email is not _UNSET:
            changes["email"] = email
        if phone is not _UNSET:
            changes["phone"] = phone
        if handle is not _UNSET:
            changes["handle"] = handle
        if timezone is not _UNSET:
            changes["timezone"] = timezone
        if cadence_days is not _UNSET:
            changes["cadence_days"] = cadence_days
        if next_touchpoint is not _UNSET:
            changes["next_touchpoint_at"] = (
                None if next_touchpoint is None
                else resolve_next_touchpoint(next_touchpoint, self._now(), self._tz)
            )
        if not changes:
            raise ValidationError("no updates provided")

        contact = self.contacts.require_contact(contact_id)
        if "email" in changes and changes["email"]:
            # a new primary joins the address list, the old ones stay
            changes["emails"] = [changes["email"], *contact.emails]
        updated = replace(contact, updated_at=self._now(), **changes)
        return self.contacts.update_contact(updated)

    def archive_contact(self, contact_id: str) -> Contact:
        contact = self.contacts.require_contact(contact_id)
        now = self._now()
        updated = replace(contact, archived_at=now, updated_at=now)
        logger.info("Archiving contact %s", contact_id)
        return self.contacts.update_contact(updated)

    def unarchive_contact(self, contact_id: str) -> Contact:
        contact = self.contacts.require_contact(contact_id)
        updated = replace(contact, archived_at=None, updated_at=self._now())
        logger.info("Unarchiving contact %s", contact_id)
        return self.contacts.update_contact(updated)

    def delete_contact(self, contact_id: str) -> bool:
        return self.contacts.delete_contact(contact_id)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule(self, contact_id: str, when: str | date | datetime) -> Contact:
        """Set the next touchpoint by hand. Past instants are rejected."""
        now = self._now()
        next_at = resolve_next_touchpoint(when, now, self._tz)
        contact = self.contacts.require_contact(contact_id)
        updated = replace(contact, next_touchpoint_at=next_at, updated_at=now)
        return self.contacts.update_contact(updated)

    def clear_schedule(self, contact_id: str) -> Contact:
        contact = self.contacts.require_contact(contact_id)
        updated = replace(contact, next_touchpoint_at=None, updated_at=self._now())
        return self.contacts.update_contact(updated)

    def touch(
        self,
        contact_id: str,
        reschedule: bool = False,
        occurred_at: datetime | None = None,
    ) -> Interaction:
        """Log a bare "touch" interaction, optionally rescheduling by cadence."""
        return self._log(contact_id, OtherKind("touch"), "", reschedule, occurred_at)

    def add_note(
        self,
        contact_id: str,
        kind: str,
        note: str = "",
        reschedule: bool = False,
        occurred_at: datetime | None = None,
        follow_up_at: datetime | None = None,
    ) -> Interaction:
        """Log an interaction of ``kind`` ("call", "coffee", ...) with a note."""
        return self._log(
            contact_id, kind_from_label(kind), note, reschedule, occurred_at, follow_up_at,
        )

    def _log(self, contact_id, kind, note, reschedule, occurred_at, follow_up_at=None):
        now = self._now()
        occurred_at = ensure_not_far_future(now, occurred_at or now)
        interaction = Interaction(
            contact_id=contact_id,
            kind=kind,
            note=note,
            occurred_at=occurred_at,
            created_at=now,
            follow_up_at=follow_up_at,
        )
        return self.interactions.add_interaction(interaction, reschedule=reschedule, now=now)

    def list_interactions(
        self, contact_id: str, limit: int = 20, offset: int = 0,
    ) -> list[Interaction]:
        return self.interactions.list_for_contact(contact_id, limit=limit, offset=offset)

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def set_tags(self, contact_id: str, names: Iterable[str]) -> Contact:
        self.tags.set_contact_tags(contact_id, names)
        return self._apply_loop_if_uncadenced(contact_id)

    def add_tag(self, contact_id: str, name: str) -> Contact:
        self.tags.add_tag(contact_id, name)
        return self._apply_loop_if_uncadenced(contact_id)

    def remove_tag(self, contact_id: str, name: str) -> Contact:
        self.tags.remove_tag(contact_id, name)
        return self.contacts.require_contact(contact_id)

    def _apply_loop_if_uncadenced(self, contact_id: str) -> Contact:
        contact = self.contacts.require_contact(contact_id)
        if contact.cadence_days is not None or contact.is_archived:
            return contact
        cadence, matched = self._loops.resolve_cadence_with_match(contact.tags)
        if not matched:
            return contact
        logger.info("Loop cadence %d applied to contact %s", cadence, contact_id)
        updated = replace(contact, cadence_days=cadence, updated_at=self._now())
        return self.contacts.update_contact(updated)

    def apply_loops(
        self,
        filter_string: str = "",
        force: bool = False,
        schedule_missing: bool = False,
        dry_run: bool = False,
    ) -> list[LoopChange]:
        """Apply the loop policy to every active contact matching the filter.

        Existing cadences are kept unless ``force``; with ``schedule_missing``
        unscheduled contacts get ``now + cadence``.
        """
        now = self._now()
        changes: list[LoopChange] = []
        for contact in self.contacts.list_contacts(self._compile(filter_string, now)):
            if contact.is_archived:
                continue
            desired = self._loops.resolve_cadence(contact.tags)
            if desired is None:
                continue

            cadence_after = contact.cadence_days
            if cadence_after is None or force:
                cadence_after = desired
            next_after = contact.next_touchpoint_at
            if schedule_missing and next_after is None:
                next_after = schedule_next(now, cadence_after, now=now)

            if (cadence_after, next_after) == (contact.cadence_days, contact.next_touchpoint_at):
                continue
            changes.append(LoopChange(
                contact_id=contact.id,
                display_name=contact.display_name,
                cadence_before=contact.cadence_days,
                cadence_after=cadence_after,
                next_touchpoint_before=contact.next_touchpoint_at,
                next_touchpoint_after=next_after,
            ))
            if not dry_run:
                self.contacts.update_contact(replace(
                    contact,
                    cadence_days=cadence_after,
                    next_touchpoint_at=next_after,
                    updated_at=now,
                ))
        logger.info("Loops applied: %d contact(s) changed (dry_run=%s)", len(changes), dry_run)
        return changes

    # ------------------------------------------------------------------
    # Listing and reminders
    # ------------------------------------------------------------------

    def _compile(self, filter_string: str, now: datetime) -> ContactQuery:
        return compile_filter(parse_filter(filter_string), now, self._tz, self._soon_days)

    def list_contacts(self, filter_string: str = "") -> list[ContactListItem]:
        """Contacts matching the filter, most urgent first."""
        query = self._compile(filter_string, self._now())
        return [self._to_item(query, c) for c in self.contacts.list_contacts(query)]

    @staticmethod
    def _to_item(query: ContactQuery, contact: Contact) -> ContactListItem:
        return ContactListItem(
            id=contact.id,
            display_name=contact.display_name,
            due_state=query.due_state(contact),
            next_touchpoint_at=contact.next_touchpoint_at,
            archived_at=contact.archived_at,
            tags=contact.tags,
        )

    def reminders(self, soon_days: int | None = None) -> ReminderOutput:
        """Overdue, today and soon contacts plus today's annual dates."""
        now = self._now()
        soon = self._soon_days if soon_days is None else validate_soon_days(soon_days)
        query = compile_filter(parse_filter("due:any"), now, self._tz, soon)
        output = ReminderOutput.from_items(
            [self._to_item(query, c) for c in self.contacts.list_contacts(query)]
        )
        output.dates_today = self.dates_today()
        return output

    # ------------------------------------------------------------------
    # Contact dates
    # ------------------------------------------------------------------

    def add_date(
        self,
        contact_id: str,
        kind: str | ContactDateKind,
        on: str,
        label: str | None = None,
        source: str | None = None,
    ) -> ContactDate:
        """Record a birthday, name day or custom date ("1990-05-01", "05-01", ...)."""
        self.contacts.require_contact(contact_id)
        if isinstance(kind, str):
            kind = ContactDateKind.parse(kind)
        month, day, year = parse_date_parts(on)
        now = self._now()
        contact_date = ContactDate(
            contact_id=contact_id,
            kind=kind,
            month=month,
            day=day,
            year=year,
            label=label,
            created_at=now,
            source=source,
        )
        return self.dates.upsert(contact_date)

    def list_dates(self, contact_id: str) -> list[ContactDate]:
        return self.dates.list_for_contact(contact_id)

    def delete_date(self, date_id: str) -> bool:
        return self.dates.delete_date(date_id)

    def dates_today(self) -> list[DateReminderItem]:
        return [
            DateReminderItem(
                contact_id=item.contact_id,
                display_name=display_name,
                kind=item.kind,
                label=item.label,
                month=item.month,
                day=item.day,
                year=item.year,
            )
            for item, display_name in self.dates.list_today(self._now(), self._tz)
        ]

