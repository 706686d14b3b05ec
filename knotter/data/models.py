"""
Knotter: Data Models.

Contacts, their interaction history, tags and annual dates. Every entity
checks its invariants in ``__post_init__``, so importers, front ends and
storage all get the same ValidationError for the same bad input. Edits go
through ``dataclasses.replace`` so a failed check leaves the original intact.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from knotter.core.cadence import validate_cadence_days
from knotter.core.errors import ValidationError
from knotter.core.normalize import (
    normalize_email,
    normalize_interaction_label,
    normalize_label,
    normalize_tag,
)
from knotter.core.time_utils import as_utc, now_utc, resolve_timezone


def new_id() -> str:
    return str(uuid.uuid4())


def _as_utc_or_none(value: datetime | None) -> datetime | None:
    return None if value is None else as_utc(value)


@dataclass
class Contact:
    """A person being tracked.

    ``email`` is the primary address; ``emails`` holds every address for the
    contact, primary first. Global uniqueness of addresses is enforced by
    storage, not here.
    """

    display_name: str
    id: str = field(default_factory=new_id)
    email: str | None = None
    emails: list[str] = field(default_factory=list)
    phone: str | None = None
    handle: str | None = None
    timezone: str | None = None
    next_touchpoint_at: datetime | None = None
    cadence_days: int | None = None
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime | None = None
    archived_at: datetime | None = None
    tags: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.display_name = (self.display_name or "").strip()
        if not self.display_name:
            raise ValidationError("display name is required")

        if self.cadence_days is not None:
            validate_cadence_days(self.cadence_days)

        self.phone = normalize_label(self.phone)
        self.handle = normalize_label(self.handle)
        self.timezone = normalize_label(self.timezone)
        if self.timezone is not None:
            resolve_timezone(self.timezone)

        self.email = normalize_email(self.email)
        addresses: list[str] = []
        for raw in ([self.email] if self.email else []) + list(self.emails):
            address = normalize_email(raw)
            if address and address not in addresses:
                addresses.append(address)
        self.emails = addresses

        self.created_at = as_utc(self.created_at)
        self.updated_at = as_utc(self.updated_at) if self.updated_at else self.created_at
        self.next_touchpoint_at = _as_utc_or_none(self.next_touchpoint_at)
        self.archived_at = _as_utc_or_none(self.archived_at)
        self.tags = sorted({normalize_tag(tag) for tag in self.tags})

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None


class InteractionKind(Enum):
    CALL = "call"
    TEXT = "text"
    HANGOUT = "hangout"
    EMAIL = "email"
    TELEGRAM = "telegram"


@dataclass(frozen=True)
class OtherKind:
    """A free-form interaction kind, e.g. "coffee"."""

    label: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "label", normalize_interaction_label(self.label))

    def __str__(self) -> str:
        return self.label


Kind = InteractionKind | OtherKind


def kind_from_label(raw: str) -> Kind:
    """Map user input to a named kind, falling back to a free-form label."""
    label = normalize_interaction_label(raw)
    try:
        return InteractionKind(label)
    except ValueError:
        return OtherKind(label)


@dataclass
class Interaction:
    """A timestamped history entry. Immutable once stored."""

    contact_id: str
    kind: Kind
    note: str = ""
    id: str = field(default_factory=new_id)
    occurred_at: datetime = field(default_factory=now_utc)
    created_at: datetime = field(default_factory=now_utc)
    follow_up_at: datetime | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, (InteractionKind, OtherKind)):
            raise ValidationError(f"invalid interaction kind: {self.kind!r}")
        self.note = self.note or ""
        self.occurred_at = as_utc(self.occurred_at)
        self.created_at = as_utc(self.created_at)
        self.follow_up_at = _as_utc_or_none(self.follow_up_at)


@dataclass
class Tag:
    name: str
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        self.name = normalize_tag(self.name)


class ContactDateKind(Enum):
    BIRTHDAY = "birthday"
    NAME_DAY = "name_day"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, raw: str) -> ContactDateKind:
        value = raw.strip().lower()
        if value in ("nameday", "name-day"):
            value = "name_day"
        try:
            return cls(value)
        except ValueError as exc:
            raise ValidationError(f"invalid contact date kind: {raw}") from exc


@dataclass
class ContactDate:
    """An annual recurring date (birthday, name day or a custom label)."""

    contact_id: str
    kind: ContactDateKind
    month: int
    day: int
    label: str | None = None
    year: int | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime | None = None
    source: str | None = None

    def __post_init__(self) -> None:
        self.label = normalize_label(self.label)
        if self.kind is ContactDateKind.CUSTOM and self.label is None:
            raise ValidationError("contact date label is required for custom dates")
        if self.year is not None and not 1 <= self.year <= 9999:
            raise ValidationError(f"invalid contact date year: {self.year}")
        if not 1 <= self.month <= 12:
            raise ValidationError(f"invalid contact date month: {self.month}")
        try:
            # without a year, validate against a leap year so Feb 29 passes
            date(self.year or 2000, self.month, self.day)
        except ValueError as exc:
            raise ValidationError(
                f"invalid contact date day: {self.month}-{self.day}"
            ) from exc
        self.created_at = as_utc(self.created_at)
        self.updated_at = as_utc(self.updated_at) if self.updated_at else self.created_at
