"""
Knotter: SQLite storage.

Contacts with their emails, tags, interaction history and annual dates.
Entities arrive already validated. Tag-name uniqueness and email ownership
are enforced here by UNIQUE constraints, and multi-table writes share one
transaction so a failure leaves nothing half-applied.

Timestamps are stored as unix seconds (UTC).
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, tzinfo
from pathlib import Path

from knotter.core.cadence import next_touchpoint_after_touch
from knotter.core.dates import date_occurs_today, is_leap_year
from knotter.core.errors import DuplicateEmailError, NotFoundError
from knotter.core.normalize import normalize_email, normalize_tag
from knotter.core.query import ContactQuery
from knotter.core.time_utils import from_timestamp, local_today, now_utc, to_timestamp
from knotter.data.models import (
    Contact,
    ContactDate,
    ContactDateKind,
    Interaction,
    InteractionKind,
    Kind,
    OtherKind,
    Tag,
)
from knotter.data.query import CONTACT_COLUMNS, to_sql

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS contacts (
    id                 TEXT    PRIMARY KEY,
    display_name       TEXT    NOT NULL,
    email              TEXT,
    phone              TEXT,
    handle             TEXT,
    timezone           TEXT,
    next_touchpoint_at INTEGER,
    cadence_days       INTEGER,
    created_at         INTEGER NOT NULL,
    updated_at         INTEGER NOT NULL,
    archived_at        INTEGER
);
CREATE INDEX IF NOT EXISTS idx_contacts_display_name ON contacts(display_name);
CREATE INDEX IF NOT EXISTS idx_contacts_next_touchpoint_at ON contacts(next_touchpoint_at);
CREATE INDEX IF NOT EXISTS idx_contacts_archived_at ON contacts(archived_at);

CREATE TABLE IF NOT EXISTS contact_emails (
    contact_id TEXT    NOT NULL,
    email      TEXT    NOT NULL UNIQUE,
    is_primary INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL,
    source     TEXT,
    PRIMARY KEY (contact_id, email),
    FOREIGN KEY (contact_id) REFERENCES contacts(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_contact_emails_contact_id ON contact_emails(contact_id);

CREATE TABLE IF NOT EXISTS tags (
    id   TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS contact_tags (
    contact_id TEXT NOT NULL,
    tag_id     TEXT NOT NULL,
    PRIMARY KEY (contact_id, tag_id),
    FOREIGN KEY (contact_id) REFERENCES contacts(id) ON DELETE CASCADE,
    FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_contact_tags_tag_id ON contact_tags(tag_id);

CREATE TABLE IF NOT EXISTS interactions (
    id           TEXT    PRIMARY KEY,
    contact_id   TEXT    NOT NULL,
    occurred_at  INTEGER NOT NULL,
    created_at   INTEGER NOT NULL,
    kind         TEXT    NOT NULL,
    note         TEXT    NOT NULL,
    follow_up_at INTEGER,
    FOREIGN KEY (contact_id) REFERENCES contacts(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_interactions_contact_occurred
    ON interactions(contact_id, occurred_at DESC);

CREATE TABLE IF NOT EXISTS contact_dates (
    id         TEXT    PRIMARY KEY,
    contact_id TEXT    NOT NULL,
    kind       TEXT    NOT NULL,
    label      TEXT    NOT NULL DEFAULT '',
    month      INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
    day        INTEGER NOT NULL CHECK (day BETWEEN 1 AND 31),
    year       INTEGER,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    source     TEXT,
    UNIQUE (contact_id, kind, label, month, day),
    CHECK (kind <> 'custom' OR length(trim(label)) > 0),
    FOREIGN KEY (contact_id) REFERENCES contacts(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_contact_dates_month_day ON contact_dates(month, day);
"""

_OTHER_PREFIX = "other:"


def kind_to_db(kind: Kind) -> str:
    """Interaction kind → stored string ("call", "other:coffee", ...)."""
    if isinstance(kind, OtherKind):
        return f"{_OTHER_PREFIX}{kind.label}"
    return kind.value


def kind_from_db(raw: str) -> Kind:
    if raw.startswith(_OTHER_PREFIX):
        return OtherKind(raw[len(_OTHER_PREFIX):])
    return InteractionKind(raw)


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class _SQLiteStore:
    """Shared connection handling and schema setup."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from knotter.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection wrapped in one transaction, then close it."""
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    @staticmethod
    def _ensure_contact(conn: sqlite3.Connection, contact_id: str) -> None:
        row = conn.execute("SELECT 1 FROM contacts WHERE id = ?", (contact_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"contact not found: {contact_id}")

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Schema initialized at %s", self._db_path)


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


class ContactDB(_SQLiteStore):
    """Contacts and their email addresses."""

    @staticmethod
    def _row_to_contact(
        row: sqlite3.Row, emails: list[str], tags: list[str],
    ) -> Contact:
        return Contact(
            id=row["id"],
            display_name=row["display_name"],
            email=row["email"],
            emails=emails,
            phone=row["phone"],
            handle=row["handle"],
            timezone=row["timezone"],
            next_touchpoint_at=from_timestamp(row["next_touchpoint_at"]),
            cadence_days=row["cadence_days"],
            created_at=from_timestamp(row["created_at"]),
            updated_at=from_timestamp(row["updated_at"]),
            archived_at=from_timestamp(row["archived_at"]),
            tags=tags,
        )

    def _hydrate(self, conn: sqlite3.Connection, rows: list[sqlite3.Row]) -> list[Contact]:
        ids = [row["id"] for row in rows]
        emails = _emails_for_contacts(conn, ids)
        tags = _tags_for_contacts(conn, ids)
        return [
            self._row_to_contact(row, emails.get(row["id"], []), tags.get(row["id"], []))
            for row in rows
        ]

    def add_contact(self, contact: Contact) -> Contact:
        """Insert a contact together with its emails and tags."""
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO contacts ({CONTACT_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    contact.id, contact.display_name, contact.email,
                    contact.phone, contact.handle, contact.timezone,
                    to_timestamp(contact.next_touchpoint_at), contact.cadence_days,
                    to_timestamp(contact.created_at), to_timestamp(contact.updated_at),
                    to_timestamp(contact.archived_at),
                ),
            )
            _replace_emails(conn, contact)
            for name in contact.tags:
                _attach_tag(conn, contact.id, name)
        logger.info("Contact added: %s '%s'", contact.id, contact.display_name)
        return contact

    def get_contact(self, contact_id: str) -> Contact | None:
        """Fetch a single contact by ID."""
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {CONTACT_COLUMNS} FROM contacts WHERE id = ?", (contact_id,),
            ).fetchone()
            if row is None:
                return None
            return self._hydrate(conn, [row])[0]

    def require_contact(self, contact_id: str) -> Contact:
        contact = self.get_contact(contact_id)
        if contact is None:
            raise NotFoundError(f"contact not found: {contact_id}")
        return contact

    def update_contact(self, contact: Contact) -> Contact:
        """Write every scalar field and the email set. Tags are left alone."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE contacts SET
                    display_name = ?, email = ?, phone = ?, handle = ?,
                    timezone = ?, next_touchpoint_at = ?, cadence_days = ?,
                    updated_at = ?, archived_at = ?
                WHERE id = ?
                """,
                (
                    contact.display_name, contact.email, contact.phone,
                    contact.handle, contact.timezone,
                    to_timestamp(contact.next_touchpoint_at), contact.cadence_days,
                    to_timestamp(contact.updated_at), to_timestamp(contact.archived_at),
                    contact.id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"contact not found: {contact.id}")
            _replace_emails(conn, contact)
        logger.info("Contact updated: %s '%s'", contact.id, contact.display_name)
        return contact

    def delete_contact(self, contact_id: str) -> bool:
        """Permanently delete a contact; interactions, dates and links cascade."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM contacts WHERE id = ?", (contact_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Contact %s deleted", contact_id)
        return deleted

    def list_contacts(self, query: ContactQuery) -> list[Contact]:
        """Run a compiled query; results come back in due-bucket order."""
        compiled = to_sql(query)
        with self._connect() as conn:
            rows = conn.execute(compiled.sql, compiled.params).fetchall()
            return self._hydrate(conn, rows)

    def find_by_email(self, email: str) -> Contact | None:
        address = normalize_email(email)
        if address is None:
            return None
        with self._connect() as conn:
            row = conn.execute(
                "SELECT contact_id FROM contact_emails WHERE email = ?", (address,),
            ).fetchone()
        if row is None:
            return None
        return self.get_contact(row["contact_id"])

    def add_email(self, contact_id: str, email: str, make_primary: bool = False) -> Contact:
        """Attach an address; optionally make it the primary one."""
        contact = self.require_contact(contact_id)
        address = normalize_email(email)
        if address is None:
            return contact
        emails = contact.emails + ([address] if address not in contact.emails else [])
        primary = address if make_primary or contact.email is None else contact.email
        updated = replace(contact, email=primary, emails=emails, updated_at=now_utc())
        return self.update_contact(updated)

    def set_primary_email(self, contact_id: str, email: str | None) -> Contact:
        """Mark one of the contact's addresses primary, or clear the primary."""
        contact = self.require_contact(contact_id)
        address = normalize_email(email)
        if address is not None and address not in contact.emails:
            raise NotFoundError(f"email {address} does not belong to contact {contact_id}")
        updated = replace(contact, email=address, updated_at=now_utc())
        return self.update_contact(updated)


def _replace_emails(conn: sqlite3.Connection, contact: Contact) -> None:
    """Make contact_emails mirror ``contact.emails`` (primary flagged)."""
    for address in contact.emails:
        owner = conn.execute(
            "SELECT contact_id FROM contact_emails WHERE email = ?", (address,),
        ).fetchone()
        if owner is not None and owner["contact_id"] != contact.id:
            raise DuplicateEmailError(address)

    conn.execute("DELETE FROM contact_emails WHERE contact_id = ?", (contact.id,))
    created = to_timestamp(contact.updated_at)
    try:
        conn.executemany(
            "INSERT INTO contact_emails (contact_id, email, is_primary, created_at) "
            "VALUES (?, ?, ?, ?)",
            [
                (contact.id, address, int(address == contact.email), created)
                for address in contact.emails
            ],
        )
    except sqlite3.IntegrityError as exc:
        # lost a race with another writer for the same address
        raise DuplicateEmailError(", ".join(contact.emails)) from exc


def _emails_for_contacts(
    conn: sqlite3.Connection, contact_ids: list[str],
) -> dict[str, list[str]]:
    result: dict[str, list[str]] = {}
    if not contact_ids:
        return result
    rows = conn.execute(
        f"SELECT contact_id, email FROM contact_emails "
        f"WHERE contact_id IN ({_placeholders(len(contact_ids))}) "
        "ORDER BY is_primary DESC, email ASC",
        contact_ids,
    ).fetchall()
    for row in rows:
        result.setdefault(row["contact_id"], []).append(row["email"])
    return result


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


def _upsert_tag(conn: sqlite3.Connection, name: str) -> Tag:
    """Insert-or-fetch by normalized name; the UNIQUE constraint picks the winner."""
    tag = Tag(name=name)
    conn.execute(
        "INSERT INTO tags (id, name) VALUES (?, ?) ON CONFLICT(name) DO NOTHING",
        (tag.id, tag.name),
    )
    row = conn.execute("SELECT id, name FROM tags WHERE name = ?", (tag.name,)).fetchone()
    return Tag(id=row["id"], name=row["name"])


def _attach_tag(conn: sqlite3.Connection, contact_id: str, name: str) -> Tag:
    tag = _upsert_tag(conn, name)
    conn.execute(
        "INSERT OR IGNORE INTO contact_tags (contact_id, tag_id) VALUES (?, ?)",
        (contact_id, tag.id),
    )
    return tag


def _tags_for_contacts(
    conn: sqlite3.Connection, contact_ids: list[str],
) -> dict[str, list[str]]:
    result: dict[str, list[str]] = {}
    if not contact_ids:
        return result
    rows = conn.execute(
        f"SELECT ct.contact_id, t.name FROM contact_tags ct "
        f"INNER JOIN tags t ON t.id = ct.tag_id "
        f"WHERE ct.contact_id IN ({_placeholders(len(contact_ids))}) "
        "ORDER BY t.name ASC",
        contact_ids,
    ).fetchall()
    for row in rows:
        result.setdefault(row["contact_id"], []).append(row["name"])
    return result


class TagDB(_SQLiteStore):
    """Normalized tags and the contact ↔ tag relation."""

    def upsert(self, name: str) -> Tag:
        with self._connect() as conn:
            return _upsert_tag(conn, name)

    def list_with_counts(self) -> list[tuple[Tag, int]]:
        """All tags with the number of contacts carrying each, by name."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT tags.id, tags.name, COUNT(contact_tags.contact_id) AS cnt
                FROM tags
                LEFT JOIN contact_tags ON tags.id = contact_tags.tag_id
                GROUP BY tags.id, tags.name
                ORDER BY tags.name ASC
                """
            ).fetchall()
        return [(Tag(id=r["id"], name=r["name"]), r["cnt"]) for r in rows]

    def list_for_contact(self, contact_id: str) -> list[Tag]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT tags.id, tags.name FROM tags
                INNER JOIN contact_tags ON tags.id = contact_tags.tag_id
                WHERE contact_tags.contact_id = ?
                ORDER BY tags.name ASC
                """,
                (contact_id,),
            ).fetchall()
        return [Tag(id=r["id"], name=r["name"]) for r in rows]

    def add_tag(self, contact_id: str, name: str) -> Tag:
        name = normalize_tag(name)
        with self._connect() as conn:
            self._ensure_contact(conn, contact_id)
            tag = _attach_tag(conn, contact_id, name)
        logger.info("Tag '%s' added to contact %s", tag.name, contact_id)
        return tag

    def remove_tag(self, contact_id: str, name: str) -> bool:
        name = normalize_tag(name)
        with self._connect() as conn:
            cursor = conn.execute(
                """
                DELETE FROM contact_tags
                WHERE contact_id = ?
                  AND tag_id = (SELECT id FROM tags WHERE name = ?)
                """,
                (contact_id, name),
            )
            removed = cursor.rowcount > 0
        if removed:
            logger.info("Tag '%s' removed from contact %s", name, contact_id)
        return removed

    def set_contact_tags(self, contact_id: str, names: Iterable[str]) -> list[Tag]:
        """Replace the contact's whole tag set in one transaction."""
        # normalize everything before touching the database
        normalized = sorted({normalize_tag(name) for name in names})
        with self._connect() as conn:
            self._ensure_contact(conn, contact_id)
            conn.execute("DELETE FROM contact_tags WHERE contact_id = ?", (contact_id,))
            tags = [_attach_tag(conn, contact_id, name) for name in normalized]
        logger.info("Contact %s tags set to %s", contact_id, normalized)
        return tags


# ---------------------------------------------------------------------------
# Interactions
# ---------------------------------------------------------------------------


class InteractionDB(_SQLiteStore):
    """Interaction history, with optional cadence reschedule on insert."""

    @staticmethod
    def _row_to_interaction(row: sqlite3.Row) -> Interaction:
        return Interaction(
            id=row["id"],
            contact_id=row["contact_id"],
            occurred_at=from_timestamp(row["occurred_at"]),
            created_at=from_timestamp(row["created_at"]),
            kind=kind_from_db(row["kind"]),
            note=row["note"],
            follow_up_at=from_timestamp(row["follow_up_at"]),
        )

    def add_interaction(
        self,
        interaction: Interaction,
        reschedule: bool = False,
        now: datetime | None = None,
    ) -> Interaction:
        """Insert an interaction; with ``reschedule``, move the contact's next
        touchpoint to ``max(now, occurred_at) + cadence`` in the same transaction.
        """
        now = now or now_utc()
        with self._connect() as conn:
            contact = conn.execute(
                "SELECT cadence_days, next_touchpoint_at FROM contacts WHERE id = ?",
                (interaction.contact_id,),
            ).fetchone()
            if contact is None:
                raise NotFoundError(f"contact not found: {interaction.contact_id}")

            conn.execute(
                """
                INSERT INTO interactions
                    (id, contact_id, occurred_at, created_at, kind, note, follow_up_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    interaction.id, interaction.contact_id,
                    to_timestamp(interaction.occurred_at),
                    to_timestamp(interaction.created_at),
                    kind_to_db(interaction.kind), interaction.note,
                    to_timestamp(interaction.follow_up_at),
                ),
            )

            existing = from_timestamp(contact["next_touchpoint_at"])
            next_at = next_touchpoint_after_touch(
                now, contact["cadence_days"], reschedule, existing,
                occurred_at=interaction.occurred_at,
            )
            if next_at != existing:
                conn.execute(
                    "UPDATE contacts SET next_touchpoint_at = ?, updated_at = ? WHERE id = ?",
                    (to_timestamp(next_at), to_timestamp(now), interaction.contact_id),
                )
                logger.info(
                    "Contact %s rescheduled to %s", interaction.contact_id, next_at.isoformat(),
                )

        logger.info(
            "Interaction %s (%s) logged for contact %s",
            interaction.id, kind_to_db(interaction.kind), interaction.contact_id,
        )
        return interaction

    def list_for_contact(
        self, contact_id: str, limit: int = 20, offset: int = 0,
    ) -> list[Interaction]:
        """Most recent first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM interactions
                WHERE contact_id = ?
                ORDER BY occurred_at DESC, created_at DESC, id ASC
                LIMIT ? OFFSET ?
                """,
                (contact_id, limit, offset),
            ).fetchall()
        return [self._row_to_interaction(r) for r in rows]


# ---------------------------------------------------------------------------
# Contact dates
# ---------------------------------------------------------------------------


class ContactDateDB(_SQLiteStore):
    """Birthdays, name days and custom annual dates."""

    @staticmethod
    def _row_to_date(row: sqlite3.Row) -> ContactDate:
        return ContactDate(
            id=row["id"],
            contact_id=row["contact_id"],
            kind=ContactDateKind(row["kind"]),
            label=row["label"] or None,
            month=row["month"],
            day=row["day"],
            year=row["year"],
            created_at=from_timestamp(row["created_at"]),
            updated_at=from_timestamp(row["updated_at"]),
            source=row["source"],
        )

    def upsert(self, contact_date: ContactDate) -> ContactDate:
        """Insert, or update year/source of the same (kind, label, month, day)."""
        label = contact_date.label or ""
        with self._connect() as conn:
            self._ensure_contact(conn, contact_date.contact_id)
            conn.execute(
                """
                INSERT INTO contact_dates
                    (id, contact_id, kind, label, month, day, year,
                     created_at, updated_at, source)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(contact_id, kind, label, month, day) DO UPDATE SET
                    year = excluded.year,
                    updated_at = excluded.updated_at,
                    source = COALESCE(excluded.source, contact_dates.source)
                """,
                (
                    contact_date.id, contact_date.contact_id, contact_date.kind.value,
                    label, contact_date.month, contact_date.day, contact_date.year,
                    to_timestamp(contact_date.created_at),
                    to_timestamp(contact_date.updated_at), contact_date.source,
                ),
            )
            row = conn.execute(
                """
                SELECT * FROM contact_dates
                WHERE contact_id = ? AND kind = ? AND label = ? AND month = ? AND day = ?
                """,
                (
                    contact_date.contact_id, contact_date.kind.value, label,
                    contact_date.month, contact_date.day,
                ),
            ).fetchone()
        logger.info(
            "Date %s %02d-%02d saved for contact %s",
            contact_date.kind.value, contact_date.month, contact_date.day,
            contact_date.contact_id,
        )
        return self._row_to_date(row)

    def list_for_contact(self, contact_id: str) -> list[ContactDate]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM contact_dates WHERE contact_id = ?
                ORDER BY kind ASC, month ASC, day ASC, label ASC
                """,
                (contact_id,),
            ).fetchall()
        return [self._row_to_date(r) for r in rows]

    def delete_date(self, date_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM contact_dates WHERE id = ?", (date_id,))
            return cursor.rowcount > 0

    def list_today(
        self, now: datetime, tz: tzinfo | None,
    ) -> list[tuple[ContactDate, str]]:
        """Dates occurring today for active contacts, with the display name."""
        today = local_today(now, tz)
        pairs = [(today.month, today.day)]
        if (today.month, today.day) == (2, 28) and not is_leap_year(today.year):
            pairs.append((2, 29))
        clause = " OR ".join("(d.month = ? AND d.day = ?)" for _ in pairs)
        params = [value for pair in pairs for value in pair]

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT d.*, c.display_name FROM contact_dates d
                INNER JOIN contacts c ON c.id = d.contact_id
                WHERE c.archived_at IS NULL AND ({clause})
                ORDER BY casefold(c.display_name) ASC, d.kind ASC, d.label ASC
                """,
                params,
            ).fetchall()
        return [
            (self._row_to_date(r), r["display_name"])
            for r in rows
            if date_occurs_today(now, r["month"], r["day"], tz)
        ]
