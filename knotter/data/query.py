"""
Knotter: SQL rendering of a ContactQuery.

Every value is bound as a ``?`` parameter; only fixed fragments are joined
into the statement text. Text matching and name ordering go through the
``casefold`` function registered on every storage connection, so they fold
case exactly as the in-memory evaluation does.
"""

from __future__ import annotations

from dataclasses import dataclass

from knotter.core.due import DueSelector
from knotter.core.filter import ArchivedSelector
from knotter.core.query import ContactQuery
from knotter.core.time_utils import to_timestamp

CONTACT_COLUMNS = (
    "id, display_name, email, phone, handle, timezone, next_touchpoint_at, "
    "cadence_days, created_at, updated_at, archived_at"
)

_TEXT_CLAUSE = (
    "(instr(casefold(display_name), ?) > 0 OR instr(casefold(email), ?) > 0 "
    "OR instr(casefold(phone), ?) > 0 OR instr(casefold(handle), ?) > 0)"
)

_TAG_CLAUSE = (
    "EXISTS (SELECT 1 FROM contact_tags ct INNER JOIN tags t ON t.id = ct.tag_id "
    "WHERE ct.contact_id = contacts.id AND t.name = ?)"
)

_ORDER_BY = """
    ORDER BY CASE
        WHEN next_touchpoint_at IS NULL THEN 4
        WHEN next_touchpoint_at < ? THEN 0
        WHEN next_touchpoint_at < ? THEN 1
        WHEN next_touchpoint_at < ? THEN 2
        ELSE 3
    END,
    casefold(display_name) ASC,
    id ASC
"""


@dataclass
class SqlQuery:
    sql: str
    params: list


def to_sql(query: ContactQuery) -> SqlQuery:
    """Render a ContactQuery as a SELECT over the contacts table."""
    bounds = query.bounds
    now = to_timestamp(bounds.now)
    start_of_tomorrow = to_timestamp(bounds.start_of_tomorrow)
    soon_end = to_timestamp(bounds.soon_end)

    conditions: list[str] = []
    params: list = []

    for term in query.text_terms:
        conditions.append(_TEXT_CLAUSE)
        params.extend([term.casefold()] * 4)

    for tag in query.tags:
        conditions.append(_TAG_CLAUSE)
        params.append(tag)

    for selector in query.due:
        if selector is DueSelector.OVERDUE:
            conditions.append("(next_touchpoint_at IS NOT NULL AND next_touchpoint_at < ?)")
            params.append(now)
        elif selector is DueSelector.TODAY:
            conditions.append("(next_touchpoint_at >= ? AND next_touchpoint_at < ?)")
            params.extend([now, start_of_tomorrow])
        elif selector is DueSelector.SOON:
            conditions.append("(next_touchpoint_at >= ? AND next_touchpoint_at < ?)")
            params.extend([start_of_tomorrow, soon_end])
        elif selector is DueSelector.ANY:
            conditions.append("next_touchpoint_at IS NOT NULL")
        else:
            conditions.append("next_touchpoint_at IS NULL")

    for selector in query.archived:
        if selector is ArchivedSelector.TRUE:
            conditions.append("archived_at IS NOT NULL")
        else:
            conditions.append("archived_at IS NULL")

    sql = f"SELECT {CONTACT_COLUMNS} FROM contacts"
    if conditions:
        sql += " WHERE " + " AND ".join(conditions)
    sql += _ORDER_BY
    params.extend([now, start_of_tomorrow, soon_end])

    return SqlQuery(sql=sql, params=params)
