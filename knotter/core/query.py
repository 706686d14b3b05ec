"""Filter compilation: turns a parsed filter into a contact query description.

The result is storage-agnostic: typed values and enumerated selectors only.
All day boundaries are computed once, from a single ``now``, so every row of
one query is judged against the same instant. ``knotter.data.query`` renders
the description as parameterized SQL; ``ContactQuery.matches`` and
``sort_key`` evaluate the same semantics in memory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import TYPE_CHECKING

from knotter.core.due import (
    DUE_STATE_ORDER,
    DueBounds,
    DueSelector,
    DueState,
    compute_due_bounds,
)
from knotter.core.filter import (
    AndFilter,
    ArchivedFilter,
    ArchivedSelector,
    DueFilter,
    FilterExpr,
    TagFilter,
    TextFilter,
    iter_terms,
)

if TYPE_CHECKING:
    from knotter.data.models import Contact


@dataclass(frozen=True)
class ContactQuery:
    """What to select and how to order it.

    Each tag needs its own membership check; several due or archived
    selectors are all required at once, which may match nothing.
    When no archived selector is given, archived contacts are excluded.
    """

    bounds: DueBounds
    text_terms: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    due: tuple[DueSelector, ...] = ()
    archived: tuple[ArchivedSelector, ...] = field(default=(ArchivedSelector.FALSE,))

    def due_state(self, contact: Contact) -> DueState:
        return self.bounds.due_state(contact.next_touchpoint_at)

    def matches(self, contact: Contact) -> bool:
        for term in self.text_terms:
            needle = term.casefold()
            haystacks = (contact.display_name, contact.email, contact.phone, contact.handle)
            if not any(value and needle in value.casefold() for value in haystacks):
                return False
        if any(tag not in contact.tags for tag in self.tags):
            return False
        for selector in self.due:
            if not self.bounds.selector_matches(selector, contact.next_touchpoint_at):
                return False
        for selector in self.archived:
            if contact.is_archived != (selector is ArchivedSelector.TRUE):
                return False
        return True

    def sort_key(self, contact: Contact) -> tuple[int, str, str]:
        """Due bucket first, then case-folded display name, then id."""
        rank = DUE_STATE_ORDER.index(self.due_state(contact))
        return rank, contact.display_name.casefold(), contact.id

    def apply(self, contacts: list[Contact]) -> list[Contact]:
        """Filter and order contacts in memory."""
        return sorted((c for c in contacts if self.matches(c)), key=self.sort_key)


def compile_filter(
    expr: FilterExpr | None,
    now: datetime,
    tz: tzinfo | None,
    soon_days: int,
) -> ContactQuery:
    """Compile a parsed filter into a ContactQuery for one instant."""
    bounds = compute_due_bounds(now, tz, soon_days)
    text_terms: list[str] = []
    tags: list[str] = []
    due: list[DueSelector] = []
    archived: list[ArchivedSelector] = []

    for term in iter_terms(expr if expr is not None else AndFilter()):
        if isinstance(term, TextFilter):
            text_terms.append(term.text)
        elif isinstance(term, TagFilter):
            if term.tag not in tags:
                tags.append(term.tag)
        elif isinstance(term, DueFilter):
            due.append(term.selector)
        elif isinstance(term, ArchivedFilter):
            archived.append(term.selector)

    return ContactQuery(
        bounds=bounds,
        text_terms=tuple(text_terms),
        tags=tuple(tags),
        due=tuple(due),
        archived=tuple(archived) or (ArchivedSelector.FALSE,),
    )
