"""
Knotter: Contact filter language.

Shared by the CLI and the TUI: a raw filter string is split on whitespace
and every token becomes one term of an implicit AND.

    #friends        contact has tag "friends" (tag-normalized)
    due:soon        due selector: overdue | today | soon | any | none
    archived:true   archived selector: true | false
    ada             anything else: text matched against name/email/phone/handle

There is no OR and no escaping. Parsing stops at the first bad token.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict

from knotter.core.due import DueSelector
from knotter.core.errors import FilterErrorKind, FilterParseError, NormalizationError
from knotter.core.normalize import normalize_tag


class ArchivedSelector(Enum):
    TRUE = "true"
    FALSE = "false"


# ---------------------------------------------------------------------------
# AST: built per query, never persisted
# ---------------------------------------------------------------------------

class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)


class TextFilter(_Node):
    """Free text, OR'd across name/email/phone/handle."""
    type: Literal["text"] = "text"
    text: str

    def __str__(self) -> str:
        return self.text


class TagFilter(_Node):
    """Contact must carry this (already normalized) tag."""
    type: Literal["tag"] = "tag"
    tag: str

    def __str__(self) -> str:
        return f"#{self.tag}"


class DueFilter(_Node):
    type: Literal["due"] = "due"
    selector: DueSelector

    def __str__(self) -> str:
        return f"due:{self.selector.value}"


class ArchivedFilter(_Node):
    type: Literal["archived"] = "archived"
    selector: ArchivedSelector

    def __str__(self) -> str:
        return f"archived:{self.selector.value}"


class AndFilter(_Node):
    """Conjunction of terms, in the order they were typed."""
    type: Literal["and"] = "and"
    terms: tuple[FilterExpr, ...] = ()

    def __str__(self) -> str:
        return " ".join(str(term) for term in self.terms)


FilterExpr = TextFilter | TagFilter | DueFilter | ArchivedFilter | AndFilter

AndFilter.model_rebuild()


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

_DUE_PREFIX = "due:"
_ARCHIVED_PREFIX = "archived:"


def parse_filter(raw: str) -> AndFilter:
    """Parse a filter string into an AndFilter.

    Raises FilterParseError with the zero-based token index, the token and
    the error kind for the first token that cannot be parsed.
    """
    terms: list[FilterExpr] = []
    for index, token in enumerate(raw.split()):
        terms.append(_parse_token(index, token))
    return AndFilter(terms=tuple(terms))


def _parse_token(index: int, token: str) -> FilterExpr:
    if token.startswith("#"):
        return TagFilter(tag=_parse_tag(index, token))
    if token.startswith(_DUE_PREFIX):
        value = token[len(_DUE_PREFIX):]
        try:
            return DueFilter(selector=DueSelector(value))
        except ValueError:
            raise FilterParseError(
                index, token, FilterErrorKind.INVALID_DUE_VALUE, value,
            ) from None
    if token.startswith(_ARCHIVED_PREFIX):
        value = token[len(_ARCHIVED_PREFIX):]
        try:
            return ArchivedFilter(selector=ArchivedSelector(value))
        except ValueError:
            raise FilterParseError(
                index, token, FilterErrorKind.INVALID_ARCHIVED_VALUE, value,
            ) from None
    return TextFilter(text=token)


def _parse_tag(index: int, token: str) -> str:
    remainder = token[1:]
    if not remainder:
        raise FilterParseError(index, token, FilterErrorKind.EMPTY_TAG)
    try:
        return normalize_tag(remainder)
    except NormalizationError:
        # "#---" has nothing left once hyphens collapse
        raise FilterParseError(index, token, FilterErrorKind.EMPTY_TAG) from None


def iter_terms(expr: FilterExpr):
    """Yield the leaf terms of ``expr``, flattening nested ANDs."""
    if isinstance(expr, AndFilter):
        for term in expr.terms:
            yield from iter_terms(term)
    else:
        yield expr
