"""Error types raised by the knotter core and its storage layer.

Every error is raised to the immediate caller. Nothing here is retried,
logged or corrected silently; front ends decide how to present it.
"""

from __future__ import annotations

from enum import Enum


class KnotterError(Exception):
    """Base class for all knotter errors."""


class ValidationError(KnotterError, ValueError):
    """An entity invariant was violated (empty name, bad cadence, ...)."""


class NormalizationError(ValidationError):
    """A tag name normalized to the empty string."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"tag name is empty after normalization: {raw!r}")
        self.raw = raw


class SchedulingGuardError(ValidationError):
    """A caller-supplied next touchpoint resolves to a past instant."""


class DuplicateEmailError(ValidationError):
    """The email address already belongs to another contact."""

    def __init__(self, email: str) -> None:
        super().__init__(f"duplicate email: {email}")
        self.email = email


class NotFoundError(KnotterError, LookupError):
    """No row exists for the requested id."""


class FilterErrorKind(Enum):
    EMPTY_TAG = "empty_tag"
    INVALID_DUE_VALUE = "invalid_due_value"
    INVALID_ARCHIVED_VALUE = "invalid_archived_value"


_KIND_MESSAGES = {
    FilterErrorKind.EMPTY_TAG: "empty tag",
    FilterErrorKind.INVALID_DUE_VALUE: "invalid due value {value!r} "
    "(expected overdue, today, soon, any or none)",
    FilterErrorKind.INVALID_ARCHIVED_VALUE: "invalid archived value {value!r} "
    "(expected true or false)",
}


class FilterParseError(KnotterError, ValueError):
    """A filter token could not be parsed.

    Carries enough to highlight the failing token: its zero-based position
    among whitespace-separated tokens, the token as typed, and the kind.
    """

    def __init__(
        self,
        token_index: int,
        token: str,
        kind: FilterErrorKind,
        value: str | None = None,
    ) -> None:
        self.token_index = token_index
        self.token = token
        self.kind = kind
        self.value = value
        reason = _KIND_MESSAGES[kind].format(value=value)
        super().__init__(f"token {token_index} ({token!r}): {reason}")
