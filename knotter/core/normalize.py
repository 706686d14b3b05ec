"""Canonical forms for tag names, emails and free-form labels.

``normalize_tag`` is the only place the tag rule lives. The domain model,
the filter parser, loop rules and the tag storage all call it, so equal
inputs always produce byte-identical names.
"""

from __future__ import annotations

import re

from knotter.core.errors import NormalizationError, ValidationError

_HYPHEN_RUN = re.compile(r"-{2,}")


def normalize_tag(value: str) -> str:
    """Trim, lowercase, turn whitespace runs into one hyphen, collapse hyphens.

    Leading and trailing hyphens are dropped. Raises NormalizationError when
    nothing is left.
    """
    hyphenated = "-".join(value.strip().lower().split())
    normalized = _HYPHEN_RUN.sub("-", hyphenated).strip("-")
    if not normalized:
        raise NormalizationError(value)
    return normalized


def normalize_email(value: str | None) -> str | None:
    """Trim and lowercase an email address; blank input becomes None."""
    if value is None:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return trimmed.lower()


def normalize_label(value: str | None) -> str | None:
    """Trim a free-form label; blank input becomes None."""
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def normalize_interaction_label(value: str) -> str:
    """Trim and lowercase a custom interaction kind label."""
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError("interaction kind label is required")
    return trimmed.lower()
