"""Tests for knotter.core.normalize."""

import pytest

from knotter.core.errors import NormalizationError, ValidationError
from knotter.core.normalize import (
    normalize_email,
    normalize_interaction_label,
    normalize_label,
    normalize_tag,
)

SAMPLES = [
    "friends",
    "  Close Friends ",
    "Close\tFriends\nForever",
    "a  --  b",
    "--x--",
    "work-- -colleagues",
    "ÉCOLE",
    "#hash",
]


class TestNormalizeTag:
    def test_lowercases_and_trims(self):
        assert normalize_tag("  Friends  ") == "friends"

    def test_whitespace_runs_become_one_hyphen(self):
        assert normalize_tag("Close   Friends") == "close-friends"
        assert normalize_tag("close\t\nfriends") == "close-friends"

    def test_hyphen_runs_collapse(self):
        assert normalize_tag("a  --  b") == "a-b"
        assert normalize_tag("work---life") == "work-life"

    def test_edge_hyphens_dropped(self):
        assert normalize_tag("--x--") == "x"
        assert normalize_tag(" -family ") == "family"

    @pytest.mark.parametrize("raw", ["", "   ", "---", " - - "])
    def test_empty_after_normalization_raises(self, raw):
        with pytest.raises(NormalizationError) as exc_info:
            normalize_tag(raw)
        assert exc_info.value.raw == raw

    def test_normalization_error_is_validation_error(self):
        with pytest.raises(ValidationError):
            normalize_tag("  ")

    @pytest.mark.parametrize("raw", SAMPLES)
    def test_idempotent(self, raw):
        once = normalize_tag(raw)
        assert normalize_tag(once) == once

    @pytest.mark.parametrize("raw", SAMPLES)
    def test_no_leading_trailing_or_doubled_hyphens(self, raw):
        result = normalize_tag(raw)
        assert not result.startswith("-")
        assert not result.endswith("-")
        assert "--" not in result
        assert " " not in result

    def test_equivalent_inputs_are_identical(self):
        assert normalize_tag("Close Friends") == normalize_tag("  close   FRIENDS ")


class TestNormalizeEmail:
    def test_trims_and_lowercases(self):
        assert normalize_email("  Ada@Example.COM ") == "ada@example.com"

    def test_blank_is_none(self):
        assert normalize_email("   ") is None
        assert normalize_email(None) is None


class TestNormalizeLabel:
    def test_trims(self):
        assert normalize_label("  Wedding anniversary ") == "Wedding anniversary"

    def test_blank_is_none(self):
        assert normalize_label("") is None
        assert normalize_label(None) is None


class TestNormalizeInteractionLabel:
    def test_lowercases(self):
        assert normalize_interaction_label(" Coffee ") == "coffee"

    def test_empty_raises(self):
        with pytest.raises(ValidationError):
            normalize_interaction_label("   ")
