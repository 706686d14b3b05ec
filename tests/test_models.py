"""Tests for knotter.data.models: entity invariants."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from knotter.core.errors import NormalizationError, ValidationError
from knotter.data.models import (
    Contact,
    ContactDate,
    ContactDateKind,
    Interaction,
    InteractionKind,
    OtherKind,
    Tag,
    kind_from_label,
)

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


class TestContact:
    def test_minimal_contact(self):
        contact = Contact(display_name="  Ada Lovelace ", created_at=NOW)
        assert contact.display_name == "Ada Lovelace"
        assert contact.id
        assert contact.updated_at == NOW
        assert contact.next_touchpoint_at is None
        assert contact.is_archived is False

    @pytest.mark.parametrize("name", ["", "   "])
    def test_empty_name_rejected(self, name):
        with pytest.raises(ValidationError):
            Contact(display_name=name)

    @pytest.mark.parametrize("cadence", [0, 3651])
    def test_cadence_out_of_range(self, cadence):
        with pytest.raises(ValidationError):
            Contact(display_name="Ada", cadence_days=cadence)

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError):
            Contact(display_name="Ada", timezone="Mars/Olympus_Mons")

    def test_emails_normalized_primary_first(self):
        contact = Contact(
            display_name="Ada",
            email=" ADA@Example.com ",
            emails=["other@example.com", "ada@example.com", "  "],
        )
        assert contact.email == "ada@example.com"
        assert contact.emails == ["ada@example.com", "other@example.com"]

    def test_tags_normalized_and_deduplicated(self):
        contact = Contact(display_name="Ada", tags=["Friends", " friends", "Close Friends"])
        assert contact.tags == ["close-friends", "friends"]

    def test_bad_tag_rejected(self):
        with pytest.raises(NormalizationError):
            Contact(display_name="Ada", tags=["---"])

    def test_naive_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            Contact(display_name="Ada", next_touchpoint_at=datetime(2026, 3, 11))

    def test_timestamps_converted_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        contact = Contact(
            display_name="Ada", next_touchpoint_at=datetime(2026, 3, 11, 14, 0, tzinfo=plus_two),
        )
        assert contact.next_touchpoint_at == datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)
        assert contact.next_touchpoint_at.tzinfo is timezone.utc

    def test_failed_edit_leaves_original_intact(self):
        contact = Contact(display_name="Ada", cadence_days=7)
        with pytest.raises(ValidationError):
            replace(contact, cadence_days=0)
        assert contact.cadence_days == 7

    def test_archived(self):
        assert Contact(display_name="Ada", archived_at=NOW).is_archived


class TestInteractionKinds:
    def test_named_kind(self):
        assert kind_from_label(" Call ") is InteractionKind.CALL

    def test_other_kind(self):
        assert kind_from_label("Coffee") == OtherKind("coffee")

    def test_other_label_normalized(self):
        assert OtherKind("  Board Games ").label == "board games"

    def test_empty_label_rejected(self):
        with pytest.raises(ValidationError):
            kind_from_label("  ")

    def test_interaction_requires_a_kind(self):
        with pytest.raises(ValidationError):
            Interaction(contact_id="c1", kind="call")

    def test_interaction_defaults(self):
        interaction = Interaction(contact_id="c1", kind=InteractionKind.TEXT, note=None)
        assert interaction.note == ""
        assert interaction.follow_up_at is None


class TestTag:
    def test_name_normalized(self):
        assert Tag("  Close   Friends ").name == "close-friends"

    def test_empty_name(self):
        with pytest.raises(NormalizationError):
            Tag("---")


class TestContactDate:
    def test_feb_29_without_year(self):
        contact_date = ContactDate(contact_id="c1", kind=ContactDateKind.BIRTHDAY, month=2, day=29)
        assert contact_date.year is None

    def test_feb_29_in_non_leap_year_rejected(self):
        with pytest.raises(ValidationError):
            ContactDate(
                contact_id="c1", kind=ContactDateKind.BIRTHDAY, month=2, day=29, year=2023,
            )

    @pytest.mark.parametrize("month, day", [(0, 1), (13, 1), (4, 31), (1, 0)])
    def test_invalid_month_day(self, month, day):
        with pytest.raises(ValidationError):
            ContactDate(contact_id="c1", kind=ContactDateKind.BIRTHDAY, month=month, day=day)

    def test_custom_requires_label(self):
        with pytest.raises(ValidationError):
            ContactDate(contact_id="c1", kind=ContactDateKind.CUSTOM, month=6, day=1, label="  ")

    def test_custom_with_label(self):
        contact_date = ContactDate(
            contact_id="c1", kind=ContactDateKind.CUSTOM, month=6, day=1, label=" Wedding ",
        )
        assert contact_date.label == "Wedding"

    def test_year_range(self):
        with pytest.raises(ValidationError):
            ContactDate(contact_id="c1", kind=ContactDateKind.BIRTHDAY, month=1, day=1, year=0)

    @pytest.mark.parametrize("raw", ["birthday", "Name-Day", "nameday", "name_day", "CUSTOM"])
    def test_kind_parse(self, raw):
        assert isinstance(ContactDateKind.parse(raw), ContactDateKind)

    def test_kind_parse_name_day(self):
        assert ContactDateKind.parse("name-day") is ContactDateKind.NAME_DAY

    def test_kind_parse_unknown(self):
        with pytest.raises(ValidationError):
            ContactDateKind.parse("anniversary")
