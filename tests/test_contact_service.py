"""Tests for knotter.core.contact_service: end-to-end through SQLite."""

from datetime import datetime, timedelta, timezone

import pytest

from knotter.core.contact_service import ContactService
from knotter.core.due import DueState
from knotter.core.errors import (
    FilterParseError,
    NotFoundError,
    SchedulingGuardError,
    ValidationError,
)
from knotter.core.loops import LoopPolicy, LoopRule
from knotter.data.models import ContactDateKind, InteractionKind, OtherKind

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)
END_OF_TODAY = datetime(2026, 3, 10, 23, 59, 59, tzinfo=timezone.utc)


@pytest.fixture
def ada(service):
    return service.create_contact(
        "Ada", cadence_days=7, next_touchpoint=NOW + timedelta(days=1), tags=["friends"],
    )


@pytest.fixture
def loop_service(tmp_db_path, clock):
    policy = LoopPolicy(rules=(LoopRule("family", 30), LoopRule("friends", 90)))
    return ContactService(
        tmp_db_path, soon_days=7, timezone="UTC", loop_policy=policy, clock=clock,
    )


class TestTouch:
    def test_touch_with_reschedule_anchors_on_now(self, service, ada):
        service.touch(ada.id, reschedule=True, occurred_at=NOW)
        assert service.get_contact(ada.id).next_touchpoint_at == NOW + timedelta(days=7)

    def test_touch_without_reschedule_keeps_touchpoint(self, service, ada):
        service.touch(ada.id, reschedule=False, occurred_at=NOW)
        assert service.get_contact(ada.id).next_touchpoint_at == NOW + timedelta(days=1)

    def test_touch_logs_a_touch_interaction(self, service, ada):
        interaction = service.touch(ada.id)
        assert interaction.kind == OtherKind("touch")
        assert interaction.note == ""
        assert service.list_interactions(ada.id)[0].id == interaction.id

    def test_touch_unknown_contact(self, service):
        with pytest.raises(NotFoundError):
            service.touch("nope")


class TestAddNote:
    def test_named_kind_with_reschedule(self, service, ada):
        interaction = service.add_note(ada.id, "Call", "caught up", reschedule=True)
        assert interaction.kind is InteractionKind.CALL
        assert service.get_contact(ada.id).next_touchpoint_at == NOW + timedelta(days=7)

    def test_custom_kind(self, service, ada):
        interaction = service.add_note(ada.id, "Board Games", "won again")
        assert interaction.kind == OtherKind("board games")

    def test_far_future_interaction_rejected(self, service, ada):
        with pytest.raises(ValidationError):
            service.add_note(ada.id, "call", occurred_at=NOW + timedelta(days=5))
        assert service.list_interactions(ada.id) == []


class TestSchedule:
    def test_past_instant_rejected_and_nothing_written(self, service, ada):
        with pytest.raises(SchedulingGuardError):
            service.schedule(ada.id, NOW - timedelta(seconds=1))
        assert service.get_contact(ada.id).next_touchpoint_at == NOW + timedelta(days=1)

    def test_today_date_resolves_to_end_of_day(self, service, ada):
        assert service.schedule(ada.id, "2026-03-10").next_touchpoint_at == END_OF_TODAY

    def test_clear_schedule(self, service, ada):
        assert service.clear_schedule(ada.id).next_touchpoint_at is None

    def test_create_with_past_touchpoint_rejected(self, service):
        with pytest.raises(SchedulingGuardError):
            service.create_contact("Late", next_touchpoint="2026-03-09")


class TestEditContact:
    def test_edit_fields(self, service, ada):
        updated = service.edit_contact(ada.id, display_name="Ada King", phone="555-0100")
        assert updated.display_name == "Ada King"
        assert service.get_contact(ada.id).phone == "555-0100"

    def test_clear_optional_field(self, service, ada):
        service.edit_contact(ada.id, cadence_days=None)
        assert service.get_contact(ada.id).cadence_days is None

    def test_invalid_edit_is_not_applied(self, service, ada):
        with pytest.raises(ValidationError):
            service.edit_contact(ada.id, display_name="Ada King", cadence_days=0)
        stored = service.get_contact(ada.id)
        assert stored.display_name == "Ada"
        assert stored.cadence_days == 7

    def test_no_changes(self, service, ada):
        with pytest.raises(ValidationError):
            service.edit_contact(ada.id)

    def test_new_primary_email_keeps_old_address(self, service):
        contact = service.create_contact("Grace", email="grace@navy.example")
        updated = service.edit_contact(contact.id, email="grace@example.com")
        assert updated.email == "grace@example.com"
        assert updated.emails == ["grace@example.com", "grace@navy.example"]


class TestArchive:
    def test_archive_hides_from_default_list(self, service, ada):
        service.archive_contact(ada.id)
        assert service.list_contacts() == []
        assert [i.id for i in service.list_contacts("archived:true")] == [ada.id]

    def test_unarchive(self, service, ada):
        service.archive_contact(ada.id)
        service.unarchive_contact(ada.id)
        assert [i.id for i in service.list_contacts()] == [ada.id]

    def test_delete(self, service, ada):
        assert service.delete_contact(ada.id) is True
        with pytest.raises(NotFoundError):
            service.get_contact(ada.id)


class TestListContacts:
    def test_bucket_order_and_states(self, service, clock):
        clock.now = NOW - timedelta(hours=2)
        service.create_contact("Bob", next_touchpoint=NOW - timedelta(hours=1))
        clock.now = NOW
        service.create_contact("Eve")
        service.create_contact("Dan", next_touchpoint=NOW + timedelta(days=30))
        service.create_contact("Cid", next_touchpoint=NOW + timedelta(days=3))
        service.create_contact("Ann", next_touchpoint=NOW + timedelta(hours=1))

        items = service.list_contacts()
        assert [i.display_name for i in items] == ["Bob", "Ann", "Cid", "Dan", "Eve"]
        assert [i.due_state for i in items] == [
            DueState.OVERDUE, DueState.TODAY, DueState.SOON,
            DueState.SCHEDULED, DueState.UNSCHEDULED,
        ]

    def test_json_form(self, service, ada):
        (item,) = service.list_contacts("#friends")
        data = item.model_dump(mode="json")
        assert data["due_state"] == "soon"
        assert data["tags"] == ["friends"]
        assert data["archived_at"] is None

    def test_filter_error_propagates(self, service):
        with pytest.raises(FilterParseError) as exc_info:
            service.list_contacts("#friends due:later")
        assert exc_info.value.token_index == 1


class TestTags:
    def test_set_add_remove(self, service, ada):
        service.set_tags(ada.id, ["Family", "Work"])
        service.add_tag(ada.id, "Close Friends")
        contact = service.remove_tag(ada.id, "work")
        assert contact.tags == ["close-friends", "family"]

    def test_loop_cadence_on_create(self, loop_service):
        contact = loop_service.create_contact("Mum", tags=["Family", "Friends"])
        assert contact.cadence_days == 30

    def test_loop_applies_when_tag_added_without_cadence(self, loop_service):
        contact = loop_service.create_contact("Sam")
        assert contact.cadence_days is None
        assert loop_service.add_tag(contact.id, "friends").cadence_days == 90

    def test_loop_keeps_explicit_cadence(self, loop_service):
        contact = loop_service.create_contact("Sam", cadence_days=7)
        assert loop_service.add_tag(contact.id, "family").cadence_days == 7

    def test_apply_loops(self, loop_service):
        sam = loop_service.create_contact("Sam", cadence_days=7, tags=["family"])
        kim = loop_service.create_contact("Kim")
        # attach directly so no loop cadence is applied yet
        loop_service.tags.add_tag(kim.id, "friends")

        preview = loop_service.apply_loops(force=True, schedule_missing=True, dry_run=True)
        assert {c.contact_id for c in preview} == {sam.id, kim.id}
        assert loop_service.get_contact(sam.id).cadence_days == 7

        loop_service.apply_loops(force=True, schedule_missing=True)
        assert loop_service.get_contact(sam.id).cadence_days == 30
        assert loop_service.get_contact(kim.id).next_touchpoint_at == NOW + timedelta(days=90)


class TestReminders:
    def test_grouped_buckets(self, service, clock):
        clock.now = NOW - timedelta(hours=2)
        bob = service.create_contact("Bob", next_touchpoint=NOW - timedelta(hours=1))
        clock.now = NOW
        service.create_contact("Ann", next_touchpoint=NOW + timedelta(hours=1))
        service.create_contact("Cid", next_touchpoint=NOW + timedelta(days=3))
        service.create_contact("Dan", next_touchpoint=NOW + timedelta(days=30))
        service.create_contact("Eve")

        output = service.reminders()
        assert [i.id for i in output.overdue] == [bob.id]
        assert [i.display_name for i in output.today] == ["Ann"]
        assert [i.display_name for i in output.soon] == ["Cid"]
        assert output.overdue[0].due_state is DueState.OVERDUE

    def test_empty(self, service):
        assert service.reminders().is_empty()

    def test_dates_today(self, service, ada):
        service.add_date(ada.id, "birthday", "1815-03-10")
        service.add_date(ada.id, "custom", "06-01", label="Met")
        output = service.reminders()
        assert [(d.display_name, d.kind, d.year) for d in output.dates_today] == [
            ("Ada", ContactDateKind.BIRTHDAY, 1815),
        ]
        assert output.model_dump(mode="json")["dates_today"][0]["kind"] == "birthday"


class TestDates:
    def test_add_and_list(self, service, ada):
        saved = service.add_date(ada.id, "name-day", "--0726")
        assert saved.kind is ContactDateKind.NAME_DAY
        assert (saved.month, saved.day, saved.year) == (7, 26, None)
        assert service.list_dates(ada.id) == [saved]

    def test_add_date_unknown_contact(self, service):
        with pytest.raises(NotFoundError):
            service.add_date("nope", "birthday", "05-01")

    def test_custom_without_label(self, service, ada):
        with pytest.raises(ValidationError):
            service.add_date(ada.id, "custom", "05-01")

    def test_delete_date(self, service, ada):
        saved = service.add_date(ada.id, "birthday", "05-01")
        assert service.delete_date(saved.id) is True
        assert service.list_dates(ada.id) == []
