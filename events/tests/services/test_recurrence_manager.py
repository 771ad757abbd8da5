import datetime
from contextlib import contextmanager
from unittest.mock import Mock

import pytest
from model_bakery import baker

from events.constants import RecurrencePattern
from events.exceptions import (
    EventCacheError,
    NotificationDispatchError,
    RecordStoreError,
    RecurrenceRuleNotFoundError,
    RecurrenceValidationError,
    TemplateEventNotFoundError,
)
from events.models import Event, RecurrenceRule
from events.services.dataclasses import RecurrenceRuleInputData
from events.services.recurrence_manager import RecurrenceManager
from events.services.rule_locks import RuleLockRegistry


def _dt(year, month, day, hour=18):
    return datetime.datetime(year, month, day, hour, tzinfo=datetime.UTC)


def _weekly_input(template_event, **overrides):
    fields = {
        "template_event_id": template_event.id,
        "pattern": RecurrencePattern.WEEKLY,
        "end_date": datetime.date(2024, 1, 15),
        "days_of_week": [1, 3],
    }
    fields.update(overrides)
    return RecurrenceRuleInputData(**fields)


def _occurrence_starts(rule_id):
    return list(
        Event.objects.filter(recurrence_rule_id=rule_id)
        .order_by("start_date")
        .values_list("start_date", flat=True)
    )


@pytest.mark.django_db
class TestCreateRule:
    def test_creates_rule_and_materializes_occurrences(
        self, recurrence_manager, template_event, user
    ):
        rule = recurrence_manager.create_rule(_weekly_input(template_event), created_by_id=user.id)

        assert rule.is_active is True
        assert rule.template_event_id == template_event.id
        assert rule.created_by_id == user.id
        assert RecurrenceRule.objects.filter(id=rule.id).exists()
        assert _occurrence_starts(rule.id) == [
            _dt(2024, 1, 3),
            _dt(2024, 1, 8),
            _dt(2024, 1, 10),
            _dt(2024, 1, 15),
        ]

    def test_occurrences_copy_the_template(self, recurrence_manager, template_event, user):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))

        occurrence = Event.objects.filter(recurrence_rule_id=rule.id).first()
        assert occurrence.title == template_event.title
        assert occurrence.description == template_event.description
        assert occurrence.event_type == template_event.event_type
        assert occurrence.location == template_event.location
        assert occurrence.created_by == user
        assert occurrence.is_recurring is True
        assert occurrence.duration == template_event.duration

    def test_template_event_is_left_untouched(self, recurrence_manager, template_event):
        recurrence_manager.create_rule(_weekly_input(template_event))

        template_event.refresh_from_db()
        assert template_event.recurrence_rule is None
        assert template_event.is_recurring is False

    def test_notifies_every_created_occurrence(
        self, recurrence_manager, template_event, notification_dispatcher
    ):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))

        notified_ids = [call.args[0]["id"] for call in notification_dispatcher.notify.call_args_list]
        assert sorted(notified_ids) == sorted(
            Event.objects.filter(recurrence_rule_id=rule.id).values_list("id", flat=True)
        )

    def test_invalidates_caches(self, recurrence_manager, template_event, event_cache):
        event_cache.set("events:list:1", ["stale"], 60)
        event_cache.set("recurrences:1:20:all", ["stale"], 60)

        recurrence_manager.create_rule(_weekly_input(template_event))

        assert event_cache.values == {}

    def test_invalid_rule_writes_nothing(self, recurrence_manager, template_event):
        with pytest.raises(RecurrenceValidationError):
            recurrence_manager.create_rule(_weekly_input(template_event, interval=0))

        assert not RecurrenceRule.objects.exists()
        assert Event.objects.count() == 1

    def test_end_date_must_be_after_template_start(self, recurrence_manager, template_event):
        with pytest.raises(RecurrenceValidationError, match="End date must be after"):
            recurrence_manager.create_rule(
                _weekly_input(template_event, end_date=datetime.date(2023, 12, 31))
            )

    def test_yearly_rule_in_another_month_than_the_template(
        self, recurrence_manager, template_event
    ):
        rule = recurrence_manager.create_rule(
            _weekly_input(
                template_event,
                pattern=RecurrencePattern.YEARLY,
                days_of_week=None,
                day_of_month=15,
                month_of_year=6,
                end_date=datetime.date(2026, 12, 31),
            )
        )

        assert _occurrence_starts(rule.id) == [_dt(2025, 6, 15), _dt(2026, 6, 15)]

    def test_end_date_past_the_horizon_writes_nothing(self, recurrence_manager, template_event):
        with pytest.raises(RecurrenceValidationError, match="within 10 years"):
            recurrence_manager.create_rule(
                _weekly_input(
                    template_event,
                    pattern=RecurrencePattern.DAILY,
                    days_of_week=None,
                    end_date=datetime.date(9999, 12, 31),
                )
            )

        assert not RecurrenceRule.objects.exists()
        assert Event.objects.count() == 1

    def test_missing_template_event(self, recurrence_manager, template_event):
        with pytest.raises(TemplateEventNotFoundError):
            recurrence_manager.create_rule(
                _weekly_input(template_event, template_event_id=template_event.id + 100)
            )

    def test_storage_failure_rolls_back(self, template_event, event_cache, notification_dispatcher):
        from events.services.record_stores.django_record_store import DjangoRecordStore

        class FailingInsertRecordStore(DjangoRecordStore):
            def insert(self, table, records):
                if table == "events":
                    raise RecordStoreError("disk full")
                return super().insert(table, records)

        manager = RecurrenceManager(
            record_store=FailingInsertRecordStore(),
            event_cache=event_cache,
            notification_dispatcher=notification_dispatcher,
            rule_locks=RuleLockRegistry(),
        )

        with pytest.raises(RecordStoreError):
            manager.create_rule(_weekly_input(template_event))

        assert not RecurrenceRule.objects.exists()
        assert Event.objects.count() == 1

    def test_cache_failure_does_not_fail_the_mutation(
        self, record_store, failing_event_cache, notification_dispatcher, template_event, caplog
    ):
        manager = RecurrenceManager(
            record_store=record_store,
            event_cache=failing_event_cache,
            notification_dispatcher=notification_dispatcher,
            rule_locks=RuleLockRegistry(),
        )

        rule = manager.create_rule(_weekly_input(template_event))

        assert len(_occurrence_starts(rule.id)) == 4
        assert "Cache invalidation failed" in caplog.text

    def test_failed_prefix_invalidation_still_drops_the_cached_rule(
        self, recurrence_manager, event_cache, template_event, monkeypatch, caplog
    ):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))
        recurrence_manager.get_rule(rule.id)
        monkeypatch.setattr(
            event_cache, "invalidate_by_prefix", Mock(side_effect=EventCacheError("scan failed"))
        )

        recurrence_manager.update_rule(rule.id, {"interval": 2})

        assert f"recurrence:{rule.id}" not in event_cache.values
        assert recurrence_manager.get_rule(rule.id).interval == 2
        assert caplog.text.count("Cache invalidation failed") == 2

    def test_notification_failure_does_not_fail_the_mutation(
        self, record_store, event_cache, template_event
    ):
        dispatcher = Mock()
        dispatcher.notify.side_effect = NotificationDispatchError()
        manager = RecurrenceManager(
            record_store=record_store,
            event_cache=event_cache,
            notification_dispatcher=dispatcher,
            rule_locks=RuleLockRegistry(),
        )

        rule = manager.create_rule(_weekly_input(template_event))

        assert len(_occurrence_starts(rule.id)) == 4
        assert dispatcher.notify.call_count == 4


@pytest.mark.django_db
class TestUpdateRule:
    def test_update_replaces_occurrences(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))
        old_ids = set(Event.objects.filter(recurrence_rule_id=rule.id).values_list("id", flat=True))

        updated = recurrence_manager.update_rule(rule.id, {"days_of_week": [5]})

        assert updated.days_of_week == [5]
        assert _occurrence_starts(rule.id) == [_dt(2024, 1, 5), _dt(2024, 1, 12)]
        assert not Event.objects.filter(id__in=old_ids).exists()

    def test_update_with_same_values_is_idempotent(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))
        before = _occurrence_starts(rule.id)

        recurrence_manager.update_rule(rule.id, {"interval": 1})
        recurrence_manager.update_rule(rule.id, {"interval": 1})

        assert _occurrence_starts(rule.id) == before

    def test_update_validates_the_merged_rule(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))

        with pytest.raises(RecurrenceValidationError, match="only be set on weekly rules"):
            recurrence_manager.update_rule(rule.id, {"pattern": RecurrencePattern.DAILY})

        assert RecurrenceRule.objects.get(id=rule.id).pattern == RecurrencePattern.WEEKLY
        assert len(_occurrence_starts(rule.id)) == 4

    def test_switch_pattern_clearing_weekdays(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))

        recurrence_manager.update_rule(
            rule.id,
            {"pattern": RecurrencePattern.DAILY, "days_of_week": None, "interval": 7},
        )

        assert _occurrence_starts(rule.id) == [_dt(2024, 1, 8), _dt(2024, 1, 15)]

    def test_template_event_cannot_be_changed(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))

        with pytest.raises(RecurrenceValidationError, match="template_event_id cannot be updated"):
            recurrence_manager.update_rule(rule.id, {"template_event_id": 42})

    def test_update_of_inactive_rule_keeps_it_empty(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))
        recurrence_manager.toggle_rule(rule.id, is_active=False)

        updated = recurrence_manager.update_rule(rule.id, {"interval": 2})

        assert updated.interval == 2
        assert updated.is_active is False
        assert _occurrence_starts(rule.id) == []

    def test_missing_rule(self, recurrence_manager):
        with pytest.raises(RecurrenceRuleNotFoundError):
            recurrence_manager.update_rule(999, {"interval": 2})


@pytest.mark.django_db
class TestToggleRule:
    def test_deactivate_removes_all_occurrences(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))

        toggled = recurrence_manager.toggle_rule(rule.id, is_active=False)

        assert toggled.is_active is False
        assert RecurrenceRule.objects.filter(id=rule.id, is_active=False).exists()
        assert _occurrence_starts(rule.id) == []

    def test_reactivate_regenerates(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))
        before = _occurrence_starts(rule.id)
        recurrence_manager.toggle_rule(rule.id, is_active=False)

        recurrence_manager.toggle_rule(rule.id, is_active=True)

        assert _occurrence_starts(rule.id) == before

    def test_missing_rule(self, recurrence_manager):
        with pytest.raises(RecurrenceRuleNotFoundError):
            recurrence_manager.toggle_rule(999, is_active=False)


@pytest.mark.django_db
class TestDeleteRule:
    def test_delete_removes_rule_and_occurrences(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))

        recurrence_manager.delete_rule(rule.id)

        assert not RecurrenceRule.objects.filter(id=rule.id).exists()
        assert not Event.objects.filter(recurrence_rule_id=rule.id).exists()
        assert Event.objects.filter(id=template_event.id).exists()

    def test_delete_leaves_other_rules_alone(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))
        other = recurrence_manager.create_rule(
            _weekly_input(template_event, days_of_week=None, pattern=RecurrencePattern.DAILY)
        )

        recurrence_manager.delete_rule(rule.id)

        assert len(_occurrence_starts(other.id)) == 14

    def test_missing_rule(self, recurrence_manager):
        with pytest.raises(RecurrenceRuleNotFoundError):
            recurrence_manager.delete_rule(999)


@pytest.mark.django_db
class TestRegenerate:
    def test_regenerate_replaces_instead_of_appending(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))

        first = recurrence_manager.regenerate(rule.id)
        second = recurrence_manager.regenerate(rule.id)

        assert first.count == second.count == 4
        assert Event.objects.filter(recurrence_rule_id=rule.id).count() == 4
        assert set(second.created_event_ids) == set(
            Event.objects.filter(recurrence_rule_id=rule.id).values_list("id", flat=True)
        )

    def test_regenerate_follows_template_changes(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))
        Event.objects.filter(id=template_event.id).update(
            title="Renamed", end_date=template_event.start_date + datetime.timedelta(hours=2)
        )

        recurrence_manager.regenerate(rule.id)

        occurrences = Event.objects.filter(recurrence_rule_id=rule.id)
        assert {occurrence.title for occurrence in occurrences} == {"Renamed"}
        assert {occurrence.duration for occurrence in occurrences} == {
            datetime.timedelta(hours=2)
        }

    def test_regenerate_inactive_rule_creates_nothing(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))
        recurrence_manager.toggle_rule(rule.id, is_active=False)

        result = recurrence_manager.regenerate(rule.id)

        assert result.count == 0
        assert _occurrence_starts(rule.id) == []

    def test_missing_rule(self, recurrence_manager):
        with pytest.raises(RecurrenceRuleNotFoundError):
            recurrence_manager.regenerate(999)


@pytest.mark.django_db
class TestReads:
    def test_get_rule_is_cached(self, recurrence_manager, template_event, event_cache):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))

        fetched = recurrence_manager.get_rule(rule.id)

        assert fetched == rule
        assert event_cache.values[f"recurrence:{rule.id}"]["pattern"] == "weekly"
        assert event_cache.ttls[f"recurrence:{rule.id}"] == 300

    def test_get_rule_reads_from_cache(self, recurrence_manager, template_event, event_cache):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))
        recurrence_manager.get_rule(rule.id)
        RecurrenceRule.objects.filter(id=rule.id).update(interval=5)

        assert recurrence_manager.get_rule(rule.id).interval == 1

    def test_mutation_invalidates_cached_rule(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))
        recurrence_manager.get_rule(rule.id)

        recurrence_manager.update_rule(rule.id, {"interval": 2})

        assert recurrence_manager.get_rule(rule.id).interval == 2

    def test_get_rule_missing(self, recurrence_manager):
        with pytest.raises(RecurrenceRuleNotFoundError):
            recurrence_manager.get_rule(999)

    def test_list_rules_filters_and_paginates(self, recurrence_manager, template_event, user):
        other_template = baker.make(
            Event,
            start_date=_dt(2024, 1, 1),
            end_date=_dt(2024, 1, 1, 19),
            created_by=user,
        )
        first = recurrence_manager.create_rule(_weekly_input(template_event))
        second = recurrence_manager.create_rule(_weekly_input(template_event, days_of_week=[2]))
        recurrence_manager.create_rule(_weekly_input(other_template))

        rules = recurrence_manager.list_rules(template_event_id=template_event.id)
        assert [rule.id for rule in rules] == [second.id, first.id]

        page_two = recurrence_manager.list_rules(page=2, limit=1, template_event_id=template_event.id)
        assert [rule.id for rule in page_two] == [first.id]

        assert len(recurrence_manager.list_rules()) == 3

    def test_list_rules_is_cached_until_a_mutation(self, recurrence_manager, template_event):
        recurrence_manager.create_rule(_weekly_input(template_event))
        assert len(recurrence_manager.list_rules()) == 1

        recurrence_manager.create_rule(_weekly_input(template_event, days_of_week=[2]))

        assert len(recurrence_manager.list_rules()) == 2

    def test_list_rules_rejects_bad_pagination(self, recurrence_manager):
        with pytest.raises(RecurrenceValidationError):
            recurrence_manager.list_rules(page=0)

    def test_list_occurrences(self, recurrence_manager, template_event):
        rule = recurrence_manager.create_rule(_weekly_input(template_event))

        occurrences = recurrence_manager.list_occurrences(rule.id)

        assert [occurrence["start_date"] for occurrence in occurrences] == _occurrence_starts(
            rule.id
        )


class SpyRuleLockRegistry(RuleLockRegistry):
    """Records which rule ids were locked and whether the lock was held during writes."""

    def __init__(self):
        super().__init__()
        self.held = []
        self.active = set()

    @contextmanager
    def hold(self, rule_id):
        with super().hold(rule_id):
            self.held.append(rule_id)
            self.active.add(rule_id)
            try:
                yield
            finally:
                self.active.discard(rule_id)


@pytest.mark.django_db
class TestRuleLocking:
    @pytest.fixture
    def rule_locks(self):
        return SpyRuleLockRegistry()

    @pytest.fixture
    def locked_manager(self, record_store, event_cache, notification_dispatcher, rule_locks):
        return RecurrenceManager(
            record_store=record_store,
            event_cache=event_cache,
            notification_dispatcher=notification_dispatcher,
            rule_locks=rule_locks,
        )

    @pytest.fixture
    def rule(self, locked_manager, template_event):
        return locked_manager.create_rule(_weekly_input(template_event))

    @pytest.mark.parametrize(
        ("method", "args"),
        [
            ("update_rule", ({"interval": 2},)),
            ("toggle_rule", (False,)),
            ("delete_rule", ()),
            ("regenerate", ()),
        ],
    )
    def test_mutation_holds_the_rule_lock(self, locked_manager, rule_locks, rule, method, args):
        rule_locks.held.clear()

        getattr(locked_manager, method)(rule.id, *args)

        assert rule_locks.held == [rule.id]
        assert rule_locks.active == set()

    def test_occurrences_are_written_while_the_lock_is_held(
        self, locked_manager, rule_locks, rule, monkeypatch
    ):
        seen_locked = []
        original_insert = locked_manager.record_store.insert

        def insert(table, records):
            seen_locked.append(rule.id in rule_locks.active)
            return original_insert(table, records)

        monkeypatch.setattr(locked_manager.record_store, "insert", insert)

        locked_manager.regenerate(rule.id)

        assert seen_locked == [True]

    def test_delete_discards_the_lock(self, locked_manager, rule_locks, rule):
        with rule_locks.hold(rule.id):
            pass
        assert rule.id in rule_locks._locks

        locked_manager.delete_rule(rule.id)

        assert rule.id not in rule_locks._locks

    def test_lock_is_released_after_a_failed_mutation(self, locked_manager, rule_locks, rule):
        with pytest.raises(RecurrenceValidationError):
            locked_manager.update_rule(rule.id, {"interval": 0})

        assert rule_locks.active == set()
        locked_manager.update_rule(rule.id, {"interval": 2})
        assert rule_locks.held[-1] == rule.id
