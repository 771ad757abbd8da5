import dataclasses
import logging
from typing import Any

from events.constants import (
    DEFAULT_RECURRENCE_CACHE_TTL,
    EVENTS_CACHE_PREFIX,
    EVENTS_TABLE,
    RECURRENCE_CACHE_KEY,
    RECURRENCE_LIST_CACHE_KEY,
    RECURRENCE_LIST_CACHE_PREFIX,
    RECURRENCE_RULES_TABLE,
)
from events.exceptions import (
    EventCacheError,
    NotificationDispatchError,
    RecurrenceRuleNotFoundError,
    RecurrenceValidationError,
    TemplateEventNotFoundError,
)
from events.recurrence_utils import OccurrenceExpander
from events.services.dataclasses import (
    RecurrenceRuleData,
    RecurrenceRuleInputData,
    RegenerationResult,
    TemplateEventData,
)
from events.services.protocols.event_cache import EventCache
from events.services.protocols.notification_dispatcher import NotificationDispatcher
from events.services.protocols.record_store import Record, RecordStore
from events.services.rule_locks import RuleLockRegistry
from events.validators import RecurrenceRuleValidator


logger = logging.getLogger(__name__)

UPDATABLE_RULE_FIELDS = frozenset(
    (
        "pattern",
        "interval",
        "end_date",
        "days_of_week",
        "day_of_month",
        "month_of_year",
        "is_active",
    )
)


class RecurrenceManager:
    """
    Owns the lifecycle of recurrence rules and of the occurrences materialized
    from them.

    Every mutation runs under the rule's lock and inside a single record store
    transaction, so the occurrence set of a rule is always replaced as a whole.
    Cache invalidation happens after the transaction and is best-effort: a cache
    failure is logged and never fails the mutation.
    """

    def __init__(
        self,
        record_store: RecordStore,
        event_cache: EventCache,
        notification_dispatcher: NotificationDispatcher,
        rule_locks: RuleLockRegistry,
        validator: RecurrenceRuleValidator | None = None,
        cache_ttl: int = DEFAULT_RECURRENCE_CACHE_TTL,
    ) -> None:
        self.record_store = record_store
        self.event_cache = event_cache
        self.notification_dispatcher = notification_dispatcher
        self.rule_locks = rule_locks
        self.validator = validator or RecurrenceRuleValidator()
        self.cache_ttl = cache_ttl

    # Loading

    def _load_rule(self, rule_id: int) -> RecurrenceRuleData:
        record = self.record_store.find_one(RECURRENCE_RULES_TABLE, {"id": rule_id})
        if record is None:
            raise RecurrenceRuleNotFoundError(rule_id)
        return RecurrenceRuleData.from_record(record)

    def _load_template(self, event_id: int) -> TemplateEventData:
        record = self.record_store.find_one(EVENTS_TABLE, {"id": event_id})
        if record is None:
            raise TemplateEventNotFoundError(event_id)
        return TemplateEventData.from_record(record)

    # Cache helpers

    def _cache_get(self, key: str) -> Any | None:
        try:
            return self.event_cache.get(key)
        except EventCacheError as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None

    def _cache_set(self, key: str, value: Any) -> None:
        try:
            self.event_cache.set(key, value, self.cache_ttl)
        except EventCacheError as e:
            logger.warning("Cache write failed for %s: %s", key, e)

    def _invalidate_caches(self, rule_id: int) -> None:
        """Each invalidation step runs even when an earlier one failed."""
        invalidations = (
            (self.event_cache.invalidate_by_prefix, EVENTS_CACHE_PREFIX),
            (self.event_cache.invalidate_by_prefix, RECURRENCE_LIST_CACHE_PREFIX),
            (self.event_cache.delete_key, RECURRENCE_CACHE_KEY.format(rule_id=rule_id)),
        )
        for invalidate, target in invalidations:
            try:
                invalidate(target)
            except EventCacheError as e:
                logger.warning(
                    "Cache invalidation failed for recurrence rule %s (%s): %s",
                    rule_id,
                    target,
                    e,
                )

    # Materialization

    def _build_occurrence_records(
        self, rule: RecurrenceRuleData, template: TemplateEventData
    ) -> list[Record]:
        return [
            {
                "title": template.title,
                "description": template.description,
                "event_type": template.event_type,
                "location": template.location,
                "start_date": window.start_date,
                "end_date": window.end_date,
                "created_by_id": template.created_by_id,
                "recurrence_rule_id": rule.id,
                "is_recurring": True,
            }
            for window in OccurrenceExpander.expand(template, rule.as_pattern())
        ]

    def _delete_occurrences(self, rule_id: int) -> int:
        return self.record_store.delete(EVENTS_TABLE, {"recurrence_rule_id": rule_id})

    def _notify(self, event_records: list[Record]) -> None:
        for event_record in event_records:
            try:
                self.notification_dispatcher.notify(event_record)
            except NotificationDispatchError as e:
                logger.warning(
                    "Notification dispatch failed for event %s: %s", event_record.get("id"), e
                )

    def _materialize(self, rule: RecurrenceRuleData) -> RegenerationResult:
        """
        Replace the occurrences of ``rule``. Must run inside a record store transaction.
        """
        template = self._load_template(rule.template_event_id)
        occurrence_records = self._build_occurrence_records(rule, template)

        deleted_count = self._delete_occurrences(rule.id)
        created_records = self.record_store.insert(EVENTS_TABLE, occurrence_records)
        logger.info(
            "Regenerated recurrence rule %s: removed %s occurrences, created %s",
            rule.id,
            deleted_count,
            len(created_records),
        )

        self._notify(created_records)
        return RegenerationResult(
            rule_id=rule.id, created_event_ids=[record["id"] for record in created_records]
        )

    # Mutations

    def create_rule(
        self, rule_input: RecurrenceRuleInputData, created_by_id: int | None = None
    ) -> RecurrenceRuleData:
        """
        Validate and persist a new rule, then materialize its occurrences in the
        same transaction. The rule starts active.
        """
        template = self._load_template(rule_input.template_event_id)
        pattern = self.validator.validate(rule_input.as_pattern(), template_start=template.start_date)

        with self.record_store.atomic():
            (rule_record,) = self.record_store.insert(
                RECURRENCE_RULES_TABLE,
                [
                    {
                        "template_event_id": template.id,
                        "pattern": pattern.pattern,
                        "interval": pattern.interval,
                        "end_date": pattern.end_date,
                        "days_of_week": (
                            list(pattern.days_of_week) if pattern.days_of_week is not None else None
                        ),
                        "day_of_month": pattern.day_of_month,
                        "month_of_year": pattern.month_of_year,
                        "is_active": True,
                        "created_by_id": created_by_id,
                    }
                ],
            )
            rule = RecurrenceRuleData.from_record(rule_record)
            self._materialize(rule)

        logger.info("Created recurrence rule %s for event %s", rule.id, template.id)
        self._invalidate_caches(rule.id)
        return rule

    def update_rule(self, rule_id: int, patch: dict[str, Any]) -> RecurrenceRuleData:
        """
        Apply ``patch`` to a rule and fully replace its occurrences. Inactive rules
        are only persisted; they keep no occurrences.
        """
        unknown_fields = sorted(set(patch) - UPDATABLE_RULE_FIELDS)
        if unknown_fields:
            raise RecurrenceValidationError(
                [f"Field {field} cannot be updated." for field in unknown_fields]
            )

        with self.rule_locks.hold(rule_id):
            with self.record_store.atomic():
                current_rule = self._load_rule(rule_id)
                template = self._load_template(current_rule.template_event_id)
                merged_rule = dataclasses.replace(current_rule, **patch)
                pattern = self.validator.validate(
                    merged_rule.as_pattern(), template_start=template.start_date
                )

                updated_record = self.record_store.update(
                    RECURRENCE_RULES_TABLE,
                    rule_id,
                    {
                        "pattern": pattern.pattern,
                        "interval": pattern.interval,
                        "end_date": pattern.end_date,
                        "days_of_week": (
                            list(pattern.days_of_week) if pattern.days_of_week is not None else None
                        ),
                        "day_of_month": pattern.day_of_month,
                        "month_of_year": pattern.month_of_year,
                        "is_active": merged_rule.is_active,
                    },
                )
                if updated_record is None:
                    raise RecurrenceRuleNotFoundError(rule_id)
                rule = RecurrenceRuleData.from_record(updated_record)

                if rule.is_active:
                    self._materialize(rule)
                else:
                    self._delete_occurrences(rule.id)

        logger.info("Updated recurrence rule %s", rule_id)
        self._invalidate_caches(rule_id)
        return rule

    def toggle_rule(self, rule_id: int, is_active: bool) -> RecurrenceRuleData:
        """
        Activate (rematerializing every occurrence) or deactivate (removing every
        occurrence while keeping the rule) a recurrence rule.
        """
        with self.rule_locks.hold(rule_id):
            with self.record_store.atomic():
                self._load_rule(rule_id)
                updated_record = self.record_store.update(
                    RECURRENCE_RULES_TABLE, rule_id, {"is_active": is_active}
                )
                if updated_record is None:
                    raise RecurrenceRuleNotFoundError(rule_id)
                rule = RecurrenceRuleData.from_record(updated_record)

                if is_active:
                    self._materialize(rule)
                else:
                    deleted_count = self._delete_occurrences(rule_id)
                    logger.info(
                        "Deactivated recurrence rule %s, removed %s occurrences",
                        rule_id,
                        deleted_count,
                    )

        self._invalidate_caches(rule_id)
        return rule

    def delete_rule(self, rule_id: int) -> None:
        """Delete a rule together with every occurrence it materialized."""
        with self.rule_locks.hold(rule_id):
            with self.record_store.atomic():
                self._load_rule(rule_id)
                deleted_count = self._delete_occurrences(rule_id)
                self.record_store.delete(RECURRENCE_RULES_TABLE, {"id": rule_id})

        logger.info("Deleted recurrence rule %s and %s occurrences", rule_id, deleted_count)
        self._invalidate_caches(rule_id)
        self.rule_locks.discard(rule_id)

    def regenerate(self, rule_id: int) -> RegenerationResult:
        """
        Recompute the occurrences of a rule from its current state and template.
        An inactive rule is left without occurrences.
        """
        with self.rule_locks.hold(rule_id):
            with self.record_store.atomic():
                rule = self._load_rule(rule_id)
                if rule.is_active:
                    result = self._materialize(rule)
                else:
                    self._delete_occurrences(rule_id)
                    result = RegenerationResult(rule_id=rule_id)

        self._invalidate_caches(rule_id)
        return result

    # Reads

    def get_rule(self, rule_id: int) -> RecurrenceRuleData:
        cache_key = RECURRENCE_CACHE_KEY.format(rule_id=rule_id)
        cached = self._cache_get(cache_key)
        if cached is not None:
            return RecurrenceRuleData.from_record(cached)

        rule = self._load_rule(rule_id)
        self._cache_set(cache_key, rule.to_dict())
        return rule

    def list_rules(
        self, page: int = 1, limit: int = 20, template_event_id: int | None = None
    ) -> list[RecurrenceRuleData]:
        """List rules newest first, optionally restricted to one template event."""
        if page < 1 or limit < 1:
            raise RecurrenceValidationError("Page and limit must be positive.")

        cache_key = RECURRENCE_LIST_CACHE_KEY.format(
            page=page,
            limit=limit,
            template_event_id=template_event_id if template_event_id is not None else "all",
        )
        cached = self._cache_get(cache_key)
        if cached is not None:
            return [RecurrenceRuleData.from_record(record) for record in cached]

        filters = {"template_event_id": template_event_id} if template_event_id is not None else None
        records = self.record_store.find(
            RECURRENCE_RULES_TABLE,
            filters=filters,
            ordering=("-created", "-id"),
            offset=(page - 1) * limit,
            limit=limit,
        )
        rules = [RecurrenceRuleData.from_record(record) for record in records]
        self._cache_set(cache_key, [rule.to_dict() for rule in rules])
        return rules

    def list_occurrences(self, rule_id: int) -> list[Record]:
        self._load_rule(rule_id)
        return self.record_store.find(
            EVENTS_TABLE,
            filters={"recurrence_rule_id": rule_id},
            ordering=("start_date",),
        )

