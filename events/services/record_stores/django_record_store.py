import logging
from collections.abc import Iterable, Sequence
from typing import Any

from django.db import DatabaseError, models, transaction

from events.constants import EVENTS_TABLE, RECURRENCE_RULES_TABLE
from events.exceptions import RecordStoreError, UnknownTableError, UnsupportedFilterError
from events.models import Event, RecurrenceRule
from events.services.protocols.record_store import Record


logger = logging.getLogger(__name__)

SUPPORTED_LOOKUPS = ("gte", "lte")


class DjangoRecordStore:
    """RecordStore backed by the Django ORM. Records are plain dicts keyed by attname."""

    table_models: dict[str, type[models.Model]] = {
        EVENTS_TABLE: Event,
        RECURRENCE_RULES_TABLE: RecurrenceRule,
    }

    def _get_model(self, table: str) -> type[models.Model]:
        try:
            return self.table_models[table]
        except KeyError as e:
            raise UnknownTableError(table) from e

    @staticmethod
    def _build_lookups(filters: dict[str, Any] | None) -> dict[str, Any]:
        lookups: dict[str, Any] = {}
        for key, value in (filters or {}).items():
            field_name, _, lookup = key.partition("__")
            if lookup and lookup not in SUPPORTED_LOOKUPS:
                raise UnsupportedFilterError(key)
            if not lookup and value is None:
                lookups[f"{field_name}__isnull"] = True
                continue
            lookups[key] = value
        return lookups

    @staticmethod
    def _to_record(instance: models.Model) -> Record:
        return {
            field.attname: getattr(instance, field.attname) for field in instance._meta.concrete_fields
        }

    def find(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        ordering: Sequence[str] | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Record]:
        model = self._get_model(table)
        queryset = model.objects.filter(**self._build_lookups(filters))
        if ordering:
            queryset = queryset.order_by(*ordering)
        if limit is not None:
            queryset = queryset[offset : offset + limit]
        elif offset:
            queryset = queryset[offset:]

        try:
            return [self._to_record(instance) for instance in queryset]
        except DatabaseError as e:
            raise RecordStoreError(f"Failed to read from {table}: {e}") from e

    def find_one(self, table: str, filters: dict[str, Any]) -> Record | None:
        model = self._get_model(table)
        try:
            instance = model.objects.filter(**self._build_lookups(filters)).first()
        except DatabaseError as e:
            raise RecordStoreError(f"Failed to read from {table}: {e}") from e
        return self._to_record(instance) if instance is not None else None

    def insert(self, table: str, records: Iterable[Record]) -> list[Record]:
        model = self._get_model(table)
        instances = [model(**record) for record in records]
        if not instances:
            return []

        try:
            if len(instances) == 1:
                instances[0].save()
            else:
                instances = model.objects.bulk_create(instances)
        except DatabaseError as e:
            raise RecordStoreError(f"Failed to insert into {table}: {e}") from e

        logger.debug("Inserted %s records into %s", len(instances), table)
        return [self._to_record(instance) for instance in instances]

    def update(self, table: str, record_id: Any, patch: Record) -> Record | None:
        model = self._get_model(table)
        try:
            instance = model.objects.filter(pk=record_id).first()
            if instance is None:
                return None

            for field_name, value in patch.items():
                setattr(instance, field_name, value)
            instance.save()
        except DatabaseError as e:
            raise RecordStoreError(f"Failed to update {table} {record_id}: {e}") from e

        return self._to_record(instance)

    def delete(self, table: str, filters: dict[str, Any]) -> int:
        model = self._get_model(table)
        if not filters:
            raise UnsupportedFilterError("delete without filters")

        try:
            _, deleted_per_model = model.objects.filter(**self._build_lookups(filters)).delete()
        except DatabaseError as e:
            raise RecordStoreError(f"Failed to delete from {table}: {e}") from e

        return deleted_per_model.get(model._meta.label, 0)

    def atomic(self) -> transaction.Atomic:
        return transaction.atomic()
