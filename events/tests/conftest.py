import datetime
import fnmatch
from unittest.mock import Mock

import pytest
from model_bakery import baker

from events.exceptions import EventCacheError
from events.models import Event
from events.services.recurrence_manager import RecurrenceManager
from events.services.record_stores.django_record_store import DjangoRecordStore
from events.services.rule_locks import RuleLockRegistry


class InMemoryEventCache:
    """EventCache keeping values in a dict; TTLs are recorded but never expire."""

    def __init__(self):
        self.values = {}
        self.ttls = {}

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value, ttl_seconds):  # noqa: A003
        self.values[key] = value
        self.ttls[key] = ttl_seconds

    def invalidate_by_prefix(self, prefix):
        keys = [key for key in self.values if fnmatch.fnmatchcase(key, f"{prefix}*")]
        for key in keys:
            self.delete_key(key)
        return len(keys)

    def delete_key(self, key):
        self.values.pop(key, None)
        self.ttls.pop(key, None)


class FailingEventCache:
    def get(self, key):
        raise EventCacheError("cache is down")

    def set(self, key, value, ttl_seconds):  # noqa: A003
        raise EventCacheError("cache is down")

    def invalidate_by_prefix(self, prefix):
        raise EventCacheError("cache is down")

    def delete_key(self, key):
        raise EventCacheError("cache is down")


def utc(year, month, day, hour=0, minute=0):
    return datetime.datetime(year, month, day, hour, minute, tzinfo=datetime.UTC)


@pytest.fixture
def event_cache():
    return InMemoryEventCache()


@pytest.fixture
def failing_event_cache():
    return FailingEventCache()


@pytest.fixture
def notification_dispatcher():
    return Mock()


@pytest.fixture(autouse=True)
def override_collaborators(di_container, event_cache, notification_dispatcher):
    """Keep Redis and Celery out of every events test."""
    with (
        di_container.event_cache.override(event_cache),
        di_container.notification_dispatcher.override(notification_dispatcher),
    ):
        yield


@pytest.fixture
def record_store():
    return DjangoRecordStore()


@pytest.fixture
def recurrence_manager(record_store, event_cache, notification_dispatcher):
    return RecurrenceManager(
        record_store=record_store,
        event_cache=event_cache,
        notification_dispatcher=notification_dispatcher,
        rule_locks=RuleLockRegistry(),
    )


@pytest.fixture
def template_event(user):
    """Monday 2024-01-01 18:00-19:00 UTC."""
    return baker.make(
        Event,
        title="Team sync",
        description="Weekly planning",
        event_type="meeting",
        location="Room 1",
        start_date=utc(2024, 1, 1, 18),
        end_date=utc(2024, 1, 1, 19),
        created_by=user,
    )
