from dependency_injector import containers, providers
from redis import Redis

from events.services.caches.redis_event_cache import RedisEventCache
from events.services.notification_dispatchers.celery_notification_dispatcher import (
    CeleryNotificationDispatcher,
)
from events.services.preview_service import RecurrencePreviewService
from events.services.recurrence_manager import RecurrenceManager
from events.services.record_stores.django_record_store import DjangoRecordStore
from events.services.rule_locks import RuleLockRegistry
from events.validators import RecurrenceRuleValidator


class AppContainer(containers.DeclarativeContainer):
    config = providers.Configuration()

    redis_connection = providers.Singleton(
        Redis.from_url,
        config.REDIS_URL,
    )

    record_store = providers.Factory(
        DjangoRecordStore,
    )

    event_cache = providers.Factory(
        RedisEventCache,
        redis_connection=redis_connection,
        namespace=config.EVENT_CACHE_NAMESPACE,
    )

    notification_dispatcher = providers.Factory(
        CeleryNotificationDispatcher,
    )

    rule_locks = providers.Singleton(
        RuleLockRegistry,
    )

    recurrence_rule_validator = providers.Factory(
        RecurrenceRuleValidator,
    )

    recurrence_manager = providers.Factory(
        RecurrenceManager,
        record_store=record_store,
        event_cache=event_cache,
        notification_dispatcher=notification_dispatcher,
        rule_locks=rule_locks,
        validator=recurrence_rule_validator,
        cache_ttl=config.RECURRENCE_CACHE_TTL,
    )

    recurrence_preview_service = providers.Factory(
        RecurrencePreviewService,
        record_store=record_store,
        validator=recurrence_rule_validator,
        limit=config.RECURRENCE_PREVIEW_LIMIT,
    )


container: AppContainer | None = None  # set during app startup
