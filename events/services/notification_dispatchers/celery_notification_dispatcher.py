import logging
from typing import Any

from django.db import transaction

from kombu.exceptions import KombuError

from events.exceptions import NotificationDispatchError
from events.tasks import send_occurrence_created_notification


logger = logging.getLogger(__name__)


class CeleryNotificationDispatcher:
    """
    Enqueues a notification task for every created occurrence once the surrounding
    transaction commits, so a rolled back regeneration never notifies anybody.
    """

    def notify(self, event_record: dict[str, Any]) -> None:
        event_id = event_record.get("id")
        if event_id is None:
            raise NotificationDispatchError("Cannot notify about an event without id.")

        transaction.on_commit(lambda: self._enqueue(event_id))

    @staticmethod
    def _enqueue(event_id: int) -> None:
        try:
            send_occurrence_created_notification.delay(event_id=event_id)
        except KombuError:
            logger.exception("Failed to enqueue notification for event %s", event_id)
