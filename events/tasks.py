import logging

from events.models import Event, EventNotification
from team_events_api.celery import app


logger = logging.getLogger(__name__)


@app.task
def send_occurrence_created_notification(event_id: int):
    """
    Celery task that records an in-app notification for the owner of a newly
    materialized occurrence.
    """
    event = Event.objects.filter(id=event_id).select_related("created_by").first()
    if not event or not event.created_by:
        logger.debug("Skipping notification for event %s: no event or owner", event_id)
        return None

    notification = EventNotification.objects.create(
        user=event.created_by,
        event=event,
        title=f"New occurrence: {event.title}",
        message=(
            f"{event.title} was scheduled for "
            f"{event.start_date:%Y-%m-%d %H:%M} - {event.end_date:%Y-%m-%d %H:%M}."
        ),
    )
    return notification.id
