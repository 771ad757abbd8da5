from django.conf import settings
from django.db import models

from common.models import BaseModel
from events.constants import RecurrencePattern


class Event(BaseModel):
    """
    Represents a team event. Recurring occurrences are events generated from a
    RecurrenceRule and point back to it through `recurrence_rule`.
    """

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    event_type = models.CharField(max_length=50, blank=True)
    location = models.CharField(max_length=255, blank=True)
    start_date = models.DateTimeField(db_index=True)
    end_date = models.DateTimeField()
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_events",
    )

    recurrence_rule = models.ForeignKey(
        "RecurrenceRule",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="occurrences",
        help_text="Set on occurrences materialized from a recurrence rule",
    )
    is_recurring = models.BooleanField(
        default=False,
        help_text="True if this event was generated by a recurrence rule",
    )

    class Meta(BaseModel.Meta):
        db_table = "events"
        ordering = ("start_date",)

    def __str__(self):
        return f"{self.title} ({self.start_date} - {self.end_date})"

    @property
    def duration(self):
        return self.end_date - self.start_date


class RecurrenceRule(BaseModel):
    """
    Recurrence configuration attached to a template event. The rule owns every
    occurrence materialized from it.
    """

    template_event = models.ForeignKey(
        Event,
        on_delete=models.CASCADE,
        related_name="recurrence_rules",
        help_text="The event whose shape is copied into every occurrence",
    )
    pattern = models.CharField(
        max_length=10,
        choices=RecurrencePattern,
        help_text="How often the event repeats (daily, weekly, monthly, yearly)",
    )
    interval = models.PositiveIntegerField(
        default=1, help_text="Every N pattern units (e.g., every 2 weeks)"
    )
    end_date = models.DateField(help_text="Last day on which an occurrence may start")
    days_of_week = models.JSONField(
        null=True,
        blank=True,
        help_text="Weekday numbers 0-6 (0 is Sunday), weekly rules only",
    )
    day_of_month = models.PositiveSmallIntegerField(
        null=True, blank=True, help_text="Day of month 1-31, monthly and yearly rules"
    )
    month_of_year = models.PositiveSmallIntegerField(
        null=True, blank=True, help_text="Month 1-12, yearly rules only"
    )
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="recurrence_rules",
    )

    class Meta(BaseModel.Meta):
        db_table = "event_recurrence"

    def __str__(self):
        return f"Recurrence: {self.pattern} every {self.interval} until {self.end_date}"


class EventNotification(BaseModel):
    """
    In-app notification created for a user when an event concerning them is created.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="event_notifications"
    )
    event = models.ForeignKey(
        Event, on_delete=models.CASCADE, null=True, related_name="notifications"
    )
    title = models.CharField(max_length=255)
    message = models.TextField(blank=True)
    is_read = models.BooleanField(default=False)

    def __str__(self):
        return f"{self.title} -> {self.user}"
