from django.contrib import admin

from events.models import Event, EventNotification, RecurrenceRule


class OccurrenceInline(admin.TabularInline):
    model = Event
    fk_name = "recurrence_rule"
    fields = ("title", "start_date", "end_date")
    readonly_fields = ("title", "start_date", "end_date")
    extra = 0
    can_delete = False
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "event_type", "start_date", "end_date", "is_recurring")
    list_filter = ("is_recurring", "event_type")
    search_fields = ("title", "description", "location")
    readonly_fields = ("recurrence_rule", "is_recurring", "created", "modified")
    date_hierarchy = "start_date"


@admin.register(RecurrenceRule)
class RecurrenceRuleAdmin(admin.ModelAdmin):
    """
    Read-oriented admin for recurrence rules. Rules are edited through the API so
    their occurrences stay in sync.
    """

    list_display = ("id", "template_event", "pattern", "interval", "end_date", "is_active")
    list_filter = ("pattern", "is_active")
    readonly_fields = (
        "template_event",
        "pattern",
        "interval",
        "end_date",
        "days_of_week",
        "day_of_month",
        "month_of_year",
        "is_active",
        "created_by",
        "created",
        "modified",
    )
    inlines = (OccurrenceInline,)

    def has_add_permission(self, request):
        return False


@admin.register(EventNotification)
class EventNotificationAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "event", "title", "is_read", "created")
    list_filter = ("is_read",)
    search_fields = ("title", "message")
    raw_id_fields = ("user", "event")
