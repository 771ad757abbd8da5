from django.db.models import IntegerChoices, TextChoices


class RecurrencePattern(TextChoices):
    DAILY = "daily", "Daily"
    WEEKLY = "weekly", "Weekly"
    MONTHLY = "monthly", "Monthly"
    YEARLY = "yearly", "Yearly"


class Weekday(IntegerChoices):
    SUNDAY = 0, "Sunday"
    MONDAY = 1, "Monday"
    TUESDAY = 2, "Tuesday"
    WEDNESDAY = 3, "Wednesday"
    THURSDAY = 4, "Thursday"
    FRIDAY = 5, "Friday"
    SATURDAY = 6, "Saturday"


# Record store tables
EVENTS_TABLE = "events"
RECURRENCE_RULES_TABLE = "event_recurrence"

# Cache keys and namespaces
EVENTS_CACHE_PREFIX = "events"
RECURRENCE_LIST_CACHE_PREFIX = "recurrences"
RECURRENCE_CACHE_KEY = "recurrence:{rule_id}"
RECURRENCE_LIST_CACHE_KEY = "recurrences:{page}:{limit}:{template_event_id}"

DEFAULT_RECURRENCE_CACHE_TTL = 300
DEFAULT_PREVIEW_LIMIT = 50

# Furthest end date a stored rule may have, counted from its template start
MAX_RECURRENCE_HORIZON_YEARS = 10
