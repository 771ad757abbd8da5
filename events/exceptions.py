class EventsError(Exception):
    """Base exception for events app errors"""

    default_message = ""

    def __init__(self, message: str | None = None):
        if message is None:
            message = self.default_message
        super().__init__(message)


# Recurrence Errors
class RecurrenceError(EventsError):
    """Base class for recurring event errors"""

    pass


class RecurrenceValidationError(RecurrenceError):
    default_message = "Invalid recurrence rule."

    def __init__(self, errors: list[str] | str | None = None):
        if errors is None:
            errors = [self.default_message]
        elif isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class RecurrenceDependencyError(RecurrenceError):
    """Raised when a record the engine depends on cannot be loaded"""

    pass


class RecurrenceRuleNotFoundError(RecurrenceDependencyError):
    def __init__(self, rule_id: int):
        self.rule_id = rule_id
        super().__init__(f"Recurrence rule {rule_id} not found")


class TemplateEventNotFoundError(RecurrenceDependencyError):
    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__(f"Template event {event_id} not found")


# Record Store Errors
class RecordStoreError(EventsError):
    """Raised when reading from or writing to the record store fails"""

    default_message = "Record store operation failed."


class UnknownTableError(RecordStoreError):
    def __init__(self, table: str):
        super().__init__(f"Unknown table: {table}")


class UnsupportedFilterError(RecordStoreError):
    def __init__(self, lookup: str):
        super().__init__(f"Unsupported filter lookup: {lookup}")


# Collaborator Errors
class EventCacheError(EventsError):
    default_message = "Event cache operation failed."


class NotificationDispatchError(EventsError):
    default_message = "Notification could not be dispatched."
