from typing import Any, Protocol


class NotificationDispatcher(Protocol):
    def notify(self, event_record: dict[str, Any]) -> None:
        """
        Hand a newly created event over for notification delivery. Fire-and-forget:
        implementations return before delivery happens.
        """
        ...
