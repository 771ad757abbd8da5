from common.types import RouteDict

from .views import RecurrenceRuleViewSet


routes: list[RouteDict] = [
    {
        "regex": r"recurrence-rules",
        "viewset": RecurrenceRuleViewSet,
        "basename": "RecurrenceRules",
    },
]
