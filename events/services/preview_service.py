import itertools
import logging
from typing import Any

from events.constants import DEFAULT_PREVIEW_LIMIT, EVENTS_TABLE
from events.exceptions import TemplateEventNotFoundError
from events.recurrence_utils import OccurrenceExpander
from events.services.dataclasses import (
    OccurrencePreviewData,
    RecurrencePatternData,
    TemplateEventData,
)
from events.services.protocols.record_store import RecordStore
from events.validators import RecurrenceRuleValidator


logger = logging.getLogger(__name__)


class RecurrencePreviewService:
    """
    Computes the occurrences a rule would produce without persisting anything and
    without touching the cache.
    """

    def __init__(
        self,
        record_store: RecordStore,
        validator: RecurrenceRuleValidator | None = None,
        limit: int = DEFAULT_PREVIEW_LIMIT,
    ) -> None:
        self.record_store = record_store
        self.validator = validator or RecurrenceRuleValidator()
        self.limit = limit

    def preview(
        self, template_event_id: int, fields: RecurrencePatternData | dict[str, Any]
    ) -> list[OccurrencePreviewData]:
        """
        Return at most ``self.limit`` occurrences, ordered by start date, for a rule
        built from ``fields`` on top of the given template event.
        """
        if not isinstance(fields, RecurrencePatternData):
            fields = RecurrencePatternData.from_fields(fields)
        rule = self.validator.validate(fields)

        record = self.record_store.find_one(EVENTS_TABLE, {"id": template_event_id})
        if record is None:
            raise TemplateEventNotFoundError(template_event_id)
        template = TemplateEventData.from_record(record)

        windows = itertools.islice(
            OccurrenceExpander.expand(template, rule, max_count=self.limit), self.limit
        )
        occurrences = [
            OccurrencePreviewData(
                title=template.title,
                event_type=template.event_type,
                start_date=window.start_date,
                end_date=window.end_date,
            )
            for window in windows
        ]
        logger.debug(
            "Previewed %s occurrences for event %s", len(occurrences), template_event_id
        )
        return occurrences
