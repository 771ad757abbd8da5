import datetime
from dataclasses import asdict, dataclass
from dataclasses import field as dataclass_field
from typing import Any, Self


def _parse_date(value: datetime.date | str | None) -> datetime.date | None:
    if value is None or isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(value)


def _parse_datetime(value: datetime.datetime | str | None) -> datetime.datetime | None:
    if value is None or isinstance(value, datetime.datetime):
        return value
    return datetime.datetime.fromisoformat(value)


@dataclass(frozen=True)
class RecurrencePatternData:
    """The subset of a rule the expansion algorithm reads."""

    pattern: str
    interval: int
    end_date: datetime.date
    days_of_week: tuple[int, ...] | None = None
    day_of_month: int | None = None
    month_of_year: int | None = None

    @classmethod
    def from_fields(cls, fields: dict[str, Any]) -> Self:
        days_of_week = fields.get("days_of_week")
        return cls(
            pattern=fields.get("pattern"),
            interval=fields.get("interval", 1),
            end_date=_parse_date(fields.get("end_date")),
            days_of_week=tuple(days_of_week) if days_of_week is not None else None,
            day_of_month=fields.get("day_of_month"),
            month_of_year=fields.get("month_of_year"),
        )


@dataclass
class RecurrenceRuleInputData:
    template_event_id: int
    pattern: str
    end_date: datetime.date
    interval: int = 1
    days_of_week: list[int] | None = None
    day_of_month: int | None = None
    month_of_year: int | None = None

    def as_pattern(self) -> RecurrencePatternData:
        return RecurrencePatternData(
            pattern=self.pattern,
            interval=self.interval,
            end_date=self.end_date,
            days_of_week=tuple(self.days_of_week) if self.days_of_week is not None else None,
            day_of_month=self.day_of_month,
            month_of_year=self.month_of_year,
        )


@dataclass
class RecurrenceRuleData:
    id: int  # noqa: A003
    template_event_id: int
    pattern: str
    interval: int
    end_date: datetime.date
    is_active: bool
    days_of_week: list[int] | None = None
    day_of_month: int | None = None
    month_of_year: int | None = None
    created_by_id: int | None = None
    created: datetime.datetime | None = None
    modified: datetime.datetime | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Self:
        return cls(
            id=record["id"],
            template_event_id=record["template_event_id"],
            pattern=record["pattern"],
            interval=record["interval"],
            end_date=_parse_date(record["end_date"]),
            is_active=record["is_active"],
            days_of_week=record.get("days_of_week"),
            day_of_month=record.get("day_of_month"),
            month_of_year=record.get("month_of_year"),
            created_by_id=record.get("created_by_id"),
            created=_parse_datetime(record.get("created")),
            modified=_parse_datetime(record.get("modified")),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON friendly representation, used for caching."""
        data = asdict(self)
        data["end_date"] = self.end_date.isoformat()
        data["created"] = self.created.isoformat() if self.created else None
        data["modified"] = self.modified.isoformat() if self.modified else None
        return data

    def as_pattern(self) -> RecurrencePatternData:
        return RecurrencePatternData(
            pattern=self.pattern,
            interval=self.interval,
            end_date=self.end_date,
            days_of_week=tuple(self.days_of_week) if self.days_of_week is not None else None,
            day_of_month=self.day_of_month,
            month_of_year=self.month_of_year,
        )


@dataclass(frozen=True)
class TemplateEventData:
    id: int  # noqa: A003
    title: str
    start_date: datetime.datetime
    end_date: datetime.datetime
    description: str = ""
    event_type: str = ""
    location: str = ""
    created_by_id: int | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Self:
        return cls(
            id=record["id"],
            title=record["title"],
            start_date=record["start_date"],
            end_date=record["end_date"],
            description=record.get("description") or "",
            event_type=record.get("event_type") or "",
            location=record.get("location") or "",
            created_by_id=record.get("created_by_id"),
        )

    @property
    def duration(self) -> datetime.timedelta:
        return self.end_date - self.start_date


@dataclass(frozen=True)
class OccurrenceWindow:
    start_date: datetime.datetime
    end_date: datetime.datetime


@dataclass
class OccurrencePreviewData:
    title: str
    event_type: str
    start_date: datetime.datetime
    end_date: datetime.datetime


@dataclass
class RegenerationResult:
    rule_id: int
    created_event_ids: list[int] = dataclass_field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.created_event_ids)
