import calendar
import datetime

from dateutil.relativedelta import relativedelta

from events.constants import MAX_RECURRENCE_HORIZON_YEARS, RecurrencePattern
from events.exceptions import RecurrenceValidationError
from events.services.dataclasses import RecurrencePatternData


# 2024 is a leap year, so Feb 29 counts as a valid yearly date
_LEAP_YEAR = 2024


class RecurrenceRuleValidator:
    """
    Validates the shape of a recurrence rule before anything is persisted or
    previewed. ``validate`` collects every problem and raises them together.
    """

    def validate(
        self,
        rule: RecurrencePatternData,
        template_start: datetime.datetime | None = None,
    ) -> RecurrencePatternData:
        """
        Validate ``rule`` and return it with ``days_of_week`` de-duplicated and sorted.

        When ``template_start`` is given, ``end_date`` must fall after its date and
        no more than MAX_RECURRENCE_HORIZON_YEARS later.
        Raises RecurrenceValidationError listing every invalid field.
        """
        errors: list[str] = []

        if rule.pattern not in RecurrencePattern.values:
            errors.append(f"Unknown recurrence pattern: {rule.pattern!r}.")

        if isinstance(rule.interval, bool) or not isinstance(rule.interval, int):
            errors.append("Interval must be an integer.")
        elif rule.interval < 1:
            errors.append("Interval must be at least 1.")

        if not isinstance(rule.end_date, datetime.date):
            errors.append("End date is required.")
        elif template_start is not None:
            end_day = self._end_day(rule.end_date)
            start_day = template_start.date()
            if end_day <= start_day:
                errors.append("End date must be after the template event start date.")
            elif end_day > start_day + relativedelta(years=MAX_RECURRENCE_HORIZON_YEARS):
                errors.append(
                    f"End date must be within {MAX_RECURRENCE_HORIZON_YEARS} years "
                    "of the template event start date."
                )

        days_of_week = self._validate_days_of_week(rule, errors)
        self._validate_day_of_month(rule, errors)
        self._validate_month_of_year(rule, errors)

        if errors:
            raise RecurrenceValidationError(errors)

        return RecurrencePatternData(
            pattern=rule.pattern,
            interval=rule.interval,
            end_date=rule.end_date,
            days_of_week=days_of_week,
            day_of_month=rule.day_of_month,
            month_of_year=rule.month_of_year,
        )

    @staticmethod
    def _end_day(end_date: datetime.date) -> datetime.date:
        return end_date.date() if isinstance(end_date, datetime.datetime) else end_date

    @staticmethod
    def _validate_days_of_week(
        rule: RecurrencePatternData, errors: list[str]
    ) -> tuple[int, ...] | None:
        if rule.days_of_week is None:
            return None

        if rule.pattern != RecurrencePattern.WEEKLY:
            errors.append("Days of week can only be set on weekly rules.")
            return None
        if len(rule.days_of_week) == 0:
            errors.append("Days of week must not be empty; omit it to repeat on the start weekday.")
            return None

        invalid_days = [
            day
            for day in rule.days_of_week
            if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6
        ]
        if invalid_days:
            errors.append(f"Days of week must be between 0 (Sunday) and 6, got {invalid_days}.")
            return None

        return tuple(sorted(set(rule.days_of_week)))

    @staticmethod
    def _validate_day_of_month(rule: RecurrencePatternData, errors: list[str]) -> None:
        if rule.day_of_month is None:
            return

        if rule.pattern not in (RecurrencePattern.MONTHLY, RecurrencePattern.YEARLY):
            errors.append("Day of month can only be set on monthly or yearly rules.")
        elif not 1 <= rule.day_of_month <= 31:
            errors.append("Day of month must be between 1 and 31.")

    @staticmethod
    def _validate_month_of_year(rule: RecurrencePatternData, errors: list[str]) -> None:
        if rule.month_of_year is None:
            return

        if rule.pattern != RecurrencePattern.YEARLY:
            errors.append("Month of year can only be set on yearly rules.")
            return
        if not 1 <= rule.month_of_year <= 12:
            errors.append("Month of year must be between 1 and 12.")
            return

        if rule.day_of_month is not None and 1 <= rule.day_of_month <= 31:
            max_day = calendar.monthrange(_LEAP_YEAR, rule.month_of_year)[1]
            if rule.day_of_month > max_day:
                errors.append(
                    f"{calendar.month_name[rule.month_of_year]} has no day {rule.day_of_month}."
                )
