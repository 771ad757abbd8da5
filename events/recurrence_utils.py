"""Recurrence expansion: pattern matching, date sequencing and occurrence expansion.

Everything in this module is pure: no database, cache or clock access. The same
functions back both the materialization done by ``RecurrenceManager`` and the
read-only ``RecurrencePreviewService``, so a preview never diverges from what
gets persisted.

Month-end policy: monthly and yearly steps clamp to the last valid day of the
target month, and a ``day_of_month`` larger than a month's length matches that
month's last day. A rule on the 31st therefore recurs on Feb 29 (or 28), Apr 30
and so on, exactly once per month. Yearly steps land in ``month_of_year`` when
the rule sets one, whatever the template's month.
"""

import calendar
import datetime
import logging
from collections.abc import Iterator

from dateutil.relativedelta import relativedelta

from events.constants import RecurrencePattern
from events.exceptions import RecurrenceValidationError
from events.services.dataclasses import (
    OccurrenceWindow,
    RecurrencePatternData,
    TemplateEventData,
)


logger = logging.getLogger(__name__)


def weekday_number(date: datetime.date) -> int:
    """Weekday where 0 is Sunday and 6 is Saturday."""
    return (date.weekday() + 1) % 7


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def is_within_end_bound(candidate: datetime.datetime, end: datetime.date) -> bool:
    """
    Return True if ``candidate`` does not go past ``end``.

    A plain date bound includes the whole day; a datetime bound is compared as is.
    """
    if isinstance(end, datetime.datetime):
        return candidate <= end
    return candidate.date() <= end


class PatternMatcher:
    """Decides whether a candidate date satisfies a rule's pattern constraints."""

    @staticmethod
    def _day_matches(candidate: datetime.date, day_of_month: int) -> bool:
        return candidate.day == min(day_of_month, days_in_month(candidate.year, candidate.month))

    @staticmethod
    def matches(candidate: datetime.date, rule: RecurrencePatternData) -> bool:
        if rule.pattern == RecurrencePattern.DAILY:
            return True

        if rule.pattern == RecurrencePattern.WEEKLY:
            if rule.days_of_week is None:
                return True
            return weekday_number(candidate) in rule.days_of_week

        if rule.pattern == RecurrencePattern.MONTHLY:
            if rule.day_of_month is None:
                return True
            return PatternMatcher._day_matches(candidate, rule.day_of_month)

        if rule.pattern == RecurrencePattern.YEARLY:
            if rule.month_of_year is None or rule.day_of_month is None:
                return True
            return candidate.month == rule.month_of_year and PatternMatcher._day_matches(
                candidate, rule.day_of_month
            )

        logger.warning("Unknown recurrence pattern %r, accepting candidate", rule.pattern)
        return True


class DateSequencer:
    """Advances a candidate date to the next nominal occurrence."""

    @staticmethod
    def next(  # noqa: A003
        current: datetime.datetime,
        rule: RecurrencePatternData,
        anchor_day: int | None = None,
    ) -> datetime.datetime:
        """
        Return the date one step after ``current``.

        ``anchor_day`` is the day of month monthly/yearly steps aim for when the rule
        has no ``day_of_month``; it keeps clamped months from drifting (Jan 31 ->
        Feb 29 -> Mar 31 instead of Mar 29). Defaults to ``current.day``.
        """
        interval = rule.interval
        if interval < 1:
            raise RecurrenceValidationError(f"Interval must be at least 1, got {interval}.")

        if rule.pattern == RecurrencePattern.DAILY:
            return current + datetime.timedelta(days=interval)

        if rule.pattern == RecurrencePattern.WEEKLY:
            if rule.days_of_week is None:
                return current + datetime.timedelta(weeks=interval)
            # Walk the days of the current week; when a new week starts (Sunday),
            # skip the weeks the interval leaves out.
            following = current + datetime.timedelta(days=1)
            if weekday_number(following) == 0 and interval > 1:
                following += datetime.timedelta(weeks=interval - 1)
            return following

        if rule.pattern == RecurrencePattern.MONTHLY:
            day = rule.day_of_month or anchor_day or current.day
            # relativedelta clamps an absolute day to the target month's length
            return current + relativedelta(months=interval, day=day)

        if rule.pattern == RecurrencePattern.YEARLY:
            day = rule.day_of_month or anchor_day or current.day
            # the absolute month is applied before the years are added
            return current + relativedelta(
                years=interval, month=rule.month_of_year or current.month, day=day
            )

        logger.warning("Unknown recurrence pattern %r, stepping %s days", rule.pattern, interval)
        return current + datetime.timedelta(days=interval)


class OccurrenceExpander:
    """Expands a template event and a rule into concrete occurrence windows."""

    @staticmethod
    def expand(
        template: TemplateEventData,
        rule: RecurrencePatternData,
        max_count: int | None = None,
    ) -> Iterator[OccurrenceWindow]:
        """
        Lazily yield occurrence windows ordered by start date.

        The template's own slot is never yielded: the first candidate is one step
        after ``template.start_date``. Expansion stops once a candidate passes
        ``rule.end_date`` or ``max_count`` windows were produced. The output only
        depends on the arguments, so repeated calls produce the same windows.
        """
        duration = template.duration
        anchor_day = template.start_date.day
        emitted = 0

        candidate = DateSequencer.next(template.start_date, rule, anchor_day=anchor_day)
        while is_within_end_bound(candidate, rule.end_date):
            if max_count is not None and emitted >= max_count:
                break
            if PatternMatcher.matches(candidate, rule):
                yield OccurrenceWindow(start_date=candidate, end_date=candidate + duration)
                emitted += 1
            candidate = DateSequencer.next(candidate, rule, anchor_day=anchor_day)
