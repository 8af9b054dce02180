"""
Calendars - Exclude time windows from trigger schedules.

Provides:
- Holiday calendars (excluded dates)
- Weekly calendars (excluded weekdays)
- Daily calendars (excluded time-of-day range)
- Predicate calendars (any callable)

Calendars chain through ``base_calendar``: a time is included only when
every calendar in the chain includes it.
"""

from typing import Callable, Iterable, Optional, Protocol, runtime_checkable
from datetime import date, datetime, time, tzinfo

from tickwork.core.exceptions import ConfigurationError


@runtime_checkable
class CalendarFilter(Protocol):
    """Predicate telling whether a timestamp may fire."""

    def is_time_included(self, timestamp: datetime) -> bool:
        ...


class BaseCalendar:
    """
    Calendar that includes every time its base calendar includes.

    Subclasses narrow the included set by overriding ``_includes``.
    """

    def __init__(
        self,
        base_calendar: Optional[CalendarFilter] = None,
        description: Optional[str] = None,
        tz: Optional[tzinfo] = None
    ):
        """
        Initialize calendar.

        Args:
            base_calendar: Calendar whose exclusions also apply
            description: Human-readable description
            tz: Time zone the calendar's rules are evaluated in
        """
        self.base_calendar = base_calendar
        self.description = description
        self.tz = tz

    def _local(self, timestamp: datetime) -> datetime:
        return timestamp.astimezone(self.tz) if self.tz else timestamp

    def _includes(self, local: datetime) -> bool:
        return True

    def is_time_included(self, timestamp: datetime) -> bool:
        """Check whether the timestamp is eligible to fire."""
        if self.base_calendar is not None and not self.base_calendar.is_time_included(timestamp):
            return False
        return self._includes(self._local(timestamp))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(description={self.description!r})"


class HolidayCalendar(BaseCalendar):
    """
    Excludes whole days.

    Example:
        >>> cal = HolidayCalendar([date(2026, 12, 25), date(2027, 1, 1)])
    """

    def __init__(self, excluded_dates: Iterable[date] = (), **kwargs):
        super().__init__(**kwargs)
        self.excluded_dates = set(excluded_dates)

    def add_excluded_date(self, day: date) -> None:
        self.excluded_dates.add(day)

    def remove_excluded_date(self, day: date) -> None:
        self.excluded_dates.discard(day)

    def _includes(self, local: datetime) -> bool:
        return local.date() not in self.excluded_dates


class WeeklyCalendar(BaseCalendar):
    """
    Excludes days of the week (Monday is 0). Weekends by default.

    Example:
        >>> cal = WeeklyCalendar()            # no Saturdays or Sundays
        >>> cal = WeeklyCalendar({0})         # no Mondays
    """

    def __init__(self, excluded_weekdays: Iterable[int] = (5, 6), **kwargs):
        super().__init__(**kwargs)
        self.excluded_weekdays = set(excluded_weekdays)

        if any(d < 0 or d > 6 for d in self.excluded_weekdays):
            raise ConfigurationError(
                "Weekdays must be between 0 (Monday) and 6 (Sunday)",
                {"excluded_weekdays": sorted(self.excluded_weekdays)}
            )

    def _includes(self, local: datetime) -> bool:
        return local.weekday() not in self.excluded_weekdays


class DailyCalendar(BaseCalendar):
    """
    Excludes a time-of-day range, bounds inclusive.

    With ``invert=True`` only the range is included.

    Example:
        >>> # Nothing fires during the nightly maintenance window
        >>> cal = DailyCalendar(time(1, 0), time(3, 0))
    """

    def __init__(
        self,
        range_start: time,
        range_end: time,
        invert: bool = False,
        **kwargs
    ):
        super().__init__(**kwargs)
        if range_end < range_start:
            raise ConfigurationError(
                "Range end cannot be before range start",
                {"range_start": str(range_start), "range_end": str(range_end)}
            )

        self.range_start = range_start
        self.range_end = range_end
        self.invert = invert

    def _includes(self, local: datetime) -> bool:
        in_range = self.range_start <= local.time() <= self.range_end
        return in_range if self.invert else not in_range


class PredicateCalendar(BaseCalendar):
    """Includes the times for which ``predicate`` returns True."""

    def __init__(self, predicate: Callable[[datetime], bool], **kwargs):
        super().__init__(**kwargs)
        self.predicate = predicate

    def _includes(self, local: datetime) -> bool:
        return bool(self.predicate(local))
