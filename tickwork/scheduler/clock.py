"""
Trigger Clock - Fire-time arithmetic for trigger definitions.

All functions are pure: they read a TriggerDefinition and return times or
a new TriggerDefinition, so they are safe to call concurrently for
distinct triggers.

Calendar-excluded candidates are skipped one by one. The search gives up
(returns None) once a candidate lies more than GIVE_UP_YEARS years past
the current year, so a calendar excluding everything cannot hang the
scheduler.
"""

from typing import List, Optional
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from tickwork.scheduler.calendars import CalendarFilter
from tickwork.scheduler.triggers import TriggerDefinition


GIVE_UP_YEARS = 100


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _give_up_year(now: Optional[datetime] = None) -> int:
    return (now or _now()).year + GIVE_UP_YEARS


def fire_time_after(
    trigger: TriggerDefinition,
    after: Optional[datetime] = None
) -> Optional[datetime]:
    """
    Next grid time strictly after ``after``, ignoring calendars.

    Args:
        trigger: Trigger definition
        after: Reference time (default: now)

    Returns:
        Next fire time or None if the trigger will not fire after ``after``
    """
    if trigger.completed:
        return None

    if not trigger.is_indefinite and trigger.times_triggered > trigger.repeat_count:
        return None

    if after is None:
        after = _now()

    start = trigger.start_time
    end = trigger.end_time

    # A single shot that already passed
    if trigger.repeat_count == 0 and after >= start:
        return None

    if end is not None and end <= after:
        return None

    if after < start:
        return start

    cycles = (after - start) // trigger.repeat_interval + 1

    if not trigger.is_indefinite and cycles > trigger.repeat_count:
        return None

    candidate = start + cycles * trigger.repeat_interval

    if end is not None and end <= candidate:
        return None

    return candidate


def _skip_excluded(
    trigger: TriggerDefinition,
    candidate: Optional[datetime],
    calendar: Optional[CalendarFilter],
    now: Optional[datetime] = None
) -> Optional[datetime]:
    """Advance ``candidate`` until the calendar includes it."""
    if calendar is None:
        return candidate

    give_up_year = _give_up_year(now)

    while candidate is not None and not calendar.is_time_included(candidate):
        candidate = fire_time_after(trigger, candidate)

        if candidate is not None and candidate.year > give_up_year:
            return None

    return candidate


def compute_first_fire(
    trigger: TriggerDefinition,
    calendar: Optional[CalendarFilter] = None,
    now: Optional[datetime] = None
) -> Optional[datetime]:
    """
    First time the trigger fires: its start time, or the first included
    time after it.

    Args:
        trigger: Trigger definition
        calendar: Optional exclusion calendar
        now: Current time, anchors the give-up bound

    Returns:
        First fire time or None if the trigger never fires
    """
    if trigger.completed:
        return None
    return _skip_excluded(trigger, trigger.start_time, calendar, now)


def compute_next_fire_after(
    trigger: TriggerDefinition,
    after: Optional[datetime] = None,
    calendar: Optional[CalendarFilter] = None,
    now: Optional[datetime] = None
) -> Optional[datetime]:
    """
    First calendar-included fire time strictly after ``after``.

    Args:
        trigger: Trigger definition
        after: Reference time (default: now)
        calendar: Optional exclusion calendar
        now: Current time, anchors the give-up bound

    Returns:
        Next fire time or None if there are no further fire times
    """
    return _skip_excluded(trigger, fire_time_after(trigger, after), calendar, now)


def _fire_time_before(trigger: TriggerDefinition, end: datetime) -> Optional[datetime]:
    """Last grid time strictly before ``end``."""
    start = trigger.start_time
    if end <= start:
        return None

    cycles = (end - start) // trigger.repeat_interval
    candidate = start + cycles * trigger.repeat_interval

    if candidate >= end:
        candidate -= trigger.repeat_interval

    return candidate if candidate >= start else None


def compute_final_fire(
    trigger: TriggerDefinition,
    calendar: Optional[CalendarFilter] = None
) -> Optional[datetime]:
    """
    Last time the trigger will fire. May lie in the past.

    Indefinite triggers only have a final fire time when they have an
    end time.

    Args:
        trigger: Trigger definition
        calendar: Optional exclusion calendar

    Returns:
        Final fire time or None
    """
    start = trigger.start_time
    end = trigger.end_time

    if trigger.repeat_count == 0:
        candidate = start
    elif trigger.is_indefinite:
        if end is None:
            return None
        candidate = _fire_time_before(trigger, end)
    else:
        last = start + trigger.repeat_count * trigger.repeat_interval
        if end is None or last < end:
            candidate = last
        else:
            candidate = _fire_time_before(trigger, end)

    while candidate is not None and calendar is not None and not calendar.is_time_included(candidate):
        if trigger.repeat_count == 0:
            return None

        candidate -= trigger.repeat_interval
        if candidate < start:
            return None

    return candidate


def triggered(
    trigger: TriggerDefinition,
    calendar: Optional[CalendarFilter] = None,
    now: Optional[datetime] = None
) -> TriggerDefinition:
    """
    Advance a trigger past the firing at its current next fire time.

    Args:
        trigger: Trigger that just fired
        calendar: Optional exclusion calendar
        now: Current time, anchors the give-up bound

    Returns:
        Updated trigger definition
    """
    fired = replace(
        trigger,
        times_triggered=trigger.times_triggered + 1,
        previous_fire_time=trigger.next_fire_time,
    )
    next_time = compute_next_fire_after(fired, trigger.next_fire_time, calendar, now)
    return replace(fired, next_fire_time=next_time)


def compute_fire_times(
    trigger: TriggerDefinition,
    calendar: Optional[CalendarFilter] = None,
    limit: int = 10,
    now: Optional[datetime] = None
) -> List[datetime]:
    """
    Preview the trigger's fire times from its start.

    Args:
        trigger: Trigger definition
        calendar: Optional exclusion calendar
        limit: Maximum number of fire times
        now: Current time, anchors the give-up bound

    Returns:
        Up to ``limit`` fire times in order
    """
    current = replace(
        trigger,
        times_triggered=0,
        previous_fire_time=None,
        next_fire_time=None,
    )
    current = replace(current, next_fire_time=compute_first_fire(current, calendar, now))

    times: List[datetime] = []
    while current.next_fire_time is not None and len(times) < limit:
        times.append(current.next_fire_time)
        current = triggered(current, calendar, now)

    return times


def cycles_between(
    trigger: TriggerDefinition,
    start: datetime,
    end: datetime
) -> int:
    """Whole repeat intervals between two times (0 without an interval)."""
    if trigger.repeat_interval < timedelta(milliseconds=1) or end <= start:
        return 0
    return (end - start) // trigger.repeat_interval
