"""
Misfire Resolution - Recover triggers whose fire time elapsed unserved.

A trigger misfires when its next fire time is older than the store's
misfire threshold, typically because every worker was busy or the
scheduler was down. The trigger's MisfirePolicy decides how it is
rewritten; this is the only place a next fire time may move backwards.
"""

from typing import Optional
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from tickwork.scheduler.calendars import CalendarFilter
from tickwork.scheduler.clock import compute_next_fire_after, cycles_between
from tickwork.scheduler.triggers import MisfirePolicy, TriggerDefinition


def resolve_policy(trigger: TriggerDefinition) -> MisfirePolicy:
    """
    Concrete policy for a trigger, resolving SMART_POLICY.

    SMART_POLICY means FIRE_NOW for single shots,
    RESCHEDULE_NEXT_WITH_REMAINING_COUNT for indefinite triggers and
    RESCHEDULE_NOW_WITH_EXISTING_REPEAT_COUNT otherwise.
    """
    policy = trigger.misfire_policy
    if policy is not MisfirePolicy.SMART_POLICY:
        return policy

    if trigger.repeat_count == 0:
        return MisfirePolicy.FIRE_NOW
    if trigger.is_indefinite:
        return MisfirePolicy.RESCHEDULE_NEXT_WITH_REMAINING_COUNT
    return MisfirePolicy.RESCHEDULE_NOW_WITH_EXISTING_REPEAT_COUNT


def is_misfired(
    trigger: TriggerDefinition,
    now: Optional[datetime] = None,
    threshold: timedelta = timedelta(0)
) -> bool:
    """Check whether the trigger's next fire time is more than ``threshold`` late."""
    if trigger.next_fire_time is None:
        return False
    now = now or datetime.now(timezone.utc)
    return trigger.next_fire_time < now - threshold


def _reschedule_now(
    trigger: TriggerDefinition,
    now: datetime,
    times_missed: int
) -> TriggerDefinition:
    updates = {}

    # Indefinite counts have no budget to shrink
    if trigger.repeat_count != 0 and not trigger.is_indefinite:
        remaining = trigger.repeat_count - (trigger.times_triggered + times_missed)
        updates["repeat_count"] = max(remaining, 0)
        updates["times_triggered"] = 0

    if trigger.end_time is not None and trigger.end_time < now:
        return replace(trigger, next_fire_time=None, **updates)

    return replace(trigger, start_time=now, next_fire_time=now, **updates)


def apply_misfire(
    trigger: TriggerDefinition,
    calendar: Optional[CalendarFilter] = None,
    now: Optional[datetime] = None
) -> TriggerDefinition:
    """
    Rewrite a misfired trigger according to its policy.

    Args:
        trigger: Misfired trigger
        calendar: Calendar filtering the trigger's fire times
        now: Current time (default: now)

    Returns:
        Updated trigger definition
    """
    now = now or datetime.now(timezone.utc)
    policy = resolve_policy(trigger)

    if policy is MisfirePolicy.IGNORE_MISFIRE:
        return trigger

    if policy is MisfirePolicy.FIRE_NOW:
        return replace(trigger, next_fire_time=now)

    if policy is MisfirePolicy.RESCHEDULE_NEXT_WITH_EXISTING_COUNT:
        new_time = compute_next_fire_after(trigger, now, calendar, now)
        return replace(trigger, next_fire_time=new_time)

    if policy is MisfirePolicy.RESCHEDULE_NEXT_WITH_REMAINING_COUNT:
        new_time = compute_next_fire_after(trigger, now, calendar, now)
        times_triggered = trigger.times_triggered
        if new_time is not None and trigger.next_fire_time is not None:
            times_triggered += cycles_between(trigger, trigger.next_fire_time, new_time)
        return replace(trigger, next_fire_time=new_time, times_triggered=times_triggered)

    if policy is MisfirePolicy.RESCHEDULE_NOW_WITH_EXISTING_REPEAT_COUNT:
        return _reschedule_now(trigger, now, times_missed=0)

    # RESCHEDULE_NOW_WITH_REMAINING_REPEAT_COUNT
    times_missed = 0
    if trigger.next_fire_time is not None:
        times_missed = cycles_between(trigger, trigger.next_fire_time, now)
    return _reschedule_now(trigger, now, times_missed)
