"""
In-memory trigger store.

Holds jobs, triggers and calendars for a single scheduler and is the only
component that mutates a trigger's volatile fields. Every operation runs
under one lock; a trigger that has been acquired by the control loop is
invisible to further acquisition until it fires or is released.

State is lost when the process exits.
"""

from typing import Callable, Dict, List, Optional
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
import threading

from tickwork.core.exceptions import (
    ConfigurationError,
    JobNotFoundError,
    ObjectAlreadyExistsError,
)
from tickwork.core.observability import StructuredLogger
from tickwork.scheduler.calendars import CalendarFilter
from tickwork.scheduler.clock import compute_first_fire, compute_next_fire_after, triggered
from tickwork.scheduler.interfaces import (
    CompletedExecutionInstruction,
    SignalKind,
    Signaler,
    TriggerFiredBundle,
)
from tickwork.scheduler.job import JobDetail
from tickwork.scheduler.misfire import apply_misfire, is_misfired, resolve_policy
from tickwork.scheduler.triggers import MisfirePolicy, TriggerDefinition


class TriggerState(str, Enum):
    """Store-side state of a trigger."""
    WAITING = "waiting"
    ACQUIRED = "acquired"
    COMPLETE = "complete"


@dataclass
class _TriggerEntry:
    trigger: TriggerDefinition
    state: TriggerState = TriggerState.WAITING


class InMemoryTriggerStore:
    """
    Trigger store keeping everything in process memory.

    Example:
        >>> store = InMemoryTriggerStore(misfire_threshold=timedelta(seconds=5))
        >>> store.store_job(JobDetail("report", func=build_report))
        >>> store.store_trigger(TriggerDefinition.repeating("hourly", "report", timedelta(hours=1)))
    """

    def __init__(
        self,
        misfire_threshold: timedelta = timedelta(seconds=5),
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize store.

        Args:
            misfire_threshold: Lateness tolerated before misfire handling applies
            clock: Source of the current time (default: UTC now)
        """
        self.misfire_threshold = misfire_threshold
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._jobs: Dict[str, JobDetail] = {}
        self._triggers: Dict[str, _TriggerEntry] = {}
        self._calendars: Dict[str, CalendarFilter] = {}
        self._lock = threading.RLock()
        self._signaler: Optional[Signaler] = None
        self.concurrency_hint: Optional[int] = None
        self.logger = StructuredLogger("tickwork.store")

    # Lifecycle

    def initialize(self, signaler: Signaler) -> None:
        self._signaler = signaler
        self.logger.info(
            "Trigger store initialized",
            misfire_threshold_ms=int(self.misfire_threshold / timedelta(milliseconds=1))
        )

    def set_concurrency_hint(self, n: int) -> None:
        self.concurrency_hint = n

    def shutdown(self) -> None:
        self.logger.info("Trigger store shut down", triggers=len(self._triggers))

    def _signal(self, kind: SignalKind, **details) -> None:
        if self._signaler is not None:
            self._signaler.notify(kind, **details)

    # Jobs

    def store_job(self, job: JobDetail, replace_existing: bool = False) -> None:
        if not job.name:
            raise ConfigurationError("Job name cannot be empty")
        if not callable(job.func):
            raise ConfigurationError("Job function must be callable", {"job_name": job.name})

        with self._lock:
            if job.name in self._jobs and not replace_existing:
                raise ObjectAlreadyExistsError("job", job.name)
            self._jobs[job.name] = job

    def get_job(self, job_name: str) -> Optional[JobDetail]:
        with self._lock:
            return self._jobs.get(job_name)

    def job_names(self) -> List[str]:
        with self._lock:
            return sorted(self._jobs)

    def remove_job(self, job_name: str) -> bool:
        """Remove a job and all of its triggers."""
        with self._lock:
            if job_name not in self._jobs:
                return False

            for name in [n for n, e in self._triggers.items() if e.trigger.job_name == job_name]:
                del self._triggers[name]
            del self._jobs[job_name]

        self._signal(SignalKind.JOB_DELETED, job_name=job_name)
        return True

    # Calendars

    def store_calendar(
        self,
        name: str,
        calendar: CalendarFilter,
        replace_existing: bool = False,
        update_triggers: bool = True
    ) -> None:
        """
        Store a calendar, optionally moving the next fire time of triggers
        using it off newly excluded times.
        """
        with self._lock:
            if name in self._calendars and not replace_existing:
                raise ObjectAlreadyExistsError("calendar", name)
            self._calendars[name] = calendar

            if update_triggers:
                now = self._clock()
                for entry in self._triggers.values():
                    t = entry.trigger
                    if t.calendar_name != name or t.next_fire_time is None:
                        continue
                    if not calendar.is_time_included(t.next_fire_time):
                        entry.trigger = replace(
                            t,
                            next_fire_time=compute_next_fire_after(t, t.next_fire_time, calendar, now)
                        )

        self._signal(SignalKind.SCHEDULING_CHANGE, calendar_name=name)

    def get_calendar(self, name: Optional[str]) -> Optional[CalendarFilter]:
        if name is None:
            return None
        with self._lock:
            return self._calendars.get(name)

    # Triggers

    def store_trigger(
        self,
        trigger: TriggerDefinition,
        replace_existing: bool = False
    ) -> TriggerDefinition:
        """
        Store a trigger, computing its first fire time if unset.

        Returns:
            The stored trigger

        Raises:
            JobNotFoundError: If the trigger's job is not stored
            ConfigurationError: If the calendar is unknown or the trigger never fires
        """
        with self._lock:
            if trigger.name in self._triggers and not replace_existing:
                raise ObjectAlreadyExistsError("trigger", trigger.name)

            if trigger.job_name not in self._jobs:
                raise JobNotFoundError(trigger.job_name)

            calendar = None
            if trigger.calendar_name is not None:
                calendar = self._calendars.get(trigger.calendar_name)
                if calendar is None:
                    raise ConfigurationError(
                        f"Calendar '{trigger.calendar_name}' not found",
                        {"trigger_name": trigger.name}
                    )

            if trigger.next_fire_time is None:
                trigger = replace(
                    trigger,
                    next_fire_time=compute_first_fire(trigger, calendar, self._clock())
                )

            if trigger.next_fire_time is None:
                raise ConfigurationError(
                    "Based on its schedule, the trigger will never fire",
                    {"trigger_name": trigger.name}
                )

            self._triggers[trigger.name] = _TriggerEntry(trigger)

        self._signal(
            SignalKind.SCHEDULING_CHANGE,
            trigger_name=trigger.name,
            next_fire_time=trigger.next_fire_time
        )
        return trigger

    def get_trigger(self, trigger_name: str) -> Optional[TriggerDefinition]:
        with self._lock:
            entry = self._triggers.get(trigger_name)
            return entry.trigger if entry else None

    def get_trigger_state(self, trigger_name: str) -> Optional[TriggerState]:
        with self._lock:
            entry = self._triggers.get(trigger_name)
            return entry.state if entry else None

    def triggers_for_job(self, job_name: str) -> List[TriggerDefinition]:
        with self._lock:
            return [e.trigger for e in self._triggers.values() if e.trigger.job_name == job_name]

    def trigger_names(self) -> List[str]:
        with self._lock:
            return sorted(self._triggers)

    def remove_trigger(self, trigger_name: str) -> bool:
        """
        Remove a trigger. A non-durable job left without triggers is
        removed too.
        """
        with self._lock:
            entry = self._triggers.pop(trigger_name, None)
            if entry is None:
                return False

            job_name = entry.trigger.job_name
            job = self._jobs.get(job_name)
            if job is not None and not job.durable and not any(
                e.trigger.job_name == job_name for e in self._triggers.values()
            ):
                del self._jobs[job_name]

        self._signal(SignalKind.SCHEDULING_CHANGE, trigger_name=trigger_name)
        return True

    # Firing

    def _apply_misfire(self, entry: _TriggerEntry, now: datetime) -> bool:
        trigger = entry.trigger
        if not is_misfired(trigger, now, self.misfire_threshold):
            return False

        policy = resolve_policy(trigger)
        if policy is MisfirePolicy.IGNORE_MISFIRE:
            return False

        calendar = self._calendars.get(trigger.calendar_name) if trigger.calendar_name else None
        updated = apply_misfire(trigger, calendar, now)
        entry.trigger = updated

        self.logger.warning(
            "Trigger misfired",
            trigger_name=trigger.name,
            policy=policy.value,
            missed_fire_time=trigger.next_fire_time,
            next_fire_time=updated.next_fire_time
        )
        self._signal(SignalKind.TRIGGER_MISFIRED, trigger_name=trigger.name, policy=policy.value)

        if updated.next_fire_time is None:
            entry.state = TriggerState.COMPLETE
            self._signal(SignalKind.TRIGGER_FINALIZED, trigger_name=trigger.name)

        return True

    def acquire_next_triggers(
        self,
        no_later_than: datetime,
        max_count: int,
        time_window: timedelta
    ) -> List[TriggerDefinition]:
        """
        Acquire the earliest waiting triggers due by ``no_later_than``.

        Misfired triggers are rewritten by their policy first. Once one
        trigger is acquired, later ones are taken only if they fall within
        ``time_window`` of it, up to ``max_count`` triggers.

        Returns:
            Acquired triggers in fire order
        """
        acquired: List[TriggerDefinition] = []

        with self._lock:
            now = self._clock()
            batch_end = no_later_than

            for entry in self._ordered_waiting():
                misfired = self._apply_misfire(entry, now)
                trigger = entry.trigger

                if trigger.next_fire_time is None:
                    continue

                if trigger.next_fire_time > batch_end:
                    if misfired:
                        continue
                    break

                if trigger.calendar_name and trigger.calendar_name not in self._calendars:
                    continue

                entry.state = TriggerState.ACQUIRED
                acquired.append(trigger)

                if len(acquired) == 1:
                    batch_end = max(trigger.next_fire_time, now) + time_window

                if len(acquired) >= max_count:
                    break

        acquired.sort(key=lambda t: (t.next_fire_time, -t.priority, t.name))
        return acquired

    def _ordered_waiting(self) -> List[_TriggerEntry]:
        entries = [
            e for e in self._triggers.values()
            if e.state is TriggerState.WAITING and e.trigger.next_fire_time is not None
        ]
        entries.sort(key=lambda e: (e.trigger.next_fire_time, -e.trigger.priority, e.trigger.name))
        return entries

    def release_acquired_trigger(self, trigger_name: str) -> None:
        with self._lock:
            entry = self._triggers.get(trigger_name)
            if entry is not None and entry.state is TriggerState.ACQUIRED:
                entry.state = TriggerState.WAITING

    def triggers_fired(self, triggers: List[TriggerDefinition]) -> List[TriggerFiredBundle]:
        """
        Advance acquired triggers past their current firing.

        Triggers no longer acquired (removed or released meanwhile) are
        skipped.

        Returns:
            One bundle per trigger that fires
        """
        bundles: List[TriggerFiredBundle] = []

        with self._lock:
            now = self._clock()

            for acquired in triggers:
                entry = self._triggers.get(acquired.name)
                if entry is None or entry.state is not TriggerState.ACQUIRED:
                    continue

                job = self._jobs.get(entry.trigger.job_name)
                if job is None:
                    continue

                calendar = None
                if entry.trigger.calendar_name is not None:
                    calendar = self._calendars.get(entry.trigger.calendar_name)
                    if calendar is None:
                        continue

                before = entry.trigger
                after = triggered(before, calendar, now)
                entry.trigger = after
                entry.state = (
                    TriggerState.WAITING if after.next_fire_time is not None
                    else TriggerState.COMPLETE
                )

                bundles.append(TriggerFiredBundle(
                    job=job,
                    trigger=after,
                    calendar=calendar,
                    fire_time=now,
                    scheduled_fire_time=before.next_fire_time,
                    previous_fire_time=before.previous_fire_time,
                    next_fire_time=after.next_fire_time,
                ))

        return bundles

    def triggered_job_complete(
        self,
        trigger: TriggerDefinition,
        job: JobDetail,
        instruction: CompletedExecutionInstruction
    ) -> None:
        """Apply the run shell's completion instruction."""
        if instruction is CompletedExecutionInstruction.DELETE_TRIGGER:
            with self._lock:
                entry = self._triggers.get(trigger.name)
                # Rescheduled while the job ran: keep it
                if (
                    trigger.next_fire_time is None
                    and entry is not None
                    and entry.trigger.next_fire_time is not None
                ):
                    return
            if self.remove_trigger(trigger.name):
                self._signal(SignalKind.TRIGGER_FINALIZED, trigger_name=trigger.name)

        elif instruction is CompletedExecutionInstruction.SET_ALL_JOB_TRIGGERS_COMPLETE:
            for t in self.triggers_for_job(job.name):
                self.remove_trigger(t.name)
            self._signal(SignalKind.TRIGGER_FINALIZED, job_name=job.name)
