"""
Collaborator contracts for the scheduler core.

The core only talks to its worker pool, trigger store, run-shell factory
and plugins through these protocols; the default implementations live in
``pool``, ``store``, ``run_shell`` and ``plugins``.
"""

from typing import Any, Callable, List, Optional, Protocol, TYPE_CHECKING, runtime_checkable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from tickwork.scheduler.calendars import CalendarFilter
from tickwork.scheduler.job import JobDetail
from tickwork.scheduler.triggers import TriggerDefinition

if TYPE_CHECKING:
    from tickwork.scheduler.engine import SchedulerCore
    from tickwork.scheduler.run_shell import JobRunShell


class SignalKind(str, Enum):
    """State changes a store reports to the core."""
    SCHEDULING_CHANGE = "scheduling_change"
    TRIGGER_MISFIRED = "trigger_misfired"
    TRIGGER_FINALIZED = "trigger_finalized"
    JOB_DELETED = "job_deleted"


class CompletedExecutionInstruction(str, Enum):
    """What the store does with a trigger after its job finished."""
    NOOP = "noop"
    RE_EXECUTE_JOB = "re_execute_job"
    DELETE_TRIGGER = "delete_trigger"
    SET_ALL_JOB_TRIGGERS_COMPLETE = "set_all_job_triggers_complete"


@dataclass(frozen=True)
class TriggerFiredBundle:
    """Everything a run shell needs for one firing."""

    job: JobDetail
    trigger: TriggerDefinition
    """Trigger already advanced past this firing"""

    calendar: Optional[CalendarFilter]
    fire_time: datetime
    scheduled_fire_time: Optional[datetime]
    previous_fire_time: Optional[datetime]
    next_fire_time: Optional[datetime]
    """Trigger's next fire time after this firing"""


@runtime_checkable
class Signaler(Protocol):
    """One-way channel from the store to the core."""

    def notify(self, kind: SignalKind, **details: Any) -> None:
        ...


@runtime_checkable
class WorkerPool(Protocol):
    """Fixed-size pool running job shells."""

    def initialize(self) -> None:
        ...

    def shutdown(self, wait_for_completion: bool) -> None:
        ...

    def run(self, task: Callable[[], Any]) -> bool:
        ...

    def pool_size(self) -> int:
        ...

    def set_thread_name_prefix(self, name: str) -> None:
        ...

    def block_for_available_threads(self, timeout: Optional[float] = None) -> int:
        ...


@runtime_checkable
class TriggerStore(Protocol):
    """Holds jobs and triggers and owns every trigger's volatile state."""

    def initialize(self, signaler: Signaler) -> None:
        ...

    def set_concurrency_hint(self, n: int) -> None:
        ...

    def store_job(self, job: JobDetail, replace_existing: bool = False) -> None:
        ...

    def store_trigger(
        self,
        trigger: TriggerDefinition,
        replace_existing: bool = False
    ) -> TriggerDefinition:
        ...

    def store_calendar(
        self,
        name: str,
        calendar: CalendarFilter,
        replace_existing: bool = False,
        update_triggers: bool = True
    ) -> None:
        ...

    def remove_trigger(self, trigger_name: str) -> bool:
        ...

    def remove_job(self, job_name: str) -> bool:
        ...

    def get_job(self, job_name: str) -> Optional[JobDetail]:
        ...

    def get_trigger(self, trigger_name: str) -> Optional[TriggerDefinition]:
        ...

    def triggers_for_job(self, job_name: str) -> List[TriggerDefinition]:
        ...

    def acquire_next_triggers(
        self,
        no_later_than: datetime,
        max_count: int,
        time_window: timedelta
    ) -> List[TriggerDefinition]:
        ...

    def release_acquired_trigger(self, trigger_name: str) -> None:
        ...

    def triggers_fired(self, triggers: List[TriggerDefinition]) -> List[TriggerFiredBundle]:
        ...

    def triggered_job_complete(
        self,
        trigger: TriggerDefinition,
        job: JobDetail,
        instruction: CompletedExecutionInstruction
    ) -> None:
        ...

    def shutdown(self) -> None:
        ...


@runtime_checkable
class SchedulerPlugin(Protocol):
    """
    Extension initialized once, in registration order, after the core
    exists. ``start`` and ``shutdown`` hooks are optional.
    """

    def initialize(self, name: str, scheduler: "SchedulerCore") -> None:
        ...


@runtime_checkable
class RunShellFactory(Protocol):
    """Builds the shell that runs one firing on a worker."""

    def initialize(self, scheduler: "SchedulerCore") -> None:
        ...

    def create(self, bundle: TriggerFiredBundle) -> "JobRunShell":
        ...
