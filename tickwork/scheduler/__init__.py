"""
Tickwork Scheduler - Trigger computation and the running scheduler.

Provides:
- Repeating and one-shot trigger definitions
- Fire time computation with calendar exclusions
- Misfire detection and recovery policies
- Ordered, rollback-safe scheduler bootstrap
- In-memory store and thread worker pool
"""

from tickwork.scheduler.triggers import (
    TriggerDefinition,
    MisfirePolicy,
    REPEAT_INDEFINITELY,
)
from tickwork.scheduler.calendars import (
    CalendarFilter,
    BaseCalendar,
    HolidayCalendar,
    WeeklyCalendar,
    DailyCalendar,
    PredicateCalendar,
)
from tickwork.scheduler.clock import (
    fire_time_after,
    compute_first_fire,
    compute_next_fire_after,
    compute_final_fire,
    compute_fire_times,
    triggered,
)
from tickwork.scheduler.misfire import apply_misfire, is_misfired, resolve_policy
from tickwork.scheduler.context import (
    JobContext,
    KEY_JOB_NAME,
    KEY_TRIGGER_NAME,
    KEY_TRIGGER_CRON_EXPRESSION,
)
from tickwork.scheduler.job import JobDetail, JobExecution, JobExecutionSignal, JobStatus
from tickwork.scheduler.interfaces import (
    CompletedExecutionInstruction,
    SignalKind,
    TriggerFiredBundle,
)
from tickwork.scheduler.resources import SchedulerResources
from tickwork.scheduler.pool import ThreadWorkerPool
from tickwork.scheduler.store import InMemoryTriggerStore
from tickwork.scheduler.run_shell import JobRunShell, StandardRunShellFactory
from tickwork.scheduler.plugins import ShutdownHookPlugin
from tickwork.scheduler.engine import SchedulerCore
from tickwork.scheduler.bootstrap import SchedulerBootstrap


__all__ = [
    # Triggers
    "TriggerDefinition",
    "MisfirePolicy",
    "REPEAT_INDEFINITELY",

    # Calendars
    "CalendarFilter",
    "BaseCalendar",
    "HolidayCalendar",
    "WeeklyCalendar",
    "DailyCalendar",
    "PredicateCalendar",

    # Clock
    "fire_time_after",
    "compute_first_fire",
    "compute_next_fire_after",
    "compute_final_fire",
    "compute_fire_times",
    "triggered",

    # Misfires
    "apply_misfire",
    "is_misfired",
    "resolve_policy",

    # Jobs
    "JobContext",
    "KEY_JOB_NAME",
    "KEY_TRIGGER_NAME",
    "KEY_TRIGGER_CRON_EXPRESSION",
    "JobDetail",
    "JobExecution",
    "JobExecutionSignal",
    "JobStatus",

    # Scheduler
    "CompletedExecutionInstruction",
    "SignalKind",
    "TriggerFiredBundle",
    "SchedulerResources",
    "ThreadWorkerPool",
    "InMemoryTriggerStore",
    "JobRunShell",
    "StandardRunShellFactory",
    "ShutdownHookPlugin",
    "SchedulerCore",
    "SchedulerBootstrap",
]
