"""
Tickwork - Recurring-job trigger engine.

Computes when scheduled work fires, recovers from missed firings and
bootstraps the services a scheduler runs on.
"""

from tickwork.__version__ import __version__, __title__, __description__
from tickwork.scheduler import (
    SchedulerBootstrap,
    SchedulerCore,
    SchedulerResources,
    TriggerDefinition,
    JobDetail,
    JobContext,
    JobExecutionSignal,
    MisfirePolicy,
)

__all__ = [
    "__version__",
    "__title__",
    "__description__",
    "SchedulerBootstrap",
    "SchedulerCore",
    "SchedulerResources",
    "TriggerDefinition",
    "JobDetail",
    "JobContext",
    "JobExecutionSignal",
    "MisfirePolicy",
]
