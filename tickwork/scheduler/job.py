"""
Job Definition - Scheduled job representation.

Defines:
- Job metadata and callable
- Job execution records
- The signal a job body returns to request rescheduling
"""

from typing import Dict, Any, Optional, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import threading


class JobStatus(str, Enum):
    """Job execution status."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class JobExecutionSignal:
    """
    Rescheduling request returned by a job body.

    Not an error. The flags are independent; ``refire_immediately``
    takes precedence over both unschedule flags when set.
    """

    refire_immediately: bool = False
    """Run the job again right away with the same trigger"""

    unschedule_firing_trigger: bool = False
    """Remove the trigger that fired this execution"""

    unschedule_all_triggers: bool = False
    """Remove every trigger of the job"""


@dataclass
class JobExecution:
    """Single job execution record."""

    execution_id: str
    """Unique execution ID"""

    job_name: str
    """Job name"""

    trigger_name: str
    """Trigger that caused the execution"""

    status: JobStatus
    """Execution status"""

    started_at: datetime
    """Start time"""

    scheduled_fire_time: Optional[datetime] = None
    """Fire time the execution was scheduled for"""

    completed_at: Optional[datetime] = None
    """Completion time"""

    result: Optional[Any] = None
    """Value returned by the job body"""

    error: Optional[str] = None
    """Error message if failed"""

    duration: Optional[float] = None
    """Execution duration in seconds"""

    refire_count: int = 0
    """Number of immediate refires before this execution"""


@dataclass
class JobDetail:
    """
    Scheduled job definition.

    Represents a unit of work that triggers fire. The callable receives
    a single JobContext argument.
    """

    name: str = ""
    """Unique job name"""

    func: Optional[Callable] = None
    """Function to execute"""

    job_data: Dict[str, Any] = field(default_factory=dict)
    """Job-level data, overridden by trigger-level data"""

    description: Optional[str] = None
    """Human-readable description"""

    durable: bool = False
    """Keep the job stored after its last trigger is removed"""

    max_history: int = 100
    """Execution records kept"""

    executions: list[JobExecution] = field(default_factory=list)
    """Execution history"""

    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def __post_init__(self):
        """Initialize job."""
        if not self.name and self.func:
            self.name = self.func.__name__

    def add_execution(self, execution: JobExecution):
        """
        Add execution to history.

        Args:
            execution: Job execution record
        """
        with self._lock:
            self.executions.append(execution)
            del self.executions[:-self.max_history]

    def get_last_execution(self) -> Optional[JobExecution]:
        """
        Get last execution record.

        Returns:
            Last execution or None
        """
        return self.executions[-1] if self.executions else None

    def get_success_rate(self) -> float:
        """
        Calculate job success rate.

        Returns:
            Success rate (0.0 to 1.0)
        """
        if not self.executions:
            return 0.0

        completed = sum(
            1 for e in self.executions
            if e.status == JobStatus.COMPLETED
        )

        return completed / len(self.executions)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert job to dictionary.

        Returns:
            Job data as dict
        """
        last = self.get_last_execution()
        return {
            "name": self.name,
            "description": self.description,
            "durable": self.durable,
            "last_run_time": last.started_at.isoformat() if last else None,
            "executions_count": len(self.executions),
            "success_rate": self.get_success_rate(),
            "job_data": dict(self.job_data)
        }
