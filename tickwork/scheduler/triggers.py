"""
Trigger Definitions - Describe when jobs should run.

Provides:
- TriggerDefinition, a frozen value describing a start time, an optional
  end time and a fixed repeat interval with a bounded or unbounded count
- MisfirePolicy, the recovery instruction applied to missed firings

Fire-time arithmetic lives in ``tickwork.scheduler.clock`` and misfire
handling in ``tickwork.scheduler.misfire``; both take and return
TriggerDefinition values and never mutate them.
"""

from typing import Any, Dict, Mapping, Optional
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from tickwork.core.exceptions import ConfigurationError, MisfirePolicyError


REPEAT_INDEFINITELY = -1
"""Repeat count meaning "repeat until the end time, if any"."""

DEFAULT_PRIORITY = 5


class MisfirePolicy(str, Enum):
    """What to do with a trigger whose fire time elapsed unserved."""
    SMART_POLICY = "smart_policy"
    FIRE_NOW = "fire_now"
    RESCHEDULE_NEXT_WITH_EXISTING_COUNT = "reschedule_next_with_existing_count"
    RESCHEDULE_NEXT_WITH_REMAINING_COUNT = "reschedule_next_with_remaining_count"
    RESCHEDULE_NOW_WITH_EXISTING_REPEAT_COUNT = "reschedule_now_with_existing_repeat_count"
    RESCHEDULE_NOW_WITH_REMAINING_REPEAT_COUNT = "reschedule_now_with_remaining_repeat_count"
    IGNORE_MISFIRE = "ignore_misfire"

    @classmethod
    def parse(cls, value: Any) -> "MisfirePolicy":
        """
        Coerce a member, value or name into a policy.

        Raises:
            MisfirePolicyError: If the value names no policy
        """
        if isinstance(value, cls):
            return value

        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_")
            for member in cls:
                if member.value == normalized:
                    return member

        raise MisfirePolicyError(value)


@dataclass(frozen=True)
class TriggerDefinition:
    """
    Repeating-interval trigger.

    Fires at ``start_time`` and then ``repeat_count`` more times, every
    ``repeat_interval``, never at or after ``end_time``.

    Example:
        >>> # Five firings, one minute apart
        >>> trigger = TriggerDefinition.repeating(
        ...     "report-trigger", "report", timedelta(minutes=1), repeat_count=4
        ... )
    """

    name: str
    """Unique trigger name"""

    job_name: str
    """Name of the job this trigger fires"""

    start_time: datetime
    """First fire time (timezone-aware)"""

    end_time: Optional[datetime] = None
    """Exclusive upper bound for fire times"""

    repeat_count: int = 0
    """Firings after the first; REPEAT_INDEFINITELY for no bound"""

    repeat_interval: timedelta = timedelta(0)
    """Time between firings"""

    times_triggered: int = 0
    """Number of times already fired"""

    next_fire_time: Optional[datetime] = None
    """Next scheduled fire time"""

    previous_fire_time: Optional[datetime] = None
    """Last fire time"""

    misfire_policy: MisfirePolicy = MisfirePolicy.SMART_POLICY
    """Recovery instruction for missed firings"""

    completed: bool = False
    """Completed triggers never fire again"""

    calendar_name: Optional[str] = None
    """Name of the calendar filtering fire times"""

    job_data: Mapping[str, Any] = field(default_factory=dict, hash=False)
    """Trigger-level job data; overrides job-level data"""

    priority: int = DEFAULT_PRIORITY
    """Breaks ties between triggers due at the same instant"""

    description: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "misfire_policy", MisfirePolicy.parse(self.misfire_policy))
        object.__setattr__(self, "job_data", dict(self.job_data))
        self.validate()

    @classmethod
    def repeating(
        cls,
        name: str,
        job_name: str,
        interval: timedelta,
        repeat_count: int = REPEAT_INDEFINITELY,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        **kwargs
    ) -> "TriggerDefinition":
        """
        Create a trigger repeating every ``interval``.

        Args:
            name: Trigger name
            job_name: Job to fire
            interval: Time between firings
            repeat_count: Firings after the first (default: indefinitely)
            start_time: First fire time (default: now)
            end_time: Optional end time
            **kwargs: Other TriggerDefinition fields
        """
        return cls(
            name=name,
            job_name=job_name,
            start_time=start_time or datetime.now(timezone.utc),
            end_time=end_time,
            repeat_count=repeat_count,
            repeat_interval=interval,
            **kwargs
        )

    @classmethod
    def one_shot(
        cls,
        name: str,
        job_name: str,
        run_date: Optional[datetime] = None,
        **kwargs
    ) -> "TriggerDefinition":
        """Create a trigger firing exactly once at ``run_date`` (default: now)."""
        return cls(
            name=name,
            job_name=job_name,
            start_time=run_date or datetime.now(timezone.utc),
            repeat_count=0,
            **kwargs
        )

    @property
    def is_indefinite(self) -> bool:
        return self.repeat_count == REPEAT_INDEFINITELY

    @property
    def may_fire_again(self) -> bool:
        return self.next_fire_time is not None

    def validate(self) -> None:
        """
        Check the definition's invariants.

        Raises:
            ConfigurationError: If the definition is invalid
        """
        context = {"trigger_name": self.name}

        if not self.name or not self.name.strip():
            raise ConfigurationError("Trigger name cannot be empty", context)

        if not self.job_name or not self.job_name.strip():
            raise ConfigurationError("Trigger job name cannot be empty", context)

        for label, value in (
            ("start_time", self.start_time),
            ("end_time", self.end_time),
            ("next_fire_time", self.next_fire_time),
            ("previous_fire_time", self.previous_fire_time),
        ):
            if value is not None and value.tzinfo is None:
                raise ConfigurationError(f"{label} must be timezone-aware", context)

        if self.start_time is None:
            raise ConfigurationError("Start time cannot be None", context)

        if self.end_time is not None and self.end_time < self.start_time:
            raise ConfigurationError("End time cannot be before start time", context)

        if self.repeat_count < 0 and self.repeat_count != REPEAT_INDEFINITELY:
            raise ConfigurationError(
                "Repeat count must be >= 0, use REPEAT_INDEFINITELY for infinite",
                {**context, "repeat_count": self.repeat_count}
            )

        if self.repeat_interval < timedelta(0):
            raise ConfigurationError("Repeat interval must be >= 0", context)

        if self.repeat_count != 0 and self.repeat_interval < timedelta(milliseconds=1):
            raise ConfigurationError(
                "Repeat interval cannot be zero when the trigger repeats",
                {**context, "repeat_count": self.repeat_count}
            )

        if self.times_triggered < 0:
            raise ConfigurationError("Times triggered cannot be negative", context)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert trigger to dictionary.

        Returns:
            Trigger data as dict
        """
        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "name": self.name,
            "job_name": self.job_name,
            "start_time": iso(self.start_time),
            "end_time": iso(self.end_time),
            "repeat_count": self.repeat_count,
            "repeat_interval_ms": int(self.repeat_interval / timedelta(milliseconds=1)),
            "times_triggered": self.times_triggered,
            "next_fire_time": iso(self.next_fire_time),
            "previous_fire_time": iso(self.previous_fire_time),
            "misfire_policy": self.misfire_policy.value,
            "completed": self.completed,
            "calendar_name": self.calendar_name,
            "priority": self.priority,
        }

    def __repr__(self) -> str:
        return (
            f"TriggerDefinition(name={self.name!r}, job_name={self.job_name!r}, "
            f"repeat_count={self.repeat_count}, repeat_interval={self.repeat_interval})"
        )
