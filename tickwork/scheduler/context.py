"""Per-execution job context."""

from typing import Any, Dict, Iterator, Mapping, Optional
import threading

from tickwork.core.exceptions import RequiredParameterError


KEY_JOB_NAME = "KEY_JOB_NAME"
KEY_TRIGGER_NAME = "KEY_TRIGGER_NAME"
KEY_TRIGGER_CRON_EXPRESSION = "KEY_TRIGGER_CRON_EXPRESSION"

RESERVED_KEYS = frozenset({KEY_JOB_NAME, KEY_TRIGGER_NAME, KEY_TRIGGER_CRON_EXPRESSION})


class JobContext:
    """
    Key/value bag handed to a job body for one execution.

    Built fresh for every execution and discarded afterwards. Trigger
    data overrides job data; the reserved bookkeeping keys are written
    last and always win over user data with the same key.
    """

    def __init__(
        self,
        data: Optional[Mapping[str, Any]] = None,
        interrupt_event: Optional[threading.Event] = None
    ):
        self._data: Dict[str, Any] = dict(data or {})
        self._interrupt = interrupt_event or threading.Event()

    @classmethod
    def merge(
        cls,
        job_data: Optional[Mapping[str, Any]],
        trigger_data: Optional[Mapping[str, Any]],
        job_name: Optional[str] = None,
        trigger_name: Optional[str] = None,
        cron_expression: Optional[str] = None,
        interrupt_event: Optional[threading.Event] = None
    ) -> "JobContext":
        """
        Build a context from job- and trigger-level data.

        Args:
            job_data: Job-level entries
            trigger_data: Trigger-level entries, win on collision
            job_name: Injected under KEY_JOB_NAME
            trigger_name: Injected under KEY_TRIGGER_NAME
            cron_expression: Injected under KEY_TRIGGER_CRON_EXPRESSION when given
            interrupt_event: Event set when the execution is asked to stop

        Returns:
            New JobContext
        """
        data: Dict[str, Any] = {}
        data.update(job_data or {})
        data.update(trigger_data or {})

        if job_name is not None:
            data[KEY_JOB_NAME] = job_name
        if trigger_name is not None:
            data[KEY_TRIGGER_NAME] = trigger_name
        if cron_expression is not None:
            data[KEY_TRIGGER_CRON_EXPRESSION] = cron_expression

        return cls(data, interrupt_event)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Value for ``key``, or ``default`` when absent."""
        return self._data.get(key, default)

    def get_required(self, key: str) -> Any:
        """
        Value for a mandatory key.

        Raises:
            RequiredParameterError: If the key is absent or None
        """
        value = self._data.get(key)
        if value is None:
            raise RequiredParameterError(key)
        return value

    @property
    def interrupted(self) -> bool:
        """True once the scheduler asked this execution to stop."""
        return self._interrupt.is_set()

    def interrupt(self) -> None:
        self._interrupt.set()

    @property
    def job_name(self) -> Optional[str]:
        return self._data.get(KEY_JOB_NAME)

    @property
    def trigger_name(self) -> Optional[str]:
        return self._data.get(KEY_TRIGGER_NAME)

    @property
    def cron_expression(self) -> Optional[str]:
        return self._data.get(KEY_TRIGGER_CRON_EXPRESSION)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"JobContext(job_name={self.job_name!r}, trigger_name={self.trigger_name!r})"
