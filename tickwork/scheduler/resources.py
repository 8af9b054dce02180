"""
Scheduler Resources - Services a scheduler depends on.

The bundle is filled in before bootstrap and becomes read-only once the
scheduler starts.
"""

from typing import Any, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import timedelta

from tickwork.core.exceptions import ConfigurationError, SchedulerStateError
from tickwork.core.observability import MetricsCollector
from tickwork.scheduler.interfaces import RunShellFactory, SchedulerPlugin, TriggerStore, WorkerPool


DEFAULT_THREAD_NAME = "Tickwork Scheduler Thread"
DEFAULT_WORKER_THREAD_PREFIX = "Tickwork_Worker"


@dataclass
class SchedulerResources:
    """
    Dependent services and tuning of one scheduler.

    Example:
        >>> resources = SchedulerResources(
        ...     worker_pool=ThreadWorkerPool(4),
        ...     store=InMemoryTriggerStore(),
        ...     run_shell_factory=StandardRunShellFactory(),
        ... )
        >>> resources.add_plugin(ShutdownHookPlugin())
    """

    worker_pool: Optional[WorkerPool] = None
    """Pool running job shells"""

    store: Optional[TriggerStore] = None
    """Holder of jobs, triggers and calendars"""

    run_shell_factory: Optional[RunShellFactory] = None
    """Builds the shell running each firing"""

    thread_name: str = DEFAULT_THREAD_NAME
    """Name of the control loop thread"""

    worker_thread_prefix: str = DEFAULT_WORKER_THREAD_PREFIX
    """Prefix of worker thread names"""

    make_daemon: bool = False
    """Run the control loop in a daemon thread"""

    batch_time_window: timedelta = timedelta(0)
    """Lookahead for acquiring triggers together with the earliest one"""

    max_batch_size: int = 1
    """Max triggers acquired per loop iteration"""

    idle_wait: timedelta = timedelta(seconds=30)
    """How far ahead the loop looks when nothing is due"""

    interrupt_jobs_on_shutdown: bool = True
    """Interrupt running jobs on an immediate shutdown"""

    interrupt_jobs_on_shutdown_with_wait: bool = True
    """Interrupt running jobs on a draining shutdown"""

    metrics: Optional[MetricsCollector] = None
    """Metrics collector, None disables metrics"""

    pool_size: int = 0
    """Worker count, recorded while bootstrapping"""

    _plugins: List[Tuple[str, SchedulerPlugin]] = field(default_factory=list, init=False, repr=False)
    _frozen: bool = field(default=False, init=False, repr=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("_frozen", False):
            raise SchedulerStateError(
                "Scheduler resources are read-only once the scheduler has started",
                {"field": name}
            )
        super().__setattr__(name, value)

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def plugins(self) -> Tuple[Tuple[str, SchedulerPlugin], ...]:
        """Registered plugins as ``(name, plugin)`` pairs, in order."""
        return tuple(self._plugins)

    def add_plugin(self, plugin: SchedulerPlugin, name: Optional[str] = None) -> None:
        """
        Append a plugin.

        Args:
            plugin: Plugin instance
            name: Registration name (default: class name, suffixed if taken)

        Raises:
            SchedulerStateError: If the scheduler has started
        """
        if self._frozen:
            raise SchedulerStateError(
                "Plugins cannot be added once the scheduler has started",
                {"plugin": name or type(plugin).__name__}
            )

        if not callable(getattr(plugin, "initialize", None)):
            raise ConfigurationError(
                "Plugin must define initialize(name, scheduler)",
                {"plugin": type(plugin).__name__}
            )

        if name is None:
            name = type(plugin).__name__
            taken = {n for n, _ in self._plugins}
            base, i = name, 1
            while name in taken:
                i += 1
                name = f"{base}-{i}"

        self._plugins.append((name, plugin))

    def validate(self) -> None:
        """
        Check the bundle is complete. No side effects.

        Raises:
            ConfigurationError: On the first invalid field
        """
        if not self.thread_name or not self.thread_name.strip():
            raise ConfigurationError("Thread name cannot be empty")

        for attr in ("worker_pool", "store", "run_shell_factory"):
            if getattr(self, attr) is None:
                raise ConfigurationError(f"Scheduler resource '{attr}' is required", {"field": attr})

        if self.batch_time_window < timedelta(0):
            raise ConfigurationError(
                "Batch time window must be >= 0",
                {"batch_time_window": str(self.batch_time_window)}
            )

        if self.max_batch_size < 1:
            raise ConfigurationError(
                "Max batch size must be >= 1",
                {"max_batch_size": self.max_batch_size}
            )

        if self.idle_wait <= timedelta(0):
            raise ConfigurationError("Idle wait must be > 0", {"idle_wait": str(self.idle_wait)})

    def freeze(self) -> None:
        """Make the bundle read-only."""
        super().__setattr__("_frozen", True)
