"""
Scheduler Bootstrap - Ordered start-up with rollback.

Provides:
- Resource validation
- Worker pool, core, store and plugin initialization in a fixed order
- Rollback of completed steps when a later one fails
- Default resources assembled from SchedulerSettings
"""

from typing import Optional
from datetime import timedelta
import threading

from tickwork.core.config import SchedulerSettings, get_settings
from tickwork.core.exceptions import BootstrapError, ConfigurationError
from tickwork.core.observability import MetricsCollector, StructuredLogger, configure_logging
from tickwork.scheduler.engine import SchedulerCore
from tickwork.scheduler.plugins import ShutdownHookPlugin
from tickwork.scheduler.pool import ThreadWorkerPool
from tickwork.scheduler.resources import SchedulerResources
from tickwork.scheduler.run_shell import StandardRunShellFactory
from tickwork.scheduler.store import InMemoryTriggerStore


STEP_VALIDATE = "validate"
STEP_START_POOL = "start_worker_pool"
STEP_CONSTRUCT_CORE = "construct_core"
STEP_INITIALIZE_STORE = "initialize_store"
STEP_INITIALIZE_PLUGINS = "initialize_plugins"
STEP_START = "start"


class SchedulerBootstrap:
    """
    Builds a running scheduler from its resources.

    ``build`` either returns a started ``SchedulerCore`` or raises
    ``BootstrapError`` after undoing whatever it had started. Once a
    build succeeded, later calls return the same core.

    Example:
        >>> bootstrap = SchedulerBootstrap.from_settings()
        >>> core = bootstrap.build()
        >>> core is bootstrap.build()
        True
    """

    def __init__(
        self,
        resources: Optional[SchedulerResources] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        """
        Initialize bootstrap.

        Args:
            resources: Resources used when ``build`` is called without any
            metrics: Collector for bootstrap outcomes (default: the resources' one)
        """
        self.resources = resources
        self.metrics = metrics
        self._core: Optional[SchedulerCore] = None
        self._lock = threading.Lock()
        self.logger = StructuredLogger("tickwork.bootstrap")

    @classmethod
    def from_settings(cls, settings: Optional[SchedulerSettings] = None) -> "SchedulerBootstrap":
        """
        Bootstrap wired with the default collaborators.

        Args:
            settings: Scheduler settings (default: ``get_settings()``)

        Returns:
            Bootstrap ready to ``build``
        """
        settings = settings or get_settings()
        configure_logging(settings.log_level)
        metrics = MetricsCollector()

        resources = SchedulerResources(
            worker_pool=ThreadWorkerPool(settings.pool_size, settings.worker_thread_prefix),
            store=InMemoryTriggerStore(
                misfire_threshold=timedelta(milliseconds=settings.misfire_threshold_ms)
            ),
            run_shell_factory=StandardRunShellFactory(),
            thread_name=settings.thread_name,
            worker_thread_prefix=settings.worker_thread_prefix,
            make_daemon=settings.make_daemon,
            batch_time_window=timedelta(milliseconds=settings.batch_time_window_ms),
            max_batch_size=settings.max_batch_size,
            idle_wait=timedelta(milliseconds=settings.idle_wait_ms),
            interrupt_jobs_on_shutdown=settings.interrupt_jobs_on_shutdown,
            interrupt_jobs_on_shutdown_with_wait=settings.interrupt_jobs_on_shutdown_with_wait,
            metrics=metrics,
        )

        if settings.install_shutdown_hook:
            resources.add_plugin(
                ShutdownHookPlugin(clean_shutdown=settings.shutdown_hook_clean),
                name="shutdown_hook"
            )

        return cls(resources, metrics=metrics)

    @property
    def core(self) -> Optional[SchedulerCore]:
        """Core of the last successful build."""
        return self._core

    def build(self, resources: Optional[SchedulerResources] = None) -> SchedulerCore:
        """
        Start a scheduler.

        Args:
            resources: Resources to build from (default: the bootstrap's)

        Returns:
            Running scheduler core

        Raises:
            BootstrapError: On any failure, after rollback
        """
        with self._lock:
            if self._core is not None:
                return self._core

            resources = resources or self.resources
            if resources is None:
                raise BootstrapError(STEP_VALIDATE, "No scheduler resources given")

            metrics = self.metrics or resources.metrics
            step = STEP_VALIDATE
            pool_started = False
            core: Optional[SchedulerCore] = None

            try:
                try:
                    resources.validate()
                except ConfigurationError as e:
                    raise BootstrapError(STEP_VALIDATE, e.message, cause=e) from e

                step = STEP_START_POOL
                pool = resources.worker_pool
                pool.set_thread_name_prefix(resources.worker_thread_prefix)
                pool.initialize()
                pool_started = True
                resources.pool_size = pool.pool_size()

                step = STEP_CONSTRUCT_CORE
                core = SchedulerCore(resources)

                step = STEP_INITIALIZE_STORE
                resources.store.initialize(core.signaler)
                resources.store.set_concurrency_hint(resources.pool_size)
                resources.run_shell_factory.initialize(core)

                step = STEP_INITIALIZE_PLUGINS
                for name, plugin in resources.plugins:
                    core.initialize_plugin(name, plugin)
                    self.logger.info("Plugin initialized", plugin=name)

                step = STEP_START
                core.start()

            except Exception as e:
                self._rollback(step, core, pool_started, resources)
                if metrics is not None:
                    metrics.record_bootstrap("failed")
                if isinstance(e, BootstrapError):
                    raise
                raise BootstrapError(step, str(e), cause=e) from e

            self._core = core
            self.resources = resources
            if metrics is not None:
                metrics.record_bootstrap("success")

            self.logger.info(
                "Scheduler bootstrapped",
                thread_name=resources.thread_name,
                pool_size=resources.pool_size,
                plugins=[name for name, _ in resources.plugins]
            )
            return core

    def _rollback(
        self,
        step: str,
        core: Optional[SchedulerCore],
        pool_started: bool,
        resources: SchedulerResources
    ) -> None:
        """Undo completed steps; errors are logged so the original failure surfaces."""
        if core is None and not pool_started:
            return

        self.logger.warning(
            "Rolling back scheduler bootstrap",
            failed_step=step,
            core_constructed=core is not None
        )

        try:
            if core is not None:
                core.shutdown(False)
            else:
                resources.worker_pool.shutdown(False)
        except Exception as e:
            self.logger.error(
                "Bootstrap rollback failed",
                failed_step=step,
                error=str(e),
                error_type=type(e).__name__
            )
