"""
Scheduler Core - The running scheduler handle.

Provides:
- Job, trigger and calendar registration
- The control loop thread acquiring due triggers and dispatching them
- Standby and shutdown
"""

from typing import Any, Dict, List, Mapping, Optional, Set, Tuple
from datetime import datetime, timedelta, timezone
import threading
import uuid

from tickwork.core.exceptions import (
    ConfigurationError,
    JobNotFoundError,
    SchedulerStateError,
    TriggerNotFoundError,
)
from tickwork.core.observability import StructuredLogger
from tickwork.scheduler.calendars import CalendarFilter
from tickwork.scheduler.interfaces import (
    CompletedExecutionInstruction,
    SchedulerPlugin,
    SignalKind,
    TriggerFiredBundle,
)
from tickwork.scheduler.job import JobDetail
from tickwork.scheduler.resources import SchedulerResources
from tickwork.scheduler.run_shell import JobRunShell
from tickwork.scheduler.triggers import TriggerDefinition


# Max seconds the loop blocks on the pool before re-checking for halt
_POOL_WAIT = 1.0
_DUE_TOLERANCE = timedelta(milliseconds=2)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _CoreSignaler:
    """Signaler handed to the store; forwards notifications to the core."""

    def __init__(self, core: "SchedulerCore"):
        self._core = core

    def notify(self, kind: SignalKind, **details: Any) -> None:
        self._core._on_signal(kind, details)


class SchedulerCore:
    """
    Running scheduler.

    Built by ``SchedulerBootstrap``; owns the control loop thread and
    talks to the store, pool and run-shell factory of its resources.

    Example:
        >>> core = SchedulerBootstrap.from_settings().build()
        >>> core.schedule_job(
        ...     JobDetail("cleanup", func=cleanup),
        ...     TriggerDefinition.repeating("every-minute", "cleanup", timedelta(minutes=1))
        ... )
        >>> core.shutdown(wait_for_jobs_to_complete=True)
    """

    def __init__(self, resources: SchedulerResources):
        """
        Initialize core.

        Args:
            resources: Validated resources; frozen when the core starts
        """
        self.resources = resources
        self.signaler = _CoreSignaler(self)
        self.logger = StructuredLogger("tickwork.scheduler")

        self._cond = threading.Condition()
        self._signaled = False
        self._signaled_time: Optional[datetime] = None
        self._paused = True
        self._halted = threading.Event()

        self._started = False
        self._shutdown = False
        self._shutdown_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

        self._shells: Set[JobRunShell] = set()
        self._shells_lock = threading.Lock()

        self._plugins: List[Tuple[str, SchedulerPlugin]] = []

    def initialize_plugin(self, name: str, plugin: SchedulerPlugin) -> None:
        """
        Initialize a plugin against this core.

        Only plugins initialized here are started and shut down with the core.
        """
        plugin.initialize(name, self)
        self._plugins.append((name, plugin))

    # State

    @property
    def is_started(self) -> bool:
        """True once ``start`` was called, even if now in standby."""
        return self._started

    @property
    def is_in_standby(self) -> bool:
        return self._paused

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    @property
    def running_job_count(self) -> int:
        with self._shells_lock:
            return len(self._shells)

    def _check_not_shutdown(self) -> None:
        if self._shutdown:
            raise SchedulerStateError("The scheduler has been shut down")

    # Lifecycle

    def start(self) -> None:
        """
        Start or resume firing triggers.

        The first call freezes the resources, starts plugins and launches
        the control thread.

        Raises:
            SchedulerStateError: If the scheduler was shut down
        """
        self._check_not_shutdown()

        if not self._started:
            self.resources.freeze()

            for name, plugin in self._plugins:
                start = getattr(plugin, "start", None)
                if callable(start):
                    start()
                    self.logger.debug("Plugin started", plugin=name)

            self._thread = threading.Thread(
                target=self._run,
                name=self.resources.thread_name,
                daemon=self.resources.make_daemon
            )
            self._started = True
            self._thread.start()

        with self._cond:
            self._paused = False
            self._signaled = True
            self._signaled_time = None
            self._cond.notify_all()

        self.logger.info(
            "Scheduler started",
            thread_name=self.resources.thread_name,
            pool_size=self.resources.pool_size
        )

    def standby(self) -> None:
        """Stop firing triggers without releasing resources."""
        with self._cond:
            self._paused = True
            self._signaled = True
            self._signaled_time = None
            self._cond.notify_all()

        self.logger.info("Scheduler paused")

    def shutdown(self, wait_for_jobs_to_complete: bool = False) -> None:
        """
        Halt the control loop and release pool, plugins and store.

        Idempotent. Errors from plugin or store shutdown are logged.

        Args:
            wait_for_jobs_to_complete: Drain running jobs before returning
        """
        with self._shutdown_lock:
            if self._shutdown:
                return
            self._shutdown = True

        self.logger.info(
            "Scheduler shutting down",
            wait_for_jobs_to_complete=wait_for_jobs_to_complete
        )

        with self._cond:
            self._paused = True
            self._halted.set()
            self._cond.notify_all()

        resources = self.resources
        interrupt = (
            resources.interrupt_jobs_on_shutdown_with_wait if wait_for_jobs_to_complete
            else resources.interrupt_jobs_on_shutdown
        )
        if interrupt:
            with self._shells_lock:
                shells = list(self._shells)
            for shell in shells:
                shell.interrupt()
            if shells:
                self.logger.info("Interrupted running jobs", count=len(shells))

        if resources.worker_pool is not None:
            resources.worker_pool.shutdown(wait_for_jobs_to_complete)

        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()

        for name, plugin in self._plugins:
            hook = getattr(plugin, "shutdown", None)
            if not callable(hook):
                continue
            try:
                hook()
            except Exception as e:
                self.logger.error("Plugin shutdown failed", plugin=name, error=str(e))

        if resources.store is not None:
            try:
                resources.store.shutdown()
            except Exception as e:
                self.logger.error("Store shutdown failed", error=str(e))

        self.logger.info("Scheduler shut down")

    # Registration

    def schedule_job(self, job: Optional[JobDetail], trigger: TriggerDefinition) -> datetime:
        """
        Store a job together with its first trigger.

        Args:
            job: New job, or None to schedule against an already stored job
            trigger: Trigger for the job

        Returns:
            First fire time of the trigger

        Raises:
            ConfigurationError: If the trigger names another job or never fires
            ObjectAlreadyExistsError: If the job or trigger exists
        """
        self._check_not_shutdown()
        store = self.resources.store

        if job is None:
            if store.get_job(trigger.job_name) is None:
                raise JobNotFoundError(trigger.job_name)
            stored = store.store_trigger(trigger)
        else:
            if trigger.job_name != job.name:
                raise ConfigurationError(
                    "Trigger does not reference the job being scheduled",
                    {"job_name": job.name, "trigger_job_name": trigger.job_name}
                )
            store.store_job(job)
            try:
                stored = store.store_trigger(trigger)
            except Exception:
                store.remove_job(job.name)
                raise

        self.logger.info(
            "Scheduled trigger",
            job_name=stored.job_name,
            trigger_name=stored.name,
            next_fire_time=stored.next_fire_time
        )
        return stored.next_fire_time

    def add_job(self, job: JobDetail, replace: bool = False) -> None:
        """
        Store a job without a trigger. Such a job must be durable.

        Raises:
            ConfigurationError: If the job is not durable
        """
        self._check_not_shutdown()

        if not job.durable:
            raise ConfigurationError(
                "Jobs added with no trigger must be durable",
                {"job_name": job.name}
            )

        self.resources.store.store_job(job, replace_existing=replace)
        self.logger.info("Added job", job_name=job.name)

    def unschedule_job(self, trigger_name: str) -> bool:
        """Remove a trigger; returns False if it was not stored."""
        self._check_not_shutdown()
        removed = self.resources.store.remove_trigger(trigger_name)
        if removed:
            self.logger.info("Unscheduled trigger", trigger_name=trigger_name)
        return removed

    def delete_job(self, job_name: str) -> bool:
        """Remove a job and its triggers; returns False if it was not stored."""
        self._check_not_shutdown()
        removed = self.resources.store.remove_job(job_name)
        if removed:
            self.logger.info("Deleted job", job_name=job_name)
        return removed

    def reschedule_job(self, trigger_name: str, new_trigger: TriggerDefinition) -> datetime:
        """
        Replace a stored trigger with a new one for the same job.

        Returns:
            First fire time of the new trigger

        Raises:
            TriggerNotFoundError: If no trigger is stored under ``trigger_name``
            ConfigurationError: If the new trigger fires another job
        """
        self._check_not_shutdown()
        store = self.resources.store

        old = store.get_trigger(trigger_name)
        if old is None:
            raise TriggerNotFoundError(trigger_name)

        if new_trigger.job_name != old.job_name:
            raise ConfigurationError(
                "Rescheduled trigger must fire the same job",
                {"job_name": old.job_name, "trigger_job_name": new_trigger.job_name}
            )

        # Store first so a non-durable job never loses its last trigger
        stored = store.store_trigger(new_trigger, replace_existing=new_trigger.name == trigger_name)
        if new_trigger.name != trigger_name:
            store.remove_trigger(trigger_name)

        self.logger.info(
            "Rescheduled trigger",
            trigger_name=trigger_name,
            new_trigger_name=stored.name,
            next_fire_time=stored.next_fire_time
        )
        return stored.next_fire_time

    def get_job(self, job_name: str) -> Optional[JobDetail]:
        return self.resources.store.get_job(job_name)

    def get_trigger(self, trigger_name: str) -> Optional[TriggerDefinition]:
        return self.resources.store.get_trigger(trigger_name)

    def get_triggers_of_job(self, job_name: str) -> List[TriggerDefinition]:
        return self.resources.store.triggers_for_job(job_name)

    def trigger_job(
        self,
        job_name: str,
        job_data: Optional[Mapping[str, Any]] = None
    ) -> TriggerDefinition:
        """
        Fire a stored job once, now.

        Args:
            job_name: Stored job
            job_data: Trigger-level data for this firing

        Returns:
            The one-shot trigger created for the firing

        Raises:
            JobNotFoundError: If the job is not stored
        """
        self._check_not_shutdown()
        store = self.resources.store

        if store.get_job(job_name) is None:
            raise JobNotFoundError(job_name)

        trigger = TriggerDefinition.one_shot(
            f"MT_{uuid.uuid4().hex}",
            job_name,
            run_date=_now(),
            job_data=dict(job_data or {})
        )
        return store.store_trigger(trigger)

    def add_calendar(
        self,
        name: str,
        calendar: CalendarFilter,
        replace: bool = False,
        update_triggers: bool = True
    ) -> None:
        self._check_not_shutdown()
        self.resources.store.store_calendar(
            name,
            calendar,
            replace_existing=replace,
            update_triggers=update_triggers
        )
        self.logger.info("Added calendar", calendar_name=name)

    # Run shell bookkeeping

    def _shell_started(self, shell: JobRunShell) -> None:
        with self._shells_lock:
            self._shells.add(shell)

    def _shell_finished(self, shell: JobRunShell) -> None:
        with self._shells_lock:
            self._shells.discard(shell)

    # Signals

    def _on_signal(self, kind: SignalKind, details: Dict[str, Any]) -> None:
        metrics = self.resources.metrics
        if kind is SignalKind.TRIGGER_MISFIRED and metrics is not None:
            metrics.record_misfire(details.get("policy", "unknown"))

        candidate = details.get("next_fire_time")
        changes_schedule = kind is SignalKind.SCHEDULING_CHANGE and (
            candidate is not None or "calendar_name" in details
        )
        if not changes_schedule:
            return

        with self._cond:
            if not self._signaled:
                self._signaled_time = candidate
            elif self._signaled_time is not None:
                self._signaled_time = None if candidate is None else min(self._signaled_time, candidate)
            self._signaled = True
            self._cond.notify_all()

    def _clear_signal(self) -> None:
        with self._cond:
            self._signaled = False
            self._signaled_time = None

    def _wait_for_signal(self, timeout: float) -> Tuple[bool, Optional[datetime]]:
        """
        Block until signaled, halted or ``timeout`` seconds pass.

        Returns:
            (signaled, earliest signaled fire time or None if unknown)
        """
        with self._cond:
            self._cond.wait_for(
                lambda: self._signaled or self._halted.is_set(),
                max(timeout, 0.0)
            )
            signaled, when = self._signaled, self._signaled_time
            self._signaled = False
            self._signaled_time = None
            return signaled, when

    # Control loop

    def _run(self) -> None:
        self.logger.debug("Control loop started", thread_name=self.resources.thread_name)

        while not self._halted.is_set():
            with self._cond:
                while self._paused and not self._halted.is_set():
                    self._cond.wait(_POOL_WAIT)
            if self._halted.is_set():
                break

            try:
                self._iteration()
            except Exception as e:
                self.logger.error(
                    "Control loop iteration failed",
                    error=str(e),
                    error_type=type(e).__name__
                )
                self._halted.wait(_POOL_WAIT)

        self.logger.debug("Control loop stopped")

    def _iteration(self) -> None:
        resources = self.resources
        store = resources.store

        idle = resources.worker_pool.block_for_available_threads(_POOL_WAIT)
        if idle <= 0 or self._halted.is_set():
            return

        self._clear_signal()
        now = _now()
        triggers = store.acquire_next_triggers(
            now + resources.idle_wait,
            min(idle, resources.max_batch_size),
            resources.batch_time_window
        )

        if not triggers:
            self._wait_for_signal(resources.idle_wait.total_seconds())
            return

        if not self._wait_until_due(triggers):
            for trigger in triggers:
                store.release_acquired_trigger(trigger.name)
            return

        for bundle in store.triggers_fired(triggers):
            self._dispatch(bundle)

    def _wait_until_due(self, triggers: List[TriggerDefinition]) -> bool:
        """
        Sleep until the earliest acquired trigger is due.

        Returns:
            False if the triggers must be released: halted, paused, or an
            earlier trigger was scheduled meanwhile
        """
        due = triggers[0].next_fire_time

        while True:
            remaining = due - _now()
            if remaining <= _DUE_TOLERANCE:
                return not (self._halted.is_set() or self._paused)

            signaled, candidate = self._wait_for_signal(remaining.total_seconds())
            if self._halted.is_set() or self._paused:
                return False
            if signaled and (candidate is None or candidate < due):
                return False

    def _dispatch(self, bundle: TriggerFiredBundle) -> None:
        resources = self.resources
        shell = resources.run_shell_factory.create(bundle)

        if resources.metrics is not None:
            resources.metrics.record_fire(bundle.job.name)

        if not resources.worker_pool.run(shell.run):
            self.logger.error(
                "Worker pool rejected job; marking its triggers complete",
                job_name=bundle.job.name,
                trigger_name=bundle.trigger.name
            )
            resources.store.triggered_job_complete(
                bundle.trigger,
                bundle.job,
                CompletedExecutionInstruction.SET_ALL_JOB_TRIGGERS_COMPLETE
            )
