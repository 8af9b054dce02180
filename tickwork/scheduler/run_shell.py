"""
Run Shell - Executes one trigger firing on a worker thread.

Provides:
- Job context construction
- Execution records and metrics
- Translation of the job's result into a completion instruction
"""

from typing import Any, Optional, TYPE_CHECKING
from datetime import datetime, timezone
import asyncio
import inspect
import threading
import time
import uuid

from tickwork.core.exceptions import SchedulerStateError
from tickwork.core.observability import StructuredLogger
from tickwork.scheduler.context import JobContext
from tickwork.scheduler.interfaces import CompletedExecutionInstruction, TriggerFiredBundle
from tickwork.scheduler.job import JobExecution, JobExecutionSignal, JobStatus

if TYPE_CHECKING:
    from tickwork.scheduler.engine import SchedulerCore


class JobRunShell:
    """
    Runs the job of a single fire bundle.

    A job returning a ``JobExecutionSignal`` with ``refire_immediately``
    is run again at once in the same shell until it stops asking or the
    scheduler shuts down.
    """

    def __init__(self, scheduler: "SchedulerCore", bundle: TriggerFiredBundle):
        self.scheduler = scheduler
        self.bundle = bundle
        self._interrupt = threading.Event()
        self.logger = StructuredLogger("tickwork.run_shell")

    @property
    def job_name(self) -> str:
        return self.bundle.job.name

    @property
    def trigger_name(self) -> str:
        return self.bundle.trigger.name

    def interrupt(self) -> None:
        """Ask the running job to stop; the job polls ``context.interrupted``."""
        self._interrupt.set()

    def run(self) -> None:
        """Execute the job and report completion to the store."""
        job = self.bundle.job
        trigger = self.bundle.trigger
        refire_count = 0

        self.scheduler._shell_started(self)
        try:
            while True:
                context = JobContext.merge(
                    job.job_data,
                    trigger.job_data,
                    job_name=job.name,
                    trigger_name=trigger.name,
                    interrupt_event=self._interrupt
                )
                result = self._execute(context, refire_count)

                signal = result if isinstance(result, JobExecutionSignal) else None
                if signal is not None and signal.refire_immediately:
                    if not self.scheduler.is_shutdown:
                        refire_count += 1
                        self.logger.info(
                            "Job requested immediate refire",
                            job_name=job.name,
                            trigger_name=trigger.name,
                            refire_count=refire_count
                        )
                        continue

                instruction = self.completion_instruction(signal)
                self.scheduler.resources.store.triggered_job_complete(trigger, job, instruction)
                break
        finally:
            self.scheduler._shell_finished(self)

    def completion_instruction(
        self,
        signal: Optional[JobExecutionSignal]
    ) -> CompletedExecutionInstruction:
        """
        Instruction for the store once the job will not be refired.

        Args:
            signal: Signal returned by the job, if any

        Returns:
            What the store must do with the firing trigger
        """
        if signal is not None:
            if signal.refire_immediately:
                return CompletedExecutionInstruction.RE_EXECUTE_JOB
            if signal.unschedule_all_triggers:
                return CompletedExecutionInstruction.SET_ALL_JOB_TRIGGERS_COMPLETE
            if signal.unschedule_firing_trigger:
                return CompletedExecutionInstruction.DELETE_TRIGGER

        if self.bundle.next_fire_time is None:
            return CompletedExecutionInstruction.DELETE_TRIGGER

        return CompletedExecutionInstruction.NOOP

    def _execute(self, context: JobContext, refire_count: int) -> Any:
        job = self.bundle.job
        metrics = self.scheduler.resources.metrics

        execution = JobExecution(
            execution_id=str(uuid.uuid4()),
            job_name=job.name,
            trigger_name=self.bundle.trigger.name,
            status=JobStatus.RUNNING,
            started_at=datetime.now(timezone.utc),
            scheduled_fire_time=self.bundle.scheduled_fire_time,
            refire_count=refire_count
        )

        self.logger.info(
            f"Executing job: {job.name}",
            job_name=job.name,
            trigger_name=execution.trigger_name,
            execution_id=execution.execution_id,
            scheduled_fire_time=execution.scheduled_fire_time
        )

        started = time.perf_counter()
        result = None
        try:
            if inspect.iscoroutinefunction(job.func):
                result = asyncio.run(job.func(context))
            else:
                result = job.func(context)

            execution.status = JobStatus.COMPLETED
            execution.result = result

        except Exception as e:
            execution.status = JobStatus.FAILED
            execution.error = str(e)

            self.logger.error(
                f"Job failed: {job.name} - {e}",
                job_name=job.name,
                execution_id=execution.execution_id,
                error=str(e),
                error_type=type(e).__name__
            )

        finally:
            execution.completed_at = datetime.now(timezone.utc)
            execution.duration = time.perf_counter() - started
            job.add_execution(execution)

            if metrics is not None:
                metrics.record_job_execution(
                    job.name,
                    execution.duration,
                    "success" if execution.status == JobStatus.COMPLETED else "failed"
                )

        if execution.status == JobStatus.COMPLETED:
            self.logger.info(
                f"Job completed: {job.name}",
                job_name=job.name,
                execution_id=execution.execution_id,
                duration=execution.duration
            )

        return result


class StandardRunShellFactory:
    """Default factory producing a ``JobRunShell`` per bundle."""

    def __init__(self):
        self._scheduler: Optional["SchedulerCore"] = None

    def initialize(self, scheduler: "SchedulerCore") -> None:
        self._scheduler = scheduler

    def create(self, bundle: TriggerFiredBundle) -> JobRunShell:
        if self._scheduler is None:
            raise SchedulerStateError("Run shell factory used before initialize()")
        return JobRunShell(self._scheduler, bundle)
