"""
Worker Pool - Fixed-size thread pool running job shells.

Wraps a ThreadPoolExecutor and tracks busy workers so the control loop
never hands out more work than there are idle threads.
"""

from typing import Any, Callable, Optional
from concurrent.futures import ThreadPoolExecutor
import threading

from tickwork.core.exceptions import ConfigurationError, SchedulerStateError
from tickwork.core.observability import StructuredLogger


class ThreadWorkerPool:
    """
    Thread-backed worker pool.

    Example:
        >>> pool = ThreadWorkerPool(size=4)
        >>> pool.initialize()
        >>> pool.run(lambda: print("hello"))
        >>> pool.shutdown(wait_for_completion=True)
    """

    def __init__(self, size: int = 10, thread_name_prefix: str = "Tickwork_Worker"):
        """
        Initialize worker pool.

        Args:
            size: Number of worker threads
            thread_name_prefix: Prefix of worker thread names
        """
        if size < 1:
            raise ConfigurationError("Worker pool size must be >= 1", {"size": size})

        self._size = size
        self._thread_name_prefix = thread_name_prefix
        self._executor: Optional[ThreadPoolExecutor] = None
        self._cond = threading.Condition()
        self._busy = 0
        self._shutdown = False
        self.logger = StructuredLogger("tickwork.pool")

    def initialize(self) -> None:
        """Start the worker threads' executor."""
        with self._cond:
            if self._shutdown:
                raise SchedulerStateError("Worker pool was shut down")
            if self._executor is not None:
                return

            self._executor = ThreadPoolExecutor(
                max_workers=self._size,
                thread_name_prefix=self._thread_name_prefix
            )

        self.logger.info(
            "Worker pool started",
            size=self._size,
            thread_name_prefix=self._thread_name_prefix
        )

    def pool_size(self) -> int:
        return self._size

    def set_thread_name_prefix(self, name: str) -> None:
        if self._executor is not None:
            raise SchedulerStateError("Thread name prefix must be set before initialize()")
        self._thread_name_prefix = name

    @property
    def busy_count(self) -> int:
        with self._cond:
            return self._busy

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def block_for_available_threads(self, timeout: Optional[float] = None) -> int:
        """
        Wait until at least one worker is idle.

        Args:
            timeout: Max seconds to wait (None waits forever)

        Returns:
            Number of idle workers, 0 on timeout or after shutdown
        """
        with self._cond:
            self._cond.wait_for(
                lambda: self._shutdown or self._busy < self._size,
                timeout
            )
            if self._shutdown:
                return 0
            return self._size - self._busy

    def run(self, task: Callable[[], Any]) -> bool:
        """
        Hand a task to an idle worker.

        Args:
            task: Callable run on a worker thread

        Returns:
            False if the pool is not running
        """
        with self._cond:
            if self._shutdown or self._executor is None:
                return False
            self._busy += 1
            self._executor.submit(self._run_task, task)

        return True

    def _run_task(self, task: Callable[[], Any]) -> None:
        try:
            task()
        except Exception as e:
            self.logger.error("Worker task raised", error=str(e), error_type=type(e).__name__)
        finally:
            with self._cond:
                self._busy -= 1
                self._cond.notify_all()

    def shutdown(self, wait_for_completion: bool = False) -> None:
        """
        Stop the pool.

        Args:
            wait_for_completion: Drain queued and running tasks first;
                otherwise queued tasks are cancelled and running ones
                abandoned
        """
        with self._cond:
            if self._shutdown:
                return
            self._shutdown = True
            executor = self._executor
            self._cond.notify_all()

        if executor is not None:
            executor.shutdown(wait=wait_for_completion, cancel_futures=not wait_for_completion)

        self.logger.info("Worker pool shut down", wait_for_completion=wait_for_completion)
