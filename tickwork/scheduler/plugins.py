"""Bundled scheduler plugins."""

from typing import Optional, TYPE_CHECKING
import atexit

from tickwork.core.observability import StructuredLogger

if TYPE_CHECKING:
    from tickwork.scheduler.engine import SchedulerCore


class ShutdownHookPlugin:
    """
    Shuts the scheduler down when the interpreter exits.

    Args:
        clean_shutdown: Wait for running jobs to complete on exit
    """

    def __init__(self, clean_shutdown: bool = False):
        self.clean_shutdown = clean_shutdown
        self.name: Optional[str] = None
        self._scheduler: Optional["SchedulerCore"] = None
        self._registered = False
        self.logger = StructuredLogger("tickwork.plugins")

    def initialize(self, name: str, scheduler: "SchedulerCore") -> None:
        self.name = name
        self._scheduler = scheduler
        atexit.register(self._on_exit)
        self._registered = True
        self.logger.info("Registered shutdown hook", plugin=name, clean_shutdown=self.clean_shutdown)

    def _on_exit(self) -> None:
        scheduler = self._scheduler
        if scheduler is None or scheduler.is_shutdown:
            return

        self.logger.info("Shutting down scheduler from exit hook", plugin=self.name)
        try:
            scheduler.shutdown(self.clean_shutdown)
        except Exception as e:
            self.logger.error("Exit hook shutdown failed", plugin=self.name, error=str(e))

    def shutdown(self) -> None:
        """Drop the exit hook once the scheduler shut down on its own."""
        if self._registered:
            atexit.unregister(self._on_exit)
            self._registered = False
