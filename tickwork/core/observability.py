"""
Observability for Tickwork.

Features:
- Structured logging with context
- Prometheus metrics for triggers, misfires, jobs and bootstrap
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum
import json
import logging
import threading

from prometheus_client import CollectorRegistry, Counter, Histogram


class LogLevel(str, Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StructuredLogger:
    """
    Structured logger.

    Features:
    - JSON formatting
    - Context propagation (per thread)
    """

    def __init__(
        self,
        name: str,
        level: Optional[LogLevel] = None,
        format_json: bool = True
    ):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            level: Logging level (default: inherited from the parent logger)
            format_json: Use JSON formatting
        """
        self.logger = logging.getLogger(name)
        if level is not None:
            self.logger.setLevel(getattr(logging, LogLevel(level).value))
        self.format_json = format_json
        self._context = threading.local()

    def _format_message(
        self,
        level: str,
        message: str,
        **kwargs
    ) -> str:
        """Format log message."""
        if self.format_json:
            log_data = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "level": level,
                "logger": self.logger.name,
                "message": message,
                **kwargs
            }

            if hasattr(self._context, 'data'):
                log_data.update(self._context.data)

            return json.dumps(log_data, default=str)
        else:
            extras = " ".join(f"{k}={v}" for k, v in kwargs.items())
            return f"[{level}] {message} {extras}".rstrip()

    def debug(self, message: str, **kwargs):
        """Log debug message."""
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(self._format_message("DEBUG", message, **kwargs))

    def info(self, message: str, **kwargs):
        """Log info message."""
        self.logger.info(self._format_message("INFO", message, **kwargs))

    def warning(self, message: str, **kwargs):
        """Log warning message."""
        self.logger.warning(self._format_message("WARNING", message, **kwargs))

    def error(self, message: str, **kwargs):
        """Log error message."""
        self.logger.error(self._format_message("ERROR", message, **kwargs))

    def critical(self, message: str, **kwargs):
        """Log critical message."""
        self.logger.critical(self._format_message("CRITICAL", message, **kwargs))

    def set_context(self, **kwargs):
        """Set logging context for the current thread."""
        if not hasattr(self._context, 'data'):
            self._context.data = {}
        self._context.data.update(kwargs)

    def clear_context(self):
        """Clear logging context."""
        if hasattr(self._context, 'data'):
            self._context.data = {}


class MetricsCollector:
    """
    Scheduler metrics collector.

    Each collector registers its metrics in its own registry unless one
    is passed in, so several schedulers can live in one process.
    """

    def __init__(
        self,
        enabled: bool = True,
        registry: Optional[CollectorRegistry] = None
    ):
        """
        Initialize metrics collector.

        Args:
            enabled: Enable metrics collection
            registry: Prometheus registry to register metrics in
        """
        self.enabled = enabled
        self.registry = registry if registry is not None else CollectorRegistry()

        self.triggers_fired = Counter(
            'tickwork_triggers_fired_total',
            'Total trigger firings',
            ['job_name'],
            registry=self.registry
        )

        self.misfires = Counter(
            'tickwork_misfires_total',
            'Total misfired triggers handled',
            ['policy'],
            registry=self.registry
        )

        self.job_executions = Counter(
            'tickwork_job_executions_total',
            'Total job executions',
            ['job_name', 'status'],
            registry=self.registry
        )

        self.job_duration = Histogram(
            'tickwork_job_duration_seconds',
            'Job execution duration',
            ['job_name'],
            registry=self.registry
        )

        self.bootstraps = Counter(
            'tickwork_bootstraps_total',
            'Scheduler bootstrap attempts',
            ['status'],
            registry=self.registry
        )

    def increment_counter(self, name: str, labels: Dict[str, str], value: float = 1):
        """Increment counter metric."""
        if not self.enabled:
            return

        getattr(self, name).labels(**labels).inc(value)

    def observe_histogram(self, name: str, labels: Dict[str, str], value: float):
        """Observe histogram metric."""
        if not self.enabled:
            return

        getattr(self, name).labels(**labels).observe(value)

    def record_fire(self, job_name: str):
        """Record a trigger firing."""
        self.increment_counter('triggers_fired', {'job_name': job_name})

    def record_misfire(self, policy: str):
        """Record a handled misfire."""
        self.increment_counter('misfires', {'policy': policy})

    def record_job_execution(
        self,
        job_name: str,
        duration: float,
        status: str = "success"
    ):
        """Record job execution metrics."""
        self.increment_counter(
            'job_executions',
            {'job_name': job_name, 'status': status}
        )
        self.observe_histogram('job_duration', {'job_name': job_name}, duration)

    def record_bootstrap(self, status: str):
        """Record a bootstrap outcome."""
        self.increment_counter('bootstraps', {'status': status})

    def sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """
        Read the current value of a sample.

        Args:
            name: Sample name, e.g. "tickwork_misfires_total"
            labels: Label values of the sample

        Returns:
            Sample value, 0.0 when the sample does not exist yet
        """
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0


def configure_logging(level: LogLevel = LogLevel.INFO) -> None:
    """
    Attach a console handler to the "tickwork" logger hierarchy.

    Args:
        level: Level for the handler and the root tickwork logger
    """
    root = logging.getLogger("tickwork")
    root.setLevel(getattr(logging, LogLevel(level).value))

    if not any(getattr(h, "_tickwork", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler._tickwork = True
        root.addHandler(handler)
