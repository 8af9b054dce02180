"""
Tickwork Core - shared foundation.

This module provides:
- Exception hierarchy with error codes
- Settings management with validation
- Observability (structured logging, metrics)
"""

from tickwork.core.exceptions import (
    TickworkError,
    ErrorCode,
    ConfigurationError,
    MisfirePolicyError,
    BootstrapError,
    SchedulerStateError,
    JobNotFoundError,
    TriggerNotFoundError,
    ObjectAlreadyExistsError,
    RequiredParameterError,
)

from tickwork.core.config import (
    SchedulerSettings,
    get_settings,
    reset_settings,
)

from tickwork.core.observability import (
    StructuredLogger,
    MetricsCollector,
    LogLevel,
    configure_logging,
)

__all__ = [
    # Exceptions
    "TickworkError",
    "ErrorCode",
    "ConfigurationError",
    "MisfirePolicyError",
    "BootstrapError",
    "SchedulerStateError",
    "JobNotFoundError",
    "TriggerNotFoundError",
    "ObjectAlreadyExistsError",
    "RequiredParameterError",

    # Configuration
    "SchedulerSettings",
    "get_settings",
    "reset_settings",

    # Observability
    "StructuredLogger",
    "MetricsCollector",
    "LogLevel",
    "configure_logging",
]
