"""
Exception hierarchy for Tickwork.

Every error carries:
- An error code for monitoring
- Context for debugging
- The wrapped cause, when there is one
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for monitoring and alerting."""

    # Configuration errors (1xxx)
    CONFIG_INVALID = "E1001"
    MISFIRE_POLICY_INVALID = "E1004"

    # Bootstrap errors (2xxx)
    BOOTSTRAP_FAILED = "E2001"

    # Lookup errors (3xxx)
    JOB_NOT_FOUND = "E3001"
    TRIGGER_NOT_FOUND = "E3002"
    OBJECT_ALREADY_EXISTS = "E3003"

    # Job errors (4xxx)
    REQUIRED_PARAMETER_MISSING = "E4001"

    # Internal errors (9xxx)
    INVALID_STATE = "E9003"


class TickworkError(Exception):
    """
    Base exception for all Tickwork errors.

    Provides:
    - Error code for monitoring
    - Context for debugging
    - Error categorization
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        """
        Initialize Tickwork error.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            context: Additional context for debugging
            cause: Original exception if this is a wrapped error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.error_code.value,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None
        }

    def __str__(self) -> str:
        """String representation with error code."""
        return f"[{self.error_code.value}] {self.message}"


# Configuration Errors
class ConfigurationError(TickworkError):
    """Invalid construction of a trigger, resource set or settings."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        error_code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        super().__init__(message, error_code, context, cause)


class MisfirePolicyError(ConfigurationError):
    """Unrecognized misfire policy."""

    def __init__(self, policy: Any):
        super().__init__(
            f"Unrecognized misfire policy: {policy!r}",
            {"policy": repr(policy)},
            error_code=ErrorCode.MISFIRE_POLICY_INVALID
        )
        self.policy = policy


# Bootstrap Errors
class BootstrapError(TickworkError):
    """
    Scheduler bootstrap failed.

    Raised by SchedulerBootstrap.build after every completed step
    has been rolled back.
    """

    def __init__(
        self,
        step: str,
        message: str,
        cause: Optional[BaseException] = None
    ):
        super().__init__(
            f"Scheduler bootstrap failed during '{step}': {message}",
            ErrorCode.BOOTSTRAP_FAILED,
            {"step": step},
            cause
        )
        self.step = step


# State Errors
class SchedulerStateError(TickworkError):
    """Operation not allowed in the scheduler's current state."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.INVALID_STATE, context)


# Lookup Errors
class JobNotFoundError(TickworkError):
    """Job not found."""

    def __init__(self, job_name: str):
        super().__init__(
            f"Job '{job_name}' not found",
            ErrorCode.JOB_NOT_FOUND,
            {"job_name": job_name}
        )
        self.job_name = job_name


class TriggerNotFoundError(TickworkError):
    """Trigger not found."""

    def __init__(self, trigger_name: str):
        super().__init__(
            f"Trigger '{trigger_name}' not found",
            ErrorCode.TRIGGER_NOT_FOUND,
            {"trigger_name": trigger_name}
        )
        self.trigger_name = trigger_name


class ObjectAlreadyExistsError(TickworkError):
    """A job or trigger with the same name is already stored."""

    def __init__(self, kind: str, name: str):
        super().__init__(
            f"{kind.capitalize()} '{name}' already exists",
            ErrorCode.OBJECT_ALREADY_EXISTS,
            {"kind": kind, "name": name}
        )


# Job Errors
class RequiredParameterError(TickworkError):
    """A mandatory JobContext key is absent."""

    def __init__(self, key: str):
        super().__init__(
            f"Required job parameter '{key}' is missing",
            ErrorCode.REQUIRED_PARAMETER_MISSING,
            {"key": key}
        )
        self.key = key
