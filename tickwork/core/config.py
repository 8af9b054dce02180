"""
Configuration management for Tickwork.

Features:
- Type-safe settings with validation
- Environment-based configuration (TICKWORK_ prefix)
- YAML configuration files
"""

from typing import Optional, Dict, Any
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from functools import lru_cache
import logging
import yaml

from tickwork.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class SchedulerSettings(BaseSettings):
    """
    Scheduler settings.

    Loads configuration from:
    1. Environment variables (highest priority)
    2. Configuration file (tickwork.yaml)
    3. Defaults (lowest priority)
    """

    # Control loop
    thread_name: str = Field("Tickwork Scheduler Thread", description="Control loop thread name")
    make_daemon: bool = Field(False, description="Run the control loop in a daemon thread")
    idle_wait_ms: int = Field(30000, ge=1, description="Max time the loop sleeps when nothing is due (ms)")

    # Worker pool
    pool_size: int = Field(10, ge=1, le=1000, description="Worker threads")
    worker_thread_prefix: str = Field("Tickwork_Worker", description="Worker thread name prefix")

    # Acquisition
    batch_time_window_ms: int = Field(0, ge=0, description="Lookahead window for acquiring triggers (ms)")
    max_batch_size: int = Field(1, ge=1, description="Max triggers acquired per loop cycle")
    misfire_threshold_ms: int = Field(5000, ge=0, description="Lateness tolerated before a trigger misfires (ms)")

    # Shutdown
    interrupt_jobs_on_shutdown: bool = Field(True, description="Interrupt running jobs on immediate shutdown")
    interrupt_jobs_on_shutdown_with_wait: bool = Field(True, description="Interrupt running jobs on draining shutdown")
    install_shutdown_hook: bool = Field(True, description="Register the process exit shutdown hook")
    shutdown_hook_clean: bool = Field(False, description="Wait for running jobs in the exit hook")

    # Logging
    log_level: str = Field("INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_prefix="TICKWORK_",
        env_nested_delimiter="__",
        case_sensitive=False
    )

    @field_validator("thread_name", "worker_thread_prefix")
    @classmethod
    def validate_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("Thread names cannot be empty")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v.upper()

    @classmethod
    def load_from_file(cls, config_path: Path) -> "SchedulerSettings":
        """
        Load settings from a YAML file.

        Args:
            config_path: Path to configuration file

        Returns:
            SchedulerSettings instance

        Raises:
            ConfigurationError: If file cannot be loaded
        """
        if not config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_path}",
                {"path": str(config_path)}
            )

        try:
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {e}",
                {"path": str(config_path)},
                cause=e
            )

        if not config_data:
            config_data = {}

        # Files may nest everything under a "scheduler" section
        if "scheduler" in config_data and isinstance(config_data["scheduler"], dict):
            config_data = config_data["scheduler"]

        try:
            return cls(**config_data)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid scheduler configuration: {e}",
                {"path": str(config_path)},
                cause=e
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        return self.model_dump()


_global_settings: Optional[SchedulerSettings] = None


@lru_cache(maxsize=1)
def get_settings() -> SchedulerSettings:
    """
    Get the process-wide settings (tickwork.yaml if present, else env and defaults).

    Returns:
        SchedulerSettings instance
    """
    global _global_settings

    if _global_settings is None:
        config_path = Path("tickwork.yaml")

        if config_path.exists():
            _global_settings = SchedulerSettings.load_from_file(config_path)
        else:
            _global_settings = SchedulerSettings()

        logger.info(
            "Scheduler settings loaded",
            extra={"thread_name": _global_settings.thread_name}
        )

    return _global_settings


def reset_settings() -> None:
    """Reset global settings (for testing)."""
    global _global_settings
    _global_settings = None
    get_settings.cache_clear()
