"""Version information for Tickwork."""

__version__ = "0.1.0"
__title__ = "tickwork"
__description__ = "Recurring-job trigger engine with misfire recovery and rollback-safe bootstrap"
