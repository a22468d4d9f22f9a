"""Timer integration."""

from .apsched_adapter import APSchedulerAdapter

__all__ = ["APSchedulerAdapter"]
