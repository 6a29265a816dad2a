"""Long-running services."""

from ris_collector.services.scheduler_service import SchedulerService

__all__ = ["SchedulerService"]
