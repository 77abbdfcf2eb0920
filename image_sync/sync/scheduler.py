"""Scheduled synchronization management."""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from image_sync.models import Strategy, SyncRunResult
from image_sync.telemetry.log import log_error
from image_sync.utils.errors import ConfigurationError, SyncFailedError, SyncInProgressError

from .orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

JOB_ID = "image-sync"


class SyncScheduler:
    """Run ``orchestrator.sync`` on a fixed interval."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        strategy: Strategy,
        interval_minutes: int,
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.strategy = strategy
        self.interval_minutes = interval_minutes
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

    @property
    def enabled(self) -> bool:
        return self.interval_minutes > 0

    def get_trigger(self) -> IntervalTrigger:
        """Build the interval trigger from settings."""
        return IntervalTrigger(minutes=self.interval_minutes, timezone="UTC")

    def start(self) -> bool:
        """Register the job and start the scheduler. Returns False when disabled."""
        if not self.enabled:
            logger.info("Periodic sync disabled")
            return False
        self.scheduler.add_job(
            self.run_sync,
            trigger=self.get_trigger(),
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("Periodic sync every %s minute(s) with %s", self.interval_minutes, self.strategy.label)
        return True

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    async def run_sync(self) -> Optional[SyncRunResult]:
        """Execute one sync cycle; a failed cycle never stops the schedule."""
        try:
            return await self.orchestrator.sync(self.strategy)
        except (SyncInProgressError, ConfigurationError, SyncFailedError) as exc:
            await self.handle_sync_error(exc)
            return None

    async def handle_sync_error(self, error: Exception) -> None:
        """Handle and log sync errors."""
        if isinstance(error, SyncInProgressError):
            logger.info("Skipping scheduled sync: %s", error)
            return
        log_error(error, {"source": "scheduler", "strategy": self.strategy.value})
