"""
Price tracking scheduler that drives the batch runner on a fixed interval
"""
import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pricewatch.core.config import settings
from pricewatch.services.batch_runner import BatchRunner, CycleReport

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    """Scheduler states"""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


class PriceTrackingScheduler:
    """Runs a price check cycle immediately on start and then every interval"""

    def __init__(self, runner: BatchRunner, interval_seconds: Optional[float] = None,
                 clock: Callable[[], datetime] = datetime.utcnow):
        self.runner = runner
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.get_interval_seconds()
        self.clock = clock

        self.state = SchedulerState.STOPPED
        self.started_at: Optional[datetime] = None
        self.last_cycle_at: Optional[datetime] = None
        self.last_report: Optional[CycleReport] = None

        self.tracking_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._cancel_event: Optional[asyncio.Event] = None
        self._stopped: Optional[asyncio.Event] = None

        logger.info("Price tracking scheduler initialized")

    async def start(self):
        """Start the tracking loop; a no-op if it is already running"""
        if self.state == SchedulerState.STOPPING and self._stopped is not None:
            logger.info("Price tracking scheduler is stopping; starting again once the stop completes")
            await self._stopped.wait()

        if self.state != SchedulerState.STOPPED:
            logger.warning("Price tracking scheduler is already running")
            return

        try:
            self.state = SchedulerState.STARTING
            logger.info("Starting price tracking scheduler...")

            self._stop_event = asyncio.Event()
            self._cancel_event = asyncio.Event()
            self.tracking_task = asyncio.create_task(self._tracking_loop())
            self.started_at = self.clock()

            self.state = SchedulerState.RUNNING
            logger.info(f"Price tracking scheduler started (interval {self.interval_seconds:.0f}s)")

        except Exception as e:
            self.state = SchedulerState.ERROR
            logger.error(f"Failed to start price tracking scheduler: {e}")
            raise

    async def stop(self, cancel_in_flight: bool = False):
        """
        Stop scheduling further cycles.

        A cycle already running is allowed to finish. With ``cancel_in_flight``
        the running cycle skips every item that has not started yet.
        """
        if self.state != SchedulerState.RUNNING:
            logger.warning("Price tracking scheduler is not running")
            return

        self.state = SchedulerState.STOPPING
        logger.info("Stopping price tracking scheduler...")
        self._stopped = asyncio.Event()

        self._stop_event.set()
        if cancel_in_flight:
            self._cancel_event.set()
        try:
            if self.tracking_task:
                await self.tracking_task
        finally:
            self.tracking_task = None
            self.state = SchedulerState.STOPPED
            self._stopped.set()
        logger.info("Price tracking scheduler stopped")

    def is_running(self) -> bool:
        return self.state == SchedulerState.RUNNING

    def status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running(),
            "state": self.state.value,
            "started_at": self.started_at,
            "last_cycle_at": self.last_cycle_at,
            "last_report": self.last_report.to_dict() if self.last_report else None,
            "batch_size": self.runner.batch_size,
            "concurrency_limit": self.runner.concurrency_limit,
            "interval_seconds": self.interval_seconds,
        }

    async def run_once(self) -> Optional[CycleReport]:
        """One tick: price cycle, then pending alert retries, then the expiry sweep"""
        report = None
        try:
            report = await self.runner.run_cycle(self._cancel_event)
            self.last_report = report
        except Exception as e:
            logger.error(f"Error in price check cycle: {e}")
        finally:
            self.last_cycle_at = self.clock()

        if self._cancel_event is not None and self._cancel_event.is_set():
            return report

        try:
            await self.runner.retry_pending_alerts()
            await self.runner.expire_alerts()
        except Exception as e:
            logger.error(f"Error processing pending alerts: {e}")
        return report

    async def _tracking_loop(self):
        logger.info("Price tracking loop started")

        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Price tracking loop stopped")
