"""Periodic retention sweep."""
import asyncio
from datetime import datetime
from typing import Callable, Optional
import structlog

from .event_models import utcnow
from .metrics import Metrics
from .store import KillmailStore

log = structlog.get_logger()

SWEEP_INTERVAL_SECONDS = 5.0


class SweepScheduler:
    """
    Runs ``store.sweep`` on a fixed period.

    Independent of ingestion: aging is wall-clock driven, so sweeps continue
    while the poller is backing off.
    """

    def __init__(
        self,
        store: KillmailStore,
        interval: float = SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
        metrics: Optional[Metrics] = None,
    ):
        self.store = store
        self.interval = interval
        self._clock = clock
        self.metrics = metrics
        self._task: Optional[asyncio.Task] = None

    def start(self):
        """Starts the sweep task on the running loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
            log.info("sweeper.started", interval=self.interval)

    async def stop(self):
        """Stops the sweep task."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            log.info("sweeper.stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> list[int]:
        """Sweep once at the current clock time."""
        removed = self.store.sweep(self._clock())
        if self.metrics:
            self.metrics.record_sweep(evicted=len(removed), active=len(self.store))
        return removed

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.tick()
            except Exception as e:
                log.error("sweeper.tick_failed", error=str(e), exc_info=True)
