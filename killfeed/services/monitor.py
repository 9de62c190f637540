"""Killmail monitor: one store fed by a poller and aged by a sweeper."""
from functools import partial
from typing import Any, Dict
import asyncio
import httpx
import structlog

from ..config import Settings, get_settings
from ..connection import ConnectionMonitor
from ..event_models import parse_killmail
from ..identity.base import QueueIdentityStore
from ..identity.factory import create_identity_store
from ..ingestion import CancellationToken, RedisQPoller
from ..metrics import Metrics
from ..scaling import scale_value
from ..store import KillmailStore
from ..sweeper import SweepScheduler

log = structlog.get_logger()


class KillmailMonitor:
    """
    Owns the killmail store and the two background tasks that touch it.

    ``start`` resolves the queue identity and spawns the poll loop and the
    sweep timer; ``stop`` cancels both and waits for them to finish. Every
    start mints a fresh loop id.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: KillmailStore | None = None,
        identity: QueueIdentityStore | None = None,
        connection: ConnectionMonitor | None = None,
        client: httpx.AsyncClient | None = None,
        metrics: Metrics | None = None,
    ):
        """
        Args:
            settings: Configuration (defaults to get_settings())
            store: Killmail store (a fresh one by default)
            identity: Queue identity backend (selected from settings by default)
            connection: Heartbeat receiver
            client: HTTP client shared by successive poll loops
            metrics: Optional Prometheus metrics
        """
        self.settings = settings or get_settings()
        self.store = store or KillmailStore(base_retention_ms=self.settings.BASE_RETENTION_MS)
        self.identity = identity or create_identity_store(self.settings)
        self.connection = connection or ConnectionMonitor()
        self.metrics = metrics
        self.sweeper = SweepScheduler(
            self.store,
            interval=self.settings.SWEEP_INTERVAL_SECONDS,
            metrics=metrics,
        )
        self.queue_id: str | None = None
        self.poller: RedisQPoller | None = None
        self._client = client
        self._token: CancellationToken | None = None
        self._poll_task: asyncio.Task | None = None

    def set_metrics(self, metrics: Metrics):
        self.metrics = metrics
        self.sweeper.metrics = metrics

    @property
    def running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def start(self):
        """Start polling and sweeping. No-op if already running."""
        if self.running:
            return

        self.queue_id = await self.identity.get_or_create()
        self._token = CancellationToken()
        self.poller = RedisQPoller(
            self.store,
            self.queue_id,
            self.connection.receive_ping,
            client=self._client,
            url=self.settings.REDISQ_URL,
            ttw=self.settings.REDISQ_TTW,
            timeout_margin=self.settings.REDISQ_TIMEOUT_MARGIN,
            cooldown=self.settings.RETRY_COOLDOWN_SECONDS,
            parse=partial(
                parse_killmail,
                scale=partial(scale_value, floor=self.settings.SCALE_MIN),
                url_template=self.settings.KILL_URL_TEMPLATE,
            ),
            metrics=self.metrics,
        )
        self._poll_task = asyncio.create_task(self.poller.run(self._token))
        self.sweeper.start()
        log.info("monitor.started", loop_id=self.poller.loop_id, queue_id=self.queue_id)

    async def stop(self):
        """Signal cancellation and wait for both tasks to exit."""
        if self._token:
            self._token.cancel()
        await self.sweeper.stop()
        if self._poll_task:
            await self._poll_task
            self._poll_task = None
            log.info("monitor.stopped", loop_id=self.poller.loop_id if self.poller else None)
        self.identity.close()

    def status(self) -> Dict[str, Any]:
        last_ping = self.connection.last_ping
        return {
            "running": self.running,
            "loop_id": self.poller.loop_id if self.poller else None,
            "queue_id": self.queue_id,
            "last_ping": last_ping.isoformat() if last_ping else None,
            "pings": self.connection.ping_count,
            "killmails": len(self.store),
            "sweeper_running": self.sweeper.running,
        }


# Global monitor instance
monitor = KillmailMonitor()


def set_metrics(metrics: Metrics):
    """Attach Prometheus metrics to the global monitor."""
    monitor.set_metrics(metrics)
