"""RedisQ long-poll ingestion loop."""
import asyncio
import contextlib
import time
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx
import orjson
import structlog
from pydantic import ValidationError

from .event_models import Killmail, MalformedEventError, RedisQResponse, parse_killmail
from .metrics import Metrics
from .store import KillmailStore

log = structlog.get_logger()

REDISQ_URL = "https://zkillredisq.stream/listen.php"


class TransientNetworkError(RuntimeError):
    """Connection failure, timeout, non-2xx status or undecodable envelope."""


class PollOutcome(str, Enum):
    KILL = "kill"
    EMPTY = "empty"
    MALFORMED = "malformed"
    FAILURE = "failure"


class CancellationToken:
    """Cooperative stop signal shared between the owner and the loop."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self):
        await self._event.wait()


def new_loop_id() -> str:
    return f"redisq-{uuid.uuid4().hex[:8]}"


class RedisQPoller:
    """
    Polls RedisQ forever, feeding decoded killmails into a store.

    Each cycle issues one long-poll request. A package is parsed, inserted
    and followed by a heartbeat; a null package is a heartbeat only. Network
    errors, non-2xx responses and broken envelopes are logged and retried
    after a fixed cooldown. The loop ends only through its cancellation token.
    """

    def __init__(
        self,
        store: KillmailStore,
        queue_id: str,
        heartbeat: Callable[[], None],
        *,
        client: httpx.AsyncClient | None = None,
        url: str = REDISQ_URL,
        ttw: int = 10,
        timeout_margin: float = 5.0,
        cooldown: float = 1.0,
        parse: Callable[[Any], Killmail] = parse_killmail,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        metrics: Metrics | None = None,
        loop_id: str | None = None,
    ):
        """
        Args:
            store: Destination for decoded killmails
            queue_id: RedisQ queue identity, stable for this client
            heartbeat: Called after every kill or empty tick
            client: HTTP client to use (one is created per run if omitted)
            url: RedisQ listen endpoint
            ttw: Server-side wait hint in seconds
            timeout_margin: Seconds added to ``ttw`` for the request timeout
            cooldown: Delay after a failed cycle
            parse: Payload decoder
            sleep: Awaitable delay, injectable for tests
            metrics: Optional Prometheus metrics
            loop_id: Identity of this loop instance in logs
        """
        self.store = store
        self.queue_id = queue_id
        self.url = url
        self.ttw = ttw
        self.timeout = ttw + timeout_margin
        self.cooldown = cooldown
        self.loop_id = loop_id or new_loop_id()
        self._heartbeat = heartbeat
        self._client = client
        self._parse = parse
        self._sleep = sleep
        self._metrics = metrics

    async def run(self, token: CancellationToken):
        """Poll until ``token`` is cancelled. Never raises on feed errors."""
        with structlog.contextvars.bound_contextvars(loop_id=self.loop_id, queue_id=self.queue_id):
            log.info("poller.started", url=self.url, ttw=self.ttw)
            async with contextlib.AsyncExitStack() as stack:
                client = self._client
                if client is None:
                    client = await stack.enter_async_context(
                        httpx.AsyncClient(follow_redirects=True)
                    )

                while not token.cancelled:
                    completed, outcome = await self._until_cancelled(self._cycle(client), token)
                    if not completed:
                        break
                    if outcome is PollOutcome.FAILURE:
                        await self._until_cancelled(self._sleep(self.cooldown), token)

            log.info("poller.stopped")

    async def poll_once(self, client: httpx.AsyncClient | None = None) -> PollOutcome:
        """
        Run a single poll cycle.

        Returns:
            What the cycle produced; FAILURE means the caller should back off
        """
        if client is None:
            async with httpx.AsyncClient(follow_redirects=True) as own:
                return await self._cycle(own)
        return await self._cycle(client)

    async def _cycle(self, client: httpx.AsyncClient) -> PollOutcome:
        start = time.monotonic()
        try:
            envelope = await self._fetch(client)
        except TransientNetworkError as e:
            log.warning("poll.failed", error=str(e), retry_in=self.cooldown)
            return self._record(PollOutcome.FAILURE, start)
        except Exception as e:
            return self._unexpected(e, start)

        try:
            return self._deliver(envelope, start)
        except MalformedEventError as e:
            log.warning("poll.malformed", error=str(e))
            return self._record(PollOutcome.MALFORMED, start)
        except Exception as e:
            # Scale function, store or heartbeat failure; the loop must survive it
            return self._unexpected(e, start)

    def _unexpected(self, e: Exception, start: float) -> PollOutcome:
        log.error("poll.unexpected_error", error=str(e), error_type=type(e).__name__, exc_info=True)
        try:
            return self._record(PollOutcome.FAILURE, start)
        except Exception:
            log.error("poll.metrics_failed", exc_info=True)
            return PollOutcome.FAILURE

    def _deliver(self, envelope: RedisQResponse, start: float) -> PollOutcome:
        if envelope.package is None:
            self._heartbeat()
            log.debug("poll.empty")
            return self._record(PollOutcome.EMPTY, start)

        killmail = self._parse(envelope.merged_package())
        self.store.insert(killmail)
        self._heartbeat()
        if self._metrics:
            self._metrics.record_killmail_received()
        log.info(
            "poll.kill",
            killmail_id=killmail.id,
            solar_system_id=killmail.solar_system_id,
            total_value=killmail.total_value,
            scaled_value=round(killmail.scaled_value, 3),
        )
        return self._record(PollOutcome.KILL, start)

    async def _fetch(self, client: httpx.AsyncClient) -> RedisQResponse:
        try:
            response = await client.get(
                self.url,
                params={"queueID": self.queue_id, "ttw": self.ttw},
                headers={"Cache-Control": "no-store"},
                timeout=self.timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise TransientNetworkError(f"HTTP {response.status_code}")

        try:
            return RedisQResponse.model_validate(orjson.loads(response.content))
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise TransientNetworkError(f"bad envelope: {e}") from e

    async def _until_cancelled(self, aw: Awaitable[Any], token: CancellationToken) -> tuple[bool, Any]:
        """Await ``aw`` unless the token fires first; returns (completed, result)."""
        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        waiter.cancel()
        if task in done:
            return True, task.result()

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        log.info("poller.abandoned_in_flight")
        return False, None

    def _record(self, outcome: PollOutcome, start: float) -> PollOutcome:
        if self._metrics:
            self._metrics.record_poll(outcome.value, time.monotonic() - start)
        return outcome
