"""Tests for the monitor that wires poller, store and sweeper together."""
import asyncio
import httpx
import pytest
from killfeed.config import Settings
from killfeed.identity.memory import InMemoryIdentityStore
from killfeed.services.monitor import KillmailMonitor

PACKAGE = {
    "killmail": {
        "killmail_id": 42,
        "killmail_time": "2024-01-01T00:00:00Z",
        "solar_system_id": 1,
        "victim": {"character_id": 7, "corporation_id": 8, "ship_type_id": 9},
    },
    "zkb": {"totalValue": 2_500_000_000, "url": "https://zkillboard.com/kill/42/"},
}


def feed_client(requests):
    delivered = False

    async def handler(request):
        nonlocal delivered
        requests.append(request)
        if not delivered:
            delivered = True
            return httpx.Response(200, json={"package": PACKAGE})
        await asyncio.sleep(0.01)
        return httpx.Response(200, json={"package": None})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


def make_monitor(client):
    settings = Settings(
        REDISQ_URL="https://redisq.test/listen.php",
        SWEEP_INTERVAL_SECONDS=0.01,
        RETRY_COOLDOWN_SECONDS=0.01,
        FEED_AUTOSTART=False,
    )
    return KillmailMonitor(
        settings=settings,
        identity=InMemoryIdentityStore(queue_id="zkbmap-monitor"),
        client=client,
    )


async def wait_until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_start_ingests_and_stop_shuts_down():
    requests = []
    async with feed_client(requests) as client:
        monitor = make_monitor(client)
        await monitor.start()

        await wait_until(lambda: monitor.store.get(42) is not None)
        await wait_until(lambda: monitor.connection.ping_count >= 2)

        status = monitor.status()
        assert status["running"] is True
        assert status["sweeper_running"] is True
        assert status["queue_id"] == "zkbmap-monitor"
        assert status["loop_id"].startswith("redisq-")
        assert requests[0].url.params["queueID"] == "zkbmap-monitor"

        await asyncio.wait_for(monitor.stop(), timeout=2)

        assert monitor.running is False
        assert monitor.sweeper.running is False
        # Stopping never clears the store; only the sweep removes killmails
        assert monitor.store.get(42) is not None


@pytest.mark.asyncio
async def test_restart_uses_new_loop_id():
    async with feed_client([]) as client:
        monitor = make_monitor(client)
        await monitor.start()
        first = monitor.poller.loop_id
        await monitor.stop()

        await monitor.start()
        second = monitor.poller.loop_id
        await monitor.stop()

    assert first != second


@pytest.mark.asyncio
async def test_start_twice_keeps_one_loop():
    async with feed_client([]) as client:
        monitor = make_monitor(client)
        await monitor.start()
        loop_id = monitor.poller.loop_id
        await monitor.start()

        assert monitor.poller.loop_id == loop_id
        await monitor.stop()


@pytest.mark.asyncio
async def test_sweeps_while_feed_is_failing():
    """Test aging continues while the poller is backing off."""
    from helpers import T0, make_killmail

    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503))) as client:
        monitor = make_monitor(client)
        monitor.store.insert(make_killmail(1, received_at=T0))
        await monitor.start()

        await wait_until(lambda: len(monitor.store) == 0)
        assert monitor.connection.ping_count == 0
        await monitor.stop()


class ClosingIdentityStore(InMemoryIdentityStore):
    def __init__(self):
        super().__init__(queue_id="zkbmap-monitor")
        self.closed = 0

    def close(self):
        self.closed += 1


@pytest.mark.asyncio
async def test_stop_closes_identity_backend():
    """Test the identity backend's connection is released on shutdown."""
    identity = ClosingIdentityStore()
    async with feed_client([]) as client:
        monitor = make_monitor(client)
        monitor.identity = identity
        await monitor.start()
        assert identity.closed == 0

        await monitor.stop()

    assert identity.closed == 1
