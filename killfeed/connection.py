"""Feed liveness tracking."""
import threading
from datetime import datetime
from typing import Callable, Optional

from .event_models import utcnow


class ConnectionMonitor:
    """
    Records the last successful poll cycle.

    ``receive_ping`` is the heartbeat handed to the poller; it is called
    synchronously once per kill or empty tick and never awaited.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._lock = threading.Lock()
        self._last_ping: Optional[datetime] = None
        self._pings = 0

    def receive_ping(self) -> None:
        with self._lock:
            self._last_ping = self._clock()
            self._pings += 1

    @property
    def last_ping(self) -> Optional[datetime]:
        return self._last_ping

    @property
    def ping_count(self) -> int:
        return self._pings

    def seconds_since_ping(self, now: Optional[datetime] = None) -> Optional[float]:
        last = self._last_ping
        if last is None:
            return None
        return ((now or self._clock()) - last).total_seconds()

    def is_alive(self, stale_after: float, now: Optional[datetime] = None) -> bool:
        """True if a heartbeat arrived within the last ``stale_after`` seconds."""
        since = self.seconds_since_ping(now)
        return since is not None and since < stale_after
