"""In-memory queue identity store."""
import structlog
from .base import QueueIdentityStore, new_queue_id

log = structlog.get_logger()


class InMemoryIdentityStore(QueueIdentityStore):
    """Keeps the queue id for the lifetime of the process."""

    def __init__(self, prefix: str = "zkbmap-", queue_id: str | None = None):
        super().__init__(prefix)
        self._queue_id = queue_id

    async def get_or_create(self) -> str:
        if self._queue_id is None:
            self._queue_id = new_queue_id(self.prefix)
            log.info("identity.created", queue_id=self._queue_id, backend="memory")
        return self._queue_id

    async def health_check(self) -> bool:
        """In-memory store is always healthy."""
        return True
