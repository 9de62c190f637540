"""Identity backend selection."""
import structlog
from .base import QueueIdentityStore
from .memory import InMemoryIdentityStore
from .redis_store import RedisIdentityStore
from ..config import Settings

log = structlog.get_logger()


def create_identity_store(settings: Settings) -> QueueIdentityStore:
    """
    Create the identity store named by IDENTITY_BACKEND.

    Falls back to memory when Redis is requested but REDIS_URL is unset.
    """
    if settings.IDENTITY_BACKEND == "redis":
        if not settings.REDIS_URL:
            log.warning(
                "identity.fallback",
                requested="redis",
                actual="memory",
                reason="REDIS_URL not configured"
            )
            return InMemoryIdentityStore(prefix=settings.QUEUE_ID_PREFIX)

        log.info("identity.selected", type="redis", url=str(settings.REDIS_URL))
        return RedisIdentityStore(str(settings.REDIS_URL), prefix=settings.QUEUE_ID_PREFIX)

    log.info("identity.selected", type="memory")
    return InMemoryIdentityStore(prefix=settings.QUEUE_ID_PREFIX)
