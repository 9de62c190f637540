"""Redis-backed queue identity store."""
import structlog
from redis import Redis
from redis.exceptions import RedisError
from .base import QueueIdentityStore, new_queue_id
from ..config import get_settings

log = structlog.get_logger()


class RedisIdentityStore(QueueIdentityStore):
    """Persists the queue id under a single Redis string key.

    The key is written with SET NX so that two processes starting at once
    settle on the same id.
    """

    def __init__(self, redis_url: str | None = None, prefix: str = "zkbmap-", key: str = "killfeed:queue_id"):
        """
        Initialize Redis identity store.

        Args:
            redis_url: Redis connection URL (defaults to settings.REDIS_URL)
            prefix: Namespace for newly created ids
            key: Redis key holding the id
        """
        super().__init__(prefix)
        self.redis_url = redis_url or str(get_settings().REDIS_URL)
        self.key = key
        self._client: Redis | None = None

    def _get_client(self) -> Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = Redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
        return self._client

    async def get_or_create(self) -> str:
        """
        Read the queue id, creating it if the key does not exist.

        Raises:
            RedisError: If Redis is unreachable
        """
        try:
            client = self._get_client()
            existing = client.get(self.key)
            if existing:
                return existing

            candidate = new_queue_id(self.prefix)
            if client.set(self.key, candidate, nx=True):
                log.info("identity.created", queue_id=candidate, backend="redis")
                return candidate
            # Lost the race; another process wrote first
            return client.get(self.key)

        except RedisError as e:
            log.error("redis.identity_failed", error=str(e), key=self.key)
            raise

    async def health_check(self) -> bool:
        try:
            client = self._get_client()
            return client.ping()
        except Exception as e:
            log.warning("redis.health_check_failed", error=str(e))
            return False

    def close(self):
        """Close Redis connection."""
        if self._client:
            self._client.close()
            self._client = None
