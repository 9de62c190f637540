"""Base interface for queue identity persistence."""
from abc import ABC, abstractmethod
import secrets
import string

_ALPHABET = string.digits + string.ascii_lowercase


def new_queue_id(prefix: str, length: int = 11) -> str:
    """Random base36 queue identity, namespaced by ``prefix``."""
    return prefix + "".join(secrets.choice(_ALPHABET) for _ in range(length))


class QueueIdentityStore(ABC):
    """
    Durable home for the one string that names our RedisQ queue.

    RedisQ keeps a cursor per queue id, so reusing the id across restarts
    resumes where the previous process stopped.
    """

    def __init__(self, prefix: str = "zkbmap-"):
        self.prefix = prefix

    @abstractmethod
    async def get_or_create(self) -> str:
        """
        Return the persisted queue id, creating and saving one if absent.

        Returns:
            Queue identity string
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the backing store is reachable.

        Returns:
            True if healthy, False otherwise
        """
        pass

    def close(self):
        """Release any connection held by the backend."""
        pass
