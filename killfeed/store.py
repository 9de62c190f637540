"""
In-memory killmail store with value-scaled expiry and a focus pin
"""

import threading
from datetime import datetime
from typing import Dict, NamedTuple, Optional
import structlog

from .event_models import Killmail, utcnow
from .retention import BASE_RETENTION_MS, should_keep

log = structlog.get_logger()


class StoreSnapshot(NamedTuple):
    """Point-in-time view of the store."""
    killmails: Dict[int, Killmail]
    focused: Optional[Killmail]


class KillmailStore:
    """
    Thread-safe keyed store of live killmails.

    Killmails are only ever removed by ``sweep``. Focus is held by id so it
    never keeps an expired killmail alive; it is cleared in the same critical
    section that removes the focused killmail.
    """

    def __init__(self, base_retention_ms: float = BASE_RETENTION_MS):
        self._killmails: Dict[int, Killmail] = {}
        self._focused_id: Optional[int] = None
        self._lock = threading.RLock()
        self.base_retention_ms = base_retention_ms

    def insert(self, killmail: Killmail) -> None:
        """
        Upsert a killmail by id

        A re-delivered id replaces the previous record, including its
        ``received_at``, so its retention window starts over.
        """
        with self._lock:
            replaced = killmail.id in self._killmails
            self._killmails[killmail.id] = killmail
        log.debug("store.inserted", killmail_id=killmail.id, replaced=replaced)

    def sweep(self, now: Optional[datetime] = None) -> list[int]:
        """
        Remove every killmail whose retention window has elapsed

        Args:
            now: Evaluation time (defaults to current UTC time)

        Returns:
            Ids of the removed killmails
        """
        now = now or utcnow()
        with self._lock:
            kept = {
                killmail_id: killmail
                for killmail_id, killmail in self._killmails.items()
                if should_keep(now, killmail, self.base_retention_ms)
            }
            removed = [killmail_id for killmail_id in self._killmails if killmail_id not in kept]
            self._killmails = kept
            focus_cleared = self._focused_id is not None and self._focused_id not in kept
            if focus_cleared:
                self._focused_id = None

        if removed:
            log.debug(
                "store.swept",
                removed=len(removed),
                remaining=len(kept),
                focus_cleared=focus_cleared,
            )
        return removed

    def focus(self, killmail_id: int) -> Optional[Killmail]:
        """
        Pin a killmail for inspection

        Focusing an id that is not stored clears focus.

        Returns:
            The focused killmail, or None
        """
        with self._lock:
            killmail = self._killmails.get(killmail_id)
            self._focused_id = killmail.id if killmail else None
            return killmail

    def unfocus(self, killmail_id: int) -> bool:
        """
        Clear focus if it is currently on ``killmail_id``

        Returns:
            True if focus was cleared, False if focus was elsewhere
        """
        with self._lock:
            if self._focused_id != killmail_id:
                return False
            self._focused_id = None
            return True

    def focused(self) -> Optional[Killmail]:
        with self._lock:
            if self._focused_id is None:
                return None
            return self._killmails.get(self._focused_id)

    def get(self, killmail_id: int) -> Optional[Killmail]:
        with self._lock:
            return self._killmails.get(killmail_id)

    def snapshot(self) -> StoreSnapshot:
        """Copy of all killmails and the focused one, taken atomically."""
        with self._lock:
            focused = self._killmails.get(self._focused_id) if self._focused_id is not None else None
            return StoreSnapshot(killmails=dict(self._killmails), focused=focused)

    def __len__(self) -> int:
        with self._lock:
            return len(self._killmails)
