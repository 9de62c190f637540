"""Value-scaled retention rule."""
from datetime import datetime
from .event_models import Killmail

BASE_RETENTION_MS = 45_000


def elapsed_ms(now: datetime, since: datetime) -> float:
    return (now - since).total_seconds() * 1000


def should_keep(now: datetime, killmail: Killmail, base_retention_ms: float = BASE_RETENTION_MS) -> bool:
    """
    Whether a killmail is still within its retention window.

    The window is ``base_retention_ms * killmail.scaled_value`` measured from
    ``received_at``. Evaluated fresh on every call.
    """
    return elapsed_ms(now, killmail.received_at) < base_retention_ms * killmail.scaled_value
