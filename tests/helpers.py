"""Shared builders for killmail tests."""
from datetime import datetime, timezone
from killfeed.event_models import Killmail

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_killmail(killmail_id: int = 1, received_at: datetime = T0, scaled_value: float = 1.0, total_value: float = 0, **fields) -> Killmail:
    return Killmail(
        id=killmail_id,
        time=fields.pop("time", T0),
        received_at=received_at,
        character_id=fields.pop("character_id", 7),
        corporation_id=fields.pop("corporation_id", 8),
        ship_type_id=fields.pop("ship_type_id", 587),
        solar_system_id=fields.pop("solar_system_id", 30000142),
        url=fields.pop("url", f"https://zkillboard.com/kill/{killmail_id}/"),
        total_value=total_value,
        scaled_value=scaled_value,
        **fields,
    )
