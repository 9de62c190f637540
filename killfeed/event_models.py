"""Killmail wire shapes and the canonical record kept in the store."""
from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidatorFunctionWrapHandler, field_validator
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping
import structlog

from .scaling import scale_value

log = structlog.get_logger()

DEFAULT_KILL_URL = "https://zkillboard.com/kill/{id}/"


class MalformedEventError(ValueError):
    """Payload is missing or has unparseable identity fields."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Position(BaseModel):
    x: float
    y: float
    z: float


class Victim(BaseModel):
    model_config = ConfigDict(extra="ignore")

    character_id: int
    corporation_id: int
    alliance_id: int | None = None
    ship_type_id: int
    position: Position | None = None

    @field_validator("position", mode="wrap")
    @classmethod
    def _optional_position(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> Position | None:
        try:
            return handler(value)
        except ValidationError as e:
            log.warning("killmail.position_invalid", error=str(e))
            return None


class KillmailBody(BaseModel):
    """The ESI killmail, either under ``killmail`` or at the top level."""
    model_config = ConfigDict(extra="ignore")

    killmail_id: int
    killmail_time: datetime
    solar_system_id: int | None = None
    victim: Victim

    @field_validator("killmail_time", mode="before")
    @classmethod
    def _iso_timestamp(cls, value: Any) -> datetime:
        if not isinstance(value, str):
            raise ValueError("killmail_time must be an ISO 8601 string")
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed


class ZkbInfo(BaseModel):
    """zKillboard market metadata. Only the fields we use are declared."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    total_value: float = Field(default=0, alias="totalValue")
    url: str | None = None


class RedisQResponse(BaseModel):
    """
    Long-poll envelope. ``package`` is null when the wait hint elapsed.

    zKillboard metadata may arrive inside the package or beside it.
    """
    package: Dict[str, Any] | None = None
    zkb: Any = None

    def merged_package(self) -> Dict[str, Any] | None:
        """The package with an envelope-level ``zkb`` folded in if it has none."""
        if self.package is None or self.zkb is None or "zkb" in self.package:
            return self.package
        return {**self.package, "zkb": self.zkb}


class Killmail(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    time: datetime
    received_at: datetime
    character_id: int
    corporation_id: int
    alliance_id: int | None = None
    ship_type_id: int
    solar_system_id: int | None = None
    position: Position | None = None
    url: str
    total_value: float = 0
    scaled_value: float


def _parse_zkb(raw: Any) -> ZkbInfo | None:
    if raw is None:
        return None
    try:
        return ZkbInfo.model_validate(raw)
    except ValidationError as e:
        # Market data is optional; a broken block is treated as absent
        log.warning("killmail.zkb_invalid", error=str(e))
        return None


def parse_killmail(
    raw: Any,
    scale: Callable[[float], float] = scale_value,
    clock: Callable[[], datetime] = utcnow,
    url_template: str = DEFAULT_KILL_URL,
) -> Killmail:
    """
    Normalize a RedisQ package (or a legacy flat killmail) into a Killmail.

    Accepts ``{"killmail": {...}, "zkb": {...}}`` as well as the flat shape
    where the killmail fields sit at the top level, with or without ``zkb``.

    Args:
        raw: Decoded JSON payload
        scale: Maps total value onto the retention multiplier
        clock: Source of ``received_at``
        url_template: Used when zkb does not supply a URL

    Returns:
        Killmail stamped with the time of this call

    Raises:
        MalformedEventError: If id, time, victim identity or ship type are
            missing or unparseable
    """
    if not isinstance(raw, Mapping):
        raise MalformedEventError(f"expected an object, got {type(raw).__name__}")

    body = raw["killmail"] if "killmail" in raw else raw
    try:
        km = KillmailBody.model_validate(body)
    except ValidationError as e:
        raise MalformedEventError(str(e)) from e

    zkb = _parse_zkb(raw.get("zkb"))
    total_value = max(0.0, zkb.total_value) if zkb else 0.0
    url = zkb.url if zkb and zkb.url else url_template.format(id=km.killmail_id)

    return Killmail(
        id=km.killmail_id,
        time=km.killmail_time,
        received_at=clock(),
        character_id=km.victim.character_id,
        corporation_id=km.victim.corporation_id,
        alliance_id=km.victim.alliance_id,
        ship_type_id=km.victim.ship_type_id,
        solar_system_id=km.solar_system_id,
        position=km.victim.position,
        url=url,
        total_value=total_value,
        scaled_value=scale(total_value),
    )
