"""Tests for killmail decoding."""
import pytest
from pydantic import ValidationError
from datetime import datetime, timezone
from killfeed.event_models import (
    MalformedEventError,
    RedisQResponse,
    parse_killmail,
)

FIXED_NOW = datetime(2024, 1, 1, 0, 5, tzinfo=timezone.utc)


def fixed_clock():
    return FIXED_NOW


def esi_killmail(**overrides):
    killmail = {
        "killmail_id": 42,
        "killmail_time": "2024-01-01T00:00:00Z",
        "solar_system_id": 30000142,
        "victim": {
            "character_id": 7,
            "corporation_id": 8,
            "alliance_id": 99,
            "ship_type_id": 587,
            "position": {"x": 1.5, "y": -2.0, "z": 3.25},
        },
    }
    killmail.update(overrides)
    return killmail


ZKB = {
    "totalValue": 1_000_000,
    "fittedValue": 800_000,
    "locationID": 40009077,
    "npc": False,
    "awox": False,
    "solo": True,
    "url": "https://zkillboard.com/kill/42/",
}


def test_parse_wrapped_package():
    """Test the RedisQ shape with killmail and zkb sub-objects."""
    km = parse_killmail({"killmail": esi_killmail(), "zkb": ZKB}, scale=lambda v: v / 1e6, clock=fixed_clock)

    assert km.id == 42
    assert km.time == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert km.received_at == FIXED_NOW
    assert km.character_id == 7
    assert km.corporation_id == 8
    assert km.alliance_id == 99
    assert km.ship_type_id == 587
    assert km.solar_system_id == 30000142
    assert km.position.z == 3.25
    assert km.url == "https://zkillboard.com/kill/42/"
    assert km.total_value == 1_000_000
    assert km.scaled_value == 1.0


def test_wrapped_and_flat_shapes_agree():
    """Test both accepted shapes decode to the same killmail apart from received_at."""
    wrapped = parse_killmail({"killmail": esi_killmail(), "zkb": ZKB})
    flat = parse_killmail({**esi_killmail(), "zkb": ZKB})

    assert wrapped.model_dump(exclude={"received_at"}) == flat.model_dump(exclude={"received_at"})


def test_flat_shape_without_zkb_uses_defaults():
    """Test the legacy flat shape: zero value and a synthesized URL."""
    km = parse_killmail(esi_killmail(killmail_id=1234), scale=lambda v: max(0.5, v), clock=fixed_clock)

    assert km.total_value == 0
    assert km.scaled_value == 0.5
    assert km.url == "https://zkillboard.com/kill/1234/"


def test_custom_url_template():
    """Test the fallback URL follows the configured template."""
    km = parse_killmail(esi_killmail(), url_template="https://kills.example/{id}")
    assert km.url == "https://kills.example/42"


def test_optional_fields_may_be_missing():
    """Test alliance, position and solar system are optional."""
    raw = esi_killmail()
    del raw["solar_system_id"]
    del raw["victim"]["alliance_id"]
    del raw["victim"]["position"]

    km = parse_killmail({"killmail": raw, "zkb": {"totalValue": 10}})

    assert km.alliance_id is None
    assert km.position is None
    assert km.solar_system_id is None
    assert km.total_value == 10


def test_broken_zkb_treated_as_absent():
    """Test unusable market data does not reject the killmail."""
    km = parse_killmail({"killmail": esi_killmail(), "zkb": {"totalValue": "lots"}})
    assert km.total_value == 0
    assert km.url.endswith("/kill/42/")


def test_broken_position_treated_as_absent():
    """Test an unusable victim position does not reject the killmail."""
    raw = esi_killmail()
    raw["victim"]["position"] = {"x": 1.0}

    km = parse_killmail({"killmail": raw, "zkb": ZKB})

    assert km.id == 42
    assert km.position is None
    assert km.total_value == 1_000_000


def test_negative_value_clamped():
    """Test negative values are treated as zero."""
    km = parse_killmail({"killmail": esi_killmail(), "zkb": {"totalValue": -5}}, scale=lambda v: v + 1)
    assert km.total_value == 0
    assert km.scaled_value == 1


def test_naive_timestamp_assumed_utc():
    """Test timestamps without an offset are read as UTC."""
    km = parse_killmail(esi_killmail(killmail_time="2024-01-01T12:30:00"))
    assert km.time == datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc)


def test_received_at_is_call_time_not_source_time():
    """Test received_at comes from the clock, never from killmail_time."""
    km = parse_killmail(esi_killmail(), clock=fixed_clock)
    assert km.received_at == FIXED_NOW
    assert km.received_at != km.time


@pytest.mark.parametrize("mutate", [
    lambda k: k.pop("killmail_id"),
    lambda k: k.pop("killmail_time"),
    lambda k: k.pop("victim"),
    lambda k: k["victim"].pop("character_id"),
    lambda k: k["victim"].pop("ship_type_id"),
    lambda k: k.update(killmail_time="yesterday"),
    lambda k: k.update(killmail_time=1704067200),
    lambda k: k.update(killmail_id="forty-two"),
])
def test_missing_identity_fields_rejected(mutate):
    """Test missing or unparseable identity fields raise MalformedEventError."""
    raw = esi_killmail()
    mutate(raw)

    with pytest.raises(MalformedEventError):
        parse_killmail({"killmail": raw, "zkb": ZKB})


@pytest.mark.parametrize("raw", [None, [], "killmail", 42, {"killmail": None}])
def test_non_object_payload_rejected(raw):
    """Test payloads that are not objects raise MalformedEventError."""
    with pytest.raises(MalformedEventError):
        parse_killmail(raw)


def test_killmail_is_immutable():
    """Test killmails are replaced, never edited."""
    km = parse_killmail(esi_killmail())
    with pytest.raises(ValidationError):
        km.total_value = 5


def test_envelope_package_optional():
    """Test the long-poll envelope with and without a package."""
    assert RedisQResponse.model_validate({"package": None}).package is None
    assert RedisQResponse.model_validate({}).package is None
    assert RedisQResponse.model_validate({"package": {"killmail_id": 1}}).package == {"killmail_id": 1}


def test_envelope_zkb_folded_into_package():
    """Test envelope-level zkb is used only when the package carries none."""
    beside = RedisQResponse.model_validate({"package": {"killmail_id": 1}, "zkb": {"totalValue": 5}})
    inside = RedisQResponse.model_validate({"package": {"killmail_id": 1, "zkb": {"totalValue": 9}}, "zkb": {"totalValue": 5}})

    assert beside.merged_package() == {"killmail_id": 1, "zkb": {"totalValue": 5}}
    assert inside.merged_package()["zkb"] == {"totalValue": 9}
    assert RedisQResponse.model_validate({"zkb": {"totalValue": 5}}).merged_package() is None
