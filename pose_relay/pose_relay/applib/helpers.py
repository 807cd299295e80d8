import json
import secrets
import string
import time
from typing import Any

from pose_relay.applib.models.api import WireModel

_ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits


def now_ms() -> int:
    """Wall-clock milliseconds since the epoch (the unit every envelope timestamp uses)."""
    return int(time.time() * 1000)


def generate_session_id() -> str:
    return secrets.token_hex(6)


def generate_room_code(length: int = 6) -> str:
    return ''.join(secrets.choice(_ROOM_CODE_ALPHABET) for _ in range(length))


def encode_envelope(envelope: WireModel | dict[str, Any]) -> str:
    if isinstance(envelope, WireModel):
        envelope = envelope.to_wire()
    return json.dumps(envelope, separators=(",", ":"), ensure_ascii=False)
