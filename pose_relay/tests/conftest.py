import itertools
import json
from typing import Any, Dict, List, Tuple

import pytest
from channels.exceptions import ChannelFull
from channels.layers import channel_layers

from pose_relay.applib.config import RelaySettings
from pose_relay.realtime.broadcast import RELAY_FRAME
from pose_relay.realtime.hub import RelayHub, relay_hub


class FakeLayer:
    """Records channel-layer sends; channels listed in `full` raise ChannelFull."""

    def __init__(self):
        self.sent: List[Tuple[str, Dict[str, Any]]] = []
        self.full = set()

    async def send(self, channel: str, message: Dict[str, Any]) -> None:
        if channel in self.full:
            raise ChannelFull()
        self.sent.append((channel, message))

    def frames_for(self, channel: str) -> List[Dict[str, Any]]:
        return [json.loads(m["text"]) for c, m in self.sent if c == channel and m["type"] == RELAY_FRAME]

    def types_for(self, channel: str) -> List[str]:
        return [f["type"] for f in self.frames_for(channel)]


@pytest.fixture(autouse=True)
def fresh_relay():
    """Every test starts with an empty process-wide hub and a new in-memory layer."""
    channel_layers.backends.clear()
    relay_hub.reset()
    relay_hub.autostart_monitors = False
    yield relay_hub
    relay_hub.stop_background()
    channel_layers.backends.clear()


@pytest.fixture
def fake_layer():
    return FakeLayer()


@pytest.fixture
def hub(fake_layer):
    return RelayHub(settings=RelaySettings(RELAY_AUTOSTART_MONITORS=False), layer_factory=lambda: fake_layer)


@pytest.fixture
def connect(hub):
    """Register a session on the unit-test hub: await connect("mobile", "a")."""
    counter = itertools.count(1)

    async def _connect(device_type: str = "desktop", session_id: str = None):
        channel = f"test.chan.{next(counter)}"
        return await hub.connect(channel, session_id, device_type)

    return _connect

