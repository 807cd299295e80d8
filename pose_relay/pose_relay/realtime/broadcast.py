"""
Fan-out of envelopes to room participants.

Every delivery goes through the channel layer to the recipient consumer's
`relay_frame` handler, which writes the pre-encoded text to its socket. The
layer gives each connection its own FIFO queue, so:
- a slow or stuck peer only fills its own queue and never delays the others;
- frames from one sender reach each recipient in the order they were sent.

A recipient that is not open, or whose queue is full, is skipped without
error; a stale entry is a transient race, not a failure.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

from channels.exceptions import ChannelFull
from channels.layers import BaseChannelLayer, get_channel_layer

from pose_relay.applib.helpers import encode_envelope
from pose_relay.applib.models.api import WireModel

from .registry import Session
from .rooms import RoomDirectory

logger = logging.getLogger(__name__)

# Channel-layer event types; Channels maps them to RelayConsumer.relay_frame / relay_terminate.
RELAY_FRAME = "relay.frame"
RELAY_TERMINATE = "relay.terminate"

Envelope = WireModel | dict[str, Any]


class Broadcaster:
    def __init__(
        self,
        directory: RoomDirectory,
        layer_factory: Callable[[], Optional[BaseChannelLayer]] = get_channel_layer,
    ):
        self._directory = directory
        self._layer_factory = layer_factory
        self._layer: Optional[BaseChannelLayer] = None

    @property
    def layer(self) -> BaseChannelLayer:
        if self._layer is None:
            layer = self._layer_factory()
            if layer is None:
                raise RuntimeError("No channel layer configured (CHANNEL_LAYERS is empty)")
            self._layer = layer
        return self._layer

    async def broadcast(
        self,
        room_code: str,
        envelope: Envelope,
        exclude_session_id: Optional[str] = None,
    ) -> int:
        """Send to the room as it stands now; returns the number of deliveries queued."""
        return await self.fan_out(self._directory.participants(room_code), envelope, exclude_session_id)

    async def fan_out(
        self,
        sessions: Iterable[Session],
        envelope: Envelope,
        exclude_session_id: Optional[str] = None,
    ) -> int:
        recipients = [s for s in sessions if s.session_id != exclude_session_id and s.is_open]
        if not recipients:
            return 0
        text = encode_envelope(envelope)
        delivered = 0
        for session in recipients:
            if await self._deliver(session, text):
                delivered += 1
        return delivered

    async def send_to(self, session: Session, envelope: Envelope) -> bool:
        if not session.is_open:
            return False
        return await self._deliver(session, encode_envelope(envelope))

    async def terminate(self, session: Session, code: int) -> None:
        """Ask the session's consumer to close its socket."""
        try:
            await self.layer.send(session.channel_name, {"type": RELAY_TERMINATE, "code": code})
        except ChannelFull:
            logger.warning(
                "Could not queue close for %s: channel full; closing on its next frame", session.session_id
            )

    async def _deliver(self, session: Session, text: str) -> bool:
        try:
            await self.layer.send(session.channel_name, {"type": RELAY_FRAME, "text": text})
        except ChannelFull:
            logger.debug("Outbound queue full for %s; frame dropped", session.session_id)
            return False
        return True

    def reset(self) -> None:
        self._layer = None
