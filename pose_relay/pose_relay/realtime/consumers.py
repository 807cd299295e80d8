"""
WebSocket consumer for pose relay sessions.

Key behavior:
- URL: /ws (trailing slash optional), query: ?sessionId=&deviceType=&roomId=
- Every accepted socket becomes a Session in the relay hub and gets a
  `connected` envelope with its (possibly newly minted) session id.
- `roomId` in the query string joins that room right after `connected`.
- Frames for this socket from other connections arrive through the channel
  layer as `relay.frame` / `relay.terminate` events.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

from channels.generic.websocket import AsyncWebsocketConsumer

from pose_relay.applib.helpers import encode_envelope, now_ms
from pose_relay.applib.models.api import ConnectedEvent, WireModel
from pose_relay.applib.types import ConnectionState

from .hub import relay_hub
from .liveness import CLOSE_HEARTBEAT_TIMEOUT, LivenessMonitor
from .registry import Session
from .rooms import MAX_ROOM_CODE_LENGTH
from .router import MessageRouter

logger = logging.getLogger(__name__)


def _query_params(scope: dict) -> Dict[str, str]:
    """First value of each query parameter, blanks dropped."""
    raw = (scope.get("query_string") or b"").decode("utf-8", errors="replace")
    return {k: v[0].strip() for k, v in parse_qs(raw).items() if v and v[0].strip()}


class RelayConsumer(AsyncWebsocketConsumer):
    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.hub = relay_hub
        self.router = MessageRouter(self.hub)
        self.session: Optional[Session] = None
        self.connection_id: str = uuid.uuid4().hex

    async def connect(self) -> None:
        params = _query_params(self.scope)
        await self.accept()

        self.session = await self.hub.connect(self.channel_name, params.get("sessionId"), params.get("deviceType"))
        event = ConnectedEvent(
            session_id=self.session.session_id,
            device_type=self.session.device_type,
            server_time=now_ms(),
            connection_id=self.connection_id,
        )
        if self.hub.settings.RELAY_VERBOSE_LOGGING:
            event.server_info = self.hub.server_info()
        await self.send_envelope(event)

        room_id = params.get("roomId", "")[:MAX_ROOM_CODE_LENGTH]
        if room_id:
            await self.router.join_room(self.session, room_id, self.send_envelope)

    async def disconnect(self, close_code: int) -> None:
        if self.session is not None:
            logger.debug("Socket closed for %s (code=%s)", self.session.session_id, close_code)
            await self.hub.disconnect(self.session)

    async def receive(self, text_data: Optional[str] = None, bytes_data: Optional[bytes] = None) -> None:
        if self.session is None:
            return
        if self.session.state == ConnectionState.CLOSED:
            # Evicted, but the close request was never queued (channel full).
            logger.info("Closing evicted socket for %s", self.session.session_id)
            await self.close(code=CLOSE_HEARTBEAT_TIMEOUT)
            return
        if not self.session.is_open:
            return
        LivenessMonitor.mark_alive(self.session)
        self.hub.metrics.message_received()
        await self.router.dispatch(self.session, text_data if text_data is not None else bytes_data, self.send_envelope)

    async def relay_frame(self, event: Dict[str, Any]) -> None:
        """Pre-encoded envelope from another connection (broadcast, ping, forwarded sync)."""
        if self.session is None or not self.session.is_open:
            return
        await self.send(text_data=event["text"])
        self.hub.metrics.message_sent()

    async def relay_terminate(self, event: Dict[str, Any]) -> None:
        await self.close(code=event.get("code"))

    async def send_envelope(self, envelope: WireModel | Dict[str, Any]) -> None:
        await self.send(text_data=encode_envelope(envelope))
        self.hub.metrics.message_sent()
