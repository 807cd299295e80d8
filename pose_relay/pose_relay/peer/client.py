"""
Relay peer: a WebSocket client that keeps one session alive across drops.

On every (re)connection the peer re-sends `device_register` and, once the
server confirms it, its `join_room` intent. It answers server heartbeats with
`pong` and adopts whatever session id the `connected` envelope carries, so a
reconnect keeps the old id when the server still has it free.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from urllib.parse import urlencode, urlsplit, urlunsplit

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from pose_relay.applib.helpers import encode_envelope, now_ms
from pose_relay.applib.models.api import WireModel

from .reconnect import ConnectionStateMachine, PeerState, ReconnectPolicy

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]
MessageHandler = Callable[[Dict[str, Any]], Awaitable[None]]

# Failures that count as one failed connection attempt.
CONNECT_ERRORS: Tuple[type, ...] = (OSError, InvalidHandshake, asyncio.TimeoutError)


def _default_connector(origin: Optional[str]) -> Connector:
    async def _connect(url: str):
        headers = [("Origin", origin)] if origin else None
        return await ws_connect(url, additional_headers=headers, open_timeout=10)

    return _connect


class RelayPeer:
    def __init__(
        self,
        url: str,
        *,
        device_type: str = "desktop",
        room_id: Optional[str] = None,
        session_id: Optional[str] = None,
        capabilities: Optional[Dict[str, Any]] = None,
        policy: Optional[ReconnectPolicy] = None,
        connector: Optional[Connector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        origin: Optional[str] = None,
        on_message: Optional[MessageHandler] = None,
    ):
        self.url = url
        self.device_type = device_type
        self.room_id = room_id
        self.session_id = session_id
        self.capabilities = capabilities or {}
        self.policy = policy or ReconnectPolicy()
        self.machine = ConnectionStateMachine()
        self._connector = connector or _default_connector(origin)
        self._sleep = sleep
        self.on_message = on_message
        self._ws: Any = None
        self._stopping = False
        self.connections = 0
        self.last_pose_at: Optional[int] = None

    @property
    def state(self) -> PeerState:
        return self.machine.state

    def connection_url(self) -> str:
        """Base URL with sessionId / deviceType added to any existing query."""
        parts = urlsplit(self.url)
        params = {"deviceType": self.device_type}
        if self.session_id:
            params["sessionId"] = self.session_id
        query = "&".join(q for q in (parts.query, urlencode(params)) if q)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))

    async def run(self) -> PeerState:
        """Connect and serve until stop(); reconnect with backoff. Returns closed or failed."""
        if not urlsplit(self.url).scheme.startswith("ws"):
            raise ValueError(f"Expected a ws:// or wss:// URL, got {self.url!r}")
        while not self._stopping:
            self.machine.transition(PeerState.CONNECTING)
            try:
                ws = await self._connector(self.connection_url())
            except CONNECT_ERRORS as exc:
                logger.warning("Connection to %s failed: %s", self.url, exc)
                self.machine.transition(PeerState.CLOSED)
                if not await self._backoff():
                    break
                continue

            self.policy.reset()
            self.connections += 1
            self._ws = ws
            self.machine.transition(PeerState.OPEN)
            try:
                await self._register()
                await self._read_loop(ws)
            except ConnectionClosed as exc:
                logger.info("Connection closed: %s", exc)
            finally:
                self._ws = None
                self.machine.transition(PeerState.CLOSED)

            if self._stopping or not await self._backoff():
                break
        return self.state

    async def _backoff(self) -> bool:
        delay = self.policy.next_delay()
        if delay is None:
            self.machine.transition(PeerState.FAILED)
            logger.error("Giving up after %d reconnect attempts", self.policy.max_attempts)
            return False
        logger.info(
            "Reconnecting in %.1fs (%d/%d)", delay, self.policy.attempts, self.policy.max_attempts
        )
        await self._sleep(delay)
        return not self._stopping

    async def stop(self) -> None:
        self._stopping = True
        ws = self._ws
        if ws is not None:
            if self.machine.can(PeerState.CLOSING):
                self.machine.transition(PeerState.CLOSING)
            await ws.close()

    async def send(self, envelope: WireModel | Dict[str, Any]) -> bool:
        """Send if a socket is open; False otherwise (the message is not queued).

        A socket that dropped under us also yields False; the read loop sees the
        same close and run() reconnects.
        """
        if self._ws is None or self.state in (PeerState.CONNECTING, PeerState.CLOSING, PeerState.CLOSED):
            return False
        try:
            await self._ws.send(encode_envelope(envelope))
        except ConnectionClosed as exc:
            logger.info("Send failed, connection closed: %s", exc)
            return False
        return True

    async def join(self, room_id: str) -> bool:
        self.room_id = room_id
        if self.state not in (PeerState.REGISTERED, PeerState.IN_ROOM):
            # Sent after device_registered on the next connection.
            return False
        return await self.send({"type": "join_room", "roomId": room_id})

    async def leave(self) -> bool:
        self.room_id = None
        sent = await self.send({"type": "leave_room"})
        if sent and self.state == PeerState.IN_ROOM:
            self.machine.transition(PeerState.REGISTERED)
        return sent

    async def send_pose(self, frame: WireModel | Dict[str, Any]) -> bool:
        if self.state != PeerState.IN_ROOM:
            return False
        sent = await self.send(frame)
        if sent:
            self.last_pose_at = now_ms()
        return sent

    async def _register(self) -> None:
        await self.send(
            {
                "type": "device_register",
                "deviceType": self.device_type,
                "capabilities": self.capabilities,
            }
        )

    async def _read_loop(self, ws: Any) -> None:
        async for raw in ws:
            try:
                message = json.loads(raw)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-JSON frame from server")
                continue
            if not isinstance(message, dict):
                continue
            await self._handle(message)
            if self.on_message is not None:
                await self.on_message(message)

    async def _handle(self, message: Dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "connected":
            adopted = message.get("sessionId")
            if adopted and adopted != self.session_id:
                logger.info("Session id %s", adopted)
            self.session_id = adopted or self.session_id
        elif kind == "device_registered":
            if self.state == PeerState.OPEN:
                self.machine.transition(PeerState.REGISTERED)
            if self.room_id and self.state == PeerState.REGISTERED:
                await self.send({"type": "join_room", "roomId": self.room_id})
        elif kind == "room_joined":
            self.room_id = message.get("roomId") or self.room_id
            if self.state == PeerState.REGISTERED:
                self.machine.transition(PeerState.IN_ROOM)
        elif kind == "room_created":
            self.room_id = message.get("roomId") or self.room_id
        elif kind == "ping":
            await self.send({"type": "pong"})
        elif kind == "sync_request":
            source = message.get("sourceSession")
            if source:
                await self.send(
                    {
                        "type": "sync_response",
                        "targetSession": source,
                        "currentState": self.sync_state(),
                    }
                )
        elif kind == "error":
            logger.warning("Server error: %s", message.get("message"))

    def sync_state(self) -> Dict[str, Any]:
        return {
            "deviceType": self.device_type,
            "roomId": self.room_id,
            "lastPoseTime": self.last_pose_at,
        }

