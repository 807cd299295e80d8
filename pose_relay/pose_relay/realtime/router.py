"""
Inbound envelope decoding and dispatch.

Every member of MessageType has exactly one handler; the table is checked at
construction so a new type cannot be added without one. Anything that fails to
decode, or names a type outside the enum, becomes a ProtocolError and is
answered with an `error` envelope on the same connection, which stays open.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Tuple, Type, TypeVar

from pydantic import ValidationError

from pose_relay.applib.helpers import now_ms
from pose_relay.applib.models.api import (
    DeviceRegisteredEvent,
    DeviceRegisterRequest,
    ErrorEvent,
    JoinRoomRequest,
    ParticipantInfo,
    PongEvent,
    RoomCreatedEvent,
    RoomJoinedEvent,
    RoomListEvent,
    SyncRequest,
    WireModel,
)
from pose_relay.applib.types import MessageType

from .exceptions import ProtocolError, RelayError
from .hub import RelayHub
from .liveness import LivenessMonitor
from .registry import Session
from .rooms import JoinResult

logger = logging.getLogger(__name__)

Reply = Callable[[WireModel | Dict[str, Any]], Awaitable[None]]
Handler = Callable[[Session, Dict[str, Any], Reply], Awaitable[None]]
RequestT = TypeVar("RequestT", bound=WireModel)


def decode_envelope(raw: str | bytes | None) -> Tuple[MessageType, Dict[str, Any]]:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise ProtocolError("Invalid message format") from None
    if not raw:
        raise ProtocolError("Invalid message format")
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        raise ProtocolError("Invalid message format") from None
    if not isinstance(message, dict):
        raise ProtocolError("Invalid message format")

    type_ = message.get("type")
    if not isinstance(type_, str) or not type_:
        raise ProtocolError("Missing message type")
    try:
        return MessageType(type_), message
    except ValueError:
        raise ProtocolError(f"Unknown message type: {type_}") from None


def parse_request(model: Type[RequestT], message: Dict[str, Any]) -> RequestT:
    try:
        return model.model_validate(message)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "payload"
        raise ProtocolError(f"Invalid {message.get('type')} payload: {field}: {first.get('msg')}") from None


class MessageRouter:
    def __init__(self, hub: RelayHub):
        self.hub = hub
        self._handlers: Dict[MessageType, Handler] = {
            MessageType.JOIN_ROOM: self._handle_join_room,
            MessageType.CREATE_ROOM: self._handle_create_room,
            MessageType.LEAVE_ROOM: self._handle_leave_room,
            MessageType.POSE_DATA: self._handle_pose_data,
            MessageType.DEVICE_REGISTER: self._handle_device_register,
            MessageType.PING: self._handle_ping,
            MessageType.PONG: self._handle_pong,
            MessageType.GET_STATS: self._handle_get_stats,
            MessageType.ROOM_LIST: self._handle_room_list,
            MessageType.SYNC_REQUEST: self._handle_sync,
            MessageType.SYNC_RESPONSE: self._handle_sync,
        }
        missing = set(MessageType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for message types: {sorted(m.value for m in missing)}")

    async def dispatch(self, session: Session, raw: str | bytes | None, reply: Reply) -> None:
        try:
            message_type, message = decode_envelope(raw)
            logger.debug("%s (%s): %s", session.device_type, session.session_id, message_type.value)
            await self._handlers[message_type](session, message, reply)
        except RelayError as exc:
            logger.debug("Rejected frame from %s: %s", session.session_id, exc.message)
            await reply(ErrorEvent(message=exc.message, timestamp=now_ms()))
        except Exception:
            # Contained to this connection; the socket stays open.
            logger.exception("Handler failed for session %s", session.session_id)
            await reply(ErrorEvent(message="Internal server error", timestamp=now_ms()))

    async def join_room(self, session: Session, room_code: str, reply: Reply) -> JoinResult:
        """Join, confirm to the joiner, then announce to the room (also used for ?roomId= auto-join)."""
        result = await self.hub.join(session, room_code)
        await reply(
            RoomJoinedEvent(
                room_id=result.room_code,
                participants=[
                    ParticipantInfo(
                        session_id=p.session.session_id,
                        device_type=p.session.device_type,
                        joined_at=p.joined_at,
                    )
                    for p in result.others
                ],
                room_created=result.room_created_at,
            )
        )
        await self.hub.announce_join(session, result)
        return result

    async def _handle_join_room(self, session: Session, message: Dict[str, Any], reply: Reply) -> None:
        request = parse_request(JoinRoomRequest, message)
        await self.join_room(session, request.room_id, reply)

    async def _handle_create_room(self, session: Session, message: Dict[str, Any], reply: Reply) -> None:
        room_code = self.hub.mint_room_code()
        await self.join_room(session, room_code, reply)
        await reply(RoomCreatedEvent(room_id=room_code))

    async def _handle_leave_room(self, session: Session, message: Dict[str, Any], reply: Reply) -> None:
        await self.hub.leave(session)

    async def _handle_pose_data(self, session: Session, message: Dict[str, Any], reply: Reply) -> None:
        # Dropped frames (rate limit, no room) get no reply.
        await self.hub.relay_pose(session, message)

    async def _handle_device_register(self, session: Session, message: Dict[str, Any], reply: Reply) -> None:
        request = parse_request(DeviceRegisterRequest, message)
        session.capabilities = request.capabilities
        session.device_info = request.device_info
        await reply(DeviceRegisteredEvent(session_id=session.session_id, capabilities=session.capabilities))

    async def _handle_ping(self, session: Session, message: Dict[str, Any], reply: Reply) -> None:
        await reply(PongEvent(timestamp=now_ms()))

    async def _handle_pong(self, session: Session, message: Dict[str, Any], reply: Reply) -> None:
        LivenessMonitor.acknowledge(session)

    async def _handle_get_stats(self, session: Session, message: Dict[str, Any], reply: Reply) -> None:
        await reply(self.hub.stats())

    async def _handle_room_list(self, session: Session, message: Dict[str, Any], reply: Reply) -> None:
        await reply(RoomListEvent(rooms=self.hub.room_summaries()))

    async def _handle_sync(self, session: Session, message: Dict[str, Any], reply: Reply) -> None:
        request = parse_request(SyncRequest, message)
        await self.hub.forward_sync(session, message, request.target_session)
