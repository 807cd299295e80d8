"""
Relay hub: the one owner of all relay state in this process.

Composes the session registry, room directory, rate limiter, metrics,
broadcaster and liveness monitor, and implements the operations that touch
more than one of them. Consumers and HTTP views only go through the hub.

Ordering rule for composite operations: mutate (under the component lock),
then announce from the returned snapshot. Nothing is announced before the
directory reflects it.
"""

from __future__ import annotations

import logging
import platform
from typing import Any, Callable, Dict, List, Optional

from channels.layers import BaseChannelLayer, get_channel_layer

from pose_relay import __version__
from pose_relay.applib.config import RelaySettings, config
from pose_relay.applib.helpers import generate_room_code, now_ms
from pose_relay.applib.models.api import (
    PairingSuccessEvent,
    ParticipantInfo,
    ParticipantJoinedEvent,
    ParticipantLeftEvent,
    PoseDataEvent,
    RoomSummary,
    ServerInfo,
    StatsEvent,
)
from pose_relay.applib.types import ConnectionState, DeviceClass, MessageType

from .broadcast import Broadcaster
from .exceptions import ProtocolError, TargetNotFound
from .liveness import CLOSE_HEARTBEAT_TIMEOUT, LivenessMonitor
from .metrics import RelayMetrics
from .rate_limit import RateLimiter
from .registry import Session, SessionRegistry
from .rooms import JoinResult, LeaveResult, RoomDirectory
from .tasks import PeriodicTask

logger = logging.getLogger(__name__)


class RelayHub:
    def __init__(
        self,
        settings: RelaySettings = config,
        layer_factory: Callable[[], Optional[BaseChannelLayer]] = get_channel_layer,
    ):
        self.settings = settings
        self._layer_factory = layer_factory
        self.autostart_monitors = settings.RELAY_AUTOSTART_MONITORS
        self._build()

    def _build(self) -> None:
        s = self.settings
        self.registry = SessionRegistry()
        self.directory = RoomDirectory(
            capture_class=DeviceClass.parse(s.RELAY_CAPTURE_DEVICE),
            display_class=DeviceClass.parse(s.RELAY_DISPLAY_DEVICE),
        )
        self.limiter = RateLimiter(
            limit=s.RELAY_POSE_RATE_LIMIT,
            window_ms=s.RELAY_RATE_WINDOW_MS,
            idle_purge_ms=s.RELAY_RATE_IDLE_PURGE_MS,
        )
        self.metrics = RelayMetrics()
        self.broadcaster = Broadcaster(self.directory, self._layer_factory)
        self.monitor = LivenessMonitor(self.registry, self.broadcaster, self.evict)
        self._liveness_task = PeriodicTask(
            "liveness-monitor", s.RELAY_HEARTBEAT_INTERVAL_SECONDS, self.monitor.run_cycle
        )
        self._sweep_task = PeriodicTask("rate-limit-sweep", s.RELAY_RATE_SWEEP_SECONDS, self._sweep)

    async def _sweep(self) -> None:
        self.limiter.sweep()

    def start_background(self) -> None:
        self._liveness_task.start()
        self._sweep_task.start()

    def stop_background(self) -> None:
        self._liveness_task.stop()
        self._sweep_task.stop()

    def reset(self) -> None:
        """Drop every session, room and counter. Used between tests."""
        self.stop_background()
        self._build()

    # Connection lifecycle

    async def connect(self, channel_name: str, requested_id: Optional[str], device_type: Optional[str]) -> Session:
        session = self.registry.register(requested_id, DeviceClass.parse(device_type), channel_name)
        self.metrics.connection_opened()
        if self.autostart_monitors:
            self.start_background()
        logger.info(
            "Connection: %s (%s); %d active",
            session.device_type,
            session.session_id,
            self.registry.count(),
        )
        return session

    async def disconnect(self, session: Session) -> bool:
        """Full cleanup for a closed or evicted connection. Safe to call more than once."""
        if not self.registry.unregister(session):
            session.state = ConnectionState.CLOSED
            return False
        session.state = ConnectionState.CLOSING
        departed = self.directory.leave(session)
        self.limiter.purge(session.session_id)
        self.metrics.connection_closed()
        session.state = ConnectionState.CLOSED
        logger.info("Disconnect: %s (%s); %d active", session.device_type, session.session_id, self.registry.count())
        if departed is not None:
            await self._announce_departure(departed)
        return True

    async def evict(self, session: Session) -> None:
        await self.disconnect(session)
        await self.broadcaster.terminate(session, CLOSE_HEARTBEAT_TIMEOUT)

    # Rooms

    async def join(self, session: Session, room_code: str) -> JoinResult:
        result = self.directory.join(session, room_code)
        if result.departed is not None:
            await self._announce_departure(result.departed)
        return result

    async def announce_join(self, session: Session, result: JoinResult) -> None:
        """Tell the rest of the room about an arrival; send pairing_success on a new pair."""
        if result.already_member:
            return
        participant = ParticipantInfo(
            session_id=session.session_id,
            device_type=session.device_type,
            joined_at=result.joined_at,
        )
        await self.broadcaster.fan_out(
            result.members, ParticipantJoinedEvent(participant=participant), session.session_id
        )
        if result.paired:
            logger.info("Pairing success in room %s: %s", result.room_code, ", ".join(result.devices))
            await self.broadcaster.fan_out(
                result.members, PairingSuccessEvent(room_id=result.room_code, devices=result.devices)
            )

    async def leave(self, session: Session) -> Optional[LeaveResult]:
        departed = self.directory.leave(session)
        if departed is not None:
            await self._announce_departure(departed)
        return departed

    async def _announce_departure(self, departed: LeaveResult) -> None:
        participant = ParticipantInfo(
            session_id=departed.session.session_id,
            device_type=departed.session.device_type,
        )
        await self.broadcaster.fan_out(departed.remaining, ParticipantLeftEvent(participant=participant))

    def mint_room_code(self) -> str:
        while True:
            code = generate_room_code(self.settings.RELAY_ROOM_CODE_LENGTH)
            if not self.directory.has_room(code):
                return code

    # Streams and targeted messages

    async def relay_pose(self, session: Session, message: Dict[str, Any]) -> Optional[int]:
        """Fan a pose frame out to the sender's room.

        Returns the number of deliveries, or None when the rate limiter dropped
        the frame. Payload fields are passed through without interpretation.
        """
        if not self.limiter.admit(session.session_id, MessageType.POSE_DATA):
            return None
        if session.room_code is None:
            return 0

        now = now_ms()
        produced_at = message.get("timestamp")
        if isinstance(produced_at, (int, float)) and not isinstance(produced_at, bool):
            latency = int(now - produced_at)
        else:
            latency = 0
        metadata = dict(message["metadata"]) if isinstance(message.get("metadata"), dict) else {}
        metadata.update(serverReceived=now, latency=latency)

        event = PoseDataEvent(
            session_id=session.session_id,
            device_type=session.device_type,
            timestamp=now,
            landmarks=message.get("landmarks"),
            metadata=metadata,
        )
        return await self.broadcaster.broadcast(session.room_code, event, exclude_session_id=session.session_id)

    async def forward_sync(self, session: Session, message: Dict[str, Any], target_session: Optional[str]) -> int:
        """Forward a sync message verbatim with the sender's id attached.

        With a target: to that session only, TargetNotFound if it is absent or
        closed. Without one: to the sender's room peers.
        """
        payload = {**message, "sourceSession": session.session_id}
        if target_session:
            target = self.registry.lookup(target_session)
            if target is None or not target.is_open:
                raise TargetNotFound(target_session)
            return int(await self.broadcaster.send_to(target, payload))
        if session.room_code is None:
            raise ProtocolError(f"{message.get('type')} needs a targetSession when not in a room")
        return await self.broadcaster.broadcast(session.room_code, payload, exclude_session_id=session.session_id)

    # Snapshots

    def room_summaries(self) -> List[RoomSummary]:
        return [
            RoomSummary(
                id=room.code,
                created=room.created_at,
                participants=len(room.participants),
                devices=[c.value for c in room.device_classes()],
            )
            for room in self.directory.rooms()
        ]

    def server_info(self) -> ServerInfo:
        return ServerInfo(
            version=__version__,
            environment=self.settings.RELAY_ENVIRONMENT,
            uptime=round(self.metrics.uptime(), 3),
        )

    def stats(self) -> StatsEvent:
        snap = self.metrics.snapshot()
        return StatsEvent(
            server={
                "uptime": snap.uptime_seconds,
                "version": __version__,
                "environment": self.settings.RELAY_ENVIRONMENT,
                "platform": platform.system().lower(),
                "pythonVersion": platform.python_version(),
            },
            connections={
                "current": self.registry.count(),
                "total": snap.connections_opened,
                "rooms": self.directory.room_count(),
            },
            messages={"sent": snap.messages_sent, "received": snap.messages_received},
            rooms=self.room_summaries(),
        )


# Process-wide instance used by consumers and views.
relay_hub = RelayHub()
