from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for everything that crosses the socket: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra='ignore',
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# Inbound requests

class JoinRoomRequest(WireModel):
    room_id: str = Field(min_length=1, max_length=64)


class DeviceRegisterRequest(WireModel):
    capabilities: Optional[dict[str, Any]] = None
    device_info: Optional[dict[str, Any]] = None


class SyncRequest(WireModel):
    target_session: Optional[str] = None


# Outbound events

class ParticipantInfo(WireModel):
    session_id: str
    device_type: str
    joined_at: Optional[int] = None


class RoomSummary(WireModel):
    id: str
    created: int
    participants: int
    devices: list[str]


class ServerInfo(WireModel):
    version: str
    environment: str
    uptime: float


class ConnectedEvent(WireModel):
    type: Literal['connected'] = 'connected'
    session_id: str
    device_type: str
    server_time: int
    connection_id: str
    server_info: Optional[ServerInfo] = None


class RoomJoinedEvent(WireModel):
    type: Literal['room_joined'] = 'room_joined'
    room_id: str
    participants: list[ParticipantInfo]
    room_created: int


class RoomCreatedEvent(WireModel):
    type: Literal['room_created'] = 'room_created'
    room_id: str


class ParticipantJoinedEvent(WireModel):
    type: Literal['participant_joined'] = 'participant_joined'
    participant: ParticipantInfo


class ParticipantLeftEvent(WireModel):
    type: Literal['participant_left'] = 'participant_left'
    participant: ParticipantInfo


class PairingSuccessEvent(WireModel):
    type: Literal['pairing_success'] = 'pairing_success'
    room_id: str
    devices: list[str]


class PoseDataEvent(WireModel):
    """Relayed pose frame; landmarks and metadata pass through untouched."""
    model_config = ConfigDict(str_strip_whitespace=False)

    type: Literal['pose_data'] = 'pose_data'
    session_id: str
    device_type: str
    timestamp: int
    landmarks: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class DeviceRegisteredEvent(WireModel):
    type: Literal['device_registered'] = 'device_registered'
    session_id: str
    capabilities: Optional[dict[str, Any]] = None


class PingEvent(WireModel):
    """Application heartbeat; answering it with {"type": "pong"} is optional."""
    type: Literal['ping'] = 'ping'
    timestamp: int


class PongEvent(WireModel):
    type: Literal['pong'] = 'pong'
    timestamp: int


class StatsEvent(WireModel):
    type: Literal['stats'] = 'stats'
    server: dict[str, Any]
    connections: dict[str, int]
    messages: dict[str, int]
    rooms: list[RoomSummary]


class RoomListEvent(WireModel):
    type: Literal['room_list'] = 'room_list'
    rooms: list[RoomSummary]


class ErrorEvent(WireModel):
    type: Literal['error'] = 'error'
    message: str
    timestamp: int
