from enum import Enum


class DeviceClass(str, Enum):
    MOBILE = 'mobile'
    VR = 'vr'
    DESKTOP = 'desktop'
    UNKNOWN = 'unknown'

    @classmethod
    def parse(cls, value: str | None) -> "DeviceClass":
        """Map free-text deviceType to a known class; anything else is UNKNOWN."""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN


class MessageType(str, Enum):
    """Inbound envelope types accepted from clients."""
    JOIN_ROOM = 'join_room'
    CREATE_ROOM = 'create_room'
    LEAVE_ROOM = 'leave_room'
    POSE_DATA = 'pose_data'
    DEVICE_REGISTER = 'device_register'
    PING = 'ping'
    PONG = 'pong'
    GET_STATS = 'get_stats'
    ROOM_LIST = 'room_list'
    SYNC_REQUEST = 'sync_request'
    SYNC_RESPONSE = 'sync_response'


class ConnectionState(str, Enum):
    """Server-side view of a connection."""
    CONNECTING = 'connecting'
    OPEN = 'open'
    CLOSING = 'closing'
    CLOSED = 'closed'
