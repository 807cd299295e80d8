"""
Room directory: room code -> ordered participants.

Invariants:
- A room is in the directory iff it has at least one participant; the leave
  that empties a room deletes it. A later join with the same code creates a
  fresh room (new creation timestamp).
- A session is in at most one room; `Session.room_code` mirrors membership and
  is only written here, under the directory lock.

join/leave only mutate and return snapshots. Notifying participants is the
caller's job and happens after the lock is released, so an announcement can
never precede the state it describes.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pose_relay.applib.helpers import now_ms
from pose_relay.applib.types import DeviceClass

from .registry import Session

logger = logging.getLogger(__name__)

# Matches JoinRoomRequest.room_id
MAX_ROOM_CODE_LENGTH = 64


@dataclass(frozen=True)
class Participant:
    session: Session
    joined_at: int


@dataclass
class Room:
    code: str
    created_at: int = field(default_factory=now_ms)
    # dict keeps insertion order, which keeps pairing announcements deterministic
    participants: Dict[str, Participant] = field(default_factory=dict)

    def device_classes(self) -> List[DeviceClass]:
        return [p.session.device_class for p in self.participants.values()]


@dataclass(frozen=True)
class LeaveResult:
    room_code: str
    session: Session
    remaining: List[Session]
    room_deleted: bool


@dataclass(frozen=True)
class JoinResult:
    room_code: str
    room_created_at: int
    joined_at: int
    # everyone else, in join order, as (session, joined_at)
    others: List[Participant]
    members: List[Session]
    departed: Optional[LeaveResult] = None
    created: bool = False
    already_member: bool = False
    paired: bool = False

    @property
    def devices(self) -> List[str]:
        return [s.device_type for s in self.members]


class RoomDirectory:
    def __init__(
        self,
        capture_class: DeviceClass = DeviceClass.MOBILE,
        display_class: DeviceClass = DeviceClass.VR,
    ):
        self._rooms: Dict[str, Room] = {}
        self._capture_class = capture_class
        self._display_class = display_class
        self._lock = threading.Lock()

    def _is_paired(self, classes: List[DeviceClass]) -> bool:
        return self._capture_class in classes and self._display_class in classes

    def join(self, session: Session, room_code: str) -> JoinResult:
        with self._lock:
            current = self._rooms.get(room_code)
            if session.room_code == room_code and current is not None and session.session_id in current.participants:
                return JoinResult(
                    room_code=room_code,
                    room_created_at=current.created_at,
                    joined_at=current.participants[session.session_id].joined_at,
                    others=[p for sid, p in current.participants.items() if sid != session.session_id],
                    members=[p.session for p in current.participants.values()],
                    already_member=True,
                )

            departed = self._leave_unlocked(session)

            room = self._rooms.get(room_code)
            created = room is None
            if room is None:
                room = Room(code=room_code)
                self._rooms[room_code] = room
                logger.info("Room %s created", room_code)

            was_paired = self._is_paired(room.device_classes())
            joined_at = now_ms()
            others = list(room.participants.values())
            room.participants[session.session_id] = Participant(session=session, joined_at=joined_at)
            session.room_code = room_code
            paired = not was_paired and self._is_paired(room.device_classes())

            logger.info(
                "Session %s (%s) joined room %s; participants: %s",
                session.session_id,
                session.device_type,
                room_code,
                ", ".join(c.value for c in room.device_classes()),
            )
            return JoinResult(
                room_code=room_code,
                room_created_at=room.created_at,
                joined_at=joined_at,
                others=others,
                members=[p.session for p in room.participants.values()],
                departed=departed,
                created=created,
                paired=paired,
            )

    def leave(self, session: Session) -> Optional[LeaveResult]:
        with self._lock:
            return self._leave_unlocked(session)

    def _leave_unlocked(self, session: Session) -> Optional[LeaveResult]:
        room_code = session.room_code
        if room_code is None:
            return None
        session.room_code = None
        room = self._rooms.get(room_code)
        if room is None or room.participants.pop(session.session_id, None) is None:
            return None

        deleted = not room.participants
        if deleted:
            del self._rooms[room_code]
            logger.info("Room %s deleted (empty)", room_code)
        logger.debug("Session %s left room %s", session.session_id, room_code)
        return LeaveResult(
            room_code=room_code,
            session=session,
            remaining=[p.session for p in room.participants.values()],
            room_deleted=deleted,
        )

    def participants(self, room_code: str) -> List[Session]:
        with self._lock:
            room = self._rooms.get(room_code)
            if room is None:
                return []
            return [p.session for p in room.participants.values()]

    def get(self, room_code: str) -> Optional[Room]:
        return self._rooms.get(room_code)

    def has_room(self, room_code: str) -> bool:
        return room_code in self._rooms

    def room_count(self) -> int:
        return len(self._rooms)

    def rooms(self) -> List[Room]:
        """Shallow copies so callers can iterate without holding the lock."""
        with self._lock:
            return [
                Room(code=r.code, created_at=r.created_at, participants=dict(r.participants))
                for r in self._rooms.values()
            ]

    def clear(self) -> None:
        with self._lock:
            for room in self._rooms.values():
                for p in room.participants.values():
                    p.session.room_code = None
            self._rooms.clear()
