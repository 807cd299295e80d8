"""
Session registry: every live connection by session id.

Design:
- One dict keyed by session id holds the Session record.
- Ids are unique among *active* sessions; a requested id that is already taken
  is replaced by a freshly generated one. An id is free again once its owner
  unregisters.
- Removal is identity-checked so a late cleanup from an evicted connection can
  never drop a newer connection that reused the same id.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pose_relay.applib.helpers import generate_session_id, now_ms
from pose_relay.applib.types import ConnectionState, DeviceClass

logger = logging.getLogger(__name__)

MAX_SESSION_ID_LENGTH = 64


@dataclass(eq=False)
class Session:
    session_id: str
    device_class: DeviceClass
    channel_name: str
    connected_at: int = field(default_factory=now_ms)
    capabilities: Optional[Dict[str, Any]] = None
    device_info: Optional[Dict[str, Any]] = None
    room_code: Optional[str] = None
    is_alive: bool = True
    # Set once the peer answers a ping envelope with pong
    answers_pings: bool = False
    state: ConnectionState = ConnectionState.OPEN

    @property
    def is_open(self) -> bool:
        """The one check every send path uses before writing to this connection."""
        return self.state == ConnectionState.OPEN

    @property
    def device_type(self) -> str:
        return self.device_class.value


class SessionRegistry:
    def __init__(self, id_factory: Callable[[], str] = generate_session_id):
        self._sessions: Dict[str, Session] = {}
        self._id_factory = id_factory
        self._lock = threading.Lock()

    def register(
        self,
        requested_id: Optional[str],
        device_class: DeviceClass,
        channel_name: str,
    ) -> Session:
        requested = (requested_id or "").strip()[:MAX_SESSION_ID_LENGTH]
        with self._lock:
            session_id = requested
            if not session_id or session_id in self._sessions:
                if session_id:
                    logger.info("Session id %s already active; assigning a new one", session_id)
                session_id = self._unused_id_unlocked()
            session = Session(session_id=session_id, device_class=device_class, channel_name=channel_name)
            self._sessions[session_id] = session
            return session

    def _unused_id_unlocked(self) -> str:
        while True:
            candidate = self._id_factory()
            if candidate not in self._sessions:
                return candidate

    def unregister(self, session: Session) -> bool:
        """Remove `session`; False if it was already gone or its id now belongs to someone else."""
        with self._lock:
            if self._sessions.get(session.session_id) is not session:
                return False
            del self._sessions[session.session_id]
            return True

    def lookup(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def sessions(self) -> List[Session]:
        with self._lock:
            return list(self._sessions.values())

    def count(self) -> int:
        return len(self._sessions)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
