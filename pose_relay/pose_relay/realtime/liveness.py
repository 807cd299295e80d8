"""
Heartbeat cycle that reclaims connections whose peer vanished without a close.

Two layers:
- Transport: Daphne sends protocol-level ping frames (browsers answer them
  automatically) and closes sockets that stop answering; see `runrelay`.
  That close runs the consumer's normal disconnect cleanup.
- Application: each cycle the server also sends {"type": "ping"}. Any inbound
  frame sets the session's liveness flag. A peer that has answered with
  {"type": "pong"} at least once has opted in to this heartbeat and is
  evicted (close code 4408) when it stays silent for a whole cycle.

Each cycle:
- flag still False and the peer answers pings -> evicted;
- otherwise the flag is cleared and a new ping goes out.
An opted-in peer that stops answering is therefore gone within two cycles.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List

from pose_relay.applib.helpers import now_ms
from pose_relay.applib.models.api import PingEvent

from .broadcast import Broadcaster
from .registry import Session, SessionRegistry

logger = logging.getLogger(__name__)

# Application close code sent to evicted peers.
CLOSE_HEARTBEAT_TIMEOUT = 4408


class LivenessMonitor:
    def __init__(
        self,
        registry: SessionRegistry,
        broadcaster: Broadcaster,
        evict: Callable[[Session], Awaitable[None]],
    ):
        self._registry = registry
        self._broadcaster = broadcaster
        self._evict = evict

    async def run_cycle(self) -> List[Session]:
        evicted: List[Session] = []
        pinged = 0
        for session in self._registry.sessions():
            if not session.is_alive and session.answers_pings:
                logger.info("Session %s missed heartbeat; evicting", session.session_id)
                await self._evict(session)
                evicted.append(session)
                continue
            session.is_alive = False
            if await self._broadcaster.send_to(session, PingEvent(timestamp=now_ms())):
                pinged += 1
        logger.debug("Heartbeat cycle: %d pinged, %d evicted", pinged, len(evicted))
        return evicted

    @staticmethod
    def mark_alive(session: Session) -> None:
        """Any inbound frame proves the peer is there."""
        session.is_alive = True

    @staticmethod
    def acknowledge(session: Session) -> None:
        """A pong: mark alive and hold the session to the ping/pong heartbeat from now on."""
        session.is_alive = True
        session.answers_pings = True
