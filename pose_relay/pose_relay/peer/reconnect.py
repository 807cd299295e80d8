"""
Peer-side connection contract: exponential backoff plus the connection state machine.

States:

    closed -> connecting -> open -> registered <-> in_room
    open / registered / in_room -> closing -> closed
    any live state -> closed          (socket dropped)
    closed -> connecting              (reconnect)
    closed -> failed                  (attempts exhausted, terminal)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional

logger = logging.getLogger(__name__)


class PeerState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    REGISTERED = "registered"
    IN_ROOM = "in_room"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: Dict[PeerState, FrozenSet[PeerState]] = {
    PeerState.CONNECTING: frozenset({PeerState.OPEN, PeerState.CLOSED}),
    PeerState.OPEN: frozenset({PeerState.REGISTERED, PeerState.CLOSING, PeerState.CLOSED}),
    PeerState.REGISTERED: frozenset({PeerState.IN_ROOM, PeerState.CLOSING, PeerState.CLOSED}),
    PeerState.IN_ROOM: frozenset({PeerState.REGISTERED, PeerState.CLOSING, PeerState.CLOSED}),
    PeerState.CLOSING: frozenset({PeerState.CLOSED}),
    PeerState.CLOSED: frozenset({PeerState.CONNECTING, PeerState.FAILED}),
    PeerState.FAILED: frozenset(),
}


class InvalidTransition(RuntimeError):
    def __init__(self, current: PeerState, target: PeerState):
        super().__init__(f"Invalid peer state transition: {current.value} -> {target.value}")
        self.current = current
        self.target = target


class ConnectionStateMachine:
    def __init__(self, on_change: Optional[Callable[[PeerState, PeerState], None]] = None):
        self._state = PeerState.CLOSED
        self._on_change = on_change
        self.history: List[PeerState] = [self._state]

    @property
    def state(self) -> PeerState:
        return self._state

    def can(self, target: PeerState) -> bool:
        return target in ALLOWED_TRANSITIONS[self._state]

    def transition(self, target: PeerState) -> None:
        if target == self._state:
            return
        if not self.can(target):
            raise InvalidTransition(self._state, target)
        previous, self._state = self._state, target
        self.history.append(target)
        logger.debug("Peer state %s -> %s", previous.value, target.value)
        if self._on_change is not None:
            self._on_change(previous, target)


@dataclass
class ReconnectPolicy:
    """delay(n) = base_delay * 2**n for the n-th consecutive failure (0-based)."""

    base_delay: float = 1.0
    max_attempts: int = 5
    attempts: int = 0

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def next_delay(self) -> Optional[float]:
        """Delay before the next attempt, or None once max_attempts is reached."""
        if self.exhausted:
            return None
        delay = self.delay_for(self.attempts)
        self.attempts += 1
        return delay

    def reset(self) -> None:
        self.attempts = 0
