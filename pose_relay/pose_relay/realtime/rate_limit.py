"""Per-session admission control for high-frequency stream messages."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from pose_relay.applib.types import MessageType

logger = logging.getLogger(__name__)

LIMITED_MESSAGE_TYPES = frozenset({MessageType.POSE_DATA})


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class RateWindow:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed one-window-per-second counter per session.

    When a window's deadline has passed the counter restarts at zero; an
    admission that pushes the counter past `limit` is refused. Refusals are
    silent by contract: callers drop the message and reply nothing.
    """

    def __init__(
        self,
        limit: int = 30,
        window_ms: int = 1000,
        idle_purge_ms: int = 60_000,
        clock: Callable[[], float] = _monotonic_ms,
    ):
        self.limit = limit
        self.window_ms = window_ms
        self.idle_purge_ms = idle_purge_ms
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    def admit(self, session_id: str, message_type: MessageType) -> bool:
        if message_type not in LIMITED_MESSAGE_TYPES:
            return True

        now = self._clock()
        with self._lock:
            window = self._windows.get(session_id)
            if window is None:
                window = RateWindow(count=0, reset_at=now + self.window_ms)
                self._windows[session_id] = window
            elif now > window.reset_at:
                window.count = 0
                window.reset_at = now + self.window_ms

            window.count += 1
            admitted = window.count <= self.limit

        if not admitted:
            logger.debug("Rate limit hit for %s (%d in window)", session_id, window.count)
        return admitted

    def purge(self, session_id: str) -> None:
        with self._lock:
            self._windows.pop(session_id, None)

    def sweep(self) -> int:
        """Drop counters idle for `idle_purge_ms` past their deadline. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [sid for sid, w in self._windows.items() if now > w.reset_at + self.idle_purge_ms]
            for sid in stale:
                del self._windows[sid]
        if stale:
            logger.debug("Swept %d idle rate-limit windows", len(stale))
        return len(stale)

    def window(self, session_id: str) -> Optional[RateWindow]:
        return self._windows.get(session_id)

    def tracked(self) -> int:
        return len(self._windows)

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()
