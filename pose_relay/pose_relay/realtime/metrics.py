"""Process-wide counters, reset only by a restart."""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class MetricsSnapshot:
    connections_opened: int
    connections_closed: int
    current_connections: int
    messages_received: int
    messages_sent: int
    uptime_seconds: float

    def as_dict(self) -> dict:
        return asdict(self)


class RelayMetrics:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started = time.monotonic()
        self._opened = 0
        self._closed = 0
        self._received = 0
        self._sent = 0

    def connection_opened(self) -> None:
        with self._lock:
            self._opened += 1

    def connection_closed(self) -> None:
        with self._lock:
            self._closed += 1

    def message_received(self) -> None:
        with self._lock:
            self._received += 1

    def message_sent(self, count: int = 1) -> None:
        with self._lock:
            self._sent += count

    def uptime(self) -> float:
        return time.monotonic() - self._started

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                connections_opened=self._opened,
                connections_closed=self._closed,
                current_connections=self._opened - self._closed,
                messages_received=self._received,
                messages_sent=self._sent,
                uptime_seconds=round(self.uptime(), 3),
            )
