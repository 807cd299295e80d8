"""
Read-only HTTP side channel for the relay.

- GET /health/: load balancer health check plus live connection/room counts.
- GET /metrics/: process counters and uptime.
- GET /connect-info/: WebSocket URLs a phone on the same network can use
  (the data a QR code for pairing would encode).

None of these touch the database or the channel layer.
"""

from __future__ import annotations

import logging
import os
import socket
import time
from typing import List
from urllib.parse import urlencode

from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from .hub import relay_hub

logger = logging.getLogger(__name__)


def lan_addresses() -> List[str]:
    """Non-loopback IPv4 addresses of this host, best effort."""
    found: List[str] = []
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET, socket.SOCK_STREAM)
    except OSError as exc:
        logger.debug("Could not resolve host addresses: %s", exc)
        infos = []
    for info in infos:
        ip = info[4][0]
        if not ip.startswith("127.") and ip not in found:
            found.append(ip)
    return found


@require_http_methods(["GET"])
def health(request):
    """
    Keep it cheap and dependency-free:
    - No DB query (the relay is websocket-only)
    - No channel layer call (avoid cascading failure during Redis maintenance)
    """

    return JsonResponse(
        {
            "status": "ok",
            "ts": int(time.time()),
            "instance_id": os.environ.get("INSTANCE_ID", "unknown-instance"),
            "connections": relay_hub.registry.count(),
            "rooms": relay_hub.directory.room_count(),
        }
    )


@require_http_methods(["GET"])
def metrics(request):
    snap = relay_hub.metrics.snapshot()
    return JsonResponse(
        {
            **snap.as_dict(),
            "active_sessions": relay_hub.registry.count(),
            "rooms": relay_hub.directory.room_count(),
            "rate_limited_sessions": relay_hub.limiter.tracked(),
        }
    )


@require_http_methods(["GET"])
def connect_info(request):
    port = relay_hub.settings.RELAY_PORT
    host = relay_hub.settings.RELAY_HOST
    hosts = lan_addresses()
    if host not in ("0.0.0.0", "::", ""):
        hosts.insert(0, host)
    if not hosts:
        hosts = ["localhost"]

    room_id = (request.GET.get("roomId") or "").strip()
    query = f"?{urlencode({'roomId': room_id})}" if room_id else ""
    ws_urls = [f"ws://{h}:{port}/ws{query}" for h in hosts]

    return JsonResponse(
        {
            "url": ws_urls[0],
            "websocketUrls": ws_urls,
            "httpUrls": [f"http://{h}:{port}" for h in hosts],
            "environment": relay_hub.settings.RELAY_ENVIRONMENT,
        }
    )
