"""
WebSocket origin validator for the relay endpoint.

Channels' AllowedHostsOriginValidator only looks at ALLOWED_HOSTS and rejects
a missing Origin. Relay clients are a mix of browsers (capture page on a phone,
viewer in a headset) and non-browser peers that send no Origin at all, so this
validator allows a handshake when:
- CORS_ALLOW_ALL_ORIGINS is on, or
- Origin matches an entry of CORS_ALLOWED_ORIGINS exactly (scheme, host, port), or
- Origin's host is in ALLOWED_HOSTS, or
- Origin is missing and Host / X-Forwarded-Host is in ALLOWED_HOSTS or is a
  private network address (behind a proxy, or a peer on the LAN).
Denied handshakes are logged at WARNING (origin/host values only).
"""
from __future__ import annotations

import ipaddress
import logging
from urllib.parse import urlparse

from channels.security.websocket import WebsocketDenier
from django.conf import settings
from django.http.request import is_same_domain

logger = logging.getLogger(__name__)

# ASGI app that denies WebSocket connections (used when origin validation fails).
_denier_app = WebsocketDenier.as_asgi()


def _get_header(scope: dict, name: str) -> str | None:
    want = name.lower().encode("ascii")
    for key, value in scope.get("headers") or []:
        if key == want:
            return value.decode("utf-8", errors="replace").strip()
    return None


def _hostname_from_host_header(host: str) -> str:
    """Return hostname part (strip port) from Host header."""
    if not host:
        return ""
    if host.startswith("["):
        return host[1:].split("]", 1)[0].lower()
    return host.split(":", 1)[0].strip().lower()


def _normalize_origin(value: str) -> str:
    parsed = urlparse(value.strip())
    if not parsed.scheme or not parsed.hostname:
        return ""
    port = f":{parsed.port}" if parsed.port else ""
    return f"{parsed.scheme.lower()}://{parsed.hostname.lower()}{port}"


def origin_in_cors_list(origin_value: str, allowed_origins: list[str]) -> bool:
    origin = _normalize_origin(origin_value)
    return bool(origin) and any(origin == _normalize_origin(o) for o in allowed_origins)


def hostname_allowed(hostname: str, allowed_hosts: list[str]) -> bool:
    if not hostname:
        return False
    for pattern in allowed_hosts:
        if pattern == "*":
            return True
        if is_same_domain(hostname, pattern.lower()):
            return True
    return False


def is_private_address(hostname: str) -> bool:
    try:
        return ipaddress.ip_address(hostname).is_private
    except ValueError:
        return False


class RelayOriginValidator:
    """ASGI middleware that validates the WebSocket Origin before the consumer runs."""

    def __init__(self, application):
        self.application = application

    def is_allowed(self, scope: dict) -> bool:
        if getattr(settings, "CORS_ALLOW_ALL_ORIGINS", False):
            return True

        allowed_hosts = list(getattr(settings, "ALLOWED_HOSTS", None) or [])
        origin_value = _get_header(scope, "origin")
        if origin_value:
            if origin_in_cors_list(origin_value, list(getattr(settings, "CORS_ALLOWED_ORIGINS", None) or [])):
                return True
            return hostname_allowed((urlparse(origin_value).hostname or "").lower(), allowed_hosts)

        forwarded_host = _get_header(scope, "x-forwarded-host")
        if forwarded_host:
            forwarded_host = forwarded_host.split(",")[0].strip()
        for host_value in (_get_header(scope, "host"), forwarded_host):
            hostname = _hostname_from_host_header(host_value or "")
            if hostname_allowed(hostname, allowed_hosts) or is_private_address(hostname):
                return True
        return False

    async def __call__(self, scope, receive, send):
        if scope.get("type") != "websocket":
            raise ValueError("RelayOriginValidator only supports WebSocket")

        if self.is_allowed(scope):
            return await self.application(scope, receive, send)
        logger.warning(
            "WebSocket origin denied: origin=%s host=%s x_forwarded_host=%s path=%s",
            _get_header(scope, "origin") or "(none)",
            _get_header(scope, "host") or "(none)",
            _get_header(scope, "x-forwarded-host") or "(none)",
            scope.get("path") or "",
        )
        return await _denier_app(scope, receive, send)
