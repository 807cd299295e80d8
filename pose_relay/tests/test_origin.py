"""Tests for WebSocket origin validation."""

import pytest
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator

from pose_relay.realtime.routing import websocket_urlpatterns
from pose_relay.ws_origin import RelayOriginValidator, hostname_allowed, origin_in_cors_list


def scope(**headers):
    return {
        "type": "websocket",
        "path": "/ws",
        "headers": [(k.replace("_", "-").encode(), v.encode()) for k, v in headers.items()],
    }


@pytest.fixture
def validator(settings):
    settings.CORS_ALLOW_ALL_ORIGINS = False
    settings.CORS_ALLOWED_ORIGINS = ["http://localhost:3000"]
    settings.ALLOWED_HOSTS = ["relay.example.com", ".lan.example.com"]
    return RelayOriginValidator(URLRouter(websocket_urlpatterns))


class TestHelpers:

    def test_origin_matching_is_exact_on_scheme_and_port(self):
        allowed = ["http://localhost:3000"]
        assert origin_in_cors_list("http://LOCALHOST:3000", allowed)
        assert not origin_in_cors_list("https://localhost:3000", allowed)
        assert not origin_in_cors_list("http://localhost:3001", allowed)
        assert not origin_in_cors_list("garbage", allowed)

    def test_hostname_patterns(self):
        assert hostname_allowed("a.lan.example.com", [".lan.example.com"])
        assert hostname_allowed("anything", ["*"])
        assert not hostname_allowed("", ["*"])
        assert not hostname_allowed("evil.com", ["relay.example.com"])


class TestRelayOriginValidator:

    def test_cors_origin_allowed(self, validator):
        assert validator.is_allowed(scope(origin="http://localhost:3000", host="relay.example.com"))

    def test_allowed_host_origin(self, validator):
        assert validator.is_allowed(scope(origin="https://phone.lan.example.com"))

    def test_foreign_origin_denied_even_with_good_host(self, validator):
        assert not validator.is_allowed(scope(origin="https://evil.com", host="relay.example.com"))

    def test_missing_origin_uses_host(self, validator):
        assert validator.is_allowed(scope(host="relay.example.com:443"))
        assert validator.is_allowed(scope(host="10.0.0.5:8080", x_forwarded_host="elsewhere"))
        assert validator.is_allowed(scope(host="internal", x_forwarded_host="relay.example.com, proxy"))
        assert not validator.is_allowed(scope(host="evil.com"))

    def test_allow_all(self, validator, settings):
        settings.CORS_ALLOW_ALL_ORIGINS = True
        assert validator.is_allowed(scope(origin="https://evil.com"))

    @pytest.mark.asyncio
    async def test_denied_handshake_is_rejected(self, validator):
        communicator = WebsocketCommunicator(validator, "/ws", headers=[(b"origin", b"https://evil.com")])
        connected, _ = await communicator.connect()
        assert connected is False

    @pytest.mark.asyncio
    async def test_allowed_handshake_reaches_consumer(self, validator):
        communicator = WebsocketCommunicator(validator, "/ws", headers=[(b"origin", b"http://localhost:3000")])
        connected, _ = await communicator.connect()
        assert connected is True
        assert (await communicator.receive_json_from(timeout=1))["type"] == "connected"
        await communicator.disconnect()

    @pytest.mark.asyncio
    async def test_rejects_http_scope(self, validator):
        with pytest.raises(ValueError):
            await validator({"type": "http"}, None, None)
