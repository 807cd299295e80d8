"""Tests for the read-only HTTP endpoints."""

import pytest
from django.test import Client

from pose_relay.applib.types import DeviceClass
from pose_relay.realtime import views
from pose_relay.realtime.hub import relay_hub


@pytest.fixture
def client():
    return Client()


class TestHealth:

    def test_health_ok(self, client):
        response = client.get("/health/")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["connections"] == 0
        assert body["rooms"] == 0
        assert response["Access-Control-Allow-Origin"] == "*"

    def test_health_is_get_only(self, client):
        assert client.post("/health/").status_code == 405

    def test_counts_follow_hub(self, client):
        session = relay_hub.registry.register(None, DeviceClass.VR, "chan.x")
        relay_hub.directory.join(session, "R1")
        body = client.get("/health/").json()
        assert body["connections"] == 1
        assert body["rooms"] == 1


class TestMetrics:

    def test_metrics_counters(self, client):
        relay_hub.metrics.connection_opened()
        relay_hub.metrics.message_received()
        body = client.get("/metrics/").json()
        assert body["connections_opened"] == 1
        assert body["messages_received"] == 1
        assert body["uptime_seconds"] >= 0
        assert body["active_sessions"] == 0


class TestConnectInfo:

    def test_urls_from_lan_addresses(self, client, monkeypatch):
        monkeypatch.setattr(views, "lan_addresses", lambda: ["192.168.1.20"])
        body = client.get("/connect-info/").json()
        port = relay_hub.settings.RELAY_PORT
        assert body["url"] == f"ws://192.168.1.20:{port}/ws"
        assert body["httpUrls"] == [f"http://192.168.1.20:{port}"]

    def test_room_hint_in_urls(self, client, monkeypatch):
        monkeypatch.setattr(views, "lan_addresses", lambda: [])
        body = client.get("/connect-info/?roomId=AB12CD").json()
        assert body["url"].endswith("/ws?roomId=AB12CD")
        assert "localhost" in body["url"]
