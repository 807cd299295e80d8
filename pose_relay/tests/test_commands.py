"""Tests for the runrelay management command."""

from pose_relay.applib.config import config
from pose_relay.realtime.management.commands.runrelay import Command, RelayServer


class TestRunRelay:

    def test_uses_relay_server(self):
        assert Command.server_cls is RelayServer
        assert Command.default_port == str(config.RELAY_PORT)

    def test_protocol_ping_follows_heartbeat_interval(self, monkeypatch):
        monkeypatch.setattr(config, "RELAY_HEARTBEAT_INTERVAL_SECONDS", 12.0)
        server = RelayServer(application=None, endpoints=["tcp:port=0"])
        assert server.ping_interval == 12.0
        assert server.ping_timeout == 12.0

    def test_explicit_ping_options_win(self):
        server = RelayServer(application=None, endpoints=["tcp:port=0"], ping_interval=5, ping_timeout=7)
        assert server.ping_interval == 5
        assert server.ping_timeout == 7
