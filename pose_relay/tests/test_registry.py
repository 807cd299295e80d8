"""Tests for the session registry."""

import itertools

from pose_relay.applib.types import ConnectionState, DeviceClass
from pose_relay.realtime.registry import MAX_SESSION_ID_LENGTH, SessionRegistry


class TestSessionRegistry:

    def setup_method(self):
        ids = itertools.count(1)
        self.registry = SessionRegistry(id_factory=lambda: f"gen{next(ids)}")

    def test_register_generates_id_when_none_requested(self):
        session = self.registry.register(None, DeviceClass.MOBILE, "chan.1")
        assert session.session_id == "gen1"
        assert session.device_type == "mobile"
        assert session.state == ConnectionState.OPEN
        assert session.is_alive is True
        assert session.room_code is None
        assert self.registry.lookup("gen1") is session

    def test_requested_id_is_honored_when_free(self):
        session = self.registry.register("phone-42", DeviceClass.MOBILE, "chan.1")
        assert session.session_id == "phone-42"

    def test_requested_id_collision_mints_new_id(self):
        first = self.registry.register("dup", DeviceClass.MOBILE, "chan.1")
        second = self.registry.register("dup", DeviceClass.VR, "chan.2")
        assert first.session_id == "dup"
        assert second.session_id == "gen1"
        assert self.registry.count() == 2

    def test_requested_id_is_trimmed_and_truncated(self):
        session = self.registry.register("  " + "x" * 100 + "  ", DeviceClass.DESKTOP, "chan.1")
        assert session.session_id == "x" * MAX_SESSION_ID_LENGTH

    def test_blank_requested_id_is_treated_as_absent(self):
        session = self.registry.register("   ", DeviceClass.DESKTOP, "chan.1")
        assert session.session_id == "gen1"

    def test_unregister_frees_id_for_reuse(self):
        first = self.registry.register("keep", DeviceClass.MOBILE, "chan.1")
        assert self.registry.unregister(first) is True
        again = self.registry.register("keep", DeviceClass.MOBILE, "chan.2")
        assert again.session_id == "keep"

    def test_unregister_is_identity_checked(self):
        old = self.registry.register("same", DeviceClass.MOBILE, "chan.1")
        self.registry.unregister(old)
        new = self.registry.register("same", DeviceClass.MOBILE, "chan.2")
        # late cleanup from the old connection must not drop the new one
        assert self.registry.unregister(old) is False
        assert self.registry.lookup("same") is new

    def test_unregister_twice(self):
        session = self.registry.register(None, DeviceClass.VR, "chan.1")
        assert self.registry.unregister(session) is True
        assert self.registry.unregister(session) is False
        assert self.registry.count() == 0

    def test_sessions_returns_snapshot(self):
        a = self.registry.register(None, DeviceClass.MOBILE, "chan.1")
        snapshot = self.registry.sessions()
        self.registry.unregister(a)
        assert snapshot == [a]
        assert self.registry.sessions() == []

    def test_is_open_follows_state(self):
        session = self.registry.register(None, DeviceClass.MOBILE, "chan.1")
        session.state = ConnectionState.CLOSING
        assert session.is_open is False
