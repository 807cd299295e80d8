"""Tests for settings, wire models, helpers and the secrets bootstrap."""

import os

import pytest

from pose_relay.applib.config import RelaySettings
from pose_relay.applib.helpers import encode_envelope, generate_room_code
from pose_relay.applib.models.api import JoinRoomRequest, PoseDataEvent
from pose_relay.applib.types import DeviceClass


class TestDeviceClass:

    @pytest.mark.parametrize("raw, expected", [
        ("mobile", DeviceClass.MOBILE),
        (" VR ", DeviceClass.VR),
        ("Desktop", DeviceClass.DESKTOP),
        ("watch", DeviceClass.UNKNOWN),
        ("", DeviceClass.UNKNOWN),
        (None, DeviceClass.UNKNOWN),
    ])
    def test_parse(self, raw, expected):
        assert DeviceClass.parse(raw) is expected


class TestRelaySettings:

    def test_defaults(self, monkeypatch):
        for name in ("RELAY_POSE_RATE_LIMIT", "RELAY_HEARTBEAT_INTERVAL_SECONDS", "RELAY_ROOM_CODE_LENGTH"):
            monkeypatch.delenv(name, raising=False)
        s = RelaySettings()
        assert s.RELAY_POSE_RATE_LIMIT == 30
        assert s.RELAY_RATE_WINDOW_MS == 1000
        assert s.RELAY_HEARTBEAT_INTERVAL_SECONDS == 30.0
        assert s.RELAY_ROOM_CODE_LENGTH == 6

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("RELAY_POSE_RATE_LIMIT", "60")
        monkeypatch.setenv("RELAY_VERBOSE_LOGGING", "true")
        s = RelaySettings()
        assert s.RELAY_POSE_RATE_LIMIT == 60
        assert s.RELAY_VERBOSE_LOGGING is True


class TestWireModels:

    def test_room_id_accepts_camel_case_and_strips(self):
        assert JoinRoomRequest.model_validate({"type": "join_room", "roomId": " AB12CD "}).room_id == "AB12CD"

    def test_encode_is_compact_camel_case(self):
        event = PoseDataEvent(session_id="s", device_type="mobile", timestamp=3, landmarks=[], metadata={"latency": 0})
        assert encode_envelope(event) == (
            '{"type":"pose_data","sessionId":"s","deviceType":"mobile","timestamp":3,'
            '"landmarks":[],"metadata":{"latency":0}}'
        )

    def test_room_codes(self):
        code = generate_room_code(8)
        assert len(code) == 8
        assert code.isalnum() and code.upper() == code


class TestSecretsBootstrap:

    def test_existing_environment_wins(self, monkeypatch):
        from pose_relay import env_bootstrap

        class FakeSecrets:
            def get_secret_value(self, SecretId):
                return {"SecretString": '{"RELAY_PORT": "9000", "RELAY_ENVIRONMENT": "prod", "EMPTY": null}'}

        monkeypatch.setattr(env_bootstrap.boto3, "client", lambda *args, **kwargs: FakeSecrets())
        monkeypatch.setenv("RELAY_PORT", "8080")
        monkeypatch.delenv("RELAY_ENVIRONMENT", raising=False)
        monkeypatch.delenv("EMPTY", raising=False)

        assert env_bootstrap.load_secrets_from_aws("pose-relay/test", region="us-east-2") == 1
        assert os.environ["RELAY_PORT"] == "8080"
        assert os.environ["RELAY_ENVIRONMENT"] == "prod"
        assert "EMPTY" not in os.environ
        os.environ.pop("RELAY_ENVIRONMENT")
