"""Tests for the composite relay operations."""

import pytest

from pose_relay.realtime.exceptions import ProtocolError, TargetNotFound
from pose_relay.realtime.rate_limit import RateLimiter


class TestConnectDisconnect:

    @pytest.mark.asyncio
    async def test_connect_registers_and_counts(self, hub, connect):
        a = await connect("VR ")
        assert a.device_type == "vr"
        assert hub.registry.count() == 1
        assert hub.metrics.snapshot().connections_opened == 1

    @pytest.mark.asyncio
    async def test_unrecognized_device_type_is_unknown(self, hub, connect):
        a = await connect("toaster")
        assert a.device_type == "unknown"

    @pytest.mark.asyncio
    async def test_disconnect_cleans_everything(self, hub, connect, fake_layer):
        a = await connect("mobile")
        b = await connect("vr")
        await hub.join(a, "R1")
        await hub.join(b, "R1")
        await hub.relay_pose(a, {"type": "pose_data", "landmarks": []})

        assert await hub.disconnect(a) is True
        assert hub.registry.lookup(a.session_id) is None
        assert hub.limiter.window(a.session_id) is None
        assert hub.directory.participants("R1") == [b]
        assert fake_layer.types_for(b.channel_name)[-1] == "participant_left"

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, hub, connect):
        a = await connect("mobile")
        await hub.join(a, "R1")
        assert await hub.disconnect(a) is True
        assert await hub.disconnect(a) is False
        assert not hub.directory.has_room("R1")
        assert hub.metrics.snapshot().connections_closed == 1


class TestRooms:

    @pytest.mark.asyncio
    async def test_join_announces_departure_from_previous_room(self, hub, connect, fake_layer):
        a, b = await connect("mobile"), await connect("vr")
        await hub.join(a, "R1")
        await hub.join(b, "R1")
        await hub.join(a, "R2")
        assert fake_layer.types_for(b.channel_name)[-1] == "participant_left"

    @pytest.mark.asyncio
    async def test_announce_join_excludes_joiner_and_pairs_once(self, hub, connect, fake_layer):
        a, b = await connect("mobile"), await connect("vr")
        await hub.announce_join(a, await hub.join(a, "AB12CD"))
        await hub.announce_join(b, await hub.join(b, "AB12CD"))

        assert fake_layer.types_for(a.channel_name) == ["participant_joined", "pairing_success"]
        assert fake_layer.types_for(b.channel_name) == ["pairing_success"]
        pairing = fake_layer.frames_for(b.channel_name)[0]
        assert pairing == {"type": "pairing_success", "roomId": "AB12CD", "devices": ["mobile", "vr"]}

    @pytest.mark.asyncio
    async def test_rejoin_same_room_announces_nothing(self, hub, connect, fake_layer):
        a, b = await connect("mobile"), await connect("vr")
        await hub.announce_join(a, await hub.join(a, "R1"))
        await hub.announce_join(b, await hub.join(b, "R1"))
        before = len(fake_layer.sent)
        await hub.announce_join(a, await hub.join(a, "R1"))
        assert len(fake_layer.sent) == before

    def test_minted_codes_avoid_existing_rooms(self, hub, monkeypatch):
        codes = iter(["TAKEN1", "FREE22"])
        monkeypatch.setattr("pose_relay.realtime.hub.generate_room_code", lambda length: next(codes))
        hub.directory._rooms["TAKEN1"] = object()
        assert hub.mint_room_code() == "FREE22"


class TestRelayPose:

    @pytest.mark.asyncio
    async def test_pose_reaches_peers_with_timing_metadata(self, hub, connect, fake_layer):
        a, b = await connect("mobile"), await connect("vr")
        await hub.join(a, "R1")
        await hub.join(b, "R1")

        landmarks = [{"id": 0, "x": 0.5, "y": 0.25, "z": 0.0, "visibility": 0.9, "name": " nose "}]
        delivered = await hub.relay_pose(
            a, {"type": "pose_data", "timestamp": 1, "landmarks": landmarks, "metadata": {"confidence": 0.9}}
        )

        assert delivered == 1
        assert fake_layer.frames_for(a.channel_name) == []
        frame = fake_layer.frames_for(b.channel_name)[0]
        assert frame["sessionId"] == a.session_id
        assert frame["deviceType"] == "mobile"
        assert frame["landmarks"] == landmarks
        assert frame["metadata"]["confidence"] == 0.9
        assert frame["metadata"]["latency"] == frame["metadata"]["serverReceived"] - 1

    @pytest.mark.asyncio
    async def test_pose_without_room_is_dropped(self, hub, connect, fake_layer):
        a = await connect("mobile")
        assert await hub.relay_pose(a, {"type": "pose_data"}) == 0
        assert fake_layer.sent == []

    @pytest.mark.asyncio
    async def test_rate_limited_pose_returns_none(self, hub, connect):
        hub.limiter = RateLimiter(limit=2, clock=lambda: 0.0)
        a = await connect("mobile")
        await hub.join(a, "R1")
        results = [await hub.relay_pose(a, {"type": "pose_data"}) for _ in range(3)]
        assert results == [0, 0, None]


class TestForwardSync:

    @pytest.mark.asyncio
    async def test_targeted_sync_attaches_source(self, hub, connect, fake_layer):
        a, b = await connect("mobile"), await connect("vr")
        message = {"type": "sync_request", "targetSession": b.session_id, "timestamp": 9}
        assert await hub.forward_sync(a, message, b.session_id) == 1
        assert fake_layer.frames_for(b.channel_name) == [{**message, "sourceSession": a.session_id}]

    @pytest.mark.asyncio
    async def test_missing_target(self, hub, connect):
        a = await connect("mobile")
        with pytest.raises(TargetNotFound):
            await hub.forward_sync(a, {"type": "sync_request"}, "ghost")

    @pytest.mark.asyncio
    async def test_closed_target(self, hub, connect):
        a, b = await connect("mobile"), await connect("vr")
        await hub.disconnect(b)
        with pytest.raises(TargetNotFound):
            await hub.forward_sync(a, {"type": "sync_response"}, b.session_id)

    @pytest.mark.asyncio
    async def test_untargeted_sync_goes_to_room(self, hub, connect, fake_layer):
        a, b = await connect("mobile"), await connect("vr")
        await hub.join(a, "R1")
        await hub.join(b, "R1")
        assert await hub.forward_sync(a, {"type": "sync_request"}, None) == 1
        assert fake_layer.types_for(b.channel_name) == ["sync_request"]

    @pytest.mark.asyncio
    async def test_untargeted_sync_outside_room(self, hub, connect):
        a = await connect("mobile")
        with pytest.raises(ProtocolError):
            await hub.forward_sync(a, {"type": "sync_request"}, None)


class TestSnapshots:

    @pytest.mark.asyncio
    async def test_stats_and_room_summaries(self, hub, connect):
        a, b = await connect("mobile"), await connect("vr")
        await hub.join(a, "R1")
        await hub.join(b, "R1")

        stats = hub.stats().to_wire()
        assert stats["type"] == "stats"
        assert stats["connections"] == {"current": 2, "total": 2, "rooms": 1}
        assert stats["rooms"][0]["id"] == "R1"
        assert stats["rooms"][0]["participants"] == 2
        assert stats["rooms"][0]["devices"] == ["mobile", "vr"]
        assert set(stats["server"]) >= {"uptime", "version", "environment"}
