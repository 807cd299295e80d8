"""
CLI peer for the pose relay.

Supports:
- Streaming synthetic pose frames into a room:   stream --room AB12CD
- Watching a room (prints every envelope):        watch --room AB12CD
- One-shot server stats / room list:              stats

WebSocket protocol:
- Connect: /ws?sessionId=<optional>&deviceType=<mobile|vr|desktop>
- Client sends device_register, then join_room once device_registered arrives.
- Server sends connected, room_joined, participant_joined / participant_left,
  pairing_success, relayed pose_data, ping (answer with pong), error.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import math
import random
import sys
from typing import Any, Dict, List, Optional, Tuple

from pose_relay.applib.helpers import now_ms
from pose_relay.applib.models.pose import LANDMARK_NAMES, PoseFrame

from .client import RelayPeer
from .reconnect import PeerState, ReconnectPolicy

logger = logging.getLogger(__name__)


def synthetic_points(t: float) -> List[Tuple[float, float, float, float]]:
    """A standing figure swaying slowly, with a little noise on every landmark."""
    points = []
    count = len(LANDMARK_NAMES)
    sway = 0.05 * math.sin(t * 1.5)
    for i in range(count):
        row = i / (count - 1)
        x = 0.5 + sway + (0.08 if i % 2 else -0.08) * (row > 0.3) + random.uniform(-0.004, 0.004)
        y = 0.1 + 0.8 * row + random.uniform(-0.004, 0.004)
        z = 0.02 * math.sin(t + i)
        visibility = 0.9 if row < 0.9 else 0.6
        points.append((x, y, z, visibility))
    return points


def _print_envelope(message: Dict[str, Any], *, compact_pose: bool) -> None:
    if compact_pose and message.get("type") == "pose_data":
        meta = message.get("metadata") or {}
        landmarks = message.get("landmarks")
        sys.stdout.write(
            f"pose_data from {message.get('sessionId')} ({message.get('deviceType')}): "
            f"{len(landmarks) if isinstance(landmarks, list) else '?'} landmarks, "
            f"latency={meta.get('latency')}ms\n"
        )
    else:
        sys.stdout.write(json.dumps(message, ensure_ascii=False) + "\n")
    sys.stdout.flush()


async def stream_poses(peer: RelayPeer, *, fps: float, seconds: Optional[float]) -> int:
    runner = asyncio.create_task(peer.run())
    interval = 1.0 / fps
    started = asyncio.get_running_loop().time()
    sent = 0
    try:
        while not runner.done():
            elapsed = asyncio.get_running_loop().time() - started
            if seconds is not None and elapsed >= seconds:
                break
            frame = PoseFrame.from_points(synthetic_points(elapsed), timestamp=now_ms(), frame_rate=fps)
            if await peer.send_pose(frame):
                sent += 1
            await asyncio.sleep(interval)
    finally:
        await peer.stop()
        final = await runner
    sys.stderr.write(f"[sent {sent} frames, final state {final.value}]\n")
    return 0 if final != PeerState.FAILED else 1


async def watch_room(peer: RelayPeer, *, seconds: Optional[float]) -> int:
    runner = asyncio.create_task(peer.run())
    try:
        if seconds is None:
            final = await runner
        else:
            await asyncio.sleep(seconds)
            await peer.stop()
            final = await runner
    except asyncio.CancelledError:
        await peer.stop()
        final = await runner
    return 0 if final != PeerState.FAILED else 1


async def one_shot(peer: RelayPeer, request: Dict[str, Any], expect: str, timeout: float) -> int:
    reply: Dict[str, Any] = {}
    done = asyncio.Event()

    async def _on_message(message: Dict[str, Any]) -> None:
        if message.get("type") == "device_registered":
            await peer.send(request)
        elif message.get("type") in (expect, "error"):
            reply.update(message)
            done.set()

    peer.on_message = _on_message
    runner = asyncio.create_task(peer.run())
    waiter = asyncio.create_task(done.wait())
    try:
        await asyncio.wait({runner, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        if not done.is_set():
            sys.stderr.write(f"No {expect} reply within {timeout}s\n")
    finally:
        waiter.cancel()
        await peer.stop()
        await runner
    if not reply:
        return 1
    print(json.dumps(reply, indent=2, ensure_ascii=False))
    return 0 if reply.get("type") == expect else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CLI peer for the pose relay")
    parser.add_argument("--ws", default="ws://localhost:8080/ws", help="Relay URL, e.g. ws://192.168.1.20:8080/ws")
    parser.add_argument("--origin", help="Optional Origin header for the WebSocket handshake")
    parser.add_argument("--session-id", help="Reuse a previous session id")
    parser.add_argument("--max-attempts", type=int, default=5, help="Reconnect attempts before giving up")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_stream = sub.add_parser("stream", help="Stream synthetic pose frames into a room")
    p_stream.add_argument("--room", required=True, help="Room code to join")
    p_stream.add_argument("--device-type", default="mobile")
    p_stream.add_argument("--fps", type=float, default=20.0, help="Frames per second (server admits 30/s)")
    p_stream.add_argument("--seconds", type=float, help="Stop after this many seconds")

    p_watch = sub.add_parser("watch", help="Join a room and print every envelope")
    p_watch.add_argument("--room", required=True)
    p_watch.add_argument("--device-type", default="vr")
    p_watch.add_argument("--seconds", type=float, help="Stop after this many seconds")
    p_watch.add_argument("--full", action="store_true", help="Print pose_data frames in full")

    p_stats = sub.add_parser("stats", help="Print server stats (or the room list)")
    p_stats.add_argument("--rooms", action="store_true", help="Print room_list instead of stats")
    p_stats.add_argument("--timeout", type=float, default=5.0)

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    policy = ReconnectPolicy(max_attempts=args.max_attempts)

    if args.cmd == "stream":
        peer = RelayPeer(
            args.ws,
            device_type=args.device_type,
            room_id=args.room,
            session_id=args.session_id,
            capabilities={"camera": True, "synthetic": True},
            policy=policy,
            origin=args.origin,
        )
        return await stream_poses(peer, fps=args.fps, seconds=args.seconds)

    if args.cmd == "watch":
        async def _print(message: Dict[str, Any]) -> None:
            _print_envelope(message, compact_pose=not args.full)

        peer = RelayPeer(
            args.ws,
            device_type=args.device_type,
            room_id=args.room,
            session_id=args.session_id,
            capabilities={"display": True},
            policy=policy,
            origin=args.origin,
            on_message=_print,
        )
        return await watch_room(peer, seconds=args.seconds)

    if args.cmd == "stats":
        peer = RelayPeer(args.ws, device_type="desktop", policy=ReconnectPolicy(max_attempts=0), origin=args.origin)
        if args.rooms:
            return await one_shot(peer, {"type": "room_list"}, "room_list", args.timeout)
        return await one_shot(peer, {"type": "get_stats"}, "stats", args.timeout)

    return 2


def run() -> None:
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
