"""Client side of the relay: reconnecting peer, state machine and CLI."""

from .client import RelayPeer
from .reconnect import ConnectionStateMachine, InvalidTransition, PeerState, ReconnectPolicy

__all__ = ["ConnectionStateMachine", "InvalidTransition", "PeerState", "ReconnectPolicy", "RelayPeer"]
