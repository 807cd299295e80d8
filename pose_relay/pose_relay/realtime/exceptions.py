"""
Errors reported back to the originating connection as an `error` envelope.

Transport failures and rate-limit drops are not exceptions here: the former
arrive as a Channels disconnect, the latter are a `False` from the limiter.
"""


class RelayError(Exception):
    """Base class; `message` is what the client sees."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProtocolError(RelayError):
    """Malformed frame, missing/unknown type, or invalid payload."""


class TargetNotFound(RelayError):
    """A sync message named a session that is absent or no longer open."""

    def __init__(self, target_session: str):
        super().__init__("Target session not found")
        self.target_session = target_session
