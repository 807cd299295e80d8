"""
Project-level Channels routing.

Keeping routing in the project package ensures `pose_relay.asgi` can import it.
"""

from pose_relay.realtime.routing import websocket_urlpatterns

__all__ = ["websocket_urlpatterns"]
