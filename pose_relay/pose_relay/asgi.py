"""
ASGI config for the pose relay.

It exposes the ASGI callable as a module-level variable named ``application``.
"""
# Seed secrets (when RELAY_SECRET_NAME is set) before settings are loaded
import pose_relay.env_bootstrap  # noqa: F401

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "pose_relay.settings")

from channels.routing import ProtocolTypeRouter, URLRouter
from django.conf import settings
from django.core.asgi import get_asgi_application

# Standard Django ASGI application for HTTP; must initialise before the consumer imports.
django_asgi_app = get_asgi_application()

from pose_relay.routing import websocket_urlpatterns  # noqa: E402
from pose_relay.ws_origin import RelayOriginValidator  # noqa: E402

# Channels router for WebSockets.
#
# RelayOriginValidator (when DEBUG is False): CORS origins, ALLOWED_HOSTS, or
# no Origin from an allowed / private host. Sessions carry no auth, so no
# AuthMiddlewareStack.
websocket_app = URLRouter(websocket_urlpatterns)
if not settings.DEBUG:
    websocket_app = RelayOriginValidator(websocket_app)

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        "websocket": websocket_app,
    }
)
