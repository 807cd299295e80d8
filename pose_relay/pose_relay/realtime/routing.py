from django.urls import re_path

from .consumers import RelayConsumer


websocket_urlpatterns = [
    # /ws or /ws/, session parameters in the query string
    re_path(r"^ws/?$", RelayConsumer.as_asgi()),
]
