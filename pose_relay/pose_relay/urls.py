"""
URL configuration for the pose relay.

WebSocket routes live in `pose_relay.routing`; these are the read-only HTTP endpoints.
"""
from django.urls import path

from pose_relay.realtime.views import connect_info, health, metrics

urlpatterns = [
    # Load balancer health check
    path("health/", health),
    path("metrics/", metrics),
    # WebSocket URLs for pairing a phone on the same network
    path("connect-info/", connect_info),
]
