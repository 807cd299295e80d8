"""
Middleware for the pose relay.

- HealthCheckAllowHttp: lets load balancer probes reach /health/ and /metrics/
  over plain HTTP by preventing SECURE_SSL_REDIRECT from redirecting them
  (avoids 301), and answers them with a permissive CORS header.
"""

from __future__ import annotations

_PROBE_PATHS = ("/health", "/metrics")


def _is_probe_path(request) -> bool:
    path = (request.path or "").rstrip("/") or "/"
    return path in _PROBE_PATHS


class HealthCheckAllowHttpMiddleware:
    """
    Run before SecurityMiddleware. For probe paths:
    - Set proxy SSL header so Django does not redirect HTTP -> HTTPS.
    - In response, allow any origin so dashboards can poll the counters.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        probe = _is_probe_path(request)
        if probe:
            request.META["HTTP_X_FORWARDED_PROTO"] = "https"
        response = self.get_response(request)
        if probe:
            response["Access-Control-Allow-Origin"] = "*"
        return response
