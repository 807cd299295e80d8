"""
Realtime relay app.

This app contains:
- A Channels consumer for `/ws` that registers each connection as a session
- The in-process relay hub (session registry, room directory, rate limiter,
  liveness monitor) that pairs capture and display devices by room code
- Read-only HTTP endpoints for health, metrics and connection hints
"""
