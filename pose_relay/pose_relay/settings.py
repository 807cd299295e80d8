"""
Settings for the pose relay (Django + Channels, ASGI only).

Key requirements implemented:
- Django Channels consumer at /ws, served by Daphne
- InMemoryChannelLayer for a single process; RedisChannelLayer when REDIS_URL is set
- Environment-based configuration (relay tunables live in applib.config)
- No database: the relay keeps no durable state
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from pose_relay.applib.config import config as relay_config

# Optional: allows local dev to load env vars from a `.env` file.
load_dotenv()


BASE_DIR = Path(__file__).resolve().parent.parent


def _env(name: str, default: str | None = None) -> str | None:
    v = os.environ.get(name)
    return v if v not in (None, "") else default


def _env_bool(name: str, default: bool = False) -> bool:
    v = _env(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_csv(name: str, default: str = "") -> List[str]:
    raw = _env(name, default) or ""
    return [x.strip() for x in raw.split(",") if x.strip()]


# SECURITY WARNING: Do not hardcode secrets in code.
DEBUG = _env_bool("DJANGO_DEBUG", default=False)

SECRET_KEY = _env("DJANGO_SECRET_KEY", "dev-insecure-secret-key-change-me")
if not DEBUG and (not SECRET_KEY or SECRET_KEY.startswith("dev-insecure-")):
    raise RuntimeError("DJANGO_SECRET_KEY must be set in production")

ALLOWED_HOSTS = _env_csv("DJANGO_ALLOWED_HOSTS", default="localhost,127.0.0.1")

# CORS: the capture page and the viewer are usually served from another origin
# (phone on the LAN, headset browser). Also used for WebSocket origin checks.
CORS_ALLOW_ALL_ORIGINS = _env_bool("CORS_ALLOW_ALL_ORIGINS", default=DEBUG)
CORS_ALLOWED_ORIGINS = _env_csv("CORS_ALLOWED_ORIGINS", default="http://localhost:3000,http://127.0.0.1:3000")
CORS_ALLOW_CREDENTIALS = True

# When serving behind a load balancer, Django must respect X-Forwarded-* headers.
USE_X_FORWARDED_HOST = True
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SECURE_SSL_REDIRECT = _env_bool("DJANGO_SECURE_SSL_REDIRECT", default=not DEBUG)


INSTALLED_APPS = [
    # Must come first so `runserver` / `runrelay` serve ASGI.
    "daphne",
    "corsheaders",
    "django.contrib.staticfiles",
    "channels",
    "pose_relay.realtime.apps.RealtimeConfig",
]

# HealthCheckAllowHttp first so /health/ and /metrics/ are never redirected.
MIDDLEWARE = [
    "pose_relay.middleware.HealthCheckAllowHttpMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "pose_relay.urls"

ASGI_APPLICATION = "pose_relay.asgi.application"

# WebSocket-only service.
DATABASES = {}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True

STATIC_URL = "static/"


#
# Channels configuration
#
# Relay state (sessions, rooms) is per process, so one process per relay is the
# supported deployment. REDIS_URL only moves the per-connection queues to Redis.
#
REDIS_URL = _env("REDIS_URL", None)
if REDIS_URL:
    CHANNEL_LAYERS = {
        "default": {
            "BACKEND": "channels_redis.core.RedisChannelLayer",
            "CONFIG": {
                "hosts": [REDIS_URL],
                "capacity": int(_env("CHANNEL_LAYER_CAPACITY", "1000") or "1000"),
                "expiry": int(_env("CHANNEL_LAYER_EXPIRY", "60") or "60"),
            },
        }
    }
else:
    CHANNEL_LAYERS = {
        "default": {
            "BACKEND": "channels.layers.InMemoryChannelLayer",
            "CONFIG": {
                "capacity": int(_env("CHANNEL_LAYER_CAPACITY", "1000") or "1000"),
                "expiry": int(_env("CHANNEL_LAYER_EXPIRY", "60") or "60"),
            },
        }
    }


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "relay": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {"console": {"class": "logging.StreamHandler", "formatter": "relay"}},
    "root": {"handlers": ["console"], "level": _env("DJANGO_LOG_LEVEL", "INFO") or "INFO"},
    "loggers": {
        # Per-message routing and dropped deliveries log at DEBUG.
        "pose_relay": {
            "level": "DEBUG" if relay_config.RELAY_VERBOSE_LOGGING else (_env("DJANGO_LOG_LEVEL", "INFO") or "INFO"),
        },
    },
}
