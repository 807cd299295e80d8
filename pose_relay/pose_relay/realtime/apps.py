import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class RealtimeConfig(AppConfig):
    name = "pose_relay.realtime"
    label = "realtime"
    verbose_name = "Pose relay"

    def ready(self):
        from pose_relay.applib.config import config

        logger.info(
            "Pose relay ready (environment=%s, heartbeat=%ss, pose limit=%d/%dms)",
            config.RELAY_ENVIRONMENT,
            config.RELAY_HEARTBEAT_INTERVAL_SECONDS,
            config.RELAY_POSE_RATE_LIMIT,
            config.RELAY_RATE_WINDOW_MS,
        )
