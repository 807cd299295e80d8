"""
`manage.py runrelay`: Daphne's runserver bound to RELAY_HOST:RELAY_PORT.

An explicit addrport argument still wins, e.g. `manage.py runrelay 127.0.0.1:9000`.
Daphne pings every socket at the protocol level each heartbeat interval and
closes one that has sent nothing for two intervals.
"""

from daphne.management.commands.runserver import Command as RunserverCommand
from daphne.server import Server

from pose_relay.applib.config import config


class RelayServer(Server):
    def __init__(self, *args, **kwargs):
        interval = config.RELAY_HEARTBEAT_INTERVAL_SECONDS
        kwargs.setdefault("ping_interval", interval)
        kwargs.setdefault("ping_timeout", interval)
        super().__init__(*args, **kwargs)


class Command(RunserverCommand):
    help = "Start the pose relay server (ASGI, Daphne) on RELAY_HOST:RELAY_PORT."

    server_cls = RelayServer
    default_addr = config.RELAY_HOST
    default_port = str(config.RELAY_PORT)

    def handle(self, *args, **options):
        if config.RELAY_VERBOSE_LOGGING:
            self.stdout.write(f"Verbose relay logging on (environment={config.RELAY_ENVIRONMENT})")
        return super().handle(*args, **options)
