from pathlib import Path
import os

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


class RelaySettings(BaseSettings):
    model_config = SettingsConfigDict(
        # Priority: environment variables > .env file
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=True,
        extra="ignore",
    )

    # Bind address used by `manage.py runrelay` and reported by /connect-info/
    RELAY_HOST: str = "0.0.0.0"
    RELAY_PORT: int = 8080
    RELAY_ENVIRONMENT: str = "local"
    # Dev flavor: per-message DEBUG logs and serverInfo in the `connected` envelope
    RELAY_VERBOSE_LOGGING: bool = False

    RELAY_HEARTBEAT_INTERVAL_SECONDS: float = 30.0
    RELAY_POSE_RATE_LIMIT: int = 30
    RELAY_RATE_WINDOW_MS: int = 1000
    RELAY_RATE_IDLE_PURGE_MS: int = 60_000
    RELAY_RATE_SWEEP_SECONDS: float = 60.0

    RELAY_ROOM_CODE_LENGTH: int = 6
    RELAY_CAPTURE_DEVICE: str = "mobile"
    RELAY_DISPLAY_DEVICE: str = "vr"

    # Start the liveness monitor and rate-limit sweeper on first connection
    RELAY_AUTOSTART_MONITORS: bool = True


def _load_dotenv() -> None:
    """Load the first .env found so pydantic-settings sees it; real env vars win."""
    current_dir = Path(__file__).resolve().parent
    env_paths = [
        current_dir.parent.parent.parent / ".env",  # repository root
        current_dir.parent.parent / ".env",         # pose_relay/.env (next to manage.py)
        Path(os.getcwd()) / ".env",
    ]
    for env_path in env_paths:
        if env_path.exists():
            load_dotenv(env_path, override=False)
            return


_load_dotenv()

config = RelaySettings()
