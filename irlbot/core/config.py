"""IRL bot configuration"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

logger = logging.getLogger(__name__)

# === Path Configuration ===
PACKAGE_DIR = Path(__file__).parent.parent
PROJECT_DIR = PACKAGE_DIR.parent

# IRC chat only needs to read commands and reply
BOT_SCOPES = [
    "chat:read",  # Read chat messages
    "chat:edit",  # Send chat messages
]

# Notice ids that mean the chat login is no longer accepted
AUTH_FAILURE_NOTICES = frozenset(
    {
        "msg_channel_suspended",
        "msg_banned",
        "authentication_failed",
    }
)


class IRLBotSettings(BaseSettings):
    """IRL bot settings"""

    model_config = SettingsConfigDict(
        env_file=PROJECT_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Twitch OAuth
    client_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("client_id", "twitch_client_id"),
        description="Twitch OAuth Client ID",
    )
    client_secret: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("client_secret", "twitch_client_secret"),
        description="Twitch OAuth Client Secret",
    )
    redirect_uri: str = Field(
        default="http://localhost:3000/callback",
        validation_alias=AliasChoices("redirect_uri", "twitch_redirect_uri"),
        description="OAuth redirect URI",
    )
    tokens_file: Path = Field(default=Path("tokens.json"), description="Stored token pair")

    # Chat
    channel: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("channel", "twitch_channel"),
        description="Channel the bot logs in as and joins",
    )
    start_command: str = Field(default="startirl", description="Command that starts the stream")
    stop_command: str = Field(default="stopirl", description="Command that stops the stream")

    # OBS WebSocket
    obs_host: str = Field(default="localhost", description="OBS WebSocket host")
    obs_port: int = Field(default=4455, description="OBS WebSocket port")
    obs_password: str = Field(..., min_length=1, description="OBS WebSocket password")
    intro_scene_name: str = Field(default="Intro", description="Scene shown when going live")
    scene_settle_delay: float = Field(
        default=1.0, ge=0, description="Seconds to wait after switching scene"
    )

    # Token renewal
    token_check_interval: float = Field(
        default=30 * 60, gt=0, description="Seconds between expiry checks"
    )
    token_lookahead: float = Field(
        default=2 * 60 * 60, ge=0, description="Renew when the token expires within this many seconds"
    )

    # Runtime
    shutdown_timeout: float = Field(default=10.0, gt=0, description="Shutdown deadline in seconds")
    health_port: int = Field(default=0, ge=0, description="Health server port, 0 disables it")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("channel")
    @classmethod
    def normalize_channel(cls, v: str) -> str:
        """Channel names are lower-case logins without the leading '#'"""
        return v.strip().lstrip("#").lower()

    @field_validator("start_command", "stop_command")
    @classmethod
    def strip_command_prefix(cls, v: str) -> str:
        return v.strip().lstrip("!")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper


@lru_cache
def get_settings() -> IRLBotSettings:
    """Get cached settings instance"""
    return IRLBotSettings()  # type: ignore[call-arg]


def load_settings() -> IRLBotSettings:
    """Load settings, turning validation failures into ConfigError."""
    try:
        return get_settings()
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]).upper() for err in e.errors()]
        error_msg = "Missing or invalid settings:\n" + "\n".join(f"  - {m}" for m in missing)
        raise ConfigError(error_msg) from e
