"""Core modules for the IRL bot."""

from .bot import ChatBot
from .config import (
    AUTH_FAILURE_NOTICES,
    BOT_SCOPES,
    PACKAGE_DIR,
    PROJECT_DIR,
    IRLBotSettings,
    get_settings,
    load_settings,
)
from .errors import (
    AuthError,
    ConfigError,
    IRLBotError,
    NotConnectedError,
    RemoteError,
    TransportError,
)
from .health_server import HealthCheckServer
from .logging import setup_logging
from .obs import RemoteStreamStatus, StreamController
from .session import (
    ChatSession,
    RenewalScheduler,
    SessionHolder,
    SessionOrchestrator,
    SessionState,
)
from .tokens import CredentialStore, TokenLifecycleManager, TokenSet

__all__ = [
    # Settings
    "IRLBotSettings",
    "get_settings",
    "load_settings",
    # Path Constants
    "PACKAGE_DIR",
    "PROJECT_DIR",
    # Chat Constants
    "BOT_SCOPES",
    "AUTH_FAILURE_NOTICES",
    # Errors
    "IRLBotError",
    "ConfigError",
    "AuthError",
    "TransportError",
    "NotConnectedError",
    "RemoteError",
    # Setup functions
    "setup_logging",
    # Tokens
    "TokenSet",
    "CredentialStore",
    "TokenLifecycleManager",
    # OBS
    "RemoteStreamStatus",
    "StreamController",
    # Chat session
    "ChatBot",
    "ChatSession",
    "SessionHolder",
    "RenewalScheduler",
    "SessionOrchestrator",
    "SessionState",
    # Services
    "HealthCheckServer",
]
