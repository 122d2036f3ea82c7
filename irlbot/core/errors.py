"""Error taxonomy shared by the token, session and OBS layers."""


class IRLBotError(Exception):
    """Base class for all bot errors."""


class ConfigError(IRLBotError):
    """Required settings are missing or invalid. Fatal at startup."""


class AuthError(IRLBotError):
    """No stored credentials, or the identity provider rejected a renewal.

    Recovery requires running the one-time authorization script again.
    """


class TransportError(IRLBotError):
    """Network failure talking to chat, the identity provider or OBS."""


class NotConnectedError(TransportError):
    """OBS connection is not available."""


class RemoteError(IRLBotError):
    """OBS rejected a request (unknown scene, output already running, ...)."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
