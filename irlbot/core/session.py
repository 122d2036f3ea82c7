"""Chat session lifecycle: startup, periodic renewal and reauthentication."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol

from .config import AUTH_FAILURE_NOTICES
from .errors import AuthError, TransportError

if TYPE_CHECKING:
    from .obs import StreamController
    from .tokens import TokenLifecycleManager

LOGGER: logging.Logger = logging.getLogger("Bot.Session")


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    REAUTHENTICATING = "reauthenticating"


class ChatSession(Protocol):
    """A chat connection bound to one access token."""

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def say(self, channel: str, text: str) -> None: ...


SessionFactory = Callable[[str, "SessionOrchestrator"], ChatSession]
MessageHandler = Callable[[str, str, dict[str, str], str], Awaitable[None]]


class SessionHolder:
    """Owns the single chat session handle.

    Replacement, sends and close all take the same lock, so nothing is sent
    through a session that is being torn down.
    """

    def __init__(self) -> None:
        self._session: ChatSession | None = None
        self._lock = asyncio.Lock()

    @property
    def current(self) -> ChatSession | None:
        return self._session

    async def replace(self, factory: Callable[[], ChatSession]) -> ChatSession:
        """Tear down the current session, then build and connect a new one."""
        async with self._lock:
            old, self._session = self._session, None
            if old is not None:
                await self._close_quietly(old)

            session = factory()
            await session.connect()
            self._session = session
            return session

    async def say(self, channel: str, text: str) -> None:
        async with self._lock:
            if self._session is None:
                raise TransportError("No chat session")
            await self._session.say(channel, text)

    async def close(self) -> None:
        async with self._lock:
            old, self._session = self._session, None
            if old is not None:
                await self._close_quietly(old)

    @staticmethod
    async def _close_quietly(session: ChatSession) -> None:
        try:
            await session.close()
        except Exception as e:
            LOGGER.warning(f"Error closing chat session: {type(e).__name__}: {e}")


class RenewalScheduler:
    """Periodic task owned by the orchestrator, with explicit start/stop."""

    def __init__(self, interval: float, callback: Callable[[], Awaitable[object]]) -> None:
        self.interval = interval
        self._callback = callback
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        LOGGER.info(f"Token check started (every {self.interval / 60:g} minutes)")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self._callback()
            except Exception as e:
                LOGGER.exception(f"Error in token check: {e}")


class SessionOrchestrator:
    """Keeps one authenticated chat session alive.

    States: DISCONNECTED -> CONNECTING -> CONNECTED -> REAUTHENTICATING ->
    CONNECTING -> CONNECTED ... and DISCONNECTED again on shutdown. A failed
    reauthentication stays in REAUTHENTICATING until the next tick or notice.
    """

    def __init__(
        self,
        tokens: TokenLifecycleManager,
        session_factory: SessionFactory,
        *,
        controller: StreamController | None = None,
        check_interval: float = 30 * 60,
        lookahead: float = 2 * 60 * 60,
        shutdown_timeout: float = 10.0,
    ) -> None:
        self.tokens = tokens
        self.controller = controller
        self.lookahead = lookahead
        self.shutdown_timeout = shutdown_timeout
        self.state = SessionState.DISCONNECTED
        self.sessions = SessionHolder()
        self.scheduler = RenewalScheduler(check_interval, self.check_and_renew)

        self._session_factory = session_factory
        self._reauth_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()
        self._message_handler: MessageHandler | None = None
        self._closing = False

    def set_message_handler(self, handler: MessageHandler) -> None:
        self._message_handler = handler

    @property
    def reauthenticating(self) -> bool:
        return self._reauth_lock.locked()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Get a valid token, connect the chat session and start the scheduler.

        Raises AuthError when no usable credentials exist.
        """
        self.state = SessionState.CONNECTING
        try:
            access_token = await self.tokens.get_valid_token()
            await self.sessions.replace(lambda: self._session_factory(access_token, self))
        except Exception:
            self.state = SessionState.DISCONNECTED
            raise

        self.state = SessionState.CONNECTED
        self.scheduler.start()

    async def shutdown(self) -> None:
        """Cancel queued reauthentication and the scheduler, then disconnect chat and OBS."""
        self._closing = True

        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        await self.scheduler.stop()

        try:
            await asyncio.wait_for(self.sessions.close(), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Timed out disconnecting from chat")

        if self.controller is not None:
            try:
                await asyncio.wait_for(self.controller.disconnect(), timeout=self.shutdown_timeout)
            except asyncio.TimeoutError:
                LOGGER.warning("Timed out disconnecting from OBS")

        self.state = SessionState.DISCONNECTED
        LOGGER.info("Session closed")

    # ------------------------------------------------------------------
    # Renewal
    # ------------------------------------------------------------------

    async def check_and_renew(self) -> bool:
        """Scheduler tick: renew when the stored token is close to expiry."""
        if not self.tokens.is_expiring_soon(self.lookahead):
            LOGGER.debug("Token not expiring soon")
            return False

        LOGGER.info("Token expiring soon, renewing...")
        return await self.reauthenticate("token expiring soon")

    async def reauthenticate(self, reason: str) -> bool:
        """Refresh the token and rebuild the chat session.

        Single-flight: returns False without doing anything when another
        reauthentication is already running.
        """
        if self._reauth_lock.locked():
            LOGGER.info(f"Reauthentication already in progress, ignoring trigger: {reason}")
            return False

        async with self._reauth_lock:
            if self._closing:
                return False

            self.state = SessionState.REAUTHENTICATING
            LOGGER.info(f"Reauthenticating ({reason})...")

            try:
                current = self.tokens.load()
                if current is None:
                    raise AuthError("no credentials")

                tokens = await self.tokens.refresh(current.refresh_token)

                self.state = SessionState.CONNECTING
                await self.sessions.replace(
                    lambda: self._session_factory(tokens.access_token, self)
                )
            except AuthError as e:
                self.state = SessionState.REAUTHENTICATING
                LOGGER.error(f"Token renewal failed: {e}")
                LOGGER.error("Run the authorization flow again: python -m irlbot.scripts.oauth")
                return False
            except Exception as e:
                self.state = SessionState.REAUTHENTICATING
                LOGGER.exception(f"Reconnect after renewal failed: {e}")
                return False

            self.state = SessionState.CONNECTED
            LOGGER.info("Reconnected to chat with the new token")
            return True

    def request_reauthentication(self, reason: str) -> asyncio.Task | None:
        """Schedule a reauthentication outside the caller's event handler."""
        if self._closing or self._reauth_lock.locked() or self._pending:
            LOGGER.debug(f"Skipping reauthentication request: {reason}")
            return None

        task = asyncio.create_task(self.reauthenticate(reason))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    # ------------------------------------------------------------------
    # Chat events
    # ------------------------------------------------------------------

    async def on_connected(self, address: str, port: int) -> None:
        LOGGER.info(f"Connected to chat: {address}:{port}")

    async def on_disconnected(self, reason: str) -> None:
        LOGGER.warning(f"Disconnected from chat: {reason}")

    async def on_notice(self, channel: str | None, notice_id: str | None, message: str) -> asyncio.Task | None:
        if notice_id not in AUTH_FAILURE_NOTICES:
            LOGGER.debug(f"Notice [{notice_id}] {channel}: {message}")
            return None

        LOGGER.warning(f"Authentication problem reported by chat ({notice_id}): {message}")
        return self.request_reauthentication(f"notice {notice_id}")

    async def on_message(
        self,
        channel: str,
        username: str,
        badges: dict[str, str],
        text: str,
        is_self: bool,
    ) -> None:
        if is_self or self._message_handler is None:
            return
        await self._message_handler(channel, username, badges, text)

    async def say(self, channel: str, text: str) -> None:
        await self.sessions.say(channel, text)
