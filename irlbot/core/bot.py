"""Twitch IRC chat session that forwards chat events to the session orchestrator."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import twitchio
from twitchio.ext import commands

from .errors import AuthError, TransportError

if TYPE_CHECKING:
    from .session import SessionOrchestrator

LOGGER: logging.Logger = logging.getLogger("Bot.Chat")

IRC_HOST = "irc-ws.chat.twitch.tv"
IRC_PORT = 443

# Server notices sent without a msg-id when the login is refused
LOGIN_FAILURE_PREFIXES = ("Login authentication failed", "Improperly formatted auth")


def notice_id_for(message: str, msg_id: str | None) -> str | None:
    """Give id-less login failure notices the ``authentication_failed`` id."""
    if msg_id is None and message.startswith(LOGIN_FAILURE_PREFIXES):
        return "authentication_failed"
    return msg_id


class ChatBot(commands.Bot):
    """One IRC connection bound to a single access token.

    Never re-credentialed: the orchestrator closes it and builds a new one
    whenever the token changes.
    """

    def __init__(self, *, token: str, channel: str, events: SessionOrchestrator) -> None:
        # Client.events is a read-only twitchio property
        self.orchestrator = events
        self.channel_name = channel
        super().__init__(token=token, prefix="!", initial_channels=[channel])

    async def connect(self) -> None:
        try:
            await super().connect()
        except twitchio.AuthenticationError as e:
            raise AuthError(f"Chat login refused: {e}") from e

    async def say(self, channel: str, text: str) -> None:
        chan = self.get_channel(channel.lstrip("#"))
        if chan is None:
            raise TransportError(f"Not joined to #{channel.lstrip('#')}")
        await chan.send(text)

    async def event_ready(self) -> None:
        LOGGER.info(f"Logged in to chat as {self.nick}")
        await self.orchestrator.on_connected(IRC_HOST, IRC_PORT)

    async def event_reconnect(self) -> None:
        await self.orchestrator.on_disconnected("server requested reconnect")

    async def event_channel_join_failure(self, channel: str) -> None:
        LOGGER.error(f"Failed to join #{channel}")

    async def event_notice(
        self, message: str, msg_id: str | None, channel: twitchio.Channel | None
    ) -> None:
        await self.orchestrator.on_notice(
            channel.name if channel else None, notice_id_for(message, msg_id), message
        )

    async def event_error(self, error: Exception, data: str | None = None) -> None:
        LOGGER.error(f"Chat error: {type(error).__name__}: {error}")

    async def event_message(self, message: twitchio.Message) -> None:
        author = message.author
        channel = message.channel.name if message.channel else self.channel_name

        if message.echo or author is None:
            await self.orchestrator.on_message(channel, self.nick or "", {}, message.content, True)
            return

        LOGGER.debug(f"[{author.name}#{channel}]: {message.content}")
        await self.orchestrator.on_message(
            channel, author.name, dict(author.badges or {}), message.content, False
        )
