"""Broadcaster-only IRL stream commands.

Usage:
    !startirl   Switch to the intro scene and start streaming
    !stopirl    Stop streaming

Command names come from START_COMMAND / STOP_COMMAND.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from ..core.errors import IRLBotError

if TYPE_CHECKING:
    from ..core.config import IRLBotSettings
    from ..core.obs import StreamController
    from ..core.session import SessionOrchestrator

LOGGER = logging.getLogger("Bot.IRL")

COMMAND_PREFIX = "!"

Say = Callable[[str, str], Awaitable[None]]


@dataclass(frozen=True)
class CommandInvocation:
    """One inbound chat command."""

    channel: str
    username: str
    command_name: str
    args: tuple[str, ...] = ()
    badges: dict[str, str] = field(default_factory=dict)

    @property
    def is_broadcaster(self) -> bool:
        return self.badges.get("broadcaster") == "1"


def parse_command(
    channel: str, username: str, badges: dict[str, str], text: str
) -> CommandInvocation | None:
    """Split ``!name arg ...`` into a CommandInvocation, None for plain chat."""
    msg = text.strip()
    if not msg.startswith(COMMAND_PREFIX):
        return None

    parts = msg[len(COMMAND_PREFIX):].split()
    if not parts:
        return None

    return CommandInvocation(
        channel=channel,
        username=username,
        command_name=parts[0].lower(),
        args=tuple(parts[1:]),
        badges=badges,
    )


class SceneReadiness(Protocol):
    async def wait_ready(self, scene: str) -> None: ...


class FixedSettleDelay:
    """Wait a fixed time for OBS to finish loading a scene."""

    def __init__(self, seconds: float = 1.0) -> None:
        self.seconds = seconds

    async def wait_ready(self, scene: str) -> None:
        if self.seconds > 0:
            await asyncio.sleep(self.seconds)


class IRLCommands:
    """Routes broadcaster commands to the StreamController and replies in chat."""

    def __init__(
        self,
        controller: StreamController,
        say: Say,
        *,
        intro_scene: str = "Intro",
        start_command: str = "startirl",
        stop_command: str = "stopirl",
        readiness: SceneReadiness | None = None,
    ) -> None:
        self.controller = controller
        self.say = say
        self.intro_scene = intro_scene
        self.start_command = start_command.lower()
        self.stop_command = stop_command.lower()
        self.readiness = readiness or FixedSettleDelay()

    async def handle_message(
        self, channel: str, username: str, badges: dict[str, str], text: str
    ) -> None:
        invocation = parse_command(channel, username, badges, text)
        if invocation is not None:
            await self.dispatch(invocation)

    async def dispatch(self, invocation: CommandInvocation) -> bool:
        """Run a known command. Returns False when it was ignored or refused."""
        if invocation.command_name == self.start_command:
            handler = self.handle_start
        elif invocation.command_name == self.stop_command:
            handler = self.handle_stop
        else:
            return False

        if not invocation.is_broadcaster:
            LOGGER.warning(
                f"{invocation.username} tried !{invocation.command_name} but is not the broadcaster"
            )
            return False

        LOGGER.info(f"Command from {invocation.username}: !{invocation.command_name}")

        try:
            await handler(invocation.channel, invocation.username)
        except IRLBotError as e:
            LOGGER.error(f"Command !{invocation.command_name} failed: {e}")
            await self._reply_error(invocation, e)
        except Exception as e:
            LOGGER.exception(f"Unexpected error in !{invocation.command_name}: {e}")
            await self._reply_error(invocation, e)
        return True

    async def _reply_error(self, invocation: CommandInvocation, error: Exception) -> None:
        try:
            await self.say(
                invocation.channel, f"@{invocation.username} Failed to run command: {error}"
            )
        except Exception as e:
            LOGGER.error(f"Could not report error to chat: {e}")

    async def handle_start(self, channel: str, username: str) -> None:
        """check status -> switch to intro scene -> settle -> start stream"""
        status = await self.controller.get_status()
        if status.active:
            await self.say(channel, f"@{username} The IRL stream is already live!")
            return

        LOGGER.info(f"Switching to scene: {self.intro_scene}")
        await self.controller.switch_scene(self.intro_scene)
        await self.readiness.wait_ready(self.intro_scene)

        if not await self.controller.start_streaming():
            await self.say(channel, f"@{username} The IRL stream is already live!")
            return

        await self.say(channel, f"@{username} IRL stream started! 🎥")

    async def handle_stop(self, channel: str, username: str) -> None:
        """check status -> stop stream"""
        status = await self.controller.get_status()
        if not status.active:
            await self.say(channel, f"@{username} The IRL stream is already stopped!")
            return

        if not await self.controller.stop_streaming():
            await self.say(channel, f"@{username} The IRL stream is already stopped!")
            return

        await self.say(channel, f"@{username} IRL stream stopped! 👋")


def setup(
    orchestrator: SessionOrchestrator,
    controller: StreamController,
    settings: IRLBotSettings,
) -> IRLCommands:
    """Entry point for the module."""
    component = IRLCommands(
        controller,
        orchestrator.say,
        intro_scene=settings.intro_scene_name,
        start_command=settings.start_command,
        stop_command=settings.stop_command,
        readiness=FixedSettleDelay(settings.scene_settle_delay),
    )
    orchestrator.set_message_handler(component.handle_message)
    return component
