"""HTTP health check server"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from aiohttp import web

from .session import SessionState

if TYPE_CHECKING:
    from .session import SessionOrchestrator

logger = logging.getLogger("Bot.Health")

HEARTBEAT_INTERVAL = 300


class HealthCheckServer:
    """Liveness and status endpoints for the running bot.

    /health is always 200 so process supervisors only restart on a hang;
    ``ready`` is false while chat is down or reauthentication has failed.
    """

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        channel: str,
        host: str = "0.0.0.0",
        port: int = 4344,
    ):
        self.orchestrator = orchestrator
        self.channel = channel
        self.host = host
        self.port = port
        self.started_at = time.time()
        self.runner: web.AppRunner | None = None
        self._heartbeat_task: asyncio.Task | None = None

        self.app = web.Application()
        self.app.router.add_get("/", self.handle_root)
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/status", self.handle_status)
        self.app.router.add_get("/ping", self.handle_ping)

    @property
    def ready(self) -> bool:
        return self.orchestrator.state is SessionState.CONNECTED

    def snapshot(self) -> dict[str, Any]:
        controller = self.orchestrator.controller
        return {
            "service": "irlbot",
            "channel": self.channel,
            "state": self.orchestrator.state.value,
            "reauthenticating": self.orchestrator.reauthenticating,
            "obs_connected": controller is not None and controller.is_connected,
            "uptime_seconds": int(time.time() - self.started_at),
        }

    async def handle_root(self, request: web.Request) -> web.Response:
        return web.json_response({"service": "irlbot", "status": "running"})

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {"status": "healthy" if self.ready else "degraded", "ready": self.ready}
        )

    async def handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self.snapshot())

    async def handle_ping(self, request: web.Request) -> web.Response:
        return web.Response(text="pong")

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(HEARTBEAT_INTERVAL)
            info = self.snapshot()
            logger.info(
                f"Heartbeat: uptime={info['uptime_seconds']}s, state={info['state']}, "
                f"obs={info['obs_connected']}"
            )

    async def start(self) -> None:
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        await web.TCPSite(self.runner, self.host, self.port).start()
        self._heartbeat_task = asyncio.create_task(self._heartbeat())
        logger.info(f"Health server listening on http://{self.host}:{self.port} (/health, /status)")

    async def stop(self) -> None:
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None
        if self.runner:
            try:
                await self.runner.cleanup()
                logger.info("Health server stopped")
            except Exception as e:
                logger.exception(f"Error stopping health server: {e}")
            self.runner = None
