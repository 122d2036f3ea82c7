"""OBS WebSocket stream controller"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, TypeVar

import obsws_python as obs
from obsws_python.error import OBSSDKError, OBSSDKRequestError
from websocket import WebSocketException

from .errors import NotConnectedError, RemoteError

LOGGER = logging.getLogger("Bot.OBS")

T = TypeVar("T")


@dataclass(frozen=True)
class RemoteStreamStatus:
    """Live stream output state as reported by OBS. Never cached."""

    active: bool
    reconnecting: bool
    elapsed: timedelta
    bytes_sent: int
    timecode: str = ""


class StreamController:
    """Idempotent streaming control over an obs-websocket request client.

    obsws-python is blocking, so every request runs in a worker thread.
    """

    def __init__(
        self,
        host: str,
        port: int,
        password: str,
        *,
        timeout: float = 5,
        client_factory: Callable[..., Any] = obs.ReqClient,
    ) -> None:
        self.host = host
        self.port = port
        self.password = password
        self.timeout = timeout
        self._client_factory = client_factory
        self._client: Any | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> bool:
        """Open the WebSocket connection. Returns False when OBS is unreachable."""
        try:
            self._client = await asyncio.to_thread(
                self._client_factory,
                host=self.host,
                port=self.port,
                password=self.password,
                timeout=self.timeout,
            )
        except (OSError, OBSSDKError, WebSocketException) as e:
            LOGGER.error(f"Failed to connect to OBS at {self.host}:{self.port}: {e}")
            self._client = None
            return False

        LOGGER.info(f"Connected to OBS WebSocket at {self.host}:{self.port}")
        return True

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await asyncio.to_thread(client.disconnect)
            LOGGER.info("Disconnected from OBS")
        except (OSError, OBSSDKError, WebSocketException) as e:
            LOGGER.warning(f"Error disconnecting from OBS: {e}")

    async def _call(self, request: str, fn: Callable[[Any], T]) -> T:
        """Run one request against the live client, mapping obsws errors."""
        client = self._client
        if client is None:
            raise NotConnectedError("Not connected to OBS")

        try:
            return await asyncio.to_thread(fn, client)
        except OBSSDKRequestError as e:
            LOGGER.error(f"OBS rejected {request}: {e}")
            raise RemoteError(f"OBS rejected {request}: {e}", code=getattr(e, "code", None)) from e
        except (OSError, OBSSDKError, WebSocketException) as e:
            LOGGER.error(f"Lost OBS connection during {request}: {e}")
            self._client = None
            raise NotConnectedError(f"Lost OBS connection: {e}") from e

    async def get_status(self) -> RemoteStreamStatus:
        resp = await self._call("GetStreamStatus", lambda c: c.get_stream_status())
        return RemoteStreamStatus(
            active=bool(resp.output_active),
            reconnecting=bool(resp.output_reconnecting),
            elapsed=timedelta(milliseconds=resp.output_duration or 0),
            bytes_sent=int(resp.output_bytes or 0),
            timecode=getattr(resp, "output_timecode", "") or "",
        )

    async def switch_scene(self, name: str) -> None:
        await self._call(
            "SetCurrentProgramScene", lambda c: c.set_current_program_scene(name)
        )
        LOGGER.info(f"Switched to scene: {name}")

    async def start_streaming(self) -> bool:
        """Start the stream. Returns False (no request sent) if already live."""
        status = await self.get_status()
        if status.active:
            LOGGER.info("Stream already active")
            return False

        await self._call("StartStream", lambda c: c.start_stream())
        LOGGER.info("Stream started")
        return True

    async def stop_streaming(self) -> bool:
        """Stop the stream. Returns False (no request sent) if already offline."""
        status = await self.get_status()
        if not status.active:
            LOGGER.info("Stream already stopped")
            return False

        await self._call("StopStream", lambda c: c.stop_stream())
        LOGGER.info("Stream stopped")
        return True

    async def list_scenes(self) -> list[str]:
        resp = await self._call("GetSceneList", lambda c: c.get_scene_list())
        return [scene["sceneName"] for scene in resp.scenes]
