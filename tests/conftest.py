"""
Shared fixtures for the IRL bot test suite.

- A fake Twitch identity provider served through httpx.MockTransport
- A controllable clock for expiry checks
- A fake obs-websocket request client
- A fake chat session factory that records every session it builds
"""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from urllib.parse import parse_qsl

import httpx
import pytest
import pytest_asyncio
from obsws_python.error import OBSSDKRequestError

from irlbot.core.config import IRLBotSettings
from irlbot.core.obs import StreamController
from irlbot.core.tokens import CredentialStore, TokenLifecycleManager, TokenSet

CLIENT_ID = "test-client-id"
CLIENT_SECRET = "test-client-secret"
NOW = 1_700_000_000.0


class FakeClock:
    """Callable clock returning epoch seconds."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeIdentityProvider:
    """Minimal stand-in for id.twitch.tv /oauth2/token and /oauth2/validate."""

    def __init__(self, client_id: str = CLIENT_ID) -> None:
        self.client_id = client_id
        self.valid_tokens: set[str] = set()
        self.token_requests: list[dict[str, str]] = []
        self.validate_calls: list[str] = []
        self.expires_in = 14_400
        self.rotate_refresh = True
        self.reject_token_requests = False
        self._counter = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth2/validate":
            token = request.headers.get("Authorization", "").removeprefix("OAuth ")
            self.validate_calls.append(token)
            if token in self.valid_tokens:
                return httpx.Response(
                    200,
                    json={"client_id": self.client_id, "login": "streamer", "expires_in": 3600},
                )
            return httpx.Response(401, json={"status": 401, "message": "invalid access token"})

        if request.url.path == "/oauth2/token" and request.method == "POST":
            form = dict(parse_qsl(request.content.decode()))
            self.token_requests.append(form)
            if self.reject_token_requests:
                return httpx.Response(400, json={"status": 400, "message": "Invalid refresh token"})

            self._counter += 1
            access = f"access-{self._counter}"
            self.valid_tokens.add(access)
            body = {
                "access_token": access,
                "expires_in": self.expires_in,
                "scope": ["chat:read", "chat:edit"],
                "token_type": "bearer",
            }
            if self.rotate_refresh:
                body["refresh_token"] = f"refresh-{self._counter}"
            return httpx.Response(200, json=body)

        return httpx.Response(404)


class FakeOBSClient:
    """Synchronous obs-websocket request client double."""

    def __init__(self, scenes: tuple[str, ...] = ("Intro", "Main"), active: bool = False) -> None:
        self.scenes = list(scenes)
        self.active = active
        self.current_scene = self.scenes[0] if self.scenes else ""
        self.calls: list[object] = []
        self.disconnected = False

    def get_stream_status(self):
        self.calls.append("GetStreamStatus")
        return SimpleNamespace(
            output_active=self.active,
            output_reconnecting=False,
            output_timecode="00:01:30.000" if self.active else "00:00:00.000",
            output_duration=90_000 if self.active else 0,
            output_bytes=1_048_576 if self.active else 0,
        )

    def start_stream(self):
        self.calls.append("StartStream")
        self.active = True

    def stop_stream(self):
        self.calls.append("StopStream")
        self.active = False

    def set_current_program_scene(self, name: str):
        self.calls.append(("SetCurrentProgramScene", name))
        if name not in self.scenes:
            raise OBSSDKRequestError(
                "SetCurrentProgramScene", 600, f"No source was found by the name of `{name}`."
            )
        self.current_scene = name

    def get_scene_list(self):
        self.calls.append("GetSceneList")
        return SimpleNamespace(
            scenes=[{"sceneName": name, "sceneIndex": i} for i, name in enumerate(self.scenes)]
        )

    def disconnect(self):
        self.disconnected = True


class FakeChatSession:
    def __init__(self, token: str, events, log: list) -> None:
        self.token = token
        self.events = events
        self.log = log
        self.connected = False
        self.closed = False
        self.sent: list[tuple[str, str]] = []

    async def connect(self) -> None:
        # yield like a real network handshake
        await asyncio.sleep(0)
        self.connected = True
        self.log.append(("connect", self.token))

    async def close(self) -> None:
        self.closed = True
        self.log.append(("close", self.token))

    async def say(self, channel: str, text: str) -> None:
        self.sent.append((channel, text))


class FakeSessionFactory:
    """Builds FakeChatSession objects and remembers them in order."""

    def __init__(self, log: list | None = None) -> None:
        self.log = log if log is not None else []
        self.sessions: list[FakeChatSession] = []

    def __call__(self, token: str, events) -> FakeChatSession:
        self.log.append(("construct", token))
        session = FakeChatSession(token, events, self.log)
        self.sessions.append(session)
        return session


def write_tokens(store: CredentialStore, access: str, refresh: str, expires_at: float | None) -> TokenSet:
    tokens = TokenSet(
        access_token=access,
        refresh_token=refresh,
        expires_at=int(expires_at * 1000) if expires_at is not None else None,
    )
    store.save(tokens)
    return tokens


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def store(tmp_path) -> CredentialStore:
    return CredentialStore(tmp_path / "tokens.json")


@pytest_asyncio.fixture
async def tokens(store, provider, clock):
    http = httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))
    manager = TokenLifecycleManager(store, CLIENT_ID, CLIENT_SECRET, http=http, clock=clock)
    yield manager
    await manager.close()


@pytest.fixture
def obs_client() -> FakeOBSClient:
    return FakeOBSClient()


@pytest_asyncio.fixture
async def controller(obs_client):
    ctrl = StreamController("localhost", 4455, "secret", client_factory=lambda **kwargs: obs_client)
    assert await ctrl.connect()
    yield ctrl
    await ctrl.disconnect()


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def settings() -> IRLBotSettings:
    return IRLBotSettings(
        _env_file=None,
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        channel="#Streamer",
        obs_password="secret",
        scene_settle_delay=0,
    )


def read_json(path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))
