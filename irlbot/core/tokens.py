"""OAuth token storage and lifecycle.

Token policies:
- Proactive: the renewal scheduler asks ``is_expiring_soon`` with a lookahead
  (2 hours by default) and refreshes ahead of expiry.
- On demand: ``get_valid_token`` asks the identity provider whether the stored
  access token is still accepted and refreshes only when it is not.
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import httpx

from .errors import AuthError

LOGGER = logging.getLogger("Bot.Tokens")

OAUTH_BASE = "https://id.twitch.tv/oauth2"


@dataclass(frozen=True)
class TokenSet:
    """Access/refresh token pair with its expiry instant (epoch milliseconds)."""

    access_token: str
    refresh_token: str
    expires_at: int | None = None

    @classmethod
    def from_token_response(
        cls,
        data: dict[str, Any],
        *,
        issued_at: float,
        previous_refresh: str = "",
    ) -> TokenSet:
        """Build a TokenSet from an ``/oauth2/token`` response body.

        ``issued_at`` is in seconds; Twitch may omit a rotated refresh token,
        in which case the previous one is kept.
        """
        expires_in = data.get("expires_in")
        expires_at = (
            int((issued_at + float(expires_in)) * 1000) if expires_in is not None else None
        )
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or previous_refresh,
            expires_at=expires_at,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenSet:
        expires_at = data.get("expires_at")
        return cls(
            access_token=data.get("access_token", ""),
            refresh_token=data.get("refresh_token", ""),
            expires_at=int(expires_at) if expires_at is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def seconds_left(self, now: float) -> float | None:
        """Seconds until expiry, None when the expiry is unknown."""
        if self.expires_at is None:
            return None
        return self.expires_at / 1000 - now


class CredentialStore:
    """JSON file holding the single current TokenSet."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> TokenSet | None:
        if not self.path.exists():
            return None

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            LOGGER.error(f"Failed to read token file {self.path}: {e}")
            return None

        if not isinstance(data, dict) or not data.get("access_token"):
            LOGGER.error(f"Token file {self.path} has no access token")
            return None

        return TokenSet.from_dict(data)

    def save(self, tokens: TokenSet) -> None:
        """Overwrite the stored record wholesale."""
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(json.dumps(tokens.to_dict(), indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)
        LOGGER.debug(f"Saved tokens to {self.path}")


class TokenLifecycleManager:
    """Obtains, validates and renews the bot's user access token."""

    def __init__(
        self,
        store: CredentialStore,
        client_id: str,
        client_secret: str,
        *,
        http: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not client_id or not client_secret:
            raise ValueError("Twitch client_id and client_secret are required")

        self.store = store
        self.client_id = client_id
        self.client_secret = client_secret
        self._http = http or httpx.AsyncClient(timeout=10.0)
        self._clock = clock

    async def close(self) -> None:
        """Close the shared HTTP client. Call on shutdown."""
        await self._http.aclose()

    def load(self) -> TokenSet | None:
        return self.store.load()

    def is_expiring_soon(self, lookahead: float) -> bool:
        """True when the stored token expires within ``lookahead`` seconds.

        Missing tokens, or tokens without an expiry, count as expiring.
        """
        tokens = self.store.load()
        if tokens is None:
            return True

        seconds_left = tokens.seconds_left(self._clock())
        if seconds_left is None:
            return True

        return seconds_left < lookahead

    async def validate_remote(self, access_token: str) -> bool:
        """Ask the identity provider whether the token belongs to this client.

        Any failure counts as invalid.
        """
        try:
            response = await self._http.get(
                f"{OAUTH_BASE}/validate",
                headers={"Authorization": f"OAuth {access_token}"},
            )
        except httpx.HTTPError as e:
            LOGGER.warning(f"Token validation request failed: {type(e).__name__}: {e}")
            return False

        if response.status_code != 200:
            LOGGER.debug(f"Token validation returned {response.status_code}")
            return False

        try:
            data = response.json()
        except ValueError:
            return False

        return isinstance(data, dict) and data.get("client_id") == self.client_id

    async def _request_token(self, form: dict[str, str]) -> dict[str, Any]:
        """POST to the token endpoint and return the body if it carries an access token."""
        grant_type = form.get("grant_type")
        try:
            response = await self._http.post(
                f"{OAUTH_BASE}/token",
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    **form,
                },
            )
        except httpx.HTTPError as e:
            raise AuthError(f"Token request ({grant_type}) failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not isinstance(data, dict) or not data.get("access_token"):
            error_msg = data.get("message") if isinstance(data, dict) else None
            raise AuthError(
                f"Token request ({grant_type}) rejected: "
                f"{error_msg or f'HTTP {response.status_code}'}"
            )

        return data

    async def refresh(self, refresh_token: str) -> TokenSet:
        """Exchange a refresh token for a new pair and persist it before returning."""
        if not refresh_token:
            raise AuthError("No refresh token stored")

        issued_at = self._clock()
        data = await self._request_token(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )
        tokens = TokenSet.from_token_response(
            data, issued_at=issued_at, previous_refresh=refresh_token
        )

        self.store.save(tokens)
        LOGGER.info("Token refreshed")
        return tokens

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        """Exchange an authorization code for the first token pair and persist it."""
        issued_at = self._clock()
        data = await self._request_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            }
        )
        tokens = TokenSet.from_token_response(data, issued_at=issued_at)

        self.store.save(tokens)
        LOGGER.info("Authorization code exchanged, tokens saved")
        return tokens

    async def get_valid_token(self) -> str:
        """Return an access token the provider accepts, refreshing if needed."""
        tokens = self.store.load()
        if tokens is None:
            raise AuthError("no credentials")

        if await self.validate_remote(tokens.access_token):
            LOGGER.info("Stored token is valid")
            return tokens.access_token

        LOGGER.info("Stored token rejected, refreshing...")
        tokens = await self.refresh(tokens.refresh_token)
        return tokens.access_token
