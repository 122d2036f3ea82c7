"""
Unit tests for CredentialStore and TokenLifecycleManager.

Covers expiry arithmetic, the 2-hour proactive lookahead, fail-closed remote
validation, persist-before-return on refresh and the startup token path.
"""

import httpx
import pytest

from irlbot.core.errors import AuthError
from irlbot.core.tokens import CredentialStore, TokenLifecycleManager, TokenSet
from tests.conftest import CLIENT_ID, CLIENT_SECRET, NOW, read_json, write_tokens

HOUR = 3600


class TestTokenSet:
    def test_expiry_derived_from_issue_time(self):
        tokens = TokenSet.from_token_response(
            {"access_token": "a", "refresh_token": "r", "expires_in": 14_400},
            issued_at=NOW,
        )
        assert tokens.expires_at == int((NOW + 14_400) * 1000)
        assert tokens.seconds_left(NOW) == pytest.approx(14_400)

    def test_missing_rotated_refresh_keeps_previous(self):
        tokens = TokenSet.from_token_response(
            {"access_token": "a", "expires_in": 60}, issued_at=NOW, previous_refresh="old-refresh"
        )
        assert tokens.refresh_token == "old-refresh"

    def test_no_expiry_has_unknown_lifetime(self):
        assert TokenSet("a", "r").seconds_left(NOW) is None


class TestCredentialStore:
    def test_load_missing_file(self, store):
        assert store.load() is None

    def test_persisted_shape(self, store):
        write_tokens(store, "a", "r", NOW + HOUR)

        assert read_json(store.path) == {
            "access_token": "a",
            "refresh_token": "r",
            "expires_at": int((NOW + HOUR) * 1000),
        }

    def test_save_overwrites_wholesale(self, store):
        write_tokens(store, "a1", "r1", NOW)
        write_tokens(store, "a2", "r2", None)

        loaded = store.load()
        assert loaded == TokenSet("a2", "r2", None)
        assert not store.path.with_name("tokens.json.tmp").exists()

    def test_corrupt_file_counts_as_missing(self, store):
        store.path.write_text("{not json", encoding="utf-8")
        assert store.load() is None


class TestIsExpiringSoon:
    def test_no_tokens_is_expiring(self, tokens):
        assert tokens.is_expiring_soon(2 * HOUR) is True

    def test_no_expiry_is_expiring(self, tokens, store):
        write_tokens(store, "a", "r", None)
        assert tokens.is_expiring_soon(2 * HOUR) is True

    def test_within_lookahead(self, tokens, store):
        write_tokens(store, "a", "r", NOW + 30 * 60)
        assert tokens.is_expiring_soon(2 * HOUR) is True

    def test_outside_lookahead(self, tokens, store):
        write_tokens(store, "a", "r", NOW + 3 * HOUR)
        assert tokens.is_expiring_soon(2 * HOUR) is False

    def test_exact_boundary_is_not_expiring(self, tokens, store):
        write_tokens(store, "a", "r", NOW + 2 * HOUR)
        assert tokens.is_expiring_soon(2 * HOUR) is False

    def test_monotonic_in_time(self, tokens, store, clock):
        write_tokens(store, "a", "r", NOW + 3 * HOUR)
        results = []
        for _ in range(8):
            results.append(tokens.is_expiring_soon(2 * HOUR))
            clock.advance(30 * 60)

        flipped = results.index(True)
        assert all(results[flipped:])
        assert not any(results[:flipped])


class TestValidateRemote:
    @pytest.mark.asyncio
    async def test_accepted_token(self, tokens, provider):
        provider.valid_tokens.add("good")
        assert await tokens.validate_remote("good") is True
        assert provider.validate_calls == ["good"]

    @pytest.mark.asyncio
    async def test_rejected_token(self, tokens):
        assert await tokens.validate_remote("bad") is False

    @pytest.mark.asyncio
    async def test_token_of_another_client(self, store, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"client_id": "someone-else"})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        manager = TokenLifecycleManager(store, CLIENT_ID, CLIENT_SECRET, http=http, clock=clock)
        try:
            assert await manager.validate_remote("token") is False
        finally:
            await manager.close()

    @pytest.mark.asyncio
    async def test_transport_failure_is_invalid(self, store, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        manager = TokenLifecycleManager(store, CLIENT_ID, CLIENT_SECRET, http=http, clock=clock)
        try:
            assert await manager.validate_remote("token") is False
        finally:
            await manager.close()


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_persists_before_returning(self, tokens, store, provider):
        write_tokens(store, "old-access", "old-refresh", NOW - 10)

        result = await tokens.refresh("old-refresh")

        assert provider.token_requests[-1] == {
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
            "grant_type": "refresh_token",
            "refresh_token": "old-refresh",
        }
        assert result.access_token == "access-1"
        assert result.expires_at == int((NOW + provider.expires_in) * 1000)
        # a restart right after refresh sees the new pair
        assert CredentialStore(store.path).load() == result

    @pytest.mark.asyncio
    async def test_refresh_keeps_refresh_token_when_not_rotated(self, tokens, store, provider):
        provider.rotate_refresh = False
        write_tokens(store, "old-access", "old-refresh", NOW - 10)

        result = await tokens.refresh("old-refresh")

        assert result.refresh_token == "old-refresh"
        assert store.load().refresh_token == "old-refresh"

    @pytest.mark.asyncio
    async def test_rejected_refresh_raises_and_keeps_store(self, tokens, store, provider):
        provider.reject_token_requests = True
        original = write_tokens(store, "old-access", "old-refresh", NOW - 10)

        with pytest.raises(AuthError, match="Invalid refresh token"):
            await tokens.refresh("old-refresh")

        assert store.load() == original

    @pytest.mark.asyncio
    async def test_empty_refresh_token(self, tokens, provider):
        with pytest.raises(AuthError):
            await tokens.refresh("")
        assert provider.token_requests == []


class TestExchangeCode:
    @pytest.mark.asyncio
    async def test_exchange_code_saves_first_pair(self, tokens, store, provider):
        result = await tokens.exchange_code("the-code", "http://localhost:3000/callback")

        request = provider.token_requests[-1]
        assert request["grant_type"] == "authorization_code"
        assert request["code"] == "the-code"
        assert request["redirect_uri"] == "http://localhost:3000/callback"
        assert store.load() == result


class TestGetValidToken:
    @pytest.mark.asyncio
    async def test_no_credentials(self, tokens):
        with pytest.raises(AuthError, match="no credentials"):
            await tokens.get_valid_token()

    @pytest.mark.asyncio
    async def test_valid_token_is_returned_without_refresh(self, tokens, store, provider):
        write_tokens(store, "live-token", "r", NOW + 4 * HOUR)
        provider.valid_tokens.add("live-token")

        assert await tokens.get_valid_token() == "live-token"
        assert provider.token_requests == []

    @pytest.mark.asyncio
    async def test_invalid_token_is_refreshed(self, tokens, store, provider):
        write_tokens(store, "dead-token", "r", NOW + 4 * HOUR)

        assert await tokens.get_valid_token() == "access-1"
        assert store.load().access_token == "access-1"

    @pytest.mark.asyncio
    async def test_on_demand_check_ignores_lookahead(self, tokens, store, provider):
        # 30 minutes left: the proactive check wants renewal, the on-demand
        # path still asks the provider and keeps the accepted token
        write_tokens(store, "live-token", "r", NOW + 30 * 60)
        provider.valid_tokens.add("live-token")

        assert tokens.is_expiring_soon(2 * HOUR) is True
        assert await tokens.get_valid_token() == "live-token"
        assert provider.validate_calls == ["live-token"]
        assert provider.token_requests == []


def test_requires_client_credentials(store):
    with pytest.raises(ValueError):
        TokenLifecycleManager(store, "", "secret")
