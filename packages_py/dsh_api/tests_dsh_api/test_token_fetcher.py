"""
Tests for the client-credentials exchange.
"""
from urllib.parse import parse_qs

import httpx
import pytest

from dsh_api import TenantCredentials, TokenFetcher, TokenFetchFailed

from .conftest import KEY, SECRET, TENANT, TOKEN_URL, token_response


@pytest.fixture
def credentials():
    return TenantCredentials(tenant=TENANT, secret=SECRET)


@pytest.fixture
def fetcher(httpx_client, clock):
    return TokenFetcher(httpx_client, clock=clock)


class TestTokenFetcher:
    """TokenFetcher.fetch"""

    @pytest.mark.asyncio
    async def test_fetch_posts_client_credentials(self, router, fetcher, nplz, credentials):
        route = router.post(TOKEN_URL).mock(return_value=token_response("token-1", 300))

        await fetcher.fetch(nplz, credentials)

        assert route.call_count == 1
        request = route.calls.last.request
        form = parse_qs(request.content.decode())
        assert form == {
            "client_id": ["robot:dev-lz-dsh:my-tenant"],
            "client_secret": [SECRET],
            "grant_type": ["client_credentials"],
        }
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"

    @pytest.mark.asyncio
    async def test_fetch_computes_absolute_expiry(self, router, fetcher, nplz, credentials, clock):
        router.post(TOKEN_URL).mock(return_value=token_response("token-1", 300))

        token = await fetcher.fetch(nplz, credentials)

        assert token.access_token == "token-1"
        assert token.expires_in == 300
        assert token.expires_at == clock.now + 300
        assert token.key == KEY
        assert token.authorization == "Bearer token-1"

    @pytest.mark.asyncio
    async def test_token_not_in_repr(self, router, fetcher, nplz, credentials):
        router.post(TOKEN_URL).mock(return_value=token_response("very-secret-token", 300))

        token = await fetcher.fetch(nplz, credentials)

        assert "very-secret-token" not in repr(token)

    @pytest.mark.asyncio
    async def test_non_2xx_status(self, router, fetcher, nplz, credentials):
        router.post(TOKEN_URL).mock(
            return_value=httpx.Response(401, json={"error": "unauthorized_client"})
        )

        with pytest.raises(TokenFetchFailed) as exc_info:
            await fetcher.fetch(nplz, credentials)

        assert exc_info.value.status == 401
        assert "unauthorized_client" in str(exc_info.value)
        assert SECRET not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_malformed_body(self, router, fetcher, nplz, credentials):
        router.post(TOKEN_URL).mock(return_value=httpx.Response(200, json={"token": "x"}))

        with pytest.raises(TokenFetchFailed, match="malformed token response"):
            await fetcher.fetch(nplz, credentials)

    @pytest.mark.asyncio
    async def test_body_not_json(self, router, fetcher, nplz, credentials):
        router.post(TOKEN_URL).mock(return_value=httpx.Response(200, text="<html>"))

        with pytest.raises(TokenFetchFailed):
            await fetcher.fetch(nplz, credentials)

    @pytest.mark.asyncio
    async def test_network_error(self, router, fetcher, nplz, credentials):
        router.post(TOKEN_URL).mock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(TokenFetchFailed) as exc_info:
            await fetcher.fetch(nplz, credentials)

        assert isinstance(exc_info.value.cause, httpx.ConnectError)
        assert SECRET not in str(exc_info.value)
