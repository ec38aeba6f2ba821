"""
Shared fixtures for dsh_api tests.
"""
from typing import Dict

import httpx
import pytest
import respx

from dsh_api import (
    AccessToken,
    DshApiClientFactory,
    DshApiSettings,
    PlatformRegistry,
    SelectorTable,
)

PLATFORM_NAME = "np-aws-lz-dsh"
PLATFORM_ALIAS = "nplz"
TENANT = "my-tenant"
SECRET = "s3cr3t-v4lue"
TOKEN_URL = (
    "https://auth.prod.cp-prod.dsh.prod.aws.kpn.com/auth/realms/dev-lz-dsh"
    "/protocol/openid-connect/token"
)
API_URL = "https://api.dsh-dev.dsh.np.aws.kpn.com/resources/v0"
KEY = (PLATFORM_NAME, TENANT)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def token_response(access_token: str = "token-1", expires_in: int = 300) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "access_token": access_token,
            "expires_in": expires_in,
            "refresh_expires_in": 0,
            "token_type": "Bearer",
            "not-before-policy": 0,
            "scope": "email profile",
        },
    )


def make_token(value: str = "token-1", expires_at: float = 10_000.0, key=KEY, expires_in: int = 300) -> AccessToken:
    return AccessToken(access_token=value, expires_in=expires_in, expires_at=expires_at, key=key)


@pytest.fixture(scope="session")
def registry() -> PlatformRegistry:
    """Registry with the built-in platforms."""
    return PlatformRegistry.defaults()


@pytest.fixture(scope="session")
def selectors() -> SelectorTable:
    """Selector table with the built-in bindings."""
    return SelectorTable.defaults()


@pytest.fixture
def nplz(registry):
    return registry.resolve(PLATFORM_ALIAS)


@pytest.fixture
def environ() -> Dict[str, str]:
    """Environment with a keyed secret for my-tenant on nplz."""
    return {
        "DSH_API_PLATFORM": PLATFORM_ALIAS,
        "DSH_API_TENANT": TENANT,
        "DSH_API_PASSWORD_NP_AWS_LZ_DSH_MY_TENANT": SECRET,
    }


@pytest.fixture
def settings(environ) -> DshApiSettings:
    return DshApiSettings.from_env(environ)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def router() -> respx.MockRouter:
    """respx router used as transport, avoids patching httpx globally."""
    return respx.MockRouter(assert_all_called=False)


@pytest.fixture
def httpx_client(router) -> httpx.AsyncClient:
    transport = httpx.MockTransport(router.async_handler)
    return httpx.AsyncClient(transport=transport)


@pytest.fixture
def token_route(router):
    return router.post(TOKEN_URL).mock(return_value=token_response())


@pytest.fixture
def factory(settings, registry, selectors, httpx_client, clock) -> DshApiClientFactory:
    return DshApiClientFactory(
        settings=settings,
        registry=registry,
        selectors=selectors,
        httpx_client=httpx_client,
        clock=clock,
    )
