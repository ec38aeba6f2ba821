"""
OAuth2 client-credentials exchange against a platform's auth endpoint.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .credentials import TenantCredentials
from .errors import TokenFetchFailed
from .platform import Platform

logger = logging.getLogger(__name__)

TokenKey = Tuple[str, str]
"""Cache key: (platform name, tenant)."""

MAX_ERROR_BODY_LENGTH = 200


def token_key(platform: Platform, tenant: str) -> TokenKey:
    return (platform.name, tenant)


class TokenResponse(BaseModel):
    """Token endpoint response body."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    access_token: str = Field(min_length=1)
    expires_in: int = Field(ge=0)
    token_type: str = "Bearer"
    refresh_expires_in: Optional[int] = None
    not_before_policy: Optional[int] = Field(default=None, alias="not-before-policy")
    scope: Optional[str] = None


@dataclass(frozen=True)
class AccessToken:
    """
    A bearer token and its absolute expiry.

    Attributes:
        access_token: Token value, never logged unmasked
        expires_in: Lifetime in seconds as reported by the auth server
        expires_at: Expiry on the fetcher's clock (monotonic seconds)
        key: (platform, tenant) the token was issued for
        token_type: Token type, normally "Bearer"
    """

    access_token: str = field(repr=False)
    expires_in: int
    expires_at: float
    key: TokenKey
    token_type: str = "Bearer"

    def is_valid(self, now: float, margin: float = 0.0) -> bool:
        """True when the token does not expire within ``margin`` seconds of ``now``."""
        return now + margin < self.expires_at

    @property
    def authorization(self) -> str:
        """Authorization header value."""
        return f"Bearer {self.access_token}"


class TokenFetcher:
    """
    Performs the client-credentials grant.

    The request is a form POST with ``client_id=robot:<realm>:<tenant>``,
    ``client_secret`` and ``grant_type=client_credentials``.
    """

    def __init__(
        self,
        httpx_client: httpx.AsyncClient,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = httpx_client
        self._clock = clock

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    async def fetch(self, platform: Platform, credentials: TenantCredentials) -> AccessToken:
        """
        Fetch a fresh access token.

        Raises:
            TokenFetchFailed: On network errors, non-2xx responses and malformed bodies
        """
        key = token_key(platform, credentials.tenant)
        client_id = platform.tenant_client_id(credentials.tenant)
        logger.debug(
            f"TokenFetcher.fetch: requesting token for client_id='{client_id}' "
            f"at '{platform.access_token_endpoint}'"
        )
        try:
            response = await self._client.post(
                platform.access_token_endpoint,
                data={
                    "client_id": client_id,
                    "client_secret": credentials.secret,
                    "grant_type": "client_credentials",
                },
                headers={"accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.error(f"TokenFetcher.fetch: transport failure for {key}: {type(e).__name__}")
            raise TokenFetchFailed(
                f"unexpected failure while fetching token from server ({type(e).__name__}: {e})",
                cause=e,
            ) from e

        if not response.is_success:
            error_body = response.text[:MAX_ERROR_BODY_LENGTH]
            logger.error(
                f"TokenFetcher.fetch: auth server answered {response.status_code} for {key}"
            )
            raise TokenFetchFailed(
                f"unexpected status code {response.status_code} while fetching token"
                + (f", error body: {error_body}" if error_body else ""),
                status=response.status_code,
            )

        try:
            body = TokenResponse.model_validate_json(response.content)
        except ValidationError as e:
            logger.error(f"TokenFetcher.fetch: malformed token response for {key}")
            raise TokenFetchFailed(
                f"malformed token response ({e.error_count()} validation errors)", cause=e
            ) from e

        now = self._clock()
        token = AccessToken(
            access_token=body.access_token,
            expires_in=body.expires_in,
            expires_at=now + body.expires_in,
            key=key,
            token_type=body.token_type,
        )
        logger.debug(f"TokenFetcher.fetch: token for {key} expires in {body.expires_in}s")
        return token
