"""
Token sources used by the client to build the Authorization header.
"""
import logging
import math
from abc import ABC, abstractmethod

from .console import mask_sensitive
from .credentials import TenantCredentials
from .platform import Platform
from .token_cache import TokenCache
from .token_fetcher import AccessToken, TokenFetcher, TokenKey, token_key

logger = logging.getLogger(__name__)


class TokenSource(ABC):
    """Token source interface."""

    @property
    @abstractmethod
    def key(self) -> TokenKey:
        ...

    @abstractmethod
    async def token(self) -> AccessToken:
        """Current access token."""
        ...

    @abstractmethod
    def invalidate(self, token: AccessToken) -> None:
        """Called when the api rejected a token."""
        ...


class CachedTokenSource(TokenSource):
    """Tokens from the shared TokenCache, fetched with the tenant credentials."""

    def __init__(
        self,
        platform: Platform,
        credentials: TenantCredentials,
        cache: TokenCache,
        fetcher: TokenFetcher,
    ) -> None:
        self._platform = platform
        self._credentials = credentials
        self._cache = cache
        self._fetcher = fetcher
        self._key = token_key(platform, credentials.tenant)

    @property
    def key(self) -> TokenKey:
        return self._key

    async def token(self) -> AccessToken:
        return await self._cache.get_token(
            self._key, lambda: self._fetcher.fetch(self._platform, self._credentials)
        )

    def invalidate(self, token: AccessToken) -> None:
        if self._cache.invalidate(self._key, token):
            logger.info(f"CachedTokenSource.invalidate: token for {self._key} rejected and evicted")


class StaticTokenSource(TokenSource):
    """A fixed access token supplied by the caller. It is never refreshed."""

    def __init__(self, platform: Platform, tenant: str, access_token: str) -> None:
        if not access_token:
            raise ValueError("access token must not be empty")
        self._key = token_key(platform, tenant)
        self._token = AccessToken(
            access_token=access_token,
            expires_in=0,
            expires_at=math.inf,
            key=self._key,
        )
        logger.debug(
            f"StaticTokenSource.__init__: {self._key} access_token={mask_sensitive(access_token)}"
        )

    @property
    def key(self) -> TokenKey:
        return self._key

    async def token(self) -> AccessToken:
        return self._token

    def invalidate(self, token: AccessToken) -> None:
        logger.warning(f"StaticTokenSource.invalidate: static token for {self._key} was rejected")
