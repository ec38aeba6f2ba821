"""
Client factory.

The factory is the unit of configuration and reuse: it owns the platform
registry, the selector table, one HTTP client and one TokenCache. Every
handle it creates shares that cache, so two handles for the same
(platform, tenant) never fetch a token twice.

All resolution (platform, then credentials) happens in ``create`` before any
network activity.
"""
import logging
import time
from typing import Callable, Optional, Union

import httpx

from .auth import CachedTokenSource, StaticTokenSource
from .client import DshApiClient
from .config import (
    ENV_VAR_ACCESS_TOKEN_FILE_PREFIX,
    ENV_VAR_ACCESS_TOKEN_PREFIX,
    ENV_VAR_PLATFORM,
    ENV_VAR_TENANT,
    DshApiSettings,
    platform_tenant_env_var,
)
from .credentials import CredentialResolver
from .errors import MissingConfiguration, MissingCredentials
from .platform import Platform, PlatformRegistry
from .selectors import SelectorTable
from .token_cache import TokenCache
from .token_fetcher import TokenFetcher
from .transport import create_async_client

logger = logging.getLogger(__name__)

PlatformLike = Union[Platform, str, None]


class DshApiClientFactory:
    """
    Creates DshApiClient handles.

    Args:
        settings: Settings, defaults to DshApiSettings.from_env()
        registry: Platform registry, defaults to the one named by the settings
        selectors: Selector table, defaults to the one named by the settings
        token_cache: Token cache shared by all handles
        fetcher: Token fetcher, defaults to one using the factory's HTTP client
        httpx_client: HTTP client; when given the caller remains its owner
        clock: Monotonic clock for token expiry

    Example:
        async with DshApiClientFactory() as factory:
            client = factory.default()
            print(await client.get("application"))
    """

    def __init__(
        self,
        settings: Optional[DshApiSettings] = None,
        registry: Optional[PlatformRegistry] = None,
        selectors: Optional[SelectorTable] = None,
        token_cache: Optional[TokenCache] = None,
        fetcher: Optional[TokenFetcher] = None,
        httpx_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings if settings is not None else DshApiSettings.from_env()
        self._registry = (
            registry if registry is not None else PlatformRegistry.load(self._settings.platforms_file)
        )
        self._selectors = (
            selectors if selectors is not None else SelectorTable.load(self._settings.selectors_file)
        )
        self._credential_resolver = CredentialResolver(self._settings.environ)
        self._owns_client = httpx_client is None
        self._client = (
            httpx_client
            if httpx_client is not None
            else create_async_client(self._settings.timeout, self._settings.verify_ssl)
        )
        self._token_cache = (
            token_cache
            if token_cache is not None
            else TokenCache(safety_margin=self._settings.token_safety_margin, clock=clock)
        )
        self._fetcher = fetcher if fetcher is not None else TokenFetcher(self._client, clock=clock)
        self._closed = False
        logger.debug(
            f"DshApiClientFactory.__init__: platforms={len(self._registry)}, "
            f"selectors={len(self._selectors)}, owns_client={self._owns_client}"
        )

    @property
    def settings(self) -> DshApiSettings:
        return self._settings

    @property
    def registry(self) -> PlatformRegistry:
        return self._registry

    @property
    def selectors(self) -> SelectorTable:
        return self._selectors

    @property
    def token_cache(self) -> TokenCache:
        return self._token_cache

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Client factory has been closed")

    def resolve_platform(self, platform: PlatformLike = None) -> Platform:
        """
        Resolve a Platform, a name or alias, or the configured default platform.

        Raises:
            MissingConfiguration: If no platform is given or configured
            UnknownPlatform: If the name or alias is unknown
        """
        if isinstance(platform, Platform):
            return platform
        name = platform if platform else self._settings.platform
        if not name:
            raise MissingConfiguration(
                f"no platform given and environment variable '{ENV_VAR_PLATFORM}' is not set"
            )
        return self._registry.resolve(name)

    def _default_tenant(self) -> str:
        if not self._settings.tenant:
            raise MissingConfiguration(
                f"no tenant given and environment variable '{ENV_VAR_TENANT}' is not set"
            )
        return self._settings.tenant

    def create(
        self,
        tenant: str,
        secret: Optional[str] = None,
        platform: PlatformLike = None,
        guid: Optional[int] = None,
    ) -> DshApiClient:
        """
        Create a client handle for a tenant.

        Args:
            tenant: Tenant name
            secret: Explicit secret, overrides the keyed sources
            platform: Platform, platform name or alias (default: configured platform)
            guid: Explicit numeric identity

        Raises:
            MissingConfiguration: If no platform is given or configured
            UnknownPlatform: If the platform does not resolve
            MissingCredentials: If no secret could be resolved
        """
        self._ensure_open()
        resolved_platform = self.resolve_platform(platform)
        credentials = self._credential_resolver.resolve(resolved_platform, tenant, secret, guid)
        token_source = CachedTokenSource(
            resolved_platform, credentials, self._token_cache, self._fetcher
        )
        logger.info(f"DshApiClientFactory.create: client for '{tenant}@{resolved_platform.name}'")
        return DshApiClient(
            platform=resolved_platform,
            tenant=tenant,
            token_source=token_source,
            httpx_client=self._client,
            selectors=self._selectors,
            credentials=credentials,
            trace=self._settings.trace,
        )

    def default(self) -> DshApiClient:
        """
        Create a client handle for the configured platform and tenant.

        Raises:
            MissingConfiguration: If platform or tenant is not configured
            UnknownPlatform: If the configured platform does not resolve
            MissingCredentials: If no secret could be resolved
        """
        platform = self.resolve_platform()
        return self.create(self._default_tenant(), platform=platform)

    def create_from_access_token(
        self,
        tenant: Optional[str] = None,
        access_token: Optional[str] = None,
        platform: PlatformLike = None,
    ) -> DshApiClient:
        """
        Create a client handle that uses a fixed access token instead of fetching one.

        Args:
            tenant: Tenant name (default: configured tenant)
            access_token: Token value (default: the keyed access token source)
            platform: Platform, platform name or alias (default: configured platform)

        Raises:
            MissingCredentials: If no access token is given or configured
        """
        self._ensure_open()
        resolved_platform = self.resolve_platform(platform)
        tenant_name = tenant if tenant else self._default_tenant()
        token = access_token or self._credential_resolver.resolve_access_token(
            resolved_platform, tenant_name
        )
        if not token:
            raise MissingCredentials(
                f"no access token configured for tenant '{tenant_name}' on platform "
                f"'{resolved_platform.name}' (set "
                f"{platform_tenant_env_var(ENV_VAR_ACCESS_TOKEN_FILE_PREFIX, resolved_platform.name, tenant_name)} "
                f"or {platform_tenant_env_var(ENV_VAR_ACCESS_TOKEN_PREFIX, resolved_platform.name, tenant_name)})"
            )
        logger.info(
            f"DshApiClientFactory.create_from_access_token: client for "
            f"'{tenant_name}@{resolved_platform.name}'"
        )
        return DshApiClient(
            platform=resolved_platform,
            tenant=tenant_name,
            token_source=StaticTokenSource(resolved_platform, tenant_name, token),
            httpx_client=self._client,
            selectors=self._selectors,
            trace=self._settings.trace,
        )

    async def aclose(self) -> None:
        """Close the factory and the HTTP client it owns."""
        if self._closed:
            return
        self._closed = True
        self._token_cache.clear()
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "DshApiClientFactory":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
