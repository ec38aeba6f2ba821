"""
Tenant-scoped client for the DSH resource management API, with platform
registry, credential resolution, single-flight token caching and generic
selector based dispatch.
"""
from .auth import (
    TokenSource,
    CachedTokenSource,
    StaticTokenSource,
)
from .client import DshApiClient
from .config import (
    DshApiSettings,
    TimeoutConfig,
    DEFAULT_TOKEN_SAFETY_MARGIN,
    platform_tenant_env_var,
    tenant_env_var,
)
from .credentials import (
    CredentialResolver,
    TenantCredentials,
)
from .errors import (
    DshApiError,
    ConfigurationError,
    UnknownPlatform,
    InvalidPlatformDefinition,
    MissingCredentials,
    MissingConfiguration,
    InvalidSelectorDefinition,
    TokenFetchFailed,
    UnknownSelector,
    ParameterCountMismatch,
    InvalidRequestBody,
    InvalidResponseBody,
    Unauthorized,
    ApiError,
    TransportError,
)
from .factory import DshApiClientFactory
from .platform import (
    CloudProvider,
    Platform,
    PlatformRegistry,
    load_platform_definitions,
    parse_platform_definitions,
)
from .selectors import (
    HttpMethod,
    SelectorBinding,
    SelectorTable,
    load_selector_definitions,
)
from .shapes import register_shape, shape_names
from .token_cache import (
    TokenCache,
    TokenState,
    TokenCacheEvent,
    TokenCacheEventType,
)
from .token_fetcher import (
    AccessToken,
    TokenFetcher,
    TokenKey,
    token_key,
)


__all__ = [
    # Factory / client
    "DshApiClientFactory",
    "DshApiClient",
    # Configuration
    "DshApiSettings",
    "TimeoutConfig",
    "DEFAULT_TOKEN_SAFETY_MARGIN",
    "platform_tenant_env_var",
    "tenant_env_var",
    # Platforms
    "CloudProvider",
    "Platform",
    "PlatformRegistry",
    "load_platform_definitions",
    "parse_platform_definitions",
    # Credentials
    "CredentialResolver",
    "TenantCredentials",
    # Tokens
    "AccessToken",
    "TokenFetcher",
    "TokenKey",
    "token_key",
    "TokenCache",
    "TokenState",
    "TokenCacheEvent",
    "TokenCacheEventType",
    "TokenSource",
    "CachedTokenSource",
    "StaticTokenSource",
    # Selectors
    "HttpMethod",
    "SelectorBinding",
    "SelectorTable",
    "load_selector_definitions",
    "register_shape",
    "shape_names",
    # Errors
    "DshApiError",
    "ConfigurationError",
    "UnknownPlatform",
    "InvalidPlatformDefinition",
    "MissingCredentials",
    "MissingConfiguration",
    "InvalidSelectorDefinition",
    "TokenFetchFailed",
    "UnknownSelector",
    "ParameterCountMismatch",
    "InvalidRequestBody",
    "InvalidResponseBody",
    "Unauthorized",
    "ApiError",
    "TransportError",
]

__version__ = "0.1.0"
