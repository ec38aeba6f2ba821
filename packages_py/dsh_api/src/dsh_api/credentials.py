"""
Credential resolution for a (platform, tenant) pair.

Secret precedence, first match wins:
1. explicit secret passed to the factory
2. DSH_API_PASSWORD_FILE_<PLATFORM>_<TENANT> - file with the secret
3. DSH_API_PASSWORD_<PLATFORM>_<TENANT> - the secret itself

The numeric identity (guid) follows its own precedence: explicit value, then
DSH_API_GUID_<TENANT>. It is optional.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .config import (
    ENV_VAR_ACCESS_TOKEN_FILE_PREFIX,
    ENV_VAR_ACCESS_TOKEN_PREFIX,
    ENV_VAR_GUID_PREFIX,
    ENV_VAR_PASSWORD_FILE_PREFIX,
    ENV_VAR_PASSWORD_PREFIX,
    platform_tenant_env_var,
    tenant_env_var,
)
from .errors import MissingCredentials
from .platform import Platform

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantCredentials:
    """Resolved credentials of a tenant. The secret never appears in repr."""

    tenant: str
    secret: str = field(repr=False)
    guid: Optional[int] = None

    def __str__(self) -> str:
        return self.tenant

    def require_guid(self) -> int:
        """
        Return the numeric identity.

        Raises:
            MissingCredentials: If no identity was resolved
        """
        if self.guid is None:
            raise MissingCredentials(
                f"numeric identity for tenant '{self.tenant}' is not configured "
                f"({tenant_env_var(ENV_VAR_GUID_PREFIX, self.tenant)} not set)"
            )
        return self.guid


def _read_secret_file(file_name: str, env_var: str) -> str:
    try:
        content = Path(file_name).read_text()
    except OSError as e:
        raise MissingCredentials(
            f"secret file '{file_name}' from environment variable '{env_var}' could not be read"
        ) from e
    secret = content.strip()
    if not secret:
        raise MissingCredentials(
            f"secret file '{file_name}' from environment variable '{env_var}' is empty"
        )
    logger.debug(f"secret read from file '{file_name}' in environment variable '{env_var}'")
    return secret


class CredentialResolver:
    """
    Resolves tenant credentials from explicit values and keyed sources.

    Args:
        environ: Mapping holding the keyed sources (usually DshApiSettings.environ)
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ: Mapping[str, str] = environ if environ is not None else {}

    def _keyed_secret(
        self, platform: Platform, tenant: str, value_prefix: str, file_prefix: str
    ) -> Optional[str]:
        file_env_var = platform_tenant_env_var(file_prefix, platform.name, tenant)
        file_name = self._environ.get(file_env_var)
        if file_name:
            return _read_secret_file(file_name, file_env_var)
        value_env_var = platform_tenant_env_var(value_prefix, platform.name, tenant)
        value = self._environ.get(value_env_var)
        if value:
            logger.debug(f"secret read from environment variable '{value_env_var}'")
            return value
        return None

    def resolve_secret(
        self, platform: Platform, tenant: str, secret: Optional[str] = None
    ) -> str:
        """
        Resolve the secret of a tenant.

        Raises:
            MissingCredentials: If no source yields a secret
        """
        if secret:
            logger.debug(f"using explicit secret for '{tenant}@{platform.name}'")
            return secret
        resolved = self._keyed_secret(
            platform, tenant, ENV_VAR_PASSWORD_PREFIX, ENV_VAR_PASSWORD_FILE_PREFIX
        )
        if resolved is None:
            raise MissingCredentials(
                f"no secret configured for tenant '{tenant}' on platform '{platform.name}' "
                f"(set {platform_tenant_env_var(ENV_VAR_PASSWORD_FILE_PREFIX, platform.name, tenant)} "
                f"or {platform_tenant_env_var(ENV_VAR_PASSWORD_PREFIX, platform.name, tenant)})"
            )
        return resolved

    def resolve_guid(self, tenant: str, guid: Optional[int] = None) -> Optional[int]:
        """
        Resolve the numeric identity of a tenant, None when not configured.

        Raises:
            MissingCredentials: If the configured value is not an integer
        """
        if guid is not None:
            try:
                return int(guid)
            except (TypeError, ValueError) as e:
                raise MissingCredentials(f"numeric identity for tenant '{tenant}' is not an integer") from e
        env_var = tenant_env_var(ENV_VAR_GUID_PREFIX, tenant)
        raw = self._environ.get(env_var)
        if not raw:
            return None
        try:
            return int(raw.strip())
        except ValueError as e:
            raise MissingCredentials(
                f"environment variable '{env_var}' does not contain a numeric identity"
            ) from e

    def resolve(
        self,
        platform: Platform,
        tenant: str,
        secret: Optional[str] = None,
        guid: Optional[int] = None,
    ) -> TenantCredentials:
        """Resolve secret and optional numeric identity of a tenant."""
        if not tenant:
            raise MissingCredentials("tenant name is empty")
        return TenantCredentials(
            tenant=tenant,
            secret=self.resolve_secret(platform, tenant, secret),
            guid=self.resolve_guid(tenant, guid),
        )

    def resolve_access_token(self, platform: Platform, tenant: str) -> Optional[str]:
        """Static access token for a tenant from the keyed sources, None when not configured."""
        return self._keyed_secret(
            platform, tenant, ENV_VAR_ACCESS_TOKEN_PREFIX, ENV_VAR_ACCESS_TOKEN_FILE_PREFIX
        )
