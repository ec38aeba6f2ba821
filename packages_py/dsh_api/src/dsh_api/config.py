"""
Configuration for dsh_api.

All process-wide defaults (platform, tenant, credentials, timeouts) are read
once into a DshApiSettings instance and passed to the client factory. Nothing
below the factory reads os.environ directly.
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

ENV_VAR_PLATFORM = "DSH_API_PLATFORM"
ENV_VAR_TENANT = "DSH_API_TENANT"
ENV_VAR_PLATFORMS_FILE = "DSH_API_PLATFORMS_FILE"
ENV_VAR_SELECTORS_FILE = "DSH_API_SELECTORS_FILE"
ENV_VAR_PASSWORD_PREFIX = "DSH_API_PASSWORD"
ENV_VAR_PASSWORD_FILE_PREFIX = "DSH_API_PASSWORD_FILE"
ENV_VAR_ACCESS_TOKEN_PREFIX = "DSH_API_ACCESS_TOKEN"
ENV_VAR_ACCESS_TOKEN_FILE_PREFIX = "DSH_API_ACCESS_TOKEN_FILE"
ENV_VAR_GUID_PREFIX = "DSH_API_GUID"
ENV_VAR_CONNECT_TIMEOUT = "DSH_API_CONNECT_TIMEOUT"
ENV_VAR_READ_TIMEOUT = "DSH_API_READ_TIMEOUT"
ENV_VAR_WRITE_TIMEOUT = "DSH_API_WRITE_TIMEOUT"
ENV_VAR_TOKEN_SAFETY_MARGIN = "DSH_API_TOKEN_SAFETY_MARGIN"
ENV_VAR_TRACE = "DSH_API_TRACE"

DEFAULT_TOKEN_SAFETY_MARGIN = 30.0


def env_name_part(name: str) -> str:
    """Uppercase a platform or tenant name and replace hyphens by underscores."""
    return name.upper().replace("-", "_")


def platform_tenant_env_var(prefix: str, platform_name: str, tenant: str) -> str:
    """
    Build the environment variable name for a (platform, tenant) keyed source.

    Example:
        >>> platform_tenant_env_var("DSH_API_PASSWORD", "np-aws-lz-dsh", "my-tenant")
        'DSH_API_PASSWORD_NP_AWS_LZ_DSH_MY_TENANT'
    """
    return f"{prefix}_{env_name_part(platform_name)}_{env_name_part(tenant)}"


def tenant_env_var(prefix: str, tenant: str) -> str:
    """Build the environment variable name for a tenant keyed source."""
    return f"{prefix}_{env_name_part(tenant)}"


@dataclass
class TimeoutConfig:
    """Timeout configuration in seconds."""

    connect: float = 5.0
    read: float = 30.0
    write: float = 10.0


def normalize_timeout(timeout: Union[TimeoutConfig, float, None]) -> TimeoutConfig:
    """Normalize timeout config."""
    if timeout is None:
        return TimeoutConfig()
    if isinstance(timeout, (int, float)):
        return TimeoutConfig(connect=timeout, read=timeout, write=timeout)
    return timeout


def _is_ssl_verify_disabled(environ: Mapping[str, str]) -> bool:
    """
    Check if SSL verification is disabled.

    Returns True if any of these are set:
    - NODE_TLS_REJECT_UNAUTHORIZED=0
    - SSL_CERT_VERIFY=0
    """
    node_tls = environ.get("NODE_TLS_REJECT_UNAUTHORIZED", "")
    ssl_cert_verify = environ.get("SSL_CERT_VERIFY", "")
    return node_tls == "0" or ssl_cert_verify == "0"


def _float_setting(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric value for {key}, using default {default}")
        return default


def _bool_setting(environ: Mapping[str, str], key: str) -> bool:
    return environ.get(key, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class DshApiSettings:
    """
    Settings assembled once at startup and threaded through the client factory.

    Attributes:
        platform: Default platform name or alias
        tenant: Default tenant name
        platforms_file: Optional platform definitions file replacing the defaults
        selectors_file: Optional selector definitions file replacing the defaults
        timeout: HTTP timeouts
        token_safety_margin: Seconds before expiry at which a token is refreshed
        verify_ssl: Verify TLS certificates
        trace: Print request/response panels to the console
        environ: Source used for keyed credential lookups
    """

    platform: Optional[str] = None
    tenant: Optional[str] = None
    platforms_file: Optional[str] = None
    selectors_file: Optional[str] = None
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    token_safety_margin: float = DEFAULT_TOKEN_SAFETY_MARGIN
    verify_ssl: bool = True
    trace: bool = False
    environ: Mapping[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[Union[str, Path]] = None,
    ) -> "DshApiSettings":
        """
        Build settings from an environment mapping.

        Args:
            environ: Mapping to read from (default: os.environ)
            env_file: Optional .env file; its values apply where the
                environment does not define the key

        Returns:
            DshApiSettings
        """
        source: Dict[str, str] = {}
        if env_file is not None:
            logger.info(f"Loading env file: {env_file}")
            for key, value in dotenv_values(env_file).items():
                if value is not None:
                    source[key] = value
        source.update(os.environ if environ is None else environ)

        timeout = TimeoutConfig(
            connect=_float_setting(source, ENV_VAR_CONNECT_TIMEOUT, TimeoutConfig.connect),
            read=_float_setting(source, ENV_VAR_READ_TIMEOUT, TimeoutConfig.read),
            write=_float_setting(source, ENV_VAR_WRITE_TIMEOUT, TimeoutConfig.write),
        )
        settings = cls(
            platform=source.get(ENV_VAR_PLATFORM) or None,
            tenant=source.get(ENV_VAR_TENANT) or None,
            platforms_file=source.get(ENV_VAR_PLATFORMS_FILE) or None,
            selectors_file=source.get(ENV_VAR_SELECTORS_FILE) or None,
            timeout=timeout,
            token_safety_margin=_float_setting(
                source, ENV_VAR_TOKEN_SAFETY_MARGIN, DEFAULT_TOKEN_SAFETY_MARGIN
            ),
            verify_ssl=not _is_ssl_verify_disabled(source),
            trace=_bool_setting(source, ENV_VAR_TRACE),
            environ=source,
        )
        logger.debug(
            f"DshApiSettings.from_env: platform={settings.platform}, tenant={settings.tenant}, "
            f"platforms_file={settings.platforms_file}, selectors_file={settings.selectors_file}, "
            f"timeout={settings.timeout}, verify_ssl={settings.verify_ssl}"
        )
        return settings
