"""
Platform registry.

A platform is a named deployment environment with its own auth endpoint and
public domain. The registry starts from the built-in definitions in
``default_platforms.yaml``; a definitions file (``DSH_API_PLATFORMS_FILE``)
replaces that list entirely.
"""
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import InvalidPlatformDefinition, UnknownPlatform

logger = logging.getLogger(__name__)

DEFAULT_PLATFORMS_FILE = Path(__file__).parent / "default_platforms.yaml"

CLIENT_ID_SEPARATOR = ":"


class CloudProvider(str, Enum):
    """Cloud provider hosting a platform."""

    AWS = "aws"
    AZURE = "azure"

    def __str__(self) -> str:
        return self.value


class Platform(BaseModel):
    """Immutable connection parameters of a platform. Identity is the name."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str
    description: str
    aliases: Tuple[str, ...] = Field(validation_alias=AliasChoices("alias", "aliases"))
    is_production: bool = Field(validation_alias=AliasChoices("is-production", "is_production"))
    cloud_provider: CloudProvider = Field(
        validation_alias=AliasChoices("cloud-provider", "cloud_provider")
    )
    access_token_endpoint: str = Field(
        validation_alias=AliasChoices("access-token-endpoint", "key-cloak-url", "access_token_endpoint")
    )
    realm: str
    public_domain: str = Field(validation_alias=AliasChoices("public-domain", "public_domain"))
    private_domain: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("private-domain", "private_domain")
    )

    @model_validator(mode="before")
    @classmethod
    def _reject_null_private_domain(cls, data: Any) -> Any:
        # An unset private domain must be omitted, not null
        if isinstance(data, dict):
            for key in ("private-domain", "private_domain"):
                if key in data and data[key] is None:
                    raise ValueError(f"'{key}' must be omitted instead of null when unset")
        return data

    @field_validator("aliases", mode="before")
    @classmethod
    def _normalize_aliases(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (value,)
        return value

    @field_validator("aliases")
    @classmethod
    def _require_alias(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if not value:
            raise ValueError("at least one alias is required")
        return value

    @field_validator("name", "realm", "public_domain", "access_token_endpoint")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Platform):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __str__(self) -> str:
        return self.name

    @property
    def alias(self) -> str:
        """Primary alias."""
        return self.aliases[0]

    def matches(self, name_or_alias: str) -> bool:
        """Case-sensitive match on the name or any alias."""
        return name_or_alias == self.name or name_or_alias in self.aliases

    # ========== Derived endpoints and domains ==========

    @property
    def client_id(self) -> str:
        return f"robot{CLIENT_ID_SEPARATOR}{self.realm}"

    def tenant_client_id(self, tenant: str) -> str:
        """Client id used in the client-credentials exchange for a tenant."""
        return f"{self.client_id}{CLIENT_ID_SEPARATOR}{tenant}"

    @property
    def rest_api_domain(self) -> str:
        return f"api.{self.public_domain}"

    @property
    def rest_api_endpoint(self) -> str:
        """Base url of the resource management API."""
        return f"https://{self.rest_api_domain}/resources/v0"

    @property
    def console_domain(self) -> str:
        return f"console.{self.public_domain}"

    @property
    def console_url(self) -> str:
        return f"https://{self.console_domain}"

    @property
    def swagger_url(self) -> str:
        return f"https://{self.console_domain}/tenant-api/spec?url=/tenant-api/assets/openapi.json"

    @property
    def tracing_url(self) -> str:
        return f"https://tracing.{self.public_domain}"

    @property
    def mqtt_token_endpoint(self) -> str:
        return f"https://{self.rest_api_domain}/datastreams/v0/mqtt/token"

    def tenant_public_domain(self, tenant: str) -> str:
        return f"{tenant}.{self.public_domain}"

    def tenant_private_domain(self, tenant: str) -> str:
        """
        Private domain of a tenant.

        Raises:
            ValueError: If the platform has no private domain
        """
        if self.private_domain is None:
            raise ValueError(f"private domain is not set for platform {self.name}")
        return f"{tenant}.{self.private_domain}"

    def tenant_console_url(self, tenant: str) -> str:
        return f"{self.console_url}/#/profiles/{tenant}"

    def tenant_monitoring_url(self, tenant: str) -> str:
        return f"https://monitoring-{self.tenant_public_domain(tenant)}"

    def to_record(self) -> Dict[str, Any]:
        """Definitions-file representation. The private domain key is omitted when unset."""
        record: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "alias": self.aliases[0] if len(self.aliases) == 1 else list(self.aliases),
            "is-production": self.is_production,
            "cloud-provider": self.cloud_provider.value,
            "access-token-endpoint": self.access_token_endpoint,
            "realm": self.realm,
            "public-domain": self.public_domain,
        }
        if self.private_domain is not None:
            record["private-domain"] = self.private_domain
        return record


def _check_for_duplicate_names_or_aliases(platforms: List[Platform], source: str) -> None:
    seen: Dict[str, str] = {}
    duplicates: List[str] = []
    for platform in platforms:
        # A platform may repeat its own name as an alias
        for identifier in dict.fromkeys((platform.name,) + platform.aliases):
            owner = seen.get(identifier)
            if owner is not None and identifier not in duplicates:
                duplicates.append(identifier)
            seen[identifier] = platform.name
    if duplicates:
        raise InvalidPlatformDefinition(
            f"platforms definitions '{source}' contain duplicate names and/or aliases "
            f"({', '.join(sorted(duplicates))})"
        )


def parse_platform_definitions(records: Any, source: str = "<records>") -> List[Platform]:
    """
    Validate a sequence of platform records.

    Args:
        records: Parsed definitions (a list of mappings)
        source: Description of the origin, used in error messages

    Returns:
        Platforms sorted by name

    Raises:
        InvalidPlatformDefinition: If the records are not a list, a record is
            invalid or names/aliases are duplicated
    """
    if not isinstance(records, list):
        raise InvalidPlatformDefinition(
            f"platforms definitions '{source}' must be a sequence of records, "
            f"got {type(records).__name__}"
        )
    platforms: List[Platform] = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise InvalidPlatformDefinition(
                f"platform record {index} in '{source}' is not a mapping"
            )
        try:
            platforms.append(Platform.model_validate(record))
        except ValidationError as e:
            fields = ", ".join(
                ".".join(str(part) for part in error["loc"]) or "<record>" for error in e.errors()
            )
            raise InvalidPlatformDefinition(
                f"invalid platform record {index} ('{record.get('name', '?')}') in '{source}' "
                f"(invalid or missing: {fields})"
            ) from e
    _check_for_duplicate_names_or_aliases(platforms, source)
    return sorted(platforms, key=lambda platform: platform.name)


def load_platform_definitions(path: Union[str, Path]) -> List[Platform]:
    """Read and validate a JSON or YAML platform definitions file."""
    file_path = Path(path)
    logger.debug(f"load_platform_definitions: reading '{file_path}'")
    try:
        content = file_path.read_text()
    except OSError as e:
        raise InvalidPlatformDefinition(f"unable to read platforms file '{file_path}' ({e})") from e
    try:
        records = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise InvalidPlatformDefinition(f"invalid platforms file '{file_path}' ({e})") from e
    return parse_platform_definitions(records, str(file_path))


class PlatformRegistry:
    """
    Read-only lookup of platforms by name or alias.

    Example:
        registry = PlatformRegistry.load()
        platform = registry.resolve("nplz")
        assert platform.name == "np-aws-lz-dsh"
    """

    def __init__(self, platforms: Iterable[Platform], source: str = "<platforms>") -> None:
        platform_list = list(platforms)
        _check_for_duplicate_names_or_aliases(platform_list, source)
        self._platforms: Tuple[Platform, ...] = tuple(sorted(platform_list, key=lambda p: p.name))
        self._index: Dict[str, Platform] = {}
        for platform in self._platforms:
            self._index[platform.name] = platform
            for alias in platform.aliases:
                self._index[alias] = platform
        self._source = source
        logger.debug(
            f"PlatformRegistry.__init__: {len(self._platforms)} platforms from {source}"
        )

    @classmethod
    def defaults(cls) -> "PlatformRegistry":
        """Registry with the built-in platform definitions."""
        return cls(load_platform_definitions(DEFAULT_PLATFORMS_FILE), "default platforms")

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PlatformRegistry":
        """Registry with the definitions from a file only."""
        platforms = load_platform_definitions(path)
        logger.info(f"dsh platform list read from '{path}'")
        return cls(platforms, str(path))

    @classmethod
    def load(cls, platforms_file: Optional[Union[str, Path]] = None) -> "PlatformRegistry":
        """Registry from an override file when given, else the built-in defaults."""
        if platforms_file:
            return cls.from_file(platforms_file)
        logger.debug("default dsh platform list used")
        return cls.defaults()

    @property
    def source(self) -> str:
        return self._source

    def resolve(self, name_or_alias: str) -> Platform:
        """
        Find a platform by name or alias (case-sensitive).

        Raises:
            UnknownPlatform: If no platform matches
        """
        platform = self._index.get(name_or_alias)
        if platform is None:
            raise UnknownPlatform(
                name_or_alias,
                [f"{p.name}/{'/'.join(p.aliases)}" for p in self._platforms],
            )
        return platform

    def all(self) -> Tuple[Platform, ...]:
        return self._platforms

    def names(self) -> List[str]:
        return [platform.name for platform in self._platforms]

    def __contains__(self, name_or_alias: object) -> bool:
        return name_or_alias in self._index

    def __iter__(self) -> Iterator[Platform]:
        return iter(self._platforms)

    def __len__(self) -> int:
        return len(self._platforms)
