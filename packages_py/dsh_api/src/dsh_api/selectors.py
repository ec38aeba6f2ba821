"""
Selector table.

Maps (http method, selector) to a path template and the expected body and
response shapes. The table is built once from ``selectors.yaml`` (or the file
in ``DSH_API_SELECTORS_FILE``) and only read afterwards.
"""
import logging
import re
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import quote

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import InvalidSelectorDefinition, ParameterCountMismatch, UnknownSelector
from .shapes import ANY, is_known_shape

logger = logging.getLogger(__name__)

DEFAULT_SELECTORS_FILE = Path(__file__).parent / "selectors.yaml"

PLACEHOLDER_PATTERN = re.compile(r"\{([^{}/]+)\}")


class HttpMethod(str, Enum):
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, method: Union[str, "HttpMethod"]) -> "HttpMethod":
        if isinstance(method, HttpMethod):
            return method
        try:
            return cls(method.upper())
        except ValueError:
            raise ValueError(f"unsupported http method '{method}'") from None

    def __str__(self) -> str:
        return self.value


def path_placeholders(path: str) -> Tuple[str, ...]:
    """Placeholder names of a path template, in order."""
    return tuple(PLACEHOLDER_PATTERN.findall(path))


class SelectorBinding(BaseModel):
    """
    One api operation.

    Attributes:
        selector: Logical operation name
        method: Http method
        path: Path template, the first placeholder is the tenant
        aliases: Additional selectors for the same operation
        body: Shape tag of the request body, None when the operation takes no body
        body_required: Whether a body must be supplied when ``body`` is set
        response: Shape tag of the response body
        description: Human readable description
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    selector: str
    method: HttpMethod
    path: str
    aliases: Tuple[str, ...] = ()
    body: Optional[str] = None
    body_required: bool = Field(
        default=True, validation_alias=AliasChoices("body-required", "body_required")
    )
    response: str = ANY
    description: Optional[str] = None

    @field_validator("method", mode="before")
    @classmethod
    def _parse_method(cls, value: Any) -> Any:
        if isinstance(value, str):
            return HttpMethod.parse(value)
        return value

    @field_validator("aliases", mode="before")
    @classmethod
    def _normalize_aliases(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (value,)
        return value

    @field_validator("path")
    @classmethod
    def _absolute_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("path must start with '/'")
        return value

    @model_validator(mode="after")
    def _known_shapes(self) -> "SelectorBinding":
        for shape in (self.body, self.response):
            if shape is not None and not is_known_shape(shape):
                raise ValueError(f"unknown shape '{shape}'")
        return self

    @property
    def placeholders(self) -> Tuple[str, ...]:
        return path_placeholders(self.path)

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        """Placeholders the caller must supply, i.e. all but the tenant."""
        return self.placeholders[1:]

    @property
    def takes_body(self) -> bool:
        return self.body is not None

    def render(self, tenant: str, parameters: Sequence[Any] = ()) -> str:
        """
        Substitute the tenant and the positional parameters into the path.

        Raises:
            ParameterCountMismatch: If len(parameters) differs from the number
                of non-tenant placeholders
        """
        expected = len(self.parameter_names)
        if len(parameters) != expected:
            raise ParameterCountMismatch(expected=expected, got=len(parameters))
        values = iter([tenant, *parameters])
        return PLACEHOLDER_PATTERN.sub(lambda _: quote(str(next(values)), safe=""), self.path)

    def keys(self) -> Tuple[str, ...]:
        """Selectors under which this binding is found."""
        return tuple(dict.fromkeys((self.selector, *self.aliases, self.path)))


def _absolute(path: str) -> str:
    return path if path.startswith("/") else "/" + path


def literal_binding(method: Union[str, HttpMethod], path: str) -> SelectorBinding:
    """Unconstrained binding for a literal path: any body is optional, any response accepted."""
    return SelectorBinding(
        selector=path,
        method=HttpMethod.parse(method),
        path=_absolute(path),
        body=ANY,
        body_required=False,
        response=ANY,
    )


def parse_selector_definitions(records: Any, source: str = "<records>") -> List[SelectorBinding]:
    """
    Validate a sequence of selector records.

    Raises:
        InvalidSelectorDefinition: If a record is invalid
    """
    if not isinstance(records, list):
        raise InvalidSelectorDefinition(
            f"selector definitions '{source}' must be a sequence of records, "
            f"got {type(records).__name__}"
        )
    bindings: List[SelectorBinding] = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise InvalidSelectorDefinition(f"selector record {index} in '{source}' is not a mapping")
        try:
            bindings.append(SelectorBinding.model_validate(record))
        except (ValidationError, ValueError) as e:
            raise InvalidSelectorDefinition(
                f"invalid selector record {index} ('{record.get('selector', '?')}') in '{source}' ({e})"
            ) from e
    return bindings


def load_selector_definitions(path: Union[str, Path]) -> List[SelectorBinding]:
    """Read and validate a JSON or YAML selector definitions file."""
    file_path = Path(path)
    logger.debug(f"load_selector_definitions: reading '{file_path}'")
    try:
        records = yaml.safe_load(file_path.read_text())
    except OSError as e:
        raise InvalidSelectorDefinition(f"unable to read selectors file '{file_path}' ({e})") from e
    except yaml.YAMLError as e:
        raise InvalidSelectorDefinition(f"invalid selectors file '{file_path}' ({e})") from e
    return parse_selector_definitions(records, str(file_path))


class SelectorTable:
    """
    Immutable lookup of selector bindings by (method, selector).

    Example:
        table = SelectorTable.defaults()
        binding = table.lookup("GET", "application")
        binding.render("my-tenant")  # '/allocation/my-tenant/application'
    """

    def __init__(self, bindings: Iterable[SelectorBinding], source: str = "<selectors>") -> None:
        index: Dict[Tuple[HttpMethod, str], SelectorBinding] = {}
        binding_list = list(bindings)
        for binding in binding_list:
            for key in binding.keys():
                existing = index.get((binding.method, key))
                if existing is not None and existing is not binding:
                    raise InvalidSelectorDefinition(
                        f"selector definitions '{source}' contain duplicate selector "
                        f"'{binding.method.value.lower()} {key}'"
                    )
                index[(binding.method, key)] = binding
        self._bindings: Tuple[SelectorBinding, ...] = tuple(binding_list)
        self._index: Mapping[Tuple[HttpMethod, str], SelectorBinding] = MappingProxyType(index)
        self._source = source
        logger.debug(f"SelectorTable.__init__: {len(self._bindings)} bindings from {source}")

    @classmethod
    def defaults(cls) -> "SelectorTable":
        return cls(load_selector_definitions(DEFAULT_SELECTORS_FILE), "default selectors")

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SelectorTable":
        bindings = load_selector_definitions(path)
        logger.info(f"selector definitions read from '{path}'")
        return cls(bindings, str(path))

    @classmethod
    def load(cls, selectors_file: Optional[Union[str, Path]] = None) -> "SelectorTable":
        """Table from an override file when given, else the built-in defaults."""
        if selectors_file:
            return cls.from_file(selectors_file)
        return cls.defaults()

    @property
    def source(self) -> str:
        return self._source

    def get(self, method: Union[str, HttpMethod], selector: str) -> Optional[SelectorBinding]:
        return self._index.get((HttpMethod.parse(method), selector))

    def lookup(self, method: Union[str, HttpMethod], selector_or_path: str) -> SelectorBinding:
        """
        Resolve a selector or a literal path to a binding.

        The table is tried first. An input containing '/' that is not in the
        table is treated as a literal path; a missing leading '/' is added.

        Raises:
            UnknownSelector: If neither the table nor a literal path matches
        """
        http_method = HttpMethod.parse(method)
        binding = self._index.get((http_method, selector_or_path))
        if binding is not None:
            return binding
        if "/" in selector_or_path:
            path = _absolute(selector_or_path)
            binding = self._index.get((http_method, path))
            if binding is not None:
                return binding
            logger.debug(f"SelectorTable.lookup: '{selector_or_path}' used as literal path")
            return literal_binding(http_method, selector_or_path)
        raise UnknownSelector(http_method.value, selector_or_path)

    def selectors(self, method: Optional[Union[str, HttpMethod]] = None) -> List[str]:
        """Primary selector names, optionally restricted to one method."""
        http_method = HttpMethod.parse(method) if method is not None else None
        return sorted(
            binding.selector
            for binding in self._bindings
            if http_method is None or binding.method == http_method
        )

    def __iter__(self) -> Iterator[SelectorBinding]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)
