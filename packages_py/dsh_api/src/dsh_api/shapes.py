"""
Shape tags for request and response bodies.

A shape tag names the json structure a selector binding expects. Values are
validated in pydantic's strict json mode, so ``"1"`` is not an integer and
``1`` is not a string.

Example:
    validate_json("ids", b'["a", "b"]')
    register_shape("application", Application)
"""
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import StrictBool, StrictFloat, StrictInt, StrictStr, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

ANY = "any"
NONE = "none"
STRING = "string"

_SHAPES: Dict[str, TypeAdapter] = {
    ANY: TypeAdapter(Any),
    STRING: TypeAdapter(StrictStr),
    "integer": TypeAdapter(StrictInt),
    "number": TypeAdapter(Union[StrictInt, StrictFloat]),
    "boolean": TypeAdapter(StrictBool),
    "object": TypeAdapter(Dict[str, Any]),
    "map": TypeAdapter(Dict[str, Dict[str, Any]]),
    "list": TypeAdapter(List[Any]),
    "ids": TypeAdapter(List[StrictStr]),
    NONE: TypeAdapter(None),
}


class ShapeMismatch(ValueError):
    """A json document does not match a shape. Carries no document content."""

    def __init__(self, shape: str, detail: str) -> None:
        self.shape = shape
        self.detail = detail
        super().__init__(f"does not match shape '{shape}' ({detail})")


def register_shape(name: str, shape: Any) -> None:
    """
    Register a named shape.

    Args:
        name: Shape tag usable in selector definitions
        shape: Pydantic model or any type TypeAdapter accepts
    """
    if not name:
        raise ValueError("shape name must not be empty")
    _SHAPES[name] = TypeAdapter(shape)
    logger.debug(f"register_shape: '{name}' registered")


def is_known_shape(name: str) -> bool:
    return name in _SHAPES


def shape_names() -> List[str]:
    return sorted(_SHAPES)


def _summarize(error: ValidationError) -> str:
    # Only locations and error types, never input values
    first = error.errors(include_url=False, include_input=False)[0]
    location = ".".join(str(part) for part in first["loc"]) or "<root>"
    return f"{error.error_count()} error(s), first at {location}: {first['type']}"


def validate_json(name: Optional[str], document: Union[str, bytes]) -> None:
    """
    Validate a json document against a shape.

    Args:
        name: Shape tag, None for any
        document: Raw json text

    Raises:
        ShapeMismatch: If the document is not valid json or does not match
        KeyError: If the shape tag is not registered
    """
    adapter = _SHAPES[name or ANY]
    try:
        adapter.validate_json(document, strict=True)
    except ValidationError as e:
        raise ShapeMismatch(name or ANY, _summarize(e)) from e
