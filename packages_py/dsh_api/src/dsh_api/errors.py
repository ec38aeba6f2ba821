"""
Exception hierarchy for dsh_api.

Configuration errors are raised while building a client, before any network
activity. All other errors are raised per call. No message ever contains a
tenant secret or an access token.
"""
from typing import Any, Optional


class DshApiError(Exception):
    """Base class for all dsh_api errors."""


# ========== Configuration / resolution ==========


class ConfigurationError(DshApiError):
    """Raised when the client cannot be configured."""


class UnknownPlatform(ConfigurationError):
    """No platform matches the requested name or alias."""

    def __init__(self, name: str, known: Optional[list] = None) -> None:
        self.name = name
        self.known = list(known or [])
        message = f"invalid platform name '{name}'"
        if self.known:
            message += f" (possible values: {', '.join(self.known)})"
        super().__init__(message)


class InvalidPlatformDefinition(ConfigurationError):
    """A platform definitions source could not be parsed or validated."""


class MissingCredentials(ConfigurationError):
    """No credential source yielded a usable value."""


class MissingConfiguration(ConfigurationError):
    """A required setting (platform, tenant) is not configured."""


class InvalidSelectorDefinition(ConfigurationError):
    """A selector definitions source could not be parsed or validated."""


# ========== Token lifecycle ==========


class TokenFetchFailed(DshApiError):
    """The client-credentials exchange against the auth endpoint failed."""

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        status: Optional[int] = None,
    ) -> None:
        self.cause = cause
        self.status = status
        super().__init__(message)


# ========== Dispatch ==========


class UnknownSelector(DshApiError):
    """Neither the selector table nor a literal path matched."""

    def __init__(self, method: str, selector: str) -> None:
        self.method = method
        self.selector = selector
        super().__init__(f"{method.lower()} method selector '{selector}' not recognized")


class ParameterCountMismatch(DshApiError):
    """The number of path parameters does not match the path template."""

    def __init__(self, expected: int, got: int) -> None:
        self.expected = expected
        self.got = got
        super().__init__(
            f"wrong number of parameters (expected {expected}, got {got})"
        )


class InvalidRequestBody(DshApiError):
    """The request body is not valid json or does not match the expected shape."""


class InvalidResponseBody(DshApiError):
    """The response body is not valid json or does not match the expected shape."""


class Unauthorized(DshApiError):
    """The API rejected the access token (HTTP 401)."""

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message
        super().__init__(f"not authorized ({message})" if message else "not authorized")


class ApiError(DshApiError):
    """The API answered with a non-2xx status other than 401."""

    def __init__(self, status: int, message: Optional[str] = None, body: Any = None) -> None:
        self.status = status
        self.message = message
        self.body = body
        text = f"unexpected response {status}"
        if message:
            text += f" ({message})"
        super().__init__(text)


class TransportError(DshApiError):
    """Connection failures, timeouts and other transport-level errors."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(message)


__all__ = [
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
