"""
Generic dispatch of resource management API calls.

A DshApiClient is bound to one platform and one tenant. Every operation is
addressed by a selector (or a literal path) plus the positional path
parameters; the tenant always fills the first placeholder.

Example:
    async with DshApiClientFactory() as factory:
        client = factory.create("my-tenant", platform="nplz")
        applications = await client.get("application")
        configuration = await client.get(
            "get_application_configuration_by_tenant_by_appid", ["keyring-dev"]
        )
        await client.put("put_secret_by_tenant_by_id", ["abcdef"], body='"ABCDEF"')
"""
import json
import logging
from typing import Any, Dict, Optional, Sequence, Union

import httpx

from .auth import TokenSource
from .console import HIDDEN_VALUE, print_request, print_response
from .credentials import TenantCredentials
from .errors import ApiError, InvalidRequestBody, InvalidResponseBody, TransportError, Unauthorized
from .platform import Platform
from .selectors import HttpMethod, SelectorBinding, SelectorTable
from .shapes import STRING, ShapeMismatch, validate_json
from .token_fetcher import AccessToken
from .transport import build_url

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 200
ERROR_MESSAGE_FIELDS = ("message", "error", "description")

Body = Union[str, bytes, Any]
Query = Optional[Dict[str, Union[str, int, bool]]]


def _error_message(response: httpx.Response) -> Optional[str]:
    """Message from an error response body, falling back to the raw text."""
    text = response.text.strip()
    if not text:
        return None
    try:
        data = json.loads(text)
    except ValueError:
        return text[:MAX_ERROR_MESSAGE_LENGTH]
    if isinstance(data, dict):
        for field_name in ERROR_MESSAGE_FIELDS:
            value = data.get(field_name)
            if isinstance(value, str) and value:
                return value[:MAX_ERROR_MESSAGE_LENGTH]
    if isinstance(data, str) and data:
        return data[:MAX_ERROR_MESSAGE_LENGTH]
    return text[:MAX_ERROR_MESSAGE_LENGTH]


def _holds_secret_value(binding: SelectorBinding, shape: Optional[str]) -> bool:
    """Plain string payloads of secret resources are never traced."""
    return shape == STRING and "/secret/" in binding.path


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class DshApiClient:
    """
    Authenticated client handle for one (platform, tenant).

    Handles are cheap; all handles created by one factory share its token
    cache and HTTP client. A handle is safe for concurrent use.
    """

    def __init__(
        self,
        platform: Platform,
        tenant: str,
        token_source: TokenSource,
        httpx_client: httpx.AsyncClient,
        selectors: SelectorTable,
        credentials: Optional[TenantCredentials] = None,
        trace: bool = False,
    ) -> None:
        self._platform = platform
        self._tenant = tenant
        self._token_source = token_source
        self._client = httpx_client
        self._selectors = selectors
        self._credentials = credentials
        self._trace = trace

    def __repr__(self) -> str:
        return f"DshApiClient(platform={self._platform.name!r}, tenant={self._tenant!r})"

    @property
    def platform(self) -> Platform:
        return self._platform

    @property
    def tenant(self) -> str:
        return self._tenant

    @property
    def credentials(self) -> Optional[TenantCredentials]:
        """Resolved credentials, None for a client built from a static access token."""
        return self._credentials

    @property
    def guid(self) -> Optional[int]:
        return self._credentials.guid if self._credentials is not None else None

    @property
    def selectors(self) -> SelectorTable:
        return self._selectors

    @property
    def base_url(self) -> str:
        return self._platform.rest_api_endpoint

    async def access_token(self) -> AccessToken:
        """Current access token, fetched or refreshed when needed."""
        return await self._token_source.token()

    async def token(self) -> str:
        """Current bearer token value."""
        return (await self._token_source.token()).access_token

    def resolve_path(self, method: Union[str, HttpMethod], selector_or_path: str, parameters: Sequence[Any] = ()) -> str:
        """Path a call would be sent to, without calling the api."""
        binding = self._selectors.lookup(method, selector_or_path)
        return binding.render(self._tenant, self._check_parameters(parameters))

    @staticmethod
    def _check_parameters(parameters: Sequence[Any]) -> Sequence[Any]:
        if isinstance(parameters, (str, bytes)):
            raise TypeError("parameters must be a sequence of values, not a single string")
        return list(parameters)

    def _encode_body(self, binding: SelectorBinding, body: Body) -> Optional[bytes]:
        """
        Validate a request body against the binding and return the json to send.

        Raises:
            InvalidRequestBody: If the body is missing, unexpected, not json or
                does not match the body shape
        """
        if body is None:
            if binding.takes_body and binding.body_required:
                raise InvalidRequestBody(
                    f"{binding.method.value.lower()} '{binding.selector}' requires a request body"
                )
            return None
        if not binding.takes_body:
            raise InvalidRequestBody(
                f"{binding.method.value.lower()} '{binding.selector}' does not take a request body"
            )

        if isinstance(body, bytes):
            document = body
        elif isinstance(body, str):
            document = body.encode("utf-8")
        else:
            try:
                document = json.dumps(body, allow_nan=False).encode("utf-8")
            except (TypeError, ValueError) as e:
                raise InvalidRequestBody(
                    f"request body for '{binding.selector}' is not serializable as json ({type(e).__name__})"
                ) from e

        try:
            validate_json(binding.body, document)
        except ShapeMismatch as e:
            raise InvalidRequestBody(f"request body for '{binding.selector}' {e}") from e
        return document

    def _decode_response(self, binding: SelectorBinding, response: httpx.Response, token: AccessToken) -> Any:
        status = response.status_code
        if status == 401:
            self._token_source.invalidate(token)
            raise Unauthorized(_error_message(response))
        if not response.is_success:
            message = _error_message(response)
            logger.debug(f"DshApiClient: {binding.method.value} {response.url.path} -> {status} ({message})")
            raise ApiError(status, message, body=_error_body(response))

        content = response.content
        if binding.method == HttpMethod.HEAD or not content.strip():
            return None
        try:
            validate_json(binding.response, content)
        except ShapeMismatch as e:
            raise InvalidResponseBody(f"response body for '{binding.selector}' {e}") from e
        return json.loads(content)

    async def call(
        self,
        method: Union[str, HttpMethod],
        selector_or_path: str,
        parameters: Sequence[Any] = (),
        body: Body = None,
        query: Query = None,
    ) -> Any:
        """
        Call an api operation.

        Args:
            method: Http method
            selector_or_path: Selector, path template or literal path
            parameters: Path parameters after the tenant, in order
            body: Json text (str or bytes) or an already decoded json value
            query: Optional query parameters

        Returns:
            The decoded json response, None when the response has no body

        Raises:
            UnknownSelector: If the selector does not resolve
            ParameterCountMismatch: If the number of parameters is wrong
            InvalidRequestBody: If the body does not fit the operation
            TokenFetchFailed: If no access token could be obtained
            Unauthorized: If the api rejected the token (the token is evicted)
            ApiError: For other non-2xx responses
            InvalidResponseBody: If the response does not fit the operation
            TransportError: On connection failures and timeouts
        """
        binding = self._selectors.lookup(method, selector_or_path)
        path = binding.render(self._tenant, self._check_parameters(parameters))
        content = self._encode_body(binding, body)

        token = await self._token_source.token()
        url = build_url(self.base_url, path, query)
        headers = {"accept": "application/json", "authorization": token.authorization}
        if content is not None:
            headers["content-type"] = "application/json"

        logger.debug(f"DshApiClient.call: {binding.method.value} {url} (selector '{binding.selector}')")
        if self._trace:
            traced = content.decode("utf-8") if content else None
            if traced is not None and _holds_secret_value(binding, binding.body):
                traced = HIDDEN_VALUE
            print_request(binding.method.value, url, headers, traced)

        try:
            response = await self._client.request(
                binding.method.value, url, headers=headers, content=content
            )
        except httpx.TimeoutException as e:
            logger.error(f"DshApiClient.call: timeout for {binding.method.value} {url}")
            raise TransportError(f"timeout while calling {binding.method.value} {path} ({type(e).__name__})", cause=e) from e
        except httpx.HTTPError as e:
            logger.error(f"DshApiClient.call: transport failure for {binding.method.value} {url}: {type(e).__name__}")
            raise TransportError(f"transport failure while calling {binding.method.value} {path} ({type(e).__name__})", cause=e) from e

        if self._trace:
            traced = response.text
            if traced and _holds_secret_value(binding, binding.response):
                traced = HIDDEN_VALUE
            print_response(url, response.status_code, response.reason_phrase or "", traced)
        logger.debug(f"DshApiClient.call: {binding.method.value} {url} -> {response.status_code}")
        return self._decode_response(binding, response, token)

    async def get(self, selector_or_path: str, parameters: Sequence[Any] = (), query: Query = None) -> Any:
        """GET request."""
        return await self.call(HttpMethod.GET, selector_or_path, parameters, query=query)

    async def head(self, selector_or_path: str, parameters: Sequence[Any] = ()) -> None:
        """HEAD request."""
        return await self.call(HttpMethod.HEAD, selector_or_path, parameters)

    async def post(self, selector_or_path: str, parameters: Sequence[Any] = (), body: Body = None) -> Any:
        """POST request."""
        return await self.call(HttpMethod.POST, selector_or_path, parameters, body)

    async def put(self, selector_or_path: str, parameters: Sequence[Any] = (), body: Body = None) -> Any:
        """PUT request."""
        return await self.call(HttpMethod.PUT, selector_or_path, parameters, body)

    async def patch(self, selector_or_path: str, parameters: Sequence[Any] = (), body: Body = None) -> Any:
        """PATCH request."""
        return await self.call(HttpMethod.PATCH, selector_or_path, parameters, body)

    async def delete(self, selector_or_path: str, parameters: Sequence[Any] = ()) -> Any:
        """DELETE request."""
        return await self.call(HttpMethod.DELETE, selector_or_path, parameters)
