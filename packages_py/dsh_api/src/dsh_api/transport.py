"""
HTTP transport helpers built on httpx.
"""
import logging
from typing import Dict, Optional, Union
from urllib.parse import urlencode, urlparse

import httpx

from .config import TimeoutConfig, normalize_timeout

logger = logging.getLogger(__name__)

USER_AGENT = "dsh-api-python/0.1.0"


def create_async_client(
    timeout: Union[TimeoutConfig, float, None] = None,
    verify_ssl: bool = True,
) -> httpx.AsyncClient:
    """Create the httpx.AsyncClient shared by token fetching and dispatch."""
    resolved = normalize_timeout(timeout)
    logger.debug(f"create_async_client: timeout={resolved}, verify_ssl={verify_ssl}")
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=resolved.connect,
            read=resolved.read,
            write=resolved.write,
            pool=resolved.connect,
        ),
        verify=verify_ssl,
        headers={"user-agent": USER_AGENT},
    )


def build_url(
    base_url: str,
    path: str,
    query: Optional[Dict[str, Union[str, int, bool]]] = None,
) -> str:
    """
    Build full URL from base and path.

    The base path is preserved: ``build_url("https://h/resources/v0", "/a")``
    gives ``https://h/resources/v0/a``.
    """
    parsed = urlparse(base_url)
    base_path = parsed.path.rstrip("/")
    if path and not path.startswith("/"):
        path = "/" + path
    url = f"{parsed.scheme}://{parsed.netloc}{base_path}{path}"

    if query:
        query_str = urlencode({k: str(v) for k, v in query.items()})
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}{query_str}"

    return url
