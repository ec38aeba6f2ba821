"""
Console tracing and masking helpers.

Request/response panels are only printed when tracing is enabled
(``DSH_API_TRACE=1`` or ``DshApiSettings.trace``). Authorization headers and
secrets are always masked before they reach the console or a log line.
"""
import json
from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

console = Console(stderr=True)

SENSITIVE_HEADERS = frozenset({"authorization", "x-api-key", "cookie"})
HIDDEN_VALUE = "<hidden>"


def mask_sensitive(value: Optional[str], show_chars: int = 4) -> str:
    """
    Mask sensitive values for logging.

    Args:
        value: Value to mask
        show_chars: Number of characters to show before masking

    Returns:
        str: Masked value, ``<none>`` for null or empty values
    """
    if not value:
        return "<none>"
    if len(value) <= show_chars:
        return "*" * len(value)
    return value[:show_chars] + "***"


def mask_auth_header(value: Optional[str]) -> str:
    """Mask an Authorization header, keeping the scheme readable."""
    if not value:
        return "<none>"
    scheme, _, credentials = value.partition(" ")
    if not credentials:
        return mask_sensitive(value)
    return f"{scheme} {mask_sensitive(credentials)}"


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of headers with credential-bearing headers masked."""
    masked = dict(headers)
    for key in masked:
        if key.lower() in SENSITIVE_HEADERS:
            masked[key] = mask_auth_header(masked[key])
    return masked


def _format_body(body: Any) -> str:
    if body is None:
        return ""
    if isinstance(body, (dict, list)):
        return json.dumps(body, indent=2, ensure_ascii=False)
    if isinstance(body, bytes):
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError:
            return f"<binary data: {len(body)} bytes>"
    return str(body)


def print_request(method: str, url: str, headers: Dict[str, str], body: Any = None) -> None:
    """Print an outgoing request with masked headers."""
    console.print(Panel(f"[bold cyan]{method}[/bold cyan] {url}", title="[bold blue]Request[/bold blue]"))
    console.print("[bold]Headers:[/bold]", mask_headers(headers))
    if body is not None:
        console.print(
            Panel(
                Syntax(_format_body(body), "json", theme="monokai"),
                title="[bold]Request Body[/bold]",
            )
        )


def print_response(url: str, status: int, reason: str, body: Any = None) -> None:
    """Print a received response."""
    color = "green" if 200 <= status < 300 else "red"
    console.print(
        Panel(
            f"[bold {color}]{status}[/bold {color}] {reason}",
            title=f"[bold blue]Response[/bold blue] ({url})",
        )
    )
    if body:
        console.print(
            Panel(
                Syntax(_format_body(body), "json", theme="monokai"),
                title="[bold]Response Body[/bold]",
            )
        )
