# =============================================================================
# HTTP Error Translation
# =============================================================================
# Maps httpx failures onto the error taxonomy at the resource boundary.
# =============================================================================

from contextlib import contextmanager
from typing import Generator

import httpx

from libs.errors import RemoteTerminalError, RemoteTransientError

__all__ = ["check_response", "translate_transport_errors"]


def check_response(response: httpx.Response, operation: str) -> httpx.Response:
    """
    Raise a typed error for a non-2xx response.

    - 429 and 5xx -> RemoteTransientError
    - other 4xx -> RemoteTerminalError
    """
    if response.is_success:
        return response

    status = response.status_code
    detail = _error_detail(response)
    message = f"{operation} failed with HTTP {status}: {detail}"

    if status == 429 or status >= 500:
        raise RemoteTransientError(message, status_code=status)
    raise RemoteTerminalError(message, status_code=status)


@contextmanager
def translate_transport_errors(operation: str) -> Generator[None, None, None]:
    """Re-raise httpx transport failures (connect, read, timeouts) as transient."""
    try:
        yield
    except httpx.TransportError as exc:
        raise RemoteTransientError(f"{operation} failed: {exc}") from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if body.get("detail"):
            return str(body["detail"])
    return str(body)[:200]
