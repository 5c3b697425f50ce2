"""
Transport protocol for Steem JSON-RPC calls.

Defines the seam where concrete HTTP implementations plug in. The
JSON-RPC client depends on this protocol, not on httpx directly, so the
transport can be swapped for test fakes without changing client logic.

Concrete implementations:
    - HttpxTransport (default, uses httpx.AsyncClient)
    - FakeTransport (tests, returns canned responses)

Signed calls are only defined over plain request/response HTTP. Any
other endpoint scheme (ws://, wss://, ...) is rejected by
``require_http_transport()`` before any signing or network work.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx

from steem_sdk.errors import UnsupportedTransportError

# Endpoint schemes over which signed calls may be made.
HTTP_SCHEMES = ("http://", "https://")


@runtime_checkable
class JsonRpcTransport(Protocol):
    """Async transport for JSON-RPC POST requests."""

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send a JSON-RPC request and return the parsed response.

        Args:
            url: The JSON-RPC endpoint URL.
            payload: The JSON-RPC request body (jsonrpc, method, params, id).

        Returns:
            Parsed JSON response as a dict.

        Raises:
            httpx.HTTPError: On transport-level failures (connection
                refused, timeout, TLS error, HTTP status error). The
                JSON-RPC client maps these to NetworkError.
        """
        ...


class HttpxTransport:
    """Default transport using httpx.AsyncClient.

    Args:
        timeout: Request timeout in seconds.
        headers: Extra headers sent with every request.
    """

    def __init__(self, timeout: float = 30.0, headers: dict[str, str] | None = None) -> None:
        self._timeout = timeout
        self._headers = headers or {}

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send JSON-RPC request via httpx."""
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json", **self._headers},
            )
            response.raise_for_status()
            result: dict[str, Any] = response.json()
            return result


def is_http_url(url: str) -> bool:
    return url.lower().startswith(HTTP_SCHEMES)


def require_http_transport(url: str) -> None:
    """Fail fast unless url is http:// or https://.

    Raises:
        UnsupportedTransportError: For any other scheme.
    """
    if not is_http_url(url):
        raise UnsupportedTransportError(
            "signed calls can only be made when using HTTP transport",
            details={"url": url},
        )
