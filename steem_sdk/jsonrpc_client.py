"""
Steem JSON-RPC client (the ``Api`` layer).

Frames ``{"jsonrpc": "2.0", "method", "params", "id"}`` requests, posts
them through an injectable JsonRpcTransport and unwraps ``result``.

Error mapping:
    - httpx.ConnectError / httpx.ConnectTimeout → NetworkError, sent=False
      (nothing reached the node; safe to retry anything)
    - any other httpx.HTTPError or an undecodable body → NetworkError,
      sent=True (the node may have processed the request)
    - JSON-RPC ``error`` member → RpcError carrying the node's error
      object, the method and, for signed calls, the account

Request ids come from a per-client counter guarded by a lock. A signed
call advances it exactly once, after the transport check and before
signing, so the id equals the number of signed-call attempts so far.
No retry loops here; callers own retry policy.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence
from typing import Any, Callable, TypeVar

import httpx

from steem_sdk.errors import NetworkError, RpcError
from steem_sdk.keys import PrivateKey
from steem_sdk.signed_call import sign_request
from steem_sdk.transaction import ChainProperties, SignedTransaction, UnsignedTransaction
from steem_sdk.transport import HttpxTransport, JsonRpcTransport, require_http_transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_API = "condenser_api"


def _normalize_keys(
    private_keys: PrivateKey | str | Iterable[PrivateKey | str],
) -> list[PrivateKey | str]:
    if isinstance(private_keys, (PrivateKey, str)):
        return [private_keys]
    return list(private_keys)


class JsonRpcClient:
    """Steem JSON-RPC client.

    Args:
        url: Node endpoint (e.g. "https://api.steemit.com").
        transport: Injectable transport. Defaults to HttpxTransport.
            Pass a FakeTransport for testing.
    """

    def __init__(
        self,
        url: str,
        transport: JsonRpcTransport | None = None,
    ) -> None:
        self._url = url
        self._transport = transport or HttpxTransport()
        self._seq_no = 0
        self._lock = threading.Lock()

    @property
    def url(self) -> str:
        return self._url

    @property
    def seq_no(self) -> int:
        """Id of the most recent request (0 before the first)."""
        with self._lock:
            return self._seq_no

    def next_request_id(self) -> int:
        with self._lock:
            self._seq_no += 1
            return self._seq_no

    # -----------------------------------------------------------------
    # Plain calls
    # -----------------------------------------------------------------

    async def call(
        self,
        api: str,
        method: str,
        params: Sequence[Any] | None = None,
    ) -> Any:
        """Call ``api.method`` and return the ``result`` member.

        Raises:
            NetworkError: Transport failure.
            RpcError: The node returned a JSON-RPC error.
        """
        full_method = f"{api}.{method}"
        payload = {
            "jsonrpc": "2.0",
            "method": full_method,
            "params": list(params or []),
            "id": self.next_request_id(),
        }
        return await self._post(payload, context={"method": full_method})

    async def call_with_result(
        self,
        api: str,
        method: str,
        params: Sequence[Any] | None = None,
        parse: Callable[[Any], T] | None = None,
    ) -> T | Any:
        """call() followed by an optional result parser.

        A parser that raises ValueError or TypeError is reported as an
        RpcError so callers only see SDK errors.
        """
        result = await self.call(api, method, params)
        return _apply_parser(result, parse, {"method": f"{api}.{method}"})

    async def get_dynamic_global_properties(self) -> ChainProperties:
        result = await self.call(DEFAULT_API, "get_dynamic_global_properties")
        return _apply_parser(
            result,
            ChainProperties.from_dict,
            {"method": f"{DEFAULT_API}.get_dynamic_global_properties"},
        )

    async def get_block(self, block_num: int) -> dict[str, Any] | None:
        """A block by number, or None when the node has no such block."""
        result = await self.call(DEFAULT_API, "get_block", [block_num])
        if result is None:
            return None
        if not isinstance(result, dict):
            raise RpcError(
                "unexpected get_block result",
                details={"method": f"{DEFAULT_API}.get_block", "block_num": block_num},
            )
        return result

    async def get_transaction_hex(
        self, transaction: UnsignedTransaction | SignedTransaction
    ) -> str:
        """The node's own hex serialization of a transaction."""
        result = await self.call(DEFAULT_API, "get_transaction_hex", [transaction.to_dict()])
        return str(result)

    # -----------------------------------------------------------------
    # Signed calls
    # -----------------------------------------------------------------

    async def signed_call(
        self,
        method: str,
        params: Sequence[Any],
        account: str,
        private_keys: PrivateKey | str | Iterable[PrivateKey | str],
    ) -> Any:
        """Make an authenticated call on behalf of account.

        Raises:
            UnsupportedTransportError: Endpoint is not http(s). Raised
                before any signing and before the request id advances.
            NoKeysProvidedError: No keys given.
            NetworkError: Transport failure.
            RpcError: The node rejected the call.
        """
        require_http_transport(self._url)
        request_id = self.next_request_id()
        envelope = sign_request(method, params, account, _normalize_keys(private_keys))
        logger.debug("signed call method=%s account=%s id=%d", method, account, request_id)
        return await self._post(
            envelope.to_request(request_id),
            context={"method": method, "account": account},
        )

    async def signed_call_with_result(
        self,
        method: str,
        params: Sequence[Any],
        account: str,
        private_keys: PrivateKey | str | Iterable[PrivateKey | str],
        parse: Callable[[Any], T] | None = None,
    ) -> T | Any:
        result = await self.signed_call(method, params, account, private_keys)
        return _apply_parser(result, parse, {"method": method, "account": account})

    # -----------------------------------------------------------------
    # Wire
    # -----------------------------------------------------------------

    async def _post(self, payload: dict[str, Any], *, context: dict[str, Any]) -> Any:
        logger.debug("rpc request method=%s id=%s", payload["method"], payload["id"])
        try:
            response = await self._transport.post_json(self._url, payload)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            raise NetworkError(
                f"could not connect to {self._url}: {e}",
                details={**context, "url": self._url, "sent": False},
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(
                f"request to {self._url} failed: {e}",
                details={**context, "url": self._url, "sent": True},
            ) from e
        except ValueError as e:
            raise NetworkError(
                f"invalid JSON response from {self._url}",
                details={**context, "url": self._url, "sent": True},
            ) from e

        if not isinstance(response, dict):
            raise NetworkError(
                "JSON-RPC response is not an object",
                details={**context, "url": self._url, "sent": True},
            )

        error = response.get("error")
        if error is not None:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RpcError(
                f"{context['method']} failed: {message}",
                details={**context, "rpc_error": error},
            )
        return response.get("result")


def _apply_parser(result: Any, parse: Callable[[Any], T] | None, context: dict[str, Any]) -> Any:
    if parse is None:
        return result
    try:
        return parse(result)
    except (ValueError, TypeError) as e:
        raise RpcError(
            f"unexpected result for {context['method']}: {e}",
            details=context,
        ) from e
