"""
Client session: one node, one account, one KeyStore.

Wires the components together from an SdkConfig:

    JsonRpcClient ──► TransactionAssembler ──► TransactionSigner
         │                                          │
         ├──► BroadcastSubmitter ◄──────────────────┘
         └──► ConcurrentBlockFetcher

Keys are imported per role. broadcast_operations() picks the role the
operations need (posting for votes and comments, active for transfers)
and signs with that key only.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable

from steem_sdk.broadcast import Broadcast, BroadcastSubmitter, signing_role
from steem_sdk.config import SdkConfig
from steem_sdk.errors import EmptyOperationListError
from steem_sdk.fetcher import ConcurrentBlockFetcher, RetryMode, WrapBlock
from steem_sdk.jsonrpc_client import JsonRpcClient
from steem_sdk.keys import KeyRole, KeyStore, PrivateKey
from steem_sdk.operations import Operation
from steem_sdk.transaction import (
    ChainProperties,
    SignedTransaction,
    TransactionAssembler,
    TransactionSigner,
    UnsignedTransaction,
)
from steem_sdk.transport import HttpxTransport, JsonRpcTransport, require_http_transport

logger = logging.getLogger(__name__)


class Client:
    """A session against one Steem node.

    Args:
        config: Settings. Defaults to SdkConfig().
        account_name: Account used by signed_call().
        transport: Injectable transport. Defaults to HttpxTransport
            with the configured timeout.
        now_fn: Clock for transaction expiration. Inject for tests.
    """

    def __init__(
        self,
        config: SdkConfig | None = None,
        *,
        account_name: str | None = None,
        transport: JsonRpcTransport | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or SdkConfig()
        self.account_name = account_name
        self._keys = KeyStore()
        self._api = JsonRpcClient(
            self._config.url,
            transport=transport or HttpxTransport(timeout=self._config.timeout),
        )
        self._signer = TransactionSigner(self._config.chain_id_bytes)
        self._assembler = TransactionAssembler(
            self._api,
            policy=self._config.ref_block_policy,
            expiration_seconds=self._config.expiration_seconds,
            now_fn=now_fn,
        )
        self._submitter = BroadcastSubmitter(
            self._api,
            max_retry=self._config.max_retry,
            retry_delay=self._config.retry_delay,
        )
        self._broadcast = Broadcast(self._assembler, self._signer, self._submitter)

    @classmethod
    def for_url(cls, url: str, **kwargs: Any) -> Client:
        """Session on url with otherwise default (or env) settings."""
        return cls(replace(SdkConfig.from_env(), url=url), **kwargs)

    @property
    def config(self) -> SdkConfig:
        return self._config

    @property
    def url(self) -> str:
        return self._config.url

    @property
    def keys(self) -> KeyStore:
        return self._keys

    @property
    def api(self) -> JsonRpcClient:
        return self._api

    @property
    def broadcast(self) -> Broadcast:
        return self._broadcast

    @property
    def signer(self) -> TransactionSigner:
        return self._signer

    @property
    def assembler(self) -> TransactionAssembler:
        return self._assembler

    def import_wif(self, role: KeyRole | str, wif: str) -> None:
        self._keys.import_wif(role, wif)

    def fetcher(
        self,
        *,
        mode: RetryMode = RetryMode.BOUNDED,
        deadline: float | None = None,
    ) -> ConcurrentBlockFetcher:
        return ConcurrentBlockFetcher(
            self._api,
            max_retry=self._config.max_retry,
            retry_delay=self._config.retry_delay,
            max_concurrency=self._config.max_concurrency,
            mode=mode,
            deadline=deadline,
        )

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    async def get_dynamic_global_properties(self) -> ChainProperties:
        return await self._api.get_dynamic_global_properties()

    async def get_block(self, block_num: int) -> dict[str, Any] | None:
        return await self._api.get_block(block_num)

    async def get_blocks(
        self,
        start: int,
        stop: int,
        *,
        deadline: float | None = None,
    ) -> list[WrapBlock]:
        """Blocks [start, stop) in ascending order. See ConcurrentBlockFetcher."""
        return await self.fetcher().fetch_range(start, stop, deadline=deadline)

    async def get_transaction_hex(
        self, transaction: UnsignedTransaction | SignedTransaction
    ) -> str:
        return await self._api.get_transaction_hex(transaction)

    async def signed_call(
        self,
        method: str,
        params: Sequence[Any],
        role: KeyRole | str = KeyRole.POSTING,
    ) -> Any:
        """Signed call as account_name with the key imported for role.

        Raises:
            UnsupportedTransportError: The endpoint is not http(s).
            ValueError: No account_name configured.
            KeyNotFoundError: No key imported for role.
        """
        require_http_transport(self.url)
        if not self.account_name:
            raise ValueError("account_name is required for signed calls")
        return await self._api.signed_call(method, params, self.account_name, self._keys.get(role))

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    async def broadcast_sync(self, signed: SignedTransaction) -> dict[str, Any]:
        return await self._submitter.submit(signed)

    async def broadcast_raw_ops(
        self,
        operations: Sequence[Operation],
        private_key: PrivateKey | str,
    ) -> dict[str, Any]:
        """Prepare, sign with exactly one key, and broadcast."""
        return await self._broadcast.send(operations, [private_key])

    async def broadcast_operations(self, operations: Sequence[Operation]) -> dict[str, Any]:
        """Broadcast with the imported key for the strongest role required.

        Raises:
            EmptyOperationListError: No operations.
            KeyNotFoundError: The required role has no imported key.
        """
        if not operations:
            raise EmptyOperationListError("no operations provided")
        role = signing_role(operations)
        logger.debug("broadcast %d operations with %s key", len(operations), role.value)
        return await self._broadcast.send(operations, [self._keys.get(role)])
