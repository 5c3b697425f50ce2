"""
Transaction broadcast.

BroadcastSubmitter.submit() sends one signed transaction with
``condenser_api.broadcast_transaction_synchronous`` and returns the
node's confirmation (id, block_num, trx_num, expired).

Retry rule: a transaction is retried only when the request provably
never reached the node (connection refused, DNS failure, connect
timeout). Once bytes may have left the client nothing is retried: a
resend could double-apply, or fail as a duplicate and hide the first
outcome. The caller decides what to do with NetworkError(sent=True).

Node rejections become BroadcastRejectedError. Its ``category`` sorts
them into EXPIRED, DUPLICATE, MISSING_AUTHORITY,
UNKNOWN_REFERENCE_BLOCK and OTHER. Expired and unknown-reference-block
rejections are fixed by preparing and signing again.

Broadcast is the high-level facade: prepare → sign → submit.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from steem_sdk.errors import BroadcastRejectedError, NetworkError, RpcError
from steem_sdk.jsonrpc_client import DEFAULT_API, JsonRpcClient
from steem_sdk.keys import KeyRole, PrivateKey
from steem_sdk.operations import (
    CustomJsonOperation,
    Operation,
    VoteOperation,
    highest_authority,
)
from steem_sdk.transaction import SignedTransaction, TransactionAssembler, TransactionSigner

logger = logging.getLogger(__name__)

BROADCAST_METHOD = "broadcast_transaction_synchronous"


class BroadcastSubmitter:
    """Submits signed transactions to a node.

    Args:
        api: JSON-RPC client.
        max_retry: Attempts for failures where nothing was sent.
        retry_delay: Seconds between those attempts.
    """

    def __init__(
        self,
        api: JsonRpcClient,
        *,
        max_retry: int = 5,
        retry_delay: float = 1.0,
    ) -> None:
        if max_retry < 1:
            raise ValueError(f"max_retry must be >= 1, got {max_retry}")
        self._api = api
        self._max_retry = max_retry
        self._retry_delay = retry_delay

    async def submit(self, signed: SignedTransaction) -> dict[str, Any]:
        """Broadcast and wait for inclusion.

        Raises:
            BroadcastRejectedError: The node rejected the transaction.
            NetworkError: Transport failure.
        """
        tx_id = signed.id
        attempt = 0
        while True:
            attempt += 1
            logger.debug("broadcast tx=%s attempt=%d", tx_id, attempt)
            try:
                result = await self._api.call(DEFAULT_API, BROADCAST_METHOD, [signed.to_dict()])
            except RpcError as e:
                raise BroadcastRejectedError(
                    e.message,
                    details={**e.details, "tx_id": tx_id},
                ) from e
            except NetworkError as e:
                if e.request_sent or attempt >= self._max_retry:
                    raise
                logger.warning(
                    "broadcast tx=%s could not connect (attempt %d): %s; retrying in %.2fs",
                    tx_id,
                    attempt,
                    e.message,
                    self._retry_delay,
                )
                await asyncio.sleep(self._retry_delay)
                continue
            return result if isinstance(result, dict) else {"result": result}


KeySource = Sequence[PrivateKey | str] | Mapping[Any, PrivateKey | str]


def _key_list(private_keys: KeySource | PrivateKey | str) -> list[PrivateKey | str]:
    if isinstance(private_keys, (PrivateKey, str)):
        return [private_keys]
    if isinstance(private_keys, Mapping):
        return list(private_keys.values())
    return list(private_keys)


class Broadcast:
    """prepare → sign → submit in one call.

    Args:
        assembler: Binds operations to a reference block.
        signer: Signs for the target chain.
        submitter: Sends the signed transaction.
    """

    def __init__(
        self,
        assembler: TransactionAssembler,
        signer: TransactionSigner,
        submitter: BroadcastSubmitter,
    ) -> None:
        self._assembler = assembler
        self._signer = signer
        self._submitter = submitter

    async def send(
        self,
        operations: Sequence[Operation],
        private_keys: KeySource | PrivateKey | str,
    ) -> dict[str, Any]:
        """Broadcast operations signed by every given key.

        private_keys may be a sequence, a role → key mapping, or a
        single key. Key order is signature order.
        """
        keys = _key_list(private_keys)
        unsigned = await self._assembler.prepare(operations)
        signed = self._signer.sign(unsigned, keys)
        return await self._submitter.submit(signed)

    async def send_with(
        self, operation: Operation, private_key: PrivateKey | str
    ) -> dict[str, Any]:
        return await self.send([operation], [private_key])

    async def custom_json(
        self,
        required_auths: Iterable[str],
        required_posting_auths: Iterable[str],
        id: str,
        json: str,
        private_key: PrivateKey | str,
    ) -> dict[str, Any]:
        op = CustomJsonOperation(
            required_auths=tuple(required_auths),
            required_posting_auths=tuple(required_posting_auths),
            id=id,
            json=json,
        )
        return await self.send_with(op, private_key)

    async def vote(
        self,
        voter: str,
        author: str,
        permlink: str,
        weight: int,
        private_key: PrivateKey | str,
    ) -> dict[str, Any]:
        op = VoteOperation(voter=voter, author=author, permlink=permlink, weight=weight)
        return await self.send_with(op, private_key)


def signing_role(operations: Sequence[Operation]) -> KeyRole:
    """Key role whose authority covers every operation."""
    return KeyRole(highest_authority(tuple(operations)).value)
