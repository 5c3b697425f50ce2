"""
Transaction assembly and signing.

Pipeline:
    operations
      → TransactionAssembler.prepare()   (reference block + expiration)
      → TransactionSigner.sign()         (one digest, N signatures)
      → BroadcastSubmitter.submit()      (broadcast.py)

Reference block binding:
    ref_block_num    = low 16 bits of the reference block number
    ref_block_prefix = uint32 little-endian from bytes [4:8] of that
                       block's id

    Two policies are supported (``RefBlockPolicy``):

    HEAD (default)
        Reference block = head block. Number and id both come from
        dynamic global properties; one RPC round trip.

    LAST_IRREVERSIBLE
        Reference block = last_irreversible_block_num - 1. The id is
        taken from the ``previous`` field of block
        last_irreversible_block_num, which is the id of the block
        before it. Two RPC round trips, but the reference block cannot
        be reorganized away.

    Mixing the two (number from one block, prefix from another) produces
    a transaction the node rejects with a TaPoS error.

Signing:
    digest = sha256(chain_id || serialized transaction), computed once
    per sign() call. Every key signs that digest; signatures follow key
    order. Re-signing returns a new SignedTransaction; earlier
    signatures are never carried over.
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any, Callable, Protocol, runtime_checkable

from steem_sdk.errors import (
    EmptyOperationListError,
    NoKeysProvidedError,
    PropertiesFetchFailedError,
    SigningError,
    SteemError,
)
from steem_sdk.keys import PrivateKey, PublicKey, coerce_private_key, recover_public_key
from steem_sdk.operations import Operation, operation_to_json
from steem_sdk.serializer import (
    chain_digest,
    serialize_transaction,
    transaction_digest,
    transaction_id,
)

logger = logging.getLogger(__name__)

# Steem mainnet chain id.
STEEM_CHAIN_ID = bytes(32)

# Default validity window of a prepared transaction.
DEFAULT_EXPIRATION_SECONDS = 600

# Used when the reference block has no ``previous`` id.
_ZERO_BLOCK_ID = "0" * 40

_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


class RefBlockPolicy(StrEnum):
    """Which block a transaction is bound to."""

    HEAD = "head"
    LAST_IRREVERSIBLE = "last_irreversible"


# =========================================================================
# Chain state
# =========================================================================


@dataclass(frozen=True)
class ChainProperties:
    """Subset of dynamic global properties needed for assembly."""

    head_block_number: int
    head_block_id: str
    last_irreversible_block_num: int
    time: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChainProperties:
        """Parse a get_dynamic_global_properties result.

        Raises:
            ValueError: If a required field is missing or mistyped.
        """
        try:
            return cls(
                head_block_number=int(data["head_block_number"]),
                head_block_id=str(data["head_block_id"]),
                last_irreversible_block_num=int(data["last_irreversible_block_num"]),
                time=data.get("time"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"malformed dynamic global properties: {e}") from e


@runtime_checkable
class ChainStateReader(Protocol):
    """Read-only chain state the assembler and fetcher depend on."""

    async def get_dynamic_global_properties(self) -> ChainProperties:
        ...

    async def get_block(self, block_num: int) -> dict[str, Any] | None:
        ...


def ref_block_num(block_num: int) -> int:
    return block_num & 0xFFFF


def ref_block_prefix(block_id: str) -> int:
    """uint32 little-endian at byte offset 4 of a hex block id.

    Raises:
        ValueError: If block_id is not hex or shorter than 8 bytes.
    """
    raw = bytes.fromhex(block_id)
    if len(raw) < 8:
        raise ValueError(f"block id too short: {block_id!r}")
    prefix: int = struct.unpack_from("<I", raw, 4)[0]
    return prefix


# =========================================================================
# Transactions
# =========================================================================


@dataclass(frozen=True)
class UnsignedTransaction:
    """A transaction bound to a reference block, not yet signed."""

    ref_block_num: int
    ref_block_prefix: int
    expiration: datetime
    operations: tuple[Operation, ...]
    extensions: tuple[Any, ...] = ()

    def with_operations(self, *operations: Operation) -> UnsignedTransaction:
        """Copy with operations appended (order preserved)."""
        return UnsignedTransaction(
            ref_block_num=self.ref_block_num,
            ref_block_prefix=self.ref_block_prefix,
            expiration=self.expiration,
            operations=self.operations + tuple(operations),
            extensions=self.extensions,
        )

    def serialize(self) -> bytes:
        return serialize_transaction(self)

    def digest(self, chain_id: bytes = STEEM_CHAIN_ID) -> bytes:
        return transaction_digest(chain_id, self)

    @property
    def id(self) -> str:
        return transaction_id(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ref_block_num": self.ref_block_num,
            "ref_block_prefix": self.ref_block_prefix,
            "expiration": self.expiration.astimezone(UTC).strftime(_TIME_FORMAT),
            "operations": [operation_to_json(op) for op in self.operations],
            "extensions": list(self.extensions),
        }


@dataclass(frozen=True)
class SignedTransaction:
    """An UnsignedTransaction plus hex compact signatures."""

    transaction: UnsignedTransaction
    signatures: tuple[str, ...] = field(default_factory=tuple)

    @property
    def id(self) -> str:
        return self.transaction.id

    def to_dict(self) -> dict[str, Any]:
        result = self.transaction.to_dict()
        result["signatures"] = list(self.signatures)
        return result


# =========================================================================
# Assembler
# =========================================================================


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TransactionAssembler:
    """Binds operations to a reference block and an expiration time.

    Args:
        reader: Chain-state collaborator.
        policy: Reference-block policy. Default HEAD.
        expiration_seconds: Validity window. Default 600.
        now_fn: Callable returning an aware UTC datetime. Inject for tests.
    """

    def __init__(
        self,
        reader: ChainStateReader,
        *,
        policy: RefBlockPolicy = RefBlockPolicy.HEAD,
        expiration_seconds: int = DEFAULT_EXPIRATION_SECONDS,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._reader = reader
        self._policy = policy
        self._expiration_seconds = expiration_seconds
        self._now_fn = now_fn or _utcnow

    @property
    def policy(self) -> RefBlockPolicy:
        return self._policy

    async def prepare(self, operations: Sequence[Operation]) -> UnsignedTransaction:
        """Build an unsigned transaction for the given operations.

        No retry happens here: a retry could mix a stale head with a
        fresh expiration.

        Raises:
            EmptyOperationListError: If operations is empty.
            PropertiesFetchFailedError: If chain state cannot be read.
        """
        if not operations:
            raise EmptyOperationListError("no operations provided")

        try:
            props = await self._reader.get_dynamic_global_properties()
        except SteemError as e:
            raise PropertiesFetchFailedError(
                "failed to get dynamic global properties",
                details={"cause": e.to_dict()},
            ) from e

        if self._policy == RefBlockPolicy.HEAD:
            number = props.head_block_number
            block_id = props.head_block_id
        else:
            number, block_id = await self._last_irreversible_reference(props)

        try:
            prefix = ref_block_prefix(block_id)
        except ValueError as e:
            raise PropertiesFetchFailedError(
                "reference block id is malformed",
                details={"block_num": number, "block_id": block_id},
            ) from e

        now = self._now_fn().astimezone(UTC).replace(microsecond=0)
        tx = UnsignedTransaction(
            ref_block_num=ref_block_num(number),
            ref_block_prefix=prefix,
            expiration=now + timedelta(seconds=self._expiration_seconds),
            operations=tuple(operations),
            extensions=(),
        )
        logger.debug(
            "prepared transaction ref_block_num=%d ref_block_prefix=%d expiration=%s ops=%d",
            tx.ref_block_num,
            tx.ref_block_prefix,
            tx.expiration.isoformat(),
            len(tx.operations),
        )
        return tx

    async def _last_irreversible_reference(self, props: ChainProperties) -> tuple[int, str]:
        lib = props.last_irreversible_block_num
        try:
            block = await self._reader.get_block(lib)
        except SteemError as e:
            raise PropertiesFetchFailedError(
                "failed to get block for ref_block_prefix calculation",
                details={"block_num": lib, "cause": e.to_dict()},
            ) from e
        if block is None:
            raise PropertiesFetchFailedError(
                "reference block not found",
                details={"block_num": lib},
            )
        previous = block.get("previous") or _ZERO_BLOCK_ID
        return lib - 1, previous


# =========================================================================
# Signer
# =========================================================================


def _unique_keys(private_keys: Iterable[PrivateKey | str]) -> list[PrivateKey]:
    keys: list[PrivateKey] = []
    seen: set[PublicKey] = set()
    for key in private_keys:
        private_key = coerce_private_key(key)
        if private_key.public_key in seen:
            continue
        seen.add(private_key.public_key)
        keys.append(private_key)
    return keys


class TransactionSigner:
    """Signs transactions for one chain.

    Args:
        chain_id: 32-byte chain id mixed into the digest.
    """

    def __init__(self, chain_id: bytes = STEEM_CHAIN_ID) -> None:
        if len(chain_id) != 32:
            raise ValueError(f"chain_id must be 32 bytes, got {len(chain_id)}")
        self._chain_id = chain_id

    @property
    def chain_id(self) -> bytes:
        return self._chain_id

    def sign(
        self,
        transaction: UnsignedTransaction | SignedTransaction,
        private_keys: Iterable[PrivateKey | str],
    ) -> SignedTransaction:
        """Sign with every key, in order.

        Duplicate keys sign once. Passing a SignedTransaction discards
        its signatures and signs the body afresh.

        Raises:
            NoKeysProvidedError: If no keys are given.
            InvalidKeyFormatError: If a WIF string is malformed.
            SigningError: If the signing primitive fails.
        """
        if isinstance(transaction, SignedTransaction):
            transaction = transaction.transaction

        keys = _unique_keys(private_keys)
        if not keys:
            raise NoKeysProvidedError("no private keys provided for signing")

        serialized = transaction.serialize()
        digest = chain_digest(self._chain_id, serialized)
        logger.debug("transaction bytes=%s digest=%s", serialized.hex(), digest.hex())

        signatures: list[str] = []
        for key in keys:
            try:
                signatures.append(key.sign_digest(digest).hex())
            except ValueError as e:
                raise SigningError(
                    "failed to sign transaction",
                    details={"public_key": str(key.public_key)},
                ) from e

        return SignedTransaction(transaction=transaction, signatures=tuple(signatures))

    def recover_signers(self, signed: SignedTransaction) -> list[PublicKey]:
        """Public keys behind each signature, in signature order.

        Raises:
            ValueError: If a signature does not recover.
        """
        digest = signed.transaction.digest(self._chain_id)
        return [recover_public_key(digest, signature) for signature in signed.signatures]
