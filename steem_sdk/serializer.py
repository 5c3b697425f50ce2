"""
Graphene binary serialization for Steem transactions.

Wire format of a transaction (signatures excluded):

    uint16   ref_block_num
    uint32   ref_block_prefix
    uint32   expiration (epoch seconds, UTC)
    varint   len(operations)
    ...      operation: varint op_id || fields in schema order
    varint   len(extensions)  (always 0)

Integers are little-endian. Strings are varint length + UTF-8 bytes.
Assets use the legacy layout: int64 amount, uint8 precision, 7-byte
NUL-padded symbol.

Digest:
    digest = sha256(chain_id || serialize_transaction(tx))
    The chain id prefix keeps a transaction signature from being valid
    on another chain or for the signed-call protocol.
"""

from __future__ import annotations

import hashlib
import re
import struct
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from steem_sdk.operations import Operation
    from steem_sdk.transaction import UnsignedTransaction

# Known symbol precisions. Other symbols pass through unchecked.
ASSET_PRECISION: dict[str, int] = {
    "STEEM": 3,
    "SBD": 3,
    "VESTS": 6,
    "TESTS": 3,
    "TBD": 3,
}

_ASSET_RE = re.compile(r"^(-?\d+(?:\.(\d+))?) ([A-Z]{1,7})$")


# =========================================================================
# Primitives
# =========================================================================


def varint(num: int) -> bytes:
    """Unsigned LEB128."""
    if num < 0:
        raise ValueError(f"varint must be non-negative, got {num}")
    data = b""
    while num >= 0x80:
        data += bytes([(num & 0x7F) | 0x80])
        num >>= 7
    return data + bytes([num])


def pack_string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return varint(len(raw)) + raw


def pack_uint16(value: int) -> bytes:
    return struct.pack("<H", value)


def pack_uint32(value: int) -> bytes:
    return struct.pack("<I", value)


def pack_int16(value: int) -> bytes:
    return struct.pack("<h", value)


def pack_int64(value: int) -> bytes:
    return struct.pack("<q", value)


def pack_bool(value: bool) -> bytes:
    return struct.pack("<B", 1 if value else 0)


def pack_time(value: datetime) -> bytes:
    return pack_uint32(int(value.timestamp()))


def pack_string_set(values: tuple[str, ...]) -> bytes:
    """flat_set<string>: sorted, length-prefixed."""
    ordered = sorted(values)
    return varint(len(ordered)) + b"".join(pack_string(v) for v in ordered)


# =========================================================================
# Asset
# =========================================================================


@dataclass(frozen=True)
class Asset:
    """A parsed ``"1.000 STEEM"`` amount."""

    amount: int
    precision: int
    symbol: str

    @classmethod
    def parse(cls, value: str) -> Asset:
        """Parse an asset string.

        Raises:
            ValueError: Malformed string or precision wrong for a known symbol.
        """
        match = _ASSET_RE.match(value.strip())
        if match is None:
            raise ValueError(f"invalid asset string: {value!r}")
        number, fraction, symbol = match.groups()
        precision = len(fraction) if fraction else 0
        expected = ASSET_PRECISION.get(symbol)
        if expected is not None and precision != expected:
            raise ValueError(
                f"{symbol} requires precision {expected}, got {precision} in {value!r}"
            )
        try:
            amount = int(Decimal(number).scaleb(precision))
        except InvalidOperation as e:
            raise ValueError(f"invalid asset amount: {value!r}") from e
        return cls(amount=amount, precision=precision, symbol=symbol)

    def __str__(self) -> str:
        if self.precision == 0:
            return f"{self.amount} {self.symbol}"
        sign = "-" if self.amount < 0 else ""
        whole, frac = divmod(abs(self.amount), 10**self.precision)
        return f"{sign}{whole}.{frac:0{self.precision}d} {self.symbol}"

    def __bytes__(self) -> bytes:
        symbol = self.symbol.encode("ascii").ljust(7, b"\x00")
        return pack_int64(self.amount) + struct.pack("<B", self.precision) + symbol


def pack_asset(value: str | Asset) -> bytes:
    if isinstance(value, str):
        value = Asset.parse(value)
    return bytes(value)


# =========================================================================
# Field types
# =========================================================================


class FieldType(StrEnum):
    """Binary type of an operation field."""

    STRING = "string"
    INT16 = "int16"
    UINT16 = "uint16"
    UINT32 = "uint32"
    INT64 = "int64"
    BOOL = "bool"
    ASSET = "asset"
    STRING_SET = "string_set"


_PACKERS: dict[FieldType, Callable[[Any], bytes]] = {
    FieldType.STRING: pack_string,
    FieldType.INT16: pack_int16,
    FieldType.UINT16: pack_uint16,
    FieldType.UINT32: pack_uint32,
    FieldType.INT64: pack_int64,
    FieldType.BOOL: pack_bool,
    FieldType.ASSET: pack_asset,
    FieldType.STRING_SET: pack_string_set,
}


def pack_field(field_type: FieldType, value: Any) -> bytes:
    return _PACKERS[field_type](value)


# =========================================================================
# Operations and transactions
# =========================================================================


def serialize_operation(operation: Operation) -> bytes:
    """varint op_id followed by each schema field in order."""
    buf = varint(operation.op_id)
    for name, field_type in operation.schema:
        buf += pack_field(field_type, getattr(operation, name))
    return buf


def serialize_transaction(transaction: UnsignedTransaction) -> bytes:
    """Serialize a transaction without its signatures.

    Operation order is preserved exactly as given.
    """
    buf = pack_uint16(transaction.ref_block_num)
    buf += pack_uint32(transaction.ref_block_prefix)
    buf += pack_time(transaction.expiration)
    buf += varint(len(transaction.operations))
    for operation in transaction.operations:
        buf += serialize_operation(operation)
    buf += varint(len(transaction.extensions))
    return buf


def chain_digest(chain_id: bytes, serialized: bytes) -> bytes:
    """sha256(chain_id || serialized) over already-serialized transaction bytes."""
    return hashlib.sha256(chain_id + serialized).digest()


def transaction_digest(chain_id: bytes, transaction: UnsignedTransaction) -> bytes:
    """sha256(chain_id || serialized transaction)."""
    return chain_digest(chain_id, serialize_transaction(transaction))


def transaction_id(transaction: UnsignedTransaction) -> str:
    """Transaction id: first 20 bytes of sha256(serialized), hex."""
    return hashlib.sha256(serialize_transaction(transaction)).digest()[:20].hex()
