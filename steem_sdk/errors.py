"""
Error taxonomy for the Steem SDK.

Every exception raised by the SDK derives from ``SteemError`` and carries:
    - ``error_code``: machine-readable ``ErrorCode``.
    - ``kind``: coarse ``ErrorKind`` so callers can branch on
      "re-sign and retry" vs "credentials are wrong" vs "node is down".
    - ``details``: context dict (method, account, block_num, url, ...).

Kinds:
    - VALIDATION: bad caller input. Reported immediately, never retried.
    - AUTHENTICATION: expired/bad/malformed signed-call envelopes.
    - TRANSPORT: precondition failures detected before any I/O or crypto.
    - NETWORK: timeouts, connection failures, node-reported RPC errors.

Node error classification:
    ``classify_node_error()`` maps the free-text message a steemd node
    returns for a rejected transaction to a ``BroadcastErrorCategory``.
    Coarse and conservative: unknown messages map to OTHER.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorKind(StrEnum):
    """Coarse error category."""

    VALIDATION = "VALIDATION"
    AUTHENTICATION = "AUTHENTICATION"
    TRANSPORT = "TRANSPORT"
    NETWORK = "NETWORK"


class ErrorCode(StrEnum):
    """Machine-readable error codes."""

    INVALID_ROLE = "INVALID_ROLE"
    INVALID_KEY_FORMAT = "INVALID_KEY_FORMAT"
    KEY_NOT_FOUND = "KEY_NOT_FOUND"
    EMPTY_OPERATION_LIST = "EMPTY_OPERATION_LIST"
    INVALID_RANGE = "INVALID_RANGE"
    NO_KEYS_PROVIDED = "NO_KEYS_PROVIDED"
    SIGNING_FAILED = "SIGNING_FAILED"
    SIGNATURE_EXPIRED = "SIGNATURE_EXPIRED"
    BAD_SIGNATURE = "BAD_SIGNATURE"
    MALFORMED_ENVELOPE = "MALFORMED_ENVELOPE"
    UNSUPPORTED_TRANSPORT = "UNSUPPORTED_TRANSPORT"
    NETWORK_ERROR = "NETWORK_ERROR"
    RPC_ERROR = "RPC_ERROR"
    BROADCAST_REJECTED = "BROADCAST_REJECTED"
    PROPERTIES_FETCH_FAILED = "PROPERTIES_FETCH_FAILED"
    FETCH_FAILED = "FETCH_FAILED"


class BroadcastErrorCategory(StrEnum):
    """Why a node rejected a broadcast transaction."""

    EXPIRED = "EXPIRED"
    DUPLICATE = "DUPLICATE"
    MISSING_AUTHORITY = "MISSING_AUTHORITY"
    UNKNOWN_REFERENCE_BLOCK = "UNKNOWN_REFERENCE_BLOCK"
    OTHER = "OTHER"


# =========================================================================
# Base
# =========================================================================


class SteemError(Exception):
    """Base class for all SDK errors."""

    kind: ErrorKind = ErrorKind.VALIDATION
    default_code: ErrorCode = ErrorCode.NETWORK_ERROR

    def __init__(
        self,
        message: str,
        *,
        error_code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "error_code": self.error_code.value,
            "message": self.message,
            "details": dict(self.details),
        }


# =========================================================================
# Validation
# =========================================================================


class InvalidRoleError(SteemError):
    kind = ErrorKind.VALIDATION
    default_code = ErrorCode.INVALID_ROLE


class InvalidKeyFormatError(SteemError):
    kind = ErrorKind.VALIDATION
    default_code = ErrorCode.INVALID_KEY_FORMAT


class KeyNotFoundError(SteemError):
    kind = ErrorKind.VALIDATION
    default_code = ErrorCode.KEY_NOT_FOUND


class EmptyOperationListError(SteemError):
    kind = ErrorKind.VALIDATION
    default_code = ErrorCode.EMPTY_OPERATION_LIST


class InvalidRangeError(SteemError):
    kind = ErrorKind.VALIDATION
    default_code = ErrorCode.INVALID_RANGE


class NoKeysProvidedError(SteemError):
    kind = ErrorKind.VALIDATION
    default_code = ErrorCode.NO_KEYS_PROVIDED


class SigningError(SteemError):
    kind = ErrorKind.VALIDATION
    default_code = ErrorCode.SIGNING_FAILED


# =========================================================================
# Authentication
# =========================================================================


class SignatureExpiredError(SteemError):
    kind = ErrorKind.AUTHENTICATION
    default_code = ErrorCode.SIGNATURE_EXPIRED


class BadSignatureError(SteemError):
    kind = ErrorKind.AUTHENTICATION
    default_code = ErrorCode.BAD_SIGNATURE


class MalformedEnvelopeError(SteemError):
    kind = ErrorKind.AUTHENTICATION
    default_code = ErrorCode.MALFORMED_ENVELOPE


# =========================================================================
# Transport
# =========================================================================


class UnsupportedTransportError(SteemError):
    kind = ErrorKind.TRANSPORT
    default_code = ErrorCode.UNSUPPORTED_TRANSPORT


# =========================================================================
# Network / node
# =========================================================================


class NetworkError(SteemError):
    kind = ErrorKind.NETWORK
    default_code = ErrorCode.NETWORK_ERROR

    @property
    def request_sent(self) -> bool:
        """False only when the request provably never left the client."""
        return bool(self.details.get("sent", True))


class RpcError(SteemError):
    """The node answered with a JSON-RPC ``error`` object."""

    kind = ErrorKind.NETWORK
    default_code = ErrorCode.RPC_ERROR

    @property
    def rpc_error(self) -> dict[str, Any]:
        error = self.details.get("rpc_error")
        return error if isinstance(error, dict) else {}


class BroadcastRejectedError(RpcError):
    default_code = ErrorCode.BROADCAST_REJECTED

    @property
    def category(self) -> BroadcastErrorCategory:
        return classify_node_error(self.rpc_error)


class PropertiesFetchFailedError(SteemError):
    kind = ErrorKind.NETWORK
    default_code = ErrorCode.PROPERTIES_FETCH_FAILED


class FetchFailedError(SteemError):
    kind = ErrorKind.NETWORK
    default_code = ErrorCode.FETCH_FAILED


# =========================================================================
# Node error classification
# =========================================================================

# Substrings of steemd assertion messages, checked in order.
_NODE_MESSAGE_MAP: list[tuple[str, BroadcastErrorCategory]] = [
    ("duplicate transaction", BroadcastErrorCategory.DUPLICATE),
    ("trx.expiration", BroadcastErrorCategory.EXPIRED),
    ("transaction expiration", BroadcastErrorCategory.EXPIRED),
    ("expired", BroadcastErrorCategory.EXPIRED),
    ("missing required", BroadcastErrorCategory.MISSING_AUTHORITY),
    ("missing authority", BroadcastErrorCategory.MISSING_AUTHORITY),
    ("missing posting authority", BroadcastErrorCategory.MISSING_AUTHORITY),
    ("missing active authority", BroadcastErrorCategory.MISSING_AUTHORITY),
    ("missing owner authority", BroadcastErrorCategory.MISSING_AUTHORITY),
    ("irrelevant signature", BroadcastErrorCategory.MISSING_AUTHORITY),
    ("tapos", BroadcastErrorCategory.UNKNOWN_REFERENCE_BLOCK),
    ("ref_block", BroadcastErrorCategory.UNKNOWN_REFERENCE_BLOCK),
]


def classify_node_error(error: dict[str, Any] | None) -> BroadcastErrorCategory:
    """Map a node JSON-RPC error object to a BroadcastErrorCategory.

    Args:
        error: The ``error`` member of a JSON-RPC response. May carry a
            ``message`` and a nested ``data.message``.

    Returns:
        BroadcastErrorCategory. OTHER for unknown or missing messages.
    """
    if not error:
        return BroadcastErrorCategory.OTHER

    texts = [str(error.get("message", ""))]
    data = error.get("data")
    if isinstance(data, dict):
        texts.append(str(data.get("message", "")))
    haystack = " ".join(texts).lower()

    for needle, category in _NODE_MESSAGE_MAP:
        if needle in haystack:
            return category
    return BroadcastErrorCategory.OTHER
