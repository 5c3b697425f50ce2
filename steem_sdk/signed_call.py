"""
Signed JSON-RPC calls: authenticated requests without sending keys.

A signed call proves to an RPC node that the caller controls an
account's key. The request carries a signature over a canonical message
instead of the key itself. Wire-compatible with the JavaScript
``@steemit/rpc-auth`` implementation.

Canonical message:
    params_b64 = base64(compact_json(params))
    first      = sha256(timestamp + account + method + params_b64)
    message    = sha256(DOMAIN_SEPARATOR || first || nonce)

    DOMAIN_SEPARATOR = sha256("steem_jsonrpc_auth"). Transaction digests
    are prefixed with the chain id instead, so a signature can never be
    replayed between the two protocols.

Wire envelope (one trailing param appended to the original params):

    {"__signed": {
        "account":    "alice",
        "nonce":      "<16 hex chars>",
        "params":     "<base64 of compact JSON params>",
        "signatures": ["<130 hex chars>", ...],
        "timestamp":  "2024-01-02T03:04:05.000Z"
    }}

Validation:
    1. Shape check (jsonschema) → MalformedEnvelopeError.
    2. now - timestamp > 60s → SignatureExpiredError. Checked before any
       crypto; the window is fixed for interoperability.
    3. Recompute the message from the envelope's own fields.
    4. Injected verifier decides whether the signatures belong to the
       account → BadSignatureError otherwise.
    5. Return the decoded params. There is no partial success.
"""

from __future__ import annotations

import binascii
import hashlib
import inspect
import secrets
import time
from collections.abc import Awaitable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable, Protocol, runtime_checkable

import jsonschema

from steem_sdk.canonical_json import decode_params, encode_params
from steem_sdk.errors import (
    BadSignatureError,
    MalformedEnvelopeError,
    NoKeysProvidedError,
    SignatureExpiredError,
    SigningError,
)
from steem_sdk.keys import PrivateKey, coerce_private_key, recover_public_key

# Domain separator for signed-call messages.
DOMAIN_SEPARATOR = hashlib.sha256(b"steem_jsonrpc_auth").digest()

# Signatures older than this are rejected.
SIGNATURE_VALIDITY_SECONDS = 60

# Random nonce length in bytes.
NONCE_SIZE = 8

# Key of the trailing envelope param.
SIGNED_PARAM_KEY = "__signed"

_ISO_PATTERN = r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{1,6})?(Z|[+-]00:00)?$"

_REQUEST_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["jsonrpc", "method", "params"],
    "properties": {
        "jsonrpc": {"const": "2.0"},
        "method": {"type": "string", "minLength": 1},
        "params": {"type": ["array", "object"]},
    },
}

_SIGNED_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": [SIGNED_PARAM_KEY],
    "properties": {
        SIGNED_PARAM_KEY: {
            "type": "object",
            "required": ["account", "nonce", "params", "signatures", "timestamp"],
            "properties": {
                "account": {"type": "string", "minLength": 1},
                "nonce": {"type": "string", "pattern": "^[0-9a-fA-F]{16}$"},
                "params": {"type": "string"},
                "signatures": {
                    "type": "array",
                    "minItems": 1,
                    "items": {"type": "string", "pattern": "^[0-9a-fA-F]{130}$"},
                },
                "timestamp": {"type": "string", "pattern": _ISO_PATTERN},
                "pubkeys": {"type": "array", "items": {"type": "string"}},
            },
        },
    },
}


# =========================================================================
# Timestamps
# =========================================================================


def format_timestamp(epoch_seconds: int) -> str:
    """``Date.toISOString()`` form: millisecond precision, ``Z`` suffix."""
    moment = datetime.fromtimestamp(epoch_seconds, UTC)
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + ".000Z"


def parse_timestamp(value: str) -> int:
    """ISO-8601 string to integer epoch seconds. Naive values are UTC.

    Raises:
        ValueError: If the string is not a valid timestamp.
    """
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return int(moment.timestamp())


# =========================================================================
# Canonical message
# =========================================================================


def build_message(
    method: str,
    params_b64: str,
    account: str,
    timestamp: str,
    nonce: bytes,
) -> bytes:
    """The 32 bytes both sides sign and verify over."""
    first = hashlib.sha256((timestamp + account + method + params_b64).encode("utf-8")).digest()
    return hashlib.sha256(DOMAIN_SEPARATOR + first + nonce).digest()


# =========================================================================
# Envelope
# =========================================================================


@dataclass(frozen=True)
class SignedPayload:
    """The ``__signed`` object.

    Attributes:
        account: Account the caller claims to control.
        timestamp: Epoch seconds at signing time.
        nonce: 8 random bytes.
        params: base64 of the compact JSON params.
        signatures: Hex compact signatures, in key order.
        pubkeys: Optional public keys, in key order.
    """

    account: str
    timestamp: int
    nonce: bytes
    params: str
    signatures: tuple[str, ...]
    pubkeys: tuple[str, ...] | None = None

    @property
    def timestamp_iso(self) -> str:
        return format_timestamp(self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "account": self.account,
            "nonce": self.nonce.hex(),
            "params": self.params,
            "signatures": list(self.signatures),
            "timestamp": self.timestamp_iso,
        }
        if self.pubkeys is not None:
            result["pubkeys"] = list(self.pubkeys)
        return result


@dataclass(frozen=True)
class SignedEnvelope:
    """A method call plus its signed payload."""

    method: str
    params: tuple[Any, ...]
    signed: SignedPayload

    def message(self) -> bytes:
        return build_message(
            self.method,
            self.signed.params,
            self.signed.account,
            self.signed.timestamp_iso,
            self.signed.nonce,
        )

    def to_params(self) -> list[Any]:
        """Original params with the ``__signed`` object appended."""
        return [*self.params, {SIGNED_PARAM_KEY: self.signed.to_dict()}]

    def to_request(self, request_id: int) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "method": self.method,
            "params": self.to_params(),
            "id": request_id,
        }


def sign_request(
    method: str,
    params: Sequence[Any],
    account: str,
    private_keys: Iterable[PrivateKey | str],
    *,
    now_fn: Callable[[], float] | None = None,
    nonce: bytes | None = None,
    include_pubkeys: bool = False,
) -> SignedEnvelope:
    """Sign a JSON-RPC call on behalf of account.

    Args:
        method: Full RPC method name (e.g. "condenser_api.get_accounts").
        params: RPC params, in order.
        account: Account whose keys sign.
        private_keys: Keys (or WIF strings), signed in this order.
        now_fn: Clock returning epoch seconds. Inject for tests.
        nonce: Fixed 8-byte nonce. Inject for tests only.
        include_pubkeys: Also send the signing public keys.

    Raises:
        NoKeysProvidedError: If private_keys is empty.
        InvalidKeyFormatError: If a WIF string is malformed.
        SigningError: If the signing primitive fails.
    """
    keys = [coerce_private_key(key) for key in private_keys]
    if not keys:
        raise NoKeysProvidedError(
            "no private keys provided for signed call",
            details={"method": method, "account": account},
        )
    if nonce is None:
        nonce = secrets.token_bytes(NONCE_SIZE)
    if len(nonce) != NONCE_SIZE:
        raise ValueError(f"nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")

    timestamp = int((now_fn or time.time)())
    params_b64 = encode_params(list(params))
    message = build_message(method, params_b64, account, format_timestamp(timestamp), nonce)

    signatures: list[str] = []
    for key in keys:
        try:
            signatures.append(key.sign_digest(message).hex())
        except ValueError as e:
            raise SigningError(
                f"failed to sign request for method {method}",
                details={"method": method, "account": account},
            ) from e

    pubkeys = tuple(str(key.public_key) for key in keys) if include_pubkeys else None
    return SignedEnvelope(
        method=method,
        params=tuple(params),
        signed=SignedPayload(
            account=account,
            timestamp=timestamp,
            nonce=nonce,
            params=params_b64,
            signatures=tuple(signatures),
            pubkeys=pubkeys,
        ),
    )


# =========================================================================
# Validation
# =========================================================================


@runtime_checkable
class SignatureVerifier(Protocol):
    """Decides whether signatures over message belong to account.

    May be sync or async. Authority lookup usually needs chain state, so
    this is injected rather than built in.
    """

    def __call__(
        self, message: bytes, signatures: list[str], account: str
    ) -> bool | Awaitable[bool]:
        ...


def _malformed(reason: str, **details: Any) -> MalformedEnvelopeError:
    return MalformedEnvelopeError(f"malformed signed request: {reason}", details=details)


def _split_params(params: Any) -> tuple[list[Any], dict[str, Any]]:
    """Separate leading plain params from the trailing __signed object.

    Accepts the appended-list form and the bare-object form
    (``params: {"__signed": ...}``) the JavaScript client sends.
    """
    if isinstance(params, dict):
        return [], params
    if not params:
        raise _malformed("params is empty")
    last = params[-1]
    if not isinstance(last, dict):
        raise _malformed("last param is not a signed object")
    return list(params[:-1]), last


async def validate_request(
    request: dict[str, Any],
    verify: SignatureVerifier,
    *,
    now_fn: Callable[[], float] | None = None,
) -> list[Any]:
    """Authenticate a signed JSON-RPC request and return its params.

    Raises:
        MalformedEnvelopeError: Bad shape, encoding or mismatched params.
        SignatureExpiredError: Signed more than 60 seconds ago.
        BadSignatureError: The verifier rejected the signatures.
    """
    try:
        jsonschema.validate(instance=request, schema=_REQUEST_SCHEMA)
    except jsonschema.ValidationError as e:
        raise _malformed(e.message) from e

    method: str = request["method"]
    plain_params, signed_param = _split_params(request["params"])

    try:
        jsonschema.validate(instance=signed_param, schema=_SIGNED_SCHEMA)
    except jsonschema.ValidationError as e:
        raise _malformed(e.message, method=method) from e

    signed = signed_param[SIGNED_PARAM_KEY]
    account: str = signed["account"]

    try:
        params = decode_params(signed["params"])
        timestamp = parse_timestamp(signed["timestamp"])
        nonce = bytes.fromhex(signed["nonce"])
    except (ValueError, binascii.Error) as e:
        raise _malformed(str(e), method=method, account=account) from e

    if not isinstance(params, list):
        raise _malformed("signed params are not a list", method=method, account=account)
    if plain_params and plain_params != params:
        raise _malformed(
            "plain params do not match signed params", method=method, account=account
        )

    now = (now_fn or time.time)()
    if now - timestamp > SIGNATURE_VALIDITY_SECONDS:
        raise SignatureExpiredError(
            "signature expired",
            details={
                "method": method,
                "account": account,
                "timestamp": signed["timestamp"],
                "age_seconds": int(now - timestamp),
            },
        )

    message = build_message(method, signed["params"], account, signed["timestamp"], nonce)

    try:
        outcome = verify(message, list(signed["signatures"]), account)
        if inspect.isawaitable(outcome):
            outcome = await outcome
    except BadSignatureError as e:
        raise BadSignatureError(
            e.message, details={**e.details, "method": method, "account": account}
        ) from e

    if not outcome:
        raise BadSignatureError(
            "signature verification failed",
            details={"method": method, "account": account},
        )
    return params


class AuthorityVerifier:
    """Verifier that recovers public keys and checks account authority.

    Args:
        authority_lookup: Callable (sync or async) returning the public key
            strings that may sign for an account.
    """

    def __init__(
        self,
        authority_lookup: Callable[[str], Iterable[str] | Awaitable[Iterable[str]]],
    ) -> None:
        self._lookup = authority_lookup

    async def __call__(self, message: bytes, signatures: list[str], account: str) -> bool:
        allowed = self._lookup(account)
        if inspect.isawaitable(allowed):
            allowed = await allowed
        allowed_keys = set(allowed)
        if not allowed_keys:
            return False

        for signature in signatures:
            try:
                signer = recover_public_key(message, signature)
            except ValueError as e:
                raise BadSignatureError(
                    "signature does not recover a public key",
                    details={"account": account},
                ) from e
            if str(signer) not in allowed_keys:
                return False
        return True
