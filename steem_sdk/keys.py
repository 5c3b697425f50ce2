"""
Key material: WIF private keys, STM public keys, and the session KeyStore.

Formats:
    WIF:        base58check(0x80 || secret32), double-sha256 checksum.
                A trailing 0x01 compression flag is accepted on decode.
    Public key: "STM" + base58(compressed33 || ripemd160(compressed33)[:4]).

The KeyStore is a lookup table of at most one private key per role. It
never touches the network and never persists anything. Access is
serialized by a lock so a session can be shared between threads.
"""

from __future__ import annotations

import hashlib
import threading
from enum import StrEnum

import base58
import ecdsa

from steem_sdk import ecc
from steem_sdk.errors import InvalidKeyFormatError, InvalidRoleError, KeyNotFoundError

# Network address prefix for public keys.
ADDRESS_PREFIX = "STM"

# WIF version byte for private keys.
WIF_VERSION = 0x80


class KeyRole(StrEnum):
    """Authority roles a Steem account has keys for."""

    OWNER = "owner"
    ACTIVE = "active"
    POSTING = "posting"
    MEMO = "memo"


def _ripemd160(data: bytes) -> bytes:
    r160 = hashlib.new("ripemd160")
    r160.update(data)
    return r160.digest()


# =========================================================================
# Public key
# =========================================================================


class PublicKey:
    """A compressed secp256k1 public key."""

    def __init__(self, compressed: bytes, prefix: str = ADDRESS_PREFIX) -> None:
        if len(compressed) != 33 or compressed[0] not in (2, 3):
            raise InvalidKeyFormatError(
                "public key must be 33 bytes in compressed form",
                details={"length": len(compressed)},
            )
        self._compressed = compressed
        self._prefix = prefix

    @classmethod
    def from_string(cls, value: str, prefix: str = ADDRESS_PREFIX) -> PublicKey:
        """Parse an ``STM...`` public key string.

        Raises:
            InvalidKeyFormatError: Wrong prefix, bad base58 or bad checksum.
        """
        if not value.startswith(prefix):
            raise InvalidKeyFormatError(
                f"public key must start with {prefix!r}",
                details={"prefix": value[: len(prefix)]},
            )
        try:
            raw = base58.b58decode(value[len(prefix):])
        except ValueError as e:
            raise InvalidKeyFormatError("public key is not valid base58") from e
        key, checksum = raw[:-4], raw[-4:]
        if _ripemd160(key)[:4] != checksum:
            raise InvalidKeyFormatError("public key checksum mismatch")
        return cls(key, prefix=prefix)

    def __bytes__(self) -> bytes:
        return self._compressed

    def __str__(self) -> str:
        checksum = _ripemd160(self._compressed)[:4]
        return self._prefix + base58.b58encode(self._compressed + checksum).decode("ascii")

    def __repr__(self) -> str:
        return f"PublicKey({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PublicKey):
            return NotImplemented
        return self._compressed == other._compressed

    def __hash__(self) -> int:
        return hash(self._compressed)

    def verify_digest(self, digest: bytes, signature: bytes) -> bool:
        """Check a 65-byte compact signature against this key."""
        return ecc.verify_compact(digest, signature, self._compressed)


# =========================================================================
# Private key
# =========================================================================


class PrivateKey:
    """A secp256k1 private key.

    ``repr()`` never shows key material.
    """

    def __init__(self, secret: bytes) -> None:
        if len(secret) != 32:
            raise InvalidKeyFormatError(
                "private key must be 32 bytes",
                details={"length": len(secret)},
            )
        try:
            signing_key = ecdsa.SigningKey.from_string(secret, curve=ecc.CURVE)
        except ecdsa.MalformedPointError as e:
            raise InvalidKeyFormatError("private key is out of range for secp256k1") from e
        self._secret = secret
        self._public = PublicKey(signing_key.get_verifying_key().to_string("compressed"))

    @classmethod
    def from_wif(cls, wif: str) -> PrivateKey:
        """Decode a WIF string.

        Raises:
            InvalidKeyFormatError: Bad base58, checksum, version or length.
        """
        try:
            payload = base58.b58decode_check(wif)
        except ValueError as e:
            raise InvalidKeyFormatError("private key is not valid WIF") from e
        if len(payload) == 34 and payload[-1] == 0x01:
            payload = payload[:-1]
        if len(payload) != 33 or payload[0] != WIF_VERSION:
            raise InvalidKeyFormatError(
                "unexpected WIF version or length",
                details={"length": len(payload)},
            )
        return cls(payload[1:])

    def to_wif(self) -> str:
        return base58.b58encode_check(bytes([WIF_VERSION]) + self._secret).decode("ascii")

    @property
    def public_key(self) -> PublicKey:
        return self._public

    def sign_digest(self, digest: bytes) -> bytes:
        """Sign a 32-byte digest, returning a 65-byte compact signature."""
        return ecc.sign_compact(digest, self._secret)

    def __bytes__(self) -> bytes:
        return self._secret

    def __repr__(self) -> str:
        return f"PrivateKey(public_key={str(self._public)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PrivateKey):
            return NotImplemented
        return self._secret == other._secret

    def __hash__(self) -> int:
        return hash(self._secret)


def coerce_private_key(key: PrivateKey | str) -> PrivateKey:
    """Accept a PrivateKey or a WIF string."""
    if isinstance(key, PrivateKey):
        return key
    return PrivateKey.from_wif(key)


def recover_public_key(digest: bytes, signature: bytes | str) -> PublicKey:
    """Recover the PublicKey behind a compact signature (bytes or hex).

    Raises:
        ValueError: If the signature does not recover.
    """
    if isinstance(signature, str):
        signature = bytes.fromhex(signature)
    return PublicKey(ecc.recover_public_key(digest, signature))


# =========================================================================
# KeyStore
# =========================================================================


def parse_role(role: KeyRole | str) -> KeyRole:
    """Resolve a role name to a KeyRole.

    Raises:
        InvalidRoleError: If the role is not one of owner/active/posting/memo.
    """
    try:
        return KeyRole(role)
    except ValueError as e:
        raise InvalidRoleError(
            f"unexpected key role: {role!r}",
            details={"role": str(role), "allowed": [r.value for r in KeyRole]},
        ) from e


class KeyStore:
    """In-memory, role-tagged private keys for one session."""

    def __init__(self) -> None:
        self._keys: dict[KeyRole, PrivateKey] = {}
        self._lock = threading.Lock()

    def import_wif(self, role: KeyRole | str, wif: str) -> None:
        """Import a WIF key under a role, replacing any previous key.

        The role is checked before the WIF is parsed.
        """
        key_role = parse_role(role)
        key = PrivateKey.from_wif(wif)
        with self._lock:
            self._keys[key_role] = key

    def import_key(self, role: KeyRole | str, key: PrivateKey) -> None:
        key_role = parse_role(role)
        with self._lock:
            self._keys[key_role] = key

    def get(self, role: KeyRole | str) -> PrivateKey:
        """Look up the key for a role.

        Raises:
            InvalidRoleError: Unknown role.
            KeyNotFoundError: No key imported for this role.
        """
        key_role = parse_role(role)
        with self._lock:
            key = self._keys.get(key_role)
        if key is None:
            raise KeyNotFoundError(
                f"no {key_role.value} key imported",
                details={"role": key_role.value},
            )
        return key

    def has(self, role: KeyRole | str) -> bool:
        key_role = parse_role(role)
        with self._lock:
            return key_role in self._keys

    def roles(self) -> list[KeyRole]:
        with self._lock:
            return [role for role in KeyRole if role in self._keys]

    def remove(self, role: KeyRole | str) -> None:
        key_role = parse_role(role)
        with self._lock:
            self._keys.pop(key_role, None)

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
