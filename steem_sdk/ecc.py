"""
secp256k1 compact recoverable signatures, graphene style.

A compact signature is 65 bytes:

    [recovery byte] [r: 32 bytes] [s: 32 bytes]

with ``recovery byte = recid + 4 (compressed) + 27 (compact)``. Nodes
recover the signer's public key from (digest, signature) instead of
being told which key signed.

Signing is RFC 6979 deterministic. The first attempt uses the digest
itself as the RFC 6979 input. When the result is not canonical in the
graphene sense, attempt ``n`` derives k from ``sha256(digest || n zero
bytes)`` while still signing the original digest. This is the scheme
steem-js uses, so signatures match it byte for byte.
"""

from __future__ import annotations

import hashlib

import ecdsa
from ecdsa import numbertheory, rfc6979
from ecdsa.ellipticcurve import Point, PointJacobi
from ecdsa.util import sigdecode_string, sigencode_string_canonize, string_to_number

CURVE = ecdsa.SECP256k1

COMPACT_SIGNATURE_SIZE = 65

# recid offsets
_COMPRESSED = 4
_COMPACT = 27


def is_canonical(signature: bytes) -> bool:
    """Graphene canonical check on a 64-byte ``r || s`` signature.

    Neither r nor s may have the high bit set, and neither may carry a
    redundant leading zero byte.
    """
    return not (
        signature[0] & 0x80
        or (signature[0] == 0 and not signature[1] & 0x80)
        or signature[32] & 0x80
        or (signature[32] == 0 and not signature[33] & 0x80)
    )


def recover_verifying_key(digest: bytes, signature: bytes, recid: int) -> ecdsa.VerifyingKey:
    """Recover the public key for a 64-byte signature and recovery id.

    Raises:
        ValueError: If no valid point exists for this recovery id.
    """
    curve = CURVE.curve
    order = CURVE.order
    p = curve.p()

    r, s = sigdecode_string(signature, order)
    x = r + (recid // 2) * order
    if x >= p:
        raise ValueError(f"recovery id {recid} yields x outside the field")

    alpha = (pow(x, 3, p) + curve.a() * x + curve.b()) % p
    try:
        beta = numbertheory.square_root_mod_prime(alpha, p)
    except numbertheory.Error as e:
        raise ValueError(f"recovery id {recid} yields no curve point") from e
    y = beta if (beta - recid) % 2 == 0 else p - beta

    big_r = PointJacobi.from_affine(Point(curve, x, y, order))
    e = string_to_number(digest)
    q = numbertheory.inverse_mod(r, order) * (s * big_r + (-e % order) * CURVE.generator)

    try:
        key = ecdsa.VerifyingKey.from_public_point(q, curve=CURVE)
        key.verify_digest(signature, digest, sigdecode=sigdecode_string)
    except (ecdsa.MalformedPointError, ecdsa.BadSignatureError) as e:
        raise ValueError(f"recovery id {recid} does not verify") from e
    return key


def _recovery_id(digest: bytes, signature: bytes, expected: bytes) -> int:
    for recid in range(4):
        try:
            key = recover_verifying_key(digest, signature, recid)
        except ValueError:
            continue
        if key.to_string() == expected:
            return recid
    raise ValueError("could not find recovery id for signature")


def _nonce_k(digest: bytes, signing_key: ecdsa.SigningKey, attempt: int) -> int:
    # attempt 0 is plain RFC 6979 over the digest
    data = digest if attempt == 0 else hashlib.sha256(digest + bytes(attempt)).digest()
    return rfc6979.generate_k(
        CURVE.order, signing_key.privkey.secret_multiplier, hashlib.sha256, data
    )


def sign_compact(digest: bytes, secret: bytes) -> bytes:
    """Sign a 32-byte digest, returning a 65-byte compact signature.

    Args:
        digest: SHA256 digest to sign.
        secret: 32-byte private scalar.

    Raises:
        ValueError: If the digest is not 32 bytes or the key is invalid.
    """
    if len(digest) != 32:
        raise ValueError(f"digest must be 32 bytes, got {len(digest)}")

    signing_key = ecdsa.SigningKey.from_string(secret, curve=CURVE)
    expected = signing_key.get_verifying_key().to_string()

    attempt = 0
    while True:
        signature = signing_key.sign_digest(
            digest,
            sigencode=sigencode_string_canonize,
            k=_nonce_k(digest, signing_key, attempt),
        )
        if is_canonical(signature):
            break
        attempt += 1

    recid = _recovery_id(digest, signature, expected)
    return bytes([recid + _COMPRESSED + _COMPACT]) + signature


def recover_public_key(digest: bytes, compact: bytes) -> bytes:
    """Recover the 33-byte compressed public key from a compact signature.

    Raises:
        ValueError: If the signature is malformed or does not recover.
    """
    if len(compact) != COMPACT_SIGNATURE_SIZE:
        raise ValueError(
            f"compact signature must be {COMPACT_SIGNATURE_SIZE} bytes, got {len(compact)}"
        )
    recid = compact[0] - _COMPACT
    if recid >= _COMPRESSED:
        recid -= _COMPRESSED
    if not 0 <= recid <= 3:
        raise ValueError(f"invalid recovery byte: {compact[0]}")
    key = recover_verifying_key(digest, compact[1:], recid)
    return key.to_string("compressed")


def verify_compact(digest: bytes, compact: bytes, public_key: bytes) -> bool:
    """Check that a compact signature over digest was made by public_key."""
    try:
        return recover_public_key(digest, compact) == public_key
    except ValueError:
        return False
