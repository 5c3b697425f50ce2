"""
Compact JSON serialization for signed-call parameters.

Same output as ``JSON.stringify`` with no indent argument, so that the
bytes match what the JavaScript rpc-auth implementation signs:
    - No whitespace.
    - Key insertion order preserved (NOT sorted).
    - UTF-8, non-ASCII characters emitted as-is.
    - Floats formatted like ECMAScript ``Number::toString`` (``1.0`` is ``1``,
      ``1e-7`` is ``1e-7``, ``0.00001`` stays positional).
    - Lone surrogates escaped as ``\\udXXX``.
    - NaN/Infinity rejected.
"""

import base64
import json
import math
import re
from decimal import Decimal
from typing import Any

_SURROGATE = re.compile("[\ud800-\udfff]")


def _js_number(value: float) -> str:
    """Format a finite float the way ECMAScript Number::toString does."""
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"Out of range float values are not JSON compliant: {value!r}")
    if value == 0:
        return "0"

    # repr gives the shortest round-trip digits, as ECMAScript requires
    parts = Decimal(repr(abs(value))).normalize().as_tuple()
    digits = "".join(str(d) for d in parts.digits)
    k = len(digits)
    n = k + int(parts.exponent)

    if k <= n <= 21:
        body = digits + "0" * (n - k)
    elif 0 < n <= 21:
        body = digits[:n] + "." + digits[n:]
    elif -6 < n <= 0:
        body = "0." + "0" * -n + digits
    else:
        e = n - 1
        mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
        body = f"{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"
    return ("-" if value < 0 else "") + body


def _key(key: Any) -> str:
    if isinstance(key, str):
        return json.dumps(key, ensure_ascii=False)
    if key is None or isinstance(key, (int, float)):
        return json.dumps(_encode(key), ensure_ascii=False)
    raise TypeError(f"keys must be str, int, float, bool or None, not {type(key).__name__}")


def _encode(obj: Any) -> str:
    if isinstance(obj, float):
        return _js_number(obj)
    if isinstance(obj, dict):
        return "{" + ",".join(f"{_key(k)}:{_encode(v)}" for k, v in obj.items()) + "}"
    if isinstance(obj, (list, tuple)):
        return "[" + ",".join(_encode(item) for item in obj) + "]"
    return json.dumps(obj, ensure_ascii=False, allow_nan=False)


def compact_json(obj: Any) -> str:
    """Serialize object to compact JSON string.

    Raises:
        ValueError: On NaN or infinite floats.
        TypeError: On values JSON cannot represent.
    """
    return _SURROGATE.sub(lambda m: f"\\u{ord(m.group()):04x}", _encode(obj))


def compact_json_bytes(obj: Any) -> bytes:
    """Serialize to compact JSON as UTF-8 bytes."""
    return compact_json(obj).encode("utf-8")


def encode_params(params: list[Any]) -> str:
    """Base64 of the compact JSON of an RPC params list."""
    return base64.b64encode(compact_json_bytes(params)).decode("ascii")


def decode_params(encoded: str) -> Any:
    """Inverse of encode_params.

    Raises:
        ValueError: If the input is not valid base64 or not valid JSON.
    """
    raw = base64.b64decode(encoded, validate=True)
    return json.loads(raw.decode("utf-8"))
