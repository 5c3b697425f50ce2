"""
SDK settings.

Sources, in increasing precedence: defaults, ``SdkConfig.from_env()``,
explicit keyword arguments. ``from_dict()`` checks its input against a
JSON schema first so a typo in a config file fails loudly instead of
silently falling back to a default.

Environment variables:
    STEEM_URL, STEEM_TIMEOUT, STEEM_MAX_RETRY, STEEM_RETRY_DELAY,
    STEEM_MAX_CONCURRENCY, STEEM_EXPIRATION, STEEM_REF_BLOCK_POLICY,
    STEEM_CHAIN_ID
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

import jsonschema

from steem_sdk.transaction import DEFAULT_EXPIRATION_SECONDS, STEEM_CHAIN_ID, RefBlockPolicy

DEFAULT_URL = "https://api.steemit.com"

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "url": {"type": "string", "minLength": 1},
        "timeout": {"type": "number", "exclusiveMinimum": 0},
        "max_retry": {"type": "integer", "minimum": 1},
        "retry_delay": {"type": "number", "minimum": 0},
        "max_concurrency": {"type": "integer", "minimum": 1},
        "expiration_seconds": {"type": "integer", "minimum": 1},
        "ref_block_policy": {"enum": [p.value for p in RefBlockPolicy]},
        "chain_id": {"type": "string", "pattern": "^[0-9a-fA-F]{64}$"},
    },
}

_ENV_VARS: dict[str, tuple[str, type]] = {
    "url": ("STEEM_URL", str),
    "timeout": ("STEEM_TIMEOUT", float),
    "max_retry": ("STEEM_MAX_RETRY", int),
    "retry_delay": ("STEEM_RETRY_DELAY", float),
    "max_concurrency": ("STEEM_MAX_CONCURRENCY", int),
    "expiration_seconds": ("STEEM_EXPIRATION", int),
    "ref_block_policy": ("STEEM_REF_BLOCK_POLICY", str),
    "chain_id": ("STEEM_CHAIN_ID", str),
}


@dataclass(frozen=True)
class SdkConfig:
    """Client settings.

    Attributes:
        url: Node JSON-RPC endpoint.
        timeout: HTTP timeout in seconds.
        max_retry: Attempts per block fetch, and per broadcast when
            the connection could not be made.
        retry_delay: Seconds between attempts.
        max_concurrency: Block fetch requests in flight.
        expiration_seconds: Transaction validity window.
        ref_block_policy: Reference block for TaPoS.
        chain_id: Hex chain id mixed into transaction digests.
    """

    url: str = DEFAULT_URL
    timeout: float = 30.0
    max_retry: int = 5
    retry_delay: float = 1.0
    max_concurrency: int = 16
    expiration_seconds: int = DEFAULT_EXPIRATION_SECONDS
    ref_block_policy: RefBlockPolicy = RefBlockPolicy.HEAD
    chain_id: str = STEEM_CHAIN_ID.hex()

    @property
    def chain_id_bytes(self) -> bytes:
        return bytes.fromhex(self.chain_id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SdkConfig:
        """Build from a mapping, validating it first.

        Raises:
            jsonschema.ValidationError: Unknown key or bad value.
        """
        values = dict(data)
        jsonschema.validate(instance=values, schema=CONFIG_SCHEMA)
        if "ref_block_policy" in values:
            values["ref_block_policy"] = RefBlockPolicy(values["ref_block_policy"])
        return cls(**values)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> SdkConfig:
        """Build from STEEM_* environment variables; keyword overrides win.

        Raises:
            ValueError: A variable does not parse as its type.
            jsonschema.ValidationError: A parsed value is out of range.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name, (var, cast) in _ENV_VARS.items():
            raw = env.get(var)
            if raw is None or raw == "":
                continue
            try:
                values[name] = cast(raw)
            except ValueError as e:
                raise ValueError(f"{var}={raw!r} is not a valid {cast.__name__}") from e
        values.update(overrides)
        return cls.from_dict(values)

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["ref_block_policy"] = self.ref_block_policy.value
        return result
