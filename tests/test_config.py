"""
Tests for SdkConfig.

Test plan:
- defaults match the documented values
- from_env: reads STEEM_* variables, ignores empty ones, overrides win,
  unparsable numbers rejected
- from_dict: schema rejects unknown keys and out-of-range values,
  policy string becomes RefBlockPolicy
- to_dict round trip
"""

import jsonschema
import pytest

from steem_sdk.config import DEFAULT_URL, SdkConfig
from steem_sdk.transaction import STEEM_CHAIN_ID, RefBlockPolicy


class TestDefaults:
    def test_values(self) -> None:
        config = SdkConfig()
        assert config.url == DEFAULT_URL == "https://api.steemit.com"
        assert config.timeout == 30.0
        assert config.max_retry == 5
        assert config.retry_delay == 1.0
        assert config.max_concurrency == 16
        assert config.expiration_seconds == 600
        assert config.ref_block_policy is RefBlockPolicy.HEAD
        assert config.chain_id_bytes == STEEM_CHAIN_ID


class TestFromEnv:
    def test_reads_variables(self) -> None:
        env = {
            "STEEM_URL": "http://localhost:8090",
            "STEEM_TIMEOUT": "5",
            "STEEM_MAX_RETRY": "2",
            "STEEM_RETRY_DELAY": "0.5",
            "STEEM_MAX_CONCURRENCY": "4",
            "STEEM_EXPIRATION": "120",
            "STEEM_REF_BLOCK_POLICY": "last_irreversible",
        }
        config = SdkConfig.from_env(env)
        assert config.url == "http://localhost:8090"
        assert config.timeout == 5.0
        assert config.max_retry == 2
        assert config.retry_delay == 0.5
        assert config.max_concurrency == 4
        assert config.expiration_seconds == 120
        assert config.ref_block_policy is RefBlockPolicy.LAST_IRREVERSIBLE

    def test_empty_ignored(self) -> None:
        assert SdkConfig.from_env({"STEEM_URL": ""}) == SdkConfig()

    def test_overrides_win(self) -> None:
        config = SdkConfig.from_env({"STEEM_MAX_RETRY": "2"}, max_retry=9)
        assert config.max_retry == 9

    def test_bad_number(self) -> None:
        with pytest.raises(ValueError, match="STEEM_MAX_RETRY"):
            SdkConfig.from_env({"STEEM_MAX_RETRY": "many"})

    def test_out_of_range(self) -> None:
        with pytest.raises(jsonschema.ValidationError):
            SdkConfig.from_env({"STEEM_MAX_CONCURRENCY": "0"})


class TestFromDict:
    def test_unknown_key(self) -> None:
        with pytest.raises(jsonschema.ValidationError):
            SdkConfig.from_dict({"urll": "http://x"})

    def test_bad_policy(self) -> None:
        with pytest.raises(jsonschema.ValidationError):
            SdkConfig.from_dict({"ref_block_policy": "tail"})

    def test_bad_chain_id(self) -> None:
        with pytest.raises(jsonschema.ValidationError):
            SdkConfig.from_dict({"chain_id": "00"})

    def test_round_trip(self) -> None:
        config = SdkConfig(url="http://node", ref_block_policy=RefBlockPolicy.LAST_IRREVERSIBLE)
        assert SdkConfig.from_dict(config.to_dict()) == config
