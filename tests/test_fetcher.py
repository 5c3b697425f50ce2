"""
Tests for ConcurrentBlockFetcher.

Uses a FakeReader whose per-block latency and failures are scripted;
no network.

Test plan:
- ordering: results ascending even when responses arrive reversed
- range: start >= stop fails before any fetch
- retry: transient failure recovers, null block counts as failure,
  exhausted attempts fail the whole range, retries logged at WARNING
- concurrency: in-flight requests never exceed max_concurrency
- deadline: slow range and unbounded retry both end in FetchFailedError
"""

import asyncio
import logging
from typing import Any

import pytest

from steem_sdk.errors import FetchFailedError, InvalidRangeError, NetworkError
from steem_sdk.fetcher import ConcurrentBlockFetcher, RetryMode, WrapBlock
from steem_sdk.transaction import ChainProperties

# ---------------------------------------------------------------------------
# Fake reader
# ---------------------------------------------------------------------------


class FakeReader:
    """Scripted get_block: per-block delay, failure counts, null blocks."""

    def __init__(
        self,
        *,
        delay: dict[int, float] | None = None,
        fail_times: dict[int, int] | None = None,
        null_blocks: set[int] | None = None,
    ) -> None:
        self._delay = delay or {}
        self._fail_times = dict(fail_times or {})
        self._null_blocks = null_blocks or set()
        self.calls: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_dynamic_global_properties(self) -> ChainProperties:
        raise AssertionError("not used")

    async def get_block(self, block_num: int) -> dict[str, Any] | None:
        self.calls.append(block_num)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self._delay.get(block_num, 0))
            remaining = self._fail_times.get(block_num, 0)
            if remaining:
                self._fail_times[block_num] = remaining - 1
                raise NetworkError(f"block {block_num} unavailable")
            if block_num in self._null_blocks:
                return None
            return {"block_id": f"{block_num:08x}"}
        finally:
            self.in_flight -= 1


def _fetcher(reader: FakeReader, **kwargs: Any) -> ConcurrentBlockFetcher:
    options: dict[str, Any] = {"retry_delay": 0, "max_retry": 3}
    options.update(kwargs)
    return ConcurrentBlockFetcher(reader, **options)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestOrdering:
    @pytest.mark.asyncio
    async def test_ascending_despite_reversed_arrival(self) -> None:
        delay = {n: (20 - n) * 0.005 for n in range(10, 20)}
        blocks = await _fetcher(FakeReader(delay=delay)).fetch_range(10, 20)
        assert [b.block_num for b in blocks] == list(range(10, 20))
        assert blocks[0] == WrapBlock(block_num=10, block={"block_id": "0000000a"})

    @pytest.mark.asyncio
    async def test_single_block(self) -> None:
        blocks = await _fetcher(FakeReader()).fetch_range(7, 8)
        assert len(blocks) == 1
        assert blocks[0].block_num == 7


class TestRange:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("start, stop", [(5, 5), (6, 5)])
    async def test_invalid_range_fetches_nothing(self, start: int, stop: int) -> None:
        reader = FakeReader()
        with pytest.raises(InvalidRangeError):
            await _fetcher(reader).fetch_range(start, stop)
        assert reader.calls == []

    def test_bad_settings(self) -> None:
        with pytest.raises(ValueError):
            ConcurrentBlockFetcher(FakeReader(), max_retry=0)
        with pytest.raises(ValueError):
            ConcurrentBlockFetcher(FakeReader(), max_concurrency=0)


class TestRetry:
    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self) -> None:
        reader = FakeReader(fail_times={3: 2})
        blocks = await _fetcher(reader).fetch_range(1, 5)
        assert len(blocks) == 4
        assert reader.calls.count(3) == 3

    @pytest.mark.asyncio
    async def test_exhausted_fails_range(self) -> None:
        reader = FakeReader(fail_times={3: 100})
        with pytest.raises(FetchFailedError) as exc:
            await _fetcher(reader, max_retry=2).fetch_range(1, 5)
        assert exc.value.details["block_num"] == 3
        assert exc.value.details["attempts"] == 2
        assert reader.calls.count(3) == 2

    @pytest.mark.asyncio
    async def test_null_block_is_failure(self) -> None:
        reader = FakeReader(null_blocks={2})
        with pytest.raises(FetchFailedError) as exc:
            await _fetcher(reader).fetch_range(1, 4)
        assert exc.value.details["block_num"] == 2
        assert reader.calls.count(2) == 3

    @pytest.mark.asyncio
    async def test_retry_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        reader = FakeReader(fail_times={1: 1})
        with caplog.at_level(logging.WARNING, logger="steem_sdk.fetcher"):
            await _fetcher(reader).fetch_range(1, 2)
        assert any("fetch block 1 failed" in r.getMessage() for r in caplog.records)


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_cap(self) -> None:
        reader = FakeReader(delay={n: 0.01 for n in range(20)})
        await _fetcher(reader, max_concurrency=3).fetch_range(0, 20)
        assert reader.max_in_flight <= 3
        assert sorted(reader.calls) == list(range(20))


class TestDeadline:
    @pytest.mark.asyncio
    async def test_slow_range(self) -> None:
        reader = FakeReader(delay={1: 5.0})
        with pytest.raises(FetchFailedError) as exc:
            await _fetcher(reader).fetch_range(0, 3, deadline=0.05)
        assert exc.value.details["deadline"] == 0.05

    @pytest.mark.asyncio
    async def test_unbounded_needs_deadline(self) -> None:
        reader = FakeReader(fail_times={0: 10**9})
        fetcher = _fetcher(reader, mode=RetryMode.UNBOUNDED, retry_delay=0.001, deadline=0.05)
        with pytest.raises(FetchFailedError):
            await fetcher.fetch_range(0, 1)
        assert reader.calls.count(0) > 3
