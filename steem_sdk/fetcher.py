"""
Concurrent block range retrieval.

fetch_range(start, stop) returns blocks [start, stop) in ascending order.

Fan-out: one task per block number. A semaphore caps how many requests
are in flight at once; a task holds it only while its request is
outstanding, never while sleeping between retries.

Fan-in: finished tasks put a WrapBlock on a queue. Once every task is
done the queue is drained into a dict keyed by block number and emitted
in ascending order, whatever order the responses arrived in.

Retry:
    BOUNDED     up to max_retry attempts per block, retry_delay apart.
    UNBOUNDED   retries forever. Only safe together with a deadline.

A node answering ``null`` for a block counts as a failed attempt.

Failure is all-or-nothing: the first block that exhausts its attempts
cancels every outstanding task and the whole call raises
FetchFailedError. Partial results are discarded. The same applies when
the deadline expires.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from steem_sdk.errors import FetchFailedError, InvalidRangeError, SteemError
from steem_sdk.transaction import ChainStateReader

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRY = 5
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_MAX_CONCURRENCY = 16


class RetryMode(StrEnum):
    """Per-block retry behaviour."""

    BOUNDED = "bounded"
    UNBOUNDED = "unbounded"


@dataclass(frozen=True)
class WrapBlock:
    """A block together with the number it was requested by."""

    block_num: int
    block: dict[str, Any] | None


class ConcurrentBlockFetcher:
    """Fetches block ranges with bounded concurrency and retry.

    Args:
        reader: Chain-state collaborator providing get_block().
        max_retry: Attempts per block in BOUNDED mode.
        retry_delay: Seconds between attempts.
        max_concurrency: Maximum requests in flight.
        mode: BOUNDED (default) or UNBOUNDED.
        deadline: Default overall time limit in seconds, or None.
    """

    def __init__(
        self,
        reader: ChainStateReader,
        *,
        max_retry: int = DEFAULT_MAX_RETRY,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        mode: RetryMode = RetryMode.BOUNDED,
        deadline: float | None = None,
    ) -> None:
        if max_retry < 1:
            raise ValueError(f"max_retry must be >= 1, got {max_retry}")
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self._reader = reader
        self._max_retry = max_retry
        self._retry_delay = retry_delay
        self._max_concurrency = max_concurrency
        self._mode = mode
        self._deadline = deadline

    async def fetch_range(
        self,
        start: int,
        stop: int,
        *,
        deadline: float | None = None,
    ) -> list[WrapBlock]:
        """Fetch blocks start..stop-1.

        Raises:
            InvalidRangeError: start >= stop. Nothing is fetched.
            FetchFailedError: A block could not be fetched, or the
                deadline expired.
        """
        if start >= stop:
            raise InvalidRangeError(
                f"invalid block range [{start}, {stop})",
                details={"start": start, "stop": stop},
            )
        if deadline is None:
            deadline = self._deadline

        semaphore = asyncio.Semaphore(self._max_concurrency)
        done: asyncio.Queue[WrapBlock] = asyncio.Queue()
        tasks = [
            asyncio.create_task(self._fetch_one(block_num, semaphore, done))
            for block_num in range(start, stop)
        ]

        try:
            async with asyncio.timeout(deadline):
                await asyncio.gather(*tasks)
        except TimeoutError as e:
            raise FetchFailedError(
                f"deadline of {deadline}s exceeded fetching blocks [{start}, {stop})",
                details={"start": start, "stop": stop, "deadline": deadline},
            ) from e
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        blocks: dict[int, WrapBlock] = {}
        while not done.empty():
            wrap = done.get_nowait()
            blocks[wrap.block_num] = wrap
        return [blocks[block_num] for block_num in range(start, stop)]

    async def _fetch_one(
        self,
        block_num: int,
        semaphore: asyncio.Semaphore,
        done: asyncio.Queue[WrapBlock],
    ) -> None:
        attempt = 0
        while True:
            attempt += 1
            cause: SteemError | None = None
            async with semaphore:
                try:
                    block = await self._reader.get_block(block_num)
                except SteemError as e:
                    cause = e
                    block = None

            if block is not None:
                await done.put(WrapBlock(block_num=block_num, block=block))
                return

            reason = cause.message if cause is not None else "block not found"
            if self._mode == RetryMode.BOUNDED and attempt >= self._max_retry:
                raise FetchFailedError(
                    f"failed to fetch block {block_num} after {attempt} attempts: {reason}",
                    details={"block_num": block_num, "attempts": attempt, "reason": reason},
                ) from cause

            logger.warning(
                "fetch block %d failed (attempt %d): %s; retrying in %.2fs",
                block_num,
                attempt,
                reason,
                self._retry_delay,
            )
            await asyncio.sleep(self._retry_delay)
