"""
Async building blocks for talking to the registry.

All helpers assume a single event loop. Shared counters are only touched in
plain synchronous statements, so no locks are needed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence, TypeVar

from .errors import CircuitOpenError


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class RateLimiter:
    """Token bucket limiting how many operations may start per second."""

    def __init__(
        self,
        tokens_per_second: float,
        max_burst: Optional[float] = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if tokens_per_second <= 0:
            raise ValueError("tokens_per_second must be positive")
        self.tokens_per_second = float(tokens_per_second)
        self.max_burst = float(max_burst) if max_burst is not None else self.tokens_per_second * 2
        self._clock = clock
        self._sleep = sleep
        self._tokens = self.max_burst
        self._last_refill = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(self.max_burst, self._tokens + elapsed * self.tokens_per_second)
            self._last_refill = now

    async def acquire(self) -> None:
        while True:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return
            wait = (1 - self._tokens) / self.tokens_per_second
            logger.debug("Rate limit reached, waiting %.3fs", wait)
            await self._sleep(wait)

    def try_acquire(self) -> bool:
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    def available_tokens(self) -> float:
        self._refill()
        return self._tokens


async def parallel_limit(
    items: Iterable[T],
    fn: Callable[[T, int], Awaitable[R]],
    limit: int = 5,
    rate_limiter: Optional[RateLimiter] = None,
) -> List[R]:
    """Run ``fn(item, index)`` over ``items`` with at most ``limit`` in flight.

    Args:
        items: Work items.
        fn: Coroutine function receiving the item and its index.
        limit: Maximum number of concurrent workers.
        rate_limiter: Optional limiter acquired before every call.

    Returns:
        Results in input order, ``results[i]`` coming from ``items[i]``.
    """
    work: Sequence[T] = list(items)
    if not work:
        return []
    if limit < 1:
        raise ValueError("limit must be at least 1")

    results: List[Any] = [None] * len(work)
    next_index = 0

    async def worker() -> None:
        nonlocal next_index
        while next_index < len(work):
            index = next_index
            next_index += 1
            if rate_limiter is not None:
                await rate_limiter.acquire()
            results[index] = await fn(work[index], index)

    await asyncio.gather(*(worker() for _ in range(min(limit, len(work)))))
    return results


async def parallel_limit_with_rate_limit(
    items: Iterable[T],
    fn: Callable[[T, int], Awaitable[R]],
    limit: int,
    rate_limiter: RateLimiter,
) -> List[R]:
    return await parallel_limit(items, fn, limit=limit, rate_limiter=rate_limiter)


async def retry(
    fn: Callable[[], Awaitable[R]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    sleep: Sleep = asyncio.sleep,
) -> R:
    """Call ``fn`` until it succeeds, backing off exponentially between attempts.

    The error from the final attempt is re-raised unchanged.
    """
    attempt = 1
    while True:
        try:
            return await fn()
        except Exception as exc:
            if attempt >= max_attempts or (should_retry is not None and not should_retry(exc)):
                raise
            delay = min(base_delay * backoff_factor ** (attempt - 1), max_delay)
            logger.debug("Attempt %s/%s failed (%s), retrying in %.2fs", attempt, max_attempts, exc, delay)
            await sleep(delay)
            attempt += 1


class CircuitBreaker:
    """Stop calling a failing operation until it has had time to recover."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"

    def __init__(
        self,
        operation: Callable[..., Awaitable[R]],
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Clock = time.monotonic,
        is_failure: Optional[Callable[[BaseException], bool]] = None,
    ) -> None:
        self.operation = operation
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._is_failure = is_failure
        self._state = self.CLOSED
        self._failure_count = 0
        self._last_failure = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def execute(self, *args, **kwargs):
        if self._state == self.OPEN:
            if self._clock() - self._last_failure < self.recovery_timeout:
                raise CircuitOpenError()
            logger.info("Circuit breaker half-open, allowing a trial call")
            self._state = self.HALF_OPEN
            self._trial_in_flight = False

        if self._state == self.HALF_OPEN:
            if self._trial_in_flight:
                raise CircuitOpenError("Circuit breaker is HALF_OPEN and a trial call is in flight")
            self._trial_in_flight = True

        try:
            result = await self.operation(*args, **kwargs)
        except Exception as exc:
            if self._is_failure is None or self._is_failure(exc):
                self._record_failure()
            elif self._state == self.HALF_OPEN:
                # Any answer that is not a failure ends the trial.
                self._record_success()
            raise
        self._record_success()
        return result

    def _record_failure(self) -> None:
        self._trial_in_flight = False
        self._failure_count += 1
        self._last_failure = self._clock()
        if self._state == self.HALF_OPEN or self._failure_count >= self.failure_threshold:
            if self._state != self.OPEN:
                logger.warning("Circuit breaker opened after %s failures", self._failure_count)
            self._state = self.OPEN

    def _record_success(self) -> None:
        self._trial_in_flight = False
        self._failure_count = 0
        self._state = self.CLOSED
