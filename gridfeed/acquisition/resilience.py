"""
Resilience primitives: bounded retry with linear backoff and jitter, and a
FIFO concurrency governor capping outbound requests process-wide.

Retries are local to one logical fetch. The governor is global admission
control and is separate from per-attempt timeouts.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Optional, TypeVar

import numpy as np

from ..core.errors import TransientNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry with jittered linear backoff."""
    attempts: int = 3
    backoff_ms: float = 500.0
    timeout_ms: float = 45_000.0
    jitter_low: float = 0.75
    jitter_high: float = 1.0

    def with_overrides(
        self,
        attempts: Optional[int] = None,
        backoff_ms: Optional[float] = None,
        timeout_ms: Optional[float] = None,
    ) -> "RetryConfig":
        return RetryConfig(
            attempts=self.attempts if attempts is None else attempts,
            backoff_ms=self.backoff_ms if backoff_ms is None else backoff_ms,
            timeout_ms=self.timeout_ms if timeout_ms is None else timeout_ms,
            jitter_low=self.jitter_low,
            jitter_high=self.jitter_high,
        )


def backoff_delay_s(cfg: RetryConfig, attempt: int, rng: np.random.Generator) -> float:
    """Sleep before the next attempt: backoff_ms * attempt * U[jitter_low, jitter_high], in seconds."""
    jitter = float(rng.uniform(cfg.jitter_low, cfg.jitter_high))
    return cfg.backoff_ms * attempt * jitter / 1000.0


class ConcurrencyGovernor:
    """
    FIFO admission queue with a maximum in-flight count.

    Not bound to an event loop at construction; waiters are futures created on
    the running loop. Releasing hands the slot directly to the oldest live
    waiter so admission order is strict FIFO.
    """

    def __init__(self, max_in_flight: int = 4) -> None:
        self._max = max(1, int(max_in_flight))
        self._active = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def max_in_flight(self) -> int:
        return self._max

    @property
    def in_flight(self) -> int:
        return self._active

    @property
    def queued(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def acquire(self) -> None:
        if self._active < self._max and not self._waiters:
            self._active += 1
            return
        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # slot was handed over just before cancellation; pass it on
                self.release()
            else:
                try:
                    self._waiters.remove(fut)
                except ValueError:
                    pass
            raise

    def release(self) -> None:
        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                fut.set_result(None)
                return
        self._active = max(0, self._active - 1)

    async def __aenter__(self) -> "ConcurrencyGovernor":
        await self.acquire()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.release()


async def resilient_call(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    retry_config: Optional[RetryConfig] = None,
    governor: Optional[ConcurrencyGovernor] = None,
    sleep: Sleep = asyncio.sleep,
    rng: Optional[np.random.Generator] = None,
    label: str = "",
    **kwargs: Any,
) -> T:
    """
    Execute an async call with bounded retry, per-attempt timeout and
    governor admission.

    Only TransientNetworkError (and attempt timeouts, converted to it) are
    retried. Anything else, NotFoundError included, propagates on the first
    occurrence. Raises the last error once attempts are exhausted.
    """
    cfg = retry_config or RetryConfig()
    rng = rng or np.random.default_rng()
    attempts = max(1, int(cfg.attempts))
    timeout_s = cfg.timeout_ms / 1000.0 if cfg.timeout_ms else None

    last_err: Optional[TransientNetworkError] = None
    for attempt in range(1, attempts + 1):
        try:
            if governor is not None:
                async with governor:
                    return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout_s)
            return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout_s)
        except asyncio.TimeoutError:
            last_err = TransientNetworkError(
                f"timeout after {cfg.timeout_ms:.0f}ms {label}".rstrip(), url=label
            )
        except TransientNetworkError as exc:
            last_err = exc
        logger.debug("Attempt %d/%d failed for %s: %s", attempt, attempts, label, last_err)
        if attempt < attempts:
            await sleep(backoff_delay_s(cfg, attempt, rng))

    logger.warning("Giving up on %s after %d attempts: %s", label, attempts, last_err)
    raise last_err  # type: ignore[misc]
