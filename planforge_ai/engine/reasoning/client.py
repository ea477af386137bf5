from __future__ import annotations

"""Resilient access to the reasoning backend.

``ReasoningClient`` wraps a backend with three policies, applied per call:

1. a timeout on every attempt (``asyncio.wait_for``),
2. a fixed retry budget (tenacity ``AsyncRetrying``),
3. a circuit breaker: after ``failure_threshold`` consecutive failed calls the
   circuit opens for ``cooldown_seconds`` and calls fail fast with
   ``ReasoningUnavailable`` instead of queueing. The first call after the
   cooldown is a half-open trial that closes the circuit on success; other
   calls are rejected while the trial is in flight.

Synchronous backends are executed on a bounded ``ThreadPoolExecutor`` so the
event loop is never blocked.
"""

import asyncio
import inspect
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Union

from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..errors import ReasoningUnavailable
from .base import ReasoningBackend, SyncReasoningBackend

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    States: closed (calls pass), open (calls rejected until ``open_until``),
    half-open (cooldown elapsed; a single trial call is let through).
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        cooldown_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = max(1, failure_threshold)
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._failures = 0
        self._open_until = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        if self._open_until == 0.0:
            return "closed"
        if self._clock() < self._open_until:
            return "open"
        return "half_open"

    @property
    def failure_count(self) -> int:
        return self._failures

    def allow(self) -> bool:
        """Admit a call. In half-open only one trial is admitted until it reports back."""
        state = self.state
        if state == "open":
            return False
        if state == "half_open":
            if self._trial_in_flight:
                return False
            self._trial_in_flight = True
        return True

    def release(self) -> None:
        """Forget an admitted call that ended without success or failure (cancelled)."""
        self._trial_in_flight = False

    def record_success(self) -> None:
        self._failures = 0
        self._open_until = 0.0
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self._failures += 1
        self._trial_in_flight = False
        if self.state == "half_open" or self._failures >= self._failure_threshold:
            self._open_until = self._clock() + self._cooldown
            logger.error(
                f"reasoning circuit open for {self._cooldown:.1f}s after {self._failures} consecutive failures"
            )


class ReasoningClient:
    """Timeout, retry and circuit-breaking wrapper around a reasoning backend."""

    def __init__(
        self,
        backend: Union[ReasoningBackend, SyncReasoningBackend],
        *,
        timeout_seconds: float = 30.0,
        retry_attempts: int = 3,
        retry_wait_seconds: float = 1.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        worker_threads: int = 4,
    ) -> None:
        self._backend = backend
        self._timeout = timeout_seconds
        self._retry_attempts = max(1, retry_attempts)
        self._retry_wait = retry_wait_seconds
        self._breaker = circuit_breaker or CircuitBreaker()
        self._is_async = inspect.iscoroutinefunction(backend.complete)
        self._worker_threads = worker_threads
        self._pool: Optional[ThreadPoolExecutor] = None

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    async def complete(self, prompt: str) -> str:
        """Send ``prompt`` to the backend and return its raw text.

        Raises:
            ReasoningUnavailable: When the circuit is open, or every attempt
                failed or timed out.
        """
        if not self._breaker.allow():
            raise ReasoningUnavailable(f"reasoning backend circuit is {self._breaker.state}")

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_fixed(self._retry_wait),
                retry=retry_if_exception_type(Exception),
                reraise=False,
            ):
                with attempt:
                    text = await asyncio.wait_for(self._call(prompt), timeout=self._timeout)
        except RetryError as e:
            last = e.last_attempt.exception()
            self._breaker.record_failure()
            logger.warning(f"reasoning call failed after {self._retry_attempts} attempt(s): {last!r}")
            raise ReasoningUnavailable(f"reasoning backend failed: {last!r}", last_error=last) from last
        except BaseException:
            self._breaker.release()
            raise

        self._breaker.record_success()
        return text

    async def _call(self, prompt: str) -> str:
        if self._is_async:
            return await self._backend.complete(prompt)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor(), self._backend.complete, prompt)

    def _executor(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self._worker_threads, thread_name_prefix="reasoning")
        return self._pool

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=False)
            self._pool = None
