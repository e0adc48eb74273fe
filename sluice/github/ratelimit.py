"""Outbound request throttling for the GitHub client.

The bucket is attached to the HTTP transport rather than to a pipeline pass,
so every request made through one client shares the same budget.
"""

from __future__ import annotations

import asyncio
import time
import typing as typ

import httpx

from .errors import GitHubConfigError

# 0.5/s is 1800 requests an hour, under GitHub's authenticated quota of 5000.
AUTHENTICATED_RATE_PER_S = 0.5
ANONYMOUS_RATE_PER_S = 0.01
DEFAULT_BURST = 10


class TokenBucket:
    """Token bucket with a steady refill rate and a burst capacity.

    ``acquire`` blocks the calling task until a token is available. Waiters
    are served one at a time in lock order; there is no prioritisation.
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        *,
        clock: typ.Callable[[], float] = time.monotonic,
        sleep: typ.Callable[[float], typ.Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Start full, with ``burst`` tokens available."""
        if rate <= 0 or burst < 1:
            raise GitHubConfigError.invalid_rate(rate, burst)
        self._rate = rate
        self._burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._updated_at = clock()
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        """Tokens added per second."""
        return self._rate

    @property
    def burst(self) -> int:
        """Maximum number of tokens held."""
        return self._burst

    def available(self) -> float:
        """Return the tokens currently available after refilling."""
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._updated_at = now
        self._tokens = min(float(self._burst), self._tokens + elapsed * self._rate)

    async def acquire(self) -> None:
        """Wait for and consume one token."""
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                await self._sleep((1.0 - self._tokens) / self._rate)


class RateLimitedTransport(httpx.AsyncBaseTransport):
    """Transport that takes a bucket token before delegating each request."""

    def __init__(
        self,
        bucket: TokenBucket,
        delegate: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Wrap ``delegate`` (a default HTTP transport when omitted)."""
        self._bucket = bucket
        self._delegate = delegate or httpx.AsyncHTTPTransport()

    @property
    def bucket(self) -> TokenBucket:
        """Return the shared bucket."""
        return self._bucket

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        """Throttle, then forward the request."""
        await self._bucket.acquire()
        return await self._delegate.handle_async_request(request)

    async def aclose(self) -> None:
        """Close the wrapped transport."""
        await self._delegate.aclose()
