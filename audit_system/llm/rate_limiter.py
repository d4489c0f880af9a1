"""Token bucket rate limiter for inference request throttling."""

import asyncio
import time

from loguru import logger


class TokenBucket:
    """
    Request budget shared by every inference call of one client.

    The bucket starts full and refills continuously. Executors never see a
    rejection: acquire() parks the caller until enough budget has accrued.
    """

    def __init__(self, capacity: int, refill_rate: float):
        if capacity <= 0 or refill_rate <= 0:
            raise ValueError("capacity and refill_rate must be positive")

        self.capacity = capacity
        self.refill_rate = refill_rate
        self.tokens = float(capacity)
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

        logger.debug(f"Inference budget: {capacity} burst, {refill_rate:.3f} req/s")

    @classmethod
    def per_minute(cls, rpm: int) -> "TokenBucket":
        """Bucket allowing rpm requests per minute with a burst of rpm."""
        return cls(capacity=rpm, refill_rate=rpm / 60.0)

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def try_acquire(self, tokens: int = 1) -> bool:
        """Take tokens if available without waiting."""
        self._refill()
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    async def acquire(self, tokens: int = 1) -> None:
        """
        Acquire tokens, sleeping until the bucket has refilled enough.

        Args:
            tokens: Number of tokens to acquire
        """
        if tokens > self.capacity:
            raise ValueError(f"cannot acquire {tokens} tokens from bucket of {self.capacity}")

        async with self._lock:
            while not self.try_acquire(tokens):
                wait = (tokens - self.tokens) / self.refill_rate
                logger.debug(f"Rate limited, waiting {wait:.2f}s for {tokens} token(s)")
                await asyncio.sleep(wait)
