"""Distributed token bucket rate limiting on top of the CAS proxy."""

from dataclasses import dataclass
from enum import Enum

from bucket_cas.clock import NANOS_PER_SECOND, Clock
from bucket_cas.config import BucketConfig
from bucket_cas.proxy import CasProxy, Mutation
from bucket_cas.state import BucketState


class RateLimitResult(Enum):
    """Result of a rate limit check."""

    ALLOWED = "allowed"
    DENIED = "denied"


@dataclass
class RateLimitInfo:
    """Information about rate limit status."""

    result: RateLimitResult
    limit: int
    remaining: int
    reset_at: float  # Unix timestamp
    retry_after: float | None = None  # Seconds until allowed

    @property
    def is_allowed(self) -> bool:
        """Check if request is allowed."""
        return self.result == RateLimitResult.ALLOWED


class DistributedTokenBucket:
    """Token bucket whose state lives in the shared backend.

    Any number of processes can check the same key; consistency comes from
    the proxy's compare-and-swap loop.

    Example:
        limiter = DistributedTokenBucket(
            proxy,
            capacity=50,  # Allow bursts up to 50
            refill_tokens=10,
            refill_period_seconds=1,  # 10 tokens per second
        )
        info = limiter.try_consume("user-123")
    """

    def __init__(
        self,
        proxy: CasProxy,
        capacity: int,
        refill_tokens: int,
        refill_period_seconds: float,
        clock: Clock | None = None,
    ) -> None:
        """Initialize token bucket.

        Args:
            proxy: CAS proxy holding the bucket states
            capacity: Maximum bucket capacity
            refill_tokens: Tokens added every refill period
            refill_period_seconds: Length of the refill period
            clock: Time source (defaults to the proxy's clock)
        """
        if capacity <= 0 or refill_tokens <= 0 or refill_period_seconds <= 0:
            raise ValueError("capacity and refill rate must be positive")
        self.proxy = proxy
        self.capacity = capacity
        self.refill_tokens = refill_tokens
        self.refill_period_nanos = int(refill_period_seconds * NANOS_PER_SECOND)
        self.clock = clock or proxy.clock

    @classmethod
    def from_config(cls, proxy: CasProxy, config: BucketConfig) -> "DistributedTokenBucket":
        return cls(
            proxy,
            capacity=config.capacity,
            refill_tokens=config.refill_tokens,
            refill_period_seconds=config.refill_period_seconds,
        )

    def _current(self, state: BucketState | None, now: int) -> BucketState:
        if state is None:
            return BucketState.new(self.capacity, self.refill_tokens, self.refill_period_nanos, now)
        return state.refilled(now)

    def try_consume(self, key: str | bytes, tokens: int = 1) -> RateLimitInfo:
        """Consume tokens if available.

        Denied requests leave the stored state untouched.
        """
        if tokens <= 0:
            raise ValueError("tokens must be positive")
        if tokens > self.capacity:
            raise ValueError(f"Cannot consume {tokens} tokens from a bucket of {self.capacity}")

        def consume(state: BucketState | None) -> Mutation[RateLimitInfo]:
            now = self.clock.now_nanos()
            bucket = self._current(state, now)
            now_seconds = now / NANOS_PER_SECOND

            wait_nanos = bucket.nanos_to_wait(tokens, now)
            if wait_nanos > 0:
                return Mutation(RateLimitInfo(
                    result=RateLimitResult.DENIED,
                    limit=self.capacity,
                    remaining=int(bucket.tokens),
                    reset_at=now_seconds + bucket.full_refill_nanos(now) / NANOS_PER_SECOND,
                    retry_after=wait_nanos / NANOS_PER_SECOND,
                ))

            bucket = bucket.consumed(tokens)
            return Mutation(
                RateLimitInfo(
                    result=RateLimitResult.ALLOWED,
                    limit=self.capacity,
                    remaining=int(bucket.tokens),
                    reset_at=now_seconds + bucket.full_refill_nanos(now) / NANOS_PER_SECOND,
                ),
                new_state=bucket,
            )

        return self.proxy.execute(key, consume)

    def available_tokens(self, key: str | bytes) -> int:
        """Tokens that could be consumed right now."""
        state = self.proxy.get_state(key)
        now = self.clock.now_nanos()
        return int(self._current(state, now).tokens)

    def reset(self, key: str | bytes) -> None:
        """Reset bucket to full capacity by dropping its stored state."""
        self.proxy.remove(key)
