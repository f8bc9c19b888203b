"""Token bucket state and its wire encoding.

The CAS layer treats this state as opaque apart from one query: how long
until the bucket is full again, which drives the TTL attached on write.
"""

import json
import math
from dataclasses import asdict, dataclass, replace
from typing import Any, Protocol, TypeVar, runtime_checkable

from bucket_cas.exceptions import StateDecodeError

S = TypeVar("S")


@runtime_checkable
class RefillingState(Protocol):
    """State that can tell how long it needs to refill completely."""

    def full_refill_nanos(self, now_nanos: int) -> int:
        """Nanoseconds from now until the bucket is at capacity."""
        ...


class StateCodec(Protocol[S]):
    """Converts bucket state to and from stored bytes."""

    def encode(self, state: S) -> bytes:
        ...

    def decode(self, data: bytes) -> S:
        ...


@dataclass(frozen=True)
class BucketState:
    """Token bucket with greedy refill.

    Tokens are added continuously at ``refill_tokens`` per
    ``refill_period_nanos`` up to ``capacity``.
    """

    capacity: int
    refill_tokens: int
    refill_period_nanos: int
    tokens: float
    last_refill_nanos: int

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise ValueError("capacity must be positive")
        if self.refill_tokens <= 0 or self.refill_period_nanos <= 0:
            raise ValueError("refill rate must be positive")

    @classmethod
    def new(
        cls,
        capacity: int,
        refill_tokens: int,
        refill_period_nanos: int,
        now_nanos: int,
    ) -> "BucketState":
        """Create a full bucket."""
        return cls(
            capacity=capacity,
            refill_tokens=refill_tokens,
            refill_period_nanos=refill_period_nanos,
            tokens=float(capacity),
            last_refill_nanos=now_nanos,
        )

    def _nanos_for(self, tokens: float) -> int:
        return math.ceil(tokens * self.refill_period_nanos / self.refill_tokens)

    def refilled(self, now_nanos: int) -> "BucketState":
        """Return the state with tokens accrued up to ``now_nanos``."""
        # Clocks on different hosts may disagree; never refill backwards.
        elapsed = max(0, now_nanos - self.last_refill_nanos)
        if elapsed == 0:
            return self
        accrued = elapsed * self.refill_tokens / self.refill_period_nanos
        tokens = min(float(self.capacity), self.tokens + accrued)
        return replace(self, tokens=tokens, last_refill_nanos=now_nanos)

    def consumed(self, tokens: int) -> "BucketState":
        """Return the state with ``tokens`` removed (caller checks availability)."""
        return replace(self, tokens=self.tokens - tokens)

    def available_tokens(self, now_nanos: int) -> int:
        return int(self.refilled(now_nanos).tokens)

    def nanos_to_wait(self, tokens: int, now_nanos: int) -> int:
        """Nanoseconds until ``tokens`` can be consumed; 0 if available now."""
        current = self.refilled(now_nanos).tokens
        if current >= tokens:
            return 0
        return self._nanos_for(tokens - current)

    def full_refill_nanos(self, now_nanos: int) -> int:
        current = self.refilled(now_nanos).tokens
        missing = self.capacity - current
        if missing <= 0:
            return 0
        return self._nanos_for(missing)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BucketState":
        """Create from dictionary."""
        return cls(
            capacity=int(data["capacity"]),
            refill_tokens=int(data["refill_tokens"]),
            refill_period_nanos=int(data["refill_period_nanos"]),
            tokens=float(data["tokens"]),
            last_refill_nanos=int(data["last_refill_nanos"]),
        )


class JsonStateCodec:
    """Compact JSON encoding for ``BucketState``.

    Keys are sorted so equal states always encode to equal bytes.
    """

    def encode(self, state: BucketState) -> bytes:
        return json.dumps(
            state.to_dict(), sort_keys=True, separators=(",", ":")
        ).encode("utf-8")

    def decode(self, data: bytes) -> BucketState:
        try:
            return BucketState.from_dict(json.loads(data))
        except (ValueError, KeyError, TypeError) as e:
            raise StateDecodeError(f"Malformed bucket state: {e}") from e
