"""Expiration strategies: how long a written bucket state should live.

A non-positive TTL means "store without expiration".
"""

import math
from typing import Any, Protocol

from bucket_cas.clock import NANOS_PER_MILLI
from bucket_cas.exceptions import ConfigError
from bucket_cas.state import RefillingState

NO_EXPIRATION = -1


class ExpirationStrategy(Protocol):
    """Protocol for TTL policies."""

    def ttl_millis(self, state: RefillingState, now_nanos: int) -> int:
        """Compute the TTL to attach to ``state`` written at ``now_nanos``.

        Args:
            state: The state about to be written
            now_nanos: Current time, read fresh for this attempt

        Returns:
            TTL in milliseconds; zero or negative for no expiration
        """
        ...


class NoExpiration:
    """Never expire stored state."""

    def ttl_millis(self, state: RefillingState, now_nanos: int) -> int:
        return NO_EXPIRATION


class FixedTimeToLive:
    """Expire every write after the same duration.

    Example:
        strategy = FixedTimeToLive(ttl_millis=60_000)
    """

    def __init__(self, ttl_millis: int) -> None:
        if ttl_millis <= 0:
            raise ValueError("ttl_millis must be positive")
        self.fixed_ttl_millis = ttl_millis

    def ttl_millis(self, state: RefillingState, now_nanos: int) -> int:
        return self.fixed_ttl_millis


class RefillBasedExpiration:
    """Keep state only while it differs from a freshly created bucket.

    Once a bucket has refilled to capacity it is indistinguishable from a
    new one, so it can be evicted after an optional grace period.

    Example:
        strategy = RefillBasedExpiration(keep_after_refill_millis=5_000)
    """

    def __init__(self, keep_after_refill_millis: int = 0) -> None:
        if keep_after_refill_millis < 0:
            raise ValueError("keep_after_refill_millis must not be negative")
        self.keep_after_refill_millis = keep_after_refill_millis

    def ttl_millis(self, state: RefillingState, now_nanos: int) -> int:
        refill_millis = math.ceil(state.full_refill_nanos(now_nanos) / NANOS_PER_MILLI)
        # A full bucket with no grace period would otherwise yield 0, which
        # means "never expire".
        return max(1, refill_millis + self.keep_after_refill_millis)


class ExpirationStrategyFactory:
    """Factory for creating expiration strategies from configuration.

    Example:
        strategy = ExpirationStrategyFactory.create({
            "strategy": "fixed",
            "ttl_millis": 60_000,
        })
    """

    _strategies: dict[str, type] = {
        "none": NoExpiration,
        "fixed": FixedTimeToLive,
        "refill": RefillBasedExpiration,
    }

    @classmethod
    def create(cls, config: Any) -> ExpirationStrategy:
        """Create a strategy from an ``ExpirationConfig`` or a plain dict.

        Raises:
            ConfigError: If the strategy is unknown or its settings invalid
        """
        if hasattr(config, "model_dump"):
            # Only explicitly configured settings reach the strategy
            config = config.model_dump(exclude_unset=True, exclude_none=True)
        config = dict(config)
        name = config.pop("strategy", "none")
        strategy_class = cls._strategies.get(name)

        if strategy_class is None:
            available = ", ".join(sorted(cls._strategies))
            raise ConfigError(
                f"Unknown expiration strategy: {name}. Available: {available}"
            )

        kwargs = _strategy_kwargs(name, config)
        try:
            return strategy_class(**kwargs)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid settings for expiration strategy {name}: {e}") from e

    @classmethod
    def register(cls, name: str, strategy_class: type) -> None:
        """Register a custom expiration strategy.

        Args:
            name: Strategy name used in configuration
            strategy_class: Class whose instances implement ExpirationStrategy
        """
        cls._strategies[name] = strategy_class


def _strategy_kwargs(name: str, config: dict[str, Any]) -> dict[str, Any]:
    """Keep only the settings that apply to a built-in strategy.

    Registered strategies receive every configured setting.
    """
    if name == "none":
        return {}
    if name == "fixed":
        return {"ttl_millis": config.get("ttl_millis", 0)}
    if name == "refill":
        return {"keep_after_refill_millis": config.get("keep_after_refill_millis", 0)}
    return config
