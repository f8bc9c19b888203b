"""Retry orchestration on top of the CAS engine.

Each attempt re-reads the stored state, lets the caller compute the next
state from it, and tries a conditional write. A lost race is retried from a
fresh read until the retry policy gives up.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from bucket_cas.backends.memory import MemoryBackend
from bucket_cas.clock import Clock
from bucket_cas.config import Config, RetryConfig
from bucket_cas.engine import CasEngine
from bucket_cas.exceptions import ContentionTimeoutError
from bucket_cas.expiration import ExpirationStrategyFactory
from bucket_cas.observability import (
    OperationContext,
    Outcome,
    configure_logging,
    emit_metric,
    get_logger,
)
from bucket_cas.plugins import create_backend_from_config
from bucket_cas.protocols import CasBackend
from bucket_cas.state import JsonStateCodec, StateCodec
from bucket_cas.values import ABSENT, encode_key

T = TypeVar("T")

logger = get_logger(__name__)


@dataclass
class RetryPolicy:
    """How long to keep retrying a contended compare-and-swap.

    Attributes:
        max_attempts: Upper bound on conditional write attempts
        timeout_seconds: Optional wall-clock budget for the whole operation
    """

    max_attempts: int = 100
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(max_attempts=config.max_attempts, timeout_seconds=config.timeout_seconds)


@dataclass
class Mutation(Generic[T]):
    """Outcome of a command applied to the current state.

    Attributes:
        result: Value returned to the caller of execute()
        new_state: State to write back, or None to leave storage untouched
    """

    result: T
    new_state: Any = None


Command = Callable[[Any], Mutation[T]]


class CasProxy:
    """Drives CasEngine attempts until one succeeds.

    Example:
        proxy = CasProxy(CasEngine(backend, RefillBasedExpiration()))

        def consume(state):
            state = state or BucketState.new(10, 10, 60 * NANOS_PER_SECOND, now)
            return Mutation(True, state.consumed(1))

        proxy.execute("user:42", consume)
    """

    def __init__(
        self,
        engine: CasEngine,
        codec: StateCodec | None = None,
        retry_policy: RetryPolicy | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize proxy.

        Args:
            engine: Single-attempt CAS engine
            codec: State encoding (defaults to JSON for BucketState)
            retry_policy: Retry bounds (defaults to 100 attempts, no deadline)
            monotonic: Time source for the retry deadline
        """
        self.engine = engine
        self.codec = codec or JsonStateCodec()
        self.retry_policy = retry_policy or RetryPolicy()
        self._monotonic = monotonic

    @property
    def clock(self) -> Clock:
        return self.engine.clock

    @property
    def supports_async(self) -> bool:
        return self.engine.supports_async

    def execute(self, key: str | bytes, command: Command[T]) -> T:
        """Apply command to the state stored under key.

        The command receives the decoded current state (None if absent) and
        may be called several times; it must not have side effects beyond
        computing its Mutation.

        Raises:
            ContentionTimeoutError: If the retry policy is exhausted
        """
        raw_key = encode_key(key)
        with OperationContext(raw_key) as operation:
            started = self._monotonic()
            result = self._run_attempts(operation, raw_key, command, started)
            emit_metric("cas.execute.attempts", operation.attempt)
            emit_metric("cas.execute.duration_ms", (self._monotonic() - started) * 1000)
            return result

    def _run_attempts(
        self,
        operation: OperationContext,
        raw_key: bytes,
        command: Command[T],
        started: float,
    ) -> T:
        policy = self.retry_policy
        while True:
            attempt = operation.next_attempt()
            original = self.engine.read_current(raw_key)
            state = None if original is ABSENT else self.codec.decode(original)

            mutation = command(state)
            if mutation.new_state is None:
                return mutation.result

            new_data = self.codec.encode(mutation.new_state)
            if self.engine.attempt_swap(raw_key, original, new_data, mutation.new_state):
                return mutation.result

            elapsed = self._monotonic() - started
            timed_out = policy.timeout_seconds is not None and elapsed >= policy.timeout_seconds
            if attempt >= policy.max_attempts or timed_out:
                logger.warning(
                    "Giving up after repeated compare-and-swap contention",
                    outcome=Outcome.EXHAUSTED,
                    attempts=attempt,
                    elapsed_ms=elapsed * 1000,
                )
                raise ContentionTimeoutError(raw_key, attempt, elapsed)

            logger.debug("Retrying compare-and-swap", outcome=Outcome.CONTENTION, attempts=attempt)

    def get_state(self, key: str | bytes) -> Any:
        """Decoded state stored under key, or None if absent."""
        data = self.engine.read_current(key)
        return None if data is ABSENT else self.codec.decode(data)

    def remove(self, key: str | bytes) -> None:
        """Delete the state stored under key."""
        self.engine.remove(key)


def build_proxy(
    config: Config,
    backend: CasBackend | None = None,
    clock: Clock | None = None,
    setup_logging: bool = True,
) -> CasProxy:
    """Wire a proxy from configuration.

    Args:
        config: Loaded configuration
        backend: Backend to use instead of the configured one
        clock: Time source shared by TTL computation and the memory backend
        setup_logging: Apply the logging section to the package logger

    Returns:
        Ready-to-use proxy
    """
    if setup_logging:
        configure_logging(config.logging.level, config.logging.format)

    if backend is None:
        if config.backend.backend == "memory" and clock is not None:
            backend = MemoryBackend(clock=clock)
        else:
            backend = create_backend_from_config(config.backend)

    engine = CasEngine(
        backend=backend,
        expiration=ExpirationStrategyFactory.create(config.expiration),
        clock=clock,
    )
    return CasProxy(engine, retry_policy=RetryPolicy.from_config(config.retry))
