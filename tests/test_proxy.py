"""Tests for the retry orchestrator."""

import threading

import pytest

from bucket_cas.backends.memory import MemoryBackend
from bucket_cas.config import Config
from bucket_cas.engine import CasEngine
from bucket_cas.exceptions import ContentionTimeoutError
from bucket_cas.expiration import RefillBasedExpiration
from bucket_cas.proxy import CasProxy, Mutation, RetryPolicy, build_proxy
from bucket_cas.state import BucketState, JsonStateCodec
from bucket_cas.values import ABSENT

SECOND = 1_000_000_000


class AlwaysLosingEngine(CasEngine):
    """Engine whose conditional writes always lose the race."""

    def __init__(self, backend) -> None:
        super().__init__(backend)
        self.reads = 0
        self.swaps = 0

    def read_current(self, key):
        self.reads += 1
        return super().read_current(key)

    def attempt_swap(self, key, original, new_data, new_state) -> bool:
        self.swaps += 1
        return False


def consume_one(clock):
    def command(state):
        now = clock.now_nanos()
        if state is None:
            state = BucketState.new(10, 1, SECOND, now)
        state = state.refilled(now)
        return Mutation(int(state.tokens) - 1, state.consumed(1))

    return command


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_defaults(self) -> None:
        policy = RetryPolicy()
        assert policy.max_attempts == 100
        assert policy.timeout_seconds is None

    @pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"timeout_seconds": 0}])
    def test_validation(self, kwargs) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestCasProxy:
    """Tests for CasProxy."""

    def test_creates_state_on_first_use(self, proxy, clock) -> None:
        remaining = proxy.execute("user:1", consume_one(clock))
        assert remaining == 9
        assert proxy.get_state("user:1").tokens == 9

    def test_updates_existing_state(self, proxy, clock) -> None:
        proxy.execute("user:1", consume_one(clock))
        remaining = proxy.execute("user:1", consume_one(clock))
        assert remaining == 8

    def test_read_only_command_does_not_write(self, proxy, backend) -> None:
        result = proxy.execute("user:1", lambda state: Mutation(state is None))
        assert result is True
        assert backend.eval_count == 0
        assert proxy.get_state("user:1") is None

    def test_retries_after_interleaved_write(self, proxy, backend, clock) -> None:
        """A write slipped in between read and swap forces a re-read."""
        codec = JsonStateCodec()
        seen: list = []
        interloper = BucketState.new(10, 1, SECOND, clock.now_nanos()).consumed(5)

        def command(state):
            seen.append(state)
            if len(seen) == 1:
                # Another process creates the bucket before our write lands
                proxy.engine.attempt_swap("user:1", ABSENT, codec.encode(interloper), interloper)
                return Mutation("first", BucketState.new(10, 1, SECOND, clock.now_nanos()))
            return Mutation("second", state.consumed(1))

        assert proxy.execute("user:1", command) == "second"
        assert seen[0] is None
        assert seen[1] == interloper
        assert proxy.get_state("user:1").tokens == 4

    def test_gives_up_after_max_attempts(self, backend, clock) -> None:
        engine = AlwaysLosingEngine(backend)
        proxy = CasProxy(engine, retry_policy=RetryPolicy(max_attempts=3))

        with pytest.raises(ContentionTimeoutError) as exc_info:
            proxy.execute("hot", consume_one(clock))

        assert exc_info.value.attempts == 3
        assert exc_info.value.key == b"hot"
        assert engine.swaps == 3
        # Every attempt re-reads before writing
        assert engine.reads == 3

    def test_gives_up_after_deadline(self, backend, clock) -> None:
        ticks = iter([0.0, 0.5, 1.0, 1.5, 2.0, 2.5])
        engine = AlwaysLosingEngine(backend)
        proxy = CasProxy(
            engine,
            retry_policy=RetryPolicy(max_attempts=1000, timeout_seconds=1.2),
            monotonic=lambda: next(ticks),
        )

        with pytest.raises(ContentionTimeoutError) as exc_info:
            proxy.execute("hot", consume_one(clock))

        assert exc_info.value.attempts == 3
        assert exc_info.value.elapsed_seconds == 1.5

    def test_remove(self, proxy, clock) -> None:
        proxy.execute("user:1", consume_one(clock))
        proxy.remove("user:1")
        proxy.remove("user:1")
        assert proxy.get_state("user:1") is None

    def test_supports_async_flag(self, proxy) -> None:
        assert proxy.supports_async is False

    def test_concurrent_consumers_never_lose_updates(self, clock) -> None:
        """Every successful execute is reflected exactly once."""
        backend = MemoryBackend(clock=clock)
        proxy = CasProxy(
            CasEngine(backend, RefillBasedExpiration(), clock),
            retry_policy=RetryPolicy(max_attempts=10_000),
        )
        workers, per_worker = 8, 5

        def command(state):
            now = clock.now_nanos()
            if state is None:
                state = BucketState.new(100, 1, SECOND, now)
            return Mutation(None, state.consumed(1))

        def run() -> None:
            for _ in range(per_worker):
                proxy.execute("shared", command)

        threads = [threading.Thread(target=run) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert proxy.get_state("shared").tokens == 100 - workers * per_worker


class TestBuildProxy:
    """Tests for build_proxy."""

    def test_wires_from_config(self, sample_config_dict, clock) -> None:
        config = Config.from_dict(sample_config_dict)
        proxy = build_proxy(config, clock=clock)

        assert isinstance(proxy.engine.backend, MemoryBackend)
        assert proxy.engine.backend.clock is clock
        assert isinstance(proxy.engine.expiration, RefillBasedExpiration)
        assert proxy.retry_policy == RetryPolicy(max_attempts=5, timeout_seconds=2.5)

    def test_explicit_backend_wins(self, clock) -> None:
        backend = MemoryBackend(clock=clock)
        proxy = build_proxy(Config(), backend=backend)
        assert proxy.engine.backend is backend
