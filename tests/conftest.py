"""Pytest configuration and fixtures."""

import logging

import pytest

from bucket_cas.backends.memory import MemoryBackend
from bucket_cas.clock import ManualClock
from bucket_cas.engine import CasEngine
from bucket_cas.expiration import FixedTimeToLive, NoExpiration
from bucket_cas.observability import PACKAGE_LOGGER
from bucket_cas.proxy import CasProxy, RetryPolicy
from bucket_cas.state import BucketState

START_NANOS = 1_700_000_000 * 1_000_000_000


@pytest.fixture(autouse=True)
def package_logger():
    """Restore the package logger after a test reconfigures it."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    handlers, level = list(logger.handlers), logger.level
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)


@pytest.fixture
def clock():
    """Deterministic clock starting at a fixed instant."""
    return ManualClock(start_nanos=START_NANOS)


@pytest.fixture
def backend(clock):
    """Memory backend sharing the test clock."""
    return MemoryBackend(clock=clock)


@pytest.fixture
def engine(backend, clock):
    """Engine without expiration."""
    return CasEngine(backend, NoExpiration(), clock)


@pytest.fixture
def ttl_engine(backend, clock):
    """Engine attaching a fixed 5 second TTL."""
    return CasEngine(backend, FixedTimeToLive(5000), clock)


@pytest.fixture
def proxy(engine):
    """Proxy with a small retry bound."""
    return CasProxy(engine, retry_policy=RetryPolicy(max_attempts=10))


@pytest.fixture
def bucket_state(clock):
    """A full bucket of 10 tokens refilling 1 token per second."""
    return BucketState.new(
        capacity=10,
        refill_tokens=1,
        refill_period_nanos=1_000_000_000,
        now_nanos=clock.now_nanos(),
    )


@pytest.fixture
def sample_config_dict():
    """Sample configuration dictionary for testing."""
    return {
        "backend": {"backend": "memory"},
        "expiration": {"strategy": "refill", "keep_after_refill_millis": 1000},
        "retry": {"max_attempts": 5, "timeout_seconds": 2.5},
        "bucket": {"capacity": 10, "refill_tokens": 5, "refill_period_seconds": 1},
        "logging": {"level": "DEBUG", "format": "text"},
    }
