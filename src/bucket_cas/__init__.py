"""bucket-cas - Lock-free shared rate limiter state over compare-and-swap."""

from bucket_cas.clock import Clock, ManualClock, SystemClock
from bucket_cas.config import Config
from bucket_cas.engine import Capability, CasEngine
from bucket_cas.exceptions import (
    AsyncNotSupportedError,
    BucketCasError,
    ContentionTimeoutError,
    InvalidPayloadError,
    ProtocolError,
    ScriptResultError,
)
from bucket_cas.expiration import (
    ExpirationStrategy,
    ExpirationStrategyFactory,
    FixedTimeToLive,
    NoExpiration,
    RefillBasedExpiration,
)
from bucket_cas.observability import (
    CasLogger,
    LogLevel,
    OperationContext,
    Outcome,
    configure_logging,
    emit_counter,
    emit_metric,
    get_logger,
    register_metric_callback,
    unregister_metric_callback,
)
from bucket_cas.proxy import CasProxy, Mutation, RetryPolicy, build_proxy
from bucket_cas.rate_limiting import DistributedTokenBucket, RateLimitInfo, RateLimitResult
from bucket_cas.state import BucketState, JsonStateCodec
from bucket_cas.values import ABSENT, Absent, is_absent

__version__ = "0.1.0"
__all__ = [
    # Core
    "ABSENT",
    "Absent",
    "Capability",
    "CasEngine",
    "CasProxy",
    "Config",
    "Mutation",
    "RetryPolicy",
    "build_proxy",
    "is_absent",
    # Time
    "Clock",
    "ManualClock",
    "SystemClock",
    # State & expiration
    "BucketState",
    "ExpirationStrategy",
    "ExpirationStrategyFactory",
    "FixedTimeToLive",
    "JsonStateCodec",
    "NoExpiration",
    "RefillBasedExpiration",
    # Errors
    "AsyncNotSupportedError",
    "BucketCasError",
    "ContentionTimeoutError",
    "InvalidPayloadError",
    "ProtocolError",
    "ScriptResultError",
    # Observability
    "CasLogger",
    "LogLevel",
    "OperationContext",
    "Outcome",
    "configure_logging",
    "emit_counter",
    "emit_metric",
    "get_logger",
    "register_metric_callback",
    "unregister_metric_callback",
    # Rate Limiting
    "DistributedTokenBucket",
    "RateLimitInfo",
    "RateLimitResult",
]
