"""bucket-cas exceptions.

Transport failures raised by backend client libraries (for example
``redis.exceptions.RedisError``) are deliberately not part of this hierarchy;
they propagate to the caller unchanged.
"""


class BucketCasError(Exception):
    """Base exception for bucket-cas."""

    pass


class ConfigError(BucketCasError):
    """Configuration error."""

    pass


class BackendNotFoundError(ConfigError):
    """No backend registered under the requested name."""

    pass


class InvalidPayloadError(BucketCasError, ValueError):
    """A payload that can never be stored (e.g. None or the absent marker)."""

    pass


class ProtocolError(BucketCasError):
    """The backend answered outside the documented encoding."""

    pass


class ScriptResultError(ProtocolError):
    """A conditional write script returned an unexpected value."""

    def __init__(self, script_name: str, result: object) -> None:
        self.script_name = script_name
        self.result = result
        super().__init__(
            f"Script {script_name} returned unexpected result {result!r}"
        )


class StateDecodeError(ProtocolError):
    """Stored bytes could not be decoded into a bucket state."""

    pass


class AsyncNotSupportedError(BucketCasError, NotImplementedError):
    """Asynchronous execution was requested from a synchronous-only engine."""

    pass


class ContentionTimeoutError(BucketCasError):
    """The retry bound was exhausted before a compare-and-swap succeeded."""

    def __init__(self, key: bytes, attempts: int, elapsed_seconds: float) -> None:
        self.key = key
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            f"Gave up on key {key!r} after {attempts} attempts "
            f"({elapsed_seconds:.3f}s) due to contention"
        )
