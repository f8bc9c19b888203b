"""Compare-and-swap engine: one read, one conditional write, per attempt.

The read and the write are separate round-trips because the new value is
computed by the caller from the state it just read. Safety comes only from
the atomicity of the conditional write on a single key; no lock is held
between the two.
"""

from dataclasses import dataclass
from typing import Any, NoReturn

from bucket_cas.clock import Clock, SystemClock
from bucket_cas.exceptions import AsyncNotSupportedError, InvalidPayloadError
from bucket_cas.expiration import ExpirationStrategy, NoExpiration
from bucket_cas.observability import Outcome, emit_counter, get_logger
from bucket_cas.protocols import CasBackend
from bucket_cas.scripts import build_args, interpret_result, select_script
from bucket_cas.state import RefillingState
from bucket_cas.values import ABSENT, Absent, Snapshot, encode_key

logger = get_logger(__name__)


@dataclass(frozen=True)
class Capability:
    """Whether an optional execution mode is available, and why not."""

    supported: bool
    reason: str = ""


ASYNC_UNSUPPORTED = Capability(
    supported=False,
    reason="CasEngine only performs blocking calls against the backend",
)


class CasEngine:
    """Single-attempt compare-and-swap over a CasBackend.

    Example:
        engine = CasEngine(MemoryBackend(), RefillBasedExpiration())
        original = engine.read_current("bucket:42")
        if engine.attempt_swap("bucket:42", original, new_bytes, new_state):
            ...
    """

    supports_async = False

    def __init__(
        self,
        backend: CasBackend,
        expiration: ExpirationStrategy | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize engine.

        Args:
            backend: Remote store adapter
            expiration: TTL policy (defaults to no expiration)
            clock: Time source for TTL computation (defaults to the system clock)
        """
        self.backend = backend
        self.expiration = expiration or NoExpiration()
        self.clock = clock or SystemClock()

    def read_current(self, key: str | bytes) -> Snapshot:
        """Read the stored bytes for key, or ABSENT."""
        data = self.backend.get(encode_key(key))
        return ABSENT if data is None else data

    def attempt_swap(
        self,
        key: str | bytes,
        original: bytes | Absent | None,
        new_data: bytes,
        new_state: RefillingState,
    ) -> bool:
        """Write new_data only if key still holds original.

        Args:
            key: Bucket key
            original: Bytes last read for key, or ABSENT if none existed
            new_data: Encoded new state
            new_state: Logical new state, used to compute the TTL

        Returns:
            True if the write happened, False if another writer got there first

        Raises:
            InvalidPayloadError: If new_data is not bytes
            ScriptResultError: If the backend reply is outside the protocol
        """
        if not isinstance(new_data, (bytes, bytearray)):
            raise InvalidPayloadError(
                f"Cannot store {type(new_data).__name__}; payloads must be bytes"
            )
        if original is None:
            original = ABSENT
        elif not isinstance(original, (bytes, bytearray, Absent)):
            raise TypeError(
                f"original must be bytes or ABSENT, got {type(original).__name__}"
            )

        raw_key = encode_key(key)
        ttl_millis = self.expiration.ttl_millis(new_state, self.clock.now_nanos())
        creating = original is ABSENT
        script = select_script(creating, ttl_millis)
        args = build_args(
            script,
            None if creating else bytes(original),
            bytes(new_data),
            ttl_millis,
        )

        result = self.backend.eval(script, raw_key, *args)
        swapped = interpret_result(script, result)

        if swapped:
            outcome = Outcome.CREATED if creating else Outcome.SWAPPED
        else:
            outcome = Outcome.CONTENTION
        emit_counter("cas.attempt", outcome=outcome, script=script.name)
        logger.debug(
            "Conditional write applied" if swapped else "Conditional write lost the race",
            script=script.name,
            outcome=outcome,
            ttl_millis=ttl_millis,
        )
        return swapped

    def remove(self, key: str | bytes) -> None:
        """Delete the stored state for key, whether or not it exists."""
        self.backend.delete(encode_key(key))
        emit_counter("cas.remove")

    def async_capability(self) -> Capability:
        """Report whether the *_async operations can be used."""
        return ASYNC_UNSUPPORTED

    def _async_not_supported(self, operation: str) -> NoReturn:
        raise AsyncNotSupportedError(f"{operation}: {ASYNC_UNSUPPORTED.reason}")

    def read_current_async(self, key: str | bytes) -> Any:
        """Always fails: asynchronous execution is not supported."""
        self._async_not_supported("read_current_async")

    def attempt_swap_async(
        self,
        key: str | bytes,
        original: bytes | Absent | None,
        new_data: bytes,
        new_state: RefillingState,
    ) -> Any:
        """Always fails: asynchronous execution is not supported."""
        self._async_not_supported("attempt_swap_async")

    def remove_async(self, key: str | bytes) -> Any:
        """Always fails: asynchronous execution is not supported."""
        self._async_not_supported("remove_async")
