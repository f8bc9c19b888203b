"""In-memory CAS backend."""

import threading
from dataclasses import dataclass
from typing import Any

from bucket_cas.clock import NANOS_PER_MILLI, Clock, SystemClock
from bucket_cas.exceptions import ProtocolError
from bucket_cas.scripts import CasScript


@dataclass
class StoredEntry:
    """A stored value with optional expiration."""

    value: bytes
    expires_at_nanos: int | None = None

    def is_expired(self, now_nanos: int) -> bool:
        """Check if this entry has expired."""
        if self.expires_at_nanos is None:
            return False
        return now_nanos >= self.expires_at_nanos


class MemoryBackend:
    """In-memory backend that evaluates the conditional write scripts natively.

    Suitable for development and testing. Data is lost on restart.
    A single lock makes every operation atomic, which is a stronger
    guarantee than the per-key atomicity the protocol requires.
    """

    def __init__(self, clock: Clock | None = None, **kwargs: Any) -> None:
        """Initialize memory backend.

        Args:
            clock: Time source for TTL eviction (defaults to the system clock)
            **kwargs: Ignored (for compatibility with other backends)
        """
        self.clock = clock or SystemClock()
        self._data: dict[bytes, StoredEntry] = {}
        self._lock = threading.Lock()
        self.eval_count = 0
        self.last_eval: tuple[CasScript, tuple[bytes, ...]] | None = None

    def _live_entry(self, key: bytes) -> StoredEntry | None:
        """Look up a key, evicting it if expired (caller must hold lock)."""
        entry = self._data.get(key)
        if entry is not None and entry.is_expired(self.clock.now_nanos()):
            del self._data[key]
            return None
        return entry

    def get(self, key: bytes) -> bytes | None:
        """Get a value by key."""
        with self._lock:
            entry = self._live_entry(key)
            return entry.value if entry is not None else None

    def eval(self, script: CasScript, key: bytes, *args: bytes) -> Any:
        """Apply a conditional write script. Returns 1 on success, 0 otherwise."""
        if len(args) != script.arity:
            raise ProtocolError(
                f"Script {script.name} expects {script.arity} arguments, got {len(args)}"
            )

        with self._lock:
            self.eval_count += 1
            self.last_eval = (script, args)

            current = self._live_entry(key)
            if script.creates:
                if current is not None:
                    return 0
                new_value = args[0]
            else:
                if current is None or current.value != args[0]:
                    return 0
                new_value = args[1]

            expires_at = None
            if script.with_ttl:
                ttl_millis = int(args[-1])
                if ttl_millis <= 0:
                    raise ProtocolError(f"Invalid expire time in {script.name}: {ttl_millis}")
                expires_at = self.clock.now_nanos() + ttl_millis * NANOS_PER_MILLI

            self._data[key] = StoredEntry(value=bytes(new_value), expires_at_nanos=expires_at)
            return 1

    def delete(self, key: bytes) -> None:
        """Delete a key."""
        with self._lock:
            self._data.pop(key, None)

    def ttl_millis(self, key: bytes) -> int | None:
        """Remaining lifetime of a key, like Redis PTTL.

        Returns None if the key is absent and -1 if it never expires.
        """
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            if entry.expires_at_nanos is None:
                return -1
            remaining = entry.expires_at_nanos - self.clock.now_nanos()
            return remaining // NANOS_PER_MILLI

    def clear(self) -> None:
        """Clear all data. Useful for testing."""
        with self._lock:
            self._data.clear()

    def close(self) -> None:
        """Nothing to release."""
        pass
