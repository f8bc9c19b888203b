"""CasBackend protocol: the three primitives the CAS protocol needs."""

from typing import Any, Protocol, runtime_checkable

from bucket_cas.scripts import CasScript


@runtime_checkable
class CasBackend(Protocol):
    """Protocol for remote stores (Redis, Redis Cluster, in-memory).

    Adapters differ only in how they obtain a connection; every one must
    give the same protocol behavior.
    """

    def get(self, key: bytes) -> bytes | None:
        """Get the exact bytes last written. Returns None if not found."""
        ...

    def eval(self, script: CasScript, key: bytes, *args: bytes) -> Any:
        """Evaluate a conditional write script atomically against one key.

        Returns the backend's raw reply (nil/0 on a failed precondition).
        """
        ...

    def delete(self, key: bytes) -> None:
        """Delete a key. No-op if key doesn't exist."""
        ...

    def close(self) -> None:
        """Release client resources."""
        ...
