"""Single-node Redis backend over a connection pool."""

from typing import Any

import redis

from bucket_cas.scripts import CasScript


class RedisBackend:
    """Redis backend for a single node (or a primary behind a proxy).

    Every call borrows a connection from the pool for the duration of one
    command and hands it back afterwards.

    Example:
        backend = RedisBackend(url="redis://localhost:6379/0")
        backend.get(b"bucket:42")
    """

    def __init__(
        self,
        url: str | None = None,
        connection_pool: redis.ConnectionPool | None = None,
        max_connections: int | None = None,
        socket_timeout: float | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize Redis backend.

        Args:
            url: Redis URL, used to build a pool when none is given
            connection_pool: Existing pool to borrow connections from
            max_connections: Pool size limit (only when building from url)
            socket_timeout: Per-command socket timeout in seconds
            **kwargs: Ignored (for compatibility with other backends)
        """
        if connection_pool is None:
            if not url:
                raise ValueError(
                    "RedisBackend requires url or connection_pool. "
                    "Use 'memory' backend for development."
                )
            pool_kwargs: dict[str, Any] = {}
            if max_connections is not None:
                pool_kwargs["max_connections"] = max_connections
            if socket_timeout is not None:
                pool_kwargs["socket_timeout"] = socket_timeout
            # Values are compared byte-for-byte; never let the client decode them.
            connection_pool = redis.ConnectionPool.from_url(
                url, decode_responses=False, **pool_kwargs
            )

        self.connection_pool = connection_pool
        self._client = redis.Redis(connection_pool=connection_pool)

    def get(self, key: bytes) -> bytes | None:
        """Get a value by key."""
        return self._client.get(key)

    def eval(self, script: CasScript, key: bytes, *args: bytes) -> Any:
        """Evaluate a conditional write script against one key."""
        return self._client.eval(script.source, 1, key, *args)

    def delete(self, key: bytes) -> None:
        """Delete a key."""
        self._client.delete(key)

    def close(self) -> None:
        """Disconnect every pooled connection."""
        self.connection_pool.disconnect()
