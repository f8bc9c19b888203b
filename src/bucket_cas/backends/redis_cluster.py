"""Redis Cluster backend."""

from typing import Any

from redis.cluster import RedisCluster

from bucket_cas.scripts import CasScript


class RedisClusterBackend:
    """Redis Cluster backend.

    Each script touches exactly one key, so the cluster client routes it to
    the node owning that key's slot.
    """

    def __init__(
        self,
        url: str | None = None,
        cluster: RedisCluster | None = None,
        max_connections: int | None = None,
        socket_timeout: float | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize Redis Cluster backend.

        Args:
            url: URL of any cluster node, used when no client is given
            cluster: Existing cluster client
            max_connections: Per-node connection limit (only when building from url)
            socket_timeout: Per-command socket timeout in seconds
            **kwargs: Ignored (for compatibility with other backends)
        """
        if cluster is None:
            if not url:
                raise ValueError(
                    "RedisClusterBackend requires url or cluster. "
                    "Use 'memory' backend for development."
                )
            cluster_kwargs: dict[str, Any] = {}
            if max_connections is not None:
                cluster_kwargs["max_connections"] = max_connections
            if socket_timeout is not None:
                cluster_kwargs["socket_timeout"] = socket_timeout
            cluster = RedisCluster.from_url(url, decode_responses=False, **cluster_kwargs)

        self.cluster = cluster

    def get(self, key: bytes) -> bytes | None:
        """Get a value by key."""
        return self.cluster.get(key)

    def eval(self, script: CasScript, key: bytes, *args: bytes) -> Any:
        """Evaluate a conditional write script on the node owning key."""
        return self.cluster.eval(script.source, 1, key, *args)

    def delete(self, key: bytes) -> None:
        """Delete a key."""
        self.cluster.delete(key)

    def close(self) -> None:
        """Close connections to every node."""
        self.cluster.close()
