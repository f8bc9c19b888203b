"""Backend discovery via Python entry points."""

from importlib.metadata import entry_points
from typing import Any

from bucket_cas.config import BackendConfig
from bucket_cas.exceptions import BackendNotFoundError
from bucket_cas.protocols import CasBackend

BACKEND_GROUP = "bucket_cas.backends"


def discover_backends() -> dict[str, Any]:
    """Discover all registered backends.

    Returns:
        Dictionary mapping backend names to their classes
    """
    eps = entry_points(group=BACKEND_GROUP)
    return {ep.name: ep.load() for ep in eps}


def get_backend(name: str) -> Any:
    """Get a specific backend class by name.

    Args:
        name: The backend name (e.g., "memory", "redis", "redis_cluster")

    Returns:
        The backend class

    Raises:
        BackendNotFoundError: If the backend is not found
    """
    backends = discover_backends()
    if name not in backends:
        available = ", ".join(sorted(backends.keys())) or "(none)"
        raise BackendNotFoundError(
            f"Backend '{name}' not found in group '{BACKEND_GROUP}'. Available: {available}"
        )
    return backends[name]


def create_backend(backend: str, **kwargs: Any) -> CasBackend:
    """Create a CasBackend instance.

    Args:
        backend: The backend name (e.g., "memory", "redis")
        **kwargs: Backend-specific configuration

    Returns:
        A CasBackend implementation
    """
    cls = get_backend(backend)
    return cls(**kwargs)


def create_backend_from_config(config: BackendConfig) -> CasBackend:
    """Create the backend described by a configuration block."""
    return create_backend(config.backend, **config.backend_kwargs())
