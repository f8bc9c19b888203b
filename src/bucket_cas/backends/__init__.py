"""Backend adapters implementing the CasBackend protocol."""

from bucket_cas.backends.memory import MemoryBackend

__all__ = [
    "MemoryBackend",
]
