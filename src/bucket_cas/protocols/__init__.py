"""Protocol interfaces for pluggable backends."""

from bucket_cas.protocols.backend import CasBackend

__all__ = [
    "CasBackend",
]
