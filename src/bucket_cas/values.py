"""Key normalization and the explicit marker for "no stored state"."""

from enum import Enum
from typing import Any, TypeAlias


class Absent(Enum):
    """Tag for a key that holds no value.

    Kept separate from ``b""`` so a present zero-length payload is never
    mistaken for a missing one.
    """

    ABSENT = "absent"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = Absent.ABSENT

Snapshot: TypeAlias = bytes | Absent


def is_absent(value: Any) -> bool:
    """Check whether a read result is the absent marker."""
    return value is ABSENT


def encode_key(key: str | bytes) -> bytes:
    """Normalize a bucket key to bytes.

    Raises:
        TypeError: If key is neither str nor bytes
        ValueError: If key is empty
    """
    if isinstance(key, str):
        key = key.encode("utf-8")
    elif not isinstance(key, bytes):
        raise TypeError(f"Bucket key must be str or bytes, got {type(key).__name__}")
    if not key:
        raise ValueError("Bucket key must not be empty")
    return key
