"""Atomic conditional write scripts.

Four variants picked along two axes: whether the key is expected to be
absent (create) or to hold a known value (swap), and whether a TTL is
attached. Create is kept apart from swap so the backend never has to treat
"absent" as a comparable value.
"""

from dataclasses import dataclass
from typing import Any

from bucket_cas.exceptions import ScriptResultError


@dataclass(frozen=True)
class CasScript:
    """A server-side script evaluated against a single key.

    Attributes:
        name: Stable identifier, used in logs and metrics
        source: Lua source evaluated by Redis-compatible backends
        creates: True if the precondition is "key absent"
        with_ttl: True if the last ARGV entry is a TTL in milliseconds
    """

    name: str
    source: str
    creates: bool
    with_ttl: bool

    @property
    def arity(self) -> int:
        """Number of ARGV entries the script expects."""
        count = 1 if self.creates else 2
        return count + 1 if self.with_ttl else count


# ARGV: new
SET_NX = CasScript(
    name="SET_NX",
    source="return redis.call('set', KEYS[1], ARGV[1], 'nx')",
    creates=True,
    with_ttl=False,
)

# ARGV: new, ttl_ms
SET_NX_PX = CasScript(
    name="SET_NX_PX",
    source="return redis.call('set', KEYS[1], ARGV[1], 'nx', 'px', ARGV[2])",
    creates=True,
    with_ttl=True,
)

# ARGV: expected, new
COMPARE_AND_SWAP = CasScript(
    name="COMPARE_AND_SWAP",
    source="""
if redis.call('get', KEYS[1]) == ARGV[1] then
    redis.call('set', KEYS[1], ARGV[2])
    return 1
else
    return 0
end
""".strip(),
    creates=False,
    with_ttl=False,
)

# ARGV: expected, new, ttl_ms
COMPARE_AND_SWAP_PX = CasScript(
    name="COMPARE_AND_SWAP_PX",
    source="""
if redis.call('get', KEYS[1]) == ARGV[1] then
    redis.call('psetex', KEYS[1], ARGV[3], ARGV[2])
    return 1
else
    return 0
end
""".strip(),
    creates=False,
    with_ttl=True,
)

ALL_SCRIPTS = (SET_NX, SET_NX_PX, COMPARE_AND_SWAP, COMPARE_AND_SWAP_PX)

_SUCCESS_STATUS = {b"OK", "OK"}


def select_script(creating: bool, ttl_millis: int) -> CasScript:
    """Pick the variant for a write.

    Args:
        creating: True when no value was observed for the key
        ttl_millis: Requested lifetime; zero or negative means no expiry

    Returns:
        The script to evaluate
    """
    if creating:
        return SET_NX_PX if ttl_millis > 0 else SET_NX
    return COMPARE_AND_SWAP_PX if ttl_millis > 0 else COMPARE_AND_SWAP


def encode_ttl(ttl_millis: int) -> bytes:
    """Encode a TTL as a decimal ASCII argument."""
    return str(int(ttl_millis)).encode("ascii")


def build_args(
    script: CasScript,
    original: bytes | None,
    new_data: bytes,
    ttl_millis: int,
) -> tuple[bytes, ...]:
    """Lay out ARGV for a script."""
    args: list[bytes] = [new_data] if script.creates else [original, new_data]
    if script.with_ttl:
        args.append(encode_ttl(ttl_millis))
    return tuple(args)


def interpret_result(script: CasScript, result: Any) -> bool:
    """Map a backend's raw script reply to swap success.

    Nil and zero replies mean the precondition did not hold. A one or a
    boolean mean the write happened. An ``OK`` status is also success, but
    only from the create scripts, whose ``SET NX`` reply is passed through.

    Raises:
        ScriptResultError: If the reply is anything else
    """
    if result is None:
        return False
    if isinstance(result, bool):
        return result
    if isinstance(result, int):
        if result in (0, 1):
            return result == 1
        raise ScriptResultError(script.name, result)
    if script.creates and isinstance(result, (bytes, str)) and result in _SUCCESS_STATUS:
        return True
    raise ScriptResultError(script.name, result)
