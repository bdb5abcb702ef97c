"""
Deterministic hash source used by every random operator.

Scheme version 1 (do not change, existing assignments depend on it):

    unit_str   = ".".join(str(v) for v in unit_values)
    hash_input = f"{full_salt}.{unit_str}"            # UTF-8 encoded
    h          = int(sha1(hash_input).hexdigest()[:15], 16)

``h`` is an unsigned 60-bit integer. Integer draws reduce it modulo the
needed range; uniform draws divide it by ``LONG_SCALE`` (0xFFFFFFFFFFFFFFF).
This matches the PlanOut family of libraries, so units map to the same
treatments from other languages as long as unit values stringify the same way
(decimal ints, raw strings).
"""
import hashlib
from typing import Any, List, Sequence

HASH_SCHEME_VERSION = 1
HEX_DIGITS = 15
LONG_SCALE = float(0xFFFFFFFFFFFFFFF)

# marks "nothing appended"; None is a legitimate appended value
NOTHING = object()


def unit_values(unit: Any, appended: Any = NOTHING) -> List[Any]:
    """Normalize a unit (scalar or sequence) to a list, optionally appending an extra value."""
    if isinstance(unit, (list, tuple)):
        values = list(unit)
    else:
        values = [unit]
    if appended is not NOTHING:
        values.append(appended)
    return values


def hash_input(full_salt: str, unit: Sequence[Any]) -> str:
    unit_str = ".".join(str(v) for v in unit)
    return f"{full_salt}.{unit_str}"


def get_hash(full_salt: str, unit: Any, appended: Any = NOTHING) -> int:
    """Hash (salt, unit) to an integer in [0, 2**60)."""
    values = unit_values(unit, appended)
    digest = hashlib.sha1(hash_input(full_salt, values).encode("utf-8")).hexdigest()
    return int(digest[:HEX_DIGITS], 16)


def get_uniform(
    full_salt: str, unit: Any, min_val: float = 0.0, max_val: float = 1.0, appended: Any = NOTHING
) -> float:
    """Map (salt, unit) to a float in [min_val, max_val]."""
    zero_to_one = get_hash(full_salt, unit, appended) / LONG_SCALE
    return min_val + (max_val - min_val) * zero_to_one
