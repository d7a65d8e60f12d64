"""Helpers for reading loosely-shaped upstream payloads.

TikTok and VTEX send the same information under several field names
depending on API version and event kind. These helpers read such payloads as
ordered alias tables: the first present value wins.
"""

import hashlib
import json
import math
import re
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

PathPart = Union[str, int]
Path = Tuple[PathPart, ...]

NON_DIGITS = re.compile(r"[^0-9]")


def is_present(value: Any) -> bool:
    """True unless value is None or a blank string."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def dig(obj: Any, *path: PathPart) -> Any:
    """
    Walk nested dicts/lists, returning None as soon as a step is missing.

    Integer parts index into lists; string parts read dict keys.
    """
    current = obj
    for part in path:
        if isinstance(part, int):
            if not isinstance(current, list) or not -len(current) <= part < len(current):
                return None
            current = current[part]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(part)
        if current is None:
            return None
    return current


def first_present(*values: Any) -> Any:
    """Return the first value for which ``is_present`` holds, else None."""
    for value in values:
        if is_present(value):
            return value
    return None


def first_at(obj: Any, paths: Iterable[Sequence[PathPart]]) -> Any:
    """Apply ``dig`` for each alias path and return the first present value."""
    for path in paths:
        value = dig(obj, *path)
        if is_present(value):
            return value
    return None


def values_at(obj: Any, paths: Iterable[Sequence[PathPart]]) -> List[Any]:
    """All values found at the alias paths (present or not), in order."""
    return [dig(obj, *path) for path in paths]


def as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def digits_only(value: Any) -> str:
    if value is None:
        return ""
    return NON_DIGITS.sub("", str(value))


def to_number(value: Any) -> Optional[float]:
    """Parse numbers and numeric strings (decimal comma accepted); None if not finite."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace(",", ".", 1).strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def to_cents(value: Any) -> int:
    """Decimal currency to integer minor units (rounded after x100)."""
    number = to_number(value)
    if number is None:
        return 0
    return int(round(number * 100))


def normalize_quantity(value: Any) -> int:
    """Non-finite or non-positive quantities become 1; others are floored."""
    number = to_number(value)
    if number is None or number <= 0:
        return 1
    return max(1, math.floor(number))


def create_payload_hash(payload: Any) -> str:
    """Stable sha256 of a JSON-serialisable payload."""
    encoded = json.dumps(payload, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def mask_hint(value: Any) -> Optional[dict]:
    """Length and last three digits, for logging identifiers without leaking them."""
    if not is_present(value):
        return None
    digits = digits_only(value)
    return {"length": len(digits), "suffix": digits[-3:]}
