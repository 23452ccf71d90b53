"""
Wire serialization for webhook payloads.

Ledger quantities are unbounded integers, but most JSON consumers parse
numbers as IEEE-754 doubles. Integers outside the safe range are therefore
written as decimal strings. The same bytes are signed and transmitted, so
callers must serialize once and reuse the result.
"""
import json
from datetime import date, datetime
from enum import Enum
from typing import Any

MAX_SAFE_INTEGER = 2 ** 53 - 1


def is_safe_integer(value: int) -> bool:
    return -MAX_SAFE_INTEGER <= value <= MAX_SAFE_INTEGER


def stringify_wide_integers(value: Any) -> Any:
    """Recursively replace integers wider than MAX_SAFE_INTEGER with strings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, Enum):
        return stringify_wide_integers(value.value)
    if isinstance(value, int):
        return value if is_safe_integer(value) else str(value)
    if isinstance(value, dict):
        return {key: stringify_wide_integers(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [stringify_wide_integers(item) for item in value]
    return value


class WireEncoder(json.JSONEncoder):
    """Encoder for values json cannot handle natively."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)


def dumps(payload: Any) -> str:
    """Compact JSON text with wide integers stringified."""
    return json.dumps(
        stringify_wide_integers(payload),
        cls=WireEncoder,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def dumps_bytes(payload: Any) -> bytes:
    """UTF-8 body bytes; sign and send exactly these."""
    return dumps(payload).encode("utf-8")
