from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Sequence


def read_string(payload: Mapping[str, Any], keys: Sequence[str]) -> str | None:
    """
    First non-blank string under any of `keys`.

    Integers (e.g. i128 amounts decoded from the ledger) are rendered as
    exact decimal strings; floats and booleans are never accepted.
    """
    for key in keys:
        value = payload.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, str) and value.strip():
            return value
        if isinstance(value, (int, Decimal)):
            return str(value)
    return None


def read_int(payload: Mapping[str, Any], keys: Sequence[str]) -> int | None:
    """First integer (or integer-looking string) under any of `keys`."""
    for key in keys:
        value = payload.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip():
            try:
                return int(value.strip())
            except ValueError:
                continue
    return None
