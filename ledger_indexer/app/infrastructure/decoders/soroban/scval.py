from __future__ import annotations

from typing import Any, Callable

from stellar_sdk import Address
from stellar_sdk import xdr as stellar_xdr

from ledger_indexer.app.domain.errors import EventDecodeError

# ---------------------------------------------------------------------------
# Soroban compact values (SCVal) -> native Python values
#
# One converter per representation kind:
#   scalar  -> bool / None / int / str / bytes
#   pair    -> int assembled from hi/lo parts (128 / 256 bit)
#   list    -> list
#   map     -> dict
# ---------------------------------------------------------------------------

_ScValConverter = Callable[[stellar_xdr.SCVal], Any]

_U64 = 1 << 64


def _bool(val: stellar_xdr.SCVal) -> bool:
    return bool(val.b)


def _void(val: stellar_xdr.SCVal) -> None:
    return None


def _u32(val: stellar_xdr.SCVal) -> int:
    return val.u32.uint32


def _i32(val: stellar_xdr.SCVal) -> int:
    return val.i32.int32


def _u64(val: stellar_xdr.SCVal) -> int:
    return val.u64.uint64


def _i64(val: stellar_xdr.SCVal) -> int:
    return val.i64.int64


def _timepoint(val: stellar_xdr.SCVal) -> int:
    return val.timepoint.time_point.uint64


def _duration(val: stellar_xdr.SCVal) -> int:
    return val.duration.duration.uint64


def _u128(val: stellar_xdr.SCVal) -> int:
    parts = val.u128
    return parts.hi.uint64 * _U64 + parts.lo.uint64


def _i128(val: stellar_xdr.SCVal) -> int:
    # hi carries the sign
    parts = val.i128
    return parts.hi.int64 * _U64 + parts.lo.uint64


def _u256(val: stellar_xdr.SCVal) -> int:
    parts = val.u256
    return _join_words(parts.hi_hi.uint64, parts.hi_lo.uint64, parts.lo_hi.uint64, parts.lo_lo.uint64)


def _i256(val: stellar_xdr.SCVal) -> int:
    parts = val.i256
    return _join_words(parts.hi_hi.int64, parts.hi_lo.uint64, parts.lo_hi.uint64, parts.lo_lo.uint64)


def _join_words(*words: int) -> int:
    out = 0
    for word in words:
        out = out * _U64 + word
    return out


def _bytes(val: stellar_xdr.SCVal) -> bytes:
    return bytes(val.bytes.sc_bytes)


def _string(val: stellar_xdr.SCVal) -> str:
    return _text(val.str.sc_string)


def _symbol(val: stellar_xdr.SCVal) -> str:
    return _text(val.sym.sc_symbol)


def _text(raw: bytes | str) -> str:
    if isinstance(raw, str):
        return raw
    return bytes(raw).decode("utf-8", errors="replace")


def _vec(val: stellar_xdr.SCVal) -> list[Any]:
    if val.vec is None:
        return []
    return [scval_to_native(item) for item in val.vec.sc_vec]


def _map(val: stellar_xdr.SCVal) -> dict[Any, Any]:
    if val.map is None:
        return {}
    out: dict[Any, Any] = {}
    for entry in val.map.sc_map:
        key = scval_to_native(entry.key)
        if isinstance(key, (list, dict)):
            key = repr(key)
        out[key] = scval_to_native(entry.val)
    return out


def _address(val: stellar_xdr.SCVal) -> str:
    return Address.from_xdr_sc_address(val.address).address


_CONVERTERS: dict[stellar_xdr.SCValType, _ScValConverter] = {
    stellar_xdr.SCValType.SCV_BOOL: _bool,
    stellar_xdr.SCValType.SCV_VOID: _void,
    stellar_xdr.SCValType.SCV_U32: _u32,
    stellar_xdr.SCValType.SCV_I32: _i32,
    stellar_xdr.SCValType.SCV_U64: _u64,
    stellar_xdr.SCValType.SCV_I64: _i64,
    stellar_xdr.SCValType.SCV_TIMEPOINT: _timepoint,
    stellar_xdr.SCValType.SCV_DURATION: _duration,
    stellar_xdr.SCValType.SCV_U128: _u128,
    stellar_xdr.SCValType.SCV_I128: _i128,
    stellar_xdr.SCValType.SCV_U256: _u256,
    stellar_xdr.SCValType.SCV_I256: _i256,
    stellar_xdr.SCValType.SCV_BYTES: _bytes,
    stellar_xdr.SCValType.SCV_STRING: _string,
    stellar_xdr.SCValType.SCV_SYMBOL: _symbol,
    stellar_xdr.SCValType.SCV_VEC: _vec,
    stellar_xdr.SCValType.SCV_MAP: _map,
    stellar_xdr.SCValType.SCV_ADDRESS: _address,
}


def scval_to_native(val: stellar_xdr.SCVal) -> Any:
    """
    Convert a Soroban SCVal into a plain Python value.

    Raises EventDecodeError for kinds that carry no event data
    (errors, contract instances, ledger keys).
    """
    try:
        converter = _CONVERTERS[val.type]
    except KeyError:
        raise EventDecodeError(f"Unsupported SCVal type: {val.type!r}") from None
    return converter(val)
