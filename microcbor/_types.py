"""microcbor element types — the numeric types a typed array can hold.

Each element type has a distinct CBOR tag so a reader can tell an
array of int32 from an array of float32 even though both travel as a
plain byte string.  The same table also gives the fixed header width
used when a scalar of that type is written with ``add``.
"""

from __future__ import annotations

from typing import Dict, NamedTuple, Union

from ._constants import (
    TAG_FLOAT32,
    TAG_FLOAT64,
    TAG_INT8,
    TAG_INT16,
    TAG_INT32,
    TAG_INT64,
    TAG_UINT8,
    TAG_UINT16,
    TAG_UINT32,
    TAG_UINT64,
)
from ._errors import ERR_TYPE, CborError


class ElemType(NamedTuple):
    name: str
    tag: int
    fmt: str        # struct / memoryview format character
    size: int
    signed: bool
    is_float: bool
    min: int
    max: int


def _int(name: str, tag: int, fmt: str, size: int, signed: bool) -> ElemType:
    bits = size * 8
    if signed:
        return ElemType(name, tag, fmt, size, True, False,
                        -(1 << (bits - 1)), (1 << (bits - 1)) - 1)
    return ElemType(name, tag, fmt, size, False, False, 0, (1 << bits) - 1)


INT8 = _int("int8", TAG_INT8, "b", 1, True)
INT16 = _int("int16", TAG_INT16, "h", 2, True)
INT32 = _int("int32", TAG_INT32, "i", 4, True)
INT64 = _int("int64", TAG_INT64, "q", 8, True)
UINT8 = _int("uint8", TAG_UINT8, "B", 1, False)
UINT16 = _int("uint16", TAG_UINT16, "H", 2, False)
UINT32 = _int("uint32", TAG_UINT32, "I", 4, False)
UINT64 = _int("uint64", TAG_UINT64, "Q", 8, False)
FLOAT32 = ElemType("float32", TAG_FLOAT32, "f", 4, True, True, 0, 0)
FLOAT64 = ElemType("float64", TAG_FLOAT64, "d", 8, True, True, 0, 0)

ELEM_TYPES: Dict[str, ElemType] = {
    t.name: t
    for t in (INT8, INT16, INT32, INT64,
              UINT8, UINT16, UINT32, UINT64,
              FLOAT32, FLOAT64)
}

_BY_TAG: Dict[int, ElemType] = {t.tag: t for t in ELEM_TYPES.values()}

# (kind, itemsize) → element type, for array.array / memoryview formats.
# Typecodes like 'l' change size between platforms, so match on size.
_BY_KIND: Dict[tuple, ElemType] = {
    ("signed", t.size): t for t in (INT8, INT16, INT32, INT64)
}
_BY_KIND.update({("unsigned", t.size): t for t in (UINT8, UINT16, UINT32, UINT64)})
_BY_KIND.update({("float", 4): FLOAT32, ("float", 8): FLOAT64})

ElemTypeLike = Union[str, ElemType]


def elem_type(ctype: ElemTypeLike) -> ElemType:
    """Resolve a type name (``"int32"``) or entry to an ``ElemType``."""
    if isinstance(ctype, ElemType):
        return ctype
    try:
        return ELEM_TYPES[ctype]
    except (KeyError, TypeError):
        raise CborError(ERR_TYPE, "unknown element type {!r}".format(ctype))


def from_tag(tag: int) -> Union[ElemType, None]:
    """Element type registered for a typed-array tag, or None."""
    return _BY_TAG.get(tag)


def from_format(fmt: str, itemsize: int) -> ElemType:
    """Element type for a buffer format such as ``array.typecode``."""
    code = fmt.lstrip("@=<>!")
    if code in ("b", "h", "i", "l", "q", "n"):
        kind = "signed"
    elif code in ("B", "c", "H", "I", "L", "Q", "N"):
        kind = "unsigned"
    elif code in ("f", "d"):
        kind = "float"
    else:
        raise CborError(ERR_TYPE, "unsupported buffer format {!r}".format(fmt))
    try:
        return _BY_KIND[(kind, itemsize)]
    except KeyError:
        raise CborError(ERR_TYPE, "unsupported {} item size {}".format(kind, itemsize))


def fits(t: ElemType, value: int) -> bool:
    """True when the integer ``value`` is representable as ``t``."""
    return t.min <= value <= t.max
