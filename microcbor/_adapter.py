"""microcbor object adapter — plain Python values to and from CBOR bytes.

``MicroCbor`` is built for reading fields in place.  This module covers
the other common need: turning a whole ``dict`` into bytes, or a whole
buffer back into Python objects (for tooling, logging, tests).

Type mapping on encode:

    dict            → map (string keys)
    list of ints    → typed int64 array
    list of floats  → typed float64 array
    other list      → array
    int             → int32 / int64 / uint64 (or minimal width)
    float           → float64
    str, bytes, bool, None → string, byte string, true/false, null

Decode accepts everything the codec writes.  Typed arrays come back as
lists of numbers, strings lose the NUL terminator that null-terminating
encoders append, and keys lose their alignment padding.
"""

from __future__ import annotations

import struct
from typing import Any, Dict, Optional, Sequence, Tuple

from ._constants import (
    MAJOR_ARRAY,
    MAJOR_BYTES,
    MAJOR_ERROR,
    MAJOR_MAP,
    MAJOR_NEG_INT,
    MAJOR_POS_INT,
    MAJOR_SIMPLE,
    MAJOR_TEXT,
    MAX_NESTING,
    MAX_SKIP_DEPTH,
    SIMPLE_FALSE,
    SIMPLE_FLOAT32,
    SIMPLE_FLOAT64,
    SIMPLE_NULL,
    SIMPLE_TRUE,
)
from ._core import MicroCbor, _as_view
from ._errors import ERR_BUFFER_FULL, ERR_MALFORMED, ERR_TYPE, OK, CborError
from ._header import decode_header, field_value
from ._types import INT64, from_tag, fits


# ── Encode ────────────────────────────────────────────────────

def _numeric_list_type(values: Sequence[Any]) -> Optional[str]:
    """Typed-array element type for a list, or None for a generic array."""
    if not values:
        return None
    # bool is an int subclass; a list of flags is not a numeric array.
    if all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        if all(fits(INT64, v) for v in values):
            return "int64"
        return None
    if all(isinstance(v, float) for v in values):
        return "float64"
    return None


def _encode(cbor: MicroCbor, name: Optional[str], value: Any, minimal: bool) -> None:
    if isinstance(value, dict):
        cbor.start_map(name, len(value))
        for k, v in value.items():
            if not isinstance(k, str):
                raise CborError(ERR_TYPE, "map key must be a string")
            if not k:
                # An empty key is the codec's "no key" marker.
                raise CborError(ERR_TYPE, "map key must not be empty")
            _encode(cbor, k, v, minimal)
        cbor.end_map()
        return

    if isinstance(value, (list, tuple)):
        ctype = _numeric_list_type(value)
        if ctype is not None:
            cbor.add_array(name, value, ctype)
            return
        cbor.start_array(name, len(value))
        for item in value:
            _encode(cbor, None, item, minimal)
        cbor.end_array()
        return

    if minimal and isinstance(value, int) and not isinstance(value, bool):
        cbor.add_minimal(name, value)
        return

    cbor.add(name, value)


def encoded_size(obj: Any, *, null_terminate: bool = False, minimal: bool = False,
                 max_nesting: int = MAX_NESTING) -> int:
    """Bytes ``dumps(obj)`` will produce, found by encoding into no buffer."""
    probe = MicroCbor(None, null_terminate=null_terminate, max_nesting=max_nesting)
    _encode(probe, None, obj, minimal)
    if probe.error not in (None, ERR_BUFFER_FULL):
        raise CborError(probe.error)
    return probe.bytes_needed()


def dumps(obj: Any, *, null_terminate: bool = False, minimal: bool = False,
          max_nesting: int = MAX_NESTING) -> bytes:
    """Encode ``obj`` into a buffer sized exactly by a probing pass."""
    size = encoded_size(obj, null_terminate=null_terminate, minimal=minimal,
                        max_nesting=max_nesting)
    buf = bytearray(size)
    cbor = MicroCbor(buf, null_terminate=null_terminate, max_nesting=max_nesting)
    _encode(cbor, None, obj, minimal)
    if cbor.get_result() != OK:
        raise CborError(cbor.error or ERR_BUFFER_FULL)
    return bytes(buf)


# ── Decode ────────────────────────────────────────────────────

def _text(raw: bytes, what: str) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        raise CborError(ERR_MALFORMED, "invalid utf-8 in {}".format(what))


def _decode_one(buf: memoryview, pos: int, end: int, depth: int) -> Tuple[Any, int]:
    """Decode one item at ``pos``.  Returns (value, offset after it)."""
    if depth > MAX_SKIP_DEPTH:
        raise CborError(ERR_MALFORMED, "nesting too deep")
    info = decode_header(buf, pos, end)
    if info.major == MAJOR_ERROR:
        raise CborError(ERR_MALFORMED, "truncated or unsupported header at offset {}"
                        .format(pos))
    n = field_value(buf, info)
    pos = info.payload

    if info.major == MAJOR_POS_INT:
        return n, pos
    if info.major == MAJOR_NEG_INT:
        return -1 - n, pos

    if info.major in (MAJOR_BYTES, MAJOR_TEXT):
        if pos + n > end:
            raise CborError(ERR_MALFORMED, "truncated string payload")
        raw = buf[pos:pos + n]
        pos += n
        if info.major == MAJOR_TEXT:
            data = raw.tobytes()
            if data.endswith(b"\x00"):
                data = data[:-1]
            return _text(data, "string"), pos
        t = from_tag(info.tag)
        if t is not None and n % t.size == 0:
            return raw.cast(t.fmt).tolist(), pos
        return raw.tobytes(), pos

    if info.major == MAJOR_ARRAY:
        items = []
        for _ in range(n):
            item, pos = _decode_one(buf, pos, end, depth + 1)
            items.append(item)
        return items, pos

    if info.major == MAJOR_MAP:
        out: Dict[str, Any] = {}
        for _ in range(n):
            key = decode_header(buf, pos, end)
            if key.major != MAJOR_TEXT:
                raise CborError(ERR_MALFORMED, "map key must be a string")
            key_len = field_value(buf, key)
            start = key.payload
            if start + key_len > end:
                raise CborError(ERR_MALFORMED, "truncated map key")
            raw = buf[start:start + key_len].tobytes()
            # Strip alignment padding.
            k = _text(raw.split(b"\x00", 1)[0], "map key")
            out[k], pos = _decode_one(buf, start + key_len, end, depth + 1)
        return out, pos

    if info.major == MAJOR_SIMPLE:
        if info.minor == SIMPLE_FALSE:
            return False, pos
        if info.minor == SIMPLE_TRUE:
            return True, pos
        if info.minor == SIMPLE_NULL:
            return None, pos
        if info.minor == SIMPLE_FLOAT32:
            return struct.unpack_from(">f", buf, info.offset + 1)[0], pos
        if info.minor == SIMPLE_FLOAT64:
            return struct.unpack_from(">d", buf, info.offset + 1)[0], pos

    raise CborError(ERR_MALFORMED, "unsupported item 0x{:02x} at offset {}"
                    .format(buf[info.offset], info.offset))


def loads(data: Any) -> Any:
    """Decode the first item in ``data``.  Trailing bytes are ignored,
    since codec buffers are usually larger than what was written."""
    view = _as_view(data)
    value, _end = _decode_one(view, 0, len(view), 0)
    return value
