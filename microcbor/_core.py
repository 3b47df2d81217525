"""microcbor core — encode into and query a caller-supplied buffer.

``MicroCbor`` works directly on the caller's memory.  It never grows,
copies or owns the buffer: a ``bytearray`` (or writable memoryview)
gives a read/write codec, ``bytes`` (or a read-only memoryview) gives a
read-only one.

Writing appends key/value pairs at a cursor.  Map headers are written
when a map is opened, with the caller's hint as the element count, and
patched in place when the map is closed.  A write that does not fit
latches an error, after which nothing more is stored, but
``bytes_needed()`` keeps counting.  Running the same calls against a
zero-capacity codec is therefore the way to size a buffer.

Reading never decodes more than it has to.  A lookup walks the headers
of the map at the cursor, skipping values it is not interested in, and
hands back defaults for anything missing, mistyped or malformed.
Strings and typed arrays can be returned as memoryviews into the
buffer itself; those views are only valid while the buffer is.

Typical use:

    buf = bytearray(64)
    cbor = MicroCbor(buf)
    cbor.start_map()
    cbor.add("i32", -32000000, "int32")
    cbor.add("pts", array.array("i", [1, 2, 3, 4]))
    cbor.end_map()

    cbor.restart()
    cbor.get("i32", 0, "int32")      # -32000000
    cbor.get_pointer("pts", "int32") # CborArray(length=4, p=<memory ...>)
"""

from __future__ import annotations

import array
import logging
import struct
from contextlib import contextmanager
from typing import Any, Iterator, List, NamedTuple, Optional, Tuple

from ._constants import (
    CBOR_FALSE,
    CBOR_FLOAT32,
    CBOR_FLOAT64,
    CBOR_NULL,
    CBOR_TRUE,
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
    SIMPLE_TRUE,
)
from ._errors import (
    ERR_BUFFER_FULL,
    ERR_DEPTH,
    ERR_MAP_COUNT,
    ERR_READ_ONLY,
    ERR_TYPE,
    ERR_UNBALANCED,
    ERROR,
    OK,
    CborError,
)
from ._header import (
    ERROR_FIELD,
    FieldInfo,
    decode_header,
    encode_fixed,
    encode_header,
    encode_tag,
    field_value,
    header_size,
)
from ._types import (
    FLOAT64,
    INT32,
    INT64,
    UINT8,
    UINT64,
    ElemType,
    elem_type,
    fits,
    from_format,
)

_log = logging.getLogger(__name__)

_NUL = b"\x00"

# Values CBOR integers can carry: major type 0 or 1 with a 64-bit argument.
_CBOR_INT_MIN = -(1 << 64)
_CBOR_INT_MAX = (1 << 64) - 1


class CborArray(NamedTuple):
    """Zero-copy view of a typed array: element count and a memoryview."""

    length: int
    p: Any


class _Scope:
    """Bookkeeping for one open map or array."""

    __slots__ = ("major", "start", "hint", "width", "count")

    def __init__(self) -> None:
        self.major = MAJOR_MAP
        self.start = 0   # offset of the container header
        self.hint = 0    # count written at open time
        self.width = 1   # header bytes reserved at open time
        self.count = 0   # items actually added


def _as_view(buf: Any) -> memoryview:
    """Flat unsigned-byte memoryview over ``buf`` (None → empty, writable)."""
    if buf is None:
        return memoryview(bytearray())
    view = memoryview(buf)
    if view.format != "B" or view.ndim != 1:
        view = view.cast("B")
    return view


def _logical_key(raw: bytes) -> bytes:
    """Key bytes up to the first NUL (alignment padding is NUL bytes)."""
    nul = raw.find(_NUL)
    return raw if nul < 0 else raw[:nul]


def _encode_int(value: int, size: int) -> bytes:
    if value < 0:
        return encode_fixed(MAJOR_NEG_INT, -1 - value, size)
    return encode_fixed(MAJOR_POS_INT, value, size)


def _int_type(value: int, ctype: Any) -> ElemType:
    if ctype is None:
        # Literal ints default to a 32-bit slot, widening only when needed.
        for t in (INT32, INT64, UINT64):
            if fits(t, value):
                return t
        raise CborError(ERR_TYPE, "integer {} outside 64-bit range".format(value))
    t = elem_type(ctype)
    if not fits(t, value):
        raise CborError(ERR_TYPE, "integer {} outside {} range".format(value, t.name))
    return t


def _array_bytes(values: Any, ctype: Any) -> Tuple[ElemType, bytes]:
    """Element type and raw host-order bytes for a typed array."""
    t = elem_type(ctype) if ctype is not None else None

    if isinstance(values, (bytes, bytearray, memoryview, array.array)):
        view = memoryview(values)
        src = from_format(view.format, view.itemsize)
        if t is None:
            t = src
        if src == t or (src == UINT8 and not isinstance(values, array.array)):
            # Same element type, or raw bytes to be read as ``t``.
            raw = view.tobytes()
            if len(raw) % t.size:
                raise CborError(ERR_TYPE, "{} bytes is not a whole number of {}"
                                .format(len(raw), t.name))
            return t, raw
        values = view.tolist()

    if t is None:
        raise CborError(ERR_TYPE, "element type required for {}"
                        .format(type(values).__name__))
    try:
        return t, struct.pack("={}{}".format(len(values), t.fmt), *values)
    except (struct.error, OverflowError, TypeError) as e:
        raise CborError(ERR_TYPE, "cannot pack values as {}: {}".format(t.name, e))


def _scalar_payload(value: Any, ctype: Any, null_terminate: bool) -> bytes:
    """Encoded bytes for a single value, validated before anything is stored."""
    if value is None:
        return bytes([CBOR_NULL])

    # bool before int: isinstance(True, int) is True.
    if isinstance(value, bool):
        return bytes([CBOR_TRUE if value else CBOR_FALSE])

    if isinstance(value, (int, float)):
        t = elem_type(ctype) if ctype is not None else None
        if isinstance(value, int) and (t is None or not t.is_float):
            t = _int_type(value, t)
            return _encode_int(value, t.size + 1)
        if t is None:
            t = FLOAT64
        if not t.is_float:
            raise CborError(ERR_TYPE, "float value for {} field".format(t.name))
        try:
            if t.size == 4:
                return struct.pack(">Bf", CBOR_FLOAT32, value)
            return struct.pack(">Bd", CBOR_FLOAT64, value)
        except (struct.error, OverflowError):
            raise CborError(ERR_TYPE, "{} outside {} range".format(value, t.name))

    if isinstance(value, str):
        raw = value.encode("utf-8")
        if null_terminate:
            raw += _NUL
        return encode_header(MAJOR_TEXT, len(raw)) + raw

    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = memoryview(value).tobytes()
        return encode_header(MAJOR_BYTES, len(raw)) + raw

    raise CborError(ERR_TYPE, "unsupported type: {}".format(type(value).__name__))


class MicroCbor:
    """CBOR encoder/decoder over a fixed caller-owned buffer.

    ``null_terminate`` controls whether string values get a trailing
    NUL on the wire; it defaults to on for writable buffers and off for
    read-only ones.  ``max_nesting`` bounds how many maps/arrays may be
    open at once while encoding.
    """

    def __init__(self, buf: Any = None, max_len: Optional[int] = None,
                 null_terminate: Optional[bool] = None,
                 max_nesting: int = MAX_NESTING) -> None:
        self._max_nesting = max_nesting
        self._scopes: List[_Scope] = [_Scope() for _ in range(max_nesting)]
        self.init_buffer(buf, max_len)
        if null_terminate is None:
            null_terminate = not self._read_only
        self.null_terminate = null_terminate

    # ── Lifecycle ─────────────────────────────────────────────

    def init_buffer(self, buf: Any, max_len: Optional[int] = None) -> None:
        """Switch to a new buffer and reset all state."""
        view = _as_view(buf)
        if max_len is not None:
            view = view[:max_len]
        self._buf = view
        self._max_len = len(view)
        self._read_only = view.readonly
        self.restart()

    def restart(self) -> None:
        """Reset cursor, nesting and result to reuse the same buffer."""
        self._depth = -1
        self._result = OK
        self._offset = 0
        self._needed = 0
        self.error: Optional[str] = None

    @property
    def read_only(self) -> bool:
        return self._read_only

    @property
    def depth(self) -> int:
        """Index of the innermost open scope, -1 when none is open."""
        return self._depth

    def get_result(self) -> int:
        """OK (0) or ERROR (-1).  ``error`` holds the first cause."""
        return self._result

    def get_buffer(self) -> memoryview:
        return self._buf

    def getvalue(self) -> bytes:
        """Copy of the bytes serialized so far."""
        return self._buf[:self._offset].tobytes()

    def bytes_serialized(self) -> int:
        return self._offset

    def bytes_needed(self) -> int:
        """Bytes the calls so far require, even if they did not fit."""
        return self._needed

    # ── Low-level output ──────────────────────────────────────

    def _fail(self, code: str) -> int:
        if self._result == OK:
            _log.debug("encode failed: %s (needed=%d, capacity=%d)",
                       code, self._needed, self._max_len)
            self.error = code
        self._result = ERROR
        return ERROR

    def _reserve(self, n: int) -> None:
        self._needed += n
        if self._needed > self._max_len:
            self._fail(ERR_BUFFER_FULL)

    def _store(self, data: bytes) -> None:
        n = len(data)
        self._reserve(n)
        if self._result == OK:
            self._buf[self._offset:self._offset + n] = data
            self._offset += n

    def _writable(self) -> bool:
        if self._read_only:
            self._fail(ERR_READ_ONLY)
            return False
        return True

    def _current(self) -> Optional[_Scope]:
        if self._depth < 0:
            return None
        return self._scopes[self._depth]

    def _begin_item(self, name: Optional[str], padding: int = 0) -> None:
        """Count the item in the open scope and write its key, if any.

        Inside an array no key is written.  A None or empty name means
        "no key" (list-style encoding) and is not counted in a map.
        """
        scope = self._current()
        if scope is not None and scope.major == MAJOR_ARRAY:
            scope.count += 1
            return
        if not name:
            return
        if scope is not None:
            scope.count += 1
        raw = name.encode("utf-8") + _NUL * padding
        self._store(encode_header(MAJOR_TEXT, len(raw)))
        self._store(raw)

    def _key_padding(self, name: Optional[str], tail: int, size: int) -> int:
        """NUL bytes to append to ``name`` so the array payload is aligned.

        ``tail`` is the size of everything between the key and the
        payload (tag and byte-string headers).  Offsets are absolute
        buffer positions, so the result is the same on a sizing pass.
        """
        scope = self._current()
        if not name or size <= 1 or (scope is not None and scope.major == MAJOR_ARRAY):
            return 0
        key_len = len(name.encode("utf-8"))
        pad = 0
        while True:
            n = key_len + pad
            if (self._needed + header_size(n) + n + tail) % size == 0:
                return pad
            pad += 1

    # ── Maps and arrays ───────────────────────────────────────

    def _open(self, major: int, name: Optional[str], hint: int) -> int:
        if not self._writable():
            return ERROR
        if self._depth + 1 >= self._max_nesting:
            return self._fail(ERR_DEPTH)
        self._begin_item(name)
        self._depth += 1
        scope = self._scopes[self._depth]
        scope.major = major
        scope.start = self._offset
        scope.hint = hint
        scope.width = header_size(hint)
        scope.count = 0
        self._store(encode_header(major, hint))
        return self._result

    def _close(self, major: int) -> int:
        if not self._writable():
            return ERROR
        scope = self._current()
        if scope is None or scope.major != major:
            return self._fail(ERR_UNBALANCED)
        self._depth -= 1
        if scope.count != scope.hint:
            # The header cannot grow without shifting everything after it.
            if header_size(scope.count) > scope.width:
                return self._fail(ERR_MAP_COUNT)
            if self._result == OK:
                patch = encode_fixed(major, scope.count, scope.width)
                self._buf[scope.start:scope.start + scope.width] = patch
        return self._result

    def start_map(self, name: Optional[str] = None, hint: int = 0) -> int:
        """Open a map, optionally as the value of key ``name``.

        ``hint`` is the expected number of key/value pairs.  It decides
        the width of the map header: a hint below 24 reserves one byte,
        so a map that may end up with 24 or more keys needs a hint of
        at least 24.
        """
        return self._open(MAJOR_MAP, name, hint)

    def end_map(self) -> int:
        """Close the innermost map, fixing its count if the hint was off."""
        return self._close(MAJOR_MAP)

    def start_array(self, name: Optional[str] = None, hint: int = 0) -> int:
        """Open an array; values added inside it are written without keys."""
        return self._open(MAJOR_ARRAY, name, hint)

    def end_array(self) -> int:
        return self._close(MAJOR_ARRAY)

    @contextmanager
    def map_scope(self, name: Optional[str] = None, hint: int = 0) -> Iterator[MicroCbor]:
        self.start_map(name, hint)
        try:
            yield self
        finally:
            self.end_map()

    @contextmanager
    def array_scope(self, name: Optional[str] = None, hint: int = 0) -> Iterator[MicroCbor]:
        self.start_array(name, hint)
        try:
            yield self
        finally:
            self.end_array()

    # ── Values ────────────────────────────────────────────────

    def add(self, name: Optional[str], value: Any, ctype: Any = None) -> int:
        """Add ``value`` under key ``name``.

        Integers take the fixed header width of ``ctype`` ("int8" ..
        "uint64"), so a field always occupies the same number of bytes
        whatever its value.  Without ``ctype`` an int is stored as
        int32 when it fits, else int64/uint64, and a float as float64.
        ``array.array`` values are stored as typed arrays.
        """
        if isinstance(value, array.array):
            return self.add_array(name, value, ctype)
        if not self._writable():
            return ERROR
        payload = _scalar_payload(value, ctype, self.null_terminate)
        self._begin_item(name)
        self._store(payload)
        return self._result

    def add_minimal(self, name: Optional[str], value: int) -> int:
        """Add an integer using the smallest header its magnitude allows."""
        if isinstance(value, bool) or not isinstance(value, int):
            raise CborError(ERR_TYPE, "add_minimal takes an int, not {}"
                            .format(type(value).__name__))
        if not _CBOR_INT_MIN <= value <= _CBOR_INT_MAX:
            raise CborError(ERR_TYPE, "integer {} outside CBOR range".format(value))
        if not self._writable():
            return ERROR
        if value < 0:
            payload = encode_header(MAJOR_NEG_INT, -1 - value)
        else:
            payload = encode_header(MAJOR_POS_INT, value)
        self._begin_item(name)
        self._store(payload)
        return self._result

    def add_array(self, name: Optional[str], values: Any, ctype: Any = None,
                  align: bool = True) -> int:
        """Add a homogeneous numeric array as a tagged byte string.

        ``values`` may be an ``array.array``, a buffer, or a sequence of
        numbers (then ``ctype`` is required).  Elements are stored in
        host byte order.  With ``align`` the key is padded with NUL
        bytes so the payload starts at a multiple of the element size.
        """
        if not self._writable():
            return ERROR
        t, raw = _array_bytes(values, ctype)
        tag = encode_tag(t.tag)
        length = encode_header(MAJOR_BYTES, len(raw))
        padding = 0
        if align:
            padding = self._key_padding(name, len(tag) + len(length), t.size)
        self._begin_item(name, padding)
        self._store(tag)
        self._store(length)
        self._store(raw)
        return self._result

    def add_tagged(self, name: Optional[str], tag: int, value: Any,
                   ctype: Any = None) -> int:
        """Add a scalar wrapped in a tag (e.g. TAG_TIME_EXT)."""
        if not self._writable():
            return ERROR
        header = encode_tag(tag)
        payload = _scalar_payload(value, ctype, self.null_terminate)
        self._begin_item(name)
        self._store(header)
        self._store(payload)
        return self._result

    # ── Reading ───────────────────────────────────────────────

    def _skip(self, info: FieldInfo, depth: int = 0) -> int:
        """Offset just past the item ``info`` describes, or -1."""
        if info.major == MAJOR_ERROR or depth > MAX_SKIP_DEPTH:
            return -1
        end = self._max_len
        n = field_value(self._buf, info)
        pos = info.payload

        if info.major in (MAJOR_BYTES, MAJOR_TEXT):
            pos += n
            return pos if pos <= end else -1

        if info.major in (MAJOR_MAP, MAJOR_ARRAY):
            items = 2 * n if info.major == MAJOR_MAP else n
            for _ in range(items):
                pos = self._skip(decode_header(self._buf, pos, end), depth + 1)
                if pos < 0:
                    return -1
            return pos

        return pos

    def _find_element(self, name: Optional[str]) -> FieldInfo:
        """Header of the value stored under ``name`` in the map at the cursor.

        Keys compare up to their first NUL byte, so a key padded for
        array alignment still matches its plain name.  The cursor is
        left where it was.
        """
        if not name:
            return ERROR_FIELD
        buf, end = self._buf, self._max_len
        info = decode_header(buf, self._offset, end)
        if info.major != MAJOR_MAP:
            return ERROR_FIELD

        target = _logical_key(name.encode("utf-8"))
        remaining = field_value(buf, info)
        pos = info.payload
        while remaining:
            remaining -= 1
            key = decode_header(buf, pos, end)
            if key.major == MAJOR_TEXT:
                key_len = field_value(buf, key)
                start = key.payload
                if start + key_len > end:
                    return ERROR_FIELD
                if (len(target) <= key_len
                        and _logical_key(buf[start:start + key_len].tobytes()) == target):
                    return decode_header(buf, start + key_len, end)
            pos = self._skip(key)
            if pos < 0:
                return ERROR_FIELD
            pos = self._skip(decode_header(buf, pos, end))
            if pos < 0:
                return ERROR_FIELD
        return ERROR_FIELD

    def _payload(self, info: FieldInfo) -> Optional[memoryview]:
        """Zero-copy slice over a string/byte-string payload, if in bounds."""
        n = field_value(self._buf, info)
        start = info.payload
        if start + n > self._max_len:
            return None
        return self._buf[start:start + n]

    def __contains__(self, name: str) -> bool:
        return self._find_element(name).major != MAJOR_ERROR

    def has(self, name: str) -> bool:
        return name in self

    def get(self, name: str, default: Any, ctype: Any = None) -> Any:
        """Value of ``name``, or ``default`` if absent, mistyped or malformed.

        ``ctype`` is an element type name, "int", "float", "bool",
        "str" or "bytes".  Without it the kind is taken from the type of
        ``default``.  Integers outside the range of ``ctype`` count as
        mistyped.  Strings lose the NUL terminator added on encode.
        """
        kind = ctype if ctype is not None else _infer_kind(default)
        info = self._find_element(name)
        if info.major == MAJOR_ERROR:
            return default

        if kind == "bool":
            if info.major == MAJOR_SIMPLE and info.minor == SIMPLE_FALSE:
                return False
            if info.major == MAJOR_SIMPLE and info.minor == SIMPLE_TRUE:
                return True
            return default

        if kind in ("str", "bytes"):
            want = MAJOR_TEXT if kind == "str" else MAJOR_BYTES
            if info.major != want:
                return default
            view = self._payload(info)
            if view is None:
                return default
            raw = view.tobytes()
            if want == MAJOR_BYTES:
                return raw
            if raw.endswith(_NUL):
                raw = raw[:-1]
            try:
                return raw.decode("utf-8")
            except UnicodeDecodeError:
                return default

        if kind == "int":
            t = None
        elif kind == "float":
            t = FLOAT64
        else:
            t = elem_type(kind)

        if t is None or not t.is_float:
            if info.major not in (MAJOR_POS_INT, MAJOR_NEG_INT):
                return default
            value = field_value(self._buf, info)
            if info.major == MAJOR_NEG_INT:
                value = -1 - value
            if t is not None and not fits(t, value):
                return default
            return value

        if info.major != MAJOR_SIMPLE:
            return default
        if info.minor == SIMPLE_FLOAT32 and t.size == 4:
            return struct.unpack_from(">f", self._buf, info.offset + 1)[0]
        if info.minor == SIMPLE_FLOAT64 and t.size == 8:
            return struct.unpack_from(">d", self._buf, info.offset + 1)[0]
        if kind == "float" and info.minor == SIMPLE_FLOAT32:
            return struct.unpack_from(">f", self._buf, info.offset + 1)[0]
        return default

    def get_view(self, name: str, default: Any = None) -> Any:
        """Memoryview of a string or byte-string payload, exactly as stored.

        No copy is made; a NUL terminator, if encoded, is included.
        """
        info = self._find_element(name)
        if info.major not in (MAJOR_TEXT, MAJOR_BYTES):
            return default
        view = self._payload(info)
        return default if view is None else view

    def get_pointer(self, name: str, ctype: Any, default: Any = None) -> CborArray:
        """Zero-copy view of a typed array whose tag matches ``ctype``."""
        t = elem_type(ctype)
        info = self._find_element(name)
        if info.tag != t.tag or info.major != MAJOR_BYTES:
            return CborArray(0, default)
        view = self._payload(info)
        if view is None:
            return CborArray(0, default)
        length = len(view) // t.size
        return CborArray(length, view[:length * t.size].cast(t.fmt))

    def get_length(self, name: str) -> int:
        """Byte count (byte strings, typed arrays), string length without
        a NUL terminator, or element count (maps, arrays); 0 if absent."""
        info = self._find_element(name)
        if info.major not in (MAJOR_BYTES, MAJOR_TEXT, MAJOR_MAP, MAJOR_ARRAY):
            return 0
        n = field_value(self._buf, info)
        if info.major == MAJOR_TEXT and n > 0:
            last = info.payload + n - 1
            if last < self._max_len and self._buf[last] == 0:
                n -= 1
        return n

    def get_tag(self, name: str) -> int:
        """Tag attached to ``name``'s value, or TAG_INVALID."""
        return self._find_element(name).tag

    def get_map(self, name: str) -> MicroCbor:
        """Read-only codec positioned on the nested map ``name``.

        The new instance shares the parent's buffer.  An empty codec is
        returned when ``name`` is missing or not a map, so lookups on
        it simply yield defaults.
        """
        info = self._find_element(name)
        if info.major != MAJOR_MAP:
            return MicroCbor(max_nesting=self._max_nesting)
        return MicroCbor(self._buf[info.offset:].toreadonly(),
                         max_nesting=self._max_nesting)


def _infer_kind(default: Any) -> str:
    if isinstance(default, bool):
        return "bool"
    if isinstance(default, int):
        return "int"
    if isinstance(default, float):
        return "float"
    if isinstance(default, str):
        return "str"
    if isinstance(default, (bytes, bytearray, memoryview)):
        return "bytes"
    raise CborError(ERR_TYPE, "cannot infer field type from default {!r}; pass ctype"
                    .format(default))
