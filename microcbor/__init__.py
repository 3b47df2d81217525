"""microcbor — a compact CBOR codec over caller-supplied buffers.

Encode records field by field into a fixed-size buffer, then read back
only the fields you need, without building an object graph.

Quick start:
    >>> from microcbor import MicroCbor
    >>> buf = bytearray(32)
    >>> cbor = MicroCbor(buf)
    >>> cbor.start_map()
    0
    >>> cbor.add("i32", -32000000, "int32")
    0
    >>> cbor.end_map()
    0
    >>> cbor.restart()
    >>> cbor.get("i32", 0, "int32")
    -32000000
    >>> cbor.get("missing", -1, "int16")
    -1

Getters never raise for missing or mismatched data; they return the
default.  Writers never raise for a full buffer; they latch an error
and keep counting ``bytes_needed()`` so the buffer can be sized with a
dry run into ``MicroCbor(None)``.
"""

from __future__ import annotations

from ._adapter import dumps, encoded_size, loads
from ._constants import (
    MAX_NESTING,
    TAG_DURATION_EXT,
    TAG_FLOAT32,
    TAG_FLOAT64,
    TAG_HOMOGENEOUS_ARRAY,
    TAG_INT8,
    TAG_INT16,
    TAG_INT32,
    TAG_INT64,
    TAG_INVALID,
    TAG_TIME_EXT,
    TAG_UINT8,
    TAG_UINT16,
    TAG_UINT32,
    TAG_UINT64,
)
from ._core import CborArray, MicroCbor
from ._errors import (
    ERR_BUFFER_FULL,
    ERR_DEPTH,
    ERR_MALFORMED,
    ERR_MAP_COUNT,
    ERR_READ_ONLY,
    ERR_TYPE,
    ERR_UNBALANCED,
    ERROR,
    OK,
    CborError,
)
from ._types import ELEM_TYPES, ElemType

__version__ = "1.0.0"

__all__ = [
    # Codec
    "MicroCbor",
    "CborArray",
    "ElemType",
    "ELEM_TYPES",
    # Whole-object helpers
    "dumps",
    "loads",
    "encoded_size",
    # Exception
    "CborError",
    # Results and error codes
    "OK",
    "ERROR",
    "ERR_BUFFER_FULL",
    "ERR_READ_ONLY",
    "ERR_DEPTH",
    "ERR_MAP_COUNT",
    "ERR_UNBALANCED",
    "ERR_TYPE",
    "ERR_MALFORMED",
    # Configuration and tags
    "MAX_NESTING",
    "TAG_INVALID",
    "TAG_HOMOGENEOUS_ARRAY",
    "TAG_UINT8",
    "TAG_UINT16",
    "TAG_UINT32",
    "TAG_UINT64",
    "TAG_INT8",
    "TAG_INT16",
    "TAG_INT32",
    "TAG_INT64",
    "TAG_FLOAT32",
    "TAG_FLOAT64",
    "TAG_TIME_EXT",
    "TAG_DURATION_EXT",
]
