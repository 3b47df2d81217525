"""microcbor constants — CBOR major types, simple values, tags and limits.

RFC references: 7049 §2.1 (major types), §2.3 (simple values), §2.4 (tags).
"""

from __future__ import annotations

from typing import Tuple

# ── Major types (high 3 bits of the leading byte) ─────────────
MAJOR_POS_INT: int = 0
MAJOR_NEG_INT: int = 1      # stored as -1 - value
MAJOR_BYTES: int = 2
MAJOR_TEXT: int = 3
MAJOR_ARRAY: int = 4
MAJOR_MAP: int = 5
MAJOR_TAG: int = 6
MAJOR_SIMPLE: int = 7

# Not a wire value.  Marks a field that could not be decoded.
MAJOR_ERROR: int = 8

# ── Minor values that select trailing argument bytes ──────────
MINOR_UINT8: int = 24
MINOR_UINT16: int = 25
MINOR_UINT32: int = 26
MINOR_UINT64: int = 27

# ── Simple values (major type 7) ──────────────────────────────
SIMPLE_FALSE: int = 20
SIMPLE_TRUE: int = 21
SIMPLE_NULL: int = 22
SIMPLE_FLOAT32: int = 26
SIMPLE_FLOAT64: int = 27

CBOR_FALSE: int = MAJOR_SIMPLE << 5 | SIMPLE_FALSE      # 0xF4
CBOR_TRUE: int = MAJOR_SIMPLE << 5 | SIMPLE_TRUE        # 0xF5
CBOR_NULL: int = MAJOR_SIMPLE << 5 | SIMPLE_NULL        # 0xF6
CBOR_FLOAT32: int = MAJOR_SIMPLE << 5 | SIMPLE_FLOAT32  # 0xFA
CBOR_FLOAT64: int = MAJOR_SIMPLE << 5 | SIMPLE_FLOAT64  # 0xFB

# ── Header width by minor value ───────────────────────────────
# Minor 0-23 carry the value inline.  24-27 add 1/2/4/8 big-endian
# bytes.  28-31 (reserved, indefinite length) are not supported and
# have no entry, so lookups past the end of the table mean "error".
HEADER_BYTES: Tuple[int, ...] = (1,) * 24 + (2, 3, 5, 9)

# ── Tags ──────────────────────────────────────────────────────
# "No tag" sentinel reported for untagged fields.
TAG_INVALID: int = 65535

TAG_HOMOGENEOUS_ARRAY: int = 41

# Typed arrays (RFC 8746 numbering, little/host-endian variants).
TAG_UINT8: int = 64
TAG_UINT16: int = 69
TAG_UINT32: int = 70
TAG_UINT64: int = 71
TAG_INT8: int = 72
TAG_INT16: int = 77
TAG_INT32: int = 78
TAG_INT64: int = 79
TAG_FLOAT32: int = 85
TAG_FLOAT64: int = 86

# Application extensions for time and duration values.
TAG_TIME_EXT: int = 1001
TAG_DURATION_EXT: int = 1002

# ── Limits ────────────────────────────────────────────────────
# Maximum number of simultaneously open maps/arrays while encoding.
MAX_NESTING: int = 4

# Recursion bound when skipping nested containers during a lookup.
# Anything deeper is treated as malformed rather than followed.
MAX_SKIP_DEPTH: int = 64
