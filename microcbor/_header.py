"""microcbor header codec — the 1 to 9 byte CBOR item header.

Every CBOR item starts with one byte: the major type in the top three
bits and a five bit "minor" value.  Minor values below 24 are the
argument itself; 24-27 say the argument follows in 1, 2, 4 or 8
big-endian bytes.  The argument is a length for strings and
containers, the value for integers, and the bit pattern for floats.

Tags (major type 6) are transparent to readers: ``decode_header``
steps over them and reports the tagged item with the tag attached.
"""

from __future__ import annotations

import struct
from typing import Dict, NamedTuple, Optional

from ._constants import (
    HEADER_BYTES,
    MAJOR_ERROR,
    MAJOR_TAG,
    MINOR_UINT8,
    MINOR_UINT16,
    MINOR_UINT32,
    MINOR_UINT64,
    TAG_INVALID,
)
from ._errors import ERR_TYPE, CborError


class FieldInfo(NamedTuple):
    """Decoded header of one item.

    ``offset`` is the position of the item's own header, after any tag
    headers that wrapped it.
    """

    tag: int
    major: int
    minor: int
    header_size: int
    offset: int

    @property
    def payload(self) -> int:
        """Offset of the first byte after the header."""
        return self.offset + self.header_size


ERROR_FIELD = FieldInfo(TAG_INVALID, MAJOR_ERROR, 0, 0, 0)

# Header width → (minor value, struct format of the trailing argument).
_WIDTHS: Dict[int, tuple] = {
    2: (MINOR_UINT8, ">B"),
    3: (MINOR_UINT16, ">H"),
    5: (MINOR_UINT32, ">I"),
    9: (MINOR_UINT64, ">Q"),
}


def header_size(value: int) -> int:
    """Width of the smallest header that can carry ``value``."""
    if value < 24:
        return 1
    if value < 0x100:
        return 2
    if value < 0x10000:
        return 3
    if value < 0x100000000:
        return 5
    return 9


def encode_fixed(major: int, value: int, size: int) -> bytes:
    """Encode a header of exactly ``size`` bytes.

    Used for fixed-width integers and for map-count backpatching, where
    the width is decided by something other than the value.
    """
    if size == 1:
        return bytes([major << 5 | value])
    minor, fmt = _WIDTHS[size]
    return bytes([major << 5 | minor]) + struct.pack(fmt, value)


def encode_header(major: int, length: int) -> bytes:
    """Encode a header using the minimal width for ``length``."""
    return encode_fixed(major, length, header_size(length))


def encode_tag(tag: int) -> bytes:
    """Encode a tag header.  Tags are limited to 16 bits."""
    if tag < 0 or tag > 0xFFFF:
        raise CborError(ERR_TYPE, "tag {} outside 16-bit range".format(tag))
    return encode_header(MAJOR_TAG, tag)


def field_value(buf: memoryview, info: FieldInfo) -> int:
    """Return the header argument as an unsigned integer."""
    if info.header_size == 1:
        return info.minor
    width = _WIDTHS.get(info.header_size)
    if width is None:
        return 0
    return struct.unpack_from(width[1], buf, info.offset + 1)[0]


def decode_header(buf: memoryview, offset: int, end: int) -> FieldInfo:
    """Decode the header at ``offset``, never reading at or past ``end``.

    Returns ``ERROR_FIELD`` when the header is truncated or uses an
    unsupported minor value (28-31).
    """
    tag: Optional[int] = None
    while True:
        if offset < 0 or offset >= end:
            return ERROR_FIELD
        lead = buf[offset]
        major = lead >> 5
        minor = lead & 0x1F
        if minor >= len(HEADER_BYTES):
            return ERROR_FIELD
        size = HEADER_BYTES[minor]
        if offset + size > end:
            return ERROR_FIELD
        info = FieldInfo(TAG_INVALID, major, minor, size, offset)
        if major != MAJOR_TAG:
            break
        # The outermost tag is the one reported.
        if tag is None:
            tag = field_value(buf, info)
        offset += size

    if tag is not None:
        info = info._replace(tag=tag)
    return info
