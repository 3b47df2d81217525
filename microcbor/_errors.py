"""microcbor result codes, error codes and the exception class.

The codec itself never raises for buffer or data problems.  Write
errors are latched on the instance and reported through
``get_result()``; read errors make lookups fall back to the caller's
default.  ``CborError`` is reserved for programming mistakes (a value
the codec cannot represent) and for the adapter/CLI layers, which turn
a failed result into an exception.
"""

from __future__ import annotations

from typing import Dict

# ── Result codes returned by write operations ─────────────────
OK: int = 0
ERROR: int = -1

# ── Error codes ──────────────────────────────────────────────
# Latched write errors.  Only the first one is kept.
ERR_BUFFER_FULL: str = "ERR_BUFFER_FULL"  # reserved bytes exceed capacity
ERR_READ_ONLY: str = "ERR_READ_ONLY"      # write on an immutable buffer
ERR_DEPTH: str = "ERR_DEPTH"              # more than max_nesting open scopes
ERR_MAP_COUNT: str = "ERR_MAP_COUNT"      # true count wider than reserved header
ERR_UNBALANCED: str = "ERR_UNBALANCED"    # end_map/end_array with nothing open

# Raised as CborError.
ERR_TYPE: str = "ERR_TYPE"                # unsupported value or element type
ERR_MALFORMED: str = "ERR_MALFORMED"      # loads() on bytes it cannot walk

DESCRIPTIONS: Dict[str, str] = {
    ERR_BUFFER_FULL: "buffer too small",
    ERR_READ_ONLY: "buffer is read-only",
    ERR_DEPTH: "maximum nesting depth exceeded",
    ERR_MAP_COUNT: "element count does not fit the reserved header",
    ERR_UNBALANCED: "no open map or array to close",
    ERR_TYPE: "unsupported type",
    ERR_MALFORMED: "malformed CBOR data",
}


class CborError(Exception):
    """Exception for values the codec cannot encode or decode.

    The `.code` attribute is one of the ERR_* strings above.
    """

    def __init__(self, code: str, msg: str = "") -> None:
        super().__init__(msg or DESCRIPTIONS.get(code, code))
        self.code = code
