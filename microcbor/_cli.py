"""microcbor command-line interface.

Usage:
    echo '{"a": 1}' | microcbor encode [--minimal] [--null-terminate] [--output FILE]
    echo '{"a": 1}' | microcbor size
    microcbor decode --input record.cbor
    microcbor get i32 --type int32 --input record.cbor
    echo a1616101 | microcbor get a --hex
    microcbor version
"""

from __future__ import annotations

import argparse
import base64
import binascii
import json
import sys
from typing import Any, List, Optional

from . import (
    ELEM_TYPES,
    CborError,
    MicroCbor,
    __version__,
    dumps,
    encoded_size,
    loads,
)

_GET_TYPES = sorted(ELEM_TYPES) + ["int", "float", "bool", "str", "bytes"]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="microcbor",
        description="microcbor — compact CBOR records in fixed buffers",
    )
    sub = parser.add_subparsers(dest="command")

    # ── encode ──
    enc_p = sub.add_parser("encode", help="Encode JSON to CBOR")
    enc_p.add_argument("--input", "-i", metavar="FILE",
                       help="Read JSON from FILE instead of stdin")
    enc_p.add_argument("--output", "-o", metavar="FILE",
                       help="Write CBOR to FILE instead of printing hex")
    enc_p.add_argument("--minimal", action="store_true",
                       help="Store integers in the smallest width")
    enc_p.add_argument("--null-terminate", action="store_true",
                       help="Append a NUL byte to string values")

    # ── size ──
    size_p = sub.add_parser("size", help="Print the encoded size of a JSON document")
    size_p.add_argument("--input", "-i", metavar="FILE",
                        help="Read JSON from FILE instead of stdin")
    size_p.add_argument("--minimal", action="store_true",
                        help="Store integers in the smallest width")
    size_p.add_argument("--null-terminate", action="store_true",
                        help="Append a NUL byte to string values")

    # ── decode ──
    dec_p = sub.add_parser("decode", help="Decode CBOR to JSON")
    dec_p.add_argument("--input", "-i", metavar="FILE",
                       help="Read CBOR from FILE instead of stdin")
    dec_p.add_argument("--hex", action="store_true",
                       help="Input is hex text rather than raw bytes")

    # ── get ──
    get_p = sub.add_parser("get", help="Look up one field of a CBOR map")
    get_p.add_argument("key", help="Field name")
    get_p.add_argument("--type", "-t", dest="ctype", choices=_GET_TYPES,
                       help="Expected field type (default: decode whatever is there)")
    get_p.add_argument("--input", "-i", metavar="FILE",
                       help="Read CBOR from FILE instead of stdin")
    get_p.add_argument("--hex", action="store_true",
                       help="Input is hex text rather than raw bytes")

    # ── version ──
    sub.add_parser("version", help="Print version and exit")

    return parser


def _read_input(filepath: Optional[str]) -> bytes:
    """Read bytes from a file or stdin."""
    if filepath:
        with open(filepath, "rb") as f:
            return f.read()
    if sys.stdin.isatty():
        print("microcbor: reading from stdin (Ctrl-D to end)...", file=sys.stderr)
    return sys.stdin.buffer.read()


def _read_cbor(args: argparse.Namespace) -> bytes:
    raw = _read_input(args.input)
    if args.hex:
        return binascii.unhexlify(b"".join(raw.split()))
    return raw


def _json_default(obj: Any) -> Any:
    # Byte strings are emitted as base64 for safe terminal display.
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    raise TypeError("not JSON serializable: {}".format(type(obj).__name__))


def _print_json(value: Any) -> None:
    print(json.dumps(value, default=_json_default, ensure_ascii=False))


def _cmd_encode(args: argparse.Namespace) -> None:
    obj = json.loads(_read_input(args.input))
    data = dumps(obj, null_terminate=args.null_terminate, minimal=args.minimal)
    if args.output:
        with open(args.output, "wb") as f:
            f.write(data)
    else:
        print(binascii.hexlify(data).decode("ascii"))


def _cmd_size(args: argparse.Namespace) -> None:
    obj = json.loads(_read_input(args.input))
    print(encoded_size(obj, null_terminate=args.null_terminate, minimal=args.minimal))


def _cmd_decode(args: argparse.Namespace) -> None:
    _print_json(loads(_read_cbor(args)))


def _cmd_get(args: argparse.Namespace) -> int:
    data = _read_cbor(args)
    cbor = MicroCbor(data)
    if args.key not in cbor:
        print("microcbor: key {!r} not found".format(args.key), file=sys.stderr)
        return 1
    if args.ctype:
        value = cbor.get(args.key, None, args.ctype)
        if value is None:
            print("microcbor: key {!r} is not of type {}".format(args.key, args.ctype),
                  file=sys.stderr)
            return 1
    else:
        value = loads(data)[args.key]
    _print_json(value)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "version":
        print(f"microcbor {__version__}")
        return

    try:
        if args.command == "encode":
            _cmd_encode(args)
        elif args.command == "size":
            _cmd_size(args)
        elif args.command == "decode":
            _cmd_decode(args)
        elif args.command == "get":
            status = _cmd_get(args)
            if status:
                sys.exit(status)
    except CborError as e:
        print(f"microcbor: error [{e.code}]: {e}", file=sys.stderr)
        sys.exit(2)
    except json.JSONDecodeError as e:
        print(f"microcbor: JSON parse error: {e}", file=sys.stderr)
        sys.exit(2)
    except binascii.Error as e:
        print(f"microcbor: bad hex input: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
