#!/usr/bin/env python3
# tools/invariants_runner.py
#
# Randomized invariant checks for microcbor.
#
# This runner:
# - generates random records (maps, lists, numbers, strings, bytes) within nesting limits
# - checks encode stability, size probing and the loads(dumps(x)) round trip
# - reads every field back in place through MicroCbor getters
# - checks that an undersized buffer fails cleanly and still reports the full size
# - mutates encoded bytes and checks that readers never raise anything but CborError
#
# Exit code:
#   0 -> all checks passed
#   1 -> invariant violation

import os
import random
import sys
from typing import Any, Dict, List

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from microcbor import ERR_BUFFER_FULL, MAX_NESTING, OK, CborError, MicroCbor, dumps, encoded_size, loads
from microcbor._adapter import _encode

SEED = int(os.environ.get("MICROCBOR_SEED", "1337"))
TRIALS = int(os.environ.get("MICROCBOR_TRIALS", "2000"))
MAX_KEYS = int(os.environ.get("MICROCBOR_GEN_MAX_KEYS", "6"))
MAX_LIST = int(os.environ.get("MICROCBOR_GEN_MAX_LIST", "6"))
MAX_STR = int(os.environ.get("MICROCBOR_GEN_MAX_STR", "24"))
MAX_BYTES = int(os.environ.get("MICROCBOR_GEN_MAX_BYTES", "32"))
MUTATIONS = int(os.environ.get("MICROCBOR_MUTATIONS", "8"))

# The outermost map occupies one nesting level.
MAX_GEN_DEPTH = MAX_NESTING - 1


class Violation(Exception):
    pass


def rand_text(rng: random.Random) -> str:
    # No NUL: it terminates strings and keys on the wire.
    out = []
    for _ in range(rng.randint(0, MAX_STR)):
        r = rng.random()
        if r < 0.75:
            out.append(chr(rng.randint(0x20, 0x7E)))
        elif r < 0.90:
            out.append(chr(rng.randint(0xA0, 0xFF)))
        else:
            out.append(chr(rng.randint(0x0100, 0xD7FF)))
    return "".join(out)


def rand_key(rng: random.Random) -> str:
    return "".join(chr(rng.randint(0x21, 0x7E)) for _ in range(rng.randint(1, 12)))


def rand_bytes(rng: random.Random) -> bytes:
    return bytes(rng.getrandbits(8) for _ in range(rng.randint(0, MAX_BYTES)))


def rand_int(rng: random.Random) -> int:
    bits = rng.choice([4, 8, 16, 31, 40, 63])
    return rng.randint(-(1 << bits), (1 << bits) - 1)


def rand_scalar(rng: random.Random) -> Any:
    r = rng.random()
    if r < 0.30:
        return rand_int(rng)
    if r < 0.45:
        return rng.uniform(-1e6, 1e6)
    if r < 0.70:
        return rand_text(rng)
    if r < 0.80:
        return rand_bytes(rng)
    if r < 0.95:
        return rng.random() < 0.5
    return None


def gen_value(rng: random.Random, depth: int) -> Any:
    if depth >= MAX_GEN_DEPTH:
        return rand_scalar(rng)
    r = rng.random()
    if r < 0.20:
        return gen_map(rng, depth + 1)
    if r < 0.30:
        return [rand_int(rng) for _ in range(rng.randint(1, MAX_LIST))]
    if r < 0.35:
        return [rng.uniform(-1.0, 1.0) for _ in range(rng.randint(1, MAX_LIST))]
    if r < 0.45:
        return [gen_value(rng, depth + 1) for _ in range(rng.randint(0, MAX_LIST))]
    return rand_scalar(rng)


def gen_map(rng: random.Random, depth: int) -> Dict[str, Any]:
    return {rand_key(rng): gen_value(rng, depth) for _ in range(rng.randint(0, MAX_KEYS))}


def check_field(cbor: MicroCbor, key: str, value: Any) -> None:
    """Read ``key`` in place and compare against the source value."""
    if key not in cbor:
        raise Violation("key {!r} not found".format(key))
    if isinstance(value, dict):
        inner = cbor.get_map(key)
        for k, v in value.items():
            check_field(inner, k, v)
        return
    if isinstance(value, list):
        if value and all(isinstance(v, int) and not isinstance(v, bool) for v in value):
            got: Any = cbor.get_pointer(key, "int64").p.tolist()
        elif value and all(isinstance(v, float) for v in value):
            got = cbor.get_pointer(key, "float64").p.tolist()
        else:
            got = cbor.get_length(key)
            value = len(value)
    elif value is None:
        return
    elif isinstance(value, bytes):
        got = cbor.get(key, None, "bytes")
    else:
        got = cbor.get(key, type(value)())
    if got != value:
        raise Violation("field {!r}: got {!r} expected {!r}".format(key, got, value))


def check_record(rng: random.Random, root: Dict[str, Any]) -> None:
    null_terminate = rng.random() < 0.5
    minimal = rng.random() < 0.5

    # (1) Encode stability
    data = dumps(root, null_terminate=null_terminate, minimal=minimal)
    if dumps(root, null_terminate=null_terminate, minimal=minimal) != data:
        raise Violation("encode stability")

    # (2) The probe pass predicts the exact size
    if encoded_size(root, null_terminate=null_terminate, minimal=minimal) != len(data):
        raise Violation("size probe")

    # (3) Round trip
    if loads(data) != root:
        raise Violation("round trip")

    # (4) In-place reads
    cbor = MicroCbor(data)
    for k, v in root.items():
        check_field(cbor, k, v)

    # (5) An undersized buffer latches BUFFER_FULL and keeps counting
    if data:
        short = MicroCbor(bytearray(rng.randint(0, len(data) - 1)), null_terminate=null_terminate)
        try:
            _encode(short, None, root, minimal)
        except CborError:
            raise Violation("encode into short buffer raised")
        if short.get_result() == OK or short.error != ERR_BUFFER_FULL:
            raise Violation("short buffer did not fail with BUFFER_FULL")
        if short.bytes_needed() != len(data):
            raise Violation("bytes_needed after failure")

    # (6) Corrupted input never escapes as anything but CborError
    for _ in range(MUTATIONS):
        mutated = bytearray(data)
        if mutated:
            mutated[rng.randrange(len(mutated))] = rng.getrandbits(8)
        if rng.random() < 0.3:
            mutated = mutated[:rng.randint(0, len(mutated))]
        blob = bytes(mutated)
        try:
            loads(blob)
        except CborError:
            pass
        reader = MicroCbor(blob)
        for k in root:
            reader.get(k, 0)
            reader.get(k, "")
            reader.get_length(k)
            reader.get_map(k).get(k, 0.0)


def run(trials: int = TRIALS, seed: int = SEED) -> List[str]:
    """Run ``trials`` random records.  Returns one message per failure."""
    rng = random.Random(seed)
    failures: List[str] = []
    for t in range(trials):
        root = gen_map(rng, 0)
        try:
            check_record(rng, root)
        except Violation as e:
            failures.append("trial {}: {}".format(t, e))
    return failures


def main() -> int:
    failures = run()
    for msg in failures:
        print("INVARIANT FAIL:", msg)
    if failures:
        return 1
    print(f"OK: invariants passed for TRIALS={TRIALS} seed={SEED}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
