"""Deterministic CBOR encoder/decoder for receipt payloads.

Only the subset needed by receipts is supported: null, booleans, integers,
byte strings, text strings, arrays and text-keyed maps. Encoding is canonical
(shortest integer form, map keys sorted by their encoded bytes) and decoding
rejects anything that would not re-encode to the same bytes, so a payload has
exactly one accepted representation.
"""
from __future__ import annotations

import hashlib
from typing import Any, Iterable

ENCODING_ID = "dag_cbor_canonical_v1"

HASH_PREFIX_PUBLIC = b"DEPSEAL_PUBLIC_V1::"
HASH_PREFIX_IMAGE = b"DEPSEAL_IMAGE_V1::"
HASH_PREFIX_TRACE_STEP = b"DEPSEAL_TRACE_STEP_V1::"


class CanonicalCBORError(ValueError):
    """Raised when encoding or decoding fails."""


def _encode_uint(major: int, value: int) -> bytes:
    if value < 24:
        return bytes([(major << 5) | value])
    if value < 1 << 8:
        return bytes([(major << 5) | 24, value])
    if value < 1 << 16:
        return bytes([(major << 5) | 25]) + value.to_bytes(2, "big")
    if value < 1 << 32:
        return bytes([(major << 5) | 26]) + value.to_bytes(4, "big")
    if value < 1 << 64:
        return bytes([(major << 5) | 27]) + value.to_bytes(8, "big")
    raise CanonicalCBORError("integer too large for canonical encoder")


def _encode_int(value: int) -> bytes:
    if value >= 0:
        return _encode_uint(0, value)
    return _encode_uint(1, -1 - value)


def _encode_array(values: Iterable[Any]) -> bytes:
    values = list(values)
    out = bytearray(_encode_uint(4, len(values)))
    for value in values:
        out.extend(_encode_value(value))
    return bytes(out)


def _encode_map(obj: dict) -> bytes:
    entries = []
    for key, value in obj.items():
        if not isinstance(key, str):
            raise CanonicalCBORError(f"map keys must be text, got {type(key)!r}")
        entries.append((_encode_value(key), value))
    entries.sort(key=lambda item: item[0])
    out = bytearray(_encode_uint(5, len(entries)))
    for encoded_key, value in entries:
        out.extend(encoded_key)
        out.extend(_encode_value(value))
    return bytes(out)


def _encode_value(value: Any) -> bytes:
    if value is None:
        return b"\xf6"
    if value is True:
        return b"\xf5"
    if value is False:
        return b"\xf4"
    if isinstance(value, int):
        return _encode_int(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
        return _encode_uint(2, len(data)) + data
    if isinstance(value, str):
        data = value.encode("utf-8")
        return _encode_uint(3, len(data)) + data
    if isinstance(value, (list, tuple)):
        return _encode_array(value)
    if isinstance(value, dict):
        return _encode_map(value)
    raise CanonicalCBORError(f"unsupported type {type(value)!r}")


def canonical_encode(obj: Any) -> bytes:
    return _encode_value(obj)


def _read_uint(ai: int, data: memoryview, pos: int) -> tuple[int, int]:
    if ai < 24:
        return ai, pos
    widths = {24: 1, 25: 2, 26: 4, 27: 8}
    width = widths.get(ai)
    if width is None:
        raise CanonicalCBORError("indefinite-length values not supported")
    end = pos + width
    if end > len(data):
        raise CanonicalCBORError("length field truncated")
    value = int.from_bytes(data[pos:end], "big")
    # shortest form only
    floor = 24 if width == 1 else 1 << (8 * width // 2)
    if value < floor:
        raise CanonicalCBORError("non-minimal integer encoding")
    return value, end


def _take(data: memoryview, pos: int, length: int, what: str) -> tuple[bytes, int]:
    end = pos + length
    if end > len(data):
        raise CanonicalCBORError(f"{what} truncated")
    return bytes(data[pos:end]), end


def _decode_value(data: memoryview, pos: int, depth: int) -> tuple[Any, int]:
    if depth > 32:
        raise CanonicalCBORError("nesting too deep")
    if pos >= len(data):
        raise CanonicalCBORError("unexpected end of data")
    initial = data[pos]
    major = initial >> 5
    ai = initial & 0x1F
    pos += 1

    if major in (0, 1):
        value, pos = _read_uint(ai, data, pos)
        return (value if major == 0 else -1 - value), pos
    if major == 2:
        length, pos = _read_uint(ai, data, pos)
        return _take(data, pos, length, "byte string")
    if major == 3:
        length, pos = _read_uint(ai, data, pos)
        raw, pos = _take(data, pos, length, "text string")
        try:
            return raw.decode("utf-8"), pos
        except UnicodeDecodeError as exc:
            raise CanonicalCBORError("text string is not valid UTF-8") from exc
    if major == 4:
        length, pos = _read_uint(ai, data, pos)
        items = []
        for _ in range(length):
            value, pos = _decode_value(data, pos, depth + 1)
            items.append(value)
        return items, pos
    if major == 5:
        length, pos = _read_uint(ai, data, pos)
        result: dict[str, Any] = {}
        last_encoded_key = None
        for _ in range(length):
            key_start = pos
            key, pos = _decode_value(data, pos, depth + 1)
            if not isinstance(key, str):
                raise CanonicalCBORError("map keys must be text")
            encoded_key = bytes(data[key_start:pos])
            if last_encoded_key is not None and encoded_key <= last_encoded_key:
                raise CanonicalCBORError("map keys out of order or duplicated")
            value, pos = _decode_value(data, pos, depth + 1)
            result[key] = value
            last_encoded_key = encoded_key
        return result, pos
    if major == 7:
        if ai == 20:
            return False, pos
        if ai == 21:
            return True, pos
        if ai == 22:
            return None, pos
        raise CanonicalCBORError(f"unsupported simple value ai={ai}")
    raise CanonicalCBORError(f"unsupported major type {major}")


def canonical_decode(blob: bytes | bytearray | memoryview) -> Any:
    data = memoryview(blob)
    value, pos = _decode_value(data, 0, 0)
    if pos != len(data):
        raise CanonicalCBORError("trailing data in CBOR blob")
    return value


def canonical_hash(prefix: bytes, payload: Any) -> bytes:
    """SHA-256 over a domain prefix and the canonical encoding of ``payload``."""
    return hashlib.sha256(prefix + canonical_encode(payload)).digest()


__all__ = [
    "ENCODING_ID",
    "HASH_PREFIX_PUBLIC",
    "HASH_PREFIX_IMAGE",
    "HASH_PREFIX_TRACE_STEP",
    "CanonicalCBORError",
    "canonical_encode",
    "canonical_decode",
    "canonical_hash",
]
