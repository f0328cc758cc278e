"""Receipt: public values, execution proof and the binary container.

Container layout (big-endian)::

    b"DSRC" | u16 format_version | u16 flags | u32 len | public CBOR
            | u32 len | proof CBOR | sha256(everything before)

Both payloads are canonical CBOR. Decoding is strict: any deviation from the
layout or from the canonical payload schema is an ``InvalidReceiptError``.
"""
from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from depseal.codec import HASH_PREFIX_PUBLIC, CanonicalCBORError, canonical_decode, canonical_encode, canonical_hash
from depseal.commitment.builder import CommitmentRoot
from depseal.errors import InvalidReceiptError

MAGIC = b"DSRC"
FORMAT_VERSION = 1
PUBLIC_SCHEMA = "depseal_public_v1"

_HEADER = struct.Struct(">4sHH")
_LENGTH = struct.Struct(">I")
_CHECKSUM_LEN = 32


@dataclass(frozen=True)
class PublicValues:
    """Everything a receipt discloses."""

    commitment_root: CommitmentRoot
    package_manager_id: str
    dependency_allowlist: Tuple[Tuple[str, str], ...]
    license_allowlist: Optional[Tuple[str, ...]]
    verdict: bool

    def to_payload(self) -> Dict[str, Any]:
        return {
            "schema": PUBLIC_SCHEMA,
            "commitment_root": self.commitment_root.digest,
            "package_manager_id": self.package_manager_id,
            "dependency_allowlist": [
                {"name": name, "minVersion": minimum} for name, minimum in self.dependency_allowlist
            ],
            "license_allowlist": list(self.license_allowlist) if self.license_allowlist is not None else None,
            "verdict": self.verdict,
        }

    @classmethod
    def from_payload(cls, data: Any) -> "PublicValues":
        fields = _exact_map(data, "public values", ("schema", "commitment_root", "package_manager_id",
                                                    "dependency_allowlist", "license_allowlist", "verdict"))
        if fields["schema"] != PUBLIC_SCHEMA:
            raise InvalidReceiptError(f"unknown public values schema {fields['schema']!r}")
        root = fields["commitment_root"]
        if not isinstance(root, bytes) or len(root) != 32:
            raise InvalidReceiptError("commitment_root must be 32 bytes")
        manager = fields["package_manager_id"]
        if not isinstance(manager, str) or "@" not in manager:
            raise InvalidReceiptError("package_manager_id must be 'name@version'")
        deps = fields["dependency_allowlist"]
        if not isinstance(deps, list) or not deps:
            raise InvalidReceiptError("dependency_allowlist must be a non-empty array")
        pairs: List[Tuple[str, str]] = []
        for item in deps:
            entry = _exact_map(item, "allowlist entry", ("name", "minVersion"))
            if not isinstance(entry["name"], str) or not isinstance(entry["minVersion"], str):
                raise InvalidReceiptError("allowlist entries must hold strings")
            pairs.append((entry["name"], entry["minVersion"]))
        licenses = fields["license_allowlist"]
        if licenses is not None:
            if not isinstance(licenses, list) or not licenses or not all(isinstance(x, str) for x in licenses):
                raise InvalidReceiptError("license_allowlist must be null or a non-empty array of strings")
            licenses = tuple(licenses)
        verdict = fields["verdict"]
        if not isinstance(verdict, bool):
            raise InvalidReceiptError("verdict must be a boolean")
        return cls(
            commitment_root=CommitmentRoot(root),
            package_manager_id=manager,
            dependency_allowlist=tuple(pairs),
            license_allowlist=licenses,
            verdict=verdict,
        )

    def digest(self) -> bytes:
        return public_digest(self)

    def to_json(self) -> Dict[str, Any]:
        return {
            "commitmentRoot": self.commitment_root.hex,
            "packageManagerId": self.package_manager_id,
            "dependencyAllowlist": [{"name": n, "minVersion": m} for n, m in self.dependency_allowlist],
            "licenseAllowlist": list(self.license_allowlist) if self.license_allowlist is not None else None,
            "verdict": self.verdict,
        }


def public_digest(public_values: PublicValues) -> bytes:
    return canonical_hash(HASH_PREFIX_PUBLIC, public_values.to_payload())


@dataclass(frozen=True)
class ExecutionProof:
    """Opaque-to-consumers evidence produced by an execution backend."""

    backend: str
    image_id: bytes
    trace_root: bytes
    engine_public_key: Optional[bytes] = None
    signature: Optional[bytes] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "image_id": self.image_id,
            "trace_root": self.trace_root,
            "engine_public_key": self.engine_public_key,
            "signature": self.signature,
        }

    @classmethod
    def from_payload(cls, data: Any) -> "ExecutionProof":
        fields = _exact_map(data, "proof", ("backend", "image_id", "trace_root", "engine_public_key", "signature"))
        if not isinstance(fields["backend"], str) or not fields["backend"]:
            raise InvalidReceiptError("proof backend must be a non-empty string")
        for key in ("image_id", "trace_root"):
            if not isinstance(fields[key], bytes) or len(fields[key]) != 32:
                raise InvalidReceiptError(f"proof {key} must be 32 bytes")
        for key in ("engine_public_key", "signature"):
            if fields[key] is not None and not isinstance(fields[key], bytes):
                raise InvalidReceiptError(f"proof {key} must be bytes or null")
        return cls(**fields)


@dataclass(frozen=True)
class Receipt:
    public_values: PublicValues
    proof: ExecutionProof
    format_version: int = FORMAT_VERSION

    def to_bytes(self) -> bytes:
        return encode_receipt(self)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Receipt":
        return decode_receipt(data)


def _exact_map(data: Any, what: str, keys: Tuple[str, ...]) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise InvalidReceiptError(f"{what} must be a map")
    missing = [k for k in keys if k not in data]
    if missing:
        raise InvalidReceiptError(f"{what} missing keys: {', '.join(missing)}")
    unknown = sorted(set(data) - set(keys))
    if unknown:
        raise InvalidReceiptError(f"{what} has unknown keys: {', '.join(unknown)}")
    return data


def encode_receipt(receipt: Receipt) -> bytes:
    if receipt.format_version != FORMAT_VERSION:
        raise InvalidReceiptError(f"cannot encode receipt format version {receipt.format_version}")
    public = canonical_encode(receipt.public_values.to_payload())
    proof = canonical_encode(receipt.proof.to_payload())
    body = b"".join([
        _HEADER.pack(MAGIC, FORMAT_VERSION, 0),
        _LENGTH.pack(len(public)),
        public,
        _LENGTH.pack(len(proof)),
        proof,
    ])
    return body + hashlib.sha256(body).digest()


def _read_section(data: bytes, pos: int, what: str) -> Tuple[bytes, int]:
    if pos + _LENGTH.size > len(data):
        raise InvalidReceiptError(f"receipt truncated before {what} length")
    (length,) = _LENGTH.unpack_from(data, pos)
    pos += _LENGTH.size
    if pos + length > len(data):
        raise InvalidReceiptError(f"receipt truncated inside {what}")
    return data[pos:pos + length], pos + length


def decode_receipt(data: bytes) -> Receipt:
    data = bytes(data)
    if len(data) < _HEADER.size + 2 * _LENGTH.size + _CHECKSUM_LEN:
        raise InvalidReceiptError("receipt is too short")
    magic, version, flags = _HEADER.unpack_from(data, 0)
    if magic != MAGIC:
        raise InvalidReceiptError("not a depseal receipt (bad magic)")
    if version != FORMAT_VERSION:
        raise InvalidReceiptError(f"unsupported receipt format version {version}")
    if flags != 0:
        raise InvalidReceiptError(f"unsupported receipt flags 0x{flags:04x}")

    body_end = len(data) - _CHECKSUM_LEN
    body = data[:body_end]
    public_raw, pos = _read_section(body, _HEADER.size, "public values")
    proof_raw, pos = _read_section(body, pos, "proof")
    if pos != body_end:
        raise InvalidReceiptError("trailing bytes after proof section")
    if hashlib.sha256(body).digest() != data[body_end:]:
        raise InvalidReceiptError("receipt checksum mismatch")

    try:
        public_payload = canonical_decode(public_raw)
        proof_payload = canonical_decode(proof_raw)
    except CanonicalCBORError as exc:
        raise InvalidReceiptError(f"non-canonical receipt payload: {exc}") from exc
    return Receipt(
        public_values=PublicValues.from_payload(public_payload),
        proof=ExecutionProof.from_payload(proof_payload),
        format_version=version,
    )


__all__ = [
    "MAGIC",
    "FORMAT_VERSION",
    "PUBLIC_SCHEMA",
    "PublicValues",
    "ExecutionProof",
    "Receipt",
    "public_digest",
    "encode_receipt",
    "decode_receipt",
]
