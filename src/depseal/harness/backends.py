"""Execution backends that turn a guest run into an :class:`ExecutionProof`.

Every backend derives the same seal: a Fiat-Shamir transcript over the
backend id, the guest image id, the public-values digest and the blinded
trace root. The step count depends on the archive and its dependencies, so
it stays in the producer-local profile. What differs is who vouches for the
seal.

``attested``
    The reference engine. Signs the seal with its Ed25519 engine key.
    Consumers accept the receipt when the engine key is one they trust.
``dev``
    No attestation: the seal is stored as-is. Verifiers reject it unless
    explicitly told to accept dev receipts.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from depseal.errors import ConfigurationError, InvalidReceiptError
from depseal.receipt import ExecutionProof, PublicValues, public_digest
from depseal.transcript import Transcript
from .trace import ExecutionTrace

logger = logging.getLogger(__name__)

SEAL_LABEL = "depseal-seal-v1"


def seal_message(backend_id: str, image_id: bytes, digest: bytes, trace_root: bytes) -> bytes:
    transcript = Transcript(SEAL_LABEL)
    transcript.absorb_text(backend_id)
    transcript.absorb_bytes(image_id)
    transcript.absorb_bytes(digest)
    transcript.absorb_bytes(trace_root)
    return transcript.challenge_bytes(32)


###############################################################################
# Engine keys


def generate_engine_key() -> Ed25519PrivateKey:
    return Ed25519PrivateKey.generate()


def public_key_bytes(key: Ed25519PrivateKey | Ed25519PublicKey) -> bytes:
    if isinstance(key, Ed25519PrivateKey):
        key = key.public_key()
    return key.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)


def write_key_pair(key: Ed25519PrivateKey, out_dir: Path, stem: str = "engine_key") -> Tuple[Path, Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    key_path = out_dir / f"{stem}.pem"
    key_path.write_bytes(key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ))
    key_path.chmod(0o600)
    pub_path = out_dir / f"{stem}.pub"
    pub_path.write_bytes(key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ))
    return key_path, pub_path


def load_engine_key(path: Path) -> Ed25519PrivateKey:
    try:
        key = serialization.load_pem_private_key(Path(path).read_bytes(), password=None)
    except (OSError, ValueError, TypeError) as exc:
        raise ConfigurationError(f"cannot load engine key {path}: {exc}") from exc
    if not isinstance(key, Ed25519PrivateKey):
        raise ConfigurationError(f"engine key {path} is not an Ed25519 private key")
    return key


def load_public_key(path: Path) -> Ed25519PublicKey:
    """Load a trusted engine key; a private key PEM is accepted too."""
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise ConfigurationError(f"cannot read engine public key {path}: {exc}") from exc
    try:
        if b"PRIVATE KEY" in data:
            key: Any = serialization.load_pem_private_key(data, password=None).public_key()
        else:
            key = serialization.load_pem_public_key(data)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(f"cannot load engine public key {path}: {exc}") from exc
    if not isinstance(key, Ed25519PublicKey):
        raise ConfigurationError(f"{path} is not an Ed25519 key")
    return key


def _raw_keys(keys: Iterable[Ed25519PublicKey | bytes]) -> List[bytes]:
    return [k if isinstance(k, bytes) else public_key_bytes(k) for k in keys]


###############################################################################
# Backend registry helpers


class ExecutionBackend:
    name: str = ""
    backend_id: str = ""
    dev: bool = False

    def seal(self, image_id: bytes, public_values: PublicValues, trace: ExecutionTrace) -> ExecutionProof:
        raise NotImplementedError

    @classmethod
    def check(
        cls,
        proof: ExecutionProof,
        public_values: PublicValues,
        *,
        trusted_keys: Iterable[Ed25519PublicKey | bytes],
        allow_dev: bool = False,
    ) -> None:
        """Raise ``InvalidReceiptError`` unless ``proof`` vouches for ``public_values``."""
        raise NotImplementedError

    def descriptor(self) -> Dict[str, Any]:
        return {"name": self.name, "backend_id": self.backend_id, "dev": self.dev}


_BACKENDS: Dict[str, type[ExecutionBackend]] = {}


def register_backend(cls: type[ExecutionBackend]) -> type[ExecutionBackend]:
    _BACKENDS[cls.name] = cls
    return cls


def get_backend(name: str, **kwargs: Any) -> ExecutionBackend:
    try:
        backend_cls = _BACKENDS[name]
    except KeyError:
        raise ConfigurationError(
            f"unknown execution backend {name!r} (available: {', '.join(available_backends())})"
        ) from None
    return backend_cls(**kwargs)


def backend_for_proof(backend_id: str) -> type[ExecutionBackend]:
    for backend_cls in _BACKENDS.values():
        if backend_cls.backend_id == backend_id:
            return backend_cls
    raise InvalidReceiptError(f"unknown proof backend {backend_id!r}")


def available_backends() -> List[str]:
    return sorted(_BACKENDS.keys())


###############################################################################
# Attested engine


@register_backend
class AttestedBackend(ExecutionBackend):
    name = "attested"
    backend_id = "attested-ed25519-v1"

    def __init__(self, engine_key: Optional[Ed25519PrivateKey] = None):
        if engine_key is None:
            raise ConfigurationError("the attested backend needs an engine key (depseal keygen)")
        self._key = engine_key

    @property
    def public_key(self) -> bytes:
        return public_key_bytes(self._key)

    def seal(self, image_id: bytes, public_values: PublicValues, trace: ExecutionTrace) -> ExecutionProof:
        trace_root = trace.commit()
        seal = seal_message(self.backend_id, image_id, public_digest(public_values), trace_root)
        logger.debug("sealing %d trace steps under engine key %s", trace.cycles, self.public_key.hex()[:16])
        return ExecutionProof(
            backend=self.backend_id,
            image_id=image_id,
            trace_root=trace_root,
            engine_public_key=self.public_key,
            signature=self._key.sign(seal),
        )

    @classmethod
    def check(cls, proof, public_values, *, trusted_keys, allow_dev=False):
        if proof.engine_public_key is None or proof.signature is None:
            raise InvalidReceiptError("attested proof carries no engine signature")
        trusted = _raw_keys(trusted_keys)
        if not trusted:
            raise InvalidReceiptError("no trusted engine keys configured")
        if proof.engine_public_key not in trusted:
            raise InvalidReceiptError("receipt was sealed by an untrusted engine key")
        seal = seal_message(cls.backend_id, proof.image_id, public_digest(public_values), proof.trace_root)
        try:
            Ed25519PublicKey.from_public_bytes(proof.engine_public_key).verify(proof.signature, seal)
        except (InvalidSignature, ValueError) as exc:
            raise InvalidReceiptError("engine signature does not match the sealed values") from exc


###############################################################################
# Dev mode


@register_backend
class DevBackend(ExecutionBackend):
    name = "dev"
    backend_id = "dev-unsealed-v1"
    dev = True

    def __init__(self, engine_key: Optional[Ed25519PrivateKey] = None):
        # dev receipts are never signed; the key is accepted for a uniform constructor
        del engine_key

    def seal(self, image_id: bytes, public_values: PublicValues, trace: ExecutionTrace) -> ExecutionProof:
        trace_root = trace.commit()
        logger.warning("dev backend: the receipt carries no proof and must not be trusted")
        return ExecutionProof(
            backend=self.backend_id,
            image_id=image_id,
            trace_root=trace_root,
            engine_public_key=None,
            signature=seal_message(self.backend_id, image_id, public_digest(public_values), trace_root),
        )

    @classmethod
    def check(cls, proof, public_values, *, trusted_keys, allow_dev=False):
        if not allow_dev:
            raise InvalidReceiptError("dev receipt carries no proof (pass allow_dev to accept it)")
        if proof.engine_public_key is not None:
            raise InvalidReceiptError("dev receipt must not carry an engine key")
        seal = seal_message(cls.backend_id, proof.image_id, public_digest(public_values), proof.trace_root)
        if proof.signature != seal:
            raise InvalidReceiptError("dev seal does not match the public values")


__all__ = [
    "SEAL_LABEL",
    "ExecutionBackend",
    "AttestedBackend",
    "DevBackend",
    "register_backend",
    "get_backend",
    "backend_for_proof",
    "available_backends",
    "seal_message",
    "generate_engine_key",
    "public_key_bytes",
    "write_key_pair",
    "load_engine_key",
    "load_public_key",
]
