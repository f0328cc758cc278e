"""Receipt verification.

A consumer needs only the receipt bytes, the engine keys it trusts and
(optionally) the guest image id it expects. ``verdict`` means something only
once the proof checked out; :class:`VerificationReport` keeps the two apart.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from depseal.errors import InvalidReceiptError
from depseal.harness.backends import backend_for_proof
from depseal.harness.guest import image_id as current_image_id
from depseal.receipt import PublicValues, Receipt, decode_receipt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationReport:
    proof_valid: bool
    public_values: Optional[PublicValues] = None
    backend: Optional[str] = None
    image_id: Optional[bytes] = None
    error: Optional[str] = None

    @property
    def verdict(self) -> Optional[bool]:
        if not self.proof_valid or self.public_values is None:
            return None
        return self.public_values.verdict

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proof_valid": self.proof_valid,
            "verdict": self.verdict,
            "backend": self.backend,
            "image_id": self.image_id.hex() if self.image_id is not None else None,
            "public_values": self.public_values.to_json() if self.public_values is not None else None,
            "error": self.error,
        }


def verify_receipt(
    data: bytes | Receipt,
    *,
    trusted_keys: Iterable[Ed25519PublicKey | bytes] = (),
    image_id: Optional[bytes] = None,
    allow_dev: bool = False,
) -> VerificationReport:
    """Check a receipt; raise :class:`InvalidReceiptError` on any failure.

    ``image_id`` defaults to the image id of the guest shipped with this
    installation.
    """
    receipt = data if isinstance(data, Receipt) else decode_receipt(data)
    proof = receipt.proof
    expected = image_id if image_id is not None else current_image_id()
    if proof.image_id != expected:
        raise InvalidReceiptError(
            f"receipt was produced by guest image {proof.image_id.hex()}, expected {expected.hex()}"
        )
    backend_cls = backend_for_proof(proof.backend)
    backend_cls.check(proof, receipt.public_values, trusted_keys=list(trusted_keys), allow_dev=allow_dev)
    logger.debug("receipt verified: backend=%s", proof.backend)
    return VerificationReport(
        proof_valid=True,
        public_values=receipt.public_values,
        backend=proof.backend,
        image_id=proof.image_id,
    )


def check_receipt(
    data: bytes | Receipt,
    *,
    trusted_keys: Iterable[Ed25519PublicKey | bytes] = (),
    image_id: Optional[bytes] = None,
    allow_dev: bool = False,
) -> VerificationReport:
    """Like :func:`verify_receipt` but reports failure instead of raising."""
    try:
        return verify_receipt(data, trusted_keys=trusted_keys, image_id=image_id, allow_dev=allow_dev)
    except InvalidReceiptError as exc:
        return VerificationReport(proof_valid=False, error=str(exc))


__all__ = ["VerificationReport", "verify_receipt", "check_receipt"]
