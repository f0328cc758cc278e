"""Fiat-Shamir transcript used to derive the execution seal."""
from __future__ import annotations

import hashlib


class Transcript:
    """Deterministic transcript for binding public data into one digest.

    Initialize with a label (domain separation tag), ``absorb_*`` the public
    data in a fixed order, then ``challenge_bytes`` to squeeze. Prover and
    verifier must absorb identical data in the identical order.
    """

    def __init__(self, label: str, hash_name: str = "sha256") -> None:
        if hash_name not in hashlib.algorithms_guaranteed:
            raise ValueError(f"unsupported hash function: {hash_name}")
        self._hash_name = hash_name
        self._state = hashlib.new(hash_name)
        self._state.update(b"DSFSv1|" + label.encode("utf-8"))

    def absorb_bytes(self, data: bytes) -> None:
        """Absorb raw bytes (length-prefixed) into the transcript."""
        self._state.update(len(data).to_bytes(8, "big", signed=False))
        self._state.update(data)

    def absorb_text(self, text: str) -> None:
        self.absorb_bytes(text.encode("utf-8"))

    def absorb_int(self, value: int) -> None:
        """Absorb a non-negative integer as a fixed 8-byte word."""
        if value < 0:
            raise ValueError("Transcript only supports non-negative integers")
        self.absorb_bytes(value.to_bytes(8, "big", signed=False))

    def challenge_bytes(self, length: int = 32) -> bytes:
        """Derive ``length`` bytes and ratchet the internal state."""
        if length <= 0:
            raise ValueError("length must be positive")
        digest = self._state.digest()
        while len(digest) < length:
            extend = hashlib.new(self._hash_name)
            extend.update(b"DSFSv1|extend|" + digest)
            digest += extend.digest()
        self._state = hashlib.new(self._hash_name)
        self._state.update(b"DSFSv1|ratchet|" + digest)
        return digest[:length]
