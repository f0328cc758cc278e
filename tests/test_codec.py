"""Tests for the canonical CBOR codec and the Fiat-Shamir transcript."""
from __future__ import annotations

import pytest

from depseal.codec import CanonicalCBORError, canonical_decode, canonical_encode
from depseal.transcript import Transcript


class TestCanonicalCBOR:
    def test_known_encodings(self):
        assert canonical_encode(0) == b"\x00"
        assert canonical_encode(23) == b"\x17"
        assert canonical_encode(24) == b"\x18\x18"
        assert canonical_encode(-1) == b"\x20"
        assert canonical_encode(b"ab") == b"\x42ab"
        assert canonical_encode("a") == b"\x61a"
        assert canonical_encode([True, False, None]) == b"\x83\xf5\xf4\xf6"

    def test_map_keys_sorted_regardless_of_insertion(self):
        assert canonical_encode({"b": 1, "a": 2}) == canonical_encode({"a": 2, "b": 1})
        assert canonical_decode(canonical_encode({"b": 1, "a": 2})) == {"a": 2, "b": 1}

    def test_round_trip_nested(self):
        value = {"list": [1, -5, b"\x00", "x"], "map": {"k": None}, "flag": True}
        assert canonical_decode(canonical_encode(value)) == value

    @pytest.mark.parametrize(
        "blob",
        [
            b"\x18\x05",  # non-minimal integer
            b"\xa2\x61b\x01\x61a\x02",  # keys out of order
            b"\xa2\x61a\x01\x61a\x02",  # duplicate key
            b"\x00\x00",  # trailing data
            b"\x42a",  # truncated byte string
            b"\x5f\xff",  # indefinite length
            b"\xa1\x01\x02",  # integer map key
            b"\xfb\x00\x00\x00\x00\x00\x00\x00\x00",  # float
        ],
    )
    def test_strict_decoding(self, blob):
        with pytest.raises(CanonicalCBORError):
            canonical_decode(blob)

    def test_unsupported_type(self):
        with pytest.raises(CanonicalCBORError):
            canonical_encode(1.5)


class TestTranscript:
    def test_deterministic(self):
        a, b = Transcript("t"), Transcript("t")
        for t in (a, b):
            t.absorb_text("hello")
            t.absorb_int(7)
        assert a.challenge_bytes() == b.challenge_bytes()

    def test_label_separates_domains(self):
        a, b = Transcript("one"), Transcript("two")
        assert a.challenge_bytes() != b.challenge_bytes()

    def test_absorb_boundaries_matter(self):
        a, b = Transcript("t"), Transcript("t")
        a.absorb_bytes(b"ab")
        a.absorb_bytes(b"c")
        b.absorb_bytes(b"a")
        b.absorb_bytes(b"bc")
        assert a.challenge_bytes() != b.challenge_bytes()

    def test_ratchets(self):
        t = Transcript("t")
        assert t.challenge_bytes() != t.challenge_bytes()

    def test_long_challenge(self):
        assert len(Transcript("t").challenge_bytes(100)) == 100
