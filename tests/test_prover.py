"""End-to-end prove / verify tests, including tampering and dev mode."""
from __future__ import annotations

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from depseal import Prover, check_receipt, verify_receipt
from depseal.allowlist import DependencyAllowlist, LicenseAllowlist
from depseal.commitment import commit_archive
from depseal.errors import (
    ConfigurationError,
    InvalidReceiptError,
    ManifestParseError,
    MissingInputError,
    ProofGenerationError,
)
from depseal.harness import DEV_MODE_ENV, image_id, run_guest
from depseal.harness.backends import AttestedBackend, public_key_bytes
from depseal.harness.guest import GuestInput
from depseal.receipt import PublicValues, Receipt, decode_receipt, encode_receipt
from depseal.resolvers import PackageManagerSpec

from conftest import npm_archive

NPM = PackageManagerSpec.parse("npm", "10.2.0")


def _prover(archive, allowlist, key) -> Prover:
    return (
        Prover()
        .with_archive(archive)
        .with_package_manager(NPM)
        .with_allowlist(allowlist)
        .with_backend("attested", key)
    )


def _tampered(receipt: Receipt, **changes) -> Receipt:
    pv = receipt.public_values
    fields = {
        "commitment_root": pv.commitment_root,
        "package_manager_id": pv.package_manager_id,
        "dependency_allowlist": pv.dependency_allowlist,
        "license_allowlist": pv.license_allowlist,
        "verdict": pv.verdict,
    }
    fields.update(changes)
    return Receipt(public_values=PublicValues(**fields), proof=receipt.proof)


class TestRoundTrip:
    def test_compliant_receipt_verifies(self, compliant_archive, allowlist, engine_key):
        outcome = _prover(compliant_archive, allowlist, engine_key).prove()
        assert outcome.compliant

        data = outcome.receipt.to_bytes()
        report = verify_receipt(data, trusted_keys=[engine_key.public_key()])
        assert report.proof_valid
        assert report.verdict is True
        assert report.public_values.commitment_root == commit_archive(compliant_archive)
        assert report.public_values.package_manager_id == "npm@10.2.0"
        assert report.public_values.dependency_allowlist == (("left-pad", "1.1.0"), ("lodash", "4.17.21"))
        assert report.public_values.license_allowlist is None

    def test_noncompliant_still_yields_receipt(self, allowlist, engine_key):
        archive = npm_archive({"left-pad": ("1.0.0", "MIT")})
        outcome = _prover(archive, allowlist, engine_key).prove()
        assert not outcome.compliant
        assert outcome.verdict.violation.kind == "version_too_low"

        report = verify_receipt(outcome.receipt.to_bytes(), trusted_keys=[engine_key.public_key()])
        assert report.proof_valid
        assert report.verdict is False

    def test_receipt_discloses_no_versions_or_licenses(self, compliant_archive, allowlist, engine_key):
        outcome = _prover(compliant_archive, allowlist, engine_key).prove()
        data = outcome.receipt.to_bytes()
        assert b"4.17.21" in data  # the allowlist minimum is public
        assert b"1.3.0" not in data
        assert b"MIT" not in data
        assert b"console.log" not in data

    def test_license_allowlist_disclosed(self, compliant_archive, allowlist, engine_key):
        prover = _prover(compliant_archive, allowlist, engine_key).with_license_allowlist(
            LicenseAllowlist(["MIT", "Apache-2.0"])
        )
        outcome = prover.prove()
        assert outcome.compliant
        assert outcome.receipt.public_values.license_allowlist == ("Apache-2.0", "MIT")

    def test_setters_are_pure(self, compliant_archive, allowlist, engine_key):
        base = Prover().with_archive(compliant_archive)
        extended = base.with_allowlist(allowlist)
        assert base.allowlist is None
        assert extended.allowlist is allowlist

    def test_profile(self, compliant_archive, allowlist, engine_key):
        outcome = _prover(compliant_archive, allowlist, engine_key).with_cycle_report().prove()
        assert outcome.profile["cycles"] == sum(outcome.profile["phase_cycles"].values())
        assert set(outcome.profile["phase_cycles"]) == {"commit", "resolve", "policy"}
        assert "cycles" not in outcome.receipt.proof.to_payload()
        assert outcome.profile["image_id"] == image_id().hex()

    def test_receipt_shape_independent_of_dependency_count(self, allowlist, engine_key):
        small = _prover(npm_archive({"lodash": ("4.17.21", "MIT")}), allowlist, engine_key).prove()
        large = _prover(
            npm_archive({"left-pad": ("1.3.0", "MIT"), "lodash": ("4.17.21", "MIT")}), allowlist, engine_key
        ).prove()
        assert small.compliant and large.compliant
        assert small.profile["cycles"] != large.profile["cycles"]

        def stripped(outcome):
            proof = outcome.receipt.proof.to_payload()
            public = outcome.receipt.public_values.to_payload()
            for key in ("trace_root", "signature"):
                del proof[key]
            del public["commitment_root"]
            return proof, public

        assert stripped(small) == stripped(large)
        assert len(small.receipt.to_bytes()) == len(large.receipt.to_bytes())

    def test_background(self, compliant_archive, allowlist, engine_key):
        future = _prover(compliant_archive, allowlist, engine_key).prove_in_background()
        outcome = future.result(timeout=60)
        assert outcome.compliant


class TestInputErrors:
    def test_missing_archive(self, allowlist):
        with pytest.raises(MissingInputError):
            Prover().with_package_manager(NPM).with_allowlist(allowlist).build()

    def test_missing_allowlist(self, compliant_archive):
        with pytest.raises(MissingInputError):
            Prover().with_archive(compliant_archive).with_package_manager(NPM).build()

    def test_input_error_is_not_wrapped(self, allowlist, engine_key):
        archive = npm_archive({}, extra={"package-lock.json": "{broken"})
        with pytest.raises(ManifestParseError):
            _prover(archive, allowlist, engine_key).prove()

    def test_attested_without_key(self, compliant_archive, allowlist):
        prover = Prover().with_archive(compliant_archive).with_package_manager(NPM).with_allowlist(allowlist)
        with pytest.raises(ConfigurationError):
            prover.prove()

    def test_backend_failure_is_retryable(self, monkeypatch, compliant_archive, allowlist, engine_key):
        def boom(self, *args, **kwargs):
            raise RuntimeError("engine crashed")

        monkeypatch.setattr(AttestedBackend, "seal", boom)
        with pytest.raises(ProofGenerationError) as exc_info:
            _prover(compliant_archive, allowlist, engine_key).prove()
        assert exc_info.value.retryable


class TestTampering:
    @pytest.fixture
    def receipt(self, compliant_archive, allowlist, engine_key):
        return _prover(compliant_archive, allowlist, engine_key).prove().receipt

    def test_flipped_verdict(self, receipt, engine_key):
        forged = _tampered(receipt, verdict=False)
        with pytest.raises(InvalidReceiptError):
            verify_receipt(encode_receipt(forged), trusted_keys=[engine_key.public_key()])

    def test_swapped_allowlist(self, receipt, engine_key):
        forged = _tampered(receipt, dependency_allowlist=(("left-pad", "0.0.1"), ("lodash", "4.17.21")))
        with pytest.raises(InvalidReceiptError):
            verify_receipt(encode_receipt(forged), trusted_keys=[engine_key.public_key()])

    def test_swapped_manager(self, receipt, engine_key):
        forged = _tampered(receipt, package_manager_id="npm@11.0.0")
        with pytest.raises(InvalidReceiptError):
            verify_receipt(encode_receipt(forged), trusted_keys=[engine_key.public_key()])

    def test_untrusted_engine(self, receipt):
        other = Ed25519PrivateKey.generate()
        report = check_receipt(receipt.to_bytes(), trusted_keys=[other.public_key()])
        assert not report.proof_valid
        assert report.verdict is None
        assert "untrusted" in report.error

    def test_no_trusted_keys(self, receipt):
        with pytest.raises(InvalidReceiptError):
            verify_receipt(receipt.to_bytes())

    def test_wrong_image_id(self, receipt, engine_key):
        with pytest.raises(InvalidReceiptError, match="image"):
            verify_receipt(receipt.to_bytes(), trusted_keys=[engine_key.public_key()], image_id=b"\x00" * 32)

    def test_raw_key_bytes_accepted(self, receipt, engine_key):
        report = verify_receipt(receipt.to_bytes(), trusted_keys=[public_key_bytes(engine_key)])
        assert report.proof_valid

    def test_check_receipt_on_garbage(self):
        report = check_receipt(b"garbage")
        assert not report.proof_valid
        assert report.to_dict()["verdict"] is None


class TestDevMode:
    def _dev_receipt(self, archive, allowlist) -> bytes:
        prover = Prover().with_archive(archive).with_package_manager(NPM).with_allowlist(allowlist).with_backend("dev")
        return prover.prove().receipt.to_bytes()

    def test_dev_receipt_rejected_by_default(self, compliant_archive, allowlist):
        data = self._dev_receipt(compliant_archive, allowlist)
        with pytest.raises(InvalidReceiptError, match="dev"):
            verify_receipt(data)

    def test_dev_receipt_accepted_when_allowed(self, compliant_archive, allowlist):
        data = self._dev_receipt(compliant_archive, allowlist)
        report = verify_receipt(data, allow_dev=True)
        assert report.proof_valid
        assert report.verdict is True

    def test_dev_receipt_tamper_detected(self, compliant_archive, allowlist):
        receipt = decode_receipt(self._dev_receipt(compliant_archive, allowlist))
        forged = _tampered(receipt, verdict=False)
        with pytest.raises(InvalidReceiptError):
            verify_receipt(encode_receipt(forged), allow_dev=True)

    def test_env_conflict(self, monkeypatch, compliant_archive, allowlist, engine_key):
        monkeypatch.setenv(DEV_MODE_ENV, "1")
        with pytest.raises(ConfigurationError, match=DEV_MODE_ENV):
            _prover(compliant_archive, allowlist, engine_key).prove()

    def test_env_with_dev_backend_is_fine(self, monkeypatch, compliant_archive, allowlist):
        monkeypatch.setenv(DEV_MODE_ENV, "1")
        assert decode_receipt(self._dev_receipt(compliant_archive, allowlist)).public_values.verdict


class TestGuest:
    def test_guest_is_deterministic_apart_from_trace_salts(self, compliant_archive, allowlist):
        inp = GuestInput(archive=compliant_archive, package_manager=NPM, allowlist=allowlist)
        first, second = run_guest(inp), run_guest(inp)
        assert first.public_values == second.public_values
        assert [s.encode() for s in first.trace.steps] == [s.encode() for s in second.trace.steps]
        assert first.trace.commit() != second.trace.commit()

    def test_trace_root_is_blinded(self, compliant_archive, allowlist):
        inp = GuestInput(archive=compliant_archive, package_manager=NPM, allowlist=allowlist)
        trace = run_guest(inp).trace
        salts = [b"\x00" * 32] * trace.cycles
        assert trace.commit(salts) == trace.commit(salts)
        assert trace.commit(salts) != trace.commit()

    def test_empty_allowlist_impossible(self):
        from depseal.errors import AllowlistError

        with pytest.raises(AllowlistError):
            DependencyAllowlist([])
