"""depseal - zero-knowledge style dependency compliance receipts.

Submodules:
    commitment - Merkle commitment of a source archive
    resolvers  - lockfile ingestion, one resolver per package manager
    version    - version parsing and ordering
    allowlist  - allowlist file loading
    policy     - allowlist / license policy evaluation
    harness    - verifiable execution of the pipeline, receipt emission
    receipt    - receipt container encoding
    verifier   - receipt verification
    cli        - command-line interface

Public API:
    from depseal import Prover, verify_receipt, check_receipt
"""
from __future__ import annotations

__version__ = "0.3.0"

from depseal.harness.prover import Prover, ProofOutcome
from depseal.verifier import VerificationReport, check_receipt, verify_receipt


__all__ = [
    "__version__",
    "Prover",
    "ProofOutcome",
    "VerificationReport",
    "check_receipt",
    "verify_receipt",
]
