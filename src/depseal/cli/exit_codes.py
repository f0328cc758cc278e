"""Stable process exit codes for CI integration."""
from __future__ import annotations

from depseal.errors import DepsealError, InputError, InvalidReceiptError, ProofGenerationError

EXIT_OK = 0
EXIT_INPUT_ERROR = 1
EXIT_PROOF_INVALID = 10
EXIT_NONCOMPLIANT = 11
EXIT_MALFORMED = 20
EXIT_PROOF_FAILED = 30

_DESCRIPTIONS = {
    EXIT_OK: "ok",
    EXIT_INPUT_ERROR: "input error",
    EXIT_PROOF_INVALID: "proof invalid",
    EXIT_NONCOMPLIANT: "dependencies not compliant",
    EXIT_MALFORMED: "malformed receipt",
    EXIT_PROOF_FAILED: "proof generation failed (retryable)",
}


def exit_code_description(code: int) -> str:
    return _DESCRIPTIONS.get(code, "unknown")


def error_to_exit_code(exc: DepsealError) -> int:
    if isinstance(exc, InputError):
        return EXIT_INPUT_ERROR
    if isinstance(exc, ProofGenerationError):
        return EXIT_PROOF_FAILED
    if isinstance(exc, InvalidReceiptError):
        return EXIT_PROOF_INVALID
    return EXIT_INPUT_ERROR


__all__ = [
    "EXIT_OK",
    "EXIT_INPUT_ERROR",
    "EXIT_PROOF_INVALID",
    "EXIT_NONCOMPLIANT",
    "EXIT_MALFORMED",
    "EXIT_PROOF_FAILED",
    "exit_code_description",
    "error_to_exit_code",
]
