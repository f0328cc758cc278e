"""Exception taxonomy.

Input errors abort proving before anything is committed. Policy violations
are producer-local diagnostics and never cross into a receipt. Proof
generation failures are retryable; receipt verification failures are not.
"""
from __future__ import annotations

from typing import Optional


class DepsealError(Exception):
    """Base class for every error raised by depseal."""

    retryable = False


###############################################################################
# Input errors


class InputError(DepsealError):
    """Raised for bad producer input; fails fast, never yields a receipt."""


class ArchiveReadError(InputError):
    """Archive content could not be fully materialized."""


class ManifestParseError(InputError):
    """A lockfile could not be parsed or failed a structural check."""

    def __init__(self, message: str, *, source: Optional[str] = None, record: Optional[str] = None):
        self.source = source
        self.record = record
        parts = []
        if source:
            parts.append(source)
        if record:
            parts.append(f"record {record!r}")
        prefix = ", ".join(parts)
        super().__init__(f"{prefix}: {message}" if prefix else message)


class UnsupportedLockfileVersionError(ManifestParseError):
    """Lockfile format revision is not accepted by the resolver."""


class UnsupportedManagerError(InputError):
    """No resolver is registered for the package manager (or its version)."""


class VersionParseError(InputError):
    """A version string does not follow the accepted grammar."""

    def __init__(self, text: str, reason: str = "invalid version"):
        self.text = text
        super().__init__(f"{reason}: {text!r}")


class DuplicateDependencyError(InputError):
    """The same package name was resolved at two distinct versions."""

    def __init__(self, name: str, first: str, second: str):
        self.name = name
        self.versions = (first, second)
        super().__init__(f"dependency {name!r} resolved at both {first} and {second}")


class AllowlistError(InputError):
    """The allowlist file is malformed."""


class MissingInputError(InputError):
    """A required prover input was never supplied."""


class ConfigurationError(InputError):
    """Settings or environment are inconsistent."""


###############################################################################
# Policy outcomes (producer-local diagnostics)


class PolicyViolation(DepsealError):
    """First failing dependency found by the policy engine."""

    kind = "violation"

    def __init__(self, dependency: str, message: str):
        self.dependency = dependency
        super().__init__(message)


class DependencyNotAllowedError(PolicyViolation):
    kind = "dependency_not_allowed"

    def __init__(self, dependency: str):
        super().__init__(dependency, f"{dependency} is not on the allowlist")


class VersionTooLowError(PolicyViolation):
    kind = "version_too_low"

    def __init__(self, dependency: str, version: str, minimum: str):
        self.version = version
        self.minimum = minimum
        super().__init__(dependency, f"{dependency}@{version} < min {minimum}")


class LicenseNotAllowedError(PolicyViolation):
    kind = "license_not_allowed"

    def __init__(self, dependency: str, license_id: Optional[str]):
        self.license = license_id
        shown = license_id if license_id is not None else "no license"
        super().__init__(dependency, f"{dependency} ({shown}) is not permitted by the license allowlist")


###############################################################################
# Proving / verification


class ProofGenerationError(DepsealError):
    """The execution backend failed; proving is pure so a retry is safe."""

    retryable = True


class InvalidReceiptError(DepsealError):
    """The receipt is malformed or its proof does not check out."""


__all__ = [
    "DepsealError",
    "InputError",
    "ArchiveReadError",
    "ManifestParseError",
    "UnsupportedLockfileVersionError",
    "UnsupportedManagerError",
    "VersionParseError",
    "DuplicateDependencyError",
    "AllowlistError",
    "MissingInputError",
    "ConfigurationError",
    "PolicyViolation",
    "DependencyNotAllowedError",
    "VersionTooLowError",
    "LicenseNotAllowedError",
    "ProofGenerationError",
    "InvalidReceiptError",
]
