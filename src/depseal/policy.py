"""Policy engine: every resolved dependency against the allowlists.

Dependencies are checked in name-sorted order and the first failure wins, so
the same inputs always report the same violation. The engine is pure; it runs
inside the guest.

License fields are SPDX expressions. ``MIT OR Apache-2.0`` passes when either
branch is allowed, ``MIT AND Zlib`` only when both are. A license that does
not parse is never allowed.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from license_expression import ExpressionError, Licensing

from depseal.allowlist import DependencyAllowlist, LicenseAllowlist
from depseal.errors import (
    DependencyNotAllowedError,
    LicenseNotAllowedError,
    PolicyViolation,
    VersionTooLowError,
)
from depseal.resolvers.base import DependencySet, ResolvedDependency
from depseal.version import is_at_least

# rule ids, in evaluation order; part of the guest image descriptor
POLICY_RULES = (
    "dependency_allowlisted",
    "version_at_least_minimum",
    "license_expression_allowed",
)

NameNormalizer = Callable[[str], str]

# syntax only: identifiers are kept as written, no alias table
_LICENSING = Licensing()


@dataclass(frozen=True)
class PolicyVerdict:
    compliant: bool
    violation: Optional[PolicyViolation] = None
    checked: int = 0


def _satisfied(node, licenses: LicenseAllowlist) -> bool:
    if isinstance(node, _LICENSING.AND):
        return all(_satisfied(arg, licenses) for arg in node.args)
    if isinstance(node, _LICENSING.OR):
        return any(_satisfied(arg, licenses) for arg in node.args)
    return licenses.allows(str(node))


def license_permitted(expression: Optional[str], licenses: LicenseAllowlist) -> bool:
    if expression is None or not expression.strip():
        return False
    try:
        parsed = _LICENSING.parse(expression)
    except ExpressionError:
        return False
    if parsed is None:
        return False
    return _satisfied(parsed, licenses)


def check_dependency(
    dep: ResolvedDependency,
    allowlist: DependencyAllowlist,
    licenses: Optional[LicenseAllowlist] = None,
    normalize: Optional[NameNormalizer] = None,
) -> None:
    """Raise the violation for ``dep``, if any.

    ``normalize`` is the package manager's name canonicalization; allowlist
    names go through it too, so ``PyYAML`` matches ``pyyaml``.
    """
    entry = allowlist.get(dep.name, normalize)
    if entry is None:
        raise DependencyNotAllowedError(dep.name)
    if not is_at_least(dep.version, entry.min_version):
        raise VersionTooLowError(dep.name, str(dep.version), entry.raw_min_version)
    if licenses is not None and not license_permitted(dep.license, licenses):
        raise LicenseNotAllowedError(dep.name, dep.license)


def enforce_policy(
    deps: DependencySet,
    allowlist: DependencyAllowlist,
    licenses: Optional[LicenseAllowlist] = None,
    normalize: Optional[NameNormalizer] = None,
) -> int:
    """Raise the first violation; return the number of dependencies checked."""
    checked = 0
    for dep in deps.sorted():
        check_dependency(dep, allowlist, licenses, normalize)
        checked += 1
    return checked


def evaluate_policy(
    deps: DependencySet,
    allowlist: DependencyAllowlist,
    licenses: Optional[LicenseAllowlist] = None,
    normalize: Optional[NameNormalizer] = None,
) -> PolicyVerdict:
    checked = 0
    for dep in deps.sorted():
        try:
            check_dependency(dep, allowlist, licenses, normalize)
        except PolicyViolation as violation:
            return PolicyVerdict(compliant=False, violation=violation, checked=checked)
        checked += 1
    return PolicyVerdict(compliant=True, checked=checked)


__all__ = [
    "POLICY_RULES",
    "PolicyVerdict",
    "check_dependency",
    "enforce_policy",
    "evaluate_policy",
    "license_permitted",
]
