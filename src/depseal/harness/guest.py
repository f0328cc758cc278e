"""Guest program: commitment -> resolution -> policy, as one pure function.

``run_guest`` is what an execution backend attests to. It reads nothing but
its input, records every step into an :class:`ExecutionTrace` and returns the
public values plus the producer-local verdict.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from depseal.allowlist import DependencyAllowlist, LicenseAllowlist
from depseal.codec import ENCODING_ID, HASH_PREFIX_IMAGE, canonical_hash
from depseal.commitment.archive import SourceArchive
from depseal.commitment.builder import CommitmentRoot, leaf_hashes
from depseal.commitment.merkle import LEAF_ENCODING_ID, NODE_ENCODING_ID, build_levels, root_from_levels
from depseal.policy import POLICY_RULES, PolicyVerdict, evaluate_policy
from depseal.receipt import PublicValues
from depseal.resolvers import PackageManagerSpec, get_resolver, resolve, resolver_descriptors
from .trace import ExecutionTrace

logger = logging.getLogger(__name__)

GUEST_NAME = "depseal-guest"
GUEST_VERSION = 1


def image_descriptor() -> Dict[str, Any]:
    """Everything that determines the guest's behaviour."""
    return {
        "guest": GUEST_NAME,
        "guest_version": GUEST_VERSION,
        "leaf_encoding": LEAF_ENCODING_ID,
        "node_encoding": NODE_ENCODING_ID,
        "payload_encoding": ENCODING_ID,
        "resolvers": resolver_descriptors(),
        "policy_rules": list(POLICY_RULES),
    }


def image_id() -> bytes:
    return canonical_hash(HASH_PREFIX_IMAGE, image_descriptor())


@dataclass(frozen=True)
class GuestInput:
    archive: SourceArchive
    package_manager: PackageManagerSpec
    allowlist: DependencyAllowlist
    licenses: Optional[LicenseAllowlist] = None
    lockfile: Optional[str] = None
    commit_workers: int = 1


@dataclass
class GuestOutput:
    public_values: PublicValues
    verdict: PolicyVerdict
    trace: ExecutionTrace = field(repr=False)


def run_guest(inp: GuestInput, trace: Optional[ExecutionTrace] = None) -> GuestOutput:
    trace = trace if trace is not None else ExecutionTrace()

    with trace.phase("commit"):
        leaves = leaf_hashes(inp.archive, workers=inp.commit_workers)
        for leaf in leaves:
            trace.record("leaf", leaf)
        root = CommitmentRoot(root_from_levels(build_levels(leaves)))
        trace.record("root", root.digest)

    with trace.phase("resolve"):
        deps = resolve(inp.package_manager, inp.archive, lockfile=inp.lockfile)
        for dep in deps.sorted():
            trace.record("dependency", {"name": dep.name, "version": str(dep.version), "license": dep.license})

    with trace.phase("policy"):
        normalize = get_resolver(inp.package_manager.manager).normalize_name
        verdict = evaluate_policy(deps, inp.allowlist, inp.licenses, normalize)
        evaluated = verdict.checked if verdict.compliant else verdict.checked + 1
        for dep in deps.sorted()[:evaluated]:
            trace.record("check", {"name": dep.name, "ok": dep.name != getattr(verdict.violation, "dependency", None)})
        trace.record("verdict", verdict.compliant)

    logger.debug("guest checked %d of %d dependencies, compliant=%s", verdict.checked, len(deps), verdict.compliant)

    public_values = PublicValues(
        commitment_root=root,
        package_manager_id=inp.package_manager.id,
        dependency_allowlist=tuple((e.name, e.raw_min_version) for e in inp.allowlist),
        license_allowlist=tuple(inp.licenses.to_public()) if inp.licenses is not None else None,
        verdict=verdict.compliant,
    )
    return GuestOutput(public_values=public_values, verdict=verdict, trace=trace)


__all__ = ["GUEST_NAME", "GUEST_VERSION", "GuestInput", "GuestOutput", "image_descriptor", "image_id", "run_guest"]
