"""Prover builder and the proving entry point.

``with_*`` setters are pure: each call returns a new ``Prover``, so they can
be chained in any order and later calls overwrite earlier ones. ``build``
validates that the required inputs are present; ``prove`` runs the guest and
seals its output with the selected backend.
"""
from __future__ import annotations

import logging
import os
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from depseal.allowlist import DependencyAllowlist, LicenseAllowlist
from depseal.commitment.archive import SourceArchive
from depseal.errors import ConfigurationError, DepsealError, MissingInputError, ProofGenerationError
from depseal.policy import PolicyVerdict
from depseal.receipt import Receipt
from depseal.resolvers import PackageManagerSpec
from .backends import get_backend
from .guest import GuestInput, image_id, run_guest

logger = logging.getLogger(__name__)

DEV_MODE_ENV = "DEPSEAL_DEV_MODE"


@dataclass(frozen=True)
class ProofOutcome:
    receipt: Receipt
    verdict: PolicyVerdict
    profile: Dict[str, Any]

    @property
    def compliant(self) -> bool:
        return self.verdict.compliant


@dataclass(frozen=True)
class Prover:
    archive: Optional[SourceArchive] = None
    package_manager: Optional[PackageManagerSpec] = None
    allowlist: Optional[DependencyAllowlist] = None
    licenses: Optional[LicenseAllowlist] = None
    lockfile: Optional[str] = None
    backend: str = "attested"
    engine_key: Optional[Ed25519PrivateKey] = None
    cycle_report: bool = False
    commit_workers: int = 1

    def with_archive(self, archive: SourceArchive) -> "Prover":
        return replace(self, archive=archive)

    def with_package_manager(self, manager: PackageManagerSpec | str, version: Optional[str] = None) -> "Prover":
        if not isinstance(manager, PackageManagerSpec):
            if version is None:
                manager = PackageManagerSpec.from_id(manager)
            else:
                manager = PackageManagerSpec.parse(manager, version)
        return replace(self, package_manager=manager)

    def with_allowlist(self, allowlist: DependencyAllowlist) -> "Prover":
        return replace(self, allowlist=allowlist)

    def with_license_allowlist(self, licenses: Optional[LicenseAllowlist]) -> "Prover":
        """If unset, every license is permitted."""
        return replace(self, licenses=licenses)

    def with_lockfile(self, lockfile: Optional[str]) -> "Prover":
        return replace(self, lockfile=lockfile)

    def with_backend(self, name: str, engine_key: Optional[Ed25519PrivateKey] = None) -> "Prover":
        return replace(self, backend=name, engine_key=engine_key if engine_key is not None else self.engine_key)

    def with_cycle_report(self, enabled: bool = True) -> "Prover":
        return replace(self, cycle_report=enabled)

    def with_commit_workers(self, workers: int) -> "Prover":
        return replace(self, commit_workers=workers)

    def build(self) -> "ProverConfig":
        if self.archive is None:
            raise MissingInputError("no source archive supplied (with_archive)")
        if self.package_manager is None:
            raise MissingInputError("no package manager supplied (with_package_manager)")
        if self.allowlist is None:
            raise MissingInputError("no dependency allowlist supplied (with_allowlist)")
        if self.commit_workers < 1:
            raise ConfigurationError("commit_workers must be at least 1")
        return ProverConfig(
            guest_input=GuestInput(
                archive=self.archive,
                package_manager=self.package_manager,
                allowlist=self.allowlist,
                licenses=self.licenses,
                lockfile=self.lockfile,
                commit_workers=self.commit_workers,
            ),
            backend=self.backend,
            engine_key=self.engine_key,
            cycle_report=self.cycle_report,
        )

    def prove(self) -> ProofOutcome:
        return self.build().prove()

    def prove_in_background(self, executor: Optional[Executor] = None) -> "Future[ProofOutcome]":
        """Run ``prove`` off the calling thread.

        Cancelling the future abandons the run; nothing partial is kept.
        """
        config = self.build()
        if executor is not None:
            return executor.submit(config.prove)
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="depseal-prove")
        future = pool.submit(config.prove)
        pool.shutdown(wait=False)
        return future


@dataclass(frozen=True)
class ProverConfig:
    """Validated configuration used by ``prove``."""

    guest_input: GuestInput
    backend: str = "attested"
    engine_key: Optional[Ed25519PrivateKey] = None
    cycle_report: bool = False

    def _check_dev_mode_env(self) -> None:
        value = os.environ.get(DEV_MODE_ENV)
        if value is not None and self.backend != "dev":
            raise ConfigurationError(
                f"{DEV_MODE_ENV}={value!r} is set but the {self.backend!r} backend was requested; "
                f"unset it or select the dev backend explicitly"
            )

    def prove(self) -> ProofOutcome:
        self._check_dev_mode_env()
        backend = get_backend(self.backend, engine_key=self.engine_key)
        guest_image = image_id()

        output = run_guest(self.guest_input)

        start = time.perf_counter()
        try:
            proof = backend.seal(guest_image, output.public_values, output.trace)
        except DepsealError:
            raise
        except Exception as exc:
            raise ProofGenerationError(f"{backend.name} backend failed: {exc}") from exc
        seal_seconds = time.perf_counter() - start

        profile: Dict[str, Any] = {
            "backend": backend.backend_id,
            "image_id": guest_image.hex(),
            "cycles": output.trace.cycles,
            "phase_cycles": output.trace.phase_counts(),
            "timings_ms": {name: round(secs * 1000, 3) for name, secs in output.trace.timings.items()},
        }
        profile["timings_ms"]["seal"] = round(seal_seconds * 1000, 3)
        if self.cycle_report:
            logger.info(
                "cycle report: %d cycles %s, timings (ms) %s",
                profile["cycles"],
                profile["phase_cycles"],
                profile["timings_ms"],
            )
        return ProofOutcome(
            receipt=Receipt(public_values=output.public_values, proof=proof),
            verdict=output.verdict,
            profile=profile,
        )


__all__ = ["DEV_MODE_ENV", "Prover", "ProverConfig", "ProofOutcome"]
