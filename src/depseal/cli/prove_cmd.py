"""depseal prove - audit an archive and write a receipt.

Exit codes:
    0  - Compliant, receipt written
    1  - Input error (archive, lockfile, allowlist, config)
    11 - Not compliant (receipt only kept with --keep-noncompliant)
    30 - Proof generation failed; safe to retry
"""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from depseal.allowlist import load_allowlist
from depseal.commitment.archive import load_archive
from depseal.errors import DepsealError
from depseal.harness.backends import load_engine_key
from depseal.harness.prover import ProofOutcome, Prover
from depseal.resolvers import PackageManagerSpec
from .exit_codes import EXIT_NONCOMPLIANT, EXIT_OK, error_to_exit_code
from .utils import fail, get_settings


def _print_summary(outcome: ProofOutcome, out: Optional[Path]) -> None:
    public = outcome.receipt.public_values
    table = Table(show_header=False, box=None)
    table.add_column("field", style="bold")
    table.add_column("value")
    table.add_row("package manager", public.package_manager_id)
    table.add_row("allowlisted packages", str(len(public.dependency_allowlist)))
    table.add_row("licenses", ", ".join(public.license_allowlist) if public.license_allowlist else "any")
    table.add_row("dependencies checked", str(outcome.verdict.checked))
    table.add_row("cycles", str(outcome.profile["cycles"]))
    verdict = "[green]compliant[/green]" if outcome.compliant else "[red]NOT compliant[/red]"
    table.add_row("verdict", verdict)
    table.add_row("receipt", str(out) if out else "[dim]not written[/dim]")
    Console().print(table)


@click.command("prove")
@click.option("-a", "--archive", "archive_path", required=True, type=click.Path(exists=True, path_type=Path),
              help="Source archive: directory, .tar or .tar.gz")
@click.option("-m", "--manager", required=True, help="Package manager (see `depseal managers`)")
@click.option("-V", "--manager-version", required=True, help="Version of the package manager that wrote the lockfile")
@click.option("-p", "--allowlist", "allowlist_path", required=True, type=click.Path(exists=True, path_type=Path),
              help="Allowlist JSON file")
@click.option("--license", "licenses", multiple=True, help="Allowed license identifier (repeatable)")
@click.option("--lockfile", default=None, help="Lockfile path inside the archive (default: auto-detect)")
@click.option("--backend", type=click.Choice(["attested", "dev"]), default=None,
              help="Execution backend (default from config: attested)")
@click.option("--engine-key", type=click.Path(path_type=Path), default=None,
              help="Engine private key PEM (default: ~/.depseal/keys/engine_key.pem)")
@click.option("-o", "--out", type=click.Path(path_type=Path), default=Path("receipt.dsr"), show_default=True,
              help="Receipt output path")
@click.option("--keep-noncompliant", is_flag=True, help="Write the receipt even when the verdict is false")
@click.option("--cycle-report", is_flag=True, help="Log step counts and phase timings")
@click.option("--json", "output_json", is_flag=True, help="Output result as JSON")
@click.pass_context
def prove_command(
    ctx: click.Context,
    archive_path: Path,
    manager: str,
    manager_version: str,
    allowlist_path: Path,
    licenses: Tuple[str, ...],
    lockfile: Optional[str],
    backend: Optional[str],
    engine_key: Optional[Path],
    out: Path,
    keep_noncompliant: bool,
    cycle_report: bool,
    output_json: bool,
) -> None:
    """Prove that an archive only depends on allowlisted packages."""
    settings = get_settings(ctx)
    backend_name = backend or settings.backend

    try:
        archive = load_archive(archive_path, max_member_bytes=settings.max_member_bytes)
        allowlist, license_allowlist = load_allowlist(allowlist_path, licenses)
        prover = (
            Prover()
            .with_archive(archive)
            .with_package_manager(PackageManagerSpec.parse(manager, manager_version))
            .with_allowlist(allowlist)
            .with_license_allowlist(license_allowlist)
            .with_lockfile(lockfile)
            .with_cycle_report(cycle_report)
            .with_commit_workers(settings.commit_workers)
        )
        if backend_name == "dev":
            prover = prover.with_backend("dev")
        else:
            key_path = engine_key or settings.engine_key or settings.default_engine_key
            prover = prover.with_backend(backend_name, load_engine_key(key_path))
        outcome = prover.prove()
    except DepsealError as exc:
        fail(f"{exc} (retryable)" if exc.retryable else str(exc), error_to_exit_code(exc))

    written: Optional[Path] = None
    if outcome.compliant or keep_noncompliant:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(outcome.receipt.to_bytes())
        written = out

    violation = outcome.verdict.violation
    if output_json:
        click.echo(json.dumps({
            "compliant": outcome.compliant,
            "image_id": outcome.profile["image_id"],
            "commitment_root": outcome.receipt.public_values.commitment_root.hex,
            "receipt": str(written) if written else None,
            "violation": {"kind": violation.kind, "message": str(violation)} if violation else None,
            "profile": outcome.profile,
        }, indent=2))
    else:
        click.echo(f"image id:        {outcome.profile['image_id']}")
        click.echo(f"commitment root: {outcome.receipt.public_values.commitment_root.hex}")
        _print_summary(outcome, written)
        if violation is not None:
            click.echo(f"NON-COMPLIANT: {violation}", err=True)

    sys.exit(EXIT_OK if outcome.compliant else EXIT_NONCOMPLIANT)


__all__ = ["prove_command"]
