"""depseal commit - print the commitment root of an archive."""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import click

from depseal.commitment import CommitmentRoot, commitment_levels, load_archive, prove_membership
from depseal.commitment.merkle import root_from_levels
from depseal.errors import InputError
from .exit_codes import EXIT_INPUT_ERROR, EXIT_OK
from .utils import fail, get_settings


@click.command("commit")
@click.argument("archive_path", type=click.Path(exists=True, path_type=Path))
@click.option("--member", default=None, help="Also emit a membership proof for this path")
@click.option("--json", "output_json", is_flag=True, help="Output result as JSON")
@click.pass_context
def commit_command(ctx: click.Context, archive_path: Path, member: Optional[str], output_json: bool) -> None:
    """Compute the canonical commitment root of ARCHIVE_PATH.

    The root is what a receipt discloses; anyone holding the same archive
    recomputes it with this command.
    """
    settings = get_settings(ctx)
    try:
        archive = load_archive(archive_path, max_member_bytes=settings.max_member_bytes)
        levels = commitment_levels(archive, workers=settings.commit_workers)
        root = CommitmentRoot(root_from_levels(levels))
        proof = prove_membership(archive, member, levels=levels) if member is not None else None
    except InputError as exc:
        fail(str(exc), EXIT_INPUT_ERROR)

    if output_json:
        data = {
            "commitment_root": root.hex,
            "entries": len(archive),
            "total_bytes": archive.total_bytes,
        }
        if proof is not None:
            data["membership_proof"] = proof.to_json()
        click.echo(json.dumps(data, indent=2))
    else:
        click.echo(root.hex)
        if proof is not None:
            click.echo(json.dumps(proof.to_json(), indent=2))
    sys.exit(EXIT_OK)


__all__ = ["commit_command"]
