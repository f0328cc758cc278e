"""depseal keygen - generate an Ed25519 engine key pair.

The private key seals receipts on the producer side; the ``.pub`` file is
what consumers pass to ``depseal verify --engine-key``.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from depseal.harness.backends import generate_engine_key, public_key_bytes, write_key_pair
from .exit_codes import EXIT_INPUT_ERROR
from .utils import fail, get_settings


@click.command("keygen")
@click.option("--out-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory for engine_key.pem / engine_key.pub (default: ~/.depseal/keys)")
@click.option("--force", is_flag=True, help="Overwrite an existing key pair")
@click.pass_context
def keygen_command(ctx: click.Context, out_dir: Optional[Path], force: bool) -> None:
    """Generate an engine signing key pair."""
    settings = get_settings(ctx)
    out_dir = out_dir or settings.default_engine_key.parent
    key_path = out_dir / "engine_key.pem"
    if key_path.exists() and not force:
        fail(f"{key_path} already exists (use --force to replace it)", EXIT_INPUT_ERROR)

    key = generate_engine_key()
    key_path, pub_path = write_key_pair(key, out_dir)
    click.echo("Generated engine key pair:")
    click.echo(f"  Private: {key_path}")
    click.echo(f"  Public:  {pub_path}")
    click.echo(f"  Key id:  {public_key_bytes(key).hex()}")


__all__ = ["keygen_command"]
