"""depseal CLI - prove dependency compliance without disclosing the source.

Commands:
    prove    - Run the audit and write a receipt
    verify   - Verify a receipt with stable exit codes for CI
    commit   - Print the commitment root of an archive
    keygen   - Generate an engine key pair
    managers - List supported package managers
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from depseal import __version__
from depseal.config import load_config
from depseal.errors import ConfigurationError
from .commit_cmd import commit_command
from .exit_codes import EXIT_INPUT_ERROR
from .keygen_cmd import keygen_command
from .managers_cmd import managers_command
from .prove_cmd import prove_command
from .verify_cmd import verify_command


@click.group()
@click.version_option(version=__version__, prog_name="depseal")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging (producer side: may show paths and names)")
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="Config file (default: ~/.depseal/config.json)")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """depseal - zero-knowledge style dependency compliance receipts.

    \b
    Quick Start:
        depseal keygen
        depseal prove -a src.tar.gz -m cargo -V 1.78.0 -p allowlist.json
        depseal verify receipt.dsr --engine-key ~/.depseal/keys/engine_key.pub
    """
    try:
        settings = load_config(config_path)
    except ConfigurationError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_INPUT_ERROR)
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = settings


cli.add_command(prove_command, name="prove")
cli.add_command(verify_command, name="verify")
cli.add_command(commit_command, name="commit")
cli.add_command(keygen_command, name="keygen")
cli.add_command(managers_command, name="managers")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
