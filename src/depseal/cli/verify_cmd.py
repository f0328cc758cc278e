"""depseal verify - verify a receipt with stable exit codes.

Usage:
    depseal verify <receipt.dsr> [--engine-key PUB]... [--image-id HEX] [--json]

Exit codes:
    0  - Proof valid, dependencies compliant
    1  - Input error (unreadable key, bad --image-id)
    10 - Proof invalid
    11 - Proof valid, dependencies NOT compliant
    20 - Malformed receipt
"""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.console import Console

from depseal.errors import ConfigurationError, InvalidReceiptError
from depseal.harness.backends import load_public_key
from depseal.receipt import decode_receipt
from depseal.verifier import VerificationReport, verify_receipt
from .exit_codes import (
    EXIT_INPUT_ERROR,
    EXIT_MALFORMED,
    EXIT_NONCOMPLIANT,
    EXIT_OK,
    EXIT_PROOF_INVALID,
    exit_code_description,
)
from .utils import fail, get_settings


def _emit(report: VerificationReport, code: int, output_json: bool) -> None:
    if output_json:
        data = report.to_dict()
        data["exit_code"] = code
        data["exit_description"] = exit_code_description(code)
        click.echo(json.dumps(data, indent=2))
        return
    if not report.proof_valid:
        click.echo(f"REJECTED: {report.error} ({exit_code_description(code)})", err=True)
        return
    public = report.public_values
    click.echo(f"commitment root: {public.commitment_root.hex}")
    click.echo(f"package manager: {public.package_manager_id}")
    console = Console()
    console.print(f"allowlist: {', '.join(f'{n}>={m}' for n, m in public.dependency_allowlist)}")
    if public.license_allowlist is not None:
        console.print(f"licenses: {', '.join(public.license_allowlist)}")
    if public.verdict:
        click.echo(f"VERIFIED: compliant ({report.backend})")
    else:
        click.echo(f"VERIFIED: NOT compliant ({report.backend})")


@click.command("verify")
@click.argument("receipt", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--engine-key", "engine_keys", multiple=True, type=click.Path(path_type=Path),
              help="Trusted engine public key PEM (repeatable; default from config)")
@click.option("--image-id", default=None, help="Expected guest image id (hex; default: this installation's guest)")
@click.option("--allow-dev", is_flag=True, help="Accept dev receipts, which carry no proof")
@click.option("--json", "output_json", is_flag=True, help="Output result as JSON")
@click.pass_context
def verify_command(
    ctx: click.Context,
    receipt: Path,
    engine_keys: Tuple[Path, ...],
    image_id: Optional[str],
    allow_dev: bool,
    output_json: bool,
) -> None:
    """Verify a depseal receipt.

    The verdict is only reported once the proof checks out.
    """
    settings = get_settings(ctx)

    key_paths: List[Path] = list(engine_keys) or list(settings.trusted_keys)
    if not key_paths:
        default_pub = settings.default_engine_key.with_suffix(".pub")
        if default_pub.exists():
            key_paths = [default_pub]
    try:
        trusted = [load_public_key(p) for p in key_paths]
    except ConfigurationError as exc:
        fail(str(exc), EXIT_INPUT_ERROR)

    expected: Optional[bytes] = None
    if image_id is not None:
        try:
            expected = bytes.fromhex(image_id)
        except ValueError:
            fail(f"--image-id is not hex: {image_id!r}", EXIT_INPUT_ERROR)
        if len(expected) != 32:
            fail("--image-id must be 32 bytes", EXIT_INPUT_ERROR)

    try:
        parsed = decode_receipt(receipt.read_bytes())
    except InvalidReceiptError as exc:
        _emit(VerificationReport(proof_valid=False, error=str(exc)), EXIT_MALFORMED, output_json)
        sys.exit(EXIT_MALFORMED)

    try:
        report = verify_receipt(parsed, trusted_keys=trusted, image_id=expected, allow_dev=allow_dev)
    except InvalidReceiptError as exc:
        report = VerificationReport(
            proof_valid=False,
            backend=parsed.proof.backend,
            image_id=parsed.proof.image_id,
            error=str(exc),
        )
        _emit(report, EXIT_PROOF_INVALID, output_json)
        sys.exit(EXIT_PROOF_INVALID)

    code = EXIT_OK if report.verdict else EXIT_NONCOMPLIANT
    _emit(report, code, output_json)
    sys.exit(code)


__all__ = ["verify_command"]
