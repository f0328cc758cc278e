"""Helpers shared by CLI commands."""
from __future__ import annotations

import sys
from typing import NoReturn

import click

from depseal.config import Settings, load_config
from depseal.errors import ConfigurationError
from .exit_codes import EXIT_INPUT_ERROR


def get_settings(ctx: click.Context) -> Settings:
    """Settings loaded by the group, or fresh ones when a command runs standalone."""
    if isinstance(ctx.obj, Settings):
        return ctx.obj
    try:
        ctx.obj = load_config()
    except ConfigurationError as exc:
        fail(str(exc), EXIT_INPUT_ERROR)
    return ctx.obj


def fail(message: str, code: int) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


__all__ = ["get_settings", "fail"]
