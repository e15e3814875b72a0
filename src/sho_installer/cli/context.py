"""CLI context and dependency container."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import click
import typer
from dotenv import load_dotenv

from sho_installer.cli.deployment.operator_deployer.config import (
    InstallerSettings,
    load_settings,
)
from sho_installer.cli.deployment.operator_deployer.polling import CancellationToken
from sho_installer.cli.shared.console import CLIConsole, console


@dataclass(frozen=True)
class CLIContext:
    """Runtime dependencies for CLI commands."""

    console: CLIConsole
    working_dir: Path
    settings: InstallerSettings
    cancel_token: CancellationToken


def build_cli_context(
    config_path: Path | None = None,
    working_dir: Path | None = None,
) -> CLIContext:
    """Build a fresh CLIContext.

    The working directory's .env is loaded first (without overriding the
    process environment) so it can also point at the settings file.
    """
    working_dir = working_dir or Path.cwd()
    load_dotenv(working_dir / ".env", override=False)

    return CLIContext(
        console=console,
        working_dir=working_dir,
        settings=load_settings(config_path),
        cancel_token=CancellationToken(),
    )


def get_cli_context(
    ctx: typer.Context | None = None, config_path: Path | None = None
) -> CLIContext:
    """Return the CLIContext from Typer, falling back to a new instance."""
    context = ctx or click.get_current_context(silent=True)
    if context and isinstance(context.obj, CLIContext):
        return context.obj
    return build_cli_context(config_path)
