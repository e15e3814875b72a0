"""Main CLI application module.

This module provides the main entry point for the Self-Hosted Operator
installer. A single command covers every operation, selected with
``--operation``.
"""

import typer

from .commands import operator_command

# Create the main CLI application
app = typer.Typer(
    help="🛠️  OutSystems Self-Hosted Operator installer",
    no_args_is_help=False,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)

app.command(name="sho-installer")(operator_command)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
