"""Self-Hosted Operator installer command.

One command drives every operation; ``--operation`` selects between
install, uninstall, get-console-url and status.
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer

from sho_installer.cli.context import CLIContext, get_cli_context
from sho_installer.cli.deployment.operator_deployer.cleanup import UninstallOutcome
from sho_installer.cli.deployment.operator_deployer.config import (
    InstallerSettings,
    build_install_request,
)
from sho_installer.cli.deployment.operator_deployer.constants import Operation
from sho_installer.cli.deployment.operator_deployer.deployer import RunOutcome
from sho_installer.cli.deployment.operator_deployer.polling import cancel_on_interrupt
from sho_installer.cli.shared.console import with_error_handling
from sho_installer.cli.shared.log import configure_logging

if TYPE_CHECKING:
    from sho_installer.cli.deployment.operator_deployer.deployer import OperatorDeployer


# ---------------------------------------------------------------------------
# Deployer Factory
# ---------------------------------------------------------------------------


def _get_deployer(cli: CLIContext, settings: InstallerSettings) -> "OperatorDeployer":
    """Build the operator deployer for this invocation."""
    from sho_installer.cli.deployment.operator_deployer.deployer import OperatorDeployer

    return OperatorDeployer(
        cli.console.console,
        cli.working_dir,
        settings,
        cancel=cli.cancel_token,
        load_env=False,
    )


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


@with_error_handling
def run(
    ctx: typer.Context,
    version: Annotated[
        str | None,
        typer.Option(
            "--version",
            help="Chart version to install (x.y.z). Defaults to the latest in the registry",
        ),
    ] = None,
    repository: Annotated[
        str | None,
        typer.Option(
            "--repository",
            help="Helm chart repository (oci://...). Overrides HELM_REPO_URL",
        ),
    ] = None,
    env: Annotated[
        str | None,
        typer.Option(
            "--env",
            envvar="ENV",
            help="Release environment: dev, test, ea, ga, prod, non-prod [default: ga]",
        ),
    ] = None,
    operation: Annotated[
        str,
        typer.Option(
            "--operation",
            help="install, uninstall, get-console-url or status",
        ),
    ] = Operation.INSTALL.value,
    use_acr: Annotated[
        str,
        typer.Option(
            "--use-acr",
            help="Pull images from Azure Container Registry (true/false)",
        ),
    ] = "false",
    expose: Annotated[
        str | None,
        typer.Option(
            "--expose",
            help="Console exposure: load-balancer or port-forward",
        ),
    ] = None,
    aws_login: Annotated[
        bool,
        typer.Option(
            "--aws-login",
            help="Log Helm in to ECR public with the AWS CLI session",
        ),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Skip the uninstall confirmation prompt",
        ),
    ] = False,
    no_browser: Annotated[
        bool,
        typer.Option(
            "--no-browser",
            help="Do not open the console in a browser",
        ),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            help="YAML settings file (top-level 'config:' key)",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Show diagnostic logs",
        ),
    ] = False,
) -> None:
    """Install, uninstall or inspect the OutSystems Self-Hosted Operator.

    Examples:
        sho-installer --version=0.2.3 --env=ga
        sho-installer --use-acr=true
        sho-installer --operation=get-console-url
        sho-installer --operation=uninstall
    """
    configure_logging(verbose)
    cli = get_cli_context(ctx, config)

    settings = cli.settings
    if no_browser:
        settings = settings.model_copy(update={"open_browser": False})

    request = build_install_request(
        settings=settings,
        version=version,
        environment=env or os.environ.get("ENV"),
        operation=operation,
        use_acr=use_acr,
        repository=repository,
        exposure=expose,
    )

    cli.console.print_header("OutSystems Self-Hosted Operator")
    deployer = _get_deployer(cli, settings)

    with cancel_on_interrupt(cli.cancel_token):
        if request.operation is Operation.INSTALL:
            result = deployer.deploy(request, aws_login=aws_login)
            if result.outcome is RunOutcome.SUCCESS_WITH_WARNINGS:
                cli.console.warn("Finished with warnings, see above")
        elif request.operation is Operation.UNINSTALL:
            outcome = deployer.teardown(request, force=yes)
            if outcome is UninstallOutcome.CANCELLED:
                cli.console.info("Nothing was changed")
        elif request.operation is Operation.GET_CONSOLE_URL:
            deployer.show_console_url(request)
        else:
            deployer.show_status()
