"""Helm release installation.

This module prepares namespaces, renders the override values streamed to
Helm, runs ``helm upgrade --install`` and classifies its output into
InstallError kinds.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import yaml
from loguru import logger

from ..errors import InstallError, InstallErrorKind
from ..shell_commands.types import CommandResult
from .config import AcrCredentials, ResolvedConfig
from .constants import DEFAULT_CONSTANTS, OperatorConstants

if TYPE_CHECKING:
    from rich.console import Console

    from ..shell_commands import ShellCommands


def _matches(pattern: str) -> Callable[[str], bool]:
    compiled = re.compile(pattern, re.IGNORECASE)
    return lambda output: bool(compiled.search(output))


# Evaluated in order; the first matching rule wins.
INSTALL_ERROR_RULES: list[tuple[Callable[[str], bool], InstallErrorKind]] = [
    (_matches(r"already exists"), InstallErrorKind.RELEASE_EXISTS),
    (
        _matches(r"no such host|connection refused|no route to host"),
        InstallErrorKind.NETWORK_UNREACHABLE,
    ),
    (_matches(r"unauthori[sz]ed|\b401\b"), InstallErrorKind.UNAUTHORIZED),
    (_matches(r"not found|\b404\b"), InstallErrorKind.CHART_NOT_FOUND),
]


def classify_install_output(result: CommandResult) -> InstallErrorKind | None:
    """Map a Helm result to an error kind; None means success."""
    if result.success:
        return None
    output = result.output
    for predicate, kind in INSTALL_ERROR_RULES:
        if predicate(output):
            return kind
    return InstallErrorKind.UNKNOWN


class ReleaseInstaller:
    """Installs or upgrades the operator release.

    Handles:
    - Operator and credentials-job namespace preparation
    - Chart access preflight via ``helm show chart``
    - Override values rendering (never written to disk)
    - ``helm upgrade --install`` with streamed output
    """

    def __init__(
        self,
        commands: ShellCommands,
        console: Console,
        constants: OperatorConstants | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.commands = commands
        self.console = console
        self.constants = constants or DEFAULT_CONSTANTS
        self._now = now or (lambda: datetime.now(UTC))

    # =========================================================================
    # Namespaces
    # =========================================================================

    def ensure_namespace(self, namespace: str) -> bool:
        """Create a namespace if needed. Existing namespaces count as success."""
        result = self.commands.kubectl.create_namespace(namespace)
        if result.success:
            self.console.print(f"[green]✅ Created namespace {namespace}[/green]")
            return True
        if "already exists" in result.output.lower():
            self.console.print(f"[dim]Namespace {namespace} already exists[/dim]")
            return True
        self.console.print(
            f"[yellow]⚠️  Could not create namespace {namespace}: "
            f"{result.output.strip()}[/yellow]"
        )
        return False

    def prepare_namespaces(self, config: ResolvedConfig) -> None:
        """Create the operator and credentials-job namespaces.

        Raises:
            InstallError: NAMESPACE_TERMINATING if the operator namespace is
                          still being deleted
        """
        phase = self.commands.kubectl.namespace_phase(config.namespace)
        if phase == "Terminating":
            raise InstallError(
                InstallErrorKind.NAMESPACE_TERMINATING,
                message=f"Namespace {config.namespace} is still terminating",
            )
        self.ensure_namespace(config.namespace)
        self.ensure_namespace(config.credentials_namespace)

    # =========================================================================
    # Chart access
    # =========================================================================

    def verify_chart_access(self, chart_reference: str, version: str) -> None:
        """Check that the registry serves the chart at ``version``.

        Raises:
            InstallError: Classified with the same rules as the install
        """
        result = self.commands.helm.show_chart(chart_reference, version)
        kind = classify_install_output(result)
        if kind is not None:
            raise InstallError(
                kind,
                result.output,
                message=f"Cannot access chart {chart_reference} version {version}",
            )
        logger.debug("Chart {}:{} is accessible", chart_reference, version)

    # =========================================================================
    # Values
    # =========================================================================

    def build_overrides(
        self,
        config: ResolvedConfig,
        version: str,
        timestamp: str | None = None,
        acr: AcrCredentials | None = None,
    ) -> dict[str, Any]:
        """Build the value map passed to the chart."""
        values: dict[str, Any] = {
            "image": {
                "registry": config.image_registry,
                "repository": config.image_repository,
                "tag": f"v{version}",
            },
            "podAnnotations": {
                "timestamp": timestamp or self._now().strftime("%Y-%m-%dT%H:%M:%SZ"),
            },
            "platform": config.cluster_type.value,
            "scc": {"create": config.scc_required},
            "ring": config.environment.value,
        }
        if acr is not None:
            values["registry"] = {
                "url": acr.registry_url,
                "username": acr.username,
                "password": acr.password,
            }
            values["enableECR"] = {"enabled": False}
        return values

    @staticmethod
    def render_values(values: dict[str, Any]) -> str:
        return yaml.safe_dump(values, default_flow_style=False, sort_keys=False)

    # =========================================================================
    # Install
    # =========================================================================

    def install_or_upgrade(self, config: ResolvedConfig, version: str) -> CommandResult:
        """Run ``helm upgrade --install`` for the operator chart.

        Raises:
            InstallError: When Helm fails, with the classified kind
        """
        values = self.build_overrides(config, version, acr=config.acr)
        self.console.print(
            f"[bold cyan]🚀 Installing {config.release_name} {version} "
            f"into {config.namespace}...[/bold cyan]"
        )
        result = self.commands.helm.upgrade_install(
            config.release_name,
            config.chart_reference,
            config.namespace,
            version=version,
            values_yaml=self.render_values(values),
            create_namespace=True,
            on_output=lambda line: self.console.print(f"  {line}", markup=False),
        )
        kind = classify_install_output(result)
        if kind is not None:
            raise InstallError(kind, result.output)
        self.console.print(f"[green]✅ Helm release {config.release_name} deployed[/green]")
        return result
