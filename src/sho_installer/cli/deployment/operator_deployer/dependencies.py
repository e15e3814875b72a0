"""Dependency detection, installation and cluster connectivity checks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from ..errors import ConnectivityError, DependencyError
from .platform import PlatformOps, Which

if TYPE_CHECKING:
    from rich.console import Console

    from ..shell_commands import ShellCommands


@dataclass
class DependencyReport:
    """Outcome of checking a set of tools."""

    available: dict[str, str] = field(default_factory=dict)
    errors: list[DependencyError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def missing(self) -> list[str]:
        return [error.tool for error in self.errors]


class DependencyResolver:
    """Makes sure helm, kubectl and (optionally) aws are on PATH.

    Missing tools are installed through the platform's strategies, tried in
    order until the tool shows up on PATH.
    """

    def __init__(
        self,
        commands: ShellCommands,
        console: Console,
        platform: PlatformOps,
        which: Which | None = None,
    ) -> None:
        self.commands = commands
        self.console = console
        self.platform = platform
        self._which = which or platform.which

    def ensure_available(self, tool: str) -> str:
        """Return the path of ``tool``, installing it when missing.

        Raises:
            DependencyError: If every strategy failed or none applies
        """
        path = self._which(tool)
        if path:
            logger.debug("{} found at {}", tool, path)
            return path

        self.console.print(f"[yellow]⚠️  {tool} is not installed[/yellow]")
        last_strategy: str | None = None
        for strategy in self.platform.install_strategies(tool):
            last_strategy = strategy.name
            self.console.print(f"[cyan]📦 Installing {tool} via {strategy.name}...[/cyan]")
            if not self._run_strategy(strategy.commands):
                self.console.print(
                    f"[yellow]⚠️  Installing {tool} via {strategy.name} failed[/yellow]"
                )
                continue
            path = self._which(tool)
            if path:
                self.console.print(f"[green]✅ {tool} installed via {strategy.name}[/green]")
                return path
            logger.warning("{} still not on PATH after {}", tool, strategy.name)

        raise DependencyError(tool, last_strategy)

    def _run_strategy(self, commands: tuple[tuple[str, ...], ...]) -> bool:
        for cmd in commands:
            result = self.commands.runner.run(cmd)
            if not result.success:
                logger.debug("Install step failed ({}): {}", result.returncode, result.output)
                return False
        return True

    def check_all(self, tools: list[str]) -> DependencyReport:
        """Check every tool without stopping on the first failure."""
        report = DependencyReport()
        for tool in tools:
            try:
                report.available[tool] = self.ensure_available(tool)
            except DependencyError as e:
                self.console.print(f"[red]❌ {e.message}[/red]")
                report.errors.append(e)
        return report

    def check_cluster_connectivity(self) -> None:
        """Verify Helm can reach a cluster with the current kubeconfig.

        Raises:
            ConnectivityError: If ``helm list --all-namespaces`` fails
        """
        result = self.commands.helm.list_all_namespaces()
        if not result.success:
            raise ConnectivityError(result.output)
        self.console.print("[green]✅ Successfully connected to Kubernetes cluster[/green]")
