"""Operator uninstall and finalizer cleanup.

The operator provisions resources across many namespaces, several of them
guarded by finalizers that only the (now removed) controllers would clear.
Uninstall therefore strips finalizers explicitly and force-deletes
leftover pods before starting namespace deletion.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from ..errors import UninstallError, UninstallErrorKind
from .constants import DEFAULT_CONSTANTS, OperatorConstants
from .exposer import active_port_forward
from .platform import PlatformOps
from .polling import CancellationToken, Clock, SystemClock

if TYPE_CHECKING:
    from rich.console import Console

    from ..shell_commands import ShellCommands


class UninstallOutcome(Enum):
    CANCELLED = "cancelled"
    COMPLETED = "completed"


CONFIRMATION_ANSWER = "yes"


class Uninstaller:
    """Removes the operator release and the resources it leaves behind.

    Every step after the release check is best-effort except the Helm
    uninstall itself.
    """

    def __init__(
        self,
        commands: ShellCommands,
        console: Console,
        platform: PlatformOps,
        constants: OperatorConstants | None = None,
        clock: Clock | None = None,
        cancel: CancellationToken | None = None,
        prompt: Callable[[str], str] | None = None,
        settle: float = 30.0,
        pod_settle: float = 10.0,
    ) -> None:
        self.commands = commands
        self.console = console
        self.platform = platform
        self.constants = constants or DEFAULT_CONSTANTS
        self.clock = clock or SystemClock()
        self.cancel = cancel
        self.prompt = prompt or self._console_prompt
        self.settle = settle
        self.pod_settle = pod_settle

    def _console_prompt(self, question: str) -> str:
        try:
            return self.console.input(question)
        except (KeyboardInterrupt, EOFError):
            self.console.print()
            return ""

    # =========================================================================
    # Entry point
    # =========================================================================

    def run(
        self,
        release_name: str,
        namespace: str,
        credentials_namespace: str,
        *,
        force: bool = False,
        console_port: int | None = None,
    ) -> UninstallOutcome:
        """Uninstall the release after an exact ``yes`` confirmation.

        Raises:
            UninstallError: RELEASE_NOT_FOUND or HELM_UNINSTALL_FAILED
        """
        if not force and not self.confirm(release_name, namespace):
            self.console.print("[yellow]🛑 Uninstallation cancelled[/yellow]")
            return UninstallOutcome.CANCELLED

        self.console.print("\n[bold]🗑️  Uninstalling OutSystems Self-Hosted Operator...[/bold]")

        if not self.commands.helm.release_exists(release_name, namespace):
            raise UninstallError(
                UninstallErrorKind.RELEASE_NOT_FOUND,
                f"Release {release_name} not found in namespace {namespace}",
            )

        self.remove_frontends(release_name, namespace, console_port)
        self.clear_operator_finalizers()

        self.console.print("[cyan]🗑️  Uninstalling Helm release...[/cyan]")
        result = self.commands.helm.uninstall(release_name, namespace)
        if not result.success:
            raise UninstallError(
                UninstallErrorKind.HELM_UNINSTALL_FAILED,
                f"Failed to uninstall release {release_name}",
                result.output,
            )
        self.console.print(f"[green]✅ Release {release_name} uninstalled[/green]")

        self.cleanup_dependents()
        self.delete_namespaces(namespace, credentials_namespace)

        self.console.print(
            "\n[bold green]🎉 OutSystems Self-Hosted Operator was successfully "
            "uninstalled![/bold green]"
        )
        return UninstallOutcome.COMPLETED

    def confirm(self, release_name: str, namespace: str) -> bool:
        self.console.print(
            "[bold red]⚠️  WARNING: You are about to uninstall OutSystems "
            "Self-Hosted Operator[/bold red]\n"
            "    This will remove the Helm release, the LoadBalancer service "
            "and the namespace\n\n"
            f"    Release:   {release_name}\n"
            f"    Namespace: {namespace}\n"
        )
        answer = self.prompt(
            "🚨 Are you sure you want to proceed with uninstallation? (yes/no): "
        )
        return answer.strip() == CONFIRMATION_ANSWER

    # =========================================================================
    # Steps
    # =========================================================================

    def remove_frontends(
        self, release_name: str, namespace: str, console_port: int | None = None
    ) -> None:
        """Stop local port-forwards and delete the public service."""
        if console_port is not None:
            handle = active_port_forward(console_port)
            if handle is not None:
                handle.stop()
        self.platform.stop_port_forwards(console_port)

        service = self.constants.public_service_name(release_name)
        if not self.commands.kubectl.service_exists(service, namespace):
            self.console.print("[dim]No LoadBalancer service found[/dim]")
            return
        result = self.commands.kubectl.delete_service(service, namespace)
        if result.success:
            self.console.print(f"[green]✅ Removed LoadBalancer service {service}[/green]")
        else:
            self.console.print(
                f"[yellow]⚠️  Failed to remove LoadBalancer service {service}[/yellow]"
            )

    def _strip_finalizers(self, kinds: str, namespace: str | None = None) -> int:
        cleared = 0
        for resource in self.commands.kubectl.list_resource_names(kinds, namespace):
            result = self.commands.kubectl.clear_finalizers(resource, namespace)
            if result.success:
                cleared += 1
            else:
                logger.warning("Could not clear finalizers on {}: {}", resource, result.output.strip())
        return cleared

    def clear_operator_finalizers(self) -> None:
        """Release the operator's own custom resources before uninstall."""
        self.console.print("[cyan]🧹 Cleaning up operator resources...[/cyan]")
        for kind in self.constants.FINALIZER_KINDS:
            self._strip_finalizers(kind)
        self.commands.kubectl.delete_resource(
            self.constants.RUNTIME_RESOURCE_KIND,
            self.constants.RUNTIME_RESOURCE_NAME,
        )

    def cleanup_dependents(self) -> None:
        """Unblock resources in the namespaces the operator provisioned."""
        self.console.print("[dim]Waiting for resources to clean up...[/dim]")
        self.clock.sleep(self.settle, self.cancel)

        self._strip_finalizers(self.constants.VAULT_ROLE_KIND)
        for ns in self.constants.FINALIZER_NAMESPACES:
            self.console.print(f"[dim]  Patching namespace {ns}[/dim]")
            self._strip_finalizers(self.constants.FLUX_RESOURCE_KINDS, ns)

        self.clock.sleep(self.pod_settle, self.cancel)
        for ns in self.constants.POD_CLEANUP_NAMESPACES:
            self.console.print(f"[dim]  Cleaning up pods in {ns}[/dim]")
            result = self.commands.kubectl.delete_all_pods(ns)
            if not result.success:
                logger.debug("Pod cleanup in {} failed: {}", ns, result.output.strip())

    def delete_namespaces(self, namespace: str, credentials_namespace: str) -> None:
        """Start non-blocking deletion of the operator namespaces."""
        self.console.print(f"[cyan]🗑️  Deleting namespace {namespace}...[/cyan]")
        failed = False
        for ns in (namespace, credentials_namespace):
            result = self.commands.kubectl.delete_namespace(ns, wait=False)
            if not result.success:
                failed = True
                logger.warning("Failed to delete namespace {}: {}", ns, result.output.strip())
        if failed:
            self.console.print("[yellow]⚠️  Failed to delete namespace[/yellow]")
        else:
            self.console.print(
                "[green]✅ Namespace deletion initiated[/green]\n"
                "[dim]   Namespace deletion might take some time to complete[/dim]"
            )
