"""Self-Hosted Operator deployer.

This module provides the OperatorDeployer class which orchestrates the
operator lifecycle. It coordinates specialized components for:
- Dependency detection and installation
- Registry authentication and version lookup
- Helm release installation
- Pod readiness polling
- Console exposure (LoadBalancer or port-forward)
- Uninstall with finalizer cleanup
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
from rich.console import Console
from rich.table import Table

from ..base import BaseDeployer
from ..errors import DeploymentError, ExposeError, ExposeErrorKind
from ..shell_commands import ShellCommands
from .cleanup import Uninstaller, UninstallOutcome
from .config import (
    InstallerSettings,
    InstallRequest,
    ResolvedConfig,
    build_install_request,
    identify_cluster,
    resolve_config,
)
from .constants import DEFAULT_CONSTANTS, ClusterType, Operation, OperatorConstants
from .dependencies import DependencyResolver
from .exposer import Endpoint, build_exposer
from .helm_release import ReleaseInstaller
from .platform import PlatformOps, detect_platform
from .polling import CancellationToken, Clock, SystemClock
from .readiness import ReadinessPoller, ReadinessResult, show_troubleshooting_commands
from .registry import RegistryClient


class RunOutcome(Enum):
    SUCCESS = "success"
    SUCCESS_WITH_WARNINGS = "success_with_warnings"


@dataclass
class DeployResult:
    """What an install run produced."""

    config: ResolvedConfig
    version: str
    readiness: ReadinessResult
    endpoint: Endpoint | None = None
    warnings: int = 0

    @property
    def outcome(self) -> RunOutcome:
        return RunOutcome.SUCCESS_WITH_WARNINGS if self.warnings else RunOutcome.SUCCESS


class OperatorDeployer(BaseDeployer):
    """Deployer for the OutSystems Self-Hosted Operator.

    The install workflow consists of:
    1. Check (and install) helm, kubectl and optionally aws
    2. Verify cluster connectivity
    3. Identify the cluster type and resolve chart coordinates
    4. Resolve the chart version (explicit or latest in the registry)
    5. Authenticate Helm with the registry
    6. Prepare namespaces and verify chart access
    7. Deploy via helm upgrade --install
    8. Wait for pods to become ready
    9. Expose the console and report its URL

    Readiness and exposure problems are reported as warnings; the release
    stays installed.
    """

    def __init__(
        self,
        console: Console,
        working_dir: Path,
        settings: InstallerSettings | None = None,
        *,
        commands: ShellCommands | None = None,
        platform: PlatformOps | None = None,
        clock: Clock | None = None,
        cancel: CancellationToken | None = None,
        http_client: httpx.Client | None = None,
        constants: OperatorConstants | None = None,
        prompt: Callable[[str], str] | None = None,
        environ: Mapping[str, str] | None = None,
        load_env: bool = True,
    ) -> None:
        super().__init__(console, working_dir, load_env=load_env)

        self.settings = settings or InstallerSettings()
        self.constants = constants or DEFAULT_CONSTANTS
        self.cancel = cancel or CancellationToken()
        self.clock = clock or SystemClock()
        self.environ = environ
        self._http_client = http_client

        # Command executor
        self.commands = commands or ShellCommands(working_dir, cancel_token=self.cancel)
        self.platform = platform or detect_platform(self.commands.runner)

        # Specialized components
        self.dependencies = DependencyResolver(
            commands=self.commands,
            console=console,
            platform=self.platform,
        )
        self.registry = RegistryClient(
            commands=self.commands,
            console=console,
            http_client=http_client,
            constants=self.constants,
            timeout=self.settings.reachability.request_timeout,
        )
        self.installer = ReleaseInstaller(
            commands=self.commands,
            console=console,
            constants=self.constants,
        )
        self.poller = ReadinessPoller(
            commands=self.commands,
            console=console,
            constants=self.constants,
            clock=self.clock,
            cancel=self.cancel,
            interval=self.settings.readiness.interval,
            timeout=self.settings.readiness.timeout,
        )
        self.uninstaller = Uninstaller(
            commands=self.commands,
            console=console,
            platform=self.platform,
            constants=self.constants,
            clock=self.clock,
            cancel=self.cancel,
            prompt=prompt,
            settle=self.settings.uninstall_settle,
            pod_settle=self.settings.pod_cleanup_settle,
        )

    # =========================================================================
    # Preflight
    # =========================================================================

    def _preflight(self, *, aws_login: bool = False) -> None:
        """Ensure the tools are present and the cluster is reachable."""
        self.console.print("[bold cyan]🔍 Checking dependencies...[/bold cyan]")
        tools = ["helm", "kubectl"] + (["aws"] if aws_login else [])
        report = self.dependencies.check_all(tools)
        if not report.ok:
            raise DeploymentError(
                f"Missing required tools: {', '.join(report.missing)}",
                details="\n".join(
                    f"{error.tool}: {error.details}" for error in report.errors
                ),
            )
        self.dependencies.check_cluster_connectivity()

    def _identify_cluster(self) -> ClusterType:
        with self.create_progress() as progress:
            progress.add_task("Identifying cluster type...", total=None)
            cluster_type = identify_cluster(self.commands.kubectl)
        self.info(f"Cluster type: {cluster_type.value}")
        return cluster_type

    def _print_summary(self, config: ResolvedConfig, version: str) -> None:
        table = Table(title="Installation Configuration", show_header=False)
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        table.add_row("Environment", config.environment.value)
        table.add_row("Chart", config.chart_reference)
        table.add_row("Version", version)
        table.add_row("Image", f"{config.image_registry}/{config.image_repository}:v{version}")
        table.add_row("Namespace", config.namespace)
        table.add_row("Cluster type", config.cluster_type.value)
        table.add_row("Registry mode", config.request.registry_mode.value)
        table.add_row("Exposure", config.request.exposure.value)
        self.console.print(table)

    # =========================================================================
    # Operations
    # =========================================================================

    def _default_request(self, operation: Operation) -> InstallRequest:
        return build_install_request(
            settings=self.settings,
            operation=operation.value,
            environ=self.environ,
            constants=self.constants,
        )

    def deploy(
        self,
        request: InstallRequest | None = None,
        aws_login: bool = False,
        **kwargs: Any,
    ) -> DeployResult:
        """Install or upgrade the operator and expose its console.

        Args:
            request: Validated install request (default: latest GA from settings)
            aws_login: Exchange AWS credentials before the registry login
            **kwargs: Reserved for future options

        Raises:
            DeploymentError: On any fatal failure before the release is up
        """
        request = request or self._default_request(Operation.INSTALL)
        self._preflight(aws_login=aws_login)

        config = resolve_config(
            request,
            self.settings,
            cluster_type=self._identify_cluster(),
            environ=self.environ,
            constants=self.constants,
        )
        with self.registry:
            version = self.registry.resolve_version(config)
        self._print_summary(config, version)

        self.registry.authenticate(config, aws_login=aws_login)
        self.installer.prepare_namespaces(config)
        self.installer.verify_chart_access(config.chart_reference, version)
        self.installer.install_or_upgrade(config, version)

        readiness = self.poller.wait(config.release_name, config.namespace)
        result = DeployResult(config=config, version=version, readiness=readiness)
        if not readiness.ready:
            result.warnings += 1
            self.warning("Installation completed, but pods are not yet ready")
            show_troubleshooting_commands(self.console, config.namespace, config.release_name)

        try:
            result.endpoint = self._expose(config.request)
        except ExposeError as e:
            result.warnings += 1
            self.warning(e.message)
            if e.details:
                self.console.print(f"[dim]{e.details}[/dim]")
        else:
            if not result.endpoint.reachable:
                result.warnings += 1

        self._print_completion(result)
        return result

    def _expose(self, request: InstallRequest) -> Endpoint:
        exposer = build_exposer(
            request.exposure,
            self.commands,
            self.console,
            self.platform,
            self.settings,
            constants=self.constants,
            clock=self.clock,
            cancel=self.cancel,
            http_client=self._http_client,
        )
        with exposer.probe:
            return exposer.expose_and_verify(
                request.release_name, request.namespace, self.settings.console_port
            )

    def _print_completion(self, result: DeployResult) -> None:
        self.console.print()
        if result.outcome is RunOutcome.SUCCESS:
            self.success(f"OutSystems Self-Hosted Operator {result.version} installed")
        else:
            self.warning(
                f"OutSystems Self-Hosted Operator {result.version} installed with warnings"
            )
        if result.endpoint is not None:
            self.console.print(
                f"[bold]🌐 Console URL:[/bold] [link={result.endpoint.url}]"
                f"{result.endpoint.url}[/link]"
            )

    def teardown(
        self,
        request: InstallRequest | None = None,
        force: bool = False,
        **kwargs: Any,
    ) -> UninstallOutcome:
        """Uninstall the operator after confirmation.

        A declined confirmation is a successful no-op (CANCELLED).

        Args:
            request: Install request naming the release (default: from settings)
            force: Skip the confirmation prompt
            **kwargs: Reserved for future options
        """
        request = request or self._default_request(Operation.UNINSTALL)
        self._preflight()
        return self.uninstaller.run(
            request.release_name,
            request.namespace,
            self.settings.credentials_namespace,
            force=force,
            console_port=self.settings.console_port,
        )

    def show_console_url(self, request: InstallRequest) -> Endpoint:
        """Report the console URL of an installed release.

        Raises:
            ExposeError: RELEASE_NOT_FOUND when nothing is installed
        """
        self._preflight()
        if not self.commands.helm.release_exists(request.release_name, request.namespace):
            raise ExposeError(
                ExposeErrorKind.RELEASE_NOT_FOUND,
                f"Release {request.release_name} not found in namespace {request.namespace}",
                details="Install the operator first, or run: helm list --all-namespaces",
            )
        endpoint = self._expose(request)
        self.console.print(
            f"[bold]🌐 Console URL:[/bold] [link={endpoint.url}]{endpoint.url}[/link]"
        )
        return endpoint

    def show_status(self) -> None:
        """Display the release status and a table of its pods."""
        self._preflight()
        namespace = self.settings.namespace
        release = self.settings.release_name

        found = [r for r in self.commands.helm.list_releases(namespace) if r.name == release]
        if not found:
            self.warning(f"Release {release} not found in namespace {namespace}")
            return

        info = found[0]
        summary = Table(title="Helm Release", show_header=False)
        summary.add_column("Field", style="cyan")
        summary.add_column("Value")
        summary.add_row("Name", info.name)
        summary.add_row("Namespace", info.namespace)
        summary.add_row("Status", info.status)
        summary.add_row("Revision", info.revision)
        summary.add_row("Chart", info.chart)
        summary.add_row("App version", info.app_version)
        self.console.print(summary)

        pods = self.commands.kubectl.get_pod_statuses(
            namespace, self.constants.instance_selector(release)
        )
        table = Table(title=f"Pods in {namespace}")
        table.add_column("Name", style="cyan")
        table.add_column("Phase")
        table.add_column("Ready")
        table.add_column("Restarts", justify="right")
        table.add_column("Reason", style="dim")
        for pod in pods:
            table.add_row(
                pod.name,
                pod.phase,
                "[green]yes[/green]" if pod.ready else "[red]no[/red]",
                str(pod.restarts),
                pod.reason,
            )
        self.console.print(table)
        if not pods:
            self.info("No pods found for the release")
