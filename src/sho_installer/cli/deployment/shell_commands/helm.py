"""Helm command abstractions.

This module provides commands for Helm release management,
including deployment, uninstallation, registry authentication and status
queries.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import TYPE_CHECKING

from .types import CommandResult, HelmRelease

if TYPE_CHECKING:
    from .runner import CommandRunner


class HelmCommands:
    """Helm-related shell commands.

    Provides operations for:
    - Release management (install, upgrade, uninstall)
    - Chart access checks against OCI registries
    - Registry login/logout
    - Status queries (status, list releases)
    """

    def __init__(self, runner: CommandRunner) -> None:
        """Initialize Helm commands.

        Args:
            runner: Command runner for executing shell commands
        """
        self._runner = runner

    # =========================================================================
    # Release Management
    # =========================================================================

    def upgrade_install(
        self,
        release_name: str,
        chart_ref: str,
        namespace: str,
        *,
        version: str | None = None,
        values_yaml: str | None = None,
        create_namespace: bool = True,
        on_output: Callable[[str], None] | None = None,
    ) -> CommandResult:
        """Deploy or upgrade a Helm release.

        Uses `helm upgrade --install` to idempotently deploy a chart.
        If the release doesn't exist, it will be installed. If it exists,
        it will be upgraded.

        Args:
            release_name: Name for the Helm release
            chart_ref: Chart reference (OCI URL or local path)
            namespace: Kubernetes namespace for deployment
            version: Chart version to install (default: latest in the repo)
            values_yaml: Values document streamed to Helm through stdin, so
                         credentials never appear in argv or on disk
            create_namespace: Whether to create namespace if it doesn't exist
            on_output: Optional callback for real-time output streaming.
                      If provided, each line of output is passed to this function.

        Returns:
            CommandResult with deployment status; stdout holds the merged
            stdout/stderr when streaming
        """
        cmd = [
            "helm",
            "upgrade",
            "--install",
            release_name,
            chart_ref,
            "--namespace",
            namespace,
        ]

        if create_namespace:
            cmd.append("--create-namespace")
        if version:
            cmd.extend(["--version", version])
        if values_yaml is not None:
            cmd.extend(["--values", "-"])

        return self._runner.run_streaming(
            cmd, on_output=on_output, input_data=values_yaml
        )

    def uninstall(
        self,
        release_name: str,
        namespace: str,
        *,
        wait: bool = False,
    ) -> CommandResult:
        """Uninstall a Helm release.

        Args:
            release_name: Name of the release to uninstall
            namespace: Kubernetes namespace
            wait: Whether to wait for resources to be deleted

        Returns:
            CommandResult with uninstall status
        """
        cmd = ["helm", "uninstall", release_name, "-n", namespace]
        if wait:
            cmd.append("--wait")
        return self._runner.run(cmd)

    def show_chart(self, chart_ref: str, version: str | None = None) -> CommandResult:
        """Fetch chart metadata, verifying the registry serves the chart.

        Args:
            chart_ref: Chart reference (OCI URL or local path)
            version: Optional chart version

        Returns:
            CommandResult with Chart.yaml contents on success
        """
        cmd = ["helm", "show", "chart", chart_ref]
        if version:
            cmd.extend(["--version", version])
        return self._runner.run(cmd)

    # =========================================================================
    # Registry Authentication
    # =========================================================================

    def registry_login(self, host: str, username: str, password: str) -> CommandResult:
        """Log in to an OCI registry, passing the password through stdin."""
        return self._runner.run(
            [
                "helm",
                "registry",
                "login",
                host,
                "--username",
                username,
                "--password-stdin",
            ],
            input_data=password,
        )

    def registry_logout(self, host: str) -> CommandResult:
        """Remove stored credentials for an OCI registry."""
        return self._runner.run(["helm", "registry", "logout", host])

    # =========================================================================
    # Status Queries
    # =========================================================================

    def status(self, release_name: str, namespace: str) -> CommandResult:
        """Get the status of a release (fails when the release is absent)."""
        return self._runner.run(["helm", "status", release_name, "-n", namespace])

    def release_exists(self, release_name: str, namespace: str) -> bool:
        """Check whether a release is installed in a namespace."""
        return self.status(release_name, namespace).success

    def list_all_namespaces(self) -> CommandResult:
        """List releases across all namespaces.

        Exit status alone tells whether Helm can talk to the cluster.
        """
        return self._runner.run(["helm", "list", "--all-namespaces"])

    def list_releases(self, namespace: str) -> list[HelmRelease]:
        """List Helm releases in a namespace.

        Args:
            namespace: Kubernetes namespace to query

        Returns:
            List of HelmRelease objects
        """
        cmd = ["helm", "list", "-n", namespace, "-o", "json"]

        result = self._runner.run(cmd)
        if not result.success or not result.stdout:
            return []

        try:
            releases_data = json.loads(result.stdout)
            return [
                HelmRelease(
                    name=r.get("name", ""),
                    namespace=r.get("namespace", ""),
                    status=r.get("status", ""),
                    revision=str(r.get("revision", "")),
                    chart=r.get("chart", ""),
                    app_version=r.get("app_version", ""),
                )
                for r in releases_data
            ]
        except json.JSONDecodeError:
            return []
