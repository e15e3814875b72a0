"""Kubectl command abstractions.

This module provides commands for Kubernetes resource management via
kubectl subprocess calls. JSON output is parsed in-process.
"""

from __future__ import annotations

import json
import subprocess
from typing import TYPE_CHECKING, Any

from .types import CommandResult, LoadBalancerAddress, PodStatus

if TYPE_CHECKING:
    from .runner import CommandRunner

CLEAR_FINALIZERS_PATCH = '{"metadata":{"finalizers":null}}'


def _namespace_args(namespace: str | None) -> list[str]:
    return ["-n", namespace] if namespace else []


def parse_pod_statuses(payload: dict[str, Any]) -> list[PodStatus]:
    """Convert a ``kubectl get pods -o json`` document into PodStatus rows."""
    pods: list[PodStatus] = []
    for item in payload.get("items", []):
        metadata = item.get("metadata", {})
        status = item.get("status", {})
        containers = status.get("containerStatuses") or []

        reason = ""
        for container in containers:
            state = container.get("state", {})
            for key in ("waiting", "terminated"):
                found = (state.get(key) or {}).get("reason", "")
                if found:
                    reason = found
                    break
            if reason:
                break
        if not reason:
            reason = status.get("reason", "") or ""

        pods.append(
            PodStatus(
                name=metadata.get("name", ""),
                phase=status.get("phase", "Unknown"),
                ready=bool(containers and containers[0].get("ready", False)),
                reason=reason,
                restarts=sum(c.get("restartCount", 0) for c in containers),
            )
        )
    return pods


class KubectlCommands:
    """Kubectl-related shell commands.

    Provides operations for:
    - Cluster information and node labels
    - Namespace management
    - Pod status and diagnostics
    - Service exposure and port-forwarding
    - Finalizer stripping and resource deletion
    """

    def __init__(self, runner: CommandRunner) -> None:
        """Initialize kubectl commands.

        Args:
            runner: Command runner for executing shell commands
        """
        self._runner = runner

    # =========================================================================
    # Cluster
    # =========================================================================

    def first_node_labels(self) -> dict[str, str]:
        """Return the labels of the first cluster node (empty on failure)."""
        result = self._runner.run(["kubectl", "get", "nodes", "-o", "json"])
        if not result.success:
            return {}
        try:
            items = json.loads(result.stdout).get("items", [])
        except json.JSONDecodeError:
            return {}
        if not items:
            return {}
        labels = items[0].get("metadata", {}).get("labels", {})
        return labels if isinstance(labels, dict) else {}

    # =========================================================================
    # Namespace Management
    # =========================================================================

    def create_namespace(self, namespace: str) -> CommandResult:
        """Create a namespace (fails with AlreadyExists when present)."""
        return self._runner.run(["kubectl", "create", "namespace", namespace])

    def namespace_phase(self, namespace: str) -> str | None:
        """Return the namespace phase (Active, Terminating) or None if absent."""
        result = self._runner.run(
            [
                "kubectl",
                "get",
                "namespace",
                namespace,
                "-o",
                "jsonpath={.status.phase}",
            ]
        )
        if not result.success:
            return None
        return result.stdout.strip()

    def delete_namespace(self, namespace: str, *, wait: bool = False) -> CommandResult:
        """Delete a namespace, by default without waiting for termination."""
        return self._runner.run(
            [
                "kubectl",
                "delete",
                "namespace",
                namespace,
                f"--wait={'true' if wait else 'false'}",
            ]
        )

    # =========================================================================
    # Pod Operations
    # =========================================================================

    def get_pod_statuses(self, namespace: str, label_selector: str) -> list[PodStatus]:
        """Get pods matching a selector with phase, readiness and reason."""
        result = self._runner.run(
            [
                "kubectl",
                "get",
                "pods",
                "-n",
                namespace,
                "-l",
                label_selector,
                "-o",
                "json",
            ]
        )
        if not result.success or not result.stdout:
            return []
        try:
            return parse_pod_statuses(json.loads(result.stdout))
        except json.JSONDecodeError:
            return []

    def describe_pods(self, namespace: str, label_selector: str) -> CommandResult:
        """Describe pods matching a selector."""
        return self._runner.run(
            ["kubectl", "describe", "pods", "-n", namespace, "-l", label_selector]
        )

    def get_pods_wide(self, namespace: str, label_selector: str) -> CommandResult:
        """Human-readable pod listing with node and IP columns."""
        return self._runner.run(
            [
                "kubectl",
                "get",
                "pods",
                "-n",
                namespace,
                "-l",
                label_selector,
                "-o",
                "wide",
            ]
        )

    def get_events(
        self,
        namespace: str,
        *,
        pods_only: bool = False,
        tail: int | None = None,
    ) -> CommandResult:
        """List namespace events sorted by creation time.

        ``tail`` keeps only the last N lines of the listing.
        """
        cmd = [
            "kubectl",
            "get",
            "events",
            "-n",
            namespace,
            "--sort-by=.metadata.creationTimestamp",
        ]
        if pods_only:
            cmd.extend(["--field-selector", "involvedObject.kind=Pod"])
        result = self._runner.run(cmd)
        if tail and result.success and result.stdout:
            lines = result.stdout.rstrip("\n").split("\n")
            header, rows = lines[:1], lines[1:]
            result.stdout = "\n".join(header + rows[-tail:])
        return result

    def delete_all_pods(self, namespace: str, *, force: bool = True) -> CommandResult:
        """Delete every pod in a namespace."""
        cmd = ["kubectl", "delete", "pods", "--all", "-n", namespace]
        if force:
            cmd.extend(["--force", "--grace-period=0"])
        return self._runner.run(cmd)

    # =========================================================================
    # Services
    # =========================================================================

    def service_exists(self, name: str, namespace: str) -> bool:
        """Check if a service exists."""
        return self._runner.run(
            ["kubectl", "get", "svc", name, "-n", namespace]
        ).success

    def expose_load_balancer(
        self,
        service: str,
        name: str,
        namespace: str,
        port: int,
        target_port: int | None = None,
    ) -> CommandResult:
        """Create a LoadBalancer service in front of an existing service."""
        return self._runner.run(
            [
                "kubectl",
                "expose",
                "svc",
                service,
                f"--name={name}",
                "--type=LoadBalancer",
                f"--port={port}",
                f"--target-port={target_port or port}",
                "-n",
                namespace,
            ]
        )

    def get_load_balancer_address(
        self, name: str, namespace: str
    ) -> LoadBalancerAddress | None:
        """Read the first ingress entry of a LoadBalancer service status.

        Returns:
            The published address (possibly empty while provisioning), or
            None when the service cannot be read
        """
        result = self._runner.run(
            ["kubectl", "get", "svc", name, "-n", namespace, "-o", "json"]
        )
        if not result.success:
            return None
        try:
            service = json.loads(result.stdout)
        except json.JSONDecodeError:
            return None
        ingress = (
            service.get("status", {}).get("loadBalancer", {}).get("ingress") or []
        )
        if not ingress:
            return LoadBalancerAddress()
        first = ingress[0]
        return LoadBalancerAddress(
            hostname=first.get("hostname", "") or "",
            ip=first.get("ip", "") or "",
        )

    def delete_service(self, name: str, namespace: str) -> CommandResult:
        """Delete a service."""
        return self._runner.run(["kubectl", "delete", "svc", name, "-n", namespace])

    def port_forward(
        self, service: str, namespace: str, local_port: int, remote_port: int
    ) -> subprocess.Popen[str]:
        """Start ``kubectl port-forward`` for a service in the background."""
        return self._runner.start_background(
            [
                "kubectl",
                "port-forward",
                "-n",
                namespace,
                f"svc/{service}",
                f"{local_port}:{remote_port}",
            ]
        )

    # =========================================================================
    # Resource Cleanup
    # =========================================================================

    def list_resource_names(
        self, kinds: str, namespace: str | None = None
    ) -> list[str]:
        """List ``kind/name`` references for one or more comma-separated kinds."""
        result = self._runner.run(
            ["kubectl", "get", kinds, *_namespace_args(namespace), "-o", "name"]
        )
        if not result.success:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def clear_finalizers(
        self, resource: str, namespace: str | None = None
    ) -> CommandResult:
        """Remove all finalizers from a resource so deletion can complete."""
        return self._runner.run(
            [
                "kubectl",
                "patch",
                resource,
                *_namespace_args(namespace),
                "--type",
                "merge",
                "-p",
                CLEAR_FINALIZERS_PATCH,
            ]
        )

    def delete_resource(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
        *,
        ignore_not_found: bool = True,
    ) -> CommandResult:
        """Delete a single resource by kind and name."""
        cmd = ["kubectl", "delete", kind, name, *_namespace_args(namespace)]
        if ignore_not_found:
            cmd.append("--ignore-not-found")
        return self._runner.run(cmd)
