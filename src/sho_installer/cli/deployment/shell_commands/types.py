"""Data types for shell command results.

This module contains all dataclasses shared across the shell command
modules.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "CommandResult",
    "HelmRelease",
    "PodStatus",
    "LoadBalancerAddress",
]


@dataclass
class CommandResult:
    """Result of a command execution."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr, for text classification."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


@dataclass
class HelmRelease:
    """Information about a Helm release.

    Attributes:
        name: Release name
        namespace: Kubernetes namespace
        status: Release status (deployed, failed, pending-install, ...)
        revision: Release revision number
        chart: Chart name and version (e.g. self-hosted-operator-1.2.3)
        app_version: Application version reported by the chart
    """

    name: str
    namespace: str
    status: str
    revision: str
    chart: str = ""
    app_version: str = ""


@dataclass(frozen=True)
class PodStatus:
    """Snapshot of a single pod.

    Attributes:
        name: Pod name
        phase: Pod phase (Pending, Running, Succeeded, Failed, Unknown)
        ready: Ready flag of the first container
        reason: First waiting/terminated reason found on any container
            (e.g. CrashLoopBackOff), empty when none
        restarts: Restart count summed over containers
    """

    name: str
    phase: str
    ready: bool
    reason: str = ""
    restarts: int = 0


@dataclass(frozen=True)
class LoadBalancerAddress:
    """Ingress address published on a LoadBalancer service status."""

    hostname: str = ""
    ip: str = ""

    @property
    def address(self) -> str:
        """Hostname when present, otherwise the IP."""
        return self.hostname or self.ip
