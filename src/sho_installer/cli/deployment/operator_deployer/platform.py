"""Operating-system specific operations.

Each platform knows how to install the external tools, open a browser and
stop leftover ``kubectl port-forward`` processes. Everything else in the
installer is platform independent.
"""

from __future__ import annotations

import platform as _platform
import shutil
import sys
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field

from loguru import logger

from ..shell_commands.runner import CommandRunner

Which = Callable[[str], str | None]

HELM_INSTALL_SCRIPT = "https://raw.githubusercontent.com/helm/helm/main/scripts/get-helm-3"
KUBECTL_RELEASE_BASE = "https://dl.k8s.io/release"


@dataclass(frozen=True)
class InstallStrategy:
    """One way of installing a tool: a named sequence of commands."""

    name: str
    commands: tuple[tuple[str, ...], ...] = field(default_factory=tuple)


def _machine_arch() -> str:
    machine = _platform.machine().lower()
    if machine in ("aarch64", "arm64"):
        return "arm64"
    return "amd64"


def _shell(script: str) -> tuple[str, ...]:
    return ("sh", "-c", script)


def _helm_script_strategy() -> InstallStrategy:
    return InstallStrategy(
        "get-helm-3 script",
        (_shell(f"curl -fsSL {HELM_INSTALL_SCRIPT} | bash"),),
    )


def _kubectl_download_strategy(os_name: str) -> InstallStrategy:
    arch = _machine_arch()
    script = (
        "set -e; "
        f'version="$(curl -fsSL {KUBECTL_RELEASE_BASE}/stable.txt)"; '
        f'curl -fsSLo /tmp/kubectl "{KUBECTL_RELEASE_BASE}/$version/bin/{os_name}/{arch}/kubectl"; '
        "sudo install -m 0755 /tmp/kubectl /usr/local/bin/kubectl; "
        "rm -f /tmp/kubectl"
    )
    return InstallStrategy("dl.k8s.io binary", (_shell(script),))


class PlatformOps(ABC):
    """Platform-specific installation, browser and process operations."""

    name: str = "unknown"

    def __init__(self, runner: CommandRunner, which: Which = shutil.which) -> None:
        self._runner = runner
        self._which = which

    def which(self, executable: str) -> str | None:
        return self._which(executable)

    def has(self, executable: str) -> bool:
        return self.which(executable) is not None

    @abstractmethod
    def install_strategies(self, tool: str) -> list[InstallStrategy]:
        """Return the strategies for ``tool`` in priority order.

        Strategies whose package manager is absent are left out.
        """

    @abstractmethod
    def _browser_command(self, url: str) -> list[str] | None:
        pass

    @abstractmethod
    def _stop_port_forward_command(self, local_port: int | None) -> list[str]:
        pass

    def open_browser(self, url: str) -> bool:
        """Open ``url`` in the default browser. Failures are only logged."""
        cmd = self._browser_command(url)
        if cmd is None:
            logger.info("No browser opener found on {}", self.name)
            return False
        result = self._runner.run(cmd)
        if not result.success:
            logger.warning("Failed to open browser: {}", result.output.strip())
        return result.success

    def stop_port_forwards(self, local_port: int | None = None) -> bool:
        """Stop ``kubectl port-forward`` processes, optionally for one port.

        Returns:
            True if at least one process was signalled
        """
        result = self._runner.run(self._stop_port_forward_command(local_port))
        if result.success:
            logger.debug("Stopped port-forward processes (port={})", local_port)
        return result.success


class LinuxPlatform(PlatformOps):
    name = "linux"

    _PACKAGES: dict[str, str] = {"helm": "helm", "kubectl": "kubectl", "aws": "awscli"}

    def install_strategies(self, tool: str) -> list[InstallStrategy]:
        package = self._PACKAGES.get(tool, tool)
        strategies: list[InstallStrategy] = []

        if self.has("apt-get"):
            strategies.append(
                InstallStrategy(
                    "apt-get",
                    (
                        ("sudo", "apt-get", "update"),
                        ("sudo", "apt-get", "install", "-y", package),
                    ),
                )
            )
        for manager in ("dnf", "yum"):
            if self.has(manager):
                strategies.append(
                    InstallStrategy(manager, (("sudo", manager, "install", "-y", package),))
                )
        if self.has("pacman"):
            strategies.append(
                InstallStrategy(
                    "pacman",
                    (("sudo", "pacman", "-S", "--noconfirm", "aws-cli" if tool == "aws" else package),),
                )
            )
        if self.has("zypper"):
            strategies.append(
                InstallStrategy(
                    "zypper",
                    (("sudo", "zypper", "--non-interactive", "install", package),),
                )
            )

        if tool == "helm":
            strategies.append(_helm_script_strategy())
        elif tool == "kubectl":
            strategies.append(_kubectl_download_strategy("linux"))
        elif tool == "aws":
            arch = "aarch64" if _machine_arch() == "arm64" else "x86_64"
            strategies.append(
                InstallStrategy(
                    "AWS CLI v2 installer",
                    (
                        _shell(
                            "set -e; cd /tmp; "
                            f'curl -fsSL "https://awscli.amazonaws.com/awscli-exe-linux-{arch}.zip" '
                            "-o awscliv2.zip; unzip -qo awscliv2.zip; "
                            "sudo ./aws/install --update; rm -rf awscliv2.zip aws"
                        ),
                    ),
                )
            )
        return strategies

    def _browser_command(self, url: str) -> list[str] | None:
        for opener in ("xdg-open", "sensible-browser"):
            if self.has(opener):
                return [opener, url]
        return None

    def _stop_port_forward_command(self, local_port: int | None) -> list[str]:
        pattern = "kubectl.*port-forward"
        if local_port is not None:
            pattern += f".*:{local_port}"
        return ["pkill", "-f", pattern]


class MacOSPlatform(LinuxPlatform):
    name = "macos"

    _BREW_FORMULAE: dict[str, str] = {
        "helm": "helm",
        "kubectl": "kubernetes-cli",
        "aws": "awscli",
    }

    def install_strategies(self, tool: str) -> list[InstallStrategy]:
        strategies: list[InstallStrategy] = []
        if self.has("brew"):
            formula = self._BREW_FORMULAE.get(tool, tool)
            strategies.append(
                InstallStrategy("Homebrew", (("brew", "install", formula),))
            )

        if tool == "helm":
            strategies.append(_helm_script_strategy())
        elif tool == "kubectl":
            strategies.append(_kubectl_download_strategy("darwin"))
        elif tool == "aws":
            strategies.append(
                InstallStrategy(
                    "AWS CLI v2 package",
                    (
                        _shell(
                            "set -e; "
                            'curl -fsSL "https://awscli.amazonaws.com/AWSCLIV2.pkg" '
                            "-o /tmp/AWSCLIV2.pkg; "
                            "sudo installer -pkg /tmp/AWSCLIV2.pkg -target /; "
                            "rm -f /tmp/AWSCLIV2.pkg"
                        ),
                    ),
                )
            )
        return strategies

    def _browser_command(self, url: str) -> list[str] | None:
        return ["open", url]


class WindowsPlatform(PlatformOps):
    name = "windows"

    _WINGET_IDS: dict[str, str] = {
        "helm": "Helm.Helm",
        "kubectl": "Kubernetes.kubectl",
        "aws": "Amazon.AWSCLI",
    }
    _CHOCO_PACKAGES: dict[str, str] = {
        "helm": "kubernetes-helm",
        "kubectl": "kubernetes-cli",
        "aws": "awscli",
    }

    def install_strategies(self, tool: str) -> list[InstallStrategy]:
        strategies: list[InstallStrategy] = []
        if self.has("winget") and tool in self._WINGET_IDS:
            strategies.append(
                InstallStrategy(
                    "winget",
                    (
                        (
                            "winget",
                            "install",
                            "--id",
                            self._WINGET_IDS[tool],
                            "-e",
                            "--accept-source-agreements",
                            "--accept-package-agreements",
                        ),
                    ),
                )
            )
        if self.has("choco") and tool in self._CHOCO_PACKAGES:
            strategies.append(
                InstallStrategy(
                    "Chocolatey",
                    (("choco", "install", self._CHOCO_PACKAGES[tool], "-y"),),
                )
            )
        return strategies

    def _browser_command(self, url: str) -> list[str] | None:
        return ["cmd", "/c", "start", "", url]

    def _stop_port_forward_command(self, local_port: int | None) -> list[str]:
        match = "port-forward" if local_port is None else f"port-forward.*:{local_port}"
        script = (
            "Get-CimInstance Win32_Process -Filter \"Name='kubectl.exe'\" | "
            f"Where-Object {{ $_.CommandLine -match '{match}' }} | "
            "ForEach-Object { Stop-Process -Id $_.ProcessId -Force }"
        )
        return ["powershell", "-NoProfile", "-Command", script]


def detect_platform(
    runner: CommandRunner,
    which: Which = shutil.which,
    system: str | None = None,
) -> PlatformOps:
    """Return the PlatformOps implementation for the running OS."""
    system = (system or sys.platform).lower()
    if system.startswith("win"):
        return WindowsPlatform(runner, which)
    if system.startswith("darwin"):
        return MacOSPlatform(runner, which)
    return LinuxPlatform(runner, which)
