"""Shell command abstractions for the operator installer.

This package provides a clean interface for the external tools the
installer drives. It is organized into specialized modules for each tool:

- helm: Helm release management and registry login
- kubectl: Kubernetes resource management
- aws: ECR public authentication

Design Principles:
- Single Responsibility: Each module focuses on one tool
- Consistent Return Types: Functions return typed results, never raise on
  a non-zero exit code
- Separation of Concerns: Commands are decoupled from workflow logic

Usage:
    from sho_installer.cli.deployment.shell_commands import ShellCommands

    commands = ShellCommands()
    if commands.helm.release_exists("self-hosted-operator", "self-hosted-operator"):
        print("Already installed")
"""

from pathlib import Path

from .aws import AwsCommands
from .helm import HelmCommands
from .kubectl import KubectlCommands
from .runner import CancellationTokenLike, CommandRunner
from .types import CommandResult, HelmRelease, LoadBalancerAddress, PodStatus


class ShellCommands:
    """Unified interface for all shell command operations.

    This class provides a facade over the specialized command modules,
    offering a single point of access for deployment operations while
    maintaining separation of concerns internally.

    Attributes:
        helm: Helm-related commands
        kubectl: Kubernetes kubectl commands
        aws: AWS CLI commands
        runner: The shared command runner

    Example:
        >>> commands = ShellCommands()
        >>> commands.kubectl.create_namespace("self-hosted-operator")
    """

    def __init__(
        self,
        cwd: Path | None = None,
        *,
        runner: CommandRunner | None = None,
        cancel_token: CancellationTokenLike | None = None,
    ) -> None:
        """Initialize the shell commands executor.

        Args:
            cwd: Working directory for commands (defaults to the process cwd)
            runner: Pre-built runner to share (takes precedence over cwd)
            cancel_token: Token checked before every command
        """
        self.runner = runner or CommandRunner(cwd, cancel_token=cancel_token)

        # Initialize specialized command modules
        self.helm = HelmCommands(self.runner)
        self.kubectl = KubectlCommands(self.runner)
        self.aws = AwsCommands(self.runner)


__all__ = [
    "ShellCommands",
    "CommandResult",
    "HelmRelease",
    "LoadBalancerAddress",
    "PodStatus",
    # Specialized command classes for direct usage
    "AwsCommands",
    "HelmCommands",
    "KubectlCommands",
    "CommandRunner",
]
