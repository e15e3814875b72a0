"""AWS CLI command abstractions.

Only the ECR public login password exchange is needed; everything else
about the registry goes through Helm or plain HTTP.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .types import CommandResult

if TYPE_CHECKING:
    from .runner import CommandRunner

# ECR public is only served from us-east-1
ECR_PUBLIC_REGION = "us-east-1"


class AwsCommands:
    """AWS CLI shell commands."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def ecr_public_login_password(self) -> CommandResult:
        """Obtain a short-lived ECR public password (stdout on success)."""
        return self._runner.run(
            [
                "aws",
                "ecr-public",
                "get-login-password",
                "--region",
                ECR_PUBLIC_REGION,
            ]
        )
