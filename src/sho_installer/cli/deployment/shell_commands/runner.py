"""Command runner for executing shell commands.

This module provides the base command execution functionality used by
all specialized command modules.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Protocol

from loguru import logger

from ..errors import OperationCancelledError
from .types import CommandResult


class CancellationTokenLike(Protocol):
    """Anything exposing a ``cancelled`` flag."""

    @property
    def cancelled(self) -> bool: ...


class CommandRunner:
    """Low-level command executor with consistent result handling.

    This class provides the foundation for executing shell commands with
    proper output capture, error handling, and streaming support.

    All specialized command modules (Helm, kubectl, AWS) use this runner
    for actual command execution. A missing executable is reported as a
    failed CommandResult with return code 127 rather than an exception, so
    callers can treat "tool absent" like any other failed call.
    """

    def __init__(
        self,
        cwd: Path | None = None,
        *,
        cancel_token: CancellationTokenLike | None = None,
    ) -> None:
        """Initialize the command runner.

        Args:
            cwd: Working directory for commands (defaults to the process cwd)
            cancel_token: Optional token checked before every command
        """
        self.cwd = cwd
        self.cancel_token = cancel_token

    def _check_cancelled(self) -> None:
        if self.cancel_token is not None and self.cancel_token.cancelled:
            raise OperationCancelledError()

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
        capture_output: bool = True,
        check: bool = False,
        input_data: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Execute a shell command and return structured result.

        Args:
            cmd: Command and arguments as a sequence
            cwd: Working directory (defaults to the runner's cwd)
            capture_output: Whether to capture stdout/stderr
            check: Whether to raise exception on non-zero exit code
            input_data: Optional text written to the process stdin
            env: Extra environment variables merged over os.environ

        Returns:
            CommandResult with success status, output, and return code

        Raises:
            subprocess.CalledProcessError: If check=True and command fails
            OperationCancelledError: If the cancel token is set before the
                command starts or while it runs
        """
        self._check_cancelled()
        logger.debug("Running: {}", " ".join(cmd))
        try:
            result = subprocess.run(
                list(cmd),
                cwd=cwd or self.cwd,
                capture_output=capture_output,
                text=True,
                check=check,
                input=input_data,
                env={**os.environ, **env} if env else None,
            )
        except FileNotFoundError:
            logger.debug("Executable not found: {}", cmd[0])
            return CommandResult(
                success=False,
                stderr=f"{cmd[0]}: command not found",
                returncode=127,
            )
        logger.debug("Exit code {} from {}", result.returncode, cmd[0])
        # SIGINT reaches the child too; a cancelled run is not a failure
        self._check_cancelled()
        return CommandResult(
            success=result.returncode == 0,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            returncode=result.returncode,
        )

    def run_streaming(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
        on_output: Callable[[str], None] | None = None,
        input_data: str | None = None,
    ) -> CommandResult:
        """Execute a shell command with real-time output streaming.

        This method runs a command and calls the on_output callback for each
        line of output, allowing real-time progress display.

        Args:
            cmd: Command and arguments as a sequence
            cwd: Working directory (defaults to the runner's cwd)
            on_output: Callback function called with each line of output.
                      If None, output is collected but not streamed.
            input_data: Optional text written to stdin before reading output

        Returns:
            CommandResult with success status, collected output, and return code

        Raises:
            OperationCancelledError: If the cancel token is set before the
                command starts or while it runs
        """
        self._check_cancelled()
        logger.debug("Streaming: {}", " ".join(cmd))

        try:
            process = subprocess.Popen(
                list(cmd),
                cwd=cwd or self.cwd,
                stdin=subprocess.PIPE if input_data is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,  # Merge stderr into stdout
                text=True,
                bufsize=1,
            )
        except FileNotFoundError:
            return CommandResult(
                success=False,
                stderr=f"{cmd[0]}: command not found",
                returncode=127,
            )

        if input_data is not None and process.stdin:
            process.stdin.write(input_data)
            process.stdin.close()

        stdout_lines: list[str] = []

        # Read output line by line
        if process.stdout:
            for line in iter(process.stdout.readline, ""):
                line = line.rstrip("\n")
                if line:
                    stdout_lines.append(line)
                    if on_output:
                        on_output(line)

        process.wait()
        logger.debug("Exit code {} from {}", process.returncode, cmd[0])
        self._check_cancelled()

        return CommandResult(
            success=process.returncode == 0,
            stdout="\n".join(stdout_lines),
            stderr="",  # stderr is merged into stdout
            returncode=process.returncode or 0,
        )

    def start_background(self, cmd: Sequence[str]) -> subprocess.Popen[str]:
        """Start a detached background process that outlives the CLI.

        Output is discarded; the caller owns the returned process handle.
        """
        self._check_cancelled()
        logger.debug("Starting background: {}", " ".join(cmd))
        return subprocess.Popen(
            list(cmd),
            cwd=self.cwd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
            text=True,
            start_new_session=True,
        )
