"""Shared fixtures: a scripted command runner, a fake clock and a quiet console."""

import io

import pytest
from rich.console import Console

from sho_installer.cli.deployment.shell_commands import ShellCommands
from tests.fakes import FakeClock, FakeRunner


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def commands(runner: FakeRunner) -> ShellCommands:
    return ShellCommands(runner=runner)  # type: ignore[arg-type]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), width=200, force_terminal=False, color_system=None)
