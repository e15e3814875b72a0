"""Base deployer class with shared functionality."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn


class BaseDeployer(ABC):
    """Abstract base class for deployers."""

    def __init__(self, console: Console, working_dir: Path, *, load_env: bool = True):
        """Initialize the deployer.

        Args:
            console: Rich console for output
            working_dir: Directory searched for a .env file
            load_env: Whether to load .env into the process environment
        """
        self.console = console
        self.working_dir = working_dir
        # Values already exported in the shell take precedence over .env
        if load_env:
            load_dotenv(self.working_dir / ".env", override=False)

    @abstractmethod
    def deploy(self, **kwargs: Any) -> Any:
        """Deploy the workload."""

    @abstractmethod
    def teardown(self, **kwargs: Any) -> Any:
        """Remove the workload."""

    @abstractmethod
    def show_status(self) -> None:
        """Display the current status of the deployment."""

    def create_progress(self, transient: bool = True) -> Progress:
        """Create a spinner progress indicator.

        Args:
            transient: Whether the indicator disappears after completion
        """
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=transient,
        )

    def success(self, message: str) -> None:
        self.console.print(f"[green]✅ {message}[/green]")

    def error(self, message: str) -> None:
        self.console.print(f"[red]❌ {message}[/red]")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠️  {message}[/yellow]")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]ℹ {message}[/blue]")
