"""Pod readiness polling for the operator release."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from ..shell_commands.types import PodStatus
from .constants import DEFAULT_CONSTANTS, OperatorConstants
from .polling import CancellationToken, Clock, SystemClock, poll_intervals

if TYPE_CHECKING:
    from rich.console import Console

    from ..shell_commands import ShellCommands


class ReadinessState(Enum):
    POLLING = "polling"
    ALL_READY = "all_ready"
    ERROR_DETECTED = "error_detected"
    TIMED_OUT = "timed_out"


@dataclass
class ReadinessResult:
    state: ReadinessState
    pods: list[PodStatus] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def ready(self) -> bool:
        return self.state is ReadinessState.ALL_READY


def evaluate_snapshot(
    pods: Iterable[PodStatus], error_states: frozenset[str]
) -> ReadinessState:
    """Classify one pod listing.

    Readiness wins: when every pod is Running with its primary container
    ready, the snapshot is ALL_READY even if a sidecar reports an error
    state. Error states are only looked for otherwise.
    """
    snapshot = list(pods)
    if not snapshot:
        return ReadinessState.POLLING
    if all(pod.phase == "Running" and pod.ready for pod in snapshot):
        return ReadinessState.ALL_READY
    for pod in snapshot:
        if pod.phase in error_states or pod.reason in error_states:
            return ReadinessState.ERROR_DETECTED
    return ReadinessState.POLLING


class ReadinessPoller:
    """Waits for every pod of a release to be Running and ready."""

    def __init__(
        self,
        commands: ShellCommands,
        console: Console,
        constants: OperatorConstants | None = None,
        clock: Clock | None = None,
        cancel: CancellationToken | None = None,
        interval: float = 10.0,
        timeout: float = 300.0,
    ) -> None:
        self.commands = commands
        self.console = console
        self.constants = constants or DEFAULT_CONSTANTS
        self.clock = clock or SystemClock()
        self.cancel = cancel
        self.interval = interval
        self.timeout = timeout

    def wait(self, release_name: str, namespace: str) -> ReadinessResult:
        """Poll until ALL_READY, ERROR_DETECTED or the timeout.

        Diagnostics are printed for the two failure states; neither raises.
        """
        selector = self.constants.instance_selector(release_name)
        self.console.print(
            f"[cyan]⏳ Waiting for pods to be ready (timeout: {int(self.timeout)}s)...[/cyan]"
        )

        pods: list[PodStatus] = []
        elapsed = 0.0
        for elapsed in poll_intervals(
            self.clock, interval=self.interval, timeout=self.timeout, cancel=self.cancel
        ):
            pods = self.commands.kubectl.get_pod_statuses(namespace, selector)
            state = evaluate_snapshot(pods, self.constants.ERROR_POD_STATES)

            if state is ReadinessState.ALL_READY:
                self.console.print(
                    f"[green]✅ All {len(pods)} pod(s) are ready ({int(elapsed)}s)[/green]"
                )
                return ReadinessResult(state, pods, elapsed)

            if state is ReadinessState.ERROR_DETECTED:
                self.console.print("[red]❌ Pod errors detected[/red]")
                self._dump_error_diagnostics(namespace, selector)
                return ReadinessResult(state, pods, elapsed)

            if not pods:
                self.console.print(f"[dim]  No pods found yet ({int(elapsed)}s)[/dim]")
            else:
                ready = sum(1 for pod in pods if pod.ready)
                self.console.print(
                    f"[dim]  {ready}/{len(pods)} pods ready ({int(elapsed)}s)[/dim]"
                )
            logger.debug("Readiness poll at {}s: {}", elapsed, pods)

        self.console.print(
            f"[yellow]⚠️  Timed out after {int(self.timeout)}s waiting for pods[/yellow]"
        )
        self._dump_timeout_diagnostics(namespace, selector)
        return ReadinessResult(ReadinessState.TIMED_OUT, pods, elapsed)

    def _dump_error_diagnostics(self, namespace: str, selector: str) -> None:
        describe = self.commands.kubectl.describe_pods(namespace, selector)
        if describe.output.strip():
            self.console.print("\n[bold]Pod details:[/bold]")
            self.console.print(describe.output, markup=False)
        events = self.commands.kubectl.get_events(namespace, pods_only=True)
        if events.output.strip():
            self.console.print("\n[bold]Pod events:[/bold]")
            self.console.print(events.output, markup=False)

    def _dump_timeout_diagnostics(self, namespace: str, selector: str) -> None:
        pods = self.commands.kubectl.get_pods_wide(namespace, selector)
        if pods.output.strip():
            self.console.print("\n[bold]Final pod status:[/bold]")
            self.console.print(pods.output, markup=False)
        events = self.commands.kubectl.get_events(namespace, tail=10)
        if events.output.strip():
            self.console.print("\n[bold]Recent events:[/bold]")
            self.console.print(events.output, markup=False)


def show_troubleshooting_commands(
    console: Console, namespace: str, release_name: str
) -> None:
    """Print the kubectl commands for inspecting a release by hand."""
    selector = DEFAULT_CONSTANTS.instance_selector(release_name)
    console.print("\n[bold]Troubleshooting commands:[/bold]")
    for cmd in (
        f"kubectl get pods -n {namespace} -l {selector}",
        f"kubectl describe pods -n {namespace} -l {selector}",
        f"kubectl logs -n {namespace} -l {selector} --tail=100",
        f"kubectl get events -n {namespace} --sort-by=.metadata.creationTimestamp",
    ):
        console.print(f"  [cyan]{cmd}[/cyan]")
