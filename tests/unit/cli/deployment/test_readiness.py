"""Tests for the pod readiness poller."""

from unittest.mock import MagicMock

import pytest
from rich.console import Console

from sho_installer.cli.deployment.errors import OperationCancelledError
from sho_installer.cli.deployment.operator_deployer.constants import DEFAULT_CONSTANTS
from sho_installer.cli.deployment.operator_deployer.polling import CancellationToken
from sho_installer.cli.deployment.operator_deployer.readiness import (
    ReadinessPoller,
    ReadinessState,
    evaluate_snapshot,
)
from sho_installer.cli.deployment.shell_commands.kubectl import parse_pod_statuses
from sho_installer.cli.deployment.shell_commands.types import PodStatus
from tests.fakes import FakeClock, ok

ERRORS = DEFAULT_CONSTANTS.ERROR_POD_STATES


def running(name: str, ready: bool = True) -> PodStatus:
    return PodStatus(name=name, phase="Running", ready=ready)


class TestEvaluateSnapshot:
    """Tests for the pure state classification."""

    def test_no_pods(self) -> None:
        assert evaluate_snapshot([], ERRORS) is ReadinessState.POLLING

    @pytest.mark.parametrize("count", [1, 3, 5])
    def test_all_ready(self, count: int) -> None:
        pods = [running(f"p{i}") for i in range(count)]

        assert evaluate_snapshot(pods, ERRORS) is ReadinessState.ALL_READY

    def test_partially_ready(self) -> None:
        pods = [running("a"), running("b", ready=False)]

        assert evaluate_snapshot(pods, ERRORS) is ReadinessState.POLLING

    @pytest.mark.parametrize(
        "pod",
        [
            PodStatus("a", "Running", False, "CrashLoopBackOff"),
            PodStatus("a", "Pending", False, "ImagePullBackOff"),
            PodStatus("a", "Failed", False),
            PodStatus("a", "Running", False, "Error"),
        ],
    )
    def test_error_states(self, pod: PodStatus) -> None:
        assert evaluate_snapshot([running("ok"), pod], ERRORS) is ReadinessState.ERROR_DETECTED

    def test_pending_pod_keeps_polling(self) -> None:
        pod = PodStatus("a", "Pending", False, "ContainerCreating")

        assert evaluate_snapshot([pod], ERRORS) is ReadinessState.POLLING

    def test_ready_primary_container_wins_over_failing_sidecar(self) -> None:
        payload = {
            "items": [
                {
                    "metadata": {"name": "op-0"},
                    "status": {
                        "phase": "Running",
                        "containerStatuses": [
                            {"ready": True, "state": {"running": {}}},
                            {
                                "ready": False,
                                "state": {"waiting": {"reason": "CrashLoopBackOff"}},
                            },
                        ],
                    },
                }
            ]
        }
        pods = parse_pod_statuses(payload)

        assert pods[0].reason == "CrashLoopBackOff"
        assert evaluate_snapshot(pods, ERRORS) is ReadinessState.ALL_READY


class TestReadinessPoller:
    """Tests for ReadinessPoller.wait."""

    @pytest.fixture
    def mock_commands(self) -> MagicMock:
        commands = MagicMock()
        commands.kubectl.describe_pods.return_value = ok("Name: p0")
        commands.kubectl.get_pods_wide.return_value = ok("NAME READY")
        commands.kubectl.get_events.return_value = ok("LAST SEEN TYPE")
        return commands

    @pytest.fixture
    def poller(
        self, mock_commands: MagicMock, console: Console, clock: FakeClock
    ) -> ReadinessPoller:
        return ReadinessPoller(mock_commands, console, clock=clock, interval=10, timeout=300)

    @pytest.mark.parametrize("count", [1, 3, 5])
    def test_reaches_all_ready(
        self, poller: ReadinessPoller, mock_commands: MagicMock, clock: FakeClock, count: int
    ) -> None:
        pods = [running(f"p{i}") for i in range(count)]
        mock_commands.kubectl.get_pod_statuses.side_effect = [[], [running("p0", False)], pods]

        result = poller.wait("self-hosted-operator", "self-hosted-operator")

        assert result.state is ReadinessState.ALL_READY
        assert len(result.pods) == count
        assert clock.sleeps == [10, 10]
        mock_commands.kubectl.get_pod_statuses.assert_called_with(
            "self-hosted-operator", "app.kubernetes.io/instance=self-hosted-operator"
        )

    def test_crash_loop_stops_immediately(
        self, poller: ReadinessPoller, mock_commands: MagicMock, clock: FakeClock
    ) -> None:
        mock_commands.kubectl.get_pod_statuses.return_value = [
            PodStatus("p0", "Running", False, "CrashLoopBackOff")
        ]

        result = poller.wait("rel", "ns")

        assert result.state is ReadinessState.ERROR_DETECTED
        assert clock.sleeps == []
        mock_commands.kubectl.describe_pods.assert_called_once()
        mock_commands.kubectl.get_events.assert_called_once_with("ns", pods_only=True)

    def test_times_out(
        self, poller: ReadinessPoller, mock_commands: MagicMock, clock: FakeClock
    ) -> None:
        mock_commands.kubectl.get_pod_statuses.return_value = [
            PodStatus("p0", "Pending", False)
        ]

        result = poller.wait("rel", "ns")

        assert result.state is ReadinessState.TIMED_OUT
        assert clock.now <= 300
        assert mock_commands.kubectl.get_pod_statuses.call_count == 31
        mock_commands.kubectl.get_pods_wide.assert_called_once()
        mock_commands.kubectl.get_events.assert_called_once_with("ns", tail=10)

    def test_cancellation_between_polls(
        self, mock_commands: MagicMock, console: Console, clock: FakeClock
    ) -> None:
        token = CancellationToken()
        poller = ReadinessPoller(mock_commands, console, clock=clock, cancel=token)

        def cancel_after_first(namespace: str, selector: str) -> list[PodStatus]:
            token.cancel()
            return []

        mock_commands.kubectl.get_pod_statuses.side_effect = cancel_after_first

        with pytest.raises(OperationCancelledError):
            poller.wait("rel", "ns")
