"""Tests for kubectl command construction and output parsing."""

import json
from unittest.mock import MagicMock

import pytest

from sho_installer.cli.deployment.shell_commands.kubectl import (
    CLEAR_FINALIZERS_PATCH,
    KubectlCommands,
    parse_pod_statuses,
)
from sho_installer.cli.deployment.shell_commands.types import CommandResult


@pytest.fixture
def mock_runner() -> MagicMock:
    return MagicMock()


@pytest.fixture
def kubectl(mock_runner: MagicMock) -> KubectlCommands:
    return KubectlCommands(mock_runner)


def _pod(name: str, phase: str, ready: bool, waiting: str = "", restarts: int = 0) -> dict:
    state = {"waiting": {"reason": waiting}} if waiting else {"running": {}}
    return {
        "metadata": {"name": name},
        "status": {
            "phase": phase,
            "containerStatuses": [
                {"ready": ready, "state": state, "restartCount": restarts}
            ],
        },
    }


class TestParsePodStatuses:
    """Tests for the pod JSON parser."""

    def test_ready_running_pod(self) -> None:
        pods = parse_pod_statuses({"items": [_pod("sho-0", "Running", True)]})

        assert pods[0].name == "sho-0"
        assert pods[0].ready
        assert pods[0].reason == ""

    def test_waiting_reason_is_reported(self) -> None:
        pods = parse_pod_statuses(
            {"items": [_pod("sho-0", "Running", False, "CrashLoopBackOff", restarts=4)]}
        )

        assert pods[0].reason == "CrashLoopBackOff"
        assert pods[0].restarts == 4
        assert not pods[0].ready

    def test_pending_pod_without_containers(self) -> None:
        pods = parse_pod_statuses(
            {"items": [{"metadata": {"name": "p"}, "status": {"phase": "Pending"}}]}
        )

        assert pods[0].phase == "Pending"
        assert not pods[0].ready

    def test_empty_listing(self) -> None:
        assert parse_pod_statuses({"items": []}) == []


class TestKubectlCommands:
    """Tests for KubectlCommands."""

    def test_namespace_phase_absent(
        self, kubectl: KubectlCommands, mock_runner: MagicMock
    ) -> None:
        mock_runner.run.return_value = CommandResult(False, "", "NotFound", 1)

        assert kubectl.namespace_phase("self-hosted-operator") is None

    def test_namespace_phase_terminating(
        self, kubectl: KubectlCommands, mock_runner: MagicMock
    ) -> None:
        mock_runner.run.return_value = CommandResult(True, "Terminating", "", 0)

        assert kubectl.namespace_phase("self-hosted-operator") == "Terminating"

    def test_delete_namespace_does_not_wait(
        self, kubectl: KubectlCommands, mock_runner: MagicMock
    ) -> None:
        kubectl.delete_namespace("self-hosted-operator")

        assert "--wait=false" in mock_runner.run.call_args[0][0]

    def test_first_node_labels(
        self, kubectl: KubectlCommands, mock_runner: MagicMock
    ) -> None:
        mock_runner.run.return_value = CommandResult(
            True,
            json.dumps(
                {"items": [{"metadata": {"labels": {"eks.amazonaws.com/nodegroup": "ng"}}}]}
            ),
            "",
            0,
        )

        assert kubectl.first_node_labels() == {"eks.amazonaws.com/nodegroup": "ng"}

    def test_first_node_labels_on_failure(
        self, kubectl: KubectlCommands, mock_runner: MagicMock
    ) -> None:
        mock_runner.run.return_value = CommandResult(False, "", "forbidden", 1)

        assert kubectl.first_node_labels() == {}

    def test_load_balancer_hostname_preferred(
        self, kubectl: KubectlCommands, mock_runner: MagicMock
    ) -> None:
        mock_runner.run.return_value = CommandResult(
            True,
            json.dumps(
                {
                    "status": {
                        "loadBalancer": {
                            "ingress": [{"hostname": "lb.example.com", "ip": "10.0.0.1"}]
                        }
                    }
                }
            ),
            "",
            0,
        )

        address = kubectl.get_load_balancer_address("svc", "ns")

        assert address is not None
        assert address.address == "lb.example.com"

    def test_load_balancer_pending(
        self, kubectl: KubectlCommands, mock_runner: MagicMock
    ) -> None:
        mock_runner.run.return_value = CommandResult(
            True, json.dumps({"status": {"loadBalancer": {}}}), "", 0
        )

        address = kubectl.get_load_balancer_address("svc", "ns")

        assert address is not None
        assert address.address == ""

    def test_expose_load_balancer(
        self, kubectl: KubectlCommands, mock_runner: MagicMock
    ) -> None:
        kubectl.expose_load_balancer(
            "self-hosted-operator", "self-hosted-operator-public", "ns", 5050
        )

        cmd = mock_runner.run.call_args[0][0]
        assert cmd[:4] == ["kubectl", "expose", "svc", "self-hosted-operator"]
        assert "--type=LoadBalancer" in cmd
        assert "--port=5050" in cmd
        assert "--target-port=5050" in cmd

    def test_clear_finalizers_patch(
        self, kubectl: KubectlCommands, mock_runner: MagicMock
    ) -> None:
        kubectl.clear_finalizers("helmrelease.helm.toolkit.fluxcd.io/vault", "vault")

        cmd = mock_runner.run.call_args[0][0]
        assert cmd[-1] == CLEAR_FINALIZERS_PATCH
        assert cmd[cmd.index("-n") + 1] == "vault"

    def test_list_resource_names_strips_blank_lines(
        self, kubectl: KubectlCommands, mock_runner: MagicMock
    ) -> None:
        mock_runner.run.return_value = CommandResult(
            True, "selfhostedruntime.x/a\n\nselfhostedruntime.x/b\n", "", 0
        )

        assert kubectl.list_resource_names("selfhostedruntimes") == [
            "selfhostedruntime.x/a",
            "selfhostedruntime.x/b",
        ]

    def test_events_tail_keeps_header(
        self, kubectl: KubectlCommands, mock_runner: MagicMock
    ) -> None:
        rows = "\n".join(f"row{i}" for i in range(20))
        mock_runner.run.return_value = CommandResult(True, f"HEADER\n{rows}\n", "", 0)

        result = kubectl.get_events("ns", tail=10)

        lines = result.stdout.split("\n")
        assert lines[0] == "HEADER"
        assert lines[1:] == [f"row{i}" for i in range(10, 20)]
