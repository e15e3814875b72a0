"""End-to-end tests for OperatorDeployer against scripted helm/kubectl."""

import json
from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest
import yaml
from rich.console import Console

from sho_installer.cli.deployment.errors import (
    DeploymentError,
    ExposeError,
    ExposeErrorKind,
    InstallError,
    InstallErrorKind,
)
from sho_installer.cli.deployment.operator_deployer import exposer as exposer_module
from sho_installer.cli.deployment.operator_deployer.cleanup import UninstallOutcome
from sho_installer.cli.deployment.operator_deployer.config import (
    InstallerSettings,
    build_install_request,
)
from sho_installer.cli.deployment.operator_deployer.deployer import (
    OperatorDeployer,
    RunOutcome,
)
from sho_installer.cli.deployment.operator_deployer.platform import LinuxPlatform
from sho_installer.cli.deployment.operator_deployer.readiness import ReadinessState
from sho_installer.cli.deployment.shell_commands import ShellCommands
from tests.fakes import FakeClock, FakeRunner, console_output, fail, ok

RELEASE = "self-hosted-operator"
NAMESPACE = "self-hosted-operator"

READY_PODS = json.dumps(
    {
        "items": [
            {
                "metadata": {"name": f"self-hosted-operator-{i}"},
                "status": {
                    "phase": "Running",
                    "containerStatuses": [
                        {"ready": True, "restartCount": 0, "state": {"running": {}}}
                    ],
                },
            }
            for i in range(2)
        ]
    }
)
LB_READY = json.dumps(
    {"status": {"loadBalancer": {"ingress": [{"hostname": "lb.example.com"}]}}}
)


def registry_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/token":
        return httpx.Response(200, json={"token": "anon-token"})
    if request.url.path.endswith("/tags/list"):
        assert request.headers["Authorization"] == "Bearer anon-token"
        return httpx.Response(200, json={"tags": ["0.1.0", "0.2.0", "latest"]})
    return httpx.Response(200)


@pytest.fixture(autouse=True)
def clear_port_forwards() -> Iterator[None]:
    exposer_module._PORT_FORWARDS.clear()
    yield
    exposer_module._PORT_FORWARDS.clear()


@pytest.fixture
def cluster(runner: FakeRunner) -> FakeRunner:
    """A healthy cluster with the operator service but no public service yet."""
    runner.on("kubectl", "get", "pods", results=ok(READY_PODS))
    runner.on("kubectl", "get", "svc", f"{RELEASE}-public", "-n", NAMESPACE, results=fail())
    runner.on(
        "kubectl", "get", "svc", f"{RELEASE}-public", "-n", NAMESPACE, "-o", "json",
        results=ok(LB_READY),
    )
    return runner


def make_deployer(
    commands: ShellCommands,
    runner: FakeRunner,
    console: Console,
    clock: FakeClock,
    tmp_path: Path,
    *,
    tools: tuple[str, ...] = ("helm", "kubectl"),
    answer: str = "yes",
) -> OperatorDeployer:
    platform = LinuxPlatform(
        runner,  # type: ignore[arg-type]
        lambda name: f"/usr/bin/{name}" if name in tools else None,
    )
    return OperatorDeployer(
        console,
        tmp_path,
        InstallerSettings(open_browser=False),
        commands=commands,
        platform=platform,
        clock=clock,
        http_client=httpx.Client(transport=httpx.MockTransport(registry_handler)),
        prompt=lambda question: answer,
        environ={},
        load_env=False,
    )


def request_for(**kwargs: str):  # type: ignore[no-untyped-def]
    return build_install_request(settings=InstallerSettings(), environ={}, **kwargs)


class TestDeploy:
    """Tests for the install workflow."""

    def test_explicit_version(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        deployer = make_deployer(commands, cluster, console, clock, tmp_path)

        result = deployer.deploy(request_for(version="1.2.3", environment="ga"))

        assert result.version == "1.2.3"
        assert result.readiness.state is ReadinessState.ALL_READY
        assert result.endpoint is not None
        assert result.endpoint.url == "http://lb.example.com:5050"
        assert result.outcome is RunOutcome.SUCCESS

        install = cluster.calls_starting("helm", "upgrade", "--install")[0]
        assert install[3:5] == [
            RELEASE,
            "oci://public.ecr.aws/j0s5s8b0/ga/helm/self-hosted-operator",
        ]
        assert "1.2.3" in install
        values = yaml.safe_load(cluster.input_for("helm", "upgrade", "--install") or "")
        assert values["image"]["tag"] == "v1.2.3"
        assert values["image"]["registry"] == "public.ecr.aws/j0s5s8b0/ga"
        assert values["ring"] == "ga"
        assert "http://lb.example.com:5050" in console_output(console)

    def test_latest_version_from_registry(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        deployer = make_deployer(commands, cluster, console, clock, tmp_path)

        result = deployer.deploy(request_for())

        assert result.version == "0.2.0"
        values = yaml.safe_load(cluster.input_for("helm", "upgrade", "--install") or "")
        assert values["image"]["tag"] == "v0.2.0"

    def test_steps_run_in_order(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        deployer = make_deployer(commands, cluster, console, clock, tmp_path)

        deployer.deploy(request_for(version="1.2.3"))

        prefixes = [tuple(call[:3]) for call in cluster.calls]
        order = [
            ("helm", "list", "--all-namespaces"),
            ("helm", "registry", "logout"),
            ("kubectl", "create", "namespace"),
            ("helm", "show", "chart"),
            ("helm", "upgrade", "--install"),
            ("kubectl", "get", "pods"),
            ("kubectl", "expose", "svc"),
        ]
        positions = [prefixes.index(step) for step in order]
        assert positions == sorted(positions)

    def test_missing_tools_stop_before_cluster_calls(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        deployer = make_deployer(commands, cluster, console, clock, tmp_path, tools=())

        with pytest.raises(DeploymentError, match="Missing required tools: helm, kubectl"):
            deployer.deploy(request_for(version="1.2.3"))

        assert not cluster.calls_starting("helm", "upgrade")
        assert not cluster.calls_starting("helm", "list")

    def test_install_failure_propagates(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        cluster.on("helm", "upgrade", results=fail("dial tcp: no such host"))
        deployer = make_deployer(commands, cluster, console, clock, tmp_path)

        with pytest.raises(InstallError) as excinfo:
            deployer.deploy(request_for(version="1.2.3"))

        assert excinfo.value.kind is InstallErrorKind.NETWORK_UNREACHABLE
        assert not cluster.calls_starting("kubectl", "get", "pods")

    def test_pods_not_ready_is_a_warning(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        cluster.on("kubectl", "get", "pods", results=ok(json.dumps({"items": []})))
        deployer = make_deployer(commands, cluster, console, clock, tmp_path)

        result = deployer.deploy(request_for(version="1.2.3"))

        assert result.readiness.state is ReadinessState.TIMED_OUT
        assert result.outcome is RunOutcome.SUCCESS_WITH_WARNINGS
        assert "Troubleshooting commands" in console_output(console)

    def test_exposure_failure_is_a_warning(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        cluster.on("kubectl", "expose", results=fail("forbidden"))
        deployer = make_deployer(commands, cluster, console, clock, tmp_path)

        result = deployer.deploy(request_for(version="1.2.3"))

        assert result.endpoint is None
        assert result.warnings == 1
        assert result.outcome is RunOutcome.SUCCESS_WITH_WARNINGS


class TestTeardown:
    """Tests for uninstall through the deployer."""

    def test_confirmed_uninstall(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        deployer = make_deployer(commands, cluster, console, clock, tmp_path)

        outcome = deployer.teardown(request_for(operation="uninstall"))

        assert outcome is UninstallOutcome.COMPLETED
        assert cluster.calls_starting("helm", "uninstall", RELEASE, "-n", NAMESPACE)
        assert ["kubectl", "delete", "namespace", NAMESPACE, "--wait=false"] in cluster.calls

    def test_declined_uninstall(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        deployer = make_deployer(commands, cluster, console, clock, tmp_path, answer="no")

        outcome = deployer.teardown(request_for(operation="uninstall"))

        assert outcome is UninstallOutcome.CANCELLED
        assert not cluster.calls_starting("helm", "uninstall")
        assert not cluster.calls_starting("kubectl", "delete")

    def test_release_defaults_from_settings(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        deployer = make_deployer(commands, cluster, console, clock, tmp_path)

        outcome = deployer.teardown(force=True)

        assert outcome is UninstallOutcome.COMPLETED
        assert cluster.calls_starting("helm", "uninstall", RELEASE, "-n", NAMESPACE)


class TestConsoleUrl:
    def test_reports_existing_release(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        deployer = make_deployer(commands, cluster, console, clock, tmp_path)

        endpoint = deployer.show_console_url(request_for(operation="get-console-url"))

        assert endpoint.url == "http://lb.example.com:5050"

    def test_release_not_installed(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        cluster.on("helm", "status", results=fail("Error: release: not found"))
        deployer = make_deployer(commands, cluster, console, clock, tmp_path)

        with pytest.raises(ExposeError) as excinfo:
            deployer.show_console_url(request_for(operation="get-console-url"))

        assert excinfo.value.kind is ExposeErrorKind.RELEASE_NOT_FOUND
        assert not cluster.calls_starting("kubectl", "expose")


class TestShowStatus:
    def test_lists_pods(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        cluster.on(
            "helm", "list", "-n", NAMESPACE,
            results=ok(
                json.dumps(
                    [
                        {
                            "name": RELEASE,
                            "namespace": NAMESPACE,
                            "revision": "3",
                            "status": "deployed",
                            "chart": "self-hosted-operator-1.2.3",
                            "app_version": "1.2.3",
                        }
                    ]
                )
            ),
        )
        deployer = make_deployer(commands, cluster, console, clock, tmp_path)

        deployer.show_status()

        output = console_output(console)
        assert "deployed" in output
        assert "self-hosted-operator-1.2.3" in output
        assert "self-hosted-operator-1" in output

    def test_missing_release(
        self,
        commands: ShellCommands,
        cluster: FakeRunner,
        console: Console,
        clock: FakeClock,
        tmp_path: Path,
    ) -> None:
        cluster.on("helm", "list", "-n", NAMESPACE, results=ok("[]"))
        deployer = make_deployer(commands, cluster, console, clock, tmp_path)

        deployer.show_status()

        assert "not found" in console_output(console)
        assert not cluster.calls_starting("kubectl", "get", "pods")
