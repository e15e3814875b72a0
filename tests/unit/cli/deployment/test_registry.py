"""Tests for registry version lookup and Helm registry login."""

import httpx
import pytest
from rich.console import Console

from sho_installer.cli.deployment.errors import (
    AuthError,
    AuthErrorKind,
    RegistryError,
    RegistryErrorKind,
)
from sho_installer.cli.deployment.operator_deployer.config import RegistryCredential
from sho_installer.cli.deployment.operator_deployer.registry import (
    RegistryClient,
    select_latest_version,
)
from sho_installer.cli.deployment.shell_commands import ShellCommands
from tests.fakes import FakeRunner, fail, ok

HOST = "public.ecr.aws"
PATH = "j0s5s8b0/ga/helm/self-hosted-operator"


def registry_transport(
    token: object = "tok", tags: list[str] | None = None, status: int = 200
) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/token":
            assert request.url.params["scope"] == f"repository:{PATH}:pull"
            return httpx.Response(status, json={"token": token})
        if request.url.path == f"/v2/{PATH}/tags/list":
            assert request.headers["Authorization"] == f"Bearer {token}"
            return httpx.Response(200, json={"name": PATH, "tags": tags or []})
        return httpx.Response(404)

    return httpx.MockTransport(handler)


def make_client(
    commands: ShellCommands, console: Console, transport: httpx.MockTransport
) -> RegistryClient:
    return RegistryClient(commands, console, http_client=httpx.Client(transport=transport))


class TestSelectLatestVersion:
    """Tests for semantic version selection."""

    def test_numeric_ordering_ignores_non_semver(self) -> None:
        assert select_latest_version(["0.9.0", "1.2.3", "1.10.0", "latest", "abc"]) == "1.10.0"

    def test_rejects_prefixed_and_partial_tags(self) -> None:
        assert select_latest_version(["v9.9.9", "2.0", "1.0.0-rc1", "1.0.0"]) == "1.0.0"

    def test_no_valid_version(self) -> None:
        with pytest.raises(RegistryError) as excinfo:
            select_latest_version(["latest", "main"])

        assert excinfo.value.kind is RegistryErrorKind.NO_VALID_VERSION
        assert excinfo.value.tags == ["latest", "main"]
        assert "latest" in (excinfo.value.details or "")


class TestFetchLatestVersion:
    """Tests for the token and tag list calls."""

    def test_returns_highest_tag(self, commands: ShellCommands, console: Console) -> None:
        client = make_client(commands, console, registry_transport(tags=["0.1.0", "0.2.0"]))

        assert client.fetch_latest_version(HOST, PATH) == "0.2.0"

    @pytest.mark.parametrize("token", [None, "", "null"])
    def test_missing_token(
        self, commands: ShellCommands, console: Console, token: object
    ) -> None:
        client = make_client(commands, console, registry_transport(token=token))

        with pytest.raises(RegistryError) as excinfo:
            client.fetch_latest_version(HOST, PATH)

        assert excinfo.value.kind is RegistryErrorKind.TOKEN_UNAVAILABLE

    def test_http_error(self, commands: ShellCommands, console: Console) -> None:
        client = make_client(commands, console, registry_transport(status=503))

        with pytest.raises(RegistryError) as excinfo:
            client.fetch_latest_version(HOST, PATH)

        assert excinfo.value.kind is RegistryErrorKind.REQUEST_FAILED

    def test_transport_error(self, commands: ShellCommands, console: Console) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route", request=request)

        client = make_client(commands, console, httpx.MockTransport(handler))

        with pytest.raises(RegistryError) as excinfo:
            client.fetch_latest_version(HOST, PATH)

        assert excinfo.value.kind is RegistryErrorKind.REQUEST_FAILED

    def test_empty_tag_list(self, commands: ShellCommands, console: Console) -> None:
        client = make_client(commands, console, registry_transport(tags=[]))

        with pytest.raises(RegistryError) as excinfo:
            client.fetch_latest_version(HOST, PATH)

        assert excinfo.value.kind is RegistryErrorKind.NO_VALID_VERSION


class TestLogin:
    """Tests for Helm registry login."""

    def test_success(
        self, commands: ShellCommands, console: Console, runner: FakeRunner
    ) -> None:
        client = RegistryClient(commands, console)

        client.login(RegistryCredential("user", "pw", HOST))

        assert runner.input_for("helm", "registry", "login") == "pw"
        assert not any("pw" == arg for call in runner.calls for arg in call)

    def test_unauthorized(
        self, commands: ShellCommands, console: Console, runner: FakeRunner
    ) -> None:
        runner.on("helm", "registry", "login", results=fail("Error: 401 Unauthorized"))
        client = RegistryClient(commands, console)

        with pytest.raises(AuthError) as excinfo:
            client.login(RegistryCredential("user", "pw", HOST))

        assert excinfo.value.kind is AuthErrorKind.UNAUTHORIZED

    def test_other_failure(
        self, commands: ShellCommands, console: Console, runner: FakeRunner
    ) -> None:
        runner.on("helm", "registry", "login", results=fail("dial tcp: i/o timeout"))
        client = RegistryClient(commands, console)

        with pytest.raises(AuthError) as excinfo:
            client.login(RegistryCredential("user", "pw", HOST))

        assert excinfo.value.kind is AuthErrorKind.UNKNOWN

    def test_aws_credential(
        self, commands: ShellCommands, console: Console, runner: FakeRunner
    ) -> None:
        runner.on("aws", "ecr-public", results=ok("ecr-password\n"))
        client = RegistryClient(commands, console)

        credential = client.aws_credential(HOST)

        assert credential.username == "AWS"
        assert credential.password == "ecr-password"
        assert runner.calls_starting("aws")[0][-2:] == ["--region", "us-east-1"]

    def test_logout_failure_is_ignored(
        self, commands: ShellCommands, console: Console, runner: FakeRunner
    ) -> None:
        runner.on("helm", "registry", "logout", results=fail("not logged in"))

        RegistryClient(commands, console).logout(HOST)

        assert runner.calls_starting("helm", "registry", "logout")



class TestHttpClientLifecycle:
    """Tests for the lazily created registry HTTP client."""

    def test_owned_client_follows_redirects_and_closes(
        self, commands: ShellCommands, console: Console
    ) -> None:
        with RegistryClient(commands, console) as client:
            http = client.http
            assert http.follow_redirects is True

        assert http.is_closed
        assert client._http is None

    def test_injected_client_is_left_open(
        self, commands: ShellCommands, console: Console
    ) -> None:
        http = httpx.Client(transport=registry_transport(tags=["1.0.0"]))

        with RegistryClient(commands, console, http_client=http) as client:
            assert client.fetch_latest_version(HOST, PATH) == "1.0.0"

        assert not http.is_closed
