"""Console exposure: LoadBalancer service or local port-forward.

Both variants follow the same sequence: check the backing service, make
sure the front-end exists, wait for an address, probe the URL over HTTP
and optionally open a browser.
"""

from __future__ import annotations

import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from ..errors import ExposeError, ExposeErrorKind
from .config import InstallerSettings, RetrySettings
from .constants import DEFAULT_CONSTANTS, ExposureMode, OperatorConstants
from .platform import PlatformOps
from .polling import CancellationToken, Clock, SystemClock, poll_intervals

if TYPE_CHECKING:
    from rich.console import Console

    from ..shell_commands import ShellCommands


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int
    scheme: str = "http"
    reachable: bool = False

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"


class ReachabilityProbe:
    """Bounded HTTP probe: HEAD first, GET as a fallback."""

    def __init__(
        self,
        retry: RetrySettings,
        clock: Clock | None = None,
        cancel: CancellationToken | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.retry = retry
        self.clock = clock or SystemClock()
        self.cancel = cancel
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def http(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(
                timeout=httpx.Timeout(self.retry.request_timeout),
                follow_redirects=False,
            )
        return self._http

    def __enter__(self) -> ReachabilityProbe:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._http is not None and self._owns_http:
            self._http.close()
            self._http = None

    def _attempt(self, url: str) -> bool:
        for method in ("HEAD", "GET"):
            try:
                response = self.http.request(method, url)
            except httpx.HTTPError as e:
                logger.debug("{} {} failed: {}", method, url, e)
                continue
            if response.status_code < 400:
                return True
            logger.debug("{} {} returned HTTP {}", method, url, response.status_code)
        return False

    def probe(self, url: str) -> bool:
        """Return True once ``url`` answers 2xx/3xx within the retry budget."""
        for attempt in range(1, self.retry.tries + 1):
            if self._attempt(url):
                return True
            logger.debug("Reachability attempt {}/{} failed", attempt, self.retry.tries)
            if attempt < self.retry.tries:
                self.clock.sleep(self.retry.backoff, self.cancel)
        return False


class ServiceExposer(ABC):
    """Makes the operator console reachable and reports its URL."""

    def __init__(
        self,
        commands: ShellCommands,
        console: Console,
        platform: PlatformOps,
        probe: ReachabilityProbe,
        constants: OperatorConstants | None = None,
        clock: Clock | None = None,
        cancel: CancellationToken | None = None,
        address_interval: float = 10.0,
        address_timeout: float = 300.0,
        open_browser: bool = True,
    ) -> None:
        self.commands = commands
        self.console = console
        self.platform = platform
        self.probe = probe
        self.constants = constants or DEFAULT_CONSTANTS
        self.clock = clock or SystemClock()
        self.cancel = cancel
        self.address_interval = address_interval
        self.address_timeout = address_timeout
        self.open_browser = open_browser

    @abstractmethod
    def ensure_frontend(self, release_name: str, namespace: str, port: int) -> None:
        """Create the front-end in front of the release service if missing."""

    @abstractmethod
    def wait_for_address(self, release_name: str, namespace: str) -> str:
        """Return the host the console is reachable on."""

    def expose_and_verify(self, release_name: str, namespace: str, port: int) -> Endpoint:
        """Expose the console and return its endpoint.

        An unreachable endpoint is reported as a warning and still returned.

        Raises:
            ExposeError: SERVICE_MISSING, CREATE_FAILED or TIMEOUT
        """
        if not self.commands.kubectl.service_exists(release_name, namespace):
            raise ExposeError(
                ExposeErrorKind.SERVICE_MISSING,
                f"Service {release_name} not found in namespace {namespace}",
                details=f"kubectl get svc -n {namespace}",
            )

        self.ensure_frontend(release_name, namespace, port)
        host = self.wait_for_address(release_name, namespace)
        endpoint = Endpoint(host=host, port=port)

        self.console.print(f"[cyan]🔗 Checking {endpoint.url}...[/cyan]")
        if not self.probe.probe(endpoint.url):
            self.console.print(
                f"[yellow]⚠️  {endpoint.url} is not responding yet. "
                "It may take a few more minutes to become available.[/yellow]"
            )
            return endpoint

        endpoint = Endpoint(host=host, port=port, reachable=True)
        self.console.print(f"[green]✅ Console is reachable at {endpoint.url}[/green]")
        if self.open_browser:
            self.platform.open_browser(endpoint.url)
        return endpoint


class LoadBalancerExposer(ServiceExposer):
    """Publishes the console through a ``<release>-public`` LoadBalancer."""

    def ensure_frontend(self, release_name: str, namespace: str, port: int) -> None:
        name = self.constants.public_service_name(release_name)
        if self.commands.kubectl.service_exists(name, namespace):
            self.console.print(f"[dim]LoadBalancer service {name} already exists[/dim]")
            return

        self.console.print(f"[cyan]🌐 Creating LoadBalancer service {name}...[/cyan]")
        result = self.commands.kubectl.expose_load_balancer(
            release_name, name, namespace, port, port
        )
        if not result.success:
            raise ExposeError(
                ExposeErrorKind.CREATE_FAILED,
                f"Failed to create LoadBalancer service {name}",
                details=result.output.strip() or None,
            )

    def wait_for_address(self, release_name: str, namespace: str) -> str:
        name = self.constants.public_service_name(release_name)
        self.console.print("[cyan]⏳ Waiting for the LoadBalancer address...[/cyan]")
        for elapsed in poll_intervals(
            self.clock,
            interval=self.address_interval,
            timeout=self.address_timeout,
            cancel=self.cancel,
        ):
            address = self.commands.kubectl.get_load_balancer_address(name, namespace)
            if address is not None and address.address:
                self.console.print(f"[green]✅ LoadBalancer address: {address.address}[/green]")
                return address.address
            logger.debug("No LoadBalancer address yet ({}s)", elapsed)

        raise ExposeError(
            ExposeErrorKind.TIMEOUT,
            f"Timed out waiting for an external address on {name}",
            details=(
                "Check the service with:\n"
                f"  kubectl get svc {name} -n {namespace}\n"
                f"  kubectl describe svc {name} -n {namespace}"
            ),
        )


@dataclass
class PortForwardHandle:
    """A background ``kubectl port-forward`` process."""

    process: subprocess.Popen[str]
    local_port: int

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def alive(self) -> bool:
        return self.process.poll() is None

    def stop(self) -> None:
        if not self.alive:
            return
        self.process.terminate()
        try:
            self.process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self.process.kill()


# Port-forwards started by this process, keyed by local port
_PORT_FORWARDS: dict[int, PortForwardHandle] = {}


def active_port_forward(local_port: int) -> PortForwardHandle | None:
    handle = _PORT_FORWARDS.get(local_port)
    if handle is not None and not handle.alive:
        del _PORT_FORWARDS[local_port]
        return None
    return handle


class PortForwardExposer(ServiceExposer):
    """Forwards the console to ``localhost`` through kubectl."""

    def __init__(
        self,
        commands: ShellCommands,
        console: Console,
        platform: PlatformOps,
        probe: ReachabilityProbe,
        constants: OperatorConstants | None = None,
        clock: Clock | None = None,
        cancel: CancellationToken | None = None,
        open_browser: bool = True,
        settle: float = 5.0,
    ) -> None:
        super().__init__(
            commands,
            console,
            platform,
            probe,
            constants=constants,
            clock=clock,
            cancel=cancel,
            open_browser=open_browser,
        )
        self.settle = settle

    def ensure_frontend(self, release_name: str, namespace: str, port: int) -> None:
        if active_port_forward(port) is not None:
            self.console.print(f"[dim]Port-forward on localhost:{port} already running[/dim]")
            return

        self.platform.stop_port_forwards(port)
        self.console.print(f"[cyan]🔌 Starting port-forward to svc/{release_name}...[/cyan]")
        try:
            process = self.commands.kubectl.port_forward(release_name, namespace, port, port)
        except OSError as e:
            raise ExposeError(
                ExposeErrorKind.CREATE_FAILED,
                f"Failed to start port-forward: {e}",
            ) from e

        self.clock.sleep(self.settle, self.cancel)
        if process.poll() is not None:
            raise ExposeError(
                ExposeErrorKind.CREATE_FAILED,
                f"Port-forward to svc/{release_name} exited immediately",
                details=(
                    "Try it manually:\n"
                    f"  kubectl port-forward -n {namespace} svc/{release_name} {port}:{port}"
                ),
            )
        _PORT_FORWARDS[port] = PortForwardHandle(process, port)
        logger.debug("Port-forward running with pid {}", process.pid)

    def wait_for_address(self, release_name: str, namespace: str) -> str:
        return "localhost"


def build_exposer(
    mode: ExposureMode,
    commands: ShellCommands,
    console: Console,
    platform: PlatformOps,
    settings: InstallerSettings,
    *,
    constants: OperatorConstants | None = None,
    clock: Clock | None = None,
    cancel: CancellationToken | None = None,
    http_client: httpx.Client | None = None,
) -> ServiceExposer:
    """Build the exposer for ``mode`` with its retry budget from settings."""
    clock = clock or SystemClock()
    if mode is ExposureMode.PORT_FORWARD:
        probe = ReachabilityProbe(
            settings.port_forward_reachability, clock, cancel, http_client
        )
        return PortForwardExposer(
            commands,
            console,
            platform,
            probe,
            constants=constants,
            clock=clock,
            cancel=cancel,
            open_browser=settings.open_browser,
            settle=settings.port_forward_settle,
        )

    probe = ReachabilityProbe(settings.reachability, clock, cancel, http_client)
    return LoadBalancerExposer(
        commands,
        console,
        platform,
        probe,
        constants=constants,
        clock=clock,
        cancel=cancel,
        address_interval=settings.load_balancer.interval,
        address_timeout=settings.load_balancer.timeout,
        open_browser=settings.open_browser,
    )
