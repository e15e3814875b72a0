"""Registry access: latest chart version lookup and Helm registry login.

The tag lookup speaks the two OCI distribution calls ECR public needs (an
anonymous pull token and the tag list) over httpx. Authentication for the
chart pull itself is delegated to ``helm registry login``.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from ..errors import (
    AuthError,
    AuthErrorKind,
    DeploymentError,
    RegistryError,
    RegistryErrorKind,
)
from .config import RegistryCredential, ResolvedConfig
from .constants import DEFAULT_CONSTANTS, OperatorConstants

if TYPE_CHECKING:
    from rich.console import Console

    from ..shell_commands import ShellCommands


def _version_key(tag: str) -> tuple[int, int, int]:
    major, minor, patch = tag.split(".")
    return int(major), int(minor), int(patch)


def select_latest_version(
    tags: Iterable[str], constants: OperatorConstants = DEFAULT_CONSTANTS
) -> str:
    """Return the highest strict ``MAJOR.MINOR.PATCH`` tag.

    Raises:
        RegistryError: NO_VALID_VERSION when no tag matches
    """
    all_tags = list(tags)
    valid = [tag for tag in all_tags if constants.VERSION_PATTERN.match(tag)]
    if not valid:
        raise RegistryError(
            RegistryErrorKind.NO_VALID_VERSION,
            "No valid semantic versions found in the registry",
            tags=all_tags,
        )
    return max(valid, key=_version_key)


class RegistryClient:
    """Resolves chart versions and manages Helm registry sessions."""

    def __init__(
        self,
        commands: ShellCommands,
        console: Console,
        http_client: httpx.Client | None = None,
        constants: OperatorConstants | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.commands = commands
        self.console = console
        self.constants = constants or DEFAULT_CONSTANTS
        self._http = http_client
        self._owns_http = http_client is None
        self._timeout = timeout

    @property
    def http(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        return self._http

    def __enter__(self) -> RegistryClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http is not None and self._owns_http:
            self._http.close()
            self._http = None
            logger.debug("Registry HTTP client closed")

    # =========================================================================
    # Version lookup
    # =========================================================================

    def _get_json(self, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self.http.get(url, **kwargs)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise RegistryError(
                RegistryErrorKind.REQUEST_FAILED,
                f"Registry request failed with HTTP {e.response.status_code}",
                details=url,
            ) from e
        except httpx.HTTPError as e:
            raise RegistryError(
                RegistryErrorKind.REQUEST_FAILED,
                f"Registry request failed: {e}",
                details=url,
            ) from e
        except ValueError as e:
            raise RegistryError(
                RegistryErrorKind.REQUEST_FAILED,
                "Registry returned a response that is not JSON",
                details=url,
            ) from e
        return payload if isinstance(payload, dict) else {}

    def fetch_latest_version(self, host: str, repository_path: str) -> str:
        """Look up the newest semantic version tag of a chart repository.

        Args:
            host: Registry host (e.g. public.ecr.aws)
            repository_path: Repository path inside the registry

        Returns:
            The highest ``MAJOR.MINOR.PATCH`` tag

        Raises:
            RegistryError: TOKEN_UNAVAILABLE, NO_VALID_VERSION or REQUEST_FAILED
        """
        logger.debug("Fetching tags for {}/{}", host, repository_path)
        token_payload = self._get_json(
            f"https://{host}/token",
            params={"scope": f"repository:{repository_path}:pull"},
        )
        token = token_payload.get("token")
        if not token or token == "null":
            raise RegistryError(
                RegistryErrorKind.TOKEN_UNAVAILABLE,
                "Failed to get authentication token from registry",
                details=f"Registry: {host}\nRepository: {repository_path}",
            )

        tags_payload = self._get_json(
            f"https://{host}/v2/{repository_path}/tags/list",
            headers={"Authorization": f"Bearer {token}"},
        )
        tags = [str(tag) for tag in tags_payload.get("tags") or []]
        logger.debug("Registry returned {} tags", len(tags))
        return select_latest_version(tags, self.constants)

    # =========================================================================
    # Authentication
    # =========================================================================

    def login(self, credential: RegistryCredential) -> None:
        """Log Helm in to a registry with the password on stdin.

        Raises:
            AuthError: UNAUTHORIZED when the registry rejects the credential,
                       UNKNOWN for any other failure
        """
        result = self.commands.helm.registry_login(
            credential.registry_host, credential.username, credential.password
        )
        if result.success:
            self.console.print(
                f"[green]✅ Logged in to {credential.registry_host}[/green]"
            )
            return
        kind = (
            AuthErrorKind.UNAUTHORIZED
            if self.constants.UNAUTHORIZED_PATTERN.search(result.output)
            else AuthErrorKind.UNKNOWN
        )
        raise AuthError(kind, credential.registry_host, result.output)

    def logout(self, host: str) -> None:
        """Drop stored Helm credentials for ``host``; failures are ignored."""
        result = self.commands.helm.registry_logout(host)
        if not result.success:
            logger.debug("helm registry logout {} failed: {}", host, result.output.strip())

    def aws_credential(self, host: str) -> RegistryCredential:
        """Exchange the AWS CLI session for an ECR public credential.

        Raises:
            AuthError: If the AWS CLI cannot produce a password
        """
        result = self.commands.aws.ecr_public_login_password()
        password = result.stdout.strip()
        if not result.success or not password:
            raise AuthError(AuthErrorKind.UNKNOWN, host, result.output)
        return RegistryCredential(
            username=self.constants.AWS_REGISTRY_USERNAME,
            password=password,
            registry_host=host,
        )

    def authenticate(self, config: ResolvedConfig, *, aws_login: bool = False) -> None:
        """Establish the Helm registry session used for the chart pull.

        Explicit REGISTRY_USERNAME/REGISTRY_PASSWORD win, then AWS login when
        requested. Otherwise stale credentials are dropped and the chart is
        pulled anonymously.
        """
        self.console.print("[bold cyan]🔐 Authenticating with registry...[/bold cyan]")
        if config.registry_credential is not None:
            self.login(config.registry_credential)
        elif aws_login:
            self.login(self.aws_credential(config.registry_host))
        else:
            self.logout(config.registry_host)
            self.console.print(
                f"[dim]Using anonymous access to {config.registry_host}[/dim]"
            )

    def resolve_version(self, config: ResolvedConfig) -> str:
        """Return the requested version, or the registry's latest."""
        if not config.request.wants_latest:
            return config.request.target_version
        self.console.print("[cyan]🔍 Looking up the latest chart version...[/cyan]")
        try:
            version = self.fetch_latest_version(
                config.registry_host, config.chart_repository_path
            )
        except DeploymentError:
            self.console.print("[red]❌ Failed to determine the latest version[/red]")
            raise
        self.console.print(f"[green]✅ Latest version: {version}[/green]")
        return version
