"""Error taxonomy for installer operations.

Every failure raised by the deployment layer derives from DeploymentError,
which carries a short message plus optional details rendered by the CLI in
a panel. Failures that come in several flavours carry a ``kind`` enum so
callers and tests can branch on the cause rather than on message text.
"""

from __future__ import annotations

from enum import Enum


class DeploymentError(Exception):
    """Raised when a deployment operation fails."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(DeploymentError):
    """Raised when CLI arguments or environment variables are invalid."""


class OperationCancelledError(DeploymentError):
    """Raised when the user interrupts a running operation."""

    def __init__(self, message: str = "Operation cancelled by user") -> None:
        super().__init__(message)


class DependencyError(DeploymentError):
    """A required tool is missing and could not be installed."""

    def __init__(self, tool: str, strategy: str | None = None):
        self.tool = tool
        self.strategy = strategy
        details = (
            f"Last attempted strategy: {strategy}"
            if strategy
            else "No installation strategy is available on this platform."
        )
        super().__init__(f"Required tool '{tool}' is not available", details)


class ConnectivityError(DeploymentError):
    """No Kubernetes cluster is reachable with the current kubeconfig."""

    def __init__(self, output: str = ""):
        self.output = output
        super().__init__(
            "Cannot connect to Kubernetes cluster",
            details=(
                "Make sure you have:\n"
                "  • A valid kubeconfig file\n"
                "  • Access to a Kubernetes cluster\n"
                "  • Proper cluster permissions"
                + (f"\n\nOutput:\n{output.strip()}" if output.strip() else "")
            ),
        )


class RegistryErrorKind(Enum):
    TOKEN_UNAVAILABLE = "token_unavailable"
    NO_VALID_VERSION = "no_valid_version"
    REQUEST_FAILED = "request_failed"


class RegistryError(DeploymentError):
    """Chart version could not be resolved from the registry."""

    def __init__(
        self,
        kind: RegistryErrorKind,
        message: str,
        *,
        tags: list[str] | None = None,
        details: str | None = None,
    ):
        self.kind = kind
        self.tags = tags or []
        if kind is RegistryErrorKind.NO_VALID_VERSION and details is None:
            details = "Available tags:\n" + (
                "\n".join(f"  {tag}" for tag in self.tags) or "  (none)"
            )
        super().__init__(message, details)


class AuthErrorKind(Enum):
    UNAUTHORIZED = "unauthorized"
    UNKNOWN = "unknown"


class AuthError(DeploymentError):
    """Registry login failed."""

    def __init__(self, kind: AuthErrorKind, host: str, output: str = ""):
        self.kind = kind
        self.host = host
        self.output = output
        if kind is AuthErrorKind.UNAUTHORIZED:
            message = f"Registry {host} rejected the supplied credentials"
        else:
            message = f"Failed to authenticate with registry {host}"
        super().__init__(
            message,
            details=(
                "Possible reasons:\n"
                "  • No credentials available\n"
                "  • Network connectivity issues\n"
                "  • Insufficient permissions"
                + (f"\n\nOutput:\n{output.strip()}" if output.strip() else "")
            ),
        )


class InstallErrorKind(Enum):
    RELEASE_EXISTS = "release_exists"
    NETWORK_UNREACHABLE = "network_unreachable"
    UNAUTHORIZED = "unauthorized"
    CHART_NOT_FOUND = "chart_not_found"
    NAMESPACE_TERMINATING = "namespace_terminating"
    UNKNOWN = "unknown"


_INSTALL_HINTS: dict[InstallErrorKind, str] = {
    InstallErrorKind.RELEASE_EXISTS: (
        "Release already exists. Use a different name or uninstall the "
        "existing release."
    ),
    InstallErrorKind.NETWORK_UNREACHABLE: (
        "Network connectivity issue. Check the registry URL and internet "
        "connection."
    ),
    InstallErrorKind.UNAUTHORIZED: (
        "The registry refused access. Check registry credentials or log out "
        "of stale sessions with: helm registry logout <host>"
    ),
    InstallErrorKind.CHART_NOT_FOUND: (
        "The chart or version was not found. Check --version and --repository."
    ),
    InstallErrorKind.NAMESPACE_TERMINATING: (
        "Wait for the namespace deletion to finish, then retry."
    ),
    InstallErrorKind.UNKNOWN: "Inspect the Helm output above for details.",
}


class InstallError(DeploymentError):
    """Chart install or upgrade failed."""

    def __init__(self, kind: InstallErrorKind, output: str = "", message: str = ""):
        self.kind = kind
        self.output = output
        hint = _INSTALL_HINTS[kind]
        details = f"{output.strip()}\n\n💡 {hint}" if output.strip() else f"💡 {hint}"
        super().__init__(
            message or "Failed to install OutSystems Self-Hosted Operator",
            details,
        )


class ExposeErrorKind(Enum):
    SERVICE_MISSING = "service_missing"
    CREATE_FAILED = "create_failed"
    TIMEOUT = "timeout"
    RELEASE_NOT_FOUND = "release_not_found"


class ExposeError(DeploymentError):
    """The console front-end could not be created or never got an address."""

    def __init__(self, kind: ExposeErrorKind, message: str, details: str | None = None):
        self.kind = kind
        super().__init__(message, details)


class UninstallErrorKind(Enum):
    RELEASE_NOT_FOUND = "release_not_found"
    HELM_UNINSTALL_FAILED = "helm_uninstall_failed"


class UninstallError(DeploymentError):
    """Uninstall could not proceed."""

    def __init__(self, kind: UninstallErrorKind, message: str, output: str = ""):
        self.kind = kind
        self.output = output
        if kind is UninstallErrorKind.RELEASE_NOT_FOUND:
            details = "To see installed releases, run: helm list --all-namespaces"
        else:
            details = output.strip() or None
        super().__init__(message, details)
