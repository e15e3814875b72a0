"""Installer settings, install requests and resolved configuration.

Three layers feed a run:

- ``InstallerSettings``: tunables (namespaces, ports, poll budgets) with
  defaults, optionally overridden by a YAML file.
- ``InstallRequest``: what the user asked for on this invocation, built
  from CLI flags and environment variables and validated up front.
- ``ResolvedConfig``: everything derived from the request that the
  install/uninstall steps read (chart reference, image coordinates, cluster
  type). It is computed once and passed explicitly through the call chain.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..shell_commands.kubectl import KubectlCommands
from .constants import (
    DEFAULT_CONSTANTS,
    ClusterType,
    Environment,
    ExposureMode,
    Operation,
    OperatorConstants,
    RegistryMode,
)

CONFIG_ENV_VAR = "SHO_INSTALLER_CONFIG"
DEFAULT_ENVIRONMENT = Environment.GA

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


# =============================================================================
# Settings
# =============================================================================


class PollSettings(BaseModel):
    """Fixed-interval polling budget."""

    model_config = ConfigDict(extra="forbid")

    interval: float = Field(default=10.0, gt=0)
    timeout: float = Field(default=300.0, gt=0)


class RetrySettings(BaseModel):
    """Bounded retry budget for HTTP reachability probes."""

    model_config = ConfigDict(extra="forbid")

    tries: int = Field(default=10, ge=1)
    backoff: float = Field(default=20.0, ge=0)
    request_timeout: float = Field(default=10.0, gt=0)


class InstallerSettings(BaseModel):
    """Tunable installer settings.

    Every timeout and retry budget the shell installers hard-coded lives
    here so it can be overridden from a YAML file.
    """

    model_config = ConfigDict(extra="forbid")

    namespace: str = DEFAULT_CONSTANTS.DEFAULT_NAMESPACE
    credentials_namespace: str = DEFAULT_CONSTANTS.CREDENTIALS_JOB_NAMESPACE
    release_name: str = DEFAULT_CONSTANTS.HELM_RELEASE_NAME
    console_port: int = Field(default=DEFAULT_CONSTANTS.CONSOLE_PORT, gt=0, lt=65536)
    exposure: ExposureMode = ExposureMode.LOAD_BALANCER
    open_browser: bool = True

    readiness: PollSettings = Field(default_factory=PollSettings)
    load_balancer: PollSettings = Field(default_factory=PollSettings)
    reachability: RetrySettings = Field(default_factory=RetrySettings)
    port_forward_reachability: RetrySettings = Field(
        default_factory=lambda: RetrySettings(tries=5, backoff=5.0)
    )
    port_forward_settle: float = Field(default=5.0, ge=0)
    uninstall_settle: float = Field(default=30.0, ge=0)
    pod_cleanup_settle: float = Field(default=10.0, ge=0)


def load_settings(
    file_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> InstallerSettings:
    """Load installer settings from a YAML file, or return the defaults.

    Args:
        file_path: Path to the YAML file. Falls back to the
                   SHO_INSTALLER_CONFIG environment variable.
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated InstallerSettings

    Raises:
        ValidationError: If the file is missing, malformed, lacks the
                         top-level 'config' key, or fails validation

    YAML Structure Requirements:
        The YAML file must have a top-level 'config:' key containing the
        settings, e.g.::

            config:
              readiness:
                timeout: 600
              exposure: port-forward
    """
    env = os.environ if environ is None else environ
    if file_path is None and env.get(CONFIG_ENV_VAR):
        file_path = Path(env[CONFIG_ENV_VAR])
    if file_path is None:
        return InstallerSettings()

    try:
        with open(file_path) as f:
            raw: Any = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ValidationError(f"Config file not found: {file_path}") from e
    except yaml.YAMLError as e:
        raise ValidationError(f"Config file is not valid YAML: {file_path}", str(e)) from e

    if not isinstance(raw, dict) or "config" not in raw:
        raise ValidationError(
            f"Config file {file_path} is missing the top-level 'config' key"
        )

    try:
        settings = InstallerSettings.model_validate(raw["config"] or {})
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid settings in {file_path}", str(e)) from e

    logger.debug("Loaded installer settings from {}", file_path)
    return settings


# =============================================================================
# Credentials
# =============================================================================


@dataclass(frozen=True)
class RegistryCredential:
    """Credential for ``helm registry login``. Never persisted."""

    username: str
    password: str
    registry_host: str

    def __repr__(self) -> str:
        return (
            f"RegistryCredential(username={self.username!r}, password='***', "
            f"registry_host={self.registry_host!r})"
        )


@dataclass(frozen=True)
class AcrCredentials:
    """Azure Container Registry settings handed to the chart."""

    registry_url: str
    username: str
    password: str

    def __repr__(self) -> str:
        return (
            f"AcrCredentials(registry_url={self.registry_url!r}, "
            f"username={self.username!r}, password='***')"
        )


# =============================================================================
# Install Request
# =============================================================================


@dataclass(frozen=True)
class InstallRequest:
    """What the user asked for on this invocation."""

    target_version: str
    environment: Environment
    registry_mode: RegistryMode
    namespace: str
    release_name: str
    operation: Operation = Operation.INSTALL
    repository: str | None = None
    exposure: ExposureMode = ExposureMode.LOAD_BALANCER

    @property
    def wants_latest(self) -> bool:
        return self.target_version in ("", "latest")


def parse_bool_flag(value: str | bool | None, flag: str) -> bool:
    """Normalize true/false/1/0/yes/no/on/off into a bool."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValidationError(f"Invalid value for {flag}: '{value}'. Must be true or false")


E = TypeVar("E", bound=Enum)


def _parse_enum(enum_cls: type[E], value: str, label: str) -> E:
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {label}: '{value}'. Must be one of: {choices}"
        ) from None


def build_install_request(
    *,
    settings: InstallerSettings,
    version: str | None = None,
    environment: str | None = None,
    operation: str = Operation.INSTALL.value,
    use_acr: str | bool | None = None,
    repository: str | None = None,
    exposure: str | None = None,
    environ: Mapping[str, str] | None = None,
    constants: OperatorConstants = DEFAULT_CONSTANTS,
) -> InstallRequest:
    """Validate CLI input and build an immutable InstallRequest.

    Raises:
        ValidationError: On unknown environment/operation/exposure, a
                         malformed version, or missing ACR variables
    """
    env = os.environ if environ is None else environ

    parsed_env = (
        _parse_enum(Environment, environment, "environment")
        if environment
        else DEFAULT_ENVIRONMENT
    )
    parsed_operation = _parse_enum(Operation, operation, "operation")
    parsed_exposure = (
        _parse_enum(ExposureMode, exposure, "exposure mode")
        if exposure
        else settings.exposure
    )

    target_version = (version or "").strip()
    if target_version and target_version != "latest":
        if not constants.VERSION_PATTERN.match(target_version):
            raise ValidationError(
                f"Invalid version format: '{target_version}'. "
                "Expected format: x.y.z (e.g., 0.2.3)"
            )

    acr = parse_bool_flag(use_acr, "--use-acr")
    if acr and parsed_operation is Operation.INSTALL:
        missing = [var for var in ("SP_ID", "SP_SECRET", "SH_REGISTRY") if not env.get(var)]
        if missing:
            raise ValidationError(
                f"Missing required environment variables for ACR: {' '.join(missing)}",
                details="Please set the following environment variables:\n"
                + "\n".join(f"  export {var}=<value>" for var in missing),
            )

    return InstallRequest(
        target_version=target_version or "latest",
        environment=parsed_env,
        registry_mode=RegistryMode.ACR if acr else RegistryMode.PUBLIC,
        namespace=settings.namespace,
        release_name=settings.release_name,
        operation=parsed_operation,
        repository=repository or env.get("HELM_REPO_URL") or None,
        exposure=parsed_exposure,
    )


# =============================================================================
# Resolved Configuration
# =============================================================================


@dataclass(frozen=True)
class ResolvedConfig:
    """Configuration derived from an InstallRequest; read-only afterward."""

    request: InstallRequest
    chart_reference: str
    registry_host: str
    chart_repository_path: str
    image_registry: str
    image_repository: str
    credentials_namespace: str
    cluster_type: ClusterType = ClusterType.UNKNOWN
    scc_required: bool = False
    acr: AcrCredentials | None = None
    registry_credential: RegistryCredential | None = None

    @property
    def namespace(self) -> str:
        return self.request.namespace

    @property
    def release_name(self) -> str:
        return self.request.release_name

    @property
    def environment(self) -> Environment:
        return self.request.environment


def split_oci_reference(reference: str) -> tuple[str, str]:
    """Split ``oci://host/path/chart`` into (host, path/chart)."""
    bare = reference
    for scheme in ("oci://", "https://", "http://"):
        if bare.startswith(scheme):
            bare = bare[len(scheme):]
            break
    host, _, path = bare.strip("/").partition("/")
    return host, path


def identify_cluster(kubectl: KubectlCommands) -> ClusterType:
    """Guess the cluster flavour from the first node's labels."""
    labels = kubectl.first_node_labels()
    text = " ".join(f"{key}={value}" for key, value in labels.items())
    if "openshift" in text:
        return ClusterType.OPENSHIFT
    if "azure" in text:
        return ClusterType.AZURE
    if "eks.amazonaws.com" in text:
        return ClusterType.AWS
    return ClusterType.UNKNOWN


def resolve_config(
    request: InstallRequest,
    settings: InstallerSettings,
    *,
    cluster_type: ClusterType = ClusterType.UNKNOWN,
    environ: Mapping[str, str] | None = None,
    constants: OperatorConstants = DEFAULT_CONSTANTS,
) -> ResolvedConfig:
    """Derive chart and image coordinates for a request.

    The chart repository comes from ``--repository`` / HELM_REPO_URL when
    given, otherwise from the environment's public ECR alias. IMAGE_REGISTRY
    overrides the image registry.
    """
    env = os.environ if environ is None else environ
    alias = constants.ecr_alias(request.environment)
    chart = constants.HELM_CHART_NAME

    if request.repository:
        base = request.repository.rstrip("/")
        chart_reference = base if base.endswith(f"/{chart}") else f"{base}/{chart}"
        if "://" not in chart_reference:
            chart_reference = f"oci://{chart_reference}"
    else:
        chart_reference = f"oci://{constants.PUBLIC_REGISTRY}/{alias}/helm/{chart}"

    registry_host, repository_path = split_oci_reference(chart_reference)
    image_registry = env.get("IMAGE_REGISTRY") or f"{constants.PUBLIC_REGISTRY}/{alias}"

    acr = None
    if request.registry_mode is RegistryMode.ACR:
        acr = AcrCredentials(
            registry_url=env.get("SH_REGISTRY", ""),
            username=env.get("SP_ID", ""),
            password=env.get("SP_SECRET", ""),
        )

    credential = None
    if env.get("REGISTRY_USERNAME") and env.get("REGISTRY_PASSWORD"):
        credential = RegistryCredential(
            username=env["REGISTRY_USERNAME"],
            password=env["REGISTRY_PASSWORD"],
            registry_host=registry_host,
        )

    return ResolvedConfig(
        request=request,
        chart_reference=chart_reference,
        registry_host=registry_host,
        chart_repository_path=repository_path,
        image_registry=image_registry,
        image_repository=constants.IMAGE_NAME,
        credentials_namespace=settings.credentials_namespace,
        cluster_type=cluster_type,
        scc_required=cluster_type is ClusterType.OPENSHIFT,
        acr=acr,
        registry_credential=credential,
    )
