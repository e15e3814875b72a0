"""Operator deployer package for the Self-Hosted Operator.

This package splits the install/uninstall workflow into components, each
concern in its own module:

- config: installer settings, install requests and resolved configuration
- dependencies: tool detection and installation, cluster connectivity
- platform: OS-specific install strategies, browser and process handling
- registry: latest version lookup and Helm registry login
- helm_release: namespace preparation and helm upgrade --install
- readiness: pod readiness polling
- exposer: LoadBalancer / port-forward console exposure
- cleanup: uninstall and finalizer cleanup

The OperatorDeployer class in deployer.py orchestrates these components.

Usage:
    from sho_installer.cli.deployment.operator_deployer import OperatorDeployer

    deployer = OperatorDeployer(console, Path.cwd())
    deployer.deploy(request)
"""

from .cleanup import Uninstaller, UninstallOutcome
from .config import (
    InstallerSettings,
    InstallRequest,
    ResolvedConfig,
    build_install_request,
    load_settings,
    resolve_config,
)
from .constants import (
    DEFAULT_CONSTANTS,
    ClusterType,
    Environment,
    ExposureMode,
    Operation,
    OperatorConstants,
    RegistryMode,
)
from .dependencies import DependencyReport, DependencyResolver
from .deployer import DeployResult, OperatorDeployer, RunOutcome
from .exposer import Endpoint, LoadBalancerExposer, PortForwardExposer
from .helm_release import ReleaseInstaller
from .polling import CancellationToken, SystemClock, cancel_on_interrupt
from .readiness import ReadinessPoller, ReadinessState
from .registry import RegistryClient, select_latest_version

__all__ = [
    "OperatorDeployer",
    "DeployResult",
    "RunOutcome",
    # Configuration
    "InstallerSettings",
    "InstallRequest",
    "ResolvedConfig",
    "build_install_request",
    "load_settings",
    "resolve_config",
    "DEFAULT_CONSTANTS",
    "OperatorConstants",
    "ClusterType",
    "Environment",
    "ExposureMode",
    "Operation",
    "RegistryMode",
    # Component classes for testing/extension
    "DependencyResolver",
    "DependencyReport",
    "RegistryClient",
    "select_latest_version",
    "ReleaseInstaller",
    "ReadinessPoller",
    "ReadinessState",
    "Endpoint",
    "LoadBalancerExposer",
    "PortForwardExposer",
    "Uninstaller",
    "UninstallOutcome",
    "CancellationToken",
    "SystemClock",
    "cancel_on_interrupt",
]
