"""Deployment module for the Self-Hosted Operator.

The package is organized into subpackages for modularity:
- shell_commands: Abstractions for helm, kubectl and aws subprocesses
- operator_deployer: Components for installing and removing the operator

OperatorDeployer follows the BaseDeployer interface.
"""

from .errors import DeploymentError
from .operator_deployer import OperatorDeployer

__all__ = ["OperatorDeployer", "DeploymentError"]
