"""Deployment constants and configuration.

This module centralizes all magic strings, registry coordinates, labels and
cleanup topology used throughout the install and uninstall flows.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum


class Environment(str, Enum):
    """Release ring the operator is installed from."""

    DEV = "dev"
    TEST = "test"
    EA = "ea"
    GA = "ga"
    PROD = "prod"
    NON_PROD = "non-prod"


class Operation(str, Enum):
    INSTALL = "install"
    UNINSTALL = "uninstall"
    GET_CONSOLE_URL = "get-console-url"
    STATUS = "status"


class RegistryMode(str, Enum):
    PUBLIC = "public"
    ACR = "acr"


class ExposureMode(str, Enum):
    LOAD_BALANCER = "load-balancer"
    PORT_FORWARD = "port-forward"


class ClusterType(str, Enum):
    OPENSHIFT = "ocp"
    AZURE = "azure"
    AWS = "aws"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class OperatorConstants:
    """Constants for the Self-Hosted Operator deployment.

    This class provides a centralized location for all deployment-related
    constants, making them easy to find, update, and test.

    The uninstall namespace lists are deployment-specific facts about what
    the operator provisions. They are kept as explicit ordered tuples and
    are never inferred from the cluster.
    """

    # Kubernetes/Helm identifiers
    DEFAULT_NAMESPACE: str = "self-hosted-operator"
    CREDENTIALS_JOB_NAMESPACE: str = "self-hosted-registry-credentials-job"
    HELM_RELEASE_NAME: str = "self-hosted-operator"
    HELM_CHART_NAME: str = "self-hosted-operator"
    IMAGE_NAME: str = "self-hosted-operator"
    INSTANCE_LABEL: str = "app.kubernetes.io/instance"
    PUBLIC_SERVICE_SUFFIX: str = "-public"
    CONSOLE_PORT: int = 5050

    # Registry coordinates
    PUBLIC_REGISTRY: str = "public.ecr.aws"
    ECR_ALIASES: dict[Environment, str] = field(
        default_factory=lambda: {
            Environment.GA: "j0s5s8b0/ga",
            Environment.PROD: "j0s5s8b0/ga",
            Environment.EA: "g4u4y4x2/lab",
            Environment.TEST: "u4p0z5h7/test",
            Environment.DEV: "g4u4y4x2/lab",
            Environment.NON_PROD: "g4u4y4x2/lab",
        }
    )
    AWS_REGISTRY_USERNAME: str = "AWS"

    # Pod states that stop readiness polling early
    ERROR_POD_STATES: frozenset[str] = frozenset(
        {"Error", "Failed", "CrashLoopBackOff", "ImagePullBackOff"}
    )

    # Uninstall topology
    FINALIZER_KINDS: tuple[str, ...] = (
        "selfhostedruntimes",
        "selfhostedvaultoperators",
    )
    RUNTIME_RESOURCE_KIND: str = "selfhostedruntime"
    RUNTIME_RESOURCE_NAME: str = "self-hosted-runtime"
    VAULT_ROLE_KIND: str = "vaultroles.self-hosted-vault-operator.outsystemscloud.com"
    FLUX_RESOURCE_KINDS: str = "helmcharts,helmreleases,kustomizations,helmrepositories"
    FINALIZER_NAMESPACES: tuple[str, ...] = (
        "flux-sdlc",
        "sh-registry",
        "vault",
        "istio-system",
        "outsystems-gloo-system",
        "nats-auth",
        "nats2crd",
        "flux-system",
        "outsystems-prometheus",
        "outsystems-rbac-manager",
        "outsystems-stakater",
        "vault-operator",
        "seaweedfs",
        "authorization-services",
    )
    POD_CLEANUP_NAMESPACES: tuple[str, ...] = (
        "flux-sdlc",
        "nats-auth",
        "sh-registry",
        "seaweedfs",
        "outsystems-otel",
        "outsystems-fluentbit",
        "outsystems-prometheus",
        "nats-leaf",
        "authorization-services",
        "nats2crd",
    )

    # Validation patterns
    VERSION_PATTERN: re.Pattern[str] = re.compile(r"^[0-9]+\.[0-9]+\.[0-9]+$")
    UNAUTHORIZED_PATTERN: re.Pattern[str] = re.compile(
        r"unauthori[sz]ed|\b401\b|denied", re.IGNORECASE
    )

    def instance_selector(self, release_name: str) -> str:
        """Label selector matching the pods of a release."""
        return f"{self.INSTANCE_LABEL}={release_name}"

    def public_service_name(self, release_name: str) -> str:
        """Name of the LoadBalancer service fronting the console."""
        return f"{release_name}{self.PUBLIC_SERVICE_SUFFIX}"

    def ecr_alias(self, environment: Environment) -> str:
        return self.ECR_ALIASES[environment]


DEFAULT_CONSTANTS = OperatorConstants()
