"""Control-plane and data-plane clients."""

from lakedeploy.clients.azure import AzureControlPlaneClient, AzureDataPlaneClient
from lakedeploy.clients.base import (
    CheckResult,
    ClientError,
    ControlPlaneClient,
    DataPlaneClient,
    DeploymentState,
    DeploymentStatus,
    FailureKind,
)

__all__ = [
    "AzureControlPlaneClient",
    "AzureDataPlaneClient",
    "CheckResult",
    "ClientError",
    "ControlPlaneClient",
    "DataPlaneClient",
    "DeploymentState",
    "DeploymentStatus",
    "FailureKind",
]
