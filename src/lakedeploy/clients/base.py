"""Client protocols for the control plane and data plane.

The deployment core only talks to the cloud through these interfaces.
Implementations report failures as ClientError with a classified kind so
the core never has to inspect raw command output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, Protocol, runtime_checkable


class DeploymentState(StrEnum):
    """Control-plane deployment states."""

    NOT_FOUND = "not_found"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentState.SUCCEEDED, DeploymentState.FAILED, DeploymentState.CANCELED)


class FailureKind(StrEnum):
    """Classification attached to every client failure."""

    PRECONDITION = "precondition"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class ClientError(Exception):
    """A control-plane or data-plane call failed."""

    def __init__(self, message: str, kind: FailureKind = FailureKind.PERMANENT):
        super().__init__(message)
        self.message = message
        self.kind = kind


@dataclass
class DeploymentStatus:
    """Result of querying a deployment by name."""

    state: DeploymentState
    outputs: Dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass
class CheckResult:
    """Result of an idempotency check."""

    done: bool
    outputs: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class ControlPlaneClient(Protocol):
    """Creates resources and reports deployment status."""

    def create(self, kind: str, params: Dict[str, Any], *, name: str) -> Dict[str, Any]:
        """Create (deploy) a resource and return its outputs."""
        ...

    def query_status(self, name: str) -> DeploymentStatus:
        """Return the state of a deployment by name."""
        ...


@runtime_checkable
class DataPlaneClient(Protocol):
    """Runs post-deployment actions against running services."""

    def execute(self, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Invoke an action and return its response."""
        ...

    def check(self, check_type: str, params: Dict[str, Any]) -> CheckResult:
        """Report whether an action's effect is already present."""
        ...
