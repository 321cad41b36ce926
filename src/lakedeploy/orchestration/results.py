"""Result types for deployment runs."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from lakedeploy.core.errors import LakeDeployError, format_error_message
from lakedeploy.orchestration.context import RunContext


@dataclass
class DeployResult:
    """Result of a deployment run."""

    deployment_name: str
    resources: Dict[str, str] = field(default_factory=dict)
    reused: List[str] = field(default_factory=list)
    steps: Dict[str, str] = field(default_factory=dict)
    outputs: Dict[str, Any] = field(default_factory=dict)
    duration_seconds: float = 0.0
    error: Optional[LakeDeployError] = None
    failed_at: Optional[str] = None

    @property
    def success(self) -> bool:
        """Whether every resource and step finished without a fatal error."""
        return self.error is None

    @property
    def applied_count(self) -> int:
        return sum(1 for state in self.resources.values() if state == "applied")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_name": self.deployment_name,
            "resources": self.resources,
            "reused": self.reused,
            "steps": self.steps,
            "outputs": self.outputs,
            "duration_seconds": round(self.duration_seconds, 3),
            "success": self.success,
            "error": format_error_message(self.error) if self.error else None,
            "failed_at": self.failed_at,
        }


@dataclass
class PlanResult:
    """Result of planning (dry-run) a deployment configuration."""

    deployment_name: str
    config_path: Path
    resources: List[Dict[str, Any]] = field(default_factory=list)
    disabled: List[str] = field(default_factory=list)
    steps: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Whether plan succeeded without errors."""
        return len(self.errors) == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_name": self.deployment_name,
            "config_path": str(self.config_path),
            "resources": self.resources,
            "disabled": self.disabled,
            "steps": self.steps,
            "errors": self.errors,
            "success": self.success,
        }


class ResultCollector:
    """Builds a DeployResult from a RunContext once a run ends."""

    def __init__(self, ctx: RunContext) -> None:
        self._ctx = ctx
        self._error: Optional[LakeDeployError] = None
        self._failed_at: Optional[str] = None

    def record_error(self, error: LakeDeployError, failed_at: Optional[str]) -> None:
        """Record the fatal error that ended the run."""
        self._error = error
        self._failed_at = failed_at

    def finalize(self, duration: float) -> DeployResult:
        """Return the final result with duration set."""
        ctx = self._ctx
        return DeployResult(
            deployment_name=ctx.deployment_name,
            resources=ctx.node_states(),
            reused=[node_id for node_id, run in ctx.nodes.items() if run.reused],
            steps=ctx.step_states(),
            outputs=dict(ctx.outputs),
            duration_seconds=duration,
            error=self._error,
            failed_at=self._failed_at,
        )
