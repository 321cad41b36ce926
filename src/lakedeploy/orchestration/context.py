"""Run-scoped state shared by the executor and the step runner."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, Optional

import structlog

from lakedeploy.logging import bind_context


class NodeState(StrEnum):
    """Lifecycle of a resource node within one run."""

    PENDING = "pending"
    APPLIED = "applied"
    NOT_APPLIED = "not_applied"


class StepState(StrEnum):
    """Lifecycle of a post-deployment step within one run."""

    PENDING = "pending"
    SKIPPED = "skipped"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class NodeRun:
    """Run-time record for one resource node."""

    state: NodeState = NodeState.PENDING
    outputs: Dict[str, Any] = field(default_factory=dict)
    reused: bool = False
    error: Optional[str] = None


@dataclass
class RunContext:
    """Accumulated outputs and state for a single deployment run."""

    deployment_name: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    outputs: Dict[str, Any] = field(default_factory=dict)
    nodes: Dict[str, NodeRun] = field(default_factory=dict)
    steps: Dict[str, StepState] = field(default_factory=dict)
    step_index: int = -1
    log: Optional[structlog.stdlib.BoundLogger] = None

    def __post_init__(self) -> None:
        if self.log is None:
            self.log = bind_context(deployment=self.deployment_name)

    def node(self, node_id: str) -> NodeRun:
        return self.nodes.setdefault(node_id, NodeRun())

    def mark_applied(self, node_id: str, outputs: Dict[str, Any], reused: bool = False) -> None:
        """Record a node as applied and publish its outputs as ``<node>.<key>``."""
        run = self.node(node_id)
        if run.state is NodeState.APPLIED:
            raise RuntimeError(f"Resource '{node_id}' was already applied in this run")
        run.state = NodeState.APPLIED
        run.outputs = dict(outputs)
        run.reused = reused
        for key, value in outputs.items():
            self.outputs[f"{node_id}.{key}"] = value

    def mark_not_applied(self, node_id: str, error: Optional[str] = None) -> None:
        run = self.node(node_id)
        if run.state is NodeState.APPLIED:
            return
        run.state = NodeState.NOT_APPLIED
        if error:
            run.error = error

    def node_states(self) -> Dict[str, str]:
        return {node_id: str(run.state) for node_id, run in self.nodes.items()}

    def step_states(self) -> Dict[str, str]:
        return {name: str(state) for name, state in self.steps.items()}
