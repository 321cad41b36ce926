"""Builds a validated DeploymentGraph from configuration."""

from __future__ import annotations

from typing import Dict, List

import structlog

from lakedeploy.config.models import DeploymentConfig, ResourceSpec
from lakedeploy.core.errors import ConfigurationError, CycleDetected, UnresolvedDependency
from lakedeploy.graph.models import DeploymentGraph, ResourceNode

logger = structlog.get_logger()


class GraphBuilder:
    """Turns resource declarations into a validated DAG.

    Disabled resources are left out of the graph; an enabled resource that
    depends on a disabled one is rejected. The builder has no side effects
    and never returns a partial graph.
    """

    def build(self, config: DeploymentConfig) -> DeploymentGraph:
        return self.build_from_specs(config.resources)

    def build_from_specs(self, specs: List[ResourceSpec]) -> DeploymentGraph:
        seen: set[str] = set()
        for spec in specs:
            if spec.id in seen:
                raise ConfigurationError(
                    f"Duplicate resource id: {spec.id}", {"node": spec.id}
                )
            seen.add(spec.id)

        disabled = {s.id for s in specs if not s.enabled}
        enabled = [s for s in specs if s.enabled]
        enabled_ids = {s.id for s in enabled}

        for spec in enabled:
            for dep in spec.depends_on:
                if dep in disabled:
                    raise UnresolvedDependency(spec.id, dep, reason="disabled")
                if dep not in enabled_ids:
                    raise UnresolvedDependency(spec.id, dep)

        deps: Dict[str, List[str]] = {s.id: list(dict.fromkeys(s.depends_on)) for s in enabled}
        self._check_cycles(deps)

        nodes = [
            ResourceNode(
                id=s.id,
                kind=s.kind,
                params=s.params,
                depends_on=tuple(deps[s.id]),
                deployment_name=s.deployment_name or s.id,
            )
            for s in enabled
        ]
        if disabled:
            logger.info("resources_disabled", resources=sorted(disabled))
        return DeploymentGraph(nodes, disabled=[s.id for s in specs if not s.enabled])

    @staticmethod
    def _check_cycles(deps: Dict[str, List[str]]) -> None:
        """Depth-first walk; reaching a node still on the current path is a cycle."""
        done: set[str] = set()
        path: List[str] = []
        on_path: set[str] = set()

        def visit(node_id: str) -> None:
            path.append(node_id)
            on_path.add(node_id)
            for dep in deps[node_id]:
                if dep in on_path:
                    cycle = path[path.index(dep):] + [dep]
                    raise CycleDetected(dep, cycle)
                if dep not in done:
                    visit(dep)
            on_path.discard(node_id)
            path.pop()
            done.add(node_id)

        for node_id in deps:
            if node_id not in done:
                visit(node_id)


def build_graph(config: DeploymentConfig) -> DeploymentGraph:
    """Convenience wrapper around GraphBuilder."""
    return GraphBuilder().build(config)
