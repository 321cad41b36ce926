"""
Resource graph models.

A DeploymentGraph is only ever constructed by the GraphBuilder, which
guarantees it is acyclic and that every dependency resolves.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterator, Mapping


@dataclass(frozen=True)
class ResourceNode:
    """A declared infrastructure unit to be created."""

    id: str
    kind: str
    params: Mapping[str, Any] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    deployment_name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
        if not self.deployment_name:
            object.__setattr__(self, "deployment_name", self.id)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "kind": self.kind,
            "deployment_name": self.deployment_name,
            "depends_on": list(self.depends_on),
        }


class DeploymentGraph:
    """Validated DAG of resource nodes in declaration order."""

    def __init__(self, nodes: list[ResourceNode], disabled: list[str] | None = None) -> None:
        self._nodes: dict[str, ResourceNode] = {n.id: n for n in nodes}
        self._order = {node_id: i for i, node_id in enumerate(self._nodes)}
        self.disabled: list[str] = list(disabled or [])

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[ResourceNode]:
        return iter(self._nodes.values())

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get(self, node_id: str) -> ResourceNode:
        return self._nodes[node_id]

    @property
    def ids(self) -> list[str]:
        return list(self._nodes)

    def linearize(self) -> list[ResourceNode]:
        """Topological order; among ready nodes the earliest declared goes first."""
        indeg = {node_id: len(set(node.depends_on)) for node_id, node in self._nodes.items()}
        children: dict[str, list[str]] = {node_id: [] for node_id in self._nodes}
        for node in self._nodes.values():
            for dep in set(node.depends_on):
                children[dep].append(node.id)

        ready = [self._order[n] for n, d in indeg.items() if d == 0]
        heapq.heapify(ready)
        ids = list(self._nodes)
        ordered: list[ResourceNode] = []

        while ready:
            node_id = ids[heapq.heappop(ready)]
            ordered.append(self._nodes[node_id])
            for child in children[node_id]:
                indeg[child] -= 1
                if indeg[child] == 0:
                    heapq.heappush(ready, self._order[child])

        return ordered

    def dependents_of(self, node_id: str) -> set[str]:
        """All nodes that depend on ``node_id``, directly or transitively."""
        found: set[str] = set()
        frontier = [node_id]
        while frontier:
            current = frontier.pop()
            for node in self._nodes.values():
                if current in node.depends_on and node.id not in found:
                    found.add(node.id)
                    frontier.append(node.id)
        return found
