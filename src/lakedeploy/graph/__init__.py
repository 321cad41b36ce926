"""Resource dependency graph."""

from lakedeploy.graph.builder import GraphBuilder, build_graph
from lakedeploy.graph.models import DeploymentGraph, ResourceNode

__all__ = ["DeploymentGraph", "GraphBuilder", "ResourceNode", "build_graph"]
