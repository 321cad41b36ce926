"""Root test configuration and shared fakes."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest
import structlog
import yaml
from lakedeploy.clients.base import (
    CheckResult,
    ClientError,
    DeploymentState,
    DeploymentStatus,
)


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class FakeControlPlane:
    """In-memory control plane recording every call."""

    def __init__(
        self,
        outputs: Dict[str, Dict[str, Any]] | None = None,
        statuses: Dict[str, DeploymentStatus] | None = None,
        failures: Dict[str, ClientError] | None = None,
    ) -> None:
        self.outputs = outputs or {}
        self.statuses = statuses or {}
        self.failures = failures or {}
        self.created: List[Tuple[str, str, Dict[str, Any]]] = []
        self.queried: List[str] = []

    def create(self, kind: str, params: Dict[str, Any], *, name: str) -> Dict[str, Any]:
        self.created.append((kind, name, params))
        if name in self.failures:
            raise self.failures[name]
        return dict(self.outputs.get(name, {"id": f"/deployments/{name}"}))

    def query_status(self, name: str) -> DeploymentStatus:
        self.queried.append(name)
        return self.statuses.get(name, DeploymentStatus(state=DeploymentState.NOT_FOUND))

    @property
    def created_names(self) -> List[str]:
        return [name for _kind, name, _params in self.created]


class FakeDataPlane:
    """In-memory data plane keyed by each payload's ``target``."""

    def __init__(
        self,
        responses: Dict[str, Any] | None = None,
        done: Dict[str, Dict[str, Any]] | None = None,
    ) -> None:
        self.responses = responses or {}
        self.done = done or {}
        self.executed: List[Tuple[str, Dict[str, Any]]] = []
        self.checked: List[Tuple[str, Dict[str, Any]]] = []

    def execute(self, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.executed.append((action, payload))
        response = self.responses.get(payload.get("target"), {})
        if isinstance(response, ClientError):
            raise response
        return dict(response)

    def check(self, check_type: str, params: Dict[str, Any]) -> CheckResult:
        self.checked.append((check_type, params))
        target = params.get("target")
        if target in self.done:
            return CheckResult(done=True, outputs=dict(self.done[target]))
        return CheckResult(done=False)

    @property
    def executed_targets(self) -> List[str]:
        return [payload.get("target") for _action, payload in self.executed]


@pytest.fixture
def control():
    return FakeControlPlane()


@pytest.fixture
def data_plane():
    return FakeDataPlane()


@pytest.fixture
def write_config(tmp_path):
    """Write a deployment configuration mapping to a YAML file."""

    def _write(data: Dict[str, Any], name: str = "deployment.yaml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data, sort_keys=False))
        return path

    return _write


@pytest.fixture
def analytics_config():
    """The storage -> identity -> workspace environment with two steps."""
    return {
        "name": "analytics",
        "parameters": {"region": "eastus"},
        "resources": [
            {
                "id": "storage",
                "kind": "Microsoft.Storage",
                "params": {"location": "${params.region}"},
            },
            {
                "id": "identity",
                "kind": "Microsoft.ManagedIdentity",
                "dependsOn": ["storage"],
                "params": {"storageId": "${storage.id}"},
            },
            {
                "id": "workspace",
                "kind": "Microsoft.Synapse",
                "dependsOn": ["storage", "identity"],
                "params": {"lake": "${storage.datalakeName}"},
            },
        ],
        "postSteps": [
            {
                "name": "Enable result set caching",
                "action": "sql",
                "requires": ["workspace.sqlPoolName"],
                "payload": {
                    "target": "cache",
                    "query": "ALTER DATABASE ${workspace.sqlPoolName} SET RESULT_SET_CACHING ON;",
                },
            },
            {
                "name": "Create cluster",
                "action": "http",
                "payload": {"target": "cluster", "url": "https://adb.example/api/2.0/clusters/create"},
                "produces": {"databricks.clusterId": "cluster_id"},
            },
        ],
    }


@pytest.fixture
def analytics_outputs():
    return {
        "storage": {"id": "/storage/1", "datalakeName": "lake01"},
        "identity": {"principalId": "abc-123"},
        "workspace": {"workspaceName": "syn01", "sqlPoolName": "pool01"},
    }
