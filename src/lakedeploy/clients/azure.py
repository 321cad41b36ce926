"""
Azure implementations of the control-plane and data-plane clients.

Control plane: subscription-scoped ARM template deployments over the
Resource Manager REST API. Data plane: generic REST calls (Synapse
workspace artifacts, Databricks clusters/secrets/workspace import, blob
copy) and SQL statements run through ``sqlcmd``.

Credentials are obtained outside this tool; the ARM token comes from
settings and data-plane tokens are passed in request headers.
"""

from __future__ import annotations

import json
import subprocess
import time
from pathlib import Path
from typing import Any, Callable, Dict

import httpx
import structlog

from lakedeploy.clients.base import (
    CheckResult,
    ClientError,
    DeploymentState,
    DeploymentStatus,
    FailureKind,
)
from lakedeploy.config.settings import Settings
from lakedeploy.core.errors import ConfigurationError

logger = structlog.get_logger()

PROVISIONING_STATES: Dict[str, DeploymentState] = {
    "succeeded": DeploymentState.SUCCEEDED,
    "failed": DeploymentState.FAILED,
    "canceled": DeploymentState.CANCELED,
}

# sqlcmd output fragments and how they are classified
SQL_PRECONDITION_MARKERS = ("when it is paused", "is paused", "is not currently available")
SQL_TRANSIENT_MARKERS = ("login timeout expired", "tcp provider", "timeout error")


def classify_status(status_code: int) -> FailureKind:
    """Map an HTTP error status to a failure kind."""
    if status_code in (408, 429) or status_code >= 500:
        return FailureKind.TRANSIENT
    if status_code in (409, 412, 423):
        return FailureKind.PRECONDITION
    return FailureKind.PERMANENT


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:500]}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return f"HTTP {response.status_code}: {error.get('code', '')} {error.get('message', '')}".strip()
    if isinstance(body, dict) and body.get("message"):
        return f"HTTP {response.status_code}: {body.get('error_code', '')} {body['message']}".strip()
    return f"HTTP {response.status_code}: {response.text[:500]}"


class _HTTPMixin:
    """Shared request handling with typed failure classification."""

    _http: httpx.Client

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("http_timeout", method=method, url=url, error=str(exc))
            raise ClientError(f"Timed out calling {url}: {exc}", FailureKind.TRANSIENT) from exc
        except httpx.UnsupportedProtocol as exc:
            logger.error("http_invalid_url", method=method, url=url, error=str(exc))
            raise ClientError(f"Invalid URL {url}: {exc}", FailureKind.PERMANENT) from exc
        except httpx.TransportError as exc:
            # Dropped connections and proxy failures
            logger.warning("http_network_error", method=method, url=url, error=str(exc))
            raise ClientError(f"Unable to reach {url}: {exc}", FailureKind.TRANSIENT) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error("http_request_error", method=method, url=url, error=str(exc))
            raise ClientError(f"Request to {url} failed: {exc}", FailureKind.PERMANENT) from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        kind = classify_status(response.status_code)
        logger.error(
            "http_error",
            status=response.status_code,
            url=str(response.request.url),
            kind=str(kind),
        )
        raise ClientError(_error_message(response), kind)

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {"status_code": response.status_code, "text": response.text}
        return data if isinstance(data, dict) else {"items": data}


class AzureControlPlaneClient(_HTTPMixin):
    """Subscription-scoped ARM template deployments."""

    def __init__(
        self,
        subscription_id: str,
        token: str,
        *,
        base_url: str = "https://management.azure.com",
        api_version: str = "2021-04-01",
        location: str = "eastus",
        timeout: float = 60.0,
        poll_interval: float = 10.0,
        deployment_timeout: float = 3600.0,
        base_dir: Path | None = None,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._subscription_id = subscription_id
        self._base_url = base_url.rstrip("/")
        self._api_version = api_version
        self._location = location
        self._poll_interval = poll_interval
        self._deployment_timeout = deployment_timeout
        self._base_dir = base_dir or Path(".")
        self._sleep = sleep
        self._http = http_client or httpx.Client(timeout=timeout)
        self._http.headers.update(
            {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        )

    @classmethod
    def from_settings(cls, settings: Settings, base_dir: Path | None = None) -> AzureControlPlaneClient:
        if not settings.subscription_id or not settings.arm_token:
            raise ConfigurationError(
                "LAKEDEPLOY_SUBSCRIPTION_ID and LAKEDEPLOY_ARM_TOKEN must be set to deploy"
            )
        return cls(
            settings.subscription_id,
            settings.arm_token,
            base_url=settings.arm_base_url,
            api_version=settings.arm_api_version,
            location=settings.location,
            timeout=settings.http_timeout,
            poll_interval=settings.deployment_poll_interval,
            deployment_timeout=settings.deployment_timeout,
            base_dir=base_dir,
        )

    def _deployment_url(self, name: str) -> str:
        return (
            f"{self._base_url}/subscriptions/{self._subscription_id}"
            f"/providers/Microsoft.Resources/deployments/{name}"
        )

    def _load_template(self, template: Any) -> Dict[str, Any]:
        if isinstance(template, dict):
            return template
        if not isinstance(template, str):
            raise ClientError("Resource params must include a 'template' path or object")
        path = Path(template)
        if not path.is_absolute():
            path = self._base_dir / path
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ClientError(f"Template not found: {path}") from exc
        except ValueError as exc:
            raise ClientError(f"Template is not valid JSON: {path}: {exc}") from exc

    def create(self, kind: str, params: Dict[str, Any], *, name: str) -> Dict[str, Any]:
        """Start an ARM deployment and wait for it to reach a terminal state."""
        template = self._load_template(params.get("template"))
        parameters = {k: {"value": v} for k, v in (params.get("parameters") or {}).items()}
        body = {
            "location": params.get("location", self._location),
            "tags": {"lakedeploy-kind": kind},
            "properties": {
                "mode": "Incremental",
                "template": template,
                "parameters": parameters,
            },
        }

        logger.info("arm_deployment_started", deployment=name, kind=kind)
        response = self._send(
            "PUT", self._deployment_url(name), params={"api-version": self._api_version}, json=body
        )
        self._raise_for_status(response)

        status = self._wait(name)
        if status.state is DeploymentState.SUCCEEDED:
            return status.outputs
        raise ClientError(
            f"Deployment '{name}' ended in state {status.state}: {status.error or 'no details'}"
        )

    def _wait(self, name: str) -> DeploymentStatus:
        deadline = time.monotonic() + self._deployment_timeout
        while True:
            status = self.query_status(name)
            if status.state.is_terminal:
                return status
            if time.monotonic() >= deadline:
                raise ClientError(
                    f"Deployment '{name}' did not finish within {self._deployment_timeout:.0f}s",
                    FailureKind.TRANSIENT,
                )
            self._sleep(self._poll_interval)

    def query_status(self, name: str) -> DeploymentStatus:
        response = self._send(
            "GET", self._deployment_url(name), params={"api-version": self._api_version}
        )
        if response.status_code == 404:
            return DeploymentStatus(state=DeploymentState.NOT_FOUND)
        self._raise_for_status(response)

        properties = self._json(response).get("properties", {})
        raw_state = str(properties.get("provisioningState", "")).lower()
        state = PROVISIONING_STATES.get(raw_state, DeploymentState.RUNNING)
        outputs = {
            key: value.get("value") if isinstance(value, dict) else value
            for key, value in (properties.get("outputs") or {}).items()
        }
        error = (properties.get("error") or {}).get("message")
        return DeploymentStatus(state=state, outputs=outputs, error=error)


class AzureDataPlaneClient(_HTTPMixin):
    """REST and SQL actions against deployed services."""

    # Dispatch tables mapping action/check types to handler methods
    ACTIONS: Dict[str, str] = {
        "http": "_execute_http",
        "sql": "_execute_sql",
    }
    CHECKS: Dict[str, str] = {
        "http": "_check_http",
        "sql": "_check_sql",
    }

    def __init__(
        self,
        *,
        timeout: float = 60.0,
        sqlcmd_path: str = "sqlcmd",
        sql_timeout: int = 30,
        sql_query_timeout: int = 600,
        http_client: httpx.Client | None = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        self._http = http_client or httpx.Client(timeout=timeout)
        self._sqlcmd_path = sqlcmd_path
        self._sql_timeout = sql_timeout
        self._sql_query_timeout = sql_query_timeout
        self._run = runner

    @classmethod
    def from_settings(cls, settings: Settings) -> AzureDataPlaneClient:
        return cls(
            timeout=settings.http_timeout,
            sqlcmd_path=settings.sqlcmd_path,
            sql_timeout=settings.sql_timeout,
            sql_query_timeout=settings.sql_query_timeout,
        )

    def execute(self, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        method_name = self.ACTIONS.get(action)
        if method_name is None:
            raise ClientError(f"Unsupported action type: {action}")
        return getattr(self, method_name)(payload)

    def check(self, check_type: str, params: Dict[str, Any]) -> CheckResult:
        method_name = self.CHECKS.get(check_type)
        if method_name is None:
            raise ClientError(f"Unsupported check type: {check_type}")
        return getattr(self, method_name)(params)

    # === HTTP ===

    def _execute_http(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = payload.get("url")
        if not url:
            raise ClientError("http action requires a 'url'")
        method = str(payload.get("method", "POST")).upper()
        kwargs: Dict[str, Any] = {"headers": payload.get("headers") or {}}
        if "body" in payload:
            kwargs["json"] = payload["body"]
        elif "content" in payload:
            kwargs["content"] = payload["content"]
        if payload.get("params"):
            kwargs["params"] = payload["params"]

        response = self._send(method, url, **kwargs)
        self._raise_for_status(response)
        return self._json(response)

    def _check_http(self, params: Dict[str, Any]) -> CheckResult:
        url = params.get("url")
        if not url:
            raise ClientError("http check requires a 'url'")
        response = self._send(
            str(params.get("method", "GET")).upper(),
            url,
            headers=params.get("headers") or {},
            params=params.get("params"),
        )
        if response.status_code == 404:
            return CheckResult(done=False)
        self._raise_for_status(response)
        return CheckResult(done=True, outputs=self._json(response))

    # === SQL ===

    def _sqlcmd(self, payload: Dict[str, Any], query: str) -> str:
        for required in ("server", "database", "username", "password"):
            if not payload.get(required):
                raise ClientError(f"sql action requires '{required}'")

        cmd = [
            self._sqlcmd_path,
            "-S", f"tcp:{payload['server']}",
            "-d", str(payload["database"]),
            "-U", str(payload["username"]),
            "-P", str(payload["password"]),
            "-l", str(self._sql_timeout),
            "-t", str(self._sql_query_timeout),
            "-I", "-b", "-h", "-1", "-W",
            "-Q", query,
        ]
        # sqlcmd enforces both timeouts itself; the outer limit catches a hung process
        limit = self._sql_timeout + self._sql_query_timeout + 30
        try:
            proc = self._run(cmd, capture_output=True, text=True, timeout=limit)
        except FileNotFoundError as exc:
            raise ClientError(
                f"sqlcmd not found at '{self._sqlcmd_path}'", FailureKind.PRECONDITION
            ) from exc
        except subprocess.TimeoutExpired as exc:
            logger.warning("sqlcmd_timeout", server=payload["server"], timeout=limit)
            raise ClientError(
                f"sqlcmd against '{payload['server']}' did not finish within {limit}s",
                FailureKind.TRANSIENT,
            ) from exc

        output = f"{proc.stdout or ''}{proc.stderr or ''}"
        lowered = output.lower()
        if any(marker in lowered for marker in SQL_PRECONDITION_MARKERS):
            raise ClientError(
                f"SQL pool '{payload['database']}' is paused; resume it and run again",
                FailureKind.PRECONDITION,
            )
        if any(marker in lowered for marker in SQL_TRANSIENT_MARKERS):
            raise ClientError(
                f"Unable to connect to '{payload['server']}': login timeout expired",
                FailureKind.TRANSIENT,
            )
        if proc.returncode != 0:
            raise ClientError(f"sqlcmd exited with {proc.returncode}: {output.strip()[-500:]}")
        return (proc.stdout or "").strip()

    def _execute_sql(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        query = payload.get("query") or payload.get("content")
        if not query:
            raise ClientError("sql action requires a 'query' or a .sql template")
        return {"output": self._sqlcmd(payload, str(query))}

    def _check_sql(self, params: Dict[str, Any]) -> CheckResult:
        query = params.get("query")
        if not query:
            raise ClientError("sql check requires a 'query'")
        output = self._sqlcmd(params, f"SET NOCOUNT ON; {query}")
        first = output.splitlines()[0].strip() if output else ""
        done = first not in ("", "0", "NULL")
        return CheckResult(done=done, outputs={"value": first} if done else {})
