"""Tests for the Azure control-plane and data-plane clients."""

import json
import subprocess

import httpx
import pytest
import respx
from httpx import Response
from lakedeploy.clients.azure import (
    AzureControlPlaneClient,
    AzureDataPlaneClient,
    classify_status,
)
from lakedeploy.clients.base import (
    ClientError,
    ControlPlaneClient,
    DataPlaneClient,
    DeploymentState,
    FailureKind,
)
from lakedeploy.config.settings import Settings
from lakedeploy.core.errors import ConfigurationError

ARM = "https://arm.test"
DEPLOYMENTS = "/subscriptions/sub-1/providers/Microsoft.Resources/deployments"


def control_client(tmp_path, **kwargs):
    return AzureControlPlaneClient(
        "sub-1",
        "arm-token",
        base_url=ARM,
        base_dir=tmp_path,
        http_client=httpx.Client(),
        sleep=lambda seconds: None,
        **kwargs,
    )


def deployment_body(state, outputs=None, error=None):
    properties = {"provisioningState": state}
    if outputs is not None:
        properties["outputs"] = {k: {"type": "String", "value": v} for k, v in outputs.items()}
    if error is not None:
        properties["error"] = {"code": "DeploymentFailed", "message": error}
    return {"name": "storage", "properties": properties}


class FakeRunner:
    """Stands in for subprocess.run when invoking sqlcmd."""

    def __init__(self, stdout="", stderr="", returncode=0, missing=False, hangs=False):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        self.missing = missing
        self.hangs = hangs
        self.calls = []
        self.timeouts = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        self.timeouts.append(kwargs.get("timeout"))
        if self.missing:
            raise FileNotFoundError(cmd[0])
        if self.hangs:
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])
        return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


SQL_TARGET = {
    "server": "syn01.sql.azuresynapse.net",
    "database": "pool01",
    "username": "sqladmin",
    "password": "s3cret",
}


@pytest.mark.parametrize(
    ("status", "kind"),
    [
        (400, FailureKind.PERMANENT),
        (403, FailureKind.PERMANENT),
        (408, FailureKind.TRANSIENT),
        (409, FailureKind.PRECONDITION),
        (423, FailureKind.PRECONDITION),
        (429, FailureKind.TRANSIENT),
        (503, FailureKind.TRANSIENT),
    ],
)
def test_classify_status(status, kind):
    assert classify_status(status) is kind


def test_clients_satisfy_protocols(tmp_path):
    assert isinstance(control_client(tmp_path), ControlPlaneClient)
    assert isinstance(AzureDataPlaneClient(http_client=httpx.Client()), DataPlaneClient)


class TestControlPlane:
    def test_create_puts_template_and_waits(self, tmp_path):
        template = {"$schema": "deploymentTemplate.json", "resources": []}
        (tmp_path / "storage.json").write_text(json.dumps(template))
        client = control_client(tmp_path)

        with respx.mock:
            put = respx.route(method="PUT", host="arm.test", path=f"{DEPLOYMENTS}/env-storage").mock(
                return_value=Response(201, json=deployment_body("Accepted"))
            )
            get = respx.route(method="GET", host="arm.test", path=f"{DEPLOYMENTS}/env-storage")
            get.side_effect = [
                Response(200, json=deployment_body("Running")),
                Response(200, json=deployment_body("Succeeded", {"datalakeName": "lake01"})),
            ]

            outputs = client.create(
                "Microsoft.Storage",
                {"template": "storage.json", "parameters": {"sku": "Standard_LRS"}},
                name="env-storage",
            )

        assert outputs == {"datalakeName": "lake01"}
        assert get.call_count == 2
        request = put.calls.last.request
        body = json.loads(request.content)
        assert body["properties"]["template"] == template
        assert body["properties"]["parameters"] == {"sku": {"value": "Standard_LRS"}}
        assert body["properties"]["mode"] == "Incremental"
        assert body["tags"] == {"lakedeploy-kind": "Microsoft.Storage"}
        assert request.headers["Authorization"] == "Bearer arm-token"
        assert request.url.params["api-version"] == "2021-04-01"

    def test_create_failed_deployment(self, tmp_path):
        client = control_client(tmp_path)

        with respx.mock:
            respx.route(method="PUT", host="arm.test").mock(return_value=Response(201, json={}))
            respx.route(method="GET", host="arm.test").mock(
                return_value=Response(200, json=deployment_body("Failed", error="InvalidTemplate"))
            )

            with pytest.raises(ClientError, match="InvalidTemplate") as exc_info:
                client.create("Microsoft.Synapse", {"template": {"resources": []}}, name="syn")

        assert exc_info.value.kind is FailureKind.PERMANENT

    def test_create_http_error_is_classified(self, tmp_path):
        client = control_client(tmp_path)

        with respx.mock:
            respx.route(method="PUT", host="arm.test").mock(
                return_value=Response(
                    409,
                    json={"error": {"code": "DeploymentActive", "message": "already running"}},
                )
            )

            with pytest.raises(ClientError, match="DeploymentActive") as exc_info:
                client.create("k", {"template": {}}, name="syn")

        assert exc_info.value.kind is FailureKind.PRECONDITION

    def test_create_timeout_while_waiting(self, tmp_path):
        client = control_client(tmp_path, deployment_timeout=0)

        with respx.mock:
            respx.route(method="PUT", host="arm.test").mock(return_value=Response(201, json={}))
            respx.route(method="GET", host="arm.test").mock(
                return_value=Response(200, json=deployment_body("Running"))
            )

            with pytest.raises(ClientError, match="did not finish") as exc_info:
                client.create("k", {"template": {}}, name="syn")

        assert exc_info.value.kind is FailureKind.TRANSIENT

    def test_missing_template_file(self, tmp_path):
        with pytest.raises(ClientError, match="Template not found"):
            control_client(tmp_path).create("k", {"template": "absent.json"}, name="x")

    def test_query_status_not_found(self, tmp_path):
        client = control_client(tmp_path)

        with respx.mock:
            respx.route(method="GET", host="arm.test").mock(
                return_value=Response(404, json={"error": {"code": "DeploymentNotFound"}})
            )

            status = client.query_status("storage")

        assert status.state is DeploymentState.NOT_FOUND

    @pytest.mark.parametrize(
        ("raw", "state"),
        [
            ("Succeeded", DeploymentState.SUCCEEDED),
            ("Failed", DeploymentState.FAILED),
            ("Canceled", DeploymentState.CANCELED),
            ("Running", DeploymentState.RUNNING),
        ],
    )
    def test_query_status_states(self, tmp_path, raw, state):
        client = control_client(tmp_path)

        with respx.mock:
            respx.route(method="GET", host="arm.test").mock(
                return_value=Response(200, json=deployment_body(raw, {"principalId": "abc"}))
            )

            status = client.query_status("identity")

        assert status.state is state
        assert status.outputs == {"principalId": "abc"}

    def test_network_error_is_transient(self, tmp_path):
        client = control_client(tmp_path)

        with respx.mock:
            respx.route(method="GET", host="arm.test").mock(
                side_effect=httpx.ConnectError("connection refused")
            )

            with pytest.raises(ClientError) as exc_info:
                client.query_status("storage")

        assert exc_info.value.kind is FailureKind.TRANSIENT

    def test_from_settings_requires_credentials(self):
        with pytest.raises(ConfigurationError, match="SUBSCRIPTION_ID"):
            AzureControlPlaneClient.from_settings(Settings(_env_file=None))


class TestDataPlaneHTTP:
    def test_execute_http_posts_body(self):
        client = AzureDataPlaneClient(http_client=httpx.Client())

        with respx.mock:
            route = respx.post("https://adb.test/api/2.0/clusters/create").mock(
                return_value=Response(200, json={"cluster_id": "0101-abc"})
            )

            result = client.execute(
                "http",
                {
                    "url": "https://adb.test/api/2.0/clusters/create",
                    "headers": {"Authorization": "Bearer dapi"},
                    "body": {"cluster_name": "etl"},
                },
            )

        assert result == {"cluster_id": "0101-abc"}
        request = route.calls.last.request
        assert json.loads(request.content) == {"cluster_name": "etl"}
        assert request.headers["Authorization"] == "Bearer dapi"

    def test_execute_http_uses_method(self):
        client = AzureDataPlaneClient(http_client=httpx.Client())

        with respx.mock:
            route = respx.put("https://syn01.dev.test/linkedservices/ls").mock(
                return_value=Response(202)
            )

            result = client.execute(
                "http", {"method": "put", "url": "https://syn01.dev.test/linkedservices/ls", "body": {}}
            )

        assert route.called
        assert result == {}

    def test_execute_http_error(self):
        client = AzureDataPlaneClient(http_client=httpx.Client())

        with respx.mock:
            respx.post("https://adb.test/api/2.0/secrets/put").mock(
                return_value=Response(
                    400,
                    json={"error_code": "INVALID_PARAMETER_VALUE", "message": "scope missing"},
                )
            )

            with pytest.raises(ClientError, match="scope missing") as exc_info:
                client.execute("http", {"url": "https://adb.test/api/2.0/secrets/put"})

        assert exc_info.value.kind is FailureKind.PERMANENT

    @pytest.mark.parametrize(
        "error",
        [
            httpx.RemoteProtocolError("Server disconnected without sending a response."),
            httpx.WriteError("Connection reset by peer"),
            httpx.ProxyError("407 Proxy Authentication Required"),
        ],
    )
    def test_dropped_connections_are_transient(self, error):
        client = AzureDataPlaneClient(http_client=httpx.Client())

        with respx.mock:
            respx.post("https://adb.test/api/2.0/clusters/create").mock(side_effect=error)

            with pytest.raises(ClientError, match="Unable to reach") as exc_info:
                client.execute("http", {"url": "https://adb.test/api/2.0/clusters/create"})

        assert exc_info.value.kind is FailureKind.TRANSIENT

    def test_url_without_scheme_is_permanent(self):
        client = AzureDataPlaneClient(http_client=httpx.Client())

        with pytest.raises(ClientError, match="Invalid URL") as exc_info:
            client.execute("http", {"url": "adb.test/api/2.0/clusters/create"})

        assert exc_info.value.kind is FailureKind.PERMANENT

    def test_check_http_not_found_is_not_done(self):
        client = AzureDataPlaneClient(http_client=httpx.Client())

        with respx.mock:
            respx.get("https://syn01.dev.test/linkedservices/ls").mock(return_value=Response(404))

            result = client.check("http", {"url": "https://syn01.dev.test/linkedservices/ls"})

        assert result.done is False

    def test_check_http_found_is_done(self):
        client = AzureDataPlaneClient(http_client=httpx.Client())

        with respx.mock:
            respx.get("https://syn01.dev.test/linkedservices/ls").mock(
                return_value=Response(200, json={"name": "ls"})
            )

            result = client.check("http", {"url": "https://syn01.dev.test/linkedservices/ls"})

        assert result.done is True
        assert result.outputs == {"name": "ls"}

    def test_unsupported_action(self):
        with pytest.raises(ClientError, match="Unsupported action"):
            AzureDataPlaneClient(http_client=httpx.Client()).execute("ftp", {})


class TestDataPlaneSQL:
    def test_execute_sql_builds_sqlcmd_invocation(self):
        runner = FakeRunner(stdout="")
        client = AzureDataPlaneClient(http_client=httpx.Client(), runner=runner, sql_timeout=45)

        result = client.execute("sql", {**SQL_TARGET, "query": "ALTER DATABASE pool01 SET RESULT_SET_CACHING ON;"})

        assert result == {"output": ""}
        cmd = runner.calls[0]
        assert cmd[0] == "sqlcmd"
        assert cmd[cmd.index("-S") + 1] == "tcp:syn01.sql.azuresynapse.net"
        assert cmd[cmd.index("-d") + 1] == "pool01"
        assert cmd[cmd.index("-l") + 1] == "45"
        assert cmd[cmd.index("-t") + 1] == "600"
        assert cmd[-1] == "ALTER DATABASE pool01 SET RESULT_SET_CACHING ON;"

    def test_execute_sql_uses_template_content(self):
        runner = FakeRunner()
        client = AzureDataPlaneClient(http_client=httpx.Client(), runner=runner)

        client.execute("sql", {**SQL_TARGET, "content": "CREATE SCHEMA raw;"})

        assert runner.calls[0][-1] == "CREATE SCHEMA raw;"

    def test_paused_pool_is_precondition(self):
        runner = FakeRunner(
            stderr="Msg 42108, Level 16: Can not connect to the SQL pool since it is paused.",
            returncode=1,
        )
        client = AzureDataPlaneClient(http_client=httpx.Client(), runner=runner)

        with pytest.raises(ClientError, match="paused") as exc_info:
            client.execute("sql", {**SQL_TARGET, "query": "SELECT 1"})

        assert exc_info.value.kind is FailureKind.PRECONDITION

    def test_login_timeout_is_transient(self):
        runner = FakeRunner(
            stderr="Sqlcmd: Error: Microsoft ODBC Driver 17 for SQL Server : Login timeout expired.",
            returncode=1,
        )
        client = AzureDataPlaneClient(http_client=httpx.Client(), runner=runner)

        with pytest.raises(ClientError) as exc_info:
            client.execute("sql", {**SQL_TARGET, "query": "SELECT 1"})

        assert exc_info.value.kind is FailureKind.TRANSIENT

    def test_other_failures_are_permanent(self):
        runner = FakeRunner(stderr="Msg 102: Incorrect syntax near 'SELEC'.", returncode=1)
        client = AzureDataPlaneClient(http_client=httpx.Client(), runner=runner)

        with pytest.raises(ClientError, match="Incorrect syntax") as exc_info:
            client.execute("sql", {**SQL_TARGET, "query": "SELEC 1"})

        assert exc_info.value.kind is FailureKind.PERMANENT

    def test_missing_sqlcmd_is_precondition(self):
        client = AzureDataPlaneClient(http_client=httpx.Client(), runner=FakeRunner(missing=True))

        with pytest.raises(ClientError) as exc_info:
            client.execute("sql", {**SQL_TARGET, "query": "SELECT 1"})

        assert exc_info.value.kind is FailureKind.PRECONDITION

    def test_every_invocation_is_time_limited(self):
        runner = FakeRunner()
        client = AzureDataPlaneClient(
            http_client=httpx.Client(), runner=runner, sql_timeout=20, sql_query_timeout=120
        )

        client.execute("sql", {**SQL_TARGET, "query": "SELECT 1"})
        client.check("sql", {**SQL_TARGET, "query": "SELECT 1"})

        assert all(cmd[cmd.index("-t") + 1] == "120" for cmd in runner.calls)
        assert runner.timeouts == [170, 170]

    def test_hung_sqlcmd_is_transient(self):
        runner = FakeRunner(hangs=True)
        client = AzureDataPlaneClient(http_client=httpx.Client(), runner=runner)

        with pytest.raises(ClientError, match="did not finish") as exc_info:
            client.execute("sql", {**SQL_TARGET, "query": "ALTER DATABASE pool01 SET RESULT_SET_CACHING ON;"})

        assert exc_info.value.kind is FailureKind.TRANSIENT

    def test_missing_connection_field(self):
        client = AzureDataPlaneClient(http_client=httpx.Client(), runner=FakeRunner())

        with pytest.raises(ClientError, match="'password'"):
            client.execute("sql", {**SQL_TARGET, "password": "", "query": "SELECT 1"})

    @pytest.mark.parametrize(
        ("stdout", "done"),
        [("1\n", True), ("syn_user\n", True), ("0\n", False), ("NULL\n", False), ("", False)],
    )
    def test_check_sql(self, stdout, done):
        runner = FakeRunner(stdout=stdout)
        client = AzureDataPlaneClient(http_client=httpx.Client(), runner=runner)

        result = client.check(
            "sql", {**SQL_TARGET, "query": "SELECT COUNT(*) FROM sys.schemas WHERE name = 'raw'"}
        )

        assert result.done is done
        assert runner.calls[0][-1].startswith("SET NOCOUNT ON;")
