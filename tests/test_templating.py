"""Tests for placeholder substitution."""

import json

import pytest
from lakedeploy.core.errors import TemplatingError
from lakedeploy.templating import (
    build_context,
    find_placeholders,
    render,
    render_file,
    render_text,
)


class TestRender:
    def test_substitutes_inside_strings(self):
        context = {"workspace.workspaceName": "syn01"}

        assert render_text("https://${workspace.workspaceName}.dev.azuresynapse.net", context) == (
            "https://syn01.dev.azuresynapse.net"
        )

    def test_whole_placeholder_keeps_type(self):
        context = {"cluster.workers": 2, "cluster.tags": ["a", "b"]}

        assert render({"num_workers": "${cluster.workers}"}, context) == {"num_workers": 2}
        assert render("${cluster.tags}", context) == ["a", "b"]

    def test_renders_nested_structures(self):
        context = {"storage.name": "lake01"}
        value = {"linked": [{"url": "https://${storage.name}.dfs.core.windows.net"}], "retries": 3}

        assert render(value, context) == {
            "linked": [{"url": "https://lake01.dfs.core.windows.net"}],
            "retries": 3,
        }

    def test_missing_placeholder_is_an_error(self):
        with pytest.raises(TemplatingError) as exc_info:
            render({"url": "https://${workspace.name}"}, {}, where="step 'x' payload")

        assert exc_info.value.placeholder == "workspace.name"
        assert exc_info.value.where == "step 'x' payload"
        assert "${workspace.name}" in exc_info.value.message

    def test_none_value_is_an_error(self):
        with pytest.raises(TemplatingError):
            render("${databricks.clusterId}", {"databricks.clusterId": None})

    def test_text_without_placeholders_unchanged(self):
        assert render_text("SELECT 1; -- $notaplaceholder", {}) == "SELECT 1; -- $notaplaceholder"


class TestBuildContext:
    def test_namespaces(self):
        context = build_context(
            {"storage.id": "/s/1"},
            parameters={"region": "eastus"},
            extra={"artifact": "YWJj"},
            environ={"DATABRICKS_TOKEN": "dapi"},
        )

        assert context["storage.id"] == "/s/1"
        assert context["params.region"] == "eastus"
        assert context["env.DATABRICKS_TOKEN"] == "dapi"
        assert context["artifact"] == "YWJj"

    def test_outputs_override_environment(self):
        context = build_context({"env.X": "from-output"}, environ={"X": "from-env"})

        assert context["env.X"] == "from-output"


class TestRenderFile:
    def test_json_template_rendered_structurally(self, tmp_path):
        path = tmp_path / "cluster.json"
        path.write_text(json.dumps({"cluster_name": "${params.cluster}", "num_workers": "${params.workers}"}))

        result = render_file(path, {"params.cluster": "etl", "params.workers": 4})

        assert result == {"cluster_name": "etl", "num_workers": 4}

    def test_sql_template_rendered_as_text(self, tmp_path):
        path = tmp_path / "cache.sql"
        path.write_text("ALTER DATABASE ${workspace.pool} SET RESULT_SET_CACHING ON;")

        assert render_file(path, {"workspace.pool": "pool01"}) == (
            "ALTER DATABASE pool01 SET RESULT_SET_CACHING ON;"
        )

    def test_missing_placeholder_names_file(self, tmp_path):
        path = tmp_path / "secret.json"
        path.write_text('{"scope": "${databricks.scope}"}')

        with pytest.raises(TemplatingError) as exc_info:
            render_file(path, {})

        assert exc_info.value.where == str(path)


def test_find_placeholders():
    value = {
        "url": "https://${workspace.name}.net/${params.path}",
        "body": ["${workspace.name}", {"id": "${databricks.clusterId}"}],
    }

    assert find_placeholders(value) == ["databricks.clusterId", "params.path", "workspace.name"]
