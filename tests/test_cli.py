"""Tests for azlab/cli.py"""

import json
import textwrap

import pytest
from click.testing import CliRunner

from azlab import __version__
from azlab.cli import cli

ARM = "https://management.azure.com"
SUB = "00000000-0000-0000-0000-000000000001"
RGS = f"{ARM}/subscriptions/{SUB}/resourcegroups"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("AZURE_SUBSCRIPTION_ID", "AZURE_TENANT_ID", "AZURE_ACCESS_TOKEN",
                "AZURE_GRAPH_TOKEN"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config_file(tmp_path):
    p = tmp_path / "azlab-config.yaml"
    p.write_text(textwrap.dedent(f"""\
        azure:
          subscription_id: "{SUB}"
          token: "arm-token"
        defaults:
          location: "eastus"
          tags:
            purpose: "cert-practice"
          required_tags: ["purpose", "owner"]
          poll_interval: 0
          operation_timeout: 5
        """), encoding="utf-8")
    return str(p)


def _group(name: str) -> dict:
    return {"id": f"/subscriptions/{SUB}/resourceGroups/{name}", "name": name,
            "location": "eastus", "tags": {"purpose": "cert-practice"},
            "properties": {"provisioningState": "Succeeded"}}


def run(*args, input=None):
    return CliRunner().invoke(cli, list(args), input=input)


# ---------------------------------------------------------------------------
# init / version
# ---------------------------------------------------------------------------

def test_version():
    result = run("--version")
    assert result.exit_code == 0
    assert __version__ in result.output


def test_init_writes_template(tmp_path):
    out = tmp_path / "azlab-config.yaml"
    result = run("init", "--output", str(out))
    assert result.exit_code == 0
    assert "Template written" in result.output
    assert "subscription_id" in out.read_text()


def test_init_refuses_to_overwrite(tmp_path):
    out = tmp_path / "azlab-config.yaml"
    out.write_text("keep me")
    result = run("init", "--output", str(out))
    assert result.exit_code == 1
    assert "already exists" in result.output
    assert out.read_text() == "keep me"


# ---------------------------------------------------------------------------
# configuration errors
# ---------------------------------------------------------------------------

def test_missing_config_file(tmp_path):
    result = run("--config", str(tmp_path / "none.yaml"), "rg", "list")
    assert result.exit_code == 1
    assert "Configuration error" in result.output


def test_graph_command_without_graph_token(config_file, requests_mock):
    result = run("--config", config_file, "user", "list")
    assert result.exit_code == 1
    assert "Graph token is required" in result.output
    assert requests_mock.call_count == 0


# ---------------------------------------------------------------------------
# rg
# ---------------------------------------------------------------------------

def test_rg_list_to_file(config_file, requests_mock, tmp_path):
    requests_mock.get(RGS, json={"value": [_group("lab-one"), _group("prod")]})
    out = tmp_path / "groups.json"
    result = run("--config", config_file, "--output", str(out), "rg", "list", "--prefix", "lab")
    assert result.exit_code == 0
    groups = json.loads(out.read_text())
    assert [g["name"] for g in groups] == ["lab-one"]


def test_env_token_is_sent(config_file, requests_mock, monkeypatch):
    monkeypatch.setenv("AZURE_ACCESS_TOKEN", "env-token")
    requests_mock.get(RGS, json={"value": []})
    result = run("--config", config_file, "rg", "list")
    assert result.exit_code == 0
    assert requests_mock.last_request.headers["Authorization"] == "Bearer env-token"


def test_rg_create_merges_default_tags(config_file, requests_mock):
    requests_mock.get(f"{RGS}/lab-new", status_code=404)
    requests_mock.put(f"{RGS}/lab-new", json=_group("lab-new"))
    result = run("--config", config_file, "rg", "create", "lab-new", "--tag", "owner=alice")
    assert result.exit_code == 0
    assert requests_mock.last_request.json()["tags"] == {"purpose": "cert-practice",
                                                        "owner": "alice"}


def test_rg_delete_aborts_without_confirmation(config_file, requests_mock):
    result = run("--config", config_file, "rg", "delete", "lab-one", input="n\n")
    assert result.exit_code == 1
    assert "Aborted" in result.output
    assert not any(r.method == "DELETE" for r in requests_mock.request_history)


def test_rg_delete_with_yes(config_file, requests_mock, tmp_path):
    requests_mock.delete(f"{RGS}/lab-one", status_code=202,
                         headers={"Location": f"{ARM}/subscriptions/{SUB}/operationresults/x"})
    out = tmp_path / "deleted.json"
    result = run("--config", config_file, "--yes", "--output", str(out),
                 "rg", "delete", "lab-one", "--no-wait")
    assert result.exit_code == 0
    assert json.loads(out.read_text()) == [{"name": "lab-one", "status": "Submitted"}]


def test_rg_delete_failure_exits_nonzero(config_file, requests_mock):
    requests_mock.delete(f"{RGS}/locked", status_code=409,
                         json={"error": {"code": "ScopeLocked", "message": "locked"}})
    result = run("--config", config_file, "-y", "rg", "delete", "locked")
    assert result.exit_code == 1


def test_rg_delete_nothing_to_do(config_file, requests_mock):
    requests_mock.get(RGS, json={"value": []})
    result = run("--config", config_file, "-y", "rg", "delete", "--prefix", "lab")
    assert result.exit_code == 0
    assert "No resource groups to delete" in result.output


# ---------------------------------------------------------------------------
# error mapping
# ---------------------------------------------------------------------------

def test_authorization_error_message(config_file, requests_mock):
    requests_mock.get(RGS, status_code=403,
                      json={"error": {"code": "AuthorizationFailed", "message": "no access"}})
    result = run("--config", config_file, "rg", "list")
    assert result.exit_code == 1
    assert "Authorization error" in result.output


def test_invalid_tag_is_input_error(config_file, requests_mock):
    result = run("--config", config_file, "tag", "apply",
                 f"/subscriptions/{SUB}/resourceGroups/lab-one", "--tag", "no-equals")
    assert result.exit_code == 1
    assert "Input error" in result.output
    assert requests_mock.call_count == 0


# ---------------------------------------------------------------------------
# reports
# ---------------------------------------------------------------------------

def test_inventory_report_csv(config_file, requests_mock, tmp_path):
    requests_mock.get(f"{ARM}/subscriptions/{SUB}/resources", json={"value": [{
        "id": f"/subscriptions/{SUB}/resourceGroups/lab-one/providers/Microsoft.Storage/storageAccounts/labsa",
        "name": "labsa", "type": "Microsoft.Storage/storageAccounts", "location": "eastus",
        "tags": {"purpose": "cert-practice"},
    }]})
    out = tmp_path / "inventory.csv"
    result = run("--config", config_file, "--format", "csv", "--output", str(out),
                 "report", "inventory")
    assert result.exit_code == 0
    lines = out.read_text().splitlines()
    assert lines[0] == "name,type,resource_group,location,missing_tags"
    assert lines[1] == 'labsa,Microsoft.Storage/storageAccounts,lab-one,eastus,"[""owner""]"'


def test_rbac_report_without_graph_token(config_file, requests_mock, tmp_path):
    auth = f"{ARM}/subscriptions/{SUB}/providers/Microsoft.Authorization"
    requests_mock.get(f"{auth}/roleAssignments", json={"value": []})
    requests_mock.get(f"{auth}/roleDefinitions", json={"value": []})
    out = tmp_path / "rbac.json"
    result = run("--config", config_file, "--output", str(out), "report", "rbac")
    assert result.exit_code == 0
    report = json.loads(out.read_text())
    assert report["report_type"] == "rbac_audit"
    assert report["summary"]["orphaned"] is None
