from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from otelgw.cli import cli
from otelgw.cli.common.context import AppContext
from otelgw.core.adapters.process import CommandResult
from otelgw.core.errors import CommandError
from otelgw.core.settings import KeyVaultSettings, ProjectSettings
from otelgw.core.tables import OTEL_TABLE_COLUMNS, declared_table_name

runner = CliRunner()

_ENV = {"AZURE_SUBSCRIPTION_ID": "sub-env", "AZURE_TENANT_ID": "tenant-env"}


class _Azure:
    def __init__(
        self,
        secrets: dict[str, str] | None = None,
        *,
        state: str = "Succeeded",
        capacities: list[str] | None = None,
        fail_sends: bool = False,
    ):
        self.calls: list[str] = []
        self.secrets = dict(secrets or {})
        self.state = state
        self.capacities = ["fabriccapotel"] if capacities is None else capacities
        self.fail_sends = fail_sends
        self.events: list[dict[str, Any]] = []

    def with_env(self, env: dict[str, str]) -> "_Azure":
        self.calls.append("with_env")
        return self

    def account(self) -> CommandResult:
        self.calls.append("account")
        return CommandResult(["az"], 0, json.dumps({"id": "sub"}), "")

    def set_subscription(self, subscription_id: str) -> None:
        self.calls.append(f"set_subscription:{subscription_id}")

    def list_key_vaults(self) -> list[str]:
        self.calls.append("list_key_vaults")
        return []

    def list_secret_names(self, vault: str) -> list[str]:
        self.calls.append(f"list_secret_names:{vault}")
        return list(self.secrets)

    def get_secret(self, vault: str, name: str) -> str | None:
        self.calls.append(f"get_secret:{vault}:{name}")
        return self.secrets.get(name)

    def set_secret(self, vault: str, name: str, value: str) -> None:
        self.calls.append(f"set_secret:{vault}:{name}")
        self.secrets[name] = value

    def user_object_id(self, email: str) -> str | None:
        return None

    def signed_in_user_object_id(self) -> str | None:
        return "admin-oid"

    def deployment_what_if(self, name, location, template_file, parameters_file) -> CommandResult:
        self.calls.append("deployment_what_if")
        data = {"status": "Succeeded", "changes": [{"changeType": "Create", "resourceId": "/rg"}]}
        return CommandResult(["az"], 0, json.dumps(data), "")

    def deployment_create(self, name, location, template_file, parameters_file) -> CommandResult:
        self.calls.append("deployment_create")
        data = {"properties": {"provisioningState": self.state, "outputs": {}}}
        return CommandResult(["az"], 0, json.dumps(data), "")

    def deployment_show(self, name: str) -> CommandResult:
        self.calls.append("deployment_show")
        return CommandResult(["az"], 1, "", "not found")

    def list_resources(self, resource_group: str, resource_type: str) -> list[dict[str, Any]]:
        self.calls.append(f"list_resources:{resource_group}")
        return [{"name": c} for c in self.capacities]

    def list_eventhub_namespaces(self, resource_group: str) -> list[str]:
        self.calls.append(f"list_eventhub_namespaces:{resource_group}")
        return ["evhns-otel"]

    def list_eventhubs(self, resource_group: str, namespace: str) -> list[str]:
        return ["diagnostics"]

    def send_event(self, resource_group: str, namespace: str, event_hub: str, body: str) -> None:
        if self.fail_sends:
            raise CommandError("Failed to send event: unauthorized")
        self.events.append(json.loads(body))


class _Fabric:
    def __init__(
        self,
        status: str = "Logged in to app.fabric.microsoft.com",
        *,
        workspaces: list[str] | None = None,
        failing_tables: set[str] | None = None,
        streamed: int = 42,
    ):
        self.status = status
        self.calls: list[str] = []
        self.workspaces = ["fabric-otel-workspace"] if workspaces is None else workspaces
        self.databases = ["otelobservabilitydb"]
        self.failing_tables = failing_tables or set()
        self.streamed = streamed

    def with_env(self, env: dict[str, str]) -> "_Fabric":
        return self

    def auth_status(self) -> CommandResult:
        self.calls.append("auth_status")
        return CommandResult(["fab"], 0, self.status, "")

    def list_workspaces(self) -> list[dict[str, Any]]:
        return [{"displayName": w} for w in self.workspaces]

    def create_workspace(self, name: str, capacity: str, description: str) -> None:
        self.calls.append(f"create_workspace:{name}:{capacity}")
        self.workspaces.append(name)

    def use_workspace(self, name: str) -> None:
        return None

    def list_databases(self) -> list[dict[str, Any]]:
        return [{"displayName": d} for d in self.databases]

    def create_database(self, name: str, description: str) -> None:
        self.calls.append(f"create_database:{name}")
        self.databases.append(name)

    def use_database(self, name: str) -> None:
        return None

    def execute_kql(self, text: str) -> CommandResult:
        table = declared_table_name(text)
        self.calls.append(f"execute_kql:{table}")
        if table in self.failing_tables:
            return CommandResult(["fab"], 1, "", f"{table}: schema conflict")
        return CommandResult(["fab"], 0, "", "")

    def query_kql(self, query: str) -> list[dict[str, Any]]:
        if query == ".show tables":
            return [{"TableName": t} for t in OTEL_TABLE_COLUMNS]
        if query.endswith(" schema"):
            return [{"ColumnName": c} for c, _ in OTEL_TABLE_COLUMNS[query.split()[2]]]
        if "test.run" in query:
            return [{"Count": self.streamed}]
        return [{"Count": 42}]


@pytest.fixture
def appctx(monkeypatch) -> AppContext:
    ctx = AppContext(
        settings=ProjectSettings(key_vault=KeyVaultSettings(vault_name="kv-otel")),
        verbose=False,
        environ={},
        azure=_Azure(secrets={"AZURE-CLIENT-SECRET": "abcd-very-secret-5678"}),
        fabric=_Fabric(),
    )
    monkeypatch.setattr(cli, "build_context", lambda config_file, verbose=False: ctx)
    return ctx


@pytest.fixture
def template(tmp_path: Path) -> str:
    path = tmp_path / "main.bicep"
    path.write_text("targetScope = 'subscription'\n", encoding="utf-8")
    return str(path)


def test_validate_succeeds_for_complete_deployment(appctx: AppContext):
    result = runner.invoke(cli.app, ["validate"])

    assert result.exit_code == 0, result.output
    assert "All checks passed" in result.output


def test_validate_exits_non_zero_when_not_logged_in(appctx: AppContext):
    appctx.fabric = _Fabric(status="Not logged in")

    result = runner.invoke(cli.app, ["validate"])

    assert result.exit_code == 1
    assert "check(s) failed" in result.output


def test_resolve_export_prints_shell_lines(appctx: AppContext):
    appctx.environ = {"AZURE_SUBSCRIPTION_ID": "sub-env", "AZURE_TENANT_ID": "tenant-env"}

    result = runner.invoke(cli.app, ["resolve", "--export"])

    assert result.exit_code == 0, result.output
    assert "export AZURE_SUBSCRIPTION_ID=sub-env" in result.output
    assert "export AZURE_TENANT_ID=tenant-env" in result.output


def test_secrets_get_masks_value(appctx: AppContext):
    result = runner.invoke(cli.app, ["secrets", "get", "Azure:ClientSecret"])

    assert result.exit_code == 0, result.output
    assert "abcd***5678" in result.output
    assert "very-secret" not in result.output
    assert "get_secret:kv-otel:AZURE-CLIENT-SECRET" in appctx.azure.calls


def test_secrets_get_unknown_secret_fails(appctx: AppContext):
    result = runner.invoke(cli.app, ["secrets", "get", "tenant_id"])

    assert result.exit_code == 1
    assert "not set" in result.output


def test_secrets_invalid_key_is_a_usage_error(appctx: AppContext):
    result = runner.invoke(cli.app, ["secrets", "set", "bad key", "value"])

    assert result.exit_code == 2
    assert not any(c.startswith("set_secret") for c in appctx.azure.calls)


def test_secrets_set_stores_value(appctx: AppContext):
    result = runner.invoke(cli.app, ["secrets", "set", "client_id", "app-123"])

    assert result.exit_code == 0, result.output
    assert appctx.azure.secrets["AZURE-CLIENT-ID"] == "app-123"


def test_secrets_set_overwrites_existing_with_yes(appctx: AppContext):
    result = runner.invoke(
        cli.app, ["secrets", "set", "AZURE-CLIENT-SECRET", "new-value-1234", "--yes"]
    )

    assert result.exit_code == 0, result.output
    assert appctx.azure.secrets["AZURE-CLIENT-SECRET"] == "new-value-1234"


def test_deploy_runs_infrastructure_then_fabric(appctx: AppContext, template: str):
    appctx.environ = dict(_ENV)

    result = runner.invoke(cli.app, ["deploy", "--template-file", template])

    assert result.exit_code == 0, result.output
    assert "OTEL gateway deployment complete." in result.output
    assert "list_key_vaults" not in appctx.azure.calls
    assert "set_subscription:sub-env" in appctx.azure.calls
    assert "deployment_create" in appctx.azure.calls
    executed = [c for c in appctx.fabric.calls if c.startswith("execute_kql")]
    assert sorted(executed) == [f"execute_kql:{t}" for t in sorted(OTEL_TABLE_COLUMNS)]


def test_deploy_what_if_skips_create_and_fabric(appctx: AppContext, template: str):
    appctx.environ = dict(_ENV)

    result = runner.invoke(cli.app, ["deploy", "--what-if", "--template-file", template])

    assert result.exit_code == 0, result.output
    assert "Fabric steps skipped" in result.output
    assert "deployment_what_if" in appctx.azure.calls
    assert "deployment_create" not in appctx.azure.calls
    assert appctx.fabric.calls == []


def test_deploy_failed_provisioning_state_exits_before_fabric(appctx: AppContext, template: str):
    appctx.environ = dict(_ENV)
    appctx.azure = _Azure(state="Failed")

    result = runner.invoke(cli.app, ["deploy", "--template-file", template])

    assert result.exit_code == 1
    assert "Deployment failed" in result.output
    assert appctx.fabric.calls == []


def test_infra_missing_template_is_an_error(appctx: AppContext, tmp_path: Path):
    appctx.environ = dict(_ENV)

    result = runner.invoke(
        cli.app, ["infra", "--template-file", str(tmp_path / "absent.bicep")]
    )

    assert result.exit_code == 1
    assert "deployment_create" not in appctx.azure.calls


def test_fabric_without_capacity_fails(appctx: AppContext):
    appctx.environ = dict(_ENV)
    appctx.azure = _Azure(capacities=[])

    result = runner.invoke(cli.app, ["fabric"])

    assert result.exit_code == 1
    assert "No Fabric capacity" in result.output
    assert not any(c.startswith("create_workspace") for c in appctx.fabric.calls)


def test_fabric_creates_missing_workspace_on_found_capacity(appctx: AppContext):
    appctx.environ = dict(_ENV)
    appctx.fabric = _Fabric(workspaces=[])

    result = runner.invoke(cli.app, ["fabric"])

    assert result.exit_code == 0, result.output
    assert "create_workspace:fabric-otel-workspace:fabriccapotel" in appctx.fabric.calls
    assert "Fabric artifacts deployed." in result.output


def test_fabric_skip_workspace_creation_requires_existing_workspace(appctx: AppContext):
    appctx.environ = dict(_ENV)
    appctx.fabric = _Fabric(workspaces=[])

    result = runner.invoke(cli.app, ["fabric", "--skip-workspace-creation"])

    assert result.exit_code == 1
    assert "Resource not found" in result.output
    assert not any(c.startswith("create_workspace") for c in appctx.fabric.calls)


def test_fabric_skip_auth_does_not_check_session(appctx: AppContext):
    appctx.environ = dict(_ENV)

    skipped = runner.invoke(cli.app, ["fabric", "--skip-auth"])
    assert skipped.exit_code == 0, skipped.output
    assert "auth_status" not in appctx.fabric.calls

    checked = runner.invoke(cli.app, ["fabric"])
    assert checked.exit_code == 0, checked.output
    assert "auth_status" in appctx.fabric.calls


def test_fabric_partial_table_failure_is_reported_not_fatal(appctx: AppContext):
    appctx.environ = dict(_ENV)
    appctx.fabric = _Fabric(failing_tables={"OTELMetrics"})

    result = runner.invoke(cli.app, ["fabric"])

    assert result.exit_code == 0, result.output
    assert "Finished with failed tables: OTELMetrics" in result.output
    assert "Fabric artifacts deployed." not in result.output
    assert "execute_kql:OTELTraces" in appctx.fabric.calls


def test_deploy_with_every_table_failing_does_not_report_success(
    appctx: AppContext, template: str
):
    appctx.environ = dict(_ENV)
    appctx.fabric = _Fabric(failing_tables=set(OTEL_TABLE_COLUMNS))

    result = runner.invoke(cli.app, ["deploy", "--template-file", template])

    assert result.exit_code == 0, result.output
    assert "no table was applied" in result.output
    assert "deployment complete" not in result.output


def test_send_test_data_sends_each_kind_per_batch(appctx: AppContext):
    result = runner.invoke(cli.app, ["send-test-data", "--count", "2", "--delay", "0"])

    assert result.exit_code == 0, result.output
    assert "evhns-otel/diagnostics" in result.output
    assert len(appctx.azure.events) == 6
    assert {"MetricName" in e for e in appctx.azure.events} == {True, False}


def test_send_test_data_fails_when_nothing_was_sent(appctx: AppContext):
    appctx.azure = _Azure(fail_sends=True)

    result = runner.invoke(cli.app, ["send-test-data", "--count", "1"])

    assert result.exit_code == 1
    assert "No record was sent" in result.output


def test_send_test_data_wait_reports_arrival(appctx: AppContext):
    result = runner.invoke(
        cli.app,
        ["send-test-data", "--count", "1", "--wait", "--wait-interval", "0"],
    )

    assert result.exit_code == 0, result.output
    assert "Test records arrived in Fabric." in result.output


def test_send_test_data_wait_fails_when_records_never_arrive(appctx: AppContext):
    appctx.fabric = _Fabric(streamed=0)

    result = runner.invoke(
        cli.app,
        [
            "send-test-data",
            "--count",
            "1",
            "--wait",
            "--wait-attempts",
            "2",
            "--wait-interval",
            "0",
        ],
    )

    assert result.exit_code == 1
    assert "did not reach Fabric" in result.output
