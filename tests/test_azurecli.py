from __future__ import annotations

import json

import pytest

from otelgw.core.adapters import azurecli
from otelgw.core.adapters.azurecli import AzureCliAdapter
from otelgw.core.adapters.process import CommandResult
from otelgw.core.errors import CommandError


class _Runner:
    """Stands in for run_command; replies with queued results."""

    def __init__(self, *results: CommandResult):
        self.results = list(results)
        self.calls: list[dict] = []

    def __call__(self, args, *, env=None, redact=(), on_command=None):
        self.calls.append({"args": list(args), "env": env, "redact": tuple(redact)})
        return self.results.pop(0)


def _ok(stdout: str = "") -> CommandResult:
    return CommandResult(["az"], 0, stdout, "")


def _fail(stderr: str) -> CommandResult:
    return CommandResult(["az"], 1, "", stderr)


def test_get_secret_returns_value(monkeypatch):
    runner = _Runner(_ok("s3cret"))
    monkeypatch.setattr(azurecli, "run_command", runner)

    assert AzureCliAdapter().get_secret("kv", "AZURE-TENANT-ID") == "s3cret"
    assert runner.calls[0]["args"][:4] == ["az", "keyvault", "secret", "show"]


def test_get_secret_missing_secret_is_none(monkeypatch):
    monkeypatch.setattr(
        azurecli,
        "run_command",
        _Runner(_fail("(SecretNotFound) A secret with (name/id) X was not found in this key vault.")),
    )

    assert AzureCliAdapter().get_secret("kv", "X") is None


def test_get_secret_other_failures_raise(monkeypatch):
    monkeypatch.setattr(azurecli, "run_command", _Runner(_fail("(Forbidden) Caller is not authorized")))

    with pytest.raises(CommandError, match="Forbidden"):
        AzureCliAdapter().get_secret("kv", "X")


def test_set_secret_redacts_value(monkeypatch):
    runner = _Runner(_ok())
    monkeypatch.setattr(azurecli, "run_command", runner)

    AzureCliAdapter().set_secret("kv", "AZURE-CLIENT-SECRET", "p@ss")

    assert runner.calls[0]["redact"] == ("p@ss",)


def test_set_secret_failure_does_not_leak_value(monkeypatch):
    monkeypatch.setattr(azurecli, "run_command", _Runner(_fail("(Forbidden) denied")))

    with pytest.raises(CommandError) as excinfo:
        AzureCliAdapter().set_secret("kv", "AZURE-CLIENT-SECRET", "p@ss")

    assert "p@ss" not in str(excinfo.value)
    assert "p@ss" not in excinfo.value.command


def test_adapter_environment_is_passed_to_child(monkeypatch):
    runner = _Runner(_ok(json.dumps(["kv-one", "kv-platform"])))
    monkeypatch.setattr(azurecli, "run_command", runner)

    names = AzureCliAdapter(env={"AZURE_TENANT_ID": "t"}).list_key_vaults()

    assert names == ["kv-one", "kv-platform"]
    assert runner.calls[0]["env"] == {"AZURE_TENANT_ID": "t"}


def test_list_resources_raises_on_tool_error(monkeypatch):
    monkeypatch.setattr(
        azurecli,
        "run_command",
        _Runner(_ok(json.dumps({"error": {"code": "ResourceGroupNotFound", "message": "rg missing"}}))),
    )

    with pytest.raises(CommandError, match="rg missing"):
        AzureCliAdapter().list_resources("rg", "Microsoft.Fabric/capacities")


def test_user_object_id_lookup_failure_is_none(monkeypatch):
    monkeypatch.setattr(azurecli, "run_command", _Runner(_fail("Resource 'x' does not exist")))

    assert AzureCliAdapter().user_object_id("x@contoso.com") is None


def test_send_event_passes_body_as_argument(monkeypatch):
    runner = _Runner(_ok())
    monkeypatch.setattr(azurecli, "run_command", runner)
    body = json.dumps({"Body": "hello"})

    AzureCliAdapter().send_event("rg", "evhns", "diagnostics", body)

    args = runner.calls[0]["args"]
    assert args[:4] == ["az", "eventhubs", "eventhub", "send"]
    assert args[args.index("--body") + 1] == body
    assert args[args.index("--namespace-name") + 1] == "evhns"


def test_send_event_failure_raises(monkeypatch):
    monkeypatch.setattr(azurecli, "run_command", _Runner(_fail("(MessagingEntityNotFound) hub")))

    with pytest.raises(CommandError, match="evhns/diagnostics"):
        AzureCliAdapter().send_event("rg", "evhns", "diagnostics", "{}")


def test_list_eventhub_namespaces_returns_names(monkeypatch):
    runner = _Runner(_ok(json.dumps(["evhns-otel"])))
    monkeypatch.setattr(azurecli, "run_command", runner)

    assert AzureCliAdapter().list_eventhub_namespaces("rg") == ["evhns-otel"]
    assert runner.calls[0]["args"][:4] == ["az", "eventhubs", "namespace", "list"]


def test_with_env_keeps_command_hook():
    seen: list[list[str]] = []
    adapter = AzureCliAdapter(on_command=seen.append)

    bound = adapter.with_env({"AZURE_TENANT_ID": "t"})

    assert isinstance(bound, AzureCliAdapter)
    assert bound.env == {"AZURE_TENANT_ID": "t"}
    assert bound.on_command == seen.append
    assert adapter.env == {}
