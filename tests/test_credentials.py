from __future__ import annotations

import pytest

from otelgw.core.credentials import (
    ConfigSource,
    ConfigurationSource,
    from_environment,
    mask_secret,
)
from otelgw.core.secretstore import (
    SecretStatus,
    export_environment,
    secret_name_for,
    secret_status,
)


def test_from_environment_reads_fixed_names_and_drops_blanks():
    config = from_environment(
        {
            "AZURE_SUBSCRIPTION_ID": " sub ",
            "AZURE_TENANT_ID": "tenant",
            "AZURE_CLIENT_SECRET": "",
            "UNRELATED": "x",
        }
    )

    assert config.source == ConfigSource.ENVIRONMENT
    assert config.subscription_id == "sub"
    assert config.client_secret is None
    assert config.has_credentials
    assert not config.has_service_principal
    assert dict(config.values) == {"subscription_id": "sub", "tenant_id": "tenant"}


def test_configuration_is_read_only():
    config = from_environment({"AZURE_SUBSCRIPTION_ID": "sub"})

    with pytest.raises(TypeError):
        config.values["tenant_id"] = "t"  # type: ignore[index]
    assert config.missing_required() == ["tenant_id"]


def test_with_overrides_returns_new_record():
    config = from_environment({"AZURE_SUBSCRIPTION_ID": "sub", "AZURE_TENANT_ID": "t"})

    changed = config.with_overrides(subscription_id="sub-cli", client_id=None)

    assert changed.subscription_id == "sub-cli"
    assert config.subscription_id == "sub"
    assert changed.source == config.source


def test_to_environment_maps_back_to_variable_names():
    config = ConfigurationSource(
        source=ConfigSource.KEY_VAULT,
        values={"subscription_id": "sub", "workspace_name": "ws"},
    )

    assert config.to_environment() == {
        "AZURE_SUBSCRIPTION_ID": "sub",
        "FABRIC_WORKSPACE_NAME": "ws",
    }


@pytest.mark.parametrize(
    "value,expected",
    [
        ("abcd1234efgh5678", "abcd***5678"),
        ("12345678", "1234***5678"),
        ("short", "***"),
        ("", "***"),
        (None, "***"),
    ],
)
def test_mask_secret(value, expected: str):
    assert mask_secret(value) == expected


@pytest.mark.parametrize(
    "key,expected",
    [
        ("client_id", "AZURE-CLIENT-ID"),
        ("Azure:ClientSecret", "AZURE-CLIENT-SECRET"),
        ("Fabric:WorkspaceName", "FABRIC-WORKSPACE-NAME"),
        ("Custom:ApiKey", "CUSTOM-API-KEY"),
        ("MY-SECRET", "MY-SECRET"),
    ],
)
def test_secret_name_for(key: str, expected: str):
    assert secret_name_for(key) == expected


def test_secret_name_for_rejects_invalid_names():
    with pytest.raises(ValueError, match="not a valid Key Vault secret name"):
        secret_name_for("has space")


def test_secret_name_for_honours_remapped_names():
    names = {"client_id": "SP-APP-ID"}
    assert secret_name_for("Azure:ClientId", names) == "SP-APP-ID"


def test_secret_status_reports_set_and_missing():
    class _Store:
        def __init__(self):
            self.calls: list[str] = []

        def list_secret_names(self, vault: str) -> list[str]:
            self.calls.append(f"list_secret_names:{vault}")
            return ["AZURE-TENANT-ID", "SOMETHING-ELSE"]

        def get_secret(self, vault: str, name: str) -> str | None:
            self.calls.append(f"get_secret:{name}")
            return None

        def set_secret(self, vault: str, name: str, value: str) -> None:
            self.calls.append(f"set_secret:{name}")

    store = _Store()
    statuses = secret_status(
        store, "kv", {"tenant_id": "AZURE-TENANT-ID", "client_id": "AZURE-CLIENT-ID"}
    )

    assert statuses == [
        SecretStatus(key="tenant_id", secret_name="AZURE-TENANT-ID", is_set=True),
        SecretStatus(key="client_id", secret_name="AZURE-CLIENT-ID", is_set=False),
    ]
    # Values are never read.
    assert store.calls == ["list_secret_names:kv"]


def test_export_environment_quotes_values():
    config = ConfigurationSource(
        source=ConfigSource.INTERACTIVE,
        values={"subscription_id": "sub", "client_secret": "it's $ecret"},
    )

    assert export_environment(config) == [
        "export AZURE_CLIENT_SECRET='it'\"'\"'s $ecret'",
        "export AZURE_SUBSCRIPTION_ID=sub",
    ]
