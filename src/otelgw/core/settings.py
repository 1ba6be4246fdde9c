"""Project configuration file.

The JSON file describes the names and sizes of everything the deployment
creates. It is read-only input: the workflow never writes it back. Keys that
are missing fall back to the defaults below.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from otelgw.core.credentials import SECRET_NAMES

DEFAULT_LOCATION = "swedencentral"
DEFAULT_RESOURCE_GROUP = "azuresamples-platformobservabilty-fabric"
DEFAULT_WORKSPACE = "fabric-otel-workspace"
DEFAULT_DATABASE = "otelobservabilitydb"
DEFAULT_CAPACITY_SKU = "F2"
DEFAULT_COLLECTOR_IMAGE = "otel/opentelemetry-collector-contrib:latest"

DEFAULT_CONFIG_FILE = Path("config") / "project-config.json"


class ConfigFileError(ValueError):
    """Raised when the project configuration file cannot be used."""


@dataclass(frozen=True)
class AzureSettings:
    location: str = DEFAULT_LOCATION
    resource_group_name: str = DEFAULT_RESOURCE_GROUP


@dataclass(frozen=True)
class FabricSettings:
    capacity_name: str | None = None
    capacity_sku: str = DEFAULT_CAPACITY_SKU
    workspace_name: str = DEFAULT_WORKSPACE
    database_name: str = DEFAULT_DATABASE


@dataclass(frozen=True)
class EventHubSettings:
    namespace_name: str | None = None
    hub_name: str = "diagnostics"
    consumer_group: str = "otelcollector"
    sku: str = "Standard"


@dataclass(frozen=True)
class ContainerInstanceSettings:
    name: str | None = None
    image: str = DEFAULT_COLLECTOR_IMAGE
    cpu: float = 1.0
    memory_gb: float = 2.0


@dataclass(frozen=True)
class AppServiceSettings:
    name: str | None = None
    plan_name: str | None = None
    sku: str = "B1"


@dataclass(frozen=True)
class KeyVaultSettings:
    vault_name: str | None = None
    resource_group_name: str | None = None
    secrets: Mapping[str, str] = field(default_factory=lambda: dict(SECRET_NAMES))


@dataclass(frozen=True)
class ProjectSettings:
    """All sections of the project configuration file."""

    azure: AzureSettings = field(default_factory=AzureSettings)
    fabric: FabricSettings = field(default_factory=FabricSettings)
    event_hub: EventHubSettings = field(default_factory=EventHubSettings)
    container_instance: ContainerInstanceSettings = field(
        default_factory=ContainerInstanceSettings
    )
    app_service: AppServiceSettings = field(default_factory=AppServiceSettings)
    key_vault: KeyVaultSettings = field(default_factory=KeyVaultSettings)


def _section(payload: Mapping[str, Any], *path: str) -> Mapping[str, Any]:
    node: Any = payload
    for key in path:
        node = node.get(key) if isinstance(node, Mapping) else None
        if node is None:
            return {}
    if not isinstance(node, Mapping):
        raise ConfigFileError(f"'{'.'.join(path)}' must be an object.")
    return node


def _str(section: Mapping[str, Any], key: str, default: str | None) -> str | None:
    value = section.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise ConfigFileError(f"'{key}' must be a string.")
    return value


def _num(section: Mapping[str, Any], key: str, default: float) -> float:
    value = section.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigFileError(f"'{key}' must be a number.")
    return float(value)


def _secret_names(section: Mapping[str, Any]) -> dict[str, str]:
    """Merge the `keyVault.secrets` mapping over the default secret names."""
    names = dict(SECRET_NAMES)
    raw = section.get("secrets")
    if raw is None:
        return names
    if not isinstance(raw, Mapping):
        raise ConfigFileError("'keyVault.secrets' must be an object.")
    for key, value in raw.items():
        if key not in SECRET_NAMES:
            raise ConfigFileError(f"Unknown secret key in 'keyVault.secrets': {key}")
        if not isinstance(value, str) or not value:
            raise ConfigFileError(f"Secret name for '{key}' must be a non-empty string.")
        names[key] = value
    return names


def parse_settings(payload: Mapping[str, Any]) -> ProjectSettings:
    """Build ProjectSettings from a decoded JSON document."""
    if not isinstance(payload, Mapping):
        raise ConfigFileError("Project configuration must be a JSON object.")

    azure = _section(payload, "azure")
    fabric = _section(payload, "fabric")
    event_hub = _section(payload, "otel", "eventHub")
    container = _section(payload, "otel", "containerInstance")
    app_service = _section(payload, "otel", "appService")
    key_vault = _section(payload, "keyVault")

    return ProjectSettings(
        azure=AzureSettings(
            location=_str(azure, "location", DEFAULT_LOCATION),
            resource_group_name=_str(azure, "resourceGroupName", DEFAULT_RESOURCE_GROUP),
        ),
        fabric=FabricSettings(
            capacity_name=_str(fabric, "capacityName", None),
            capacity_sku=_str(fabric, "capacitySku", DEFAULT_CAPACITY_SKU),
            workspace_name=_str(fabric, "workspaceName", DEFAULT_WORKSPACE),
            database_name=_str(fabric, "databaseName", DEFAULT_DATABASE),
        ),
        event_hub=EventHubSettings(
            namespace_name=_str(event_hub, "namespaceName", None),
            hub_name=_str(event_hub, "hubName", EventHubSettings.hub_name),
            consumer_group=_str(
                event_hub, "consumerGroup", EventHubSettings.consumer_group
            ),
            sku=_str(event_hub, "sku", EventHubSettings.sku),
        ),
        container_instance=ContainerInstanceSettings(
            name=_str(container, "name", None),
            image=_str(container, "image", DEFAULT_COLLECTOR_IMAGE),
            cpu=_num(container, "cpu", ContainerInstanceSettings.cpu),
            memory_gb=_num(container, "memoryGb", ContainerInstanceSettings.memory_gb),
        ),
        app_service=AppServiceSettings(
            name=_str(app_service, "name", None),
            plan_name=_str(app_service, "planName", None),
            sku=_str(app_service, "sku", AppServiceSettings.sku),
        ),
        key_vault=KeyVaultSettings(
            vault_name=_str(key_vault, "vaultName", None),
            resource_group_name=_str(key_vault, "resourceGroupName", None),
            secrets=_secret_names(key_vault),
        ),
    )


def load_settings(path: Path | None = None) -> ProjectSettings:
    """
    Load the project configuration file.

    Args:
        path: Explicit file. When None, `config/project-config.json` is used
              if it exists, otherwise built-in defaults.

    Raises:
        ConfigFileError: If an explicit file is missing or the JSON is invalid.
    """
    if path is None:
        if not DEFAULT_CONFIG_FILE.exists():
            return ProjectSettings()
        path = DEFAULT_CONFIG_FILE

    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigFileError(f"Cannot read configuration file '{path}': {exc}") from exc

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigFileError(f"Invalid JSON in '{path}': {exc}") from exc

    return parse_settings(payload)
