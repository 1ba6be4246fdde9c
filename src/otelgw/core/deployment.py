"""Infrastructure deployment: parameter building, what-if preview and create.

The template is deployed at subscription scope. It creates the resource
group, Fabric capacity, Event Hub namespace / hub / consumer group /
authorization rule, the container instance running the OTEL Collector and
the App Service whose diagnostic settings stream to the Event Hub.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Protocol

from otelgw.core.adapters.process import (
    CommandResult,
    JsonParsed,
    ToolReportedError,
    expect_json,
    parse_json,
)
from otelgw.core.credentials import (
    ADMIN_OBJECT_ID,
    DATABASE_NAME,
    RESOURCE_GROUP,
    WORKSPACE_NAME,
    ConfigSource,
    ConfigurationSource,
)
from otelgw.core.errors import DeploymentError, MissingConfigurationError
from otelgw.core.settings import ProjectSettings

ARM_PARAMETERS_SCHEMA = (
    "https://schema.management.azure.com/schemas/2019-04-01/"
    "deploymentParameters.json#"
)
DEFAULT_TEMPLATE_FILE = Path("infra") / "main.bicep"
DEPLOYMENT_NAME_PREFIX = "otel-gateway"

DEFAULT_TAGS: Mapping[str, str] = MappingProxyType(
    {"project": "fabric-otel-gateway", "purpose": "otel-observability"}
)


class ProvisioningState(str, Enum):
    """
    ARM provisioning states. Only SUCCEEDED counts as success.

    Values not listed here are reported as UNKNOWN; the raw string is kept
    on the outcome / error for diagnosis.
    """

    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELED = "Canceled"
    RUNNING = "Running"
    ACCEPTED = "Accepted"
    DEPLOYING = "Deploying"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, raw: str | None) -> "ProvisioningState":
        for state in cls:
            if raw and state.value.lower() == raw.lower():
                return state
        return cls.UNKNOWN


@dataclass(frozen=True)
class ResourceNames:
    """Names of everything the template creates."""

    resource_group: str
    capacity: str
    workspace: str
    database: str
    event_hub_namespace: str
    event_hub: str
    consumer_group: str
    container_group: str
    container_image: str
    app_service: str
    app_service_plan: str


@dataclass(frozen=True)
class DeploymentParameters:
    """Template parameter name -> value. Immutable once built."""

    values: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __getitem__(self, key: str) -> Any:
        return self.values[key]

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def to_arm_document(self) -> dict[str, Any]:
        """Render an ARM deployment parameters file."""
        return {
            "$schema": ARM_PARAMETERS_SCHEMA,
            "contentVersion": "1.0.0.0",
            "parameters": {k: {"value": v} for k, v in self.values.items()},
        }


@dataclass(frozen=True)
class WhatIfChange:
    change_type: str
    resource_id: str


@dataclass(frozen=True)
class WhatIfResult:
    """Predicted changes from a preview; nothing was modified."""

    status: str
    changes: list[WhatIfChange] = field(default_factory=list)


@dataclass(frozen=True)
class DeploymentOutcome:
    """A finished deployment that reached `Succeeded`."""

    name: str
    state: ProvisioningState
    raw_state: str
    outputs: dict[str, Any] = field(default_factory=dict)


class DeploymentAdapter(Protocol):
    """Interface for the Azure CLI calls used by the invoker."""

    def user_object_id(self, email: str) -> str | None: ...

    def signed_in_user_object_id(self) -> str | None: ...

    def deployment_what_if(
        self, name: str, location: str, template_file: str, parameters_file: str
    ) -> CommandResult: ...

    def deployment_create(
        self, name: str, location: str, template_file: str, parameters_file: str
    ) -> CommandResult: ...

    def deployment_show(self, name: str) -> CommandResult: ...


def _name_suffix(seed: str) -> str:
    """Short stable suffix so globally unique names survive re-runs."""
    return hashlib.md5(seed.encode("utf-8")).hexdigest()[:6]


def derive_resource_names(
    settings: ProjectSettings,
    config: ConfigurationSource,
    *,
    resource_group: str | None = None,
    workspace: str | None = None,
    database: str | None = None,
    capacity: str | None = None,
) -> ResourceNames:
    """
    Resolve resource names: explicit argument, then the configuration
    source, then the project file, then generated defaults.
    """
    suffix = _name_suffix(config.subscription_id or "local")
    fabric = settings.fabric
    event_hub = settings.event_hub
    container = settings.container_instance
    app = settings.app_service

    return ResourceNames(
        resource_group=resource_group
        or config.get(RESOURCE_GROUP)
        or settings.azure.resource_group_name,
        capacity=capacity or fabric.capacity_name or f"fabricotel{suffix}",
        workspace=workspace or config.get(WORKSPACE_NAME) or fabric.workspace_name,
        database=database or config.get(DATABASE_NAME) or fabric.database_name,
        event_hub_namespace=event_hub.namespace_name or f"evhns-otel-{suffix}",
        event_hub=event_hub.hub_name,
        consumer_group=event_hub.consumer_group,
        container_group=container.name or f"ci-otel-collector-{suffix}",
        container_image=container.image,
        app_service=app.name or f"app-otel-sample-{suffix}",
        app_service_plan=app.plan_name or f"asp-otel-sample-{suffix}",
    )


def resolve_admin_object_id(
    azure: DeploymentAdapter,
    *,
    admin_email: str | None,
    config: ConfigurationSource,
) -> str | None:
    """
    Resolve the administrator identity. First match wins.

    Order: directory lookup of `admin_email`, the configured
    `ADMIN_OBJECT_ID`, then the signed-in user.
    """
    if admin_email:
        object_id = azure.user_object_id(admin_email)
        if object_id:
            return object_id
    configured = config.get(ADMIN_OBJECT_ID)
    if configured:
        return configured
    return azure.signed_in_user_object_id()


def build_parameters(
    config: ConfigurationSource,
    settings: ProjectSettings,
    *,
    location: str,
    names: ResourceNames,
    admin_object_id: str | None,
    tags: Mapping[str, str] | None = None,
) -> DeploymentParameters:
    """Build the template parameter set for one deployment."""
    values: dict[str, Any] = {
        "location": location,
        "resourceGroupName": names.resource_group,
        "capacityName": names.capacity,
        "capacitySku": settings.fabric.capacity_sku,
        "workspaceName": names.workspace,
        "databaseName": names.database,
        "eventHubNamespaceName": names.event_hub_namespace,
        "eventHubName": names.event_hub,
        "eventHubSku": settings.event_hub.sku,
        "consumerGroupName": names.consumer_group,
        "containerGroupName": names.container_group,
        "containerImage": names.container_image,
        "containerCpu": settings.container_instance.cpu,
        "containerMemoryGb": settings.container_instance.memory_gb,
        "appServiceName": names.app_service,
        "appServicePlanName": names.app_service_plan,
        "appServiceSku": settings.app_service.sku,
        "tags": dict(tags if tags is not None else DEFAULT_TAGS),
    }
    if admin_object_id:
        values["adminObjectIds"] = [admin_object_id]
    if config.client_id:
        values["servicePrincipalClientId"] = config.client_id
    if config.source == ConfigSource.KEY_VAULT:
        if config.tenant_id:
            values["servicePrincipalTenantId"] = config.tenant_id
        if config.client_secret:
            values["servicePrincipalClientSecret"] = config.client_secret
    return DeploymentParameters(values)


def _write_parameters_file(parameters: DeploymentParameters) -> str:
    fd, path = tempfile.mkstemp(prefix="otelgw-params-", suffix=".json")
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        json.dump(parameters.to_arm_document(), fh, indent=2)
    return path


def _parse_what_if(data: Any) -> WhatIfResult:
    if not isinstance(data, dict):
        return WhatIfResult(status="Unknown")
    changes = [
        WhatIfChange(
            change_type=str(c.get("changeType", "Unknown")),
            resource_id=str(c.get("resourceId", "")),
        )
        for c in data.get("changes") or []
        if isinstance(c, dict)
    ]
    return WhatIfResult(status=str(data.get("status", "Unknown")), changes=changes)


def _provisioning_state(data: Any) -> tuple[str, dict[str, Any]]:
    """Return (raw provisioning state, outputs) from a deployment document."""
    if not isinstance(data, dict):
        return "Unknown", {}
    props = data.get("properties") or {}
    raw = str(props.get("provisioningState") or "Unknown")
    outputs = props.get("outputs") or {}
    return raw, outputs if isinstance(outputs, dict) else {}


def deploy(
    azure: DeploymentAdapter,
    config: ConfigurationSource,
    *,
    location: str,
    settings: ProjectSettings,
    what_if: bool = False,
    template_file: Path = DEFAULT_TEMPLATE_FILE,
    admin_email: str | None = None,
    names: ResourceNames | None = None,
    deployment_name: str | None = None,
) -> WhatIfResult | DeploymentOutcome:
    """
    Preview or run the subscription-scoped infrastructure deployment.

    With `what_if` only the preview operation is called and the predicted
    changes are returned. Otherwise only the create operation is called.
    There is no retry; the caller re-invokes after a failure.

    Raises:
        ValueError: If `location` is empty or the template file is missing.
        MissingConfigurationError: If the configuration lacks subscription or
                                   tenant id. Raised before any external call.
        CommandError: If the what-if preview fails.
        DeploymentError: If the deployment ends in any state but `Succeeded`.
    """
    if not location or not location.strip():
        raise ValueError("location must be a non-empty Azure region.")
    if not config.has_credentials:
        raise MissingConfigurationError(
            "Missing configuration: " + ", ".join(config.missing_required())
        )
    template = Path(template_file)
    if not template.is_file():
        raise ValueError(f"Template file not found: {template}")

    names = names or derive_resource_names(settings, config)
    admin_id = resolve_admin_object_id(azure, admin_email=admin_email, config=config)
    parameters = build_parameters(
        config,
        settings,
        location=location,
        names=names,
        admin_object_id=admin_id,
    )
    name = deployment_name or f"{DEPLOYMENT_NAME_PREFIX}-{int(time.time())}"

    params_path = _write_parameters_file(parameters)
    try:
        if what_if:
            data = expect_json(
                azure.deployment_what_if(name, location, str(template), params_path),
                "preview deployment",
            )
            return _parse_what_if(data)

        result = azure.deployment_create(name, location, str(template), params_path)
    finally:
        os.remove(params_path)

    outcome = parse_json(result)
    detail = ""
    if isinstance(outcome, JsonParsed):
        raw_state, outputs = _provisioning_state(outcome.data)
    else:
        # The CLI failed or printed text; ask ARM for the recorded state.
        detail = outcome.message if isinstance(outcome, ToolReportedError) else outcome.text
        shown = parse_json(azure.deployment_show(name))
        if isinstance(shown, JsonParsed):
            raw_state, outputs = _provisioning_state(shown.data)
        else:
            raw_state, outputs = "Unknown", {}

    state = ProvisioningState.parse(raw_state)
    if state != ProvisioningState.SUCCEEDED:
        message = f"Deployment '{name}' finished with provisioning state '{raw_state}'."
        if detail:
            message = f"{message}\n{detail}"
        raise DeploymentError(message, state=raw_state)

    return DeploymentOutcome(name=name, state=state, raw_state=raw_state, outputs=outputs)
