"""Configuration records produced by the credential resolver.

A `ConfigurationSource` is built once per run from exactly one source
(environment, Key Vault or interactive prompts) and never mutated. It is
threaded through the workflow explicitly and only turned into process
environment variables at the boundary where `az` / `fab` are started.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping

SUBSCRIPTION_ID = "subscription_id"
TENANT_ID = "tenant_id"
CLIENT_ID = "client_id"
CLIENT_SECRET = "client_secret"
RESOURCE_GROUP = "resource_group"
WORKSPACE_NAME = "workspace_name"
DATABASE_NAME = "database_name"
ADMIN_OBJECT_ID = "admin_object_id"

REQUIRED_KEYS = (SUBSCRIPTION_ID, TENANT_ID)

# Logical key -> environment variable.
ENV_VARS: Mapping[str, str] = MappingProxyType(
    {
        SUBSCRIPTION_ID: "AZURE_SUBSCRIPTION_ID",
        TENANT_ID: "AZURE_TENANT_ID",
        CLIENT_ID: "AZURE_CLIENT_ID",
        CLIENT_SECRET: "AZURE_CLIENT_SECRET",
        RESOURCE_GROUP: "RESOURCE_GROUP_NAME",
        WORKSPACE_NAME: "FABRIC_WORKSPACE_NAME",
        DATABASE_NAME: "FABRIC_DATABASE_NAME",
        ADMIN_OBJECT_ID: "ADMIN_OBJECT_ID",
    }
)

# Logical key -> Key Vault secret name. Key Vault only allows [0-9a-zA-Z-].
SECRET_NAMES: Mapping[str, str] = MappingProxyType(
    {
        SUBSCRIPTION_ID: "AZURE-SUBSCRIPTION-ID",
        TENANT_ID: "AZURE-TENANT-ID",
        CLIENT_ID: "AZURE-CLIENT-ID",
        CLIENT_SECRET: "AZURE-CLIENT-SECRET",
        ADMIN_OBJECT_ID: "ADMIN-OBJECT-ID",
        RESOURCE_GROUP: "RESOURCE-GROUP-NAME",
        WORKSPACE_NAME: "FABRIC-WORKSPACE-NAME",
        DATABASE_NAME: "FABRIC-DATABASE-NAME",
    }
)

KEY_VAULT_ENV_VAR = "AZURE_KEY_VAULT_NAME"
CAPACITY_ENV_VAR = "FABRIC_CAPACITY_NAME"
LOCATION_ENV_VAR = "LOCATION"


class ConfigSource(str, Enum):
    """Where a configuration record came from, in resolver priority order."""

    ENVIRONMENT = "Environment"
    KEY_VAULT = "KeyVault"
    INTERACTIVE = "Interactive"


def _freeze(values: Mapping[str, str | None]) -> Mapping[str, str]:
    return MappingProxyType({k: v.strip() for k, v in values.items() if v and v.strip()})


@dataclass(frozen=True)
class ConfigurationSource:
    """
    Immutable configuration from a single source.

    Attributes:
        source: Which source produced the values.
        values: Read-only mapping of logical key to non-empty string value.
        vault_name: Key Vault the values were read from, when applicable.
    """

    source: ConfigSource
    values: Mapping[str, str] = field(default_factory=dict)
    vault_name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", _freeze(self.values))

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    @property
    def subscription_id(self) -> str | None:
        return self.values.get(SUBSCRIPTION_ID)

    @property
    def tenant_id(self) -> str | None:
        return self.values.get(TENANT_ID)

    @property
    def client_id(self) -> str | None:
        return self.values.get(CLIENT_ID)

    @property
    def client_secret(self) -> str | None:
        return self.values.get(CLIENT_SECRET)

    @property
    def has_credentials(self) -> bool:
        """True when both subscription id and tenant id are present."""
        return all(self.values.get(k) for k in REQUIRED_KEYS)

    @property
    def has_service_principal(self) -> bool:
        return bool(self.client_id and self.client_secret and self.tenant_id)

    def missing_required(self) -> list[str]:
        return [k for k in REQUIRED_KEYS if not self.values.get(k)]

    def with_overrides(self, **overrides: str | None) -> "ConfigurationSource":
        """Return a copy with command-line overrides applied (None is ignored)."""
        merged = dict(self.values)
        merged.update({k: v for k, v in overrides.items() if v})
        return ConfigurationSource(
            source=self.source, values=merged, vault_name=self.vault_name
        )

    def to_environment(self) -> dict[str, str]:
        """Return the environment-variable view for child processes."""
        return {ENV_VARS[k]: v for k, v in self.values.items() if k in ENV_VARS}


def from_environment(environ: Mapping[str, str]) -> ConfigurationSource:
    """Read the fixed set of environment variables into a configuration record."""
    return ConfigurationSource(
        source=ConfigSource.ENVIRONMENT,
        values={key: environ.get(var) for key, var in ENV_VARS.items()},
    )


def mask_secret(value: str | None) -> str:
    """Mask a secret for display: first 4 + *** + last 4, or *** if short."""
    if not value or len(value) < 8:
        return "***"
    return f"{value[:4]}***{value[-4:]}"
