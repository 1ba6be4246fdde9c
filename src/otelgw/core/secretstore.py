"""Key Vault secret helpers for the `otelgw secrets` commands.

Secrets may be addressed by logical key (`client_id`), by a colon-separated
configuration key (`Azure:ClientId`) or by the Key Vault secret name itself
(`AZURE-CLIENT-ID`). Key Vault names only allow letters, digits and dashes.
"""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from typing import Mapping, Protocol

from otelgw.core.credentials import (
    CLIENT_ID,
    CLIENT_SECRET,
    DATABASE_NAME,
    RESOURCE_GROUP,
    SECRET_NAMES,
    SUBSCRIPTION_ID,
    TENANT_ID,
    WORKSPACE_NAME,
    ConfigurationSource,
)

_VALID_SECRET_NAME = re.compile(r"^[0-9A-Za-z-]{1,127}$")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

COLON_KEY_ALIASES: Mapping[str, str] = {
    "Azure:SubscriptionId": SUBSCRIPTION_ID,
    "Azure:TenantId": TENANT_ID,
    "Azure:ClientId": CLIENT_ID,
    "Azure:ClientSecret": CLIENT_SECRET,
    "Azure:ResourceGroupName": RESOURCE_GROUP,
    "Fabric:WorkspaceName": WORKSPACE_NAME,
    "Fabric:DatabaseName": DATABASE_NAME,
}


class SecretStore(Protocol):
    def list_secret_names(self, vault: str) -> list[str]: ...

    def get_secret(self, vault: str, name: str) -> str | None: ...

    def set_secret(self, vault: str, name: str, value: str) -> None: ...


@dataclass(frozen=True)
class SecretStatus:
    key: str
    secret_name: str
    is_set: bool


def secret_name_for(key: str, secret_names: Mapping[str, str] = SECRET_NAMES) -> str:
    """
    Translate a key into a Key Vault secret name.

    Raises:
        ValueError: If the result is not a valid Key Vault secret name.
    """
    key = key.strip()
    if key in secret_names:
        return secret_names[key]
    if key in COLON_KEY_ALIASES:
        return secret_names[COLON_KEY_ALIASES[key]]
    if ":" in key:
        key = "-".join(_CAMEL_BOUNDARY.sub("-", part) for part in key.split(":"))
        key = key.upper()
    if not _VALID_SECRET_NAME.match(key):
        raise ValueError(
            f"'{key}' is not a valid Key Vault secret name (letters, digits and '-' only)."
        )
    return key


def secret_status(
    store: SecretStore,
    vault: str,
    secret_names: Mapping[str, str] = SECRET_NAMES,
) -> list[SecretStatus]:
    """Report which known secrets are present in the vault (values are not read)."""
    present = set(store.list_secret_names(vault))
    return [
        SecretStatus(key=key, secret_name=name, is_set=name in present)
        for key, name in secret_names.items()
    ]


def export_environment(config: ConfigurationSource) -> list[str]:
    """Render `export NAME='value'` lines for the resolved configuration."""
    return [
        f"export {name}={shlex.quote(value)}"
        for name, value in sorted(config.to_environment().items())
    ]
