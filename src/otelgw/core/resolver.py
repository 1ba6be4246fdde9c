"""Credential resolution: environment, then Key Vault, then interactive prompts.

The resolver short-circuits on the first source that carries both a
subscription id and a tenant id. Values from different sources are never
merged. Failures inside one stage (vault not found, a secret read that
errors out) fall through to the next stage, except that an unauthenticated
Azure CLI is fatal as soon as the Key Vault stage is reached.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass, field
from typing import Mapping, Protocol

from otelgw.core.adapters.process import CommandResult
from otelgw.core.auth import ensure_azure_login
from otelgw.core.credentials import (
    CLIENT_ID,
    CLIENT_SECRET,
    KEY_VAULT_ENV_VAR,
    SUBSCRIPTION_ID,
    TENANT_ID,
    ConfigSource,
    ConfigurationSource,
    from_environment,
)
from otelgw.core.errors import CommandError, ResourceNotFoundError
from otelgw.core.settings import ProjectSettings

VAULT_NAME_PATTERN = re.compile(r"platform|shared|fabric.*otel|otel.*fabric", re.IGNORECASE)


class KeyVaultAdapter(Protocol):
    """Interface for the Azure CLI calls the resolver needs."""

    def account(self) -> CommandResult: ...

    def list_key_vaults(self) -> list[str]: ...

    def get_secret(self, vault: str, name: str) -> str | None: ...

    def set_secret(self, vault: str, name: str, value: str) -> None: ...

    def create_resource_group(self, name: str, location: str) -> None: ...

    def create_key_vault(self, name: str, resource_group: str, location: str) -> None: ...


class Prompter(Protocol):
    """Interface for asking the operator for a value."""

    def ask(self, message: str, *, secret: bool = False, required: bool = True) -> str | None:
        ...


@dataclass(frozen=True)
class SourceAttempt:
    """One configuration source that was tried, and why it was rejected."""

    source: ConfigSource
    ok: bool
    detail: str = ""


@dataclass(frozen=True)
class SecretFetch:
    """Secrets read from a vault plus the names that were not present."""

    values: dict[str, str]
    missing: list[str]


@dataclass(frozen=True)
class Resolution:
    """Result of credential resolution."""

    config: ConfigurationSource
    attempts: list[SourceAttempt] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    vault_name: str | None = None
    vault_created: bool = False

    @property
    def source(self) -> ConfigSource:
        return self.config.source


# (logical key, prompt, hidden input, required)
_PROMPTS: tuple[tuple[str, str, bool, bool], ...] = (
    (SUBSCRIPTION_ID, "Azure subscription id", False, True),
    (TENANT_ID, "Azure tenant id", False, True),
    (CLIENT_ID, "Service principal client id (optional)", False, False),
    (CLIENT_SECRET, "Service principal client secret (optional)", True, False),
)


def detect_key_vault(names: list[str]) -> str | None:
    """Return the first vault name matching the platform / shared / otel naming."""
    for name in names:
        if VAULT_NAME_PATTERN.search(name):
            return name
    return None


def find_key_vault(
    azure: KeyVaultAdapter,
    *,
    explicit: str | None,
    environ: Mapping[str, str],
    settings: ProjectSettings,
) -> str | None:
    """
    Locate the Key Vault to read configuration from.

    Order: explicit name, `AZURE_KEY_VAULT_NAME`, the project file's
    `keyVault.vaultName`, then auto-detection over all vault names.
    """
    for candidate in (
        explicit,
        environ.get(KEY_VAULT_ENV_VAR),
        settings.key_vault.vault_name,
    ):
        if candidate and candidate.strip():
            return candidate.strip()
    return detect_key_vault(azure.list_key_vaults())


def fetch_key_vault_secrets(
    azure: KeyVaultAdapter,
    vault: str,
    secret_names: Mapping[str, str],
) -> SecretFetch:
    """
    Read each named secret by exact name.

    Missing secrets are collected, not raised. Any other failure of a read
    raises CommandError and ends the Key Vault stage.
    """
    values: dict[str, str] = {}
    missing: list[str] = []
    for key, secret_name in secret_names.items():
        value = azure.get_secret(vault, secret_name)
        if value:
            values[key] = value
        else:
            missing.append(secret_name)
    return SecretFetch(values=values, missing=missing)


def prompt_configuration(prompter: Prompter) -> ConfigurationSource:
    """Ask the operator for the required fields; input is not validated further."""
    values: dict[str, str | None] = {}
    for key, message, secret, required in _PROMPTS:
        values[key] = prompter.ask(message, secret=secret, required=required)
    return ConfigurationSource(source=ConfigSource.INTERACTIVE, values=values)


def _new_vault_name() -> str:
    return f"kv-fabric-otel-{secrets.token_hex(3)}"


def _store_in_vault(
    azure: KeyVaultAdapter,
    vault: str,
    config: ConfigurationSource,
    secret_names: Mapping[str, str],
) -> list[str]:
    """Write prompted values into a freshly created vault; return warnings."""
    warnings: list[str] = []
    for key, value in config.values.items():
        secret_name = secret_names.get(key)
        if not secret_name:
            continue
        try:
            azure.set_secret(vault, secret_name, value)
        except CommandError as exc:
            warnings.append(str(exc))
    return warnings


def resolve_configuration(
    azure: KeyVaultAdapter,
    prompter: Prompter,
    *,
    environ: Mapping[str, str],
    settings: ProjectSettings,
    vault_name: str | None = None,
    force_vault: bool = False,
    create_vault: bool = False,
    location: str | None = None,
) -> Resolution:
    """
    Produce exactly one ConfigurationSource.

    Args:
        azure: Azure CLI adapter used for the Key Vault stage.
        prompter: Used for the interactive fallback.
        environ: Environment variables to read in the first stage.
        settings: Project configuration (vault name, secret names).
        vault_name: Explicit Key Vault name.
        force_vault: Skip the environment stage.
        create_vault: Create a vault when none is found and store the
                      prompted values in it.
        location: Region for a vault created by `create_vault`.

    Returns:
        Resolution with the selected configuration and the rejected attempts.

    Raises:
        AuthError: If the Azure CLI is not logged in when the Key Vault stage
                   is reached.
        ResourceNotFoundError: If `force_vault` is set, no vault is found and
                               `create_vault` is not set.
    """
    attempts: list[SourceAttempt] = []
    warnings: list[str] = []

    if not force_vault:
        env_config = from_environment(environ)
        if env_config.has_credentials:
            attempts.append(SourceAttempt(ConfigSource.ENVIRONMENT, True))
            return Resolution(config=env_config, attempts=attempts)
        attempts.append(
            SourceAttempt(
                ConfigSource.ENVIRONMENT,
                False,
                "missing " + ", ".join(env_config.missing_required()),
            )
        )

    ensure_azure_login(azure)

    secret_names = settings.key_vault.secrets
    vault: str | None = None
    created = False
    lookup_failed = False
    try:
        vault = find_key_vault(
            azure, explicit=vault_name, environ=environ, settings=settings
        )
    except CommandError as exc:
        lookup_failed = True
        attempts.append(SourceAttempt(ConfigSource.KEY_VAULT, False, str(exc)))

    # A vault that could not be listed may still exist; never create a second one.
    if vault is None and create_vault and not lookup_failed:
        vault = vault_name or settings.key_vault.vault_name or _new_vault_name()
        resource_group = (
            settings.key_vault.resource_group_name or settings.azure.resource_group_name
        )
        region = location or settings.azure.location
        azure.create_resource_group(resource_group, region)
        azure.create_key_vault(vault, resource_group, region)
        created = True
        attempts.append(
            SourceAttempt(ConfigSource.KEY_VAULT, False, f"created empty vault '{vault}'")
        )
    elif vault is None:
        if force_vault and not lookup_failed:
            raise ResourceNotFoundError(
                "No Key Vault found. Pass --vault-name, set "
                f"{KEY_VAULT_ENV_VAR}, or use --create-vault."
            )
        if not attempts or attempts[-1].source != ConfigSource.KEY_VAULT:
            attempts.append(SourceAttempt(ConfigSource.KEY_VAULT, False, "no Key Vault found"))

    if vault is not None and not created:
        try:
            fetched = fetch_key_vault_secrets(azure, vault, secret_names)
        except CommandError as exc:
            attempts.append(SourceAttempt(ConfigSource.KEY_VAULT, False, str(exc)))
        else:
            warnings.extend(
                f"Secret '{name}' not found in Key Vault '{vault}'"
                for name in fetched.missing
            )
            vault_config = ConfigurationSource(
                source=ConfigSource.KEY_VAULT, values=fetched.values, vault_name=vault
            )
            if vault_config.has_credentials:
                attempts.append(SourceAttempt(ConfigSource.KEY_VAULT, True, vault))
                return Resolution(
                    config=vault_config,
                    attempts=attempts,
                    warnings=warnings,
                    vault_name=vault,
                )
            attempts.append(
                SourceAttempt(
                    ConfigSource.KEY_VAULT,
                    False,
                    "missing " + ", ".join(vault_config.missing_required()),
                )
            )

    interactive = prompt_configuration(prompter)
    attempts.append(SourceAttempt(ConfigSource.INTERACTIVE, True))
    if created and vault is not None:
        warnings.extend(_store_in_vault(azure, vault, interactive, secret_names))

    return Resolution(
        config=interactive,
        attempts=attempts,
        warnings=warnings,
        vault_name=vault,
        vault_created=created,
    )
