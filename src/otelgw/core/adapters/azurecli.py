from __future__ import annotations

from typing import Any, Mapping

from otelgw.core.adapters.process import (
    CommandHook,
    CommandResult,
    expect_json,
    run_command,
)
from otelgw.core.errors import CommandError

_SECRET_NOT_FOUND_MARKERS = ("secretnotfound", "was not found in this key vault")


class AzureCliAdapter:
    """Adapter around the Azure CLI (`az`) commands used by the workflow."""

    def __init__(
        self,
        *,
        env: Mapping[str, str] | None = None,
        on_command: CommandHook | None = None,
    ) -> None:
        """Create an adapter; `env` is passed to every child `az` process."""
        self.env = dict(env or {})
        self.on_command = on_command

    def with_env(self, env: Mapping[str, str]) -> AzureCliAdapter:
        """Return an adapter of the same kind whose child processes get `env`."""
        return type(self)(env=env, on_command=self.on_command)

    def _az(self, *args: str, redact: tuple[str, ...] = ()) -> CommandResult:
        return run_command(
            ["az", *args],
            env=self.env,
            redact=redact,
            on_command=self.on_command,
        )

    def account(self) -> CommandResult:
        """Return the raw `az account show` result (non-zero when logged out)."""
        return self._az("account", "show", "--output", "json")

    def set_subscription(self, subscription_id: str) -> None:
        """Select the active subscription for subsequent calls."""
        result = self._az("account", "set", "--subscription", subscription_id)
        if not result.ok:
            raise CommandError(
                f"Failed to select subscription '{subscription_id}': {result.stderr}",
                command=result.args,
            )

    def list_key_vaults(self) -> list[str]:
        """Return the names of all Key Vaults visible in the subscription."""
        data = expect_json(
            self._az("keyvault", "list", "--query", "[].name", "--output", "json"),
            "list Key Vaults",
        )
        return [str(name) for name in data or [] if name]

    def create_resource_group(self, name: str, location: str) -> None:
        result = self._az(
            "group", "create", "--name", name, "--location", location, "--output", "json"
        )
        expect_json(result, f"create resource group '{name}'")

    def create_key_vault(self, name: str, resource_group: str, location: str) -> None:
        result = self._az(
            "keyvault",
            "create",
            "--name",
            name,
            "--resource-group",
            resource_group,
            "--location",
            location,
            "--enable-rbac-authorization",
            "true",
            "--output",
            "json",
        )
        expect_json(result, f"create Key Vault '{name}'")

    def get_secret(self, vault: str, name: str) -> str | None:
        """Return a secret value, or None when the secret does not exist."""
        result = self._az(
            "keyvault",
            "secret",
            "show",
            "--vault-name",
            vault,
            "--name",
            name,
            "--query",
            "value",
            "--output",
            "tsv",
        )
        if result.ok:
            return result.stdout or None
        if any(m in result.stderr.lower() for m in _SECRET_NOT_FOUND_MARKERS):
            return None
        raise CommandError(
            f"Failed to read secret '{name}' from Key Vault '{vault}': {result.stderr}",
            command=result.args,
        )

    def set_secret(self, vault: str, name: str, value: str) -> None:
        result = self._az(
            "keyvault",
            "secret",
            "set",
            "--vault-name",
            vault,
            "--name",
            name,
            "--value",
            value,
            "--output",
            "none",
            redact=(value,),
        )
        if not result.ok:
            raise CommandError(
                f"Failed to store secret '{name}' in Key Vault '{vault}': {result.stderr}",
                command=["az", "keyvault", "secret", "set", "--name", name],
            )

    def list_secret_names(self, vault: str) -> list[str]:
        data = expect_json(
            self._az(
                "keyvault",
                "secret",
                "list",
                "--vault-name",
                vault,
                "--query",
                "[].name",
                "--output",
                "json",
            ),
            f"list secrets in Key Vault '{vault}'",
        )
        return [str(name) for name in data or [] if name]

    def user_object_id(self, email: str) -> str | None:
        """Look up a directory user's object id by email / UPN."""
        result = self._az(
            "ad", "user", "show", "--id", email, "--query", "id", "--output", "tsv"
        )
        if not result.ok:
            return None
        return result.stdout or None

    def signed_in_user_object_id(self) -> str | None:
        """Return the object id of the signed-in user (None for service principals)."""
        result = self._az(
            "ad", "signed-in-user", "show", "--query", "id", "--output", "tsv"
        )
        if not result.ok:
            return None
        return result.stdout or None

    def deployment_what_if(
        self, name: str, location: str, template_file: str, parameters_file: str
    ) -> CommandResult:
        """Preview a subscription-scoped deployment without changing anything."""
        return self._az(
            "deployment",
            "sub",
            "what-if",
            "--name",
            name,
            "--location",
            location,
            "--template-file",
            template_file,
            "--parameters",
            f"@{parameters_file}",
            "--no-pretty-print",
            "--output",
            "json",
        )

    def deployment_create(
        self, name: str, location: str, template_file: str, parameters_file: str
    ) -> CommandResult:
        """Run a subscription-scoped deployment and block until it finishes."""
        return self._az(
            "deployment",
            "sub",
            "create",
            "--name",
            name,
            "--location",
            location,
            "--template-file",
            template_file,
            "--parameters",
            f"@{parameters_file}",
            "--output",
            "json",
        )

    def deployment_show(self, name: str) -> CommandResult:
        return self._az("deployment", "sub", "show", "--name", name, "--output", "json")

    def list_resources(self, resource_group: str, resource_type: str) -> list[dict[str, Any]]:
        """Return resources of one type in a resource group."""
        data = expect_json(
            self._az(
                "resource",
                "list",
                "--resource-group",
                resource_group,
                "--resource-type",
                resource_type,
                "--output",
                "json",
            ),
            f"list {resource_type} resources in '{resource_group}'",
        )
        return [r for r in data or [] if isinstance(r, dict)]

    def list_eventhub_namespaces(self, resource_group: str) -> list[str]:
        data = expect_json(
            self._az(
                "eventhubs",
                "namespace",
                "list",
                "--resource-group",
                resource_group,
                "--query",
                "[].name",
                "--output",
                "json",
            ),
            f"list Event Hub namespaces in '{resource_group}'",
        )
        return [str(name) for name in data or [] if name]

    def list_eventhubs(self, resource_group: str, namespace: str) -> list[str]:
        data = expect_json(
            self._az(
                "eventhubs",
                "eventhub",
                "list",
                "--resource-group",
                resource_group,
                "--namespace-name",
                namespace,
                "--query",
                "[].name",
                "--output",
                "json",
            ),
            f"list Event Hubs in namespace '{namespace}'",
        )
        return [str(name) for name in data or [] if name]

    def send_event(
        self, resource_group: str, namespace: str, event_hub: str, body: str
    ) -> None:
        """Publish one event body to an Event Hub."""
        result = self._az(
            "eventhubs",
            "eventhub",
            "send",
            "--resource-group",
            resource_group,
            "--namespace-name",
            namespace,
            "--name",
            event_hub,
            "--body",
            body,
        )
        if not result.ok:
            raise CommandError(
                f"Failed to send event to '{namespace}/{event_hub}': "
                f"{result.stderr or result.stdout}",
                command=result.args,
            )
