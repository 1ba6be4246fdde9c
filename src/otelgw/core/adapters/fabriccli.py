from __future__ import annotations

import os
import tempfile
from typing import Any, Mapping

from otelgw.core.adapters.process import (
    CommandHook,
    CommandResult,
    expect_json,
    run_command,
)
from otelgw.core.errors import CommandError


class FabricCliAdapter:
    """Adapter around the Microsoft Fabric CLI (`fab`)."""

    def __init__(
        self,
        *,
        env: Mapping[str, str] | None = None,
        on_command: CommandHook | None = None,
    ) -> None:
        self.env = dict(env or {})
        self.on_command = on_command

    def with_env(self, env: Mapping[str, str]) -> FabricCliAdapter:
        """Return an adapter of the same kind whose child processes get `env`."""
        return type(self)(env=env, on_command=self.on_command)

    def _fab(self, *args: str, redact: tuple[str, ...] = ()) -> CommandResult:
        return run_command(
            ["fab", *args],
            env=self.env,
            redact=redact,
            on_command=self.on_command,
        )

    def _checked(self, result: CommandResult, what: str) -> CommandResult:
        if not result.ok:
            raise CommandError(
                f"Failed to {what}: {result.stderr or result.stdout}",
                command=result.args,
            )
        return result

    # -- authentication ---------------------------------------------------

    def auth_status(self) -> CommandResult:
        """Return the raw `fab auth status` result; callers classify it."""
        return self._fab("auth", "status")

    def login_service_principal(
        self, client_id: str, client_secret: str, tenant_id: str
    ) -> CommandResult:
        return self._fab(
            "auth",
            "login",
            "-u",
            client_id,
            "-p",
            client_secret,
            "--tenant",
            tenant_id,
            redact=(client_secret,),
        )

    def login_interactive(self) -> CommandResult:
        """Start the browser login flow; blocks until the operator finishes."""
        return self._fab("auth", "login")

    def clear_cache(self) -> CommandResult:
        return self._fab("config", "clear-cache")

    # -- workspaces / databases ------------------------------------------

    def list_workspaces(self) -> list[dict[str, Any]]:
        data = expect_json(
            self._fab("workspace", "list", "--output", "json"), "list Fabric workspaces"
        )
        return _items(data)

    def create_workspace(self, name: str, capacity: str, description: str) -> None:
        self._checked(
            self._fab(
                "workspace",
                "create",
                "--display-name",
                name,
                "--description",
                description,
                "--capacity-id",
                capacity,
            ),
            f"create workspace '{name}'",
        )

    def use_workspace(self, name: str) -> None:
        self._checked(
            self._fab("workspace", "use", "--name", name),
            f"select workspace '{name}'",
        )

    def list_databases(self) -> list[dict[str, Any]]:
        data = expect_json(
            self._fab("kqldatabase", "list", "--output", "json"), "list KQL databases"
        )
        return _items(data)

    def create_database(self, name: str, description: str) -> None:
        self._checked(
            self._fab(
                "kqldatabase",
                "create",
                "--display-name",
                name,
                "--description",
                description,
            ),
            f"create KQL database '{name}'",
        )

    def use_database(self, name: str) -> None:
        self._checked(
            self._fab("kqldatabase", "use", "--name", name),
            f"select KQL database '{name}'",
        )

    # -- KQL --------------------------------------------------------------

    def execute_kql(self, text: str) -> CommandResult:
        """
        Execute a KQL script against the selected database.

        The text is written unchanged to a temporary `.kql` file which is
        removed after the call.
        """
        fd, path = tempfile.mkstemp(suffix=".kql")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                fh.write(text)
            return self._fab("kql", "execute", "--file", path)
        finally:
            if os.path.exists(path):
                os.remove(path)

    def query_kql(self, query: str) -> list[dict[str, Any]]:
        """Run a KQL query or management command and return its rows."""
        data = expect_json(
            self._fab("kql", "execute", "--query", query, "--output", "json"),
            f"run KQL '{query}'",
        )
        return _items(data)


def _items(data: Any) -> list[dict[str, Any]]:
    """Accept either a bare JSON list or a `{"value": [...]}` envelope."""
    if isinstance(data, dict):
        data = data.get("value", [])
    if not isinstance(data, list):
        raise CommandError(f"Unexpected Fabric CLI response shape: {type(data).__name__}")
    return [item for item in data if isinstance(item, dict)]
