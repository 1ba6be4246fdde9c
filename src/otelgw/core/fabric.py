"""Fabric artifact deployment: workspace, KQL database and OTEL tables.

The deployer walks a fixed sequence of stages:

    UNAUTHENTICATED -> AUTHENTICATED -> CAPACITY_RESOLVED -> WORKSPACE_ENSURED
        -> DATABASE_ENSURED -> TABLES_APPLIED -> VERIFIED

A step may be repeated once its prerequisites are met (all steps are
idempotent), but a step can never run before the stage it depends on.
Authentication and capacity resolution are fatal on failure; a failing table
is recorded and the remaining tables are still applied; verification only
produces warnings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Protocol

from otelgw.core.adapters.process import CommandResult
from otelgw.core.auth import AuthState, authentication_state, fabric_auth_error
from otelgw.core.credentials import ConfigurationSource
from otelgw.core.errors import CommandError, ResourceNotFoundError
from otelgw.core.tables import TableDefinition

FABRIC_CAPACITY_TYPE = "Microsoft.Fabric/capacities"
WORKSPACE_DESCRIPTION = "Workspace for OpenTelemetry observability data"
DATABASE_DESCRIPTION = "KQL Database for OpenTelemetry observability data"
FABRIC_PORTAL_URL = "https://fabric.microsoft.com"


class DeployerStage(str, Enum):
    UNAUTHENTICATED = "Unauthenticated"
    AUTHENTICATED = "Authenticated"
    CAPACITY_RESOLVED = "CapacityResolved"
    WORKSPACE_ENSURED = "WorkspaceEnsured"
    DATABASE_ENSURED = "DatabaseEnsured"
    TABLES_APPLIED = "TablesApplied"
    VERIFIED = "Verified"

    @property
    def rank(self) -> int:
        return _STAGE_ORDER.index(self)


_STAGE_ORDER = list(DeployerStage)


class EnsureResult(str, Enum):
    """Outcome of a check-then-create step. Both values are success."""

    CREATED = "CREATED"
    ALREADY_EXISTS = "ALREADY_EXISTS"


class AuthOutcome(str, Enum):
    ALREADY_AUTHENTICATED = "ALREADY_AUTHENTICATED"
    LOGGED_IN = "LOGGED_IN"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class TableApplyResult:
    """Result for a single table schema command."""

    table: str
    ok: bool
    error: str | None = None


@dataclass(frozen=True)
class ApplyReport:
    results: list[TableApplyResult] = field(default_factory=list)

    @property
    def failed(self) -> list[TableApplyResult]:
        return [r for r in self.results if not r.ok]

    @property
    def succeeded(self) -> list[TableApplyResult]:
        return [r for r in self.results if r.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def partial(self) -> bool:
        """Some tables failed but at least one was applied."""
        return bool(self.failed) and bool(self.succeeded)


@dataclass(frozen=True)
class VerificationReport:
    """What the operator sees after deployment. Failures are warnings only."""

    workspaces: list[str] = field(default_factory=list)
    databases: list[str] = field(default_factory=list)
    tables: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class FabricAdapter(Protocol):
    """Interface for Fabric CLI operations used by the deployer."""

    def auth_status(self) -> CommandResult: ...

    def login_service_principal(
        self, client_id: str, client_secret: str, tenant_id: str
    ) -> CommandResult: ...

    def login_interactive(self) -> CommandResult: ...

    def clear_cache(self) -> CommandResult: ...

    def list_workspaces(self) -> list[dict[str, Any]]: ...

    def create_workspace(self, name: str, capacity: str, description: str) -> None: ...

    def use_workspace(self, name: str) -> None: ...

    def list_databases(self) -> list[dict[str, Any]]: ...

    def create_database(self, name: str, description: str) -> None: ...

    def use_database(self, name: str) -> None: ...

    def execute_kql(self, text: str) -> CommandResult: ...

    def query_kql(self, query: str) -> list[dict[str, Any]]: ...


class CapacityAdapter(Protocol):
    def list_resources(self, resource_group: str, resource_type: str) -> list[dict[str, Any]]:
        ...


def _display_names(items: Iterable[dict[str, Any]]) -> list[str]:
    return [str(i.get("displayName") or i.get("name") or "") for i in items]


def is_authenticated(fabric: FabricAdapter) -> bool:
    return authentication_state(fabric.auth_status()) == AuthState.AUTHENTICATED


def authenticate(
    fabric: FabricAdapter,
    config: ConfigurationSource,
    *,
    force_login: bool = False,
) -> AuthOutcome:
    """
    Make sure the Fabric CLI has a usable session.

    Service principal login is used when the configuration carries client
    id, secret and tenant; otherwise the interactive browser login. The
    session is then checked; on failure the CLI cache is cleared and the
    status is checked once more. A second failure raises AuthError.
    """
    if not force_login and is_authenticated(fabric):
        return AuthOutcome.ALREADY_AUTHENTICATED

    if config.has_service_principal:
        fabric.login_service_principal(
            config.client_id or "", config.client_secret or "", config.tenant_id or ""
        )
    else:
        fabric.login_interactive()

    status = fabric.auth_status()
    if authentication_state(status) == AuthState.AUTHENTICATED:
        return AuthOutcome.LOGGED_IN

    # The second attempt differs from the first: stale tokens are dropped.
    fabric.clear_cache()
    status = fabric.auth_status()
    if authentication_state(status) == AuthState.AUTHENTICATED:
        return AuthOutcome.LOGGED_IN

    raise fabric_auth_error(status)


def resolve_capacity(
    azure: CapacityAdapter,
    resource_group: str,
) -> str:
    """
    Return the name of the first Fabric capacity in the resource group.

    Raises:
        ResourceNotFoundError: If the group holds no Fabric capacity, which
                               means the infrastructure is not deployed yet.
    """
    for resource in azure.list_resources(resource_group, FABRIC_CAPACITY_TYPE):
        name = resource.get("name")
        if name:
            return str(name)
    raise ResourceNotFoundError(
        f"No Fabric capacity found in resource group '{resource_group}'. "
        "Deploy the Azure infrastructure first."
    )


def ensure_workspace(
    fabric: FabricAdapter,
    name: str,
    *,
    capacity: str,
    create: bool = True,
) -> EnsureResult:
    """
    Create the workspace on `capacity` unless one with this exact display name exists.

    With `create=False` an absent workspace raises ResourceNotFoundError.
    """
    if name in _display_names(fabric.list_workspaces()):
        return EnsureResult.ALREADY_EXISTS
    if not create:
        raise ResourceNotFoundError(
            f"Workspace '{name}' does not exist and workspace creation is disabled."
        )
    fabric.create_workspace(name, capacity, WORKSPACE_DESCRIPTION)
    return EnsureResult.CREATED


def ensure_database(fabric: FabricAdapter, workspace: str, name: str) -> EnsureResult:
    """Create the KQL database inside `workspace` unless it already exists."""
    fabric.use_workspace(workspace)
    if name in _display_names(fabric.list_databases()):
        return EnsureResult.ALREADY_EXISTS
    fabric.create_database(name, DATABASE_DESCRIPTION)
    return EnsureResult.CREATED


def apply_tables(
    fabric: FabricAdapter,
    database: str,
    definitions: Iterable[TableDefinition],
) -> ApplyReport:
    """
    Execute each table's schema command against `database`.

    Each definition's text is passed to the executor unchanged. A failing
    table is recorded and the next table is still attempted.
    """
    fabric.use_database(database)
    results: list[TableApplyResult] = []
    for definition in definitions:
        try:
            result = fabric.execute_kql(definition.text)
        except CommandError as exc:
            results.append(TableApplyResult(definition.name, ok=False, error=str(exc)))
            continue
        if result.ok:
            results.append(TableApplyResult(definition.name, ok=True))
        else:
            error = result.output or f"exit code {result.returncode}"
            results.append(TableApplyResult(definition.name, ok=False, error=error))
    return ApplyReport(results=results)


def verify(fabric: FabricAdapter, workspace: str, database: str) -> VerificationReport:
    """List workspaces, databases and tables for the operator. Never raises CommandError."""
    warnings: list[str] = []
    workspaces: list[str] = []
    databases: list[str] = []
    tables: list[str] = []

    try:
        workspaces = _display_names(fabric.list_workspaces())
    except CommandError as exc:
        warnings.append(f"Could not list workspaces: {exc}")

    try:
        fabric.use_workspace(workspace)
        databases = _display_names(fabric.list_databases())
    except CommandError as exc:
        warnings.append(f"Could not list databases in '{workspace}': {exc}")

    try:
        fabric.use_database(database)
        rows = fabric.query_kql(".show tables")
        tables = [str(r.get("TableName")) for r in rows if r.get("TableName")]
    except CommandError as exc:
        warnings.append(f"Could not list tables in '{database}': {exc}")

    return VerificationReport(
        workspaces=workspaces, databases=databases, tables=tables, warnings=warnings
    )


class FabricArtifactDeployer:
    """Drives the Fabric steps in order and remembers what each step resolved."""

    def __init__(self, fabric: FabricAdapter, azure: CapacityAdapter) -> None:
        self.fabric = fabric
        self.azure = azure
        self.stage = DeployerStage.UNAUTHENTICATED
        self.capacity: str | None = None
        self.workspace: str | None = None
        self.database: str | None = None

    def _require(self, stage: DeployerStage, step: str) -> None:
        if self.stage.rank < stage.rank:
            raise RuntimeError(
                f"Cannot {step} in stage {self.stage.value}; requires {stage.value}."
            )

    def _reach(self, stage: DeployerStage) -> None:
        if stage.rank > self.stage.rank:
            self.stage = stage

    def authenticate(
        self, config: ConfigurationSource, *, skip: bool = False
    ) -> AuthOutcome:
        """Authenticate, or trust the existing session when `skip` is set."""
        outcome = AuthOutcome.SKIPPED if skip else authenticate(self.fabric, config)
        self._reach(DeployerStage.AUTHENTICATED)
        return outcome

    def resolve_capacity(self, resource_group: str, *, capacity: str | None = None) -> str:
        """Use an explicit capacity name, or look one up in the resource group."""
        self._require(DeployerStage.AUTHENTICATED, "resolve capacity")
        self.capacity = capacity or resolve_capacity(self.azure, resource_group)
        self._reach(DeployerStage.CAPACITY_RESOLVED)
        return self.capacity

    def ensure_workspace(self, name: str, *, create: bool = True) -> EnsureResult:
        self._require(DeployerStage.CAPACITY_RESOLVED, "ensure workspace")
        result = ensure_workspace(
            self.fabric, name, capacity=self.capacity or "", create=create
        )
        self.workspace = name
        self._reach(DeployerStage.WORKSPACE_ENSURED)
        return result

    def ensure_database(self, name: str) -> EnsureResult:
        self._require(DeployerStage.WORKSPACE_ENSURED, "ensure database")
        result = ensure_database(self.fabric, self.workspace or "", name)
        self.database = name
        self._reach(DeployerStage.DATABASE_ENSURED)
        return result

    def apply_tables(self, definitions: Iterable[TableDefinition]) -> ApplyReport:
        self._require(DeployerStage.DATABASE_ENSURED, "apply tables")
        report = apply_tables(self.fabric, self.database or "", definitions)
        self._reach(DeployerStage.TABLES_APPLIED)
        return report

    def verify(self) -> VerificationReport:
        self._require(DeployerStage.TABLES_APPLIED, "verify")
        report = verify(self.fabric, self.workspace or "", self.database or "")
        self._reach(DeployerStage.VERIFIED)
        return report
