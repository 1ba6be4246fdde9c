"""Deployment workflow commands: resolve, infra, fabric, deploy and validate."""

from __future__ import annotations

from pathlib import Path

import typer

from otelgw.cli.common.context import AppContext
from otelgw.cli.common.exits import die, exit_from_exc, ok_exit
from otelgw.cli.common.options import (
    AdminEmailOpt,
    CapacityOpt,
    CreateVaultOpt,
    DatabaseOpt,
    ExportOpt,
    ForceVaultOpt,
    LocationOpt,
    ResourceGroupOpt,
    SkipAuthOpt,
    SkipWorkspaceCreationOpt,
    SubscriptionOpt,
    TablesDirOpt,
    TemplateFileOpt,
    VaultNameOpt,
    WhatIfOpt,
    WorkspaceOpt,
)
from otelgw.cli.common.output import out
from otelgw.core.auth import ensure_azure_login
from otelgw.core.credentials import (
    CAPACITY_ENV_VAR,
    LOCATION_ENV_VAR,
    ConfigurationSource,
    from_environment,
    mask_secret,
)
from otelgw.core.deployment import (
    ResourceNames,
    WhatIfResult,
    deploy as deploy_infrastructure,
    derive_resource_names,
)
from otelgw.core.errors import OtelGatewayError
from otelgw.core.fabric import FABRIC_PORTAL_URL, ApplyReport, FabricArtifactDeployer
from otelgw.core.resolver import resolve_configuration
from otelgw.core.secretstore import export_environment
from otelgw.core.tables import TableDefinition, load_table_definitions
from otelgw.core.validation import validate_deployment


def _location(appctx: AppContext, location: str | None) -> str:
    return (
        location
        or appctx.environ.get(LOCATION_ENV_VAR)
        or appctx.settings.azure.location
    )


def _resolve_or_exit(
    appctx: AppContext,
    *,
    vault_name: str | None,
    force_vault: bool,
    create_vault: bool,
    location: str,
    subscription_id: str | None = None,
) -> ConfigurationSource:
    """Resolve the configuration, report where it came from and bind the adapters."""
    out.header("Configuration")
    try:
        resolution = resolve_configuration(
            appctx.azure,
            appctx.prompter,
            environ=appctx.environ,
            settings=appctx.settings,
            vault_name=vault_name,
            force_vault=force_vault,
            create_vault=create_vault,
            location=location,
        )
    except OtelGatewayError as exc:
        exit_from_exc(exc)

    out.attempts_table(resolution.attempts)
    for warning in resolution.warnings:
        out.warn(warning)
    if resolution.vault_created:
        out.success(f"Created Key Vault '{resolution.vault_name}'")

    config = resolution.config.with_overrides(subscription_id=subscription_id)
    appctx.bind(config)
    out.success(f"Configuration loaded from {config.source.value}")
    return config


def _names(
    appctx: AppContext,
    config: ConfigurationSource,
    *,
    resource_group: str | None = None,
    workspace: str | None = None,
    database: str | None = None,
) -> ResourceNames:
    return derive_resource_names(
        appctx.settings,
        config,
        resource_group=resource_group,
        workspace=workspace,
        database=database,
        capacity=appctx.environ.get(CAPACITY_ENV_VAR),
    )


def _definitions_or_exit(tables_dir: Path | None) -> list[TableDefinition]:
    try:
        return load_table_definitions(tables_dir)
    except (OSError, ValueError) as exc:
        die(str(exc), code=2)


def _run_infra(
    appctx: AppContext,
    config: ConfigurationSource,
    names: ResourceNames,
    *,
    location: str,
    what_if: bool,
    template_file: Path,
    admin_email: str | None,
) -> bool:
    """Preview or deploy the infrastructure. Returns True if something was deployed."""
    out.header("Azure infrastructure")
    out.kv(
        {
            "Location": location,
            "Resource group": names.resource_group,
            "Fabric capacity": names.capacity,
            "Event Hub namespace": names.event_hub_namespace,
            "Collector container": names.container_group,
        }
    )

    try:
        ensure_azure_login(appctx.azure)
        if config.subscription_id:
            appctx.azure.set_subscription(config.subscription_id)
        label = "Previewing deployment..." if what_if else "Deploying infrastructure..."
        with out.status(label):
            result = deploy_infrastructure(
                appctx.azure,
                config,
                location=location,
                settings=appctx.settings,
                what_if=what_if,
                template_file=template_file,
                admin_email=admin_email,
                names=names,
            )
    except (OtelGatewayError, ValueError) as exc:
        exit_from_exc(exc)

    if isinstance(result, WhatIfResult):
        if result.changes:
            out.what_if_table(result.changes)
        else:
            out.info("No changes predicted.")
        out.info(f"What-if status: {result.status}")
        return False

    out.success(f"Deployment '{result.name}' {result.raw_state}")
    outputs = {
        key: value.get("value") if isinstance(value, dict) else value
        for key, value in result.outputs.items()
    }
    if outputs:
        out.kv(outputs)
    return True


def _run_fabric(
    appctx: AppContext,
    config: ConfigurationSource,
    names: ResourceNames,
    *,
    capacity: str | None,
    skip_auth: bool,
    skip_workspace_creation: bool,
    definitions: list[TableDefinition],
) -> tuple[FabricArtifactDeployer, ApplyReport]:
    """Walk the Fabric stages and report per-table results and verification."""
    deployer = FabricArtifactDeployer(appctx.fabric, appctx.azure)

    out.header("Fabric artifacts")
    try:
        with out.status("Authenticating with Fabric..."):
            auth = deployer.authenticate(config, skip=skip_auth)
        out.success(f"Fabric authentication: {auth.value.lower().replace('_', ' ')}")

        found = deployer.resolve_capacity(
            names.resource_group,
            capacity=capacity
            or appctx.environ.get(CAPACITY_ENV_VAR)
            or appctx.settings.fabric.capacity_name,
        )
        out.success(f"Fabric capacity: {found}")

        with out.status(f"Ensuring workspace '{names.workspace}'..."):
            ws = deployer.ensure_workspace(
                names.workspace, create=not skip_workspace_creation
            )
        out.success(f"Workspace '{names.workspace}': {ws.value.lower().replace('_', ' ')}")

        with out.status(f"Ensuring KQL database '{names.database}'..."):
            db = deployer.ensure_database(names.database)
        out.success(f"KQL database '{names.database}': {db.value.lower().replace('_', ' ')}")

        with out.status("Applying table definitions..."):
            report = deployer.apply_tables(definitions)
    except OtelGatewayError as exc:
        exit_from_exc(exc)

    out.table_results_table(report.results)
    if report.failed:
        out.warn(f"{len(report.failed)} of {len(report.results)} table(s) failed.")

    verification = deployer.verify()
    out.header("Verification")
    out.kv(
        {
            "Workspaces": ", ".join(verification.workspaces) or "-",
            "Databases": ", ".join(verification.databases) or "-",
            "Tables": ", ".join(verification.tables) or "-",
        }
    )
    for warning in verification.warnings:
        out.warn(warning)
    return deployer, report


def _finish(report: ApplyReport, done: str) -> None:
    """Report the outcome. Failed tables are warned about, never fatal."""
    failed = ", ".join(r.table for r in report.failed)
    if report.ok:
        out.success(done)
    elif report.partial:
        out.warn(f"Finished with failed tables: {failed}. Re-run to retry them.")
    else:
        out.warn(f"Finished, but no table was applied (failed: {failed}).")


def _connection_summary(
    deployer: FabricArtifactDeployer, names: ResourceNames, tables: list[str]
) -> None:
    out.header("Connection summary")
    out.kv(
        {
            "Resource group": names.resource_group,
            "Fabric capacity": deployer.capacity or names.capacity,
            "Workspace": deployer.workspace or names.workspace,
            "KQL database": deployer.database or names.database,
            "Tables": ", ".join(tables),
            "Fabric portal": FABRIC_PORTAL_URL,
        }
    )


def resolve(
    ctx: typer.Context,
    vault_name: str | None = VaultNameOpt,
    force_vault: bool = ForceVaultOpt,
    create_vault: bool = CreateVaultOpt,
    location: str | None = LocationOpt,
    export: bool = ExportOpt,
):
    """Resolve the configuration and show where it came from (secrets masked)."""
    appctx: AppContext = ctx.obj
    config = _resolve_or_exit(
        appctx,
        vault_name=vault_name,
        force_vault=force_vault,
        create_vault=create_vault,
        location=_location(appctx, location),
    )

    if export:
        for line in export_environment(config):
            out.plain(line)
        return

    values = config.to_environment()
    out.kv(
        {
            name: mask_secret(value) if "SECRET" in name else value
            for name, value in sorted(values.items())
        }
    )


def infra(
    ctx: typer.Context,
    location: str | None = LocationOpt,
    subscription_id: str | None = SubscriptionOpt,
    vault_name: str | None = VaultNameOpt,
    force_vault: bool = ForceVaultOpt,
    create_vault: bool = CreateVaultOpt,
    admin_email: str | None = AdminEmailOpt,
    what_if: bool = WhatIfOpt,
    template_file: Path = TemplateFileOpt,
    resource_group: str | None = ResourceGroupOpt,
    workspace: str | None = WorkspaceOpt,
    database: str | None = DatabaseOpt,
):
    """Deploy (or preview) the Azure infrastructure only."""
    appctx: AppContext = ctx.obj
    region = _location(appctx, location)
    config = _resolve_or_exit(
        appctx,
        vault_name=vault_name,
        force_vault=force_vault,
        create_vault=create_vault,
        location=region,
        subscription_id=subscription_id,
    )
    names = _names(
        appctx, config, resource_group=resource_group, workspace=workspace, database=database
    )
    deployed = _run_infra(
        appctx,
        config,
        names,
        location=region,
        what_if=what_if,
        template_file=template_file,
        admin_email=admin_email,
    )
    if not deployed:
        ok_exit("What-if preview complete; nothing was deployed.")


def fabric(
    ctx: typer.Context,
    subscription_id: str | None = SubscriptionOpt,
    vault_name: str | None = VaultNameOpt,
    force_vault: bool = ForceVaultOpt,
    resource_group: str | None = ResourceGroupOpt,
    workspace: str | None = WorkspaceOpt,
    database: str | None = DatabaseOpt,
    capacity: str | None = CapacityOpt,
    skip_auth: bool = SkipAuthOpt,
    skip_workspace_creation: bool = SkipWorkspaceCreationOpt,
    tables_dir: Path | None = TablesDirOpt,
):
    """Create the Fabric workspace, KQL database and OTEL tables."""
    appctx: AppContext = ctx.obj
    config = _resolve_or_exit(
        appctx,
        vault_name=vault_name,
        force_vault=force_vault,
        create_vault=False,
        location=_location(appctx, None),
        subscription_id=subscription_id,
    )
    names = _names(
        appctx, config, resource_group=resource_group, workspace=workspace, database=database
    )
    definitions = _definitions_or_exit(tables_dir)
    deployer, report = _run_fabric(
        appctx,
        config,
        names,
        capacity=capacity,
        skip_auth=skip_auth,
        skip_workspace_creation=skip_workspace_creation,
        definitions=definitions,
    )
    _connection_summary(deployer, names, [d.name for d in definitions])
    _finish(report, "Fabric artifacts deployed.")


def deploy(
    ctx: typer.Context,
    location: str | None = LocationOpt,
    subscription_id: str | None = SubscriptionOpt,
    vault_name: str | None = VaultNameOpt,
    force_vault: bool = ForceVaultOpt,
    create_vault: bool = CreateVaultOpt,
    admin_email: str | None = AdminEmailOpt,
    what_if: bool = WhatIfOpt,
    template_file: Path = TemplateFileOpt,
    resource_group: str | None = ResourceGroupOpt,
    workspace: str | None = WorkspaceOpt,
    database: str | None = DatabaseOpt,
    capacity: str | None = CapacityOpt,
    skip_auth: bool = SkipAuthOpt,
    skip_workspace_creation: bool = SkipWorkspaceCreationOpt,
    tables_dir: Path | None = TablesDirOpt,
):
    """Run the whole workflow: configuration, infrastructure, then Fabric artifacts."""
    appctx: AppContext = ctx.obj
    region = _location(appctx, location)
    config = _resolve_or_exit(
        appctx,
        vault_name=vault_name,
        force_vault=force_vault,
        create_vault=create_vault,
        location=region,
        subscription_id=subscription_id,
    )
    names = _names(
        appctx, config, resource_group=resource_group, workspace=workspace, database=database
    )
    definitions = _definitions_or_exit(tables_dir)

    deployed = _run_infra(
        appctx,
        config,
        names,
        location=region,
        what_if=what_if,
        template_file=template_file,
        admin_email=admin_email,
    )
    if not deployed:
        ok_exit("What-if preview complete; Fabric steps skipped.")

    deployer, report = _run_fabric(
        appctx,
        config,
        names,
        capacity=capacity,
        skip_auth=skip_auth,
        skip_workspace_creation=skip_workspace_creation,
        definitions=definitions,
    )
    _connection_summary(deployer, names, [d.name for d in definitions])
    _finish(report, "OTEL gateway deployment complete.")


def validate(
    ctx: typer.Context,
    workspace: str | None = WorkspaceOpt,
    database: str | None = DatabaseOpt,
):
    """Check that the workspace, database and OTEL tables exist and answer queries."""
    appctx: AppContext = ctx.obj
    names = _names(
        appctx,
        from_environment(appctx.environ),
        workspace=workspace,
        database=database,
    )

    with out.status("Validating Fabric deployment..."):
        report = validate_deployment(
            appctx.fabric, workspace=names.workspace, database=names.database
        )
    out.validation_table(report.checks)

    if not report.ok:
        die(f"{len(report.failed)} check(s) failed.")
    out.success("All checks passed.")
