"""Common CLI options for the CLI."""

from pathlib import Path

import typer

ConfigFileOpt = typer.Option(
    None,
    "--config-file",
    "-c",
    help="Project configuration file (JSON). Defaults to config/project-config.json if present.",
)

VerboseOpt = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Echo every az / fab command before it runs (secrets redacted).",
)

LocationOpt = typer.Option(
    None,
    "--location",
    "-l",
    help="Azure region. Falls back to LOCATION, then the project file.",
)

SubscriptionOpt = typer.Option(
    None,
    "--subscription-id",
    help="Azure subscription id (overrides the resolved configuration).",
)

VaultNameOpt = typer.Option(
    None,
    "--vault-name",
    help="Key Vault holding the configuration secrets.",
)

ForceVaultOpt = typer.Option(
    False,
    "--force-vault",
    help="Ignore environment variables and read configuration from Key Vault.",
)

CreateVaultOpt = typer.Option(
    False,
    "--create-vault",
    help="Create a Key Vault when none is found and store the entered values in it.",
)

AdminEmailOpt = typer.Option(
    None,
    "--admin-email",
    help="Administrator e-mail; looked up in the directory for the admin object id.",
)

WhatIfOpt = typer.Option(
    False,
    "--what-if",
    help="Preview the infrastructure changes without deploying anything.",
)

TemplateFileOpt = typer.Option(
    Path("infra") / "main.bicep",
    "--template-file",
    help="Subscription-scoped Bicep / ARM template.",
)

SkipAuthOpt = typer.Option(
    False,
    "--skip-auth",
    help="Trust the existing Fabric CLI session instead of logging in.",
)

SkipWorkspaceCreationOpt = typer.Option(
    False,
    "--skip-workspace-creation",
    help="Require the workspace to exist instead of creating it.",
)

ResourceGroupOpt = typer.Option(
    None,
    "--resource-group",
    "-g",
    help="Resource group name.",
)

WorkspaceOpt = typer.Option(
    None,
    "--workspace",
    help="Fabric workspace display name.",
)

DatabaseOpt = typer.Option(
    None,
    "--database",
    help="KQL database display name.",
)

CapacityOpt = typer.Option(
    None,
    "--capacity",
    help="Fabric capacity name. Looked up in the resource group when omitted.",
)

TablesDirOpt = typer.Option(
    None,
    "--tables-dir",
    help="Directory of <Table>.kql files. Defaults to the built-in OTEL tables.",
)

ExportOpt = typer.Option(
    False,
    "--export",
    help="Print shell export lines with the resolved values (unmasked).",
)

YesOpt = typer.Option(
    False,
    "--yes",
    "-y",
    help="Overwrite an existing secret without asking.",
)

CountOpt = typer.Option(
    10,
    "--count",
    "-n",
    min=1,
    help="Number of batches; each batch sends one log, one metric and one trace record.",
)

DelayOpt = typer.Option(
    2.0,
    "--delay",
    min=0.0,
    help="Seconds to wait between batches.",
)

EventHubNamespaceOpt = typer.Option(
    None,
    "--namespace",
    help="Event Hub namespace. The first one in the resource group when omitted.",
)

EventHubOpt = typer.Option(
    None,
    "--event-hub",
    help="Event Hub name. The first one in the namespace when omitted.",
)

WaitOpt = typer.Option(
    False,
    "--wait",
    help="After sending, poll the OTEL tables until the records arrive.",
)

WaitAttemptsOpt = typer.Option(
    30,
    "--wait-attempts",
    min=1,
    help="Number of polls made by --wait.",
)

WaitIntervalOpt = typer.Option(
    10.0,
    "--wait-interval",
    min=0.0,
    help="Seconds between polls made by --wait.",
)
