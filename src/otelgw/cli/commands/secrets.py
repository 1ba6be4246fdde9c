from __future__ import annotations

from dataclasses import dataclass

import typer

from otelgw.cli.common.context import AppContext
from otelgw.cli.common.exits import EXIT_USAGE, die, exit_from_exc, ok_exit
from otelgw.cli.common.options import VaultNameOpt, YesOpt
from otelgw.cli.common.output import out
from otelgw.core.auth import ensure_azure_login
from otelgw.core.credentials import mask_secret
from otelgw.core.errors import OtelGatewayError
from otelgw.core.resolver import find_key_vault
from otelgw.core.secretstore import secret_name_for, secret_status

secrets_app = typer.Typer(
    help="Inspect and update the configuration secrets in Key Vault.",
    no_args_is_help=False,
    invoke_without_command=True,
)


@dataclass
class SecretsContext:
    app: AppContext
    vault: str


@secrets_app.callback()
def _init(ctx: typer.Context, vault_name: str | None = VaultNameOpt):
    """Locate the Key Vault used by the secrets commands."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)

    appctx: AppContext = ctx.obj
    try:
        ensure_azure_login(appctx.azure)
        vault = find_key_vault(
            appctx.azure,
            explicit=vault_name,
            environ=appctx.environ,
            settings=appctx.settings,
        )
    except OtelGatewayError as exc:
        exit_from_exc(exc)

    if vault is None:
        die("No Key Vault found. Pass --vault-name or set AZURE_KEY_VAULT_NAME.")
    ctx.obj = SecretsContext(app=appctx, vault=vault)


def _secret_name_or_exit(sctx: SecretsContext, key: str) -> str:
    try:
        return secret_name_for(key, sctx.app.settings.key_vault.secrets)
    except ValueError as exc:
        out.error(str(exc))
        raise typer.Exit(EXIT_USAGE) from exc


@secrets_app.command("list")
def list_secrets(ctx: typer.Context):
    """Show which configuration secrets are set (values are never read)."""
    sctx: SecretsContext = ctx.obj
    try:
        with out.status(f"Listing secrets in '{sctx.vault}'..."):
            statuses = secret_status(
                sctx.app.azure, sctx.vault, sctx.app.settings.key_vault.secrets
            )
    except OtelGatewayError as exc:
        exit_from_exc(exc)

    out.secret_status_table(statuses, title=f"Key Vault '{sctx.vault}'")
    missing = [s.secret_name for s in statuses if not s.is_set]
    if missing:
        out.warn(f"{len(missing)} secret(s) not set: {', '.join(missing)}")


@secrets_app.command("get")
def get_secret(
    ctx: typer.Context,
    key: str = typer.Argument(
        ..., help="Logical key (client_id), Azure:ClientId style key or secret name."
    ),
):
    """Show one secret, masked."""
    sctx: SecretsContext = ctx.obj
    name = _secret_name_or_exit(sctx, key)
    try:
        value = sctx.app.azure.get_secret(sctx.vault, name)
    except OtelGatewayError as exc:
        exit_from_exc(exc)

    if value is None:
        die(f"Secret '{name}' is not set in '{sctx.vault}'.")
    out.kv({name: mask_secret(value)})


@secrets_app.command("set")
def set_secret(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Logical key, Azure:ClientId style key or secret name."),
    value: str | None = typer.Argument(
        None, help="Secret value. Prompted for (hidden) when omitted.", show_default=False
    ),
    yes: bool = YesOpt,
):
    """Store one secret in the vault."""
    sctx: SecretsContext = ctx.obj
    name = _secret_name_or_exit(sctx, key)

    try:
        existing = sctx.app.azure.get_secret(sctx.vault, name)
    except OtelGatewayError as exc:
        exit_from_exc(exc)
    if existing is not None and not yes:
        if not out.confirm(f"Secret '{name}' already exists in '{sctx.vault}'. Overwrite?"):
            ok_exit("Nothing changed.")

    if value is None:
        value = out.ask_secret(f"Value for {name}")
    if not value or not value.strip():
        die("Secret value must not be empty.", code=EXIT_USAGE)

    try:
        with out.status(f"Storing '{name}'..."):
            sctx.app.azure.set_secret(sctx.vault, name, value.strip())
    except OtelGatewayError as exc:
        exit_from_exc(exc)
    out.success(f"Secret '{name}' stored in '{sctx.vault}'")
