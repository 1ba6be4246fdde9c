"""CLI application for the Fabric OTEL gateway deployment workflow."""

from pathlib import Path

import typer

from otelgw.cli.commands import telemetry, workflow
from otelgw.cli.commands.secrets import secrets_app
from otelgw.cli.common.context import build_context
from otelgw.cli.common.options import ConfigFileOpt, VerboseOpt

app = typer.Typer(
    help="otelgw - deploy the OpenTelemetry gateway to Azure and Microsoft Fabric",
    no_args_is_help=True,
)


@app.callback()
def _init(
    ctx: typer.Context,
    config_file: Path | None = ConfigFileOpt,
    verbose: bool = VerboseOpt,
):
    """Load the project configuration shared by all commands."""
    ctx.obj = build_context(config_file, verbose=verbose)


app.command("deploy")(workflow.deploy)
app.command("infra")(workflow.infra)
app.command("fabric")(workflow.fabric)
app.command("validate")(workflow.validate)
app.command("resolve")(workflow.resolve)
app.command("send-test-data")(telemetry.send_test_data)
app.add_typer(secrets_app, name="secrets")


if __name__ == "__main__":
    app()
