"""send-test-data: push synthetic OTEL records through the Event Hub."""

from __future__ import annotations

import typer

from otelgw.cli.common.context import AppContext
from otelgw.cli.common.exits import die, exit_from_exc
from otelgw.cli.common.options import (
    CountOpt,
    DatabaseOpt,
    DelayOpt,
    EventHubNamespaceOpt,
    EventHubOpt,
    ResourceGroupOpt,
    WaitAttemptsOpt,
    WaitIntervalOpt,
    WaitOpt,
    WorkspaceOpt,
)
from otelgw.cli.common.output import out
from otelgw.core.auth import ensure_azure_login
from otelgw.core.credentials import from_environment
from otelgw.core.deployment import derive_resource_names
from otelgw.core.errors import OtelGatewayError
from otelgw.core.testdata import discover_event_hub, send_test_data as send_records
from otelgw.core.validation import check_streaming


def send_test_data(
    ctx: typer.Context,
    count: int = CountOpt,
    delay: float = DelayOpt,
    namespace: str | None = EventHubNamespaceOpt,
    event_hub: str | None = EventHubOpt,
    resource_group: str | None = ResourceGroupOpt,
    workspace: str | None = WorkspaceOpt,
    database: str | None = DatabaseOpt,
    wait: bool = WaitOpt,
    wait_attempts: int = WaitAttemptsOpt,
    wait_interval: float = WaitIntervalOpt,
):
    """Send test logs, metrics and traces to the Event Hub, optionally waiting for them in Fabric."""
    appctx: AppContext = ctx.obj
    names = derive_resource_names(
        appctx.settings,
        from_environment(appctx.environ),
        resource_group=resource_group,
        workspace=workspace,
        database=database,
    )

    try:
        ensure_azure_login(appctx.azure)
        target = discover_event_hub(
            appctx.azure,
            names.resource_group,
            namespace=namespace or appctx.settings.event_hub.namespace_name,
            event_hub=event_hub,
        )
    except OtelGatewayError as exc:
        exit_from_exc(exc)
    out.success(f"Event Hub: {target}")

    with out.status(f"Sending {count} batch(es)..."):
        report = send_records(appctx.azure, target, count=count, delay=delay)
    out.send_report_table(report)
    out.kv({"Run id": report.run_id})

    if not report.sent():
        die(f"No record was sent to {target}: {report.failed[0].error}")
    if report.failed:
        out.warn(f"{len(report.failed)} of {len(report.results)} record(s) failed to send.")

    if not wait:
        out.info("Records usually reach the Fabric tables within 1-5 minutes.")
        return

    with out.status("Waiting for records in the OTEL tables..."):
        check = check_streaming(
            appctx.fabric,
            workspace=names.workspace,
            database=names.database,
            run_id=report.run_id,
            attempts=wait_attempts,
            interval=wait_interval,
        )
    out.validation_table([check], title="Streaming")
    if not check.ok:
        die("Test records did not reach Fabric.")
    out.success("Test records arrived in Fabric.")
