"""Post-deployment validation of the Fabric artifacts.

Read-only: every check queries the Fabric CLI and nothing is created. A
failing check never stops the remaining checks, except that nothing is
checked without a Fabric session.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from otelgw.core.auth import AuthState, authentication_state
from otelgw.core.errors import CommandError
from otelgw.core.fabric import FabricAdapter
from otelgw.core.tables import OTEL_TABLE_COLUMNS
from otelgw.core.testdata import streaming_queries


@dataclass(frozen=True)
class ValidationCheck:
    name: str
    ok: bool
    detail: str = ""


@dataclass(frozen=True)
class ValidationReport:
    checks: list[ValidationCheck] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(c.ok for c in self.checks)

    @property
    def failed(self) -> list[ValidationCheck]:
        return [c for c in self.checks if not c.ok]


def _run_check(name: str, fn: Callable[[], tuple[bool, str]]) -> ValidationCheck:
    try:
        ok, detail = fn()
    except CommandError as exc:
        return ValidationCheck(name=name, ok=False, detail=str(exc))
    return ValidationCheck(name=name, ok=ok, detail=detail)


def _names(items: list[dict[str, Any]]) -> list[str]:
    return [str(i.get("displayName") or i.get("name") or "") for i in items]


def validate_deployment(
    fabric: FabricAdapter,
    *,
    workspace: str,
    database: str,
    expected: Mapping[str, list[tuple[str, str]]] = OTEL_TABLE_COLUMNS,
) -> ValidationReport:
    """
    Check that the workspace, database and OTEL tables exist and are usable.

    Checks, in order: Fabric session, workspace, database, then for each
    expected table its existence, its columns and a `| count` query.
    """
    state = authentication_state(fabric.auth_status())
    auth_check = ValidationCheck(
        name="Fabric authentication",
        ok=state == AuthState.AUTHENTICATED,
        detail="" if state == AuthState.AUTHENTICATED else state.value,
    )
    if not auth_check.ok:
        return ValidationReport(checks=[auth_check])

    checks = [auth_check]

    def _workspace() -> tuple[bool, str]:
        found = workspace in _names(fabric.list_workspaces())
        return found, "" if found else "not found"

    def _database() -> tuple[bool, str]:
        fabric.use_workspace(workspace)
        found = database in _names(fabric.list_databases())
        return found, "" if found else "not found"

    checks.append(_run_check(f"Workspace '{workspace}'", _workspace))
    checks.append(_run_check(f"Database '{database}'", _database))

    existing: list[str] = []

    def _tables() -> tuple[bool, str]:
        fabric.use_database(database)
        rows = fabric.query_kql(".show tables")
        existing.extend(str(r.get("TableName")) for r in rows if r.get("TableName"))
        return True, f"{len(existing)} table(s)"

    listed = _run_check("List tables", _tables)
    if not listed.ok:
        checks.append(listed)

    for table, columns in expected.items():

        def _exists(table: str = table) -> tuple[bool, str]:
            found = table in existing
            return found, "" if found else "not found"

        def _schema(
            table: str = table, columns: list[tuple[str, str]] = columns
        ) -> tuple[bool, str]:
            rows = fabric.query_kql(f".show table {table} schema")
            present = {str(r.get("ColumnName")) for r in rows}
            missing = [name for name, _ in columns if name not in present]
            return not missing, "missing " + ", ".join(missing) if missing else ""

        def _ready(table: str = table) -> tuple[bool, str]:
            rows = fabric.query_kql(f"{table} | count")
            if not rows or "Count" not in rows[0]:
                return False, "count query returned no rows"
            return True, f"current records: {rows[0]['Count']}"

        checks.append(_run_check(f"Table {table}", _exists))
        checks.append(_run_check(f"Schema {table}", _schema))
        checks.append(_run_check(f"Readiness {table}", _ready))

    return ValidationReport(checks=checks)


def check_streaming(
    fabric: FabricAdapter,
    *,
    workspace: str,
    database: str,
    run_id: str,
    attempts: int = 30,
    interval: float = 10.0,
    sleep: Callable[[float], None] = time.sleep,
) -> ValidationCheck:
    """
    Poll the OTEL tables until records of `run_id` arrive.

    Passes on the first poll where any table reports a non-zero count; a
    failing query counts as zero for that poll.
    """
    queries = streaming_queries(run_id)
    name = "Data streaming"
    last_error = ""
    try:
        fabric.use_workspace(workspace)
        fabric.use_database(database)
    except CommandError as exc:
        return ValidationCheck(name=name, ok=False, detail=str(exc))

    for attempt in range(1, attempts + 1):
        counts: dict[str, int] = {}
        for table, query in queries.items():
            try:
                rows = fabric.query_kql(query)
            except CommandError as exc:
                last_error = str(exc)
                continue
            counts[table] = int(rows[0].get("Count", 0)) if rows else 0
        arrived = {t: c for t, c in counts.items() if c > 0}
        if arrived:
            detail = ", ".join(f"{t}: {c}" for t, c in arrived.items())
            return ValidationCheck(name=name, ok=True, detail=f"{detail} (poll {attempt})")
        if attempt < attempts:
            sleep(interval)

    detail = f"no records of run {run_id} after {attempts} poll(s)"
    if last_error:
        detail += f"; last error: {last_error}"
    return ValidationCheck(name=name, ok=False, detail=detail)
