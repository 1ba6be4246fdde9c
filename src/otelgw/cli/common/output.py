"""Output formatting utilities for the CLI."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import questionary
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from otelgw.cli.common.tui_style import (
    QUESTIONARY_STYLE_CONFIRM,
    QUESTIONARY_STYLE_INPUT,
)

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)


def _flag(ok: bool) -> str:
    return "[ok]OK[/]" if ok else "[err]FAIL[/]"


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages, prompts and tables."""

    def _q(self, message: str) -> str:
        """Prefix Questionary prompts to be OTELGW consistent."""
        return f"[OTELGW] {message}"

    def info(self, msg: str) -> None:
        """Print an info message."""
        console.print(f"[title]›[/] {msg}")

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        console.print(f"[ok]✓[/] {msg}")

    def warn(self, msg: str) -> None:
        console.print(f"[warn]⚠[/] {escape(msg)}")

    def error(self, msg: str) -> None:
        console.print(f"[err]✗[/] {escape(msg)}")

    def header(self, title: str) -> None:
        console.print(f"\n[title]{title}[/]")

    def plain(self, msg: str) -> None:
        """Print text without markup or highlighting (safe for shell output)."""
        console.print(msg, markup=False, highlight=False, soft_wrap=True)

    def command(self, args: list[str]) -> None:
        """Echo an external command line (already redacted)."""
        console.print(f"[meta]$ {escape(' '.join(args))}[/]")

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print key-value pairs."""
        for k, v in items.items():
            console.print(f"[meta]{k}[/]: {escape(str(v))}")

    def ask(self, message: str, *, default: str = "") -> str | None:
        """Ask for a line of text. Returns None if the prompt was cancelled."""
        return questionary.text(
            self._q(message),
            default=default,
            style=QUESTIONARY_STYLE_INPUT,
            qmark="✦",
        ).ask()

    def ask_secret(self, message: str) -> str | None:
        """Ask for a value without echoing it."""
        return questionary.password(
            self._q(message),
            style=QUESTIONARY_STYLE_INPUT,
            qmark="✦",
        ).ask()

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """
        Ask the user for confirmation using a standardized Questionary prompt.

        Args:
            message: Confirmation question shown to the user.
            default: Default answer if the user just presses enter.

        Returns:
            True if the user confirms, False otherwise.
        """
        # Printed on its own line; questionary's inline instruction clashes
        # with the echoed answer.
        console.print("[meta]Use y/n then Enter[/]")
        prompt = questionary.confirm(
            self._q(message),
            default=default,
            style=QUESTIONARY_STYLE_CONFIRM,
            qmark="✦",
            auto_enter=False,
        )
        return bool(prompt.ask())

    def attempts_table(self, attempts: Iterable[Any], title: str = "Configuration sources") -> None:
        """
        Expects objects with .source .ok .detail
        (e.g. otelgw.core.resolver.SourceAttempt)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Source", style="title", no_wrap=True)
        t.add_column("Result")
        t.add_column("Detail", style="meta")

        for a in attempts:
            source = a.source.value if hasattr(a.source, "value") else str(a.source)
            t.add_row(source, "[ok]used[/]" if a.ok else "[warn]skipped[/]", escape(a.detail))

        console.print(t)

    def what_if_table(self, changes: Iterable[Any], title: str = "Predicted changes") -> None:
        """Expects objects with .change_type and .resource_id."""
        styles = {"Create": "ok", "Delete": "err", "Modify": "warn"}
        t = Table(title=title, show_lines=False)
        t.add_column("Change", no_wrap=True)
        t.add_column("Resource", style="meta")

        for c in changes:
            style = styles.get(c.change_type, "meta")
            t.add_row(f"[{style}]{c.change_type}[/{style}]", escape(c.resource_id))

        console.print(t)

    def table_results_table(self, results: Iterable[Any], title: str = "KQL tables") -> None:
        """
        Render per-table results of applying schema commands.

        Expects objects with `.table`, `.ok` and optional `.error`
        (e.g. otelgw.core.fabric.TableApplyResult).
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Table", style="ok")
        t.add_column("Result")
        t.add_column("Error", style="err")

        for r in results:
            t.add_row(str(r.table), _flag(r.ok), escape(str(r.error or "")))

        console.print(t)

    def validation_table(self, checks: Iterable[Any], title: str = "Validation") -> None:
        """Render validation checks (name / OK-FAIL / detail)."""
        t = Table(title=title, show_lines=False)
        t.add_column("Check")
        t.add_column("Result", no_wrap=True)
        t.add_column("Detail", style="meta")

        for c in checks:
            t.add_row(escape(c.name), _flag(c.ok), escape(c.detail))

        console.print(t)

    def secret_status_table(self, statuses: Iterable[Any], title: str = "Key Vault secrets") -> None:
        t = Table(title=title, show_lines=False)
        t.add_column("Secret", style="ok")
        t.add_column("Key", style="meta")
        t.add_column("Status")

        for s in statuses:
            status = "[ok]SET[/]" if s.is_set else "[err]NOT SET[/]"
            t.add_row(s.secret_name, s.key, status)

        console.print(t)

    def send_report_table(self, report: Any, title: str = "Test telemetry") -> None:
        """Render per-kind sent / failed counts of a test data run."""
        t = Table(title=title, show_lines=False)
        t.add_column("Kind")
        t.add_column("Sent", justify="right")
        t.add_column("Failed", justify="right")

        for kind in sorted({r.kind for r in report.results}, key=lambda k: k.value):
            failed = sum(1 for r in report.failed if r.kind == kind)
            t.add_row(kind.value, str(report.sent(kind)), f"[err]{failed}[/]" if failed else "0")

        console.print(t)


out = Out()
