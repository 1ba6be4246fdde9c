"""Synchronous execution of external CLI tools.

Every call to `az` or `fab` goes through `run_command`. Calls block until the
child exits; there is no timeout and no retry. Output that is expected to be
JSON is classified by `parse_json` into one of three outcomes instead of
string-matching for error text.
"""

from __future__ import annotations

import json
import os
import subprocess
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Union

from otelgw.core.errors import CommandError

CommandHook = Callable[[list[str]], None]


@dataclass(frozen=True)
class CommandResult:
    """Exit code and captured output of one external command."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Return stdout and stderr joined, for marker checks and messages."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


@dataclass(frozen=True)
class JsonParsed:
    data: Any


@dataclass(frozen=True)
class JsonUnparseable:
    text: str


@dataclass(frozen=True)
class ToolReportedError:
    message: str


JsonOutcome = Union[JsonParsed, JsonUnparseable, ToolReportedError]


def redact_args(args: list[str], redact: Iterable[str]) -> list[str]:
    """Return a copy of args with every secret value replaced by ***."""
    secrets = {s for s in redact if s}
    return ["***" if a in secrets else a for a in args]


def run_command(
    args: list[str],
    *,
    env: Mapping[str, str] | None = None,
    redact: Iterable[str] = (),
    on_command: CommandHook | None = None,
) -> CommandResult:
    """
    Run one external command and capture its output.

    Args:
        args: Program and arguments.
        env: Extra environment variables for the child process only. The
             current process environment is never modified.
        redact: Values to mask when the command line is reported.
        on_command: Optional hook receiving the (redacted) command line.

    Returns:
        CommandResult with exit code, stdout and stderr.

    Raises:
        CommandError: If the executable cannot be found.
    """
    if on_command is not None:
        on_command(redact_args(args, redact))

    child_env = None
    if env:
        child_env = dict(os.environ)
        child_env.update(env)

    try:
        proc = subprocess.run(
            args,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            env=child_env,
            check=False,
        )
    except FileNotFoundError as exc:
        raise CommandError(
            f"'{args[0]}' is not installed or not on PATH.", command=args
        ) from exc

    return CommandResult(
        args=list(args),
        returncode=proc.returncode,
        stdout=(proc.stdout or "").strip(),
        stderr=(proc.stderr or "").strip(),
    )


def parse_json(result: CommandResult) -> JsonOutcome:
    """Classify the output of a command that should have printed JSON."""
    if not result.ok:
        message = result.stderr or result.stdout or f"exit code {result.returncode}"
        return ToolReportedError(message)

    try:
        data = json.loads(result.stdout) if result.stdout else None
    except json.JSONDecodeError:
        return JsonUnparseable(result.stdout)

    if isinstance(data, dict) and data.get("error"):
        err = data["error"]
        if isinstance(err, dict):
            err = err.get("message") or err.get("code") or json.dumps(err)
        return ToolReportedError(str(err))

    return JsonParsed(data)


def expect_json(result: CommandResult, what: str) -> Any:
    """Return parsed JSON or raise CommandError describing `what` failed."""
    outcome = parse_json(result)
    if isinstance(outcome, JsonParsed):
        return outcome.data
    if isinstance(outcome, ToolReportedError):
        raise CommandError(f"Failed to {what}: {outcome.message}", command=result.args)
    raise CommandError(
        f"Failed to {what}: expected JSON but got: {_preview(outcome.text)}",
        command=result.args,
    )


def _preview(text: str, limit: int = 200) -> str:
    text = text.strip().replace("\n", " ")
    if len(text) <= limit:
        return text or "<empty output>"
    return f"{text[: limit - 3]}..."
