"""Exit handling utilities for the CLI."""

from typing import NoReturn

import typer

from otelgw.cli.common.output import out
from otelgw.core.auth import AuthError
from otelgw.core.errors import (
    CommandError,
    DeploymentError,
    MissingConfigurationError,
    OtelGatewayError,
    ResourceNotFoundError,
)

EXIT_FAILURE = 1
EXIT_USAGE = 2

_TITLES: dict[type[OtelGatewayError], str] = {
    AuthError: "Authentication failed",
    MissingConfigurationError: "Configuration incomplete",
    ResourceNotFoundError: "Resource not found",
    DeploymentError: "Deployment failed",
    CommandError: "External command failed",
}


def ok_exit(msg: str | None = None) -> NoReturn:
    """Exit successfully with an optional success message."""
    if msg:
        out.success(msg)
    raise typer.Exit(0)


def die(msg: str, code: int = EXIT_FAILURE) -> NoReturn:
    """Exit with an error message and optional exit code."""
    out.error(msg)
    raise typer.Exit(code)


def exit_from_exc(
    exc: Exception, *, message: str | None = None, code: int = EXIT_FAILURE
) -> NoReturn:
    """
    Print a workflow error and exit with a given code.

    Without `message` the text is built from the error type and its message,
    e.g. "Deployment failed: Deployment 'x' finished with ... 'Failed'".
    """
    if message is None:
        title = next(
            (t for cls, t in _TITLES.items() if isinstance(exc, cls)),
            "Error",
        )
        message = f"{title}: {exc}"
    out.error(message)
    raise typer.Exit(code) from exc
