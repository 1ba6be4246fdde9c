"""Authentication checks for the Azure CLI and the Fabric CLI.

Both tools keep their own login session. This module decides whether a
session is usable and turns failures into an `AuthError` with a hint on how
to log in again.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Protocol

from otelgw.core.adapters.process import CommandResult, JsonParsed, parse_json
from otelgw.core.errors import OtelGatewayError

NOT_LOGGED_IN_MARKER = "not logged in"

# Lines the Fabric CLI prints instead of a status when something went wrong.
_ERROR_MARKERS = re.compile(r"^\s*(error\b|x\s|✗|!|\[error\])", re.IGNORECASE | re.MULTILINE)

_LOGIN_HINTS = {
    "az": "az login",
    "fab": "fab auth login",
}


class AuthError(OtelGatewayError):
    """Raised when the Azure CLI or Fabric CLI is not authenticated."""


class AuthState(str, Enum):
    """
    Outcome of an authentication-status query.

    Values:
        AUTHENTICATED: Exit code 0 and no negative marker in the output.
        NOT_LOGGED_IN: The tool reported that no session exists.
        ERROR: Non-zero exit, empty output or error text instead of a status.
    """

    AUTHENTICATED = "AUTHENTICATED"
    NOT_LOGGED_IN = "NOT_LOGGED_IN"
    ERROR = "ERROR"


def _format_auth_error(tool: str, message: str) -> str:
    """Return a user-friendly auth error message."""
    hint = _LOGIN_HINTS.get(tool)
    detail = message.strip() or "no session"
    if hint:
        return (
            f"{tool} is not authenticated ({detail}).\n"
            f"Re-authenticate with:\n  $ {hint}"
        )
    return f"{tool} authentication failed: {detail}"


def authentication_state(result: CommandResult) -> AuthState:
    """
    Classify the result of an authentication-status command.

    A zero exit code alone is not enough: the Fabric CLI exits 0 while
    printing "Not logged in".
    """
    text = result.output
    if NOT_LOGGED_IN_MARKER in text.lower():
        return AuthState.NOT_LOGGED_IN
    if not result.ok or not text.strip():
        return AuthState.ERROR
    if _ERROR_MARKERS.search(text):
        return AuthState.ERROR
    return AuthState.AUTHENTICATED


class AzureAccountAdapter(Protocol):
    def account(self) -> CommandResult: ...


def ensure_azure_login(azure: AzureAccountAdapter) -> dict[str, Any]:
    """
    Return the active Azure CLI account or raise AuthError.

    The account query is the gate for every Key Vault or subscription lookup.
    """
    result = azure.account()
    outcome = parse_json(result)
    if not isinstance(outcome, JsonParsed) or not isinstance(outcome.data, dict):
        raise AuthError(_format_auth_error("az", result.stderr or result.stdout))
    return outcome.data


def fabric_auth_error(result: CommandResult) -> AuthError:
    """Build the AuthError raised when the Fabric session is unusable."""
    return AuthError(_format_auth_error("fab", result.output))
