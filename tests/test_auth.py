import json

import pytest

from otelgw.core.adapters.process import CommandResult
from otelgw.core.auth import (
    AuthError,
    AuthState,
    authentication_state,
    ensure_azure_login,
    fabric_auth_error,
)


@pytest.mark.parametrize(
    "result,expected",
    [
        (CommandResult(["fab"], 0, "✓ Logged in to app.fabric.microsoft.com", ""), AuthState.AUTHENTICATED),
        (CommandResult(["fab"], 0, "Not logged in", ""), AuthState.NOT_LOGGED_IN),
        (CommandResult(["fab"], 0, "", "x Not Logged In. Run fab auth login"), AuthState.NOT_LOGGED_IN),
        (CommandResult(["fab"], 1, "Logged in", ""), AuthState.ERROR),
        (CommandResult(["fab"], 0, "   ", ""), AuthState.ERROR),
        (CommandResult(["fab"], 0, "Error: token cache is corrupt", ""), AuthState.ERROR),
        (CommandResult(["fab"], 0, "[error] unauthorized", ""), AuthState.ERROR),
    ],
)
def test_authentication_state(result: CommandResult, expected: AuthState):
    assert authentication_state(result) == expected


def test_exit_zero_alone_is_not_authenticated():
    result = CommandResult(["fab", "auth", "status"], 0, "Not logged in", "")
    assert result.ok
    assert authentication_state(result) != AuthState.AUTHENTICATED


def test_ensure_azure_login_returns_account():
    class _Azure:
        def account(self) -> CommandResult:
            return CommandResult(["az"], 0, json.dumps({"id": "sub", "tenantId": "t"}), "")

    assert ensure_azure_login(_Azure())["tenantId"] == "t"


@pytest.mark.parametrize(
    "result",
    [
        CommandResult(["az"], 1, "", "Please run 'az login' to setup account."),
        CommandResult(["az"], 0, "not json", ""),
        CommandResult(["az"], 0, json.dumps([]), ""),
    ],
)
def test_ensure_azure_login_rejects_unusable_sessions(result: CommandResult):
    class _Azure:
        def account(self) -> CommandResult:
            return result

    with pytest.raises(AuthError, match="az login"):
        ensure_azure_login(_Azure())


def test_fabric_auth_error_carries_login_hint():
    err = fabric_auth_error(CommandResult(["fab"], 0, "Not logged in", ""))
    assert "fab auth login" in str(err)
    assert "Not logged in" in str(err)
