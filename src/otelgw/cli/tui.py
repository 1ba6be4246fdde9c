"""Terminal prompts used as the interactive configuration source."""

from __future__ import annotations

import sys
from typing import Callable

from otelgw.cli.common.output import out
from otelgw.core.credentials import ENV_VARS, REQUIRED_KEYS
from otelgw.core.errors import MissingConfigurationError


def _stdin_is_tty() -> bool:
    return sys.stdin.isatty()


class QuestionaryPrompter:
    """Asks the operator for configuration values with Questionary.

    Required values are asked again until something non-blank is entered.
    Without a terminal nothing can be asked, so the missing configuration is
    reported instead.
    """

    def __init__(self, *, interactive: Callable[[], bool] = _stdin_is_tty) -> None:
        self._interactive = interactive

    def ask(self, message: str, *, secret: bool = False, required: bool = True) -> str | None:
        if not self._interactive():
            names = ", ".join(ENV_VARS[k] for k in REQUIRED_KEYS)
            raise MissingConfigurationError(
                f"No configuration found and no terminal to prompt on. Set {names} "
                "or provide a Key Vault with --vault-name."
            )

        while True:
            answer = out.ask_secret(message) if secret else out.ask(message)
            if answer is None:
                raise MissingConfigurationError(f"Prompt for '{message}' was cancelled.")
            answer = answer.strip()
            if answer or not required:
                return answer or None
            out.warn(f"{message} is required.")
