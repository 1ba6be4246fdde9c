"""Application context management for the CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from otelgw.cli.common.exits import die
from otelgw.cli.common.output import out
from otelgw.cli.tui import QuestionaryPrompter
from otelgw.core.adapters.azurecli import AzureCliAdapter
from otelgw.core.adapters.fabriccli import FabricCliAdapter
from otelgw.core.credentials import ConfigurationSource
from otelgw.core.settings import ConfigFileError, ProjectSettings, load_settings


@dataclass
class AppContext:
    """Settings, adapters and prompter shared by all commands of one invocation."""

    settings: ProjectSettings
    verbose: bool
    environ: dict[str, str]
    azure: AzureCliAdapter
    fabric: FabricCliAdapter
    prompter: QuestionaryPrompter = field(default_factory=QuestionaryPrompter)

    def bind(self, config: ConfigurationSource) -> None:
        """
        Rebuild the adapters so child processes see the resolved configuration.

        The values are only placed in the environment of `az` / `fab`
        processes; this process's environment is left untouched.
        """
        env = config.to_environment()
        self.azure = self.azure.with_env(env)
        self.fabric = self.fabric.with_env(env)


def build_context(config_file: Path | None, *, verbose: bool = False) -> AppContext:
    """Build and return the application context.

    Args:
        config_file: Project configuration file. When omitted the default
                     location is used if it exists, otherwise built-in defaults.
        verbose: Echo external commands before they run.

    Returns:
        AppContext: Context with settings and unbound adapters.
    """
    try:
        settings = load_settings(config_file)
    except ConfigFileError as exc:
        die(str(exc), code=2)

    hook = out.command if verbose else None
    return AppContext(
        settings=settings,
        verbose=verbose,
        environ=dict(os.environ),
        azure=AzureCliAdapter(on_command=hook),
        fabric=FabricCliAdapter(on_command=hook),
    )
