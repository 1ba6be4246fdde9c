"""Exception types shared by the core workflow.

Every fatal condition of the deployment workflow maps onto one of these
classes so the CLI can turn it into a single error line and a non-zero
exit code.
"""

from __future__ import annotations


class OtelGatewayError(RuntimeError):
    """Base class for all workflow errors."""


class CommandError(OtelGatewayError):
    """Raised when an external CLI call fails or returns unusable output."""

    def __init__(self, message: str, *, command: list[str] | None = None) -> None:
        super().__init__(message)
        self.command = command or []


class MissingConfigurationError(OtelGatewayError):
    """Raised when required configuration is absent before an external call."""


class ResourceNotFoundError(OtelGatewayError):
    """Raised when a required external resource does not exist."""


class DeploymentError(OtelGatewayError):
    """Raised when an infrastructure deployment does not reach `Succeeded`."""

    def __init__(self, message: str, *, state: str) -> None:
        super().__init__(message)
        self.state = state
