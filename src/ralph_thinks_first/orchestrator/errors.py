"""Exception hierarchy for orchestration failures."""

from __future__ import annotations


class OrchestratorError(RuntimeError):
    """Base class for structural errors that abort a whole run."""


class AgentLaunchError(OrchestratorError):
    """The agent executable could not be started at all."""

    def __init__(self, message: str, *, command: str) -> None:
        super().__init__(message)
        self.command = command


class TaskFileError(OrchestratorError):
    """A task file that must exist is missing, unreadable or has an invalid path."""


class UnknownRoleError(ValueError):
    """Role name does not match any of the fixed agent roles."""


class ConfigError(ValueError):
    """Configuration file or values are invalid."""
