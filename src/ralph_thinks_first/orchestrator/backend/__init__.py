"""Orchestrator backend implementations."""

from ralph_thinks_first.orchestrator.backend.base import AgentBackend, AgentRunRequest
from ralph_thinks_first.orchestrator.backend.cli_backend import CliAgentBackend, build_run_args

__all__ = [
    "AgentBackend",
    "AgentRunRequest",
    "CliAgentBackend",
    "build_run_args",
]
