"""Backend interface for agent process execution."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Protocol

from ralph_thinks_first.orchestrator.models import AgentResult, Event, Role


@dataclass(slots=True)
class AgentRunRequest:
    """Inputs required to execute one agent invocation."""

    role: Role
    prompt: str
    agent_command: str
    model: str | None = None
    skip_permissions: bool = False
    timeout_seconds: float | None = None
    exit_wait_seconds: float = 0.5
    env: Mapping[str, str] | None = None
    on_event: Callable[[Event], None] | None = None


class AgentBackend(Protocol):
    """Protocol implemented by backend runners."""

    def run(self, request: AgentRunRequest) -> AgentResult:
        """Run one agent process and return its result."""
