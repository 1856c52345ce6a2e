"""Shared test fixtures."""

from __future__ import annotations

import os
import shlex
import sys
from collections.abc import Callable

import pytest

from ralph_thinks_first.orchestrator.backend.base import AgentRunRequest
from ralph_thinks_first.orchestrator.models import AgentResult

_ECHO_AGENT_COMMAND = (
    f"{shlex.quote(sys.executable)} -m ralph_thinks_first.orchestrator.backend.echo_agent"
)


class ScriptedBackend:
    """In-memory backend replaying canned results and recording every request."""

    def __init__(self, outputs: list[str | AgentResult]) -> None:
        self._outputs = list(outputs)
        self.requests: list[AgentRunRequest] = []

    def run(self, request: AgentRunRequest) -> AgentResult:
        self.requests.append(request)
        if not self._outputs:
            raise AssertionError(f"Unexpected invocation of role {request.role.value}")
        scripted = self._outputs.pop(0)
        if isinstance(scripted, AgentResult):
            return scripted
        return AgentResult(exit_code=0, output=scripted, role=request.role)

    @property
    def roles(self) -> list[str]:
        return [request.role.value for request in self.requests]


@pytest.fixture(autouse=True)
def clean_rtf_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer RTF_* variables from leaking into tests."""

    for name in list(os.environ):
        if name.startswith("RTF_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def echo_agent_command() -> Callable[..., str]:
    """Build a shell-style command line running the scripted echo agent."""

    def _build(*args: str) -> str:
        return " ".join([_ECHO_AGENT_COMMAND, *(shlex.quote(arg) for arg in args)])

    return _build


@pytest.fixture()
def scripted_backend() -> Callable[[list[str | AgentResult]], ScriptedBackend]:
    return ScriptedBackend
