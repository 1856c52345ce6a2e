"""Domain models for role invocations, agent results and protocol events."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any

from ralph_thinks_first.orchestrator.errors import UnknownRoleError

UNKNOWN_EXIT_CODE = -1
EXIT_SUCCESS = 0
EXIT_STRUCTURAL_ERROR = 1
EXIT_MAX_ITERATIONS = 2
EXIT_TIMED_OUT = 124

ITERATION_LIMIT_OUTPUT = "REACHED MAX ITERATIONS\nCannot continue"
ALL_TASKS_DONE_OUTPUT = "All tasks complete!"


class Role(str, Enum):
    """Fixed agent identities; values are the names used on the wire and in directives."""

    MANAGER = "manage"
    PLANNER = "plan"
    CODER = "code"
    DOCUMENTOR = "document"

    @classmethod
    def parse(cls, name: str | None) -> Role:
        """Resolve a role from its wire name or long form, case-insensitively."""

        if not isinstance(name, str) or not name.strip():
            raise UnknownRoleError(
                f"Invalid role name: {name!r}. Role name must be a non-empty string.",
            )
        normalized = name.strip().lower()
        role = _ROLE_ALIASES.get(normalized)
        if role is None:
            available = ", ".join(item.value for item in cls)
            raise UnknownRoleError(f"Unknown role {name!r}. Available roles: {available}")
        return role

    @property
    def label(self) -> str:
        return self.value.upper()

    @property
    def can_invoke(self) -> bool:
        return self is Role.MANAGER

    @property
    def keeps_history(self) -> bool:
        return self is not Role.MANAGER

    @property
    def writes_tasks(self) -> bool:
        return self is Role.PLANNER

    @property
    def requires_tasks_file(self) -> bool:
        return self in (Role.CODER, Role.DOCUMENTOR)

    @property
    def stops_when_tasks_done(self) -> bool:
        return self is Role.CODER


_ROLE_ALIASES: dict[str, Role] = {
    "manage": Role.MANAGER,
    "manager": Role.MANAGER,
    "plan": Role.PLANNER,
    "planner": Role.PLANNER,
    "code": Role.CODER,
    "coder": Role.CODER,
    "document": Role.DOCUMENTOR,
    "documentor": Role.DOCUMENTOR,
}


class EventType(str, Enum):
    """Event kinds defined by the stderr protocol."""

    STATUS = "status"
    OUTPUT = "output"
    ERROR = "error"


class AgentStatus(str, Enum):
    """Values carried by ``status`` events."""

    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class FrameStatus(str, Enum):
    """Terminal states of one role-invocation frame."""

    COMPLETED = "completed"
    ITERATION_LIMIT = "iteration_limit"
    AGENT_EXHAUSTED = "agent_exhausted"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True, slots=True)
class Event:
    """One decoded protocol event; ``data`` keeps every field of the JSON object."""

    type: str
    agent: str
    data: Mapping[str, Any]

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> Event:
        return cls(
            type=payload["type"],
            agent=payload["agent"],
            data=MappingProxyType(dict(payload)),
        )

    @property
    def kind(self) -> EventType | None:
        try:
            return EventType(self.type)
        except ValueError:
            return None

    @property
    def status(self) -> str | None:
        return self.data.get("status")

    @property
    def message(self) -> str | None:
        return self.data.get("message")

    @property
    def error(self) -> str | None:
        return self.data.get("error")

    def to_dict(self) -> dict[str, Any]:
        return dict(self.data)


@dataclass(frozen=True, slots=True)
class InvocationConfig:
    """Resolved settings for one orchestration run."""

    agent_command: str = "claude -p"
    model: str | None = None
    tasks_file: Path = Path("TASKS.md")
    max_iterations: int = 10
    timeout_seconds: float | None = None
    initial_prompt: str | None = None
    continuation: str | None = None
    skip_permissions: bool = False

    def with_overrides(self, **changes: Any) -> InvocationConfig:
        """Return a shallow copy with the given fields replaced."""

        return replace(self, **changes)


@dataclass(frozen=True, slots=True)
class AgentResult:
    """Outcome of exactly one agent process invocation."""

    exit_code: int
    output: str
    events: tuple[Event, ...] = ()
    diagnostics: tuple[str, ...] = ()
    timed_out: bool = False
    role: Role | None = None


@dataclass(frozen=True, slots=True)
class OrchestrationOutcome:
    """Terminal result of one frame, including every result of its sub-frames."""

    role: Role
    status: FrameStatus
    result: AgentResult
    iterations: int
    results: tuple[AgentResult, ...] = field(default_factory=tuple)

    @property
    def completed(self) -> bool:
        return self.status is FrameStatus.COMPLETED

    @property
    def reached_max_iterations(self) -> bool:
        return self.status in (FrameStatus.ITERATION_LIMIT, FrameStatus.AGENT_EXHAUSTED)

    @property
    def timed_out(self) -> bool:
        return self.status is FrameStatus.TIMED_OUT

    @property
    def exit_code(self) -> int:
        """Process exit code the whole program should report for this outcome."""

        if self.timed_out:
            return EXIT_TIMED_OUT
        if self.reached_max_iterations:
            return EXIT_MAX_ITERATIONS
        exit_code = self.result.exit_code
        if exit_code == UNKNOWN_EXIT_CODE:
            return EXIT_STRUCTURAL_ERROR
        if exit_code < 0:
            # Killed by signal N: report the shell convention 128 + N.
            return 128 - exit_code
        return exit_code
