"""Controllers for orchestrator CLI commands."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ralph_thinks_first import __version__
from ralph_thinks_first.config import Settings
from ralph_thinks_first.orchestrator.backend import AgentBackend, CliAgentBackend
from ralph_thinks_first.orchestrator.engine import OrchestrationEngine
from ralph_thinks_first.orchestrator.errors import ConfigError
from ralph_thinks_first.orchestrator.models import (
    Event,
    EventType,
    OrchestrationOutcome,
    Role,
)
from ralph_thinks_first.orchestrator.prompts import ROLE_PURPOSES
from ralph_thinks_first.tasks import parse_tasks, read_tasks_file, summarize_tasks

logger = logging.getLogger(__name__)

_PROMPT_PREVIEW_CHARS = 50


@dataclass(slots=True)
class RunCommand:
    """CLI input for one orchestration run."""

    prompt: str | None = None
    config_file: Path | None = None
    role: str | None = None
    model: str | None = None
    max_iterations: int | None = None
    tasks_file: Path | None = None
    timeout_seconds: float | None = None
    skip_permissions: bool | None = None


@dataclass(slots=True)
class RunResult:
    """Summary lines and process exit code of a finished run."""

    exit_code: int
    lines: list[str]
    outcome: OrchestrationOutcome


@dataclass(slots=True)
class TasksCommand:
    """CLI input for task checklist display."""

    tasks_file: Path | None = None
    config_file: Path | None = None


class OrchestratorCliController:
    """Application controller for orchestrator CLI commands."""

    def __init__(self, backend: AgentBackend | None = None) -> None:
        self._backend = backend

    def run(
        self,
        command: RunCommand,
        *,
        emit: Callable[[str], None],
        ask_prompt: Callable[[], str] | None = None,
    ) -> RunResult:
        settings = Settings.load(
            command.config_file,
            role=command.role,
            model=command.model,
            max_iterations=command.max_iterations,
            tasks_file=command.tasks_file,
            skip_permissions=command.skip_permissions,
            timeout_seconds=command.timeout_seconds,
        )
        settings.validate()
        role = settings.role

        initial_prompt = (command.prompt or "").strip() or None
        if role is Role.MANAGER and initial_prompt is None and ask_prompt is not None:
            initial_prompt = ask_prompt().strip() or None
        if role is Role.MANAGER and initial_prompt is None:
            raise ConfigError("A project prompt is required for the manager role.")

        if role.requires_tasks_file:
            read_tasks_file(settings.tasks_file, required=True)

        config = settings.to_invocation_config(initial_prompt)
        for line in _banner_lines(settings, initial_prompt):
            emit(line)

        engine = OrchestrationEngine(
            backend=self._backend or CliAgentBackend(),
            roles_dir=settings.roles_dir,
            reporter=emit,
            on_event=lambda event: emit(format_event(event)),
        )
        outcome = engine.run(role, config)
        logger.info("Run finished: role=%s status=%s", role.value, outcome.status.value)
        return RunResult(
            exit_code=outcome.exit_code,
            lines=_outcome_lines(outcome),
            outcome=outcome,
        )

    def tasks(self, command: TasksCommand) -> list[str]:
        settings = Settings.load(command.config_file, tasks_file=command.tasks_file)
        items = parse_tasks(read_tasks_file(settings.tasks_file))
        if not items:
            return [f"No tasks found in {settings.tasks_file}"]

        summary = summarize_tasks(items)
        lines = [f"Tasks file: {settings.tasks_file}"]
        for item in items:
            mark = "x" if item.completed else " "
            lines.append(f"- [{mark}] {item.description}")
        lines.append(f"Done: {summary.done}/{summary.total} (remaining={summary.remaining})")
        return lines

    def roles(self) -> list[str]:
        lines = ["Available roles:"]
        for role in Role:
            lines.append(f"  {role.value:<9} {ROLE_PURPOSES[role]}")
        return lines


def format_event(event: Event) -> str:
    """One console line for a decoded protocol event."""

    label = f"[{str(event.agent).upper()}]"
    if event.kind is EventType.STATUS:
        return f"{label} status: {event.status}"
    if event.kind is EventType.OUTPUT:
        return f"{label} {event.message or ''}".rstrip()
    if event.kind is EventType.ERROR:
        return f"{label} error: {event.error}"
    return f"{label} {event.type!s}"


def _banner_lines(settings: Settings, initial_prompt: str | None) -> list[str]:
    lines = [
        f"ralph-thinks-first v{__version__}",
        f"Role: {settings.role.value}",
        f"Model: {settings.agent.model}",
        f"Tasks file: {settings.tasks_file}",
        f"Max iterations: {settings.max_iterations}",
    ]
    if initial_prompt:
        preview = initial_prompt
        if len(preview) > _PROMPT_PREVIEW_CHARS:
            preview = preview[:_PROMPT_PREVIEW_CHARS] + "..."
        lines.append(f"Project: {preview}")
    return lines


def _outcome_lines(outcome: OrchestrationOutcome) -> list[str]:
    lines = [
        f"Finished: role={outcome.role.value} status={outcome.status.value} "
        f"iterations={outcome.iterations} exit_code={outcome.exit_code}",
    ]
    events = outcome.result.events
    if not events:
        return lines

    counts = Counter(str(event.type) for event in events)
    rendered = ", ".join(f"{name}={count}" for name, count in sorted(counts.items()))
    lines.append(f"Events: {len(events)} ({rendered})")
    for event in events:
        if event.kind is EventType.ERROR:
            lines.append(f"  {format_event(event)}")
    return lines
