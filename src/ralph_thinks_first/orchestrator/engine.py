"""Orchestration engine: iterate role invocations and follow manager directives."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from ralph_thinks_first.orchestrator.backend.base import AgentBackend, AgentRunRequest
from ralph_thinks_first.orchestrator.errors import TaskFileError
from ralph_thinks_first.orchestrator.models import (
    ALL_TASKS_DONE_OUTPUT,
    EXIT_STRUCTURAL_ERROR,
    EXIT_SUCCESS,
    ITERATION_LIMIT_OUTPUT,
    AgentResult,
    Event,
    FrameStatus,
    InvocationConfig,
    OrchestrationOutcome,
    Role,
)
from ralph_thinks_first.orchestrator.prompt_builder import ConversationHistory, build_prompt
from ralph_thinks_first.orchestrator.prompts import load_role_template
from ralph_thinks_first.orchestrator.signals import (
    SignalKind,
    classify_output,
    sub_agent_continuation,
)
from ralph_thinks_first.tasks import (
    extract_tasks_content,
    parse_tasks,
    read_tasks_file,
    write_tasks_file,
)

logger = logging.getLogger(__name__)

Reporter = Callable[[str], None]


@dataclass(slots=True)
class _Frame:
    """Mutable state of one role invocation on the engine stack."""

    role: Role
    config: InvocationConfig
    template: str
    iteration: int = 1
    continuation: str | None = None
    history: ConversationHistory | None = None
    results: list[AgentResult] = field(default_factory=list)
    child_config: InvocationConfig | None = None


class OrchestrationEngine:
    """Run a role to a terminal outcome.

    Sub-agent invocations requested by the manager are pushed on an explicit
    frame stack instead of recursing; a parent resumes once its child frame
    reaches a terminal state, with a summary of the child as continuation.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        backend: AgentBackend,
        templates: Mapping[Role, str] | None = None,
        roles_dir: Path | None = None,
        reporter: Reporter | None = None,
        on_event: Callable[[Event], None] | None = None,
        history_max_chars: int = 4000,
    ) -> None:
        self._backend = backend
        self._templates = dict(templates or {})
        self._roles_dir = roles_dir
        self._reporter = reporter
        self._on_event = on_event
        self._history_max_chars = history_max_chars

    def run(self, role: Role, config: InvocationConfig) -> OrchestrationOutcome:
        stack = [self._new_frame(role, config, continuation=config.continuation)]
        while True:
            frame = stack[-1]
            step = self._step(frame)
            if step is None:
                continue
            if isinstance(step, _Frame):
                stack.append(step)
                continue

            stack.pop()
            if not stack:
                return step
            self._resume_parent(stack[-1], step)

    def _new_frame(
        self,
        role: Role,
        config: InvocationConfig,
        *,
        continuation: str | None = None,
    ) -> _Frame:
        template = self._templates.get(role)
        if template is None:
            template = load_role_template(role, self._roles_dir)
        history = (
            ConversationHistory(max_entry_chars=self._history_max_chars)
            if role.keeps_history
            else None
        )
        return _Frame(
            role=role,
            config=config,
            template=template,
            continuation=continuation,
            history=history,
        )

    def _step(self, frame: _Frame) -> _Frame | OrchestrationOutcome | None:
        """Advance ``frame`` by one invocation.

        Returns a child frame to push, a terminal outcome, or ``None`` when
        the frame simply continues with its next iteration.
        """

        config = frame.config
        if frame.iteration > config.max_iterations:
            logger.warning(
                "Role %s reached max iterations (%d)",
                frame.role.value,
                config.max_iterations,
            )
            self._report(f"[{frame.role.label}] Reached max iterations ({config.max_iterations})")
            sentinel = AgentResult(
                exit_code=EXIT_STRUCTURAL_ERROR,
                output=ITERATION_LIMIT_OUTPUT,
                role=frame.role,
            )
            return self._finish(
                frame,
                FrameStatus.ITERATION_LIMIT,
                sentinel,
                iterations=frame.iteration - 1,
            )

        tasks_content = read_tasks_file(config.tasks_file)
        if frame.role.stops_when_tasks_done and _all_tasks_done(tasks_content):
            logger.info("No open tasks left in %s; %s stops", config.tasks_file, frame.role.value)
            self._report(f"[{frame.role.label}] {ALL_TASKS_DONE_OUTPUT}")
            done = AgentResult(
                exit_code=EXIT_SUCCESS,
                output=ALL_TASKS_DONE_OUTPUT,
                role=frame.role,
            )
            return self._finish(
                frame,
                FrameStatus.COMPLETED,
                done,
                iterations=frame.iteration - 1,
            )

        result = self._invoke(frame, tasks_content)
        frame.results.append(result)

        if frame.role.writes_tasks:
            self._persist_tasks(config.tasks_file, result.output)

        if result.timed_out:
            self._report(f"[{frame.role.label}] Timed out after {config.timeout_seconds}s")
            return self._finish(frame, FrameStatus.TIMED_OUT, result)

        signal = classify_output(result.output, role=frame.role)
        if signal.kind is SignalKind.COMPLETED:
            self._report(f"[{frame.role.label}] Completed ({signal.marker})")
            return self._finish(frame, FrameStatus.COMPLETED, result)
        if signal.kind is SignalKind.ITERATION_EXHAUSTED:
            self._report(f"[{frame.role.label}] Agent reported max iterations")
            return self._finish(frame, FrameStatus.AGENT_EXHAUSTED, result)
        if signal.kind is SignalKind.DIRECTIVE and signal.directive is not None:
            directive = signal.directive
            child_config = directive.arguments.apply_to(config)
            frame.child_config = child_config
            logger.info(
                "Role %s invokes %s: %s",
                frame.role.value,
                directive.role.value,
                directive.argument_text,
            )
            self._report(f"[{frame.role.label}] Invoking sub-agent: {directive.role.value}")
            return self._new_frame(directive.role, child_config)

        if result.exit_code != 0:
            logger.warning(
                "Role %s exited with code %d without a completion marker; continuing",
                frame.role.value,
                result.exit_code,
            )
        if frame.history is not None:
            frame.history.append(frame.iteration, result.output)
        frame.iteration += 1
        frame.continuation = None
        return None

    def _invoke(self, frame: _Frame, tasks_content: str) -> AgentResult:
        config = frame.config
        prompt = build_prompt(
            frame.template,
            config=config,
            iteration=frame.iteration,
            tasks_content=tasks_content,
            continuation=frame.continuation,
            history=frame.history,
        )
        self._report(
            f"[{frame.role.label}] Running (iteration {frame.iteration}/{config.max_iterations})...",
        )
        logger.debug(
            "Invoking %s iteration=%d prompt_chars=%d",
            frame.role.value,
            frame.iteration,
            len(prompt),
        )
        result = self._backend.run(
            AgentRunRequest(
                role=frame.role,
                prompt=prompt,
                agent_command=config.agent_command,
                model=config.model,
                skip_permissions=config.skip_permissions,
                timeout_seconds=config.timeout_seconds,
                on_event=self._on_event,
            ),
        )
        if result.output.strip():
            self._report(result.output.rstrip("\n"))
        return result

    def _resume_parent(self, parent: _Frame, child: OrchestrationOutcome) -> None:
        child_config = parent.child_config or parent.config
        if child.role.writes_tasks:
            self._persist_tasks(child_config.tasks_file, child.result.output)

        parent.results.extend(child.results)
        parent.continuation = sub_agent_continuation(
            role=child.role,
            exit_code=child.result.exit_code,
            completed=child.completed,
            timed_out=child.timed_out,
        )
        parent.child_config = None
        parent.iteration += 1
        self._report(
            f"[{parent.role.label}] Sub-agent {child.role.value} finished "
            f"(exit code {child.result.exit_code}, {child.status.value})",
        )

    def _finish(
        self,
        frame: _Frame,
        status: FrameStatus,
        result: AgentResult,
        *,
        iterations: int | None = None,
    ) -> OrchestrationOutcome:
        if iterations is None:
            iterations = frame.iteration
        logger.info(
            "Role %s finished: status=%s iterations=%d",
            frame.role.value,
            status.value,
            iterations,
        )
        return OrchestrationOutcome(
            role=frame.role,
            status=status,
            result=result,
            iterations=iterations,
            results=tuple(frame.results),
        )

    def _persist_tasks(self, tasks_file: Path, output: str) -> None:
        content = extract_tasks_content(output)
        if content is None:
            return
        try:
            write_tasks_file(tasks_file, content)
        except (OSError, TaskFileError) as error:
            logger.warning("Failed to write tasks file %s: %s", tasks_file, error)
            return
        logger.info("Updated tasks file %s", tasks_file)

    def _report(self, line: str) -> None:
        if self._reporter is not None:
            self._reporter(line)


def _all_tasks_done(tasks_content: str) -> bool:
    """A non-empty checklist without a single open ``- [ ]`` item."""

    items = parse_tasks(tasks_content)
    return bool(items) and all(item.completed for item in items)
