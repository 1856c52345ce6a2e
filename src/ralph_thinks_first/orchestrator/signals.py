"""Classify agent output text into control signals for the orchestration loop."""

from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ralph_thinks_first.orchestrator.errors import UnknownRoleError
from ralph_thinks_first.orchestrator.models import InvocationConfig, Role

logger = logging.getLogger(__name__)

COMPLETION_MARKERS: tuple[str, ...] = ("**AGENT COMPLETE**", "ALL_TASKS_COMPLETE")
MAX_ITERATIONS_MARKER = "REACHED MAX ITERATIONS"
DIRECTIVE_TOKEN = "**INVOKE**"

_DIRECTIVE = re.compile(
    r"\*\*INVOKE\*\*:[ \t]*ralph-thinks-first[ \t]+--role[ \t]+(\S+)(?:[ \t]+([^\r\n]*))?",
    re.IGNORECASE,
)
_MARKDOWN_PUNCTUATION = "`*_.,;:)"
_OPTION_NAMES: dict[str, str] = {
    "--tasks": "tasks_file",
    "-t": "tasks_file",
    "--model": "model",
    "-m": "model",
    "--max-iterations": "max_iterations",
    "--max-iter": "max_iterations",
    "--timeout": "timeout_seconds",
    "--prompt": "prompt",
    "-p": "prompt",
}


class SignalKind(str, Enum):
    """Tagged outcome of output classification."""

    COMPLETED = "completed"
    ITERATION_EXHAUSTED = "iteration_exhausted"
    DIRECTIVE = "directive"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class DirectiveArguments:
    """Overrides parsed from the option text of a directive."""

    tasks_file: Path | None = None
    model: str | None = None
    max_iterations: int | None = None
    timeout_seconds: float | None = None
    prompt: str | None = None

    def apply_to(self, config: InvocationConfig) -> InvocationConfig:
        """Derive a sub-agent config: parent settings, directive overrides, no continuation."""

        changes: dict[str, object] = {"continuation": None}
        if self.tasks_file is not None:
            changes["tasks_file"] = self.tasks_file
        if self.model is not None:
            changes["model"] = self.model
        if self.max_iterations is not None:
            changes["max_iterations"] = self.max_iterations
        if self.timeout_seconds is not None:
            changes["timeout_seconds"] = self.timeout_seconds
        if self.prompt is not None:
            changes["initial_prompt"] = self.prompt
        return config.with_overrides(**changes)


@dataclass(frozen=True, slots=True)
class Directive:
    """A manager instruction to run one sub-agent."""

    role: Role
    argument_text: str
    arguments: DirectiveArguments


@dataclass(frozen=True, slots=True)
class OutputSignal:
    kind: SignalKind
    marker: str | None = None
    directive: Directive | None = None


NO_SIGNAL = OutputSignal(kind=SignalKind.NONE)


def classify_output(output: str | None, *, role: Role) -> OutputSignal:
    """Classify one agent output.

    Priority: completion, then iteration exhaustion, then (manager only) the
    first directive.  Directive parsing never runs once a terminal marker is
    found, and is gated on the role rather than on the output content.
    """

    if not output:
        return NO_SIGNAL

    marker = find_completion_marker(output)
    if marker is not None:
        return OutputSignal(kind=SignalKind.COMPLETED, marker=marker)

    if MAX_ITERATIONS_MARKER in output:
        return OutputSignal(kind=SignalKind.ITERATION_EXHAUSTED, marker=MAX_ITERATIONS_MARKER)

    if not role.can_invoke:
        return NO_SIGNAL

    directive = parse_directive(output)
    if directive is None:
        return NO_SIGNAL
    return OutputSignal(kind=SignalKind.DIRECTIVE, marker=DIRECTIVE_TOKEN, directive=directive)


def find_completion_marker(output: str | None) -> str | None:
    if not output:
        return None
    for marker in COMPLETION_MARKERS:
        if marker in output:
            return marker
    return None


def has_completion_signal(output: str | None) -> bool:
    return find_completion_marker(output) is not None


def parse_directive(output: str) -> Directive | None:
    """Parse the first ``**INVOKE**`` line; later directives are ignored."""

    match = _DIRECTIVE.search(output)
    if match is None:
        return None

    role_token = match.group(1).strip(_MARKDOWN_PUNCTUATION)
    try:
        role = Role.parse(role_token)
    except UnknownRoleError:
        logger.warning("Ignoring directive for unknown role %r", role_token)
        return None

    argument_text = (match.group(2) or "").strip().rstrip(_MARKDOWN_PUNCTUATION).strip()
    return Directive(
        role=role,
        argument_text=argument_text,
        arguments=parse_directive_arguments(argument_text),
    )


def parse_directive_arguments(argument_text: str) -> DirectiveArguments:  # noqa: C901
    """Parse the option flags a directive may carry; unknown tokens are noise."""

    try:
        tokens = shlex.split(argument_text)
    except ValueError:
        tokens = argument_text.split()

    values: dict[str, str] = {}
    index = 0
    while index < len(tokens):
        token = tokens[index]
        name = _OPTION_NAMES.get(token)
        if name is not None and index + 1 < len(tokens):
            values[name] = tokens[index + 1]
            index += 2
            continue
        logger.debug("Ignoring directive token %r", token)
        index += 1

    max_iterations: int | None = None
    if "max_iterations" in values:
        try:
            max_iterations = int(values["max_iterations"])
        except ValueError:
            logger.warning("Ignoring invalid --max-iterations %r", values["max_iterations"])
        else:
            if max_iterations < 1:
                logger.warning("Ignoring non-positive --max-iterations %d", max_iterations)
                max_iterations = None

    timeout_seconds: float | None = None
    if "timeout_seconds" in values:
        try:
            timeout_seconds = float(values["timeout_seconds"])
        except ValueError:
            logger.warning("Ignoring invalid --timeout %r", values["timeout_seconds"])
        else:
            if timeout_seconds <= 0:
                timeout_seconds = None

    return DirectiveArguments(
        tasks_file=Path(values["tasks_file"]) if "tasks_file" in values else None,
        model=values.get("model"),
        max_iterations=max_iterations,
        timeout_seconds=timeout_seconds,
        prompt=values.get("prompt"),
    )


def sub_agent_continuation(
    *,
    role: Role,
    exit_code: int,
    completed: bool,
    timed_out: bool = False,
) -> str:
    """Message appended to the manager's next prompt after a sub-agent finishes."""

    lines = [
        "",
        "",
        "--- SUB-AGENT RESULT ---",
        f"Agent: {role.value}",
        f"Exit Code: {exit_code}",
        f"Completed: {'Yes' if completed else 'No'}",
    ]
    if timed_out:
        lines.append("Timed Out: Yes")
    lines.extend(
        [
            "--- END SUB-AGENT RESULT ---",
            "",
            "The sub-agent has finished. What is the next step?",
            "",
        ],
    )
    return "\n".join(lines)
