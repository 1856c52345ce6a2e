"""Render role templates into the full prompt delivered on the agent's stdin."""

from __future__ import annotations

import re
from dataclasses import dataclass

from ralph_thinks_first.orchestrator.models import InvocationConfig

_PLACEHOLDER = re.compile(r"\$(TASKS_FILE|MAX_ITERATIONS|CURRENT_ITERATION|INITIAL_PROMPT)\b")

HISTORY_BEGIN = "--- CONVERSATION HISTORY ---"
HISTORY_END = "--- END CONVERSATION HISTORY ---"


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    iteration: int
    output: str


class ConversationHistory:
    """Append-only log of previous iterations, owned by one invocation frame."""

    def __init__(self, *, max_entry_chars: int = 4000) -> None:
        self.max_entry_chars = max_entry_chars
        self._entries: list[HistoryEntry] = []

    def append(self, iteration: int, output: str) -> None:
        text = output.strip()
        if self.max_entry_chars > 0 and len(text) > self.max_entry_chars:
            text = "..." + text[-self.max_entry_chars :]
        self._entries.append(HistoryEntry(iteration=iteration, output=text))

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def render(self) -> str:
        if not self._entries:
            return ""
        parts = [f"\n{HISTORY_BEGIN}\n"]
        for entry in self._entries:
            parts.append(f"[iteration {entry.iteration}]\n{entry.output}\n")
        parts.append(f"{HISTORY_END}\n")
        return "".join(parts)


def build_prompt(  # noqa: PLR0913
    template: str,
    *,
    config: InvocationConfig,
    iteration: int,
    tasks_content: str = "",
    continuation: str | None = None,
    history: ConversationHistory | None = None,
) -> str:
    """Substitute placeholders in one pass, then append task, history and continuation blocks.

    Unknown ``$NAMES`` are left as they are.
    """

    tasks_name = str(config.tasks_file)
    values = {
        "TASKS_FILE": tasks_name,
        "MAX_ITERATIONS": str(config.max_iterations),
        "CURRENT_ITERATION": str(iteration),
        "INITIAL_PROMPT": config.initial_prompt or "",
    }
    prompt = _PLACEHOLDER.sub(lambda match: values[match.group(1)], template)

    if tasks_content.strip():
        prompt += (
            f"\n\nTASK_FILE_NAME={tasks_name}\n\n"
            f"--- CURRENT CONTENTS OF {tasks_name} ---\n"
            f"{tasks_content}"
            "\n--- END CURRENT CONTENTS ---\n"
        )

    if history is not None and len(history):
        prompt += history.render()

    if continuation:
        prompt += continuation

    return prompt
