"""Task checklist file: reading, display parsing and whole-file replacement."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path

from ralph_thinks_first.orchestrator.errors import TaskFileError

logger = logging.getLogger(__name__)

TASKS_BEGIN_MARKER = "---BEGIN TASKS.MD---"
TASKS_END_MARKER = "---END TASKS.MD---"

_CHECKBOX = re.compile(r"^\s*-\s*\[([ xX])\]\s*(.+)$")


@dataclass(slots=True)
class TaskItem:
    """One checklist line."""

    completed: bool
    description: str


@dataclass(slots=True)
class TaskSummary:
    done: int
    total: int

    @property
    def remaining(self) -> int:
        return self.total - self.done


def read_tasks_file(path: Path | str | None, *, required: bool = False) -> str:
    """Return task file content; a missing file reads as empty unless ``required``."""

    resolved = _validate_path(path)
    try:
        return resolved.read_text("utf-8")
    except FileNotFoundError as error:
        if required:
            raise TaskFileError(f"Task file not found: {resolved}") from error
        logger.warning("Could not read tasks file %s: file not found", resolved)
        return ""
    except (OSError, UnicodeDecodeError) as error:
        if required:
            raise TaskFileError(f"Failed to read task file {resolved}: {error}") from error
        logger.warning("Could not read tasks file %s: %s", resolved, error)
        return ""


def parse_tasks(content: str | None) -> list[TaskItem]:
    """Extract ``- [ ]`` / ``- [x]`` items in file order."""

    if not content:
        return []

    items: list[TaskItem] = []
    for line in content.split("\n"):
        match = _CHECKBOX.match(line)
        if match is None:
            continue
        items.append(
            TaskItem(
                completed=match.group(1).lower() == "x",
                description=match.group(2).strip(),
            ),
        )
    return items


def summarize_tasks(items: list[TaskItem]) -> TaskSummary:
    return TaskSummary(done=sum(1 for item in items if item.completed), total=len(items))


def extract_tasks_content(output: str | None) -> str | None:
    """Return the trimmed replacement task list delimited in agent output.

    ``None`` means the output carries no complete block (a marker is missing
    or the end marker precedes the begin marker); ``""`` is an explicitly
    empty list.
    """

    if not isinstance(output, str) or not output:
        return None

    begin = output.find(TASKS_BEGIN_MARKER)
    if begin == -1:
        return None
    content_start = begin + len(TASKS_BEGIN_MARKER)
    end = output.find(TASKS_END_MARKER, content_start)
    if end == -1:
        return None
    return output[content_start:end].strip()


def write_tasks_file(path: Path | str | None, content: str) -> None:
    """Replace the whole task file atomically."""

    resolved = _validate_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{resolved.name}.",
        suffix=".tmp",
        dir=resolved.parent,
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        os.replace(temp_name, resolved)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


def _validate_path(path: Path | str | None) -> Path:
    if path is None or not str(path).strip():
        raise TaskFileError(f"Invalid file path: {path!r}. Path must be a non-empty string.")
    return Path(path)
