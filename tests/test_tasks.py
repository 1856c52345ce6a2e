from __future__ import annotations

from pathlib import Path

import allure
import pytest

from ralph_thinks_first.orchestrator.errors import TaskFileError
from ralph_thinks_first.tasks import (
    TASKS_BEGIN_MARKER,
    TASKS_END_MARKER,
    extract_tasks_content,
    parse_tasks,
    read_tasks_file,
    summarize_tasks,
    write_tasks_file,
)

pytestmark = [
    allure.epic("Task Checklist"),
    allure.feature("Task File"),
]


def test_extract_block_from_planner_output() -> None:
    output = f"Some notes.\n{TASKS_BEGIN_MARKER}\n- [ ] A\n- [ ] B\n{TASKS_END_MARKER}\nBye"

    assert extract_tasks_content(output) == "- [ ] A\n- [ ] B"


@pytest.mark.parametrize(
    "output",
    [
        None,
        "",
        "no markers",
        f"{TASKS_BEGIN_MARKER}\n- [ ] A",
        f"{TASKS_END_MARKER}\n- [ ] A\n{TASKS_BEGIN_MARKER}",
    ],
)
def test_extract_returns_none_without_complete_block(output: str | None) -> None:
    assert extract_tasks_content(output) is None


def test_extract_empty_block() -> None:
    assert extract_tasks_content(f"{TASKS_BEGIN_MARKER}\n  \n{TASKS_END_MARKER}") == ""


def test_write_then_read_replaces_whole_file(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "TASKS.md"
    write_tasks_file(path, "old content that is longer")

    write_tasks_file(path, "- [ ] A\n- [ ] B")

    assert read_tasks_file(path) == "- [ ] A\n- [ ] B"
    assert [item.name for item in path.parent.iterdir()] == ["TASKS.md"]


def test_missing_file_reads_empty(tmp_path: Path) -> None:
    assert read_tasks_file(tmp_path / "missing.md") == ""


def test_missing_required_file_raises(tmp_path: Path) -> None:
    with pytest.raises(TaskFileError, match="Task file not found"):
        read_tasks_file(tmp_path / "missing.md", required=True)


@pytest.mark.parametrize("path", [None, "", "   "])
def test_invalid_path_raises(path: str | None) -> None:
    with pytest.raises(TaskFileError, match="Invalid file path"):
        write_tasks_file(path, "x")


def test_parse_and_summarize_checklist() -> None:
    content = "# Plan\n- [x] Set up\n  - [ ] Write code\n- [X] Test\nnot a task\n- [] bad"

    items = parse_tasks(content)
    summary = summarize_tasks(items)

    assert [(item.completed, item.description) for item in items] == [
        (True, "Set up"),
        (False, "Write code"),
        (True, "Test"),
    ]
    assert (summary.done, summary.total, summary.remaining) == (2, 3, 1)
    assert parse_tasks("") == []
