from __future__ import annotations

from pathlib import Path

import allure

from ralph_thinks_first.orchestrator.engine import OrchestrationEngine
from ralph_thinks_first.orchestrator.models import (
    EXIT_MAX_ITERATIONS,
    EXIT_TIMED_OUT,
    ITERATION_LIMIT_OUTPUT,
    AgentResult,
    FrameStatus,
    InvocationConfig,
    Role,
)
from ralph_thinks_first.orchestrator.prompt_builder import HISTORY_BEGIN
from ralph_thinks_first.tasks import TASKS_BEGIN_MARKER, TASKS_END_MARKER

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Orchestration Engine"),
]

PLAN_DIRECTIVE = "**INVOKE**: ralph-thinks-first --role plan --tasks {tasks}"


def _config(tmp_path: Path, **changes) -> InvocationConfig:
    return InvocationConfig(
        tasks_file=tmp_path / "TASKS.md",
        initial_prompt="Build a todo app",
    ).with_overrides(**changes)


def test_ceiling_below_first_iteration_spawns_nothing(tmp_path: Path, scripted_backend) -> None:
    backend = scripted_backend([])
    engine = OrchestrationEngine(backend=backend)

    outcome = engine.run(Role.CODER, _config(tmp_path, max_iterations=0))

    assert backend.requests == []
    assert outcome.status is FrameStatus.ITERATION_LIMIT
    assert outcome.result.exit_code == 1
    assert outcome.result.output == ITERATION_LIMIT_OUTPUT
    assert outcome.exit_code == EXIT_MAX_ITERATIONS


def test_resumes_until_iteration_ceiling(tmp_path: Path, scripted_backend) -> None:
    backend = scripted_backend(["still working", "still working"])
    engine = OrchestrationEngine(backend=backend)

    outcome = engine.run(Role.CODER, _config(tmp_path, max_iterations=2))

    assert backend.roles == ["code", "code"]
    assert outcome.status is FrameStatus.ITERATION_LIMIT
    assert outcome.reached_max_iterations
    assert len(outcome.results) == 2


def test_completion_beats_directive_for_manager(tmp_path: Path, scripted_backend) -> None:
    output = PLAN_DIRECTIVE.format(tasks="TASKS.md") + "\n**AGENT COMPLETE**"
    backend = scripted_backend([output])

    outcome = OrchestrationEngine(backend=backend).run(Role.MANAGER, _config(tmp_path))

    assert backend.roles == ["manage"]
    assert outcome.completed
    assert outcome.exit_code == 0


def test_directive_from_non_manager_resumes_same_role(tmp_path: Path, scripted_backend) -> None:
    backend = scripted_backend(
        [PLAN_DIRECTIVE.format(tasks="TASKS.md"), "ALL_TASKS_COMPLETE"],
    )

    outcome = OrchestrationEngine(backend=backend).run(Role.CODER, _config(tmp_path))

    assert backend.roles == ["code", "code"]
    assert outcome.completed
    assert outcome.iterations == 2


def test_manager_invokes_planner_and_resumes_with_summary(
    tmp_path: Path,
    scripted_backend,
) -> None:
    tasks_file = tmp_path / "TASKS.md"
    planner_output = (
        f"Here is the plan.\n{TASKS_BEGIN_MARKER}\n- [ ] A\n- [ ] B\n{TASKS_END_MARKER}\n"
        "**AGENT COMPLETE**"
    )
    backend = scripted_backend(
        [
            "Planning first.\n" + PLAN_DIRECTIVE.format(tasks=tasks_file),
            planner_output,
            "**AGENT COMPLETE**",
        ],
    )

    outcome = OrchestrationEngine(backend=backend).run(Role.MANAGER, _config(tmp_path))

    assert backend.roles == ["manage", "plan", "manage"]
    assert outcome.completed
    assert outcome.role is Role.MANAGER
    assert len(outcome.results) == 3
    assert tasks_file.read_text("utf-8") == "- [ ] A\n- [ ] B"

    planner_prompt = backend.requests[1].prompt
    assert "--- SUB-AGENT RESULT ---" not in planner_prompt
    assert "Build a todo app" in planner_prompt

    resumed_prompt = backend.requests[2].prompt
    assert "--- SUB-AGENT RESULT ---" in resumed_prompt
    assert "Agent: plan" in resumed_prompt
    assert "Completed: Yes" in resumed_prompt
    assert "- [ ] A\n- [ ] B" in resumed_prompt
    assert "iteration 2 of at most 10" in resumed_prompt


def test_directive_arguments_override_child_settings(tmp_path: Path, scripted_backend) -> None:
    directive = "**INVOKE**: ralph-thinks-first --role code --max-iterations 1 --model opus"
    backend = scripted_backend([directive, "partial work", "**AGENT COMPLETE**"])

    outcome = OrchestrationEngine(backend=backend).run(
        Role.MANAGER,
        _config(tmp_path, model="sonnet"),
    )

    assert backend.roles == ["manage", "code", "manage"]
    assert backend.requests[1].model == "opus"
    assert backend.requests[2].model == "sonnet"
    resumed_prompt = backend.requests[2].prompt
    assert "Agent: code" in resumed_prompt
    assert "Exit Code: 1" in resumed_prompt
    assert "Completed: No" in resumed_prompt
    assert outcome.completed


def test_sub_agent_continuation_is_used_once(tmp_path: Path, scripted_backend) -> None:
    backend = scripted_backend(
        [
            "**INVOKE**: ralph-thinks-first --role document",
            "**AGENT COMPLETE**",
            "thinking",
            "**AGENT COMPLETE**",
        ],
    )

    OrchestrationEngine(backend=backend).run(Role.MANAGER, _config(tmp_path))

    assert "--- SUB-AGENT RESULT ---" in backend.requests[2].prompt
    assert "--- SUB-AGENT RESULT ---" not in backend.requests[3].prompt


def test_timeout_is_terminal(tmp_path: Path, scripted_backend) -> None:
    tasks_file = tmp_path / "TASKS.md"
    timed_out = AgentResult(
        exit_code=-15,
        output=f"{TASKS_BEGIN_MARKER}\n- [ ] Draft\n{TASKS_END_MARKER}\n**AGENT COMPLETE**",
        timed_out=True,
        role=Role.PLANNER,
    )
    backend = scripted_backend([timed_out])

    outcome = OrchestrationEngine(backend=backend).run(
        Role.PLANNER,
        _config(tmp_path, timeout_seconds=5),
    )

    assert outcome.status is FrameStatus.TIMED_OUT
    assert outcome.exit_code == EXIT_TIMED_OUT
    assert backend.requests[0].timeout_seconds == 5
    assert tasks_file.read_text("utf-8") == "- [ ] Draft"


def test_agent_reported_exhaustion_is_terminal(tmp_path: Path, scripted_backend) -> None:
    backend = scripted_backend(["REACHED MAX ITERATIONS\nCannot continue"])

    outcome = OrchestrationEngine(backend=backend).run(Role.CODER, _config(tmp_path))

    assert outcome.status is FrameStatus.AGENT_EXHAUSTED
    assert outcome.exit_code == EXIT_MAX_ITERATIONS


def test_unknown_directive_role_resumes_manager(tmp_path: Path, scripted_backend) -> None:
    backend = scripted_backend(
        ["**INVOKE**: ralph-thinks-first --role deploy", "**AGENT COMPLETE**"],
    )

    outcome = OrchestrationEngine(backend=backend).run(Role.MANAGER, _config(tmp_path))

    assert backend.roles == ["manage", "manage"]
    assert outcome.completed


def test_non_zero_exit_without_marker_resumes(tmp_path: Path, scripted_backend) -> None:
    backend = scripted_backend(
        [AgentResult(exit_code=1, output="crashed"), "ALL_TASKS_COMPLETE"],
    )

    outcome = OrchestrationEngine(backend=backend).run(Role.CODER, _config(tmp_path))

    assert backend.roles == ["code", "code"]
    assert outcome.completed


def test_history_is_kept_only_for_worker_roles(tmp_path: Path, scripted_backend) -> None:
    backend = scripted_backend(["first coder answer", "ALL_TASKS_COMPLETE"])
    OrchestrationEngine(backend=backend).run(Role.CODER, _config(tmp_path))

    assert HISTORY_BEGIN not in backend.requests[0].prompt
    assert HISTORY_BEGIN in backend.requests[1].prompt
    assert "first coder answer" in backend.requests[1].prompt

    manager_backend = scripted_backend(["first manager answer", "**AGENT COMPLETE**"])
    OrchestrationEngine(backend=manager_backend).run(Role.MANAGER, _config(tmp_path))

    assert HISTORY_BEGIN not in manager_backend.requests[1].prompt


def test_templates_and_reporter(tmp_path: Path, scripted_backend) -> None:
    backend = scripted_backend(["agent says hi\n**AGENT COMPLETE**"])
    reported: list[str] = []
    engine = OrchestrationEngine(
        backend=backend,
        templates={Role.MANAGER: "iter $CURRENT_ITERATION/$MAX_ITERATIONS"},
        reporter=reported.append,
    )

    engine.run(Role.MANAGER, _config(tmp_path, max_iterations=4))

    assert backend.requests[0].prompt == "iter 1/4"
    assert "[MANAGE] Running (iteration 1/4)..." in reported
    assert "agent says hi\n**AGENT COMPLETE**" in reported


def test_initial_continuation_reaches_first_prompt_only(tmp_path: Path, scripted_backend) -> None:
    backend = scripted_backend(["working", "ALL_TASKS_COMPLETE"])
    engine = OrchestrationEngine(backend=backend, templates={Role.CODER: "body"})

    engine.run(Role.CODER, _config(tmp_path, continuation="\nresume here"))

    assert backend.requests[0].prompt == "body\nresume here"
    assert "resume here" not in backend.requests[1].prompt


def test_planner_task_block_is_persisted_on_every_pass(tmp_path: Path, scripted_backend) -> None:
    tasks_file = tmp_path / "TASKS.md"
    backend = scripted_backend(
        [
            f"Draft plan, questions remain.\n{TASKS_BEGIN_MARKER}\n- [ ] Draft\n{TASKS_END_MARKER}",
            "**AGENT COMPLETE**",
        ],
    )

    outcome = OrchestrationEngine(backend=backend).run(Role.PLANNER, _config(tmp_path))

    assert backend.roles == ["plan", "plan"]
    assert outcome.completed
    assert tasks_file.read_text("utf-8") == "- [ ] Draft"
    assert "--- CURRENT CONTENTS OF" in backend.requests[1].prompt
    assert "- [ ] Draft" in backend.requests[1].prompt


def test_iteration_limit_reports_invocations_made(tmp_path: Path, scripted_backend) -> None:
    backend = scripted_backend(["working", "working"])

    outcome = OrchestrationEngine(backend=backend).run(
        Role.CODER,
        _config(tmp_path, max_iterations=2),
    )

    assert outcome.status is FrameStatus.ITERATION_LIMIT
    assert outcome.iterations == 2


def test_coder_stops_without_spawning_when_all_tasks_are_checked(
    tmp_path: Path,
    scripted_backend,
) -> None:
    (tmp_path / "TASKS.md").write_text("- [x] One\n- [X] Two\n", encoding="utf-8")
    backend = scripted_backend([])

    outcome = OrchestrationEngine(backend=backend).run(Role.CODER, _config(tmp_path))

    assert backend.requests == []
    assert outcome.completed
    assert outcome.exit_code == 0
    assert outcome.result.output == "All tasks complete!"
    assert outcome.iterations == 0


def test_coder_runs_while_tasks_remain(tmp_path: Path, scripted_backend) -> None:
    tasks_file = tmp_path / "TASKS.md"
    tasks_file.write_text("- [x] One\n- [ ] Two\n", encoding="utf-8")

    backend = scripted_backend(["Finished task Two"])
    replay = backend.run

    def run_and_check_off(request):
        result = replay(request)
        tasks_file.write_text("- [x] One\n- [x] Two\n", encoding="utf-8")
        return result

    backend.run = run_and_check_off

    outcome = OrchestrationEngine(backend=backend).run(Role.CODER, _config(tmp_path))

    assert backend.roles == ["code"]
    assert outcome.completed
    assert outcome.result.output == "All tasks complete!"
    assert outcome.iterations == 1


def test_coder_with_empty_checklist_still_runs(tmp_path: Path, scripted_backend) -> None:
    (tmp_path / "TASKS.md").write_text("# Notes only\n", encoding="utf-8")
    backend = scripted_backend(["ALL_TASKS_COMPLETE"])

    outcome = OrchestrationEngine(backend=backend).run(Role.CODER, _config(tmp_path))

    assert backend.roles == ["code"]
    assert outcome.completed


def test_coder_child_with_finished_checklist_reports_completion(
    tmp_path: Path,
    scripted_backend,
) -> None:
    (tmp_path / "TASKS.md").write_text("- [x] One\n", encoding="utf-8")
    backend = scripted_backend(
        ["**INVOKE**: ralph-thinks-first --role code", "**AGENT COMPLETE**"],
    )

    outcome = OrchestrationEngine(backend=backend).run(Role.MANAGER, _config(tmp_path))

    assert backend.roles == ["manage", "manage"]
    assert "Agent: code" in backend.requests[1].prompt
    assert "Completed: Yes" in backend.requests[1].prompt
    assert outcome.completed
