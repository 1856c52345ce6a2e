"""CLI entrypoint for ralph-thinks-first."""

import logging
from pathlib import Path

import rich_click as click

from ralph_thinks_first import __version__
from ralph_thinks_first.orchestrator.controllers import (
    OrchestratorCliController,
    RunCommand,
    TasksCommand,
)
from ralph_thinks_first.orchestrator.errors import OrchestratorError

click.rich_click.USE_MARKDOWN = True
ORCHESTRATOR_CONTROLLER = OrchestratorCliController()
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.group()
@click.version_option(version=__version__, prog_name="ralph-thinks-first")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    envvar="RTF_LOG_LEVEL",
    help="Logging verbosity (stderr).",
)
def ralph_thinks_first(log_level: str) -> None:
    """Orchestrate plan, code and document agents around a shared task file."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@ralph_thinks_first.command("run")
@click.option("--prompt", "-p", default=None, help="Project prompt for the manager.")
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(path_type=Path),
    default=None,
    help="JSON config file (default: .rtfrc.json or RTF_CONFIG_FILE).",
)
@click.option("--model", "-m", default=None, help="Model passed to the agent CLI.")
@click.option(
    "--max-iterations",
    type=click.IntRange(min=1),
    default=None,
    help="Iteration ceiling per role invocation.",
)
@click.option(
    "--tasks",
    "-t",
    "tasks_file",
    type=click.Path(path_type=Path),
    default=None,
    help="Task checklist file (default: TASKS.md).",
)
@click.option(
    "--role",
    "-r",
    default=None,
    help="Role to start with: manage, plan, code or document.",
)
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-invocation timeout in seconds.",
)
@click.option(
    "--skip-permissions/--no-skip-permissions",
    default=None,
    help="Pass --dangerously-skip-permissions to the agent CLI.",
)
@click.pass_context
def run(  # noqa: PLR0913
    ctx: click.Context,
    prompt: str | None,
    config_file: Path | None,
    model: str | None,
    max_iterations: int | None,
    tasks_file: Path | None,
    role: str | None,
    timeout_seconds: float | None,
    skip_permissions: bool | None,
) -> None:
    """Run a role until it completes, times out or hits the iteration ceiling."""

    try:
        result = ORCHESTRATOR_CONTROLLER.run(
            RunCommand(
                prompt=prompt,
                config_file=config_file,
                role=role,
                model=model,
                max_iterations=max_iterations,
                tasks_file=tasks_file,
                timeout_seconds=timeout_seconds,
                skip_permissions=skip_permissions,
            ),
            emit=click.echo,
            ask_prompt=_ask_project_prompt,
        )
    except (OrchestratorError, ValueError) as error:
        raise click.ClickException(str(error)) from error

    _emit_lines(result.lines)
    ctx.exit(result.exit_code)


@ralph_thinks_first.command("tasks")
@click.option(
    "--tasks",
    "-t",
    "tasks_file",
    type=click.Path(path_type=Path),
    default=None,
    help="Task checklist file (default: TASKS.md).",
)
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(path_type=Path),
    default=None,
    help="JSON config file.",
)
def tasks(tasks_file: Path | None, config_file: Path | None) -> None:
    """Show the task checklist with done/total counts."""

    try:
        lines = ORCHESTRATOR_CONTROLLER.tasks(
            TasksCommand(tasks_file=tasks_file, config_file=config_file),
        )
    except (OrchestratorError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@ralph_thinks_first.command("roles")
def roles() -> None:
    """List the available agent roles."""

    _emit_lines(ORCHESTRATOR_CONTROLLER.roles())


def _ask_project_prompt() -> str:
    return click.prompt("What would you like to build?", default="", show_default=False)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    ralph_thinks_first()
