"""Subprocess-based backend that supervises one CLI agent process per invocation."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import os
import shlex
from collections.abc import Callable

from ralph_thinks_first.orchestrator.backend.base import AgentRunRequest
from ralph_thinks_first.orchestrator.errors import AgentLaunchError
from ralph_thinks_first.orchestrator.events import EventLineBuffer, decode_event
from ralph_thinks_first.orchestrator.models import UNKNOWN_EXIT_CODE, AgentResult, Event

logger = logging.getLogger(__name__)

_READ_CHUNK_SIZE = 64 * 1024
SKIP_PERMISSIONS_FLAG = "--dangerously-skip-permissions"


class CliAgentBackend:
    """Spawn the agent command, feed the prompt on stdin and collect both output streams."""

    def run(self, request: AgentRunRequest) -> AgentResult:
        run_args = build_run_args(
            agent_command=request.agent_command,
            model=request.model,
            skip_permissions=request.skip_permissions,
        )
        env = os.environ.copy()
        if request.env:
            env.update(request.env)
        env["RTF_AGENT_ROLE"] = request.role.value
        return asyncio.run(self._run_async(request=request, run_args=run_args, env=env))

    async def _run_async(
        self,
        *,
        request: AgentRunRequest,
        run_args: list[str],
        env: dict[str, str],
    ) -> AgentResult:
        command_head = run_args[0]
        try:
            process = await asyncio.create_subprocess_exec(
                *run_args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except FileNotFoundError as error:
            raise AgentLaunchError(_not_found_message(command_head), command=command_head) from error
        except OSError as error:
            raise AgentLaunchError(
                f"Agent command failed to start: {command_head}: {error}",
                command=command_head,
            ) from error

        logger.debug("Spawned %s agent pid=%s: %s", request.role.value, process.pid, run_args)
        capture = _StreamCapture(on_event=request.on_event)
        drain = asyncio.ensure_future(
            asyncio.gather(
                _write_prompt(process, request.prompt),
                capture.read_stdout(process.stdout),
                capture.read_stderr(process.stderr),
                process.wait(),
            ),
        )

        timed_out = False
        if request.timeout_seconds is None:
            await drain
        else:
            done, _ = await asyncio.wait({drain}, timeout=request.timeout_seconds)
            if drain in done:
                drain.result()
            else:
                timed_out = True
                logger.warning(
                    "Agent %s timed out after %.1fs; terminating pid=%s",
                    request.role.value,
                    request.timeout_seconds,
                    process.pid,
                )
                await _terminate_process(process, grace_seconds=request.exit_wait_seconds)
                drain.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await drain

        capture.finish()
        exit_code = await _collect_exit_code(process, wait_seconds=request.exit_wait_seconds)
        return AgentResult(
            exit_code=exit_code,
            output=capture.output,
            events=tuple(capture.events),
            diagnostics=tuple(capture.diagnostics),
            timed_out=timed_out,
            role=request.role,
        )


class _StreamCapture:
    """Accumulates stdout text and decodes the stderr event stream."""

    def __init__(self, *, on_event: Callable[[Event], None] | None) -> None:
        self._on_event = on_event
        self._stdout_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._stdout_parts: list[str] = []
        self._stderr_lines = EventLineBuffer()
        self.events: list[Event] = []
        self.diagnostics: list[str] = []

    @property
    def output(self) -> str:
        return "".join(self._stdout_parts)

    async def read_stdout(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        while chunk := await stream.read(_READ_CHUNK_SIZE):
            self._stdout_parts.append(self._stdout_decoder.decode(chunk))

    async def read_stderr(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        while chunk := await stream.read(_READ_CHUNK_SIZE):
            for line in self._stderr_lines.feed(chunk):
                self._handle_stderr_line(line)

    def finish(self) -> None:
        """Flush decoder state and the trailing partial stderr line."""

        self._stdout_parts.append(self._stdout_decoder.decode(b"", final=True))
        remainder = self._stderr_lines.flush()
        if remainder is not None:
            self._handle_stderr_line(remainder)

    def _handle_stderr_line(self, line: str) -> None:
        event = decode_event(line)
        if event is None:
            if line.strip():
                self.diagnostics.append(line)
                logger.debug("agent stderr: %s", line)
            return
        self.events.append(event)
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception:
            # Protocol lines are never fatal to the run.
            logger.exception("Event callback failed for %r", event.to_dict())


def build_run_args(
    *,
    agent_command: str,
    model: str | None,
    skip_permissions: bool,
) -> list[str]:
    """Split the configured command and append model and permission flags."""

    stripped = agent_command.strip()
    if not stripped:
        raise AgentLaunchError("Agent command is empty.", command="")
    try:
        argv = shlex.split(stripped)
    except ValueError as error:
        raise AgentLaunchError(
            f"Agent command cannot be parsed: {error}",
            command=stripped,
        ) from error
    if model:
        argv.extend(["--model", model])
    if skip_permissions:
        argv.append(SKIP_PERMISSIONS_FLAG)
    return argv


async def _write_prompt(process: asyncio.subprocess.Process, prompt: str) -> None:
    stdin = process.stdin
    if stdin is None:
        return
    try:
        stdin.write(prompt.encode("utf-8"))
        await stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        # The agent exited without reading its whole input.
        logger.debug("Agent pid=%s closed stdin before the prompt was written", process.pid)
    finally:
        stdin.close()
        with contextlib.suppress(BrokenPipeError, ConnectionResetError):
            await stdin.wait_closed()


async def _terminate_process(
    process: asyncio.subprocess.Process,
    *,
    grace_seconds: float,
) -> None:
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=grace_seconds)
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            process.kill()


async def _collect_exit_code(
    process: asyncio.subprocess.Process,
    *,
    wait_seconds: float,
) -> int:
    if process.returncode is not None:
        return process.returncode
    try:
        return await asyncio.wait_for(process.wait(), timeout=wait_seconds)
    except TimeoutError:
        logger.warning("Exit code of pid=%s not reported in time", process.pid)
        return UNKNOWN_EXIT_CODE


def _not_found_message(command_head: str) -> str:
    return (
        f"Agent CLI not found. The command '{command_head}' is not available.\n\n"
        "To install Claude CLI:\n"
        "  1. Visit https://claude.ai/download\n"
        "  2. Follow the installation instructions for your platform\n"
        "  3. Ensure 'claude' is in your PATH\n\n"
        "Alternatively, point to a different agent command with:\n"
        "  the RTF_CLAUDE_COMMAND environment variable, or\n"
        '  "claudeCommand" in your .rtfrc.json config file'
    )
