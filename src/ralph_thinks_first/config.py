"""Runtime configuration layered from defaults, config file, environment and CLI flags."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ralph_thinks_first.orchestrator.errors import ConfigError
from ralph_thinks_first.orchestrator.models import InvocationConfig, Role

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5"
DEFAULT_AGENT_COMMAND = "claude -p"
DEFAULT_CONFIG_FILE = Path(".rtfrc.json")
DEFAULT_TASKS_FILE = Path("TASKS.md")
DEFAULT_MAX_ITERATIONS = 10


@dataclass(slots=True)
class AgentSettings:
    """How the external agent CLI is launched."""

    command: str = DEFAULT_AGENT_COMMAND
    model: str = DEFAULT_MODEL
    skip_permissions: bool = False
    timeout_seconds: float | None = None


@dataclass(slots=True)
class Settings:
    """Application settings for one orchestration run."""

    role: Role = Role.MANAGER
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    tasks_file: Path = DEFAULT_TASKS_FILE
    config_file: Path = DEFAULT_CONFIG_FILE
    roles_dir: Path | None = None
    agent: AgentSettings = field(default_factory=AgentSettings)

    @classmethod
    def load(  # noqa: PLR0913
        cls,
        config_file: Path | None = None,
        *,
        role: str | None = None,
        model: str | None = None,
        max_iterations: int | None = None,
        tasks_file: Path | None = None,
        agent_command: str | None = None,
        skip_permissions: bool | None = None,
        timeout_seconds: float | None = None,
        roles_dir: Path | None = None,
    ) -> Settings:
        """Resolve settings: defaults < config file < environment < explicit arguments.

        Explicit arguments left as ``None`` do not override lower layers.
        """

        settings = cls()
        env_config_file = os.getenv("RTF_CONFIG_FILE", "").strip()
        if config_file is not None:
            settings.config_file = config_file
        elif env_config_file:
            settings.config_file = Path(env_config_file)

        settings._apply_file(_read_config_file(settings.config_file))
        settings._apply_env()
        settings._apply_values(
            role=role,
            model=model,
            max_iterations=max_iterations,
            tasks_file=tasks_file,
            agent_command=agent_command,
            skip_permissions=skip_permissions,
            timeout_seconds=timeout_seconds,
            roles_dir=roles_dir,
        )
        return settings

    def validate(self) -> None:
        """Raise configuration error for values the engine cannot run with."""

        if self.max_iterations < 1:
            raise ConfigError(f"max iterations must be >= 1, got {self.max_iterations}.")
        if self.agent.timeout_seconds is not None and self.agent.timeout_seconds <= 0:
            raise ConfigError(f"timeout must be > 0 seconds, got {self.agent.timeout_seconds}.")
        if not self.agent.command.strip():
            raise ConfigError(
                "Agent command is empty. Set RTF_CLAUDE_COMMAND or claudeCommand.",
            )
        if not str(self.tasks_file).strip():
            raise ConfigError("Tasks file path must not be empty.")

    def to_invocation_config(self, initial_prompt: str | None = None) -> InvocationConfig:
        return InvocationConfig(
            agent_command=self.agent.command,
            model=self.agent.model or None,
            tasks_file=self.tasks_file,
            max_iterations=self.max_iterations,
            timeout_seconds=self.agent.timeout_seconds,
            initial_prompt=initial_prompt,
            skip_permissions=self.agent.skip_permissions,
        )

    def _apply_file(self, payload: dict[str, Any]) -> None:
        if not payload:
            return
        self._apply_values(
            role=_file_str(payload, "role"),
            model=_file_str(payload, "model"),
            max_iterations=_file_int(payload, "maxIterations"),
            tasks_file=_file_path(payload, "tasksFile"),
            agent_command=_file_str(payload, "claudeCommand"),
            skip_permissions=_file_bool(payload, "skipPermissions"),
            timeout_seconds=_file_float(payload, "timeoutSeconds"),
            roles_dir=_file_path(payload, "rolesDir"),
        )

    def _apply_env(self) -> None:
        self._apply_values(
            role=_env_str("RTF_ROLE"),
            model=_env_str("RTF_MODEL"),
            max_iterations=_env_int("RTF_MAX_ITERATIONS"),
            tasks_file=_env_path("RTF_TASKS_FILE"),
            agent_command=_env_str("RTF_CLAUDE_COMMAND"),
            skip_permissions=_env_bool("RTF_SKIP_PERMISSIONS"),
            timeout_seconds=_env_float("RTF_TIMEOUT_SECONDS"),
            roles_dir=_env_path("RTF_ROLES_DIR"),
        )

    def _apply_values(  # noqa: PLR0913
        self,
        *,
        role: str | None,
        model: str | None,
        max_iterations: int | None,
        tasks_file: Path | None,
        agent_command: str | None,
        skip_permissions: bool | None,
        timeout_seconds: float | None,
        roles_dir: Path | None,
    ) -> None:
        if role is not None:
            self.role = Role.parse(role)
        if model is not None:
            self.agent.model = model
        if max_iterations is not None:
            self.max_iterations = max_iterations
        if tasks_file is not None:
            self.tasks_file = tasks_file
        if agent_command is not None:
            self.agent.command = agent_command
        if skip_permissions is not None:
            self.agent.skip_permissions = skip_permissions
        if timeout_seconds is not None:
            self.agent.timeout_seconds = timeout_seconds
        if roles_dir is not None:
            self.roles_dir = roles_dir


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text("utf-8")
    except FileNotFoundError:
        logger.debug("Config file %s not found; using defaults", path)
        return {}
    except OSError as error:
        raise ConfigError(f"Failed to read config file {path}: {error}") from error

    try:
        payload = json.loads(raw)
    except ValueError as error:
        raise ConfigError(
            f"Invalid JSON in config file {path}: {error}. "
            "Fix the syntax or remove the file to use defaults.",
        ) from error
    if not isinstance(payload, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object.")
    logger.debug("Loaded config file %s", path)
    return payload


def _file_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"Config key {key!r} must be a string, got {value!r}.")
    return value


def _file_path(payload: dict[str, Any], key: str) -> Path | None:
    value = _file_str(payload, key)
    return Path(value) if value else None


def _file_int(payload: dict[str, Any], key: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"Config key {key!r} must be an integer, got {value!r}.")
    return value


def _file_float(payload: dict[str, Any], key: str) -> float | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ConfigError(f"Config key {key!r} must be a number, got {value!r}.")
    return float(value)


def _file_bool(payload: dict[str, Any], key: str) -> bool | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ConfigError(f"Config key {key!r} must be true or false, got {value!r}.")
    return value


def _env_str(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_path(name: str) -> Path | None:
    value = _env_str(name)
    return Path(value) if value else None


def _env_int(name: str) -> int | None:
    value = _env_str(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, value)
        return None


def _env_float(name: str) -> float | None:
    value = _env_str(name)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", name, value)
        return None


def _env_bool(name: str) -> bool | None:
    value = _env_str(name)
    if value is None:
        return None
    normalized = value.lower()
    if normalized in {"1", "true", "yes"}:
        return True
    if normalized not in {"0", "false", "no"}:
        logger.warning("Treating %s=%r as false", name, value)
    return False
