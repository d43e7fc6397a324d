"""Runtime configuration from environment variables."""

from __future__ import annotations

import json
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

DEFAULT_BUILD_DIR = os.path.join("~", ".sismo", "build")


def parse_timeout(value: str, source: str) -> float:
    """Positive finite number of seconds, or ValueError naming the source."""
    try:
        timeout = float(value)
    except ValueError:
        raise ValueError(f"{source} must be a number of seconds, got {value!r}") from None
    if not math.isfinite(timeout) or timeout <= 0:
        raise ValueError(f"{source} must be positive, got {value!r}")
    return timeout


def parse_git_commands(value: str, source: str) -> dict[str, str]:
    """JSON object of template overrides, or ValueError naming the source."""
    try:
        commands = json.loads(value)
    except json.JSONDecodeError as e:
        raise ValueError(f"{source} is not valid JSON: {e}") from e
    if not isinstance(commands, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in commands.items()
    ):
        raise ValueError(f"{source} must be a JSON object of strings")
    return commands


@dataclass(frozen=True)
class SismoConfig:
    """Builder configuration.

    Environment variables:
        SISMO_BUILD_DIR: Root of all build directories
        SISMO_GIT_PATH: Git binary
        SISMO_TIMEOUT: Per-process timeout in seconds
        SISMO_GIT_CMDS: JSON object overriding git command templates
    """

    build_dir: str = DEFAULT_BUILD_DIR
    git_path: str = "git"
    timeout: float = 3600.0
    git_commands: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "build_dir", os.path.expanduser(self.build_dir))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SismoConfig:
        """Build configuration from environment variables.

        Raises:
            ValueError: If a variable has an invalid value
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}
        if env.get("SISMO_BUILD_DIR"):
            kwargs["build_dir"] = env["SISMO_BUILD_DIR"]
        if env.get("SISMO_GIT_PATH"):
            kwargs["git_path"] = env["SISMO_GIT_PATH"]
        if env.get("SISMO_TIMEOUT"):
            kwargs["timeout"] = parse_timeout(env["SISMO_TIMEOUT"], "SISMO_TIMEOUT")
        if env.get("SISMO_GIT_CMDS"):
            kwargs["git_commands"] = parse_git_commands(env["SISMO_GIT_CMDS"], "SISMO_GIT_CMDS")
        return cls(**kwargs)

    def with_overrides(self, **overrides: Any) -> SismoConfig:
        """Return a copy with non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
