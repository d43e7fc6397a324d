"""Git command templates.

Templates use %placeholder% tokens. Every substituted value is shell-quoted
with shlex.quote, except the fixed log format string.
"""

from __future__ import annotations

import re
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Final

from .state import UnknownOperation

DEFAULT_GIT_COMMANDS: Final[Mapping[str, str]] = MappingProxyType(
    {
        "clone": "clone --progress --recursive %repo% %dir% --branch %localbranch%",
        "fetch": "fetch origin",
        "prepare": "submodule update --init --recursive",
        "checkout": "checkout -q -f %branch%",
        "reset": "reset --hard %revision%",
        "show": "show -s --pretty=format:%format% %revision%",
    }
)

# hash, author name, ISO commit date, subject
SHOW_FORMAT: Final[str] = '"%H%n%an%n%ci%n%s%n"'

REMOTE_NAME: Final[str] = "origin"


def default_substitutions(repository: str, build_dir: str, branch: str) -> dict[str, str]:
    """Escaped placeholder values derived from a project and its directory."""
    return {
        "%repo%": shlex.quote(repository),
        "%dir%": shlex.quote(build_dir),
        "%branch%": shlex.quote(f"{REMOTE_NAME}/{branch}"),
        "%localbranch%": shlex.quote(branch),
        "%format%": SHOW_FORMAT,
    }


@dataclass(frozen=True)
class CommandTemplates:
    """Immutable set of git subcommand templates.

    Built once from the defaults with caller overrides merged over them.
    """

    git_path: str = "git"
    overrides: Mapping[str, str] = field(default_factory=dict)
    templates: Mapping[str, str] = field(init=False)

    def __post_init__(self) -> None:
        merged = dict(DEFAULT_GIT_COMMANDS)
        merged.update(self.overrides)
        object.__setattr__(self, "templates", MappingProxyType(merged))
        object.__setattr__(self, "overrides", MappingProxyType(dict(self.overrides)))

    @property
    def operations(self) -> frozenset[str]:
        """Names of all renderable operations."""
        return frozenset(self.templates)

    def render(
        self,
        operation: str,
        substitutions: Mapping[str, str],
        extra: Mapping[str, str] | None = None,
    ) -> str:
        """Render a full command line for a git operation.

        Args:
            operation: Template name (clone, fetch, prepare, ...)
            substitutions: Already escaped default placeholder values
            extra: Raw placeholder values merged over the defaults; escaped here

        Returns:
            Command string starting with the git binary path

        Raises:
            UnknownOperation: If no template exists for the operation
        """
        if operation not in self.templates:
            raise UnknownOperation(operation)

        replace = dict(substitutions)
        if extra:
            replace.update({key: shlex.quote(value) for key, value in extra.items()})

        command = self.templates[operation]
        if replace:
            # Single pass, longest key first, so substituted values are never rescanned
            keys = sorted(replace, key=len, reverse=True)
            pattern = re.compile("|".join(map(re.escape, keys)))
            command = pattern.sub(lambda match: replace[match.group(0)], command)
        return f"{self.git_path} {command}"
