"""Project definition handed to the builder."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

DEFAULT_BRANCH = "master"
DEFAULT_COMMAND = "make test"

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Turn a project name into a lowercase dash-separated slug."""
    slug = _SLUG_PATTERN.sub("-", name.lower()).strip("-")
    return slug or "n-a"


@dataclass(frozen=True)
class Project:
    """A buildable project: repository, branch and build script.

    Immutable for the duration of a build. ``str(project)`` is the project
    name, which is what error messages refer to.
    """

    name: str
    repository: str
    branch: str = DEFAULT_BRANCH
    command: str = DEFAULT_COMMAND
    coverage_path: str | None = None
    slug: str = field(default="")

    def __post_init__(self) -> None:
        if not self.repository:
            raise ValueError(f'Project "{self.name}" has no repository')
        if not self.branch:
            raise ValueError(f'Project "{self.name}" has no branch')
        if not self.slug:
            object.__setattr__(self, "slug", slugify(self.name))

    def __str__(self) -> str:
        return self.name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "name": self.name,
            "slug": self.slug,
            "repository": self.repository,
            "branch": self.branch,
            "command": self.command,
        }
        if self.coverage_path:
            result["coveragePath"] = self.coverage_path
        return result
