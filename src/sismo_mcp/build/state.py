"""Builder state machine, result types and errors.

State machine for a builder instance:
UNINITIALIZED → INITIALIZED → DIRECTORY_READY → SYNCED → CHECKED_OUT
    → RESET → BUILT → COVERAGE_COMPUTED
Any step may move to FAILED (terminal, carries the triggering error).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class BuilderState(str, Enum):
    """Builder state machine states."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    DIRECTORY_READY = "directory_ready"
    SYNCED = "synced"
    CHECKED_OUT = "checked_out"
    RESET = "reset"
    BUILT = "built"
    COVERAGE_COMPUTED = "coverage_computed"
    FAILED = "failed"


class BuildStatus(str, Enum):
    """Outcome of a complete build pipeline run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SismoError(Exception):
    """Base exception for build orchestration errors."""

    def __init__(self, message: str, project: str | None = None):
        super().__init__(message)
        self.project = project

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error": str(self),
            "type": type(self).__name__,
        }
        if self.project is not None:
            result["project"] = self.project
        return result


class ToolNotFound(SismoError):
    """Raised when the git binary cannot be executed."""

    def __init__(self, git_path: str):
        super().__init__(f"The git binary cannot be found ({git_path}).")
        self.git_path = git_path


class UnknownOperation(SismoError):
    """Raised when rendering a command that has no template."""

    def __init__(self, operation: str):
        super().__init__(f'Unknown git operation "{operation}".')
        self.operation = operation


class BuilderNotInitialized(SismoError):
    """Raised when a builder is used before initialize()."""

    pass


class InvalidBuilderState(SismoError):
    """Raised when an operation is not allowed in the builder's current state.

    FAILED is terminal: a failed builder refuses everything until it is
    replaced by a new one.
    """

    def __init__(self, operation: str, state: BuilderState):
        super().__init__(f'Cannot {operation} while the builder is "{state.value}".')
        self.operation = operation
        self.state = state


class BuildException(SismoError):
    """Infrastructure failure while preparing a working copy."""

    pass


class CloneFailure(BuildException):
    pass


class FetchFailure(BuildException):
    pass


class CheckoutFailure(BuildException):
    pass


class SubmoduleFailure(BuildException):
    pass


class ResetFailure(BuildException):
    pass


class ShowLogFailure(BuildException):
    pass


class RevisionResolutionFailure(BuildException):
    pass


@dataclass
class Commit:
    """Commit metadata returned by prepare()."""

    revision: str
    author: str
    date: str
    subject: str

    @classmethod
    def from_show_output(cls, output: str) -> Commit | None:
        """Parse the four-line output of the formatted show command.

        Returns None when fewer than four fields are present.
        """
        parts = output.strip().split("\n", 3)
        if len(parts) < 4:
            return None
        return cls(revision=parts[0], author=parts[1], date=parts[2], subject=parts[3])

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "revision": self.revision,
            "author": self.author,
            "date": self.date,
            "subject": self.subject,
        }


@dataclass
class ProcessResult:
    """Result of one external process run."""

    command: str
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    output: str = ""
    timed_out: bool = False
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        """Whether the process exited with status 0 before the timeout."""
        return not self.timed_out and self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "command": self.command,
            "success": self.success,
            "durationMs": round(self.duration_ms, 2),
        }
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        if self.timed_out:
            result["timedOut"] = True
        return result


@dataclass
class BuildReport:
    """Everything known about one completed build pipeline run."""

    project: str
    slug: str
    build_dir: str
    commit: Commit
    process: ProcessResult
    coverage: int = 0
    state: BuilderState = BuilderState.BUILT

    @property
    def status(self) -> BuildStatus:
        """Build outcome derived from the script exit status."""
        return BuildStatus.SUCCEEDED if self.process.success else BuildStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "project": self.project,
            "slug": self.slug,
            "buildDir": self.build_dir,
            "status": self.status.value,
            "state": self.state.value,
            "commit": self.commit.to_dict(),
            "process": self.process.to_dict(),
            "coverage": self.coverage,
        }
        return result

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        if self.status == BuildStatus.SUCCEEDED:
            status = "[OK] Build succeeded"
        elif self.process.timed_out:
            status = "[TIMEOUT] Build timed out"
        else:
            status = "[FAILED] Build failed"

        parts = [
            status,
            f"  Project: {self.project}",
            f"  Revision: {self.commit.revision}",
            f"  Author: {self.commit.author}",
            f"  Date: {self.commit.date}",
            f"  Subject: {self.commit.subject}",
            f"  Duration: {self.process.duration_ms:.0f}ms",
        ]
        if self.process.exit_code is not None:
            parts.append(f"  Exit code: {self.process.exit_code}")
        if self.coverage:
            parts.append(f"  Coverage: {self.coverage}%")
        return "\n".join(parts)
