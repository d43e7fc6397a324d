"""Build orchestration for continuous integration.

Provides:
- Deterministic build directories per repository and branch
- Shell-escaped git command templates
- Process execution with streamed output and timeout
- HEAD resolution, working copy preparation, script execution
- Clover coverage extraction
"""

from .builder import Builder
from .commands import DEFAULT_GIT_COMMANDS, CommandTemplates
from .coverage import extract_coverage
from .manager import BuildManager
from .revision import resolve_head
from .runner import ProcessRunner
from .state import (
    BuilderNotInitialized,
    BuilderState,
    BuildException,
    InvalidBuilderState,
    BuildReport,
    BuildStatus,
    CheckoutFailure,
    CloneFailure,
    Commit,
    FetchFailure,
    ProcessResult,
    ResetFailure,
    RevisionResolutionFailure,
    ShowLogFailure,
    SismoError,
    SubmoduleFailure,
    ToolNotFound,
    UnknownOperation,
)
from .workdir import build_path, resolve_build_dir

__all__ = [
    "Builder",
    "BuildManager",
    "CommandTemplates",
    "DEFAULT_GIT_COMMANDS",
    "ProcessRunner",
    "extract_coverage",
    "resolve_head",
    "resolve_build_dir",
    "build_path",
    "BuilderState",
    "BuildStatus",
    "BuildReport",
    "Commit",
    "ProcessResult",
    "SismoError",
    "ToolNotFound",
    "UnknownOperation",
    "BuilderNotInitialized",
    "InvalidBuilderState",
    "BuildException",
    "CloneFailure",
    "FetchFailure",
    "CheckoutFailure",
    "SubmoduleFailure",
    "ResetFailure",
    "ShowLogFailure",
    "RevisionResolutionFailure",
]
