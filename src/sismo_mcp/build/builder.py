"""Builder - prepares a working copy at a revision and runs the build script.

State machine:
UNINITIALIZED → INITIALIZED → DIRECTORY_READY → SYNCED → CHECKED_OUT
    → RESET → BUILT → COVERAGE_COMPUTED
Any failing step moves to FAILED, which is terminal: every later call raises
InvalidBuilderState. Nothing is rolled back: the working copy is left in
place for inspection and reused by the next builder.

A builder runs one build at a time. Two builders sharing a build directory
must be serialized by the caller (see BuildManager).
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping

from ..project import Project
from .commands import CommandTemplates, default_substitutions
from .coverage import extract_coverage
from .revision import GIT_DIR, resolve_head
from .runner import DEFAULT_TIMEOUT, OutputSink, ProcessRunner
from .state import (
    BuilderNotInitialized,
    BuilderState,
    BuildException,
    CheckoutFailure,
    CloneFailure,
    Commit,
    FetchFailure,
    InvalidBuilderState,
    ProcessResult,
    ResetFailure,
    ShowLogFailure,
    SubmoduleFailure,
    ToolNotFound,
)
from .workdir import build_path

logger = logging.getLogger(__name__)

SCRIPT_NAME = "sismo-run-tests.sh"
SYMBOLIC_HEAD = "HEAD"


class Builder:
    """Builds one project revision inside a deterministic build directory.

    Usage:
        builder = Builder("/var/sismo/build")
        await builder.initialize(project, sink)
        commit = await builder.prepare("HEAD", sync=True)
        result = await builder.build()
        coverage = builder.get_coverage()
    """

    def __init__(
        self,
        build_root: str,
        git_path: str = "git",
        git_commands: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        runner: ProcessRunner | None = None,
    ):
        """Initialize builder.

        Args:
            build_root: Base directory holding all build directories
            git_path: Path to the git binary
            git_commands: Template overrides merged over the defaults
            timeout: Timeout in seconds for every process run
            runner: Process runner (created with defaults if not provided)
        """
        self._build_root = build_root
        self._git_path = git_path
        self._templates = CommandTemplates(git_path, git_commands or {})
        self._timeout = timeout
        self._runner = runner or ProcessRunner()
        self._project: Project | None = None
        self._sink: OutputSink | None = None
        self._build_dir: str | None = None
        self._state = BuilderState.UNINITIALIZED
        self._error: Exception | None = None
        self._state_listeners: list[Callable[[BuilderState], None]] = []

    @property
    def state(self) -> BuilderState:
        """Current builder state."""
        return self._state

    @property
    def error(self) -> Exception | None:
        """Error that moved the builder to FAILED, if any."""
        return self._error

    @property
    def templates(self) -> CommandTemplates:
        return self._templates

    @property
    def project(self) -> Project | None:
        return self._project

    @property
    def build_dir(self) -> str | None:
        """Absolute build directory of the bound project."""
        return self._build_dir

    def on_state_change(self, listener: Callable[[BuilderState], None]) -> None:
        """Register state change listener."""
        self._state_listeners.append(listener)

    def _set_state(self, new_state: BuilderState) -> None:
        """Update state and notify listeners."""
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.info(f"Builder state: {old_state.value} -> {new_state.value}")
            for listener in self._state_listeners:
                try:
                    listener(new_state)
                except Exception:
                    logger.exception("State listener error")

    def _fail(self, error: Exception) -> Exception:
        self._error = error
        self._set_state(BuilderState.FAILED)
        return error

    def _require_project(self) -> tuple[Project, str]:
        if self._project is None or self._build_dir is None:
            raise BuilderNotInitialized("Builder.initialize() must be called first.")
        return self._project, self._build_dir

    def _require_state(self, operation: str, *allowed: BuilderState) -> None:
        """Refuse the operation once FAILED or outside the allowed states."""
        if self._state == BuilderState.FAILED or (allowed and self._state not in allowed):
            raise InvalidBuilderState(operation, self._state)

    def get_build_dir(self, project: Project) -> str:
        """Build directory for a project under the build root."""
        root = os.path.abspath(self._build_root)
        return build_path(root, project.repository, project.branch)

    async def initialize(self, project: Project, sink: OutputSink | None = None) -> None:
        """Check the git binary and bind the project.

        Raises:
            ToolNotFound: If `<git> --version` cannot be run successfully
        """
        self._require_state("initialize")
        result = await self._runner.run(
            f"{self._git_path} --version", timeout=self._timeout
        )
        if not result.success:
            raise self._fail(ToolNotFound(self._git_path))

        self._project = project
        self._sink = sink
        self._build_dir = self.get_build_dir(project)
        self._error = None
        logger.debug(f"Project {project} builds in {self._build_dir}")
        self._set_state(BuilderState.INITIALIZED)

    def _render(self, operation: str, revision: str | None = None) -> str:
        project, build_dir = self._require_project()
        substitutions = default_substitutions(project.repository, build_dir, project.branch)
        extra = {"%revision%": revision} if revision is not None else None
        return self._templates.render(operation, substitutions, extra)

    async def _execute(
        self, command: str, error: Callable[[str], BuildException]
    ) -> ProcessResult:
        """Announce and run a command, raising the given error on failure."""
        _, build_dir = self._require_project()
        logger.info(f"Running: {command}")
        if self._sink is not None:
            self._sink("out", f'Running "{command}"\n')

        result = await self._runner.run(
            command, cwd=build_dir, timeout=self._timeout, sink=self._sink
        )
        if not result.success:
            raise self._fail(error(str(self._project)))
        return result

    async def prepare(self, revision: str | None = None, sync: bool = False) -> Commit:
        """Bring the working copy to a revision.

        Args:
            revision: Commit to build; None or "HEAD" builds the branch head
            sync: Fetch from the remote and update submodules first

        Returns:
            Metadata of the checked out commit

        Raises:
            BuildException: If any git step fails
        """
        project, build_dir = self._require_project()
        self._require_state("prepare")
        name = str(project)

        try:
            os.makedirs(build_dir, exist_ok=True)
        except OSError as e:
            raise self._fail(e)
        self._set_state(BuilderState.DIRECTORY_READY)

        if not os.path.exists(os.path.join(build_dir, GIT_DIR)):
            await self._execute(
                self._render("clone"),
                lambda p: CloneFailure(f'Unable to clone repository for project "{p}".', p),
            )

        if sync:
            await self._execute(
                self._render("fetch"),
                lambda p: FetchFailure(f'Unable to fetch repository for project "{p}".', p),
            )
        self._set_state(BuilderState.SYNCED)

        await self._execute(
            self._render("checkout"),
            lambda p: CheckoutFailure(
                f'Unable to checkout branch "{project.branch}" for project "{p}".', p
            ),
        )

        if sync:
            await self._execute(
                self._render("prepare"),
                lambda p: SubmoduleFailure(
                    f'Unable to update submodules for project "{p}".', p
                ),
            )
        self._set_state(BuilderState.CHECKED_OUT)

        if revision is None or revision == SYMBOLIC_HEAD:
            try:
                revision = resolve_head(build_dir, project.branch, name)
            except BuildException as e:
                raise self._fail(e)

        await self._execute(
            self._render("reset", revision),
            lambda p: ResetFailure(f'Revision "{revision}" for project "{p}" does not exist.', p),
        )
        self._set_state(BuilderState.RESET)

        result = await self._execute(
            self._render("show", revision),
            lambda p: ShowLogFailure(f'Unable to get logs for project "{p}".', p),
        )

        commit = Commit.from_show_output(result.stdout)
        if commit is None:
            raise self._fail(
                ShowLogFailure(f'Unable to get logs for project "{name}".', name)
            )
        return commit

    async def build(self) -> ProcessResult:
        """Write the build script into the working copy and run it.

        A failing script is a normal result, not an exception.
        """
        project, build_dir = self._require_project()
        self._require_state("build", BuilderState.RESET)

        script = project.command.replace("\r\n", "\n").replace("\r", "\n")
        try:
            with open(
                os.path.join(build_dir, SCRIPT_NAME), "w", encoding="utf-8", newline=""
            ) as f:
                f.write(script)
        except OSError as e:
            raise self._fail(e)

        result = await self._runner.run(
            f"sh {SCRIPT_NAME}", cwd=build_dir, timeout=self._timeout, sink=self._sink
        )
        if result.timed_out:
            logger.warning(f"Build script for {project} timed out after {self._timeout}s")
        self._set_state(BuilderState.BUILT)
        return result

    def get_coverage(self) -> int:
        """Coverage percentage from the project's report, 0 if unavailable."""
        project, build_dir = self._require_project()
        self._require_state(
            "compute coverage", BuilderState.BUILT, BuilderState.COVERAGE_COMPUTED
        )
        coverage = 0
        if project.coverage_path:
            coverage = extract_coverage(os.path.join(build_dir, project.coverage_path))
        self._set_state(BuilderState.COVERAGE_COMPUTED)
        return coverage
