"""Build manager - runs complete builds, one at a time per build directory.

Provides:
- Per-build-directory asyncio locks (two builds of the same repository and
  branch never share a working copy concurrently)
- The full pipeline: initialize, prepare, build, coverage
- Latest report per project (in memory only)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from ..config import SismoConfig
from ..project import Project
from .builder import Builder
from .runner import OutputSink, ProcessRunner
from .state import BuilderState, BuildReport, Commit

logger = logging.getLogger(__name__)


class BuildManager:
    """Serializes builds per build directory and keeps the latest reports.

    Usage:
        manager = BuildManager(SismoConfig.from_env())
        report = await manager.run(project, revision="HEAD", sync=True)
    """

    def __init__(
        self,
        config: SismoConfig | None = None,
        runner: ProcessRunner | None = None,
    ) -> None:
        self._config = config or SismoConfig()
        self._runner = runner
        self._locks: dict[str, asyncio.Lock] = {}
        self._reports: dict[str, BuildReport] = {}
        self._global_listeners: list[Callable[[Project, BuilderState], None]] = []

    @property
    def config(self) -> SismoConfig:
        return self._config

    def create_builder(self) -> Builder:
        """Create a builder from the manager configuration."""
        return Builder(
            self._config.build_dir,
            git_path=self._config.git_path,
            git_commands=self._config.git_commands,
            timeout=self._config.timeout,
            runner=self._runner,
        )

    def _get_lock(self, build_dir: str) -> asyncio.Lock:
        """Get or create the lock guarding a build directory.

        Note: This method is not thread-safe. It should be called from a single
        asyncio event loop.
        """
        if build_dir not in self._locks:
            self._locks[build_dir] = asyncio.Lock()
        return self._locks[build_dir]

    def _notify_listeners(self, project: Project, state: BuilderState) -> None:
        """Notify global state listeners."""
        for listener in self._global_listeners:
            try:
                listener(project, state)
            except Exception:
                logger.exception("Global build listener error")

    def on_build_state_change(
        self, listener: Callable[[Project, BuilderState], None]
    ) -> None:
        """Register global build state change listener.

        Listener receives (project, new_state).
        """
        self._global_listeners.append(listener)

    def is_building(self, project: Project) -> bool:
        """Whether a build currently holds the project's build directory."""
        build_dir = self.create_builder().get_build_dir(project)
        lock = self._locks.get(build_dir)
        return lock is not None and lock.locked()

    async def run(
        self,
        project: Project,
        revision: str | None = None,
        sync: bool = True,
        sink: OutputSink | None = None,
    ) -> BuildReport:
        """Run the full build pipeline for one project revision.

        Args:
            project: Project to build
            revision: Commit to build; None or "HEAD" builds the branch head
            sync: Fetch and update submodules before checkout
            sink: Output sink for announcements and process output

        Returns:
            Build report; a failing build script gives a FAILED status

        Raises:
            SismoError: If the working copy could not be prepared
        """
        builder = self.create_builder()
        builder.on_state_change(lambda state: self._notify_listeners(project, state))
        build_dir = builder.get_build_dir(project)

        async with self._get_lock(build_dir):
            await builder.initialize(project, sink)
            commit = await builder.prepare(revision, sync)
            logger.info(f"Building {project} at {commit.revision}")
            process = await builder.build()
            coverage = builder.get_coverage()

        report = BuildReport(
            project=str(project),
            slug=project.slug,
            build_dir=build_dir,
            commit=commit,
            process=process,
            coverage=coverage,
            state=builder.state,
        )
        self._reports[project.slug] = report
        logger.info(f"Build of {project} {report.status.value}")
        return report

    async def prepare(
        self,
        project: Project,
        revision: str | None = None,
        sync: bool = True,
        sink: OutputSink | None = None,
    ) -> Commit:
        """Prepare the working copy without running the build script."""
        builder = self.create_builder()
        builder.on_state_change(lambda state: self._notify_listeners(project, state))

        async with self._get_lock(builder.get_build_dir(project)):
            await builder.initialize(project, sink)
            return await builder.prepare(revision, sync)

    def last_report(self, project: Project | str) -> BuildReport | None:
        """Latest report for a project or slug."""
        slug = project.slug if isinstance(project, Project) else project
        return self._reports.get(slug)

    def to_dict(self) -> dict[str, Any]:
        """Get manager status as dictionary."""
        return {
            "buildDir": self._config.build_dir,
            "building": sorted(path for path, lock in self._locks.items() if lock.locked()),
            "reports": {slug: report.to_dict() for slug, report in self._reports.items()},
        }
