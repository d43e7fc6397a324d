"""MCP Server exposing the build orchestrator."""

from __future__ import annotations

import json
import logging

from mcp.server.fastmcp import Context, FastMCP
from pydantic import AnyUrl

from .build import BuildManager, resolve_build_dir
from .config import SismoConfig
from .project import DEFAULT_BRANCH, DEFAULT_COMMAND, Project

logger = logging.getLogger(__name__)

# Output buffer limits (prevent unbounded memory use)
MAX_OUTPUT_BYTES = 10_000_000  # 10MB per build
MAX_OUTPUT_ENTRY = 100_000  # 100KB per chunk
MAX_OUTPUT_BUILDS = 20  # projects whose last output is kept

# Global build manager (single client mode)
_manager: BuildManager | None = None
_config: SismoConfig | None = None

# Output of the latest build or prepare call per project slug, oldest first
_outputs: dict[str, BuildOutput] = {}


def get_manager() -> BuildManager:
    """Get or create the build manager."""
    global _manager
    if _manager is None:
        _manager = BuildManager(_config or SismoConfig.from_env())
    return _manager


class BuildOutput:
    """Output sink storing the (stream, chunk) pairs of one build."""

    def __init__(self) -> None:
        self.chunks: list[tuple[str, str]] = []
        self._bytes = 0

    def __call__(self, stream: str, chunk: str) -> None:
        # Truncate individual entries (security: prevent single large entry)
        if len(chunk) > MAX_OUTPUT_ENTRY:
            chunk = chunk[:MAX_OUTPUT_ENTRY] + "... [truncated]"

        self.chunks.append((stream, chunk))
        self._bytes += len(chunk)

        # Trim buffer by byte size (security: prevent DoS)
        while self._bytes > MAX_OUTPUT_BYTES and self.chunks:
            _, removed = self.chunks.pop(0)
            self._bytes -= len(removed)

    def text(self, stream: str | None = None) -> str:
        return "".join(chunk for name, chunk in self.chunks if stream is None or name == stream)


def start_output(slug: str) -> BuildOutput:
    """Replace the stored output of a project with a fresh buffer."""
    _outputs.pop(slug, None)
    while len(_outputs) >= MAX_OUTPUT_BUILDS:
        _outputs.pop(next(iter(_outputs)))
    output = _outputs[slug] = BuildOutput()
    return output


def make_project(
    repository: str,
    branch: str = DEFAULT_BRANCH,
    command: str = DEFAULT_COMMAND,
    coverage_path: str | None = None,
    name: str | None = None,
) -> Project:
    """Build a Project from tool arguments, naming it after the repository."""
    if not name:
        name = repository.rstrip("/").rsplit("/", 1)[-1].removesuffix(".git") or repository
    return Project(
        name=name,
        repository=repository,
        branch=branch,
        command=command,
        coverage_path=coverage_path,
    )


def create_server(config: SismoConfig | None = None) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        config: Builder configuration; read from the environment if omitted
    """
    global _config, _manager
    _config = config
    _manager = None
    _outputs.clear()
    mcp = FastMCP("sismo-mcp")

    async def notify_last_build_changed(ctx: Context) -> None:
        """Notify client that build://last resource has changed."""
        try:
            if ctx.session:
                await ctx.session.send_resource_updated(AnyUrl("build://last"))
        except Exception:
            logger.debug("Resource update notification failed", exc_info=True)

    @mcp.tool()
    async def build_project(
        ctx: Context,
        repository: str,
        branch: str = DEFAULT_BRANCH,
        command: str = DEFAULT_COMMAND,
        revision: str | None = None,
        sync: bool = True,
        coverage_path: str | None = None,
        name: str | None = None,
    ) -> dict:
        """
        Build one revision of a git repository and report the outcome.

        Clones the repository on first use, optionally fetches and updates
        submodules, resets to the revision (HEAD of the branch by default),
        writes `command` to a shell script and runs it.

        A failing build script is reported with status "failed"; errors
        preparing the working copy are returned as success=False.

        Args:
            repository: Git repository URL or local path
            branch: Branch to build
            command: Build script (shell)
            revision: Commit to build; omit or "HEAD" for the branch head
            sync: Fetch from origin and update submodules first
            coverage_path: Clover XML report path relative to the working copy
            name: Project name (defaults to the repository name)
        """
        try:
            project = make_project(repository, branch, command, coverage_path, name)
            sink = start_output(project.slug)
            report = await get_manager().run(project, revision, sync, sink=sink)
            await notify_last_build_changed(ctx)
            return {"success": True, "data": report.to_dict(), "summary": report.to_summary()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def prepare_project(
        repository: str,
        branch: str = DEFAULT_BRANCH,
        revision: str | None = None,
        sync: bool = True,
    ) -> dict:
        """
        Bring the working copy of a repository to a revision without building.

        Args:
            repository: Git repository URL or local path
            branch: Branch to check out
            revision: Commit to reset to; omit or "HEAD" for the branch head
            sync: Fetch from origin and update submodules first
        """
        try:
            project = make_project(repository, branch)
            sink = start_output(project.slug)
            commit = await get_manager().prepare(project, revision, sync, sink=sink)
            return {"success": True, "data": {**commit.to_dict(), "slug": project.slug}}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_build_dir(repository: str, branch: str = DEFAULT_BRANCH) -> dict:
        """
        Get the working copy directory used for a repository and branch.

        Args:
            repository: Git repository URL or local path
            branch: Branch name
        """
        try:
            project = make_project(repository, branch)
        except ValueError as e:
            return {"success": False, "error": str(e)}
        path = get_manager().create_builder().get_build_dir(project)
        return {
            "success": True,
            "data": {"name": resolve_build_dir(repository, branch), "path": path},
        }

    @mcp.tool()
    async def get_build_output(
        slug: str | None = None,
        tail: int | None = None,
        stream: str | None = None,
    ) -> dict:
        """
        Get output of the latest build or prepare call of a project.

        Args:
            slug: Project slug (as returned by build_project); omit for the
                most recent call of any project
            tail: Only return the last N lines
            stream: Only "out" or only "err" chunks
        """
        if stream is not None and stream not in ("out", "err"):
            return {"success": False, "error": f"Unknown stream: {stream}"}
        if slug is None:
            if not _outputs:
                return {"success": False, "error": "No build has run yet"}
            slug = next(reversed(_outputs))
        output = _outputs.get(slug)
        if output is None:
            return {"success": False, "error": f"No output for project: {slug}"}

        text = output.text(stream)
        if tail is not None:
            text = "\n".join(text.splitlines()[-tail:]) if tail > 0 else ""
        return {"success": True, "data": text, "slug": slug}

    @mcp.resource("build://last", mime_type="application/json")
    async def get_last_builds() -> str:
        """
        Latest build report per project, plus directories currently building.
        """
        return json.dumps(get_manager().to_dict(), indent=2)

    return mcp
