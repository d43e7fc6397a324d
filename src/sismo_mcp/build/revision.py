"""HEAD resolution from git metadata files."""

from __future__ import annotations

import logging
import os

from .state import RevisionResolutionFailure

logger = logging.getLogger(__name__)

GIT_DIR = ".git"
REF_PREFIX = "ref: "


def _read_trimmed(path: str) -> str | None:
    if not os.path.isfile(path):
        return None
    with open(path, encoding="utf-8") as f:
        return f.read().strip()


def resolve_head(build_dir: str, branch: str, project: str) -> str:
    """Resolve the commit HEAD points to, following one symbolic ref.

    The reset and show steps need a fixed revision string, since a symbolic
    reference can move under a concurrent fetch.

    Args:
        build_dir: Working copy root
        branch: Branch name (for error messages)
        project: Project name (for error messages)

    Returns:
        Commit identifier

    Raises:
        RevisionResolutionFailure: If HEAD or the referenced file is missing or empty
    """
    git_dir = os.path.join(build_dir, GIT_DIR)
    revision = _read_trimmed(os.path.join(git_dir, "HEAD"))

    if revision is not None and revision.startswith(REF_PREFIX):
        ref = revision[len(REF_PREFIX):].strip()
        logger.debug(f"HEAD is a symbolic ref to {ref}")
        revision = _read_trimmed(os.path.join(git_dir, *ref.split("/")))

    if not revision:
        raise RevisionResolutionFailure(
            f'Unable to get HEAD for branch "{branch}" for project "{project}".',
            project=project,
        )

    return revision
