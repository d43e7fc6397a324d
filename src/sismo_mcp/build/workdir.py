"""Deterministic build directory naming."""

from __future__ import annotations

import hashlib
import os

BUILD_DIR_HASH_LENGTH = 6


def resolve_build_dir(repository: str, branch: str) -> str:
    """Return the short directory name for a (repository, branch) pair.

    md5 of the concatenation, truncated to six hex characters. Collisions
    between distinct pairs are possible and not detected.
    """
    digest = hashlib.md5((repository + branch).encode("utf-8")).hexdigest()
    return digest[:BUILD_DIR_HASH_LENGTH]


def build_path(build_root: str, repository: str, branch: str) -> str:
    """Join the resolved directory name onto the build root."""
    return os.path.join(build_root, resolve_build_dir(repository, branch))
