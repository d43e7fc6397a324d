"""Pytest fixtures for sismo-mcp tests."""

import os
import shutil
import subprocess
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from sismo_mcp.build.state import ProcessResult  # noqa: E402
from sismo_mcp.project import Project  # noqa: E402

SAMPLE_SHA = "0123456789abcdef0123456789abcdef01234567"

SAMPLE_SHOW_OUTPUT = (
    f"{SAMPLE_SHA}\nJane Doe\n2024-05-01 12:00:00 +0200\nFix the frobnicator\n"
)


class FakeRunner:
    """Process runner double recording every command.

    Simulates a clone by creating .git/HEAD pointing at refs/heads/<branch>
    with SAMPLE_SHA. Commands containing a key of `failures` fail.
    """

    def __init__(self, failures=None, show_output=SAMPLE_SHOW_OUTPUT, branch="master"):
        self.commands = []
        self.failures = set(failures or ())
        self.show_output = show_output
        self.branch = branch

    async def run(self, command, cwd=None, timeout=3600.0, sink=None):
        self.commands.append((command, cwd))
        if any(marker in command for marker in self.failures):
            return ProcessResult(command=command, exit_code=1, stderr="fatal: nope")

        stdout = ""
        if " clone " in command and cwd is not None:
            git_dir = os.path.join(cwd, ".git")
            os.makedirs(os.path.join(git_dir, "refs", "heads"), exist_ok=True)
            with open(os.path.join(git_dir, "HEAD"), "w") as f:
                f.write(f"ref: refs/heads/{self.branch}\n")
            with open(os.path.join(git_dir, "refs", "heads", self.branch), "w") as f:
                f.write(SAMPLE_SHA + "\n")
        elif " show " in command:
            stdout = self.show_output
        if sink is not None and stdout:
            sink("out", stdout)
        return ProcessResult(command=command, exit_code=0, stdout=stdout, output=stdout)

    def count(self, marker):
        """Number of recorded commands containing marker."""
        return sum(1 for command, _ in self.commands if marker in command)


@pytest.fixture
def sample_project():
    """Sample project with a coverage report path."""
    return Project(
        name="Sample",
        repository="https://example.com/sample.git",
        branch="master",
        command="echo building\r\nexit 0\r\n",
        coverage_path="build/clover.xml",
    )


@pytest.fixture
def fake_runner():
    return FakeRunner()


def _git(cwd, *args):
    subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        env={
            **os.environ,
            "GIT_AUTHOR_NAME": "Jane Doe",
            "GIT_AUTHOR_EMAIL": "jane@example.com",
            "GIT_COMMITTER_NAME": "Jane Doe",
            "GIT_COMMITTER_EMAIL": "jane@example.com",
        },
    )


@pytest.fixture
def git_repo(tmp_path):
    """Local git repository on branch "main" with two commits.

    Returns (path, [first_sha, second_sha]).
    """
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    repo = tmp_path / "origin"
    repo.mkdir()
    _git(repo, "init", "-q")
    _git(repo, "checkout", "-q", "-b", "main")
    (repo / "README").write_text("first\n")
    _git(repo, "add", "README")
    _git(repo, "commit", "-q", "-m", "First commit")
    (repo / "README").write_text("second\n")
    _git(repo, "commit", "-q", "-am", "Second commit")

    log = subprocess.run(
        ["git", "log", "--format=%H", "--reverse"],
        cwd=repo,
        check=True,
        capture_output=True,
        text=True,
    )
    return str(repo), log.stdout.split()
