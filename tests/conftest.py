"""Pytest configuration and fixtures for mergebot tests."""

import shutil
import subprocess
import sys
import tempfile
from pathlib import Path

import pytest

from mergebot.core.log import ConsoleSink, setup_logger


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    """Configure logging for console-only mode during tests.

    Debug output goes to the console only; no log file is written
    and nothing is exported.
    """
    test_log_root = Path(tempfile.gettempdir()) / "mergebot-tests"
    setup_logger(
        log_root=test_log_root,
        run_name="test",
        console=ConsoleSink(level="debug"),
    )


@pytest.fixture
def mock_argv():
    """Save and restore sys.argv."""
    original = sys.argv.copy()
    sys.argv = ["mergebot"]
    yield
    sys.argv = original


def git(cwd: Path, *args: str) -> str:
    """Run git in cwd and return its stripped stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


class GitSandbox:
    """A bare "origin" repository and a working clone of it."""

    def __init__(self, root: Path):
        self.origin = root / "origin.git"
        self.workdir = root / "work"

        self.origin.mkdir()
        git(self.origin, "init", "--bare", "--quiet")

        self.workdir.mkdir()
        git(self.workdir, "init", "--quiet")
        git(self.workdir, "config", "user.name", "Test User")
        git(self.workdir, "config", "user.email", "test@example.com")
        git(self.workdir, "config", "commit.gpgsign", "false")
        git(self.workdir, "config", "core.autocrlf", "false")
        git(self.workdir, "remote", "add", "origin", str(self.origin))
        git(self.workdir, "symbolic-ref", "HEAD", "refs/heads/main")

    def git(self, *args: str) -> str:
        return git(self.workdir, *args)

    def commit(self, files: dict[str, str], message: str) -> str:
        """Write files, commit them on the current branch, return the sha."""
        for name, content in files.items():
            path = self.workdir / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        self.git("add", "--all")
        self.git("commit", "--quiet", "-m", message)
        return self.git("rev-parse", "HEAD")

    def note(self, rev: str, text: str) -> None:
        self.git("notes", "add", "-f", "-m", text, rev)

    def push(self, *branches: str) -> None:
        for branch in branches:
            self.git("push", "--quiet", "origin", f"{branch}:{branch}")
        if self.git("notes", "list"):
            self.git("push", "--quiet", "--force", "origin", "refs/notes/*:refs/notes/*")

    def fetch(self) -> None:
        self.git(
            "fetch", "--quiet", "origin",
            "+refs/heads/*:refs/remotes/origin/*",
            "+refs/notes/*:refs/notes/*",
        )

    def head(self, rev: str = "HEAD") -> str:
        return self.git("rev-parse", rev)

    def remote_head(self, branch: str) -> str:
        return git(self.origin, "rev-parse", f"refs/heads/{branch}")


@pytest.fixture
def sandbox(tmp_path):
    """Origin with main and release branches.

    main and release share a base commit; release carries one commit
    annotated with external revision r100 that edits a.txt.
    """
    if shutil.which("git") is None:
        pytest.skip("git executable not available")

    box = GitSandbox(tmp_path)
    base = box.commit({"a.txt": "base\n"}, "base")
    box.note(base, "r99 base import")
    box.git("checkout", "--quiet", "-b", "release")
    box.release_commit = box.commit({"a.txt": "release\n"}, "release change")
    box.note(box.release_commit, "r100 release change")
    box.git("checkout", "--quiet", "main")
    box.push("main", "release")
    box.fetch()
    return box


@pytest.fixture
def repository(sandbox):
    """Repository wrapper over the sandbox working clone."""
    from mergebot.git.repository import Repository

    return Repository(sandbox.workdir)
