"""
Shared fixtures for gatekeeper tests
"""

from datetime import datetime, timezone
from typing import Optional

import pytest

from gatekeeper.errors import VcsError


T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeVcs:
    """In-memory stand-in for GitClient."""

    def __init__(
        self,
        staged: Optional[list[str]] = None,
        message: str = "",
        status: Optional[list[str]] = None,
        tracked: Optional[list[str]] = None,
        branch: str = "main",
        commit: str = "abc1234",
        fail: bool = False,
    ):
        self.staged = staged or []
        self.message = message
        self.status = status or []
        self.tracked = tracked or []
        self.branch = branch
        self.commit = commit
        self.fail = fail
        self.diff_filters = []

    def _check(self, *command):
        if self.fail:
            raise VcsError(["git", *command], "not a git repository", 128)

    def staged_files(self, diff_filter=None):
        self._check("diff", "--cached")
        self.diff_filters.append(diff_filter)
        return list(self.staged)

    def current_branch(self):
        self._check("rev-parse")
        return self.branch

    def current_commit(self):
        self._check("rev-parse")
        return self.commit

    def last_commit_message(self):
        self._check("log")
        return self.message

    def status_entries(self):
        self._check("status")
        return list(self.status)

    def tracked_files(self):
        self._check("ls-files")
        return list(self.tracked)


class FixedClock:
    """Clock that returns a settable instant."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def fake_vcs():
    return FakeVcs()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch):
    """Keep host GATEKEEPER_* and commit-hook variables out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("GATEKEEPER_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("GIT_COMMIT_MSG_FILE", raising=False)


@pytest.fixture
def repo(tmp_path):
    """A minimal repository root with allowed files only."""
    (tmp_path / "README.md").write_text("# Project\n")
    (tmp_path / "docs").mkdir()
    (tmp_path / "src").mkdir()
    return tmp_path


@pytest.fixture
def make_vcs():
    """Factory for FakeVcs instances."""
    return FakeVcs
