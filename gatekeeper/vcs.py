"""
Version-control queries.

A thin synchronous wrapper around the git binary. Calls have no timeout:
a hung git process blocks the caller.
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional, Protocol

from .errors import VcsError

logger = logging.getLogger(__name__)


class VcsClient(Protocol):
    """The narrow set of VCS queries the gates depend on."""

    def staged_files(self, diff_filter: Optional[str] = None) -> list[str]: ...

    def current_branch(self) -> str: ...

    def current_commit(self) -> str: ...

    def last_commit_message(self) -> str: ...

    def status_entries(self) -> list[str]: ...

    def tracked_files(self) -> list[str]: ...


class GitClient:
    """Runs git commands inside a repository."""

    def __init__(self, repo_path: Optional[Path] = None):
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()

    def _run(self, *args: str) -> str:
        command = ["git", *args]
        try:
            result = subprocess.run(
                command,
                capture_output=True, text=True,
                cwd=self.repo_path
            )
        except FileNotFoundError:
            raise VcsError(command, "git executable not found")
        except OSError as e:
            raise VcsError(command, str(e))

        if result.returncode != 0:
            raise VcsError(command, result.stderr.strip() or "command failed", result.returncode)
        return result.stdout

    def is_repository(self) -> bool:
        try:
            return self._run("rev-parse", "--is-inside-work-tree").strip() == "true"
        except VcsError:
            return False

    @staticmethod
    def _lines(output: str) -> list[str]:
        return [line.strip() for line in output.strip().split('\n') if line.strip()]

    def staged_files(self, diff_filter: Optional[str] = None) -> list[str]:
        """Paths staged for the next commit, relative to the repo root."""
        args = ["diff", "--cached", "--name-only"]
        if diff_filter:
            args.append(f"--diff-filter={diff_filter}")
        return self._lines(self._run(*args))

    def current_branch(self) -> str:
        return self._run("rev-parse", "--abbrev-ref", "HEAD").strip()

    def current_commit(self) -> str:
        return self._run("rev-parse", "HEAD").strip()

    def last_commit_message(self) -> str:
        return self._run("log", "-1", "--pretty=%B").strip()

    def status_entries(self) -> list[str]:
        """`git status --porcelain` lines, with their two status columns intact."""
        output = self._run("status", "--porcelain")
        return [line for line in output.split('\n') if line.strip()]

    def tracked_files(self) -> list[str]:
        return self._lines(self._run("ls-files"))

