"""
File size gate.

Large files are harder for agents to edit correctly and for people to
review, so each extension has a line limit. Runs as its own command and
is not part of the gate sequence.
"""

import fnmatch
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .config import FileSizeConfig
from .errors import VcsError
from .vcs import VcsClient

logger = logging.getLogger(__name__)

SPLIT_SUGGESTIONS = {
    ".json": [
        "Convert to YAML (typically 20-30% smaller)",
        "Split into multiple JSON files by category",
        "Extract large arrays/objects to separate files",
    ],
    ".md": [
        "Split into multiple documents by topic",
        "Move detailed sections to separate files with links",
        "Extract long code examples to separate files",
        "Create a table of contents with links to sub-documents",
    ],
    ".py": [
        "Split into multiple modules",
        "Extract helper functions into a separate module",
        "Move constants/config to a separate module",
        "Create separate modules for each class",
    ],
    ".yaml": [
        "Split by category (e.g., conventions-docs.yaml, conventions-code.yaml)",
        "Extract large sections to separate files",
        "Use YAML anchors and references to reduce duplication",
    ],
}
SPLIT_SUGGESTIONS[".js"] = SPLIT_SUGGESTIONS[".ts"] = SPLIT_SUGGESTIONS[".py"]
SPLIT_SUGGESTIONS[".yml"] = SPLIT_SUGGESTIONS[".yaml"]

DEFAULT_SUGGESTION = ["Consider splitting this file into smaller, focused files"]


class FileSizeViolation(BaseModel):
    """A file over its line limit."""
    file: str
    lines: int
    limit: int
    suggestions: list[str] = Field(default_factory=list)

    @property
    def excess(self) -> int:
        return self.lines - self.limit


class FileSizeReport(BaseModel):
    checked: int = 0
    violations: list[FileSizeViolation] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.violations


def matches_glob(path: str, pattern: str) -> bool:
    """fnmatch on the repo-relative path; a leading `**/` also matches at the root."""
    if fnmatch.fnmatch(path, pattern):
        return True
    return pattern.startswith("**/") and fnmatch.fnmatch(path, pattern[3:])


def count_lines(path: Path) -> int:
    try:
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            content = f.read()
    except OSError as e:
        logger.warning(f"Cannot read {path}: {e}")
        return 0
    return len(content.split('\n'))


class FileSizeChecker:
    """Checks files against per-extension line limits."""

    def __init__(self, config: Optional[FileSizeConfig] = None, root: Optional[Path] = None,
                 vcs: Optional[VcsClient] = None):
        self.config = config or FileSizeConfig()
        self.root = Path(root) if root else Path.cwd()
        self.vcs = vcs

    def limit_for(self, file: str) -> int:
        return self.config.limits.get(Path(file).suffix.lower(), self.config.default_limit)

    def is_exception(self, file: str) -> bool:
        return any(matches_glob(file, pattern) for pattern in self.config.exceptions)

    @staticmethod
    def suggestions_for(file: str) -> list[str]:
        return list(SPLIT_SUGGESTIONS.get(Path(file).suffix.lower(), DEFAULT_SUGGESTION))

    def _walk(self) -> list[str]:
        files = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(
                d for d in dirnames if not d.startswith('.') and d != "node_modules"
            )
            for name in sorted(filenames):
                if name.startswith('.'):
                    continue
                files.append((Path(dirpath) / name).relative_to(self.root).as_posix())
        return files

    def candidate_files(self, staged: bool = False) -> list[str]:
        """Staged added/copied/modified files, or every tracked file."""
        if staged:
            if self.vcs is None:
                return []
            try:
                return self.vcs.staged_files(diff_filter="ACM")
            except VcsError as e:
                logger.warning(f"Cannot list staged files: {e}")
                return []

        if self.vcs is not None:
            try:
                return self.vcs.tracked_files()
            except VcsError as e:
                logger.warning(f"Cannot list tracked files, scanning directory instead: {e}")
        return self._walk()

    def check(self, staged: bool = False) -> FileSizeReport:
        report = FileSizeReport()
        for file in self.candidate_files(staged):
            if self.is_exception(file):
                continue
            path = self.root / file
            # deleted in the working tree
            if not path.is_file():
                continue
            report.checked += 1
            lines = count_lines(path)
            limit = self.limit_for(file)
            if lines > limit:
                report.violations.append(FileSizeViolation(
                    file=file, lines=lines, limit=limit,
                    suggestions=self.suggestions_for(file),
                ))

        logger.info(f"Checked {report.checked} file(s), {len(report.violations)} over limit")
        return report
