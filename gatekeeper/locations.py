"""
File location validation.

Enforces where artifacts may live in the repository root. Session notes,
drafts and scratch files produced during a unit of work belong under the
phase directories, not next to README.md.

Two scan modes:
- full: every entry in the root of the working tree
- staged: only staged paths without a directory component
"""

import logging
import re
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .config import ForbiddenPattern, LocationConfig
from .errors import RepositoryAccessError, VcsError
from .vcs import VcsClient

logger = logging.getLogger(__name__)


class ViolationKind(str, Enum):
    """Which placement rule a path broke"""
    FORBIDDEN_PATTERN = "forbidden-pattern"
    NOT_IN_ALLOWLIST = "not-in-allowlist"
    UNEXPECTED_DIRECTORY = "unexpected-directory"


class Violation(BaseModel):
    """A path that is not allowed where it currently lives."""
    model_config = ConfigDict(frozen=True)

    file: str
    rule_kind: ViolationKind
    reason: str
    suggested_path: Optional[str] = None

    def describe(self) -> str:
        text = f"{self.file}: {self.reason}"
        if self.suggested_path:
            text += f" -> {self.suggested_path}"
        return text


class LocationPolicy:
    """Compiled form of the root placement policy."""

    def __init__(self, config: LocationConfig):
        self.allowed_root_files = set(config.allowed_root_files)
        self.allowed_root_dirs = set(config.allowed_root_dirs)
        self._forbidden = [
            (re.compile(entry.pattern, re.IGNORECASE), entry)
            for entry in config.forbidden_patterns
        ]

    def forbidden_match(self, filename: str) -> Optional[ForbiddenPattern]:
        """First forbidden pattern matching the basename, if any."""
        name = Path(filename).name
        for regex, entry in self._forbidden:
            if regex.search(name):
                return entry
        return None

    def is_allowed_file(self, filename: str) -> bool:
        return filename in self.allowed_root_files or filename.startswith('.')

    def is_allowed_dir(self, dirname: str) -> bool:
        return dirname in self.allowed_root_dirs or dirname.startswith('.')

    @staticmethod
    def relocation_for(filename: str, entry: ForbiddenPattern) -> str:
        """Canonical home for a forbidden file, keeping its original name."""
        return entry.relocation.rstrip('/') + '/' + Path(filename).name


class LocationValidator:
    """Classifies repository paths against a LocationPolicy."""

    def __init__(
        self,
        policy: LocationPolicy,
        root: Optional[Path] = None,
        vcs: Optional[VcsClient] = None,
    ):
        self.policy = policy
        self.root = Path(root) if root else Path.cwd()
        self.vcs = vcs

    def classify(self, path: str, is_dir: bool = False) -> Optional[Violation]:
        """
        Classify a single path.

        Args:
            path: Path relative to the repository root
            is_dir: Whether the path names a directory

        Returns:
            None when the path is allowed, otherwise a Violation
        """
        normalized = path.replace('\\', '/').strip('/')
        if '/' in normalized:
            # Placement rules apply to the root only
            return None

        if is_dir:
            if self.policy.is_allowed_dir(normalized):
                return None
            return Violation(
                file=normalized,
                rule_kind=ViolationKind.UNEXPECTED_DIRECTORY,
                reason="Unexpected directory in root",
            )

        entry = self.policy.forbidden_match(normalized)
        if entry is not None:
            return Violation(
                file=normalized,
                rule_kind=ViolationKind.FORBIDDEN_PATTERN,
                reason="Session/temporary file in root",
                suggested_path=self.policy.relocation_for(normalized, entry),
            )

        if self.policy.is_allowed_file(normalized):
            return None

        return Violation(
            file=normalized,
            rule_kind=ViolationKind.NOT_IN_ALLOWLIST,
            reason="File not in allow-list",
        )

    def scan_tree(self) -> list[Violation]:
        """
        Check every entry in the root of the working tree.

        Raises:
            RepositoryAccessError: If the root cannot be listed
        """
        try:
            entries = sorted(self.root.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise RepositoryAccessError(f"Cannot read repository root {self.root}: {e}")

        violations = []
        for entry in entries:
            violation = self.classify(entry.name, is_dir=entry.is_dir())
            if violation:
                violations.append(violation)

        logger.info(f"Checked {len(entries)} root entries, {len(violations)} violation(s)")
        return violations

    def scan_staged(self) -> list[Violation]:
        """
        Check staged root-level files only.

        Outside a git repository there is nothing staged, so nothing to flag.
        """
        if self.vcs is None:
            logger.warning("No VCS client configured; skipping staged file check")
            return []

        try:
            staged = self.vcs.staged_files()
        except VcsError as e:
            logger.warning(f"Not a git repository or no staged files: {e}")
            return []

        violations = []
        for path in staged:
            if '/' in path:
                continue
            violation = self.classify(path)
            if violation:
                violations.append(violation)

        logger.info(f"Checked {len(staged)} staged file(s), {len(violations)} violation(s)")
        return violations

    def scan(self, staged: bool = False) -> list[Violation]:
        return self.scan_staged() if staged else self.scan_tree()
