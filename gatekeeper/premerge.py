"""
Pre-Merge Validation

Before a feature branch merges, the work it claims to have done must be
written down and backed by tests. The branch carries a work verification
document (WORK-VERIFICATION.md by default) with:

- an ``## Objectives`` checklist
- a test coverage table (``| Objective | Test File | ...``) naming test files
- optionally ``## Test Organization`` and ``## Completion Checklist``

Two checks run:
1. work-verification: the document exists, lists objectives, and every
   test file named in the coverage table exists
2. merge-tests: the most recent test results on disk report a pass

Protected branches skip both checks; exempt branch types (docs/, chore/)
skip them individually. Nothing is executed: test results are read from
the result files the test runner already wrote.
"""

import logging
import re
from datetime import date
from pathlib import Path
from typing import Optional

from .config import PreMergeConfig
from .errors import RepositoryAccessError, VcsError
from .evidence import UNDETECTED_NOTE, EvidenceRecorder
from .gates import GateReport, GateResult, GateStatus, GateType, resolve_inside_root
from .vcs import VcsClient

logger = logging.getLogger(__name__)

UNKNOWN_BRANCH_TYPE = "unknown/"

_OBJECTIVES_RE = re.compile(r"^## Objectives\b[\s\S]*?(?=^##|\Z)", re.MULTILINE)
_CHECKBOX_RE = re.compile(r"^\s*[-*] \[.\] .+$", re.MULTILINE)
_UNCHECKED_RE = re.compile(r"^\s*[-*] \[ \]", re.MULTILINE)
_COVERAGE_TABLE_RE = re.compile(r"^\|\s*Objective.*\|[\s\S]*?(?=^##|\Z)", re.MULTILINE)
_CHECKLIST_RE = re.compile(r"^## Completion Checklist\b[\s\S]*?(?=^##|\Z)", re.MULTILINE)


def branch_type(branch: str, prefixes: list[str]) -> str:
    """The branch's type prefix (e.g. 'feature/'), or 'unknown/'."""
    for prefix in prefixes:
        if branch.startswith(prefix):
            return prefix
    return UNKNOWN_BRANCH_TYPE


def feature_name(branch: str) -> str:
    """feature/documentation-conventions -> Documentation Conventions"""
    parts = branch.split('/', 1)
    if len(parts) > 1 and parts[1]:
        return ' '.join(word.capitalize() for word in parts[1].split('-'))
    return branch


def count_objectives(document: str) -> Optional[int]:
    """Checklist items in the Objectives section, or None if there is no such section."""
    match = _OBJECTIVES_RE.search(document)
    if not match:
        return None
    return len(_CHECKBOX_RE.findall(match.group(0)))


def extract_test_files(document: str, pattern: str) -> Optional[list[str]]:
    """
    Test file paths named in the coverage table.

    Returns None if the document has no coverage table. Duplicates are
    removed, first occurrence wins.
    """
    match = _COVERAGE_TABLE_RE.search(document)
    if not match:
        return None
    files = []
    for path in re.findall(pattern, match.group(0)):
        if path not in files:
            files.append(path)
    return files


def unchecked_items(document: str) -> int:
    match = _CHECKLIST_RE.search(document)
    if not match:
        return 0
    return len(_UNCHECKED_RE.findall(match.group(0)))


class PreMergeChecker:
    """Validates that a branch documents and tests its work."""

    def __init__(
        self,
        config: Optional[PreMergeConfig] = None,
        root: Optional[Path] = None,
        vcs: Optional[VcsClient] = None,
        recorder: Optional[EvidenceRecorder] = None,
    ):
        self.config = config or PreMergeConfig()
        self.root = Path(root) if root else Path.cwd()
        self.vcs = vcs
        self.recorder = recorder

    def current_branch(self, override: Optional[str] = None) -> str:
        """
        Raises:
            RepositoryAccessError: If no branch is given and git cannot tell
        """
        if override:
            return override
        if self.vcs is None:
            raise RepositoryAccessError("Could not determine current git branch (not a git repository)")
        try:
            return self.vcs.current_branch()
        except VcsError as e:
            raise RepositoryAccessError(f"Could not determine current git branch: {e}")

    def _exempt(self, kind: str) -> bool:
        return kind in self.config.exempt_branch_types

    def check_work_verification(self, kind: str) -> GateResult:
        config = self.config
        name = config.verification_file

        if not config.require_work_verification:
            return GateResult(type=GateType.WORK_VERIFICATION, status=GateStatus.SKIPPED,
                              message="Work verification not required")
        if self._exempt(kind):
            return GateResult(type=GateType.WORK_VERIFICATION, status=GateStatus.SKIPPED,
                              message=f"Branch type '{kind}' exempt from work verification")

        path = self.root / name
        if not path.is_file():
            return GateResult(
                type=GateType.WORK_VERIFICATION,
                status=GateStatus.FAILED,
                message=f"{name} not found",
                details="Fix: gatekeeper premerge init",
            )
        try:
            document = path.read_bytes().decode('utf-8', errors='replace')
        except OSError as e:
            raise RepositoryAccessError(f"Cannot read {path}: {e}")

        objectives = count_objectives(document)
        if objectives is None:
            return GateResult(type=GateType.WORK_VERIFICATION, status=GateStatus.FAILED,
                              message=f"No objectives section in {name}")
        if objectives == 0:
            return GateResult(
                type=GateType.WORK_VERIFICATION,
                status=GateStatus.FAILED,
                message=f"No objectives listed in {name}",
                details="Fix: add objectives that describe what this work accomplishes",
            )

        warnings = []
        test_files = extract_test_files(document, config.test_file_pattern)
        if test_files is None:
            if config.require_tests:
                return GateResult(
                    type=GateType.WORK_VERIFICATION,
                    status=GateStatus.FAILED,
                    message=f"No test coverage table in {name}",
                    details="Fix: add a ## Verification Strategy section with a test coverage table",
                )
            warnings.append("No test coverage documented")
            test_files = []
        elif not test_files and config.require_tests:
            return GateResult(
                type=GateType.WORK_VERIFICATION,
                status=GateStatus.FAILED,
                message="No test files referenced in verification table",
                details="Fix: add test file paths to the verification table",
            )

        missing = []
        for test_file in test_files:
            full_path = resolve_inside_root(self.root, test_file)
            if full_path is None or not full_path.exists():
                missing.append(test_file)
        if missing:
            return GateResult(
                type=GateType.WORK_VERIFICATION,
                status=GateStatus.FAILED,
                message=f"Referenced test files do not exist ({len(missing)})",
                details=missing,
            )

        if "## Test Organization" not in document:
            warnings.append("No test organization section; add ## Test Organization to document test structure")
        unchecked = unchecked_items(document)
        if unchecked:
            warnings.append(f"{unchecked} checklist item(s) not completed")

        for warning in warnings:
            logger.warning(f"{name}: {warning}")
        return GateResult(
            type=GateType.WORK_VERIFICATION,
            status=GateStatus.PASSED,
            message=f"{objectives} objective(s), {len(test_files)} test file(s) verified",
            details=warnings or None,
        )

    def check_tests(self, kind: str) -> GateResult:
        if not self.config.require_tests:
            return GateResult(type=GateType.MERGE_TESTS, status=GateStatus.SKIPPED,
                              message="Tests not required")
        if self._exempt(kind):
            return GateResult(type=GateType.MERGE_TESTS, status=GateStatus.SKIPPED,
                              message=f"Branch type '{kind}' exempt from test requirements")
        if self.recorder is None:
            return GateResult(type=GateType.MERGE_TESTS, status=GateStatus.SKIPPED,
                              message="No test result source configured")

        results = self.recorder.detect_results()
        summary = results.summary
        if results.note == UNDETECTED_NOTE and not results.success:
            return GateResult(
                type=GateType.MERGE_TESTS,
                status=GateStatus.FAILED,
                message="No test results found",
                details="Fix: run the test suite so it writes test-results.json or junit.xml",
            )
        if not results.success or summary.failed:
            return GateResult(
                type=GateType.MERGE_TESTS,
                status=GateStatus.FAILED,
                message=f"{summary.failed} test(s) failing" if summary.failed else "Tests are failing",
                details="Fix: fix failing tests before merging",
            )
        return GateResult(
            type=GateType.MERGE_TESTS,
            status=GateStatus.PASSED,
            message=f"All {summary.passed} tests passing",
        )

    def run(self, branch: Optional[str] = None) -> GateReport:
        """
        Run the pre-merge checks for a branch (the current one by default).

        Raises:
            RepositoryAccessError: If the branch cannot be determined
        """
        branch = self.current_branch(branch)
        report = GateReport(branch=branch)

        if branch in self.config.protected_branches:
            message = f"On {branch} branch - skipping pre-merge checks"
            report.results.append(GateResult(type=GateType.WORK_VERIFICATION,
                                             status=GateStatus.SKIPPED, message=message))
            report.results.append(GateResult(type=GateType.MERGE_TESTS,
                                             status=GateStatus.SKIPPED, message=message))
            return report

        kind = branch_type(branch, self.config.branch_prefixes)
        logger.info(f"Pre-merge validation for {branch} (type {kind})")
        report.results.append(self.check_work_verification(kind))
        report.results.append(self.check_tests(kind))
        return report


def render_template(branch: str, today: Optional[date] = None) -> str:
    """A WORK-VERIFICATION.md skeleton for a branch."""
    name = feature_name(branch)
    slug = branch.split('/', 1)[-1].replace('-', '_')
    started = (today or date.today()).isoformat()
    return f"""# Work Verification: {name}

**Branch**: `{branch}`
**Started**: {started}
**Completed**: _[Date when work is done]_

---

## Objectives

What was this work supposed to accomplish?

- [ ] Objective 1: _[Describe what should be achieved]_
- [ ] Objective 2: _[Describe what should be achieved]_

---

## Deliverables

### Created
- `path/to/new_module.py` - _[Purpose of this file]_

### Modified
- `path/to/existing_module.py` - _[What changes were made]_

---

## Verification Strategy

### Test Coverage

| Objective | Test File | Test Description | Status |
|-----------|-----------|------------------|--------|
| Objective 1 | `tests/test_{slug}.py` | Verifies X behavior | Pending |
| Objective 2 | `tests/test_{slug}.py` | Verifies Y behavior | Pending |

---

## Test Organization

```
tests/
└── test_{slug}.py
    ├── class Test...: Objective 1
    └── class Test...: Objective 2
```

---

## Completion Checklist

- [ ] All objectives completed
- [ ] Tests written for all objectives
- [ ] All tests passing (`pytest`)
- [ ] Test evidence recorded (`gatekeeper evidence record`)
- [ ] Documentation updated
- [ ] Pre-merge validation passes (`gatekeeper premerge check`)

---

## Notes

-
"""


def init_work_verification(
    root: Path,
    branch: str,
    config: Optional[PreMergeConfig] = None,
    force: bool = False,
    today: Optional[date] = None,
) -> Path:
    """
    Write a work verification template for a branch.

    Raises:
        FileExistsError: If the document exists and force is not set
        ValueError: If the branch is protected
        RepositoryAccessError: If the file cannot be written
    """
    config = config or PreMergeConfig()
    if branch in config.protected_branches:
        raise ValueError(f"Cannot create work verification for protected branch '{branch}'")

    path = Path(root) / config.verification_file
    if path.exists() and not force:
        raise FileExistsError(f"{path} already exists")
    try:
        path.write_text(render_template(branch, today), encoding='utf-8')
    except OSError as e:
        raise RepositoryAccessError(f"Cannot write {path}: {e}")
    logger.info(f"Created {path} for {branch}")
    return path
