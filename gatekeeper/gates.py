"""
Gate Orchestrator - Pre-Commit Validation

Runs a fixed sequence of checks and folds them into one verdict:

    location -> git status (informational) -> content maturity
        -> [phase active] test evidence -> phase deliverables

Phase checks only run when a phase is active, either given explicitly or
detected from the commit message. Otherwise they are recorded as skipped
and do not affect the verdict.

Each check is fault-contained: an unexpected exception becomes a failed
result. Configuration and repository-access errors are fatal and
propagate, since nothing after them can be trusted.
"""

import json
import logging
import os
import re
import shlex
import subprocess
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from pydantic import BaseModel, Field

from .config import GatekeeperConfig
from .content import validate_content
from .errors import ConfigurationError, RepositoryAccessError, VcsError
from .evidence import EvidenceRecorder, normalize_phase_id
from .locations import LocationPolicy, LocationValidator
from .vcs import VcsClient

logger = logging.getLogger(__name__)


class GateType:
    """Check identifiers. The first five run in pipeline order; the rest belong to the pre-merge check."""
    FILE_LOCATION = "file-location"
    GIT_STATUS = "git-status"
    CONTENT_MATURITY = "content-maturity"
    TEST_EVIDENCE = "test-evidence"
    PHASE_REQUIREMENTS = "phase-requirements"
    WORK_VERIFICATION = "work-verification"
    MERGE_TESTS = "merge-tests"


class GateStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class GateResult(BaseModel):
    """Outcome of one check."""
    type: str
    status: GateStatus
    message: str
    details: Optional[Union[str, list[str]]] = None

    @property
    def passed(self) -> bool:
        return self.status != GateStatus.FAILED

    @property
    def executed(self) -> bool:
        return self.status != GateStatus.SKIPPED


class GateReport(BaseModel):
    """Aggregated results of one orchestrator run."""
    phase: Optional[str] = None
    branch: Optional[str] = None
    commit_message: Optional[str] = None
    results: list[GateResult] = Field(default_factory=list)

    @property
    def executed(self) -> list[GateResult]:
        return [r for r in self.results if r.executed]

    @property
    def failures(self) -> list[GateResult]:
        return [r for r in self.results if r.status == GateStatus.FAILED]

    @property
    def skipped(self) -> list[GateResult]:
        return [r for r in self.results if r.status == GateStatus.SKIPPED]

    @property
    def passed(self) -> bool:
        """AND over executed checks; skipped checks never count."""
        return all(r.passed for r in self.executed)

    def counts(self) -> dict[str, int]:
        return {
            "total": len(self.executed),
            "passed": len(self.executed) - len(self.failures),
            "failed": len(self.failures),
            "skipped": len(self.skipped),
        }

    def to_json(self) -> str:
        data = self.model_dump(mode="json")
        data["passed"] = self.passed
        data["counts"] = self.counts()
        return json.dumps(data, indent=2)


# Matches list items like: - `/opencode.json` or * `src/app.py`
_DELIVERABLE_RE = re.compile(r"^\s*[-*]\s+`([^`\s]+)`")
_FILE_EXTENSION_RE = re.compile(r"\.[A-Za-z0-9]+$")


def _is_path_like(token: str) -> bool:
    return token.startswith(('/', '.')) or '/' in token or bool(_FILE_EXTENSION_RE.search(token))


def extract_deliverables(description: str) -> list[str]:
    """
    Extract deliverable file paths from a phase description.

    Only backtick-quoted, path-like list items count. Directory entries
    (trailing '/') are dropped since they may not exist yet.
    """
    deliverables = []
    for line in description.split('\n'):
        match = _DELIVERABLE_RE.match(line)
        if not match or not _is_path_like(match.group(1)):
            continue
        path = match.group(1).lstrip('/')
        if not path or path.endswith('/'):
            continue
        if path not in deliverables:
            deliverables.append(path)
    return deliverables


def resolve_inside_root(root: Path, rel_path: str) -> Optional[Path]:
    """Resolve a repo-relative path, or None if it escapes the repository."""
    path = Path(rel_path)
    if path.is_absolute() or '..' in path.parts:
        return None
    full_path = root / path
    try:
        full_path.resolve().relative_to(root.resolve())
    except ValueError:
        return None
    return full_path


def detect_phase(commit_message: Optional[str], pattern: str) -> Optional[str]:
    """Phase id (phase-X.Y) named by a phase completion commit, if any."""
    if not commit_message:
        return None
    match = re.search(pattern, commit_message)
    if not match:
        return None
    return normalize_phase_id(match.group(1))


class GateOrchestrator:
    """Runs all gate checks against a repository."""

    def __init__(
        self,
        config: GatekeeperConfig,
        root: Optional[Path] = None,
        vcs: Optional[VcsClient] = None,
        recorder: Optional[EvidenceRecorder] = None,
    ):
        self.config = config
        self.root = Path(root) if root else Path.cwd()
        self.vcs = vcs
        self.recorder = recorder
        self.locations = LocationValidator(LocationPolicy(config.locations), self.root, vcs)

    def commit_message(self, override: Optional[str] = None) -> Optional[str]:
        """Explicit override, then GIT_COMMIT_MSG_FILE, then the last commit."""
        if override:
            return override.strip()

        msg_file = os.getenv("GIT_COMMIT_MSG_FILE")
        if msg_file:
            try:
                return Path(msg_file).read_text().strip()
            except OSError as e:
                logger.warning(f"Cannot read commit message file {msg_file}: {e}")

        if self.vcs is None:
            return None
        try:
            return self.vcs.last_commit_message() or None
        except VcsError as e:
            logger.warning(f"Could not read last commit message: {e}")
            return None

    def _contained(self, check_type: str, check: Callable[[], GateResult]) -> GateResult:
        logger.info(f"Running check: {check_type}")
        try:
            result = check()
        except (ConfigurationError, RepositoryAccessError):
            raise
        except Exception as e:
            logger.exception(f"Check {check_type} raised")
            result = GateResult(
                type=check_type,
                status=GateStatus.FAILED,
                message=f"Error running {check_type} check",
                details=str(e),
            )
        logger.info(f"Check {check_type}: {result.status.value}")
        return result

    def check_file_locations(self) -> GateResult:
        staged = self.config.gate.location_mode == "staged"
        violations = self.locations.scan(staged=staged)
        if not violations:
            return GateResult(
                type=GateType.FILE_LOCATION,
                status=GateStatus.PASSED,
                message="All files in correct locations",
            )
        return GateResult(
            type=GateType.FILE_LOCATION,
            status=GateStatus.FAILED,
            message=f"{len(violations)} file location violation(s) found",
            details=[v.describe() for v in violations],
        )

    def check_git_status(self) -> GateResult:
        """Informational: unstaged changes are listed but never fail the check."""
        if self.vcs is None:
            return GateResult(
                type=GateType.GIT_STATUS,
                status=GateStatus.SKIPPED,
                message="No git repository",
            )
        try:
            entries = self.vcs.status_entries()
        except VcsError as e:
            return GateResult(
                type=GateType.GIT_STATUS,
                status=GateStatus.FAILED,
                message="Error checking git status",
                details=str(e),
            )

        # First column is the index state, second the working tree state
        unstaged = [e for e in entries if e[1:2] != ' ']
        if unstaged:
            logger.warning(f"{len(unstaged)} unstaged change(s) in working tree")
            return GateResult(
                type=GateType.GIT_STATUS,
                status=GateStatus.PASSED,
                message=f"Git status checked ({len(unstaged)} unstaged change(s))",
                details=unstaged,
            )
        return GateResult(
            type=GateType.GIT_STATUS,
            status=GateStatus.PASSED,
            message="Git status checked",
        )

    def _run_content_command(self, command: str) -> GateResult:
        logger.info(f"Running content health command: {command}")
        try:
            result = subprocess.run(
                shlex.split(command),
                cwd=self.root,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise RepositoryAccessError(f"Cannot run content health command '{command}': {e}")

        output = (result.stdout + result.stderr).strip()
        if result.returncode == 0:
            return GateResult(
                type=GateType.CONTENT_MATURITY,
                status=GateStatus.PASSED,
                message="Content is healthy",
                details=output or None,
            )
        return GateResult(
            type=GateType.CONTENT_MATURITY,
            status=GateStatus.FAILED,
            message="Content health issues detected",
            details=output or f"exit code {result.returncode}",
        )

    def check_content(self) -> GateResult:
        command = self.config.gate.content_health_command
        if command:
            return self._run_content_command(command)

        content_dir = self.root / self.config.content.content_dir
        if not content_dir.is_dir():
            return GateResult(
                type=GateType.CONTENT_MATURITY,
                status=GateStatus.SKIPPED,
                message=f"No content directory at {self.config.content.content_dir}",
            )

        report = validate_content(self.root, self.config.content)
        if report.passed:
            return GateResult(
                type=GateType.CONTENT_MATURITY,
                status=GateStatus.PASSED,
                message="Content is healthy (no stubs for completed phases)",
                details=[w.describe() for w in report.warnings] or None,
            )
        return GateResult(
            type=GateType.CONTENT_MATURITY,
            status=GateStatus.FAILED,
            message=f"{len(report.errors)} stub(s) assigned to completed phases",
            details=[e.describe() for e in report.errors],
        )

    def check_test_evidence(self, phase: str) -> GateResult:
        if self.recorder is None:
            raise ConfigurationError("Evidence check requires an evidence recorder")

        verification = self.recorder.verify(phase)
        if verification.valid:
            return GateResult(
                type=GateType.TEST_EVIDENCE,
                status=GateStatus.PASSED,
                message=f"Test evidence valid for {phase}",
                details=verification.message,
            )
        return GateResult(
            type=GateType.TEST_EVIDENCE,
            status=GateStatus.FAILED,
            message=f"Test evidence {verification.reason} for {phase}",
            details=verification.message,
        )

    def check_phase_requirements(self, phase: str) -> GateResult:
        gate = self.config.gate
        phase_dir_rel = gate.phase_dir_template.format(phase=phase)
        phase_dir = self.root / phase_dir_rel
        readme = phase_dir / gate.phase_description_file

        if not phase_dir.is_dir():
            return GateResult(
                type=GateType.PHASE_REQUIREMENTS,
                status=GateStatus.FAILED,
                message=f"Phase directory not found: {phase_dir_rel}",
            )

        if not readme.exists():
            logger.warning(f"No {gate.phase_description_file} in {phase_dir_rel}")
            return GateResult(
                type=GateType.PHASE_REQUIREMENTS,
                status=GateStatus.PASSED,
                message=f"Phase directory exists (no {gate.phase_description_file} to validate)",
            )

        try:
            deliverables = extract_deliverables(readme.read_text(encoding='utf-8'))
        except OSError as e:
            raise RepositoryAccessError(f"Cannot read phase description {readme}: {e}")

        if not deliverables:
            return GateResult(
                type=GateType.PHASE_REQUIREMENTS,
                status=GateStatus.PASSED,
                message="No specific deliverables to check",
            )

        missing = []
        for deliverable in deliverables:
            full_path = resolve_inside_root(self.root, deliverable)
            if full_path is None or not full_path.exists():
                missing.append(deliverable)

        if missing:
            return GateResult(
                type=GateType.PHASE_REQUIREMENTS,
                status=GateStatus.FAILED,
                message=f"Missing {len(missing)} deliverable(s)",
                details=missing,
            )
        return GateResult(
            type=GateType.PHASE_REQUIREMENTS,
            status=GateStatus.PASSED,
            message=f"All {len(deliverables)} deliverables present",
        )

    @staticmethod
    def _skipped(check_type: str, message: str) -> GateResult:
        return GateResult(type=check_type, status=GateStatus.SKIPPED, message=message)

    def run(
        self,
        skip_location: bool = False,
        skip_evidence: bool = False,
        skip_content: bool = False,
        phase: Optional[str] = None,
        commit_message: Optional[str] = None,
    ) -> GateReport:
        """
        Run every check in order.

        Args:
            skip_location: Record the location check as skipped
            skip_evidence: Skip phase checks for a detected phase; an
                explicit phase always runs them
            skip_content: Record the content check as skipped
            phase: Explicit phase (X.Y or phase-X.Y); wins over detection
            commit_message: Overrides the commit message source

        Raises:
            ConfigurationError: If configuration or evidence input is invalid
            RepositoryAccessError: If the repository cannot be read
        """
        message = self.commit_message(commit_message)
        detected = detect_phase(message, self.config.gate.phase_pattern)

        active_phase = None
        if phase:
            active_phase = normalize_phase_id(phase)
        elif detected and not skip_evidence:
            active_phase = detected

        if detected:
            logger.info(f"Detected phase completion: {detected}")

        report = GateReport(phase=active_phase, commit_message=message)
        results = report.results

        if skip_location:
            results.append(self._skipped(GateType.FILE_LOCATION, "File location check skipped"))
        else:
            results.append(self._contained(GateType.FILE_LOCATION, self.check_file_locations))

        results.append(self._contained(GateType.GIT_STATUS, self.check_git_status))

        if skip_content:
            results.append(self._skipped(GateType.CONTENT_MATURITY, "Content check skipped"))
        else:
            results.append(self._contained(GateType.CONTENT_MATURITY, self.check_content))

        if active_phase:
            results.append(self._contained(
                GateType.TEST_EVIDENCE, lambda: self.check_test_evidence(active_phase)))
            results.append(self._contained(
                GateType.PHASE_REQUIREMENTS, lambda: self.check_phase_requirements(active_phase)))
        else:
            reason = "Evidence check skipped" if detected else "Not a phase completion commit"
            results.append(self._skipped(GateType.TEST_EVIDENCE, reason))
            results.append(self._skipped(GateType.PHASE_REQUIREMENTS, reason))

        counts = report.counts()
        logger.info(
            f"Gate check complete: {counts['passed']} passed, "
            f"{counts['failed']} failed, {counts['skipped']} skipped"
        )
        return report
