"""
Test Evidence Recorder

Records proof that tests were executed and passed, and verifies that the
latest proof for a phase is still fresh enough to count.
"""

import json
import logging
import os
import platform
import re
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from ..config import EvidenceConfig
from ..errors import (
    ConfigurationError,
    EvidenceRejectedError,
    RepositoryAccessError,
    StaleEvidenceError,
    VcsError,
)
from ..vcs import VcsClient
from .schema import (
    EnvironmentInfo,
    EvidenceRecord,
    SuiteResults,
    SuiteSummary,
    VcsInfo,
    parse_suite_results,
)
from .store import EvidenceStore

logger = logging.getLogger(__name__)

UNDETECTED_NOTE = "Test results not auto-detected"

_PHASE_RE = re.compile(r"^(?:phase-)?(\d+(?:\.\d+)*)$", re.IGNORECASE)


def normalize_phase_id(phase: str) -> str:
    """
    Normalize a phase identifier to the `phase-X.Y` form.

    Raises:
        ConfigurationError: If the identifier is not a dotted version
    """
    match = _PHASE_RE.match(phase.strip())
    if not match:
        raise ConfigurationError(
            f"Invalid phase identifier '{phase}' (expected phase-X.Y or X.Y)"
        )
    return f"phase-{match.group(1)}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EvidenceVerification:
    """Outcome of verifying a phase's latest evidence."""
    valid: bool
    reason: str  # ok, missing, failed, stale
    message: str
    age_minutes: Optional[float] = None
    record: Optional[EvidenceRecord] = None

    def __bool__(self) -> bool:
        return self.valid


def load_junit_xml(path: Path) -> SuiteResults:
    """Summarize a JUnit XML report from its testsuite attributes."""
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        raise ConfigurationError(f"Invalid JUnit XML in {path}: {e}")

    suites = [root] if root.tag == "testsuite" else root.findall("testsuite")
    total = failed = 0
    for suite in suites:
        total += int(suite.get("tests", 0))
        failed += int(suite.get("failures", 0)) + int(suite.get("errors", 0))
    # <testsuites> may carry the totals itself with no child suites
    if not suites and root.get("tests") is not None:
        total = int(root.get("tests", 0))
        failed = int(root.get("failures", 0)) + int(root.get("errors", 0))

    skipped = sum(int(suite.get("skipped", 0)) for suite in suites)
    return SuiteResults(
        success=failed == 0 and total > 0,
        summary=SuiteSummary(passed=max(total - failed - skipped, 0), failed=failed),
    )


def load_results_file(path: Path) -> SuiteResults:
    """
    Load test results from a JSON or JUnit XML file.

    Raises:
        ConfigurationError: If the file cannot be parsed as test results
        RepositoryAccessError: If the file cannot be read
    """
    if path.suffix.lower() == ".xml":
        return load_junit_xml(path)
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in test results file {path}: {e}")
    except OSError as e:
        raise RepositoryAccessError(f"Cannot read test results file {path}: {e}")
    return parse_suite_results(data, source=str(path))


class EvidenceRecorder:
    """Writes and verifies evidence records for phases."""

    def __init__(
        self,
        store: EvidenceStore,
        config: Optional[EvidenceConfig] = None,
        root: Optional[Path] = None,
        vcs: Optional[VcsClient] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.config = config or EvidenceConfig()
        self.root = Path(root) if root else Path.cwd()
        self.vcs = vcs
        self.clock = clock

    def detect_results(self) -> SuiteResults:
        """
        Probe well-known result-file locations.

        When nothing usable is found the synthesized result does not
        count as a pass unless assume_success_when_undetected is set.
        """
        for candidate in self.config.result_file_candidates:
            path = self.root / candidate
            if not path.exists():
                continue
            try:
                results = load_results_file(path)
            except (ConfigurationError, RepositoryAccessError) as e:
                logger.warning(f"Ignoring unreadable test results {path}: {e}")
                continue
            logger.info(f"Detected test results: {path}")
            return results

        logger.warning("Could not auto-detect test results")
        return SuiteResults(
            success=self.config.assume_success_when_undetected,
            summary=SuiteSummary(message="Manual verification"),
            note=UNDETECTED_NOTE,
        )

    def _vcs_info(self) -> VcsInfo:
        if self.vcs is None:
            return VcsInfo()
        try:
            return VcsInfo(commit=self.vcs.current_commit(), branch=self.vcs.current_branch())
        except VcsError as e:
            logger.warning(f"Could not read git info: {e}")
            return VcsInfo()

    def _environment(self) -> EnvironmentInfo:
        return EnvironmentInfo(
            runtime_version=platform.python_version(),
            platform=sys.platform,
            cwd=os.getcwd(),
        )

    def record(
        self,
        phase: str,
        test_results: Optional[SuiteResults] = None,
        test_file: Optional[Path] = None,
        force: bool = False,
    ) -> EvidenceRecord:
        """
        Record test evidence for a phase.

        Args:
            phase: Phase identifier (phase-X.Y or X.Y)
            test_results: Results of the run; takes precedence over test_file
            test_file: Path to a results file; auto-detected when both are None
            force: Record even if the tests did not pass

        Returns:
            The written EvidenceRecord

        Raises:
            EvidenceRejectedError: If the tests did not pass and force is not set
        """
        phase = normalize_phase_id(phase)

        if test_results is None:
            if test_file is not None:
                test_results = load_results_file(Path(test_file))
            else:
                test_results = self.detect_results()

        if not test_results.success and not force:
            raise EvidenceRejectedError(
                f"Tests did not pass for {phase}; cannot record evidence. "
                "Run the tests and make sure they pass, or use --force."
            )

        record = EvidenceRecord(
            phase=phase,
            timestamp=self.clock(),
            passed=test_results.success,
            test_results=test_results,
            vcs_info=self._vcs_info(),
            environment=self._environment(),
        )

        self.store.append(record)
        self.store.write_latest(record)
        status = "PASSED" if record.passed else "FAILED"
        self.store.write_status(phase, f"{status}\n{record.timestamp.isoformat()}\n")
        if test_results.metrics:
            self.store.write_metrics(phase, test_results.metrics)

        logger.info(f"Recorded {status} evidence for {phase}")
        return record

    def verify(
        self,
        phase: str,
        max_age_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> EvidenceVerification:
        """
        Check that the latest evidence for a phase passed and is fresh.

        Only the latest pointer is consulted; older log entries are ignored.
        """
        phase = normalize_phase_id(phase)
        max_age = self.config.max_age_minutes if max_age_minutes is None else max_age_minutes
        now = now or self.clock()

        record = self.store.read_latest(phase)
        if record is None:
            return EvidenceVerification(
                valid=False,
                reason="missing",
                message=f"No test evidence found for {phase}",
            )

        if not record.passed:
            return EvidenceVerification(
                valid=False,
                reason="failed",
                message=f"Latest test run for {phase} did not pass",
                record=record,
            )

        if record.timestamp > now:
            logger.warning(f"Evidence for {phase} is timestamped in the future: {record.timestamp}")
        age = record.age_minutes(now)

        if age > max_age:
            return EvidenceVerification(
                valid=False,
                reason="stale",
                message=str(StaleEvidenceError(phase, age, max_age)),
                age_minutes=age,
                record=record,
            )

        return EvidenceVerification(
            valid=True,
            reason="ok",
            message=f"Tests passed {age:.1f} minutes ago",
            age_minutes=age,
            record=record,
        )

    def require_fresh(
        self,
        phase: str,
        max_age_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> EvidenceRecord:
        """
        Like verify, but raises instead of returning a negative outcome.

        Raises:
            StaleEvidenceError: If the evidence is older than the window
            EvidenceRejectedError: If evidence is missing or did not pass
        """
        result = self.verify(phase, max_age_minutes, now)
        if result.reason == "stale":
            max_age = self.config.max_age_minutes if max_age_minutes is None else max_age_minutes
            raise StaleEvidenceError(normalize_phase_id(phase), result.age_minutes, max_age)
        if not result.valid:
            raise EvidenceRejectedError(result.message)
        return result.record

    def summary(self, record: EvidenceRecord) -> dict[str, Any]:
        """Flat view of a record for display."""
        return {
            "phase": record.phase,
            "status": "PASSED" if record.passed else "FAILED",
            "time": record.timestamp.isoformat(),
            "passed": record.test_results.summary.passed,
            "failed": record.test_results.summary.failed,
            "commit": record.vcs_info.commit,
            "branch": record.vcs_info.branch,
        }
