"""
Tests for test evidence recording and verification.

Tests cover:
- Schema validation at the storage boundary
- Local and in-memory stores
- record/verify freshness semantics
- Result auto-detection
"""

import json
from datetime import timedelta

import pytest


def passing_results(passed=12, metrics=None):
    from gatekeeper.evidence import SuiteResults, SuiteSummary

    return SuiteResults(success=True, summary=SuiteSummary(passed=passed, failed=0), metrics=metrics)


def failing_results():
    from gatekeeper.evidence import SuiteResults, SuiteSummary

    return SuiteResults(success=False, summary=SuiteSummary(passed=3, failed=2))


@pytest.fixture
def memory_recorder(tmp_path, clock, fake_vcs):
    from gatekeeper.evidence import EvidenceRecorder, InMemoryEvidenceStore

    return EvidenceRecorder(InMemoryEvidenceStore(), root=tmp_path, vcs=fake_vcs, clock=clock)


@pytest.fixture
def local_recorder(tmp_path, clock, fake_vcs):
    from gatekeeper.evidence import EvidenceRecorder, LocalEvidenceStore

    return EvidenceRecorder(LocalEvidenceStore(tmp_path), root=tmp_path, vcs=fake_vcs, clock=clock)


class TestPhaseIds:
    """Phase identifier normalization."""

    def test_bare_version_gets_prefix(self):
        from gatekeeper.evidence import normalize_phase_id

        assert normalize_phase_id("1.2") == "phase-1.2"
        assert normalize_phase_id("phase-1.2") == "phase-1.2"

    def test_invalid_phase_raises(self):
        from gatekeeper.errors import ConfigurationError
        from gatekeeper.evidence import normalize_phase_id

        with pytest.raises(ConfigurationError):
            normalize_phase_id("../etc")


class TestSchema:
    """Evidence records are validated when read."""

    def test_parses_on_disk_shape(self):
        from gatekeeper.evidence import parse_evidence

        record = parse_evidence({
            "phase": "phase-1.1",
            "timestamp": "2026-03-01T12:00:00.000Z",
            "passed": True,
            "testResults": {"success": True, "summary": {"passed": 4, "failed": 0}},
            "vcsInfo": {"commit": "abc", "branch": "main"},
            "environment": {"runtimeVersion": "3.12.1", "platform": "linux", "cwd": "/repo"},
        })
        assert record.passed is True
        assert record.test_results.summary.passed == 4
        assert record.timestamp.tzinfo is not None

    def test_accepts_legacy_keys(self):
        """gitCommit and environment.node from older writers are accepted."""
        from gatekeeper.evidence import parse_evidence

        record = parse_evidence({
            "phase": "phase-1.1",
            "timestamp": "2026-03-01T12:00:00Z",
            "passed": True,
            "testResults": {"success": True},
            "gitCommit": {"commit": "def", "branch": "dev"},
            "environment": {"node": "v20.1.0", "platform": "linux", "cwd": "/repo"},
        })
        assert record.vcs_info.commit == "def"
        assert record.environment.runtime_version == "v20.1.0"

    def test_string_passed_is_rejected(self):
        """passed must be a real boolean."""
        from gatekeeper.errors import ConfigurationError
        from gatekeeper.evidence import parse_evidence

        with pytest.raises(ConfigurationError) as exc_info:
            parse_evidence({
                "phase": "phase-1.1",
                "timestamp": "2026-03-01T12:00:00Z",
                "passed": "true",
                "testResults": {"success": True},
                "environment": {"runtimeVersion": "3.12", "platform": "linux", "cwd": "/"},
            })
        assert any(e.startswith("passed") for e in exc_info.value.errors)

    def test_jest_summary_shape(self):
        from gatekeeper.evidence import parse_suite_results

        results = parse_suite_results({"success": True, "numPassedTests": 7, "numFailedTests": 0})
        assert results.summary.passed == 7

    def test_serializes_camel_case(self, memory_recorder):
        record = memory_recorder.record("1.1", passing_results())
        data = record.to_json_dict()
        assert set(data) == {"phase", "timestamp", "passed", "testResults", "vcsInfo", "environment"}
        assert "runtimeVersion" in data["environment"]


class TestRecord:
    """record() behavior."""

    def test_record_then_verify_is_valid(self, memory_recorder):
        """Fresh passing evidence verifies immediately."""
        memory_recorder.record("phase-1.1", passing_results())
        assert memory_recorder.verify("phase-1.1", max_age_minutes=1)

    def test_failed_run_is_rejected_without_force(self, memory_recorder):
        from gatekeeper.errors import EvidenceRejectedError

        with pytest.raises(EvidenceRejectedError):
            memory_recorder.record("phase-1.1", failing_results())
        assert memory_recorder.store.read_latest("phase-1.1") is None

    def test_force_records_failed_run(self, memory_recorder):
        record = memory_recorder.record("phase-1.1", failing_results(), force=True)
        assert record.passed is False
        assert memory_recorder.store.status["phase-1.1"].startswith("FAILED\n")

    def test_attaches_vcs_info(self, memory_recorder):
        record = memory_recorder.record("phase-1.1", passing_results())
        assert record.vcs_info.commit == "abc1234"
        assert record.vcs_info.branch == "main"

    def test_vcs_failure_records_unknown(self, tmp_path, clock, make_vcs):
        from gatekeeper.evidence import EvidenceRecorder, InMemoryEvidenceStore

        recorder = EvidenceRecorder(
            InMemoryEvidenceStore(), root=tmp_path, vcs=make_vcs(fail=True), clock=clock
        )
        record = recorder.record("phase-1.1", passing_results())
        assert record.vcs_info.commit == "unknown"

    def test_metrics_are_exported(self, memory_recorder):
        memory_recorder.record("phase-1.1", passing_results(metrics={"coverage": 91.5}))
        assert memory_recorder.store.metrics["phase-1.1"] == {"coverage": 91.5}

    def test_log_is_append_only(self, memory_recorder, clock):
        """Each run adds a log entry; latest points at the newest."""
        memory_recorder.record("phase-1.1", passing_results(passed=1))
        clock.now += timedelta(minutes=1)
        memory_recorder.record("phase-1.1", passing_results(passed=2))

        assert len(memory_recorder.store.list_records("phase-1.1")) == 2
        assert memory_recorder.store.read_latest("phase-1.1").test_results.summary.passed == 2


class TestVerify:
    """verify() freshness semantics."""

    def test_missing_evidence(self, memory_recorder):
        result = memory_recorder.verify("phase-9.9")
        assert not result
        assert result.reason == "missing"

    def test_fresh_at_nine_minutes(self, memory_recorder, clock):
        memory_recorder.record("phase-1.1", passing_results())
        result = memory_recorder.verify("phase-1.1", 10, now=clock.now + timedelta(minutes=9))
        assert result.valid
        assert result.reason == "ok"

    def test_stale_at_eleven_minutes(self, memory_recorder, clock):
        """Stale evidence cites the age and the 10-minute limit."""
        memory_recorder.record("phase-1.1", passing_results())
        result = memory_recorder.verify("phase-1.1", 10, now=clock.now + timedelta(minutes=11))
        assert not result.valid
        assert result.reason == "stale"
        assert "too old" in result.message
        assert "10 minutes" in result.message
        assert result.age_minutes == pytest.approx(11.0)

    @pytest.mark.parametrize("age", [10.01, 10.5, 11, 60, 720, 1440])
    def test_stale_for_any_age_over_window(self, memory_recorder, clock, age):
        memory_recorder.record("phase-1.1", passing_results())
        result = memory_recorder.verify("phase-1.1", 10, now=clock.now + timedelta(minutes=age))
        assert result.valid is False

    def test_exactly_at_window_is_fresh(self, memory_recorder, clock):
        memory_recorder.record("phase-1.1", passing_results())
        assert memory_recorder.verify("phase-1.1", 10, now=clock.now + timedelta(minutes=10))

    @pytest.mark.parametrize("age", [0, 5, 60])
    def test_failed_run_never_valid(self, memory_recorder, clock, age):
        memory_recorder.record("phase-1.1", failing_results(), force=True)
        result = memory_recorder.verify("phase-1.1", 10, now=clock.now + timedelta(minutes=age))
        assert not result.valid
        assert result.reason == "failed"

    def test_future_timestamp_counts_as_fresh(self, memory_recorder, clock):
        memory_recorder.record("phase-1.1", passing_results())
        result = memory_recorder.verify("phase-1.1", 10, now=clock.now - timedelta(minutes=5))
        assert result.valid
        assert result.age_minutes == 0.0

    def test_require_fresh_raises_stale_error(self, memory_recorder, clock):
        from gatekeeper.errors import StaleEvidenceError

        memory_recorder.record("phase-1.1", passing_results())
        with pytest.raises(StaleEvidenceError) as exc_info:
            memory_recorder.require_fresh("phase-1.1", 10, now=clock.now + timedelta(minutes=30))
        assert exc_info.value.max_age_minutes == 10
        assert exc_info.value.age_minutes == pytest.approx(30.0)

    def test_invalid_stored_record_raises(self, memory_recorder):
        from gatekeeper.errors import ConfigurationError

        memory_recorder.store.put_latest_raw("phase-1.1", {"phase": "phase-1.1", "passed": "yes"})
        with pytest.raises(ConfigurationError):
            memory_recorder.verify("phase-1.1")


class TestLocalStore:
    """Filesystem layout of evidence."""

    def test_writes_three_artifacts(self, local_recorder, tmp_path):
        record = local_recorder.record("phase-1.1", passing_results())
        evidence_dir = tmp_path / "docs/phases/phase-1.1/test-evidence"

        results_files = list(evidence_dir.glob("results-*.json"))
        assert len(results_files) == 1
        assert json.loads((evidence_dir / "latest-run.json").read_text())["passed"] is True
        status = (evidence_dir / "test-status.txt").read_text()
        assert status == f"PASSED\n{record.timestamp.isoformat()}\n"

    def test_results_files_are_never_overwritten(self, local_recorder, clock):
        """Two runs with the same timestamp get distinct, ordered log entries."""
        local_recorder.record("phase-1.1", passing_results(passed=1))
        local_recorder.record("phase-1.1", passing_results(passed=2))

        stamp = int(clock.now.timestamp() * 1000)
        names = local_recorder.store.list_records("phase-1.1")
        assert names == [f"results-{stamp}.json", f"results-{stamp + 1}.json"]

    def test_results_file_named_after_record_timestamp(self, local_recorder, clock):
        from datetime import timedelta

        clock.now += timedelta(minutes=5)
        record = local_recorder.record("phase-1.1", passing_results())
        name = local_recorder.store.list_records("phase-1.1")[0]
        assert name == f"results-{int(record.timestamp.timestamp() * 1000)}.json"
        assert record.timestamp == clock.now

    def test_metrics_file(self, local_recorder, tmp_path):
        local_recorder.record("phase-1.1", passing_results(metrics={"duration": 3}))
        metrics = json.loads((tmp_path / "docs/metrics/phase-1.1-metrics.json").read_text())
        assert metrics == {"duration": 3}

    def test_no_temp_files_left_behind(self, local_recorder, tmp_path):
        local_recorder.record("phase-1.1", passing_results())
        evidence_dir = tmp_path / "docs/phases/phase-1.1/test-evidence"
        assert not [p for p in evidence_dir.iterdir() if ".tmp." in p.name]

    def test_corrupt_latest_raises(self, local_recorder, tmp_path):
        from gatekeeper.errors import ConfigurationError

        evidence_dir = tmp_path / "docs/phases/phase-1.1/test-evidence"
        evidence_dir.mkdir(parents=True)
        (evidence_dir / "latest-run.json").write_text("{not json")
        with pytest.raises(ConfigurationError, match="Corrupted"):
            local_recorder.verify("phase-1.1")


class TestDetection:
    """Auto-detection of test result files."""

    def test_detects_json_results(self, local_recorder, tmp_path):
        (tmp_path / "test-results.json").write_text(json.dumps({
            "success": True, "numPassedTests": 5, "numFailedTests": 0,
        }))
        record = local_recorder.record("phase-1.1")
        assert record.test_results.summary.passed == 5

    def test_detects_junit_xml(self, local_recorder, tmp_path):
        (tmp_path / "junit.xml").write_text(
            '<testsuites><testsuite name="unit" tests="4" failures="0" errors="0" skipped="1"/>'
            '</testsuites>'
        )
        record = local_recorder.record("phase-1.1")
        assert record.test_results.success is True
        assert record.test_results.summary.passed == 3

    def test_junit_with_failures_is_rejected(self, local_recorder, tmp_path):
        from gatekeeper.errors import EvidenceRejectedError

        (tmp_path / "junit.xml").write_text('<testsuite tests="4" failures="1" errors="0"/>')
        with pytest.raises(EvidenceRejectedError):
            local_recorder.record("phase-1.1")

    def test_undetected_results_are_not_a_pass(self, local_recorder):
        """With nothing to detect, recording refuses unless forced."""
        from gatekeeper.errors import EvidenceRejectedError

        with pytest.raises(EvidenceRejectedError):
            local_recorder.record("phase-1.1")

    def test_undetected_forced_record_is_marked(self, local_recorder):
        from gatekeeper.evidence import UNDETECTED_NOTE

        record = local_recorder.record("phase-1.1", force=True)
        assert record.passed is False
        assert record.test_results.note == UNDETECTED_NOTE

    def test_assume_success_opt_in(self, tmp_path, clock):
        from gatekeeper.config import EvidenceConfig
        from gatekeeper.evidence import EvidenceRecorder, InMemoryEvidenceStore

        config = EvidenceConfig(assume_success_when_undetected=True)
        recorder = EvidenceRecorder(InMemoryEvidenceStore(), config, root=tmp_path, clock=clock)
        assert recorder.record("phase-1.1").passed is True

    def test_unreadable_candidate_is_skipped(self, local_recorder, tmp_path):
        """A broken first candidate falls through to the next."""
        (tmp_path / "test-results.json").write_text("not json")
        (tmp_path / "junit.xml").write_text('<testsuite tests="2" failures="0" errors="0"/>')
        record = local_recorder.record("phase-1.1")
        assert record.test_results.summary.passed == 2

    def test_explicit_test_file(self, local_recorder, tmp_path):
        results = tmp_path / "out" / "results.json"
        results.parent.mkdir()
        results.write_text(json.dumps({"success": True, "summary": {"passed": 9, "failed": 0}}))
        record = local_recorder.record("phase-1.1", test_file=results)
        assert record.test_results.summary.passed == 9
