"""
Evidence record schema.

Evidence is read back from disk written by earlier runs (possibly by other
tools), so every record is validated here before any freshness logic sees
it. On disk the keys are camelCase; in Python they are snake_case.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    ValidationError,
    field_validator,
    model_validator,
)

from ..errors import ConfigurationError


class SuiteSummary(BaseModel):
    """Pass/fail counts for a test run."""
    model_config = ConfigDict(extra="allow")

    passed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    message: Optional[str] = None


class SuiteResults(BaseModel):
    """
    Outcome of a test run, as produced by the test runner.

    Besides the native shape, two common runner formats are accepted:
    - jest/vitest JSON: numPassedTests, numFailedTests, success
    - pytest-json-report: summary.{passed,failed}, exitcode
    """
    model_config = ConfigDict(extra="allow")

    success: StrictBool
    summary: SuiteSummary = Field(default_factory=SuiteSummary)
    metrics: Optional[dict[str, Any]] = None
    note: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_runner_formats(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "numPassedTests" in data and "summary" not in data:
            data["summary"] = {
                "passed": data.get("numPassedTests", 0),
                "failed": data.get("numFailedTests", 0),
            }
        if "success" not in data and "exitcode" in data:
            data["success"] = data["exitcode"] == 0
        return data


class VcsInfo(BaseModel):
    """Commit the evidence was recorded against."""
    commit: str = "unknown"
    branch: str = "unknown"


class EnvironmentInfo(BaseModel):
    """Runtime context of the recording process."""
    model_config = ConfigDict(populate_by_name=True)

    runtime_version: str = Field(
        validation_alias=AliasChoices("runtimeVersion", "runtime_version", "node"),
        serialization_alias="runtimeVersion",
    )
    platform: str
    cwd: str


class EvidenceRecord(BaseModel):
    """
    Timestamped proof that a test run happened with a specific outcome.

    Records are immutable once written.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    phase: str = Field(min_length=1)
    timestamp: datetime
    passed: StrictBool
    test_results: SuiteResults = Field(
        validation_alias=AliasChoices("testResults", "test_results"),
        serialization_alias="testResults",
    )
    vcs_info: VcsInfo = Field(
        default_factory=VcsInfo,
        validation_alias=AliasChoices("vcsInfo", "vcs_info", "gitCommit"),
        serialization_alias="vcsInfo",
    )
    environment: EnvironmentInfo

    @field_validator("timestamp")
    @classmethod
    def timestamp_is_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def age_minutes(self, now: datetime) -> float:
        """Minutes elapsed since the record was written; never negative."""
        return max((now - self.timestamp).total_seconds(), 0.0) / 60.0


def _format_errors(error: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
        for err in error.errors()
    ]


def parse_evidence(data: Any, source: str = "evidence") -> EvidenceRecord:
    """
    Validate raw JSON data into an EvidenceRecord.

    Raises:
        ConfigurationError: If the data does not match the evidence schema
    """
    try:
        return EvidenceRecord.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid evidence record in {source}", _format_errors(e))


def parse_suite_results(data: Any, source: str = "test results") -> SuiteResults:
    """
    Validate raw runner output into SuiteResults.

    Raises:
        ConfigurationError: If the data does not describe a test run
    """
    try:
        return SuiteResults.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid test results in {source}", _format_errors(e))
