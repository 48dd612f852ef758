"""Test evidence: schema, storage and the recorder/verifier.

Evidence is an append-only log of timestamped records per phase plus a
"latest" pointer that freshness checks read.
"""

from .schema import (
    EvidenceRecord,
    SuiteResults,
    SuiteSummary,
    VcsInfo,
    EnvironmentInfo,
    parse_evidence,
    parse_suite_results,
)
from .store import EvidenceStore, LocalEvidenceStore, InMemoryEvidenceStore
from .recorder import (
    EvidenceRecorder,
    EvidenceVerification,
    UNDETECTED_NOTE,
    load_results_file,
    normalize_phase_id,
)

__all__ = [
    "EvidenceRecord",
    "SuiteResults",
    "SuiteSummary",
    "VcsInfo",
    "EnvironmentInfo",
    "parse_evidence",
    "parse_suite_results",
    "EvidenceStore",
    "LocalEvidenceStore",
    "InMemoryEvidenceStore",
    "EvidenceRecorder",
    "EvidenceVerification",
    "UNDETECTED_NOTE",
    "load_results_file",
    "normalize_phase_id",
]
