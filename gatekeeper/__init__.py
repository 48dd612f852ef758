"""
Gatekeeper - Repository Quality Gates

Evidence-based "done" checks for work produced by autonomous agents:
file placement, fresh test evidence, content maturity, phase
deliverables, pre-merge work verification and advisory
duplicate-documentation detection.
"""

__version__ = "0.1.0"

from .config import ConfigManager, GatekeeperConfig
from .errors import (
    GatekeeperError,
    ConfigurationError,
    RepositoryAccessError,
    VcsError,
    EvidenceRejectedError,
    StaleEvidenceError,
)
from .gates import GateOrchestrator, GateReport, GateResult, GateStatus, GateType
from .locations import LocationPolicy, LocationValidator, Violation, ViolationKind
from .premerge import PreMergeChecker

__all__ = [
    "__version__",
    "ConfigManager",
    "GatekeeperConfig",
    "GatekeeperError",
    "ConfigurationError",
    "RepositoryAccessError",
    "VcsError",
    "EvidenceRejectedError",
    "StaleEvidenceError",
    "GateOrchestrator",
    "GateReport",
    "GateResult",
    "GateStatus",
    "GateType",
    "LocationPolicy",
    "LocationValidator",
    "Violation",
    "ViolationKind",
    "PreMergeChecker",
]
