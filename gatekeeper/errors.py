"""
Error Taxonomy

Business-rule violations (misplaced files, stub content, missing
deliverables) are never raised; they are returned as Violation and
GateResult values. The exceptions below cover the cases where a run
cannot continue or where a caller explicitly asks for the raising form.
"""

from typing import Optional


class GatekeeperError(Exception):
    """Base exception for gatekeeper errors"""
    pass


class ConfigurationError(GatekeeperError):
    """Policy, configuration or evidence-schema input is missing or invalid"""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        self.errors = errors or []
        if self.errors:
            message = message + "\n" + "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(message)


class RepositoryAccessError(GatekeeperError):
    """Filesystem or subprocess failure unrelated to business rules"""
    pass


class VcsError(RepositoryAccessError):
    """The version-control binary is missing or returned an error"""

    def __init__(self, command: list[str], message: str, returncode: Optional[int] = None):
        self.command = command
        self.returncode = returncode
        super().__init__(f"{' '.join(command)}: {message}")


class EvidenceRejectedError(GatekeeperError):
    """Evidence recording refused because the tests did not pass"""
    pass


class StaleEvidenceError(GatekeeperError):
    """Evidence exists but is older than the freshness window"""

    def __init__(self, phase: str, age_minutes: float, max_age_minutes: int):
        self.phase = phase
        self.age_minutes = age_minutes
        self.max_age_minutes = max_age_minutes
        super().__init__(
            f"Test evidence for {phase} is too old ({age_minutes:.1f} minutes); "
            f"evidence must be at most {max_age_minutes} minutes old"
        )
