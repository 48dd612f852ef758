"""Evidence storage: an append-only log of records plus a "latest" pointer.

The filesystem layout per phase is:

    docs/phases/<phase>/test-evidence/
    ├── results-<epoch-ms>.json   # one per run, never rewritten
    ├── latest-run.json           # overwritten atomically per run
    └── test-status.txt           # "PASSED|FAILED\\n<timestamp>\\n"

Cross-process writers are not coordinated; treat the pointer as
single-writer.
"""

import json
import logging
import os
import random
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from ..errors import ConfigurationError, RepositoryAccessError
from .schema import EvidenceRecord, parse_evidence

logger = logging.getLogger(__name__)

LATEST_FILE = "latest-run.json"
STATUS_FILE = "test-status.txt"


class EvidenceStore(ABC):
    """Contract shared by the filesystem and in-memory stores."""

    @abstractmethod
    def append(self, record: EvidenceRecord) -> str:
        """Add an immutable record to the phase log.

        Returns:
            Name of the new log entry.
        """

    @abstractmethod
    def write_latest(self, record: EvidenceRecord) -> str:
        """Replace the phase's latest pointer with this record."""

    @abstractmethod
    def write_status(self, phase: str, text: str) -> str:
        """Replace the phase's plain-text status line."""

    @abstractmethod
    def write_metrics(self, phase: str, metrics: dict[str, Any]) -> str:
        """Export run metrics for the phase."""

    @abstractmethod
    def read_latest(self, phase: str) -> Optional[EvidenceRecord]:
        """Load the latest record, or None if the phase has none.

        Raises:
            ConfigurationError: If the stored record fails schema validation.
        """

    @abstractmethod
    def list_records(self, phase: str) -> list[str]:
        """Names of all log entries for the phase, oldest first."""


class LocalEvidenceStore(EvidenceStore):
    """Filesystem implementation of EvidenceStore."""

    def __init__(
        self,
        base_path: Optional[Path] = None,
        dir_template: str = "docs/phases/{phase}/test-evidence",
        metrics_dir: str = "docs/metrics",
    ):
        """Initialize local evidence store.

        Args:
            base_path: Repository root. Defaults to cwd.
            dir_template: Evidence directory relative to the root.
            metrics_dir: Metrics export directory relative to the root.
        """
        self.base_path = Path(base_path) if base_path else Path.cwd()
        self.dir_template = dir_template
        self.metrics_dir = self.base_path / metrics_dir

    def evidence_dir(self, phase: str) -> Path:
        return self.base_path / self.dir_template.format(phase=phase)

    def latest_path(self, phase: str) -> Path:
        return self.evidence_dir(phase) / LATEST_FILE

    def _ensure_dir(self, path: Path) -> None:
        if path.exists():
            return
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RepositoryAccessError(f"Cannot create directory {path}: {e}")
        logger.info(f"Created evidence directory: {path}")

    def _write_atomic(self, path: Path, content: str) -> None:
        """Write via a temp file and rename so readers never see partial content."""
        temp_path = path.with_suffix(f'.tmp.{random.randint(0, 999999)}')
        try:
            with open(temp_path, 'w') as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            temp_path.replace(path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise RepositoryAccessError(f"Cannot write {path}: {e}")

    def append(self, record: EvidenceRecord) -> str:
        directory = self.evidence_dir(record.phase)
        self._ensure_dir(directory)

        content = json.dumps(record.to_json_dict(), indent=2)
        stamp = int(record.timestamp.timestamp() * 1000)
        while True:
            path = directory / f"results-{stamp}.json"
            try:
                # 'x' refuses to overwrite an existing log entry
                with open(path, 'x') as f:
                    f.write(content)
                break
            except FileExistsError:
                stamp += 1
            except OSError as e:
                raise RepositoryAccessError(f"Cannot write {path}: {e}")

        logger.info(f"Wrote evidence record: {path}")
        return path.name

    def write_latest(self, record: EvidenceRecord) -> str:
        directory = self.evidence_dir(record.phase)
        self._ensure_dir(directory)
        path = directory / LATEST_FILE
        self._write_atomic(path, json.dumps(record.to_json_dict(), indent=2))
        logger.info(f"Updated: {path}")
        return path.name

    def write_status(self, phase: str, text: str) -> str:
        directory = self.evidence_dir(phase)
        self._ensure_dir(directory)
        path = directory / STATUS_FILE
        self._write_atomic(path, text)
        return path.name

    def write_metrics(self, phase: str, metrics: dict[str, Any]) -> str:
        self._ensure_dir(self.metrics_dir)
        path = self.metrics_dir / f"{phase}-metrics.json"
        self._write_atomic(path, json.dumps(metrics, indent=2))
        logger.info(f"Saved metrics: {path}")
        return path.name

    def read_latest(self, phase: str) -> Optional[EvidenceRecord]:
        path = self.latest_path(phase)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Corrupted evidence file {path}: {e}")
        except OSError as e:
            raise RepositoryAccessError(f"Cannot read {path}: {e}")
        return parse_evidence(data, source=str(path))

    def list_records(self, phase: str) -> list[str]:
        directory = self.evidence_dir(phase)
        if not directory.exists():
            return []
        names = [p.name for p in directory.glob("results-*.json")]
        return sorted(names, key=lambda n: int(n[len("results-"):-len(".json")]))


class InMemoryEvidenceStore(EvidenceStore):
    """In-memory evidence store (process-scoped, used by tests)."""

    def __init__(self):
        self._log: dict[str, list[tuple[str, dict]]] = {}
        self._latest: dict[str, dict] = {}
        self.status: dict[str, str] = {}
        self.metrics: dict[str, dict[str, Any]] = {}
        self._counter = 0

    def append(self, record: EvidenceRecord) -> str:
        self._counter += 1
        name = f"results-{self._counter}.json"
        self._log.setdefault(record.phase, []).append((name, record.to_json_dict()))
        return name

    def write_latest(self, record: EvidenceRecord) -> str:
        self._latest[record.phase] = record.to_json_dict()
        return LATEST_FILE

    def write_status(self, phase: str, text: str) -> str:
        self.status[phase] = text
        return STATUS_FILE

    def write_metrics(self, phase: str, metrics: dict[str, Any]) -> str:
        self.metrics[phase] = dict(metrics)
        return f"{phase}-metrics.json"

    def read_latest(self, phase: str) -> Optional[EvidenceRecord]:
        data = self._latest.get(phase)
        if data is None:
            return None
        return parse_evidence(data, source=f"memory:{phase}")

    def list_records(self, phase: str) -> list[str]:
        return [name for name, _ in self._log.get(phase, [])]

    def put_latest_raw(self, phase: str, data: dict) -> None:
        """Store an unvalidated latest pointer, as a foreign writer might."""
        self._latest[phase] = data
