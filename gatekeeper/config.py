"""
Configuration System

Builds the gatekeeper configuration from multiple sources:
1. Default values
2. Configuration file (.gatekeeper.yaml)
3. Environment variables (highest priority)

The resulting GatekeeperConfig is constructed once at process start and
handed to each component explicitly.
"""

from typing import Any, Dict, List, Optional
from pathlib import Path
import logging
import os
import re
import yaml
from dataclasses import dataclass, field, asdict, fields

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = ".gatekeeper.yaml"

PHASE_PLACEHOLDER_DIR = "docs/phases/phase-X.Y/"


@dataclass
class ForbiddenPattern:
    """A root filename pattern that is never allowed, and where it belongs instead"""
    pattern: str
    relocation: str = "docs/"


@dataclass
class LocationConfig:
    """Placement policy for the repository root"""
    allowed_root_files: List[str] = field(default_factory=lambda: [
        "README.md",
        "STATUS.md",
        "AGENTS.md",
        "LICENSE",
        "LICENSE.md",
        "CHANGELOG.md",
        ".gitignore",
        ".gatekeeper.yaml",
        "pyproject.toml",
        "opencode.json",
        "package.json",
        "package-lock.json",
        "tsconfig.json",
    ])
    allowed_root_dirs: List[str] = field(default_factory=lambda: [
        ".git",
        ".github",
        "docs",
        "tests",
        "evals",
        "scripts",
        "src",
        "lib",
        "dist",
        "build",
        "node_modules",
    ])
    forbidden_patterns: List[ForbiddenPattern] = field(default_factory=lambda: [
        ForbiddenPattern(r"SESSION.*\.md$", PHASE_PLACEHOLDER_DIR),
        ForbiddenPattern(r"NOTES.*\.md$", PHASE_PLACEHOLDER_DIR),
        ForbiddenPattern(r"PROGRESS.*\.md$", PHASE_PLACEHOLDER_DIR),
        ForbiddenPattern(r"DRAFT.*\.md$", PHASE_PLACEHOLDER_DIR),
        ForbiddenPattern(r"WIP.*\.md$", PHASE_PLACEHOLDER_DIR),
        ForbiddenPattern(r"TODO.*\.md$", PHASE_PLACEHOLDER_DIR),
        ForbiddenPattern(r"TEMP.*\.md$", "docs/"),
        ForbiddenPattern(r"\.tmp$", "docs/"),
        ForbiddenPattern(r"\.temp$", "docs/"),
    ])


@dataclass
class EvidenceConfig:
    """Test evidence recording and freshness"""
    evidence_dir_template: str = "docs/phases/{phase}/test-evidence"
    metrics_dir: str = "docs/metrics"
    max_age_minutes: int = 10
    result_file_candidates: List[str] = field(default_factory=lambda: [
        "test-results.json",
        "coverage/test-results.json",
        "reports/junit.xml",
        "junit.xml",
    ])
    assume_success_when_undetected: bool = False


@dataclass
class OverlapConfig:
    """Duplicate documentation detection"""
    docs_dir: str = "docs"
    threshold: float = 0.70
    title_weight: float = 0.5
    heading_weight: float = 0.3
    keyword_weight: float = 0.2
    title_reason_threshold: float = 0.6
    heading_reason_threshold: float = 0.4
    top_keywords: int = 20
    min_keyword_length: int = 4
    scaling_limit: int = 300
    ignore: List[str] = field(default_factory=lambda: [
        "README.md",
        "GETTING-STARTED.md",
        "SUMMARY.md",
        "docs/templates/**",
        "docs/blog/**",
    ])


@dataclass
class ContentConfig:
    """Content maturity heuristics"""
    content_dir: str = "docs/blog"
    phases_dir: str = "docs/phases"
    min_word_count: int = 500
    min_body_chars: int = 100
    stale_days: int = 30
    stub_markers: List[str] = field(default_factory=lambda: [
        "coming soon",
        "todo",
        "tbd",
        "placeholder",
    ])
    ignore_files: List[str] = field(default_factory=lambda: [
        "README.md",
        "IMPLEMENTATION-SUMMARY.md",
    ])


@dataclass
class GateConfig:
    """Gate orchestrator settings"""
    phase_pattern: str = r"feat: phase-(\d+\.\d+)"
    phase_dir_template: str = "docs/phases/{phase}"
    phase_description_file: str = "README.md"
    location_mode: str = "staged"  # staged or full
    content_health_command: Optional[str] = None


@dataclass
class FileSizeConfig:
    """Line-count limits per file extension"""
    limits: Dict[str, int] = field(default_factory=lambda: {
        ".json": 500,
        ".md": 800,
        ".py": 600,
        ".js": 600,
        ".ts": 600,
        ".yaml": 400,
        ".yml": 400,
    })
    default_limit: int = 1000
    exceptions: List[str] = field(default_factory=lambda: [
        "package-lock.json",
        "poetry.lock",
        "**/test-evidence/**",
        "node_modules/**",
        "**/*.min.js",
        "dist/**",
        "build/**",
    ])


@dataclass
class PreMergeConfig:
    """Work verification required before merging a branch"""
    verification_file: str = "WORK-VERIFICATION.md"
    require_work_verification: bool = True
    require_tests: bool = True
    branch_prefixes: List[str] = field(default_factory=lambda: [
        "feature/", "fix/", "refactor/", "docs/", "test/", "chore/",
    ])
    exempt_branch_types: List[str] = field(default_factory=lambda: ["docs/", "chore/"])
    protected_branches: List[str] = field(default_factory=lambda: ["main"])
    test_file_pattern: str = r"tests?/[^\s|`]+\.\w+"


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "WARNING"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    file: Optional[str] = None
    console: bool = True


@dataclass
class GatekeeperConfig:
    """Complete gatekeeper configuration"""
    locations: LocationConfig = field(default_factory=LocationConfig)
    evidence: EvidenceConfig = field(default_factory=EvidenceConfig)
    overlap: OverlapConfig = field(default_factory=OverlapConfig)
    content: ContentConfig = field(default_factory=ContentConfig)
    gate: GateConfig = field(default_factory=GateConfig)
    file_sizes: FileSizeConfig = field(default_factory=FileSizeConfig)
    premerge: PreMergeConfig = field(default_factory=PreMergeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatekeeperConfig":
        """
        Create configuration from dictionary

        Raises:
            ConfigurationError: On unknown sections or keys
        """
        config = cls()
        errors = []

        sections = {f.name for f in fields(cls)}
        for name, value in data.items():
            if name not in sections:
                errors.append(f"Unknown configuration section: {name}")
                continue
            if not isinstance(value, dict):
                errors.append(f"Section '{name}' must be a mapping")
                continue
            section_cls = type(getattr(config, name))
            try:
                section = section_cls(**value)
                if name == "locations":
                    section.forbidden_patterns = [
                        p if isinstance(p, ForbiddenPattern) else ForbiddenPattern(**p)
                        for p in section.forbidden_patterns
                    ]
            except TypeError as e:
                errors.append(f"Section '{name}': {e}")
                continue
            setattr(config, name, section)

        if errors:
            raise ConfigurationError("Invalid configuration", errors)
        return config


def validate_config(config: GatekeeperConfig) -> tuple[bool, list[str]]:
    """
    Validate configuration

    Returns:
        Tuple of (is_valid, errors)
    """
    errors = []

    for entry in config.locations.forbidden_patterns:
        try:
            re.compile(entry.pattern)
        except re.error as e:
            errors.append(f"Invalid forbidden pattern '{entry.pattern}': {e}")

    if config.evidence.max_age_minutes < 1:
        errors.append("Evidence max age must be at least 1 minute")
    if "{phase}" not in config.evidence.evidence_dir_template:
        errors.append("Evidence directory template must contain '{phase}'")

    overlap = config.overlap
    for name in ("threshold", "title_reason_threshold", "heading_reason_threshold"):
        value = getattr(overlap, name)
        if not 0.0 <= value <= 1.0:
            errors.append(f"Overlap {name} must be between 0 and 1")
    weights = overlap.title_weight + overlap.heading_weight + overlap.keyword_weight
    if abs(weights - 1.0) > 1e-9:
        errors.append("Overlap weights must sum to 1.0")
    if overlap.top_keywords < 1:
        errors.append("Overlap top_keywords must be at least 1")

    if config.content.stale_days < 1:
        errors.append("Content stale_days must be at least 1")

    try:
        pattern = re.compile(config.gate.phase_pattern)
        if pattern.groups < 1:
            errors.append("Phase pattern must capture the phase version in a group")
    except re.error as e:
        errors.append(f"Invalid phase pattern: {e}")
    if config.gate.location_mode not in ("staged", "full"):
        errors.append("Gate location_mode must be 'staged' or 'full'")

    try:
        re.compile(config.premerge.test_file_pattern)
    except re.error as e:
        errors.append(f"Invalid premerge test_file_pattern: {e}")

    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.logging.level.upper() not in valid_levels:
        errors.append(f"Logging level must be one of: {', '.join(valid_levels)}")

    return len(errors) == 0, errors


class ConfigManager:
    """
    Configuration loader with multiple source support

    Load priority (highest to lowest):
    1. Environment variables
    2. Configuration file
    3. Defaults
    """

    def __init__(self, config_file: Optional[Path] = None, base_dir: Optional[Path] = None):
        """
        Initialize configuration manager

        Args:
            config_file: Optional path to configuration file
            base_dir: Repository root used to find the default config file
        """
        base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.explicit = config_file is not None
        self.config_file = Path(config_file) if config_file else base_dir / DEFAULT_CONFIG_FILE
        self._config = self._load_config()

    @property
    def config(self) -> GatekeeperConfig:
        return self._config

    def validate(self) -> tuple[bool, list[str]]:
        """Re-validate the current configuration, e.g. after edits in code"""
        return validate_config(self._config)

    def _load_config(self) -> GatekeeperConfig:
        """
        Load configuration from all sources

        Raises:
            ConfigurationError: If the file is unreadable or the result is invalid
        """
        config = GatekeeperConfig()

        if self.config_file.exists():
            try:
                with open(self.config_file, 'r') as f:
                    file_data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Failed to load config file {self.config_file}: {e}")
            if file_data:
                if not isinstance(file_data, dict):
                    raise ConfigurationError(
                        f"Config file {self.config_file} must contain a mapping"
                    )
                config = GatekeeperConfig.from_dict(file_data)
            logger.debug(f"Loaded configuration from {self.config_file}")
        elif self.explicit:
            raise ConfigurationError(f"Config file not found: {self.config_file}")

        config = self._apply_env_overrides(config)

        is_valid, errors = validate_config(config)
        if not is_valid:
            raise ConfigurationError("Invalid configuration", errors)

        return config

    def _apply_env_overrides(self, config: GatekeeperConfig) -> GatekeeperConfig:
        """
        Apply environment variable overrides

        Environment variables format: GATEKEEPER_<SECTION>_<KEY>
        Example: GATEKEEPER_EVIDENCE_MAX_AGE_MINUTES=15
        """
        try:
            if max_age := os.getenv("GATEKEEPER_EVIDENCE_MAX_AGE_MINUTES"):
                config.evidence.max_age_minutes = int(max_age)
            if evidence_dir := os.getenv("GATEKEEPER_EVIDENCE_DIR_TEMPLATE"):
                config.evidence.evidence_dir_template = evidence_dir
            if threshold := os.getenv("GATEKEEPER_OVERLAP_THRESHOLD"):
                config.overlap.threshold = float(threshold)
            if docs_dir := os.getenv("GATEKEEPER_OVERLAP_DOCS_DIR"):
                config.overlap.docs_dir = docs_dir
            if content_dir := os.getenv("GATEKEEPER_CONTENT_DIR"):
                config.content.content_dir = content_dir
            if stale_days := os.getenv("GATEKEEPER_CONTENT_STALE_DAYS"):
                config.content.stale_days = int(stale_days)
            if pattern := os.getenv("GATEKEEPER_GATE_PHASE_PATTERN"):
                config.gate.phase_pattern = pattern
            if mode := os.getenv("GATEKEEPER_GATE_LOCATION_MODE"):
                config.gate.location_mode = mode
            if command := os.getenv("GATEKEEPER_GATE_CONTENT_HEALTH_COMMAND"):
                config.gate.content_health_command = command
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment override: {e}")

        if log_level := os.getenv("GATEKEEPER_LOG_LEVEL"):
            config.logging.level = log_level
        if log_file := os.getenv("GATEKEEPER_LOG_FILE"):
            config.logging.file = log_file

        return config

    def save(self, file_path: Optional[Path] = None) -> None:
        """
        Save configuration to file

        Args:
            file_path: Optional path to save to (defaults to self.config_file)
        """
        save_path = file_path or self.config_file
        save_path.parent.mkdir(parents=True, exist_ok=True)

        with open(save_path, 'w') as f:
            yaml.safe_dump(self._config.to_dict(), f, default_flow_style=False, sort_keys=False)


def setup_logging(config: LoggingConfig) -> None:
    """Configure the root logger once for a CLI invocation"""
    handlers: list[logging.Handler] = []
    if config.console:
        handlers.append(logging.StreamHandler())
    if config.file:
        handlers.append(logging.FileHandler(config.file))
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=config.level.upper(),
        format=config.format,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )
