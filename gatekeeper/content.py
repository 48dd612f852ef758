"""
Content Maturity Classifier

Classifies markdown content units (blog posts, write-ups) as stub or
published and as fresh or stale, and flags stubs that belong to phases
which are already complete.

Each heuristic is a separate predicate so rules can be checked on their
own; is_stub and validate_content compose them.
"""

import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import ContentConfig
from .errors import RepositoryAccessError

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(r"^---\r?\n([\s\S]*?)\r?\n---\r?\n?([\s\S]*)$")
_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE_RE = re.compile(r"`[^`]+`")
_BARE_PHASE_RE = re.compile(r"^\d+(\.\d+)*$")

STUB = "stub"
PUBLISHED = "published"


class Frontmatter(BaseModel):
    """YAML metadata block at the top of a content unit."""
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    status: Optional[str] = None
    phase: Optional[str] = None
    word_count: Optional[int] = None
    last_updated: Optional[date] = None

    @field_validator("title", "status", "phase", mode="before")
    @classmethod
    def coerce_text(cls, v):
        # YAML reads `phase: 1.1` as a float
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("word_count", mode="before")
    @classmethod
    def coerce_word_count(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return int(v) if v.isdigit() else None
        return v

    @field_validator("last_updated", mode="before")
    @classmethod
    def coerce_date(cls, v):
        if v is None or isinstance(v, date):
            return v.date() if isinstance(v, datetime) else v
        try:
            return datetime.fromisoformat(str(v).strip().replace("Z", "+00:00")).date()
        except ValueError:
            logger.warning(f"Unparseable last_updated value: {v!r}")
            return None


class _FrontmatterLoader(yaml.SafeLoader):
    """SafeLoader that leaves date-shaped scalars as text for Frontmatter to coerce."""


def _timestamp_as_text(loader, node):
    return loader.construct_scalar(node)


_FrontmatterLoader.add_constructor("tag:yaml.org,2002:timestamp", _timestamp_as_text)


def parse_frontmatter(raw: dict[str, Any]) -> tuple[Frontmatter, list[str]]:
    """
    Validate frontmatter leniently.

    Fields that fail validation are dropped and reported as problems
    instead of rejecting the whole unit.
    """
    problems = []
    data = dict(raw)
    try:
        return Frontmatter.model_validate(data), problems
    except ValidationError as e:
        for error in e.errors():
            name = str(error["loc"][0]) if error["loc"] else "frontmatter"
            data.pop(name, None)
            problems.append(f"Invalid {name}: {error['msg']}")
    return Frontmatter.model_validate(data), problems


class ContentMeta(BaseModel):
    """Derived view of a content unit."""
    title: str
    status: str  # stub or published
    word_count: int
    phase_id: Optional[str] = None
    last_updated: Optional[date] = None


class ContentUnit(BaseModel):
    """A parsed content file."""
    filename: str
    path: str
    frontmatter: Frontmatter
    body: str
    meta: ContentMeta
    problems: list[str] = Field(default_factory=list)


class ContentFinding(BaseModel):
    """A single problem found in a content unit."""
    file: str
    severity: str  # error or warning
    message: str

    def describe(self) -> str:
        return f"{self.file}: {self.message}"


class ContentHealthReport(BaseModel):
    """Result of validating every content unit."""
    units: list[ContentUnit] = Field(default_factory=list)
    completed_phases: list[str] = Field(default_factory=list)
    errors: list[ContentFinding] = Field(default_factory=list)
    warnings: list[ContentFinding] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.errors


def split_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split `---` delimited YAML frontmatter from the body."""
    match = _FRONTMATTER_RE.match(content)
    if not match:
        return {}, content
    try:
        data = yaml.load(match.group(1), Loader=_FrontmatterLoader)
    except (yaml.YAMLError, ValueError) as e:
        logger.warning(f"Invalid frontmatter, ignoring metadata: {e}")
        return {}, match.group(2)
    if not isinstance(data, dict):
        return {}, match.group(2)
    return data, match.group(2)


def normalize_phase(phase: Optional[str]) -> Optional[str]:
    if not phase:
        return None
    phase = phase.strip()
    return f"phase-{phase}" if _BARE_PHASE_RE.match(phase) else phase


# Predicates

def count_words(body: str) -> int:
    """Whitespace-separated words, excluding fenced and inline code."""
    text = _CODE_BLOCK_RE.sub('', body)
    text = _INLINE_CODE_RE.sub('', text)
    return len(text.split())


def has_stub_markers(body: str, markers: Optional[list[str]] = None) -> bool:
    markers = markers if markers is not None else ContentConfig().stub_markers
    lowered = body.lower()
    return any(marker.lower() in lowered for marker in markers)


def is_too_short(body: str, min_chars: int = 100) -> bool:
    return len(body.strip()) < min_chars


def is_below_word_count(body: str, min_words: int = 500) -> bool:
    return count_words(body) < min_words


def is_marked_stub(frontmatter: Frontmatter) -> bool:
    return (frontmatter.status or "").strip().lower() == STUB


def is_stub(body: str, frontmatter: Frontmatter, config: Optional[ContentConfig] = None) -> bool:
    """A unit is a stub if any single stub heuristic fires."""
    config = config or ContentConfig()
    return (
        is_below_word_count(body, config.min_word_count)
        or has_stub_markers(body, config.stub_markers)
        or is_too_short(body, config.min_body_chars)
        or is_marked_stub(frontmatter)
    )


def is_stale(meta: ContentMeta, today: Optional[date] = None, stale_days: int = 30) -> bool:
    """Not updated within stale_days. A unit with no date is stale."""
    if meta.last_updated is None:
        return True
    today = today or date.today()
    return (today - meta.last_updated).days > stale_days


def parse_content(content: str, filename: str, path: str, config: Optional[ContentConfig] = None) -> ContentUnit:
    config = config or ContentConfig()
    raw, body = split_frontmatter(content)
    frontmatter, problems = parse_frontmatter(raw)
    for problem in problems:
        logger.warning(f"{path}: {problem}")
    meta = ContentMeta(
        title=frontmatter.title or Path(filename).stem,
        status=STUB if is_stub(body, frontmatter, config) else PUBLISHED,
        word_count=count_words(body),
        phase_id=normalize_phase(frontmatter.phase),
        last_updated=frontmatter.last_updated,
    )
    return ContentUnit(filename=filename, path=path, frontmatter=frontmatter, body=body, meta=meta,
                       problems=problems)


def load_content_units(root: Path, config: Optional[ContentConfig] = None) -> list[ContentUnit]:
    """
    Parse every markdown file directly under the content directory.

    Raises:
        RepositoryAccessError: If a file cannot be read
    """
    config = config or ContentConfig()
    content_dir = Path(root) / config.content_dir
    if not content_dir.is_dir():
        return []

    units = []
    for path in sorted(content_dir.glob("*.md")):
        if path.name in config.ignore_files or not path.is_file():
            continue
        try:
            text = path.read_bytes().decode("utf-8", errors="replace")
        except OSError as e:
            raise RepositoryAccessError(f"Cannot read content file {path}: {e}")
        units.append(parse_content(text, path.name, path.relative_to(root).as_posix(), config))
    return units


def completed_phases(root: Path, config: Optional[ContentConfig] = None) -> list[str]:
    """Phase directories with a README plus a summary or evidence."""
    config = config or ContentConfig()
    phases_dir = Path(root) / config.phases_dir
    if not phases_dir.is_dir():
        return []

    phases = []
    for phase_dir in sorted(phases_dir.iterdir()):
        if not phase_dir.is_dir() or not phase_dir.name.startswith("phase-"):
            continue
        has_readme = (phase_dir / "README.md").exists()
        has_proof = any(
            (phase_dir / marker).exists()
            for marker in ("SESSION-SUMMARY.md", ".evidence", "test-evidence")
        )
        if has_readme and has_proof:
            phases.append(phase_dir.name)
    return phases


def validate_content(
    root: Path,
    config: Optional[ContentConfig] = None,
    today: Optional[date] = None,
) -> ContentHealthReport:
    """Validate content health: stubs for completed phases are errors."""
    config = config or ContentConfig()
    units = load_content_units(root, config)
    done = completed_phases(root, config)
    report = ContentHealthReport(units=units, completed_phases=done)

    for unit in units:
        meta = unit.meta
        if meta.status == STUB and meta.phase_id in done:
            report.errors.append(ContentFinding(
                file=unit.filename, severity="error",
                message=f"Phase {meta.phase_id} complete but content is still a stub",
            ))
        if meta.status == PUBLISHED and is_stale(meta, today, config.stale_days):
            report.warnings.append(ContentFinding(
                file=unit.filename, severity="warning",
                message=f"Not updated in {config.stale_days}+ days",
            ))
        for name, label in (("title", "title"), ("phase", "phase assignment"), ("status", "status")):
            if not getattr(unit.frontmatter, name):
                report.warnings.append(ContentFinding(
                    file=unit.filename, severity="warning", message=f"Missing {label}",
                ))
        for problem in unit.problems:
            report.warnings.append(ContentFinding(file=unit.filename, severity="warning", message=problem))

    logger.info(
        f"Validated {len(units)} content unit(s): "
        f"{len(report.errors)} error(s), {len(report.warnings)} warning(s)"
    )
    return report


def summarize(
    units: list[ContentUnit],
    config: Optional[ContentConfig] = None,
    today: Optional[date] = None,
) -> dict[str, int]:
    """Counts of published, stub and stale-published units."""
    config = config or ContentConfig()
    counts = {"total": len(units), "published": 0, "stub": 0, "stale": 0}
    for unit in units:
        if unit.meta.status == STUB:
            counts["stub"] += 1
        else:
            counts["published"] += 1
            if is_stale(unit.meta, today, config.stale_days):
                counts["stale"] += 1
    return counts
