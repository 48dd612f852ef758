"""
Document Overlap Detector

Identifies potentially duplicate or overlapping documentation files, so
agents creating a second doc about the same topic under a different name
get caught early.

Detection combines three signals:
1. Title similarity (normalized Levenshtein distance)
2. Heading overlap (Jaccard index of h2/h3 headings)
3. Keyword overlap (Jaccard index of the most frequent words)

The pass is advisory only. Pairwise comparison is O(n^2 * L), fine for a
few hundred documents and not beyond.
"""

import fnmatch
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .config import OverlapConfig
from .errors import RepositoryAccessError

logger = logging.getLogger(__name__)

_TITLE_RE = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_HEADING_RE = re.compile(r"^#{2,3}\s+(.+)$", re.MULTILINE)
_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE_RE = re.compile(r"`[^`]+`")
_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_MARKUP_RE = re.compile(r"[#*_~]")


@dataclass
class Document:
    """A parsed markdown document. Built fresh on each run."""
    path: str
    title: str
    headings: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    line_count: int = 0
    modified_at: Optional[datetime] = None

    def signature(self) -> tuple:
        return (self.title, frozenset(self.headings), frozenset(self.keywords))


def extract_keywords(content: str, top_n: int = 20, min_length: int = 4) -> list[str]:
    """
    Most frequent words in the prose of a document.

    Code blocks, inline code and link targets are dropped before counting.
    Ties keep first-appearance order.
    """
    text = _CODE_BLOCK_RE.sub('', content)
    text = _INLINE_CODE_RE.sub('', text)
    text = _LINK_RE.sub(r'\1', text)
    text = _MARKUP_RE.sub('', text).lower()

    words = re.findall(rf"\b[a-z]{{{min_length},}}\b", text)
    return [word for word, _ in Counter(words).most_common(top_n)]


def parse_markdown(
    content: str,
    path: str,
    modified_at: Optional[datetime] = None,
    top_keywords: int = 20,
    min_keyword_length: int = 4,
) -> Document:
    """Build a Document from markdown text."""
    title_match = _TITLE_RE.search(content)
    title = title_match.group(1).strip() if title_match else Path(path).stem
    headings = [m.group(1).strip().lower() for m in _HEADING_RE.finditer(content)]

    return Document(
        path=path,
        title=title.lower(),
        headings=headings,
        keywords=extract_keywords(content, top_keywords, min_keyword_length),
        line_count=len(content.split('\n')),
        modified_at=modified_at,
    )


def parse_document(file_path: Path, root: Path, config: Optional[OverlapConfig] = None) -> Document:
    """
    Read and parse a markdown file.

    Raises:
        RepositoryAccessError: If the file cannot be read
    """
    config = config or OverlapConfig()
    try:
        raw = file_path.read_bytes()
        mtime = file_path.stat().st_mtime
    except OSError as e:
        raise RepositoryAccessError(f"Cannot read document {file_path}: {e}")

    try:
        content = raw.decode('utf-8')
    except UnicodeDecodeError as e:
        logger.warning(f"{file_path} is not valid UTF-8, undecodable bytes replaced: {e}")
        content = raw.decode('utf-8', errors='replace')

    return parse_markdown(
        content,
        path=file_path.relative_to(root).as_posix(),
        modified_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
        top_keywords=config.top_keywords,
        min_keyword_length=config.min_keyword_length,
    )


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between two strings, two-row dynamic programming."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j - 1], current[j - 1], previous[j]) + 1)
        previous = current
    return previous[-1]


def title_similarity(title1: str, title2: str) -> float:
    """1 - distance / length of the longer title; 1.0 when both are empty."""
    longer, shorter = (title1, title2) if len(title1) >= len(title2) else (title2, title1)
    if not longer:
        return 1.0
    return (len(longer) - levenshtein_distance(longer, shorter)) / len(longer)


def set_overlap(items1: list[str], items2: list[str]) -> float:
    """Jaccard index of two collections; 0.0 when both are empty."""
    s1, s2 = set(items1), set(items2)
    union = s1 | s2
    if not union:
        return 0.0
    return len(s1 & s2) / len(union)


def calculate_similarity(doc1: Document, doc2: Document, config: Optional[OverlapConfig] = None) -> float:
    """
    Weighted similarity of two documents, in [0, 1] and symmetric.

    Documents with identical title, headings and keywords score 1.0 even
    when both heading sets are empty.
    """
    config = config or OverlapConfig()
    if doc1.signature() == doc2.signature():
        return 1.0

    score = (
        title_similarity(doc1.title, doc2.title) * config.title_weight
        + set_overlap(doc1.headings, doc2.headings) * config.heading_weight
        + set_overlap(doc1.keywords, doc2.keywords) * config.keyword_weight
    )
    return min(max(score, 0.0), 1.0)


class ConsolidationSuggestion(BaseModel):
    """How to resolve an overlapping pair."""
    action: str = "merge"
    keep_file: str
    merge_from: str
    reason: str
    steps: list[str] = Field(default_factory=list)


class Overlap(BaseModel):
    """A pair of documents whose similarity crossed the threshold."""
    doc1: str
    doc2: str
    similarity: float = Field(ge=0.0, le=1.0)
    reason: str
    suggestion: ConsolidationSuggestion

    @property
    def percent(self) -> int:
        return round(self.similarity * 100)


def suggest_consolidation(doc1: Document, doc2: Document) -> ConsolidationSuggestion:
    """Keep the longer (more complete) document; merge the other into it."""
    if doc1.line_count != doc2.line_count:
        keep, merge = (doc1, doc2) if doc1.line_count > doc2.line_count else (doc2, doc1)
    else:
        keep, merge = sorted((doc1, doc2), key=lambda d: d.path)

    return ConsolidationSuggestion(
        keep_file=keep.path,
        merge_from=merge.path,
        reason=f"{keep.path} is more complete ({keep.line_count} lines vs {merge.line_count})",
        steps=[
            "1. Review both files for unique content",
            f"2. Merge unique sections from {merge.path} into {keep.path}",
            f"3. Delete {merge.path}",
            f"4. Update any links to {merge.path}",
        ],
    )


def _overlap_reason(doc1: Document, doc2: Document, similarity: float, config: OverlapConfig) -> str:
    reasons = []
    title_sim = title_similarity(doc1.title, doc2.title)
    heading_sim = set_overlap(doc1.headings, doc2.headings)
    if title_sim > config.title_reason_threshold:
        reasons.append(f"Similar titles ({round(title_sim * 100)}%)")
    if heading_sim > config.heading_reason_threshold:
        reasons.append(f"Overlapping headings ({round(heading_sim * 100)}%)")
    if not reasons:
        reasons.append(f"Combined similarity ({round(similarity * 100)}%)")
    return ", ".join(reasons)


def is_ignored(rel_path: str, patterns: list[str]) -> bool:
    """Globs without '/' match the basename; others the repo-relative path."""
    name = rel_path.rsplit('/', 1)[-1]
    for pattern in patterns:
        target = rel_path if '/' in pattern else name
        if fnmatch.fnmatch(target, pattern):
            return True
    return False


def discover_documents(root: Path, config: Optional[OverlapConfig] = None) -> list[Document]:
    """Parse every non-ignored markdown file under the docs directory."""
    config = config or OverlapConfig()
    root = Path(root)
    docs_dir = root / config.docs_dir
    if not docs_dir.is_dir():
        logger.info(f"No documentation directory at {docs_dir}")
        return []

    documents = []
    for path in sorted(docs_dir.rglob("*.md")):
        if not path.is_file():
            continue
        rel_path = path.relative_to(root).as_posix()
        if is_ignored(rel_path, config.ignore):
            continue
        documents.append(parse_document(path, root, config))

    if len(documents) > config.scaling_limit:
        logger.warning(
            f"Comparing {len(documents)} documents pairwise; "
            f"overlap detection is not tuned beyond {config.scaling_limit}"
        )
    return documents


def find_overlaps(
    documents: list[Document],
    config: Optional[OverlapConfig] = None,
    threshold: Optional[float] = None,
) -> list[Overlap]:
    """
    Compare all document pairs.

    Args:
        documents: Parsed corpus
        config: Weights and reason thresholds
        threshold: Overrides config.threshold

    Returns:
        Overlaps at or above the threshold, most similar first
    """
    config = config or OverlapConfig()
    threshold = config.threshold if threshold is None else threshold

    overlaps = []
    for i, doc1 in enumerate(documents):
        for doc2 in documents[i + 1:]:
            similarity = calculate_similarity(doc1, doc2, config)
            if similarity < threshold:
                continue
            overlaps.append(Overlap(
                doc1=doc1.path,
                doc2=doc2.path,
                similarity=similarity,
                reason=_overlap_reason(doc1, doc2, similarity, config),
                suggestion=suggest_consolidation(doc1, doc2),
            ))

    overlaps.sort(key=lambda o: (-o.similarity, o.doc1, o.doc2))
    logger.info(f"Compared {len(documents)} documents, {len(overlaps)} overlap(s)")
    return overlaps
