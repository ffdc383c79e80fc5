"""Stage 8: Semantic Grouping - Split the conversation into topical runs.

No embeddings: each message gets a symbolic "semantic vector" (sets of
keywords, important terms, entities and topic tags) and adjacent messages
are compared with a weighted Jaccard similarity.

A new group starts when
- the current message carries META intent ("next", "thanks", ...)
- both messages have topics and they share none
- both carry significant artifacts (CODE/LOG/TABLE/DOC) of disjoint kinds
- or the similarity drops below the threshold

Role changes are never boundaries: a question and its answer share a topic.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Sequence

import structlog

from chatlens.pipeline.models import AnalyzedMessage, ArtifactTag, GroupStats, IntentTag, SemanticGroup

logger = structlog.get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

SIMILARITY_THRESHOLD = 0.08
VECTOR_SCAN_CHARS = 5000
MAX_KEYWORDS = 400

KEYWORD_WEIGHT = 0.25
TERM_WEIGHT = 0.25
ENTITY_WEIGHT = 0.2
TOPIC_WEIGHT = 0.3

SIGNIFICANT_ARTIFACTS = frozenset({ArtifactTag.CODE, ArtifactTag.LOG, ArtifactTag.TABLE, ArtifactTag.DOC})

NON_TOKEN_RE = re.compile(r"[^A-Za-z0-9_\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff-]")
KATAKANA_RE = re.compile(r"[\u30a0-\u30ff]{2,}")
CAMEL_CASE_RE = re.compile(r"\b[A-Z][a-zA-Z]*(?:[A-Z][a-z]+)+\b", re.ASCII)
ALL_CAPS_RE = re.compile(r"\b[A-Z]{2,}\b", re.ASCII)
URL_RE = re.compile(r"https?://\S+")
PATH_RE = re.compile(r"(?:[A-Z]:\\|/Users/|~/|\./)\S+")
CLI_TOOL_RE = re.compile(r"\b(?:npm|git|docker|kubectl|brew|pip|yarn|curl)\b", re.IGNORECASE | re.ASCII)


@dataclass(frozen=True)
class SemanticVector:
    """Symbolic description of a message used for similarity."""
    keywords: frozenset[str]
    important_terms: frozenset[str]
    entities: frozenset[str]
    topic_tags: frozenset[str]


# =============================================================================
# Vector Building and Similarity
# =============================================================================

def build_semantic_vector(
    message: AnalyzedMessage,
    scan_chars: int = VECTOR_SCAN_CHARS,
    max_keywords: int = MAX_KEYWORDS,
) -> SemanticVector:
    """Extract the semantic vector of a message.

    Only the first ``scan_chars`` characters are scanned so that a pasted
    log does not dominate runtime.
    """
    raw = message.text[:scan_chars]
    text = raw.lower()

    tokens = [t for t in NON_TOKEN_RE.sub(" ", text).split() if len(t) >= 2]
    ordered = dict.fromkeys(tokens)
    for first, second in zip(tokens, tokens[1:]):
        ordered.setdefault(f"{first}_{second}")
    keywords = frozenset(list(ordered)[:max_keywords])

    terms = set(KATAKANA_RE.findall(text))
    terms.update(m.lower() for m in CAMEL_CASE_RE.findall(raw))
    terms.update(m.lower() for m in ALL_CAPS_RE.findall(raw))

    entities = set(URL_RE.findall(raw))
    entities.update(m.group(0) for m in PATH_RE.finditer(raw))
    entities.update(m.lower() for m in CLI_TOOL_RE.findall(raw))

    return SemanticVector(
        keywords=keywords,
        important_terms=frozenset(terms),
        entities=frozenset(entities),
        topic_tags=frozenset(message.topic),
    )


def jaccard(a: frozenset | set, b: frozenset | set) -> float:
    """Jaccard similarity; two empty sets score 0."""
    if not a and not b:
        return 0.0
    return len(a & b) / len(a | b)


def compute_similarity(a: SemanticVector, b: SemanticVector) -> float:
    """Weighted Jaccard over the four vector components."""
    return (
        KEYWORD_WEIGHT * jaccard(a.keywords, b.keywords)
        + TERM_WEIGHT * jaccard(a.important_terms, b.important_terms)
        + ENTITY_WEIGHT * jaccard(a.entities, b.entities)
        + TOPIC_WEIGHT * jaccard(a.topic_tags, b.topic_tags)
    )


def is_forced_boundary(prev: AnalyzedMessage, curr: AnalyzedMessage) -> bool:
    """Check whether a group must end between ``prev`` and ``curr``."""
    if IntentTag.META in curr.intent:
        return True

    if prev.topic and curr.topic and not set(prev.topic) & set(curr.topic):
        return True

    if prev.artifact and curr.artifact and not prev.artifact & curr.artifact:
        if prev.artifact & SIGNIFICANT_ARTIFACTS and curr.artifact & SIGNIFICANT_ARTIFACTS:
            return True

    return False


# =============================================================================
# Grouping
# =============================================================================

def _count(values: Iterable[str]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for value in sorted(values):
        counts[value] = counts.get(value, 0) + 1
    return counts


def summarize_group(messages: Sequence[AnalyzedMessage]) -> GroupStats:
    """Count topics, intents and artifacts over a run of messages."""
    return GroupStats(
        topics=_count(t for m in messages for t in m.topic),
        intents=_count(tag.value for m in messages for tag in m.intent),
        artifacts=_count(tag.value for m in messages for tag in m.artifact),
    )


def build_group(group_id: int, start: int, end: int, messages: Sequence[AnalyzedMessage]) -> SemanticGroup:
    return SemanticGroup(
        id=group_id,
        span=(start, end),
        summary_stats=summarize_group(messages[start:end + 1]),
    )


def group_messages(
    messages: list[AnalyzedMessage],
    threshold: float = SIMILARITY_THRESHOLD,
    scan_chars: int = VECTOR_SCAN_CHARS,
    max_keywords: int = MAX_KEYWORDS,
) -> list[SemanticGroup]:
    """Partition messages into contiguous semantic groups.

    Args:
        messages: Classified messages in conversation order.
        threshold: Similarity below which a new group starts.
        scan_chars: Characters of each message scanned for its vector.
        max_keywords: Cap on keywords (tokens plus bigrams) per message.

    Returns:
        Groups whose spans exhaustively partition ``messages``.
    """
    if not messages:
        return []

    vectors = [build_semantic_vector(m, scan_chars, max_keywords) for m in messages]
    groups: list[SemanticGroup] = []
    start = 0
    forced = 0

    for i in range(1, len(messages)):
        is_forced = is_forced_boundary(messages[i - 1], messages[i])
        if is_forced or compute_similarity(vectors[i - 1], vectors[i]) < threshold:
            forced += int(is_forced)
            groups.append(build_group(len(groups), start, i - 1, messages))
            start = i

    groups.append(build_group(len(groups), start, len(messages) - 1, messages))

    logger.debug("semantic_grouping_complete", messages=len(messages), groups=len(groups), forced_boundaries=forced)
    return groups


def refresh_group_stats(groups: list[SemanticGroup], messages: Sequence[AnalyzedMessage]) -> list[SemanticGroup]:
    """Recount group statistics after labels changed (e.g. smoothing)."""
    return [build_group(g.id, g.span[0], g.span[1], messages) for g in groups]
