"""Artifact detection - Content types carried by a message.

Each rule is independent: a tag applies when any of its patterns matches
or its validator accepts the message.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from chatlens.pipeline.models import ArtifactTag

Validator = Callable[[str, list[str]], bool]


@dataclass(frozen=True)
class ArtifactRule:
    tag: ArtifactTag
    patterns: tuple[re.Pattern, ...] = field(default_factory=tuple)
    validate: Optional[Validator] = None

    def matches(self, text: str, lines: list[str]) -> bool:
        if any(p.search(text) for p in self.patterns):
            return True
        return self.validate is not None and self.validate(text, lines)


# =============================================================================
# Validators
# =============================================================================

COMMAND_LINE_RE = re.compile(
    r"^\s*(?:npm|npx|git|cd|brew|pip|pip3|yarn|pnpm|sudo|curl|wget|docker|kubectl|make|cmake"
    r"|cargo|go\s+\w+|python|python3|node|ruby|java\s+-)"
)
CODE_LIKE_RE = re.compile(
    r"^(?:import|export|const|let|var|function|class|interface|type|enum|def|fn|pub|async|await"
    r"|return|if|else|for|while|switch|case)\s"
)
QUOTE_LINE_RE = re.compile(r"^\s*>")
HEADING_RE = re.compile(r"^#{1,6}\s", re.MULTILINE)

MIN_CODE_LIKE_LINES = 2
MIN_QUOTED_LOG_LINES = 3
MIN_TSV_LINES = 2
DOC_PARAGRAPH_CHARS = 100
DOC_MIN_CHARS = 200

CONTRADICTION_RE = re.compile(
    r"しかしながら|一方で|矛盾|対立"
    r"|\b(?:However|But actually|On the other hand|Contradicting|In contrast|Divergence)\b",
    re.IGNORECASE | re.ASCII,
)
INTENSITY_MARKERS = ("実際には", "正しくは", "誤解", "間違い", "Wait,", "Actually,", "Correction:", "Incorrect")


def _looks_like_code(text: str, lines: list[str]) -> bool:
    if any(COMMAND_LINE_RE.match(line) for line in lines):
        return True
    return sum(1 for line in lines if CODE_LIKE_RE.match(line.strip())) >= MIN_CODE_LIKE_LINES


def _has_quoted_log(text: str, lines: list[str]) -> bool:
    run = 0
    for line in lines:
        run = run + 1 if QUOTE_LINE_RE.match(line) else 0
        if run >= MIN_QUOTED_LOG_LINES:
            return True
    return False


def _has_tsv_rows(text: str, lines: list[str]) -> bool:
    return sum(1 for line in lines if "\t" in line) >= MIN_TSV_LINES


def _is_document(text: str, lines: list[str]) -> bool:
    return (
        bool(HEADING_RE.search(text))
        and any(len(line.strip()) > DOC_PARAGRAPH_CHARS for line in lines)
        and len(text) > DOC_MIN_CHARS
    )


def _is_conflict(text: str, lines: list[str]) -> bool:
    # A contradiction alone is ordinary discourse; it needs an intensity marker too
    return bool(CONTRADICTION_RE.search(text)) and any(m in text for m in INTENSITY_MARKERS)


# =============================================================================
# Rule Table
# =============================================================================

ARTIFACT_RULES: tuple[ArtifactRule, ...] = (
    ArtifactRule(
        ArtifactTag.CODE,
        patterns=(re.compile(r"```"), re.compile(r"^\s{4}\S", re.MULTILINE)),
        validate=_looks_like_code,
    ),
    ArtifactRule(
        ArtifactTag.LOG,
        patterns=(
            re.compile(r"^\d{4}[-/]\d{2}[-/]\d{2}", re.MULTILINE),
            re.compile(r"\d{2}:\d{2}:\d{2}"),
            re.compile(r"^\s*at\s+\S+\s*\(", re.MULTILINE),
            re.compile(r"\b(?:ERROR|WARN|INFO|DEBUG|FATAL):", re.ASCII),
            re.compile(r"^\s*#\d+\s+0x[0-9a-f]+", re.MULTILINE),
        ),
        validate=_has_quoted_log,
    ),
    ArtifactRule(
        ArtifactTag.PATH,
        patterns=(
            re.compile(r"[A-Z]:\\"),
            re.compile(r"/Users/\S+"),
            re.compile(r"~/\S+"),
            re.compile(r"\./\S+\.\w+"),
            re.compile(r"\.\./"),
        ),
    ),
    ArtifactRule(ArtifactTag.LINK, patterns=(re.compile(r"https?://\S+"),)),
    ArtifactRule(
        ArtifactTag.TABLE,
        patterns=(re.compile(r"\|.*\|.*\|"), re.compile(r"^\s*\|[-:]+\|", re.MULTILINE)),
        validate=_has_tsv_rows,
    ),
    ArtifactRule(ArtifactTag.DOC, validate=_is_document),
    ArtifactRule(
        ArtifactTag.IMAGE_REF,
        patterns=(
            re.compile(r"<<ImageDisplayed>>"),
            re.compile(r"\[画像\]"),
            re.compile(r"!\[.*?\]\(.*?\)"),
            re.compile(r"\[image\]", re.IGNORECASE),
            re.compile(r"<<image>>", re.IGNORECASE),
        ),
    ),
    ArtifactRule(ArtifactTag.CONFLICT, validate=_is_conflict),
)


def detect_artifacts(text: str, rules: tuple[ArtifactRule, ...] = ARTIFACT_RULES) -> frozenset[ArtifactTag]:
    """Detect every artifact type present in a message."""
    lines = text.split("\n")
    return frozenset(rule.tag for rule in rules if rule.matches(text, lines))
