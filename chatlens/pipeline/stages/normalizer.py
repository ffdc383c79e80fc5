"""Stage 1: Normalizer - Regex-based cleanup of pasted chat text.

Copy-pasting from a chat web UI drags along button labels ("Copy",
"Good response"), status lines ("Thought for 12 seconds"), pagination
("1/3") and invisible characters. This stage removes that noise and
nothing else: content lines are never reordered or rewritten beyond
Unicode normalization.

STEPS (in order):
1. Line endings → \\n
2. Unicode NFKC
3. Invisible characters removed (ZWSP, ZWNJ, ZWJ, BOM, soft hyphen)
4. Full-width space → ASCII space
5. Junk lines dropped (exact UI phrases + short symbolic patterns)
6. Runs of 3+ blank lines collapsed to 2
7. Trim
"""

import re
import unicodedata
from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class NormalizationTrace:
    """Trace of what was removed and why."""
    junk_lines_removed: list[str] = field(default_factory=list)
    invisible_chars_removed: int = 0
    lines_before: int = 0
    lines_after: int = 0
    chars_removed: int = 0


@dataclass
class NormalizedText:
    """Result of normalization."""
    text: str
    trace: NormalizationTrace


# =============================================================================
# Noise Patterns
# =============================================================================

JUNK_EXACT = frozenset({
    # Gemini UI
    "回答案を表示する", "回答案を表示", "他の回答案を表示", "他の回答案",
    "他の回答", "コピー", "Copy", "いいね", "よくない",
    "Good response", "Bad response", "Share", "Report", "Retry",
    "もう一度生成", "音声で聞く", "編集", "Edit message", "Regenerate",
    "Show more", "Show less", "回答を評価", "回答を共有", "Show drafts",
    # ChatGPT
    "Like", "Dislike", "Memory updated", "Memory updated.",
    "Read aloud", "Search the web", "Create image",
    # Claude
    "Copy to clipboard", "Retry response",
})

# UI status lines: removed whenever they match, they are never content
STATUS_LINE_PATTERNS = [
    re.compile(r"^Thought for \d+ seconds?$", re.IGNORECASE),
    re.compile(r"^Searched \d+ sites?$", re.IGNORECASE),
    re.compile(r"^draft\s+\d+$", re.IGNORECASE),
    re.compile(r"^\d+\s*/\s*\d+$"),
    re.compile(r"^[\U0001F44D\U0001F44E\U0001F50A\U0001F4CB\u270F\U0001F504\u22EE\u2026\uFE0F]{1,4}$"),
]

# Symbolic junk only removed when the line is too short to be content
SHORT_JUNK_PATTERNS = [
    re.compile(r"^https?://\S+$"),
    re.compile(r"^www\.\S"),
    re.compile(r"^\[\d+\]\s*\S"),
    re.compile(r"^Analyzing", re.IGNORECASE),
]
SHORT_JUNK_MAX_LEN = 5

INVISIBLE_CHARS_RE = re.compile(r"[\u200b\u200c\u200d\ufeff\u00ad]")
EXCESS_BLANK_LINES_RE = re.compile(r"\n(?:[ \t]*\n){3,}")


def is_junk_line(line: str) -> bool:
    """Check whether a single line is UI chrome rather than content."""
    stripped = line.strip()
    if not stripped:
        return False
    if stripped in JUNK_EXACT:
        return True
    if any(p.match(stripped) for p in STATUS_LINE_PATTERNS):
        return True
    if len(stripped) < SHORT_JUNK_MAX_LEN and any(p.match(stripped) for p in SHORT_JUNK_PATTERNS):
        return True
    return False


# =============================================================================
# Main Normalization Function
# =============================================================================

def normalize_text(raw_text: str) -> NormalizedText:
    """Normalize raw pasted text for the analysis pipeline.

    Args:
        raw_text: Text as copied from the chat UI.

    Returns:
        NormalizedText with cleaned text and trace
    """
    trace = NormalizationTrace()
    original_len = len(raw_text)

    # 1. Line endings
    text = raw_text.replace("\r\n", "\n").replace("\r", "\n")
    trace.lines_before = len(text.split("\n"))

    # 2. NFKC (half-width katakana, full-width ASCII, ...)
    text = unicodedata.normalize("NFKC", text)

    # 3. Invisible characters
    text, trace.invisible_chars_removed = INVISIBLE_CHARS_RE.subn("", text)

    # 4. Full-width space (NFKC already folds most of these)
    text = text.replace("\u3000", " ")

    # 5. Junk lines
    kept = []
    for line in text.split("\n"):
        if is_junk_line(line):
            trace.junk_lines_removed.append(line.strip())
        else:
            kept.append(line)
    text = "\n".join(kept)

    # 6. 3+ blank lines → 2 blank lines
    text = EXCESS_BLANK_LINES_RE.sub("\n\n\n", text)

    # 7. Trim
    text = text.strip()

    trace.lines_after = len(text.split("\n")) if text else 0
    trace.chars_removed = original_len - len(text)

    logger.debug(
        "normalization_complete",
        lines_before=trace.lines_before,
        lines_after=trace.lines_after,
        junk_lines=len(trace.junk_lines_removed),
        chars_removed=trace.chars_removed,
    )

    return NormalizedText(text=text, trace=trace)


def normalize(raw_text: str) -> str:
    """Normalize raw text and return only the cleaned string."""
    return normalize_text(raw_text).text
