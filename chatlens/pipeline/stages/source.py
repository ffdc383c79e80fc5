"""Source detection - Which chat product the pasted text came from.

Each rule adds its weight to one source when its pattern matches. Repeated
matches count with diminishing returns:

    score[source] += weight * (1 + log2(min(matches, 5)))

Explicit role headers ("ChatGPT said:", "Gemini の回答") weigh the most,
UI status lines ("Thought for 12 seconds") and bare product names less.

Confidence mixes absolute strength with the lead over the runner-up:

    0.6 * min(top / 20, 1) + 0.4 * (top - second) / total

Detection runs on the raw input, before normalization removes the UI
status lines it relies on.
"""

import math
import re
from dataclasses import dataclass
from typing import Iterable

import structlog

from chatlens.pipeline.models import ChatSource, SourceDetection

logger = structlog.get_logger(__name__)

MAX_COUNTED_MATCHES = 5
FULL_CONFIDENCE_SCORE = 20.0
ABSOLUTE_WEIGHT = 0.6
MARGIN_WEIGHT = 0.4


@dataclass(frozen=True)
class SourceRule:
    source: ChatSource
    pattern: re.Pattern
    weight: float


def _rule(source: ChatSource, pattern: str, weight: float, flags: int = re.IGNORECASE) -> SourceRule:
    return SourceRule(source, re.compile(pattern, flags), weight)


# =============================================================================
# Rule Table
# =============================================================================

SOURCE_RULES: tuple[SourceRule, ...] = (
    # ── ChatGPT ──
    _rule(ChatSource.CHATGPT, r"ChatGPT said:?", 10),
    _rule(ChatSource.CHATGPT, r"\bChatGPT\b", 8),
    _rule(ChatSource.CHATGPT, r"\bGPT-?4\b", 8),
    _rule(ChatSource.CHATGPT, r"\bGPT-?3\.5\b", 8),
    _rule(ChatSource.CHATGPT, r"\bo[13]-?mini\b", 7),
    _rule(ChatSource.CHATGPT, r"\bOpenAI\b", 6),
    _rule(ChatSource.CHATGPT, r"^You said:?\s*$", 9, re.IGNORECASE | re.MULTILINE),
    _rule(ChatSource.CHATGPT, r"^Thought for \d+ seconds?$", 9, re.IGNORECASE | re.MULTILINE),
    _rule(ChatSource.CHATGPT, r"^Searched \d+ sites?$", 9, re.IGNORECASE | re.MULTILINE),
    _rule(ChatSource.CHATGPT, r"^Analyzing", 5, re.IGNORECASE | re.MULTILINE),
    _rule(ChatSource.CHATGPT, r"Memory updated", 7),
    # ── Claude ──
    _rule(ChatSource.CLAUDE, r"Claude said:?", 10),
    _rule(ChatSource.CLAUDE, r"\bClaude\b", 8),
    _rule(ChatSource.CLAUDE, r"\bClaude\s+\d+(?:\.\d+)?\b", 9),
    _rule(ChatSource.CLAUDE, r"\bAnthropic\b", 7),
    _rule(ChatSource.CLAUDE, r"\bHuman:\s*$", 8, re.IGNORECASE | re.MULTILINE),
    # Generic header, but most often seen in Claude exports
    _rule(ChatSource.CLAUDE, r"\bAssistant:\s*$", 5, re.IGNORECASE | re.MULTILINE),
    # ── Gemini ──
    _rule(ChatSource.GEMINI, r"Gemini の回答", 10, 0),
    _rule(ChatSource.GEMINI, r"Gemini の返答", 10, 0),
    _rule(ChatSource.GEMINI, r"Gemini said:?", 10),
    _rule(ChatSource.GEMINI, r"\bGemini\b", 8),
    _rule(ChatSource.GEMINI, r"\bGemini\s+\d+(?:\.\d+)?\b", 9),
    _rule(ChatSource.GEMINI, r"あなたのプロンプト", 10, 0),
    _rule(ChatSource.GEMINI, r"ジェミニ", 8, 0),
    _rule(ChatSource.GEMINI, r"回答案を表示", 8, 0),
    _rule(ChatSource.GEMINI, r"他の回答案", 8, 0),
)

DETECTABLE_SOURCES = (ChatSource.CHATGPT, ChatSource.CLAUDE, ChatSource.GEMINI)


def _round2(value: float) -> float:
    # Half-up, so 0.125 becomes 0.13 rather than banker's 0.12
    return math.floor(value * 100 + 0.5) / 100


def detect_source(text: str, rules: Iterable[SourceRule] = SOURCE_RULES) -> SourceDetection:
    """Score every source against the raw text and pick the strongest.

    Args:
        text: Raw pasted text.
        rules: Weighted pattern table.

    Returns:
        SourceDetection with the winner, its confidence and all raw scores.
        Text without any signal gives ``UNKNOWN`` at confidence 0.
    """
    scores = {source: 0.0 for source in ChatSource}

    for rule in rules:
        count = len(rule.pattern.findall(text))
        if count:
            scores[rule.source] += rule.weight * (1 + math.log2(min(count, MAX_COUNTED_MATCHES)))

    # Stable sort keeps table order on ties
    ranked = sorted(DETECTABLE_SOURCES, key=lambda s: -scores[s])
    top, second = scores[ranked[0]], scores[ranked[1]]
    total = sum(scores[s] for s in DETECTABLE_SOURCES)

    if top == 0:
        return SourceDetection(source=ChatSource.UNKNOWN, confidence=0.0, scores=scores)

    absolute = min(top / FULL_CONFIDENCE_SCORE, 1.0)
    margin = (top - second) / total
    confidence = min(_round2(absolute * ABSOLUTE_WEIGHT + margin * MARGIN_WEIGHT), 1.0)

    logger.debug("source_detected", source=ranked[0].value, confidence=confidence)
    return SourceDetection(source=ranked[0], confidence=confidence, scores=scores)
