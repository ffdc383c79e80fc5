"""Role marker catalog.

Chat web UIs label turns with headers such as "You said:", "Gemini の回答"
or "ChatGPT". A marker can stand alone on its line or prefix the content
("User: hi"). Both the segmenter and the post-processor resolve markers
through ``match_marker`` so that the two stages never disagree.
"""

import re
from dataclasses import dataclass
from typing import Optional

from chatlens.pipeline.models import Role


@dataclass(frozen=True)
class MarkerMatch:
    """A role marker found at the start of a line."""
    role: Role
    marker: str
    content: str = ""

    @property
    def standalone(self) -> bool:
        """True when the line carries nothing but the marker."""
        return not self.content


# =============================================================================
# Standalone marker lines (the whole line is the marker)
# =============================================================================

USER_MARKERS = [
    re.compile(r"^あなたのプロンプト$"),
    re.compile(r"^You$"),
    re.compile(r"^あなた$"),
    re.compile(r"^User:?$", re.IGNORECASE),
    re.compile(r"^自分$"),
    re.compile(r"^Human:?$", re.IGNORECASE),
    re.compile(r"^Me$", re.IGNORECASE),
    re.compile(r"^Guest:?$", re.IGNORECASE),
    re.compile(r"^You said:?$", re.IGNORECASE),
    re.compile(r"^Sent by you:?$", re.IGNORECASE),
]

ASSISTANT_MARKERS = [
    # Gemini
    re.compile(r"^Gemini:?$"),
    re.compile(r"^Gemini\s*の(?:回答|返答)$"),
    re.compile(r"^ジェミニ$"),
    re.compile(r"^Gemini\s+\d+(?:\.\d+)?(?:\s+(?:Pro|Flash|Ultra|Advanced))?$", re.IGNORECASE),
    re.compile(r"^Gemini said:?$", re.IGNORECASE),
    # ChatGPT
    re.compile(r"^ChatGPT:?$", re.IGNORECASE),
    re.compile(r"^ChatGPT said:?$", re.IGNORECASE),
    re.compile(r"^GPT-?[3-9](?:\.\d+)?[a-z]?(?:\s+\w+)?$", re.IGNORECASE),
    re.compile(r"^o[134]-?(?:mini|preview|pro)?$", re.IGNORECASE),
    re.compile(r"^OpenAI$", re.IGNORECASE),
    # Claude
    re.compile(r"^Claude:?$", re.IGNORECASE),
    re.compile(r"^Claude said:?$", re.IGNORECASE),
    re.compile(r"^Claude\s+\d+(?:\.\d+)?(?:\s+(?:Opus|Sonnet|Haiku))?$", re.IGNORECASE),
    re.compile(r"^Anthropic$", re.IGNORECASE),
    # Generic
    re.compile(r"^Assistant:?$", re.IGNORECASE),
    re.compile(r"^AI:?$", re.IGNORECASE),
    re.compile(r"^AI said:?$", re.IGNORECASE),
    re.compile(r"^Model$", re.IGNORECASE),
    re.compile(r"^Bot:?$", re.IGNORECASE),
]


# =============================================================================
# Inline markers (marker + content on the same line)
# =============================================================================

_USER_LABELS = r"User|You|Human|Guest|あなた|あなたのプロンプト|自分"
_AI_LABELS = r"Assistant|AI|Gemini|ChatGPT|Claude|Bot|GPT|Anthropic|OpenAI|ジェミニ"

USER_INLINE_RE = re.compile(
    rf"^(?P<marker>(?:{_USER_LABELS})(?:\s+said)?\s*[:：])\s*(?P<content>\S.*)$",
    re.IGNORECASE,
)
AI_INLINE_RE = re.compile(
    rf"^(?P<marker>(?:{_AI_LABELS})(?:\s+said)?\s*[:：])\s*(?P<content>\S.*)$",
    re.IGNORECASE,
)

# "... anything. ChatGPT said: ..." glued onto one line by the copy-paste
MID_LINE_MARKER_RE = re.compile(
    r"(?<=\S)\s+(?=(?:You|User|ChatGPT|Claude|Gemini|AI|Assistant)\s+said:)",
    re.IGNORECASE,
)


def match_marker(line: str) -> Optional[MarkerMatch]:
    """Match a role marker at the start of a line.

    Args:
        line: A single line of text (surrounding whitespace is ignored).

    Returns:
        MarkerMatch with the marker's role and any inline content, or None.
    """
    text = line.strip()
    if not text:
        return None

    for pattern in USER_MARKERS:
        if pattern.match(text):
            return MarkerMatch(role=Role.USER, marker=text)
    for pattern in ASSISTANT_MARKERS:
        if pattern.match(text):
            return MarkerMatch(role=Role.AI, marker=text)

    match = USER_INLINE_RE.match(text)
    if match:
        return MarkerMatch(role=Role.USER, marker=match.group("marker"), content=match.group("content").strip())
    match = AI_INLINE_RE.match(text)
    if match:
        return MarkerMatch(role=Role.AI, marker=match.group("marker"), content=match.group("content").strip())

    return None


def split_mid_line_markers(line: str) -> list[str]:
    """Split a line at every "X said:" marker that does not start it."""
    return MID_LINE_MARKER_RE.split(line)


def strip_marker(text: str) -> tuple[Optional[Role], str]:
    """Remove a leading role marker from a block's text.

    Returns:
        Tuple of (marker role or None, text without the marker).
    """
    lines = text.split("\n")
    first = next((i for i, line in enumerate(lines) if line.strip()), None)
    if first is None:
        return None, text

    marker = match_marker(lines[first])
    if marker is None:
        return None, text

    remaining = [marker.content] if marker.content else []
    remaining.extend(lines[first + 1:])
    return marker.role, "\n".join(remaining).strip()
