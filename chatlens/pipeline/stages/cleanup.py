"""Message cleanup - Strip trailing "invitation" lines from AI answers.

Assistants close answers with offers ("Would you like me to...?",
"詳しく説明しましょうか？") and source stubs that carry no content. They
are removed from the end of AI messages before classification so that
they do not leak Q intents or LINK artifacts into the answer.

Three passes, each working backwards from the end:
1. Trailing lines
2. Trailing paragraphs in which every line is an invitation
3. Trailing sentences of a single-line last paragraph

The cleanup never empties a message; if everything matched, the original
text is kept.
"""

import re

import structlog

logger = structlog.get_logger(__name__)


INVITATION_PATTERNS = [
    # Japanese next-step lures
    re.compile(r"次[はに]、"),
    re.compile(r"しましょうか[？?]"),
    re.compile(r"ませんか[？?]"),
    re.compile(r"どうでしょうか[？?]"),
    re.compile(r"いかがでしょうか[？?]"),
    re.compile(r"興味はありますか[？?]"),
    re.compile(r"詳しく(?:知り|説明|お伝え|解説)"),
    re.compile(r"について(?:詳しく|解説|お伝え)"),
    re.compile(r"ご質問があれば"),
    re.compile(r"お気軽に(?:お申し|ご連絡|ご質問)"),
    re.compile(r"動画では.{0,30}解説されています"),
    # English offers
    re.compile(r"^(?:would you like|do you want me to|shall i|should i)\b.*[？?]$", re.IGNORECASE),
    re.compile(r"^(?:let me know if|feel free to|i hope this helps|hope this helps)\b", re.IGNORECASE),
    # Short sentence ending with a question mark
    re.compile(r"^.{0,60}[？?]$"),
    # Source and media stubs
    re.compile(r"YouTube", re.IGNORECASE),
    re.compile(r"Business Insider", re.IGNORECASE),
    re.compile(r"\[cite:\s*\d"),
    re.compile(r"回の視聴"),
    re.compile(r"^\s*Sources?:\s*$", re.IGNORECASE),
    re.compile(r"^\s*参考文献"),
    re.compile(r"^\s*\[\d+\]"),
    re.compile(r"^\s*https?://"),
    re.compile(r"^\s*www\."),
]

PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n+")
# "." ends a sentence only before whitespace or the end of the text
SENTENCE_RE = re.compile(r".+?(?:[。？！?!]+|\.(?=\s|$)|$)")


def is_invitation(line: str) -> bool:
    """Check whether a single line or sentence is an invitation or stub."""
    text = line.strip()
    return any(p.search(text) for p in INVITATION_PATTERNS)


def _strip_trailing_lines(text: str) -> str:
    lines = text.split("\n")
    cut = len(lines)
    for i in range(len(lines) - 1, -1, -1):
        stripped = lines[i].strip()
        if not stripped or is_invitation(stripped):
            cut = i
            continue
        break
    return "\n".join(lines[:cut]).strip()


def _strip_trailing_paragraphs(text: str) -> str:
    paragraphs = PARAGRAPH_SPLIT_RE.split(text)
    while paragraphs:
        lines = [line for line in paragraphs[-1].split("\n") if line.strip()]
        if lines and all(is_invitation(line) for line in lines):
            paragraphs.pop()
        else:
            break
    return "\n\n".join(paragraphs).strip()


def _strip_trailing_sentences(text: str) -> str:
    paragraphs = PARAGRAPH_SPLIT_RE.split(text)
    if not paragraphs or "\n" in paragraphs[-1]:
        return text

    last = paragraphs[-1]
    sentences = list(SENTENCE_RE.finditer(last))
    cut = len(last)
    for match in reversed(sentences):
        if is_invitation(match.group()):
            cut = match.start()
        else:
            break

    kept = last[:cut].strip()
    if kept:
        paragraphs[-1] = kept
    else:
        paragraphs.pop()
    return "\n\n".join(paragraphs).strip()


def remove_trailing_invitations(text: str) -> str:
    """Remove trailing invitation lines, paragraphs and sentences.

    Args:
        text: AI message text.

    Returns:
        Cleaned text, or the original text when cleanup would empty it.
    """
    cleaned = _strip_trailing_sentences(_strip_trailing_paragraphs(_strip_trailing_lines(text)))
    if not cleaned:
        return text
    if cleaned != text.strip():
        logger.debug("trailing_invitations_removed", chars_removed=len(text) - len(cleaned))
    return cleaned
