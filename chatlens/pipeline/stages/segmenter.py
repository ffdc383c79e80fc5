"""Stage 2: Segmentation - Split normalized text into ordered blocks.

Approach:
1. Line scan with hard boundaries (rule lines, role markers, 2+ blank lines)
2. Conditional soft boundaries for marker-less pastes
3. Merge rules undo over-segmentation of a single turn
4. Blocks keep their line span so every stage can point back at the input

Markdown headings are deliberately not boundaries: they structure AI
answers and splitting on them scatters one answer across many blocks.
"""

import re
from dataclasses import dataclass, replace
from typing import Optional

import structlog

from chatlens.pipeline.markers import match_marker, split_mid_line_markers
from chatlens.pipeline.models import Block, BoundaryType

logger = structlog.get_logger(__name__)


# =============================================================================
# Inspectable Intermediate Structures
# =============================================================================

@dataclass(frozen=True)
class RawBlock:
    """A block before merge rules and id assignment."""
    lines: tuple[str, ...]
    start_line: int
    end_line: int
    boundary_type: BoundaryType
    is_marker: bool = False

    @property
    def text(self) -> str:
        return "\n".join(self.lines).strip()


# =============================================================================
# Pattern Definitions
# =============================================================================

# Hard boundary: horizontal rule
RULE_LINE_RE = re.compile(r"^\s*[-_═╌─━]{3,}\s*$")

# Structural markup
BULLET_START_RE = re.compile(r"^\s*[-*•◦▸▹]\s")
NUMBERED_LIST_RE = re.compile(r"^\s*\d+[.．)]\s")
MD_HEADING_RE = re.compile(r"^#{1,6}\s")
JP_HEADING_RE = re.compile(r"^[【「『〈《]|^[◆■●▶★☆▷►◇□△▽]\s")
CODE_FENCE_RE = re.compile(r"^\s*(```|~~~)")
TABLE_ROW_RE = re.compile(r"^\|.+\|$")

# Standalone pastes
URL_ONLY_RE = re.compile(r"^\s*https?://\S+\s*$")
COMMAND_RE = re.compile(
    r"^\s*(?:\$\s*)?(?:npm|npx|git|cd|brew|pip|yarn|pnpm|sudo|curl|wget|docker|kubectl|make|cmake)\s"
)
FILE_PATH_RE = re.compile(r"^\s*(?:[A-Z]:\\|/Users/|~/|\./|\.\./)\S+")

# Short standalone question line
QUESTION_ONLY_RE = re.compile(r"^.{1,80}[？?]\s*$")

# Last line ends mid-sentence (comma, colon or Japanese postposition)
INCOMPLETE_LINE_RE = re.compile(r"(?:[、，,：:]|[はがをにでともへの]|から|まで|より)\s*$")

# "See this" / "こちら" followed by a pasted link
REFERENTIAL_RE = re.compile(r"^(?:これ|こちら|see this|see|look|check|見て)", re.IGNORECASE)

# Thresholds
SOFT_FLUSH_MAX_CHARS = 120
QUESTION_LINE_MAX_CHARS = 80
SHORT_LINE_MAX_CHARS = 60
LONG_BUFFER_MIN_CHARS = 100
TINY_BLOCK_MAX_CHARS = 20
REFERENTIAL_MAX_CHARS = 30
CONTINUATION_MIN_CHARS = 100


# =============================================================================
# Helper Functions
# =============================================================================

def _is_list_line(line: str) -> bool:
    return bool(BULLET_START_RE.match(line) or NUMBERED_LIST_RE.match(line))


def _is_structural_line(line: str) -> bool:
    stripped = line.strip()
    return bool(
        MD_HEADING_RE.match(stripped)
        or _is_list_line(stripped)
        or stripped.startswith("```")
        or TABLE_ROW_RE.match(stripped)
    )


def has_structural_content(lines: tuple[str, ...] | list[str]) -> bool:
    """Check if lines contain headings, lists, code fences or table rows."""
    return any(_is_structural_line(line) for line in lines)


def _first_content_line(lines: tuple[str, ...]) -> str:
    return next((line.strip() for line in lines if line.strip()), "")


def _split_lines(text: str) -> list[tuple[int, str]]:
    """Split text into (line index, piece) pairs, breaking glued "X said:" markers apart.

    Pieces of one glued line share its index, so block spans always refer
    to lines of the normalized text.
    """
    return [
        (index, piece)
        for index, line in enumerate(text.split("\n"))
        for piece in split_mid_line_markers(line)
    ]


# =============================================================================
# Boundary Scan
# =============================================================================

class _BlockBuilder:
    """Accumulating buffer for the line scan."""

    def __init__(self):
        self.blocks: list[RawBlock] = []
        self.lines: list[str] = []
        self.start_line = 0
        self.end_line = 0
        self.boundary_type = BoundaryType.INITIAL

    @property
    def text(self) -> str:
        return "\n".join(self.lines).strip()

    def add(self, index: int, line: str) -> None:
        if not self.lines:
            self.start_line = index
        self.lines.append(line)
        if line.strip():
            self.end_line = index

    def add_blank(self, index: int) -> None:
        # Blank lines inside a block keep paragraph structure
        if self.lines:
            self.lines.append("")

    def flush(self, next_type: BoundaryType) -> bool:
        """Close the buffer; the next block opens with ``next_type``."""
        flushed = False
        while self.lines and not self.lines[-1].strip():
            self.lines.pop()
        if self.lines:
            self.blocks.append(RawBlock(
                lines=tuple(self.lines),
                start_line=self.start_line,
                end_line=self.end_line,
                boundary_type=self.boundary_type,
            ))
            flushed = True
        self.lines = []
        # Until something is emitted the next block is still the first one
        self.boundary_type = next_type if self.blocks else BoundaryType.INITIAL
        return flushed

    def push_marker(self, index: int, line: str) -> None:
        self.blocks.append(RawBlock(
            lines=(line,),
            start_line=index,
            end_line=index,
            boundary_type=self.boundary_type,
            is_marker=True,
        ))
        self.boundary_type = BoundaryType.HARD


def split_blocks(normalized_text: str) -> list[RawBlock]:
    """Split normalized text on hard and soft boundaries (no merging)."""
    builder = _BlockBuilder()
    blank_run = 0
    in_code_fence = False

    for i, line in _split_lines(normalized_text):
        stripped = line.strip()

        # Inside a fenced code block nothing is a boundary
        if in_code_fence:
            builder.add(i, line)
            if CODE_FENCE_RE.match(stripped):
                in_code_fence = False
            continue

        # ── Blank lines ──
        if not stripped:
            blank_run += 1
            if blank_run >= 2:
                # Hard: 2+ consecutive blank lines
                builder.flush(BoundaryType.HARD)
            elif builder.lines:
                # Soft: short, non-structural buffer followed by a blank line
                accumulated = builder.text
                if 0 < len(accumulated) < SOFT_FLUSH_MAX_CHARS and not has_structural_content(builder.lines):
                    builder.flush(BoundaryType.SOFT)
                else:
                    builder.add_blank(i)
            continue

        was_blank = blank_run > 0
        blank_run = 0

        # ── Hard: rule line ──
        if RULE_LINE_RE.match(stripped):
            builder.flush(BoundaryType.HARD)
            continue

        # ── Hard: role marker ──
        marker = match_marker(stripped)
        if marker is not None:
            builder.flush(BoundaryType.HARD)
            if marker.standalone:
                builder.push_marker(i, line)
            else:
                builder.add(i, line)
            continue

        # ── Soft boundaries (only directly after a blank line) ──
        if was_blank and builder.lines:
            is_question_start = (
                len(stripped) <= QUESTION_LINE_MAX_CHARS and bool(QUESTION_ONLY_RE.match(stripped))
            )
            is_short_after_long = (
                len(stripped) < SHORT_LINE_MAX_CHARS
                and not MD_HEADING_RE.match(stripped)
                and not _is_list_line(stripped)
                and not stripped.startswith("```")
                and len(builder.text) > LONG_BUFFER_MIN_CHARS
            )
            is_standalone = bool(
                URL_ONLY_RE.match(stripped) or COMMAND_RE.match(stripped) or FILE_PATH_RE.match(stripped)
            )
            if is_question_start or is_short_after_long or is_standalone:
                builder.flush(BoundaryType.SOFT)

        builder.add(i, line)
        if CODE_FENCE_RE.match(stripped):
            in_code_fence = True

    builder.flush(BoundaryType.HARD)
    return builder.blocks


# =============================================================================
# Merge Rules
# =============================================================================

def _join(prev: RawBlock, curr: RawBlock, separator: bool = True) -> RawBlock:
    lines = prev.lines + (("",) if separator else ()) + curr.lines
    return replace(prev, lines=lines, end_line=curr.end_line)


def _merge_pair(prev: RawBlock, curr: RawBlock) -> Optional[tuple[RawBlock, str]]:
    """Try every merge rule on two adjacent blocks.

    Returns:
        Tuple of (merged block, rule name), or None when they stay apart.
    """
    if prev.is_marker or curr.is_marker:
        return None

    prev_text = prev.text
    curr_text = curr.text
    soft = curr.boundary_type == BoundaryType.SOFT

    # Rule 1: two tiny blocks (rapid user messages)
    if soft and len(prev_text) < TINY_BLOCK_MAX_CHARS and len(curr_text) < TINY_BLOCK_MAX_CHARS:
        return _join(prev, curr), "tiny_pair"

    # Rule 2: "see this" followed by a bare URL or path
    if (
        len(prev_text) < REFERENTIAL_MAX_CHARS
        and REFERENTIAL_RE.match(prev_text)
        and (URL_ONLY_RE.match(curr_text) or FILE_PATH_RE.match(curr_text))
    ):
        return _join(prev, curr), "referential_link"

    # Rule 3: previous block stops mid-sentence
    last_prev_line = prev.lines[-1].strip() if prev.lines else ""
    if soft and INCOMPLETE_LINE_RE.search(last_prev_line):
        return _join(prev, curr, separator=False), "incomplete_sentence"

    # Rule 4: both structural (same AI answer)
    prev_structural = has_structural_content(prev.lines)
    if soft and prev_structural and has_structural_content(curr.lines):
        return _join(prev, curr), "structural_pair"

    # Rule 5: long structural block continued by heading/list markup
    if soft and prev_structural and len(prev_text) > CONTINUATION_MIN_CHARS:
        first = _first_content_line(curr.lines)
        if MD_HEADING_RE.match(first) or _is_list_line(first) or JP_HEADING_RE.match(first):
            return _join(prev, curr), "structural_continuation"

    # Rule 6: list continuation
    prev_is_list = any(_is_list_line(line) for line in prev.lines)
    curr_is_list = all(_is_list_line(line.strip()) or not line.strip() for line in curr.lines)
    if soft and prev_is_list and curr_is_list:
        return _join(prev, curr), "list_continuation"

    return None


def apply_merge_rules(blocks: list[RawBlock]) -> list[RawBlock]:
    """Merge over-segmented neighbours, pairwise left to right.

    Returns a new list; the input is left untouched.
    """
    if len(blocks) <= 1:
        return list(blocks)

    result = [blocks[0]]
    merges: dict[str, int] = {}
    for curr in blocks[1:]:
        merged = _merge_pair(result[-1], curr)
        if merged is None:
            result.append(curr)
            continue
        result[-1], rule = merged
        merges[rule] = merges.get(rule, 0) + 1

    if merges:
        logger.debug("merge_rules_applied", **merges)
    return result


# =============================================================================
# Main Segmentation Function
# =============================================================================

def segment(normalized_text: str) -> list[Block]:
    """Segment normalized text into an ordered block sequence.

    Args:
        normalized_text: Output of the normalizer.

    Returns:
        Blocks with dense ids, line spans and the boundary that opened them.
        Empty blocks are dropped.
    """
    raw_blocks = split_blocks(normalized_text)
    merged = apply_merge_rules(raw_blocks)

    blocks = [
        Block(
            id=index,
            text=raw.text,
            start_line=raw.start_line,
            end_line=raw.end_line,
            boundary_type=raw.boundary_type,
        )
        for index, raw in enumerate(b for b in merged if b.text)
    ]

    logger.debug(
        "segmentation_complete",
        raw_blocks=len(raw_blocks),
        blocks=len(blocks),
        hard=sum(1 for b in blocks if b.boundary_type == BoundaryType.HARD),
        soft=sum(1 for b in blocks if b.boundary_type == BoundaryType.SOFT),
    )
    return blocks
