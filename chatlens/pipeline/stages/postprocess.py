"""Stage 6: Post-Processing - Marker enforcement and block consolidation.

Steps (each a pure function over the block list):
1. Blocks headed by a role marker take the marker's role at confidence 1.0
   and lose the marker text
2. A marker-only block hands its role to the following content block
3. Isolated low-confidence blocks are absorbed into their neighbours' role
4. Consecutive short same-role blocks are merged
5. Marker-only blocks are dropped
6. Near-duplicate neighbours collapse, then ids are made dense again
"""

from dataclasses import dataclass, replace
from typing import Optional

import structlog

from chatlens.pipeline.markers import strip_marker
from chatlens.pipeline.models import OptimizedBlock, Role

logger = structlog.get_logger(__name__)

PROPAGATED_CONFIDENCE = 0.95
ABSORB_MAX_CONFIDENCE = 0.5
ABSORB_CONFIDENCE_FACTOR = 0.8
MERGE_MAX_CHARS = 80


@dataclass(frozen=True)
class _Entry:
    """A block plus the marker information carried through the steps."""
    block: OptimizedBlock
    marker_role: Optional[Role] = None

    @property
    def is_marker_headed(self) -> bool:
        return self.marker_role is not None

    @property
    def is_marker_only(self) -> bool:
        return self.marker_role is not None and not self.block.text


def _update(block: OptimizedBlock, **changes) -> OptimizedBlock:
    return block.model_copy(update=changes)


# =============================================================================
# Steps
# =============================================================================

def enforce_markers(blocks: list[OptimizedBlock]) -> list[_Entry]:
    """Step 1: force marker-headed blocks to their declared role."""
    entries = []
    for block in blocks:
        role, text = strip_marker(block.text)
        if role is None:
            entries.append(_Entry(block))
            continue
        entries.append(_Entry(_update(block, role=role, confidence=1.0, text=text), marker_role=role))
    return entries


def propagate_markers(entries: list[_Entry]) -> list[_Entry]:
    """Step 2: a marker-only block decides the role of the next content block."""
    result = list(entries)
    for i in range(len(result) - 1):
        current, following = result[i], result[i + 1]
        if not current.is_marker_only or following.is_marker_headed:
            continue
        block = following.block
        result[i + 1] = replace(following, block=_update(
            block,
            role=current.marker_role,
            confidence=max(block.confidence, PROPAGATED_CONFIDENCE),
        ))
    return result


def absorb_isolated(entries: list[_Entry]) -> list[_Entry]:
    """Step 3: flip a low-confidence block sandwiched between two agreeing neighbours."""
    result = list(entries)
    for i in range(1, len(result) - 1):
        prev, curr, nxt = result[i - 1].block, result[i], result[i + 1].block
        if curr.is_marker_headed:
            continue
        block = curr.block
        if prev.role == nxt.role and block.role != prev.role and block.confidence < ABSORB_MAX_CONFIDENCE:
            result[i] = replace(curr, block=_update(
                block,
                role=prev.role,
                confidence=block.confidence * ABSORB_CONFIDENCE_FACTOR,
            ))
    return result


def merge_short_runs(entries: list[_Entry]) -> list[_Entry]:
    """Step 4: merge consecutive short blocks that share a role."""
    if not entries:
        return []
    merged = [entries[0]]
    for curr in entries[1:]:
        prev = merged[-1]
        if (
            not prev.is_marker_headed
            and not curr.is_marker_headed
            and prev.block.role == curr.block.role
            and len(prev.block.text) < MERGE_MAX_CHARS
            and len(curr.block.text) < MERGE_MAX_CHARS
        ):
            merged[-1] = replace(prev, block=_update(
                prev.block,
                text=prev.block.text + "\n" + curr.block.text,
                end_line=curr.block.end_line,
                confidence=min(prev.block.confidence, curr.block.confidence),
            ))
        else:
            merged.append(curr)
    return merged


def drop_marker_only(entries: list[_Entry]) -> list[_Entry]:
    """Step 5: marker-only blocks are metadata, not messages."""
    return [e for e in entries if not e.is_marker_only]


def dedupe_neighbours(blocks: list[OptimizedBlock]) -> list[OptimizedBlock]:
    """Step 6: collapse same-role neighbours whose texts contain one another.

    The higher-confidence variant survives (the earlier one on ties).
    """
    result: list[OptimizedBlock] = []
    for block in blocks:
        if result and result[-1].role == block.role:
            prev_text = result[-1].text.strip()
            curr_text = block.text.strip()
            if prev_text and curr_text and (curr_text in prev_text or prev_text in curr_text):
                if block.confidence > result[-1].confidence:
                    result[-1] = block
                continue
        result.append(block)
    return result


# =============================================================================
# Entry Point
# =============================================================================

def post_process(blocks: list[OptimizedBlock]) -> list[OptimizedBlock]:
    """Apply marker enforcement and consolidation to optimized blocks.

    Args:
        blocks: Output of the sequence optimizer.

    Returns:
        New list of blocks with dense ids starting at 0.
    """
    if not blocks:
        return []

    entries = enforce_markers(blocks)
    marker_count = sum(1 for e in entries if e.is_marker_headed)
    entries = propagate_markers(entries)
    entries = absorb_isolated(entries)
    entries = merge_short_runs(entries)
    entries = drop_marker_only(entries)
    deduped = dedupe_neighbours([e.block for e in entries])

    result = [_update(block, id=index) for index, block in enumerate(deduped)]
    logger.debug(
        "post_processing_complete",
        blocks_in=len(blocks),
        blocks_out=len(result),
        markers=marker_count,
    )
    return result
