"""Feedback entry points used by the UI layer, the CLI and the API."""

from typing import Optional, Union

from chatlens.learning.store import CorrectionRecord, CorrectionStore, get_default_store, now_ms
from chatlens.learning.weights import extract_active_features
from chatlens.pipeline.models import AnalyzedMessage, Block, BoundaryType, OptimizedBlock, Role
from chatlens.pipeline.stages.features import extract_features


def record_role_correction(record: CorrectionRecord, store: Optional[CorrectionStore] = None) -> None:
    """Persist a role correction.

    Weights are not recomputed here; callers batch corrections and call
    ``recompute_weights`` when they are done.
    """
    store = store or get_default_store()
    store.add_role_correction(record)


def correction_from_text(
    text: str,
    original_role: Role,
    corrected_role: Role,
    original_confidence: float = 0.0,
    timestamp: Optional[int] = None,
) -> CorrectionRecord:
    """Build a correction for a span of text that has no analysed block.

    Features are extracted from the text so that the active feature list
    matches what the scorer would have seen.
    """
    block = Block(id=0, text=text.strip(), start_line=0, end_line=0, boundary_type=BoundaryType.INITIAL)
    features = extract_features(block)
    return CorrectionRecord(
        timestamp=now_ms() if timestamp is None else timestamp,
        text_snippet=block.text,
        original_role=original_role,
        corrected_role=corrected_role,
        active_features=extract_active_features(features),
        char_count=features.char_count,
        original_confidence=original_confidence,
    )


def build_correction(
    item: Union[OptimizedBlock, AnalyzedMessage],
    corrected_role: Role,
    timestamp: Optional[int] = None,
) -> CorrectionRecord:
    """Build a correction record from an analysed block or message.

    Args:
        item: The block or message the user relabelled.
        corrected_role: Role chosen by the user.
        timestamp: Epoch milliseconds (now if None).

    Returns:
        CorrectionRecord carrying the item's original role, confidence and
        active learnable features.
    """
    if isinstance(item, AnalyzedMessage):
        return correction_from_text(
            item.text,
            original_role=item.role,
            corrected_role=corrected_role,
            original_confidence=item.confidence,
            timestamp=timestamp,
        )

    return CorrectionRecord(
        timestamp=now_ms() if timestamp is None else timestamp,
        text_snippet=item.text,
        original_role=item.role,
        corrected_role=corrected_role,
        active_features=extract_active_features(item),
        char_count=item.features.char_count,
        original_confidence=item.confidence,
    )
