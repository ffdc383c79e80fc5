"""Weight Updater - Fold stored corrections into role-scoring deltas.

For every correction that actually changed the role, each learnable
feature that was active on the block moves toward the corrected role:

    delta[f] += direction * learning_rate * exp(-age_days / decay_days)

with direction +1 for a correction to ``ai`` and -1 for a correction to
``user``. Deltas are clamped to ±max_delta, near-zero deltas are pruned,
and the result replaces the stored deltas. Recomputing is idempotent for
a fixed ``now``.
"""

import math
from typing import Optional, Union

import structlog

from chatlens.config import Settings, get_settings
from chatlens.learning.store import CorrectionStore, get_default_store, now_ms as current_ms
from chatlens.pipeline.models import Block, BlockFeatures, FeaturedBlock, Role
from chatlens.pipeline.stages.features import extract_features
from chatlens.pipeline.stages.scoring import LEARNABLE_FEATURES, active_learnable_features

logger = structlog.get_logger(__name__)

MS_PER_DAY = 1000 * 60 * 60 * 24


def extract_active_features(block: Union[FeaturedBlock, Block, BlockFeatures]) -> list[str]:
    """Learnable features that fire for a block.

    Uses the same conditions as the role scorer, so a correction only
    adjusts signals that actually contributed to the original decision.
    """
    if isinstance(block, BlockFeatures):
        features = block
    elif isinstance(block, FeaturedBlock):
        features = block.features
    else:
        features = extract_features(block)
    return active_learnable_features(features)


def recompute_weights(
    store: Optional[CorrectionStore] = None,
    now_ms: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> dict[str, float]:
    """Recompute weight deltas from every stored role correction.

    Args:
        store: Correction store to read and update (default store if None).
        now_ms: Reference time in epoch milliseconds (current time if None).
        settings: Learning constants.

    Returns:
        The new deltas, as persisted.
    """
    settings = settings or get_settings()
    store = store or get_default_store(settings)
    now = current_ms() if now_ms is None else now_ms

    totals = {feature: 0.0 for feature in LEARNABLE_FEATURES}
    used = 0

    for correction in store.role_corrections():
        if correction.original_role == correction.corrected_role:
            continue
        age_days = max(now - correction.timestamp, 0) / MS_PER_DAY
        recency = math.exp(-age_days / settings.recency_decay_days)
        direction = 1.0 if correction.corrected_role == Role.AI else -1.0
        for feature in correction.active_features:
            if feature in totals:
                totals[feature] += direction * settings.learning_rate * recency
        used += 1

    limit = settings.max_weight_delta
    deltas = {}
    for feature, value in totals.items():
        clamped = max(-limit, min(limit, value))
        if abs(clamped) >= settings.min_weight_delta:
            deltas[feature] = clamped

    store.set_weight_deltas(deltas)
    logger.info("weights_recomputed", corrections_used=used, learned_features=len(deltas))
    return deltas
