"""Stage 4: Role Scoring - Additive rule table for user vs AI.

Each signal in ``ROLE_SIGNALS`` contributes fixed points to the user or AI
score when its condition holds. Learnable signals additionally pick up the
weight delta stored for their name:

- positive delta → added to the AI score
- negative delta → its magnitude added to the user score

margin = score_ai - score_user
p_ai = sigmoid(margin)
local_confidence = sigmoid(|margin| - 1) * min(char_count / 100, 1)
"""

import math
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional

import structlog

from chatlens.pipeline.models import BlockFeatures, FeaturedBlock, ScoredBlock

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RoleSignal:
    """One row of the role rule table."""
    name: str
    condition: Callable[[BlockFeatures], bool]
    user_points: float = 0.0
    ai_points: float = 0.0
    learnable: bool = True


# =============================================================================
# Rule Table
# =============================================================================

ROLE_SIGNALS: tuple[RoleSignal, ...] = (
    # ── User-leaning ──
    RoleSignal("shortText", lambda f: f.char_count < 50, user_points=2),
    RoleSignal("veryShortText", lambda f: f.char_count < 20, user_points=1, learnable=False),
    RoleSignal("hasQuestion", lambda f: f.has_question, user_points=3),
    RoleSignal("hasImperativeForm", lambda f: f.has_imperative_form, user_points=2),
    RoleSignal("hasErrorKeyword", lambda f: f.has_error_keyword, user_points=2),
    RoleSignal("hasFilePath", lambda f: f.has_file_path and f.line_count <= 2, user_points=1),
    RoleSignal("hasUrl", lambda f: f.has_url and f.line_count <= 2, user_points=1),
    RoleSignal("casualSpeech", lambda f: f.formality < 0.3, user_points=2),
    RoleSignal("highSentiment", lambda f: f.sentiment_score > 0.3, user_points=1, learnable=False),
    RoleSignal("hasCommand", lambda f: f.has_command and not f.has_explanation_structure, user_points=1),
    # ── AI-leaning ──
    RoleSignal("longText", lambda f: f.char_count > 200, ai_points=2),
    RoleSignal("veryLongText", lambda f: f.char_count > 500, ai_points=1, learnable=False),
    RoleSignal("hasMarkdownHeading", lambda f: f.has_markdown_heading, ai_points=3),
    RoleSignal("hasBulletList", lambda f: f.has_bullet_list, ai_points=2),
    RoleSignal("hasTable", lambda f: f.has_table, ai_points=3),
    RoleSignal("hasCodeBlock", lambda f: f.has_code_block, ai_points=2),
    RoleSignal("hasPoliteForm", lambda f: f.has_polite_form, ai_points=1),
    RoleSignal("hasExplanationStructure", lambda f: f.has_explanation_structure, ai_points=2),
    RoleSignal(
        "technicalDensity",
        lambda f: f.technical_term_density > 0.05 and f.char_count > 100,
        ai_points=1,
        learnable=False,
    ),
    RoleSignal(
        "structuredMultiline",
        lambda f: f.line_count > 5 and (f.has_bullet_list or f.has_markdown_heading),
        ai_points=1,
        learnable=False,
    ),
)

LEARNABLE_FEATURES: tuple[str, ...] = tuple(s.name for s in ROLE_SIGNALS if s.learnable)

CONFIDENCE_LENGTH_CHARS = 100


def sigmoid(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-x))


def active_learnable_features(
    features: BlockFeatures,
    signals: Iterable[RoleSignal] = ROLE_SIGNALS,
) -> list[str]:
    """Names of the learnable signals that fire for a feature vector."""
    return [s.name for s in signals if s.learnable and s.condition(features)]


# =============================================================================
# Scoring
# =============================================================================

def score_block(
    block: FeaturedBlock,
    deltas: Optional[Mapping[str, float]] = None,
    signals: Iterable[RoleSignal] = ROLE_SIGNALS,
) -> ScoredBlock:
    """Score a single block for user vs AI.

    Args:
        block: Block with features.
        deltas: Learned weight deltas keyed by signal name.
        signals: Rule table to apply.

    Returns:
        ScoredBlock with both scores, p_ai and local confidence.
    """
    deltas = deltas or {}
    f = block.features
    score_user = 0.0
    score_ai = 0.0

    for signal in signals:
        if not signal.condition(f):
            continue
        score_user += signal.user_points
        score_ai += signal.ai_points
        if signal.learnable:
            d = deltas.get(signal.name, 0.0)
            if d > 0:
                score_ai += d
            elif d < 0:
                score_user += -d

    margin = score_ai - score_user
    length_factor = min(f.char_count / CONFIDENCE_LENGTH_CHARS, 1.0)

    return ScoredBlock(
        **block.model_dump(exclude={"features"}),
        features=f,
        score_user=score_user,
        score_ai=score_ai,
        p_ai=sigmoid(margin),
        local_confidence=sigmoid(abs(margin) - 1) * length_factor,
    )


def score_all_blocks(
    blocks: list[FeaturedBlock],
    deltas: Optional[Mapping[str, float]] = None,
    signals: Iterable[RoleSignal] = ROLE_SIGNALS,
) -> list[ScoredBlock]:
    """Score every block against the same snapshot of weight deltas."""
    snapshot = dict(deltas or {})
    signals = tuple(signals)
    scored = [score_block(b, snapshot, signals) for b in blocks]
    logger.debug("role_scoring_complete", blocks=len(scored), learned_deltas=len(snapshot))
    return scored
