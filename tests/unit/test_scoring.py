"""Unit tests for role scoring."""

import pytest

from chatlens.pipeline.models import Block, BoundaryType
from chatlens.pipeline.stages.features import extract_all_features
from chatlens.pipeline.stages.scoring import (
    LEARNABLE_FEATURES,
    RoleSignal,
    active_learnable_features,
    score_all_blocks,
    score_block,
    sigmoid,
)
from chatlens.pipeline.stages.segmenter import segment


def _featured(text: str):
    block = Block(id=0, text=text, start_line=0, end_line=0, boundary_type=BoundaryType.INITIAL)
    return extract_all_features([block])[0]


class TestRuleTable:
    """Tests for the signal catalog."""

    def test_learnable_features(self):
        assert len(LEARNABLE_FEATURES) == 15
        assert "shortText" in LEARNABLE_FEATURES
        assert "hasMarkdownHeading" in LEARNABLE_FEATURES
        for fixed in ["veryShortText", "veryLongText", "highSentiment", "technicalDensity", "structuredMultiline"]:
            assert fixed not in LEARNABLE_FEATURES

    def test_active_learnable_features(self):
        f = _featured("fix the login bug").features
        assert active_learnable_features(f) == ["shortText", "hasImperativeForm"]

    def test_sigmoid(self):
        assert sigmoid(0) == 0.5
        assert sigmoid(10) > 0.99


class TestScoreBlock:
    """Tests for additive scoring."""

    def test_short_question_leans_user(self):
        scored = score_block(_featured("How do I fix this?"))

        # shortText 2 + veryShortText 1 + hasQuestion 3 + highSentiment 1 ("?" in 18 chars)
        assert scored.score_user == 7
        assert scored.score_ai == 0
        assert scored.p_ai < 0.01
        assert scored.local_confidence == pytest.approx(sigmoid(6) * 0.18)

    def test_structured_answer_leans_ai(self, unmarked_conversation):
        answer = extract_all_features(segment(unmarked_conversation))[1]
        scored = score_block(answer)

        assert scored.score_ai > scored.score_user
        assert scored.p_ai > 0.9

    def test_positive_delta_adds_to_ai(self):
        scored = score_block(_featured("fix the login bug"), {"hasImperativeForm": 3.0})
        assert scored.score_user == 5
        assert scored.score_ai == 3

    def test_negative_delta_adds_to_user(self):
        scored = score_block(_featured("fix the login bug"), {"hasImperativeForm": -1.0})
        assert scored.score_user == 6
        assert scored.score_ai == 0

    def test_delta_for_fixed_signal_ignored(self):
        base = score_block(_featured("fix the login bug"))
        scored = score_block(_featured("fix the login bug"), {"veryShortText": 5.0})
        assert scored.score_user == base.score_user
        assert scored.score_ai == base.score_ai

    def test_custom_signals(self):
        signals = (RoleSignal("always", lambda f: True, ai_points=4),)
        scored = score_block(_featured("anything"), signals=signals)
        assert scored.score_ai == 4
        assert scored.score_user == 0


class TestScoreAllBlocks:
    """Tests for the stage entry point."""

    def test_preserves_order(self, marked_conversation):
        featured = extract_all_features(segment(marked_conversation))
        scored = score_all_blocks(featured)

        assert [b.id for b in scored] == [b.id for b in featured]
        assert all(0.0 <= b.p_ai <= 1.0 for b in scored)

    def test_deltas_are_snapshotted(self):
        deltas = {"shortText": 1.0}
        featured = [_featured("ok")]
        scored = score_all_blocks(featured, deltas)
        deltas["shortText"] = -3.0

        assert scored[0].score_ai == 1.0
