"""Unit tests for post-processing of optimized blocks."""

import pytest

from chatlens.pipeline.models import BlockFeatures, BoundaryType, OptimizedBlock, Role
from chatlens.pipeline.stages.postprocess import dedupe_neighbours, enforce_markers, post_process


def _opt(index: int, text: str, role: Role, confidence: float = 0.5) -> OptimizedBlock:
    features = BlockFeatures(char_count=len(text), line_count=1, avg_line_length=float(len(text)))
    return OptimizedBlock(
        id=index,
        text=text,
        start_line=index,
        end_line=index,
        boundary_type=BoundaryType.INITIAL if index == 0 else BoundaryType.HARD,
        features=features,
        score_user=0.0,
        score_ai=0.0,
        p_ai=0.5,
        local_confidence=0.5,
        role=role,
        confidence=confidence,
    )


def _long(label: str) -> str:
    return f"{label}: " + "this sentence is padded so the block is well over the merge limit " * 2


class TestMarkers:
    """Tests for marker enforcement and propagation."""

    def test_inline_markers_force_role(self):
        result = post_process([
            _opt(0, "User: hi", Role.AI, 0.3),
            _opt(1, "AI: hello there", Role.USER, 0.3),
        ])

        assert [(b.text, b.role, b.confidence) for b in result] == [
            ("hi", Role.USER, 1.0),
            ("hello there", Role.AI, 1.0),
        ]

    def test_marker_only_block_propagates_and_is_dropped(self):
        result = post_process([
            _opt(0, "You said:", Role.AI, 0.2),
            _opt(1, "some question text", Role.AI, 0.3),
            _opt(2, "ChatGPT said:", Role.USER, 0.2),
            _opt(3, "an answer here", Role.USER, 0.4),
        ])

        assert [(b.text, b.role) for b in result] == [
            ("some question text", Role.USER),
            ("an answer here", Role.AI),
        ]
        assert all(b.confidence == pytest.approx(0.95) for b in result)
        assert [b.id for b in result] == [0, 1]

    def test_enforce_markers_leaves_plain_blocks(self):
        [entry] = enforce_markers([_opt(0, "plain text", Role.AI, 0.4)])
        assert not entry.is_marker_headed
        assert entry.block.role == Role.AI
        assert entry.block.confidence == 0.4


class TestConsolidation:
    """Tests for absorption, merging and deduplication."""

    def test_isolated_low_confidence_block_absorbed(self):
        result = post_process([
            _opt(0, _long("first"), Role.USER, 0.9),
            _opt(1, _long("second"), Role.AI, 0.3),
            _opt(2, _long("third"), Role.USER, 0.9),
        ])

        assert [b.role for b in result] == [Role.USER, Role.USER, Role.USER]
        assert result[1].confidence == pytest.approx(0.24)

    def test_confident_block_not_absorbed(self):
        result = post_process([
            _opt(0, _long("first"), Role.USER, 0.9),
            _opt(1, _long("second"), Role.AI, 0.7),
            _opt(2, _long("third"), Role.USER, 0.9),
        ])
        assert result[1].role == Role.AI

    def test_short_same_role_blocks_merged(self):
        result = post_process([
            _opt(0, "short one", Role.USER, 0.7),
            _opt(1, "short two", Role.USER, 0.5),
            _opt(2, _long("answer"), Role.AI, 0.9),
        ])

        assert len(result) == 2
        assert result[0].text == "short one\nshort two"
        assert result[0].confidence == 0.5
        assert result[0].end_line == 1
        assert result[1].id == 1

    def test_dedupe_keeps_higher_confidence(self):
        result = dedupe_neighbours([
            _opt(0, "The answer is 42.", Role.AI, 0.6),
            _opt(1, "The answer is 42. More details follow here.", Role.AI, 0.8),
        ])
        assert [b.text for b in result] == ["The answer is 42. More details follow here."]

    def test_dedupe_tie_keeps_earlier(self):
        result = dedupe_neighbours([
            _opt(0, "same text", Role.AI, 0.5),
            _opt(1, "same text", Role.AI, 0.5),
        ])
        assert [b.id for b in result] == [0]

    def test_dedupe_ignores_role_change(self):
        result = dedupe_neighbours([
            _opt(0, "same text", Role.USER, 0.5),
            _opt(1, "same text", Role.AI, 0.5),
        ])
        assert len(result) == 2

    def test_empty(self):
        assert post_process([]) == []
