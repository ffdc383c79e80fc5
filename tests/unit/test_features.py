"""Unit tests for feature extraction."""

import pytest

from chatlens.pipeline.models import Block, BoundaryType
from chatlens.pipeline.stages.features import extract_all_features, extract_features


def _block(text: str, index: int = 0) -> Block:
    return Block(id=index, text=text, start_line=index, end_line=index, boundary_type=BoundaryType.INITIAL)


class TestExtractFeatures:
    """Tests for per-block features."""

    def test_question(self):
        f = extract_features(_block("How do I fix this?"))
        assert f.has_question
        assert not f.has_imperative_form
        assert f.char_count == 18
        assert f.line_count == 1

    def test_japanese_question_word(self):
        assert extract_features(_block("なぜ動かないのか教えて")).has_question

    def test_code_block(self):
        f = extract_features(_block("```python\nprint('hi')\n```"))
        assert f.has_code_block

    def test_markdown_structure(self):
        f = extract_features(_block("## Title\n- one\n- two"))
        assert f.has_markdown_heading
        assert f.has_bullet_list
        assert f.line_count == 3

    def test_table(self):
        assert extract_features(_block("| a | b |\n| 1 | 2 |")).has_table

    def test_url_path_and_command(self):
        assert extract_features(_block("see https://example.com/x")).has_url
        assert extract_features(_block("open ~/project/app.py")).has_file_path
        assert extract_features(_block("$ npm install react")).has_command

    def test_error_keywords(self):
        assert extract_features(_block("I got an error: ENOENT")).has_error_keyword
        assert extract_features(_block("アプリが落ちる")).has_error_keyword
        assert not extract_features(_block("All good here")).has_error_keyword

    def test_polite_japanese_raises_formality(self):
        f = extract_features(_block("これはテストです。"))
        assert f.has_japanese
        assert f.has_polite_form
        assert f.formality == pytest.approx(0.8)

    def test_casual_speech_lowers_formality(self):
        assert extract_features(_block("lol this is broken")).formality == pytest.approx(0.2)

    def test_imperative(self):
        assert extract_features(_block("fix the login bug")).has_imperative_form
        assert extract_features(_block("Please check the docs")).has_imperative_form
        assert extract_features(_block("このコードを直して")).has_imperative_form

    def test_explanation_structure(self):
        assert extract_features(_block("For example, use a list.")).has_explanation_structure
        assert extract_features(_block("つまり、キャッシュの問題です。")).has_explanation_structure

    def test_role_label_prefix(self):
        assert extract_features(_block("User: hello")).has_user_marker
        assert extract_features(_block("AI: hi")).has_ai_marker
        assert not extract_features(_block("hello")).has_user_marker

    def test_technical_density(self):
        f = extract_features(_block("React and TypeScript with Docker"))
        assert f.technical_term_density == pytest.approx(3 / 5)

    def test_sentiment_capped(self):
        assert extract_features(_block("wow!!!")).sentiment_score == pytest.approx(1.0)
        assert extract_features(_block("calm sentence")).sentiment_score == 0.0

    def test_empty_block(self):
        f = extract_features(_block(""))
        assert f.char_count == 0
        assert f.line_count == 0
        assert f.avg_line_length == 0.0


class TestExtractAllFeatures:
    """Tests for the stage entry point."""

    def test_block_fields_preserved(self):
        blocks = [_block("How?", 0), _block("Because.", 1)]
        featured = extract_all_features(blocks)

        assert [b.id for b in featured] == [0, 1]
        assert [b.text for b in featured] == ["How?", "Because."]
        assert featured[0].features.has_question
        assert not featured[1].features.has_question
