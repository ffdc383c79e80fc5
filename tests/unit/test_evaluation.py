"""Unit tests for the evaluation harness."""

from pathlib import Path

import pytest

from chatlens.evaluation import (
    EvaluationCase,
    EvaluationError,
    LabelledMessage,
    compute_boundary_score,
    compute_role_accuracy,
    evaluate,
    evaluate_case,
    load_cases,
)
from chatlens.pipeline.models import AnalyzedMessage, Role

FIXTURES = Path(__file__).parent.parent / "fixtures" / "conversations.json"


def _message(index: int, role: Role, text: str) -> AnalyzedMessage:
    return AnalyzedMessage(id=index, role=role, text=text, confidence=1.0)


class TestMetrics:
    """Tests for the scoring functions."""

    @pytest.mark.parametrize("detected,expected,score", [
        (4, 4, 1.0),
        (2, 4, 0.5),
        (6, 3, 0.5),
        (0, 0, 1.0),
        (3, 0, 0.0),
    ])
    def test_boundary_score(self, detected, expected, score):
        assert compute_boundary_score(detected, expected) == pytest.approx(score)

    def test_role_accuracy_fuzzy_match(self):
        detected = [
            _message(0, Role.USER, "How do I undo my last git commit?"),
            _message(1, Role.USER, "Run git reset --soft HEAD~1 to undo the last commit."),
        ]
        expected = [
            LabelledMessage(role=Role.USER, text="how do i undo my last git commit"),
            LabelledMessage(role=Role.AI, text="Run git reset --soft HEAD~1 to undo the last commit."),
        ]

        accuracy, details = compute_role_accuracy(detected, expected)
        assert accuracy == pytest.approx(0.5)
        assert len(details) == 1
        assert "expected=ai got=user" in details[0]

    def test_role_accuracy_unmatched(self):
        accuracy, details = compute_role_accuracy(
            [_message(0, Role.USER, "hello")],
            [LabelledMessage(role=Role.AI, text="completely unrelated paragraph about kubernetes")],
        )
        assert accuracy == 0.0
        assert "not found" in details[0]

    def test_role_accuracy_edge_cases(self):
        assert compute_role_accuracy([], []) == (1.0, [])
        assert compute_role_accuracy([], [LabelledMessage(role=Role.AI, text="x")])[0] == 0.0


class TestLoadCases:
    """Tests for fixture loading."""

    def test_loads_fixture_file(self):
        cases = load_cases(FIXTURES)
        assert [c.id for c in cases] == ["tc01", "tc02", "tc03"]
        assert cases[0].expected_messages[0].role == Role.USER

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("[{", encoding="utf-8")
        with pytest.raises(EvaluationError):
            load_cases(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(EvaluationError):
            load_cases(tmp_path / "absent.json")

    def test_schema_violation(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text('[{"id": "x", "name": "x"}]', encoding="utf-8")
        with pytest.raises(EvaluationError):
            load_cases(path)


class TestEvaluate:
    """Tests for running the pipeline against labelled cases."""

    def test_fixture_cases_pass(self, settings):
        report = evaluate(load_cases(FIXTURES), settings=settings)

        assert report.passing == 3
        assert report.avg_role_accuracy == pytest.approx(1.0)
        assert report.avg_boundary_score == pytest.approx(1.0)
        for result in report.results:
            assert result.passed
            assert result.details == []

    def test_boundary_miss_lowers_overall(self, settings):
        case = EvaluationCase(
            id="x",
            name="wrong count",
            raw_text="User: hi\nAI: hello there",
            expected_messages=[LabelledMessage(role=Role.USER, text="hi")],
            expected_boundary_count=4,
        )
        result = evaluate_case(case, settings=settings)

        assert result.detected_count == 2
        assert result.boundary_score == pytest.approx(0.5)
        assert result.overall_score == pytest.approx(0.6 + 0.4 * 0.5)

    def test_empty_case_list(self):
        report = evaluate([])
        assert report.results == []
        assert report.passing == 0
