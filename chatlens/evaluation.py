"""Evaluation harness - Score the pipeline against labelled conversations.

Fixture file: JSON list of cases

    [{"id": "tc01", "name": "...", "raw_text": "...",
      "expected_messages": [{"role": "user", "text": "..."}, ...],
      "expected_boundary_count": 2}]

Metrics per case:
- Role accuracy: expected messages whose best-matching detected message
  has the same role. Matching is fuzzy (rapidfuzz partial ratio on the
  first 50 characters) because the pipeline trims markers and invitations.
- Boundary score: 1 - |detected - expected| / max(detected, expected)
- Overall: 0.6 * role accuracy + 0.4 * boundary score
"""

import json
from pathlib import Path
from typing import Optional, Sequence

import structlog
from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from rapidfuzz import fuzz, process, utils

from chatlens.config import Settings
from chatlens.pipeline.models import AnalyzedMessage, Role
from chatlens.pipeline.orchestrator import analyze

logger = structlog.get_logger(__name__)

SNIPPET_CHARS = 50
MATCH_CUTOFF = 80.0
ROLE_WEIGHT = 0.6
BOUNDARY_WEIGHT = 0.4
PASS_THRESHOLD = 0.7


class EvaluationError(Exception):
    """Fixture file missing or malformed."""
    pass


class LabelledMessage(BaseModel):
    role: Role
    text: str


class EvaluationCase(BaseModel):
    """One labelled conversation."""

    id: str
    name: str
    description: str = ""
    raw_text: str
    expected_messages: list[LabelledMessage] = Field(default_factory=list)
    expected_boundary_count: int = Field(ge=0)


class CaseResult(BaseModel):
    id: str
    name: str
    detected_count: int
    expected_count: int
    role_accuracy: float
    boundary_score: float
    overall_score: float
    details: list[str] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.overall_score >= PASS_THRESHOLD


class EvaluationReport(BaseModel):
    """Per-case results and averages."""

    results: list[CaseResult] = Field(default_factory=list)
    avg_role_accuracy: float = 0.0
    avg_boundary_score: float = 0.0
    avg_overall_score: float = 0.0
    passing: int = 0


def load_cases(path: Path | str) -> list[EvaluationCase]:
    """Load labelled cases from a JSON fixture file.

    Raises:
        EvaluationError: If the file cannot be read or does not validate.
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise EvaluationError(f"Cannot read fixtures from {path}: {e}") from e

    try:
        return TypeAdapter(list[EvaluationCase]).validate_python(raw)
    except ValidationError as e:
        raise EvaluationError(f"Invalid fixtures in {path}: {e.error_count()} errors") from e


def compute_role_accuracy(
    detected: Sequence[AnalyzedMessage],
    expected: Sequence[LabelledMessage],
) -> tuple[float, list[str]]:
    """Fraction of expected messages matched to a detected message of the same role.

    Returns:
        Tuple of (accuracy, human-readable mismatch details).
    """
    if not expected:
        return 1.0, []
    if not detected:
        return 0.0, ["No messages detected"]

    texts = [m.text for m in detected]
    correct = 0
    details = []

    for exp in expected:
        snippet = exp.text[:SNIPPET_CHARS]
        match = process.extractOne(
            snippet,
            texts,
            scorer=fuzz.partial_ratio,
            processor=utils.default_process,
            score_cutoff=MATCH_CUTOFF,
        )
        if match is None:
            details.append(f'"{exp.text[:40]}" not found in detected messages')
            continue

        _, _, index = match
        got = detected[index].role
        if got == exp.role:
            correct += 1
        else:
            details.append(f'"{exp.text[:40]}" expected={exp.role.value} got={got.value}')

    return correct / len(expected), details


def compute_boundary_score(detected: int, expected: int) -> float:
    """How close the detected message count is to the expected one."""
    if expected == 0:
        return 1.0 if detected == 0 else 0.0
    return max(0.0, 1.0 - abs(detected - expected) / max(detected, expected))


def evaluate_case(case: EvaluationCase, settings: Optional[Settings] = None) -> CaseResult:
    """Run the pipeline on one case and score it.

    The store is not consulted so that results do not depend on what a
    user taught the local installation.
    """
    result = analyze(case.raw_text, store=None, settings=settings)
    accuracy, details = compute_role_accuracy(result.messages, case.expected_messages)
    boundary = compute_boundary_score(len(result.messages), case.expected_boundary_count)

    return CaseResult(
        id=case.id,
        name=case.name,
        detected_count=len(result.messages),
        expected_count=case.expected_boundary_count,
        role_accuracy=accuracy,
        boundary_score=boundary,
        overall_score=ROLE_WEIGHT * accuracy + BOUNDARY_WEIGHT * boundary,
        details=details,
    )


def evaluate(cases: Sequence[EvaluationCase], settings: Optional[Settings] = None) -> EvaluationReport:
    """Score every case and aggregate the averages."""
    results = [evaluate_case(case, settings) for case in cases]
    if not results:
        return EvaluationReport()

    n = len(results)
    report = EvaluationReport(
        results=results,
        avg_role_accuracy=sum(r.role_accuracy for r in results) / n,
        avg_boundary_score=sum(r.boundary_score for r in results) / n,
        avg_overall_score=sum(r.overall_score for r in results) / n,
        passing=sum(1 for r in results if r.passed),
    )
    logger.info(
        "evaluation_complete",
        cases=n,
        avg_role_accuracy=round(report.avg_role_accuracy, 3),
        avg_overall_score=round(report.avg_overall_score, 3),
        passing=report.passing,
    )
    return report
