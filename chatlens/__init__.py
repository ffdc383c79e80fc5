"""chatlens - Reconstruct structured conversations from raw AI-chat dumps.

Usage:
    from chatlens import analyze

    result = analyze(open("chat.txt").read())
    for message in result.messages:
        print(message.role.value, message.topic, message.text[:40])
"""

from chatlens.learning import (
    CorrectionRecord,
    CorrectionStore,
    build_correction,
    record_role_correction,
    recompute_weights,
)
from chatlens.pipeline import AnalysisError, AnalysisResult, AnalyzedMessage, Role, SemanticGroup, analyze

__version__ = "0.1.0"

__all__ = [
    "analyze",
    "AnalysisError",
    "AnalysisResult",
    "AnalyzedMessage",
    "SemanticGroup",
    "Role",
    "CorrectionRecord",
    "CorrectionStore",
    "build_correction",
    "record_role_correction",
    "recompute_weights",
]
