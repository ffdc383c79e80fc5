"""Conversation analysis pipeline.

Stages run strictly in order, each returning new immutable values:
normalize, segment, extract features, score roles, optimize the role
sequence, post-process, classify, group and smooth.

Usage:
    from chatlens.pipeline import analyze

    result = analyze("User: hi\nAI: hello there")
    print([m.role.value for m in result.messages])
"""

from chatlens.pipeline.orchestrator import AnalysisError, PipelineTrace, analyze, analyze_with_trace
from chatlens.pipeline.models import (
    # Enums
    Role,
    BoundaryType,
    IntentTag,
    ArtifactTag,
    ChatSource,
    # Stage contracts
    Block,
    BlockFeatures,
    FeaturedBlock,
    ScoredBlock,
    OptimizedBlock,
    # Output
    AnalyzedMessage,
    GroupStats,
    SemanticGroup,
    SourceDetection,
    AnalysisResult,
)

__all__ = [
    # Entry points
    "analyze",
    "analyze_with_trace",
    "AnalysisError",
    "PipelineTrace",
    # Enums
    "Role",
    "BoundaryType",
    "IntentTag",
    "ArtifactTag",
    "ChatSource",
    # Stage contracts
    "Block",
    "BlockFeatures",
    "FeaturedBlock",
    "ScoredBlock",
    "OptimizedBlock",
    # Output
    "AnalyzedMessage",
    "GroupStats",
    "SemanticGroup",
    "SourceDetection",
    "AnalysisResult",
]
