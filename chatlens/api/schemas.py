"""
Request and response schemas for the API.

Analysis results reuse the pipeline models directly; the schemas here only
wrap them with request options and stage timings.
"""

from typing import Optional

from pydantic import BaseModel, Field

from chatlens.pipeline.models import AnalyzedMessage, Role, SemanticGroup, SourceDetection


# =============================================================================
# Requests
# =============================================================================

class AnalyzeRequest(BaseModel):
    """Raw chat text to analyse."""
    inputs: list[str] = Field(..., min_length=1, description="One or more pasted conversations")
    use_store: bool = Field(default=True, description="Apply learned weights and user topics")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"inputs": ["User: How do I undo a commit?\nAI: Run git reset --soft HEAD~1."], "use_store": True}
            ]
        }
    }


class CorrectionRequest(BaseModel):
    """A role correction made in the UI."""
    text: str = Field(..., min_length=1, description="Text of the relabelled message")
    original_role: Role
    corrected_role: Role
    original_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    recompute: bool = Field(default=False, description="Recompute weights after storing")


class TopicRequest(BaseModel):
    """User-defined topic keywords."""
    topic: str = Field(..., min_length=1)
    keywords: list[str] = Field(..., min_length=1)


# =============================================================================
# Responses
# =============================================================================

class AnalyzeResponse(BaseModel):
    messages: list[AnalyzedMessage] = Field(default_factory=list)
    semantic_groups: list[SemanticGroup] = Field(default_factory=list)
    detected_source: SourceDetection = Field(default_factory=SourceDetection)
    message_count: int = 0
    group_count: int = 0
    learned_deltas: int = Field(default=0, description="Weight deltas applied while scoring")
    stage_durations: dict[str, float] = Field(default_factory=dict)


class CorrectionResponse(BaseModel):
    stored: bool = True
    active_features: list[str] = Field(default_factory=list)
    weight_deltas: Optional[dict[str, float]] = Field(
        None, description="New deltas when recompute was requested"
    )


class WeightsResponse(BaseModel):
    weight_deltas: dict[str, float] = Field(default_factory=dict)
    count: int = 0


class StoreStatsResponse(BaseModel):
    total_corrections: int
    role_corrections: int
    structure_corrections: int
    user_topics: int
    learned_features: int


class TopicItem(BaseModel):
    topic: str
    keywords: list[str]


class TopicListResponse(BaseModel):
    topics: list[TopicItem] = Field(default_factory=list)
    count: int = 0
