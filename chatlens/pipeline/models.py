"""Data models for the conversation analysis pipeline.

These models define the contracts between pipeline stages. Every model is
frozen: a later stage derives a new instance carrying additional fields
instead of mutating the one it received.

Stage Flow:
1. Normalization        → str
2. Segmentation         → list[Block]
3. Feature Extraction   → list[FeaturedBlock]
4. Role Scoring         → list[ScoredBlock]
5. Sequence Optimizing  → list[OptimizedBlock]
6. Post-Processing      → list[OptimizedBlock]
7. Classification       → list[AnalyzedMessage]
8. Semantic Grouping    → list[SemanticGroup]
9. Group Smoothing      → AnalysisResult
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_serializer


# =============================================================================
# Enums
# =============================================================================

class Role(str, Enum):
    """Who authored a message span."""

    USER = "user"
    AI = "ai"


class BoundaryType(str, Enum):
    """How the segmenter opened a block."""

    HARD = "hard"          # Rule line, role marker, 2+ blank lines
    SOFT = "soft"          # Conditional split (question line, standalone URL, ...)
    INITIAL = "initial"    # First block of the input


class IntentTag(str, Enum):
    """Purpose of an utterance."""

    Q = "Q"                # Question
    CMD = "CMD"            # Instruction / request
    INFO = "INFO"          # Information
    CONFIRM = "CONFIRM"    # Confirmation / double-check
    ERROR = "ERROR"        # Error report
    PLAN = "PLAN"          # Plan / design
    META = "META"          # Talk about the conversation itself


class ArtifactTag(str, Enum):
    """Content type carried by a message."""

    CODE = "CODE"
    LOG = "LOG"
    PATH = "PATH"
    LINK = "LINK"
    TABLE = "TABLE"
    DOC = "DOC"
    IMAGE_REF = "IMAGE_REF"
    CONFLICT = "CONFLICT"


class ChatSource(str, Enum):
    """Chat product the pasted text was copied from."""

    CHATGPT = "ChatGPT"
    CLAUDE = "Claude"
    GEMINI = "Gemini"
    UNKNOWN = "Unknown"


# =============================================================================
# Stage 2: Segmentation
# =============================================================================

class Block(BaseModel):
    """A contiguous span of text produced by segmentation."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0, description="Dense sequential index")
    text: str = Field(description="Trimmed block text")
    start_line: int = Field(ge=0, description="First line (0-indexed) in the normalized text")
    end_line: int = Field(ge=0, description="Last line (inclusive)")
    boundary_type: BoundaryType = Field(description="Boundary that opened this block")


# =============================================================================
# Stage 3: Feature Extraction
# =============================================================================

class BlockFeatures(BaseModel):
    """Fixed-shape feature record for one block."""

    model_config = ConfigDict(frozen=True)

    char_count: int = Field(ge=0)
    line_count: int = Field(ge=0)
    avg_line_length: float = Field(ge=0.0)

    has_question: bool = False
    has_code_block: bool = False
    has_table: bool = False
    has_markdown_heading: bool = False
    has_bullet_list: bool = False
    has_url: bool = False
    has_file_path: bool = False
    has_command: bool = False
    has_error_keyword: bool = False
    has_japanese: bool = False
    has_polite_form: bool = False
    has_explanation_structure: bool = False
    has_imperative_form: bool = False
    has_user_marker: bool = False
    has_ai_marker: bool = False

    sentiment_score: float = Field(default=0.0, ge=0.0, le=1.0)
    technical_term_density: float = Field(default=0.0, ge=0.0)
    formality: float = Field(default=0.5, ge=0.0, le=1.0)


class FeaturedBlock(Block):
    """Block with its feature vector attached."""

    features: BlockFeatures


# =============================================================================
# Stage 4-5: Role Scoring and Sequence Optimization
# =============================================================================

class ScoredBlock(FeaturedBlock):
    """Block with additive role scores and a local AI probability."""

    score_user: float = Field(description="Sum of user-leaning signal points")
    score_ai: float = Field(description="Sum of AI-leaning signal points")
    p_ai: float = Field(ge=0.0, le=1.0, description="sigmoid(score_ai - score_user)")
    local_confidence: float = Field(ge=0.0, le=1.0)


class OptimizedBlock(ScoredBlock):
    """Block with the role chosen by the sequence optimizer."""

    role: Role
    confidence: float = Field(ge=0.0, le=1.0)


# =============================================================================
# Final output
# =============================================================================

class AnalyzedMessage(BaseModel):
    """Final analyzed message handed to the UI layer."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0)
    role: Role
    text: str
    confidence: float = Field(ge=0.0, le=1.0)
    intent: frozenset[IntentTag] = Field(default_factory=frozenset)
    artifact: frozenset[ArtifactTag] = Field(default_factory=frozenset)
    topic: list[str] = Field(default_factory=list, description="Topics, most relevant first")
    semantic_group_id: int = Field(default=0, ge=0)
    source_id: int = Field(default=0, ge=0, description="Index of the input this message came from")

    @field_serializer("intent", "artifact")
    def _serialize_tags(self, tags: frozenset) -> list[str]:
        # Sets have no stable order; sort so JSON output is byte-identical across runs
        return sorted(tag.value for tag in tags)


class GroupStats(BaseModel):
    """Occurrence counts aggregated over a semantic group."""

    model_config = ConfigDict(frozen=True)

    topics: dict[str, int] = Field(default_factory=dict)
    intents: dict[str, int] = Field(default_factory=dict)
    artifacts: dict[str, int] = Field(default_factory=dict)


class SemanticGroup(BaseModel):
    """A maximal run of consecutive, topically coherent messages."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0)
    span: tuple[int, int] = Field(description="[start_message_id, end_message_id], inclusive")
    summary_stats: GroupStats = Field(default_factory=GroupStats)

    @property
    def message_count(self) -> int:
        """Number of messages in this group."""
        return self.span[1] - self.span[0] + 1


class SourceDetection(BaseModel):
    """Which chat product produced the pasted text, and how sure we are."""

    model_config = ConfigDict(frozen=True)

    source: ChatSource = ChatSource.UNKNOWN
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    scores: dict[ChatSource, float] = Field(default_factory=dict, description="Raw score per source")


class AnalysisResult(BaseModel):
    """Complete output of ``analyze()``."""

    messages: list[AnalyzedMessage] = Field(default_factory=list)
    semantic_groups: list[SemanticGroup] = Field(default_factory=list)
    detected_source: SourceDetection = Field(default_factory=SourceDetection)
