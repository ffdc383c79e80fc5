"""Pipeline Orchestrator - Runs every stage of the conversation analysis.

Each input string (one pasted conversation or fragment) goes through the
per-input stages on its own:

    normalize → segment → features → role scores → Viterbi → post-process

The resulting blocks are concatenated, re-indexed globally and turned into
messages, after which the conversation-wide stages run once:

    cleanup → intent / artifacts / topics → semantic grouping → smoothing

The correction store is read once per call (weight deltas and user topics),
so every block of one call is scored against the same snapshot. Without a
store, scoring uses the built-in rule table only.

Failures degrade instead of aborting:
- store unreadable → built-in weights, no user topics
- an input fails in stages 1-6 → it contributes no messages
- grouping or smoothing fails → one group spanning every message
Anything else raises ``AnalysisError``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Sequence, Union

import structlog

from chatlens.config import Settings, get_settings
from chatlens.pipeline.models import AnalysisResult, AnalyzedMessage, OptimizedBlock, Role
from chatlens.pipeline.stages.artifacts import detect_artifacts
from chatlens.pipeline.stages.cleanup import remove_trailing_invitations
from chatlens.pipeline.stages.features import extract_all_features
from chatlens.pipeline.stages.grouping import build_group, group_messages, refresh_group_stats
from chatlens.pipeline.stages.intent import classify_intent
from chatlens.pipeline.stages.normalizer import NormalizationTrace, normalize_text
from chatlens.pipeline.stages.postprocess import post_process
from chatlens.pipeline.stages.scoring import score_all_blocks
from chatlens.pipeline.stages.segmenter import segment
from chatlens.pipeline.stages.sequence import TransitionParams, optimize_sequence
from chatlens.pipeline.stages.smoothing import smooth_groups
from chatlens.pipeline.stages.source import detect_source
from chatlens.pipeline.stages.topics import TopicClassifier

if TYPE_CHECKING:
    from chatlens.learning.store import CorrectionStore

logger = structlog.get_logger(__name__)


class AnalysisError(Exception):
    """Unexpected failure inside a pipeline stage."""
    pass


@dataclass
class PipelineTrace:
    """What each stage did during one ``analyze`` call."""
    inputs: int = 0
    normalization: list[NormalizationTrace] = field(default_factory=list)
    blocks_per_input: list[int] = field(default_factory=list)
    messages: int = 0
    groups: int = 0
    learned_deltas: int = 0
    user_topics: int = 0
    failed_inputs: list[int] = field(default_factory=list)
    grouping_failed: bool = False
    stage_durations: dict[str, float] = field(default_factory=dict)

    def add_duration(self, stage: str, started: datetime) -> None:
        elapsed = (datetime.now() - started).total_seconds()
        self.stage_durations[stage] = self.stage_durations.get(stage, 0.0) + elapsed


def analyze(
    inputs: Union[str, Sequence[str]],
    store: Optional["CorrectionStore"] = None,
    settings: Optional[Settings] = None,
) -> AnalysisResult:
    """Analyze one or more raw chat dumps.

    Args:
        inputs: A raw string, or several strings analysed as one conversation.
        store: Correction store providing learned deltas and user topics.
        settings: Thresholds (cached application settings if None).

    Returns:
        AnalysisResult with messages and semantic groups. Empty input gives
        an empty result.
    """
    result, _ = analyze_with_trace(inputs, store=store, settings=settings)
    return result


def analyze_with_trace(
    inputs: Union[str, Sequence[str]],
    store: Optional["CorrectionStore"] = None,
    settings: Optional[Settings] = None,
) -> tuple[AnalysisResult, PipelineTrace]:
    """Same as ``analyze`` but also returns the pipeline trace.

    Raises:
        AnalysisError: If a stage fails unexpectedly.
    """
    settings = settings or get_settings()
    texts = [inputs] if isinstance(inputs, str) else list(inputs)
    trace = PipelineTrace(inputs=len(texts))
    started = datetime.now()

    logger.info("analysis_start", inputs=len(texts), chars=sum(len(t) for t in texts))

    deltas, user_topics = _load_store_snapshot(store, trace)

    try:
        params = TransitionParams(initial_ai_prior=settings.initial_ai_prior)

        blocks: list[OptimizedBlock] = []
        sources: list[int] = []
        for source_id, text in enumerate(texts):
            try:
                processed = _run_block_stages(text, deltas, params, trace)
            except Exception as e:
                logger.error("input_failed", source_id=source_id, error=str(e), type=type(e).__name__)
                trace.failed_inputs.append(source_id)
                trace.blocks_per_input.append(0)
                continue
            blocks.extend(processed)
            sources.extend([source_id] * len(processed))

        messages = _run_classification(blocks, sources, user_topics, settings, trace)
        result = _run_grouping(messages, settings, trace)
        result = result.model_copy(update={"detected_source": detect_source("\n".join(texts))})

    except Exception as e:
        logger.error("analysis_failed", error=str(e), type=type(e).__name__)
        raise AnalysisError(f"Analysis failed: {e}") from e

    trace.add_duration("total", started)
    logger.info(
        "analysis_complete",
        messages=len(result.messages),
        groups=len(result.semantic_groups),
        user=sum(1 for m in result.messages if m.role == Role.USER),
        ai=sum(1 for m in result.messages if m.role == Role.AI),
        duration_seconds=round(trace.stage_durations["total"], 4),
    )
    return result, trace


def _load_store_snapshot(
    store: Optional["CorrectionStore"],
    trace: PipelineTrace,
) -> tuple[dict[str, float], dict[str, list[str]]]:
    """Read weight deltas and user topics once for the whole call."""
    if store is None:
        return {}, {}
    try:
        data = store.load()
    except Exception as e:
        logger.warning("store_snapshot_failed", error=str(e), type=type(e).__name__)
        return {}, {}
    deltas = dict(data.weight_deltas)
    user_topics = {entry.topic: list(entry.keywords) for entry in data.user_topics}
    trace.learned_deltas = len(deltas)
    trace.user_topics = len(user_topics)
    return deltas, user_topics


def _run_block_stages(
    text: str,
    deltas: dict[str, float],
    params: TransitionParams,
    trace: PipelineTrace,
) -> list[OptimizedBlock]:
    """Stages 1-6 for a single input."""
    stage_start = datetime.now()
    normalized = normalize_text(text)
    trace.normalization.append(normalized.trace)
    trace.add_duration("normalization", stage_start)

    stage_start = datetime.now()
    blocks = segment(normalized.text)
    trace.add_duration("segmentation", stage_start)

    stage_start = datetime.now()
    featured = extract_all_features(blocks)
    scored = score_all_blocks(featured, deltas)
    trace.add_duration("role_scoring", stage_start)

    stage_start = datetime.now()
    optimized = optimize_sequence(scored, params)
    trace.add_duration("sequence_optimization", stage_start)

    stage_start = datetime.now()
    processed = post_process(optimized)
    trace.add_duration("post_processing", stage_start)

    trace.blocks_per_input.append(len(processed))
    logger.info(
        "input_processed",
        blocks=len(blocks),
        messages=len(processed),
        junk_lines_removed=len(normalized.trace.junk_lines_removed),
    )
    return processed


def _run_classification(
    blocks: list[OptimizedBlock],
    sources: list[int],
    user_topics: dict[str, list[str]],
    settings: Settings,
    trace: PipelineTrace,
) -> list[AnalyzedMessage]:
    """Stage 7: cleanup plus intent, artifact and topic tags."""
    stage_start = datetime.now()
    topics = TopicClassifier(extra_topics=user_topics)

    messages = []
    for index, (block, source_id) in enumerate(zip(blocks, sources)):
        text = block.text
        if block.role == Role.AI and settings.strip_trailing_invitations:
            text = remove_trailing_invitations(text)
        messages.append(AnalyzedMessage(
            id=index,
            role=block.role,
            text=text,
            confidence=block.confidence,
            intent=classify_intent(text),
            artifact=detect_artifacts(text),
            topic=topics.detect(text),
            source_id=source_id,
        ))

    trace.messages = len(messages)
    trace.add_duration("classification", stage_start)
    return messages


def _run_grouping(
    messages: list[AnalyzedMessage],
    settings: Settings,
    trace: PipelineTrace,
) -> AnalysisResult:
    """Stages 8-9: semantic grouping and label smoothing."""
    try:
        stage_start = datetime.now()
        groups = group_messages(
            messages,
            threshold=settings.similarity_threshold,
            scan_chars=settings.vector_scan_chars,
            max_keywords=settings.max_keywords,
        )
        trace.add_duration("semantic_grouping", stage_start)

        stage_start = datetime.now()
        smoothed = smooth_groups(
            messages,
            groups,
            representative_ratio=settings.representative_topic_ratio,
            log_ratio=settings.log_group_ratio,
            answer_min_chars=settings.answer_min_chars,
        )
        groups = refresh_group_stats(groups, smoothed)
        trace.add_duration("group_smoothing", stage_start)
    except Exception as e:
        logger.error("grouping_failed", error=str(e), type=type(e).__name__)
        trace.grouping_failed = True
        smoothed = [m.model_copy(update={"semantic_group_id": 0}) for m in messages]
        groups = [build_group(0, 0, len(smoothed) - 1, smoothed)] if smoothed else []

    trace.groups = len(groups)
    return AnalysisResult(messages=smoothed, semantic_groups=groups)
