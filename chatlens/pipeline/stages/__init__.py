"""Pipeline stages, one module per stage."""

from chatlens.pipeline.stages.normalizer import normalize, normalize_text
from chatlens.pipeline.stages.segmenter import segment
from chatlens.pipeline.stages.features import extract_all_features, extract_features
from chatlens.pipeline.stages.scoring import score_all_blocks, score_block
from chatlens.pipeline.stages.sequence import optimize_sequence
from chatlens.pipeline.stages.postprocess import post_process
from chatlens.pipeline.stages.cleanup import remove_trailing_invitations
from chatlens.pipeline.stages.intent import classify_intent
from chatlens.pipeline.stages.artifacts import detect_artifacts
from chatlens.pipeline.stages.topics import TopicClassifier, detect_topics, detect_topics_detailed
from chatlens.pipeline.stages.grouping import group_messages
from chatlens.pipeline.stages.smoothing import smooth_groups
from chatlens.pipeline.stages.source import detect_source

__all__ = [
    "normalize",
    "normalize_text",
    "segment",
    "extract_features",
    "extract_all_features",
    "score_block",
    "score_all_blocks",
    "optimize_sequence",
    "post_process",
    "remove_trailing_invitations",
    "classify_intent",
    "detect_artifacts",
    "TopicClassifier",
    "detect_topics",
    "detect_topics_detailed",
    "group_messages",
    "smooth_groups",
    "detect_source",
]
