"""Stage 9: Group Smoothing - Propagate representative labels inside groups.

Per group:
1. Representative topics (present in ≥30% of messages) fill empty topic
   lists and are appended where missing. Topics are never removed.
2. User Q followed by a long AI answer: the answer gains INFO unless it
   already carries INFO or PLAN.
3. User ERROR followed by an AI message: the AI message gains BUG.
4. LOG in ≥50% of the group's messages: every message gains BUG.
5. Every message is stamped with its group id.
"""

from collections import Counter

import structlog

from chatlens.pipeline.models import AnalyzedMessage, ArtifactTag, IntentTag, Role, SemanticGroup

logger = structlog.get_logger(__name__)

REPRESENTATIVE_TOPIC_RATIO = 0.3
LOG_GROUP_RATIO = 0.5
ANSWER_MIN_CHARS = 100
BUG_TOPIC = "BUG"


def _representative_topics(messages: list[AnalyzedMessage], ratio: float) -> list[str]:
    counts = Counter(t for m in messages for t in m.topic)
    size = len(messages)
    # Counter preserves first-seen order, so ties stay in conversation order
    return [topic for topic, count in sorted(counts.items(), key=lambda kv: -kv[1]) if count / size >= ratio]


def _with_topics(topics: list[str], extra: list[str]) -> list[str]:
    return topics + [t for t in extra if t not in topics]


def smooth_groups(
    messages: list[AnalyzedMessage],
    groups: list[SemanticGroup],
    representative_ratio: float = REPRESENTATIVE_TOPIC_RATIO,
    log_ratio: float = LOG_GROUP_RATIO,
    answer_min_chars: int = ANSWER_MIN_CHARS,
) -> list[AnalyzedMessage]:
    """Smooth labels within each semantic group.

    Args:
        messages: Classified messages.
        groups: Partition of ``messages`` from semantic grouping.

    Returns:
        New messages with smoothed topics/intents and ``semantic_group_id`` set.
    """
    topics = [list(m.topic) for m in messages]
    intents = [set(m.intent) for m in messages]

    for group in groups:
        start, end = group.span
        members = messages[start:end + 1]

        representatives = _representative_topics(members, representative_ratio)
        if representatives:
            for i in range(start, end + 1):
                topics[i] = _with_topics(topics[i], representatives)

        for i in range(start, end):
            curr, nxt = messages[i], messages[i + 1]
            if curr.role != Role.USER or nxt.role != Role.AI:
                continue
            if (
                IntentTag.Q in curr.intent
                and len(nxt.text) > answer_min_chars
                and not intents[i + 1] & {IntentTag.INFO, IntentTag.PLAN}
            ):
                intents[i + 1].add(IntentTag.INFO)
            if IntentTag.ERROR in curr.intent:
                topics[i + 1] = _with_topics(topics[i + 1], [BUG_TOPIC])

        log_count = sum(1 for m in members if ArtifactTag.LOG in m.artifact)
        if log_count / len(members) >= log_ratio:
            for i in range(start, end + 1):
                topics[i] = _with_topics(topics[i], [BUG_TOPIC])

    group_of = {}
    for group in groups:
        for i in range(group.span[0], group.span[1] + 1):
            group_of[i] = group.id

    smoothed = [
        m.model_copy(update={
            "topic": topics[i],
            "intent": frozenset(intents[i]),
            "semantic_group_id": group_of.get(i, 0),
        })
        for i, m in enumerate(messages)
    ]
    logger.debug("group_smoothing_complete", groups=len(groups))
    return smoothed
