"""Stage 5: Sequence Optimization - Viterbi over {user, ai}.

Local scores alone flip-flop on ambiguous blocks. The optimizer picks the
role sequence with the lowest total cost, where

    cost = initial prior + Σ emission(block, role) + Σ transition(prev → role)

Emission is the negative log of the local probability. Transitions encode
turn-taking: alternation is cheap, a user writing several long blocks in a
row or an AI writing several short ones is expensive.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog

from chatlens.pipeline.models import OptimizedBlock, Role, ScoredBlock

logger = structlog.get_logger(__name__)

STATES: tuple[Role, Role] = (Role.USER, Role.AI)


@dataclass(frozen=True)
class TransitionParams:
    """Tunable costs of the role transition model."""
    user_to_ai: float = 0.1
    ai_to_user: float = 0.1
    user_to_user_base: float = 0.3
    ai_to_ai_base: float = 0.3
    # user → ai gets cheaper when the previous block asked or complained
    question_bonus: float = 0.3
    error_bonus: float = 0.2
    imperative_bonus: float = 0.2
    user_to_ai_floor: float = -0.5
    # Extra cost of starting the conversation with the AI
    initial_ai_prior: float = 0.5


DEFAULT_PARAMS = TransitionParams()

MIN_PROBABILITY = 0.001
AGREEMENT_BOOST = 1.2
DISAGREEMENT_PENALTY = 0.6


def transition_cost(
    from_role: Role,
    to_role: Role,
    block: ScoredBlock,
    prev_block: Optional[ScoredBlock],
    params: TransitionParams = DEFAULT_PARAMS,
) -> float:
    """Cost of moving from ``from_role`` to ``to_role`` when entering ``block``."""
    char_count = block.features.char_count

    if from_role == Role.USER and to_role == Role.AI:
        cost = params.user_to_ai
        if prev_block is not None:
            if prev_block.features.has_question:
                cost -= params.question_bonus
            if prev_block.features.has_error_keyword:
                cost -= params.error_bonus
            if prev_block.features.has_imperative_form:
                cost -= params.imperative_bonus
        return max(cost, params.user_to_ai_floor)

    if from_role == Role.AI and to_role == Role.USER:
        return params.ai_to_user

    if from_role == Role.USER:
        # Consecutive user blocks are plausible only when short
        if char_count < 50:
            return params.user_to_user_base * 0.5
        if char_count < 100:
            return params.user_to_user_base
        return params.user_to_user_base * 2.5

    # ai → ai: long continuation is natural
    if char_count > 200:
        return params.ai_to_ai_base * 0.5
    if char_count > 100:
        return params.ai_to_ai_base
    return params.ai_to_ai_base * 2.5


def emission_cost(block: ScoredBlock, role: Role) -> float:
    """Negative log-likelihood of ``role`` under the block's local score."""
    p = block.p_ai if role == Role.AI else 1.0 - block.p_ai
    return -math.log(max(p, MIN_PROBABILITY))


def path_cost(
    blocks: Sequence[ScoredBlock],
    roles: Sequence[Role],
    params: TransitionParams = DEFAULT_PARAMS,
) -> float:
    """Total cost of assigning ``roles`` to ``blocks``.

    This is the objective ``optimize_sequence`` minimizes.
    """
    if len(blocks) != len(roles):
        raise ValueError("blocks and roles must have the same length")
    total = 0.0
    for i, (block, role) in enumerate(zip(blocks, roles)):
        total += emission_cost(block, role)
        if i == 0:
            if role == Role.AI:
                total += params.initial_ai_prior
        else:
            total += transition_cost(roles[i - 1], role, block, blocks[i - 1], params)
    return total


def _confidence(block: ScoredBlock, role: Role) -> float:
    agrees = (role == Role.AI) == (block.p_ai > 0.5)
    if agrees:
        confidence = min(block.local_confidence * AGREEMENT_BOOST, 1.0)
    else:
        confidence = block.local_confidence * DISAGREEMENT_PENALTY
    return round(confidence, 2)


def optimize_sequence(
    blocks: list[ScoredBlock],
    params: TransitionParams = DEFAULT_PARAMS,
) -> list[OptimizedBlock]:
    """Find the minimum-cost role sequence with Viterbi.

    Args:
        blocks: Scored blocks in document order.
        params: Transition model.

    Returns:
        OptimizedBlocks carrying the chosen role and a sequence-aware
        confidence. Ties resolve toward ``user``.
    """
    if not blocks:
        return []

    n = len(blocks)
    # cost[i][s]: cheapest total cost with block i in state s
    cost = [[0.0, 0.0] for _ in range(n)]
    back = [[0, 0] for _ in range(n)]

    for s, role in enumerate(STATES):
        cost[0][s] = emission_cost(blocks[0], role)
        if role == Role.AI:
            cost[0][s] += params.initial_ai_prior

    for i in range(1, n):
        for s, role in enumerate(STATES):
            emission = emission_cost(blocks[i], role)
            best_cost = math.inf
            best_prev = 0
            for p, prev_role in enumerate(STATES):
                total = cost[i - 1][p] + transition_cost(prev_role, role, blocks[i], blocks[i - 1], params) + emission
                # Strict comparison keeps the earlier state (user) on ties
                if total < best_cost:
                    best_cost = total
                    best_prev = p
            cost[i][s] = best_cost
            back[i][s] = best_prev

    path = [0] * n
    path[-1] = 1 if cost[-1][1] < cost[-1][0] else 0
    for i in range(n - 2, -1, -1):
        path[i] = back[i + 1][path[i + 1]]

    optimized = []
    for block, state in zip(blocks, path):
        role = STATES[state]
        optimized.append(OptimizedBlock(
            **block.model_dump(exclude={"features"}),
            features=block.features,
            role=role,
            confidence=_confidence(block, role),
        ))

    logger.debug(
        "sequence_optimized",
        blocks=n,
        user=sum(1 for b in optimized if b.role == Role.USER),
        ai=sum(1 for b in optimized if b.role == Role.AI),
        total_cost=round(min(cost[-1]), 4),
    )
    return optimized
