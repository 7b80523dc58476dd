# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pure scoring functions for memory strength, decay and ranking.

Nothing here performs I/O. Inputs are expected to be valid numbers in
their documented ranges; callers clamp before calling.

Strength:
    S = 3.0 * ln(1 + cited) + 2.5 * voice_arousal + 1.0 * text_arousal
        + 0.5 * llm_importance - 0.015 * retrieved_unused, floored at 0.5

Decay (Ebbinghaus):
    I(t) = S * exp(-rate * t / max(S, 1))

Stability grows with strength, so strongly encoded memories fade slower.
"""

import math
from dataclasses import dataclass

from tutormind.models.memory import StrategyOutcome

# Strength weights
W_REPETITION = 3.0
W_VOICE_AROUSAL = 2.5
W_TEXT_AROUSAL = 1.0
W_IMPORTANCE = 0.5
W_UNUSED_PENALTY = 0.015
MIN_STRENGTH = 0.5

OUTCOME_SCORES: dict[StrategyOutcome, float] = {
    StrategyOutcome.BREAKTHROUGH: 0.9,
    StrategyOutcome.PARTIAL_SUCCESS: 0.6,
    StrategyOutcome.NO_PROGRESS: 0.3,
    StrategyOutcome.CONFUSION: 0.1,
}

EMOTIONAL_BONUS_FACTOR = 0.2
POST_HOC_SUCCESS_ADJUSTMENT = 0.1
POST_HOC_FAILURE_ADJUSTMENT = -0.05
POST_HOC_AROUSAL_FACTOR = 0.1


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


def memory_strength(
    cited_count: int,
    voice_arousal: float,
    text_arousal: float,
    llm_importance: float,
    retrieved_unused_count: int,
) -> float:
    """Compute the strength a memory is encoded with.

    Non-decreasing in every positive signal, log-scaled in citations and
    non-increasing in unused retrievals.

    Args:
        cited_count: Times the memory was used in a response.
        voice_arousal: Prosody arousal, 0-1.
        text_arousal: Text-derived arousal, 0-1.
        llm_importance: Importance assigned at extraction, 0-1.
        retrieved_unused_count: Times surfaced without being cited.

    Returns:
        Strength, at least MIN_STRENGTH.
    """
    strength = (
        W_REPETITION * math.log1p(cited_count)
        + W_VOICE_AROUSAL * voice_arousal
        + W_TEXT_AROUSAL * text_arousal
        + W_IMPORTANCE * llm_importance
        - W_UNUSED_PENALTY * retrieved_unused_count
    )
    return max(MIN_STRENGTH, strength)


def decayed_importance(
    importance: float,
    elapsed_days: float,
    decay_rate: float,
) -> float:
    """Apply exponential forgetting to an importance value.

    Args:
        importance: Importance at the last touch (usually memory strength).
        elapsed_days: Days since the later of creation and last citation.
        decay_rate: Decay rate per day.

    Returns:
        Decayed importance, never negative.
    """
    if importance <= 0:
        return 0.0
    stability = max(importance, 1.0)
    return max(0.0, importance * math.exp(-decay_rate * max(0.0, elapsed_days) / stability))


def normalized_importance(importance: float) -> float:
    """Squash an unbounded importance into [0, 1) for ranking."""
    if importance <= 0:
        return 0.0
    return 1.0 - math.exp(-importance)


def recency_score(age_days: float, half_life_days: float) -> float:
    """Score recency as a half-life curve: 1.0 now, 0.5 after one half-life."""
    if half_life_days <= 0:
        return 0.0
    return 0.5 ** (max(0.0, age_days) / half_life_days)


def emotional_salience(arousal: float, valence: float) -> float:
    """Score how emotionally charged a memory is, 0-1.

    Arousal dominates; strongly valenced memories get up to 50% more.
    """
    return clamp(arousal * (1.0 + 0.5 * abs(valence)))


@dataclass(frozen=True)
class HybridWeights:
    """Weights of the hybrid ranking signals."""

    semantic: float = 0.5
    importance: float = 0.25
    recency: float = 0.15
    emotion: float = 0.1


def hybrid_rank(
    cosine_similarity: float | None,
    importance: float,
    recency: float,
    emotional_salience: float,
    weights: HybridWeights,
) -> float:
    """Blend ranking signals into one score.

    Without a query embedding the semantic weight is shared between
    importance and recency in proportion to their own weights.

    Args:
        cosine_similarity: Similarity to the query, or None when topic-less.
        importance: Normalised importance, 0-1.
        recency: Recency score, 0-1.
        emotional_salience: Emotional salience, 0-1.
        weights: Signal weights.

    Returns:
        Hybrid score.
    """
    w_importance = weights.importance
    w_recency = weights.recency

    if cosine_similarity is None:
        share = weights.importance + weights.recency
        if share > 0:
            w_importance += weights.semantic * weights.importance / share
            w_recency += weights.semantic * weights.recency / share
        semantic_term = 0.0
    else:
        semantic_term = weights.semantic * cosine_similarity

    return (
        semantic_term
        + w_importance * importance
        + w_recency * recency
        + weights.emotion * emotional_salience
    )


def running_average(
    old_score: float,
    times_used: int,
    new_outcome_score: float,
    emotional_bonus: float = 0.0,
) -> float:
    """Fold one more outcome into a running mean success score.

    Args:
        old_score: Current mean.
        times_used: Occurrences folded into old_score so far.
        new_outcome_score: Score of the new occurrence.
        emotional_bonus: Adjustment from the emotional change of the new
            occurrence, added to its score before averaging.

    Returns:
        Updated mean, within [0, 1].
    """
    occurrence = clamp(new_outcome_score + emotional_bonus)
    return clamp((old_score * times_used + occurrence) / (times_used + 1))


def outcome_score(outcome: StrategyOutcome) -> float:
    """Get the base success score of a strategy outcome."""
    return OUTCOME_SCORES[outcome]


def emotional_bonus(start_arousal: float | None, end_arousal: float | None) -> float:
    """Bonus for an arousal rise over an exchange. Missing ends count as 0.5."""
    start = 0.5 if start_arousal is None else start_arousal
    end = 0.5 if end_arousal is None else end_arousal
    return (end - start) * EMOTIONAL_BONUS_FACTOR


def post_hoc_adjustment(was_successful: bool, arousal_delta: float | None = None) -> float:
    """Fixed reinforcement step for a strategy, plus an arousal term."""
    step = POST_HOC_SUCCESS_ADJUSTMENT if was_successful else POST_HOC_FAILURE_ADJUSTMENT
    if arousal_delta:
        step += arousal_delta * POST_HOC_AROUSAL_FACTOR
    return step
