# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Voice-prosody emotion processing for memory scoring.

Converts per-sample prosody scores (emotion name -> 0-1) into the signals
the memory engine stores on each record: arousal, valence and a dominant
emotion tag. Also derives the start/end/peak arousal summary of a
transcript used by strategy extraction.

Example:
    >>> processed = process_emotion_scores({"Determination": 0.6, "Excitement": 0.5})
    >>> processed.is_high_priority
    True
    >>> processed.priority_reason
    'breakthrough_moment'
"""

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from tutormind.core.emotional.constants import (
    HIGH_AROUSAL_EMOTIONS,
    LOW_AROUSAL_EMOTIONS,
    MEDIUM_AROUSAL_EMOTIONS,
    MEMORY_EMOTION_MAP,
    NEGATIVE_EMOTIONS,
    POSITIVE_EMOTIONS,
    TEXT_AROUSAL_WEIGHT,
    TOP_EMOTIONS_COUNT,
    VOICE_AROUSAL_WEIGHT,
    ArousalWeights,
    PriorityThresholds,
)
from tutormind.models.memory import ConversationTurn, EmotionSummary


@dataclass
class ProcessedEmotions:
    """Memory-relevant view of one prosody sample.

    Attributes:
        arousal: Emotional intensity, 0-1.
        valence: Emotional direction, -1 to 1.
        dominant_emotion: Strongest prosody label.
        dominant_score: Score of the dominant label.
        is_high_priority: Whether the moment should always surface.
        priority_reason: Why the moment is high priority.
        top_emotions: Strongest labels with scores, descending.
    """

    arousal: float = ArousalWeights.BASELINE
    valence: float = 0.0
    dominant_emotion: str = "neutral"
    dominant_score: float = 0.0
    is_high_priority: bool = False
    priority_reason: str = "no_emotion_data"
    top_emotions: list[tuple[str, float]] = field(default_factory=list)

    @property
    def memory_emotion(self) -> str:
        """Get the memory emotion tag for the dominant label."""
        return map_to_memory_emotion(self.dominant_emotion)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def process_emotion_scores(scores: Mapping[str, float] | None) -> ProcessedEmotions:
    """Convert prosody scores into arousal, valence and priority.

    Arousal starts from a 0.5 baseline, adds each grouped emotion's score
    times its group weight and is normalised by the number of grouped
    emotions. Valence is (positive - negative) / (positive + negative).

    Args:
        scores: Emotion name to score (0-1). None or empty yields neutral.

    Returns:
        ProcessedEmotions for the sample.
    """
    if not scores:
        return ProcessedEmotions()

    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    dominant_emotion, dominant_score = ranked[0]

    arousal = ArousalWeights.BASELINE
    grouped = 0
    for emotion, score in ranked:
        if emotion in HIGH_AROUSAL_EMOTIONS:
            arousal += score * ArousalWeights.HIGH
        elif emotion in MEDIUM_AROUSAL_EMOTIONS:
            arousal += score * ArousalWeights.MEDIUM
        elif emotion in LOW_AROUSAL_EMOTIONS:
            arousal += score * ArousalWeights.LOW
        else:
            continue
        grouped += 1

    if grouped:
        arousal = _clamp(arousal / grouped, 0.0, 1.0)

    positive = sum(s for e, s in ranked if e in POSITIVE_EMOTIONS)
    negative = sum(s for e, s in ranked if e in NEGATIVE_EMOTIONS)
    total = positive + negative
    valence = (positive - negative) / total if total > 0 else 0.0

    # Later triggers override earlier reasons
    is_high_priority = False
    priority_reason = "normal"

    if arousal > PriorityThresholds.HIGH_AROUSAL:
        is_high_priority = True
        priority_reason = f"high_arousal_{arousal:.2f}"

    if (
        negative > PriorityThresholds.STRONG_NEGATIVE_SUM
        and dominant_score > PriorityThresholds.STRONG_NEGATIVE_DOMINANT
    ):
        is_high_priority = True
        priority_reason = f"strong_negative_{dominant_emotion}"

    if (
        scores.get("Determination", 0.0) > PriorityThresholds.BREAKTHROUGH_DETERMINATION
        and scores.get("Excitement", 0.0) > PriorityThresholds.BREAKTHROUGH_EXCITEMENT
    ):
        is_high_priority = True
        priority_reason = "breakthrough_moment"

    if (
        scores.get("Pain", 0.0) > PriorityThresholds.PAIN
        or scores.get("Distress", 0.0) > PriorityThresholds.DISTRESS
    ):
        is_high_priority = True
        priority_reason = "emotional_struggle"

    return ProcessedEmotions(
        arousal=arousal,
        valence=valence,
        dominant_emotion=dominant_emotion,
        dominant_score=dominant_score,
        is_high_priority=is_high_priority,
        priority_reason=priority_reason,
        top_emotions=ranked[:TOP_EMOTIONS_COUNT],
    )


def average_emotion_history(history: Sequence[Mapping[str, float]]) -> ProcessedEmotions:
    """Average a series of prosody samples, then process the average.

    A label missing from a sample counts as 0 for that sample.
    """
    if not history:
        return process_emotion_scores({})

    combined: dict[str, float] = {}
    for sample in history:
        for emotion, score in sample.items():
            combined[emotion] = combined.get(emotion, 0.0) + score

    averaged = {emotion: total / len(history) for emotion, total in combined.items()}
    return process_emotion_scores(averaged)


def map_to_memory_emotion(label: str | None) -> str:
    """Map a prosody label onto a memory emotion tag."""
    if not label:
        return "neutral"
    return MEMORY_EMOTION_MAP.get(label, "neutral")


def combine_arousal(voice_arousal: float | None, text_arousal: float | None) -> float:
    """Blend voice and text arousal, favouring the voice signal.

    When only one signal is present it is used alone.
    """
    if voice_arousal is None and text_arousal is None:
        return ArousalWeights.BASELINE
    if voice_arousal is None:
        return _clamp(text_arousal, 0.0, 1.0)
    if text_arousal is None:
        return _clamp(voice_arousal, 0.0, 1.0)
    combined = voice_arousal * VOICE_AROUSAL_WEIGHT + text_arousal * TEXT_AROUSAL_WEIGHT
    return _clamp(combined, 0.0, 1.0)


def summarize_transcript_emotions(turns: Sequence[ConversationTurn]) -> EmotionSummary:
    """Derive the emotional trajectory of a transcript.

    Only learner turns carrying prosody scores contribute.

    Args:
        turns: Transcript in order.

    Returns:
        EmotionSummary. All arousal fields are None when no turn carries scores.
    """
    samples: list[tuple[ConversationTurn, ProcessedEmotions]] = [
        (turn, process_emotion_scores(turn.emotions))
        for turn in turns
        if turn.role == "user" and turn.emotions
    ]
    if not samples:
        return EmotionSummary()

    arousals = [p.arousal for _, p in samples]
    peak_turn, peak = max(samples, key=lambda s: s[1].arousal)
    averaged = average_emotion_history([t.emotions for t, _ in samples if t.emotions])

    return EmotionSummary(
        start_arousal=arousals[0],
        end_arousal=arousals[-1],
        peak_arousal=peak.arousal,
        average_arousal=sum(arousals) / len(arousals),
        peak_moment=peak_turn.content[:200],
        dominant_emotions=[map_to_memory_emotion(e) for e, _ in averaged.top_emotions[:3]],
    )
