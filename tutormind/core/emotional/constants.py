# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Constants for voice-prosody emotion processing.

Emotion names follow the prosody model's labels (capitalized). Memory
records store the lower-case tags produced by map_to_memory_emotion.
"""

HIGH_AROUSAL_EMOTIONS = frozenset(
    {
        "Excitement",
        "Determination",
        "Anger",
        "Fear",
        "Distress",
        "Pain",
        "Awe",
        "Ecstasy",
        "Triumph",
    }
)

MEDIUM_AROUSAL_EMOTIONS = frozenset(
    {
        "Interest",
        "Concentration",
        "Curiosity",
        "Anxiety",
        "Surprise",
        "Contemplation",
        "Realization",
    }
)

LOW_AROUSAL_EMOTIONS = frozenset(
    {
        "Calmness",
        "Boredom",
        "Tiredness",
        "Confusion",
        "Doubt",
    }
)

POSITIVE_EMOTIONS = frozenset(
    {
        "Joy",
        "Excitement",
        "Interest",
        "Pride",
        "Love",
        "Determination",
        "Awe",
        "Contentment",
        "Satisfaction",
        "Relief",
        "Triumph",
        "Admiration",
    }
)

NEGATIVE_EMOTIONS = frozenset(
    {
        "Sadness",
        "Fear",
        "Anger",
        "Distress",
        "Pain",
        "Anxiety",
        "Frustration",
        "Disappointment",
        "Guilt",
        "Shame",
        "Contempt",
        "Disgust",
    }
)

# Prosody label -> memory emotion tag
MEMORY_EMOTION_MAP: dict[str, str] = {
    # Positive high-energy
    "Excitement": "excitement",
    "Joy": "joy",
    "Triumph": "pride",
    "Ecstasy": "joy",
    # Positive calm
    "Contentment": "warmth",
    "Love": "love",
    "Admiration": "warmth",
    "Pride": "pride",
    # Engaged
    "Interest": "curiosity",
    "Curiosity": "curiosity",
    "Concentration": "focus",
    "Contemplation": "curiosity",
    "Realization": "insight",
    "Awe": "awe",
    "Determination": "determination",
    # Negative
    "Anxiety": "anxiety",
    "Fear": "fear",
    "Sadness": "sadness",
    "Anger": "frustration",
    "Frustration": "frustration",
    "Pain": "pain",
    "Distress": "distress",
    "Disappointment": "disappointment",
    # Neutral
    "Calmness": "neutral",
    "Boredom": "neutral",
    "Confusion": "confusion",
}


class ArousalWeights:
    """Contribution of each arousal group to the arousal estimate."""

    HIGH = 1.0
    MEDIUM = 0.6
    LOW = -0.3
    BASELINE = 0.5


class PriorityThresholds:
    """Triggers for flagging a moment as high priority."""

    HIGH_AROUSAL = 0.7
    STRONG_NEGATIVE_SUM = 0.6
    STRONG_NEGATIVE_DOMINANT = 0.4
    BREAKTHROUGH_DETERMINATION = 0.3
    BREAKTHROUGH_EXCITEMENT = 0.3
    PAIN = 0.4
    DISTRESS = 0.5


# Voice prosody is trusted over text-derived arousal
VOICE_AROUSAL_WEIGHT = 0.7
TEXT_AROUSAL_WEIGHT = 0.3

TOP_EMOTIONS_COUNT = 5
