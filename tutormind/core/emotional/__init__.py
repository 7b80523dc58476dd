# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Voice-prosody emotion processing for memory scoring."""

from tutormind.core.emotional.prosody import (
    ProcessedEmotions,
    average_emotion_history,
    combine_arousal,
    map_to_memory_emotion,
    process_emotion_scores,
    summarize_transcript_emotions,
)

__all__ = [
    "ProcessedEmotions",
    "average_emotion_history",
    "combine_arousal",
    "map_to_memory_emotion",
    "process_emotion_scores",
    "summarize_transcript_emotions",
]
