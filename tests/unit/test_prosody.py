# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for voice-prosody emotion processing."""

import pytest

from tutormind.core.emotional import (
    average_emotion_history,
    combine_arousal,
    map_to_memory_emotion,
    process_emotion_scores,
    summarize_transcript_emotions,
)
from tutormind.models.memory import ConversationTurn


@pytest.mark.unit
class TestProcessEmotionScores:
    """Tests for process_emotion_scores."""

    def test_empty_scores_are_neutral(self) -> None:
        """Test that missing data yields the neutral baseline."""
        processed = process_emotion_scores(None)

        assert processed.arousal == 0.5
        assert processed.dominant_emotion == "neutral"
        assert processed.is_high_priority is False
        assert processed.priority_reason == "no_emotion_data"

    def test_arousal_from_groups(self) -> None:
        """Test arousal averages the weighted group contributions."""
        processed = process_emotion_scores({"Interest": 0.5, "Calmness": 0.2})

        expected = (0.5 + 0.5 * 0.6 + 0.2 * -0.3) / 2
        assert processed.arousal == pytest.approx(expected)
        assert processed.dominant_emotion == "Interest"

    def test_valence(self) -> None:
        """Test valence is (pos - neg) / (pos + neg)."""
        processed = process_emotion_scores({"Joy": 0.6, "Sadness": 0.2})

        assert processed.valence == pytest.approx(0.5)

    def test_breakthrough_flag(self) -> None:
        """Test determination plus excitement marks a breakthrough."""
        processed = process_emotion_scores({"Determination": 0.6, "Excitement": 0.5})

        assert processed.is_high_priority is True
        assert processed.priority_reason == "breakthrough_moment"

    def test_distress_flag(self) -> None:
        """Test strong distress marks an emotional struggle."""
        processed = process_emotion_scores({"Distress": 0.7})

        assert processed.is_high_priority is True
        assert processed.priority_reason == "emotional_struggle"

    def test_top_emotions_limited(self) -> None:
        """Test that at most five emotions are kept."""
        scores = {name: 0.1 * i for i, name in enumerate(
            ["Joy", "Interest", "Calmness", "Pride", "Fear", "Awe", "Doubt"], start=1
        )}

        assert len(process_emotion_scores(scores).top_emotions) == 5


@pytest.mark.unit
class TestEmotionHelpers:
    """Tests for averaging, mapping and arousal combination."""

    def test_average_history(self) -> None:
        """Test samples are averaged before processing."""
        processed = average_emotion_history([{"Joy": 0.2}, {"Joy": 0.6}])

        assert processed.dominant_score == pytest.approx(0.4)

    def test_average_empty_history(self) -> None:
        """Test an empty history is neutral."""
        assert average_emotion_history([]).dominant_emotion == "neutral"

    def test_map_to_memory_emotion(self) -> None:
        """Test prosody labels map onto memory tags."""
        assert map_to_memory_emotion("Triumph") == "pride"
        assert map_to_memory_emotion("Unknown") == "neutral"
        assert map_to_memory_emotion(None) == "neutral"

    def test_combine_arousal(self) -> None:
        """Test voice is weighted 0.7 and text 0.3."""
        assert combine_arousal(1.0, 0.0) == pytest.approx(0.7)
        assert combine_arousal(None, 0.4) == pytest.approx(0.4)
        assert combine_arousal(None, None) == 0.5


@pytest.mark.unit
class TestSummarizeTranscriptEmotions:
    """Tests for summarize_transcript_emotions."""

    def test_no_scores(self) -> None:
        """Test a transcript without prosody yields an empty summary."""
        turns = [ConversationTurn(role="user", content="hi")]

        summary = summarize_transcript_emotions(turns)

        assert summary.start_arousal is None
        assert summary.dominant_emotions == []

    def test_trajectory(self) -> None:
        """Test start, end and peak come from learner turns only."""
        turns = [
            ConversationTurn(role="user", content="I don't get it", emotions={"Calmness": 0.8}),
            ConversationTurn(role="assistant", content="Let's draw it", emotions={"Excitement": 1.0}),
            ConversationTurn(
                role="user",
                content="Oh! I see it now",
                emotions={"Excitement": 0.9, "Determination": 0.6},
            ),
        ]

        summary = summarize_transcript_emotions(turns)

        assert summary.start_arousal < summary.end_arousal
        assert summary.peak_arousal == summary.end_arousal
        assert summary.peak_moment == "Oh! I see it now"
        assert summary.average_arousal == pytest.approx(
            (summary.start_arousal + summary.end_arousal) / 2
        )
