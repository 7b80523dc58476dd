# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the post-session extraction pipeline."""

from unittest.mock import AsyncMock

import pytest

from tutormind.core.intelligence.llm import LLMError
from tutormind.core.memory.errors import ExtractionParseError
from tutormind.core.memory.extraction import ExtractionPipeline, render_transcript
from tutormind.core.memory.prompts import EXTRACTION_SYSTEM_PROMPT
from tutormind.core.memory.strategies import StrategyLearner
from tutormind.models.memory import (
    ConversationTurn,
    EmotionSummary,
    Granularity,
    MemoryKind,
    SessionMetadata,
)

EXTRACTION_ANSWER = {
    "facts": [
        {
            "content": "Has a dog named Achilles",
            "category": "personal_fact",
            "emotional_arousal": 0.7,
            "llm_importance": 3,
            "dominant_emotion": "Joy",
        },
        {"content": "Likes things", "category": "hobby"},
    ],
    "notes": [
        {"content": "We joke about pineapple pizza", "type": "inside_joke"},
    ],
}

STRATEGY_ANSWER = {
    "topic": "fractions",
    "strategy": "visual",
    "outcome": "breakthrough",
    "evidence": "Oh, so 3 slices plus 2 slices!",
}


def _answers(extraction, strategy):
    async def complete_json(**kwargs):
        answer = extraction if kwargs["system_prompt"] == EXTRACTION_SYSTEM_PROMPT else strategy
        if isinstance(answer, Exception):
            raise answer
        return answer

    return complete_json


@pytest.fixture
def pipeline(store, mock_llm_client, memory_settings) -> ExtractionPipeline:
    """Create an ExtractionPipeline on the real store."""
    learner = StrategyLearner(store, mock_llm_client, memory_settings)
    return ExtractionPipeline(store, mock_llm_client, learner, memory_settings)


@pytest.fixture
def transcript() -> list[ConversationTurn]:
    """Provide a four-turn session."""
    return [
        ConversationTurn(role="user", content="My dog Achilles ate my homework"),
        ConversationTurn(role="assistant", content="Ha! Let's redo it with pizza slices."),
        ConversationTurn(role="user", content="Oh, so 3 slices plus 2 slices!", dominant_emotion="Excitement"),
        ConversationTurn(role="assistant", content="Exactly, five sixths."),
    ]


@pytest.mark.unit
class TestParseCandidates:
    """Tests for candidate validation."""

    def test_drops_unknown_categories(self, pipeline, owner_id) -> None:
        """Test candidates outside the vocabularies are dropped."""
        candidates = pipeline.parse_candidates(EXTRACTION_ANSWER, owner_id, "session-1")

        assert [c.content for c in candidates] == [
            "Has a dog named Achilles",
            "We joke about pineapple pizza",
        ]

    def test_clamps_and_defaults(self, pipeline, owner_id) -> None:
        """Test numbers are clamped and missing fields defaulted."""
        fact, note = pipeline.parse_candidates(EXTRACTION_ANSWER, owner_id)

        assert fact.llm_importance == 1.0
        assert fact.text_arousal == 0.7
        assert fact.dominant_emotion == "joy"
        assert fact.granularity is Granularity.UTTERANCE
        assert note.kind is MemoryKind.RELATIONAL_NOTE
        assert note.granularity is Granularity.TURN
        assert note.effectiveness_score == 0.5

    def test_memory_link_is_not_extractable(self, pipeline, owner_id) -> None:
        """Test link notes can only come from the tools API."""
        data = {"facts": [], "notes": [{"content": "a and b", "type": "memory_link"}]}

        assert pipeline.parse_candidates(data, owner_id) == []

    def test_peak_arousal_for_achievements(self, pipeline, owner_id) -> None:
        """Test achievements take the session peak as voice arousal."""
        data = {
            "facts": [
                {"content": "Solved a fraction alone", "category": "achievement"},
                {"content": "Lives in Izmir", "category": "personal_fact"},
            ]
        }
        summary = EmotionSummary(peak_arousal=0.9, average_arousal=0.4)

        achievement, fact = pipeline.parse_candidates(data, owner_id, emotion_summary=summary)

        assert achievement.hume_arousal == 0.9
        assert fact.hume_arousal == 0.4

    def test_missing_lists(self, pipeline, owner_id) -> None:
        """Test an answer without candidate lists is a parse error."""
        with pytest.raises(ExtractionParseError):
            pipeline.parse_candidates({"memories": []}, owner_id)


@pytest.mark.unit
class TestRenderTranscript:
    """Tests for render_transcript."""

    def test_emotion_annotation(self, transcript) -> None:
        """Test the dominant emotion is shown next to the speaker."""
        text = render_transcript(transcript)

        assert "USER [Excitement]: Oh, so 3 slices plus 2 slices!" in text
        assert text.startswith("USER: My dog")


@pytest.mark.unit
class TestProcessConversation:
    """Tests for ExtractionPipeline.process_conversation."""

    @pytest.mark.asyncio
    async def test_short_transcript_skipped(self, pipeline, mock_llm_client, owner_id) -> None:
        """Test transcripts under the minimum never reach the LLM."""
        turns = [ConversationTurn(role="user", content="hi")]

        result = await pipeline.process_conversation(owner_id, "session-1", turns)

        assert result.skipped_reason == "transcript_too_short"
        mock_llm_client.complete_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_saves_memories_and_strategy(
        self, pipeline, mock_llm_client, store, owner_id, transcript
    ) -> None:
        """Test both sub-pipelines store their results."""
        mock_llm_client.complete_json = AsyncMock(
            side_effect=_answers(EXTRACTION_ANSWER, STRATEGY_ANSWER)
        )

        result = await pipeline.process_conversation(
            owner_id,
            "session-1",
            transcript,
            SessionMetadata(topic="fractions"),
        )

        assert result.facts_extracted == 1
        assert result.facts_saved == 1
        assert result.notes_saved == 1
        assert result.strategies_saved == 1
        facts = await store.list_by_owner(owner_id, MemoryKind.USER_FACT)
        assert facts[0].source_session_id == "session-1"

    @pytest.mark.asyncio
    async def test_strategy_failure_keeps_memories(
        self, pipeline, mock_llm_client, owner_id, transcript
    ) -> None:
        """Test a bad strategy answer does not affect memory extraction."""
        mock_llm_client.complete_json = AsyncMock(
            side_effect=_answers(EXTRACTION_ANSWER, {"strategy": "vibes"})
        )

        result = await pipeline.process_conversation(owner_id, "session-1", transcript)

        assert result.facts_saved == 1
        assert result.strategies_saved == 0

    @pytest.mark.asyncio
    async def test_extraction_failure_keeps_strategy(
        self, pipeline, mock_llm_client, owner_id, transcript
    ) -> None:
        """Test an LLM outage in memory extraction does not raise."""
        mock_llm_client.complete_json = AsyncMock(
            side_effect=_answers(LLMError("timeout"), STRATEGY_ANSWER)
        )

        result = await pipeline.process_conversation(owner_id, "session-1", transcript)

        assert result.facts_saved == 0
        assert result.strategies_saved == 1
