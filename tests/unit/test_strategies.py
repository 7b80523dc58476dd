# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the teaching strategy learner."""

from unittest.mock import AsyncMock

import pytest

from tutormind.core.intelligence.llm import LLMError
from tutormind.core.memory.errors import ExtractionParseError, MemoryNotFoundError
from tutormind.core.memory.strategies import StrategyLearner
from tutormind.models.memory import (
    ConversationTurn,
    EmotionSummary,
    StrategyObservation,
    StrategyOutcome,
)


@pytest.fixture
def learner(store, mock_llm_client, memory_settings) -> StrategyLearner:
    """Create a StrategyLearner on the real store."""
    return StrategyLearner(store, mock_llm_client, memory_settings)


@pytest.fixture
def transcript() -> list[ConversationTurn]:
    """Provide a short tutoring exchange."""
    return [
        ConversationTurn(role="user", content="I don't get how 1/2 + 1/3 works"),
        ConversationTurn(role="assistant", content="Picture a pizza cut into six slices."),
        ConversationTurn(role="user", content="Oh, so 3 slices plus 2 slices!"),
        ConversationTurn(role="assistant", content="Exactly, five sixths."),
    ]


@pytest.mark.unit
class TestExtractStrategy:
    """Tests for StrategyLearner.extract_strategy."""

    @pytest.mark.asyncio
    async def test_parses_observation(self, learner, mock_llm_client, transcript) -> None:
        """Test a valid answer becomes an observation with emotional bonus."""
        mock_llm_client.complete_json = AsyncMock(
            return_value={
                "topic": "adding fractions",
                "strategy": "Analogy",
                "outcome": "breakthrough",
                "evidence": "Oh, so 3 slices plus 2 slices!",
            }
        )
        summary = EmotionSummary(start_arousal=0.3, end_arousal=0.8)

        observation = await learner.extract_strategy(transcript, summary)

        assert observation.topic == "adding fractions"
        assert observation.strategy == "analogy"
        assert observation.outcome is StrategyOutcome.BREAKTHROUGH
        assert observation.outcome_score == 0.9
        assert observation.emotional_bonus == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_no_strategy(self, learner, mock_llm_client, transcript) -> None:
        """Test the explicit no-strategy answer yields None."""
        mock_llm_client.complete_json = AsyncMock(return_value={"no_strategy": True})

        assert await learner.extract_strategy(transcript) is None

    @pytest.mark.asyncio
    async def test_unknown_strategy_is_parse_error(
        self, learner, mock_llm_client, transcript
    ) -> None:
        """Test answers outside the vocabulary are rejected."""
        mock_llm_client.complete_json = AsyncMock(
            return_value={"topic": "fractions", "strategy": "vibes", "outcome": "breakthrough"}
        )

        with pytest.raises(ExtractionParseError):
            await learner.extract_strategy(transcript)

    @pytest.mark.asyncio
    async def test_llm_failure_is_parse_error(self, learner, mock_llm_client, transcript) -> None:
        """Test provider errors are wrapped."""
        mock_llm_client.complete_json = AsyncMock(side_effect=LLMError("rate limited"))

        with pytest.raises(ExtractionParseError):
            await learner.extract_strategy(transcript)

    @pytest.mark.asyncio
    async def test_prompt_window(self, learner, mock_llm_client) -> None:
        """Test only the last ten messages, truncated, reach the prompt."""
        messages = [
            ConversationTurn(role="user", content=f"message-{i} " + "x" * 600) for i in range(12)
        ]
        mock_llm_client.complete_json = AsyncMock(return_value={"no_strategy": True})

        await learner.extract_strategy(messages)

        prompt = mock_llm_client.complete_json.call_args.kwargs["prompt"]
        assert "message-1 " not in prompt
        assert "message-2 " in prompt
        assert "x" * 501 not in prompt


@pytest.mark.unit
class TestStrategyScores:
    """Tests for recording and reinforcing strategies."""

    @pytest.mark.asyncio
    async def test_record_and_retrieve(self, learner, owner_id) -> None:
        """Test recorded strategies are served for matching topics."""
        observation = StrategyObservation(
            topic="Fractions",
            strategy="visual",
            outcome=StrategyOutcome.PARTIAL_SUCCESS,
            outcome_score=0.6,
        )
        saved = await learner.record_observation(owner_id, observation, "session-1")

        with_topic = await learner.get_relevant_strategies(owner_id, "fractions")
        without_topic = await learner.get_relevant_strategies(owner_id)

        assert [s.id for s in with_topic] == [saved.id]
        assert [s.id for s in without_topic] == [saved.id]
        assert saved.session_id == "session-1"

    @pytest.mark.asyncio
    async def test_topicless_threshold_is_higher(self, learner, owner_id) -> None:
        """Test a 0.45 strategy only shows up when the topic matches."""
        observation = StrategyObservation(
            topic="long division",
            strategy="step_by_step",
            outcome=StrategyOutcome.NO_PROGRESS,
            outcome_score=0.45,
        )
        await learner.record_observation(owner_id, observation)

        assert len(await learner.get_relevant_strategies(owner_id, "division")) == 1
        assert await learner.get_relevant_strategies(owner_id) == []

    @pytest.mark.asyncio
    async def test_update_strategy_score(self, learner, owner_id) -> None:
        """Test post-hoc success and failure steps."""
        observation = StrategyObservation(
            topic="algebra",
            strategy="socratic_questioning",
            outcome=StrategyOutcome.PARTIAL_SUCCESS,
            outcome_score=0.6,
        )
        saved = await learner.record_observation(owner_id, observation)

        up = await learner.update_strategy_score(saved.id, True, owner_id=owner_id)
        down = await learner.update_strategy_score(saved.id, False, owner_id=owner_id)

        assert up.success_score == pytest.approx(0.7)
        assert down.success_score == pytest.approx(0.65)

    @pytest.mark.asyncio
    async def test_update_unknown_strategy(self, learner, owner_id) -> None:
        """Test unknown ids raise not found."""
        with pytest.raises(MemoryNotFoundError):
            await learner.update_strategy_score("missing", True, owner_id=owner_id)
