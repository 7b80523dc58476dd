# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Experiential learning of which teaching approaches work per learner.

Two update paths feed a strategy's success_score:

- Extraction time: an LLM reads the end of a session and names one
  (topic, strategy, outcome) triple. The outcome score is folded into the
  running mean by MemoryStore.upsert_strategy.
- Post hoc: a caller reports later that a strategy worked or did not.
  update_strategy_score applies a fixed step, not the running mean.

Example:
    learner = StrategyLearner(store, llm_client)
    observation = await learner.extract_strategy(messages, emotion_summary)
    if observation:
        await learner.record_observation("learner-1", observation, "session-9")
"""

import logging
from typing import Any, Sequence

from tutormind.core.config.settings import MemorySettings, get_settings
from tutormind.core.intelligence.llm import LLMClient, LLMError
from tutormind.core.memory.errors import ExtractionParseError, MemoryValidationError
from tutormind.core.memory.prompts import (
    OUTCOMES,
    STRATEGY_NAMES,
    STRATEGY_PROMPT,
    STRATEGY_SYSTEM_PROMPT,
)
from tutormind.core.memory.scoring import (
    emotional_bonus,
    outcome_score,
    post_hoc_adjustment,
)
from tutormind.core.memory.store import MemoryStore
from tutormind.models.memory import (
    ConversationTurn,
    EmotionSummary,
    StrategyName,
    StrategyObservation,
    StrategyOutcome,
    TeachingStrategyResponse,
)

logger = logging.getLogger(__name__)

STRATEGY_TEMPERATURE = 0.3
STRATEGY_MAX_TOKENS = 500


def _format_arousal(value: float | None) -> str:
    return "unknown" if value is None else f"{value:.2f}"


class StrategyLearner:
    """Learns and serves per-learner teaching strategies.

    Attributes:
        store: Memory store holding strategy rows.
        llm_client: LLM used to analyse session transcripts.
    """

    def __init__(
        self,
        store: MemoryStore,
        llm_client: LLMClient | None = None,
        settings: MemorySettings | None = None,
    ) -> None:
        self._store = store
        self._llm = llm_client
        self._settings = settings or get_settings().memory

    async def get_relevant_strategies(
        self,
        owner_id: str,
        topic: str | None = None,
        limit: int | None = None,
    ) -> list[TeachingStrategyResponse]:
        """Get strategies that worked for this learner.

        With a topic, any strategy scoring above 0.4 whose topic fuzzily
        matches is returned. Without one, only strategies above 0.5.

        Args:
            owner_id: Learner identifier.
            topic: Free-text topic of the current exchange.
            limit: Maximum strategies. Defaults to the strategy cap.

        Returns:
            Strategies ordered by success score, then times used.
        """
        topic = (topic or "").strip() or None
        min_score = (
            self._settings.strategy_min_score_topic if topic else self._settings.strategy_min_score
        )
        return await self._store.find_strategies(
            owner_id=owner_id,
            topic=topic,
            min_score=min_score,
            limit=limit or self._settings.strategy_cap,
        )

    async def update_strategy_score(
        self,
        strategy_id: str,
        was_successful: bool,
        arousal_delta: float | None = None,
        owner_id: str | None = None,
    ) -> TeachingStrategyResponse:
        """Apply a post-hoc reinforcement signal to one strategy.

        Success adds 0.1, failure subtracts 0.05, and an arousal change adds
        a tenth of its delta. The score stays within [0, 1].

        Raises:
            MemoryNotFoundError: If the strategy does not exist for the owner.
        """
        delta = post_hoc_adjustment(was_successful, arousal_delta)
        strategy = await self._store.adjust_strategy_score(
            strategy_id=strategy_id,
            delta=delta,
            owner_id=owner_id,
        )
        logger.info(
            "Post-hoc strategy update %s: successful=%s, delta=%+.3f, score=%.2f",
            strategy_id,
            was_successful,
            delta,
            strategy.success_score,
        )
        return strategy

    def _render_transcript(self, messages: Sequence[ConversationTurn]) -> str:
        window = messages[-self._settings.strategy_window_messages :]
        limit = self._settings.strategy_message_chars
        return "\n\n".join(f"{m.role.upper()}: {m.content[:limit]}" for m in window)

    def _parse_observation(
        self,
        data: dict[str, Any],
        emotion_summary: EmotionSummary | None,
    ) -> StrategyObservation | None:
        """Validate the LLM's strategy answer.

        Raises:
            ExtractionParseError: If required fields are missing or invalid.
        """
        if data.get("no_strategy"):
            return None

        topic = str(data.get("topic") or "").strip()
        strategy = str(data.get("strategy") or "").strip().lower()
        outcome_value = str(data.get("outcome") or "").strip().lower()

        if not topic:
            raise ExtractionParseError("Strategy answer has no topic")
        if strategy not in {s.value for s in StrategyName}:
            raise ExtractionParseError(f"Unknown strategy in answer: {strategy!r}")
        try:
            outcome = StrategyOutcome(outcome_value)
        except ValueError as e:
            raise ExtractionParseError(f"Unknown outcome in answer: {outcome_value!r}", e) from e

        start = emotion_summary.start_arousal if emotion_summary else None
        end = emotion_summary.end_arousal if emotion_summary else None
        evidence = data.get("evidence")

        return StrategyObservation(
            topic=topic[:255],
            strategy=strategy,
            outcome=outcome,
            evidence=str(evidence) if evidence else None,
            outcome_score=outcome_score(outcome),
            emotional_bonus=emotional_bonus(start, end) if emotion_summary else 0.0,
            arousal_before=start,
            arousal_after=end,
        )

    async def extract_strategy(
        self,
        messages: Sequence[ConversationTurn],
        emotion_summary: EmotionSummary | None = None,
    ) -> StrategyObservation | None:
        """Identify the main teaching approach of an exchange.

        Args:
            messages: Session transcript, oldest first.
            emotion_summary: Arousal summary of the session.

        Returns:
            The observation, or None when the exchange was not instructional.

        Raises:
            ExtractionParseError: If the LLM fails or answers off-contract.
        """
        if self._llm is None:
            raise ExtractionParseError("No LLM client configured for strategy extraction")

        summary = emotion_summary or EmotionSummary()
        prompt = STRATEGY_PROMPT.format(
            transcript=self._render_transcript(messages),
            start_arousal=_format_arousal(summary.start_arousal),
            end_arousal=_format_arousal(summary.end_arousal),
            peak_moment=summary.peak_moment or "none",
            dominant_emotions=", ".join(summary.dominant_emotions) or "none",
            strategies=STRATEGY_NAMES,
            outcomes=OUTCOMES,
        )

        try:
            data = await self._llm.complete_json(
                prompt=prompt,
                model=get_settings().llm.memory_model,
                system_prompt=STRATEGY_SYSTEM_PROMPT,
                temperature=STRATEGY_TEMPERATURE,
                max_tokens=STRATEGY_MAX_TOKENS,
            )
        except (LLMError, ValueError) as e:
            raise ExtractionParseError("Strategy extraction failed", e) from e

        return self._parse_observation(data, emotion_summary)

    async def record_observation(
        self,
        owner_id: str,
        observation: StrategyObservation,
        session_id: str | None = None,
    ) -> TeachingStrategyResponse:
        """Fold an extracted observation into the learner's strategies.

        Raises:
            MemoryValidationError: If the observation is unusable.
        """
        if not owner_id:
            raise MemoryValidationError("owner_id is required")

        return await self._store.upsert_strategy(
            owner_id=owner_id,
            topic=observation.topic,
            strategy=observation.strategy,
            outcome=observation.outcome,
            outcome_score=observation.outcome_score,
            emotional_bonus=observation.emotional_bonus,
            evidence=observation.evidence,
            arousal_before=observation.arousal_before,
            arousal_after=observation.arousal_after,
            session_id=session_id,
        )
