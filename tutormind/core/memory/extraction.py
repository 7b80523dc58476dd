# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Memory extraction from finished conversations.

Runs at session end, usually from a background actor. Two independent
sub-pipelines read the same transcript:

- Memory extraction: the LLM proposes user facts and relational notes.
  Each accepted candidate is embedded, scored and stored.
- Strategy extraction: the LLM names the main teaching approach and its
  outcome, folded into the learner's strategy scores.

Neither sub-pipeline can fail the other, and nothing here raises to the
caller. A malformed LLM answer yields no candidates; a failing candidate
is skipped.

Example:
    pipeline = ExtractionPipeline(store, llm_client, learner)
    result = await pipeline.process_conversation(
        owner_id="learner-1",
        session_id="session-9",
        messages=turns,
    )
    print(result.facts_saved, result.strategies_saved)
"""

import asyncio
import logging
from typing import Any, Sequence

from tutormind.core.config.settings import MemorySettings, get_settings
from tutormind.core.emotional import summarize_transcript_emotions
from tutormind.core.intelligence.llm import LLMClient, LLMError
from tutormind.core.memory.errors import ExtractionParseError, MemoryServiceError
from tutormind.core.memory.prompts import (
    EXTRACTION_PROMPT,
    EXTRACTION_SYSTEM_PROMPT,
    FACT_CATEGORIES,
    NOTE_TYPES,
)
from tutormind.core.memory.scoring import clamp
from tutormind.core.memory.store import MemoryStore
from tutormind.core.memory.strategies import StrategyLearner
from tutormind.models.memory import (
    ConversationTurn,
    EmotionSummary,
    FactCategory,
    Granularity,
    MemoryKind,
    MemoryRecordCreate,
    ProcessingResult,
    RelationalNoteType,
    SessionMetadata,
    SourceType,
)

logger = logging.getLogger(__name__)

EXTRACTION_TEMPERATURE = 0.3
EXTRACTION_MAX_TOKENS = 4096

# Candidates that take the peak arousal of the session instead of the average
PEAK_CATEGORIES = frozenset(
    {
        FactCategory.ACHIEVEMENT.value,
        RelationalNoteType.BREAKTHROUGH_MOMENT.value,
        RelationalNoteType.EMOTIONAL_MILESTONE.value,
    }
)


def render_transcript(messages: Sequence[ConversationTurn]) -> str:
    """Render turns as `SPEAKER [emotion]: text` lines."""
    lines = []
    for message in messages:
        speaker = message.role.upper()
        if message.dominant_emotion:
            speaker = f"{speaker} [{message.dominant_emotion}]"
        lines.append(f"{speaker}: {message.content}")
    return "\n".join(lines)


def _number(value: Any, default: float, low: float = 0.0, high: float = 1.0) -> float:
    """Coerce an LLM-provided number into range, falling back to default."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return clamp(number, low, high)


def _granularity(value: Any, default: Granularity) -> Granularity:
    try:
        return Granularity(str(value).lower())
    except ValueError:
        return default


class ExtractionPipeline:
    """Turns finished conversations into stored memories and strategies.

    Attributes:
        store: Memory store for accepted candidates.
        llm_client: LLM used for extraction.
        learner: Strategy learner for the strategy sub-pipeline.
    """

    def __init__(
        self,
        store: MemoryStore,
        llm_client: LLMClient,
        learner: StrategyLearner,
        settings: MemorySettings | None = None,
    ) -> None:
        self._store = store
        self._llm = llm_client
        self._learner = learner
        self._settings = settings or get_settings().memory

    # =========================================================================
    # Candidate parsing
    # =========================================================================

    def _voice_arousal(self, category: str, summary: EmotionSummary | None) -> float | None:
        if summary is None:
            return None
        if category in PEAK_CATEGORIES and summary.peak_arousal is not None:
            return summary.peak_arousal
        return summary.average_arousal

    def _candidate(
        self,
        item: Any,
        kind: MemoryKind,
        owner_id: str,
        session_id: str | None,
        emotion_summary: EmotionSummary | None,
    ) -> MemoryRecordCreate | None:
        """Build a record from one LLM candidate, or None if unusable."""
        if not isinstance(item, dict):
            return None

        content = str(item.get("content") or "").strip()
        if not content:
            return None

        if kind is MemoryKind.USER_FACT:
            category = str(item.get("category") or "").strip().lower()
            allowed = {c.value for c in FactCategory}
            default_granularity = Granularity.UTTERANCE
        else:
            category = str(item.get("type") or "").strip().lower()
            allowed = {
                t.value for t in RelationalNoteType if t is not RelationalNoteType.MEMORY_LINK
            }
            default_granularity = Granularity.TURN

        if category not in allowed:
            logger.debug("Dropping %s candidate with unknown category %r", kind.value, category)
            return None

        arousal = _number(item.get("emotional_arousal"), 0.5)
        summary = item.get("summary")

        return MemoryRecordCreate(
            owner_id=owner_id,
            kind=kind,
            content=content,
            summary=str(summary) if summary else None,
            category=category,
            emotional_arousal=arousal,
            emotional_valence=_number(item.get("emotional_valence"), 0.0, -1.0, 1.0),
            dominant_emotion=str(item.get("dominant_emotion") or "neutral").lower(),
            hume_arousal=self._voice_arousal(category, emotion_summary),
            text_arousal=arousal,
            llm_importance=_number(item.get("llm_importance"), 0.5),
            confidence=_number(item.get("confidence"), 0.8),
            granularity=_granularity(item.get("granularity"), default_granularity),
            perplexity=_number(item.get("perplexity"), 0.0),
            source_session_id=session_id,
            source_type=SourceType.CONVERSATION,
            effectiveness_score=(
                _number(item.get("effectiveness_score"), 0.5)
                if kind is MemoryKind.RELATIONAL_NOTE
                else None
            ),
        )

    def parse_candidates(
        self,
        data: dict[str, Any],
        owner_id: str,
        session_id: str | None = None,
        emotion_summary: EmotionSummary | None = None,
    ) -> list[MemoryRecordCreate]:
        """Validate an extraction answer against the output contract.

        Candidates with an unknown category or no content are dropped.
        Numeric fields are clamped and missing ones defaulted.

        Raises:
            ExtractionParseError: If neither candidate list is present.
        """
        facts = data.get("facts")
        notes = data.get("notes")
        if not isinstance(facts, list) and not isinstance(notes, list):
            raise ExtractionParseError("Extraction answer has no facts or notes list")

        candidates: list[MemoryRecordCreate] = []
        for items, kind in ((facts, MemoryKind.USER_FACT), (notes, MemoryKind.RELATIONAL_NOTE)):
            if not isinstance(items, list):
                continue
            for item in items:
                candidate = self._candidate(item, kind, owner_id, session_id, emotion_summary)
                if candidate is not None:
                    candidates.append(candidate)
        return candidates

    async def extract_candidates(
        self,
        owner_id: str,
        messages: Sequence[ConversationTurn],
        session_id: str | None = None,
        emotion_summary: EmotionSummary | None = None,
    ) -> list[MemoryRecordCreate]:
        """Ask the LLM for memory candidates from a transcript.

        Returns an empty list for transcripts below the minimum length
        without calling the LLM.

        Raises:
            ExtractionParseError: If the LLM fails or answers off-contract.
        """
        if len(messages) < self._settings.min_transcript_turns:
            return []

        prompt = EXTRACTION_PROMPT.format(
            transcript=render_transcript(messages),
            fact_categories=FACT_CATEGORIES,
            note_types=NOTE_TYPES,
        )
        try:
            data = await self._llm.complete_json(
                prompt=prompt,
                model=get_settings().llm.memory_model,
                system_prompt=EXTRACTION_SYSTEM_PROMPT,
                temperature=EXTRACTION_TEMPERATURE,
                max_tokens=EXTRACTION_MAX_TOKENS,
            )
        except (LLMError, ValueError) as e:
            raise ExtractionParseError("Memory extraction failed", e) from e

        return self.parse_candidates(data, owner_id, session_id, emotion_summary)

    # =========================================================================
    # Sub-pipelines
    # =========================================================================

    async def _extract_memories(
        self,
        owner_id: str,
        session_id: str | None,
        messages: Sequence[ConversationTurn],
        emotion_summary: EmotionSummary | None,
        result: ProcessingResult,
    ) -> None:
        try:
            candidates = await self.extract_candidates(
                owner_id, messages, session_id, emotion_summary
            )
        except ExtractionParseError as e:
            logger.warning("Memory extraction for session %s yielded nothing: %s", session_id, str(e))
            return

        for candidate in candidates:
            is_fact = candidate.kind is MemoryKind.USER_FACT
            if is_fact:
                result.facts_extracted += 1
            else:
                result.notes_extracted += 1

            try:
                await self._store.create(candidate)
            except MemoryServiceError as e:
                logger.warning(
                    "Skipping %s candidate for owner %s: %s",
                    candidate.kind.value,
                    owner_id,
                    str(e),
                )
                continue

            if is_fact:
                result.facts_saved += 1
            else:
                result.notes_saved += 1

    async def _extract_strategy(
        self,
        owner_id: str,
        session_id: str | None,
        messages: Sequence[ConversationTurn],
        emotion_summary: EmotionSummary | None,
        result: ProcessingResult,
    ) -> None:
        try:
            observation = await self._learner.extract_strategy(messages, emotion_summary)
        except ExtractionParseError as e:
            logger.warning("Strategy extraction for session %s yielded nothing: %s", session_id, str(e))
            return

        if observation is None:
            logger.debug("No teaching strategy in session %s", session_id)
            return

        try:
            await self._learner.record_observation(owner_id, observation, session_id)
        except MemoryServiceError as e:
            logger.warning("Failed to save strategy for owner %s: %s", owner_id, str(e))
            return

        result.strategies_saved += 1

    async def process_conversation(
        self,
        owner_id: str,
        session_id: str | None,
        messages: Sequence[ConversationTurn],
        metadata: SessionMetadata | None = None,
    ) -> ProcessingResult:
        """Extract and store everything worth keeping from one session.

        Args:
            owner_id: Learner identifier.
            session_id: Session the transcript came from.
            messages: Transcript, oldest first.
            metadata: Optional session metadata with an emotion summary.

        Returns:
            Counts of candidates extracted and saved.
        """
        result = ProcessingResult(owner_id=owner_id, session_id=session_id)

        if len(messages) < self._settings.min_transcript_turns:
            result.skipped_reason = "transcript_too_short"
            logger.debug(
                "Skipping extraction for session %s: %d turns",
                session_id,
                len(messages),
            )
            return result

        emotion_summary = metadata.emotion_summary if metadata else None
        if emotion_summary is None:
            emotion_summary = summarize_transcript_emotions(messages)

        outcomes = await asyncio.gather(
            self._extract_memories(owner_id, session_id, messages, emotion_summary, result),
            self._extract_strategy(owner_id, session_id, messages, emotion_summary, result),
            return_exceptions=True,
        )
        for name, outcome in zip(("memories", "strategy"), outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    "Unexpected failure in %s extraction for session %s: %s",
                    name,
                    session_id,
                    str(outcome),
                    exc_info=outcome,
                )

        logger.info(
            "Processed session %s for owner %s: facts %d/%d, notes %d/%d, strategies %d",
            session_id,
            owner_id,
            result.facts_saved,
            result.facts_extracted,
            result.notes_saved,
            result.notes_extracted,
            result.strategies_saved,
        )
        return result
