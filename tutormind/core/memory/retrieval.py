# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Retrieval of ranked memory context for a conversation turn.

Three pools are gathered independently, each under its own cap:

- user facts (semantic search on the topic, else by importance)
- relational notes (same)
- teaching strategies relevant to the topic

The pools are merged by hybrid score and truncated to the limit. Records
that make the cut are counted as cited; records that were surfaced but
cut are counted as retrieved-unused.

Two optional LLM steps refine the fact pool when a topic is given. Query
expansion searches with several generated queries as well as the topic,
and reranking reorders the facts by relevance to the question. Both fall
back to the plain path when the LLM fails. Effective teaching_success
notes are listed alongside as other teaching approaches.

Retrieval feeds a live turn, so any failure yields an empty context.

Example:
    service = RetrievalService(store, embedding_service, learner, llm_client=llm)
    context = await service.retrieve("learner-1", topic="fractions", limit=8)
    prompt_block = format_context(context)
"""

import logging
import math
from typing import Sequence

from tutormind.core.config.settings import MemorySettings, get_settings
from tutormind.core.intelligence.embeddings import EmbeddingError, EmbeddingService
from tutormind.core.intelligence.llm import LLMClient, LLMError
from tutormind.core.memory.prompts import (
    QUERY_EXPANSION_PROMPT,
    RERANK_PROMPT,
    RETRIEVAL_SYSTEM_PROMPT,
)
from tutormind.core.memory.scoring import (
    HybridWeights,
    emotional_salience,
    hybrid_rank,
    normalized_importance,
    recency_score,
)
from tutormind.core.memory.store import MemoryStore
from tutormind.core.memory.strategies import StrategyLearner
from tutormind.models.memory import (
    FeedbackResult,
    MemoryKind,
    MemoryRecordResponse,
    RankedContext,
    RankedEntry,
    ScoredMemory,
    TeachingStrategyResponse,
)
from tutormind.utils.datetime import elapsed_days, latest, utc_now

logger = logging.getLogger(__name__)

FACTS_HEADER = "## What I Know About This Student:"
STRATEGIES_HEADER = "## Teaching Strategies That Work For This Student:"
APPROACHES_HEADER = "## Other Teaching Approaches That Work:"
NOTES_HEADER = "## My Notes About Our Relationship:"

EVIDENCE_PREVIEW_CHARS = 80

# Ids of records served by the companion service
REMOTE_ID_PREFIX = "anchor-"

# Conversation lines shown to the expansion and rerank prompts
PROMPT_CONTEXT_MESSAGES = 3

EXPANSION_MAX_TOKENS = 200
RERANK_MAX_TOKENS = 150
RETRIEVAL_TEMPERATURE = 0.2


def format_context(context: RankedContext) -> str:
    """Render a ranked context as a prompt-ready text block.

    Args:
        context: Ranked context from retrieve().

    Returns:
        Markdown sections for facts, strategies, other teaching approaches
        and notes. Empty string if there is nothing to show.
    """
    sections: list[str] = []

    facts = context.of_kind(MemoryKind.USER_FACT)
    if facts:
        lines = [FACTS_HEADER]
        for entry in facts:
            line = f"- {entry.summary}"
            if entry.dominant_emotion and entry.dominant_emotion != "neutral":
                line += f" ({entry.dominant_emotion})"
            lines.append(line)
        sections.append("\n".join(lines))

    strategies = context.of_kind(MemoryKind.TEACHING_STRATEGY)
    if strategies:
        lines = [STRATEGIES_HEADER]
        for entry in strategies:
            name = (entry.strategy_used or "").replace("_", " ")
            percent = round((entry.success_score or 0.0) * 100)
            lines.append(f"- **{entry.topic}**: Use {name} ({percent}% success rate)")
            if entry.evidence:
                lines.append(f'  _Evidence: "{entry.evidence[:EVIDENCE_PREVIEW_CHARS]}..."_')
        sections.append("\n".join(lines))

    if context.teaching_approaches:
        lines = [APPROACHES_HEADER]
        lines.extend(f"- {entry.summary}" for entry in context.teaching_approaches)
        sections.append("\n".join(lines))

    notes = context.of_kind(MemoryKind.RELATIONAL_NOTE)
    if notes:
        lines = [NOTES_HEADER]
        lines.extend(f"- [{entry.category}] {entry.summary}" for entry in notes)
        sections.append("\n".join(lines))

    return "\n\n".join(sections)


def _recent_lines(conversation: Sequence[str] | None) -> str:
    recent = list(conversation or [])[-PROMPT_CONTEXT_MESSAGES:]
    if not recent:
        return "Start of conversation"
    return "\n".join(f"{i}. {line}" for i, line in enumerate(recent, start=1))


class RetrievalService:
    """Builds ranked, owner-scoped memory context.

    Attributes:
        store: Memory store.
        embedding_service: Embeds retrieval topics.
        learner: Source of relevant teaching strategies.
        llm_client: Optional client for query expansion and reranking.
    """

    def __init__(
        self,
        store: MemoryStore,
        embedding_service: EmbeddingService,
        learner: StrategyLearner,
        settings: MemorySettings | None = None,
        llm_client: LLMClient | None = None,
    ) -> None:
        self._store = store
        self._embedding = embedding_service
        self._learner = learner
        self._llm = llm_client
        self._settings = settings or get_settings().memory
        self._weights = HybridWeights(
            semantic=self._settings.weight_semantic,
            importance=self._settings.weight_importance,
            recency=self._settings.weight_recency,
            emotion=self._settings.weight_emotion,
        )

    def _rank_memory(
        self,
        memory: MemoryRecordResponse,
        similarity: float | None,
    ) -> RankedEntry:
        age = elapsed_days(latest(memory.created_at, memory.last_cited_at))
        score = hybrid_rank(
            cosine_similarity=similarity,
            importance=normalized_importance(memory.current_importance),
            recency=recency_score(age, self._settings.recency_half_life_days),
            emotional_salience=emotional_salience(
                memory.emotional_arousal, memory.emotional_valence
            ),
            weights=self._weights,
        )
        return RankedEntry(
            id=memory.id,
            kind=memory.kind,
            content=memory.content,
            summary=memory.summary,
            category=memory.category,
            dominant_emotion=memory.dominant_emotion,
            score=score,
            importance=memory.current_importance,
            similarity=similarity,
        )

    def _rank_strategy(self, strategy: TeachingStrategyResponse) -> RankedEntry:
        age = elapsed_days(latest(strategy.created_at, strategy.last_used_at))
        score = hybrid_rank(
            cosine_similarity=None,
            importance=strategy.success_score,
            recency=recency_score(age, self._settings.recency_half_life_days),
            emotional_salience=strategy.hume_arousal_after or 0.0,
            weights=self._weights,
        )
        return RankedEntry(
            id=strategy.id,
            kind=MemoryKind.TEACHING_STRATEGY,
            content=strategy.evidence or strategy.topic,
            summary=f"{strategy.topic}: {strategy.strategy_used}",
            category=strategy.strategy_used,
            score=score,
            importance=strategy.success_score,
            topic=strategy.topic,
            strategy_used=strategy.strategy_used,
            success_score=strategy.success_score,
            evidence=strategy.evidence,
        )

    async def _memory_pool(
        self,
        owner_id: str,
        kind: MemoryKind,
        query_vectors: Sequence[list[float]] | None,
        cap: int,
    ) -> list[RankedEntry]:
        """Rank one record family against zero or more query vectors.

        With several vectors each one fetches ceil(cap / n) + 2 candidates
        and a memory found by more than one query keeps its best similarity.
        """
        if not query_vectors:
            memories = await self._store.list_ranked_by_importance(owner_id, kind, cap)
            return [self._rank_memory(m, None) for m in memories]

        per_query = cap if len(query_vectors) == 1 else math.ceil(cap / len(query_vectors)) + 2
        best: dict[str, ScoredMemory] = {}
        for vector in query_vectors:
            scored = await self._store.top_k_by_similarity(
                owner_id=owner_id,
                query_embedding=vector,
                k=per_query,
                kind=kind,
            )
            for hit in scored:
                seen = best.get(hit.memory.id)
                if seen is None or hit.similarity > seen.similarity:
                    best[hit.memory.id] = hit
        return [self._rank_memory(s.memory, s.similarity) for s in best.values()]

    async def _expand_queries(
        self,
        topic: str,
        conversation: Sequence[str] | None,
    ) -> list[str]:
        """Get the topic followed by LLM-written search queries.

        Returns just the topic when expansion is off or the LLM fails.
        """
        if not self._settings.query_expansion or self._llm is None:
            return [topic]

        prompt = QUERY_EXPANSION_PROMPT.format(
            topic=topic,
            context=_recent_lines(conversation),
            max_queries=self._settings.query_expansion_max,
        )
        try:
            data = await self._llm.complete_json(
                prompt=prompt,
                model=get_settings().llm.memory_model,
                system_prompt=RETRIEVAL_SYSTEM_PROMPT,
                temperature=RETRIEVAL_TEMPERATURE,
                max_tokens=EXPANSION_MAX_TOKENS,
            )
        except (LLMError, ValueError) as e:
            logger.warning("Query expansion failed, searching the topic only: %s", str(e))
            return [topic]

        raw = data.get("queries")
        if not isinstance(raw, list):
            logger.warning("Query expansion returned no query list, searching the topic only")
            return [topic]

        queries = [q.strip() for q in raw if isinstance(q, str) and q.strip()]
        expanded = list(dict.fromkeys([topic, *queries[: self._settings.query_expansion_max]]))
        logger.debug("Expanded %r into %d queries", topic, len(expanded))
        return expanded

    async def _embed_queries(self, queries: list[str]) -> list[list[float]] | None:
        try:
            if len(queries) == 1:
                return [await self._embedding.embed_text(queries[0])]
            return await self._embedding.embed_batch(queries)
        except (EmbeddingError, ValueError) as e:
            logger.warning("Topic embedding failed, ranking by importance: %s", str(e))
            return None

    async def _rerank_facts(
        self,
        facts: list[RankedEntry],
        topic: str,
        conversation: Sequence[str] | None,
    ) -> list[RankedEntry]:
        """Let the LLM reorder facts by relevance.

        The reordered facts take over the existing fact scores in rank
        order, so their standing against notes and strategies is kept.
        Unlisted facts follow in their previous order. Any failure keeps
        the hybrid order.
        """
        if (
            not self._settings.rerank
            or self._llm is None
            or len(facts) < self._settings.rerank_min_facts
        ):
            return facts

        ordered = sorted(facts, key=lambda e: e.score, reverse=True)
        prompt = RERANK_PROMPT.format(
            topic=topic,
            context=_recent_lines(conversation),
            memories="\n".join(f"[{i}] {e.summary}" for i, e in enumerate(ordered)),
        )
        try:
            data = await self._llm.complete_json(
                prompt=prompt,
                model=get_settings().llm.memory_model,
                system_prompt=RETRIEVAL_SYSTEM_PROMPT,
                temperature=RETRIEVAL_TEMPERATURE,
                max_tokens=RERANK_MAX_TOKENS,
            )
        except (LLMError, ValueError) as e:
            logger.warning("Fact reranking failed, keeping hybrid order: %s", str(e))
            return facts

        ranking = data.get("ranking")
        if not isinstance(ranking, list):
            logger.warning("Fact reranking returned no ranking, keeping hybrid order")
            return facts

        picked: list[int] = []
        for index in ranking:
            valid = isinstance(index, int) and not isinstance(index, bool)
            if valid and 0 <= index < len(ordered) and index not in picked:
                picked.append(index)
        picked.extend(i for i in range(len(ordered)) if i not in picked)

        logger.debug("Reranked %d facts for %r", len(ordered), topic)
        return [
            ordered[index].model_copy(update={"score": entry.score})
            for index, entry in zip(picked, ordered)
        ]

    async def _teaching_approaches(
        self,
        owner_id: str,
        skip_ids: set[str],
    ) -> list[RankedEntry]:
        cap = self._settings.teaching_approach_cap
        if cap <= 0:
            return []
        notes = await self._store.list_teaching_successes(
            owner_id, self._settings.teaching_approach_min_effectiveness, cap
        )
        return [self._rank_memory(n, None) for n in notes if n.id not in skip_ids]

    async def retrieve(
        self,
        owner_id: str,
        topic: str | None = None,
        limit: int | None = None,
        conversation: Sequence[str] | None = None,
        cite: bool | None = None,
    ) -> RankedContext:
        """Retrieve ranked memory context for a learner.

        Args:
            owner_id: Learner identifier.
            topic: Optional topic of the current exchange.
            limit: Maximum entries. Defaults to the configured default.
            conversation: Recent messages, oldest first, used by query
                expansion and reranking.
            cite: Count included entries as cited and the rest as unused.
                Defaults to the cite_on_retrieval setting.

        Returns:
            Ranked context. Empty on any failure.
        """
        limit = limit or self._settings.default_limit
        topic = (topic or "").strip() or None

        try:
            query_vectors = None
            if topic:
                queries = await self._expand_queries(topic, conversation)
                query_vectors = await self._embed_queries(queries)

            facts = await self._memory_pool(
                owner_id,
                MemoryKind.USER_FACT,
                query_vectors,
                max(limit, self._settings.fact_cap),
            )
            if topic:
                facts = await self._rerank_facts(facts, topic, conversation)
            # Notes are searched with the topic only
            notes = await self._memory_pool(
                owner_id,
                MemoryKind.RELATIONAL_NOTE,
                query_vectors[:1] if query_vectors else None,
                self._settings.note_cap,
            )
            strategies = await self._learner.get_relevant_strategies(
                owner_id, topic, self._settings.strategy_cap
            )

            candidates = [*facts, *notes, *(self._rank_strategy(s) for s in strategies)]
            candidates.sort(key=lambda e: e.score, reverse=True)
            included = candidates[:limit]
            excluded = candidates[limit:]

            approaches = await self._teaching_approaches(
                owner_id, {e.id for e in included}
            )

        except Exception as e:
            logger.error(
                "Memory retrieval failed for owner %s, returning empty context: %s",
                owner_id,
                str(e),
                exc_info=True,
            )
            return RankedContext(owner_id=owner_id, topic=topic)

        context = RankedContext(
            owner_id=owner_id,
            topic=topic,
            entries=included,
            teaching_approaches=approaches,
            retrieved_at=utc_now(),
        )

        if cite is None:
            cite = self._settings.cite_on_retrieval
        if cite:
            await self._count_retrieval(owner_id, included, excluded)

        logger.info(
            "Retrieved %d entries for owner %s (topic=%r, facts=%d, notes=%d, strategies=%d)",
            len(included),
            owner_id,
            topic,
            len(context.of_kind(MemoryKind.USER_FACT)),
            len(context.of_kind(MemoryKind.RELATIONAL_NOTE)),
            len(context.of_kind(MemoryKind.TEACHING_STRATEGY)),
        )
        return context

    async def _count_retrieval(
        self,
        owner_id: str,
        included: Sequence[RankedEntry],
        excluded: Sequence[RankedEntry],
    ) -> None:
        """Update citation counters for one retrieval. Failures are logged only."""
        def memory_ids(entries: Sequence[RankedEntry]) -> list[str]:
            return [e.id for e in entries if e.kind is not MemoryKind.TEACHING_STRATEGY]

        try:
            await self._store.increment_cited(owner_id, memory_ids(included))
            await self._store.increment_unused(owner_id, memory_ids(excluded))
        except Exception as e:
            logger.warning("Failed to update citation counters for %s: %s", owner_id, str(e))

    async def record_feedback(
        self,
        owner_id: str,
        retrieved_ids: Sequence[str],
        cited_ids: Sequence[str],
        precited: bool | None = None,
    ) -> FeedbackResult:
        """Record which retrieved memories a response actually used.

        When retrieval did not count citations, cited ids get
        times_cited += 1 and the other retrieved ids get
        times_retrieved_unused += 1. When it did, cited ids are already
        counted and the citation of each uncited id is moved to its unused
        counter, so every surfaced memory ends up either cited or unused.
        Companion-service ids are ignored.

        Args:
            owner_id: Learner identifier.
            retrieved_ids: Ids returned by retrieve().
            cited_ids: Ids the generated response used.
            precited: Whether retrieve() already counted the citations.
                Defaults to the cite_on_retrieval setting.

        Returns:
            Number of rows updated per counter.
        """
        if precited is None:
            precited = self._settings.cite_on_retrieval

        local_cited = [i for i in dict.fromkeys(cited_ids) if not i.startswith(REMOTE_ID_PREFIX)]
        cited_set = set(local_cited)
        unused = [
            i
            for i in dict.fromkeys(retrieved_ids)
            if i not in cited_set and not i.startswith(REMOTE_ID_PREFIX)
        ]

        if precited:
            cited_count = 0
            unused_count = await self._store.move_citation_to_unused(owner_id, unused)
        else:
            cited_count = await self._store.increment_cited(owner_id, local_cited)
            unused_count = await self._store.increment_unused(owner_id, unused)

        logger.info(
            "Recorded feedback for owner %s: cited=%d, unused=%d",
            owner_id,
            cited_count,
            unused_count,
        )
        return FeedbackResult(cited=cited_count, unused=unused_count)
