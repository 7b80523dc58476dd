# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Durable storage for learner memories and teaching strategies.

MemoryStore is the only component that touches the memory tables. It owns
embedding persistence, strength initialisation and soft-forget semantics:

- Rows are never deleted. Forgetting zeroes memory_strength and
  current_importance and stamps forgotten_at.
- Every ranking read filters on forgotten_at and the importance floor.
  Plain listing still returns forgotten rows.
- Counters (times_cited, times_retrieved_unused, times_used,
  success_score) are changed with single UPDATE statements so concurrent
  tool calls for the same owner cannot lose updates.

All public methods support optional session injection to share a
transaction with the caller.

Example:
    store = MemoryStore(db_manager, embedding_service)
    memory = await store.create(
        MemoryRecordCreate(
            owner_id="learner-1",
            content="Has a dog named Achilles",
            category="relationship",
        )
    )
"""

import logging
import re
from typing import Any, Sequence

from sqlalchemy import String, case, func, literal, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tutormind.core.config.settings import MemorySettings, get_settings
from tutormind.core.intelligence.embeddings import (
    EmbeddingError,
    EmbeddingService,
    cosine_similarity,
)
from tutormind.core.memory.errors import (
    MemoryForbiddenError,
    MemoryInternalError,
    MemoryNotFoundError,
    MemoryServiceError,
    MemoryValidationError,
    UpstreamUnavailableError,
)
from tutormind.core.memory.scoring import clamp, memory_strength
from tutormind.infrastructure.database.connection import DatabaseError, DatabaseManager
from tutormind.infrastructure.database.models.memory import (
    RelationalNote,
    TeachingStrategy,
    UserFact,
)
from tutormind.infrastructure.vectors.qdrant_client import QdrantError, QdrantVectorClient
from tutormind.models.memory import (
    FactCategory,
    Granularity,
    MemoryKind,
    MemoryRecordCreate,
    MemoryRecordResponse,
    RelationalNoteType,
    ScoredMemory,
    SourceType,
    StrategyName,
    StrategyOutcome,
    TeachingStrategyResponse,
)
from tutormind.utils.datetime import utc_now

logger = logging.getLogger(__name__)

SUMMARY_MAX_CHARS = 200

MemoryRow = UserFact | RelationalNote

_MODELS: dict[MemoryKind, type[UserFact] | type[RelationalNote]] = {
    MemoryKind.USER_FACT: UserFact,
    MemoryKind.RELATIONAL_NOTE: RelationalNote,
}

_CATEGORIES: dict[MemoryKind, frozenset[str]] = {
    MemoryKind.USER_FACT: frozenset(c.value for c in FactCategory),
    MemoryKind.RELATIONAL_NOTE: frozenset(t.value for t in RelationalNoteType),
}

_WHITESPACE = re.compile(r"\s+")


def summarize(content: str, summary: str | None = None) -> str:
    """Build the prompt-facing summary of a memory.

    Args:
        content: Full memory text.
        summary: Summary proposed by the writer, if any.

    Returns:
        Single-line summary of at most 200 characters.
    """
    text = _WHITESPACE.sub(" ", (summary or content)).strip()
    if len(text) <= SUMMARY_MAX_CHARS:
        return text
    return text[: SUMMARY_MAX_CHARS - 3].rstrip() + "..."


def kind_for_category(category: str) -> MemoryKind:
    """Get the record family a category belongs to.

    Raises:
        MemoryValidationError: If the category is in neither vocabulary.
    """
    for kind, categories in _CATEGORIES.items():
        if category in categories:
            return kind
    raise MemoryValidationError(f"Unknown memory category: {category}")


def _model_for(kind: MemoryKind) -> type[UserFact] | type[RelationalNote]:
    try:
        return _MODELS[kind]
    except KeyError as e:
        raise MemoryValidationError(f"Not a memory record kind: {kind}") from e


def _active(model: type[UserFact] | type[RelationalNote], floor: float) -> list[Any]:
    """Filter clauses for rows eligible for ranking."""
    return [model.forgotten_at.is_(None), model.current_importance > floor]


def _clamped(expr: Any) -> Any:
    """SQL expression clamping a numeric expression to [0, 1]."""
    return case((expr > 1.0, 1.0), (expr < 0.0, 0.0), else_=expr)


class MemoryStore:
    """CRUD over user facts, relational notes and teaching strategies.

    Attributes:
        db_manager: Database manager providing sessions.
        embedding_service: Service for generating text embeddings.
        qdrant_client: Optional vector index mirror.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        embedding_service: EmbeddingService,
        qdrant_client: QdrantVectorClient | None = None,
        settings: MemorySettings | None = None,
    ) -> None:
        """Initialize the memory store.

        Args:
            db_manager: Database manager providing sessions.
            embedding_service: Service for generating text embeddings.
            qdrant_client: Optional Qdrant client. In-process cosine search
                is used when None or when the index fails.
            settings: Memory settings. Uses get_settings() if None.
        """
        self._db = db_manager
        self._embedding = embedding_service
        self._qdrant = qdrant_client
        self._settings = settings or get_settings().memory

    @property
    def importance_floor(self) -> float:
        """Importance at or below which records are not ranked."""
        return self._settings.importance_floor

    # =========================================================================
    # Conversion
    # =========================================================================

    def _to_response(self, row: MemoryRow) -> MemoryRecordResponse:
        kind = MemoryKind.USER_FACT if isinstance(row, UserFact) else MemoryKind.RELATIONAL_NOTE
        return MemoryRecordResponse(
            id=row.id,
            owner_id=row.owner_id,
            kind=kind,
            content=row.content,
            summary=row.summary,
            category=row.category,
            embedding=row.embedding,
            emotional_arousal=row.emotional_arousal,
            emotional_valence=row.emotional_valence,
            dominant_emotion=row.dominant_emotion,
            llm_importance=row.llm_importance,
            memory_strength=row.memory_strength,
            current_importance=row.current_importance,
            confidence=row.confidence,
            times_cited=row.times_cited,
            times_retrieved_unused=row.times_retrieved_unused,
            granularity=Granularity(row.granularity),
            source_session_id=row.source_session_id,
            source_type=SourceType(row.source_type),
            effectiveness_score=getattr(row, "effectiveness_score", None),
            tags=list(row.tags or []),
            links=list(getattr(row, "links", None) or []),
            forgotten_at=row.forgotten_at,
            forget_reason=row.forget_reason,
            last_cited_at=row.last_cited_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_strategy_response(self, row: TeachingStrategy) -> TeachingStrategyResponse:
        return TeachingStrategyResponse(
            id=row.id,
            owner_id=row.owner_id,
            topic=row.topic,
            strategy_used=row.strategy_used,
            outcome=StrategyOutcome(row.outcome),
            success_score=row.success_score,
            times_used=row.times_used,
            evidence=row.evidence,
            hume_arousal_before=row.hume_arousal_before,
            hume_arousal_after=row.hume_arousal_after,
            session_id=row.session_id,
            last_used_at=row.last_used_at,
            created_at=row.created_at,
        )

    async def _run(self, fn: Any, session: AsyncSession | None, action: str) -> Any:
        """Run fn with the injected session or a fresh one.

        Storage failures surface as MemoryInternalError. Memory taxonomy
        errors pass through unchanged.
        """
        try:
            if session:
                return await fn(session)
            async with self._db.get_session() as db:
                return await fn(db)
        except MemoryServiceError:
            raise
        except DatabaseError as e:
            logger.error("Failed to %s: %s", action, str(e))
            raise MemoryInternalError(f"Failed to {action}", e) from e

    # =========================================================================
    # Embeddings
    # =========================================================================

    async def _embed(self, text: str) -> list[float]:
        try:
            return await self._embedding.embed_text(text)
        except (EmbeddingError, ValueError) as e:
            raise UpstreamUnavailableError("Failed to generate embedding", e) from e

    async def _index(self, memory: MemoryRecordResponse) -> None:
        """Mirror a memory's embedding into Qdrant. Failures are logged only."""
        if self._qdrant is None or not memory.embedding:
            return
        try:
            await self._qdrant.upsert_memory(
                memory_id=memory.id,
                vector=memory.embedding,
                owner_id=memory.owner_id,
                kind=memory.kind.value,
            )
        except QdrantError as e:
            logger.warning("Failed to index memory %s in Qdrant: %s", memory.id, str(e))

    # =========================================================================
    # Memory records
    # =========================================================================

    async def create(
        self,
        record: MemoryRecordCreate,
        session: AsyncSession | None = None,
    ) -> MemoryRecordResponse:
        """Persist a new user fact or relational note.

        Computes the embedding when absent and the initial memory strength.
        When the embedding provider is down the row is stored without an
        embedding; it stays listable but is invisible to semantic search.

        Args:
            record: Record to create.
            session: Optional database session for transaction sharing.

        Returns:
            The created memory.

        Raises:
            MemoryValidationError: If the category does not fit the kind.
            MemoryInternalError: If storage fails.
        """
        model = _model_for(record.kind)
        if record.category not in _CATEGORIES[record.kind]:
            raise MemoryValidationError(
                f"Category {record.category!r} is not valid for {record.kind.value}"
            )

        embedding = record.embedding
        if embedding is None:
            try:
                embedding = await self._embed(record.content)
            except UpstreamUnavailableError as e:
                logger.warning(
                    "Storing memory for owner %s without embedding: %s",
                    record.owner_id,
                    str(e),
                )

        voice = record.hume_arousal if record.hume_arousal is not None else record.emotional_arousal
        text = record.text_arousal if record.text_arousal is not None else record.emotional_arousal
        strength = memory_strength(
            cited_count=0,
            voice_arousal=voice,
            text_arousal=text,
            llm_importance=record.llm_importance,
            retrieved_unused_count=0,
        )

        fields: dict[str, Any] = {
            "owner_id": record.owner_id,
            "content": record.content,
            "summary": summarize(record.content, record.summary),
            "embedding": embedding,
            "emotional_arousal": record.emotional_arousal,
            "emotional_valence": record.emotional_valence,
            "dominant_emotion": record.dominant_emotion or "neutral",
            "hume_arousal": record.hume_arousal,
            "text_arousal": record.text_arousal,
            "llm_importance": record.llm_importance,
            "memory_strength": strength,
            "current_importance": strength,
            "confidence": record.confidence,
            "times_cited": 0,
            "times_retrieved_unused": 0,
            "granularity": record.granularity.value,
            "perplexity": record.perplexity,
            "source_session_id": record.source_session_id,
            "source_type": record.source_type.value,
            "tags": list(dict.fromkeys(record.tags)),
            "created_at": utc_now(),
        }
        if model is UserFact:
            fields["category"] = record.category
        else:
            fields["memory_type"] = record.category
            fields["effectiveness_score"] = record.effectiveness_score
            fields["links"] = list(record.links)

        async def _execute(db: AsyncSession) -> MemoryRecordResponse:
            row = model(**fields)
            db.add(row)
            await db.flush()

            logger.info(
                "Stored %s %s for owner %s: %s (strength=%.2f)",
                record.kind.value,
                row.id,
                record.owner_id,
                record.category,
                strength,
            )
            return self._to_response(row)

        memory = await self._run(_execute, session, "store memory")
        await self._index(memory)
        return memory

    async def _find_row(
        self,
        db: AsyncSession,
        owner_id: str,
        memory_id: str,
    ) -> MemoryRow:
        """Load a row of either family and verify its owner.

        Raises:
            MemoryNotFoundError: If no record has this id.
            MemoryForbiddenError: If the record belongs to another owner.
        """
        for model in (UserFact, RelationalNote):
            row = await db.get(model, memory_id)
            if row is None:
                continue
            if row.owner_id != owner_id:
                logger.warning(
                    "Ownership violation: owner %s requested memory %s of another owner",
                    owner_id,
                    memory_id,
                )
                raise MemoryForbiddenError(f"Memory {memory_id} not found")
            return row

        raise MemoryNotFoundError(f"Memory {memory_id} not found")

    async def get(
        self,
        owner_id: str,
        memory_id: str,
        session: AsyncSession | None = None,
    ) -> MemoryRecordResponse:
        """Get one memory of an owner.

        Raises:
            MemoryNotFoundError: If absent or owned by someone else.
        """

        async def _execute(db: AsyncSession) -> MemoryRecordResponse:
            return self._to_response(await self._find_row(db, owner_id, memory_id))

        return await self._run(_execute, session, "load memory")

    async def update_content(
        self,
        owner_id: str,
        memory_id: str,
        new_content: str,
        session: AsyncSession | None = None,
    ) -> MemoryRecordResponse:
        """Replace a memory's content, summary and embedding.

        Strength and importance are left untouched.

        Raises:
            MemoryValidationError: If new_content is blank.
            MemoryNotFoundError: If absent or owned by someone else.
            UpstreamUnavailableError: If the new embedding cannot be generated.
        """
        if not new_content or not new_content.strip():
            raise MemoryValidationError("New content cannot be empty")

        async def _check(db: AsyncSession) -> None:
            await self._find_row(db, owner_id, memory_id)

        # Ownership first, so a foreign id never costs an embedding call
        await self._run(_check, session, "load memory")
        embedding = await self._embed(new_content)

        async def _execute(db: AsyncSession) -> MemoryRecordResponse:
            row = await self._find_row(db, owner_id, memory_id)
            row.content = new_content
            row.summary = summarize(new_content)
            row.embedding = embedding
            row.updated_at = utc_now()
            await db.flush()
            return self._to_response(row)

        memory = await self._run(_execute, session, "update memory")
        await self._index(memory)
        return memory

    async def adjust_importance(
        self,
        owner_id: str,
        memory_id: str,
        delta: float,
        session: AsyncSession | None = None,
    ) -> MemoryRecordResponse:
        """Shift a memory's assigned importance by delta.

        llm_importance becomes clamp(llm_importance + delta) and strength is
        recomputed from it. current_importance keeps its decay and moves by
        the change in strength, never below zero, so a negative delta never
        raises it. Forgotten records keep zero scores.

        Raises:
            MemoryNotFoundError: If absent or owned by someone else.
        """

        async def _execute(db: AsyncSession) -> MemoryRecordResponse:
            row = await self._find_row(db, owner_id, memory_id)
            previous = row.llm_importance
            row.llm_importance = clamp(previous + delta)

            if not row.is_forgotten:
                voice = row.hume_arousal if row.hume_arousal is not None else row.emotional_arousal
                text = row.text_arousal if row.text_arousal is not None else row.emotional_arousal

                def strength_at(importance: float) -> float:
                    return memory_strength(
                        cited_count=row.times_cited,
                        voice_arousal=voice,
                        text_arousal=text,
                        llm_importance=importance,
                        retrieved_unused_count=row.times_retrieved_unused,
                    )

                strength = strength_at(row.llm_importance)
                shift = strength - strength_at(previous)
                row.memory_strength = strength
                row.current_importance = max(0.0, row.current_importance + shift)

            row.updated_at = utc_now()
            await db.flush()

            logger.info(
                "Adjusted importance of memory %s by %+.2f to %.2f",
                memory_id,
                delta,
                row.llm_importance,
            )
            return self._to_response(row)

        return await self._run(_execute, session, "adjust importance")

    async def add_tags(
        self,
        owner_id: str,
        memory_id: str,
        tags: Sequence[str],
        session: AsyncSession | None = None,
    ) -> MemoryRecordResponse:
        """Append tags to a memory, skipping ones already present."""

        async def _execute(db: AsyncSession) -> MemoryRecordResponse:
            row = await self._find_row(db, owner_id, memory_id)
            merged = list(dict.fromkeys([*(row.tags or []), *(t.strip() for t in tags if t.strip())]))
            row.tags = merged
            row.updated_at = utc_now()
            await db.flush()
            return self._to_response(row)

        return await self._run(_execute, session, "tag memory")

    async def soft_forget(
        self,
        owner_id: str,
        memory_id: str,
        reason: str | None = None,
        session: AsyncSession | None = None,
    ) -> bool:
        """Zero a memory's scores without deleting the row.

        Idempotent: forgetting an already forgotten memory changes nothing.

        Returns:
            True if the memory was forgotten now, False if it already was.

        Raises:
            MemoryNotFoundError: If absent or owned by someone else.
        """

        async def _execute(db: AsyncSession) -> bool:
            row = await self._find_row(db, owner_id, memory_id)
            model = type(row)

            result = await db.execute(
                update(model)
                .where(
                    model.id == memory_id,
                    model.owner_id == owner_id,
                    model.forgotten_at.is_(None),
                )
                .values(
                    memory_strength=0.0,
                    current_importance=0.0,
                    forgotten_at=utc_now(),
                    forget_reason=reason,
                )
                .execution_options(synchronize_session=False)
            )
            changed = result.rowcount > 0
            if changed:
                logger.info("Forgot memory %s for owner %s", memory_id, owner_id)
            return changed

        return await self._run(_execute, session, "forget memory")

    async def list_by_owner(
        self,
        owner_id: str,
        kind: MemoryKind | None = None,
        category: str | None = None,
        include_forgotten: bool = True,
        limit: int = 100,
        session: AsyncSession | None = None,
    ) -> list[MemoryRecordResponse]:
        """List an owner's memories, newest first.

        Forgotten rows are included unless include_forgotten is False.
        """
        kinds = [kind] if kind else [MemoryKind.USER_FACT, MemoryKind.RELATIONAL_NOTE]

        async def _execute(db: AsyncSession) -> list[MemoryRecordResponse]:
            rows: list[MemoryRow] = []
            for k in kinds:
                model = _model_for(k)
                stmt = select(model).where(model.owner_id == owner_id)
                if category:
                    column = model.category if model is UserFact else model.memory_type
                    stmt = stmt.where(column == category)
                if not include_forgotten:
                    stmt = stmt.where(model.forgotten_at.is_(None))
                stmt = stmt.order_by(model.created_at.desc()).limit(limit)
                rows.extend((await db.execute(stmt)).scalars().all())

            rows.sort(key=lambda r: r.created_at, reverse=True)
            return [self._to_response(r) for r in rows[:limit]]

        return await self._run(_execute, session, "list memories")

    async def list_ranked_by_importance(
        self,
        owner_id: str,
        kind: MemoryKind,
        limit: int,
        session: AsyncSession | None = None,
    ) -> list[MemoryRecordResponse]:
        """List active memories of one kind by importance, then recency."""
        model = _model_for(kind)

        async def _execute(db: AsyncSession) -> list[MemoryRecordResponse]:
            result = await db.execute(
                select(model)
                .where(model.owner_id == owner_id, *_active(model, self.importance_floor))
                .order_by(model.current_importance.desc(), model.created_at.desc())
                .limit(limit)
            )
            return [self._to_response(r) for r in result.scalars().all()]

        return await self._run(_execute, session, "rank memories")

    async def list_teaching_successes(
        self,
        owner_id: str,
        min_effectiveness: float,
        limit: int,
        session: AsyncSession | None = None,
    ) -> list[MemoryRecordResponse]:
        """List active teaching_success notes above an effectiveness, best first."""

        async def _execute(db: AsyncSession) -> list[MemoryRecordResponse]:
            result = await db.execute(
                select(RelationalNote)
                .where(
                    RelationalNote.owner_id == owner_id,
                    RelationalNote.memory_type == RelationalNoteType.TEACHING_SUCCESS.value,
                    RelationalNote.effectiveness_score > min_effectiveness,
                    *_active(RelationalNote, self.importance_floor),
                )
                .order_by(RelationalNote.effectiveness_score.desc())
                .limit(limit)
            )
            return [self._to_response(r) for r in result.scalars().all()]

        return await self._run(_execute, session, "list teaching approaches")

    async def top_k_by_similarity(
        self,
        owner_id: str,
        query_embedding: list[float],
        k: int,
        kind: MemoryKind = MemoryKind.USER_FACT,
        session: AsyncSession | None = None,
    ) -> list[ScoredMemory]:
        """Find an owner's active memories most similar to a query vector.

        Uses Qdrant when configured, falling back to in-process cosine
        similarity over the owner's rows.
        """
        model = _model_for(kind)

        if self._qdrant is not None:
            try:
                hits = await self._qdrant.search_owner(
                    owner_id=owner_id,
                    kind=kind.value,
                    query_vector=query_embedding,
                    limit=k * 2,
                )
                scores = {h.id: h.score for h in hits}

                async def _hydrate(db: AsyncSession) -> list[ScoredMemory]:
                    if not scores:
                        return []
                    result = await db.execute(
                        select(model).where(
                            model.id.in_(list(scores)),
                            model.owner_id == owner_id,
                            *_active(model, self.importance_floor),
                        )
                    )
                    scored = [
                        ScoredMemory(memory=self._to_response(r), similarity=scores[r.id])
                        for r in result.scalars().all()
                    ]
                    scored.sort(key=lambda s: s.similarity, reverse=True)
                    return scored[:k]

                return await self._run(_hydrate, session, "load similar memories")
            except QdrantError as e:
                logger.warning("Qdrant search failed, using in-process search: %s", str(e))

        async def _execute(db: AsyncSession) -> list[ScoredMemory]:
            result = await db.execute(
                select(model).where(
                    model.owner_id == owner_id,
                    model.embedding.is_not(None),
                    *_active(model, self.importance_floor),
                )
            )
            scored = [
                ScoredMemory(
                    memory=self._to_response(r),
                    similarity=cosine_similarity(query_embedding, r.embedding or []),
                )
                for r in result.scalars().all()
            ]
            scored.sort(key=lambda s: s.similarity, reverse=True)
            return scored[:k]

        return await self._run(_execute, session, "search memories")

    async def _bump(
        self,
        owner_id: str,
        memory_ids: Sequence[str],
        counter: str,
        session: AsyncSession | None,
    ) -> int:
        ids = list(dict.fromkeys(memory_ids))
        if not ids:
            return 0

        async def _execute(db: AsyncSession) -> int:
            now = utc_now()
            touched = 0
            for model in (UserFact, RelationalNote):
                if counter == "cited":
                    values = {"times_cited": model.times_cited + 1, "last_cited_at": now}
                elif counter == "unused":
                    values = {"times_retrieved_unused": model.times_retrieved_unused + 1}
                else:
                    # Citation counted at retrieval turned out unused
                    values = {
                        "times_cited": case(
                            (model.times_cited > 0, model.times_cited - 1), else_=0
                        ),
                        "times_retrieved_unused": model.times_retrieved_unused + 1,
                    }
                result = await db.execute(
                    update(model)
                    .where(
                        model.id.in_(ids),
                        model.owner_id == owner_id,
                        model.forgotten_at.is_(None),
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                touched += result.rowcount
            return touched

        return await self._run(_execute, session, "update citation counters")

    async def increment_cited(
        self,
        owner_id: str,
        memory_ids: Sequence[str],
        session: AsyncSession | None = None,
    ) -> int:
        """Count one citation for each memory and stamp last_cited_at.

        Returns:
            Number of rows updated.
        """
        return await self._bump(owner_id, memory_ids, "cited", session)

    async def increment_unused(
        self,
        owner_id: str,
        memory_ids: Sequence[str],
        session: AsyncSession | None = None,
    ) -> int:
        """Count one surfaced-but-unused retrieval for each memory."""
        return await self._bump(owner_id, memory_ids, "unused", session)

    async def move_citation_to_unused(
        self,
        owner_id: str,
        memory_ids: Sequence[str],
        session: AsyncSession | None = None,
    ) -> int:
        """Turn a citation counted at retrieval into an unused retrieval.

        Returns:
            Number of rows updated.
        """
        return await self._bump(owner_id, memory_ids, "uncited", session)

    # =========================================================================
    # Teaching strategies
    # =========================================================================

    async def upsert_strategy(
        self,
        owner_id: str,
        topic: str,
        strategy: str,
        outcome: StrategyOutcome,
        outcome_score: float,
        emotional_bonus: float = 0.0,
        evidence: str | None = None,
        arousal_before: float | None = None,
        arousal_after: float | None = None,
        session_id: str | None = None,
        session: AsyncSession | None = None,
    ) -> TeachingStrategyResponse:
        """Fold one observed outcome into the (owner, topic, strategy) row.

        The emotional bonus is added to this occurrence's score before it is
        averaged in. An existing row gets the running mean applied in a
        single UPDATE. A new row starts with times_used=1.

        Raises:
            MemoryValidationError: If topic is blank or strategy unknown.
            MemoryInternalError: If storage fails.
        """
        topic = _WHITESPACE.sub(" ", topic or "").strip()
        strategy = (strategy or "").strip().lower()
        if not topic:
            raise MemoryValidationError("Strategy topic cannot be empty")
        if strategy not in {s.value for s in StrategyName}:
            raise MemoryValidationError(f"Unknown teaching strategy: {strategy}")

        async def _execute(db: AsyncSession) -> TeachingStrategyResponse:
            now = utc_now()
            occurrence = clamp(outcome_score + emotional_bonus)
            mean = (
                TeachingStrategy.success_score * TeachingStrategy.times_used + occurrence
            ) / (TeachingStrategy.times_used + 1)

            where = (
                TeachingStrategy.owner_id == owner_id,
                TeachingStrategy.topic == topic,
                TeachingStrategy.strategy_used == strategy,
            )
            result = await db.execute(
                update(TeachingStrategy)
                .where(*where)
                .values(
                    success_score=_clamped(mean),
                    times_used=TeachingStrategy.times_used + 1,
                    outcome=outcome.value,
                    evidence=evidence,
                    hume_arousal_before=arousal_before,
                    hume_arousal_after=arousal_after,
                    session_id=session_id,
                    last_used_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount == 0:
                row = TeachingStrategy(
                    owner_id=owner_id,
                    topic=topic,
                    strategy_used=strategy,
                    outcome=outcome.value,
                    success_score=occurrence,
                    times_used=1,
                    evidence=evidence,
                    hume_arousal_before=arousal_before,
                    hume_arousal_after=arousal_after,
                    session_id=session_id,
                    last_used_at=now,
                    created_at=now,
                )
                db.add(row)
                await db.flush()
                logger.info("Saved new strategy %s: %s for %r", row.id, strategy, topic)
            else:
                row = (
                    await db.execute(
                        select(TeachingStrategy)
                        .where(*where)
                        .execution_options(populate_existing=True)
                    )
                ).scalar_one()
                logger.info(
                    "Updated strategy %s: score=%.2f after %d uses",
                    row.id,
                    row.success_score,
                    row.times_used,
                )

            return self._to_strategy_response(row)

        try:
            return await self._run(_execute, session, "save teaching strategy")
        except MemoryInternalError as e:
            # A concurrent first insert won the unique constraint; fold into it
            cause = getattr(e.original_error, "original_error", None)
            if session is None and isinstance(cause, IntegrityError):
                return await self._run(_execute, None, "save teaching strategy")
            raise

    async def get_strategy(
        self,
        strategy_id: str,
        owner_id: str | None = None,
        session: AsyncSession | None = None,
    ) -> TeachingStrategyResponse:
        """Get one strategy, optionally verifying its owner.

        Raises:
            MemoryNotFoundError: If absent or owned by someone else.
        """

        async def _execute(db: AsyncSession) -> TeachingStrategyResponse:
            row = await db.get(TeachingStrategy, strategy_id)
            if row is None or (owner_id is not None and row.owner_id != owner_id):
                raise MemoryNotFoundError(f"Strategy {strategy_id} not found")
            return self._to_strategy_response(row)

        return await self._run(_execute, session, "load strategy")

    async def find_strategies(
        self,
        owner_id: str,
        topic: str | None,
        min_score: float,
        limit: int,
        session: AsyncSession | None = None,
    ) -> list[TeachingStrategyResponse]:
        """Find strategies above a score, best first.

        Topic matching is fuzzy in both directions: a stored topic matches
        when it contains the query or is contained in it, case-insensitively.
        """

        async def _execute(db: AsyncSession) -> list[TeachingStrategyResponse]:
            stmt = select(TeachingStrategy).where(
                TeachingStrategy.owner_id == owner_id,
                TeachingStrategy.success_score > min_score,
            )
            if topic:
                needle = topic.strip().lower()
                stored = func.lower(TeachingStrategy.topic)
                stmt = stmt.where(
                    or_(
                        stored.contains(needle, autoescape=True),
                        literal(needle, String).contains(stored),
                    )
                )
            stmt = stmt.order_by(
                TeachingStrategy.success_score.desc(),
                TeachingStrategy.times_used.desc(),
            ).limit(limit)
            result = await db.execute(stmt)
            return [self._to_strategy_response(r) for r in result.scalars().all()]

        return await self._run(_execute, session, "find strategies")

    async def adjust_strategy_score(
        self,
        strategy_id: str,
        delta: float,
        owner_id: str | None = None,
        session: AsyncSession | None = None,
    ) -> TeachingStrategyResponse:
        """Add delta to a strategy's score in one UPDATE and count a use.

        Raises:
            MemoryNotFoundError: If absent or owned by someone else.
        """

        async def _execute(db: AsyncSession) -> TeachingStrategyResponse:
            conditions = [TeachingStrategy.id == strategy_id]
            if owner_id is not None:
                conditions.append(TeachingStrategy.owner_id == owner_id)

            now = utc_now()
            result = await db.execute(
                update(TeachingStrategy)
                .where(*conditions)
                .values(
                    success_score=_clamped(TeachingStrategy.success_score + delta),
                    times_used=TeachingStrategy.times_used + 1,
                    last_used_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise MemoryNotFoundError(f"Strategy {strategy_id} not found")

            row = (
                await db.execute(
                    select(TeachingStrategy)
                    .where(TeachingStrategy.id == strategy_id)
                    .execution_options(populate_existing=True)
                )
            ).scalar_one()
            return self._to_strategy_response(row)

        return await self._run(_execute, session, "update strategy score")
