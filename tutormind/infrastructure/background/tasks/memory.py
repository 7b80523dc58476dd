# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Memory background tasks for tutormind.

Session-end extraction, citation feedback and scheduled decay. Actors
never raise: failures are logged and reported in the returned dict so a
broken LLM or database cannot poison the queue with retries.
"""

import logging
from typing import Any

import dramatiq

from tutormind.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from tutormind.infrastructure.background.tasks.base import run_async

# Setup broker before defining actors
setup_dramatiq()

logger = logging.getLogger(__name__)


async def _build_manager():
    """Build a MemoryManager bound to the worker thread's database and index."""
    from tutormind.core.config import get_settings
    from tutormind.core.intelligence.embeddings import EmbeddingService
    from tutormind.core.intelligence.llm import LLMClient
    from tutormind.core.memory import MemoryManager
    from tutormind.infrastructure.database import get_worker_db_manager
    from tutormind.infrastructure.vectors import get_worker_qdrant

    settings = get_settings()
    embedding_service = EmbeddingService()
    return MemoryManager(
        db_manager=get_worker_db_manager(),
        embedding_service=embedding_service,
        llm_client=LLMClient(llm_settings=settings.llm),
        qdrant_client=await get_worker_qdrant(settings, embedding_service.dimension),
        settings=settings,
    )


@dramatiq.actor(
    queue_name=Queues.MEMORY,
    max_retries=1,
    time_limit=300000,  # 5 minutes
    priority=Priority.NORMAL,
)
def process_conversation_memories(
    owner_id: str,
    session_id: str | None,
    messages: list[dict[str, Any]],
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Extract memories and teaching strategies from a finished session.

    Args:
        owner_id: Learner identifier.
        session_id: Session the transcript came from.
        messages: Serialized ConversationTurn dicts, oldest first.
        metadata: Serialized SessionMetadata dict.

    Returns:
        Processing counts, or an error description.
    """

    async def _process() -> dict[str, Any]:
        from tutormind.models.memory import ConversationTurn, SessionMetadata

        try:
            manager = await _build_manager()
            result = await manager.extraction.process_conversation(
                owner_id=owner_id,
                session_id=session_id,
                messages=[ConversationTurn.model_validate(m) for m in messages],
                metadata=SessionMetadata.model_validate(metadata) if metadata else None,
            )
            return result.model_dump()

        except Exception as e:
            logger.error(
                "Failed to process conversation %s: %s",
                session_id,
                str(e),
                exc_info=True,
            )
            return {
                "owner_id": owner_id,
                "session_id": session_id,
                "error": str(e),
            }

    return run_async(_process())


@dramatiq.actor(
    queue_name=Queues.MEMORY,
    max_retries=3,
    time_limit=60000,  # 1 minute
    priority=Priority.NORMAL,
)
def record_memory_feedback(
    owner_id: str,
    retrieved_ids: list[str],
    cited_ids: list[str],
) -> dict[str, Any]:
    """Record which retrieved memories a response cited.

    Args:
        owner_id: Learner identifier.
        retrieved_ids: Ids returned by retrieval.
        cited_ids: Ids the response used.

    Returns:
        Updated row counts, or an error description.
    """

    async def _record() -> dict[str, Any]:
        try:
            manager = await _build_manager()
            result = await manager.retrieval.record_feedback(owner_id, retrieved_ids, cited_ids)
            return {"owner_id": owner_id, **result.model_dump()}

        except Exception as e:
            logger.error("Failed to record memory feedback: %s", str(e), exc_info=True)
            return {"owner_id": owner_id, "error": str(e)}

    return run_async(_record())


@dramatiq.actor(
    queue_name=Queues.MAINTENANCE,
    max_retries=0,
    time_limit=3600000,  # 1 hour
    priority=Priority.LOW,
)
def decay_memories(
    dry_run: bool = False,
    refresh_strength: bool = False,
) -> dict[str, Any]:
    """Apply importance decay to every active memory.

    Idempotent within the minimum decay interval, so duplicate schedule
    fires are harmless.

    Args:
        dry_run: Compute the report without writing.
        refresh_strength: Recompute strength from counters first.

    Returns:
        Serialized DecayReport, or an error description.
    """

    async def _decay() -> dict[str, Any]:
        from tutormind.core.memory import DecayJob
        from tutormind.infrastructure.database import get_worker_db_manager

        try:
            job = DecayJob(get_worker_db_manager())
            report = await job.run(dry_run=dry_run, refresh_strength=refresh_strength)
            return report.model_dump(mode="json")

        except Exception as e:
            logger.error("Memory decay failed: %s", str(e), exc_info=True)
            return {"dry_run": dry_run, "error": str(e)}

    return run_async(_decay())
