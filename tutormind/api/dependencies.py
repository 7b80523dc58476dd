# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

The memory manager is built once at startup and shared by all requests.
Tests replace it through app.dependency_overrides[get_memory_manager].

Example:
    @router.post("/retrieve")
    async def retrieve(
        manager: MemoryManager = Depends(get_memory_manager),
    ):
        ...
"""

import logging

from fastapi import HTTPException, status

from tutormind.core.config import get_settings
from tutormind.core.intelligence.embeddings import EmbeddingService
from tutormind.core.intelligence.llm import LLMClient
from tutormind.core.memory import MemoryManager
from tutormind.infrastructure.database import close_database, init_database
from tutormind.infrastructure.vectors import close_qdrant, get_qdrant, init_qdrant

logger = logging.getLogger(__name__)

_memory_manager: MemoryManager | None = None


async def init_db() -> None:
    """Initialize the database and, when enabled, the vector index."""
    settings = get_settings()

    await init_database(settings)

    if settings.qdrant.enabled:
        await init_qdrant(settings, settings.embedding.dimension)


async def close_db() -> None:
    """Close the vector index and the database."""
    global _memory_manager
    _memory_manager = None

    await close_qdrant()
    await close_database()


async def init_memory_manager() -> MemoryManager:
    """Build the process-wide memory manager on the initialized database."""
    global _memory_manager
    from tutormind.infrastructure.database import get_db_manager

    settings = get_settings()
    _memory_manager = MemoryManager(
        db_manager=get_db_manager(),
        embedding_service=EmbeddingService(),
        llm_client=LLMClient(llm_settings=settings.llm),
        qdrant_client=get_qdrant(),
        settings=settings,
    )
    await _memory_manager.ensure_collections()
    return _memory_manager


def get_memory_manager() -> MemoryManager:
    """Get the memory manager.

    Raises:
        HTTPException: 503 if the service is not initialized.
    """
    if _memory_manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Memory service not initialized",
        )
    return _memory_manager
