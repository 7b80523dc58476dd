# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Memory manager wiring the memory engine's components together.

The manager is the single entry point used by the API and the background
actors. It builds every component on the same store so they share one
database manager, embedding service and vector index.

Example:
    manager = MemoryManager(
        db_manager=db_manager,
        embedding_service=EmbeddingService(),
        llm_client=LLMClient(),
        qdrant_client=get_qdrant(),
    )

    context = await manager.retrieval.retrieve("learner-1", topic="fractions")
    result = await manager.tools.execute("forget_memory", "learner-1", params)
"""

import logging

import httpx

from tutormind.core.config.settings import Settings, get_settings
from tutormind.core.intelligence.embeddings import EmbeddingService
from tutormind.core.intelligence.llm import LLMClient
from tutormind.core.memory.decay import DecayJob
from tutormind.core.memory.extraction import ExtractionPipeline
from tutormind.core.memory.retrieval import RetrievalService
from tutormind.core.memory.store import MemoryStore
from tutormind.core.memory.strategies import StrategyLearner
from tutormind.core.memory.tools import MemoryTools
from tutormind.core.memory.unified import CrossServiceAggregator
from tutormind.infrastructure.database.connection import DatabaseManager
from tutormind.infrastructure.vectors.qdrant_client import QdrantError, QdrantVectorClient

logger = logging.getLogger(__name__)


class MemoryManager:
    """Composes store, learner, retrieval, tools, extraction and decay.

    Attributes:
        store: Memory store.
        strategies: Teaching strategy learner.
        retrieval: Ranked context retrieval.
        tools: Agent-invocable memory tools.
        extraction: Session-end extraction pipeline.
        decay: Importance decay job.
        unified: Local plus companion-service aggregator.
        default_limit: Default number of entries in a retrieved context.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        embedding_service: EmbeddingService,
        llm_client: LLMClient,
        qdrant_client: QdrantVectorClient | None = None,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the memory manager.

        Args:
            db_manager: Database manager providing sessions.
            embedding_service: Service for generating text embeddings.
            llm_client: LLM client for extraction and retrieval refinement.
            qdrant_client: Optional vector index.
            settings: Application settings. Uses get_settings() if None.
            http_client: Optional shared client for the companion service.
        """
        settings = settings or get_settings()
        self._qdrant = qdrant_client
        self._embedding = embedding_service
        self.default_limit = settings.memory.default_limit

        self.store = MemoryStore(db_manager, embedding_service, qdrant_client, settings.memory)
        self.strategies = StrategyLearner(self.store, llm_client, settings.memory)
        self.retrieval = RetrievalService(
            self.store,
            embedding_service,
            self.strategies,
            settings.memory,
            llm_client=llm_client,
        )
        self.tools = MemoryTools(self.store, embedding_service, settings.memory)
        self.extraction = ExtractionPipeline(
            self.store, llm_client, self.strategies, settings.memory
        )
        self.decay = DecayJob(db_manager, settings.memory)
        self.unified = CrossServiceAggregator(
            self.retrieval, settings.cross_service, http_client
        )

        logger.info(
            "MemoryManager initialized (vector index: %s)",
            "qdrant" if qdrant_client else "in-process",
        )

    async def ensure_collections(self) -> None:
        """Create the vector collection if an index is configured."""
        if self._qdrant is None:
            return
        try:
            await self._qdrant.ensure_collection(self._embedding.dimension)
        except QdrantError as e:
            logger.warning("Failed to ensure memory collection: %s", str(e))
