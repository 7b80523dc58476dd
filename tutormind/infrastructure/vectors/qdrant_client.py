# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Qdrant vector index for memory embeddings.

Optional accelerator for semantic search. Every memory embedding is also
stored on its database row, so the index can be rebuilt and the engine
works without Qdrant. One collection holds both record families; each
point carries owner_id and kind in its payload and every search is
filtered on both.

Example:
    from tutormind.infrastructure.vectors import init_qdrant, get_qdrant

    await init_qdrant(settings, vector_size=768)
    qdrant = get_qdrant()

    results = await qdrant.search_owner(
        owner_id="learner-1",
        kind="user_fact",
        query_vector=embedding,
        limit=10,
    )
"""

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models
from qdrant_client.http.exceptions import UnexpectedResponse

if TYPE_CHECKING:
    from tutormind.core.config.settings import Settings

logger = logging.getLogger(__name__)

# Module-level state
_qdrant_client: Optional["QdrantVectorClient"] = None

# Each dramatiq worker thread keeps its own client bound to its own loop
_thread_local = threading.local()


class QdrantError(Exception):
    """Exception raised for Qdrant operation failures.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying Qdrant error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


@dataclass
class SearchResult:
    """Result from a vector similarity search.

    Attributes:
        id: Point ID in Qdrant (the memory id).
        score: Cosine similarity.
        payload: Associated metadata.
    """

    id: str
    score: float
    payload: dict[str, Any]


class QdrantVectorClient:
    """Async Qdrant client scoped to the memory collection.

    Attributes:
        collection: Name of the memory collection.
    """

    def __init__(self, settings: "Settings") -> None:
        self._settings = settings
        self._client: Optional[AsyncQdrantClient] = None
        self.collection = settings.qdrant.collection

    async def connect(self) -> None:
        """Create the Qdrant client connection.

        Raises:
            QdrantError: If connection fails.
        """
        qdrant_settings = self._settings.qdrant
        api_key = (
            qdrant_settings.api_key.get_secret_value()
            if qdrant_settings.api_key
            else None
        )

        try:
            self._client = AsyncQdrantClient(
                host=qdrant_settings.host,
                port=qdrant_settings.http_port,
                grpc_port=qdrant_settings.grpc_port,
                api_key=api_key,
                prefer_grpc=qdrant_settings.prefer_grpc,
                timeout=qdrant_settings.timeout,
            )

            await self._client.get_collections()
        except Exception as e:
            raise QdrantError("Failed to connect to Qdrant", e) from e

    async def close(self) -> None:
        """Close the Qdrant client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    def _ensure_connected(self) -> AsyncQdrantClient:
        if self._client is None:
            raise QdrantError("Qdrant client not connected. Call connect() first.")
        return self._client

    async def ensure_collection(self, vector_size: int) -> None:
        """Create the memory collection and its payload indexes if missing.

        Args:
            vector_size: Embedding dimension.

        Raises:
            QdrantError: If collection creation fails.
        """
        client = self._ensure_connected()

        try:
            if await client.collection_exists(self.collection):
                return

            await client.create_collection(
                collection_name=self.collection,
                vectors_config=models.VectorParams(
                    size=vector_size,
                    distance=models.Distance.COSINE,
                    on_disk=True,
                ),
            )
            for field_name in ("owner_id", "kind"):
                await client.create_payload_index(
                    collection_name=self.collection,
                    field_name=field_name,
                    field_schema=models.PayloadSchemaType.KEYWORD,
                )
        except UnexpectedResponse as e:
            raise QdrantError(f"Failed to create collection: {self.collection}", e) from e

    async def upsert_memory(
        self,
        memory_id: str,
        vector: list[float],
        owner_id: str,
        kind: str,
    ) -> None:
        """Insert or replace the vector of one memory.

        Raises:
            QdrantError: If upsert fails.
        """
        client = self._ensure_connected()

        try:
            await client.upsert(
                collection_name=self.collection,
                points=[
                    models.PointStruct(
                        id=memory_id,
                        vector=vector,
                        payload={"owner_id": owner_id, "kind": kind},
                    )
                ],
            )
        except UnexpectedResponse as e:
            raise QdrantError(f"Failed to upsert memory {memory_id}", e) from e

    async def search_owner(
        self,
        owner_id: str,
        kind: str,
        query_vector: list[float],
        limit: int = 10,
        score_threshold: Optional[float] = None,
    ) -> list[SearchResult]:
        """Search one owner's memories of one kind.

        Args:
            owner_id: Owner whose memories are searched.
            kind: Record family.
            query_vector: The query embedding vector.
            limit: Maximum number of results.
            score_threshold: Minimum similarity score.

        Returns:
            List of SearchResult objects, most similar first.

        Raises:
            QdrantError: If search fails.
        """
        client = self._ensure_connected()

        query_filter = models.Filter(
            must=[
                models.FieldCondition(key="owner_id", match=models.MatchValue(value=owner_id)),
                models.FieldCondition(key="kind", match=models.MatchValue(value=kind)),
            ]
        )

        try:
            response = await client.query_points(
                collection_name=self.collection,
                query=query_vector,
                limit=limit,
                score_threshold=score_threshold,
                query_filter=query_filter,
                with_payload=True,
            )

            return [
                SearchResult(
                    id=str(point.id),
                    score=point.score,
                    payload=point.payload or {},
                )
                for point in response.points
            ]
        except UnexpectedResponse as e:
            raise QdrantError(f"Failed to search in: {self.collection}", e) from e

    async def ping(self) -> bool:
        """Check if Qdrant is reachable."""
        try:
            client = self._ensure_connected()
            await client.get_collections()
            return True
        except Exception:
            return False


# ========== Module-level functions ==========


async def init_qdrant(settings: "Settings", vector_size: int) -> QdrantVectorClient:
    """Initialize the global Qdrant client and the memory collection.

    Raises:
        QdrantError: If connection or collection creation fails.
    """
    global _qdrant_client

    client = QdrantVectorClient(settings)
    await client.connect()
    await client.ensure_collection(vector_size)
    _qdrant_client = client
    return client


async def close_qdrant() -> None:
    """Close the global Qdrant client."""
    global _qdrant_client

    if _qdrant_client is not None:
        await _qdrant_client.close()
        _qdrant_client = None


def get_qdrant() -> QdrantVectorClient | None:
    """Get the global Qdrant client, or None when the index is not in use."""
    return _qdrant_client


async def get_worker_qdrant(
    settings: "Settings", vector_size: int
) -> QdrantVectorClient | None:
    """Get the Qdrant client of the current worker thread.

    Connects on first use in the thread and makes sure the memory
    collection exists. Returns None when the index is disabled, or when it
    cannot be reached so the write still lands in the database.
    """
    if not settings.qdrant.enabled:
        return None

    client = getattr(_thread_local, "qdrant_client", None)
    if client is None:
        client = QdrantVectorClient(settings)
        try:
            await client.connect()
            await client.ensure_collection(vector_size)
        except QdrantError as e:
            await client.close()
            logger.warning("Worker could not reach Qdrant: %s", str(e))
            return None
        _thread_local.qdrant_client = client

    return client


def clear_thread_qdrant() -> None:
    """Drop the current thread's client so it reconnects on the new loop."""
    _thread_local.qdrant_client = None
