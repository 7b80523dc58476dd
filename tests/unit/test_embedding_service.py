# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for EmbeddingService.

Tests the embedding service functionality including:
- Dimension detection
- Single text and batch embedding
- Error handling
- Cosine similarity
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tutormind.core.intelligence.embeddings.service import (
    MODEL_DIMENSIONS,
    EmbeddingError,
    EmbeddingService,
    cosine_similarity,
)


def _response(*vectors: list[float]) -> MagicMock:
    response = MagicMock()
    response.data = [{"embedding": v} for v in vectors]
    return response


@pytest.fixture
def service() -> EmbeddingService:
    """Create an EmbeddingService with a small batch size."""
    return EmbeddingService(model="ollama/nomic-embed-text", batch_size=2)


@pytest.mark.unit
class TestEmbeddingServiceInit:
    """Test cases for EmbeddingService initialization."""

    def test_dimension_from_known_model(self) -> None:
        """Test known models get their dimension automatically."""
        service = EmbeddingService(model="text-embedding-3-small")

        assert service.dimension == MODEL_DIMENSIONS["text-embedding-3-small"]

    def test_explicit_dimension_wins(self) -> None:
        """Test an explicit dimension overrides auto-detection."""
        service = EmbeddingService(model="text-embedding-3-small", dimension=512)

        assert service.dimension == 512

    def test_unknown_model_uses_settings(self) -> None:
        """Test unknown models fall back to the configured dimension."""
        service = EmbeddingService(model="custom/embedder")

        assert service.dimension == 768


@pytest.mark.unit
class TestEmbedText:
    """Test cases for embed_text."""

    @pytest.mark.asyncio
    async def test_success(self, service) -> None:
        """Test a vector is returned from the provider response."""
        with patch(
            "tutormind.core.intelligence.embeddings.service.aembedding",
            new=AsyncMock(return_value=_response([0.1, 0.2, 0.3])),
        ) as mock_embed:
            vector = await service.embed_text("Has a dog named Achilles")

        assert vector == [0.1, 0.2, 0.3]
        assert mock_embed.call_args.kwargs["input"] == ["Has a dog named Achilles"]

    @pytest.mark.asyncio
    async def test_empty_text(self, service) -> None:
        """Test blank text is rejected before calling the provider."""
        with pytest.raises(ValueError):
            await service.embed_text("   ")

    @pytest.mark.asyncio
    async def test_provider_error(self, service) -> None:
        """Test provider failures become EmbeddingError."""
        with patch(
            "tutormind.core.intelligence.embeddings.service.aembedding",
            new=AsyncMock(side_effect=RuntimeError("connection refused")),
        ):
            with pytest.raises(EmbeddingError) as exc_info:
                await service.embed_text("hello")

        assert exc_info.value.model == "ollama/nomic-embed-text"
        assert isinstance(exc_info.value.original_error, RuntimeError)


@pytest.mark.unit
class TestEmbedBatch:
    """Test cases for embed_batch."""

    @pytest.mark.asyncio
    async def test_batches_and_keeps_positions(self, service) -> None:
        """Test chunking by batch size and zero vectors for blank input."""
        responses = [_response([1.0], [2.0]), _response([3.0])]
        with patch(
            "tutormind.core.intelligence.embeddings.service.aembedding",
            new=AsyncMock(side_effect=responses),
        ) as mock_embed:
            vectors = await service.embed_batch(["a", "", "b", "c"])

        assert mock_embed.await_count == 2
        assert vectors[0] == [1.0]
        assert vectors[1] == [0.0] * service.dimension
        assert vectors[2] == [2.0]
        assert vectors[3] == [3.0]

    @pytest.mark.asyncio
    async def test_empty_list(self, service) -> None:
        """Test an empty list is rejected."""
        with pytest.raises(ValueError):
            await service.embed_batch([])


@pytest.mark.unit
class TestCosineSimilarity:
    """Test cases for cosine_similarity."""

    def test_identical(self) -> None:
        """Test identical vectors score one."""
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal(self) -> None:
        """Test orthogonal vectors score zero."""
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_and_mismatched(self) -> None:
        """Test degenerate inputs score zero."""
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
        assert cosine_similarity([1.0], [1.0, 1.0]) == 0.0
