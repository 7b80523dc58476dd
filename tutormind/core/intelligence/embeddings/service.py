# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Embedding service for API-based embedding generation.

Turns memory content and retrieval topics into fixed-dimension vectors.
Every stored record and every query vector must come from the same model,
so the dimension is fixed system-wide by EmbeddingSettings.

Supported providers:
- Ollama: nomic-embed-text (768d), mxbai-embed-large (1024d)
- OpenAI: text-embedding-3-small (1536d), text-embedding-3-large (3072d)
- Google: text-embedding-004 (768d)

Authenticated Ollama endpoints are called directly with httpx because
LiteLLM does not forward the Authorization header for Ollama embeddings.

Example:
    >>> from tutormind.core.intelligence.embeddings import EmbeddingService
    >>> service = EmbeddingService()
    >>> vector = await service.embed_text("Loves football and hates fractions")
"""

import logging
import math
from typing import Any, Optional, Sequence

import httpx
import litellm
from litellm import aembedding

from tutormind.core.config.settings import get_settings

logger = logging.getLogger(__name__)

# Model dimension mapping for known embedding models
MODEL_DIMENSIONS: dict[str, int] = {
    "ollama/nomic-embed-text": 768,
    "ollama/mxbai-embed-large": 1024,
    "ollama/all-minilm": 384,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "gemini/text-embedding-004": 768,
}


class EmbeddingError(Exception):
    """Exception raised when embedding generation fails.

    Attributes:
        message: Error description.
        model: Model that caused the error.
        original_error: Original exception if any.
    """

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.model = model
        self.original_error = original_error
        super().__init__(self.message)


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Calculate cosine similarity between two vectors.

    Vectors of different length (e.g. written before a model change)
    are treated as unrelated.

    Args:
        vec1: First embedding vector.
        vec2: Second embedding vector.

    Returns:
        Cosine similarity score between -1 and 1.
    """
    if not vec1 or not vec2 or len(vec1) != len(vec2):
        return 0.0

    dot_product = sum(a * b for a, b in zip(vec1, vec2))
    norm1 = math.sqrt(sum(a * a for a in vec1))
    norm2 = math.sqrt(sum(b * b for b in vec2))

    if norm1 == 0 or norm2 == 0:
        return 0.0

    return dot_product / (norm1 * norm2)


class EmbeddingService:
    """Service for generating text embeddings via LiteLLM.

    Attributes:
        model: The embedding model identifier in LiteLLM format.
        dimension: The output dimension of the embedding vectors.
        batch_size: Maximum number of texts to embed in a single batch.

    Example:
        >>> service = EmbeddingService()
        >>> vector = await service.embed_text("Hello world")
        >>> print(f"Dimension: {service.dimension}")
        Dimension: 768
    """

    def __init__(
        self,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        batch_size: Optional[int] = None,
    ):
        """Initialize the embedding service.

        Args:
            model: Embedding model in LiteLLM format. Falls back to settings.
            dimension: Vector dimension. Auto-detected from model if not provided.
            batch_size: Maximum batch size for embed_batch. Falls back to settings.
        """
        settings = get_settings()
        self._settings = settings.embedding

        self._model = model or self._settings.model
        self._batch_size = batch_size or self._settings.batch_size

        if dimension is not None:
            self._dimension = dimension
        elif self._model in MODEL_DIMENSIONS:
            self._dimension = MODEL_DIMENSIONS[self._model]
        else:
            self._dimension = self._settings.dimension

        self._litellm_params = self._build_litellm_params()

        # Suppress LiteLLM verbose logging
        litellm.set_verbose = False

        logger.info(
            "EmbeddingService initialized with model=%s, dimension=%d, batch_size=%d",
            self._model,
            self._dimension,
            self._batch_size,
        )

    def _build_litellm_params(self) -> dict[str, Any]:
        """Build parameters for LiteLLM aembedding() calls.

        Returns:
            Dictionary with api_base and api_key if configured.
        """
        params: dict[str, Any] = {}

        if self._settings.api_base:
            params["api_base"] = self._settings.api_base

        if self._settings.api_key:
            params["api_key"] = self._settings.api_key.get_secret_value()

        return params

    def _use_direct_ollama(self) -> bool:
        """Check whether to bypass LiteLLM for an authenticated Ollama endpoint."""
        return self._model.startswith("ollama/") and "api_key" in self._litellm_params

    async def _ollama_embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings using a direct Ollama API call.

        Args:
            texts: List of texts to embed.

        Returns:
            List of embedding vectors.

        Raises:
            EmbeddingError: If the API call fails.
        """
        model_name = self._model[len("ollama/"):]
        api_base = self._litellm_params.get("api_base", "http://localhost:11434")

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._litellm_params['api_key']}",
        }

        try:
            async with httpx.AsyncClient(timeout=60.0) as client:
                response = await client.post(
                    f"{api_base.rstrip('/')}/api/embed",
                    headers=headers,
                    json={"model": model_name, "input": texts},
                )
                response.raise_for_status()
                return response.json().get("embeddings", [])

        except httpx.HTTPStatusError as e:
            raise EmbeddingError(
                message=f"Ollama API error: {e.response.status_code}",
                model=self._model,
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            raise EmbeddingError(
                message=f"Failed to call Ollama embedding API: {str(e)}",
                model=self._model,
                original_error=e,
            ) from e

    @property
    def model(self) -> str:
        """Get the embedding model identifier."""
        return self._model

    @property
    def dimension(self) -> int:
        """Get the embedding vector dimension."""
        return self._dimension

    @property
    def batch_size(self) -> int:
        """Get the maximum batch size for embedding operations."""
        return self._batch_size

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector for a single text.

        Args:
            text: Input text to embed.

        Returns:
            Embedding vector as list of floats.

        Raises:
            EmbeddingError: If embedding generation fails.
            ValueError: If text is empty.
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        try:
            if self._use_direct_ollama():
                embeddings = await self._ollama_embed([text])
                embedding = embeddings[0] if embeddings else []
            else:
                response = await aembedding(
                    model=self._model,
                    input=[text],
                    **self._litellm_params,
                )
                embedding = response.data[0]["embedding"]

            logger.debug(
                "Generated embedding for text of length %d, dimension=%d",
                len(text),
                len(embedding),
            )

            return embedding

        except EmbeddingError:
            raise
        except Exception as e:
            logger.error(
                "Failed to generate embedding: model=%s, text_length=%d, error=%s",
                self._model,
                len(text),
                str(e),
            )
            raise EmbeddingError(
                message=f"Failed to generate embedding: {str(e)}",
                model=self._model,
                original_error=e,
            ) from e

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for multiple texts.

        Empty texts get a zero vector so positions line up with the input.

        Args:
            texts: List of input texts to embed.

        Returns:
            List of embedding vectors, one per input text.

        Raises:
            EmbeddingError: If embedding generation fails.
            ValueError: If texts list is empty.
        """
        if not texts:
            raise ValueError("Texts list cannot be empty")

        valid = [(i, t) for i, t in enumerate(texts) if t and t.strip()]
        if not valid:
            raise ValueError("All provided texts are empty")

        result: list[list[float]] = [[0.0] * self._dimension for _ in texts]

        try:
            for start in range(0, len(valid), self._batch_size):
                chunk = valid[start : start + self._batch_size]
                batch = [t for _, t in chunk]

                if self._use_direct_ollama():
                    batch_embeddings = await self._ollama_embed(batch)
                else:
                    response = await aembedding(
                        model=self._model,
                        input=batch,
                        **self._litellm_params,
                    )
                    batch_embeddings = [item["embedding"] for item in response.data]

                for (idx, _), embedding in zip(chunk, batch_embeddings):
                    result[idx] = embedding

            logger.debug("Generated %d embeddings", len(valid))
            return result

        except EmbeddingError:
            raise
        except Exception as e:
            logger.error(
                "Failed to generate batch embeddings: model=%s, count=%d, error=%s",
                self._model,
                len(texts),
                str(e),
            )
            raise EmbeddingError(
                message=f"Failed to generate batch embeddings: {str(e)}",
                model=self._model,
                original_error=e,
            ) from e

    def __repr__(self) -> str:
        return (
            f"EmbeddingService(model={self._model!r}, "
            f"dimension={self._dimension}, batch_size={self._batch_size})"
        )
