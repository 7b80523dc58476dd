# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Embedding service module using LiteLLM.

Example:
    >>> from tutormind.core.intelligence.embeddings import EmbeddingService
    >>> service = EmbeddingService(model="ollama/nomic-embed-text")
    >>> vector = await service.embed_text("Hello world")
    >>> print(f"Vector dimension: {len(vector)}")
    Vector dimension: 768
"""

from tutormind.core.intelligence.embeddings.service import (
    EmbeddingError,
    EmbeddingService,
    cosine_similarity,
)

__all__ = ["EmbeddingError", "EmbeddingService", "cosine_similarity"]
