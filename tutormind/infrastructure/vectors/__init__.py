# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Optional Qdrant vector index."""

from tutormind.infrastructure.vectors.qdrant_client import (
    QdrantError,
    QdrantVectorClient,
    SearchResult,
    close_qdrant,
    clear_thread_qdrant,
    get_qdrant,
    get_worker_qdrant,
    init_qdrant,
)

__all__ = [
    "QdrantError",
    "QdrantVectorClient",
    "SearchResult",
    "close_qdrant",
    "clear_thread_qdrant",
    "get_qdrant",
    "get_worker_qdrant",
    "init_qdrant",
]
