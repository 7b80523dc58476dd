# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

Store-level tests run against a real SQLite database file through
aiosqlite. Embeddings come from a deterministic bag-of-words fake so that
similarity between texts sharing words is predictable.
"""

import os
import re
import zlib
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# Must be set before any actor module is imported
os.environ.setdefault("DRAMATIQ_TEST_MODE", "true")
os.environ.setdefault("ENVIRONMENT", "development")
# Use litellm's bundled model cost map instead of a network fetch at import
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from tutormind.core.config import MemorySettings, clear_settings_cache  # noqa: E402
from tutormind.core.memory.store import MemoryStore  # noqa: E402
from tutormind.infrastructure.database.connection import DatabaseManager  # noqa: E402

EMBEDDING_DIMENSION = 64

_WORD = re.compile(r"[a-z0-9]+")


def keyword_vector(text: str) -> list[float]:
    """Embed text as hashed word counts. Texts sharing words are similar."""
    vector = [0.0] * EMBEDDING_DIMENSION
    for word in _WORD.findall(text.lower()):
        vector[zlib.crc32(word.encode()) % EMBEDDING_DIMENSION] += 1.0
    return vector


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Drop cached settings so patched environment variables take effect."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def memory_settings() -> MemorySettings:
    """Memory settings with defaults."""
    return MemorySettings()


@pytest.fixture
def embed():
    """Provide the keyword embedding function used by the mock service."""
    return keyword_vector


@pytest.fixture
def mock_embedding_service():
    """Create a mock EmbeddingService producing keyword vectors."""
    service = MagicMock()
    service.dimension = EMBEDDING_DIMENSION
    service.embed_text = AsyncMock(side_effect=keyword_vector)
    service.embed_batch = AsyncMock(side_effect=lambda texts: [keyword_vector(t) for t in texts])
    return service


@pytest.fixture
def mock_llm_client():
    """Create a mock LLMClient."""
    client = MagicMock()
    client.complete_json = AsyncMock(return_value={"facts": [], "notes": []})
    return client


@pytest_asyncio.fixture
async def db_manager(tmp_path) -> AsyncGenerator[DatabaseManager, None]:
    """Provide a fresh file-backed SQLite database with all tables.

    A file rather than :memory: gives every session its own connection, so
    concurrent sessions commit independently.
    """
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'memory.db'}")
    await manager.create_all()
    yield manager
    await manager.dispose()


@pytest.fixture
def store(db_manager, mock_embedding_service, memory_settings) -> MemoryStore:
    """Create a MemoryStore on the test database."""
    return MemoryStore(db_manager, mock_embedding_service, settings=memory_settings)


@pytest.fixture
def owner_id() -> str:
    """Provide a sample learner id."""
    return "learner-550e8400"


@pytest.fixture
def other_owner_id() -> str:
    """Provide a second learner id."""
    return "learner-7c9e6679"
