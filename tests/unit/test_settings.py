# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for application settings."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from tutormind.core.config.settings import (
    CrossServiceSettings,
    DatabaseSettings,
    LLMSettings,
    MemorySettings,
    RedisSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)


@pytest.mark.unit
class TestMemorySettings:
    """Tests for MemorySettings."""

    def test_default_values(self) -> None:
        """Test default tuning values."""
        settings = MemorySettings()

        weights = (
            settings.weight_semantic
            + settings.weight_importance
            + settings.weight_recency
            + settings.weight_emotion
        )
        assert weights == pytest.approx(1.0)
        assert settings.fact_cap == 10
        assert settings.note_cap == 5
        assert settings.strategy_cap == 3
        assert settings.dedup_threshold is None
        assert settings.cite_on_retrieval is True

    def test_loads_from_environment(self) -> None:
        """Test that settings load from MEMORY_ variables."""
        env = {"MEMORY_DECAY_RATE": "0.2", "MEMORY_DEDUP_THRESHOLD": "0.92"}

        with patch.dict(os.environ, env, clear=False):
            settings = MemorySettings()

        assert settings.decay_rate == 0.2
        assert settings.dedup_threshold == 0.92


@pytest.mark.unit
class TestConnectionSettings:
    """Tests for database, Redis and LLM settings."""

    def test_sqlite_detection(self) -> None:
        """Test SQLite URLs are recognized."""
        assert DatabaseSettings(url="sqlite+aiosqlite:///memory.db").is_sqlite is True
        assert DatabaseSettings().is_sqlite is False

    def test_redis_url(self) -> None:
        """Test URL property builds correct connection string."""
        settings = RedisSettings(
            host="redis.example.com",
            port=6380,
            password="redispass",  # type: ignore[arg-type]
            database=1,
        )

        assert settings.url == "redis://:redispass@redis.example.com:6380/1"

    def test_memory_model_falls_back(self) -> None:
        """Test extraction uses the default model unless overridden."""
        assert LLMSettings(model="ollama/llama3").memory_model == "ollama/llama3"
        assert (
            LLMSettings(model="ollama/llama3", extraction_model="gemini/flash").memory_model
            == "gemini/flash"
        )


@pytest.mark.unit
class TestCrossServiceSettings:
    """Tests for CrossServiceSettings."""

    def test_not_configured_without_secret(self) -> None:
        """Test a URL alone does not enable the remote call."""
        assert CrossServiceSettings(api_url="https://companion.test").is_configured is False

    def test_configured(self) -> None:
        """Test URL and headers with a secret."""
        settings = CrossServiceSettings(api_url="https://companion.test/", secret="s3cret")

        assert settings.is_configured is True
        assert settings.retrieve_url == "https://companion.test/api/v1/memories/retrieve"
        assert settings.auth_headers["X-Cross-App-Secret"] == "s3cret"

    def test_secret_from_environment(self) -> None:
        """Test the shared secret is read from CROSS_APP_SECRET."""
        env = {"ANCHOR_API_URL": "https://companion.test", "CROSS_APP_SECRET": "from-env"}

        with patch.dict(os.environ, env, clear=False):
            settings = CrossServiceSettings()

        assert settings.is_configured is True


@pytest.mark.unit
class TestSettings:
    """Tests for the aggregated Settings."""

    def test_production_rejects_sqlite(self) -> None:
        """Test production cannot run on SQLite."""
        with pytest.raises(ValidationError):
            Settings(
                environment="production",
                database=DatabaseSettings(url="sqlite+aiosqlite:///memory.db"),
            )

    def test_production_requires_secret_with_remote_url(self) -> None:
        """Test a companion URL without a secret is rejected in production."""
        with pytest.raises(ValidationError):
            Settings(
                environment="production",
                cross_service=CrossServiceSettings(api_url="https://companion.test"),
            )

    def test_get_settings_is_cached(self) -> None:
        """Test get_settings returns one instance until the cache is cleared."""
        first = get_settings()

        assert get_settings() is first
        clear_settings_cache()
        assert get_settings() is not first
