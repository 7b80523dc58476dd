# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for tutormind.

Example:
    >>> from tutormind.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from tutormind.core.config.settings import (
    APISettings,
    CrossServiceSettings,
    DatabaseSettings,
    EmbeddingSettings,
    LLMSettings,
    MemorySettings,
    QdrantSettings,
    RedisSettings,
    Settings,
    WorkerSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "APISettings",
    "CrossServiceSettings",
    "DatabaseSettings",
    "EmbeddingSettings",
    "LLMSettings",
    "MemorySettings",
    "QdrantSettings",
    "RedisSettings",
    "Settings",
    "WorkerSettings",
    "clear_settings_cache",
    "get_settings",
]
