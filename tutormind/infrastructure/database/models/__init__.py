# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy ORM models for the memory database."""

from tutormind.infrastructure.database.models.base import Base, TimestampMixin
from tutormind.infrastructure.database.models.memory import (
    MemoryRecordMixin,
    RelationalNote,
    TeachingStrategy,
    UserFact,
)

__all__ = [
    "Base",
    "MemoryRecordMixin",
    "RelationalNote",
    "TeachingStrategy",
    "TimestampMixin",
    "UserFact",
]
