# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""ORM models for learner memory.

Two record families share one shape (MemoryRecordMixin): user facts and
relational notes. Teaching strategies are keyed by (owner, topic,
strategy). Rows are never deleted by the engine; forgetting zeroes the
scores and stamps forgotten_at.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from tutormind.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)


class MemoryRecordMixin(UUIDPrimaryKeyMixin, TimestampMixin):
    """Columns shared by user facts and relational notes."""

    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str] = mapped_column(String(200), nullable=False)
    embedding: Mapped[list[float] | None] = mapped_column(JSON, nullable=True)

    emotional_arousal: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    emotional_valence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    dominant_emotion: Mapped[str] = mapped_column(String(50), nullable=False, default="neutral")
    hume_arousal: Mapped[float | None] = mapped_column(Float, nullable=True)
    text_arousal: Mapped[float | None] = mapped_column(Float, nullable=True)
    llm_importance: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)

    memory_strength: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    current_importance: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.8)

    times_cited: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    times_retrieved_unused: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_cited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_decay_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    granularity: Mapped[str] = mapped_column(String(20), nullable=False, default="utterance")
    perplexity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    source_session_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    source_type: Mapped[str] = mapped_column(String(30), nullable=False, default="conversation")
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    forgotten_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    forget_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_forgotten(self) -> bool:
        """Check whether the record was soft-forgotten."""
        return self.forgotten_at is not None


class UserFact(Base, MemoryRecordMixin):
    """A fact about the learner's life."""

    __tablename__ = "user_facts"
    __table_args__ = (
        Index("ix_user_facts_owner_importance", "owner_id", "current_importance"),
    )

    category: Mapped[str] = mapped_column(String(50), nullable=False)

    def __repr__(self) -> str:
        return f"<UserFact(id={self.id}, owner={self.owner_id}, category={self.category})>"


class RelationalNote(Base, MemoryRecordMixin):
    """The tutor's observation about its relationship with the learner."""

    __tablename__ = "relational_notes"
    __table_args__ = (
        Index("ix_relational_notes_owner_importance", "owner_id", "current_importance"),
    )

    memory_type: Mapped[str] = mapped_column(String(50), nullable=False)
    effectiveness_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    links: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    @property
    def category(self) -> str:
        """Alias of memory_type so both families expose the same attribute."""
        return self.memory_type

    def __repr__(self) -> str:
        return f"<RelationalNote(id={self.id}, owner={self.owner_id}, type={self.memory_type})>"


class TeachingStrategy(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Running success score of one approach for one learner and topic."""

    __tablename__ = "teaching_strategies"
    __table_args__ = (
        UniqueConstraint("owner_id", "topic", "strategy_used", name="uq_strategy_owner_topic"),
    )

    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    topic: Mapped[str] = mapped_column(String(255), nullable=False)
    strategy_used: Mapped[str] = mapped_column(String(50), nullable=False)
    outcome: Mapped[str] = mapped_column(String(30), nullable=False)
    success_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    times_used: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    evidence: Mapped[str | None] = mapped_column(Text, nullable=True)
    hume_arousal_before: Mapped[float | None] = mapped_column(Float, nullable=True)
    hume_arousal_after: Mapped[float | None] = mapped_column(Float, nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<TeachingStrategy(id={self.id}, owner={self.owner_id}, "
            f"topic={self.topic!r}, strategy={self.strategy_used})>"
        )
