# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Memory data transfer objects and closed vocabularies.

Pydantic models shared by the store, the extraction pipeline, the
retrieval service and the HTTP API. ORM models live in
tutormind.infrastructure.database.models.memory.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from tutormind.utils.datetime import utc_now


# =============================================================================
# Vocabularies
# =============================================================================


class MemoryKind(str, Enum):
    """Record families held by the memory store."""

    USER_FACT = "user_fact"
    RELATIONAL_NOTE = "relational_note"
    TEACHING_STRATEGY = "teaching_strategy"


class FactCategory(str, Enum):
    """Categories of facts about the learner's life."""

    PERSONAL_FACT = "personal_fact"
    PREFERENCE = "preference"
    GOAL = "goal"
    RELATIONSHIP = "relationship"
    EXPERIENCE = "experience"
    SKILL = "skill"
    BELIEF = "belief"
    STRUGGLE = "struggle"
    ACHIEVEMENT = "achievement"
    ROUTINE = "routine"


class RelationalNoteType(str, Enum):
    """Types of tutor-side observations about the relationship."""

    TEACHING_SUCCESS = "teaching_success"
    TEACHING_FAILURE = "teaching_failure"
    BREAKTHROUGH_MOMENT = "breakthrough_moment"
    INSIDE_JOKE = "inside_joke"
    SHARED_REFERENCE = "shared_reference"
    EMOTIONAL_MILESTONE = "emotional_milestone"
    TOPIC_AFFINITY = "topic_affinity"
    INTERACTION_PATTERN = "interaction_pattern"
    GROWTH_OBSERVATION = "growth_observation"
    RELATIONSHIP_INSIGHT = "relationship_insight"
    MEMORY_LINK = "memory_link"


class Granularity(str, Enum):
    """Scope a memory was extracted at."""

    UTTERANCE = "utterance"
    TURN = "turn"
    SESSION = "session"


class SourceType(str, Enum):
    """How a record entered the store."""

    CONVERSATION = "conversation"
    IMPORTED = "imported"
    AUTONOMOUS = "claude_autonomous"  # written by the agent through the tools API


class StrategyName(str, Enum):
    """Pedagogical approaches tracked by the strategy learner."""

    VISUAL = "visual"
    ANALOGY = "analogy"
    SOCRATIC_QUESTIONING = "socratic_questioning"
    WORKED_EXAMPLES = "worked_examples"
    STEP_BY_STEP = "step_by_step"
    REAL_WORLD_APPLICATION = "real_world_application"
    SCAFFOLDING = "scaffolding"
    DIRECT_INSTRUCTION = "direct_instruction"
    PRACTICE_PROBLEMS = "practice_problems"


class StrategyOutcome(str, Enum):
    """Observed outcome of one teaching exchange."""

    BREAKTHROUGH = "breakthrough"
    PARTIAL_SUCCESS = "partial_success"
    NO_PROGRESS = "no_progress"
    CONFUSION = "confusion"


class ContextOrigin(str, Enum):
    """Where a retrieved entry came from."""

    LOCAL = "local"
    REMOTE = "remote"


# =============================================================================
# Conversation input
# =============================================================================


class ConversationTurn(BaseModel):
    """One turn of a transcript handed to the extraction pipeline."""

    role: str = Field(description="user or assistant")
    content: str = Field(description="Turn text")
    emotions: dict[str, float] | None = Field(
        default=None, description="Per-turn prosody scores (emotion name to 0-1)"
    )
    dominant_emotion: str | None = Field(default=None, description="Strongest emotion")
    emotion_intensity: float | None = Field(default=None, description="Dominant score")


class EmotionSummary(BaseModel):
    """Aggregate emotional trajectory of a conversation."""

    start_arousal: float | None = Field(default=None, ge=0.0, le=1.0)
    end_arousal: float | None = Field(default=None, ge=0.0, le=1.0)
    peak_arousal: float | None = Field(default=None, ge=0.0, le=1.0)
    average_arousal: float | None = Field(default=None, ge=0.0, le=1.0)
    peak_moment: str | None = Field(default=None, description="Text of the peak turn")
    dominant_emotions: list[str] = Field(default_factory=list)


class SessionMetadata(BaseModel):
    """Optional session facts supplied by the caller."""

    topic: str | None = None
    duration_seconds: int | None = None
    engagement_score: float | None = None
    breakthrough_count: int | None = None
    emotion_summary: EmotionSummary | None = None


# =============================================================================
# Memory records
# =============================================================================


class MemoryRecordCreate(BaseModel):
    """Input for creating a user fact or relational note."""

    owner_id: str = Field(min_length=1)
    kind: MemoryKind = MemoryKind.USER_FACT
    content: str = Field(min_length=1)
    summary: str | None = None
    category: str
    embedding: list[float] | None = None
    emotional_arousal: float = Field(default=0.5, ge=0.0, le=1.0)
    emotional_valence: float = Field(default=0.0, ge=-1.0, le=1.0)
    dominant_emotion: str = "neutral"
    hume_arousal: float | None = Field(default=None, ge=0.0, le=1.0)
    text_arousal: float | None = Field(default=None, ge=0.0, le=1.0)
    llm_importance: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    granularity: Granularity = Granularity.UTTERANCE
    perplexity: float = Field(default=0.0, ge=0.0, le=1.0)
    source_session_id: str | None = None
    source_type: SourceType = SourceType.CONVERSATION
    effectiveness_score: float | None = Field(default=None, ge=0.0, le=1.0)
    tags: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)


class MemoryRecordResponse(BaseModel):
    """A stored user fact or relational note."""

    id: str
    owner_id: str
    kind: MemoryKind
    content: str
    summary: str
    category: str
    embedding: list[float] | None = Field(default=None, exclude=True, repr=False)
    emotional_arousal: float
    emotional_valence: float
    dominant_emotion: str
    llm_importance: float
    memory_strength: float
    current_importance: float
    confidence: float
    times_cited: int
    times_retrieved_unused: int
    granularity: Granularity
    source_session_id: str | None = None
    source_type: SourceType
    effectiveness_score: float | None = None
    tags: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)
    forgotten_at: datetime | None = None
    forget_reason: str | None = None
    last_cited_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    @property
    def is_forgotten(self) -> bool:
        """Check whether the record was soft-forgotten."""
        return self.forgotten_at is not None

    @property
    def has_embedding(self) -> bool:
        """Check whether the record can be found by semantic search."""
        return bool(self.embedding)


class ScoredMemory(BaseModel):
    """A memory paired with its cosine similarity to a query."""

    memory: MemoryRecordResponse
    similarity: float


class TeachingStrategyResponse(BaseModel):
    """A per-learner teaching strategy with its running success score."""

    id: str
    owner_id: str
    topic: str
    strategy_used: str
    outcome: StrategyOutcome
    success_score: float
    times_used: int
    evidence: str | None = None
    hume_arousal_before: float | None = None
    hume_arousal_after: float | None = None
    session_id: str | None = None
    last_used_at: datetime | None = None
    created_at: datetime


class StrategyObservation(BaseModel):
    """One (topic, strategy, outcome) triple detected in a transcript."""

    topic: str = Field(min_length=1)
    strategy: str = Field(min_length=1)
    outcome: StrategyOutcome
    evidence: str | None = None
    outcome_score: float = Field(ge=0.0, le=1.0)
    emotional_bonus: float = 0.0
    arousal_before: float | None = None
    arousal_after: float | None = None


# =============================================================================
# Retrieval
# =============================================================================


class RankedEntry(BaseModel):
    """One entry of a retrieved context, ready for formatting."""

    id: str
    kind: MemoryKind
    origin: ContextOrigin = ContextOrigin.LOCAL
    content: str
    summary: str
    category: str
    dominant_emotion: str = "neutral"
    score: float = 0.0
    importance: float = 0.0
    similarity: float | None = None
    topic: str | None = None
    strategy_used: str | None = None
    success_score: float | None = None
    evidence: str | None = None


class RankedContext(BaseModel):
    """Ranked memory context for one owner and optional topic."""

    owner_id: str
    topic: str | None = None
    entries: list[RankedEntry] = Field(default_factory=list)
    # teaching_success notes listed as extra guidance; not cited
    teaching_approaches: list[RankedEntry] = Field(default_factory=list)
    retrieved_at: datetime = Field(default_factory=utc_now)

    @property
    def retrieved_ids(self) -> list[str]:
        """Get ids of every entry, in rank order."""
        return [e.id for e in self.entries]

    @property
    def is_empty(self) -> bool:
        """Check whether nothing was retrieved."""
        return not self.entries

    def of_kind(self, kind: MemoryKind) -> list[RankedEntry]:
        """Get entries of one record family, in rank order."""
        return [e for e in self.entries if e.kind == kind]


class UnifiedContext(BaseModel):
    """Local context merged with the companion service's memories."""

    formatted: str
    local: RankedContext
    remote: list[RankedEntry] = Field(default_factory=list)
    remote_success: bool = False
    remote_error: str | None = None

    @property
    def retrieved_ids(self) -> list[str]:
        """Get ids of local and remote entries."""
        return self.local.retrieved_ids + [e.id for e in self.remote]


class FeedbackResult(BaseModel):
    """Outcome of citation bookkeeping."""

    cited: int = 0
    unused: int = 0


# =============================================================================
# Tools API
# =============================================================================


class SaveMemoryParams(BaseModel):
    """Parameters of save_memory."""

    content: str = Field(min_length=1, description="What to remember")
    category: str = Field(description="Fact category or relational note type")
    importance: float = Field(default=0.5, description="0-1, clamped")
    tags: list[str] = Field(default_factory=list)


class UpdateMemoryParams(BaseModel):
    """Parameters of update_memory."""

    memory_id: str = Field(min_length=1)
    new_content: str | None = None
    adjust_importance: float | None = Field(
        default=None, description="Signed delta applied to importance"
    )
    add_tags: list[str] | None = None


class ForgetMemoryParams(BaseModel):
    """Parameters of forget_memory."""

    memory_id: str = Field(min_length=1)
    reason: str = Field(min_length=1, description="Why the memory is forgotten")


class LinkMemoriesParams(BaseModel):
    """Parameters of link_memories."""

    memory_id_1: str = Field(min_length=1)
    memory_id_2: str = Field(min_length=1)
    relationship: str = Field(min_length=1)


class ToolResult(BaseModel):
    """Successful result of a memory tool call."""

    success: bool = True
    tool: str
    message: str
    memory_id: str | None = None
    deduplicated: bool = False
    data: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Maintenance and processing
# =============================================================================


class DecayTableStats(BaseModel):
    """Per-table statistics of one decay pass."""

    table: str
    scanned: int = 0
    updated: int = 0
    skipped: int = 0
    average_importance: float | None = None
    min_importance: float | None = None
    max_importance: float | None = None
    below_floor: int = 0


class DecayReport(BaseModel):
    """Result of one decay pass over all memory tables."""

    dry_run: bool = False
    refreshed_strength: bool = False
    tables: list[DecayTableStats] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: datetime | None = None

    @property
    def total_updated(self) -> int:
        """Get the number of rows updated across tables."""
        return sum(t.updated for t in self.tables)


class ProcessingResult(BaseModel):
    """Counts produced by processing one conversation."""

    owner_id: str
    session_id: str | None = None
    facts_extracted: int = 0
    notes_extracted: int = 0
    facts_saved: int = 0
    notes_saved: int = 0
    strategies_saved: int = 0
    skipped_reason: str | None = None
