# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Memory tools the conversational agent can call mid-session.

Four operations: save_memory, update_memory, forget_memory and
link_memories. The agent is an untrusted caller: parameters are
validated with pydantic before any I/O and every operation is scoped to
the owner of the session. Failures surface as typed MemoryServiceError
subclasses.

Each call emits one audit line on the tutormind.core.memory.tools.audit
logger with the tool name, owner and outcome.

Example:
    tools = MemoryTools(store)
    result = await tools.execute(
        "save_memory",
        owner_id="learner-1",
        params={"content": "Supports Galatasaray", "category": "preference"},
    )
"""

import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from tutormind.core.config.settings import MemorySettings, get_settings
from tutormind.core.intelligence.embeddings import EmbeddingError, EmbeddingService
from tutormind.core.memory.errors import MemoryServiceError, MemoryValidationError
from tutormind.core.memory.prompts import FACT_CATEGORIES, NOTE_TYPES
from tutormind.core.memory.scoring import clamp
from tutormind.core.memory.store import MemoryStore, kind_for_category
from tutormind.models.memory import (
    ForgetMemoryParams,
    Granularity,
    LinkMemoriesParams,
    MemoryKind,
    MemoryRecordCreate,
    RelationalNoteType,
    SaveMemoryParams,
    SourceType,
    ToolResult,
    UpdateMemoryParams,
)
from tutormind.utils.logging import get_logger

logger = logging.getLogger(__name__)
audit_logger = get_logger("tutormind.core.memory.tools.audit")

AUTONOMOUS_CONFIDENCE = 0.9
LINK_SCORE = 0.7

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "save_memory",
            "description": (
                "Save something worth remembering about the learner or about "
                "your relationship with them. Use for facts, preferences, goals, "
                "inside jokes and what worked in teaching."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "content": {
                        "type": "string",
                        "description": "What to remember, as a full sentence.",
                    },
                    "category": {
                        "type": "string",
                        "description": (
                            f"Fact category ({FACT_CATEGORIES}) or relationship note type ({NOTE_TYPES})."
                        ),
                    },
                    "importance": {
                        "type": "number",
                        "description": "How important this is, 0.0 to 1.0.",
                    },
                    "tags": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Optional keywords.",
                    },
                },
                "required": ["content", "category"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "update_memory",
            "description": "Correct or refine a memory you saved earlier.",
            "parameters": {
                "type": "object",
                "properties": {
                    "memory_id": {"type": "string", "description": "Id of the memory."},
                    "new_content": {"type": "string", "description": "Replacement text."},
                    "adjust_importance": {
                        "type": "number",
                        "description": "Change in importance, -1.0 to 1.0.",
                    },
                    "add_tags": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Tags to add.",
                    },
                },
                "required": ["memory_id"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "forget_memory",
            "description": (
                "Forget a memory that is wrong, outdated or that the learner "
                "asked you to forget. It stops appearing in your context."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "memory_id": {"type": "string", "description": "Id of the memory."},
                    "reason": {"type": "string", "description": "Why it is forgotten."},
                },
                "required": ["memory_id", "reason"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "link_memories",
            "description": "Record that two of your memories are related.",
            "parameters": {
                "type": "object",
                "properties": {
                    "memory_id_1": {"type": "string", "description": "First memory id."},
                    "memory_id_2": {"type": "string", "description": "Second memory id."},
                    "relationship": {
                        "type": "string",
                        "description": "How they relate, e.g. 'caused by' or 'same topic'.",
                    },
                },
                "required": ["memory_id_1", "memory_id_2", "relationship"],
            },
        },
    },
]


class MemoryTools:
    """Agent-invocable memory operations scoped to one owner per call.

    Attributes:
        store: Memory store.
        embedding_service: Optional service used for near-duplicate checks.
    """

    TOOL_NAMES = ("save_memory", "update_memory", "forget_memory", "link_memories")

    def __init__(
        self,
        store: MemoryStore,
        embedding_service: EmbeddingService | None = None,
        settings: MemorySettings | None = None,
    ) -> None:
        self._store = store
        self._embedding = embedding_service
        self._settings = settings or get_settings().memory

    @staticmethod
    def describe_tools() -> list[dict[str, Any]]:
        """Get function-calling definitions of the memory tools."""
        return TOOL_DEFINITIONS

    def _audit(self, tool: str, owner_id: str, success: bool, **fields: Any) -> None:
        audit_logger.info(
            "memory_tool_call",
            tool=tool,
            owner_id=owner_id,
            success=success,
            **fields,
        )

    async def execute(
        self,
        tool: str,
        owner_id: str,
        params: dict[str, Any],
        session_id: str | None = None,
    ) -> ToolResult:
        """Validate parameters and run one tool.

        Args:
            tool: Tool name.
            owner_id: Owner of the session; every record touched must be theirs.
            params: Raw parameters from the agent.
            session_id: Session the call belongs to.

        Returns:
            The tool result.

        Raises:
            MemoryValidationError: If the tool or its parameters are invalid.
            MemoryNotFoundError: If a referenced memory is absent or foreign.
        """
        if not owner_id:
            raise MemoryValidationError("owner_id is required")

        handlers: dict[str, tuple[type[BaseModel], Any]] = {
            "save_memory": (SaveMemoryParams, self.save_memory),
            "update_memory": (UpdateMemoryParams, self.update_memory),
            "forget_memory": (ForgetMemoryParams, self.forget_memory),
            "link_memories": (LinkMemoriesParams, self.link_memories),
        }
        if tool not in handlers:
            self._audit(tool, owner_id, False, error="unknown_tool")
            raise MemoryValidationError(f"Unknown memory tool: {tool}")

        params_model, handler = handlers[tool]
        try:
            parsed = params_model.model_validate(params or {})
        except ValidationError as e:
            self._audit(tool, owner_id, False, error="validation_error")
            raise MemoryValidationError(f"Invalid parameters for {tool}", e) from e

        if tool == "save_memory":
            return await handler(owner_id, parsed, session_id=session_id)
        return await handler(owner_id, parsed)

    async def _find_duplicate(
        self,
        owner_id: str,
        kind: MemoryKind,
        embedding: list[float],
    ) -> str | None:
        threshold = self._settings.dedup_threshold
        if threshold is None:
            return None
        matches = await self._store.top_k_by_similarity(owner_id, embedding, 1, kind)
        if matches and matches[0].similarity >= threshold:
            return matches[0].memory.id
        return None

    async def save_memory(
        self,
        owner_id: str,
        params: SaveMemoryParams,
        session_id: str | None = None,
    ) -> ToolResult:
        """Save a new fact or relational note.

        The category decides the record family. Importance is clamped to
        [0, 1]. When a dedup threshold is configured, a near-identical
        existing memory is returned instead of creating a new one.
        """
        try:
            kind = kind_for_category(params.category)
            if params.category == RelationalNoteType.MEMORY_LINK.value:
                raise MemoryValidationError("memory_link notes are created by link_memories")

            importance = clamp(params.importance)
            embedding = None
            if self._embedding is not None:
                try:
                    embedding = await self._embedding.embed_text(params.content)
                except (EmbeddingError, ValueError) as e:
                    logger.warning("Embedding failed for save_memory: %s", str(e))

            if embedding is not None:
                duplicate_id = await self._find_duplicate(owner_id, kind, embedding)
                if duplicate_id:
                    self._audit(
                        "save_memory", owner_id, True, memory_id=duplicate_id, deduplicated=True
                    )
                    return ToolResult(
                        tool="save_memory",
                        message="Already remembered",
                        memory_id=duplicate_id,
                        deduplicated=True,
                    )

            memory = await self._store.create(
                MemoryRecordCreate(
                    owner_id=owner_id,
                    kind=kind,
                    content=params.content,
                    category=params.category,
                    embedding=embedding,
                    emotional_arousal=0.5,
                    hume_arousal=0.5,
                    text_arousal=0.5,
                    llm_importance=importance,
                    confidence=AUTONOMOUS_CONFIDENCE,
                    granularity=(
                        Granularity.UTTERANCE if kind is MemoryKind.USER_FACT else Granularity.TURN
                    ),
                    source_session_id=session_id,
                    source_type=SourceType.AUTONOMOUS,
                    effectiveness_score=importance if kind is MemoryKind.RELATIONAL_NOTE else None,
                    tags=params.tags,
                )
            )
        except MemoryServiceError as e:
            self._audit("save_memory", owner_id, False, error=e.code)
            raise

        self._audit("save_memory", owner_id, True, memory_id=memory.id, kind=kind.value)
        return ToolResult(
            tool="save_memory",
            message=f"Memory saved ({memory.category})",
            memory_id=memory.id,
            data={"kind": kind.value, "importance": importance},
        )

    async def update_memory(self, owner_id: str, params: UpdateMemoryParams) -> ToolResult:
        """Apply any combination of new content, importance change and tags."""
        if params.new_content is None and params.adjust_importance is None and not params.add_tags:
            self._audit("update_memory", owner_id, True, memory_id=params.memory_id, changes=[])
            return ToolResult(
                tool="update_memory",
                message="No updates specified",
                memory_id=params.memory_id,
            )

        changes: list[str] = []
        try:
            # Resolve ownership before any write
            await self._store.get(owner_id, params.memory_id)

            if params.new_content is not None:
                await self._store.update_content(owner_id, params.memory_id, params.new_content)
                changes.append("content")
            if params.adjust_importance is not None:
                await self._store.adjust_importance(
                    owner_id, params.memory_id, params.adjust_importance
                )
                changes.append("importance")
            if params.add_tags:
                await self._store.add_tags(owner_id, params.memory_id, params.add_tags)
                changes.append("tags")
        except MemoryServiceError as e:
            self._audit(
                "update_memory", owner_id, False, memory_id=params.memory_id, error=e.code
            )
            raise

        self._audit("update_memory", owner_id, True, memory_id=params.memory_id, changes=changes)
        return ToolResult(
            tool="update_memory",
            message=f"Memory updated: {', '.join(changes)}",
            memory_id=params.memory_id,
            data={"changes": changes},
        )

    async def forget_memory(self, owner_id: str, params: ForgetMemoryParams) -> ToolResult:
        """Soft-forget a memory. Forgetting twice is a no-op."""
        try:
            changed = await self._store.soft_forget(owner_id, params.memory_id, params.reason)
        except MemoryServiceError as e:
            self._audit(
                "forget_memory", owner_id, False, memory_id=params.memory_id, error=e.code
            )
            raise

        self._audit(
            "forget_memory",
            owner_id,
            True,
            memory_id=params.memory_id,
            reason=params.reason,
            changed=changed,
        )
        return ToolResult(
            tool="forget_memory",
            message=f"Memory forgotten: {params.reason}",
            memory_id=params.memory_id,
            data={"already_forgotten": not changed},
        )

    async def link_memories(self, owner_id: str, params: LinkMemoriesParams) -> ToolResult:
        """Record a relationship between two of the owner's memories.

        The link is stored as a memory_link relational note whose links
        column holds both ids.
        """
        first, second = params.memory_id_1, params.memory_id_2
        try:
            if first == second:
                raise MemoryValidationError("Cannot link a memory to itself")

            await self._store.get(owner_id, first)
            await self._store.get(owner_id, second)

            note = await self._store.create(
                MemoryRecordCreate(
                    owner_id=owner_id,
                    kind=MemoryKind.RELATIONAL_NOTE,
                    content=f"Link: {params.relationship} between memories {first} and {second}",
                    summary=params.relationship,
                    category=RelationalNoteType.MEMORY_LINK.value,
                    llm_importance=LINK_SCORE,
                    hume_arousal=LINK_SCORE,
                    text_arousal=LINK_SCORE,
                    emotional_arousal=LINK_SCORE,
                    confidence=AUTONOMOUS_CONFIDENCE,
                    granularity=Granularity.TURN,
                    source_type=SourceType.AUTONOMOUS,
                    effectiveness_score=LINK_SCORE,
                    links=[first, second],
                )
            )
        except MemoryServiceError as e:
            self._audit(
                "link_memories", owner_id, False, memory_ids=[first, second], error=e.code
            )
            raise

        self._audit(
            "link_memories",
            owner_id,
            True,
            memory_id=note.id,
            memory_ids=[first, second],
            relationship=params.relationship,
        )
        return ToolResult(
            tool="link_memories",
            message=f"Linked memories: {params.relationship}",
            memory_id=note.id,
            data={"linked": [first, second]},
        )
