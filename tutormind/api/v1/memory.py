# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Memory API endpoints.

This module exposes the memory engine to chat, voice and session handlers:
- POST /retrieve - Ranked, prompt-ready memory context
- POST /feedback - Report which retrieved memories a response cited
- GET  /tools, POST /tools - Describe and run agent memory tools
- POST /process - Extract memories from a finished session
- GET  /strategies - Teaching strategies that work for a learner
- POST /strategies/{strategy_id}/feedback - Post-hoc strategy reinforcement
- POST /decay - Run the importance decay job
- GET  /health - Database and vector index status

Engine errors are rendered by the handler registered in create_app() as
{"success": false, "error": {"code": ..., "message": ...}}.

Example:
    POST /api/v1/memory/retrieve
    {"owner_id": "learner-1", "topic": "fractions", "limit": 8}
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field

from tutormind.api.dependencies import get_memory_manager
from tutormind.api.routes.health import ComponentHealth, check_database, check_qdrant
from tutormind.core.memory import MemoryManager, MemoryTools, format_context
from tutormind.models.memory import (
    ConversationTurn,
    DecayReport,
    FeedbackResult,
    ProcessingResult,
    SessionMetadata,
    TeachingStrategyResponse,
    ToolResult,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request / Response Models
# ============================================================================


class RetrieveRequest(BaseModel):
    """Memory retrieval request."""

    owner_id: str = Field(min_length=1, description="Learner identifier")
    topic: str | None = Field(None, description="Topic of the current exchange")
    limit: int | None = Field(None, ge=1, le=50, description="Maximum entries")
    include_remote: bool = Field(False, description="Merge companion app memories")
    conversation: list[str] = Field(
        default_factory=list,
        description="Recent messages, oldest first, for query expansion and reranking",
    )


class RetrievedItem(BaseModel):
    """One entry of the retrieved context."""

    id: str = Field(description="Memory or strategy id")
    kind: str = Field(description="user_fact, relational_note or teaching_strategy")
    origin: str = Field(description="local or remote")
    summary: str = Field(description="Prompt-facing summary")
    category: str = Field(description="Category, note type or strategy")
    score: float = Field(description="Hybrid rank score")


class RetrieveResponse(BaseModel):
    """Formatted memory context plus the ids needed for feedback."""

    owner_id: str = Field(description="Learner identifier")
    formatted: str = Field(description="Prompt-ready context block")
    retrieved_ids: list[str] = Field(description="Ids to report back via /feedback")
    items: list[RetrievedItem] = Field(description="Structured entries in rank order")
    remote_success: bool | None = Field(None, description="Companion fetch status")
    remote_error: str | None = Field(None, description="Companion fetch failure")


class FeedbackRequest(BaseModel):
    """Citation feedback for one generated response."""

    owner_id: str = Field(min_length=1, description="Learner identifier")
    retrieved_ids: list[str] = Field(default_factory=list, description="Ids from /retrieve")
    cited_ids: list[str] = Field(default_factory=list, description="Ids the response used")


class ToolRequest(BaseModel):
    """Agent memory tool invocation."""

    tool: str = Field(description="Tool name")
    owner_id: str = Field(min_length=1, description="Owner of the session")
    params: dict[str, Any] = Field(default_factory=dict, description="Tool parameters")
    session_id: str | None = Field(None, description="Session of the call")


class ProcessRequest(BaseModel):
    """Finished session to extract memories from."""

    owner_id: str = Field(min_length=1, description="Learner identifier")
    session_id: str | None = Field(None, description="Session identifier")
    messages: list[ConversationTurn] = Field(description="Transcript, oldest first")
    metadata: SessionMetadata | None = Field(None, description="Session metadata")


class ProcessAccepted(BaseModel):
    """Extraction accepted for background processing."""

    queued: bool = Field(description="Whether the job was enqueued")
    message_id: str | None = Field(None, description="Dramatiq message id")


class StrategyFeedbackRequest(BaseModel):
    """Post-hoc reinforcement for a teaching strategy."""

    owner_id: str | None = Field(None, description="Owner the strategy must belong to")
    was_successful: bool = Field(description="Whether the strategy worked")
    arousal_delta: float | None = Field(
        None, ge=-1.0, le=1.0, description="Change in arousal across the exchange"
    )


class MemoryHealthResponse(BaseModel):
    """Memory storage health."""

    database: ComponentHealth
    qdrant: ComponentHealth


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/retrieve",
    response_model=RetrieveResponse,
    summary="Retrieve memory context",
    description="Get ranked, prompt-ready memory context for a conversation turn.",
)
async def retrieve(
    request: RetrieveRequest,
    manager: MemoryManager = Depends(get_memory_manager),
) -> RetrieveResponse:
    """Retrieve memory context. Never fails on storage errors."""
    if request.include_remote:
        unified = await manager.unified.get_unified_context(
            request.owner_id,
            request.topic,
            request.limit or manager.default_limit,
        )
        entries = unified.local.entries + unified.remote
        return RetrieveResponse(
            owner_id=request.owner_id,
            formatted=unified.formatted,
            retrieved_ids=unified.retrieved_ids,
            items=[_item(e) for e in entries],
            remote_success=unified.remote_success,
            remote_error=unified.remote_error,
        )

    context = await manager.retrieval.retrieve(
        request.owner_id,
        request.topic,
        request.limit,
        conversation=request.conversation or None,
    )
    return RetrieveResponse(
        owner_id=request.owner_id,
        formatted=format_context(context),
        retrieved_ids=context.retrieved_ids,
        items=[_item(e) for e in context.entries],
    )


def _item(entry: Any) -> RetrievedItem:
    return RetrievedItem(
        id=entry.id,
        kind=entry.kind.value,
        origin=entry.origin.value,
        summary=entry.summary,
        category=entry.category,
        score=round(entry.score, 4),
    )


@router.post(
    "/feedback",
    response_model=FeedbackResult,
    summary="Report cited memories",
)
async def record_feedback(
    request: FeedbackRequest,
    manager: MemoryManager = Depends(get_memory_manager),
) -> FeedbackResult:
    """Count citations and unused retrievals."""
    return await manager.retrieval.record_feedback(
        request.owner_id, request.retrieved_ids, request.cited_ids
    )


@router.get("/tools", summary="Describe memory tools")
async def list_tools() -> list[dict[str, Any]]:
    """Get function-calling definitions of the memory tools."""
    return MemoryTools.describe_tools()


@router.post(
    "/tools",
    response_model=ToolResult,
    summary="Run a memory tool",
)
async def run_tool(
    request: ToolRequest,
    manager: MemoryManager = Depends(get_memory_manager),
) -> ToolResult:
    """Run one agent memory tool. Errors are returned typed."""
    logger.info("Memory tool call: tool=%s, owner=%s", request.tool, request.owner_id)
    return await manager.tools.execute(
        request.tool,
        request.owner_id,
        request.params,
        session_id=request.session_id,
    )


@router.post(
    "/process",
    response_model=ProcessingResult | ProcessAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Extract memories from a session",
)
async def process_conversation(
    request: ProcessRequest,
    response: Response,
    wait: Annotated[bool, Query(description="Run inline and return counts")] = False,
    manager: MemoryManager = Depends(get_memory_manager),
) -> ProcessingResult | ProcessAccepted:
    """Extract memories, in the background unless wait=true."""
    if wait:
        response.status_code = status.HTTP_200_OK
        return await manager.extraction.process_conversation(
            owner_id=request.owner_id,
            session_id=request.session_id,
            messages=request.messages,
            metadata=request.metadata,
        )

    from tutormind.infrastructure.background.tasks import process_conversation_memories

    message = process_conversation_memories.send(
        request.owner_id,
        request.session_id,
        [m.model_dump() for m in request.messages],
        request.metadata.model_dump() if request.metadata else None,
    )
    logger.info("Queued memory extraction for session %s", request.session_id)
    return ProcessAccepted(queued=True, message_id=message.message_id)


@router.get(
    "/strategies",
    response_model=list[TeachingStrategyResponse],
    summary="Get relevant teaching strategies",
)
async def get_strategies(
    owner_id: Annotated[str, Query(min_length=1, description="Learner identifier")],
    topic: Annotated[str | None, Query(description="Topic filter, fuzzy")] = None,
    limit: Annotated[int | None, Query(ge=1, le=20, description="Maximum strategies")] = None,
    manager: MemoryManager = Depends(get_memory_manager),
) -> list[TeachingStrategyResponse]:
    """Get strategies that worked for a learner, best first."""
    return await manager.strategies.get_relevant_strategies(owner_id, topic, limit)


@router.post(
    "/strategies/{strategy_id}/feedback",
    response_model=TeachingStrategyResponse,
    summary="Reinforce a teaching strategy",
)
async def strategy_feedback(
    strategy_id: str,
    request: StrategyFeedbackRequest,
    manager: MemoryManager = Depends(get_memory_manager),
) -> TeachingStrategyResponse:
    """Apply a fixed post-hoc adjustment to a strategy's score."""
    return await manager.strategies.update_strategy_score(
        strategy_id,
        request.was_successful,
        request.arousal_delta,
        owner_id=request.owner_id,
    )


@router.post(
    "/decay",
    response_model=DecayReport,
    summary="Run importance decay",
)
async def run_decay(
    dry_run: Annotated[bool, Query(description="Report without writing")] = False,
    refresh_strength: Annotated[bool, Query(description="Recompute strength first")] = False,
    manager: MemoryManager = Depends(get_memory_manager),
) -> DecayReport:
    """Run one decay pass inline. Safe to call repeatedly."""
    return await manager.decay.run(dry_run=dry_run, refresh_strength=refresh_strength)


@router.get(
    "/health",
    response_model=MemoryHealthResponse,
    summary="Memory storage health",
)
async def memory_health() -> MemoryHealthResponse:
    """Check the memory database and vector index."""
    return MemoryHealthResponse(
        database=await check_database(),
        qdrant=await check_qdrant(),
    )
