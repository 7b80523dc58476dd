# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Long-term memory engine for the tutor.

The engine stores three record families per learner:
- User facts: things about the learner's life
- Relational notes: the tutor's observations about the relationship
- Teaching strategies: which approaches work for which topics

It provides:
- Session-end extraction of new memories and strategies
- Ranked retrieval of prompt-ready context, merged with the companion app
- Agent-invocable tools to save, update, forget and link memories
- Scheduled decay of importance with soft forgetting

Example:
    from tutormind.core.memory import MemoryManager

    manager = MemoryManager(
        db_manager=db_manager,
        embedding_service=embedding_service,
        llm_client=llm_client,
    )
    context = await manager.retrieval.retrieve("learner-1", topic="fractions")
"""

from tutormind.core.memory.decay import DecayJob
from tutormind.core.memory.errors import (
    ExtractionParseError,
    MemoryForbiddenError,
    MemoryInternalError,
    MemoryNotFoundError,
    MemoryServiceError,
    MemoryValidationError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from tutormind.core.memory.extraction import ExtractionPipeline
from tutormind.core.memory.manager import MemoryManager
from tutormind.core.memory.retrieval import RetrievalService, format_context
from tutormind.core.memory.store import MemoryStore
from tutormind.core.memory.strategies import StrategyLearner
from tutormind.core.memory.tools import MemoryTools
from tutormind.core.memory.unified import CrossServiceAggregator

__all__ = [
    "CrossServiceAggregator",
    "DecayJob",
    "ExtractionParseError",
    "ExtractionPipeline",
    "MemoryForbiddenError",
    "MemoryInternalError",
    "MemoryManager",
    "MemoryNotFoundError",
    "MemoryServiceError",
    "MemoryStore",
    "MemoryTools",
    "MemoryValidationError",
    "RetrievalService",
    "StrategyLearner",
    "UpstreamTimeoutError",
    "UpstreamUnavailableError",
    "format_context",
]
