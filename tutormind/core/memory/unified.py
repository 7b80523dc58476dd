# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unified memory context across the local store and the companion service.

The companion app runs its own memory service for the same learners. Its
memories are fetched over HTTP in parallel with local retrieval, each
source independently failable:

- The remote call has a hard timeout and a shared-secret header.
- A missing secret, a timeout, a transport error, an invalid URL or a
  non-2xx status leaves the remote part empty with remote_success=False.
- Local results are returned in full either way.

Example:
    aggregator = CrossServiceAggregator(retrieval_service)
    context = await aggregator.get_unified_context("learner-1", "fractions", 10)
    if not context.remote_success:
        logger.debug("Companion memories unavailable: %s", context.remote_error)
"""

import asyncio
import logging
import math
from typing import Any

import httpx

from tutormind.core.config.settings import CrossServiceSettings, get_settings
from tutormind.core.memory.retrieval import RetrievalService, format_context
from tutormind.core.memory.store import summarize
from tutormind.models.memory import (
    ContextOrigin,
    MemoryKind,
    RankedContext,
    RankedEntry,
    UnifiedContext,
)

logger = logging.getLogger(__name__)

REMOTE_HEADER = "## From the Companion App:"
REMOTE_USER_PREFIX = "anchor-user-"
REMOTE_NOTE_PREFIX = "anchor-rel-"


def _field(item: dict[str, Any], *names: str, default: Any = None) -> Any:
    """Get the first present field, accepting snake_case or camelCase names."""
    for name in names:
        value = item.get(name)
        if value is not None:
            return value
    return default


def _importance(item: dict[str, Any]) -> float:
    value = _field(item, "current_importance", "currentImportance", "importance", default=0.0)
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_remote_memories(payload: dict[str, Any]) -> list[RankedEntry]:
    """Convert a companion-service response into tagged entries.

    Records without an id or content are dropped.
    """
    entries: list[RankedEntry] = []
    sources = (
        ("user_memories", MemoryKind.USER_FACT, REMOTE_USER_PREFIX, "personal_fact"),
        ("anchor_memories", MemoryKind.RELATIONAL_NOTE, REMOTE_NOTE_PREFIX, "relationship_insight"),
    )

    for key, kind, prefix, default_category in sources:
        items = payload.get(key) or []
        if not isinstance(items, list):
            continue
        for item in items:
            if not isinstance(item, dict):
                continue
            memory_id = _field(item, "id")
            content = str(_field(item, "content", default="")).strip()
            if memory_id is None or not content:
                continue

            importance = _importance(item)
            entries.append(
                RankedEntry(
                    id=f"{prefix}{memory_id}",
                    kind=kind,
                    origin=ContextOrigin.REMOTE,
                    content=content,
                    summary=summarize(content, _field(item, "summary")),
                    category=str(
                        _field(item, "category", "memory_type", "memoryType", "type", default=default_category)
                    ),
                    dominant_emotion=str(
                        _field(item, "dominant_emotion", "dominantEmotion", default="neutral")
                    ),
                    score=importance,
                    importance=importance,
                )
            )

    return entries


def format_unified(local: RankedContext, remote: list[RankedEntry]) -> str:
    """Render local sections followed by the companion-app section."""
    sections = []
    local_text = format_context(local)
    if local_text:
        sections.append(local_text)

    if remote:
        lines = [REMOTE_HEADER]
        for entry in remote:
            if entry.kind is MemoryKind.RELATIONAL_NOTE:
                lines.append(f"- [{entry.category}] {entry.summary}")
            else:
                lines.append(f"- {entry.summary}")
        sections.append("\n".join(lines))

    return "\n\n".join(sections)


class CrossServiceAggregator:
    """Merges local retrieval with the companion memory service.

    Attributes:
        retrieval: Local retrieval service.
        http_client: Optional shared httpx client. A short-lived client is
            created per call when None.
    """

    def __init__(
        self,
        retrieval: RetrievalService,
        settings: CrossServiceSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._retrieval = retrieval
        self._settings = settings or get_settings().cross_service
        self._client = http_client

    async def _post(self, body: dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(
                self._settings.retrieve_url,
                json=body,
                headers=self._settings.auth_headers,
                timeout=self._settings.timeout,
            )
        async with httpx.AsyncClient(timeout=self._settings.timeout) as client:
            return await client.post(
                self._settings.retrieve_url,
                json=body,
                headers=self._settings.auth_headers,
            )

    async def fetch_remote(
        self,
        owner_id: str,
        topic: str | None,
        limit: int,
    ) -> tuple[list[RankedEntry], str | None]:
        """Fetch the learner's memories from the companion service.

        Returns:
            Entries and an error description. The error is None on success.
        """
        if not self._settings.is_configured:
            return [], "Companion service not configured"

        body = {
            "user_id": owner_id,
            "query": topic,
            "limit": limit,
            "include_anchor_memories": True,
        }

        try:
            response = await asyncio.wait_for(self._post(body), timeout=self._settings.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("Companion memory request timed out after %.1fs", self._settings.timeout)
            return [], "timeout"
        except httpx.HTTPError as e:
            logger.warning("Companion memory request failed: %s", str(e))
            return [], f"unavailable: {e}"
        except httpx.InvalidURL as e:
            logger.warning("Companion memory URL is invalid: %s", str(e))
            return [], f"invalid url: {e}"

        if not response.is_success:
            logger.warning("Companion memory service returned %d", response.status_code)
            return [], f"status {response.status_code}"

        try:
            payload = response.json()
        except ValueError as e:
            logger.warning("Companion memory response is not JSON: %s", str(e))
            return [], "invalid response"

        if not isinstance(payload, dict):
            return [], "invalid response"

        return parse_remote_memories(payload), None

    async def get_unified_context(
        self,
        owner_id: str,
        topic: str | None = None,
        limit: int = 10,
    ) -> UnifiedContext:
        """Retrieve local and companion memories in parallel and merge them.

        Args:
            owner_id: Learner identifier, shared by both services.
            topic: Optional topic of the current exchange.
            limit: Overall limit; 70% goes to local and 50% to remote.

        Returns:
            Merged context with per-source status.
        """
        local_limit = max(1, math.ceil(limit * self._settings.local_share))
        remote_limit = max(1, math.ceil(limit * self._settings.remote_share))

        local, fetched = await asyncio.gather(
            self._retrieval.retrieve(owner_id, topic, local_limit),
            self.fetch_remote(owner_id, topic, remote_limit),
            return_exceptions=True,
        )
        if isinstance(local, BaseException):
            raise local
        if isinstance(fetched, Exception):
            logger.warning("Companion memory request failed: %s", str(fetched))
            remote, remote_error = [], f"unavailable: {fetched}"
        elif isinstance(fetched, BaseException):
            raise fetched
        else:
            remote, remote_error = fetched

        logger.info(
            "Unified context for owner %s: local=%d, remote=%d (success=%s)",
            owner_id,
            len(local.entries),
            len(remote),
            remote_error is None,
        )
        return UnifiedContext(
            formatted=format_unified(local, remote),
            local=local,
            remote=remote,
            remote_success=remote_error is None,
            remote_error=remote_error,
        )
