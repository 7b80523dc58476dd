# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for merging local and companion-service memories."""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from tutormind.core.config.settings import CrossServiceSettings
from tutormind.core.memory.unified import (
    REMOTE_HEADER,
    CrossServiceAggregator,
    format_unified,
    parse_remote_memories,
)
from tutormind.models.memory import (
    ContextOrigin,
    MemoryKind,
    RankedContext,
    RankedEntry,
)

REMOTE_PAYLOAD = {
    "user_memories": [
        {"id": 42, "content": "Plays the violin", "category": "skill", "currentImportance": 0.8},
        {"id": 43, "content": ""},
    ],
    "anchor_memories": [
        {"id": "7", "content": "Laughs at cat puns", "memory_type": "inside_joke"},
    ],
}


def _local_context(owner_id: str) -> RankedContext:
    return RankedContext(
        owner_id=owner_id,
        entries=[
            RankedEntry(
                id="local-1",
                kind=MemoryKind.USER_FACT,
                content="Has a dog named Achilles",
                summary="Has a dog named Achilles",
                category="personal_fact",
            )
        ],
    )


@pytest.fixture
def retrieval(owner_id):
    """Create a mock RetrievalService with one local fact."""
    service = MagicMock()
    service.retrieve = AsyncMock(return_value=_local_context(owner_id))
    return service


@pytest.fixture
def remote_settings() -> CrossServiceSettings:
    """Companion-service settings with a URL and secret."""
    return CrossServiceSettings(api_url="https://companion.test", secret="s3cret", timeout=1.0)


def _aggregator(retrieval, settings, handler) -> CrossServiceAggregator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CrossServiceAggregator(retrieval, settings, http_client=client)


@pytest.mark.unit
class TestParseRemoteMemories:
    """Tests for parse_remote_memories."""

    def test_prefixes_and_kinds(self) -> None:
        """Test remote ids are prefixed and tagged by origin."""
        entries = parse_remote_memories(REMOTE_PAYLOAD)

        assert [e.id for e in entries] == ["anchor-user-42", "anchor-rel-7"]
        assert entries[0].kind is MemoryKind.USER_FACT
        assert entries[0].importance == 0.8
        assert entries[1].kind is MemoryKind.RELATIONAL_NOTE
        assert entries[1].category == "inside_joke"
        assert all(e.origin is ContextOrigin.REMOTE for e in entries)

    def test_garbage_payload(self) -> None:
        """Test malformed lists are ignored."""
        assert parse_remote_memories({"user_memories": "nope", "anchor_memories": [1]}) == []

    def test_format_unified(self, owner_id) -> None:
        """Test the companion section follows the local sections."""
        text = format_unified(_local_context(owner_id), parse_remote_memories(REMOTE_PAYLOAD))

        assert text.index("Has a dog named Achilles") < text.index(REMOTE_HEADER)
        assert "- [inside_joke] Laughs at cat puns" in text


@pytest.mark.unit
class TestGetUnifiedContext:
    """Tests for CrossServiceAggregator.get_unified_context."""

    @pytest.mark.asyncio
    async def test_merges_both_sources(self, retrieval, remote_settings, owner_id) -> None:
        """Test a healthy remote call is merged after local entries."""
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["secret"] = request.headers["X-Cross-App-Secret"]
            seen["url"] = str(request.url)
            return httpx.Response(200, json=REMOTE_PAYLOAD)

        aggregator = _aggregator(retrieval, remote_settings, handler)

        context = await aggregator.get_unified_context(owner_id, "music", 10)

        assert context.remote_success is True
        assert context.retrieved_ids == ["local-1", "anchor-user-42", "anchor-rel-7"]
        assert seen["secret"] == "s3cret"
        assert seen["url"] == "https://companion.test/api/v1/memories/retrieve"
        retrieval.retrieve.assert_awaited_once_with(owner_id, "music", 7)

    @pytest.mark.asyncio
    async def test_timeout_keeps_local(self, retrieval, remote_settings, owner_id) -> None:
        """Test a remote timeout leaves local results intact."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        aggregator = _aggregator(retrieval, remote_settings, handler)

        context = await aggregator.get_unified_context(owner_id, "music", 10)

        assert context.remote_success is False
        assert context.remote_error == "timeout"
        assert context.local.retrieved_ids == ["local-1"]
        assert REMOTE_HEADER not in context.formatted

    @pytest.mark.asyncio
    async def test_hanging_remote_is_cut_off(self, retrieval, owner_id) -> None:
        """Test a remote that never answers is abandoned at the timeout."""
        settings = CrossServiceSettings(
            api_url="https://companion.test", secret="s3cret", timeout=0.2
        )

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json=REMOTE_PAYLOAD)

        aggregator = _aggregator(retrieval, settings, handler)

        started = time.monotonic()
        context = await aggregator.get_unified_context(owner_id, "music", 10)
        elapsed = time.monotonic() - started

        assert elapsed < 1.5
        assert context.remote_success is False
        assert context.remote_error == "timeout"
        assert context.remote == []
        assert context.local.retrieved_ids == ["local-1"]

    @pytest.mark.asyncio
    async def test_invalid_url_keeps_local(self, retrieval, owner_id) -> None:
        """Test a malformed companion URL is a remote failure, not an error."""
        settings = CrossServiceSettings(api_url="https://companion\x00.test", secret="s3cret")

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("remote called")

        aggregator = _aggregator(retrieval, settings, handler)

        context = await aggregator.get_unified_context(owner_id, "music", 10)

        assert context.remote_success is False
        assert context.remote_error.startswith("invalid url")
        assert context.local.retrieved_ids == ["local-1"]

    @pytest.mark.asyncio
    async def test_unexpected_remote_error_keeps_local(
        self, retrieval, remote_settings, owner_id, monkeypatch
    ) -> None:
        """Test any failure of the remote branch leaves local results intact."""
        aggregator = _aggregator(
            retrieval, remote_settings, lambda request: httpx.Response(200, json={})
        )
        monkeypatch.setattr(
            aggregator, "fetch_remote", AsyncMock(side_effect=RuntimeError("boom"))
        )

        context = await aggregator.get_unified_context(owner_id, "music", 10)

        assert context.remote_success is False
        assert context.remote_error == "unavailable: boom"
        assert context.local.retrieved_ids == ["local-1"]

    @pytest.mark.asyncio
    async def test_error_status(self, retrieval, remote_settings, owner_id) -> None:
        """Test a non-2xx answer is a remote failure."""
        aggregator = _aggregator(
            retrieval, remote_settings, lambda request: httpx.Response(503, text="down")
        )

        context = await aggregator.get_unified_context(owner_id, None, 10)

        assert context.remote_success is False
        assert context.remote_error == "status 503"

    @pytest.mark.asyncio
    async def test_unconfigured_skips_remote(self, retrieval, owner_id) -> None:
        """Test no request is made without a shared secret."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("remote called")

        aggregator = _aggregator(
            retrieval, CrossServiceSettings(api_url="https://companion.test"), handler
        )

        context = await aggregator.get_unified_context(owner_id, None, 10)

        assert context.remote_success is False
        assert context.remote == []
        assert len(context.local.entries) == 1
