# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the agent-facing memory tools."""

import pytest

from tutormind.core.config import MemorySettings
from tutormind.core.memory.errors import MemoryNotFoundError, MemoryValidationError
from tutormind.core.memory.tools import MemoryTools
from tutormind.models.memory import MemoryKind, SourceType


@pytest.fixture
def tools(store, mock_embedding_service, memory_settings) -> MemoryTools:
    """Create MemoryTools on the real store."""
    return MemoryTools(store, mock_embedding_service, memory_settings)


@pytest.mark.unit
class TestToolDefinitions:
    """Tests for the function-calling definitions."""

    def test_four_tools(self) -> None:
        """Test every tool is described with required parameters."""
        definitions = MemoryTools.describe_tools()
        names = [d["function"]["name"] for d in definitions]

        assert names == list(MemoryTools.TOOL_NAMES)
        for definition in definitions:
            assert definition["function"]["parameters"]["required"]


@pytest.mark.unit
class TestExecute:
    """Tests for MemoryTools.execute validation."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, tools, owner_id) -> None:
        """Test unknown tool names are rejected."""
        with pytest.raises(MemoryValidationError):
            await tools.execute("delete_everything", owner_id, {})

    @pytest.mark.asyncio
    async def test_invalid_params(self, tools, owner_id) -> None:
        """Test missing required parameters are rejected before any write."""
        with pytest.raises(MemoryValidationError):
            await tools.execute("forget_memory", owner_id, {"memory_id": "abc"})

    @pytest.mark.asyncio
    async def test_owner_required(self, tools) -> None:
        """Test calls without an owner are rejected."""
        with pytest.raises(MemoryValidationError):
            await tools.execute("save_memory", "", {"content": "x", "category": "goal"})


@pytest.mark.unit
class TestSaveMemory:
    """Tests for save_memory."""

    @pytest.mark.asyncio
    async def test_saves_fact(self, tools, store, owner_id) -> None:
        """Test a fact category creates an autonomous user fact."""
        result = await tools.execute(
            "save_memory",
            owner_id,
            {"content": "Supports Galatasaray", "category": "preference", "tags": ["football"]},
            session_id="session-3",
        )

        memory = await store.get(owner_id, result.memory_id)
        assert result.success is True
        assert memory.kind is MemoryKind.USER_FACT
        assert memory.source_type is SourceType.AUTONOMOUS
        assert memory.source_session_id == "session-3"
        assert memory.tags == ["football"]

    @pytest.mark.asyncio
    async def test_saves_note_with_clamped_importance(self, tools, store, owner_id) -> None:
        """Test a note type creates a relational note and importance is clamped."""
        result = await tools.execute(
            "save_memory",
            owner_id,
            {"content": "We joke about pineapple pizza", "category": "inside_joke", "importance": 1.7},
        )

        memory = await store.get(owner_id, result.memory_id)
        assert memory.kind is MemoryKind.RELATIONAL_NOTE
        assert memory.llm_importance == 1.0
        assert result.data["importance"] == 1.0

    @pytest.mark.asyncio
    async def test_unknown_category(self, tools, owner_id) -> None:
        """Test categories outside both vocabularies are rejected."""
        with pytest.raises(MemoryValidationError):
            await tools.execute("save_memory", owner_id, {"content": "x", "category": "hobby"})

    @pytest.mark.asyncio
    async def test_link_category_is_reserved(self, tools, owner_id) -> None:
        """Test memory_link notes can only come from link_memories."""
        with pytest.raises(MemoryValidationError):
            await tools.execute(
                "save_memory", owner_id, {"content": "x", "category": "memory_link"}
            )

    @pytest.mark.asyncio
    async def test_dedup_when_configured(self, store, mock_embedding_service, owner_id) -> None:
        """Test a near-identical save returns the existing memory."""
        tools = MemoryTools(store, mock_embedding_service, MemorySettings(dedup_threshold=0.95))
        params = {"content": "Has a dog named Achilles", "category": "personal_fact"}

        first = await tools.execute("save_memory", owner_id, params)
        second = await tools.execute("save_memory", owner_id, params)

        assert second.deduplicated is True
        assert second.memory_id == first.memory_id

    @pytest.mark.asyncio
    async def test_no_dedup_by_default(self, tools, owner_id) -> None:
        """Test identical saves create separate memories by default."""
        params = {"content": "Has a dog named Achilles", "category": "personal_fact"}

        first = await tools.execute("save_memory", owner_id, params)
        second = await tools.execute("save_memory", owner_id, params)

        assert second.memory_id != first.memory_id


@pytest.mark.unit
class TestUpdateMemory:
    """Tests for update_memory."""

    @pytest.mark.asyncio
    async def test_no_updates(self, tools, owner_id) -> None:
        """Test an empty update succeeds without touching storage."""
        result = await tools.execute("update_memory", owner_id, {"memory_id": "anything"})

        assert result.message == "No updates specified"

    @pytest.mark.asyncio
    async def test_applies_all_changes(self, tools, store, owner_id) -> None:
        """Test content, importance and tags in one call."""
        saved = await tools.execute(
            "save_memory", owner_id, {"content": "Likes chess", "category": "preference"}
        )

        result = await tools.execute(
            "update_memory",
            owner_id,
            {
                "memory_id": saved.memory_id,
                "new_content": "Loves chess openings",
                "adjust_importance": 0.3,
                "add_tags": ["chess"],
            },
        )

        memory = await store.get(owner_id, saved.memory_id)
        assert result.data["changes"] == ["content", "importance", "tags"]
        assert memory.content == "Loves chess openings"
        assert memory.llm_importance == pytest.approx(0.8)
        assert memory.tags == ["chess"]

    @pytest.mark.asyncio
    async def test_foreign_memory(self, tools, store, owner_id, other_owner_id) -> None:
        """Test another learner's memory cannot be updated."""
        saved = await tools.execute(
            "save_memory", other_owner_id, {"content": "Likes chess", "category": "preference"}
        )

        with pytest.raises(MemoryNotFoundError):
            await tools.execute(
                "update_memory",
                owner_id,
                {"memory_id": saved.memory_id, "new_content": "Hates chess"},
            )
        assert (await store.get(other_owner_id, saved.memory_id)).content == "Likes chess"


@pytest.mark.unit
class TestForgetAndLink:
    """Tests for forget_memory and link_memories."""

    @pytest.mark.asyncio
    async def test_forget_twice(self, tools, store, owner_id) -> None:
        """Test forgetting is idempotent and the row survives."""
        saved = await tools.execute(
            "save_memory", owner_id, {"content": "Lives in Izmir", "category": "personal_fact"}
        )
        params = {"memory_id": saved.memory_id, "reason": "moved away"}

        first = await tools.execute("forget_memory", owner_id, params)
        second = await tools.execute("forget_memory", owner_id, params)

        memory = await store.get(owner_id, saved.memory_id)
        assert first.data["already_forgotten"] is False
        assert second.data["already_forgotten"] is True
        assert memory.is_forgotten
        assert memory.current_importance == 0.0

    @pytest.mark.asyncio
    async def test_link(self, tools, store, owner_id) -> None:
        """Test linking creates a memory_link note holding both ids."""
        a = await tools.execute(
            "save_memory", owner_id, {"content": "Has a dog named Achilles", "category": "personal_fact"}
        )
        b = await tools.execute(
            "save_memory", owner_id, {"content": "Walks the dog after school", "category": "routine"}
        )

        result = await tools.execute(
            "link_memories",
            owner_id,
            {"memory_id_1": a.memory_id, "memory_id_2": b.memory_id, "relationship": "same pet"},
        )

        note = await store.get(owner_id, result.memory_id)
        assert note.category == "memory_link"
        assert note.links == [a.memory_id, b.memory_id]

    @pytest.mark.asyncio
    async def test_link_to_self(self, tools, owner_id) -> None:
        """Test a memory cannot be linked to itself."""
        with pytest.raises(MemoryValidationError):
            await tools.execute(
                "link_memories",
                owner_id,
                {"memory_id_1": "m1", "memory_id_2": "m1", "relationship": "same"},
            )

    @pytest.mark.asyncio
    async def test_link_foreign(self, tools, owner_id, other_owner_id) -> None:
        """Test linking to another learner's memory fails."""
        mine = await tools.execute(
            "save_memory", owner_id, {"content": "Likes chess", "category": "preference"}
        )
        theirs = await tools.execute(
            "save_memory", other_owner_id, {"content": "Likes chess", "category": "preference"}
        )

        with pytest.raises(MemoryNotFoundError):
            await tools.execute(
                "link_memories",
                owner_id,
                {
                    "memory_id_1": mine.memory_id,
                    "memory_id_2": theirs.memory_id,
                    "relationship": "same hobby",
                },
            )
