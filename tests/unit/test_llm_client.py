# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the LiteLLM client and JSON extraction."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tutormind.core.config.settings import LLMSettings
from tutormind.core.intelligence.llm import LLMClient, LLMError, extract_json_object


def _completion(content: str) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.choices[0].finish_reason = "stop"
    response.usage.prompt_tokens = 10
    response.usage.completion_tokens = 5
    return response


@pytest.fixture
def client() -> LLMClient:
    """Create an LLMClient with explicit settings."""
    return LLMClient(llm_settings=LLMSettings(model="ollama/qwen2.5:7b"))


@pytest.mark.unit
class TestExtractJsonObject:
    """Tests for extract_json_object."""

    def test_plain(self) -> None:
        """Test a bare JSON object."""
        assert extract_json_object('{"facts": []}') == {"facts": []}

    def test_code_fence_and_prose(self) -> None:
        """Test fenced JSON surrounded by prose."""
        text = 'Here you go:\n```json\n{"no_strategy": true}\n```\nThanks!'

        assert extract_json_object(text) == {"no_strategy": True}

    def test_no_object(self) -> None:
        """Test text without an object is rejected."""
        with pytest.raises(ValueError):
            extract_json_object("I could not find anything.")

    def test_invalid_json(self) -> None:
        """Test malformed JSON is rejected."""
        with pytest.raises(ValueError):
            extract_json_object("{facts: [}")


@pytest.mark.unit
class TestLLMClient:
    """Tests for LLMClient completions."""

    @pytest.mark.asyncio
    async def test_complete(self, client) -> None:
        """Test a completion returns content and token counts."""
        with patch(
            "tutormind.core.intelligence.llm.client.acompletion",
            new=AsyncMock(return_value=_completion("Hello")),
        ) as mock_completion:
            response = await client.complete("Hi", system_prompt="Be brief")

        assert response.content == "Hello"
        assert response.total_tokens == 15
        messages = mock_completion.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "Be brief"}
        assert messages[-1] == {"role": "user", "content": "Hi"}

    @pytest.mark.asyncio
    async def test_complete_json_uses_override_model(self, client) -> None:
        """Test complete_json parses output and honours the model override."""
        with patch(
            "tutormind.core.intelligence.llm.client.acompletion",
            new=AsyncMock(return_value=_completion('```json\n{"facts": [], "notes": []}\n```')),
        ) as mock_completion:
            data = await client.complete_json("Extract", model="gemini/gemini-2.0-flash")

        assert data == {"facts": [], "notes": []}
        assert mock_completion.call_args.kwargs["model"] == "gemini/gemini-2.0-flash"

    @pytest.mark.asyncio
    async def test_provider_failure(self, client) -> None:
        """Test provider errors become LLMError."""
        with patch(
            "tutormind.core.intelligence.llm.client.acompletion",
            new=AsyncMock(side_effect=RuntimeError("rate limited")),
        ):
            with pytest.raises(LLMError) as exc_info:
                await client.complete("Hi")

        assert exc_info.value.model == "ollama/qwen2.5:7b"

    @pytest.mark.asyncio
    async def test_empty_prompt(self, client) -> None:
        """Test blank prompts are rejected."""
        with pytest.raises(ValueError):
            await client.complete(" ")
