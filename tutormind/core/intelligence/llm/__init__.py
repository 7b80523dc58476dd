# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""LLM completion client."""

from tutormind.core.intelligence.llm.client import (
    LLMClient,
    LLMError,
    LLMResponse,
    Message,
    extract_json_object,
)

__all__ = [
    "LLMClient",
    "LLMError",
    "LLMResponse",
    "Message",
    "extract_json_object",
]
