# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dramatiq actors for tutormind.

Running Workers:
    dramatiq tutormind.infrastructure.background.tasks --processes 2 --threads 4
"""

from tutormind.infrastructure.background.tasks.base import run_async
from tutormind.infrastructure.background.tasks.memory import (
    decay_memories,
    process_conversation_memories,
    record_memory_feedback,
)

__all__ = [
    "decay_memories",
    "process_conversation_memories",
    "record_memory_feedback",
    "run_async",
]
