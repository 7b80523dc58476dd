# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task infrastructure for tutormind.

Quick Start:
    # Setup broker (call once at startup)
    from tutormind.infrastructure.background import setup_dramatiq
    setup_dramatiq()

    # Send tasks (import after broker setup)
    from tutormind.infrastructure.background.tasks import process_conversation_memories

    process_conversation_memories.send(owner_id, session_id, messages)

Running Workers:
    dramatiq tutormind.infrastructure.background.tasks --processes 2 --threads 4
"""

from tutormind.infrastructure.background.broker import (
    BrokerManager,
    Priority,
    Queues,
    get_broker,
    get_broker_manager,
    setup_dramatiq,
    shutdown_dramatiq,
)
from tutormind.infrastructure.background.scheduler import (
    DramatiqScheduler,
    ScheduledTask,
    get_scheduler,
    start_scheduler,
    stop_scheduler,
)

__all__ = [
    "BrokerManager",
    "DramatiqScheduler",
    "Priority",
    "Queues",
    "ScheduledTask",
    "get_broker",
    "get_broker_manager",
    "get_scheduler",
    "setup_dramatiq",
    "shutdown_dramatiq",
    "start_scheduler",
    "stop_scheduler",
]
