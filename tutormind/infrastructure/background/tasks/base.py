# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Event loop bridge for the memory actors.

Memory actors are plain functions run on Dramatiq worker threads, while
the store, the LLM client and the vector index are async. Each worker
thread keeps one loop for its whole life; the database engine and the
Qdrant client it caches are bound to that loop, so both are dropped
whenever the thread has to start a fresh one.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

from tutormind.infrastructure.database.connection import clear_thread_db_connections
from tutormind.infrastructure.vectors.qdrant_client import clear_thread_qdrant

logger = logging.getLogger(__name__)

T = TypeVar("T")

_worker_state = threading.local()


def _reset_thread_clients() -> None:
    clear_thread_db_connections()
    clear_thread_qdrant()


def _worker_loop() -> asyncio.AbstractEventLoop:
    loop: asyncio.AbstractEventLoop | None = getattr(_worker_state, "loop", None)
    if loop is not None and not loop.is_closed():
        return loop

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    _worker_state.loop = loop
    _reset_thread_clients()

    logger.debug("Started memory worker loop on %s", threading.current_thread().name)
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a memory coroutine to completion on the worker thread's loop.

    Args:
        coro: Coroutine built by the actor.

    Returns:
        The coroutine's result.
    """
    return _worker_loop().run_until_complete(coro)
