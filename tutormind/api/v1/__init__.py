# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    memory: Memory retrieval, tools, extraction and maintenance endpoints.
"""

from fastapi import APIRouter

from tutormind.api.v1 import memory

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

router.include_router(memory.router, prefix="/memory", tags=["Memory"])
