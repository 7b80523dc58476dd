# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for tutormind."""

from tutormind.infrastructure.database.connection import (
    DatabaseError,
    DatabaseManager,
    close_database,
    get_db_manager,
    get_worker_db_manager,
    init_database,
)

__all__ = [
    "DatabaseError",
    "DatabaseManager",
    "close_database",
    "get_db_manager",
    "get_worker_db_manager",
    "init_database",
]
