"""tutormind memory engine.

Long-term cognitive memory for a tutoring assistant: learner facts,
relational notes and teaching strategies, scored with decay-aware memory
strength and retrieved by hybrid ranking.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
