# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package for tutormind.

This package contains the memory engine and its supporting services:
- config: Application configuration and settings
- intelligence: Embedding and LLM clients
- emotional: Voice prosody emotion processing
- memory: Scoring, storage, extraction, retrieval and maintenance
"""
