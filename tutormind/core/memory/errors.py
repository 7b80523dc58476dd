# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Error taxonomy of the memory engine.

Read paths that feed a live conversation turn catch these and degrade to
an empty result. Write paths skip the failing item. Only the tools API
surfaces them to its caller.
"""


class MemoryServiceError(Exception):
    """Base exception for memory engine failures.

    Attributes:
        message: Error description.
        original_error: Original exception if any.
        code: Stable machine-readable error code.
    """

    code = "internal_error"

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class MemoryValidationError(MemoryServiceError):
    """Input had the wrong shape or range. Raised before any I/O."""

    code = "validation_error"


class MemoryNotFoundError(MemoryServiceError):
    """Record does not exist for this owner."""

    code = "not_found"


class MemoryForbiddenError(MemoryNotFoundError):
    """Record exists but belongs to another owner.

    Subclasses MemoryNotFoundError so callers that only handle absence
    cannot tell a cross-owner lookup from a missing record.
    """

    code = "forbidden"


class ExtractionParseError(MemoryServiceError):
    """LLM output did not match the extraction contract."""

    code = "extraction_parse_error"


class UpstreamTimeoutError(MemoryServiceError):
    """Embedding provider or companion service timed out."""

    code = "upstream_timeout"


class UpstreamUnavailableError(MemoryServiceError):
    """Embedding provider or companion service failed or refused."""

    code = "upstream_unavailable"


class MemoryInternalError(MemoryServiceError):
    """Storage failure."""

    code = "internal_error"
