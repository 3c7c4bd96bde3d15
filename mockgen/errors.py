"""
Exception hierarchy for mockgen.

Every error carries its context as attributes so callers can make
salvage decisions (e.g. keep a partial document) without parsing messages.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mockgen.assembly.document import MockDocument


class MockGenError(Exception):
    """Base class for all mockgen errors."""
    pass


class ConfigurationError(MockGenError):
    """Raised when user-supplied configuration or input files are unusable."""
    pass


# ============================================================================
# Key pool
# ============================================================================


class InvalidCredential(MockGenError):
    """Raised at pool construction when a credential is empty or too short."""

    def __init__(self, position: int | None, message: str) -> None:
        self.position = position
        super().__init__(message)


class PoolExhausted(MockGenError):
    """Raised when every credential in the pool has been marked failed."""

    def __init__(self, total: int, job_id: int | None = None) -> None:
        self.total = total
        self.job_id = job_id
        target = f" for mock {job_id}" if job_id is not None else ""
        super().__init__(f"All {total} API key(s) have failed or exceeded quota{target}")


class NoAssignment(MockGenError):
    """Raised when a job asks for its key before one was assigned."""

    def __init__(self, job_id: int) -> None:
        self.job_id = job_id
        super().__init__(f"No API key assigned to mock {job_id}")


# ============================================================================
# Response assembly
# ============================================================================


class ParseFailure(MockGenError):
    """Raised when a response is not valid (or repairable) mock-test JSON."""

    PREVIEW_CHARS = 500

    def __init__(self, error: Exception | str, text: str, repair_attempted: bool = False) -> None:
        self.error = error
        self.preview = text[: self.PREVIEW_CHARS]
        self.repair_attempted = repair_attempted
        suffix = " (after bracket repair)" if repair_attempted else ""
        super().__init__(f"Could not parse response{suffix}: {error}")


class AssemblyFailure(MockGenError):
    """Raised when the continuation budget runs out before the document is complete."""

    def __init__(
        self,
        document: MockDocument | None,
        items_present: int,
        expected_total: int | None,
        rounds: int,
        reason: Any = None,
    ) -> None:
        self.document = document
        self.items_present = items_present
        self.expected_total = expected_total
        self.rounds = rounds
        self.reason = reason
        expected = expected_total if expected_total is not None else "?"
        super().__init__(
            f"Max continuations reached after {rounds} round(s). "
            f"Generated {items_present}/{expected} questions."
        )


# ============================================================================
# Generation transport
# ============================================================================


class GenerationError(MockGenError):
    """Raised when the generation API call fails or returns nothing usable."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class QuotaExceeded(GenerationError):
    """Raised on rate-limit / quota responses. The caller should fail the key over."""
    pass
