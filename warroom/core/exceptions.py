"""
Exception taxonomy for the assessment engine.

Every error the engine raises derives from WarRoomError so callers at the
boundary can catch one type and map it to their own transport.
"""

from __future__ import annotations


class WarRoomError(Exception):
    """Base exception for all engine errors."""
    pass


class ValidationError(WarRoomError):
    """Raised when a payload or expression is malformed (e.g. missing type discriminator)."""
    pass


class NotFoundError(WarRoomError):
    """Raised when a question, stage, mistake or competency code is unknown."""
    pass


class StateConsistencyError(WarRoomError):
    """
    Raised on caller-side ordering bugs.

    Examples: compounding a (mistake, stage) pair twice, advancing from a stage
    with unanswered reachable questions, mutating a completed assessment.
    """
    pass


class ExternalServiceError(WarRoomError):
    """Raised when the AI grading service fails. Recovered locally with a fallback score."""

    def __init__(self, message: str, service: str = "ai_grader"):
        super().__init__(message)
        self.service = service
