"""
Core Module - Shared domain primitives.

Components:
- exceptions: Error taxonomy (ValidationError, NotFoundError, ...)
- stages: Stage ordering and names
- levels: Competency level buckets and rounding helpers
- expressions: Whitelisted arithmetic evaluator

All engine modules (state, questions, scoring, mistakes, consequences)
import from warroom.core rather than redefining these.
"""

from warroom.core.exceptions import (
    ExternalServiceError,
    NotFoundError,
    StateConsistencyError,
    ValidationError,
    WarRoomError,
)
from warroom.core.levels import CompetencyLevel, code_sort_key, percentage, round_half_up
from warroom.core.stages import (
    FINAL_STAGE,
    FIRST_STAGE,
    STAGE_ORDER,
    StageName,
    get_next_stage,
    validate_stage,
)

__all__ = [
    # Errors
    "WarRoomError",
    "ValidationError",
    "NotFoundError",
    "StateConsistencyError",
    "ExternalServiceError",
    # Levels
    "CompetencyLevel",
    "code_sort_key",
    "percentage",
    "round_half_up",
    # Stages
    "STAGE_ORDER",
    "FIRST_STAGE",
    "FINAL_STAGE",
    "StageName",
    "get_next_stage",
    "validate_stage",
]
