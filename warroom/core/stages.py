"""
Stage definitions.

Six fixed phases of the simulated business lifecycle, linearly ordered:

    -2 IDEATING -> -1 CONCEPTING -> 0 COMMITTING -> 1 VALIDATING
    -> 2 SCALING -> 3 ESTABLISHING -> COMPLETE
"""

from __future__ import annotations

from enum import Enum

from warroom.core.exceptions import NotFoundError


class StageName(str, Enum):
    """Names of the six assessment stages."""

    IDEATING = "IDEATING"
    CONCEPTING = "CONCEPTING"
    COMMITTING = "COMMITTING"
    VALIDATING = "VALIDATING"
    SCALING = "SCALING"
    ESTABLISHING = "ESTABLISHING"

    @classmethod
    def for_stage(cls, stage: int) -> StageName:
        """Look up the name of a stage number."""
        return _NAMES[validate_stage(stage)]


STAGE_ORDER: tuple[int, ...] = (-2, -1, 0, 1, 2, 3)
FIRST_STAGE = STAGE_ORDER[0]
FINAL_STAGE = STAGE_ORDER[-1]

_NAMES = dict(zip(STAGE_ORDER, StageName))


def validate_stage(stage: int) -> int:
    """Return the stage number unchanged, or raise NotFoundError if it is not a stage."""
    if stage not in STAGE_ORDER:
        raise NotFoundError(f"Stage {stage} not found")
    return stage


def get_next_stage(stage: int) -> int | None:
    """Next stage in the linear order, or None after the final stage."""
    index = STAGE_ORDER.index(validate_stage(stage))
    if index == len(STAGE_ORDER) - 1:
        return None
    return STAGE_ORDER[index + 1]


def remaining_stages(stage: int) -> list[int]:
    """Stages strictly after ``stage``."""
    index = STAGE_ORDER.index(validate_stage(stage))
    return list(STAGE_ORDER[index + 1:])
