"""Consequences Module - immediate and compounding mistake effects."""

from warroom.consequences.engine import (
    CompoundingResult,
    apply_compounding_consequences,
    apply_mistake_immediate_consequence,
    check_critical_condition,
    generate_consequence_narrative,
    get_consequence_summary,
    mark_compounded,
    project_future_impact,
)

__all__ = [
    "CompoundingResult",
    "apply_mistake_immediate_consequence",
    "apply_compounding_consequences",
    "mark_compounded",
    "get_consequence_summary",
    "generate_consequence_narrative",
    "check_critical_condition",
    "project_future_impact",
]
