"""
Mistakes Module - detection and costing of founder mistakes.

Components:
- models: MistakeDefinition (static registry) and MistakeTriggered (per assessment)
- registry: JSON-backed registry loader
- detector: Trigger matching, costing and analysis
"""

from warroom.mistakes.detector import (
    calculate_effect_cost,
    calculate_mistake_total_cost,
    can_recover_from_mistake,
    check_for_mistake_trigger,
    create_mistake_triggered,
    generate_mistake_analysis,
    get_all_mistakes,
    get_mistake_definition,
    get_mistake_immediate_impact,
    get_mistake_severity,
    get_mistake_warning,
    get_mistakes_avoided,
    get_mistakes_detectable_at_stage,
)
from warroom.mistakes.models import CompoundingEntry, CompoundingImpact, MistakeDefinition, MistakeTriggered

__all__ = [
    "MistakeDefinition",
    "MistakeTriggered",
    "CompoundingEntry",
    "CompoundingImpact",
    "check_for_mistake_trigger",
    "get_mistake_definition",
    "get_all_mistakes",
    "get_mistakes_detectable_at_stage",
    "get_mistake_immediate_impact",
    "create_mistake_triggered",
    "get_mistake_severity",
    "get_mistake_warning",
    "can_recover_from_mistake",
    "calculate_effect_cost",
    "calculate_mistake_total_cost",
    "get_mistakes_avoided",
    "generate_mistake_analysis",
]
