"""
State Module - the simulated startup.

Components:
- models: SimulationState and its sections
- manager: Pure merge primitives (apply_consequence, trigger_mistake, ...)
"""

from warroom.state.manager import (
    add_compounded_loss,
    apply_consequence,
    create_initial_state,
    deserialize_state,
    get_state_summary,
    log_decision,
    recalculate_derived_state,
    scale_delta,
    serialize_state,
    set_business_context,
    trigger_mistake,
)
from warroom.state.models import BusinessContext, DecisionLogEntry, SimulationState

__all__ = [
    "SimulationState",
    "BusinessContext",
    "DecisionLogEntry",
    "create_initial_state",
    "apply_consequence",
    "scale_delta",
    "recalculate_derived_state",
    "trigger_mistake",
    "log_decision",
    "add_compounded_loss",
    "set_business_context",
    "get_state_summary",
    "serialize_state",
    "deserialize_state",
]
