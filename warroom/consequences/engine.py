"""
ConsequenceEngine - immediate and compounding effects of mistakes.

Immediate effects land once, when a mistake is triggered. Compounding
effects are scheduled per mistake as an ordered list of (stage, effect,
multiplier) entries and fire when the assessment enters that stage. Each
(mistake, stage) pair fires at most once; the marker is the stage entry in
MistakeTriggered.compounding_impacts_applied, which the caller persists and
hands back on the next call.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from warroom.core.exceptions import StateConsistencyError
from warroom.core.stages import remaining_stages, validate_stage
from warroom.mistakes.detector import calculate_effect_cost, calculate_mistake_total_cost
from warroom.mistakes.models import CompoundingImpact, MistakeTriggered
from warroom.mistakes.registry import get_mistake_definition
from warroom.state.manager import add_compounded_loss, apply_consequence, scale_delta
from warroom.state.models import SimulationState

# total cost thresholds for the summary warning level, highest first
WARNING_LEVELS = (
    (100_000, "critical"),
    (50_000, "high"),
    (20_000, "medium"),
    (0, "low"),
)


@dataclass
class CompoundingResult:
    """Outcome of one stage transition's compounding pass."""

    new_state: SimulationState
    total_compounded_cost: float
    updated_mistakes: list[MistakeTriggered]
    applied: list[tuple[str, int, float]] = field(default_factory=list)  # (code, stage, cost)


def apply_mistake_immediate_consequence(
    state: SimulationState, code: str
) -> tuple[SimulationState, dict[str, Any]]:
    """
    Merge a mistake's immediate delta into the state.

    Returns:
        (new_state, applied_effects); unknown codes apply nothing
    """
    definition = get_mistake_definition(code)
    if definition is None:
        logger.warning(f"Unknown mistake {code}, no immediate impact applied")
        return state, {}
    effects = dict(definition.immediate_impact)
    return apply_consequence(state, effects), effects


def mark_compounded(mistake: MistakeTriggered, stage: int, impact: dict[str, Any], cost: float) -> MistakeTriggered:
    """
    Record that ``mistake`` compounded at ``stage``.

    Raises:
        StateConsistencyError: The pair was already marked
    """
    if mistake.has_compounded_at(stage):
        raise StateConsistencyError(f"Mistake {mistake.code} already compounded at stage {stage}")
    applied = [*mistake.compounding_impacts_applied, CompoundingImpact(stage=stage, impact=impact, cost=cost)]
    return mistake.model_copy(update={"compounding_impacts_applied": applied})


def apply_compounding_consequences(
    state: SimulationState,
    triggered: list[MistakeTriggered],
    entering_stage: int,
) -> CompoundingResult:
    """
    Fire every compounding entry scheduled for exactly ``entering_stage``.

    Mistakes without an entry for this stage, or already marked for it, pass
    through unchanged. Re-running with the returned markers is a no-op.

    Args:
        state: State before the transition
        triggered: Mistakes triggered so far, with their markers
        entering_stage: Stage being entered

    Returns:
        CompoundingResult with the new state, this transition's cost and the
        updated mistake records (same order as ``triggered``)
    """
    validate_stage(entering_stage)

    current = state
    total_cost = 0.0
    updated: list[MistakeTriggered] = []
    applied: list[tuple[str, int, float]] = []

    for mistake in triggered:
        definition = get_mistake_definition(mistake.code)
        entry = definition.compounding_for(entering_stage) if definition else None
        if entry is None:
            updated.append(mistake)
            continue
        if mistake.has_compounded_at(entering_stage):
            logger.debug(f"{mistake.code} already compounded at stage {entering_stage}, skipping")
            updated.append(mistake)
            continue

        effect = scale_delta(entry.effect, entry.multiplier)
        cost = calculate_effect_cost(entry.effect, entry.multiplier)
        current = apply_consequence(current, effect)
        total_cost += cost
        updated.append(mark_compounded(mistake, entering_stage, effect, cost))
        applied.append((mistake.code, entering_stage, cost))
        logger.debug(f"{mistake.code} compounded entering stage {entering_stage}: ${cost:,.0f}")

    current = add_compounded_loss(current, total_cost)
    return CompoundingResult(
        new_state=current,
        total_compounded_cost=total_cost,
        updated_mistakes=updated,
        applied=applied,
    )


def get_consequence_summary(triggered: list[MistakeTriggered]) -> dict[str, Any]:
    """Immediate and compounding impacts, total cost and a warning level."""
    immediate: list[dict[str, Any]] = []
    compounding: list[dict[str, Any]] = []
    total_cost = 0.0

    for mistake in triggered:
        definition = get_mistake_definition(mistake.code)
        if definition is None:
            continue
        immediate.append({"mistake": definition.name, "description": definition.description})
        for impact in mistake.compounding_impacts_applied:
            entry = definition.compounding_for(impact.stage)
            compounding.append({
                "mistake": definition.name,
                "stage": impact.stage,
                "description": entry.description if entry and entry.description else "Compounding effect",
                "cost": impact.cost,
            })
        total_cost += calculate_mistake_total_cost(mistake)

    warning_level = "none"
    for threshold, level in WARNING_LEVELS:
        if total_cost > threshold:
            warning_level = level
            break

    return {
        "immediate_impacts": immediate,
        "compounding_impacts": compounding,
        "total_cost": total_cost,
        "warning_level": warning_level,
    }


def generate_consequence_narrative(triggered: list[MistakeTriggered], current_stage: int) -> str:
    """Scenario text describing what earlier mistakes are doing at this stage."""
    if not triggered:
        return (
            "Your disciplined approach is paying off. "
            "You've avoided common pitfalls that trip up many founders."
        )

    narratives = []
    for mistake in triggered:
        definition = get_mistake_definition(mistake.code)
        entry = definition.compounding_for(current_stage) if definition else None
        if entry is not None:
            narratives.append(f"**{definition.name}:** {entry.description}")

    if not narratives:
        return f"You made {len(triggered)} earlier decisions that may have consequences later."
    return "\n\n".join(narratives)


def check_critical_condition(state: SimulationState) -> dict[str, Any]:
    """Critical when at least two warning signs are present."""
    fin = state.financial
    reasons = []
    if not math.isinf(fin.runway_months) and fin.runway_months < 3:
        reasons.append("Runway is critically low (less than 3 months)")
    if fin.burn_rate > fin.capital * 0.2:
        reasons.append("Burn rate is dangerously high relative to capital")
    if state.team.satisfaction < 30:
        reasons.append("Team morale is critically low")
    if state.customers.retention < 50 and state.customers.total > 0:
        reasons.append("Customer retention is unsustainable")
    if state.compounded_losses > fin.initial_capital * 0.5:
        reasons.append("Compounded mistakes have cost over 50% of initial capital")
    return {"is_critical": len(reasons) >= 2, "reasons": reasons}


def project_future_impact(
    triggered: list[MistakeTriggered],
    current_stage: int,
    stages: list[int] | None = None,
) -> dict[str, Any]:
    """
    Cost still to come from already-triggered mistakes.

    Args:
        triggered: Mistakes triggered so far
        current_stage: Stage the assessment is in
        stages: Future stages to project over (default: all after current)
    """
    future = stages if stages is not None else remaining_stages(current_stage)
    breakdown = []
    additional = 0.0
    for stage in future:
        stage_cost = 0.0
        for mistake in triggered:
            definition = get_mistake_definition(mistake.code)
            entry = definition.compounding_for(stage) if definition else None
            if entry is not None and not mistake.has_compounded_at(stage):
                stage_cost += calculate_effect_cost(entry.effect, entry.multiplier)
        breakdown.append({"stage": stage, "cost": stage_cost})
        additional += stage_cost

    current_total = sum(calculate_mistake_total_cost(m) for m in triggered)
    return {
        "projected_additional_cost": additional,
        "projected_total_cost": current_total + additional,
        "stage_breakdown": breakdown,
    }
