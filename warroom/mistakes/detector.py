"""
MistakeDetector - matches responses against the mistake registry.

Detection is a pure lookup: given a question id and a response, scan the
registry in order and return the first mistake whose trigger matches and
which has not already fired in this assessment. A mistake fires at most
once per assessment, however many questions could trigger it.
"""

from __future__ import annotations

import math
import operator
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from loguru import logger
from pydantic import BaseModel

from warroom.core.stages import STAGE_ORDER
from warroom.mistakes.models import (
    BudgetThreshold,
    DetectionTrigger,
    MistakeDefinition,
    MistakeTriggered,
    NumericThreshold,
    OptionSelected,
    TextContains,
)
from warroom.mistakes.registry import (
    get_all_mistakes,
    get_mistake_definition,
    load_registry,
    require_mistake_definition,
)
from warroom.questions.bank import question_index
from warroom.questions.models import (
    BudgetResponse,
    CalculationResponse,
    ChoiceResponse,
    QuestionResponse,
    ResponseData,
    SliderResponse,
    TextResponse,
    response_value,
)

OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

COST_KEYS = ("cost", "capital", "burn", "expense", "loss")
REVENUE_LOSS_MONTHS = 12

PATTERN_LABELS = {
    "financial": "Financial discipline challenges - focus on unit economics and resource management",
    "operational": "Operational scaling issues - focus on building systems before scaling",
    "strategic": "Strategic gaps - focus on market validation and customer focus",
}


# =============================================================================
# Detection
# =============================================================================


def _compare(value: float, op: str, threshold: float) -> bool:
    if not math.isfinite(value):
        return False
    return OPERATORS[op](value, threshold)


def trigger_matches(trigger: DetectionTrigger, question_id: str, data: ResponseData) -> bool:
    """Whether a single detection trigger matches this answer."""
    if trigger.question_id != question_id:
        return False

    condition = trigger.condition
    if isinstance(condition, OptionSelected):
        return isinstance(data, ChoiceResponse) and data.selected_option_id in condition.option_ids
    if isinstance(condition, BudgetThreshold):
        if not isinstance(data, BudgetResponse):
            return False
        allocated = data.percentage_for(condition.category_id)
        return allocated is not None and _compare(allocated, condition.operator, condition.value)
    if isinstance(condition, NumericThreshold):
        if isinstance(data, SliderResponse):
            return _compare(data.value, condition.operator, condition.value)
        if isinstance(data, CalculationResponse):
            return _compare(data.result, condition.operator, condition.value)
        return False
    if isinstance(condition, TextContains):
        if not isinstance(data, TextResponse):
            return False
        text = data.value.lower()
        return any(keyword.lower() in text for keyword in condition.keywords)
    return False


def _option_trigger(question_id: str, data: ResponseData) -> str | None:
    """Mistake code declared directly on the selected option, if any."""
    if not isinstance(data, ChoiceResponse):
        return None
    question = question_index().get(question_id)
    if question is None:
        return None
    option = question.get_option(data.selected_option_id)
    return option.triggers_mistake if option else None


def check_for_mistake_trigger(
    question_id: str,
    response: QuestionResponse | ResponseData,
    already_triggered: Iterable[str],
) -> str | None:
    """
    Find the mistake this answer triggers.

    Args:
        question_id: Question answered
        response: The response (or bare response data)
        already_triggered: Codes already fired in this assessment

    Returns:
        First matching code in registry order that has not fired yet, else None
    """
    data = response.response_data if isinstance(response, QuestionResponse) else response
    triggered = set(already_triggered)

    for definition in load_registry():
        if definition.code in triggered:
            continue
        if any(trigger_matches(t, question_id, data) for t in definition.triggers):
            logger.debug(f"{question_id} triggered mistake {definition.code}")
            return definition.code

    code = _option_trigger(question_id, data)
    if code and code not in triggered and get_mistake_definition(code) is not None:
        logger.debug(f"{question_id} option triggered mistake {code}")
        return code
    return None


# =============================================================================
# Lookups
# =============================================================================


def get_mistakes_detectable_at_stage(stage: int) -> list[MistakeDefinition]:
    return [d for d in load_registry() if stage in d.detectable_at_stages]


def get_mistake_immediate_impact(code: str) -> dict[str, Any] | None:
    """Immediate state delta for a mistake, or None for unknown codes."""
    definition = get_mistake_definition(code)
    if definition is None:
        return None
    return dict(definition.immediate_impact)


def create_mistake_triggered(
    assessment_id: str,
    code: str,
    stage: int,
    trigger_question_id: str,
    trigger_response: ResponseData | Any = None,
) -> MistakeTriggered:
    """
    Build the instance record for a freshly triggered mistake.

    Raises:
        NotFoundError: Unknown mistake code
    """
    definition = require_mistake_definition(code)
    if isinstance(trigger_response, QuestionResponse):
        trigger_response = trigger_response.response_data
    if isinstance(trigger_response, BaseModel):
        trigger_response = response_value(trigger_response)
    return MistakeTriggered(
        assessment_id=assessment_id,
        code=code,
        name=definition.name,
        triggered_at_stage=stage,
        trigger_question_id=trigger_question_id,
        trigger_response=trigger_response,
        immediate_impact_applied=dict(definition.immediate_impact),
    )


def get_mistake_severity(code: str) -> str:
    definition = get_mistake_definition(code)
    return definition.severity if definition else "medium"


def get_mistake_warning(code: str) -> str | None:
    """Warning shown next to an option that would trigger this mistake."""
    definition = get_mistake_definition(code)
    if definition is None:
        return None
    return f'⚠️ Warning: This could lead to "{definition.name}" - {definition.description}'


def can_recover_from_mistake(code: str, current_stage: int) -> dict[str, Any]:
    """Whether recovery is still possible from ``current_stage``, and what it takes."""
    definition = get_mistake_definition(code)
    if definition is None or not definition.recovery.recoverable:
        return {"can_recover": False, "requirements": []}
    deadline = definition.recovery.deadline_stage
    if deadline is not None and STAGE_ORDER.index(current_stage) > STAGE_ORDER.index(deadline):
        return {"can_recover": False, "requirements": []}
    requirements = [definition.recovery.guidance] if definition.recovery.guidance else []
    return {"can_recover": True, "requirements": requirements}


# =============================================================================
# Cost
# =============================================================================


def _flatten_numeric(effect: Mapping[str, Any], prefix: str = "") -> Iterable[tuple[str, float]]:
    for key, value in effect.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            yield from _flatten_numeric(value, f"{name}.")
        elif isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
            yield name, float(value)


def calculate_effect_cost(effect: Mapping[str, Any], multiplier: float = 1.0) -> float:
    """
    Monetary cost of a state delta.

    Keys naming cost, capital, burn, expense or loss count at their absolute
    value; a negative revenue change counts twelve months of lost revenue.
    """
    cost = 0.0
    for key, value in _flatten_numeric(effect):
        lowered = key.lower()
        if any(k in lowered for k in COST_KEYS):
            cost += abs(value) * multiplier
        if "revenue" in lowered and value < 0:
            cost += abs(value) * REVENUE_LOSS_MONTHS * multiplier
    return float(round(cost))


def calculate_mistake_total_cost(mistake: MistakeTriggered) -> float:
    """Monetary part of the immediate impact plus every compounding cost."""
    return calculate_effect_cost(mistake.immediate_impact_applied) + mistake.total_compounded_cost


# =============================================================================
# Analysis
# =============================================================================


def get_mistakes_avoided(triggered_codes: Iterable[str], completed_stages: Iterable[int]) -> list[str]:
    """Registry codes detectable within the completed stages that never fired."""
    triggered = set(triggered_codes)
    completed = set(completed_stages)
    return [
        d.code
        for d in load_registry()
        if d.code not in triggered and completed.intersection(d.detectable_at_stages)
    ]


def identify_mistake_pattern(triggered: list[MistakeTriggered]) -> str | None:
    """Qualitative label once three or more mistakes cluster (two or more) in one category."""
    if len(triggered) < 3:
        return None
    counts: dict[str, int] = {}
    for mistake in triggered:
        definition = get_mistake_definition(mistake.code)
        if definition:
            counts[definition.category] = counts.get(definition.category, 0) + 1
    for category in ("financial", "operational", "strategic"):
        if counts.get(category, 0) >= 2:
            return PATTERN_LABELS[category]
    return None


def generate_mistake_analysis(triggered: list[MistakeTriggered], completed_stages: Iterable[int]) -> dict[str, Any]:
    """
    Summarize mistakes for the final report.

    Returns:
        Dict with total_mistakes, total_cost, worst_mistake, mistakes_avoided
        and mistake_pattern
    """
    worst: MistakeTriggered | None = None
    worst_cost = -1.0
    total_cost = 0.0
    for mistake in triggered:
        cost = calculate_mistake_total_cost(mistake)
        total_cost += cost
        if cost > worst_cost:
            worst, worst_cost = mistake, cost

    return {
        "total_mistakes": len(triggered),
        "total_cost": total_cost,
        "worst_mistake": worst,
        "mistakes_avoided": get_mistakes_avoided([m.code for m in triggered], completed_stages),
        "mistake_pattern": identify_mistake_pattern(triggered),
    }


__all__ = [
    "check_for_mistake_trigger",
    "trigger_matches",
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
    "identify_mistake_pattern",
    "generate_mistake_analysis",
]
