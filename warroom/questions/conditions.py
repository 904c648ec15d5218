"""
Branch and show-condition matcher.

Each condition variant is a pure predicate over (responses, state). A
condition that refers to a response that does not exist yet is a soft "no
match": it is logged and evaluates to False.
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Sequence

from loguru import logger

from warroom.questions.models import (
    ChoiceResponse,
    CompetencyLevelCondition,
    Condition,
    MistakeTriggeredCondition,
    PreviousAnswerCondition,
    QuestionResponse,
    StateThresholdCondition,
    response_value,
)
from warroom.state.models import SimulationState

COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


def find_response(responses: Sequence[QuestionResponse], question_id: str) -> QuestionResponse | None:
    return next((r for r in responses if r.question_id == question_id), None)


def _previous_answer(condition: PreviousAnswerCondition, responses, state) -> bool:
    response = find_response(responses, condition.question_id)
    if response is None:
        logger.info(f"Condition refers to unanswered question {condition.question_id}; no match")
        return False
    data = response.response_data
    if isinstance(data, ChoiceResponse):
        return data.selected_option_id in condition.answer_ids
    return str(response_value(data)) in condition.answer_ids


def _state_threshold(condition: StateThresholdCondition, responses, state) -> bool:
    variables = state.numeric_variables()
    if condition.path not in variables:
        logger.warning(f"Condition refers to unknown state variable {condition.path}; no match")
        return False
    return COMPARATORS[condition.operator](variables[condition.path], condition.value)


def _mistake_triggered(condition: MistakeTriggeredCondition, responses, state) -> bool:
    return state.has_mistake(condition.mistake_code)


def _competency_level(condition: CompetencyLevelCondition, responses, state) -> bool:
    # scoring imports question models; import here to keep the packages acyclic
    from warroom.scoring.competencies import get_competency_definition
    from warroom.scoring.engine import calculate_competency_score

    if get_competency_definition(condition.competency_code) is None:
        logger.warning(f"Condition refers to unknown competency {condition.competency_code}; no match")
        return False
    if not any(condition.competency_code in r.competencies_assessed for r in responses):
        logger.info(f"No responses assess {condition.competency_code} yet; no match")
        return False
    score = calculate_competency_score("", condition.competency_code, responses)
    return score.level_achieved.ordinal >= condition.min_level.ordinal


_MATCHERS: dict[type, Callable[..., bool]] = {
    PreviousAnswerCondition: _previous_answer,
    StateThresholdCondition: _state_threshold,
    MistakeTriggeredCondition: _mistake_triggered,
    CompetencyLevelCondition: _competency_level,
}


def evaluate_condition(
    condition: Condition,
    responses: Sequence[QuestionResponse],
    state: SimulationState,
) -> bool:
    """
    Evaluate one condition.

    Args:
        condition: Any condition variant
        responses: Responses so far in this assessment
        state: State after the latest response's consequences

    Returns:
        True if the condition holds
    """
    return _MATCHERS[type(condition)](condition, responses, state)
