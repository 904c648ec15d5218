"""
QuestionEngine - stage and question sequencing.

Within a stage, the next question is resolved from the question just
answered:

1. its ``branch_logic`` rules are evaluated in declaration order and the
   first match jumps to its target;
2. otherwise the engine advances to the next unanswered question after it
   in static order whose show-condition holds;
3. None means nothing remains on the taken path and the stage is complete.

Conditions are evaluated against the state passed in, which must already
include the consequences of the response just submitted.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from loguru import logger

from warroom.core.exceptions import NotFoundError
from warroom.core.levels import percentage
from warroom.core.stages import STAGE_ORDER, StageName
from warroom.core.stages import get_next_stage as _next_stage
from warroom.questions.bank import load_stage, question_index
from warroom.questions.conditions import evaluate_condition
from warroom.questions.models import Question, QuestionResponse, StageConfig
from warroom.state.models import SimulationState


# =============================================================================
# Lookups
# =============================================================================


def get_stage_config(stage: int) -> StageConfig:
    """
    Immutable definition of a stage with its ordered questions.

    Raises:
        NotFoundError: Unknown stage
    """
    return load_stage(stage)


def get_stage_questions(stage: int) -> list[Question]:
    return list(load_stage(stage).questions)


def get_question_by_id(question_id: str) -> Question | None:
    return question_index().get(question_id)


def require_question(question_id: str) -> Question:
    question = get_question_by_id(question_id)
    if question is None:
        raise NotFoundError(f"Question {question_id} not found")
    return question


def get_all_stages() -> list[dict[str, Any]]:
    """Number, name and title of every stage, in order."""
    return [
        {"number": stage, "name": StageName.for_stage(stage).value, "title": load_stage(stage).title}
        for stage in STAGE_ORDER
    ]


def get_next_stage(stage: int) -> int | None:
    """Stage after ``stage``, or None after the final stage."""
    return _next_stage(stage)


# =============================================================================
# Sequencing
# =============================================================================


def stage_responses(stage: int, responses: Sequence[QuestionResponse]) -> list[QuestionResponse]:
    """Responses tagged with ``stage``, in submission order."""
    return [r for r in responses if r.stage_number == stage]


def is_question_visible(question: Question, responses: Sequence[QuestionResponse], state: SimulationState) -> bool:
    """Whether a question's show-condition holds (always, when it has none)."""
    return question.condition is None or evaluate_condition(question.condition, responses, state)


def _linear_next(
    config: StageConfig,
    start: int,
    skip: set[str],
    responses: Sequence[QuestionResponse],
    state: SimulationState,
) -> Question | None:
    for question in config.questions[start:]:
        if question.id in skip:
            continue
        if is_question_visible(question, responses, state):
            return question
        logger.debug(f"Skipping {question.id}: show condition not met")
    return None


def get_first_question_of_stage(
    stage: int,
    state: SimulationState,
    responses: Sequence[QuestionResponse] = (),
) -> Question | None:
    """First unanswered question of a stage whose show-condition holds."""
    config = get_stage_config(stage)
    answered = {r.question_id for r in stage_responses(stage, responses)}
    return _linear_next(config, 0, answered, responses, state)


def get_next_question(
    current_question_id: str | None,
    stage: int,
    responses: Sequence[QuestionResponse],
    state: SimulationState,
) -> Question | None:
    """
    Resolve the question after ``current_question_id``.

    Args:
        current_question_id: Question just answered (None to start the stage)
        stage: Current stage
        responses: All responses so far, including the one just submitted
        state: State after the just-submitted response's consequences

    Returns:
        Next question, or None when no question remains on the taken path
    """
    config = get_stage_config(stage)
    answered = {r.question_id for r in stage_responses(stage, responses)}
    ids = config.question_ids

    if current_question_id is None or current_question_id not in ids:
        return _linear_next(config, 0, answered, responses, state)

    index = ids.index(current_question_id)
    current = config.questions[index]

    for rule in current.branch_logic:
        if not evaluate_condition(rule.condition, responses, state):
            continue
        if rule.target in answered:
            logger.debug(f"Branch {current.id} -> {rule.target} already answered; advancing linearly")
            break
        logger.debug(f"Branch taken: {current.id} -> {rule.target} ({rule.condition.type})")
        return config.questions[ids.index(rule.target)]

    return _linear_next(config, index + 1, answered, responses, state)


def _remaining_path(
    config: StageConfig,
    stage_answers: list[QuestionResponse],
    responses: Sequence[QuestionResponse],
    state: SimulationState,
) -> list[Question]:
    """
    Questions still reachable on the taken path.

    Starts from the resolved next question, then follows static order and
    show-conditions. Branches of unanswered questions cannot be known yet.
    """
    answered = {r.question_id for r in stage_answers}
    last_id = stage_answers[-1].question_id if stage_answers else None
    upcoming = get_next_question(last_id, config.stage, responses, state)

    path: list[Question] = []
    seen = set(answered)
    while upcoming is not None:
        path.append(upcoming)
        seen.add(upcoming.id)
        upcoming = _linear_next(config, config.question_ids.index(upcoming.id) + 1, seen, responses, state)
    return path


def get_stage_progress(
    stage: int,
    responses: Sequence[QuestionResponse],
    state: SimulationState,
) -> dict[str, int]:
    """
    Progress through a stage.

    ``total`` counts questions reachable on the path actually taken
    (answered plus still reachable), so questions skipped by a branch or a
    failed show-condition do not count.

    Returns:
        Dict with answered, total and percentage
    """
    config = get_stage_config(stage)
    stage_answers = stage_responses(stage, responses)
    answered = len(stage_answers)
    total = answered + len(_remaining_path(config, stage_answers, responses, state))
    return {
        "answered": answered,
        "total": total,
        "percentage": percentage(answered, total) if total else 100,
    }


def is_stage_complete(
    stage: int,
    responses: Sequence[QuestionResponse],
    state: SimulationState,
) -> bool:
    """True when no question remains after the most recent answer in the stage."""
    stage_answers = stage_responses(stage, responses)
    last_id = stage_answers[-1].question_id if stage_answers else None
    return get_next_question(last_id, stage, responses, state) is None


def unanswered_reachable_questions(
    stage: int,
    responses: Sequence[QuestionResponse],
    state: SimulationState,
) -> list[str]:
    """Ids of questions still reachable in the stage (empty when complete)."""
    config = get_stage_config(stage)
    return [q.id for q in _remaining_path(config, stage_responses(stage, responses), responses, state)]
