"""
Assessment orchestrator.

Runs the per-answer control flow and the stage state machine over an
explicit AssessmentRecord:

    submit_response:
        validate question -> score -> detect mistake -> apply consequences
        -> log decision -> resolve next question from the updated state

    complete_stage:
        require every reachable question answered -> stage competency scores
        -> compounding for the entering stage -> snapshot -> advance / COMPLETE

Every function takes a record and returns a new one. Loading and saving
records is the caller's job (see warroom.assessment.store).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from warroom.consequences.engine import (
    apply_compounding_consequences,
    apply_mistake_immediate_consequence,
    check_critical_condition,
    generate_consequence_narrative,
    get_consequence_summary,
    project_future_impact,
)
from warroom.core.exceptions import StateConsistencyError
from warroom.core.stages import FIRST_STAGE, StageName
from warroom.grading.base import Grader
from warroom.mistakes.detector import (
    check_for_mistake_trigger,
    create_mistake_triggered,
    generate_mistake_analysis,
    get_mistake_definition,
)
from warroom.mistakes.models import MistakeTriggered
from warroom.questions.engine import (
    get_first_question_of_stage,
    get_next_question,
    get_next_stage,
    get_stage_progress,
    require_question,
    stage_responses,
    unanswered_reachable_questions,
)
from warroom.questions.models import (
    ChoiceResponse,
    Question,
    QuestionResponse,
    TextResponse,
    parse_response_data,
    response_value,
)
from warroom.scoring.competencies import CompetencyScore
from warroom.scoring.engine import (
    calculate_all_competency_scores,
    calculate_overall_score,
    generate_competency_feedback,
    get_competency_rankings,
    get_radar_chart_data,
)
from warroom.scoring.strategies import score_response
from warroom.state.manager import (
    apply_consequence,
    create_initial_state,
    get_state_summary,
    log_decision,
    set_business_context,
    trigger_mistake,
)
from warroom.state.models import DecisionLogEntry, SimulationState


class AssessmentStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class StageSnapshot(BaseModel):
    """State and scores captured when a stage completes."""

    model_config = ConfigDict(extra="forbid", ser_json_inf_nan="constants")

    stage: int
    state: SimulationState
    competency_scores: list[CompetencyScore] = Field(default_factory=list)
    compounded_cost: float = 0.0
    completed_at: datetime | None = None


class AssessmentRecord(BaseModel):
    """Everything persisted for one assessment."""

    model_config = ConfigDict(extra="forbid", ser_json_inf_nan="constants")

    assessment_id: str
    status: AssessmentStatus = AssessmentStatus.IN_PROGRESS
    current_stage: int | None = FIRST_STAGE
    current_question_id: str | None = None
    state: SimulationState = Field(default_factory=SimulationState)
    responses: list[QuestionResponse] = Field(default_factory=list)
    mistakes: list[MistakeTriggered] = Field(default_factory=list)
    stage_snapshots: list[StageSnapshot] = Field(default_factory=list)
    created_at: datetime | None = None

    @property
    def is_complete(self) -> bool:
        return self.status == AssessmentStatus.COMPLETE

    @property
    def completed_stages(self) -> list[int]:
        return [s.stage for s in self.stage_snapshots]

    def answered(self, question_id: str) -> bool:
        return any(r.question_id == question_id for r in self.responses)


@dataclass
class SubmissionResult:
    """What happened when one answer was submitted."""

    response: QuestionResponse
    mistake_triggered: str | None = None
    applied_effects: dict[str, Any] = field(default_factory=dict)
    next_question: Question | None = None
    feedback: str | None = None

    @property
    def stage_complete(self) -> bool:
        return self.next_question is None


@dataclass
class StageTransition:
    """What happened when a stage was completed."""

    completed_stage: int
    next_stage: int | None
    competency_scores: list[CompetencyScore]
    compounded_cost: float = 0.0
    compounded: list[tuple[str, int, float]] = field(default_factory=list)
    narrative: str = ""
    critical: dict[str, Any] = field(default_factory=dict)


def _require_in_progress(record: AssessmentRecord) -> int:
    if record.is_complete or record.current_stage is None:
        raise StateConsistencyError(f"Assessment {record.assessment_id} is complete")
    return record.current_stage


def start_assessment(assessment_id: str | None = None, now: datetime | None = None) -> AssessmentRecord:
    """New assessment at the first stage with the canonical initial state."""
    state = create_initial_state()
    first = get_first_question_of_stage(FIRST_STAGE, state)
    record = AssessmentRecord(
        assessment_id=assessment_id or uuid.uuid4().hex,
        current_stage=FIRST_STAGE,
        current_question_id=first.id if first else None,
        state=state,
        created_at=now,
    )
    logger.info(f"Started assessment {record.assessment_id}")
    return record


def get_current_question(record: AssessmentRecord) -> Question | None:
    if record.current_question_id is None:
        return None
    return require_question(record.current_question_id)


def _decision_text(question: Question, response: QuestionResponse) -> str:
    data = response.response_data
    if isinstance(data, ChoiceResponse):
        option = question.get_option(data.selected_option_id)
        return f"{data.selected_option_id}: {option.text}" if option else data.selected_option_id
    return str(response_value(data))


def submit_response(
    record: AssessmentRecord,
    question_id: str,
    payload: Any,
    grader: Grader | None = None,
    now: datetime | None = None,
) -> tuple[AssessmentRecord, SubmissionResult]:
    """
    Submit one answer.

    Args:
        record: Current assessment record
        question_id: Question being answered
        payload: Raw response payload (dict with a ``type`` discriminator)
        grader: AI grader for free-text answers (fallback score when None)
        now: Timestamp recorded on the response and decision log

    Returns:
        (updated record, SubmissionResult)

    Raises:
        StateConsistencyError: Assessment complete, question in another stage,
            already answered, or not the current question
        NotFoundError: Unknown question
        ValidationError: Malformed payload or type mismatch
    """
    stage = _require_in_progress(record)
    question = require_question(question_id)

    if question.stage != stage:
        raise StateConsistencyError(f"Question {question_id} belongs to stage {question.stage}, current stage is {stage}")
    if record.answered(question_id):
        raise StateConsistencyError(f"Question {question_id} already answered")
    if record.current_question_id is None:
        raise StateConsistencyError(f"Stage {stage} has no questions left; call complete_stage before answering {question_id}")
    if question_id != record.current_question_id:
        raise StateConsistencyError(f"Expected an answer to {record.current_question_id}, got {question_id}")

    data = parse_response_data(payload)
    outcome = score_response(question, data, record.state, grader)

    response = QuestionResponse(
        assessment_id=record.assessment_id,
        question_id=question_id,
        stage_number=stage,
        response_data=data,
        points_awarded=outcome.points,
        max_points=outcome.max_points,
        competencies_assessed=list(question.competencies),
        ai_feedback=outcome.feedback if question.type.is_free_text else None,
        needs_manual_review=outcome.needs_manual_review,
        answered_at=now,
    )

    # Decision consequences
    state = apply_consequence(record.state, question.state_impact)
    if isinstance(data, ChoiceResponse):
        option = question.get_option(data.selected_option_id)
        state = apply_consequence(state, option.state_impact)
    if question.context_field and isinstance(data, TextResponse):
        state = set_business_context(state, **{question.context_field: data.value})

    # Mistakes
    mistakes = list(record.mistakes)
    code = check_for_mistake_trigger(question_id, data, state.mistakes_triggered)
    applied: dict[str, Any] = {}
    consequence = None
    if code is not None:
        state, applied = apply_mistake_immediate_consequence(state, code)
        state = trigger_mistake(state, code)
        mistakes.append(create_mistake_triggered(record.assessment_id, code, stage, question_id, data))
        definition = get_mistake_definition(code)
        consequence = definition.name if definition else code
        logger.info(f"Assessment {record.assessment_id}: mistake {code} triggered by {question_id}")

    state = log_decision(
        state,
        DecisionLogEntry(
            question_id=question_id,
            stage_number=stage,
            decision=_decision_text(question, response),
            consequence=consequence,
            points_awarded=outcome.points,
        ),
        timestamp=now,
    )

    responses = [*record.responses, response]
    next_question = get_next_question(question_id, stage, responses, state)

    updated = record.model_copy(update={
        "state": state,
        "responses": responses,
        "mistakes": mistakes,
        "current_question_id": next_question.id if next_question else None,
    })
    return updated, SubmissionResult(
        response=response,
        mistake_triggered=code,
        applied_effects=applied,
        next_question=next_question,
        feedback=outcome.feedback,
    )


def complete_stage(record: AssessmentRecord, now: datetime | None = None) -> tuple[AssessmentRecord, StageTransition]:
    """
    Close the current stage and advance.

    Raises:
        StateConsistencyError: Assessment complete, or reachable questions
            in the stage are still unanswered
    """
    stage = _require_in_progress(record)
    remaining = unanswered_reachable_questions(stage, record.responses, record.state)
    if remaining:
        raise StateConsistencyError(f"Stage {stage} has unanswered questions: {', '.join(remaining)}")

    scores = calculate_all_competency_scores(record.assessment_id, stage_responses(stage, record.responses))
    next_stage = get_next_stage(stage)

    state = record.state
    mistakes = list(record.mistakes)
    cost = 0.0
    compounded: list[tuple[str, int, float]] = []
    if next_stage is not None:
        result = apply_compounding_consequences(state, mistakes, next_stage)
        state, mistakes, cost, compounded = (
            result.new_state, result.updated_mistakes, result.total_compounded_cost, result.applied
        )

    snapshot = StageSnapshot(stage=stage, state=state, competency_scores=scores, compounded_cost=cost, completed_at=now)
    update: dict[str, Any] = {
        "state": state,
        "mistakes": mistakes,
        "stage_snapshots": [*record.stage_snapshots, snapshot],
    }
    if next_stage is None:
        update.update(status=AssessmentStatus.COMPLETE, current_stage=None, current_question_id=None)
        logger.info(f"Assessment {record.assessment_id} complete")
    else:
        first = get_first_question_of_stage(next_stage, state, record.responses)
        update.update(current_stage=next_stage, current_question_id=first.id if first else None)
        logger.info(
            f"Assessment {record.assessment_id}: stage {StageName.for_stage(stage).value} -> "
            f"{StageName.for_stage(next_stage).value} (compounded ${cost:,.0f})"
        )

    updated = record.model_copy(update=update)
    return updated, StageTransition(
        completed_stage=stage,
        next_stage=next_stage,
        competency_scores=scores,
        compounded_cost=cost,
        compounded=compounded,
        narrative=generate_consequence_narrative(mistakes, next_stage) if next_stage is not None else "",
        critical=check_critical_condition(state),
    )


def get_progress(record: AssessmentRecord) -> dict[str, int]:
    """Progress through the current stage (all zeros once complete)."""
    if record.current_stage is None:
        return {"answered": 0, "total": 0, "percentage": 100}
    return get_stage_progress(record.current_stage, record.responses, record.state)


def build_final_report(record: AssessmentRecord) -> dict[str, Any]:
    """Overall score, rankings, per-competency feedback and mistake analysis."""
    scores = calculate_all_competency_scores(record.assessment_id, record.responses)
    report: dict[str, Any] = {
        "assessment_id": record.assessment_id,
        "status": record.status.value,
        "overall": calculate_overall_score(scores),
        "rankings": get_competency_rankings(scores),
        "competencies": [
            {"score": score, "feedback": generate_competency_feedback(score)} for score in scores
        ],
        "radar": get_radar_chart_data(scores),
        "mistakes": generate_mistake_analysis(record.mistakes, record.completed_stages),
        "consequences": get_consequence_summary(record.mistakes),
        "critical": check_critical_condition(record.state),
        "state_summary": get_state_summary(record.state),
        "manual_review": [r.question_id for r in record.responses if r.needs_manual_review],
    }
    if record.current_stage is not None:
        report["projection"] = project_future_impact(record.mistakes, record.current_stage)
    return report
