"""
Question, stage and response models.

Questions are immutable reference data loaded from JSON. Responses are
discriminated on ``type`` so a payload can be validated against the
question it answers before anything is scored.
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from warroom.core.exceptions import ValidationError
from warroom.core.levels import CompetencyLevel
from warroom.core.stages import STAGE_ORDER, StageName


class QuestionType(str, Enum):
    """Types of assessment questions."""

    TEXT = "text"
    CHOICE = "choice"
    SCENARIO = "scenario"
    BUDGET = "budget"
    CALCULATION = "calculation"
    SLIDER = "slider"
    REFLECTION = "reflection"
    OUTCOME = "outcome"
    AI_GENERATED = "ai_generated"

    @property
    def is_free_text(self) -> bool:
        return self in (QuestionType.TEXT, QuestionType.REFLECTION, QuestionType.AI_GENERATED)

    @property
    def has_options(self) -> bool:
        return self in (QuestionType.CHOICE, QuestionType.SCENARIO)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# =============================================================================
# Branch Conditions
# =============================================================================

Operator = Literal["<", "<=", ">", ">=", "==", "!="]


class PreviousAnswerCondition(_Frozen):
    """Matches when an earlier question was answered with one of ``answer_ids``."""

    type: Literal["previous_answer"] = "previous_answer"
    question_id: str
    answer_ids: list[str]


class StateThresholdCondition(_Frozen):
    """Compares a numeric state variable (e.g. ``financial.runway_months``) to a constant."""

    type: Literal["state_threshold"] = "state_threshold"
    path: str
    operator: Operator
    value: float


class MistakeTriggeredCondition(_Frozen):
    type: Literal["mistake_triggered"] = "mistake_triggered"
    mistake_code: str


class CompetencyLevelCondition(_Frozen):
    """Matches when a competency, scored over responses so far, reaches ``min_level``."""

    type: Literal["competency_level"] = "competency_level"
    competency_code: str
    min_level: CompetencyLevel


Condition = Annotated[
    Union[
        PreviousAnswerCondition,
        StateThresholdCondition,
        MistakeTriggeredCondition,
        CompetencyLevelCondition,
    ],
    Field(discriminator="type"),
]


class BranchRule(_Frozen):
    """If ``condition`` holds, jump to ``target``."""

    condition: Condition
    target: str


# =============================================================================
# Question Parts
# =============================================================================


class QuestionOption(_Frozen):
    id: str
    text: str
    points: float = 0.0
    state_impact: dict[str, Any] = Field(default_factory=dict)
    triggers_mistake: str | None = None
    insight: str | None = None
    warning: str | None = None


class BudgetCategory(_Frozen):
    id: str
    name: str
    ideal_min: float
    ideal_max: float
    scoring_weight: float = 1.0

    @model_validator(mode="after")
    def _check_band(self) -> BudgetCategory:
        if self.ideal_min > self.ideal_max:
            raise ValueError(f"Budget category {self.id}: ideal_min > ideal_max")
        return self


class CalculationSpec(_Frozen):
    """
    Expected answer for a calculation question.

    Either a fixed ``[expected_min, expected_max]`` range, or a ``formula``
    evaluated over state variables plus ``variables`` with a relative
    ``tolerance`` on each side.
    """

    formula: str | None = None
    variables: dict[str, float] = Field(default_factory=dict)
    expected_min: float | None = None
    expected_max: float | None = None
    tolerance: float = 0.05
    unit: str | None = None

    @model_validator(mode="after")
    def _check_source(self) -> CalculationSpec:
        if self.formula is None and (self.expected_min is None or self.expected_max is None):
            raise ValueError("Calculation needs a formula or an expected range")
        return self


class SliderSpec(_Frozen):
    min: float = 0.0
    max: float = 100.0
    step: float = 1.0
    ideal_min: float
    ideal_max: float
    unit: str | None = None


class Question(_Frozen):
    """A single assessment question. Immutable after load."""

    id: str
    type: QuestionType
    stage: int
    order: int
    title: str | None = None
    text: str
    help_text: str | None = None
    scenario_context: str | None = None

    options: list[QuestionOption] = Field(default_factory=list)
    rubric: str | None = None
    ai_evaluation_hints: list[str] = Field(default_factory=list)
    budget_categories: list[BudgetCategory] = Field(default_factory=list)
    total_budget: float | None = None
    calculation: CalculationSpec | None = None
    slider: SliderSpec | None = None

    # Applied on any answer, on top of the chosen option's impact
    state_impact: dict[str, Any] = Field(default_factory=dict)
    # Business context field a free-text answer is stored under
    context_field: str | None = None

    condition: Condition | None = None
    branch_logic: list[BranchRule] = Field(default_factory=list)
    follow_up: str | None = None

    competencies: list[str] = Field(default_factory=list)
    max_points: float = 10.0

    @field_validator("stage")
    @classmethod
    def _known_stage(cls, stage: int) -> int:
        if stage not in STAGE_ORDER:
            raise ValueError(f"Unknown stage {stage}")
        return stage

    @model_validator(mode="after")
    def _check_shape(self) -> Question:
        if self.type.has_options and not self.options:
            raise ValueError(f"Question {self.id} ({self.type.value}) needs options")
        if self.type == QuestionType.BUDGET and not self.budget_categories:
            raise ValueError(f"Question {self.id} needs budget categories")
        if self.type == QuestionType.CALCULATION and self.calculation is None:
            raise ValueError(f"Question {self.id} needs a calculation spec")
        if self.type == QuestionType.SLIDER and self.slider is None:
            raise ValueError(f"Question {self.id} needs a slider spec")
        return self

    def get_option(self, option_id: str) -> QuestionOption | None:
        return next((o for o in self.options if o.id == option_id), None)


class StageConfig(_Frozen):
    """One stage: metadata plus its ordered questions."""

    stage: int
    name: StageName
    title: str
    goal: str
    competencies: list[str] = Field(default_factory=list)
    questions: list[Question]

    @model_validator(mode="after")
    def _check_questions(self) -> StageConfig:
        ids = [q.id for q in self.questions]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Stage {self.stage} has duplicate question ids")
        for q in self.questions:
            if q.stage != self.stage:
                raise ValueError(f"Question {q.id} is tagged stage {q.stage}, listed in {self.stage}")
            for rule in q.branch_logic:
                if rule.target not in ids:
                    raise ValueError(f"Question {q.id} branches to unknown question {rule.target}")
        orders = [q.order for q in self.questions]
        if orders != sorted(orders):
            raise ValueError(f"Stage {self.stage} questions are not in order")
        return self

    @property
    def question_ids(self) -> list[str]:
        return [q.id for q in self.questions]


# =============================================================================
# Responses
# =============================================================================


class TextResponse(_Frozen):
    type: Literal["text", "reflection", "ai_generated"]
    value: str


class ChoiceResponse(_Frozen):
    type: Literal["choice", "scenario"]
    selected_option_id: str


class BudgetAllocation(_Frozen):
    category_id: str
    percentage: float
    amount: float | None = None


class BudgetResponse(_Frozen):
    type: Literal["budget"] = "budget"
    allocations: list[BudgetAllocation]

    def percentage_for(self, category_id: str) -> float | None:
        return next((a.percentage for a in self.allocations if a.category_id == category_id), None)


class CalculationResponse(_Frozen):
    type: Literal["calculation"] = "calculation"
    result: float


class SliderResponse(_Frozen):
    type: Literal["slider"] = "slider"
    value: float


class OutcomeResponse(_Frozen):
    type: Literal["outcome"] = "outcome"
    acknowledged: bool = True


ResponseData = Annotated[
    Union[TextResponse, ChoiceResponse, BudgetResponse, CalculationResponse, SliderResponse, OutcomeResponse],
    Field(discriminator="type"),
]

_response_adapter: TypeAdapter[Any] = TypeAdapter(ResponseData)


def parse_response_data(payload: Any) -> ResponseData:
    """
    Validate a raw response payload.

    Raises:
        ValidationError: Missing or unknown ``type`` discriminator, or a body
            that does not match it
    """
    if isinstance(payload, BaseModel):
        return payload
    try:
        return _response_adapter.validate_python(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed response payload: {e}") from e


def response_value(data: ResponseData) -> Any:
    """The answer's primary value (option id, text, number...), for matching and logs."""
    if isinstance(data, ChoiceResponse):
        return data.selected_option_id
    if isinstance(data, (TextResponse, SliderResponse)):
        return data.value
    if isinstance(data, CalculationResponse):
        return data.result
    if isinstance(data, BudgetResponse):
        return {a.category_id: a.percentage for a in data.allocations}
    return data.acknowledged


class QuestionResponse(_Frozen):
    """A scored answer. Created once per question per assessment; never mutated."""

    assessment_id: str
    question_id: str
    stage_number: int
    response_data: ResponseData
    points_awarded: float = 0.0
    max_points: float = 10.0
    competencies_assessed: list[str] = Field(default_factory=list)
    ai_feedback: str | None = None
    needs_manual_review: bool = False
    answered_at: datetime | None = None

    @field_validator("points_awarded", "max_points")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value) or value < 0:
            raise ValueError("points must be finite and non-negative")
        return value
