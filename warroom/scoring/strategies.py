"""
Per-question-type scoring strategies.

Each question type maps to one ScoringStrategy through StrategyRegistry.
The pure scoring functions (score_budget_allocation, ...) are usable on
their own; the strategies adapt them to a Question and its response.

Every function here returns finite, non-negative points: NaN and infinities
in an answer score the minimum for that part rather than entering the
ledger.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from loguru import logger

from warroom.core.exceptions import ExternalServiceError, ValidationError
from warroom.core.expressions import evaluate
from warroom.grading.base import Grader, fallback_grade
from warroom.questions.models import (
    BudgetCategory,
    BudgetResponse,
    CalculationResponse,
    CalculationSpec,
    ChoiceResponse,
    OutcomeResponse,
    Question,
    QuestionOption,
    QuestionType,
    ResponseData,
    SliderResponse,
    SliderSpec,
    TextResponse,
)
from warroom.state.models import SimulationState

# Distance (percentage points) outside the ideal band at which a budget category scores zero
BUDGET_MAX_DISTANCE = 50.0
BUDGET_WEIGHT_POINTS = 10.0


@dataclass
class ScoreOutcome:
    """Points for one response plus grading notes."""

    points: float
    max_points: float
    feedback: str | None = None
    needs_manual_review: bool = False


# =============================================================================
# Pure Scoring Functions
# =============================================================================


def _finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def score_multiple_choice_response(selected_id: str, options: Iterable[QuestionOption]) -> float:
    """The selected option's points, or 0 if no option matches."""
    for option in options:
        if option.id == selected_id:
            return option.points if _finite(option.points) else 0.0
    return 0.0


def score_budget_allocation(
    allocations: Mapping[str, float],
    ideal_ranges: Iterable[BudgetCategory],
    max_points: float = 10.0,
) -> float:
    """
    Score a budget split against ideal bands.

    Each category earns ``scoring_weight * 10`` inside ``[ideal_min,
    ideal_max]``; outside, the earned share decays linearly with distance
    from the nearest band edge, reaching zero 50 percentage points away.
    The weighted sum is normalized to ``max_points``.

    Args:
        allocations: category id -> allocated percentage
        ideal_ranges: Budget categories with their ideal bands
        max_points: Points for a perfect allocation

    Returns:
        Points in [0, max_points]
    """
    earned = 0.0
    possible = 0.0
    for category in ideal_ranges:
        weight = category.scoring_weight * BUDGET_WEIGHT_POINTS
        possible += weight
        allocated = allocations.get(category.id)
        if not _finite(allocated):
            continue
        if category.ideal_min <= allocated <= category.ideal_max:
            earned += weight
            continue
        distance = category.ideal_min - allocated if allocated < category.ideal_min else allocated - category.ideal_max
        earned += weight * max(0.0, 1.0 - distance / BUDGET_MAX_DISTANCE)

    if possible <= 0:
        return 0.0
    return round(earned / possible * max_points, 2)


def score_calculation_response(result: float, expected_min: float, expected_max: float, max_points: float = 10.0) -> float:
    """
    Full points inside the expected range, half within twice the half-width
    of the midpoint, a quarter otherwise. Non-finite answers score 0.
    """
    if not _finite(result):
        return 0.0
    if expected_min <= result <= expected_max:
        return max_points
    midpoint = (expected_min + expected_max) / 2
    half_width = (expected_max - expected_min) / 2
    if abs(result - midpoint) <= half_width * 2:
        return round(max_points * 0.5, 2)
    return round(max_points * 0.25, 2)


def score_slider_response(value: float, spec: SliderSpec, max_points: float = 10.0) -> float:
    """Full points inside the ideal band, decaying to 0 half a slider-width away."""
    if not _finite(value):
        return 0.0
    if spec.ideal_min <= value <= spec.ideal_max:
        return max_points
    distance = spec.ideal_min - value if value < spec.ideal_min else value - spec.ideal_max
    reach = (spec.max - spec.min) / 2 or 1.0
    return round(max_points * max(0.0, 1.0 - distance / reach), 2)


def expected_calculation_range(spec: CalculationSpec, state: SimulationState | None) -> tuple[float, float]:
    """
    Expected answer range for a calculation question.

    Raises:
        ExpressionError: The formula cannot be evaluated against this state
    """
    if spec.formula is None:
        return spec.expected_min, spec.expected_max
    variables = state.numeric_variables() if state is not None else {}
    variables.update(spec.variables)
    value = evaluate(spec.formula, variables)
    margin = abs(value) * spec.tolerance if value else spec.tolerance
    return value - margin, value + margin


# =============================================================================
# Strategy Registry
# =============================================================================


class StrategyRegistry:
    """
    Registry for scoring strategies, keyed by question type.

    Example:
        @StrategyRegistry.register(QuestionType.BUDGET)
        class BudgetStrategy(ScoringStrategy):
            ...

        strategy = StrategyRegistry.for_question(question)
    """

    _strategies: ClassVar[dict[QuestionType, type[ScoringStrategy]]] = {}

    @classmethod
    def register(cls, *question_types: QuestionType):
        """Decorator registering a strategy for one or more question types."""

        def decorator(strategy_class: type[ScoringStrategy]):
            for question_type in question_types:
                cls._strategies[question_type] = strategy_class
            logger.debug(
                f"Registered scoring strategy: {[t.value for t in question_types]} -> {strategy_class.__name__}"
            )
            return strategy_class

        return decorator

    @classmethod
    def get(cls, question_type: QuestionType) -> type[ScoringStrategy]:
        if question_type not in cls._strategies:
            raise KeyError(f"No scoring strategy registered for type: {question_type.value}")
        return cls._strategies[question_type]

    @classmethod
    def for_question(cls, question: Question, grader: Grader | None = None) -> ScoringStrategy:
        return cls.get(question.type)(grader)

    @classmethod
    def list_strategies(cls) -> dict[str, type[ScoringStrategy]]:
        return {t.value: s for t, s in cls._strategies.items()}


class ScoringStrategy(ABC):
    """Scores one response to one question."""

    name: ClassVar[str] = "base_strategy"
    response_class: ClassVar[type] = object

    def __init__(self, grader: Grader | None = None):
        self.grader = grader

    def check(self, question: Question, data: ResponseData) -> None:
        """
        Raises:
            ValidationError: Response type does not match the question type
        """
        if not isinstance(data, self.response_class) or data.type != question.type.value:
            raise ValidationError(
                f"Question {question.id} expects a '{question.type.value}' response, got '{data.type}'"
            )

    @abstractmethod
    def score(self, question: Question, data: ResponseData, state: SimulationState | None = None) -> ScoreOutcome:
        ...


@StrategyRegistry.register(QuestionType.CHOICE, QuestionType.SCENARIO)
class ChoiceStrategy(ScoringStrategy):
    name = "choice"
    response_class = ChoiceResponse

    def check(self, question: Question, data: ResponseData) -> None:
        super().check(question, data)
        if question.get_option(data.selected_option_id) is None:
            raise ValidationError(f"Question {question.id} has no option '{data.selected_option_id}'")

    def score(self, question, data, state=None):
        option = question.get_option(data.selected_option_id)
        points = min(score_multiple_choice_response(data.selected_option_id, question.options), question.max_points)
        return ScoreOutcome(points=points, max_points=question.max_points, feedback=option.insight if option else None)


@StrategyRegistry.register(QuestionType.BUDGET)
class BudgetStrategy(ScoringStrategy):
    name = "budget"
    response_class = BudgetResponse

    def score(self, question, data, state=None):
        allocations = {a.category_id: a.percentage for a in data.allocations}
        points = score_budget_allocation(allocations, question.budget_categories, question.max_points)
        return ScoreOutcome(points=points, max_points=question.max_points)


@StrategyRegistry.register(QuestionType.CALCULATION)
class CalculationStrategy(ScoringStrategy):
    name = "calculation"
    response_class = CalculationResponse

    def score(self, question, data, state=None):
        try:
            low, high = expected_calculation_range(question.calculation, state)
        except ValidationError as e:
            logger.warning(f"Cannot compute expected answer for {question.id}: {e}")
            return ScoreOutcome(points=0.0, max_points=question.max_points, needs_manual_review=True)
        points = score_calculation_response(data.result, low, high, question.max_points)
        feedback = f"Expected between {low:,.2f} and {high:,.2f}"
        return ScoreOutcome(points=points, max_points=question.max_points, feedback=feedback)


@StrategyRegistry.register(QuestionType.SLIDER)
class SliderStrategy(ScoringStrategy):
    name = "slider"
    response_class = SliderResponse

    def score(self, question, data, state=None):
        points = score_slider_response(data.value, question.slider, question.max_points)
        return ScoreOutcome(points=points, max_points=question.max_points)


@StrategyRegistry.register(QuestionType.OUTCOME)
class OutcomeStrategy(ScoringStrategy):
    name = "outcome"
    response_class = OutcomeResponse

    def score(self, question, data, state=None):
        points = question.max_points if data.acknowledged else 0.0
        return ScoreOutcome(points=points, max_points=question.max_points)


@StrategyRegistry.register(QuestionType.TEXT, QuestionType.REFLECTION, QuestionType.AI_GENERATED)
class FreeTextStrategy(ScoringStrategy):
    """AI-graded free text. Grader failures degrade to the fallback score."""

    name = "free_text"
    response_class = TextResponse

    def score(self, question, data, state=None):
        if not data.value.strip():
            return ScoreOutcome(points=0.0, max_points=question.max_points, feedback="No response provided")

        if self.grader is None:
            result = fallback_grade(question.max_points)
        else:
            try:
                result = self.grader.grade(
                    question_text=question.text,
                    answer=data.value,
                    max_points=question.max_points,
                    rubric=question.rubric,
                    look_for=question.ai_evaluation_hints,
                ).clamped()
            except ExternalServiceError as e:
                logger.warning(f"AI grading failed for {question.id}, using fallback score: {e}")
                result = fallback_grade(question.max_points)

        return ScoreOutcome(
            points=result.score,
            max_points=question.max_points,
            feedback=result.feedback,
            needs_manual_review=result.needs_manual_review,
        )


def score_response(
    question: Question,
    data: ResponseData,
    state: SimulationState | None = None,
    grader: Grader | None = None,
) -> ScoreOutcome:
    """
    Validate and score a response with the strategy for its question type.

    Raises:
        ValidationError: Response does not match the question
    """
    strategy = StrategyRegistry.for_question(question, grader)
    strategy.check(question, data)
    return strategy.score(question, data, state)
