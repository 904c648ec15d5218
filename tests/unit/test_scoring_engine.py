"""
Unit tests for competency scoring and the per-type scoring strategies.
"""

import math

import pytest

from warroom.core.exceptions import NotFoundError, ValidationError
from warroom.core.levels import CompetencyLevel, percentage, round_half_up
from warroom.questions.engine import require_question
from warroom.questions.models import BudgetCategory, SliderSpec, parse_response_data
from warroom.scoring.competencies import get_all_competencies, get_competencies_for_stage
from warroom.scoring.engine import (
    calculate_all_competency_scores,
    calculate_competency_score,
    calculate_overall_score,
    generate_competency_feedback,
    get_competency_rankings,
    get_radar_chart_data,
)
from warroom.scoring.strategies import (
    StrategyRegistry,
    score_budget_allocation,
    score_calculation_response,
    score_multiple_choice_response,
    score_response,
    score_slider_response,
)
from warroom.state.manager import apply_consequence


class TestLevels:
    """Tests for level buckets and rounding."""

    @pytest.mark.parametrize("pct,level", [
        (0, CompetencyLevel.L0),
        (39, CompetencyLevel.L0),
        (40, CompetencyLevel.L1),
        (74, CompetencyLevel.L1),
        (75, CompetencyLevel.L2),
        (100, CompetencyLevel.L2),
    ])
    def test_from_percentage(self, pct, level):
        assert CompetencyLevel.from_percentage(pct) == level

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(74.5) == 75
        assert round_half_up(74.4) == 74

    def test_percentage_zero_max(self):
        assert percentage(5, 0) == 0


class TestCompetencyScore:
    """Tests for calculate_competency_score."""

    def test_sums_points(self, make_response):
        """(8/10, 6/10) gives 14/20 = 70%, which is L1."""
        responses = [
            make_response("Q-0-2", {"type": "choice", "selected_option_id": "B"}, points=8, competencies=["C6"]),
            make_response("Q-0-4", {"type": "choice", "selected_option_id": "B"}, points=6, competencies=["C6"]),
        ]
        score = calculate_competency_score("a1", "C6", responses)
        assert score.current_score == 14
        assert score.max_possible_score == 20
        assert score.percentage_score == 70
        assert score.level_achieved == CompetencyLevel.L1
        assert score.name == "Financial Acumen"

    def test_no_evidence(self):
        score = calculate_competency_score("a1", "C6", [])
        assert score.max_possible_score == 0
        assert score.percentage_score == 0
        assert score.level_achieved == CompetencyLevel.L0
        assert score.evidence == []

    def test_order_independent(self, make_response):
        """Shuffled response lists produce identical scores."""
        responses = [
            make_response("Q-0-2", {"type": "choice", "selected_option_id": "B"}, points=8),
            make_response("Q-0-3", {"type": "calculation", "result": 12.5}, points=5),
            make_response("Q-2-4", {"type": "calculation", "result": 3}, points=10),
        ]
        forward = calculate_competency_score("a1", "C6", responses)
        backward = calculate_competency_score("a1", "C6", list(reversed(responses)))
        assert forward == backward
        assert [e.question_id for e in forward.evidence] == ["Q-0-2", "Q-0-3", "Q-2-4"]

    def test_evidence_and_stage_scores(self, make_response):
        responses = [
            make_response("Q-0-3", {"type": "calculation", "result": 12.5}, points=10),
            make_response("Q-2-4", {"type": "calculation", "result": 1}, points=2.5),
        ]
        score = calculate_competency_score("a1", "C6", responses)
        assert [(s.stage, s.score, s.max_score) for s in score.stage_scores] == [(0, 10, 10), (2, 2.5, 10)]
        assert score.evidence[0].level_demonstrated == CompetencyLevel.L2
        assert score.evidence[1].level_demonstrated == CompetencyLevel.L0
        assert score.evidence[0].response == "Calculated: 12.5"

    def test_unknown_competency(self):
        with pytest.raises(NotFoundError):
            calculate_competency_score("a1", "C99", [])

    def test_all_scores_natural_order(self, make_response):
        responses = [
            make_response("Q-2-2", {"type": "choice", "selected_option_id": "B"}, points=10),
            make_response("Q-N2-3", {"type": "choice", "selected_option_id": "D"}, points=10),
        ]
        codes = [s.code for s in calculate_all_competency_scores("a1", responses)]
        assert codes == ["C2", "C4", "C14", "C16"]


class TestAggregates:
    """Tests for overall score, rankings, feedback and radar data."""

    def _scores(self, make_response):
        responses = [
            make_response("Q-N2-3", {"type": "choice", "selected_option_id": "D"}, points=10, competencies=["C4"]),
            make_response("Q-0-2", {"type": "choice", "selected_option_id": "B"}, points=6, competencies=["C6"]),
            make_response("Q-2-2", {"type": "choice", "selected_option_id": "A"}, points=2, competencies=["C14"]),
            make_response("Q-N2-1", {"type": "text", "value": "x"}, points=6, competencies=["C1"]),
        ]
        return calculate_all_competency_scores("a1", responses)

    def test_overall(self, make_response):
        overall = calculate_overall_score(self._scores(make_response))
        assert overall["total_score"] == 24
        assert overall["max_score"] == 40
        assert overall["percentage"] == 60
        # L2, L1, L0, L1 -> average ordinal 1.0
        assert overall["average_level"] == CompetencyLevel.L1

    def test_overall_empty(self):
        overall = calculate_overall_score([])
        assert overall["percentage"] == 0
        assert overall["average_level"] == CompetencyLevel.L0

    def test_rankings_tie_break_by_code(self, make_response):
        """C1 and C6 tie at 60%; C1 comes first on both lists."""
        rankings = get_competency_rankings(self._scores(make_response))
        assert rankings["strongest"] == ["C4", "C1", "C6"]
        assert rankings["weakest"] == ["C14", "C1", "C6"]

    def test_feedback(self, make_response):
        c4 = next(s for s in self._scores(make_response) if s.code == "C4")
        feedback = generate_competency_feedback(c4)
        assert feedback["status"] == "strong"
        assert feedback["headline"] == "Customer Empathy: Strong Competency"
        assert feedback["details"]

    def test_radar_order(self, make_response):
        radar = get_radar_chart_data(self._scores(make_response))
        assert radar["data"] == [60, 100, 60, 20]
        assert len(radar["labels"]) == 4


class TestCompetencyRegistry:
    """Tests for the competency definitions."""

    def test_sixteen_competencies(self):
        codes = [c.code for c in get_all_competencies()]
        assert len(codes) == 16
        assert codes[:3] == ["C1", "C2", "C3"]
        assert codes[-1] == "C16"

    def test_every_definition_has_three_levels(self):
        for definition in get_all_competencies():
            assert set(definition.levels) == {CompetencyLevel.L0, CompetencyLevel.L1, CompetencyLevel.L2}

    def test_competencies_for_stage(self):
        codes = [c.code for c in get_competencies_for_stage(-1)]
        assert "C3" in codes


class TestPureScoring:
    """Tests for the pure scoring functions."""

    def test_multiple_choice(self):
        question = require_question("Q-0-2")
        assert score_multiple_choice_response("C", question.options) == 10
        assert score_multiple_choice_response("Z", question.options) == 0

    def test_budget_inside_bands(self):
        categories = require_question("Q-0-1").budget_categories
        allocations = {"product": 40, "marketing": 20, "operations": 15, "reserve": 25}
        assert score_budget_allocation(allocations, categories) == 10

    def test_budget_decays_outside_band(self):
        """Marketing 25 points above its band earns half its weight."""
        categories = [
            BudgetCategory(id="a", name="A", ideal_min=10, ideal_max=20),
            BudgetCategory(id="b", name="B", ideal_min=10, ideal_max=20),
        ]
        assert score_budget_allocation({"a": 15, "b": 45}, categories) == 7.5

    def test_budget_missing_category_scores_zero(self):
        categories = [BudgetCategory(id="a", name="A", ideal_min=10, ideal_max=20)]
        assert score_budget_allocation({}, categories) == 0
        assert score_budget_allocation({"a": math.nan}, categories) == 0

    @pytest.mark.parametrize("result,expected", [
        (12.5, 10),
        (12, 10),
        (13.5, 5),
        (20, 2.5),
        (math.nan, 0),
        (math.inf, 0),
    ])
    def test_calculation(self, result, expected):
        assert score_calculation_response(result, 11.875, 13.125) == expected

    @pytest.mark.parametrize("value,expected", [(15, 10), (5, 8), (50, 0), (0, 6)])
    def test_slider(self, value, expected):
        spec = SliderSpec(min=0, max=50, ideal_min=10, ideal_max=25)
        assert score_slider_response(value, spec) == expected


class TestStrategies:
    """Tests for score_response and the strategy registry."""

    def test_every_type_has_a_strategy(self):
        registered = StrategyRegistry.list_strategies()
        for qtype in ["text", "choice", "scenario", "budget", "calculation", "slider", "reflection", "outcome", "ai_generated"]:
            assert qtype in registered

    def test_choice(self):
        outcome = score_response(require_question("Q-N2-2"), parse_response_data({"type": "choice", "selected_option_id": "A"}))
        assert outcome.points == 10
        assert "Lived experience" in outcome.feedback

    def test_unknown_option(self):
        with pytest.raises(ValidationError):
            score_response(require_question("Q-N2-2"), parse_response_data({"type": "choice", "selected_option_id": "Z"}))

    def test_type_mismatch(self):
        """A slider answer to a choice question is rejected."""
        with pytest.raises(ValidationError):
            score_response(require_question("Q-N2-2"), parse_response_data({"type": "slider", "value": 3}))

    def test_scenario_requires_scenario_payload(self):
        with pytest.raises(ValidationError):
            score_response(require_question("Q-N1-2"), parse_response_data({"type": "choice", "selected_option_id": "A"}))

    def test_calculation_uses_live_state(self, initial_state):
        """The expected runway answer follows the state the question is asked in."""
        question = require_question("Q-0-3")
        answer = parse_response_data({"type": "calculation", "result": 12.5})
        assert score_response(question, answer, initial_state).points == 10

        lower_capital = apply_consequence(initial_state, {"capitalChange": -10_000})
        assert score_response(question, answer, lower_capital).points < 10

    def test_calculation_unevaluable_needs_review(self, initial_state):
        """Zero burn makes the runway formula undefined; the answer is flagged for review."""
        state = apply_consequence(initial_state, {"burnRateChange": -4_000})
        outcome = score_response(require_question("Q-0-3"), parse_response_data({"type": "calculation", "result": 10}), state)
        assert outcome.points == 0
        assert outcome.needs_manual_review

    def test_budget(self):
        payload = {"type": "budget", "allocations": [
            {"category_id": "product", "percentage": 40},
            {"category_id": "marketing", "percentage": 20},
            {"category_id": "operations", "percentage": 15},
            {"category_id": "reserve", "percentage": 25},
        ]}
        assert score_response(require_question("Q-0-1"), parse_response_data(payload)).points == 10

    def test_outcome_has_no_points(self):
        outcome = score_response(require_question("Q-3-1"), parse_response_data({"type": "outcome"}))
        assert outcome.points == 0
        assert outcome.max_points == 0

    def test_points_always_finite(self, initial_state):
        answer = parse_response_data({"type": "slider", "value": math.nan})
        outcome = score_response(require_question("Q-N1-3"), answer, initial_state)
        assert outcome.points == 0
