"""
Scoring Module - points per response and competency aggregation.

Components:
- strategies: Per-question-type scoring via StrategyRegistry
- competencies: Competency registry and score models
- engine: Competency scores, overall score, rankings, feedback
"""

from warroom.scoring.competencies import (
    CompetencyDefinition,
    CompetencyScore,
    get_all_competencies,
    get_competencies_for_stage,
    get_competency_definition,
)
from warroom.scoring.engine import (
    calculate_all_competency_scores,
    calculate_competency_score,
    calculate_overall_score,
    generate_competency_feedback,
    get_competency_rankings,
    get_radar_chart_data,
)
from warroom.scoring.strategies import (
    ScoreOutcome,
    StrategyRegistry,
    score_budget_allocation,
    score_calculation_response,
    score_multiple_choice_response,
    score_response,
    score_slider_response,
)

__all__ = [
    # Registry
    "CompetencyDefinition",
    "CompetencyScore",
    "get_all_competencies",
    "get_competencies_for_stage",
    "get_competency_definition",
    # Engine
    "calculate_competency_score",
    "calculate_all_competency_scores",
    "calculate_overall_score",
    "get_competency_rankings",
    "generate_competency_feedback",
    "get_radar_chart_data",
    # Strategies
    "ScoreOutcome",
    "StrategyRegistry",
    "score_response",
    "score_multiple_choice_response",
    "score_budget_allocation",
    "score_calculation_response",
    "score_slider_response",
]
