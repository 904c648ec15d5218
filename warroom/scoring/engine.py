"""
ScoringEngine - competency scores from response history.

Competency scores are never stored and incrementally updated: they are a
pure function of the full response list and are recomputed on demand.
Responses are sorted before aggregation so the result does not depend on
the order they are passed in.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from warroom.core.levels import CompetencyLevel, code_sort_key, percentage
from warroom.questions.models import (
    BudgetResponse,
    CalculationResponse,
    ChoiceResponse,
    QuestionResponse,
    SliderResponse,
    TextResponse,
)
from warroom.scoring.competencies import (
    CompetencyScore,
    EvidenceItem,
    StageScore,
    get_competency_definition,
    require_competency,
)

SUMMARY_LENGTH = 100


def _summarize(response: QuestionResponse) -> str:
    data = response.response_data
    if isinstance(data, TextResponse):
        text = data.value
        return text[:SUMMARY_LENGTH] + ("..." if len(text) > SUMMARY_LENGTH else "")
    if isinstance(data, ChoiceResponse):
        return f"Selected: {data.selected_option_id}"
    if isinstance(data, BudgetResponse):
        return "Budget allocation: " + ", ".join(f"{a.category_id}: {a.percentage:g}%" for a in data.allocations)
    if isinstance(data, CalculationResponse):
        return f"Calculated: {data.result:g}"
    if isinstance(data, SliderResponse):
        return f"Value: {data.value:g}"
    return "Response recorded"


def _response_level(points: float, max_points: float) -> CompetencyLevel:
    """Level one answer demonstrates: 90%+ of its points is L2, 60%+ is L1."""
    if max_points <= 0:
        return CompetencyLevel.L0
    share = points / max_points
    if share >= 0.9:
        return CompetencyLevel.L2
    if share >= 0.6:
        return CompetencyLevel.L1
    return CompetencyLevel.L0


def _canonical(responses: Iterable[QuestionResponse]) -> list[QuestionResponse]:
    return sorted(responses, key=lambda r: (r.stage_number, r.question_id))


def calculate_competency_score(assessment_id: str, code: str, responses: Iterable[QuestionResponse]) -> CompetencyScore:
    """
    Score one competency over every response that assesses it.

    Raises:
        NotFoundError: Unknown competency code
    """
    definition = require_competency(code)
    relevant = [r for r in _canonical(responses) if code in r.competencies_assessed]

    current = 0.0
    maximum = 0.0
    evidence: list[EvidenceItem] = []
    by_stage: dict[int, list[float]] = {}
    for response in relevant:
        current += response.points_awarded
        maximum += response.max_points
        totals = by_stage.setdefault(response.stage_number, [0.0, 0.0])
        totals[0] += response.points_awarded
        totals[1] += response.max_points
        evidence.append(EvidenceItem(
            question_id=response.question_id,
            stage=response.stage_number,
            response=_summarize(response),
            points_awarded=response.points_awarded,
            max_points=response.max_points,
            level_demonstrated=_response_level(response.points_awarded, response.max_points),
            ai_notes=response.ai_feedback,
        ))

    pct = percentage(current, maximum)
    return CompetencyScore(
        assessment_id=assessment_id,
        code=code,
        name=definition.name,
        current_score=current,
        max_possible_score=maximum,
        percentage_score=pct,
        level_achieved=CompetencyLevel.from_percentage(pct),
        evidence=evidence,
        stage_scores=[StageScore(stage=s, score=t[0], max_score=t[1]) for s, t in sorted(by_stage.items())],
    )


def calculate_all_competency_scores(assessment_id: str, responses: Iterable[QuestionResponse]) -> list[CompetencyScore]:
    """Scores for every competency assessed by at least one response, in code order."""
    responses = list(responses)
    codes = {code for r in responses for code in r.competencies_assessed}
    return [calculate_competency_score(assessment_id, code, responses) for code in sorted(codes, key=code_sort_key)]


def calculate_overall_score(scores: Iterable[CompetencyScore]) -> dict[str, Any]:
    """
    Totals across competencies.

    Returns:
        Dict with total_score, max_score, percentage and average_level
    """
    scores = list(scores)
    total = sum(s.current_score for s in scores)
    maximum = sum(s.max_possible_score for s in scores)
    if scores:
        average = sum(s.level_achieved.ordinal for s in scores) / len(scores)
        average_level = CompetencyLevel.from_average(average)
    else:
        average_level = CompetencyLevel.L0
    return {
        "total_score": total,
        "max_score": maximum,
        "percentage": percentage(total, maximum),
        "average_level": average_level,
    }


def get_competency_rankings(scores: Iterable[CompetencyScore], n: int = 3) -> dict[str, list[str]]:
    """
    Strongest and weakest competencies by percentage.

    Ties are broken by competency code ascending, in natural order, on both
    lists.
    """
    scores = list(scores)
    strongest = sorted(scores, key=lambda s: (-s.percentage_score, code_sort_key(s.code)))
    weakest = sorted(scores, key=lambda s: (s.percentage_score, code_sort_key(s.code)))
    return {
        "strongest": [s.code for s in strongest[:n]],
        "weakest": [s.code for s in weakest[:n]],
    }


def generate_competency_feedback(score: CompetencyScore) -> dict[str, str]:
    """Status, headline and level description for one competency score."""
    definition = get_competency_definition(score.code)
    if definition is None:
        return {
            "status": "developing",
            "headline": "Assessment recorded",
            "details": "Review your responses for insights.",
        }
    level = score.level_achieved
    return {
        "status": level.status,
        "headline": f"{score.name}: {level.headline}",
        "details": definition.levels.get(level, ""),
    }


def get_radar_chart_data(scores: Iterable[CompetencyScore]) -> dict[str, list]:
    """Labels and percentages ordered by competency code."""
    ordered = sorted(scores, key=lambda s: code_sort_key(s.code))
    return {
        "labels": [s.name for s in ordered],
        "data": [s.percentage_score for s in ordered],
    }
