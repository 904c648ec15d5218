"""
Competency registry and score models.

Sixteen entrepreneurial competencies (C1-C16), loaded from
``warroom/data/competencies.json``.
"""

from __future__ import annotations

import json
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from warroom.core.exceptions import NotFoundError, ValidationError
from warroom.core.levels import CompetencyLevel, code_sort_key
from warroom.data import DATA_DIR

COMPETENCIES_FILE = DATA_DIR / "competencies.json"


class CompetencyDefinition(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    code: str
    name: str
    category: str = ""
    description: str
    stages: list[int] = Field(default_factory=list)
    levels: dict[CompetencyLevel, str]


class EvidenceItem(BaseModel):
    """One response's contribution to a competency."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    stage: int
    response: str
    points_awarded: float
    max_points: float
    level_demonstrated: CompetencyLevel
    ai_notes: str | None = None


class StageScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: int
    score: float
    max_score: float


class CompetencyScore(BaseModel):
    """Score on one competency, recomputed from the full response history."""

    model_config = ConfigDict(frozen=True)

    assessment_id: str
    code: str
    name: str
    current_score: float
    max_possible_score: float
    percentage_score: int
    level_achieved: CompetencyLevel
    evidence: list[EvidenceItem] = Field(default_factory=list)
    stage_scores: list[StageScore] = Field(default_factory=list)


@lru_cache(maxsize=1)
def load_competencies() -> dict[str, CompetencyDefinition]:
    """Competency definitions by code, in code order."""
    with open(COMPETENCIES_FILE, encoding="utf-8") as f:
        raw = json.load(f)
    try:
        definitions = [CompetencyDefinition.model_validate(item) for item in raw["competencies"]]
    except (PydanticValidationError, KeyError) as e:
        raise ValidationError(f"Invalid competency registry: {e}") from e
    definitions.sort(key=lambda d: code_sort_key(d.code))
    return {d.code: d for d in definitions}


def get_competency_definition(code: str) -> CompetencyDefinition | None:
    return load_competencies().get(code)


def require_competency(code: str) -> CompetencyDefinition:
    definition = get_competency_definition(code)
    if definition is None:
        raise NotFoundError(f"Competency {code} not found")
    return definition


def get_all_competencies() -> list[CompetencyDefinition]:
    return list(load_competencies().values())


def get_competencies_for_stage(stage: int) -> list[CompetencyDefinition]:
    return [d for d in load_competencies().values() if stage in d.stages]
