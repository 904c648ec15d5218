"""
Question bank loader.

Stage definitions live as JSON package data under ``warroom/data/stages``,
one file per stage. They are validated into StageConfig models on first use
and cached for the life of the process.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from warroom.core.exceptions import NotFoundError, ValidationError
from warroom.core.stages import STAGE_ORDER, validate_stage
from warroom.data import DATA_DIR
from warroom.questions.models import Question, StageConfig

STAGES_DIR = DATA_DIR / "stages"


def stage_file(stage: int) -> Path:
    return STAGES_DIR / f"stage_{stage}.json"


@lru_cache(maxsize=None)
def load_stage(stage: int) -> StageConfig:
    """
    Load and validate one stage file.

    Raises:
        NotFoundError: Unknown stage number or missing file
        ValidationError: File does not describe a valid stage
    """
    validate_stage(stage)
    path = stage_file(stage)
    if not path.exists():
        raise NotFoundError(f"Stage file not found: {path.name}")

    with open(path, encoding="utf-8") as f:
        raw = json.load(f)

    try:
        config = StageConfig.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid stage file {path.name}: {e}") from e

    if config.stage != stage:
        raise ValidationError(f"{path.name} declares stage {config.stage}")
    logger.debug(f"Loaded stage {stage} ({config.name.value}) with {len(config.questions)} questions")
    return config


@lru_cache(maxsize=1)
def question_index() -> dict[str, Question]:
    """All questions across stages, by id."""
    index: dict[str, Question] = {}
    for stage in STAGE_ORDER:
        for question in load_stage(stage).questions:
            if question.id in index:
                raise ValidationError(f"Duplicate question id across stages: {question.id}")
            index[question.id] = question
    return index
