"""
Mistake registry.

Loaded once from ``warroom/data/mistakes.json``. Registration order is the
file order and is the order detection scans in.
"""

from __future__ import annotations

import json
from functools import lru_cache

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from warroom.core.exceptions import NotFoundError, ValidationError
from warroom.data import DATA_DIR
from warroom.mistakes.models import MistakeDefinition

MISTAKES_FILE = DATA_DIR / "mistakes.json"


@lru_cache(maxsize=1)
def load_registry() -> tuple[MistakeDefinition, ...]:
    """Validated mistake definitions in registration order."""
    with open(MISTAKES_FILE, encoding="utf-8") as f:
        raw = json.load(f)

    try:
        definitions = tuple(MistakeDefinition.model_validate(item) for item in raw["mistakes"])
    except (PydanticValidationError, KeyError) as e:
        raise ValidationError(f"Invalid mistake registry: {e}") from e

    codes = [d.code for d in definitions]
    if len(codes) != len(set(codes)):
        raise ValidationError("Duplicate mistake codes in registry")
    logger.debug(f"Loaded {len(definitions)} mistake definitions")
    return definitions


def get_mistake_definition(code: str) -> MistakeDefinition | None:
    """Definition for a code, or None if unknown."""
    return next((d for d in load_registry() if d.code == code), None)


def require_mistake_definition(code: str) -> MistakeDefinition:
    definition = get_mistake_definition(code)
    if definition is None:
        raise NotFoundError(f"Mistake {code} not found")
    return definition


def get_all_mistakes() -> list[MistakeDefinition]:
    return list(load_registry())
