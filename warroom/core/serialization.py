"""
JSON round-tripping for pydantic models.

Models that may hold infinite floats (an unbounded runway) set
``ser_json_inf_nan="constants"`` so that pydantic writes ``Infinity`` tokens,
which its own JSON parser reads back.
"""

from __future__ import annotations

from typing import TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from warroom.core.exceptions import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def model_to_json(model: BaseModel) -> str:
    """Encode a model as JSON text."""
    return model.model_dump_json()


def model_from_json(model_cls: type[ModelT], text: str) -> ModelT:
    """
    Decode JSON text produced by model_to_json.

    Raises:
        ValidationError: If the text is not JSON or does not fit the model
    """
    try:
        return model_cls.model_validate_json(text)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model_cls.__name__} payload: {e}") from e
