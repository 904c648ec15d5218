"""
Questions Module - question bank, branching and sequencing.

Components:
- models: Question, StageConfig, response payloads, branch conditions
- bank: JSON stage loader
- conditions: Tagged-union condition matcher
- engine: Next-question resolution and stage progress
- templates: Question text interpolation
"""

from warroom.questions.engine import (
    get_all_stages,
    get_first_question_of_stage,
    get_next_question,
    get_next_stage,
    get_question_by_id,
    get_stage_config,
    get_stage_progress,
    get_stage_questions,
    is_stage_complete,
    require_question,
)
from warroom.questions.models import (
    Question,
    QuestionResponse,
    QuestionType,
    StageConfig,
    parse_response_data,
)
from warroom.questions.templates import interpolate_question_text, process_scenario_context

__all__ = [
    # Models
    "Question",
    "QuestionType",
    "QuestionResponse",
    "StageConfig",
    "parse_response_data",
    # Engine
    "get_stage_config",
    "get_stage_questions",
    "get_question_by_id",
    "require_question",
    "get_first_question_of_stage",
    "get_all_stages",
    "get_next_question",
    "get_stage_progress",
    "is_stage_complete",
    "get_next_stage",
    # Templates
    "interpolate_question_text",
    "process_scenario_context",
]
