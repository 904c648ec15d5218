"""
Question text templating.

Supported placeholders:

- ``{{state.financial.capital}}`` - a state value ("N/A" when missing)
- ``{{= capital / burn_rate }}`` - arithmetic over state variables, via the
  safe expression evaluator
- ``{{#if hasMistake_M3}}...{{/if}}``, ``{{#if hasManyMistakes}}``,
  ``{{#if fewMistakes}}``, ``{{#if noMistakes}}`` - conditional blocks in
  scenario context
"""

from __future__ import annotations

import math
import re
from typing import Any

from loguru import logger

from warroom.core.expressions import ExpressionError, evaluate
from warroom.questions.models import Question
from warroom.state.models import SimulationState

MISSING = "N/A"

_STATE_PATTERN = re.compile(r"\{\{\s*state\.([^}\s]+)\s*\}\}")
_EXPRESSION_PATTERN = re.compile(r"\{\{=\s*([^}]+?)\s*\}\}")
_MISTAKE_BLOCK = re.compile(r"\{\{#if hasMistake_([^}]+)\}\}([\s\S]*?)\{\{/if\}\}")
_COUNT_BLOCKS = {
    "hasManyMistakes": lambda count: count >= 2,
    "fewMistakes": lambda count: count == 1,
    "noMistakes": lambda count: count == 0,
}


def format_value(value: Any) -> str:
    """Render a value the way question text shows it (50,000 / 12.5 / Infinite)."""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (int, float)):
        if math.isinf(value):
            return "Infinite"
        if math.isnan(value):
            return MISSING
        if float(value).is_integer():
            return f"{value:,.0f}"
        return f"{value:,.2f}".rstrip("0").rstrip(".")
    if isinstance(value, list):
        return ", ".join(str(v) for v in value) or MISSING
    return str(value)


def get_state_value(state: SimulationState, path: str) -> Any:
    """Walk a dotted path through the state; None when any segment is missing."""
    current: Any = state
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
        if current is None:
            return None
    return current


def interpolate_question_text(text: str, state: SimulationState) -> str:
    """Substitute ``{{state.path}}`` and ``{{= expression }}`` placeholders."""
    if not text:
        return ""

    def _state(match: re.Match) -> str:
        value = get_state_value(state, match.group(1))
        return MISSING if value is None else format_value(value)

    def _expression(match: re.Match) -> str:
        try:
            return format_value(evaluate(match.group(1), state.numeric_variables()))
        except ExpressionError as e:
            logger.warning(f"Cannot interpolate '{match.group(1)}': {e}")
            return MISSING

    text = _EXPRESSION_PATTERN.sub(_expression, text)
    return _STATE_PATTERN.sub(_state, text)


def process_scenario_context(question: Question, state: SimulationState) -> str:
    """Resolve conditional blocks in a question's scenario context, then interpolate."""
    if not question.scenario_context:
        return ""

    context = _MISTAKE_BLOCK.sub(
        lambda m: m.group(2) if state.has_mistake(m.group(1)) else "",
        question.scenario_context,
    )
    count = len(state.mistakes_triggered)
    for name, predicate in _COUNT_BLOCKS.items():
        pattern = re.compile(r"\{\{#if " + name + r"\}\}([\s\S]*?)\{\{/if\}\}")
        context = pattern.sub(lambda m: m.group(1) if predicate(count) else "", context)

    return interpolate_question_text(context, state).strip()
