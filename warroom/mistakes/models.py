"""
Mistake registry and instance models.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from warroom.core.stages import STAGE_ORDER

MistakeCategory = Literal["financial", "operational", "strategic"]
Severity = Literal["low", "medium", "high", "critical"]
Operator = Literal["<", "<=", ">", ">=", "==", "!="]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# =============================================================================
# Detection Conditions
# =============================================================================


class OptionSelected(_Frozen):
    type: Literal["option_selected"] = "option_selected"
    option_ids: list[str]


class BudgetThreshold(_Frozen):
    """A budget category's allocated percentage compared against ``value``."""

    type: Literal["budget_threshold"] = "budget_threshold"
    category_id: str
    operator: Operator
    value: float


class NumericThreshold(_Frozen):
    """A slider value or calculation result compared against ``value``."""

    type: Literal["numeric_threshold"] = "numeric_threshold"
    operator: Operator
    value: float


class TextContains(_Frozen):
    """Case-insensitive keyword match over a free-text answer."""

    type: Literal["text_contains"] = "text_contains"
    keywords: list[str]


TriggerCondition = Annotated[
    Union[OptionSelected, BudgetThreshold, NumericThreshold, TextContains],
    Field(discriminator="type"),
]


class DetectionTrigger(_Frozen):
    question_id: str
    condition: TriggerCondition


# =============================================================================
# Definitions
# =============================================================================


class CompoundingEntry(_Frozen):
    """Re-application of ``effect`` x ``multiplier`` when entering ``stage``."""

    stage: int
    effect: dict[str, Any]
    multiplier: float = 1.0
    description: str = ""


class RecoveryPolicy(_Frozen):
    recoverable: bool = True
    guidance: str = ""
    # Stages after which recovery is no longer possible
    deadline_stage: int | None = None


class MistakeDefinition(_Frozen):
    """Static description of a detectable mistake."""

    code: str
    name: str
    category: MistakeCategory
    typical_stage: int
    detectable_at_stages: list[int]
    severity: Severity = "medium"
    description: str
    triggers: list[DetectionTrigger] = Field(default_factory=list)
    immediate_impact: dict[str, Any] = Field(default_factory=dict)
    compounding: list[CompoundingEntry] = Field(default_factory=list)
    recovery: RecoveryPolicy = Field(default_factory=RecoveryPolicy)

    @model_validator(mode="after")
    def _check_schedule(self) -> MistakeDefinition:
        stages = [entry.stage for entry in self.compounding]
        if stages != sorted(set(stages)):
            raise ValueError(f"{self.code}: compounding stages must be strictly increasing")
        for stage in stages + self.detectable_at_stages + [self.typical_stage]:
            if stage not in STAGE_ORDER:
                raise ValueError(f"{self.code}: unknown stage {stage}")
        return self

    def compounding_for(self, stage: int) -> CompoundingEntry | None:
        return next((entry for entry in self.compounding if entry.stage == stage), None)


# =============================================================================
# Instances
# =============================================================================


class CompoundingImpact(_Frozen):
    """One applied compounding entry: the marker that (mistake, stage) has fired."""

    stage: int
    impact: dict[str, Any]
    cost: float


class MistakeTriggered(BaseModel):
    """
    A mistake made in one assessment.

    Created once per code per assessment. ConsequenceEngine appends to
    ``compounding_impacts_applied``; nothing else changes afterwards.
    """

    model_config = ConfigDict(extra="forbid")

    assessment_id: str
    code: str
    name: str
    triggered_at_stage: int
    trigger_question_id: str
    trigger_response: Any = None
    immediate_impact_applied: dict[str, Any] = Field(default_factory=dict)
    compounding_impacts_applied: list[CompoundingImpact] = Field(default_factory=list)
    recovered: bool = False

    @property
    def has_compounded(self) -> bool:
        return bool(self.compounding_impacts_applied)

    @property
    def compounded_at_stage(self) -> int | None:
        if not self.compounding_impacts_applied:
            return None
        return self.compounding_impacts_applied[-1].stage

    @property
    def total_compounded_cost(self) -> float:
        return sum(impact.cost for impact in self.compounding_impacts_applied)

    def has_compounded_at(self, stage: int) -> bool:
        return any(impact.stage == stage for impact in self.compounding_impacts_applied)
