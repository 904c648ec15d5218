"""
Simulation state models.

The canonical shape of the modeled startup: finances, team, customers,
product, market and operations, plus mistake tracking and the decision log.
Instances are treated as values: StateManager functions never mutate their
input and always return a new SimulationState.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ProductMarketFit = Literal["none", "weak", "moderate", "strong"]
TechDebt = Literal["low", "medium", "high"]
AutomationLevel = Literal["manual", "partial", "automated"]
MarketPosition = Literal["unknown", "follower", "challenger", "leader"]
UnitEconomics = Literal["negative", "breakeven", "positive"]


class _StateModel(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=True, ser_json_inf_nan="constants")


class FinancialState(_StateModel):
    """Money in, money out."""

    initial_capital: float = 0.0
    capital: float = 0.0  # may go negative (insolvency), never clamped
    monthly_revenue: float = 0.0
    monthly_expenses: float = 0.0
    burn_rate: float = 0.0
    runway_months: float = math.inf  # derived: capital / burn_rate
    monthly_profit: float = 0.0  # derived: revenue - expenses
    funding_raised: float = 0.0
    cac: float | None = None
    ltv: float | None = None  # derived
    unit_economics: UnitEconomics | None = None  # derived

    @property
    def is_insolvent(self) -> bool:
        return self.capital < 0

    @property
    def is_profitable(self) -> bool:
        return math.isinf(self.runway_months)


class TeamState(_StateModel):
    size: int = 1
    founder_hours: float = 60.0  # 0-168 per week
    satisfaction: float = 100.0  # 0-100
    roles: list[str] = Field(default_factory=lambda: ["Founder"])
    turnover: int = 0


class CustomerState(_StateModel):
    total: int = 0
    active: int = 0
    churn_rate: float = 0.0  # 0-100
    retention: float = 100.0  # 0-100
    segments: list[str] = Field(default_factory=list)


class ProductState(_StateModel):
    mvp_built: bool = False
    product_market_fit: ProductMarketFit = "none"
    tech_debt: TechDebt = "low"
    features: list[str] = Field(default_factory=list)


class MarketState(_StateModel):
    target_market: str | None = None
    competitor_count: int = 0
    differentiator: str | None = None
    market_position: MarketPosition = "unknown"


class OperationsState(_StateModel):
    process_count: int = 0
    automation_level: AutomationLevel = "manual"
    systems_built: list[str] = Field(default_factory=list)
    founder_dependency: float = 100.0  # 0-100, lower is better


class BusinessContext(_StateModel):
    """Free-text business context captured from the ideation answers."""

    industry: str | None = None
    problem: str | None = None
    solution: str | None = None
    customer_segment: str | None = None
    revenue_model: str | None = None


class DecisionLogEntry(_StateModel):
    """One recorded decision. The log is append-only."""

    question_id: str
    stage_number: int
    decision: str
    consequence: str | None = None
    points_awarded: float | None = None
    timestamp: datetime | None = None


class SimulationState(_StateModel):
    """
    Full simulated startup state.

    Invariants (maintained by warroom.state.manager):
    - runway_months = capital / burn_rate when burn_rate > 0, else +inf
    - percentage fields stay within [0, 100]
    - mistakes_triggered holds each code at most once, in trigger order
    - decisions_log is append-only
    """

    financial: FinancialState = Field(default_factory=FinancialState)
    team: TeamState = Field(default_factory=TeamState)
    customers: CustomerState = Field(default_factory=CustomerState)
    product: ProductState = Field(default_factory=ProductState)
    market: MarketState = Field(default_factory=MarketState)
    operations: OperationsState = Field(default_factory=OperationsState)
    business_context: BusinessContext = Field(default_factory=BusinessContext)

    mistakes_triggered: list[str] = Field(default_factory=list)
    compounded_losses: float = 0.0
    decisions_log: list[DecisionLogEntry] = Field(default_factory=list)

    @field_validator("mistakes_triggered")
    @classmethod
    def _dedupe_mistakes(cls, codes: list[str]) -> list[str]:
        return list(dict.fromkeys(codes))

    def has_mistake(self, code: str) -> bool:
        return code in self.mistakes_triggered

    def numeric_variables(self) -> dict[str, float]:
        """
        Flatten numeric fields into dotted names for expression evaluation.

        Both ``financial.capital`` and the bare ``capital`` are provided when
        the bare name is unambiguous across sections.
        """
        variables: dict[str, float] = {}
        bare: dict[str, list[float]] = {}
        for section_name in ("financial", "team", "customers", "product", "market", "operations"):
            section = getattr(self, section_name)
            for field_name, value in section.model_dump().items():
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    continue
                variables[f"{section_name}.{field_name}"] = float(value)
                bare.setdefault(field_name, []).append(float(value))
        for name, values in bare.items():
            if len(values) == 1:
                variables.setdefault(name, values[0])
        variables["compounded_losses"] = float(self.compounded_losses)
        variables["mistake_count"] = float(len(self.mistakes_triggered))
        return variables
