"""
StateManager - pure mutation primitives over SimulationState.

Every function takes a state and returns a new one; the input is never
modified. Derived fields (runway, profit, LTV, unit economics) are
recomputed after every merge.

Delta vocabulary accepted by apply_consequence:

- dotted paths:        {"financial.capital": -5000}
- nested sections:     {"team": {"satisfaction": -10}}
- consequence aliases: {"capitalChange": -5000, "hireCost": 8000,
                        "churnRateChange": 2, "productMarketFitChange": "weak"}
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Mapping
from datetime import datetime
from typing import Any

from loguru import logger

from warroom.core.serialization import model_from_json, model_to_json
from warroom.state.models import (
    BusinessContext,
    CustomerState,
    DecisionLogEntry,
    FinancialState,
    OperationsState,
    ProductState,
    SimulationState,
    TeamState,
)

# =============================================================================
# Initial State
# =============================================================================

INITIAL_CAPITAL = 50_000.0
INITIAL_MONTHLY_REVENUE = 8_000.0
INITIAL_MONTHLY_EXPENSES = 12_000.0
INITIAL_TEAM_SIZE = 3
INITIAL_CUSTOMERS = 25

# Cap on expected customer lifetime when churn is zero
MAX_LIFETIME_MONTHS = 60.0

SECTIONS = ("financial", "team", "customers", "product", "market", "operations")

PERCENT = (0.0, 100.0)

# path -> (lower bound, upper bound); None means unbounded
NUMERIC_FIELDS: dict[str, tuple[float | None, float | None]] = {
    "financial.initial_capital": (None, None),
    "financial.capital": (None, None),
    "financial.monthly_revenue": (0.0, None),
    "financial.monthly_expenses": (0.0, None),
    "financial.burn_rate": (None, None),
    "financial.funding_raised": (0.0, None),
    "financial.cac": (0.0, None),
    "team.size": (0.0, None),
    "team.founder_hours": (0.0, 168.0),
    "team.satisfaction": PERCENT,
    "team.turnover": (0.0, None),
    "customers.total": (0.0, None),
    "customers.active": (0.0, None),
    "customers.churn_rate": PERCENT,
    "customers.retention": PERCENT,
    "market.competitor_count": (0.0, None),
    "operations.process_count": (0.0, None),
    "operations.founder_dependency": PERCENT,
}

CATEGORICAL_FIELDS: dict[str, frozenset[Any]] = {
    "product.mvp_built": frozenset({True, False}),
    "product.product_market_fit": frozenset({"none", "weak", "moderate", "strong"}),
    "product.tech_debt": frozenset({"low", "medium", "high"}),
    "operations.automation_level": frozenset({"manual", "partial", "automated"}),
    "market.market_position": frozenset({"unknown", "follower", "challenger", "leader"}),
}

# alias -> ((path, sign), ...)
ALIASES: dict[str, tuple[tuple[str, float], ...]] = {
    "capital": (("financial.capital", 1.0),),
    "capitalChange": (("financial.capital", 1.0),),
    "fundingRaised": (("financial.capital", 1.0), ("financial.funding_raised", 1.0)),
    "hireCost": (("financial.capital", -1.0),),
    "mvpCost": (("financial.capital", -1.0),),
    "cost": (("financial.capital", -1.0),),
    "revenue": (("financial.monthly_revenue", 1.0),),
    "monthlyRevenue": (("financial.monthly_revenue", 1.0),),
    "monthlyRevenueChange": (("financial.monthly_revenue", 1.0),),
    "burnRate": (("financial.burn_rate", 1.0),),
    "burnRateChange": (("financial.burn_rate", 1.0),),
    "expenseChange": (("financial.monthly_expenses", 1.0),),
    "monthlyExpensesChange": (("financial.monthly_expenses", 1.0),),
    "cac": (("financial.cac", 1.0),),
    "teamSize": (("team.size", 1.0),),
    "teamSizeChange": (("team.size", 1.0),),
    "founderHoursChange": (("team.founder_hours", 1.0),),
    "satisfaction": (("team.satisfaction", 1.0),),
    "teamSatisfactionChange": (("team.satisfaction", 1.0),),
    "developerMorale": (("team.satisfaction", 1.0),),
    "salesMorale": (("team.satisfaction", 1.0),),
    "turnover": (("team.turnover", 1.0),),
    "customers": (("customers.total", 1.0), ("customers.active", 1.0)),
    "customerChange": (("customers.total", 1.0), ("customers.active", 1.0)),
    "retention": (("customers.retention", 1.0),),
    "retentionChange": (("customers.retention", 1.0),),
    "churnRateChange": (("customers.churn_rate", 1.0), ("customers.retention", -1.0)),
    "competitorChange": (("market.competitor_count", 1.0),),
    "processCountChange": (("operations.process_count", 1.0),),
    "founderDependencyChange": (("operations.founder_dependency", 1.0),),
    "mvpBuilt": (("product.mvp_built", 1.0),),
    "productMarketFit": (("product.product_market_fit", 1.0),),
    "productMarketFitChange": (("product.product_market_fit", 1.0),),
    "techDebt": (("product.tech_debt", 1.0),),
    "techDebtChange": (("product.tech_debt", 1.0),),
    "automationLevel": (("operations.automation_level", 1.0),),
    "marketPosition": (("market.market_position", 1.0),),
    "marketPositionChange": (("market.market_position", 1.0),),
}


def create_initial_state() -> SimulationState:
    """
    Canonical starting state for every assessment.

    Fixed constants, no randomness: $50,000 capital burning $4,000/month
    (12.5 months of runway), a team of three and 25 early customers.
    """
    state = SimulationState(
        financial=FinancialState(
            initial_capital=INITIAL_CAPITAL,
            capital=INITIAL_CAPITAL,
            monthly_revenue=INITIAL_MONTHLY_REVENUE,
            monthly_expenses=INITIAL_MONTHLY_EXPENSES,
            burn_rate=INITIAL_MONTHLY_EXPENSES - INITIAL_MONTHLY_REVENUE,
            cac=150.0,
        ),
        team=TeamState(
            size=INITIAL_TEAM_SIZE,
            founder_hours=60.0,
            satisfaction=85.0,
            roles=["Founder", "Developer", "Designer"],
        ),
        customers=CustomerState(
            total=INITIAL_CUSTOMERS,
            active=INITIAL_CUSTOMERS,
            churn_rate=4.0,
            retention=96.0,
            segments=["Early adopters"],
        ),
        product=ProductState(mvp_built=True, product_market_fit="weak", features=["Core workflow"]),
        operations=OperationsState(process_count=1, founder_dependency=90.0),
    )
    return recalculate_derived_state(state)


# =============================================================================
# Derived Values
# =============================================================================


def calculate_runway(capital: float, burn_rate: float) -> float:
    """Months of runway; infinite when the business is not burning cash."""
    if burn_rate <= 0:
        return math.inf
    return capital / burn_rate


def calculate_ltv(monthly_revenue: float, active_customers: int, retention: float) -> float | None:
    """Lifetime value per customer: ARPU x expected lifetime in months."""
    if active_customers <= 0 or monthly_revenue <= 0:
        return None
    arpu = monthly_revenue / active_customers
    churn = 1.0 - retention / 100.0
    lifetime = min(1.0 / churn, MAX_LIFETIME_MONTHS) if churn > 0 else MAX_LIFETIME_MONTHS
    return arpu * lifetime


def classify_unit_economics(ltv: float | None, cac: float | None) -> str | None:
    """positive when LTV/CAC > 3, breakeven when > 1, else negative."""
    if ltv is None or not cac:
        return None
    ratio = ltv / cac
    if ratio > 3:
        return "positive"
    if ratio > 1:
        return "breakeven"
    return "negative"


def recalculate_derived_state(state: SimulationState) -> SimulationState:
    """Return a copy with runway, profit, LTV and unit economics recomputed."""
    new = state.model_copy(deep=True)
    fin = new.financial
    fin.runway_months = calculate_runway(fin.capital, fin.burn_rate)
    fin.monthly_profit = fin.monthly_revenue - fin.monthly_expenses
    fin.ltv = calculate_ltv(fin.monthly_revenue, new.customers.active, new.customers.retention)
    fin.unit_economics = classify_unit_economics(fin.ltv, fin.cac)
    return new


# =============================================================================
# Merge
# =============================================================================


def _flatten(delta: Mapping[str, Any]) -> Iterator[tuple[str, Any]]:
    for key, value in delta.items():
        if key in SECTIONS and isinstance(value, Mapping):
            for field_name, inner in value.items():
                yield f"{key}.{field_name}", inner
        else:
            yield key, value


def resolve_delta_key(key: str) -> tuple[tuple[str, float], ...]:
    """Map a delta key to the (path, sign) targets it affects; empty if unknown."""
    if key in NUMERIC_FIELDS or key in CATEGORICAL_FIELDS:
        return ((key, 1.0),)
    return ALIASES.get(key, ())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _clamp(value: float, bounds: tuple[float | None, float | None]) -> float:
    lower, upper = bounds
    if lower is not None and value < lower:
        return lower
    if upper is not None and value > upper:
        return upper
    return value


def _apply_field(state: SimulationState, path: str, value: Any, sign: float, key: str) -> None:
    section_name, field_name = path.split(".", 1)
    section = getattr(state, section_name)

    if path in CATEGORICAL_FIELDS:
        if value not in CATEGORICAL_FIELDS[path] or (path == "product.mvp_built") != isinstance(value, bool):
            logger.warning(f"Ignoring invalid value {value!r} for {path} (from '{key}')")
            return
        setattr(section, field_name, value)
        return

    if not _is_number(value) or not math.isfinite(value):
        logger.warning(f"Ignoring non-finite or non-numeric delta {value!r} for {path} (from '{key}')")
        return

    current = getattr(section, field_name)
    updated = _clamp((current or 0) + sign * value, NUMERIC_FIELDS[path])
    if isinstance(current, int):
        # headcounts and customer counts stay whole
        updated = int(round(updated))
    setattr(section, field_name, updated)


def apply_consequence(state: SimulationState, delta: Mapping[str, Any] | None) -> SimulationState:
    """
    Merge a consequence delta into the state.

    Numeric fields are added to the current value and clamped to their
    bounds; categorical fields are assigned. Fields absent from the delta are
    untouched. Malformed values (NaN, infinities, strings for numeric fields)
    are skipped for that field with a warning.

    Args:
        state: Current state (not modified)
        delta: Consequence delta

    Returns:
        New SimulationState with derived fields recomputed
    """
    if not delta:
        return state

    new = state.model_copy(deep=True)
    for key, value in _flatten(delta):
        targets = resolve_delta_key(key)
        if not targets:
            logger.debug(f"Ignoring unknown consequence key '{key}'")
            continue
        for path, sign in targets:
            _apply_field(new, path, value, sign, key)

    return recalculate_derived_state(new)


def scale_delta(delta: Mapping[str, Any], multiplier: float) -> dict[str, Any]:
    """Multiply every numeric value in a delta (nested sections included)."""
    scaled: dict[str, Any] = {}
    for key, value in delta.items():
        if isinstance(value, Mapping):
            scaled[key] = scale_delta(value, multiplier)
        elif _is_number(value):
            scaled[key] = value * multiplier
        else:
            scaled[key] = value
    return scaled


# =============================================================================
# Other Primitives
# =============================================================================


def trigger_mistake(state: SimulationState, code: str) -> SimulationState:
    """Add a mistake code to mistakes_triggered if absent (idempotent)."""
    if code in state.mistakes_triggered:
        return state
    new = state.model_copy(deep=True)
    new.mistakes_triggered.append(code)
    return new


def log_decision(
    state: SimulationState,
    entry: DecisionLogEntry | Mapping[str, Any],
    timestamp: datetime | None = None,
) -> SimulationState:
    """Append an entry to the decision log. Existing entries are never touched."""
    if not isinstance(entry, DecisionLogEntry):
        entry = DecisionLogEntry.model_validate(dict(entry))
    if timestamp is not None and entry.timestamp is None:
        entry = entry.model_copy(update={"timestamp": timestamp})
    new = state.model_copy(deep=True)
    new.decisions_log.append(entry)
    return new


def add_compounded_loss(state: SimulationState, amount: float) -> SimulationState:
    """Accumulate compounding cost. Non-finite or non-positive amounts are ignored."""
    if not _is_number(amount) or not math.isfinite(amount) or amount <= 0:
        return state
    new = state.model_copy(deep=True)
    new.compounded_losses += amount
    return new


def set_business_context(state: SimulationState, **context: str | None) -> SimulationState:
    """Record ideation answers (industry, problem, ...). Unknown keys are ignored."""
    known = {k: v for k, v in context.items() if k in BusinessContext.model_fields}
    for key in context.keys() - known.keys():
        logger.debug(f"Ignoring unknown business context key '{key}'")
    if not known:
        return state
    new = state.model_copy(deep=True)
    new.business_context = new.business_context.model_copy(update=known)
    return new


def get_state_summary(state: SimulationState) -> dict[str, list[dict[str, Any]]]:
    """Label/value rows per section, for display."""
    fin = state.financial
    runway = "Infinite" if math.isinf(fin.runway_months) else f"{fin.runway_months:.1f} months"
    return {
        "Financial": [
            {"label": "Capital", "value": f"${fin.capital:,.0f}"},
            {"label": "Monthly Revenue", "value": f"${fin.monthly_revenue:,.0f}"},
            {"label": "Monthly Expenses", "value": f"${fin.monthly_expenses:,.0f}"},
            {"label": "Burn Rate", "value": f"${fin.burn_rate:,.0f}/mo"},
            {"label": "Runway", "value": runway},
            {"label": "Unit Economics", "value": fin.unit_economics or "unknown"},
        ],
        "Team": [
            {"label": "Size", "value": state.team.size},
            {"label": "Satisfaction", "value": f"{state.team.satisfaction:.0f}%"},
            {"label": "Founder Hours", "value": f"{state.team.founder_hours:.0f}/week"},
        ],
        "Customers": [
            {"label": "Active", "value": state.customers.active},
            {"label": "Retention", "value": f"{state.customers.retention:.0f}%"},
            {"label": "Churn", "value": f"{state.customers.churn_rate:.0f}%"},
        ],
        "Product": [
            {"label": "MVP Built", "value": "yes" if state.product.mvp_built else "no"},
            {"label": "Product-Market Fit", "value": state.product.product_market_fit},
            {"label": "Tech Debt", "value": state.product.tech_debt},
        ],
        "Operations": [
            {"label": "Processes", "value": state.operations.process_count},
            {"label": "Automation", "value": state.operations.automation_level},
            {"label": "Founder Dependency", "value": f"{state.operations.founder_dependency:.0f}%"},
        ],
        "Mistakes": [
            {"label": "Triggered", "value": ", ".join(state.mistakes_triggered) or "none"},
            {"label": "Compounded Losses", "value": f"${state.compounded_losses:,.0f}"},
        ],
    }


def serialize_state(state: SimulationState) -> str:
    """Encode state as JSON. Infinite runway is kept as ``Infinity``."""
    return model_to_json(state)


def deserialize_state(text: str) -> SimulationState:
    """Inverse of serialize_state."""
    return model_from_json(SimulationState, text)
