# whatif_engine/drawdown_simulator.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from debug import *
from whatif_engine.plan_types import IncomeBreakdown, YearlyProjection

# Property is sold once liquid assets fall below this share of the balance at retirement.
LIQUIDATION_THRESHOLD_FRACTION = 0.10


@dataclass(frozen=True)
class MonthlyIncome:
    pension: float = 0.0
    social_security: float = 0.0
    other: float = 0.0


@dataclass(frozen=True)
class DrawdownResult:
    yearly_projections: tuple[YearlyProjection, ...]
    runway_years: float
    runway_months: float
    depletion_age: Optional[int]
    liquidation_age: Optional[int] = None
    liquid_balance_at_liquidation: Optional[float] = None


@dataclass
class DrawdownState:
    """Accumulator carried from one simulated year to the next."""
    balance: float
    non_spendable: float
    expenses: float
    liquidation_threshold: float
    has_liquidated: bool = False
    liquidation_age: Optional[int] = None
    liquid_balance_at_liquidation: Optional[float] = None


def maybe_liquidate(state: DrawdownState, age: int) -> None:
    """Sell the non-spendable asset once, when 0 < balance < threshold."""
    if state.has_liquidated or state.non_spendable <= 0:
        return
    if not (0 < state.balance < state.liquidation_threshold):
        return

    debug(INFO, "Liquidating non-spendable assets at age {}: balance {:,.2f} + {:,.2f}",
          age, state.balance, state.non_spendable)
    state.liquid_balance_at_liquidation = state.balance
    state.balance += state.non_spendable
    state.non_spendable = 0.0
    state.has_liquidated = True
    state.liquidation_age = age


def step_year(state: DrawdownState, year_index: int, age: int,
              return_rate: float, inflation_rate: float, housing_return_rate: float,
              income: MonthlyIncome, event_adjustment: float,
              currency: str) -> YearlyProjection:
    maybe_liquidate(state, age)

    starting_balance = max(0.0, state.balance)
    investment_return = starting_balance * return_rate

    # rental-style income stops once the income-producing asset is sold
    other_income = 0.0 if state.has_liquidated else income.other
    annual_income = (income.pension + income.social_security + other_income) * 12

    if state.balance > 0:
        withdrawals = max(0.0, state.expenses - annual_income)
    else:
        withdrawals = 0.0

    state.balance = state.balance + investment_return - withdrawals + event_adjustment
    if not state.has_liquidated:
        state.non_spendable *= (1 + housing_return_rate)
    state.expenses *= (1 + inflation_rate)

    ending_balance = max(0.0, state.balance)
    return YearlyProjection(
        year=year_index + 1,
        age=age,
        starting_balance=starting_balance,
        investment_return=investment_return,
        withdrawals=withdrawals,
        ending_balance=ending_balance,
        inflation_adjusted_expenses=state.expenses,
        non_spendable_value=state.non_spendable,
        total_wealth=ending_balance + state.non_spendable,
        currency=currency,
        property_liquidated=state.has_liquidated and age == state.liquidation_age,
        life_event_adjustment=event_adjustment,
        income=IncomeBreakdown(
            investment_returns=investment_return,
            pension=income.pension * 12,
            social_security=income.social_security * 12,
            other_income=other_income * 12,
        ),
    )


def runway_from(yearly: tuple[YearlyProjection, ...], retirement_age: int) -> tuple[float, float, Optional[int]]:
    """(runway_years, runway_months, depletion_age) from a simulated series."""
    depletion_index = next((i for i, y in enumerate(yearly) if y.ending_balance <= 0), -1)
    if depletion_index >= 0:
        runway_years = depletion_index + 1
        depletion_age = retirement_age + depletion_index + 1
    else:
        runway_years = len(yearly)
        depletion_age = None
    return runway_years, runway_years * 12, depletion_age


def simulate(initial_liquid: float,
             initial_non_spendable: float,
             retirement_age: int,
             life_expectancy: int,
             annual_expenses_at_retirement: float,
             blended_return_rate: float,
             inflation_rate: float,
             housing_return_rate: float,
             monthly_income: MonthlyIncome,
             life_events_by_age: Mapping[int, float],
             currency: str = "") -> DrawdownResult:
    """
    Project the liquid pool and the non-spendable asset year by year from
    retirement_age to life_expectancy (inclusive).

    The whole horizon is always produced, so a depleted plan keeps a zero
    tail. Out-of-range inputs never raise; retirement_age >= life_expectancy
    simply yields a short or empty series.
    """
    state = DrawdownState(
        balance=initial_liquid,
        non_spendable=initial_non_spendable,
        expenses=annual_expenses_at_retirement,
        liquidation_threshold=LIQUIDATION_THRESHOLD_FRACTION * initial_liquid,
    )
    years = life_expectancy - retirement_age
    debug(VERBOSE, "Simulating drawdown ages {}..{}: liquid={:,.2f} non_spendable={:,.2f} "
          "expenses={:,.2f} return={} inflation={}",
          retirement_age, life_expectancy, initial_liquid, initial_non_spendable,
          annual_expenses_at_retirement, blended_return_rate, inflation_rate)

    yearly = []
    for i in range(years + 1):
        age = retirement_age + i
        yearly.append(step_year(
            state, i, age,
            return_rate=blended_return_rate,
            inflation_rate=inflation_rate,
            housing_return_rate=housing_return_rate,
            income=monthly_income,
            event_adjustment=life_events_by_age.get(age, 0.0),
            currency=currency,
        ))
    yearly = tuple(yearly)

    runway_years, runway_months, depletion_age = runway_from(yearly, retirement_age)
    debug(VERBOSE, "Drawdown done: {} years, runway={} depletion_age={} liquidation_age={}",
          len(yearly), runway_years, depletion_age, state.liquidation_age)

    return DrawdownResult(
        yearly_projections=yearly,
        runway_years=runway_years,
        runway_months=runway_months,
        depletion_age=depletion_age,
        liquidation_age=state.liquidation_age,
        liquid_balance_at_liquidation=state.liquid_balance_at_liquidation,
    )
