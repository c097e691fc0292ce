# whatif_engine/whatif_transform.py

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Optional

from debug import *
from whatif_engine.drawdown_simulator import MonthlyIncome, simulate
from whatif_engine.life_events import net_by_age
from whatif_engine.plan_types import (
    LifeEvent,
    PlanAssumptions,
    RetirementProjection,
    ScenarioOverrides,
    WhatIfAdjustments,
)


@dataclass(frozen=True)
class EffectiveScenario:
    """Plan scalars after overrides and slider adjustments are resolved."""
    retirement_age: int
    life_expectancy: int
    monthly_expenses: float             # override-or-plan, before expenses_percent
    annual_expenses_at_retirement: float
    pension_monthly: float
    social_security_monthly: float
    other_income_monthly: float
    inflation_rate: float
    return_rate_offset: float           # as a decimal, e.g. 0.01

    @property
    def planning_horizon_years(self) -> int:
        return self.life_expectancy - self.retirement_age


def _pick(override, fallback):
    return fallback if override is None else override


def resolve_effective_scenario(plan: PlanAssumptions,
                               adjustments: WhatIfAdjustments,
                               overrides: ScenarioOverrides) -> EffectiveScenario:
    """
    Overrides replace plan values outright; they are never summed with the
    matching slider. expenses_percent scales whichever expenses value won.
    """
    monthly_expenses = _pick(overrides.monthly_expenses, plan.monthly_expenses)
    if overrides.target_retirement_age is not None:
        retirement_age = overrides.target_retirement_age
    else:
        retirement_age = plan.retirement_age + adjustments.retirement_age_offset

    return EffectiveScenario(
        retirement_age=retirement_age,
        life_expectancy=_pick(overrides.life_expectancy, plan.life_expectancy),
        monthly_expenses=monthly_expenses,
        annual_expenses_at_retirement=monthly_expenses * 12 * (adjustments.expenses_percent / 100),
        pension_monthly=_pick(overrides.pension_monthly, plan.pension_monthly),
        social_security_monthly=_pick(overrides.social_security_monthly, plan.social_security_monthly),
        other_income_monthly=_pick(overrides.other_income_monthly, plan.other_income_monthly),
        inflation_rate=plan.inflation_rate + adjustments.inflation_offset / 100,
        return_rate_offset=adjustments.return_rate_offset / 100,
    )


def _grow(value: float, rate: float) -> float:
    return value * (1 + rate)


def _shrink(value: float, rate: float) -> float:
    growth = 1 + rate
    # a -100% year leaves nothing to walk back from
    return value / growth if growth else 0.0


def allocation_return_rate(plan: PlanAssumptions, equity_percent: Optional[float],
                           blended_return_rate: float) -> float:
    """Equity/cash mix of the liquid pool; housing grows separately."""
    if equity_percent is None:
        return blended_return_rate
    equity = equity_percent / 100
    return plan.equity_return_rate * equity + plan.cash_return_rate * (1 - equity)


def contribution_difference_value(base_monthly_investment: float,
                                  contribution_percent: float,
                                  years_to_retirement: int,
                                  return_rate: float) -> float:
    """
    Compounded value at retirement of investing contribution_percent of the
    base monthly investment instead of 100% of it.
    """
    diff = base_monthly_investment * 12 * (contribution_percent / 100) - base_monthly_investment * 12
    additional = 0.0
    for _ in range(years_to_retirement):
        additional = _grow(additional + diff, return_rate)
    return additional


def shift_retirement_assets(liquid: float, non_spendable: float, years: int,
                            annual_contribution: float, return_rate: float,
                            housing_return_rate: float) -> tuple[float, float]:
    """
    Move the assets-at-retirement anchor by `years`.

    Retiring later adds a start-of-year contribution and a year of growth per
    year. Retiring earlier undoes one year of growth and then one contribution
    per year, an approximation that assumes the same contribution throughout,
    clamped at 0 once the walk is done.
    """
    if years > 0:
        for _ in range(years):
            liquid = _grow(liquid + annual_contribution, return_rate)
            non_spendable = _grow(non_spendable, housing_return_rate)
    elif years < 0:
        for _ in range(-years):
            liquid = _shrink(liquid, return_rate) - annual_contribution
            non_spendable = _shrink(non_spendable, housing_return_rate)
        liquid = max(0.0, liquid)
        non_spendable = max(0.0, non_spendable)
    return liquid, non_spendable


def apply_what_if(base: RetirementProjection,
                  plan: PlanAssumptions,
                  adjustments: WhatIfAdjustments,
                  overrides: ScenarioOverrides,
                  life_events: Iterable[LifeEvent],
                  blended_return_rate: float) -> RetirementProjection:
    """
    Re-run the drawdown for a what-if scenario on top of a base projection.

    Pure: neither `base` nor `plan` is touched, and equal inputs give an
    equal projection. With default adjustments, no overrides and no life
    events the yearly series matches the base drawdown.
    """
    eff = resolve_effective_scenario(plan, adjustments, overrides)
    return_rate = allocation_return_rate(plan, adjustments.equity_percent, blended_return_rate) \
        + eff.return_rate_offset

    annual_contribution = plan.monthly_investment * 12 * (adjustments.contribution_percent / 100)

    liquid = base.liquid_assets
    non_spendable = base.non_spendable_at_retirement

    pra = base.pre_retirement_accumulation
    if adjustments.contribution_percent != 100 and pra is not None and pra.years_to_retirement > 0:
        liquid += contribution_difference_value(plan.monthly_investment,
                                                adjustments.contribution_percent,
                                                pra.years_to_retirement,
                                                blended_return_rate)

    age_delta = eff.retirement_age - plan.retirement_age
    liquid, non_spendable = shift_retirement_assets(liquid, non_spendable, age_delta,
                                                    annual_contribution,
                                                    blended_return_rate,
                                                    plan.housing_return_rate)

    debug(VERBOSE, "What-if: retire {} (delta {}), live to {}, liquid={:,.2f} non_spendable={:,.2f} "
          "return={:.4f} inflation={:.4f}",
          eff.retirement_age, age_delta, eff.life_expectancy, liquid, non_spendable,
          return_rate, eff.inflation_rate)

    result = simulate(
        initial_liquid=liquid,
        initial_non_spendable=non_spendable,
        retirement_age=eff.retirement_age,
        life_expectancy=eff.life_expectancy,
        annual_expenses_at_retirement=eff.annual_expenses_at_retirement,
        blended_return_rate=return_rate,
        inflation_rate=eff.inflation_rate,
        housing_return_rate=plan.housing_return_rate,
        monthly_income=MonthlyIncome(
            pension=eff.pension_monthly,
            social_security=eff.social_security_monthly,
            other=eff.other_income_monthly,
        ),
        life_events_by_age=net_by_age(life_events),
        currency=base.currency or plan.expenses_currency,
    )

    return replace(
        base,
        yearly_projections=result.yearly_projections,
        runway_years=result.runway_years,
        runway_months=result.runway_months,
        depletion_age=result.depletion_age,
        liquidation_age=result.liquidation_age,
        liquid_balance_at_liquidation=result.liquid_balance_at_liquidation,
    )


class WhatIfMemo:
    """
    Single-slot cache for apply_what_if keyed on the value of every input.

    Slider drags and unrelated view-state changes call compute() repeatedly;
    only a change to one of the inputs triggers a re-run.
    """

    def __init__(self):
        self._key: Optional[tuple] = None
        self._result: Optional[RetirementProjection] = None
        self.hits = 0
        self.misses = 0

    def compute(self, base: RetirementProjection, plan: PlanAssumptions,
                adjustments: WhatIfAdjustments, overrides: ScenarioOverrides,
                life_events: Iterable[LifeEvent], blended_return_rate: float) -> RetirementProjection:
        events = tuple(life_events)
        key = (base, plan, adjustments, overrides, events, blended_return_rate)
        if self._key is not None and self._key == key:
            self.hits += 1
            debug(VVERBOSE, "What-if memo hit ({} hits)", self.hits)
            return self._result

        self.misses += 1
        debug(VVERBOSE, "What-if memo miss ({} misses)", self.misses)
        self._result = apply_what_if(base, plan, adjustments, overrides, events, blended_return_rate)
        self._key = key
        return self._result

    def clear(self) -> None:
        self._key = None
        self._result = None
