# whatif_engine/quick_scenarios.py

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Optional

from debug import *
from whatif_engine.plan_types import (
    LifeEvent,
    PlanAssumptions,
    RetirementProjection,
    ScenarioOverrides,
    WhatIfAdjustments,
)
from whatif_engine.whatif_transform import apply_what_if


@dataclass(frozen=True)
class QuickScenario:
    """A named, reusable set of what-if adjustments (e.g. 'Market downturn')."""
    id: str
    name: str
    description: str = ""
    sort_order: int = 0
    retirement_age_offset: int = 0
    expenses_percent: float = 100.0
    return_rate_offset: float = 0.0
    inflation_offset: float = 0.0
    contribution_percent: float = 100.0

    @classmethod
    def from_dict(cls, raw: dict) -> "QuickScenario":
        return cls(
            id=str(raw.get("id") or raw.get("name", "")),
            name=str(raw.get("name", "")),
            description=str(raw.get("description", "")),
            sort_order=int(raw.get("sortOrder", 0)),
            retirement_age_offset=int(raw.get("retirementAgeOffset", 0)),
            expenses_percent=float(raw.get("expensesPercent", 100.0)),
            return_rate_offset=float(raw.get("returnRateOffset", 0.0)),
            inflation_offset=float(raw.get("inflationOffset", 0.0)),
            contribution_percent=float(raw.get("contributionPercent", 100.0)),
        )

    def as_adjustments(self) -> WhatIfAdjustments:
        return WhatIfAdjustments(
            retirement_age_offset=self.retirement_age_offset,
            expenses_percent=self.expenses_percent,
            return_rate_offset=self.return_rate_offset,
            inflation_offset=self.inflation_offset,
            contribution_percent=self.contribution_percent,
        )


def combine_adjustments(adjustments: WhatIfAdjustments,
                        scenarios: Iterable[QuickScenario]) -> WhatIfAdjustments:
    """
    Stack selected quick scenarios on top of the slider adjustments.
    Offsets add; percentages multiply (90% of 110% = 99%).
    """
    acc = adjustments
    for s in scenarios:
        acc = replace(
            acc,
            retirement_age_offset=acc.retirement_age_offset + s.retirement_age_offset,
            return_rate_offset=acc.return_rate_offset + s.return_rate_offset,
            inflation_offset=acc.inflation_offset + s.inflation_offset,
            expenses_percent=float(round(acc.expenses_percent * s.expenses_percent / 100)),
            contribution_percent=float(round(acc.contribution_percent * s.contribution_percent / 100)),
        )
    return acc


def compare_scenarios(base: RetirementProjection,
                      plan: PlanAssumptions,
                      variants: Iterable[tuple[str, WhatIfAdjustments, Optional[ScenarioOverrides]]],
                      blended_return_rate: float,
                      life_events: Iterable[LifeEvent] = ()) -> dict[str, RetirementProjection]:
    """
    variants: list of (name, adjustments, overrides-or-None)
    returns: dict name -> projection
    """
    events = tuple(life_events)
    res = {}
    for name, adjustments, overrides in variants:
        res[name] = apply_what_if(base, plan, adjustments, overrides or ScenarioOverrides(),
                                  events, blended_return_rate)
        debug(VERBOSE, "Scenario '{}': runway {} years", name, res[name].runway_years)
    return res


@dataclass(frozen=True)
class ScenarioImpact:
    runway_years_delta: float
    depletion_age_before: Optional[int]
    depletion_age_after: Optional[int]
    liquidation_age: Optional[int]
    liquid_balance_at_liquidation: Optional[float]
    final_total_wealth: float


def scenario_impact(before: RetirementProjection, after: RetirementProjection) -> ScenarioImpact:
    """Headline differences between an as-planned and a what-if projection."""
    final = after.yearly_projections[-1].total_wealth if after.yearly_projections else 0.0
    return ScenarioImpact(
        runway_years_delta=after.runway_years - before.runway_years,
        depletion_age_before=before.depletion_age,
        depletion_age_after=after.depletion_age,
        liquidation_age=after.liquidation_age,
        liquid_balance_at_liquidation=after.liquid_balance_at_liquidation,
        final_total_wealth=final,
    )
