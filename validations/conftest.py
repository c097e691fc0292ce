# validations/conftest.py

import os

import matplotlib

matplotlib.use("Agg")

import pytest

from debug import ERROR, INFO, set_debug_level
from whatif_engine.drawdown_simulator import MonthlyIncome, simulate
from whatif_engine.plan_types import (
    PlanAssumptions,
    PreRetirementAccumulation,
    RetirementProjection,
)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


@pytest.fixture(autouse=True)
def quiet_debug():
    set_debug_level(ERROR)
    yield
    set_debug_level(INFO)


@pytest.fixture
def project_root():
    return PROJECT_ROOT


def _make_plan(**overrides):
    fields = dict(
        plan_id="plan-1",
        name="Test Plan",
        current_age=55,
        retirement_age=65,
        life_expectancy=90,
        monthly_expenses=4000.0,
        inflation_rate=0.02,
        pension_monthly=500.0,
        social_security_monthly=1500.0,
        other_income_monthly=0.0,
        working_income_monthly=8000.0,
        working_expenses_monthly=5000.0,
        investment_allocation_percent=0.8,
        cash_return_rate=0.01,
        equity_return_rate=0.06,
        housing_return_rate=0.03,
        cash_allocation=0.2,
        equity_allocation=0.8,
    )
    fields.update(overrides)
    return PlanAssumptions(**fields)


def _make_base(plan, liquid=800000.0, non_spendable=300000.0, rate=0.05, years_to_retirement=10):
    """A base projection whose series is exactly the simulator's output for `plan`."""
    res = simulate(
        initial_liquid=liquid,
        initial_non_spendable=non_spendable,
        retirement_age=plan.retirement_age,
        life_expectancy=plan.life_expectancy,
        annual_expenses_at_retirement=plan.monthly_expenses * 12,
        blended_return_rate=rate,
        inflation_rate=plan.inflation_rate,
        housing_return_rate=plan.housing_return_rate,
        monthly_income=MonthlyIncome(plan.pension_monthly, plan.social_security_monthly,
                                     plan.other_income_monthly),
        life_events_by_age={},
        currency="USD",
    )
    return RetirementProjection(
        liquid_assets=liquid,
        non_spendable_at_retirement=non_spendable,
        yearly_projections=res.yearly_projections,
        runway_years=res.runway_years,
        runway_months=res.runway_months,
        depletion_age=res.depletion_age,
        pre_retirement_accumulation=PreRetirementAccumulation(years_to_retirement=years_to_retirement),
        plan_id=plan.plan_id,
        currency="USD",
        monthly_expenses=plan.monthly_expenses,
        housing_return_rate=plan.housing_return_rate,
        liquidation_age=res.liquidation_age,
        liquid_balance_at_liquidation=res.liquid_balance_at_liquidation,
    )


@pytest.fixture
def make_plan():
    return _make_plan


@pytest.fixture
def make_base():
    return _make_base


@pytest.fixture
def plan():
    return _make_plan()


@pytest.fixture
def base(plan):
    return _make_base(plan)
