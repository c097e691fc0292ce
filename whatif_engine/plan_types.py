# whatif_engine/plan_types.py

from __future__ import annotations

import math
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Optional

from dateutil.relativedelta import relativedelta

DEFAULT_RETIREMENT_AGE = 65
DEFAULT_LIFE_EXPECTANCY = 90
DEFAULT_INVESTMENT_ALLOCATION = 0.8

EVENT_TYPE_INCOME = "income"
EVENT_TYPE_EXPENSE = "expense"
EVENT_TYPES = (EVENT_TYPE_INCOME, EVENT_TYPE_EXPENSE)


class ErrorKind(Enum):
    MALFORMED_LIFE_EVENTS = "malformed_life_events"
    INVALID_PLAN = "invalid_plan"
    NETWORK = "network"
    MALFORMED_RESPONSE = "malformed_response"


class PlanDataError(ValueError):
    """Raised when plan data, life events or a plan-store response cannot be used."""

    def __init__(self, kind: ErrorKind, message: str, details: Optional[list[str]] = None):
        super().__init__(message)
        self.kind = kind
        self.details = list(details or [])

    def __str__(self) -> str:
        base = super().__str__()
        if not self.details:
            return base
        return base + "\n  " + "\n  ".join(self.details)


def _num(raw: dict, key: str, default: float = 0.0) -> float:
    v = raw.get(key)
    if v is None:
        return float(default)
    return float(v)


def _opt_num(raw: dict, key: str) -> Optional[float]:
    v = raw.get(key)
    return None if v is None else float(v)


def _opt_int(raw: dict, key: str) -> Optional[int]:
    v = raw.get(key)
    return None if v is None else int(v)


def age_from_birth(birthdate: Optional[str] = None,
                   year_of_birth: Optional[int] = None,
                   as_of: Optional[date] = None) -> Optional[int]:
    """
    Whole years of age on `as_of` (default today).
    A full 'YYYY-MM-DD' birthdate gives the exact age; a bare year of birth
    gives the calendar-year difference.
    """
    as_of = as_of or date.today()
    if birthdate:
        bd = datetime.strptime(birthdate.strip(), "%Y-%m-%d").date()
        return relativedelta(as_of, bd).years
    if year_of_birth:
        return as_of.year - int(year_of_birth)
    return None


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LifeEvent:
    id: str
    age: int
    amount: float
    description: str = ""
    event_type: str = EVENT_TYPE_EXPENSE

    @property
    def signed_amount(self) -> float:
        """Income events add to the balance, expense events subtract."""
        return self.amount if self.event_type == EVENT_TYPE_INCOME else -self.amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "age": self.age,
            "amount": self.amount,
            "description": self.description,
            "eventType": self.event_type,
        }


@dataclass(frozen=True)
class PlanAssumptions:
    """Scalar inputs of one stored retirement plan. Read-only to the engine."""
    retirement_age: int
    life_expectancy: int
    monthly_expenses: float
    inflation_rate: float
    plan_id: str = ""
    name: str = ""
    current_age: Optional[int] = None
    expenses_currency: str = "USD"
    pension_monthly: float = 0.0
    social_security_monthly: float = 0.0
    other_income_monthly: float = 0.0
    working_income_monthly: float = 0.0
    working_expenses_monthly: float = 0.0
    investment_allocation_percent: float = DEFAULT_INVESTMENT_ALLOCATION
    cash_return_rate: float = 0.0
    equity_return_rate: float = 0.0
    housing_return_rate: float = 0.0
    cash_allocation: float = 0.0
    equity_allocation: float = 0.0
    housing_allocation: float = 0.0
    target_balance: Optional[float] = None
    year_of_birth: Optional[int] = None
    life_events: tuple[LifeEvent, ...] = ()

    @property
    def planning_horizon_years(self) -> int:
        return self.life_expectancy - self.retirement_age

    @property
    def monthly_investment(self) -> float:
        """Pre-retirement monthly amount invested out of the working surplus."""
        surplus = self.working_income_monthly - self.working_expenses_monthly
        if surplus <= 0:
            return 0.0
        return surplus * self.investment_allocation_percent

    @property
    def allocation_blended_return_rate(self) -> float:
        return (self.equity_return_rate * self.equity_allocation
                + self.cash_return_rate * self.cash_allocation
                + self.housing_return_rate * self.housing_allocation)

    @classmethod
    def from_dict(cls, raw: dict, as_of: Optional[date] = None) -> "PlanAssumptions":
        """
        Build from a stored plan record (camelCase keys).

        retirementAge falls back to lifeExpectancy - planningHorizonYears and
        then to 65; currentAge falls back to birthdate / yearOfBirth.
        """
        # local import: life_events imports this module
        from whatif_engine.life_events import parse_life_events

        life_expectancy = int(raw.get("lifeExpectancy") or DEFAULT_LIFE_EXPECTANCY)
        if raw.get("retirementAge") is not None:
            retirement_age = int(raw["retirementAge"])
        elif raw.get("planningHorizonYears"):
            retirement_age = life_expectancy - int(raw["planningHorizonYears"])
        else:
            retirement_age = DEFAULT_RETIREMENT_AGE

        current_age = _opt_int(raw, "currentAge")
        if current_age is None:
            current_age = age_from_birth(raw.get("birthdate"), raw.get("yearOfBirth"), as_of)

        return cls(
            plan_id=str(raw.get("id", "")),
            name=str(raw.get("name", "")),
            retirement_age=retirement_age,
            life_expectancy=life_expectancy,
            current_age=current_age,
            monthly_expenses=_num(raw, "monthlyExpenses"),
            expenses_currency=str(raw.get("expensesCurrency") or "USD"),
            inflation_rate=_num(raw, "inflationRate"),
            pension_monthly=_num(raw, "pensionMonthly"),
            social_security_monthly=_num(raw, "socialSecurityMonthly"),
            other_income_monthly=_num(raw, "otherIncomeMonthly"),
            working_income_monthly=_num(raw, "workingIncomeMonthly"),
            working_expenses_monthly=_num(raw, "workingExpensesMonthly"),
            investment_allocation_percent=_num(raw, "investmentAllocationPercent",
                                               DEFAULT_INVESTMENT_ALLOCATION),
            cash_return_rate=_num(raw, "cashReturnRate"),
            equity_return_rate=_num(raw, "equityReturnRate"),
            housing_return_rate=_num(raw, "housingReturnRate"),
            cash_allocation=_num(raw, "cashAllocation"),
            equity_allocation=_num(raw, "equityAllocation"),
            housing_allocation=_num(raw, "housingAllocation"),
            target_balance=_opt_num(raw, "targetBalance"),
            year_of_birth=_opt_int(raw, "yearOfBirth"),
            life_events=parse_life_events(raw.get("lifeEvents")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.plan_id,
            "name": self.name,
            "yearOfBirth": self.year_of_birth,
            "currentAge": self.current_age,
            "retirementAge": self.retirement_age,
            "lifeExpectancy": self.life_expectancy,
            "planningHorizonYears": self.planning_horizon_years,
            "monthlyExpenses": self.monthly_expenses,
            "expensesCurrency": self.expenses_currency,
            "targetBalance": self.target_balance,
            "inflationRate": self.inflation_rate,
            "pensionMonthly": self.pension_monthly,
            "socialSecurityMonthly": self.social_security_monthly,
            "otherIncomeMonthly": self.other_income_monthly,
            "workingIncomeMonthly": self.working_income_monthly,
            "workingExpensesMonthly": self.working_expenses_monthly,
            "investmentAllocationPercent": self.investment_allocation_percent,
            "cashReturnRate": self.cash_return_rate,
            "equityReturnRate": self.equity_return_rate,
            "housingReturnRate": self.housing_return_rate,
            "cashAllocation": self.cash_allocation,
            "equityAllocation": self.equity_allocation,
            "housingAllocation": self.housing_allocation,
            "lifeEvents": [ev.to_dict() for ev in self.life_events],
        }


@dataclass(frozen=True)
class WhatIfAdjustments:
    retirement_age_offset: int = 0
    expenses_percent: float = 100.0
    return_rate_offset: float = 0.0     # percentage points
    inflation_offset: float = 0.0       # percentage points
    contribution_percent: float = 100.0
    equity_percent: Optional[float] = None   # None keeps the blended rate

    def is_default(self) -> bool:
        return self == WhatIfAdjustments()

    @classmethod
    def from_dict(cls, raw: Optional[dict]) -> "WhatIfAdjustments":
        raw = raw or {}
        return cls(
            retirement_age_offset=int(raw.get("retirementAgeOffset", 0)),
            expenses_percent=float(raw.get("expensesPercent", 100.0)),
            return_rate_offset=float(raw.get("returnRateOffset", 0.0)),
            inflation_offset=float(raw.get("inflationOffset", 0.0)),
            contribution_percent=float(raw.get("contributionPercent", 100.0)),
            equity_percent=None if raw.get("equityPercent") is None else float(raw["equityPercent"]),
        )

    def to_dict(self) -> dict:
        return {
            "retirementAgeOffset": self.retirement_age_offset,
            "expensesPercent": self.expenses_percent,
            "returnRateOffset": self.return_rate_offset,
            "inflationOffset": self.inflation_offset,
            "contributionPercent": self.contribution_percent,
            "equityPercent": self.equity_percent,
        }


# Wire names of ScenarioOverrides fields, in storage order.
OVERRIDE_FIELDS = {
    "pension_monthly": "pensionMonthly",
    "social_security_monthly": "socialSecurityMonthly",
    "other_income_monthly": "otherIncomeMonthly",
    "monthly_expenses": "monthlyExpenses",
    "target_retirement_age": "targetRetirementAge",
    "life_expectancy": "lifeExpectancy",
}


@dataclass(frozen=True)
class ScenarioOverrides:
    """Direct replacements for plan fields. None means 'use the plan value'."""
    pension_monthly: Optional[float] = None
    social_security_monthly: Optional[float] = None
    other_income_monthly: Optional[float] = None
    monthly_expenses: Optional[float] = None
    target_retirement_age: Optional[int] = None
    life_expectancy: Optional[int] = None

    def has_overrides(self) -> bool:
        return any(getattr(self, name) is not None for name in OVERRIDE_FIELDS)

    @classmethod
    def from_dict(cls, raw: Optional[dict]) -> "ScenarioOverrides":
        raw = raw or {}
        unknown = sorted(set(raw) - set(OVERRIDE_FIELDS.values()))
        if unknown:
            raise PlanDataError(ErrorKind.INVALID_PLAN,
                                f"Unknown scenario override fields: {unknown}")
        return cls(
            pension_monthly=_opt_num(raw, "pensionMonthly"),
            social_security_monthly=_opt_num(raw, "socialSecurityMonthly"),
            other_income_monthly=_opt_num(raw, "otherIncomeMonthly"),
            monthly_expenses=_opt_num(raw, "monthlyExpenses"),
            target_retirement_age=_opt_int(raw, "targetRetirementAge"),
            life_expectancy=_opt_int(raw, "lifeExpectancy"),
        )

    def to_dict(self) -> dict:
        return {wire: getattr(self, name)
                for name, wire in OVERRIDE_FIELDS.items()
                if getattr(self, name) is not None}


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IncomeBreakdown:
    investment_returns: float = 0.0
    pension: float = 0.0
    social_security: float = 0.0
    other_income: float = 0.0

    @property
    def total_income(self) -> float:
        return self.investment_returns + self.pension + self.social_security + self.other_income

    def to_dict(self) -> dict:
        return {
            "investmentReturns": self.investment_returns,
            "pension": self.pension,
            "socialSecurity": self.social_security,
            "otherIncome": self.other_income,
            "totalIncome": self.total_income,
        }


@dataclass(frozen=True)
class YearlyProjection:
    year: int
    age: int
    starting_balance: float
    investment_return: float
    withdrawals: float
    ending_balance: float
    inflation_adjusted_expenses: float
    non_spendable_value: float
    total_wealth: float
    currency: str = ""
    property_liquidated: bool = False
    life_event_adjustment: float = 0.0
    income: IncomeBreakdown = field(default_factory=IncomeBreakdown)

    @classmethod
    def from_dict(cls, raw: dict) -> "YearlyProjection":
        inc = raw.get("incomeBreakdown") or {}
        ending = _num(raw, "endingBalance")
        non_spendable = _num(raw, "nonSpendableValue")
        return cls(
            year=int(raw["year"]),
            age=int(raw.get("age") or 0),
            starting_balance=_num(raw, "startingBalance"),
            # the projection service calls this field 'investment'
            investment_return=_num(raw, "investmentReturn", _num(raw, "investment")),
            withdrawals=_num(raw, "withdrawals"),
            ending_balance=ending,
            inflation_adjusted_expenses=_num(raw, "inflationAdjustedExpenses"),
            non_spendable_value=non_spendable,
            total_wealth=_num(raw, "totalWealth", max(0.0, ending) + non_spendable),
            currency=str(raw.get("currency") or ""),
            property_liquidated=bool(raw.get("propertyLiquidated", False)),
            life_event_adjustment=_num(raw, "lifeEventAdjustment"),
            income=IncomeBreakdown(
                investment_returns=_num(inc, "investmentReturns"),
                pension=_num(inc, "pension"),
                social_security=_num(inc, "socialSecurity"),
                other_income=_num(inc, "otherIncome"),
            ),
        )

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "age": self.age,
            "startingBalance": self.starting_balance,
            "investmentReturn": self.investment_return,
            "withdrawals": self.withdrawals,
            "endingBalance": self.ending_balance,
            "inflationAdjustedExpenses": self.inflation_adjusted_expenses,
            "nonSpendableValue": self.non_spendable_value,
            "totalWealth": self.total_wealth,
            "currency": self.currency,
            "propertyLiquidated": self.property_liquidated,
            "lifeEventAdjustment": self.life_event_adjustment,
            "incomeBreakdown": self.income.to_dict(),
        }


@dataclass(frozen=True)
class PreRetirementAccumulation:
    years_to_retirement: int
    current_liquid_assets: float = 0.0
    liquid_assets_at_retirement: float = 0.0
    monthly_contribution: float = 0.0
    total_contributions: float = 0.0
    future_value_of_contributions: float = 0.0
    current_non_spendable_assets: float = 0.0
    non_spendable_at_retirement: float = 0.0
    blended_return_rate: float = 0.0
    housing_return_rate: float = 0.0

    _WIRE = {
        "years_to_retirement": "yearsToRetirement",
        "current_liquid_assets": "currentLiquidAssets",
        "liquid_assets_at_retirement": "liquidAssetsAtRetirement",
        "monthly_contribution": "monthlyContribution",
        "total_contributions": "totalContributions",
        "future_value_of_contributions": "futureValueOfContributions",
        "current_non_spendable_assets": "currentNonSpendableAssets",
        "non_spendable_at_retirement": "nonSpendableAtRetirement",
        "blended_return_rate": "blendedReturnRate",
        "housing_return_rate": "housingReturnRate",
    }

    @classmethod
    def from_dict(cls, raw: dict) -> "PreRetirementAccumulation":
        kwargs = {"years_to_retirement": int(raw.get("yearsToRetirement") or 0)}
        for name, wire in cls._WIRE.items():
            if name != "years_to_retirement" and raw.get(wire) is not None:
                kwargs[name] = float(raw[wire])
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return {wire: getattr(self, name) for name, wire in self._WIRE.items()}


@dataclass(frozen=True)
class RetirementProjection:
    liquid_assets: float
    non_spendable_at_retirement: float
    yearly_projections: tuple[YearlyProjection, ...]
    runway_years: float
    runway_months: float
    depletion_age: Optional[int] = None
    pre_retirement_accumulation: Optional[PreRetirementAccumulation] = None
    plan_id: str = ""
    as_of_date: str = ""
    currency: str = ""
    total_assets: float = 0.0
    monthly_expenses: float = 0.0
    housing_return_rate: float = 0.0
    liquidation_age: Optional[int] = None
    liquid_balance_at_liquidation: Optional[float] = None

    @classmethod
    def from_dict(cls, raw: dict) -> "RetirementProjection":
        """Accepts either the bare projection or the service's {"data": {...}} envelope."""
        if "data" in raw and isinstance(raw["data"], dict):
            raw = raw["data"]
        pra = raw.get("preRetirementAccumulation")
        depletion = raw.get("depletionAge")
        liquidation = raw.get("liquidationAge")
        return cls(
            plan_id=str(raw.get("planId", "")),
            as_of_date=str(raw.get("asOfDate", "")),
            currency=str(raw.get("currency") or ""),
            total_assets=_num(raw, "totalAssets"),
            liquid_assets=_num(raw, "liquidAssets"),
            non_spendable_at_retirement=_num(raw, "nonSpendableAtRetirement"),
            monthly_expenses=_num(raw, "monthlyExpenses"),
            housing_return_rate=_num(raw, "housingReturnRate"),
            yearly_projections=tuple(YearlyProjection.from_dict(y)
                                     for y in raw.get("yearlyProjections") or []),
            runway_years=_num(raw, "runwayYears"),
            runway_months=_num(raw, "runwayMonths"),
            depletion_age=None if depletion is None else int(depletion),
            pre_retirement_accumulation=(PreRetirementAccumulation.from_dict(pra)
                                         if isinstance(pra, dict) else None),
            liquidation_age=None if liquidation is None else int(liquidation),
            liquid_balance_at_liquidation=_opt_num(raw, "liquidBalanceAtLiquidation"),
        )

    def to_dict(self) -> dict:
        return {
            "planId": self.plan_id,
            "asOfDate": self.as_of_date,
            "currency": self.currency,
            "totalAssets": self.total_assets,
            "liquidAssets": self.liquid_assets,
            "nonSpendableAtRetirement": self.non_spendable_at_retirement,
            "monthlyExpenses": self.monthly_expenses,
            "housingReturnRate": self.housing_return_rate,
            "runwayYears": self.runway_years,
            "runwayMonths": self.runway_months,
            "depletionAge": self.depletion_age,
            "preRetirementAccumulation": (self.pre_retirement_accumulation.to_dict()
                                          if self.pre_retirement_accumulation else None),
            "liquidationAge": self.liquidation_age,
            "liquidBalanceAtLiquidation": self.liquid_balance_at_liquidation,
            "yearlyProjections": [y.to_dict() for y in self.yearly_projections],
        }


def is_finite_number(v) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def plan_summary(plan: PlanAssumptions) -> dict:
    """Flat snake_case view of a plan for debug dumps."""
    return asdict(plan)
