# whatif_engine/holdings.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np

from debug import *
from whatif_engine.plan_types import PlanAssumptions

# Categories treated as illiquid unless the caller says otherwise.
DEFAULT_NON_SPENDABLE_CATEGORIES = ("Property",)

# Expected return for a holding with no configured rate and no category match.
DEFAULT_EXPECTED_RETURN = 0.03


@dataclass(frozen=True)
class Holding:
    category: str
    market_value: float
    expected_return_rate: Optional[float] = None

    @classmethod
    def from_dict(cls, raw: dict) -> "Holding":
        rate = raw.get("expectedReturnRate")
        return cls(
            category=str(raw.get("category") or "Uncategorised"),
            market_value=float(raw.get("marketValue") or 0.0),
            expected_return_rate=None if rate is None else float(rate),
        )


@dataclass(frozen=True)
class HoldingsSplit:
    liquid_assets: float
    non_spendable_assets: float

    @property
    def total_assets(self) -> float:
        return self.liquid_assets + self.non_spendable_assets

    @property
    def has_assets(self) -> bool:
        return self.liquid_assets > 0 or self.non_spendable_assets > 0


def holdings_from_dicts(rows: Optional[Iterable[dict]]) -> list[Holding]:
    return [Holding.from_dict(r) for r in (rows or [])]


def split_holdings(holdings: Iterable[Holding],
                   non_spendable_categories: Sequence[str] = DEFAULT_NON_SPENDABLE_CATEGORIES) -> HoldingsSplit:
    """Sum holdings into spendable vs non-spendable by category."""
    liquid = 0.0
    non_spendable = 0.0
    for h in holdings:
        if h.category in non_spendable_categories:
            non_spendable += h.market_value
        else:
            liquid += h.market_value
    return HoldingsSplit(liquid_assets=liquid, non_spendable_assets=non_spendable)


def category_return_type(category: str) -> str:
    """Which plan return rate a category earns: 'cash', 'housing' or 'equity'."""
    c = category.lower()
    if c == "cash":
        return "cash"
    if c == "property":
        return "housing"
    # Equity, ETF, Mutual Fund, etc.
    return "equity"


def category_return_rate(plan: PlanAssumptions, category: str) -> float:
    return {
        "cash": plan.cash_return_rate,
        "housing": plan.housing_return_rate,
        "equity": plan.equity_return_rate,
    }[category_return_type(category)]


def blended_return_rate(plan: Optional[PlanAssumptions],
                        holdings: Optional[Sequence[Holding]] = None,
                        non_spendable_categories: Sequence[str] = DEFAULT_NON_SPENDABLE_CATEGORIES) -> float:
    """
    Annual return applied to the liquid pool.

    Without holdings this is the plan's allocation-weighted rate. With
    holdings it is the value-weighted mean over spendable holdings of each
    holding's own rate, falling back to its category's plan rate.
    """
    if not holdings:
        if plan is None:
            return DEFAULT_EXPECTED_RETURN
        return plan.allocation_blended_return_rate

    spendable = [h for h in holdings if h.category not in non_spendable_categories]
    values = np.array([h.market_value for h in spendable], dtype=float)
    if values.size == 0 or values.sum() <= 0:
        return DEFAULT_EXPECTED_RETURN

    rates = []
    for h in spendable:
        if h.expected_return_rate is not None:
            rates.append(h.expected_return_rate)
        elif plan is not None:
            rates.append(category_return_rate(plan, h.category))
        else:
            rates.append(DEFAULT_EXPECTED_RETURN)

    rate = float(np.average(np.array(rates, dtype=float), weights=values))
    debug(VERBOSE, "Blended return rate {:.4%} over {} spendable holdings", rate, len(spendable))
    return rate
