# validations/test_holdings.py

import pytest

from whatif_engine.holdings import (
    DEFAULT_EXPECTED_RETURN,
    Holding,
    blended_return_rate,
    category_return_type,
    holdings_from_dicts,
    split_holdings,
)

HOLDINGS = holdings_from_dicts([
    {"category": "Equity", "marketValue": 300000},
    {"category": "Cash", "marketValue": 100000},
    {"category": "Property", "marketValue": 500000, "expectedReturnRate": 0.03},
    {"category": "ETF", "marketValue": 100000, "expectedReturnRate": 0.04},
])


def test_split_by_category():
    split = split_holdings(HOLDINGS)
    assert split.liquid_assets == 500000.0
    assert split.non_spendable_assets == 500000.0
    assert split.total_assets == 1000000.0
    assert split.has_assets

    everything_liquid = split_holdings(HOLDINGS, non_spendable_categories=())
    assert everything_liquid.non_spendable_assets == 0.0
    assert not split_holdings([]).has_assets


@pytest.mark.parametrize("category,expected", [
    ("Cash", "cash"), ("cash", "cash"), ("Property", "housing"),
    ("Equity", "equity"), ("Mutual Fund", "equity"),
])
def test_category_return_type(category, expected):
    assert category_return_type(category) == expected


def test_blended_rate_weights_spendable_holdings(plan):
    # Equity at the plan's 6%, Cash at 1%, ETF at its own 4%; property ignored
    assert blended_return_rate(plan, HOLDINGS) == pytest.approx((18000 + 1000 + 4000) / 500000)


def test_blended_rate_without_holdings_uses_allocation(plan):
    assert blended_return_rate(plan, []) == pytest.approx(0.06 * 0.8 + 0.01 * 0.2)
    assert blended_return_rate(None) == DEFAULT_EXPECTED_RETURN


def test_blended_rate_falls_back_when_nothing_spendable(plan):
    only_house = [Holding(category="Property", market_value=400000.0)]
    assert blended_return_rate(plan, only_house) == DEFAULT_EXPECTED_RETURN
