# validations/test_drawdown_simulator.py

import pytest

from whatif_engine.drawdown_simulator import (
    LIQUIDATION_THRESHOLD_FRACTION,
    DrawdownState,
    MonthlyIncome,
    maybe_liquidate,
    simulate,
)


def _run(**kw):
    args = dict(
        initial_liquid=120000.0,
        initial_non_spendable=0.0,
        retirement_age=65,
        life_expectancy=67,
        annual_expenses_at_retirement=60000.0,
        blended_return_rate=0.0,
        inflation_rate=0.0,
        housing_return_rate=0.0,
        monthly_income=MonthlyIncome(),
        life_events_by_age={},
    )
    args.update(kw)
    return simulate(**args)


def test_no_growth_no_income_depletes_in_second_year():
    res = _run()
    yearly = res.yearly_projections

    assert len(yearly) == 3
    assert [y.age for y in yearly] == [65, 66, 67]
    assert [y.year for y in yearly] == [1, 2, 3]
    assert [y.ending_balance for y in yearly] == [60000.0, 0.0, 0.0]
    assert [y.withdrawals for y in yearly] == [60000.0, 60000.0, 0.0]
    assert yearly[2].starting_balance == 0.0
    assert res.runway_years == 2
    assert res.runway_months == 24
    # first depleted year index 1 -> retirement_age + 1 + 1
    assert res.depletion_age == 67
    assert res.liquidation_age is None


def test_liquidation_fires_once_and_stops_other_income():
    res = _run(
        initial_liquid=10000.0,
        initial_non_spendable=200000.0,
        life_expectancy=70,
        annual_expenses_at_retirement=5950.0,
        monthly_income=MonthlyIncome(other=100.0),
    )
    yearly = res.yearly_projections

    # 5950 - 1200 of other income per year until the property is sold
    assert [y.withdrawals for y in yearly[:2]] == [4750.0, 4750.0]
    assert yearly[1].ending_balance == 500.0

    liquidated = [y for y in yearly if y.property_liquidated]
    assert len(liquidated) == 1
    assert liquidated[0].age == 67
    assert res.liquidation_age == 67
    assert res.liquid_balance_at_liquidation == 500.0

    assert yearly[2].starting_balance == 200500.0
    assert yearly[2].withdrawals == 5950.0
    assert yearly[2].ending_balance == 194550.0

    for y in yearly[2:]:
        assert y.non_spendable_value == 0.0
        assert y.income.other_income == 0.0
    for y in yearly[:2]:
        assert y.income.other_income == 1200.0
        assert y.non_spendable_value == 200000.0


def test_liquidation_threshold_is_fraction_of_initial_liquid():
    state = DrawdownState(balance=999.0, non_spendable=50000.0, expenses=0.0,
                          liquidation_threshold=LIQUIDATION_THRESHOLD_FRACTION * 10000.0)
    maybe_liquidate(state, 70)
    assert state.has_liquidated
    assert state.balance == 50999.0
    assert state.non_spendable == 0.0

    # a zero balance never triggers the sale
    empty = DrawdownState(balance=0.0, non_spendable=50000.0, expenses=0.0, liquidation_threshold=1000.0)
    maybe_liquidate(empty, 70)
    assert not empty.has_liquidated
    assert empty.non_spendable == 50000.0


def test_life_event_changes_only_from_its_year():
    flat = dict(initial_liquid=500000.0, life_expectancy=75, annual_expenses_at_retirement=20000.0)
    without = _run(**flat).yearly_projections
    with_event = _run(life_events_by_age={70: 50000.0}, **flat).yearly_projections

    for a, b in zip(without, with_event):
        if a.age < 70:
            assert a == b
        else:
            assert b.ending_balance - a.ending_balance == pytest.approx(50000.0)
    assert [y.age for y in with_event if y.life_event_adjustment] == [70]
    assert with_event[5].life_event_adjustment == 50000.0


def test_expense_event_can_deplete_and_balance_stays_non_negative():
    res = _run(initial_liquid=100000.0, life_expectancy=80, annual_expenses_at_retirement=10000.0,
               life_events_by_age={68: -150000.0})
    assert all(y.ending_balance >= 0 for y in res.yearly_projections)
    assert res.depletion_age == 69
    assert res.runway_years == 4
    # depleted pool records no further withdrawals
    assert all(y.withdrawals == 0.0 for y in res.yearly_projections[4:])


def test_growth_and_inflation_follow_year_steps():
    res = _run(initial_liquid=100000.0, initial_non_spendable=50000.0, life_expectancy=66,
               annual_expenses_at_retirement=10000.0, blended_return_rate=0.05,
               inflation_rate=0.1, housing_return_rate=0.02,
               monthly_income=MonthlyIncome(pension=100.0, social_security=200.0))
    y1, y2 = res.yearly_projections

    assert y1.investment_return == pytest.approx(5000.0)
    assert y1.withdrawals == pytest.approx(10000.0 - 3600.0)
    assert y1.ending_balance == pytest.approx(100000.0 + 5000.0 - 6400.0)
    # expenses recorded after that year's inflation step
    assert y1.inflation_adjusted_expenses == pytest.approx(11000.0)
    assert y1.non_spendable_value == pytest.approx(51000.0)
    assert y1.total_wealth == pytest.approx(y1.ending_balance + 51000.0)
    assert y1.income.total_income == pytest.approx(5000.0 + 3600.0)

    assert y2.withdrawals == pytest.approx(11000.0 - 3600.0)
    assert res.depletion_age is None
    assert res.runway_years == 2


def test_degenerate_horizons_do_not_raise():
    assert _run(retirement_age=70, life_expectancy=65).yearly_projections == ()
    assert _run(retirement_age=70, life_expectancy=65).runway_years == 0

    single = _run(retirement_age=70, life_expectancy=70)
    assert len(single.yearly_projections) == 1

    broke = _run(initial_liquid=0.0)
    assert broke.depletion_age == 66
    assert broke.runway_years == 1


@pytest.mark.parametrize("rate", [-0.5, -0.05, 0.0, 0.03, 0.12])
def test_at_most_one_liquidation_for_any_rate(rate):
    res = _run(initial_liquid=200000.0, initial_non_spendable=300000.0, life_expectancy=100,
               annual_expenses_at_retirement=40000.0, blended_return_rate=rate,
               inflation_rate=0.03, housing_return_rate=0.02,
               monthly_income=MonthlyIncome(other=500.0))
    flags = [y.property_liquidated for y in res.yearly_projections]
    assert sum(flags) <= 1
    if any(flags):
        idx = flags.index(True)
        assert all(y.non_spendable_value == 0.0 for y in res.yearly_projections[idx:])
    assert all(y.ending_balance >= 0 for y in res.yearly_projections)
