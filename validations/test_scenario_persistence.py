# validations/test_scenario_persistence.py

from dataclasses import replace

import pytest

from whatif_engine.plan_types import (
    ErrorKind,
    LifeEvent,
    PlanAssumptions,
    PlanDataError,
    ScenarioOverrides,
    WhatIfAdjustments,
)
from whatif_engine.scenario_persistence import SaveState, ScenarioSession
from whatif_engine.whatif_transform import apply_what_if

RATE = 0.05
ROOF = LifeEvent(id="roof", age=70, amount=25000.0, description="New roof")


class FakePlanStore:
    """Applies payloads to the stored plan; optionally fails the next calls."""

    def __init__(self, plan, failures=0):
        self.plan = plan
        self.failures = failures
        self.updates = []
        self.forks = []

    def _maybe_fail(self):
        if self.failures:
            self.failures -= 1
            raise PlanDataError(ErrorKind.NETWORK, "connection refused")

    def update(self, plan_id, payload):
        self.updates.append((plan_id, payload))
        self._maybe_fail()
        self.plan = PlanAssumptions.from_dict({**self.plan.to_dict(), **payload})
        return self.plan

    def create_fork(self, payload):
        self.forks.append(payload)
        self._maybe_fail()
        return PlanAssumptions.from_dict({**payload, "id": "plan-new"})


@pytest.fixture
def store(plan):
    return FakePlanStore(plan)


@pytest.fixture
def session(plan, base, store):
    loaded = []

    def loader(p):
        loaded.append(p)
        return replace(base, as_of_date="refreshed")

    s = ScenarioSession(plan, base, RATE, plan_store=store, base_loader=loader)
    s.loaded = loaded
    return s


def test_edits_move_between_idle_and_editing(session):
    assert session.state is SaveState.IDLE
    assert not session.has_scenario_changes()

    session.set_adjustments(WhatIfAdjustments(expenses_percent=110))
    assert session.state is SaveState.EDITING
    session.set_adjustments(WhatIfAdjustments())
    assert session.state is SaveState.IDLE

    session.set_overrides(ScenarioOverrides(pension_monthly=0.0))
    assert session.has_scenario_changes()
    session.set_overrides(ScenarioOverrides())

    session.add_life_event(ROOF)
    assert session.state is SaveState.EDITING
    session.remove_life_event("roof")
    assert session.state is SaveState.IDLE


def test_projection_is_memoized_what_if(session, plan, base):
    assert session.projection() == base

    session.set_adjustments(WhatIfAdjustments(return_rate_offset=-1))
    session.add_life_event(ROOF)
    first = session.projection()
    assert first is session.projection()
    assert first == apply_what_if(base, plan, WhatIfAdjustments(return_rate_offset=-1),
                                  ScenarioOverrides(), (ROOF,), RATE)


def test_update_payload_uses_resolved_values(session):
    session.set_adjustments(WhatIfAdjustments(retirement_age_offset=-2, expenses_percent=110))
    session.set_overrides(ScenarioOverrides(monthly_expenses=4500.0, social_security_monthly=1200.0))
    session.add_life_event(ROOF)

    payload = session.update_payload()
    assert payload["monthlyExpenses"] == 4500.0
    assert payload["socialSecurityMonthly"] == 1200.0
    assert payload["pensionMonthly"] == 500.0
    assert payload["lifeExpectancy"] == 90
    assert payload["retirementAge"] == 63
    assert payload["planningHorizonYears"] == 90 - 63
    assert payload["lifeEvents"] == [ROOF.to_dict()]


def test_save_as_update_resets_and_refreshes(session, store):
    session.set_overrides(ScenarioOverrides(monthly_expenses=3000.0))

    saved = session.save_as_update()

    assert saved.monthly_expenses == 3000.0
    assert store.updates[0][0] == "plan-1"
    assert session.plan is saved
    assert session.state is SaveState.IDLE
    assert not session.has_scenario_changes()
    assert session.loaded == [saved]
    assert session.base.as_of_date == "refreshed"


@pytest.mark.parametrize("adjustments, overrides, expected_age", [
    (WhatIfAdjustments(retirement_age_offset=-2), ScenarioOverrides(), 63),
    (WhatIfAdjustments(retirement_age_offset=3), ScenarioOverrides(), 68),
    (WhatIfAdjustments(retirement_age_offset=1), ScenarioOverrides(target_retirement_age=60), 60),
])
def test_save_as_update_persists_retirement_age(session, store, adjustments, overrides, expected_age):
    session.set_adjustments(adjustments)
    session.set_overrides(overrides)

    saved = session.save_as_update()

    assert saved.retirement_age == expected_age
    assert store.plan.retirement_age == expected_age
    assert session.plan.retirement_age == expected_age
    # the reset session resolves to the saved age
    assert session.effective().retirement_age == expected_age
    assert session.effective().planning_horizon_years == 90 - expected_age


def test_failed_save_keeps_scenario_for_retry(session, store):
    store.failures = 1
    adj = WhatIfAdjustments(expenses_percent=80)
    session.set_adjustments(adj)
    session.add_life_event(ROOF)

    assert session.save_as_update() is None
    assert session.state is SaveState.ERROR
    assert session.last_error.kind is ErrorKind.NETWORK
    assert session.adjustments == adj
    assert session.ledger.get("roof") == ROOF

    assert session.save_as_update() is not None
    assert session.state is SaveState.IDLE
    assert session.last_error is None
    assert len(store.updates) == 2


def test_save_is_ignored_while_saving_or_unchanged(session, store):
    assert session.save_as_update() is None
    assert session.save_as_new() is None

    session.set_adjustments(WhatIfAdjustments(contribution_percent=50))
    session.state = SaveState.SAVING
    assert session.save_as_update() is None
    assert session.save_as_new() is None
    # edits land but the in-flight state is kept
    session.set_adjustments(WhatIfAdjustments())
    assert session.state is SaveState.SAVING

    assert store.updates == []
    assert store.forks == []


def test_save_as_new_forks_and_leaves_session(session, store, plan):
    session.set_adjustments(WhatIfAdjustments(retirement_age_offset=2))
    session.set_overrides(ScenarioOverrides(life_expectancy=95))

    created = session.save_as_new()

    payload = store.forks[0]
    assert "id" not in payload
    assert payload["name"] == "Test Plan (Scenario)"
    assert payload["retirementAge"] == 67
    assert payload["planningHorizonYears"] == 28
    assert payload["lifeExpectancy"] == 95
    assert payload["workingIncomeMonthly"] == plan.working_income_monthly

    assert created.plan_id == "plan-new"
    assert created.retirement_age == 67
    assert session.navigate_to is created
    assert session.state is SaveState.SAVED
    assert session.plan is plan
    assert session.adjustments.retirement_age_offset == 2

    assert session.fork_payload("Bridge years")["name"] == "Bridge years"


def test_failed_fork_goes_to_error(session, store):
    store.failures = 1
    session.set_adjustments(WhatIfAdjustments(inflation_offset=1))
    assert session.save_as_new() is None
    assert session.state is SaveState.ERROR
    assert session.navigate_to is None
    assert session.adjustments.inflation_offset == 1


def test_refresh_failure_keeps_prior_base(plan, base, store):
    def broken(_):
        raise PlanDataError(ErrorKind.NETWORK, "timeout")

    s = ScenarioSession(plan, base, RATE, plan_store=store, base_loader=broken)
    s.set_overrides(ScenarioOverrides(other_income_monthly=300.0))

    saved = s.save_as_update()
    assert saved is not None
    assert s.base is base
    assert s.state is SaveState.ERROR
    assert s.last_error.kind is ErrorKind.NETWORK


def test_switch_plan_discards_transient_state(session, make_plan, make_base):
    session.set_adjustments(WhatIfAdjustments(expenses_percent=120))
    session.add_life_event(ROOF)

    other = make_plan(plan_id="plan-2", name="Other")
    other_base = make_base(other, liquid=250000.0)
    session.switch_plan(other, other_base, 0.04)

    assert session.plan is other
    assert session.state is SaveState.IDLE
    assert not session.has_scenario_changes()
    assert session.projection() == apply_what_if(other_base, other, WhatIfAdjustments(),
                                                 ScenarioOverrides(), (), 0.04)


def test_stored_plan_events_are_kept_alongside_new_ones(make_plan, make_base, store):
    stored = LifeEvent(id="trip", age=67, amount=9000.0, description="Trip")
    p = make_plan(life_events=(stored,))
    s = ScenarioSession(p, make_base(p), RATE, plan_store=store)

    assert not s.has_scenario_changes()
    s.add_life_event(ROOF)
    assert [e.id for e in s.life_events()] == ["trip", "roof"]
    assert [e["id"] for e in s.update_payload()["lifeEvents"]] == ["trip", "roof"]

    s.reset()
    assert s.state is SaveState.IDLE
    assert [e.id for e in s.life_events()] == ["trip"]
