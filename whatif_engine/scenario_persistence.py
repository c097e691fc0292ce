# whatif_engine/scenario_persistence.py

from __future__ import annotations

from enum import Enum
from typing import Callable, Optional

from debug import *
from whatif_engine.life_events import LifeEventLedger
from whatif_engine.plan_types import (
    LifeEvent,
    PlanAssumptions,
    PlanDataError,
    RetirementProjection,
    ScenarioOverrides,
    WhatIfAdjustments,
)
from whatif_engine.whatif_transform import (
    EffectiveScenario,
    WhatIfMemo,
    resolve_effective_scenario,
)


class SaveState(Enum):
    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class ScenarioSession:
    """
    Transient what-if state for one plan view, and the save workflow.

    IDLE -> EDITING as soon as any adjustment, override or life event differs
    from its default. EDITING -> SAVING -> IDLE (update, scenario cleared),
    SAVED (new plan created) or ERROR (scenario kept for a retry).

    plan_store needs update(plan_id, dict) and create_fork(dict), both
    returning a PlanAssumptions. base_loader(plan) returns a fresh base
    projection and may raise PlanDataError.
    """

    def __init__(self, plan: PlanAssumptions,
                 base: Optional[RetirementProjection] = None,
                 blended_return_rate: float = 0.0,
                 plan_store=None,
                 base_loader: Optional[Callable[[PlanAssumptions], RetirementProjection]] = None):
        self.plan = plan
        self.base = base
        self.blended_return_rate = blended_return_rate
        self.plan_store = plan_store
        self.base_loader = base_loader

        self.adjustments = WhatIfAdjustments()
        self.overrides = ScenarioOverrides()
        self.ledger = LifeEventLedger()

        self.state = SaveState.IDLE
        self.last_error: Optional[PlanDataError] = None
        self.navigate_to: Optional[PlanAssumptions] = None
        self._memo = WhatIfMemo()

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------

    def _transition(self, new_state: SaveState) -> None:
        if new_state is not self.state:
            debug(INFO, "Scenario for plan '{}': {} -> {}",
                  self.plan.plan_id, self.state.value, new_state.value)
        self.state = new_state

    def _after_edit(self) -> None:
        if self.state is SaveState.SAVING:
            return
        self._transition(SaveState.EDITING if self.has_scenario_changes() else SaveState.IDLE)

    def has_scenario_changes(self) -> bool:
        return (not self.adjustments.is_default()
                or self.overrides.has_overrides()
                or bool(self.ledger))

    # ------------------------------------------------------------------
    # edits
    # ------------------------------------------------------------------

    def set_adjustments(self, adjustments: WhatIfAdjustments) -> None:
        self.adjustments = adjustments
        self._after_edit()

    def set_overrides(self, overrides: ScenarioOverrides) -> None:
        self.overrides = overrides
        self._after_edit()

    def add_life_event(self, event: LifeEvent) -> None:
        self.ledger = self.ledger.add(event)
        self._after_edit()

    def remove_life_event(self, event_id: str) -> None:
        self.ledger = self.ledger.remove(event_id)
        self._after_edit()

    def reset(self) -> None:
        """Back to the plan as stored: defaults everywhere, no error."""
        self.adjustments = WhatIfAdjustments()
        self.overrides = ScenarioOverrides()
        self.ledger = LifeEventLedger()
        self.last_error = None
        self._transition(SaveState.IDLE)

    def switch_plan(self, plan: PlanAssumptions,
                    base: Optional[RetirementProjection] = None,
                    blended_return_rate: Optional[float] = None) -> None:
        """Show another plan; all transient scenario state is discarded."""
        self.plan = plan
        self.base = base
        if blended_return_rate is not None:
            self.blended_return_rate = blended_return_rate
        self.navigate_to = None
        self._memo.clear()
        self.reset()

    # ------------------------------------------------------------------
    # derived values
    # ------------------------------------------------------------------

    def effective(self) -> EffectiveScenario:
        return resolve_effective_scenario(self.plan, self.adjustments, self.overrides)

    def life_events(self) -> tuple[LifeEvent, ...]:
        """Stored plan events plus the ones added in this scenario."""
        return LifeEventLedger.of(self.plan.life_events + self.ledger.events).events

    def projection(self) -> Optional[RetirementProjection]:
        if self.base is None:
            return None
        return self._memo.compute(self.base, self.plan, self.adjustments, self.overrides,
                                  self.life_events(), self.blended_return_rate)

    def update_payload(self) -> dict:
        eff = self.effective()
        return {
            "monthlyExpenses": eff.monthly_expenses,
            "pensionMonthly": eff.pension_monthly,
            "socialSecurityMonthly": eff.social_security_monthly,
            "otherIncomeMonthly": eff.other_income_monthly,
            "lifeExpectancy": eff.life_expectancy,
            "retirementAge": eff.retirement_age,
            "planningHorizonYears": eff.planning_horizon_years,
            "lifeEvents": [ev.to_dict() for ev in self.life_events()],
        }

    def fork_payload(self, name: Optional[str] = None) -> dict:
        payload = self.plan.to_dict()
        payload.pop("id", None)
        payload.update(self.update_payload())
        payload["name"] = name or f"{self.plan.name} (Scenario)"
        return payload

    # ------------------------------------------------------------------
    # network
    # ------------------------------------------------------------------

    def _can_save(self) -> bool:
        if self.state is SaveState.SAVING:
            debug(WARNING, "Save already in progress for plan '{}'; ignoring", self.plan.plan_id)
            return False
        if not self.has_scenario_changes():
            debug(INFO, "No scenario changes to save for plan '{}'", self.plan.plan_id)
            return False
        return True

    def refresh_base(self) -> bool:
        """Reload the base projection; on failure keep the previous one."""
        if self.base_loader is None:
            return False
        try:
            base = self.base_loader(self.plan)
        except PlanDataError as e:
            debug(ERROR, "Base projection refresh failed for plan '{}': {}", self.plan.plan_id, e)
            self.last_error = e
            self._transition(SaveState.ERROR)
            return False
        self.base = base
        self._memo.clear()
        return True

    def save_as_update(self) -> Optional[PlanAssumptions]:
        """PATCH the current plan with the resolved scenario values."""
        if not self._can_save():
            return None

        self._transition(SaveState.SAVING)
        try:
            saved = self.plan_store.update(self.plan.plan_id, self.update_payload())
        except PlanDataError as e:
            debug(ERROR, "Saving scenario to plan '{}' failed: {}", self.plan.plan_id, e)
            self.last_error = e
            self._transition(SaveState.ERROR)
            return None

        self.plan = saved
        self.reset()
        self.refresh_base()
        return saved

    def save_as_new(self, name: Optional[str] = None) -> Optional[PlanAssumptions]:
        """POST a copy of the plan with the scenario applied; this session is left as is."""
        if not self._can_save():
            return None

        self._transition(SaveState.SAVING)
        try:
            created = self.plan_store.create_fork(self.fork_payload(name))
        except PlanDataError as e:
            debug(ERROR, "Creating scenario plan from '{}' failed: {}", self.plan.plan_id, e)
            self.last_error = e
            self._transition(SaveState.ERROR)
            return None

        self.last_error = None
        self.navigate_to = created
        self._transition(SaveState.SAVED)
        return created
