#!/usr/bin/env python3
"""
Regression validations for the what-if engine.

Goals:
  - Exercise existing validators + assumptions about project layout.
  - Check the engine against the stored example projection.
  - Provide a repeatable, local, scriptable set of checks that can grow over time.

Run:
  python validations/validate_regressions.py
"""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from typing import Callable, List


# Ensure project root is on sys.path when run as a script
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


from whatif_engine.holdings import blended_return_rate, holdings_from_dicts  # noqa: E402
from whatif_engine.life_events import parse_life_events  # noqa: E402
from whatif_engine.plan_data_validation import (  # noqa: E402
    validate_files_in_dir,
    validate_plan_data,
    validate_scenario_data,
)
from whatif_engine.plan_types import (  # noqa: E402
    ErrorKind,
    PlanAssumptions,
    PlanDataError,
    RetirementProjection,
    ScenarioOverrides,
    WhatIfAdjustments,
)
from whatif_engine.whatif_transform import apply_what_if  # noqa: E402

DATA_DIR = os.path.join(PROJECT_ROOT, "data")


@dataclass
class TestResult:
    name: str
    ok: bool
    details: str = ""


def _fail(name: str, msg: str) -> TestResult:
    return TestResult(name=name, ok=False, details=msg)


def _pass(name: str, msg: str = "") -> TestResult:
    return TestResult(name=name, ok=True, details=msg)


def test_validate_data_dir() -> TestResult:
    name = "validate_files_in_dir('data') returns zero errors"
    ok, errs = validate_files_in_dir(DATA_DIR)
    if errs:
        preview = "\n".join(errs[:15])
        return _fail(name, f"Expected 0 errors, got {len(errs)}. First errors:\n{preview}")
    if not ok:
        return _fail(name, "Expected some ok files, got 0.")
    return _pass(name, f"ok={len(ok)} errs={len(errs)}")


def test_example_projection_identity() -> TestResult:
    name = "default adjustments reproduce the stored example projection"
    with open(os.path.join(DATA_DIR, "plans", "example_plan.json")) as f:
        plan_doc = json.load(f)
    with open(os.path.join(DATA_DIR, "projections", "example_plan_projection.json")) as f:
        proj_doc = json.load(f)

    plan = PlanAssumptions.from_dict(plan_doc["plan"])
    base = RetirementProjection.from_dict(proj_doc)
    rate = blended_return_rate(plan, holdings_from_dicts(plan_doc.get("holdings")))
    mine = apply_what_if(base, plan, WhatIfAdjustments(), ScenarioOverrides(), plan.life_events, rate)

    worst = 0.0
    for a, b in zip(mine.yearly_projections, base.yearly_projections):
        worst = max(worst, abs(a.ending_balance - b.ending_balance), abs(a.total_wealth - b.total_wealth))
    if len(mine.yearly_projections) != len(base.yearly_projections):
        return _fail(name, f"Expected {len(base.yearly_projections)} years, got {len(mine.yearly_projections)}")
    if worst > 0.1:
        return _fail(name, f"Largest balance difference {worst:.4f} exceeds 0.10")
    return _pass(name, f"years={len(mine.yearly_projections)} max_diff={worst:.4f}")


def test_scenario_wrong_schema_type() -> TestResult:
    name = "scenario validator fails when schema_type != 'scenario'"
    errs = validate_scenario_data({"schema_type": "plan", "description": "bad scenario"}, "(in-memory)")
    if not errs:
        return _fail(name, "Expected errors but got none.")
    joined = "\n".join(errs)
    if "schema_type" not in joined:
        return _fail(name, f"Expected schema_type error. Got:\n{joined}")
    return _pass(name, "Got expected schema_type error.")


def test_plan_retirement_after_life_expectancy() -> TestResult:
    name = "plan validator rejects retirementAge >= lifeExpectancy"
    obj = {
        "schema_type": "plan",
        "plan": {"retirementAge": 92, "lifeExpectancy": 90, "monthlyExpenses": 1000, "inflationRate": 0.02},
    }
    errs = validate_plan_data(obj, "(in-memory)")
    if not errs:
        return _fail(name, "Expected errors but got none.")
    return _pass(name, errs[0])


def test_malformed_life_events_string() -> TestResult:
    name = "malformed life events string raises MALFORMED_LIFE_EVENTS"
    try:
        parse_life_events('[{"age": 70, "amount": 5, "eventType": "income"')
    except PlanDataError as e:
        if e.kind is not ErrorKind.MALFORMED_LIFE_EVENTS:
            return _fail(name, f"Wrong error kind: {e.kind}")
        return _pass(name, str(e))
    return _fail(name, "Expected PlanDataError but parsing succeeded.")


def run_all(tests: List[Callable[[], TestResult]]) -> int:
    results: List[TestResult] = []
    for t in tests:
        try:
            results.append(t())
        except Exception as e:
            results.append(_fail(t.__name__, f"Unhandled exception: {e}"))

    failed = [r for r in results if not r.ok]
    for r in results:
        status = "PASS" if r.ok else "FAIL"
        print(f"{status}: {r.name}")
        if r.details:
            print(f"  {r.details}".replace("\n", "\n  "))

    print(f"\nSummary: {len(results) - len(failed)} passed, {len(failed)} failed, {len(results)} total")
    return 0 if not failed else 1


def main() -> int:
    tests = [
        test_validate_data_dir,
        test_example_projection_identity,
        test_scenario_wrong_schema_type,
        test_plan_retirement_after_life_expectancy,
        test_malformed_life_events_string,
    ]
    return run_all(tests)


if __name__ == "__main__":
    raise SystemExit(main())
