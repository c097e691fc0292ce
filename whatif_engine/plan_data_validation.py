# whatif_engine/plan_data_validation.py

from __future__ import annotations
import json
import math
import os
import sys

from json.decoder import JSONDecodeError
from typing import Optional

from whatif_engine.life_events import validate_life_events
from whatif_engine.plan_types import (
    OVERRIDE_FIELDS,
    PlanAssumptions,
    PlanDataError,
    RetirementProjection,
    ScenarioOverrides,
    is_finite_number,
)

REQUIRED_PLAN_FIELDS = ["monthlyExpenses", "inflationRate", "lifeExpectancy"]
ADJUSTMENT_FIELDS = ["retirementAgeOffset", "expensesPercent", "returnRateOffset",
                     "inflationOffset", "contributionPercent"]


# -----------------------------------------------------------------------------
# File type discrimination (NO heuristics)
# -----------------------------------------------------------------------------
#
# The file declares its intent via schema_type, and we validate contents
# accordingly.
#
#   Plan file:        { "schema_type": "plan",       "plan": {...}, "holdings": [...] }
#   Projection file:  { "schema_type": "projection", "data": {...} }
#   Scenario file:    { "schema_type": "scenario",   "description": ..., ... }
#
SCHEMA_TYPE_FIELD = "schema_type"
SCHEMA_TYPE_PLAN = "plan"
SCHEMA_TYPE_PROJECTION = "projection"
SCHEMA_TYPE_SCENARIO = "scenario"
ALLOWED_SCHEMA_TYPES = {SCHEMA_TYPE_PLAN, SCHEMA_TYPE_PROJECTION, SCHEMA_TYPE_SCENARIO}


def _get_schema_type(obj: object) -> str | None:
    if not isinstance(obj, dict):
        return None
    st = obj.get(SCHEMA_TYPE_FIELD)
    return st if isinstance(st, str) else None


def _check_schema_type(obj: dict, expected: str, path: str) -> list[str]:
    st = _get_schema_type(obj)
    if st is None:
        return [f"{path}: missing required top-level '{SCHEMA_TYPE_FIELD}' (expected '{expected}')"]
    if st != expected:
        return [f"{path}: {SCHEMA_TYPE_FIELD} is '{st}', expected '{expected}'"]
    return []


# -----------------------------------------------------------------------------
# Plan assumptions
# -----------------------------------------------------------------------------

_NUMERIC_PLAN_FIELDS = (
    "monthly_expenses", "inflation_rate", "pension_monthly", "social_security_monthly",
    "other_income_monthly", "working_income_monthly", "working_expenses_monthly",
    "investment_allocation_percent", "cash_return_rate", "equity_return_rate",
    "housing_return_rate", "cash_allocation", "equity_allocation", "housing_allocation",
)

_NON_NEGATIVE_PLAN_FIELDS = (
    "monthly_expenses", "pension_monthly", "social_security_monthly", "other_income_monthly",
    "working_income_monthly", "working_expenses_monthly",
)


def check_plan_assumptions(plan: PlanAssumptions, context: str = "(plan)") -> list[str]:
    """
    Reject plans the drawdown would only turn into a degenerate projection.
    The simulator itself never raises, so this is where nonsense is caught.
    """
    errors: list[str] = []

    if plan.retirement_age >= plan.life_expectancy:
        errors.append(f"{context}: retirementAge ({plan.retirement_age}) must be below "
                      f"lifeExpectancy ({plan.life_expectancy})")
    if plan.current_age is not None and plan.current_age > plan.life_expectancy:
        errors.append(f"{context}: currentAge ({plan.current_age}) is past lifeExpectancy")

    for name in _NUMERIC_PLAN_FIELDS:
        v = getattr(plan, name)
        if not math.isfinite(v):
            errors.append(f"{context}: {name} must be a finite number (got {v})")
        elif name in _NON_NEGATIVE_PLAN_FIELDS and v < 0:
            errors.append(f"{context}: {name} must not be negative (got {v})")

    if math.isfinite(plan.investment_allocation_percent) and not 0 <= plan.investment_allocation_percent <= 1:
        errors.append(f"{context}: investment_allocation_percent is a fraction between 0 and 1 "
                      f"(got {plan.investment_allocation_percent})")

    return errors


def _validate_holdings(holdings, path: str) -> list[str]:
    if holdings is None:
        return []
    if not isinstance(holdings, list):
        return [f"{path}: holdings must be a list"]
    errors = []
    for idx, h in enumerate(holdings):
        if not isinstance(h, dict):
            errors.append(f"{path}: holdings[{idx}] must be an object")
            continue
        if not isinstance(h.get("category"), str):
            errors.append(f"{path}: holdings[{idx}] missing 'category'")
        if not is_finite_number(h.get("marketValue")):
            errors.append(f"{path}: holdings[{idx}] marketValue must be a number")
        rate = h.get("expectedReturnRate")
        if rate is not None and not is_finite_number(rate):
            errors.append(f"{path}: holdings[{idx}] expectedReturnRate must be a number when present")
    return errors


def validate_plan_data(doc: dict, plan_path: str = "(plan)") -> list[str]:
    """Return a list of validation errors for a plan file (empty == ok)."""
    if not isinstance(doc, dict):
        return [f"{plan_path}: plan JSON must be an object"]

    errors = _check_schema_type(doc, SCHEMA_TYPE_PLAN, plan_path)
    if errors:
        return errors

    raw = doc.get("plan")
    if not isinstance(raw, dict):
        return [f"{plan_path}: 'plan' must be an object"]

    missing = [k for k in REQUIRED_PLAN_FIELDS if k not in raw]
    if missing:
        return [f"{plan_path}: plan missing fields: {missing}"]

    for key in REQUIRED_PLAN_FIELDS:
        if not is_finite_number(raw.get(key)):
            errors.append(f"{plan_path}: plan.{key} must be a number")

    errors.extend(validate_life_events(raw.get("lifeEvents"), plan_path))
    errors.extend(_validate_holdings(doc.get("holdings"), plan_path))

    pids = doc.get("portfolioIds")
    if pids is not None and not (isinstance(pids, list) and all(isinstance(p, str) for p in pids)):
        errors.append(f"{plan_path}: portfolioIds must be a list of strings")

    if errors:
        return errors

    try:
        plan = PlanAssumptions.from_dict(raw)
    except PlanDataError as e:
        return [f"{plan_path}: {e}"]
    except (TypeError, ValueError) as e:
        return [f"{plan_path}: plan could not be read: {e}"]

    return check_plan_assumptions(plan, plan_path)


def validate_projection_data(doc: dict, projection_path: str = "(projection)") -> list[str]:
    """Return a list of validation errors for a stored base projection file."""
    if not isinstance(doc, dict):
        return [f"{projection_path}: projection JSON must be an object"]

    errors = _check_schema_type(doc, SCHEMA_TYPE_PROJECTION, projection_path)
    if errors:
        return errors

    data = doc.get("data")
    if not isinstance(data, dict):
        return [f"{projection_path}: 'data' must be an object"]

    for key in ("liquidAssets", "nonSpendableAtRetirement"):
        if not is_finite_number(data.get(key)):
            errors.append(f"{projection_path}: data.{key} must be a number")

    yearly = data.get("yearlyProjections")
    if not isinstance(yearly, list):
        errors.append(f"{projection_path}: data.yearlyProjections must be a list")
    else:
        for idx, y in enumerate(yearly):
            if not isinstance(y, dict) or "year" not in y:
                errors.append(f"{projection_path}: yearlyProjections[{idx}] must be an object with 'year'")

    pra = data.get("preRetirementAccumulation")
    if pra is not None and not isinstance(pra, dict):
        errors.append(f"{projection_path}: preRetirementAccumulation must be an object when present")

    if errors:
        return errors

    try:
        RetirementProjection.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        errors.append(f"{projection_path}: projection could not be read: {e}")
    return errors


def _validate_adjustments(adj, path: str) -> list[str]:
    if not isinstance(adj, dict):
        return [f"{path}: adjustments must be an object when present"]
    errors = []
    extras = [k for k in adj if k not in ADJUSTMENT_FIELDS and k != "equityPercent"]
    if extras:
        errors.append(f"{path}: unknown adjustment fields: {extras}")
    for k in ADJUSTMENT_FIELDS:
        if k in adj and not is_finite_number(adj[k]):
            errors.append(f"{path}: adjustments.{k} must be a number")
    if "retirementAgeOffset" in adj and is_finite_number(adj["retirementAgeOffset"]) \
            and float(adj["retirementAgeOffset"]) != int(adj["retirementAgeOffset"]):
        errors.append(f"{path}: adjustments.retirementAgeOffset must be a whole number of years")
    equity = adj.get("equityPercent")
    if equity is not None and not (is_finite_number(equity) and 0 <= float(equity) <= 100):
        errors.append(f"{path}: adjustments.equityPercent must be null or a number from 0 to 100")
    return errors


def _validate_overrides(ov, path: str) -> list[str]:
    if not isinstance(ov, dict):
        return [f"{path}: overrides must be an object when present"]
    errors = []
    for wire in OVERRIDE_FIELDS.values():
        v = ov.get(wire)
        if v is not None and not is_finite_number(v):
            errors.append(f"{path}: overrides.{wire} must be a number or null")
    if errors:
        return errors
    try:
        ScenarioOverrides.from_dict(ov)
    except PlanDataError as e:
        errors.append(f"{path}: {e}")
    return errors


def validate_scenario_data(scenario: dict, scenario_path: str = "(scenario)") -> list[str]:
    """Return a list of validation errors for a scenario file (empty == ok)."""
    if not isinstance(scenario, dict):
        return [f"{scenario_path}: scenario JSON must be an object"]

    errors = _check_schema_type(scenario, SCHEMA_TYPE_SCENARIO, scenario_path)
    if errors:
        return errors

    if "description" not in scenario:
        return [f"{scenario_path}: missing top-level fields: ['description']"]

    if "adjustments" in scenario:
        errors.extend(_validate_adjustments(scenario["adjustments"], scenario_path))
    if "overrides" in scenario:
        errors.extend(_validate_overrides(scenario["overrides"], scenario_path))

    quick = scenario.get("quickScenarios")
    if quick is not None:
        if not isinstance(quick, list):
            errors.append(f"{scenario_path}: quickScenarios must be a list")
        else:
            for idx, q in enumerate(quick):
                if not isinstance(q, dict) or not q.get("name"):
                    errors.append(f"{scenario_path}: quickScenarios[{idx}] must be an object with a 'name'")
                else:
                    errors.extend(_validate_adjustments(
                        {k: v for k, v in q.items() if k in ADJUSTMENT_FIELDS},
                        f"{scenario_path}: {q['name']}"))

    errors.extend(validate_life_events(scenario.get("life_events", []), scenario_path))
    return errors


# -----------------------------------------------------------------------------
# Loading
# -----------------------------------------------------------------------------

def load_json_file(path: str) -> Optional[dict]:
    """Load a JSON file, printing an ERROR line (and the offending line) on failure."""
    if not os.path.exists(path):
        print(f"ERROR: File {path} does not exist.")
        return None
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except JSONDecodeError as e:
        line = e.lineno
        print(f"ERROR: JSON syntax error in {path} on line {line}: {e.msg}")
        with open(path, 'r') as f:
            lines = f.readlines()
            if 0 < line <= len(lines):
                print(f"--> {lines[line-1].rstrip()}")
        return None


def load_scenario_inputs(plan_filepath: str, scenario_filepath: str) -> Optional[tuple[dict, dict]]:
    """
    Load and validate a plan file and a scenario file.
    Returns (plan_doc, scenario_doc), or None after printing the problems.
    """
    plan_doc = load_json_file(plan_filepath)
    if plan_doc is None:
        return None

    scenario = load_json_file(scenario_filepath)
    if scenario is None:
        return None

    plan_errors = validate_plan_data(plan_doc, plan_filepath)
    if plan_errors:
        for e in plan_errors:
            print("ERROR:", e)
        return None

    scen_errors = validate_scenario_data(scenario, scenario_filepath)
    if scen_errors:
        for e in scen_errors:
            print("ERROR:", e)
        return None

    return plan_doc, scenario


def validate_files_in_dir(data_dir: str) -> tuple[list[str], list[str]]:
    """Validate all *.json files under a data directory.

    Looks directly under data_dir and in its plans/, projections/ and
    scenarios/ subdirectories.

    Classification rule (NO heuristics):
      - schema_type == "plan"        -> validate_plan_data()
      - schema_type == "projection"  -> validate_projection_data()
      - schema_type == "scenario"    -> validate_scenario_data()
      - missing/unknown              -> error

    Returns:
      (ok_paths, error_messages)
    """
    ok: list[str] = []
    errs: list[str] = []

    if not os.path.isdir(data_dir):
        return ([], [f"ERROR: Data directory does not exist: {data_dir}"])

    paths: list[str] = []

    def add_json_files(dir_path: str):
        if not os.path.isdir(dir_path):
            return
        for f in os.listdir(dir_path):
            if f.lower().endswith(".json"):
                paths.append(os.path.join(dir_path, f))

    add_json_files(data_dir)
    for sub in ("plans", "projections", "scenarios"):
        add_json_files(os.path.join(data_dir, sub))

    paths = sorted(set(paths))

    def load(path):
        try:
            with open(path, "r") as fp:
                return json.load(fp)
        except JSONDecodeError as e:
            errs.append(f"ERROR: {path}: JSON syntax error line {e.lineno}: {e.msg}")
            return None
        except OSError as e:
            errs.append(f"ERROR: {path}: failed to read: {e}")
            return None

    validators = {
        SCHEMA_TYPE_PLAN: validate_plan_data,
        SCHEMA_TYPE_PROJECTION: validate_projection_data,
        SCHEMA_TYPE_SCENARIO: validate_scenario_data,
    }

    for p in paths:
        data = load(p)
        if data is None:
            continue

        st = _get_schema_type(data)
        if st not in ALLOWED_SCHEMA_TYPES:
            if st is None:
                problems = [
                    f"{p}: missing required top-level '{SCHEMA_TYPE_FIELD}' "
                    f"(expected one of: {sorted(ALLOWED_SCHEMA_TYPES)})"
                ]
            else:
                problems = [
                    f"{p}: invalid {SCHEMA_TYPE_FIELD} '{st}' "
                    f"(expected one of: {sorted(ALLOWED_SCHEMA_TYPES)})"
                ]
        else:
            problems = validators[st](data, p)

        if problems:
            errs.extend([msg if "ERROR" in msg else f"ERROR: {msg}" for msg in problems])
        else:
            ok.append(p)

    return (ok, errs)


if __name__ == "__main__":
    # Usage:
    #   python -m whatif_engine.plan_data_validation [data_dir]
    data_dir = sys.argv[1] if len(sys.argv) > 1 else "data"
    ok_paths, error_messages = validate_files_in_dir(data_dir)
    for p in ok_paths:
        print(f"OK: {p}")
    for e in error_messages:
        print(e)
    sys.exit(1 if error_messages else 0)
