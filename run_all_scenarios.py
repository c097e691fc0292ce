# run_all_scenarios.py

import os
import argparse
import subprocess
import sys
import matplotlib
from concurrent.futures import ProcessPoolExecutor, as_completed
from debug import *

# charts are only ever written to PNG files
matplotlib.use('Agg')

from whatif_engine.display_results import (
    graph_projection,
    print_projection,
    print_projection_csv,
)
from whatif_engine.holdings import blended_return_rate, holdings_from_dicts, split_holdings
from whatif_engine.life_events import LifeEventLedger, parse_life_events
from whatif_engine.plan_data_validation import (
    load_json_file,
    load_scenario_inputs,
    validate_projection_data,
)
from whatif_engine.plan_store_client import BaseProjectionClient, build_projection_request
from whatif_engine.plan_types import (
    PlanAssumptions,
    PlanDataError,
    RetirementProjection,
    ScenarioOverrides,
    WhatIfAdjustments,
)
from whatif_engine.quick_scenarios import (
    QuickScenario,
    combine_adjustments,
    compare_scenarios,
    scenario_impact,
)
from whatif_engine.whatif_transform import apply_what_if

OUTPUT_DIR = "out"
DATA_DIR = "data"
PLAN_DIR = os.path.join(DATA_DIR, "plans")
PROJECTION_DIR = os.path.join(DATA_DIR, "projections")
SCENARIO_DIR = os.path.join(DATA_DIR, "scenarios")


def _resolve_path(arg: str, sub_dir: str) -> str:
    """
    Accept absolute/existing paths; otherwise look in data/<sub_dir>/ then data/.
    """
    if os.path.isabs(arg) or os.path.exists(arg):
        return arg
    cand = os.path.join(sub_dir, arg)
    if os.path.exists(cand):
        return cand
    return os.path.join(DATA_DIR, arg)


def _default_projection_path(plan_filepath: str) -> str:
    stem = os.path.splitext(os.path.basename(plan_filepath))[0]
    return os.path.join(PROJECTION_DIR, f"{stem}_projection.json")


def load_base_projection(plan, plan_doc, projection_filepath=None, api_url=None) -> RetirementProjection:
    """
    The as-planned projection comes from the projection service when api_url
    is given, otherwise from a stored projection file.
    """
    if api_url:
        split = split_holdings(holdings_from_dicts(plan_doc.get("holdings")))
        request = build_projection_request(plan, split, plan_doc.get("portfolioIds") or [])
        return BaseProjectionClient(api_url).compute(plan.plan_id, request)

    doc = load_json_file(projection_filepath)
    if doc is None:
        raise ValueError(f"Base projection {projection_filepath} could not be loaded")
    errors = validate_projection_data(doc, projection_filepath)
    if errors:
        for e in errors:
            print("ERROR:", e)
        raise ValueError(f"Base projection {projection_filepath} is invalid")
    return RetirementProjection.from_dict(doc["data"])


def run_and_display(plan_filepath, scenario, projection_filepath=None, api_url=None,
                    print_output=False, open_graph=False):
    print(f"\n=== Running what-if for: {plan_filepath} + {scenario} ===")
    loaded = load_scenario_inputs(plan_filepath, scenario)
    if loaded is None:
        print("Validation failed. Skipping this file.")
        return
    plan_doc, scenario_doc = loaded

    plan = PlanAssumptions.from_dict(plan_doc["plan"])
    holdings = holdings_from_dicts(plan_doc.get("holdings"))
    rate = blended_return_rate(plan, holdings)
    dump_data(plan_doc)

    base = load_base_projection(plan, plan_doc,
                                projection_filepath or _default_projection_path(plan_filepath),
                                api_url)

    quick = sorted((QuickScenario.from_dict(q) for q in scenario_doc.get("quickScenarios") or []),
                   key=lambda q: q.sort_order)
    adjustments = combine_adjustments(WhatIfAdjustments.from_dict(scenario_doc.get("adjustments")), quick)
    overrides = ScenarioOverrides.from_dict(scenario_doc.get("overrides"))
    ledger = LifeEventLedger.of(plan.life_events
                                + parse_life_events(scenario_doc.get("life_events"), scenario))
    debug(VERBOSE, "Adjustments {}; overrides {}; {} life events",
          adjustments.to_dict(), overrides.to_dict(), len(ledger))

    base_name = os.path.splitext(os.path.basename(scenario))[0]
    os.makedirs(OUTPUT_DIR, exist_ok=True)
    dump_life_events_to_csv(plan.name, ledger, os.path.join(OUTPUT_DIR, f"{base_name}_life_events.csv"))

    # default adjustments reproduce the base drawdown
    as_planned = apply_what_if(base, plan, WhatIfAdjustments(), ScenarioOverrides(),
                               plan.life_events, rate)

    variants = [("what_if", adjustments, overrides)]
    variants += [(q.id, q.as_adjustments(), None) for q in quick]
    projections = {"as_planned": as_planned}
    projections.update(compare_scenarios(base, plan, variants, rate, ledger.events))

    csv_prefix = os.path.join(OUTPUT_DIR, base_name)
    print_projection_csv(projections, filename_prefix=csv_prefix)

    if print_output:
        print_projection(projections)

    impact = scenario_impact(as_planned, projections["what_if"])
    print(f"Runway change: {impact.runway_years_delta:+g} years "
          f"(depletion age {impact.depletion_age_before} -> {impact.depletion_age_after})")
    if impact.liquidation_age is not None:
        print(f"Property liquidated at age {impact.liquidation_age} "
              f"with {impact.liquid_balance_at_liquidation:,.2f} liquid left")

    graph_file = os.path.join(OUTPUT_DIR, f"{base_name}.png")
    graph_projection(projections["what_if"], ledger.events, base=as_planned,
                     plan_name=plan.name or "Plan",
                     description=scenario_doc.get("description", "What-If Projection"),
                     save_path=graph_file)

    if open_graph:
        try:
            if sys.platform.startswith('darwin'):
                subprocess.call(('open', graph_file))
            elif os.name == 'nt':
                os.startfile(graph_file)
            elif os.name == 'posix':
                subprocess.call(('xdg-open', graph_file))
        except OSError as e:
            print(f"Failed to open graph: {e}")


def _worker_run_one(args_tuple):
    """
    Top-level function so it's picklable for multiprocessing.
    args_tuple: (plan_filepath, scenario, projection_filepath, api_url, print_output, debug_level)
    """
    plan_filepath, scenario, projection_filepath, api_url, print_output, level = args_tuple
    set_debug_level(level)
    try:
        run_and_display(
            plan_filepath=plan_filepath,
            scenario=scenario,
            projection_filepath=projection_filepath,
            api_url=api_url,
            print_output=print_output,
            open_graph=False,
        )
        return (scenario, True, "")
    except (PlanDataError, ValueError, OSError) as e:
        return (scenario, False, str(e))


def main():
    parser = argparse.ArgumentParser(description="Run what-if scenarios against a retirement plan.")
    parser.add_argument("-p", "--print", action="store_true", help="Print the projections to screen")
    parser.add_argument("-o", "--open", action="store_true", help="Open PNG output after generation")
    parser.add_argument("--plan", help="Plan file to process (looked up in 'data/plans')")
    parser.add_argument("-f", "--file", action="append",
                        help="Process only specific scenario file(s). Repeatable: --file A.json --file B.json (also supports comma-separated).")
    parser.add_argument("--projection", help="Stored base projection file (default: data/projections/<plan>_projection.json)")
    parser.add_argument("--api", help="Projection service base URL; fetch the base projection instead of reading a file")
    parser.add_argument("-j", "--jobs", type=int, default=8, help="Number of parallel worker processes (1 = serial)")
    parser.add_argument("-d", "--debug", choices=["error", "warn", "info", "vrbs", "vvrbs", "vvvrbs"], help="Debug verbosity level", default="info")

    args = parser.parse_args()

    level_map = {
        "error": ERROR,
        "warn": WARNING,
        "info": INFO,
        "vrbs": VERBOSE,
        "vvrbs": VVERBOSE,
        "vvvrbs": VVVERBOSE,
    }
    set_debug_level(level_map[args.debug])

    if not args.plan:
        print("Plan --plan option required")
        return 1

    if args.file:
        # args.file is repeatable; also allow comma-separated entries
        requested = []
        for item in args.file:
            if not item:
                continue
            requested.extend(p.strip() for p in item.split(",") if p.strip())

        scenario_paths = []
        missing = []
        for f in requested:
            cand = _resolve_path(f, SCENARIO_DIR)
            if os.path.exists(cand):
                scenario_paths.append(cand)
            else:
                missing.append(f)

        if missing:
            print(f"ERROR: One or more --file entries not found: {missing}")
            return 1
    else:
        # Default: all scenarios in data/scenarios/
        scenario_paths = sorted(
            os.path.join(SCENARIO_DIR, f)
            for f in os.listdir(SCENARIO_DIR)
            if f.endswith(".json")
        )

    plan_path = _resolve_path(args.plan, PLAN_DIR)
    projection_path = _resolve_path(args.projection, PROJECTION_DIR) if args.projection else None

    # Parallel mode: never auto-open graphs.
    open_graph = bool(args.open) and (not args.jobs or args.jobs <= 1)

    failures = 0
    if args.jobs and args.jobs > 1 and len(scenario_paths) > 1:
        jobs = max(1, int(args.jobs))
        work = [
            (plan_path, sp, projection_path, args.api, args.print, get_debug_level())
            for sp in scenario_paths
        ]
        print(f"Running {len(work)} scenario(s) with {jobs} parallel worker(s)...")
        with ProcessPoolExecutor(max_workers=jobs) as ex:
            futs = [ex.submit(_worker_run_one, w) for w in work]
            for fut in as_completed(futs):
                scen, ok, err = fut.result()
                if ok:
                    print(f"[OK]   {os.path.basename(scen)}")
                else:
                    failures += 1
                    print(f"[FAIL] {os.path.basename(scen)}: {err}")
        if failures:
            print(f"\nDone with {failures} failure(s).")
        else:
            print("\nDone. All scenarios succeeded.")
    else:
        for sp in scenario_paths:
            try:
                run_and_display(plan_path,
                                sp,
                                projection_filepath=projection_path,
                                api_url=args.api,
                                print_output=args.print,
                                open_graph=open_graph)
            except (PlanDataError, ValueError) as e:
                failures += 1
                print(f"[FAIL] {os.path.basename(sp)}: {e}")

    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
