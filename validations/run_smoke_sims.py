#!/usr/bin/env python3
"""
End-to-end checks for run_all_scenarios.py.

Each case runs the CLI in a subprocess against the example plan and then
reads back what it wrote to out/:
  - the as-planned and what-if CSVs (plus one per quick scenario)
  - the life-event ledger CSV and the PNG chart
  - the what-if series: expected columns, ages from the scenario's
    retirement age to its life expectancy, no negative balance, and at
    most one property sale with nothing left in property afterwards
  - the runway summary line printed by the runner

Numbers are not pinned here; validate_regressions.py covers the stored
projection identity.

Run:
  python validations/run_smoke_sims.py
"""

from __future__ import annotations

import os
import subprocess
import sys
import time
from dataclasses import dataclass, field
from typing import List, Optional

import pandas as pd

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
OUT_DIR = os.path.join(PROJECT_ROOT, "out")
RUNNER = os.path.join(PROJECT_ROOT, "run_all_scenarios.py")

WHAT_IF_COLUMNS = [
    "year", "age", "starting_balance", "investment_return", "withdrawals",
    "life_event_adjustment", "ending_balance", "inflation_adjusted_expenses",
    "non_spendable_value", "total_wealth", "total_income", "property_liquidated",
]


@dataclass
class SmokeCase:
    name: str
    scenario: str
    first_age: int
    last_age: int
    extra_args: List[str] = field(default_factory=list)
    variants: List[str] = field(default_factory=lambda: ["as_planned", "what_if"])
    expect_table: bool = False

    @property
    def stem(self) -> str:
        return os.path.splitext(self.scenario)[0]


def _fresh(path: str, since: float) -> bool:
    # small allowance for filesystem timestamp granularity
    return os.path.isfile(path) and os.stat(path).st_mtime >= since - 0.5


def _check_what_if_csv(case: SmokeCase) -> Optional[str]:
    frame = pd.read_csv(os.path.join(OUT_DIR, f"{case.stem}_what_if.csv"))

    missing = [c for c in WHAT_IF_COLUMNS if c not in frame.columns]
    if missing:
        return f"what_if CSV is missing columns {missing}"
    ages = frame["age"].tolist()
    if ages != list(range(case.first_age, case.last_age + 1)):
        return f"what_if ages run {ages[:1]}..{ages[-1:]}, expected {case.first_age}..{case.last_age}"
    if (frame["ending_balance"] < 0).any():
        return "what_if CSV has a negative ending balance"

    sold = frame.index[frame["property_liquidated"].astype(str) == "True"].tolist()
    if len(sold) > 1:
        return f"property liquidated {len(sold)} times"
    if sold and (frame.loc[sold[0] + 1:, "non_spendable_value"] != 0).any():
        return "property value remains after liquidation"
    return None


def _run_case(case: SmokeCase) -> tuple[bool, str]:
    cmd = [sys.executable, RUNNER, "--plan=example_plan.json", f"--file={case.scenario}",
           "--jobs=1", "-d", "warn"] + case.extra_args
    start = time.time()
    os.makedirs(OUT_DIR, exist_ok=True)

    proc = subprocess.run(cmd, cwd=PROJECT_ROOT, stdout=subprocess.PIPE,
                          stderr=subprocess.PIPE, text=True)
    context = f"cmd: {' '.join(cmd)}\nstdout:\n{proc.stdout}\nstderr:\n{proc.stderr}\n"

    if proc.returncode != 0:
        return False, f"Non-zero exit code {proc.returncode}.\n{context}"

    expected = [f"{case.stem}_{v}.csv" for v in case.variants]
    expected += [f"{case.stem}_life_events.csv", f"{case.stem}.png"]
    stale = [name for name in expected if not _fresh(os.path.join(OUT_DIR, name), start)]
    if stale:
        return False, f"Outputs not written: {stale}\n{context}"

    if "Runway change:" not in proc.stdout:
        return False, f"No runway summary printed.\n{context}"
    if case.expect_table and ("--- WHAT_IF ---" not in proc.stdout or "Runway:" not in proc.stdout):
        return False, f"Printed table is missing the what-if section.\n{context}"

    problem = _check_what_if_csv(case)
    if problem:
        return False, f"{problem}\n{context}"

    summary = next(line for line in proc.stdout.splitlines() if line.startswith("Runway change:"))
    return True, f"{len(expected)} outputs; {summary}"


def main() -> int:
    cases: List[SmokeCase] = [
        SmokeCase(name="As planned", scenario="scenario_base_retirement.json",
                  first_age=65, last_age=90),
        SmokeCase(name="Early retirement with printed table", scenario="scenario_early_retirement.json",
                  first_age=62, last_age=90, extra_args=["-p"], expect_table=True),
        SmokeCase(name="Stacked quick scenarios, explicit projection file",
                  scenario="scenario_market_downturn.json", first_age=65, last_age=90,
                  extra_args=["--projection=example_plan_projection.json"],
                  variants=["as_planned", "what_if", "downturn", "inflation"]),
        SmokeCase(name="Long-term care to 95", scenario="scenario_long_term_care.json",
                  first_age=65, last_age=95),
    ]

    failures = 0
    print("== what-if runner end-to-end checks ==")
    print(f"Runner: {RUNNER}")
    print(f"Out dir: {OUT_DIR}\n")

    for case in cases:
        ok, detail = _run_case(case)
        print(f"{'PASS' if ok else 'FAIL'}: {case.name}")
        print(f"  {detail}".replace("\n", "\n  "))
        failures += 0 if ok else 1

    print(f"\nSummary: {len(cases) - failures} passed, {failures} failed, {len(cases)} total")
    return 0 if failures == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
