# validations/test_run_all_scenarios.py

import csv
import json
import os

import pandas as pd

import run_all_scenarios as runner


def _paths(project_root, scenario):
    data = os.path.join(project_root, "data")
    return (os.path.join(data, "plans", "example_plan.json"),
            os.path.join(data, "scenarios", scenario),
            os.path.join(data, "projections", "example_plan_projection.json"))


def test_run_writes_csv_png_and_ledger(tmp_path, monkeypatch, project_root):
    monkeypatch.setattr(runner, "OUTPUT_DIR", str(tmp_path))
    plan_path, scenario_path, projection_path = _paths(project_root, "scenario_market_downturn.json")

    runner.run_and_display(plan_path, scenario_path, projection_filepath=projection_path)

    names = set(os.listdir(tmp_path))
    for suffix in ("as_planned", "what_if", "downturn", "inflation"):
        assert f"scenario_market_downturn_{suffix}.csv" in names
    assert "scenario_market_downturn.png" in names
    assert "scenario_market_downturn_life_events.csv" in names

    planned = pd.read_csv(tmp_path / "scenario_market_downturn_as_planned.csv")
    what_if = pd.read_csv(tmp_path / "scenario_market_downturn_what_if.csv")
    assert len(planned) == len(what_if) == 26
    # weaker returns and higher inflation leave less at the end
    assert what_if["total_wealth"].iloc[-1] < planned["total_wealth"].iloc[-1]


def test_ledger_csv_lists_scenario_events(tmp_path, monkeypatch, project_root):
    monkeypatch.setattr(runner, "OUTPUT_DIR", str(tmp_path))
    plan_path, scenario_path, projection_path = _paths(project_root, "scenario_long_term_care.json")

    runner.run_and_display(plan_path, scenario_path, projection_filepath=projection_path)

    with open(tmp_path / "scenario_long_term_care_life_events.csv", newline="") as f:
        rows = list(csv.DictReader(f))
    assert rows[0]["description"] == "Baseline (Example Plan)"
    assert [r["event_id"] for r in rows[1:]] == ["gift", "inheritance", "care-1", "care-2"]
    assert float(rows[-1]["running_total"]) == -120000 + 80000 - 90000 - 90000

    what_if = pd.read_csv(tmp_path / "scenario_long_term_care_what_if.csv")
    assert what_if["age"].iloc[-1] == 95


def test_invalid_scenario_is_skipped(tmp_path, monkeypatch, project_root, capsys):
    monkeypatch.setattr(runner, "OUTPUT_DIR", str(tmp_path / "out"))
    plan_path, _, projection_path = _paths(project_root, "unused.json")
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"schema_type": "scenario", "description": "x", "overrides": {"bogus": 1}}))

    runner.run_and_display(plan_path, str(bad), projection_filepath=projection_path)

    assert "Validation failed" in capsys.readouterr().out
    assert not os.path.exists(tmp_path / "out")
