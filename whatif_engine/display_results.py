# whatif_engine/display_results.py

import os
from collections import defaultdict
from typing import Iterable, Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from debug import *
from whatif_engine.plan_types import LifeEvent, RetirementProjection


def _apply_matplotlib_style() -> None:
    """Apply lightweight, professional matplotlib styling defaults.

    Safe to call multiple times.
    """
    plt.rcParams.update(
        {
            "figure.dpi": 200,
            "savefig.dpi": 350,
            "savefig.bbox": "tight",
            "savefig.facecolor": "white",
            "figure.facecolor": "white",
            "axes.facecolor": "#FCFCFC",
            "axes.edgecolor": "#2B2B2B",
            "axes.linewidth": 0.9,
            "axes.grid": True,
            "grid.alpha": 0.25,
            "grid.linewidth": 0.8,
            "grid.color": "#2B2B2B",
            "font.family": "DejaVu Sans",
            "font.size": 11.5,
            "axes.titlesize": 15,
            "axes.labelsize": 12.5,
            "xtick.labelsize": 10.5,
            "ytick.labelsize": 10.5,
            "legend.fontsize": 10.5,
            "legend.frameon": True,
            "legend.framealpha": 0.90,
            "legend.borderpad": 0.5,
            "lines.linewidth": 1.0,
            "lines.solid_capstyle": "round",
            "lines.antialiased": True,
            "patch.antialiased": True,
            "text.antialiased": True,
        }
    )


def _format_event_brackets(labels: list[str]) -> str:
    """Format event labels as: [Event1] [Event2] ..."""
    out: list[str] = []
    for lbl in labels:
        if lbl is None:
            continue
        s = str(lbl).strip()
        if not s:
            continue
        out.append(f"[{s}]")
    return " ".join(out)


def chart_series(projection: RetirementProjection, life_events: Iterable[LifeEvent] = ()) -> dict:
    """
    What a chart needs from a projection: two series over age plus markers.

      ages, liquid_assets (endingBalance), total_wealth,
      liquidation_points [(age, total_wealth)],
      event_points [(age, total_wealth_at_age_or_None, label)]
    """
    yearly = projection.yearly_projections
    wealth_at = {y.age: y.total_wealth for y in yearly}

    event_points = []
    for ev in life_events:
        label = ev.description or ev.id
        event_points.append((ev.age, wealth_at.get(ev.age), label))

    return {
        "ages": [y.age for y in yearly],
        "liquid_assets": [y.ending_balance for y in yearly],
        "total_wealth": [y.total_wealth for y in yearly],
        "liquidation_points": [(y.age, y.total_wealth) for y in yearly if y.property_liquidated],
        "event_points": event_points,
    }


def projection_to_frame(projection: RetirementProjection) -> pd.DataFrame:
    rows = []
    for y in projection.yearly_projections:
        rows.append({
            "year": y.year,
            "age": y.age,
            "starting_balance": round(y.starting_balance, 2),
            "investment_return": round(y.investment_return, 2),
            "withdrawals": round(y.withdrawals, 2),
            "life_event_adjustment": round(y.life_event_adjustment, 2),
            "ending_balance": round(y.ending_balance, 2),
            "inflation_adjusted_expenses": round(y.inflation_adjusted_expenses, 2),
            "non_spendable_value": round(y.non_spendable_value, 2),
            "total_wealth": round(y.total_wealth, 2),
            "pension": round(y.income.pension, 2),
            "social_security": round(y.income.social_security, 2),
            "other_income": round(y.income.other_income, 2),
            "total_income": round(y.income.total_income, 2),
            "property_liquidated": y.property_liquidated,
            "currency": y.currency,
        })
    return pd.DataFrame(rows)


def print_projection(projections: dict[str, RetirementProjection]):
    for label, projection in projections.items():
        print(f"\n--- {label.upper()} ---")
        print(f"{'Year':<6}{'Age':<6}{'Start':>16}{'Return':>14}{'Withdrawals':>15}"
              f"{'Events':>13}{'End':>16}{'Expenses':>14}{'Property':>16}{'Total Wealth':>17}")
        for y in projection.yearly_projections:
            flag = "  [liquidated]" if y.property_liquidated else ""
            print(f"{y.year:<6}{y.age:<6}"
                  f"${y.starting_balance:>15,.2f}"
                  f"${y.investment_return:>13,.2f}"
                  f"${y.withdrawals:>14,.2f}"
                  f"${y.life_event_adjustment:>12,.2f}"
                  f"${y.ending_balance:>15,.2f}"
                  f"${y.inflation_adjusted_expenses:>13,.2f}"
                  f"${y.non_spendable_value:>15,.2f}"
                  f"${y.total_wealth:>16,.2f}{flag}")
        depletion = projection.depletion_age if projection.depletion_age is not None else "never"
        print(f"Runway: {projection.runway_years} years ({projection.runway_months} months), "
              f"depletion age: {depletion}")


def print_projection_csv(projections: dict[str, RetirementProjection],
                         filename_prefix="projection_output") -> list[str]:
    written = []
    for label, projection in projections.items():
        df = projection_to_frame(projection)
        output_file = f"{filename_prefix}_{label}.csv"
        df.to_csv(output_file, index=False)
        print(f"Saved CSV output to {output_file}")
        written.append(output_file)
    return written


def graph_projection(projection: RetirementProjection,
                     life_events: Iterable[LifeEvent] = (),
                     base: Optional[RetirementProjection] = None,
                     plan_name="Plan", description="What-If Projection",
                     save_path="out/projection.png") -> str:
    _apply_matplotlib_style()
    series = chart_series(projection, life_events)

    fig, ax1 = plt.subplots(figsize=(12, 6), constrained_layout=True)
    ax1.spines['top'].set_visible(False)
    ax1.spines['right'].set_visible(False)
    ax1.set_axisbelow(True)
    ax1.minorticks_on()
    ax1.grid(True, which="major")
    ax1.grid(True, which="minor", alpha=0.10)

    ages = np.array(series["ages"], dtype=float)
    liquid = np.array(series["liquid_assets"], dtype=float) / 1_000_000
    wealth = np.array(series["total_wealth"], dtype=float) / 1_000_000

    ax1.plot(ages, liquid, label="Liquid Assets", linewidth=1.8)
    ax1.plot(ages, wealth, label="Total Wealth", linewidth=1.8)

    if base is not None and base.yearly_projections:
        base_ages = [y.age for y in base.yearly_projections]
        base_wealth = np.array([y.total_wealth for y in base.yearly_projections]) / 1_000_000
        ax1.plot(base_ages, base_wealth, label="Total Wealth (as planned)",
                 linestyle="--", color="#6C6C6C")

    if series["liquidation_points"]:
        xs, ys = zip(*series["liquidation_points"])
        ax1.scatter(xs, np.array(ys) / 1_000_000, marker="D", s=40, color="#C62828",
                    zorder=5, label="Property Liquidated")

    # one dashed line per age, with every event at that age in one label
    events_by_age: dict[int, list[str]] = defaultdict(list)
    for age, _, label in series["event_points"]:
        events_by_age[age].append(label)
    for age in sorted(events_by_age):
        ax1.axvline(x=age, linestyle="--", color="black", alpha=0.3)
        ax1.text(age, ax1.get_ylim()[1] * 0.95, _format_event_brackets(events_by_age[age]),
                 rotation=90, verticalalignment='top', fontsize=8, color="black")

    ax1.set_title(f"{plan_name} – {description}")
    ax1.set_xlabel("Age")
    ax1.set_ylabel("Value (millions)")
    ax1.tick_params(axis="both", which="both", direction="out")
    ax1.legend(loc="upper right", framealpha=0.85)

    out_dir = os.path.dirname(save_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    fig.savefig(save_path)
    plt.close(fig)
    print(f"Saved graph to {save_path}")
    debug(VERBOSE, "Graph for '{}' covers ages {}..{}", plan_name,
          series["ages"][0] if series["ages"] else None,
          series["ages"][-1] if series["ages"] else None)
    return save_path
