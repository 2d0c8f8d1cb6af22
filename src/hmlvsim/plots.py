from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .analysis.kpis import mean_kpis
from .calibration import Calibration, CalibrationTrace

COLOR_BEFORE = "#0072BD"
COLOR_AFTER = "#D95319"


def _save(fig, out: Path) -> None:
    out = Path(out)
    out.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out, dpi=150, bbox_inches="tight", pad_inches=0.1)
    plt.close(fig)


def plot_kpi_bars(kpis_before: pd.DataFrame, kpis_after: pd.DataFrame, out: Path) -> None:
    mb = mean_kpis(kpis_before)
    ma = mean_kpis(kpis_after)
    panels: List[tuple] = [
        ("OEE", "OEE (%)", mb["oee"] * 100, ma["oee"] * 100),
        ("PPM", "Defeitos (PPM)", mb["ppm"], ma["ppm"]),
        ("OTD", "OTD (%)", mb["otd"] * 100, ma["otd"] * 100),
        ("MLT", "Lead time (dias)", mb["mlt_days"], ma["mlt_days"]),
    ]
    fig, axes = plt.subplots(1, 4, figsize=(14, 5))
    for ax, (title, ylabel, vb, va) in zip(axes, panels):
        ax.bar([0, 1], [vb, va], color=[COLOR_BEFORE, COLOR_AFTER])
        ax.set_title(title)
        ax.set_ylabel(ylabel)
        ax.set_xticks([0, 1])
        ax.set_xticklabels(["Before", "After"])
        ax.grid(axis="y", alpha=0.3)
        for i, v in enumerate([vb, va]):
            ax.text(i, v, f"{v:.2f}", ha="center", va="bottom", fontsize=8)
    fig.suptitle("KPIs semanais médios: before vs after")
    _save(fig, out)


def plot_lmi_bars(lmi: pd.DataFrame, out: Path) -> None:
    x = np.arange(len(lmi))
    width = 0.38
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.bar(x - width / 2, lmi["before"], width, label="Before", color=COLOR_BEFORE)
    ax.bar(x + width / 2, lmi["after"], width, label="After", color=COLOR_AFTER)
    ax.set_xticks(x)
    ax.set_xticklabels(lmi["index"])
    ax.set_ylabel("escore (0-100)")
    ax.set_title("Lean Maturity Index (LMI)")
    ax.axhline(0, color="black", linewidth=0.8)
    ax.legend(loc="upper left")
    ax.grid(axis="y", alpha=0.3)
    _save(fig, out)


def plot_run_charts(kpis_before: pd.DataFrame, kpis_after: pd.DataFrame, out: Path) -> None:
    fig, (ax_oee, ax_mlt) = plt.subplots(2, 1, figsize=(10, 7), sharex=True)
    ax_oee.plot(kpis_before["week"], kpis_before["oee"] * 100, "o-", color=COLOR_BEFORE, label="Before")
    ax_oee.plot(kpis_after["week"], kpis_after["oee"] * 100, "s--", color=COLOR_AFTER, label="After")
    ax_oee.set_ylabel("OEE (%)")
    ax_oee.set_title("Tendência de OEE")
    ax_oee.legend()
    ax_oee.grid(alpha=0.3)
    ax_mlt.plot(kpis_before["week"], kpis_before["mlt_days"], "o-", color=COLOR_BEFORE, label="Before")
    ax_mlt.plot(kpis_after["week"], kpis_after["mlt_days"], "s--", color=COLOR_AFTER, label="After")
    ax_mlt.set_ylabel("Lead time (dias)")
    ax_mlt.set_xlabel("Semana")
    ax_mlt.set_title("Tendência de MLT")
    ax_mlt.legend()
    ax_mlt.grid(alpha=0.3)
    _save(fig, out)


def plot_lead_time_hist(
    jobs_before: pd.DataFrame, jobs_after: pd.DataFrame, out: Path, minutes_per_day: float = 480.0
) -> None:
    lt_b = (jobs_before["completion_time"] - jobs_before["release_time"]) / minutes_per_day
    lt_a = (jobs_after["completion_time"] - jobs_after["release_time"]) / minutes_per_day
    upper = max(float(lt_b.quantile(0.99)), float(lt_a.quantile(0.99)), 1.0)
    bins = np.arange(0.0, np.ceil(upper) + 1.0, 1.0)
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.hist(lt_b, bins=bins, color=COLOR_BEFORE, alpha=0.7, label="Before")
    ax.hist(lt_a, bins=bins, color=COLOR_AFTER, alpha=0.7, label="After")
    ax.set_xlim(0, upper)
    ax.set_xlabel("Lead time (dias)")
    ax.set_ylabel("jobs")
    ax.set_title("Distribuição dos lead times")
    ax.legend()
    _save(fig, out)


def plot_calibration(calib: Calibration, trace: CalibrationTrace, out_dir: Path) -> Dict[str, Path]:
    out_dir = Path(out_dir)
    paths = {
        "run_stop": out_dir / "calibration_run_stop.png",
        "quality_band": out_dir / "calibration_quality_band.png",
    }

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.plot(trace.rate.index, trace.rate.to_numpy(), color="#4C78A8", linewidth=0.8, label="taxa")
    ax.plot(trace.smoothed.index, trace.smoothed.to_numpy(), color="#54A24B", label="suavizada")
    ax.axhline(calib.epsilon, color="red", linestyle="--", label="limiar de parada")
    ax.set_title(f"Taxa e estado run/stop (parado {100 * calib.stop_ratio:.1f}%)")
    ax.set_ylabel("taxa (unid/min)")
    ax.legend()
    _save(fig, paths["run_stop"])

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.hist(trace.quality.to_numpy(), bins=100, color=COLOR_BEFORE, edgecolor="white")
    ax.axvline(calib.spec_low, color="red", linestyle="--", label="LIE")
    ax.axvline(calib.spec_high, color="red", linestyle="--", label="LSE")
    ax.set_title(f"Proxy de qualidade: {calib.quality_column} (defeitos ~ {100 * calib.defect_prop:.2f}%)")
    ax.set_ylabel("frequência")
    ax.legend()
    _save(fig, paths["quality_band"])
    return paths
