from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

KPI_COLUMNS = ["week", "availability", "performance", "quality", "oee", "ppm", "otd", "mlt_days"]

# Prazo de entrega em dias úteis por família (Brackets, Shafts, Gates)
DEFAULT_DUE_DAYS = (3, 5, 7)


@dataclass(frozen=True, slots=True)
class WorkCalendar:
    hours_per_day: float = 8.0
    days_per_week: float = 5.0

    @property
    def minutes_per_day(self) -> float:
        return self.hours_per_day * 60.0

    @property
    def minutes_per_week(self) -> float:
        return self.minutes_per_day * self.days_per_week


@dataclass(slots=True)
class KpiResult:
    weekly: pd.DataFrame
    ideal_rate: float  # jobs/hora


def infer_ideal_rate(log: pd.DataFrame) -> float:
    """Taxa ideal (jobs/hora) = jobs / horas totais de processamento."""
    hours = float(log["total_processing_time"].sum()) / 60.0
    if hours <= 0:
        return 0.0
    return len(log) / hours


def compute_weekly_kpis(
    log: pd.DataFrame,
    ideal_rate: Optional[float] = None,
    calendar: WorkCalendar = WorkCalendar(),
    due_days: Sequence[float] = DEFAULT_DUE_DAYS,
) -> KpiResult:
    """Agrega o log de jobs em semanas de trabalho pelo tempo de conclusão.

    Disponibilidade, desempenho (contra `ideal_rate`), qualidade, OEE, PPM,
    OTD e lead time mediano em dias úteis. Sem `ideal_rate`, a taxa é inferida
    do próprio log; passe a taxa do cenário base para comparar before/after.
    """
    if not due_days:
        raise ValueError("due_days vazio")
    if ideal_rate is None:
        ideal_rate = infer_ideal_rate(log)
        logger.info("Taxa ideal inferida: %.2f jobs/hora", ideal_rate)

    if log.empty:
        return KpiResult(weekly=pd.DataFrame(columns=KPI_COLUMNS), ideal_rate=ideal_rate)

    weeks = np.floor(log["completion_time"] / calendar.minutes_per_week).astype(int) + 1
    due_lookup = np.asarray(due_days, dtype=float)
    rows = []
    for week, wk in log.groupby(weeks, sort=True):
        total_proc = float(wk["total_processing_time"].sum())
        total_setup = float(wk["total_setup_time"].sum())
        total_down = float(wk["total_downtime"].sum())
        total_run = total_proc + total_setup + total_down
        availability = total_proc / total_run if total_run > 0 else 0.0

        units = len(wk)
        defective = int(wk["is_defective"].sum())
        quality = (units - defective) / units

        if total_proc > 0 and ideal_rate > 0:
            actual_rate = units / (total_proc / 60.0)
            performance = actual_rate / ideal_rate
        else:
            performance = 0.0

        lead = wk["completion_time"] - wk["release_time"]
        mlt_days = float(lead.median()) / calendar.minutes_per_day

        family_idx = np.clip(wk["family_id"].to_numpy(), 0, len(due_lookup) - 1)
        due = wk["release_time"].to_numpy() + due_lookup[family_idx] * calendar.minutes_per_day
        otd = float(np.mean(wk["completion_time"].to_numpy() <= due))

        rows.append(
            {
                "week": int(week),
                "availability": availability,
                "performance": performance,
                "quality": quality,
                "oee": availability * performance * quality,
                "ppm": defective / units * 1e6,
                "otd": otd,
                "mlt_days": mlt_days,
            }
        )
    return KpiResult(weekly=pd.DataFrame(rows, columns=KPI_COLUMNS), ideal_rate=ideal_rate)


def write_weekly_kpis(df: pd.DataFrame, out: Path) -> None:
    out = Path(out)
    out.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out, index=False)


def mean_kpis(weekly: pd.DataFrame) -> pd.Series:
    return weekly.drop(columns=["week"]).mean()
