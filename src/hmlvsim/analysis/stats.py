from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd
from scipy import stats

logger = logging.getLogger(__name__)

KPI_METRICS = ("availability", "performance", "quality", "oee", "ppm", "otd", "mlt_days")

STATS_COLUMNS = [
    "metric",
    "p_value",
    "t_statistic",
    "ci_lower",
    "cohens_d",
    "is_significant",
    "effect_size",
]


def effect_size_label(d: float) -> str:
    ad = abs(d)
    if math.isnan(ad):
        return "Trivial"
    if ad >= 0.8:
        return "Large"
    if ad >= 0.5:
        return "Medium"
    if ad >= 0.2:
        return "Small"
    return "Trivial"


def cohens_d_paired(diff: np.ndarray) -> float:
    mean = float(np.mean(diff))
    sd = float(np.std(diff, ddof=1))
    if sd == 0:
        # Diferença constante: efeito infinito no sentido da média
        return math.copysign(math.inf, mean) if mean != 0 else 0.0
    return mean / sd


def paired_tests(
    before: pd.DataFrame,
    after: pd.DataFrame,
    metrics: Sequence[str] = KPI_METRICS,
    alpha: float = 0.05,
) -> pd.DataFrame:
    """Teste t pareado (after vs before) e d de Cohen por métrica, semana a semana."""
    n = min(len(before), len(after))
    if n < 2:
        raise ValueError(f"teste pareado requer ao menos 2 semanas em comum (recebido {n})")
    logger.info("Testes t pareados em %d semanas", n)

    rows = []
    for metric in metrics:
        b = before[metric].to_numpy(dtype=float)[:n]
        a = after[metric].to_numpy(dtype=float)[:n]
        diff = a - b
        res = stats.ttest_rel(a, b)
        p_value = float(res.pvalue)

        sem = float(np.std(diff, ddof=1)) / math.sqrt(n)
        ci_lower = float(np.mean(diff)) - float(stats.t.ppf(1 - alpha / 2, df=n - 1)) * sem

        d = cohens_d_paired(diff)
        rows.append(
            {
                "metric": metric,
                "p_value": p_value,
                "t_statistic": float(res.statistic),
                "ci_lower": ci_lower,
                "cohens_d": d,
                "is_significant": bool(p_value < alpha),
                "effect_size": effect_size_label(d),
            }
        )
    return pd.DataFrame(rows, columns=STATS_COLUMNS)


def write_stats(df: pd.DataFrame, out: Path) -> None:
    out = Path(out)
    out.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out, index=False)
