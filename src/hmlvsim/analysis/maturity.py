from __future__ import annotations

from dataclasses import astuple, dataclass
from typing import Mapping

import pandas as pd

from ..errors import ConfigurationError
from .kpis import mean_kpis

OEE_TARGET = 0.85
OTD_TARGET = 0.95

SCMI_VARIABLES = ("V_MC", "V_EE", "V_IC", "V_CI")


@dataclass(frozen=True, slots=True)
class ScmiScores:
    """Escores Likert (1–5) do índice de maturidade sociocultural."""

    management_commitment: float
    employee_engagement: float
    interdept_communication: float
    ci_culture: float

    def __post_init__(self) -> None:
        for value in astuple(self):
            if not 1.0 <= value <= 5.0:
                raise ConfigurationError(f"escore Likert fora de [1, 5]: {value}")


# Linha de base típica de PME e o ganho esperado com o toolkit
BASELINE_SCMI = ScmiScores(3.0, 2.0, 2.0, 1.0)
IMPROVED_SCMI = ScmiScores(3.5, 4.0, 3.5, 3.5)


def scmi_score(scores: ScmiScores) -> float:
    values = astuple(scores)
    return sum(v / 5.0 for v in values) / len(values) * 100.0


def scmi_table(before: ScmiScores, after: ScmiScores) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "variable": [*SCMI_VARIABLES, "SCMI_Score"],
            "before": [*astuple(before), scmi_score(before)],
            "after": [*astuple(after), scmi_score(after)],
        }
    )


def tepi(
    kpis: Mapping[str, float],
    baseline: Mapping[str, float],
    oee_target: float = OEE_TARGET,
    otd_target: float = OTD_TARGET,
) -> float:
    """Índice de desempenho técnico (0–100) a partir das médias semanais dos KPIs."""
    ppm_base = baseline["ppm"]
    ppm_term = 1.0 - kpis["ppm"] / ppm_base if ppm_base > 0 else 0.0
    mlt_base = baseline["mlt_days"]
    mlt_reduction = (mlt_base - kpis["mlt_days"]) / mlt_base if mlt_base > 0 else 0.0
    return (
        0.4 * (kpis["oee"] / oee_target)
        + 0.3 * ppm_term
        + 0.2 * (kpis["otd"] / otd_target)
        + 0.1 * mlt_reduction
    ) * 100.0


def lmi_summary(
    kpis_before: pd.DataFrame,
    kpis_after: pd.DataFrame,
    scmi_before: float,
    scmi_after: float,
) -> pd.DataFrame:
    """SCMI, TEPI e LMI (0.5·SCMI + 0.5·TEPI) antes/depois."""
    mb = mean_kpis(kpis_before)
    ma = mean_kpis(kpis_after)
    tepi_before = tepi(mb, mb)
    tepi_after = tepi(ma, mb)
    lmi_before = 0.5 * scmi_before + 0.5 * tepi_before
    lmi_after = 0.5 * scmi_after + 0.5 * tepi_after
    before = [scmi_before, tepi_before, lmi_before]
    after = [scmi_after, tepi_after, lmi_after]
    return pd.DataFrame(
        {
            "index": ["SCMI", "TEPI", "LMI (Lean Maturity Index)"],
            "before": before,
            "after": after,
            "delta": [a - b for a, b in zip(after, before)],
        }
    )
