from __future__ import annotations

import pandas as pd

from ..calibration import Calibration
from .kpis import mean_kpis


def validate_against_calibration(kpis_before: pd.DataFrame, calibration: Calibration) -> pd.DataFrame:
    """Compara o baseline simulado com os valores reais da calibração."""
    mb = mean_kpis(kpis_before)
    real = [calibration.defect_prop * 1e6, (1.0 - calibration.stop_ratio) * 100.0]
    sim = [float(mb["ppm"]), float(mb["availability"]) * 100.0]
    pct = [abs(s - r) / r * 100.0 if r > 0 else float("nan") for s, r in zip(sim, real)]
    return pd.DataFrame(
        {
            "metric": ["Defect Rate (PPM)", "Availability (%)"],
            "real_value": real,
            "simulated_value": sim,
            "percent_difference": pct,
        }
    )
