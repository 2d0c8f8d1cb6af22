from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
import yaml

from .errors import CalibrationError

logger = logging.getLogger(__name__)

RATE_STAGE = "Stage2"
ACTUAL_SUFFIX = "_U_Actual"
TARGET_DEFECT_RANGE = (0.005, 0.05)
EPSILON_STEPS = 20


@dataclass(slots=True)
class CalibrationOptions:
    time_column: str = "time_stamp"
    rate_column: Optional[str] = None  # auto: coluna Stage2 *_U_Actual de maior variância
    quality_column: Optional[str] = None  # auto: proxy com taxa de defeito mais plausível
    resample_min: float = 1.0
    spec_band_method: str = "MAD"  # MAD | IQR
    spec_k: float = 3.0
    min_stop_samples: int = 2
    smooth_window: int = 3
    target_stop_range: Tuple[float, float] = (0.10, 0.30)
    epsilon_frac_range: Tuple[float, float] = (0.05, 0.35)

    def validate(self) -> None:
        if self.resample_min <= 0:
            raise CalibrationError("resample_min deve ser positivo")
        if self.spec_band_method.upper() not in ("MAD", "IQR"):
            raise CalibrationError(f"spec_band_method inválido: {self.spec_band_method}")
        if self.spec_k <= 0:
            raise CalibrationError("spec_k deve ser positivo")
        if self.min_stop_samples < 1 or self.smooth_window < 1:
            raise CalibrationError("min_stop_samples e smooth_window devem ser >= 1")
        lo, hi = self.target_stop_range
        if not 0 <= lo <= hi <= 1:
            raise CalibrationError("target_stop_range deve estar em [0, 1]")
        lo, hi = self.epsilon_frac_range
        if not 0 < lo <= hi:
            raise CalibrationError("epsilon_frac_range deve ser positivo e crescente")


@dataclass(slots=True)
class Calibration:
    file: str
    rate_column: str
    quality_column: str
    ideal_rate: float  # unidades/min (p95)
    epsilon: float
    stop_mean_min: float  # NaN quando não há paradas
    stop_sd_min: float
    cv_rate: float
    spec_low: float
    spec_high: float
    spec_median: float
    defect_prop: float
    stop_ratio: float

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(asdict(self), f, sort_keys=False)

    @classmethod
    def load(cls, path: Path) -> "Calibration":
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        names = {f.name for f in fields(cls)}
        missing = names - set(data)
        if missing:
            raise CalibrationError(f"{path}: campos ausentes {sorted(missing)}")
        return cls(**{k: data[k] for k in names})


@dataclass(slots=True)
class CalibrationTrace:
    """Séries intermediárias para as figuras de calibração."""

    rate: pd.Series
    smoothed: pd.Series
    quality: pd.Series


def _penalty(value: float, target: Tuple[float, float]) -> float:
    lo, hi = target
    if lo <= value <= hi:
        return 0.0
    return min(abs(value - lo), abs(value - hi))


def _resample(times: pd.Series, values: pd.Series, minutes: float) -> pd.Series:
    s = pd.Series(values.to_numpy(dtype=float), index=pd.DatetimeIndex(times)).sort_index()
    return s.resample(pd.Timedelta(minutes=minutes)).mean()


def _stop_durations(is_run: np.ndarray, index: pd.DatetimeIndex, min_samples: int) -> List[float]:
    padded = np.concatenate([[True], is_run, [True]]).astype(int)
    d = np.diff(padded)
    starts = np.flatnonzero(d == -1)
    ends = np.flatnonzero(d == 1) - 1
    durations = []
    for s, e in zip(starts, ends):
        if e - s + 1 < min_samples:
            continue
        minutes = (index[e] - index[s]).total_seconds() / 60.0
        if minutes > 0:
            durations.append(minutes)
    return durations


def _spec_band(meas: pd.Series, method: str, k: float) -> Tuple[float, float, float]:
    med = float(meas.median())
    if method.upper() == "MAD":
        mad = float((meas - med).abs().median())
        return med - k * mad, med + k * mad, med
    q25, q75 = float(meas.quantile(0.25)), float(meas.quantile(0.75))
    iqr = q75 - q25
    return q25 - 1.5 * iqr, q75 + 1.5 * iqr, med


def calibrate_frame(
    df: pd.DataFrame, options: Optional[CalibrationOptions] = None, source: str = ""
) -> Tuple[Calibration, CalibrationTrace]:
    opt = options or CalibrationOptions()
    opt.validate()
    if opt.time_column not in df.columns:
        raise CalibrationError(f"coluna de tempo {opt.time_column!r} não encontrada")
    times = pd.to_datetime(df[opt.time_column])

    candidates = [c for c in df.columns if RATE_STAGE in c and ACTUAL_SUFFIX in c]
    rate_col = opt.rate_column
    if rate_col is None:
        if not candidates:
            raise CalibrationError(f"nenhuma coluna {RATE_STAGE} *{ACTUAL_SUFFIX} para a taxa")
        rate_col = max(candidates, key=lambda c: df[c].std())
        logger.info("Coluna de taxa selecionada: %s", rate_col)
    elif rate_col not in df.columns:
        raise CalibrationError(f"coluna de taxa {rate_col!r} não encontrada")

    rate = _resample(times, df[rate_col], opt.resample_min)
    smoothed = rate.rolling(opt.smooth_window, center=True, min_periods=1).mean()
    ideal_rate = float(rate.quantile(0.95))

    # Limiar de parada: busca a fração de epsilon cujo tempo parado cai na faixa alvo
    best_fit = math.inf
    epsilon = opt.epsilon_frac_range[0] * ideal_rate
    is_run = (smoothed > epsilon).to_numpy()
    for frac in np.linspace(opt.epsilon_frac_range[0], opt.epsilon_frac_range[1], EPSILON_STEPS):
        eps_k = float(frac) * ideal_rate
        run_k = (smoothed > eps_k).to_numpy()
        fit = _penalty(float(np.mean(~run_k)), opt.target_stop_range)
        if fit < best_fit:
            best_fit, epsilon, is_run = fit, eps_k, run_k
    stop_ratio = float(np.mean(~is_run))

    durations = _stop_durations(is_run, rate.index, opt.min_stop_samples)
    stop_mean = float(np.mean(durations)) if durations else math.nan
    stop_sd = float(np.std(durations, ddof=1)) if len(durations) > 1 else math.nan

    run_rates = rate[is_run]
    cv_rate = float(run_rates.std()) / max(float(run_rates.mean()), np.finfo(float).eps)
    if not math.isfinite(cv_rate):
        cv_rate = 0.0

    run_mask = pd.Series(is_run, index=rate.index)
    if opt.quality_column is not None:
        if opt.quality_column not in df.columns:
            raise CalibrationError(f"coluna de qualidade {opt.quality_column!r} não encontrada")
        q_candidates = [opt.quality_column]
    else:
        q_candidates = [c for c in candidates if c != rate_col]

    best: Optional[Tuple[float, str, float, float, float, pd.Series]] = None
    for col in q_candidates:
        q = _resample(times, df[col], opt.resample_min)
        aligned = run_mask.reindex(q.index, fill_value=False).astype(bool)
        meas = q[aligned].dropna()
        if meas.empty:
            continue
        low, high, med = _spec_band(meas, opt.spec_band_method, opt.spec_k)
        defect = float(((meas < low) | (meas > high)).mean())
        fit = _penalty(defect, TARGET_DEFECT_RANGE)
        if best is None or fit < best[0]:
            best = (fit, col, low, high, med, meas)
    if best is None:
        raise CalibrationError("nenhuma coluna de qualidade utilizável")
    _, quality_col, low, high, med, meas = best
    defect_prop = float(((meas < low) | (meas > high)).mean())

    calib = Calibration(
        file=str(source),
        rate_column=rate_col,
        quality_column=quality_col,
        ideal_rate=ideal_rate,
        epsilon=epsilon,
        stop_mean_min=stop_mean,
        stop_sd_min=stop_sd,
        cv_rate=cv_rate,
        spec_low=low,
        spec_high=high,
        spec_median=med,
        defect_prop=defect_prop,
        stop_ratio=stop_ratio,
    )
    logger.info(
        "Calibração: taxa ideal %.4f, parada %.1f%%, CV %.3f, defeitos %.2f%% (%s)",
        ideal_rate, 100 * stop_ratio, cv_rate, 100 * defect_prop, quality_col,
    )
    return calib, CalibrationTrace(rate=rate, smoothed=smoothed, quality=meas)


def calibrate_continuous_flow(
    csv_path: Path, options: Optional[CalibrationOptions] = None
) -> Tuple[Calibration, CalibrationTrace]:
    logger.info("Carregando dados de %s", csv_path)
    df = pd.read_csv(csv_path)
    return calibrate_frame(df, options, source=str(csv_path))
