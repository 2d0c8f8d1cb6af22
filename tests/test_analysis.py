from __future__ import annotations

import math

import numpy as np
import pandas as pd
import pytest
from scipy import stats as sps

from hmlvsim.analysis.kpis import KPI_COLUMNS, WorkCalendar, compute_weekly_kpis, infer_ideal_rate
from hmlvsim.analysis.maturity import (
    BASELINE_SCMI,
    IMPROVED_SCMI,
    ScmiScores,
    lmi_summary,
    scmi_score,
    scmi_table,
    tepi,
)
from hmlvsim.analysis.stats import KPI_METRICS, cohens_d_paired, effect_size_label, paired_tests
from hmlvsim.analysis.validation import validate_against_calibration
from hmlvsim.calibration import Calibration
from hmlvsim.errors import ConfigurationError
from hmlvsim.sim.engine import RunConfig, run_simulation


@pytest.fixture
def job_log() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "job_id": [1, 2, 3],
            "family_id": [0, 0, 2],
            "release_time": [0.0, 50.0, 2000.0],
            "completion_time": [100.0, 2000.0, 2500.0],
            "total_setup_time": [10.0, 0.0, 0.0],
            "total_processing_time": [60.0, 60.0, 120.0],
            "total_downtime": [30.0, 0.0, 0.0],
            "is_defective": [False, True, False],
        }
    )


def test_weekly_kpis(job_log) -> None:
    res = compute_weekly_kpis(job_log, ideal_rate=1.0)
    wk = res.weekly
    assert list(wk.columns) == KPI_COLUMNS
    assert wk["week"].tolist() == [1, 2]

    w1 = wk.iloc[0]
    assert w1["availability"] == pytest.approx(0.75)
    assert w1["performance"] == pytest.approx(1.0)
    assert w1["quality"] == pytest.approx(0.5)
    assert w1["oee"] == pytest.approx(0.375)
    assert w1["ppm"] == pytest.approx(500_000)
    assert w1["otd"] == pytest.approx(0.5)
    assert w1["mlt_days"] == pytest.approx(1025 / 480)

    w2 = wk.iloc[1]
    assert w2["availability"] == pytest.approx(1.0)
    assert w2["performance"] == pytest.approx(0.5)
    assert w2["oee"] == pytest.approx(0.5)
    assert w2["ppm"] == 0
    assert w2["otd"] == 1.0


def test_ideal_rate_inferred_when_missing(job_log) -> None:
    assert infer_ideal_rate(job_log) == pytest.approx(0.75)
    assert compute_weekly_kpis(job_log).ideal_rate == pytest.approx(0.75)


def test_calendar_changes_week_buckets(job_log) -> None:
    res = compute_weekly_kpis(job_log, ideal_rate=1.0, calendar=WorkCalendar(hours_per_day=24, days_per_week=7))
    assert res.weekly["week"].tolist() == [1]


def test_kpis_from_simulated_log(shop) -> None:
    log = run_simulation(shop, RunConfig(num_jobs=200, seed=1)).log
    wk = compute_weekly_kpis(log).weekly
    assert len(wk) >= 2
    for col in ("availability", "quality", "otd"):
        assert wk[col].between(0, 1).all()
    assert (wk["oee"] <= wk["availability"] * wk["performance"] + 1e-12).all()


def _weekly(values: np.ndarray) -> pd.DataFrame:
    df = pd.DataFrame({m: values for m in KPI_METRICS})
    df.insert(0, "week", range(1, len(values) + 1))
    return df


def test_paired_tests() -> None:
    before = _weekly(np.array([0.5, 0.6, 0.7, 0.9]))
    after = _weekly(np.array([1.5, 2.6, 3.7]))
    res = paired_tests(before, after)
    assert res["metric"].tolist() == list(KPI_METRICS)

    diff = np.array([1.0, 2.0, 3.0])
    row = res.iloc[0]
    assert row["t_statistic"] == pytest.approx(2.0 / (1.0 / math.sqrt(3)))
    assert row["ci_lower"] == pytest.approx(2.0 - sps.t.ppf(0.975, 2) / math.sqrt(3))
    assert row["cohens_d"] == pytest.approx(2.0)
    assert row["effect_size"] == "Large"
    assert row["p_value"] == pytest.approx(sps.ttest_rel(diff + 0.0, np.zeros(3)).pvalue)
    assert bool(row["is_significant"]) == (row["p_value"] < 0.05)


def test_paired_tests_needs_two_weeks() -> None:
    with pytest.raises(ValueError):
        paired_tests(_weekly(np.array([1.0])), _weekly(np.array([2.0, 3.0])))


@pytest.mark.parametrize(
    "d, label",
    [(0.1, "Trivial"), (-0.3, "Small"), (0.5, "Medium"), (-0.79, "Medium"), (0.8, "Large"), (math.inf, "Large")],
)
def test_effect_size_label(d, label) -> None:
    assert effect_size_label(d) == label


def test_cohens_d_constant_difference() -> None:
    assert cohens_d_paired(np.array([2.0, 2.0, 2.0])) == math.inf
    assert cohens_d_paired(np.array([-1.0, -1.0])) == -math.inf
    assert cohens_d_paired(np.zeros(3)) == 0.0


def test_scmi_scores() -> None:
    assert scmi_score(BASELINE_SCMI) == pytest.approx(40.0)
    assert scmi_score(IMPROVED_SCMI) == pytest.approx(72.5)
    table = scmi_table(BASELINE_SCMI, IMPROVED_SCMI)
    assert table["variable"].tolist() == ["V_MC", "V_EE", "V_IC", "V_CI", "SCMI_Score"]
    assert table["after"].iloc[-1] == pytest.approx(72.5)


def test_scmi_rejects_out_of_scale() -> None:
    with pytest.raises(ConfigurationError):
        ScmiScores(0.0, 2.0, 2.0, 2.0)


def _kpi_frame(oee, ppm, otd, mlt) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "week": [1, 2],
            "availability": [0.9, 0.9],
            "performance": [1.0, 1.0],
            "quality": [0.99, 0.99],
            "oee": [oee, oee],
            "ppm": [ppm, ppm],
            "otd": [otd, otd],
            "mlt_days": [mlt, mlt],
        }
    )


def test_tepi_and_lmi() -> None:
    kb = _kpi_frame(0.85, 1000.0, 0.95, 2.0)
    ka = _kpi_frame(0.85, 500.0, 0.95, 1.0)
    base = kb.drop(columns=["week"]).mean()
    assert tepi(base, base) == pytest.approx(60.0)
    assert tepi(ka.drop(columns=["week"]).mean(), base) == pytest.approx(80.0)

    lmi = lmi_summary(kb, ka, 40.0, 72.5)
    assert lmi["index"].tolist() == ["SCMI", "TEPI", "LMI (Lean Maturity Index)"]
    assert lmi["before"].tolist() == pytest.approx([40.0, 60.0, 50.0])
    assert lmi["after"].tolist() == pytest.approx([72.5, 80.0, 76.25])
    assert lmi["delta"].tolist() == pytest.approx([32.5, 20.0, 26.25])


def test_tepi_zero_ppm_baseline() -> None:
    kb = _kpi_frame(0.85, 0.0, 0.95, 2.0)
    base = kb.drop(columns=["week"]).mean()
    assert tepi(base, base) == pytest.approx(60.0)


def test_validation_against_calibration() -> None:
    calib = Calibration(
        file="x.csv", rate_column="r", quality_column="q", ideal_rate=10.0, epsilon=1.0,
        stop_mean_min=5.0, stop_sd_min=1.0, cv_rate=0.1, spec_low=0.0, spec_high=1.0,
        spec_median=0.5, defect_prop=0.01, stop_ratio=0.2,
    )
    kb = _kpi_frame(0.8, 12_000.0, 0.9, 2.0)
    res = validate_against_calibration(kb, calib)
    assert res["real_value"].tolist() == pytest.approx([10_000.0, 80.0])
    assert res["simulated_value"].tolist() == pytest.approx([12_000.0, 90.0])
    assert res["percent_difference"].tolist() == pytest.approx([20.0, 12.5])


def test_validation_with_zero_real_value_has_no_percent() -> None:
    calib = Calibration(
        file="x.csv", rate_column="r", quality_column="q", ideal_rate=10.0, epsilon=1.0,
        stop_mean_min=5.0, stop_sd_min=1.0, cv_rate=0.1, spec_low=0.0, spec_high=1.0,
        spec_median=0.5, defect_prop=0.0, stop_ratio=0.2,
    )
    res = validate_against_calibration(_kpi_frame(0.8, 500.0, 0.9, 2.0), calib)
    assert res["real_value"].iloc[0] == 0.0
    assert math.isnan(res["percent_difference"].iloc[0])
    assert res["percent_difference"].iloc[1] == pytest.approx(12.5)
