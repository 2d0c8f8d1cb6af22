from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from hmlvsim.calibration import (
    Calibration,
    CalibrationOptions,
    _stop_durations,
    calibrate_continuous_flow,
    calibrate_frame,
)
from hmlvsim.errors import CalibrationError
from hmlvsim.params import define_parameters

RATE = "Stage2.Output.Measurement0.U.Actual_U_Actual"
QUALITY = "Stage2.Output.Measurement1_U_Actual"


@pytest.fixture
def process_frame() -> pd.DataFrame:
    rng = np.random.default_rng(0)
    n = 600
    rate = 10.0 + rng.normal(0.0, 0.2, size=n)
    # 12 paradas de 10 amostras
    for start in range(20, n, 50):
        rate[start : start + 10] = 0.0
    quality = rng.normal(5.0, 0.1, size=n)
    quality[::40] += 3.0
    return pd.DataFrame(
        {
            "time_stamp": pd.date_range("2024-01-01 06:00", periods=n, freq="min").astype(str),
            RATE: rate,
            QUALITY: quality,
            "Stage1.Other_U_Actual": rng.normal(0.0, 50.0, size=n),
        }
    )


def test_calibration_detects_stops(process_frame) -> None:
    calib, trace = calibrate_frame(process_frame, source="synthetic.csv")
    assert calib.file == "synthetic.csv"
    assert calib.rate_column == RATE
    assert calib.quality_column == QUALITY
    assert 0.10 <= calib.stop_ratio <= 0.30
    assert calib.ideal_rate == pytest.approx(10.0, abs=0.5)
    assert 0 < calib.epsilon < calib.ideal_rate
    assert calib.stop_mean_min == pytest.approx(7.0)
    assert calib.stop_sd_min == pytest.approx(0.0)
    assert calib.cv_rate > 0
    assert calib.spec_low < calib.spec_median < calib.spec_high
    assert 0 < calib.defect_prop < 0.1
    assert len(trace.rate) == len(process_frame)


def test_iqr_band(process_frame) -> None:
    calib, _ = calibrate_frame(process_frame, CalibrationOptions(spec_band_method="IQR"))
    assert calib.spec_low < calib.spec_high


def test_calibration_from_csv_and_yaml(tmp_path, process_frame) -> None:
    csv = tmp_path / "process.csv"
    process_frame.to_csv(csv, index=False)
    calib, _ = calibrate_continuous_flow(csv)
    out = tmp_path / "config" / "calibration.yaml"
    calib.save(out)
    loaded = Calibration.load(out)
    assert loaded == calib

    before, after = define_parameters(loaded)
    assert before.defect_prob[2] == calib.defect_prop
    assert after.proc_time_cv_factor == pytest.approx(calib.cv_rate * 0.64)


def test_missing_time_column(process_frame) -> None:
    with pytest.raises(CalibrationError):
        calibrate_frame(process_frame.drop(columns=["time_stamp"]))


def test_no_rate_candidates(process_frame) -> None:
    with pytest.raises(CalibrationError):
        calibrate_frame(process_frame[["time_stamp", "Stage1.Other_U_Actual"]])


def test_invalid_options(process_frame) -> None:
    with pytest.raises(CalibrationError):
        calibrate_frame(process_frame, CalibrationOptions(spec_band_method="sigma"))


def test_stops_at_series_edges_are_counted() -> None:
    index = pd.date_range("2024-01-01", periods=10, freq="min")
    is_run = np.array([False, False, False, True, True, True, True, False, False, False])
    assert _stop_durations(is_run, index, min_samples=2) == [2.0, 2.0]
    # Parada de uma amostra fica abaixo do mínimo
    assert _stop_durations(np.array([True, False, True]), index[:3], min_samples=2) == []
