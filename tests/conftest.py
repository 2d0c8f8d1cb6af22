from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import pytest

from hmlvsim.params import Family, ParameterSet, default_parameters


def make_single_stage(**overrides) -> ParameterSet:
    """Um estágio, uma família, sem variabilidade nem paradas."""
    data = dict(
        name="single",
        stages=["Only"],
        families=[Family("A", (0,))],
        proc_time_mean=[[10.0]],
        proc_time_cv_factor=0.0,
        setup_time_mean=0.0,
        setup_time_sd=0.0,
        downtime_prob=0.0,
        downtime_mean=0.0,
        downtime_sd=0.0,
        defect_prob=[0.0],
    )
    data.update(overrides)
    return ParameterSet(**data)


@pytest.fixture
def single_stage() -> ParameterSet:
    return make_single_stage()


@pytest.fixture
def single_stage_factory():
    return make_single_stage


@pytest.fixture
def shop() -> ParameterSet:
    return default_parameters()
