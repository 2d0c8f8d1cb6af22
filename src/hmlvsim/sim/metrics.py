from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List

import pandas as pd

from ..models import Job

JOB_LOG_COLUMNS = [
    "job_id",
    "family_id",
    "release_time",
    "completion_time",
    "total_setup_time",
    "total_processing_time",
    "total_downtime",
    "is_defective",
]

_DTYPES = {
    "job_id": "int64",
    "family_id": "int64",
    "release_time": "float64",
    "completion_time": "float64",
    "total_setup_time": "float64",
    "total_processing_time": "float64",
    "total_downtime": "float64",
    "is_defective": "bool",
}


@dataclass(slots=True)
class LogSummary:
    jobs: int
    defective: int
    makespan: float
    avg_lead_time: float
    avg_setup_time: float
    avg_processing_time: float
    avg_downtime: float


def jobs_to_dataframe(jobs: List[Job]) -> pd.DataFrame:
    data = [
        {
            "job_id": j.id,
            "family_id": j.family,
            "release_time": j.arrival_time,
            "completion_time": j.completion_time,
            "total_setup_time": j.setup_time_total,
            "total_processing_time": j.processing_time_total,
            "total_downtime": j.downtime_total,
            "is_defective": j.is_defective,
        }
        for j in sorted(jobs, key=lambda j: j.id)
    ]
    return pd.DataFrame(data, columns=JOB_LOG_COLUMNS).astype(_DTYPES)


def write_job_log(df: pd.DataFrame, out: Path) -> None:
    out = Path(out)
    out.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out, index=False, columns=JOB_LOG_COLUMNS)


def read_job_log(path: Path) -> pd.DataFrame:
    df = pd.read_csv(path)
    missing = [c for c in JOB_LOG_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{path}: colunas ausentes no log de jobs: {missing}")
    return df[JOB_LOG_COLUMNS].astype(_DTYPES)


def summarize(df: pd.DataFrame) -> LogSummary:
    if df.empty:
        return LogSummary(0, 0, 0.0, 0.0, 0.0, 0.0, 0.0)
    lead = df["completion_time"] - df["release_time"]
    return LogSummary(
        jobs=len(df),
        defective=int(df["is_defective"].sum()),
        makespan=float(df["completion_time"].max()),
        avg_lead_time=float(lead.mean()),
        avg_setup_time=float(df["total_setup_time"].mean()),
        avg_processing_time=float(df["total_processing_time"].mean()),
        avg_downtime=float(df["total_downtime"].mean()),
    )
