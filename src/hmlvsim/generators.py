from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np


@dataclass(frozen=True, slots=True)
class Arrival:
    job_id: int
    time: float
    family: int


def generate_arrivals(
    rng: np.random.Generator, num_jobs: int, mean_interarrival: float, num_families: int
) -> List[Arrival]:
    # Todos os intervalos primeiro, depois as famílias: a ordem dos sorteios faz parte da semente
    gaps = rng.exponential(scale=mean_interarrival, size=num_jobs)
    times = np.cumsum(gaps).astype(float)
    families = rng.integers(0, num_families, size=num_jobs)
    return [
        Arrival(job_id=i + 1, time=float(times[i]), family=int(families[i]))
        for i in range(num_jobs)
    ]


class Sampler:
    """Sorteios estocásticos de uma execução, todos a partir de um único gerador."""

    def __init__(self, rng: np.random.Generator) -> None:
        self.rng = rng

    def duration(self, mean: float, sd: float) -> float:
        # Sorteio negativo vira zero: a média realizada fica acima de `mean`
        return max(0.0, float(self.rng.normal(mean, sd)))

    def trial(self, p: float) -> bool:
        return bool(self.rng.random() < p)
