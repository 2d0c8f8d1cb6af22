from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

ARRIVAL = "arrival"
FINISH = "finish"


@dataclass(slots=True)
class Job:
    id: int
    family: int
    routing: Tuple[int, ...]
    arrival_time: float
    stage_cursor: int = 0

    # Acumuladores, um incremento por estágio visitado
    setup_time_total: float = 0.0
    processing_time_total: float = 0.0
    downtime_total: float = 0.0
    is_defective: bool = False

    completion_time: Optional[float] = None

    @property
    def current_stage(self) -> int:
        return self.routing[self.stage_cursor]

    @property
    def is_last_stage(self) -> bool:
        return self.stage_cursor + 1 >= len(self.routing)

    @property
    def completed(self) -> bool:
        return self.completion_time is not None


@dataclass(frozen=True, slots=True)
class Event:
    time: float
    kind: str  # ARRIVAL | FINISH
    job_id: int


@dataclass(frozen=True, slots=True)
class Dispatch:
    """Início de um job num estágio; `finish` vira o novo free_time da máquina."""

    stage: int
    job_id: int
    family: int
    start: float
    setup: float
    processing: float
    downtime: float
    defect: bool

    @property
    def finish(self) -> float:
        return self.start + self.setup + self.processing + self.downtime
