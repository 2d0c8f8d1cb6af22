from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from ..errors import ConfigurationError, InternalInvariantViolation
from ..generators import Sampler, generate_arrivals
from ..models import ARRIVAL, FINISH, Dispatch, Event, Job
from ..params import ParameterSet
from ..schedulers.events import EventScheduler
from ..schedulers.fcfs import FCFSQueue
from .metrics import jobs_to_dataframe, write_job_log

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 20


@dataclass(slots=True)
class RunConfig:
    num_jobs: int = 200
    mean_interarrival: float = 25.0  # minutos
    seed: Optional[int] = None
    output_path: Optional[Path] = None

    def validate(self) -> None:
        if isinstance(self.num_jobs, bool) or not isinstance(self.num_jobs, (int, np.integer)):
            raise ConfigurationError(f"num_jobs deve ser inteiro (recebido {self.num_jobs!r})")
        if self.num_jobs <= 0:
            raise ConfigurationError(f"num_jobs deve ser positivo (recebido {self.num_jobs})")
        if not self.mean_interarrival > 0:
            raise ConfigurationError(
                f"mean_interarrival deve ser positivo (recebido {self.mean_interarrival})"
            )


@dataclass(slots=True)
class Machine:
    stage: int
    free_time: float = 0.0
    last_family: Optional[int] = None
    queue: FCFSQueue = field(default_factory=FCFSQueue)

    def is_idle(self, now: float) -> bool:
        return self.free_time <= now


@dataclass(slots=True)
class RunResult:
    jobs: List[Job]
    events: List[Event]
    dispatches: List[Dispatch]
    log: pd.DataFrame


class Simulation:
    """Uma execução: dona do relógio, dos eventos, das máquinas e dos jobs."""

    def __init__(self, params: ParameterSet, config: RunConfig) -> None:
        # Validação completa antes de qualquer evento: sem execução parcial
        params.validate()
        config.validate()
        self.params = params
        self.config = config
        self.sampler = Sampler(np.random.default_rng(config.seed))
        self.scheduler = EventScheduler()
        self.machines = [Machine(stage=s) for s in range(params.num_stages)]
        self.jobs: Dict[int, Job] = {}
        self.completed: List[int] = []
        self.events: List[Event] = []
        self.dispatches: List[Dispatch] = []
        self.now = 0.0
        self._families: Dict[int, int] = {}

    def run(self) -> RunResult:
        cfg = self.config
        logger.info(
            "Simulando %d jobs (%s, chegada média %.2f min, semente %s)",
            cfg.num_jobs, self.params.name, cfg.mean_interarrival, cfg.seed,
        )
        for arrival in generate_arrivals(
            self.sampler.rng, cfg.num_jobs, cfg.mean_interarrival, self.params.num_families
        ):
            self._families[arrival.job_id] = arrival.family
            self.scheduler.schedule(Event(time=arrival.time, kind=ARRIVAL, job_id=arrival.job_id))

        while not self.scheduler.is_empty():
            event = self.scheduler.pop_next()
            self.now = event.time
            self.events.append(event)
            if event.kind == ARRIVAL:
                self._on_arrival(event)
            else:
                self._on_finish(event)
            self._dispatch_idle()

        jobs = self._finalize()
        log = jobs_to_dataframe(jobs)
        logger.info("Simulação concluída: %d jobs, makespan %.2f min", len(jobs), self.now)
        if cfg.output_path is not None:
            write_job_log(log, cfg.output_path)
            logger.info("Log de jobs salvo em %s", cfg.output_path)
        return RunResult(jobs=jobs, events=self.events, dispatches=self.dispatches, log=log)

    def _on_arrival(self, event: Event) -> None:
        family = self._families.pop(event.job_id)
        job = Job(
            id=event.job_id,
            family=family,
            routing=tuple(self.params.families[family].routing),
            arrival_time=event.time,
        )
        self.jobs[job.id] = job
        self.machines[job.current_stage].queue.push(job.id)

    def _on_finish(self, event: Event) -> None:
        job = self.jobs[event.job_id]
        if not job.is_last_stage:
            job.stage_cursor += 1
            self.machines[job.current_stage].queue.push(job.id)
            return
        job.stage_cursor += 1
        job.completion_time = event.time
        self.completed.append(job.id)
        done = len(self.completed)
        if done % PROGRESS_EVERY == 0:
            logger.debug("...%d/%d concluídos (tempo simulado=%.2f min)", done, self.config.num_jobs, self.now)

    def _dispatch_idle(self) -> None:
        # Varredura completa de todas as máquinas a cada evento
        for machine in self.machines:
            if not machine.is_idle(self.now) or len(machine.queue) == 0:
                continue
            job = self.jobs[machine.queue.pop()]
            self._start(machine, job)

    def _start(self, machine: Machine, job: Job) -> None:
        p = self.params
        sampler = self.sampler

        setup = 0.0
        if machine.last_family is not None and machine.last_family != job.family:
            setup = sampler.duration(p.setup_time_mean, p.setup_time_sd)

        mean = p.proc_mean(job.family, machine.stage)
        processing = sampler.duration(mean, mean * p.proc_time_cv_factor)

        downtime = 0.0
        if sampler.trial(p.downtime_prob):
            downtime = sampler.duration(p.downtime_mean, p.downtime_sd)

        defect = sampler.trial(p.defect_prob[machine.stage])

        job.setup_time_total += setup
        job.processing_time_total += processing
        job.downtime_total += downtime
        job.is_defective = job.is_defective or defect

        finish = self.now + setup + processing + downtime
        self.scheduler.schedule(Event(time=finish, kind=FINISH, job_id=job.id))
        machine.free_time = finish
        machine.last_family = job.family
        self.dispatches.append(
            Dispatch(
                stage=machine.stage,
                job_id=job.id,
                family=job.family,
                start=self.now,
                setup=setup,
                processing=processing,
                downtime=downtime,
                defect=defect,
            )
        )

    def _finalize(self) -> List[Job]:
        pending = [j.id for j in self.jobs.values() if not j.completed]
        if pending or len(self.jobs) != self.config.num_jobs:
            raise InternalInvariantViolation(
                f"{len(pending)} jobs não concluídos e {len(self.jobs)}/{self.config.num_jobs} criados "
                f"com a fila de eventos vazia (ex.: {pending[:5]})"
            )
        return [self.jobs[jid] for jid in sorted(self.jobs)]


def run_simulation(params: ParameterSet, config: RunConfig) -> RunResult:
    return Simulation(params, config).run()
