from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import yaml

from .errors import ConfigurationError

if TYPE_CHECKING:
    from .calibration import Calibration


DEFAULT_STAGES: Tuple[str, ...] = ("Cutting", "CNC", "Welding", "Finishing", "Inspection")


@dataclass(frozen=True, slots=True)
class Family:
    name: str
    routing: Tuple[int, ...]

    def __post_init__(self) -> None:
        # Índices vindos de arrays numpy viram int do Python
        routing = tuple(int(s) if isinstance(s, np.integer) else s for s in self.routing)
        object.__setattr__(self, "routing", routing)


@dataclass(slots=True)
class ParameterSet:
    """Modelo de parâmetros de uma oficina HMLV (tempos em minutos).

    `proc_time_mean[family][stage]` é `None` para estágios fora do roteiro da
    família; esse valor nunca é convertido em número.
    """

    name: str
    stages: List[str]
    families: List[Family]
    proc_time_mean: List[List[Optional[float]]]
    proc_time_cv_factor: float
    setup_time_mean: float
    setup_time_sd: float
    downtime_prob: float
    downtime_mean: float
    downtime_sd: float
    defect_prob: List[float]

    @property
    def num_stages(self) -> int:
        return len(self.stages)

    @property
    def num_families(self) -> int:
        return len(self.families)

    def stage_index(self, name: str) -> int:
        try:
            return self.stages.index(name)
        except ValueError:
            raise ConfigurationError(f"estágio desconhecido: {name!r}") from None

    def proc_mean(self, family: int, stage: int) -> float:
        value = self.proc_time_mean[family][stage]
        if value is None:
            raise ConfigurationError(
                f"tempo de processamento não se aplica: família {family}, estágio {stage}"
            )
        return value

    def validate(self) -> None:
        """Valida o conjunto inteiro; qualquer violação é fatal (ConfigurationError)."""
        s = self.num_stages
        if s == 0:
            raise ConfigurationError("nenhum estágio configurado")
        if not self.families:
            raise ConfigurationError("nenhuma família configurada")
        if len(self.proc_time_mean) != len(self.families):
            raise ConfigurationError(
                f"proc_time_mean tem {len(self.proc_time_mean)} linhas para {len(self.families)} famílias"
            )
        if len(self.defect_prob) != s:
            raise ConfigurationError(f"defect_prob tem {len(self.defect_prob)} valores para {s} estágios")

        for f_idx, fam in enumerate(self.families):
            if not fam.routing:
                raise ConfigurationError(f"família {fam.name!r} sem roteiro")
            row = self.proc_time_mean[f_idx]
            if len(row) != s:
                raise ConfigurationError(f"proc_time_mean[{f_idx}] tem {len(row)} colunas para {s} estágios")
            for stage in fam.routing:
                if isinstance(stage, bool) or not isinstance(stage, int) or not 0 <= stage < s:
                    raise ConfigurationError(f"família {fam.name!r}: estágio {stage!r} fora de [0, {s})")
                mean = row[stage]
                if mean is None:
                    raise ConfigurationError(
                        f"família {fam.name!r}: sem tempo de processamento no estágio {self.stages[stage]!r}"
                    )
                _check_non_negative(f"proc_time_mean[{f_idx}][{stage}]", mean)

        _check_non_negative("proc_time_cv_factor", self.proc_time_cv_factor)
        _check_non_negative("setup_time_mean", self.setup_time_mean)
        _check_non_negative("setup_time_sd", self.setup_time_sd)
        _check_non_negative("downtime_mean", self.downtime_mean)
        _check_non_negative("downtime_sd", self.downtime_sd)
        _check_probability("downtime_prob", self.downtime_prob)
        for idx, p in enumerate(self.defect_prob):
            _check_probability(f"defect_prob[{idx}]", p)

    # Serialização (YAML)
    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "stages": list(self.stages),
            "families": [{"name": f.name, "routing": list(f.routing)} for f in self.families],
            "proc_time_mean": [list(row) for row in self.proc_time_mean],
            "proc_time_cv_factor": float(self.proc_time_cv_factor),
            "setup_time_mean": float(self.setup_time_mean),
            "setup_time_sd": float(self.setup_time_sd),
            "downtime_prob": float(self.downtime_prob),
            "downtime_mean": float(self.downtime_mean),
            "downtime_sd": float(self.downtime_sd),
            "defect_prob": [float(p) for p in self.defect_prob],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParameterSet":
        try:
            params = cls(
                name=str(data.get("name", "params")),
                stages=[str(s) for s in data["stages"]],
                families=[
                    Family(name=str(f["name"]), routing=tuple(f["routing"] or ()))
                    for f in data["families"]
                ],
                proc_time_mean=[
                    [None if v is None else float(v) for v in row] for row in data["proc_time_mean"]
                ],
                proc_time_cv_factor=float(data["proc_time_cv_factor"]),
                setup_time_mean=float(data["setup_time_mean"]),
                setup_time_sd=float(data["setup_time_sd"]),
                downtime_prob=float(data["downtime_prob"]),
                downtime_mean=float(data["downtime_mean"]),
                downtime_sd=float(data["downtime_sd"]),
                defect_prob=[float(p) for p in data["defect_prob"]],
            )
        except KeyError as e:
            raise ConfigurationError(f"chave obrigatória ausente: {e.args[0]}") from e
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"valor inválido no conjunto de parâmetros: {e}") from e
        params.validate()
        return params

    @classmethod
    def from_yaml(cls, path: Path) -> "ParameterSet":
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path}: esperado um mapeamento YAML")
        return cls.from_dict(data)

    def to_yaml(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)


def _check_non_negative(name: str, value: float) -> None:
    if not math.isfinite(value) or value < 0:
        raise ConfigurationError(f"{name} deve ser finito e >= 0 (recebido {value})")


def _check_probability(name: str, value: float) -> None:
    if not math.isfinite(value) or not 0.0 <= value <= 1.0:
        raise ConfigurationError(f"{name} deve estar em [0, 1] (recebido {value})")


# Fallbacks quando não há calibração
DEFAULT_CV_FACTOR = 0.15
DEFAULT_DOWNTIME_MEAN = 3.1
DEFAULT_DOWNTIME_SD = 2.5
DEFAULT_WELDING_DEFECT = 0.02


def default_parameters(calibration: Optional["Calibration"] = None) -> ParameterSet:
    """Oficina de referência: 5 estágios, 3 famílias (Brackets, Shafts, Gates)."""
    cv = DEFAULT_CV_FACTOR
    down_mean, down_sd = DEFAULT_DOWNTIME_MEAN, DEFAULT_DOWNTIME_SD
    welding_defect = DEFAULT_WELDING_DEFECT
    if calibration is not None:
        cv = calibration.cv_rate
        welding_defect = calibration.defect_prop
        # Sem paradas detectadas a média vem NaN: mantém o fallback
        if calibration.stop_mean_min is not None and math.isfinite(calibration.stop_mean_min):
            down_mean = calibration.stop_mean_min
            sd = calibration.stop_sd_min
            down_sd = sd if sd is not None and math.isfinite(sd) else 0.0

    return ParameterSet(
        name="before",
        stages=list(DEFAULT_STAGES),
        families=[
            Family("Brackets", (0, 3, 4)),
            Family("Shafts", (0, 1, 3, 4)),
            Family("Gates", (0, 1, 2, 3, 4)),
        ],
        proc_time_mean=[
            [5.0, None, None, 8.0, 3.0],
            [8.0, 20.0, None, 10.0, 5.0],
            [15.0, 30.0, 45.0, 25.0, 10.0],
        ],
        proc_time_cv_factor=cv,
        setup_time_mean=45.0,
        setup_time_sd=15.0,
        downtime_prob=0.03,
        downtime_mean=down_mean,
        downtime_sd=down_sd,
        defect_prob=[0.005, 0.01, welding_defect, 0.005, 0.005],
    )


@dataclass(slots=True)
class LeanInterventions:
    """Fatores multiplicativos aplicados ao cenário "before"."""

    smed_setup_mean: float = 0.75  # SMED
    smed_setup_sd: float = 0.66
    tpm_downtime_prob: float = 0.67  # TPM
    rca_defect: float = 0.50  # RCA no estágio dominante
    rca_stages: Sequence[str] = field(default_factory=lambda: ("Welding",))
    std_work_cv: float = 0.64  # 5S / trabalho padronizado


def apply_interventions(
    before: ParameterSet, interventions: Optional[LeanInterventions] = None, name: str = "after"
) -> ParameterSet:
    iv = interventions or LeanInterventions()
    defect_prob = list(before.defect_prob)
    for stage_name in iv.rca_stages:
        idx = before.stage_index(stage_name)
        defect_prob[idx] = defect_prob[idx] * iv.rca_defect
    after = replace(
        before,
        name=name,
        stages=list(before.stages),
        families=list(before.families),
        proc_time_mean=[list(row) for row in before.proc_time_mean],
        setup_time_mean=before.setup_time_mean * iv.smed_setup_mean,
        setup_time_sd=before.setup_time_sd * iv.smed_setup_sd,
        downtime_prob=before.downtime_prob * iv.tpm_downtime_prob,
        defect_prob=defect_prob,
        proc_time_cv_factor=before.proc_time_cv_factor * iv.std_work_cv,
    )
    after.validate()
    return after


def define_parameters(
    calibration: Optional["Calibration"] = None, interventions: Optional[LeanInterventions] = None
) -> Tuple[ParameterSet, ParameterSet]:
    before = default_parameters(calibration)
    before.validate()
    return before, apply_interventions(before, interventions)
