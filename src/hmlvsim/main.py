from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Dict, List, Optional

from .analysis.kpis import WorkCalendar, compute_weekly_kpis, write_weekly_kpis
from .analysis.maturity import BASELINE_SCMI, IMPROVED_SCMI, lmi_summary, scmi_score, scmi_table
from .analysis.stats import paired_tests, write_stats
from .analysis.validation import validate_against_calibration
from .calibration import Calibration, CalibrationOptions, calibrate_continuous_flow
from .errors import CalibrationError, ConfigurationError
from .params import ParameterSet, define_parameters
from .plots import plot_calibration, plot_kpi_bars, plot_lead_time_hist, plot_lmi_bars, plot_run_charts
from .sim.engine import RunConfig, run_simulation
from .sim.metrics import summarize

logger = logging.getLogger("hmlvsim")


def _load_calibration(path: Optional[str]) -> Optional[Calibration]:
    if not path:
        return None
    return Calibration.load(Path(path))


def cmd_simulate(args: argparse.Namespace) -> int:
    params = ParameterSet.from_yaml(Path(args.params))
    cfg = RunConfig(
        num_jobs=args.jobs,
        mean_interarrival=args.interarrival,
        seed=args.seed,
        output_path=Path(args.output) if args.output else None,
    )
    result = run_simulation(params, cfg)
    print(json.dumps(asdict(summarize(result.log)), indent=2))
    return 0


def cmd_define_params(args: argparse.Namespace) -> int:
    outputs_dir = Path(args.outputs)
    before, after = define_parameters(_load_calibration(args.calibration))
    before.to_yaml(outputs_dir / "params_before.yaml")
    after.to_yaml(outputs_dir / "params_after.yaml")
    logger.info("Parâmetros salvos em %s", outputs_dir)
    return 0


def cmd_calibrate(args: argparse.Namespace) -> int:
    outputs_dir = Path(args.outputs)
    opts = CalibrationOptions(
        time_column=args.time_column,
        rate_column=args.rate_column,
        quality_column=args.quality_column,
        resample_min=args.resample_min,
        spec_band_method=args.spec_band,
        spec_k=args.spec_k,
    )
    calib, trace = calibrate_continuous_flow(Path(args.csv), opts)
    calib.save(outputs_dir / "calibration.yaml")
    plot_calibration(calib, trace, outputs_dir / "figures")
    print(json.dumps(asdict(calib), indent=2))
    return 0


def cmd_pipeline(args: argparse.Namespace) -> int:
    outputs_dir = Path(args.outputs)
    tables_dir = outputs_dir / "tables"
    figures_dir = outputs_dir / "figures"
    outputs_dir.mkdir(parents=True, exist_ok=True)

    calib = _load_calibration(args.calibration)
    before, after = define_parameters(calib)
    before.to_yaml(outputs_dir / "params_before.yaml")
    after.to_yaml(outputs_dir / "params_after.yaml")

    calendar = WorkCalendar(hours_per_day=args.hours_per_day, days_per_week=args.days_per_week)
    summaries: List[Dict] = []

    # Cenário before: define a taxa ideal usada no after
    res_b = run_simulation(
        before,
        RunConfig(args.jobs, args.interarrival, args.seed, outputs_dir / "before_jobs.csv"),
    )
    kpi_b = compute_weekly_kpis(res_b.log, calendar=calendar)
    seed_after = None if args.seed is None else args.seed + 1
    res_a = run_simulation(
        after,
        RunConfig(args.jobs, args.interarrival, seed_after, outputs_dir / "after_jobs.csv"),
    )
    kpi_a = compute_weekly_kpis(res_a.log, ideal_rate=kpi_b.ideal_rate, calendar=calendar)

    write_weekly_kpis(kpi_b.weekly, tables_dir / "weekly_kpis_before.csv")
    write_weekly_kpis(kpi_a.weekly, tables_dir / "weekly_kpis_after.csv")
    for name, res in (("before", res_b), ("after", res_a)):
        summaries.append({"scenario": name, **asdict(summarize(res.log))})

    try:
        df_stats = paired_tests(kpi_b.weekly, kpi_a.weekly)
        write_stats(df_stats, tables_dir / "stats_summary.csv")
    except ValueError as e:
        # Poucas semanas para o teste pareado: segue sem a tabela
        logger.warning("Testes estatísticos ignorados: %s", e)

    scmi_table(BASELINE_SCMI, IMPROVED_SCMI).to_csv(tables_dir / "scmi_before_after.csv", index=False)
    lmi = lmi_summary(kpi_b.weekly, kpi_a.weekly, scmi_score(BASELINE_SCMI), scmi_score(IMPROVED_SCMI))
    lmi.to_csv(tables_dir / "tepi_scmi_lmi_summary.csv", index=False)

    if calib is not None:
        validate_against_calibration(kpi_b.weekly, calib).to_csv(
            tables_dir / "validation_summary.csv", index=False
        )

    plot_kpi_bars(kpi_b.weekly, kpi_a.weekly, figures_dir / "kpi_summary_bars.png")
    plot_lmi_bars(lmi, figures_dir / "lmi_summary_bars.png")
    plot_run_charts(kpi_b.weekly, kpi_a.weekly, figures_dir / "kpi_run_charts.png")
    plot_lead_time_hist(res_b.log, res_a.log, figures_dir / "mlt_distribution_hist.png", calendar.minutes_per_day)

    (outputs_dir / "summaries.json").write_text(json.dumps(summaries, indent=2), encoding="utf-8")
    logger.info("Pipeline concluído; saídas em %s", outputs_dir)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hmlvsim",
        description="Simulação de oficina HMLV e análise before/after de intervenções lean",
    )
    parser.add_argument("--log-level", default="INFO", help="Nível de log (DEBUG, INFO, ...)")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_run_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--jobs", type=int, default=200, help="Número de jobs")
        p.add_argument("--interarrival", type=float, default=25.0, help="Intervalo médio entre chegadas (min)")
        p.add_argument("--seed", type=int, default=None, help="Semente do gerador")

    p_sim = sub.add_parser("simulate", help="Executa uma simulação e grava o log de jobs")
    p_sim.add_argument("--params", required=True, help="Arquivo YAML de parâmetros")
    p_sim.add_argument("--output", default=None, help="CSV de saída do log de jobs")
    add_run_args(p_sim)
    p_sim.set_defaults(func=cmd_simulate)

    p_def = sub.add_parser("define-params", help="Gera params_before/params_after")
    p_def.add_argument("--calibration", default=None, help="calibration.yaml (opcional)")
    p_def.add_argument("--outputs", default="config", help="Diretório de saída")
    p_def.set_defaults(func=cmd_define_params)

    p_cal = sub.add_parser("calibrate", help="Calibra a partir de dados de fluxo contínuo")
    p_cal.add_argument("csv", help="CSV com sinais de processo")
    p_cal.add_argument("--outputs", default="config", help="Diretório de saída")
    p_cal.add_argument("--time-column", default="time_stamp")
    p_cal.add_argument("--rate-column", default=None)
    p_cal.add_argument("--quality-column", default=None)
    p_cal.add_argument("--resample-min", type=float, default=1.0)
    p_cal.add_argument("--spec-band", choices=["MAD", "IQR"], default="MAD")
    p_cal.add_argument("--spec-k", type=float, default=3.0)
    p_cal.set_defaults(func=cmd_calibrate)

    p_pipe = sub.add_parser("pipeline", help="Before/after completo: simulação, KPIs, testes, LMI, figuras")
    p_pipe.add_argument("--calibration", default=None, help="calibration.yaml (opcional)")
    p_pipe.add_argument("--outputs", default="outputs", help="Diretório de saída para CSV/PNG")
    p_pipe.add_argument("--hours-per-day", type=float, default=8.0)
    p_pipe.add_argument("--days-per-week", type=float, default=5.0)
    add_run_args(p_pipe)
    p_pipe.set_defaults(func=cmd_pipeline)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        return args.func(args)
    except (ConfigurationError, CalibrationError) as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
