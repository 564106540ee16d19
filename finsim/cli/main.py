"""Command-line interface over the finsim Monte Carlo engine."""

from __future__ import annotations

import argparse
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pandas as pd
import yaml
from tqdm.auto import tqdm

from finsim.engine.logging import configure_cli_logging, record_metrics
from finsim.engine.montecarlo import (
    RISK_TOLERANCES,
    RetirementConfig,
    SimulationConfig,
    SimulationError,
    SimulationResult,
    calculate_success_rate,
    compare_scenarios,
    comparison_table,
    evaluate_goal,
    list_scenarios,
    recommended_allocation,
    simulate,
    simulate_retirement,
    solve_required_contribution,
)
from finsim.engine.utils.io import ensure_dir, run_dir, write_json, write_yaml
from finsim.engine.utils.rand import DEFAULT_SEED_PATH, save_seeds, seed_for_stream
from finsim.engine.validate import CONFIG_KINDS, validate_config_file

DESCRIPTION = "finsim - Monte Carlo simulations for savings goals and retirement plans"
SEED_STREAM = "simulation"
DEFAULT_SIMULATION_CONFIG = Path("configs") / "simulation.yml"
DEFAULT_RETIREMENT_CONFIG = Path("configs") / "retirement.yml"

__all__ = ["build_parser", "main"]


def _add_run_options(parser: argparse.ArgumentParser, *, default_config: Path) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=default_config,
        help=f"Path to the YAML configuration (default: {default_config})",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help=f"Random seed; defaults to the '{SEED_STREAM}' stream of the seeds file",
    )
    parser.add_argument(
        "--seeds-file",
        type=Path,
        default=DEFAULT_SEED_PATH,
        help="YAML file holding the seed streams",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Worker threads compounding batches of trials",
    )


def _add_simulate_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    sim = subparsers.add_parser("simulate", help="Run a Monte Carlo simulation")
    _add_run_options(sim, default_config=DEFAULT_SIMULATION_CONFIG)
    sim.add_argument("--target", type=float, help="Report the success rate for this target")
    sim.add_argument(
        "--output-dir",
        type=Path,
        help=(
            "Directory receiving time_series.csv, summary.json, config.yml and seeds.yml "
            "(default: a new timestamped folder below artifacts/runs)"
        ),
    )


def _add_solve_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    solve = subparsers.add_parser(
        "solve", help="Find the monthly contribution reaching a success rate"
    )
    _add_run_options(solve, default_config=DEFAULT_SIMULATION_CONFIG)
    solve.add_argument("--target", type=float, help="Target terminal balance")
    solve.add_argument("--rate", type=float, help="Target success rate in (0, 1]")
    solve.add_argument("--upper-bound", type=float, help="Contribution ceiling of the search")
    solve.add_argument("--max-probes", type=int, default=25, help="Simulation budget")


def _add_goal_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    goal = subparsers.add_parser("goal", help="Evaluate the probability of reaching a goal")
    _add_run_options(goal, default_config=DEFAULT_SIMULATION_CONFIG)
    goal.add_argument("--target", type=float, help="Target terminal balance")


def _add_scenarios_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    subparsers.add_parser("scenarios", help="List the adverse scenario catalogue")


def _add_compare_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    compare = subparsers.add_parser("compare", help="Compare a baseline against scenarios")
    _add_run_options(compare, default_config=DEFAULT_SIMULATION_CONFIG)
    compare.add_argument(
        "--scenario",
        action="append",
        dest="scenarios",
        help="Scenario name (repeatable); all scenarios when omitted",
    )


def _add_retirement_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    retirement = subparsers.add_parser("retirement", help="Run the two-phase retirement plan")
    _add_run_options(retirement, default_config=DEFAULT_RETIREMENT_CONFIG)


def _add_allocation_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    allocation = subparsers.add_parser(
        "allocation", help="Suggest return, volatility and asset mix for a risk profile"
    )
    allocation.add_argument("--risk", choices=RISK_TOLERANCES, default="moderate")
    allocation.add_argument(
        "--years", type=float, required=True, help="Years left until retirement"
    )


def _add_validate_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Attach the validate command used for configuration checks."""

    validate = subparsers.add_parser("validate", help="Validate a YAML configuration file")
    validate.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_SIMULATION_CONFIG,
        help="Path to the configuration to check",
    )
    validate.add_argument(
        "--kind",
        choices=CONFIG_KINDS,
        default="simulation",
        help="Configuration schema to apply (default: simulation)",
    )
    validate.add_argument(
        "--verbose",
        action="store_true",
        help="Print the normalised payload on success",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="finsim", description=DESCRIPTION)
    parser.add_argument(
        "--progress",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Display a tqdm progress bar (trials, solver probes, runs or stages)",
    )
    parser.add_argument(
        "--json-logs",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Mirror logs to artifacts/logs/finsim.log in JSON format",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)
    _add_validate_subparser(sub)
    _add_simulate_subparser(sub)
    _add_solve_subparser(sub)
    _add_goal_subparser(sub)
    _add_scenarios_subparser(sub)
    _add_compare_subparser(sub)
    _add_retirement_subparser(sub)
    _add_allocation_subparser(sub)
    return parser


def _load_payload(path: Path, kind: str) -> dict[str, Any]:
    summary = validate_config_file(path, kind=kind)
    for warning in summary.warnings:
        print(f"[finsim] validate warning: {warning}")
    if summary.errors:
        raise SystemExit("[finsim] invalid configuration: " + "; ".join(summary.errors))
    return summary.configs[kind]


def _resolve_seed(args: argparse.Namespace) -> int:
    if args.seed is not None:
        return int(args.seed)
    return seed_for_stream(SEED_STREAM, seed_path=args.seeds_file)


def _resolve_target(args: argparse.Namespace, payload: dict[str, Any]) -> float:
    target = args.target if args.target is not None else payload.get("target_amount")
    if target is None:
        raise SystemExit("--target is required when the config has no target_amount")
    return float(target)


@contextmanager
def _progress_bar(enabled: bool, desc: str, unit: str) -> Iterator[Callable[[int, int], None]]:
    """Yield a ``progress(done, total)`` callback driving a tqdm bar."""

    bar = tqdm(total=None, disable=not enabled, desc=desc, unit=unit)

    def update(done: int, total: int) -> None:
        if bar.total != total:
            bar.total = total
        bar.update(done - bar.n)

    try:
        yield update
    finally:
        bar.close()


def _write_run_artifacts(
    out_dir: Path,
    result: SimulationResult,
    summary: dict[str, Any],
    payload: dict[str, Any],
    seed: int,
) -> None:
    csv_path = out_dir / "time_series.csv"
    result.to_frame().to_csv(csv_path)
    json_path = write_json(summary, out_dir / "summary.json")
    write_yaml(payload, out_dir / "config.yml")
    save_seeds({SEED_STREAM: seed}, out_dir / "seeds.yml")
    print(f"[finsim] simulate csv={csv_path} summary={json_path}")


def _handle_simulate(args: argparse.Namespace) -> None:
    payload = _load_payload(args.config, "simulation")
    config = SimulationConfig.from_mapping(payload)
    seed = _resolve_seed(args)
    with _progress_bar(args.progress, "simulate", "trial") as update:
        result = simulate(config, seed=seed, workers=args.workers, progress=update)
    record_metrics("simulation_ms", result.elapsed_ms, {"command": "simulate"})
    print(
        f"[finsim] simulate iterations={config.iterations} months={config.months} seed={seed} "
        f"p10={result.p10:.2f} median={result.median:.2f} p90={result.p90:.2f} "
        f"mean={result.mean:.2f} elapsed_ms={result.elapsed_ms:.1f}"
    )
    summary = result.summary()
    target = args.target if args.target is not None else payload.get("target_amount")
    if target is not None:
        rate = calculate_success_rate(result.final_values, float(target))
        summary["target_amount"] = float(target)
        summary["success_rate"] = rate
        print(f"[finsim] simulate target={float(target):.2f} success_rate={rate:.4f}")
    out_dir = ensure_dir(args.output_dir) if args.output_dir else run_dir(label=args.cmd)
    _write_run_artifacts(out_dir, result, summary, payload, seed)


def _handle_solve(args: argparse.Namespace) -> None:
    payload = _load_payload(args.config, "simulation")
    config = SimulationConfig.from_mapping(payload)
    target = _resolve_target(args, payload)
    rate = args.rate if args.rate is not None else payload.get("target_success_rate", 0.75)
    with _progress_bar(args.progress, "solve", "probe") as update:
        outcome = solve_required_contribution(
            config,
            target,
            float(rate),
            upper_bound=args.upper_bound,
            max_probes=args.max_probes,
            seed=_resolve_seed(args),
            workers=args.workers,
            progress=update,
        )
    record_metrics("solver_probes", float(outcome.probes), {"command": "solve"})
    contribution = f"{outcome.value:.2f}" if outcome.value is not None else "none"
    print(
        f"[finsim] solve target={target:.2f} rate={float(rate):.4f} "
        f"reachable={outcome.reachable} contribution={contribution} "
        f"success_rate={outcome.success_rate:.4f} probes={outcome.probes}"
    )


def _handle_goal(args: argparse.Namespace) -> None:
    payload = _load_payload(args.config, "simulation")
    config = SimulationConfig.from_mapping(payload)
    target = _resolve_target(args, payload)
    with _progress_bar(args.progress, "goal", "trial") as update:
        goal = evaluate_goal(
            config,
            target,
            seed=_resolve_seed(args),
            workers=args.workers,
            progress=update,
        )
    completion = goal.projected_completion_month
    print(
        f"[finsim] goal target={target:.2f} probability={goal.probability:.4f} "
        f"p10={goal.confidence_low:.2f} p90={goal.confidence_high:.2f} "
        f"progress={goal.current_progress:.1f} "
        f"completion_month={completion if completion is not None else 'none'} "
        f"recommended_contribution={goal.recommended_contribution:.2f}"
    )


def _handle_scenarios(args: argparse.Namespace) -> None:
    for scenario in list_scenarios():
        print(
            f"[finsim] scenario name={scenario['name']} severity={scenario['severity']} "
            f"description=\"{scenario['description']}\""
        )


def _handle_compare(args: argparse.Namespace) -> None:
    payload = _load_payload(args.config, "simulation")
    config = SimulationConfig.from_mapping(payload)
    with _progress_bar(args.progress, "compare", "run") as update:
        results = compare_scenarios(
            config,
            args.scenarios,
            seed=_resolve_seed(args),
            workers=args.workers,
            progress=update,
        )
    table = comparison_table(results)
    for row in table.itertuples(index=False):
        recovery = "none" if pd.isna(row.recovery_months) else int(row.recovery_months)
        print(
            f"[finsim] compare scenario={row.scenario} "
            f"baseline_median={row.baseline_median:.2f} stressed_median={row.stressed_median:.2f} "
            f"median_difference_pct={row.median_difference_percent:.2f} "
            f"impact={row.impact_severity} recovery_months={recovery}"
        )


def _handle_retirement(args: argparse.Namespace) -> None:
    payload = _load_payload(args.config, "retirement")
    config = RetirementConfig.from_mapping(payload)
    with _progress_bar(args.progress, "retirement", "stage") as update:
        result = simulate_retirement(
            config,
            seed=_resolve_seed(args),
            workers=args.workers,
            progress=update,
        )
    acc = result.accumulation_phase
    wd = result.withdrawal_phase
    rec = result.recommendations
    print(
        f"[finsim] retirement accumulation years={acc.years_to_retirement} "
        f"median={acc.final_balance_median:.2f} p10={acc.final_balance_p10:.2f} "
        f"p90={acc.final_balance_p90:.2f} contributions={acc.total_contributions:.2f}"
    )
    print(
        f"[finsim] retirement withdrawal years={wd.years_in_retirement} "
        f"need={wd.net_monthly_need:.2f} "
        f"not_running_out={wd.probability_of_not_running_out:.4f} "
        f"median_years={wd.median_years_of_sustainability:.2f} "
        f"safe_withdrawal_rate={wd.safe_withdrawal_rate:.4f}"
    )
    increase = (
        f"{rec.increase_contribution_by:.2f}" if rec.increase_contribution_by is not None else "none"
    )
    earlier = rec.can_retire_earlier_by if rec.can_retire_earlier_by is not None else "none"
    print(
        f"[finsim] retirement nest_egg={rec.target_nest_egg:.2f} "
        f"increase_contribution_by={increase} retire_earlier_by={earlier}"
    )


def _handle_allocation(args: argparse.Namespace) -> None:
    recommendation = recommended_allocation(args.risk, args.years)
    mix = recommendation.allocation
    print(
        f"[finsim] allocation risk={recommendation.risk_tolerance} years={args.years:g} "
        f"expected_return={recommendation.expected_return:.4f} "
        f"volatility={recommendation.volatility:.4f} "
        f"stocks={mix.stocks:g} bonds={mix.bonds:g} cash={mix.cash:g}"
    )


def _handle_validate(args: argparse.Namespace) -> None:
    """Validate a configuration file and report diagnostics to stdout."""

    summary = validate_config_file(args.config, kind=args.kind)
    if args.verbose and summary.configs:
        for label, payload in summary.configs.items():
            rendered = yaml.safe_dump(payload, sort_keys=True)
            print(f"[finsim] validate {label}\n{rendered}", end="")
    for warning in summary.warnings:
        print(f"[finsim] validate warning: {warning}")
    if summary.errors:
        for error in summary.errors:
            print(f"[finsim] validate error: {error}")
        raise SystemExit(1)
    print(f"[finsim] validate kind={args.kind} status=ok")


_HANDLERS: dict[str, Callable[[argparse.Namespace], None]] = {
    "simulate": _handle_simulate,
    "solve": _handle_solve,
    "goal": _handle_goal,
    "scenarios": _handle_scenarios,
    "compare": _handle_compare,
    "retirement": _handle_retirement,
    "allocation": _handle_allocation,
    "validate": _handle_validate,
}


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_cli_logging(json_logs=bool(args.json_logs))
    handler = _HANDLERS[args.cmd]
    try:
        handler(args)
    except SimulationError as exc:
        raise SystemExit(f"[finsim] {args.cmd} failed: {exc}") from exc


if __name__ == "__main__":
    main()
