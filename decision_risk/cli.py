"""Command-line interface for the decision risk engine.

Built with Typer and Rich. Configuration files are JSON or YAML RunConfig
documents with an optional ``engine`` section for execution settings.

Commands:
- run: simulate every option and print the metric table
- validate: check a configuration without sampling
- fingerprint: print the canonical run id of a configuration
- tornado: rank inputs by their influence on one option
- stress: compare presets against the baseline
- verify: confirm reproducibility across thread counts
- template: write an example configuration
"""

import typer
from typing import Optional, List, Tuple, Dict, Any
from pathlib import Path
import time
from rich.console import Console
from rich.table import Table

from .core.aggregation import SimulationEngine
from .core.audit import DeterminismVerifier
from .core.data_models import EngineSettings, RunConfig, RunResult
from .core.exceptions import DecisionRiskError
from .core.fingerprint import compute_fingerprint, run_id_for
from .core.logging_config import setup_logging
from .core.sensitivity import SensitivityAnalyzer, TornadoReport
from .core.stress import STRESS_PRESETS, StressReport, StressTester
from .core.validation import ValidationEngine, validate_engine_settings, validate_run_config
from .io.io_json import JSONExporter, JSONImporter
from .io.snapshot import JSONSnapshotStore, build_snapshot
from .reporting.reporting import (
    export_csv,
    results_to_dataframe,
    stress_to_dataframe,
    tornado_to_dataframe,
)

app: typer.Typer = typer.Typer(help="Monte Carlo decision risk engine for comparing strategic options")
console: Console = Console()


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file"),
    structured: bool = typer.Option(False, "--structured-logs", help="Emit JSON log records"),
):
    """Monte Carlo decision risk engine."""
    setup_logging(log_level=log_level, log_file=log_file, enable_structured=structured)


@app.command()
def run(
    config: Path = typer.Argument(..., help="Run configuration (JSON or YAML)"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Override the configured seed"),
    runs: Optional[int] = typer.Option(None, "--runs", "-n", help="Override the configured run count"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Worker threads"),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", min=1, help="Draws per work item"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write results to this JSON file"),
    csv: Optional[Path] = typer.Option(None, "--csv", help="Write the metric table to this CSV file"),
    decision_id: Optional[str] = typer.Option(None, "--decision-id", help="Decision id recorded in the snapshot"),
    snapshot_dir: Optional[Path] = typer.Option(None, "--snapshot-dir", help="Save a snapshot in this directory"),
):
    """Run the Monte Carlo simulation for every option."""
    try:
        run_config, settings = _load(config, seed, runs, workers, chunk_size)

        console.print(
            f"[yellow]Running {run_config.run_count:,} draws for "
            f"{len(run_config.options)} option(s)...[/yellow]"
        )
        start_time = time.time()
        with console.status("[bold green]Running Monte Carlo simulation..."):
            result = SimulationEngine(settings).run(run_config)
        elapsed = time.time() - start_time

        _display_results(result, elapsed)

        if output:
            JSONExporter().export_run_result(result, output, config=run_config)
            console.print(f"[blue]Results saved to: {output.absolute()}[/blue]")
        if csv:
            export_csv(results_to_dataframe(result), str(csv))
            console.print(f"[blue]Metric table saved to: {csv.absolute()}[/blue]")
        if snapshot_dir:
            snapshot = build_snapshot(result, decision_id or config.stem)
            JSONSnapshotStore(snapshot_dir).save(snapshot)
            console.print(f"[blue]Snapshot {snapshot.run_id[:16]}... saved to {snapshot_dir}[/blue]")

        console.print("[green]✅ Simulation completed successfully![/green]")

    except DecisionRiskError as e:
        console.print(f"[red]❌ Error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def validate(
    config: Path = typer.Argument(..., help="Run configuration (JSON or YAML)"),
    detailed: bool = typer.Option(False, "--detailed", "-d", help="Show detailed validation results"),
    strict: bool = typer.Option(False, "--strict", help="Treat warnings as errors"),
):
    """Validate a configuration without running the simulation."""
    console.print("[yellow]Validating configuration...[/yellow]")

    try:
        data, _ = JSONImporter().import_configuration(config)
    except DecisionRiskError as e:
        console.print(f"[red]❌ Validation error: {e}[/red]")
        raise typer.Exit(1)

    is_valid, errors, warnings = ValidationEngine(fail_on_warnings=strict).validate(data)

    if detailed:
        _display_detailed_validation_results(errors, warnings)
    _display_validation_summary(is_valid, len(errors), len(warnings))

    if not is_valid:
        raise typer.Exit(1)


@app.command()
def fingerprint(
    config: Path = typer.Argument(..., help="Run configuration (JSON or YAML)"),
):
    """Print the fingerprint and run id of a configuration."""
    try:
        data, _ = JSONImporter().import_configuration(config)
        digest = compute_fingerprint(data)
    except DecisionRiskError as e:
        console.print(f"[red]❌ Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"fingerprint: {digest}")
    console.print(f"run_id: {run_id_for(digest)}")


@app.command()
def tornado(
    config: Path = typer.Argument(..., help="Run configuration (JSON or YAML)"),
    option: str = typer.Option(..., "--option", help="Option id to analyse"),
    method: str = typer.Option("rank", "--method", "-m", help="Ranking method (rank or oat)"),
    metric: str = typer.Option("raroc", "--metric", help="Metric for one-at-a-time ranking"),
    step: float = typer.Option(10.0, "--step", help="Perturbation in percent for one-at-a-time ranking"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Worker threads"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the ranking to this CSV file"),
):
    """Rank the inputs that drive an option's outcome."""
    if method not in ("rank", "oat"):
        console.print(f"[red]❌ Unknown method '{method}'. Use 'rank' or 'oat'.[/red]")
        raise typer.Exit(1)

    try:
        run_config, settings = _load(config, workers=workers)
        analyzer = SensitivityAnalyzer(SimulationEngine(settings), max_workers=settings.workers)
        with console.status("[bold green]Running sensitivity analysis..."):
            if method == "rank":
                report = analyzer.rank_correlation_tornado(run_config, option)
            else:
                report = analyzer.one_at_a_time_tornado(run_config, option, metric=metric, step_pct=step)
    except (DecisionRiskError, KeyError, ValueError) as e:
        console.print(f"[red]❌ Error: {e}[/red]")
        raise typer.Exit(1)

    _display_tornado(report)
    if output:
        export_csv(tornado_to_dataframe(report), str(output))
        console.print(f"[blue]Ranking saved to: {output.absolute()}[/blue]")


@app.command()
def stress(
    config: Path = typer.Argument(..., help="Run configuration (JSON or YAML)"),
    scenario: Optional[List[str]] = typer.Option(
        None, "--scenario", "-s", help=f"Preset to run (repeatable): {', '.join(STRESS_PRESETS)}"
    ),
    metric: str = typer.Option("raroc", "--metric", help="Metric shown in the summary table"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Worker threads"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write all deltas to this CSV file"),
):
    """Run stress presets against the baseline."""
    try:
        run_config, settings = _load(config, workers=workers)
        tester = StressTester(SimulationEngine(settings), max_workers=settings.workers)
        with console.status("[bold green]Running stress scenarios..."):
            reports = tester.run_scenarios(run_config, scenario or None)
    except DecisionRiskError as e:
        console.print(f"[red]❌ Error: {e}[/red]")
        raise typer.Exit(1)

    _display_stress(reports, metric)
    if output:
        export_csv(stress_to_dataframe(reports), str(output))
        console.print(f"[blue]Stress deltas saved to: {output.absolute()}[/blue]")


@app.command()
def verify(
    config: Path = typer.Argument(..., help="Run configuration (JSON or YAML)"),
    runs: int = typer.Option(3, "--runs", help="Number of verification runs"),
    workers: int = typer.Option(4, "--workers", "-w", min=1, help="Thread count for the multi-threaded runs"),
):
    """Verify simulation reproducibility across runs and thread counts."""
    console.print(f"[yellow]Verifying reproducibility with {runs} runs...[/yellow]")

    try:
        run_config, settings = _load(config, workers=workers)
    except DecisionRiskError as e:
        console.print(f"[red]❌ Verification error: {e}[/red]")
        raise typer.Exit(1)

    verification = DeterminismVerifier.verify_reproducibility(run_config, runs, settings)

    if verification['runs']:
        table = Table(title="Verification Runs")
        table.add_column("Run")
        table.add_column("Workers", justify="right")
        table.add_column("Outcome Hash")
        for entry in verification['runs']:
            table.add_row(str(entry['run_number']), str(entry['workers']), entry['outcomes_hash'])
        console.print(table)

    if verification['reproducible']:
        console.print(f"[green]✅ Simulation is reproducible across {runs} runs[/green]")
        console.print(f"Run id: {verification['run_id']}")
    else:
        console.print("[red]❌ Simulation is not reproducible[/red]")
        console.print(f"Reason: {verification.get('reason', 'Unknown')}")
        raise typer.Exit(1)


@app.command()
def template(
    output: Path = typer.Argument(Path("decision_config.yaml"), help="Output file (.json, .yaml or .yml)"),
):
    """Write an example run configuration."""
    if output.suffix.lower() not in (".json", ".yaml", ".yml"):
        console.print(f"[red]❌ Unsupported format: {output.suffix}[/red]")
        raise typer.Exit(1)

    JSONExporter().create_example_configuration(output)
    console.print(f"[green]✅ Example configuration written to {output}[/green]")


# Utility functions

def _load(
    config_path: Path,
    seed: Optional[int] = None,
    runs: Optional[int] = None,
    workers: Optional[int] = None,
    chunk_size: Optional[int] = None,
) -> Tuple[RunConfig, EngineSettings]:
    """Load a configuration file and apply command-line overrides."""
    data, settings = JSONImporter().import_configuration(config_path)

    if seed is not None:
        data['seed'] = seed
    if runs is not None:
        data['run_count'] = runs

    engine_overrides: Dict[str, Any] = {}
    if workers is not None:
        engine_overrides['workers'] = workers
    if chunk_size is not None:
        engine_overrides['chunk_size'] = chunk_size
    if engine_overrides:
        settings = validate_engine_settings({**settings.model_dump(), **engine_overrides})

    return validate_run_config(data), settings


def _fmt(value: Optional[float], pattern: str = "{:,.2f}") -> str:
    return "n/a" if value is None else pattern.format(value)


def _display_results(result: RunResult, elapsed: float):
    """Display the per-option metric table."""
    table = Table(title=f"Simulation Results ({result.run_count:,} draws, {elapsed:.1f}s)")
    table.add_column("Option")
    table.add_column("EV", justify="right")
    table.add_column("VaR95", justify="right")
    table.add_column("CVaR95", justify="right")
    table.add_column("Capital", justify="right")
    table.add_column("RAROC", justify="right")
    table.add_column("CE", justify="right")
    table.add_column("TCOR", justify="right")

    for r in result.results:
        table.add_row(
            r.option_label,
            _fmt(r.ev),
            _fmt(r.var95),
            _fmt(r.cvar95),
            _fmt(r.economic_capital),
            _fmt(r.raroc, "{:.4f}"),
            _fmt(r.certainty_equivalent),
            _fmt(r.tcor),
        )
    console.print(table)
    console.print(f"Run id: {result.run_id}")

    if result.achieved_spearman is not None:
        console.print(f"Achieved Spearman: {result.achieved_spearman:.3f}")
    for warning in result.warnings:
        console.print(f"[orange3]• {warning}[/orange3]")


def _display_tornado(report: TornadoReport):
    title = f"Tornado: {report.option_id} ({report.method}"
    title += f", {report.metric})" if report.metric else ")"
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Input")
    table.add_column("Impact", justify="right")
    table.add_column("Δ+", justify="right")
    table.add_column("Δ-", justify="right")

    for rank, entry in enumerate(report.entries, 1):
        table.add_row(
            str(rank),
            entry.param_name,
            f"{entry.impact:.4f}",
            _fmt(entry.delta_plus, "{:+.4f}"),
            _fmt(entry.delta_minus, "{:+.4f}"),
        )
    console.print(table)


def _display_stress(reports: Dict[str, StressReport], metric: str):
    table = Table(title=f"Stress Deltas ({metric})")
    table.add_column("Scenario")
    table.add_column("Option")
    table.add_column("Baseline", justify="right")
    table.add_column("Stressed", justify="right")
    table.add_column("Δ", justify="right")

    for name, report in reports.items():
        for option in report.options:
            table.add_row(
                name,
                option.option_label,
                _fmt(option.baseline.get(metric)),
                _fmt(option.stressed.get(metric)),
                _fmt(option.delta.get(metric), "{:+,.2f}"),
            )
    console.print(table)


def _display_validation_summary(is_valid: bool, error_count: int, warning_count: int):
    """Display validation summary."""
    if is_valid:
        console.print("[green]✅ Validation passed[/green]")
    else:
        console.print("[red]❌ Validation failed[/red]")

    if error_count > 0:
        console.print(f"[red]Errors: {error_count}[/red]")

    if warning_count > 0:
        console.print(f"[orange3]Warnings: {warning_count}[/orange3]")


def _display_detailed_validation_results(errors: List[str], warnings: List[str]):
    """Display detailed validation results."""
    if errors:
        console.print(f"[red]Errors ({len(errors)}):[/red]")
        for i, error in enumerate(errors, 1):
            console.print(f"  {i}. {error}")
        console.print()

    if warnings:
        console.print(f"[orange3]Warnings ({len(warnings)}):[/orange3]")
        for i, warning in enumerate(warnings, 1):
            console.print(f"  {i}. {warning}")


if __name__ == "__main__":
    app()
