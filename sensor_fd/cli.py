"""
Command-line interface for the sensor failure detection pipeline.

Reads input files, drives the pipeline and prints its results.
"""

from pathlib import Path
from typing import Optional
import json
import logging

import typer
from rich import print
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from . import __version__
from .config import PROCESSING_CONFIG, SAMPLE_DATA_CONFIG, SENSOR_CHANNELS
from .exceptions import SensorPipelineError
from .models import load_rules
from .pipeline import PipelineOrchestrator, ProgressEvent
from .reporting import AnalysisResult
from .sampler import SyntheticDataGenerator
from .utils import format_duration, get_memory_usage, setup_logging


# Create CLI app
app = typer.Typer(
    name="sensor-fd",
    help="Sensor Failure Detection - classify sensor telemetry as failure or normal",
    add_completion=False
)

# Console for rich output
console = Console()


def version_callback(value: bool):
    if value:
        print(f"Sensor Failure Detection v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True,
        help="Show version and exit"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", help="Enable verbose logging"
    ),
    log_file: Optional[str] = typer.Option(
        None, "--log-file", help="Also write logs to this file"
    )
):
    """Sensor Failure Detection"""
    log_level = logging.DEBUG if verbose else logging.WARNING
    setup_logging(log_level, log_file)


@app.command()
def analyze(
    input_file: Path = typer.Argument(..., help="CSV file with a header row of sensor channels"),
    rules: Optional[Path] = typer.Option(
        None, "--rules", "-r", help="JSON rule set (default: built-in rules)"
    ),
    reject_incomplete: bool = typer.Option(
        PROCESSING_CONFIG["reject_incomplete_rows"],
        "--reject-incomplete/--impute-missing",
        help="Drop rows missing required channels instead of imputing"
    ),
    max_workers: int = typer.Option(
        PROCESSING_CONFIG["max_workers"], "--max-workers", help="Workers for per-record stages"
    ),
    show: int = typer.Option(20, "--show", help="Number of predictions to list"),
    report: Optional[Path] = typer.Option(
        None, "--report", help="Write the summary and predictions to this JSON file"
    )
):
    """Analyze a CSV file of sensor readings"""
    logger = logging.getLogger("sensor_fd")

    if not input_file.exists():
        console.print(f"[red]Input file not found: {input_file}[/red]")
        raise typer.Exit(1)

    console.print("[bold blue]Sensor Failure Detection - Analysis[/bold blue]")
    raw_input = input_file.read_bytes()

    try:
        result = _run_with_progress(
            lambda orchestrator: orchestrator.analyze(raw_input),
            rules=rules,
            reject_incomplete_rows=reject_incomplete,
            max_workers=max_workers
        )
    except SensorPipelineError as e:
        logger.error(f"Analysis of {input_file} failed: {e}")
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    _display_result(result, show)

    if report:
        _write_report(result, report)
        console.print(f"[green]✓ Report written to {report}[/green]")

@app.command()
def sample(
    size: int = typer.Option(SAMPLE_DATA_CONFIG["size"], "--size", min=1, help="Number of records"),
    seed: int = typer.Option(SAMPLE_DATA_CONFIG["seed"], "--seed", help="Random seed"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the sample data to CSV instead of analyzing it"
    ),
    show: int = typer.Option(20, "--show", help="Number of predictions to list")
):
    """Analyze (or export) the synthetic demonstration data"""
    generator = SyntheticDataGenerator(size=size, seed=seed)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        generator.generate_frame().to_csv(output, index=False)
        console.print(f"[green]✓ Wrote {size} sample records to {output}[/green]")
        return

    console.print("[bold blue]Sensor Failure Detection - Sample Analysis[/bold blue]")
    try:
        result = _run_with_progress(lambda orchestrator: orchestrator.analyze_sample(generator))
    except SensorPipelineError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    _display_result(result, show)


@app.command(name="rules")
def show_rules(
    rules: Optional[Path] = typer.Option(
        None, "--rules", "-r", help="JSON rule set (default: built-in rules)"
    ),
    export: Optional[Path] = typer.Option(
        None, "--export", help="Write the rule set to this JSON file"
    )
):
    """Show (or export) the decision rule set"""
    try:
        classifier = load_rules(rules)
    except SensorPipelineError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    rules_table = Table(show_header=True, header_style="bold magenta")
    rules_table.add_column("Rule", style="cyan")
    rules_table.add_column("Condition")
    rules_table.add_column("Vote", justify="center")

    for row in classifier.rule_summary():
        rules_table.add_row(row["name"], row["when"], row["vote"])

    console.print(rules_table)
    console.print("Ties between failure and normal votes resolve to [green]normal[/green].")

    if export:
        classifier.save(export)
        console.print(f"[green]✓ Rules exported to {export}[/green]")


@app.command()
def status():
    """Show configuration and validate installation"""
    console.print("[bold blue]Sensor Failure Detection - Status[/bold blue]")

    status_table = Table(show_header=True, header_style="bold magenta")
    status_table.add_column("Component", style="cyan")
    status_table.add_column("Status", justify="center")
    status_table.add_column("Details")

    try:
        orchestrator = PipelineOrchestrator()
        status_table.add_row(
            "Pipeline", "[green]✓[/green]",
            f"{len(orchestrator.preparer.feature_names)} features"
        )
    except SensorPipelineError as e:
        status_table.add_row("Pipeline", "[red]✗[/red]", str(e))

    try:
        classifier = load_rules()
        status_table.add_row("Decision Rules", "[green]✓[/green]", f"{len(classifier.rules)} rules")
    except SensorPipelineError as e:
        status_table.add_row("Decision Rules", "[red]✗[/red]", str(e))

    console.print(status_table)

    channels_table = Table(show_header=True, header_style="bold magenta")
    channels_table.add_column("Channel", style="cyan")
    channels_table.add_column("Unit")
    channels_table.add_column("Required", justify="center")
    channels_table.add_column("Valid Range")
    channels_table.add_column("Missing Value", justify="right")

    for name, cfg in SENSOR_CHANNELS.items():
        channels_table.add_row(
            name,
            cfg.get("unit", ""),
            "yes" if cfg.get("required") else "no",
            str(cfg.get("valid_range", "-")),
            str(cfg.get("missing_value", 0.0))
        )

    console.print(channels_table)

    memory_stats = get_memory_usage()
    console.print(f"\n[bold]Memory Usage:[/bold]")
    console.print(f"  RSS: {memory_stats['rss_gb']:.2f} GB")
    console.print(f"  Available: {memory_stats['available_gb']:.1f} GB")


def _run_with_progress(run, **orchestrator_kwargs) -> AnalysisResult:
    """Run an analysis while rendering stage progress"""
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
        transient=True
    ) as progress:
        task = progress.add_task("Starting analysis...", total=100)

        def on_progress(event: ProgressEvent) -> None:
            progress.update(task, completed=event.percent, description=event.status)

        orchestrator = PipelineOrchestrator(progress_callback=on_progress, **orchestrator_kwargs)
        return run(orchestrator)


def _display_result(result: AnalysisResult, show: int) -> None:
    """Display summary and prediction tables"""
    console.print(
        f"\n[green]✓ Analysis complete[/green] - processed {result.total_samples} samples "
        f"in {format_duration(result.processing_time)}"
    )

    summary_table = Table(show_header=True, header_style="bold magenta")
    summary_table.add_column("Total", justify="right")
    summary_table.add_column("Failure", justify="right")
    summary_table.add_column("Normal", justify="right")
    summary_table.add_column("Failure Rate", justify="center")
    summary_table.add_row(
        str(result.total_samples),
        f"[red]{result.failure_predictions}[/red]",
        f"[green]{result.normal_predictions}[/green]",
        f"{result.failure_rate:.1%}"
    )
    console.print(summary_table)

    if show <= 0 or not result.predictions:
        return

    predictions_table = Table(show_header=True, header_style="bold magenta")
    predictions_table.add_column("Sample", style="cyan")
    predictions_table.add_column("Prediction", justify="center")
    predictions_table.add_column("Confidence", justify="right")
    predictions_table.add_column("Factors")

    for prediction in result.predictions[:show]:
        colour = "red" if prediction.is_failure else "green"
        predictions_table.add_row(
            str(prediction.identifier),
            f"[{colour}]{prediction.label.value}[/{colour}]",
            f"{prediction.confidence:.0%}",
            ", ".join(prediction.contributing_factors)
        )

    console.print(predictions_table)
    if result.total_samples > show:
        console.print(f"... {result.total_samples - show} more predictions not shown")


def _write_report(result: AnalysisResult, filepath: Path) -> None:
    """Save the run summary and per-sample predictions as JSON"""
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(
            {
                "summary": result.summary(),
                "predictions": [prediction.to_dict() for prediction in result.predictions]
            },
            f,
            indent=2
        )


if __name__ == "__main__":
    app()
