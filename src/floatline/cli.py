"""Command-line interface for floatline."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Annotated, Any, NoReturn

import typer
from pydantic import ValidationError as PydanticValidationError

from .config import DEFAULT_CONFIG_FILENAME, EngineConfig, load_config
from .exceptions import FloatlineError
from .loader import load_storage
from .logger import setup_logger
from .models import ObjectiveKind, OptimizationGoal, OptimizationObjective
from .scheduler import OptimizationService
from .serialize import to_payload

app = typer.Typer(
    name="floatline",
    help="Critical path analysis and resource-constrained schedule optimization",
    add_completion=False,
)


@dataclass
class _GlobalOptions:
    config_path: Path | None = None


_options = _GlobalOptions()


@app.callback()
def main_callback(
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            help="Verbosity level: 0=silent (default), 1=show changes, 2=show all checks, 3=debug",
            min=0,
            max=3,
        ),
    ] = 0,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help=f"Path to engine config file (default: {DEFAULT_CONFIG_FILENAME})",
        ),
    ] = None,
) -> None:
    """Global options for floatline commands."""
    setup_logger(verbose)
    _options.config_path = config


def _engine_config() -> EngineConfig:
    """Resolve config with priority: --config > ./floatline.yaml > defaults."""
    path = _options.config_path
    if path is None and Path(DEFAULT_CONFIG_FILENAME).exists():
        path = Path(DEFAULT_CONFIG_FILENAME)
    if path is None:
        return EngineConfig()
    return load_config(path)


def _parse_date_option(date_str: str | None, option_name: str) -> date | None:
    """Parse a YYYY-MM-DD option value, exiting with an error on bad input."""
    if date_str is None:
        return None

    try:
        return date.fromisoformat(date_str)
    except ValueError:
        typer.echo(
            f"Error: Invalid date format '{date_str}' for {option_name}. Use YYYY-MM-DD format.",
            err=True,
        )
        raise typer.Exit(1) from None


def _parse_time_range(start: str | None, end: str | None) -> dict[str, date] | None:
    start_date = _parse_date_option(start, "--start")
    end_date = _parse_date_option(end, "--end")
    if start_date is None and end_date is None:
        return None
    if start_date is None or end_date is None:
        typer.echo("Error: --start and --end must be given together", err=True)
        raise typer.Exit(1)
    if end_date < start_date:
        typer.echo(f"Error: --end {end_date} is before --start {start_date}", err=True)
        raise typer.Exit(1)
    return {"start": start_date, "end": end_date}


def _parse_objectives(values: list[str] | None) -> list[OptimizationObjective]:
    """Parse ``kind`` or ``kind=weight`` values."""
    objectives: list[OptimizationObjective] = []
    for value in values or []:
        kind_str, _, weight_str = value.partition("=")
        try:
            kind = ObjectiveKind(kind_str.strip())
            weight = float(weight_str) if weight_str else 1.0
            objectives.append(OptimizationObjective(kind=kind, weight=weight))
        except (ValueError, PydanticValidationError):
            valid = ", ".join(k.value for k in ObjectiveKind)
            typer.echo(
                f"Error: Invalid objective '{value}'. Use KIND[=WEIGHT] with KIND one of: {valid}",
                err=True,
            )
            raise typer.Exit(1) from None
    return objectives


def _emit(result: Any, output: Path | None) -> None:
    text = json.dumps(to_payload(result), indent=2)
    if output:
        output.write_text(text + "\n", encoding="utf-8")
        typer.echo(f"Result written to {output}")
    else:
        typer.echo(text)


def _fail(error: FloatlineError) -> NoReturn:
    typer.echo(f"Error: {error.message}", err=True)
    typer.echo(json.dumps(to_payload(error), indent=2), err=True)
    raise typer.Exit(1)


@app.command()
def analyze(  # noqa: PLR0913 - CLI command needs multiple options
    file: Annotated[Path, typer.Argument(help="Path to the portfolio YAML file")],
    project_id: Annotated[str, typer.Argument(help="Project to analyze")],
    *,
    deadline: Annotated[
        str | None, typer.Option("--deadline", help="Deadline override (YYYY-MM-DD)")
    ] = None,
    float_analysis: Annotated[
        bool, typer.Option("--float/--no-float", help="Include float statistics")
    ] = True,
    risk_threshold: Annotated[
        int | None,
        typer.Option(
            "--risk-threshold", min=0, help="Float (days) at or below which a task is at risk"
        ),
    ] = None,
    resources: Annotated[
        bool, typer.Option("--resources", help="Include resource conflicts and bottlenecks")
    ] = False,
    planned_starts: Annotated[
        bool,
        typer.Option(
            "--planned-starts", help="Hold tasks to their planned start dates as constraints"
        ),
    ] = False,
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Output file path")] = None,
) -> None:
    """Compute the critical path, float and earliest/latest schedule of a project."""
    try:
        service = OptimizationService(load_storage(file), _engine_config())
        result = service.analyze_critical_path(
            {
                "project_id": project_id,
                "include_float_analysis": float_analysis,
                "risk_threshold": risk_threshold,
                "deadline": _parse_date_option(deadline, "--deadline"),
                "include_resource_analysis": resources,
                "respect_planned_starts": planned_starts,
            }
        )
    except FloatlineError as e:
        _fail(e)
    _emit(result, output)


@app.command()
def optimize(  # noqa: PLR0913 - CLI command needs multiple options
    file: Annotated[Path, typer.Argument(help="Path to the portfolio YAML file")],
    project_id: Annotated[str, typer.Argument(help="Project to optimize")],
    *,
    goal: Annotated[
        list[OptimizationGoal] | None,
        typer.Option("--goal", "-g", help="Optimization goal, in order of preference"),
    ] = None,
    start: Annotated[str | None, typer.Option("--start", help="Window start (YYYY-MM-DD)")] = None,
    end: Annotated[str | None, typer.Option("--end", help="Window end (YYYY-MM-DD)")] = None,
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Output file path")] = None,
) -> None:
    """Level resources and shorten a project's schedule."""
    request: dict[str, Any] = {
        "project_id": project_id,
        "time_range": _parse_time_range(start, end),
    }
    if goal:
        request["optimization_goals"] = goal

    try:
        service = OptimizationService(load_storage(file), _engine_config())
        result = service.optimize_project_timeline(request)
    except FloatlineError as e:
        _fail(e)
    _emit(result, output)


@app.command()
def portfolio(  # noqa: PLR0913 - CLI command needs multiple options
    file: Annotated[Path, typer.Argument(help="Path to the portfolio YAML file")],
    project_ids: Annotated[
        list[str] | None, typer.Argument(help="Projects to schedule (default: all in file)")
    ] = None,
    *,
    objective: Annotated[
        list[str] | None,
        typer.Option("--objective", "-O", help="Weighted objective as KIND[=WEIGHT]"),
    ] = None,
    start: Annotated[str | None, typer.Option("--start", help="Window start (YYYY-MM-DD)")] = None,
    end: Annotated[str | None, typer.Option("--end", help="Window end (YYYY-MM-DD)")] = None,
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Output file path")] = None,
) -> None:
    """Sequence several projects over shared resources by priority."""
    objectives = _parse_objectives(objective)
    time_range = _parse_time_range(start, end)

    try:
        storage = load_storage(file)
        ids = project_ids or list(storage.projects)
        if not ids:
            typer.echo(f"Error: No projects found in {file}", err=True)
            raise typer.Exit(1)
        service = OptimizationService(storage, _engine_config())
        result = service.optimize_delivery_schedule(
            {
                "project_ids": ids,
                "time_range": time_range,
                "optimization_objectives": objectives,
            }
        )
    except FloatlineError as e:
        _fail(e)
    _emit(result, output)


def main() -> int:
    """Main entry point."""
    # Typer handles sys.exit() internally
    app()
    return 0


if __name__ == "__main__":
    main()
