import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from modelit._analysis import analyze_graph, validate_model
from modelit._errors import ModelitError
from modelit._eval_engine import EvaluationResult, evaluate_model, evaluate_variable, simulate_scenarios
from modelit._graph import DependencyGraph
from modelit._io import export_results, load_model, load_scenarios
from modelit._models import Model
from modelit._storage import ModelStorage

from .config import ConfigError, ModelitConfig, get_config
from .graph_render import render_analysis, render_tree, render_validation, render_values

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()

DEFAULT_HORIZON = 1

ModelArgument = Annotated[
    str | None,
    typer.Argument(help="Path to a .toml/.json model file or the name of a stored model"),
]
StorageOption = Annotated[
    Path | None,
    typer.Option("--storage", help="Model storage directory (default: ~/.modelit/models)"),
]


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """Modelit CLI."""
    log_level = logging.DEBUG if verbose else logging.INFO

    # Configure rich logging handler to output to stderr
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=err_console,
                show_time=False,
                show_path=verbose,
                rich_tracebacks=True,
            ),
        ],
    )


def _load_config() -> ModelitConfig:
    try:
        return get_config()
    except ConfigError as e:
        err_console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e


def _storage(config: ModelitConfig, storage: Path | None) -> ModelStorage:
    return ModelStorage(storage if storage is not None else config.storage)


def _load_model(source: str | None, config: ModelitConfig, storage: Path | None) -> Model:
    """Load a model from a file path or from storage by name.

    Falls back to ``[tool.modelit].model`` when no source is given.
    """
    if source is None:
        if config.model is None:
            err_console.print("[red]Error: No model given and no \\[tool.modelit].model configured[/red]")
            raise typer.Exit(code=1)
        source = str(config.model)

    try:
        path = Path(source)
        if path.is_file():
            err_console.print(f"[cyan]Loading model from file:[/cyan] {escape(str(path))}")
            model = load_model(path)
        else:
            err_console.print(f"[cyan]Loading stored model:[/cyan] {escape(source)}")
            model = _storage(config, storage).load(source)
    except (ModelitError, ValueError, KeyError, OSError) as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    err_console.print(f"[cyan]Model:[/cyan] [bold]{escape(model.name)}[/bold] ({len(model)} variables)")
    err_console.print()
    return model


def _resolve_horizon(horizon: int | None, config: ModelitConfig) -> int:
    if horizon is not None:
        return horizon
    return config.horizon if config.horizon is not None else DEFAULT_HORIZON


@app.command(name="eval")
def eval_(
    model_source: ModelArgument = None,
    *,
    horizon: Annotated[
        int | None,
        typer.Option("-t", "--horizon", "--time-steps", min=1, help="Number of time steps"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Path to output .toml or .json file"),
    ] = None,
    variable: Annotated[
        str | None,
        typer.Option("--variable", help="Evaluate this variable and what it reads only"),
    ] = None,
    storage: StorageOption = None,
) -> None:
    """Evaluate a model over a number of time steps."""
    config = _load_config()
    err_console.print()
    model = _load_model(model_source, config, storage)
    steps = _resolve_horizon(horizon, config)

    err_console.print(f"[cyan]Evaluating over {steps} time step(s)...[/cyan]")
    if variable is not None:
        single = evaluate_variable(model, variable, steps)
        result = EvaluationResult(
            horizon=steps,
            values={variable: single.values} if single.values is not None else None,
            errors=single.errors,
            elapsed=single.elapsed,
        )
        names = [variable]
    else:
        result = evaluate_model(model, steps)
        names = None

    if not result.success:
        _print_errors(result.errors)
        raise typer.Exit(code=1)

    err_console.print()
    render_values(result, out_console, names)

    output = output if output is not None else config.output
    if output is not None:
        err_console.print()
        err_console.print(f"[cyan]Exporting results to:[/cyan] {escape(str(output))}")
        export_results(result, output, names)

    err_console.print()
    err_console.print(f"[green]✓ Evaluation complete[/green] [dim]({result.elapsed * 1000:.1f} ms)[/dim]")
    err_console.print()


@app.command()
def check(
    model_source: ModelArgument = None,
    *,
    storage: StorageOption = None,
) -> None:
    """Check a model for missing variables and circular dependencies."""
    config = _load_config()
    err_console.print()
    model = _load_model(model_source, config, storage)

    err_console.print("[cyan]Validating dependencies...[/cyan]")
    report = validate_model(model)
    render_validation(report, err_console)
    err_console.print()

    if not report.is_valid:
        err_console.print(f"[red]✗ Model is invalid ({len(report.errors)} error(s))[/red]")
        err_console.print()
        raise typer.Exit(code=1)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Kind", style="bold")
    table.add_column("Variables", justify="right", style="yellow")
    table.add_column("With formula", justify="right", style="green")
    for kind in sorted({v.kind for v in model.variables.values()}):
        of_kind = [v for v in model.variables.values() if v.kind == kind]
        table.add_row(str(kind), str(len(of_kind)), str(sum(v.has_formula for v in of_kind)))

    err_console.print(
        Panel(
            table,
            title=f"[bold]Model: {escape(model.name)}[/bold]",
            subtitle=f"[dim]{len(model.edges)} edges[/dim]",
            border_style="cyan",
        ),
    )
    err_console.print()
    err_console.print("[green]✓ Model is valid[/green]")
    err_console.print()


@app.command()
def graph(
    model_source: ModelArgument = None,
    *,
    tree: Annotated[
        str | None,
        typer.Option("--tree", help="Show the dependency tree of this variable"),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the graph as JSON"),
    ] = False,
    storage: StorageOption = None,
) -> None:
    """Show dependency levels, cycles and evaluation order of a model."""
    config = _load_config()
    err_console.print()
    model = _load_model(model_source, config, storage)
    dependency_graph = DependencyGraph.from_model(model)

    if as_json:
        analysis = analyze_graph(model)
        data = {
            "node_count": analysis.node_count,
            "edge_count": analysis.edge_count,
            "max_level": analysis.max_level,
            "is_acyclic": analysis.is_acyclic,
            "cycles": analysis.cycles,
            "topological_order": analysis.topological_order,
            **dependency_graph.to_dict(),
        }
        out_console.print_json(json.dumps(data))
        return

    if tree is not None:
        if tree not in dependency_graph:
            err_console.print(f"[red]Error: Variable '{escape(tree)}' not found[/red]")
            raise typer.Exit(code=1)
        render_tree(dependency_graph, tree, out_console)
        return

    render_analysis(analyze_graph(model), model, out_console)


@app.command()
def scenario(
    model_source: ModelArgument = None,
    *,
    scenarios_file: Annotated[
        Path,
        typer.Option("-s", "--scenarios", help="Path to .toml or .json scenario file"),
    ],
    horizon: Annotated[
        int | None,
        typer.Option("-t", "--horizon", "--time-steps", min=1, help="Number of time steps"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Directory to write one result file per scenario"),
    ] = None,
    storage: StorageOption = None,
) -> None:
    """Evaluate a model once per scenario of parameter overrides."""
    config = _load_config()
    err_console.print()
    model = _load_model(model_source, config, storage)
    steps = _resolve_horizon(horizon, config)

    try:
        scenarios = load_scenarios(scenarios_file)
    except (ValueError, OSError) as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    err_console.print(f"[cyan]Running {len(scenarios)} scenario(s) over {steps} time step(s)...[/cyan]")
    results = simulate_scenarios(model, scenarios, steps)

    failed = False
    for name, result in results.items():
        out_console.print()
        if not result.success:
            failed = True
            out_console.print(f"[bold]{escape(name)}[/bold] [red]✗ failed[/red]")
            _print_errors(result.errors, out_console)
            continue
        out_console.print(f"[bold]{escape(name)}[/bold]")
        render_values(result, out_console)
        if output is not None:
            export_results(result, output / f"{name}.toml")

    err_console.print()
    if failed:
        err_console.print("[red]✗ Some scenarios failed[/red]")
        raise typer.Exit(code=1)
    err_console.print("[green]✓ All scenarios complete[/green]")


@app.command(name="list")
def list_models(storage: StorageOption = None) -> None:
    """List the models in storage."""
    model_storage = _storage(_load_config(), storage)
    names = model_storage.list_models()
    if not names:
        err_console.print(f"[dim]No models in {escape(str(model_storage.base_directory))}[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Model", style="bold")
    table.add_column("Variables", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Modified", style="dim")
    for name in names:
        try:
            info = model_storage.info(name)
        except ModelitError as e:
            table.add_row(escape(name), "[red]?[/red]", "", escape(str(e)))
            continue
        table.add_row(
            escape(info.name),
            str(info.variable_count),
            f"{info.size} B",
            info.last_modified.strftime("%Y-%m-%d %H:%M"),
        )
    out_console.print(table)


@app.command(name="import")
def import_model(
    path: Annotated[Path, typer.Argument(help="Path to a .toml or .json model file")],
    *,
    storage: StorageOption = None,
) -> None:
    """Copy a model file into storage."""
    model_storage = _storage(_load_config(), storage)
    try:
        model = model_storage.import_model(path)
    except ModelitError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e
    err_console.print(f"[green]✓ Imported model '{escape(model.name)}'[/green] ({len(model)} variables)")


@app.command(name="export")
def export_model(
    name: Annotated[str, typer.Argument(help="Name of the stored model")],
    *,
    output: Annotated[
        Path,
        typer.Option("-o", "--output", help="Path to output .toml or .json file"),
    ],
    storage: StorageOption = None,
) -> None:
    """Write a stored model to a file."""
    model_storage = _storage(_load_config(), storage)
    try:
        path = model_storage.export_model(name, output)
    except ModelitError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e
    err_console.print(f"[green]✓ Exported model '{escape(name)}' to {escape(str(path))}[/green]")


def _print_errors(errors: list[str], console: Console = err_console) -> None:
    for error in errors:
        console.print(f"  [red]•[/red] {escape(error)}")


def main() -> None:
    app()
