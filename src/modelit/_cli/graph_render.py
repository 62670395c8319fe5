"""Rich rendering utilities for the CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

if TYPE_CHECKING:
    from rich.console import Console

    from modelit._analysis import GraphAnalysis, ValidationReport
    from modelit._eval_engine import EvaluationResult
    from modelit._graph import DependencyGraph
    from modelit._models import Model


def _format_number(value: float) -> str:
    return f"{value:,.4g}" if abs(value) >= 1e6 else f"{value:,.2f}"


def render_values(result: EvaluationResult, console: Console, names: list[str] | None = None) -> None:
    """Render evaluated sequences as a Rich table, one row per variable.

    Args:
        result: A successful EvaluationResult.
        console: Rich Console to output to.
        names: Restrict the rows to these variables.

    """
    if result.values is None:
        console.print("[dim]No values[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Variable", style="bold")
    for step in range(result.horizon):
        table.add_column(f"t={step}", justify="right")

    for name, row in result.values.items():
        if names is not None and name not in names:
            continue
        table.add_row(escape(name), *(_format_number(v) for v in row))

    console.print(table)


def render_validation(report: ValidationReport, console: Console) -> None:
    for error in report.errors:
        console.print(f"  [red]•[/red] {escape(error)}")
    for warning in report.warnings:
        console.print(f"  [yellow]•[/yellow] {escape(warning)}")


def render_analysis(analysis: GraphAnalysis, model: Model, console: Console) -> None:
    """Render graph statistics followed by a per-variable level table.

    Args:
        analysis: GraphAnalysis to render.
        model: The analyzed model, for kinds and formulas.
        console: Rich Console to output to.

    """
    console.print(f"[cyan]Variables:[/cyan]       {analysis.node_count}")
    console.print(f"[cyan]Edges:[/cyan]           {analysis.edge_count}")
    console.print(f"[cyan]Max level:[/cyan]       {analysis.max_level}")
    console.print(f"[cyan]Time-dependent:[/cyan]  {analysis.time_dependent_count}")
    if analysis.is_acyclic:
        console.print("[cyan]Cycles:[/cyan]          [green]none[/green]")
    else:
        console.print(f"[cyan]Cycles:[/cyan]          [red]{analysis.cycle_count}[/red]")
        for cycle in analysis.cycles:
            console.print(f"  [red]•[/red] {escape(' -> '.join(cycle))}")
    console.print()

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Level", justify="right")
    table.add_column("Variable", style="bold")
    table.add_column("Kind")
    table.add_column("Formula", style="dim")

    names = analysis.topological_order or list(analysis.levels)
    for name in sorted(names, key=lambda n: analysis.levels.get(n, 0)):
        variable = model.variables[name]
        table.add_row(
            str(analysis.levels.get(name, 0)),
            escape(name),
            f"[{_get_kind_style(variable.kind)}]{variable.kind.upper()}[/{_get_kind_style(variable.kind)}]",
            escape(variable.formula or ""),
        )

    console.print(table)


def render_tree(graph: DependencyGraph, name: str, console: Console) -> None:
    """Render the dependency tree of one variable using Rich Tree.

    A variable already shown higher up the same branch is marked and not
    expanded again, so temporal self-references terminate.
    """
    rich_tree = Tree(f"[bold]{escape(name)}[/bold]")
    _add_tree_children(rich_tree, graph, name, (name,))
    console.print(rich_tree)


def _add_tree_children(parent: Tree, graph: DependencyGraph, name: str, branch: tuple[str, ...]) -> None:
    node = graph.node(name)
    for dep in node.dependencies:
        if dep in branch:
            parent.add(f"{escape(dep)} [dim](loop)[/dim]")
            continue
        child = parent.add(escape(dep))
        _add_tree_children(child, graph, dep, (*branch, dep))
    for dep in node.dangling:
        parent.add(f"[red]{escape(dep)} (missing)[/red]")


def _get_kind_style(kind: str) -> str:
    match kind:
        case "parameter":
            return "blue"
        case "series":
            return "yellow"
        case _:
            return "green"
