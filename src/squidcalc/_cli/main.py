import logging
from pathlib import Path
from typing import Annotated

import numpy as np
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from squidcalc._context import TaskContext
from squidcalc._errors import CyclicDependencyError, TaskFileError
from squidcalc._io import export_results_to_toml, load_task_from_toml
from squidcalc._operations import default_catalog

from .config import ConfigError, SquidCalcConfig, get_config

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """SHRIMP expression evaluation CLI."""
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


def _load_config() -> SquidCalcConfig:
    try:
        return get_config()
    except ConfigError as e:
        err_console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e


def _resolve_task(task: Path | None, config: SquidCalcConfig) -> Path:
    effective_task = task if task is not None else config.task
    if effective_task is None:
        err_console.print("[red]Error: Task file required. Pass TASK or configure \\[tool.squidcalc].task[/red]")
        raise typer.Exit(code=1)
    return effective_task


def _load_task(task_path: Path) -> TaskContext:
    err_console.print(f"[cyan]Loading task from:[/cyan] {task_path}")
    try:
        return load_task_from_toml(task_path)
    except (TaskFileError, FileNotFoundError) as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e


def _format_value(value: np.ndarray) -> str:
    if value.shape == (1, 1):
        return f"{value[0, 0]:.6g}"
    preview = ", ".join(f"{v:.6g}" for v in value.ravel()[:4])
    if value.size > 4:  # noqa: PLR2004
        preview += ", ..."
    return f"[{preview}]"


@app.command()
def evaluate(
    task: Annotated[
        Path | None,
        typer.Argument(help="Path to the task TOML file"),
    ] = None,
    *,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Path to output TOML file"),
    ] = None,
    workers: Annotated[
        int | None,
        typer.Option("--workers", min=1, help="Evaluate independent expressions on this many threads"),
    ] = None,
) -> None:
    """Evaluate every expression of a task and report the results."""
    err_console.print()

    config = _load_config()
    context = _load_task(_resolve_task(task, config))
    effective_output = output if output is not None else config.output
    max_workers = workers if workers is not None else config.max_workers

    err_console.print("[cyan]Evaluating expressions...[/cyan]")
    try:
        result = context.evaluate_all(max_workers=max_workers)
    except CyclicDependencyError as e:
        err_console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e
    err_console.print()

    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Expression", style="bold")
    table.add_column("Shape", justify="right", style="dim")
    table.add_column("Value")

    errors = dict(result.errors)
    for name in result.order + [n for n in errors if n not in result.order]:
        if name in result.values:
            value = result.values[name]
            table.add_row(escape(name), f"{value.shape[0]}x{value.shape[1]}", _format_value(value))
        else:
            table.add_row(escape(name), "-", f"[red]✗ {escape(errors[name])}[/red]")

    out_console.print(Panel(table, title="[bold]Results[/bold]", border_style="cyan"))

    if effective_output is not None:
        err_console.print(f"[cyan]Exporting results to:[/cyan] {effective_output}")
        export_results_to_toml(result, effective_output)

    err_console.print()
    if not result.success:
        err_console.print(f"[red]✗ {len(result.errors)} expression(s) failed[/red]")
        raise typer.Exit(code=1)

    err_console.print("[green]✓ Evaluation complete[/green]")


@app.command()
def order(
    task: Annotated[
        Path | None,
        typer.Argument(help="Path to the task TOML file"),
    ] = None,
) -> None:
    """Print the order in which the task's expressions are evaluated."""
    config = _load_config()
    context = _load_task(_resolve_task(task, config))

    try:
        levels = context.registry.evaluation_levels(shadowed=context.field_names)
    except CyclicDependencyError as e:
        err_console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Level", justify="right", style="dim")
    table.add_column("Expression", style="bold")
    table.add_column("Formula")

    for index, level in enumerate(levels):
        for name in level:
            expression = context.registry.resolve(name)
            table.add_row(str(index), escape(name), escape(expression.source_formula))

    out_console.print(table)


@app.command()
def operations() -> None:
    """List the operations available in formulas."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Name", style="bold")
    table.add_column("Symbol", justify="center")
    table.add_column("Args", justify="right", style="yellow")
    table.add_column("Category")
    table.add_column("Definition", style="dim")

    for descriptor in default_catalog().list_all():
        table.add_row(
            descriptor.name,
            escape(descriptor.symbol or ""),
            str(descriptor.argument_count),
            descriptor.category.value,
            escape(descriptor.definition),
        )

    out_console.print(table)


def main() -> None:
    app()
