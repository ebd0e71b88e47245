"""
stageplan CLI - inspect parallelism assignment for plan documents.

Usage:
    stageplan stages plan.json
    stageplan assign plan.json --default-parallelism 8 --max-parallelism 16
    stageplan assign plan.yaml --config parallelism.yaml --json
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from stageplan import __version__
from stageplan.config import ParallelismConfig, get_config, load_config_from_file
from stageplan.exceptions import StagePlanError
from stageplan.loader import LoadedPlan, load_plan
from stageplan.parallelism import ParallelismAssignment, assign_parallelism, preview_stages

app = typer.Typer(
    name="stageplan",
    help="Parallelism assignment for query plan DAGs",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"stageplan version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """stageplan - parallelism assignment for query plan DAGs."""
    pass


def _fail(error: StagePlanError, json_output: bool = False) -> None:
    if json_output:
        console.print_json(json.dumps(error.to_dict()))
    else:
        error_console.print(f"[red]{type(error).__name__}:[/red] {error}")
    raise typer.Exit(1)


def _node_label(plan: LoadedPlan, node_id: int) -> str:
    node = plan.graph.node(node_id)
    return f"{plan.document_id(node)}:{node.name}"


@app.command()
def stages(
    plan_file: Annotated[
        Path,
        typer.Argument(help="Path to plan document (JSON or YAML)"),
    ],
) -> None:
    """Show the shuffle stages of a plan without assigning anything."""
    try:
        plan = load_plan(plan_file)
        shuffle_stages = preview_stages(plan.graph, plan.roots)
    except StagePlanError as e:
        _fail(e)
        return

    table = Table(title=f"Shuffle Stages ({len(shuffle_stages)})")
    table.add_column("Stage", style="bold", width=6)
    table.add_column("Fixed", justify="center", width=8)
    table.add_column("Members", min_width=30)

    for stage in shuffle_stages:
        fixed = (
            f"[yellow]{stage.fixed_parallelism}[/yellow]"
            if stage.is_final else "[dim]-[/dim]"
        )
        table.add_row(
            str(stage.stage_id),
            fixed,
            ", ".join(_node_label(plan, m) for m in stage.members),
        )

    console.print(table)


@app.command()
def assign(
    plan_file: Annotated[
        Path,
        typer.Argument(help="Path to plan document (JSON or YAML)"),
    ],
    config_file: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Parallelism config file (JSON or YAML)"),
    ] = None,
    default_parallelism: Annotated[
        Optional[int],
        typer.Option("--default-parallelism", "-p", help="Default parallelism"),
    ] = None,
    max_parallelism: Annotated[
        Optional[int],
        typer.Option("--max-parallelism", "-m", help="Maximum parallelism"),
    ] = None,
    environment_parallelism: Annotated[
        Optional[int],
        typer.Option("--env-parallelism", help="Environment parallelism fallback"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output results as JSON"),
    ] = False,
) -> None:
    """
    Assign parallelism to every node of a plan.

    Configuration comes from --config if given, else from STAGEPLAN_*
    environment variables; command-line options override both.
    """
    try:
        base: ParallelismConfig = (
            load_config_from_file(config_file) if config_file else get_config()
        )
        config = base.with_overrides(
            default_parallelism=default_parallelism,
            max_parallelism=max_parallelism,
        )
        plan = load_plan(plan_file)
        assignment = assign_parallelism(
            plan.graph,
            plan.roots,
            config,
            environment_parallelism=environment_parallelism,
        )
    except StagePlanError as e:
        _fail(e, json_output)
        return

    if json_output:
        console.print_json(json.dumps(assignment.to_dict()))
        return

    _print_assignment(plan, assignment)


def _print_assignment(plan: LoadedPlan, assignment: ParallelismAssignment) -> None:
    console.print(
        Panel(
            f"Nodes: [bold]{assignment.node_count}[/bold]  |  "
            f"Stages: [bold]{assignment.stage_count}[/bold]  |  "
            f"Fixed: [bold]{len(assignment.fixed)}[/bold]  |  "
            f"Config: [dim]{assignment.config_hash}[/dim]",
            title="Parallelism Assignment",
            border_style="cyan",
        )
    )

    table = Table(show_lines=False)
    table.add_column("Node", min_width=20)
    table.add_column("Stage", justify="right", width=6)
    table.add_column("Parallelism", justify="right", width=12)
    table.add_column("Source", width=10)

    decisions = {d.stage.stage_id: d for d in assignment.decisions}
    for node_id, value in assignment.parallelism.items():
        stage = assignment.stage_of(node_id)
        decision = decisions[stage.stage_id]
        source = decision.source.value
        if decision.was_clamped:
            source += f" [dim](from {decision.candidate})[/dim]"
        table.add_row(
            _node_label(plan, node_id),
            str(stage.stage_id),
            f"[bold]{value}[/bold]",
            source,
        )

    console.print(table)


if __name__ == "__main__":
    app()
